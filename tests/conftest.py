"""
Pytest fixtures for the messbook test suite.

Provides:
- A fresh data root per test (``tmp_path``)
- Storage / ledger / facade wired to that root
- A FastAPI TestClient whose facade points at the same root
- Helpers for seeding stock items

The operation log database and the default data root are redirected to a
scratch directory before ``messbook`` is imported.
"""

import os
import tempfile
from pathlib import Path

_SCRATCH = Path(tempfile.mkdtemp(prefix="messbook-tests-"))
os.environ["MESSBOOK_DATA_ROOT"] = str(_SCRATCH / "data")
os.environ["DATABASE_URL"] = f"sqlite:///{_SCRATCH / 'operation_logs.db'}"

import pytest  # noqa: E402

from messbook.services.facade import AccessFacade  # noqa: E402
from messbook.services.ledger import LedgerCoordinator  # noqa: E402
from messbook.store.collection import Storage  # noqa: E402


@pytest.fixture
def data_root(tmp_path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def storage(data_root) -> Storage:
    return Storage(data_root)


@pytest.fixture
def ledger(storage) -> LedgerCoordinator:
    return LedgerCoordinator(storage)


@pytest.fixture
def facade(data_root, storage) -> AccessFacade:
    return AccessFacade(data_root, storage=storage)


@pytest.fixture
def add_stock_item(ledger):
    """Create a stock item through the ledger; returns the stored record."""

    def _add(name, quantity, unit_cost, **extra):
        fields = {
            "itemName": name,
            "currentQuantity": quantity,
            "lastUnitCost": unit_cost,
            "unitOfMeasurement": extra.pop("unitOfMeasurement", "kg"),
            "itemType": extra.pop("itemType", "Issue"),
            "type": extra.pop("type", "grocery"),
        }
        fields.update(extra)
        return ledger.add_stock_item(fields)

    return _add


@pytest.fixture
def stock_by_name(storage):
    """Current stock items keyed by itemName."""

    def _read():
        return {item["itemName"]: item for item in storage.collection("stockItems").list()}

    return _read


@pytest.fixture
def client(facade):
    from fastapi.testclient import TestClient

    from messbook.api.sheets import get_facade
    from messbook.db.database import SessionLocal, init_db
    from messbook.main import app
    from messbook.models import OperationLog

    init_db()
    db = SessionLocal()
    try:
        db.query(OperationLog).delete()
        db.commit()
    finally:
        db.close()

    app.dependency_overrides[get_facade] = lambda: facade
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def operation_logs():
    """All operation log rows, oldest first."""
    from messbook.db.database import SessionLocal
    from messbook.models import OperationLog

    def _read():
        db = SessionLocal()
        try:
            return db.query(OperationLog).order_by(OperationLog.id).all()
        finally:
            db.close()

    return _read
