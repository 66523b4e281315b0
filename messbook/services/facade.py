"""
Access facade: the only entry point for callers outside the store.

``list`` / ``add`` / ``update`` / ``remove`` per collection. Inserts into the
ledger-linked collections (and any write to ``stockItems``) go through the
ledger coordinator; everything else goes straight to the collection store.
Errors come back as ``OperationResult.error``; nothing is retried.
"""
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from messbook.core.exceptions import MessbookError, StorageIOError, ValidationError
from messbook.core.logging_config import get_logger
from messbook.services.ledger import LEDGER_COLLECTIONS, STOCK_COLLECTION, LedgerCoordinator
from messbook.store.codec import Record, parse_number
from messbook.store.collection import Storage, validate_collection_name

logger = get_logger(__name__)


@dataclass
class RecordFilter:
    """
    Equality matches plus an inclusive ``date`` range.

    ``start_date`` / ``end_date`` are compared as ISO strings. An equality
    value matches a numeric field numerically and an array field by
    membership.
    """

    equals: Dict[str, str] = field(default_factory=dict)
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def matches(self, record: Record) -> bool:
        if self.start_date or self.end_date:
            record_date = str(record.get("date") or "")
            if not record_date:
                return False
            if self.start_date and record_date[:10] < self.start_date:
                return False
            if self.end_date and record_date[:10] > self.end_date:
                return False

        for name, expected in self.equals.items():
            if not _field_matches(record.get(name), expected):
                return False
        return True


def _field_matches(value: Any, expected: str) -> bool:
    if isinstance(value, list):
        return any(_field_matches(v, expected) for v in value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = parse_number(expected)
        return number is not None and number == value
    if value is None:
        return expected == ""
    return str(value) == expected


@dataclass
class OperationResult:
    ok: bool
    data: Any = None
    error: Optional[MessbookError] = None

    @property
    def kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


class AccessFacade:

    def __init__(self, data_root: Path, storage: Optional[Storage] = None):
        self.storage = storage or Storage(data_root)
        self.ledger = LedgerCoordinator(self.storage)

    def list(self, collection: str, record_filter: Optional[RecordFilter] = None) -> OperationResult:
        def run():
            records = self.storage.collection(collection).list()
            if record_filter is not None:
                records = [r for r in records if record_filter.matches(r)]
            return records

        return self._run("list", collection, run)

    def add(self, collection: str, fields: Dict[str, Any]) -> OperationResult:
        def run():
            _require_fields(fields)
            if collection in LEDGER_COLLECTIONS:
                return self.ledger.record(collection, fields)
            if collection == STOCK_COLLECTION:
                return self.ledger.add_stock_item(fields)
            return self.storage.collection(collection).append(fields)

        return self._run("add", collection, run)

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> OperationResult:
        def run():
            _require_id(record_id)
            _require_fields(fields)
            if collection == STOCK_COLLECTION:
                return self.ledger.update_stock_item(record_id, fields)
            return self.storage.collection(collection).update_by_id(record_id, fields)

        return self._run("update", collection, run)

    def remove(self, collection: str, record_id: str) -> OperationResult:
        def run():
            _require_id(record_id)
            self.storage.collection(collection).delete_by_id(record_id)

        return self._run("remove", collection, run)

    def _run(self, operation: str, collection: str, run) -> OperationResult:
        try:
            validate_collection_name(collection)
            return OperationResult(ok=True, data=run())
        except StorageIOError as e:
            logger.error("%s on %s failed: %s", operation, collection, e.detail)
            return OperationResult(ok=False, error=e)
        except MessbookError as e:
            level = logging.ERROR if e.status_code >= 500 else logging.INFO
            logger.log(level, "%s on %s rejected (%s): %s", operation, collection, e.kind, e.message)
            return OperationResult(ok=False, error=e)
        except (OSError, csv.Error) as e:
            logger.exception("%s on %s failed", operation, collection)
            return OperationResult(ok=False, error=StorageIOError(collection, str(e)))


def _require_fields(fields: Any) -> None:
    if not isinstance(fields, dict) or not fields:
        raise ValidationError("Record fields required", field="fields")


def _require_id(record_id: Any) -> None:
    if record_id is None or str(record_id) == "":
        raise ValidationError("Record id required", field="id")
