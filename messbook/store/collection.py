"""
Collection store: one named collection persisted as ``<root>/<name>/sheet.csv``.

Every mutation is a full-file read-modify-write performed while holding the
collection's lock, and the new file replaces the old one atomically.
"""
import csv
import itertools
import os
import re
import secrets
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from messbook.core.exceptions import RecordNotFound, StorageIOError, ValidationError
from messbook.core.logging_config import get_logger
from messbook.store import codec
from messbook.store.codec import Record
from messbook.store.locks import CollectionLockManager

logger = get_logger(__name__)

SHEET_FILENAME = "sheet.csv"

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_id_counter = itertools.count()


def new_record_id() -> str:
    """Millisecond clock + process-wide counter + random suffix."""
    millis = int(time.time() * 1000)
    return f"{millis}-{next(_id_counter):x}{secrets.token_hex(3)}"


def utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_collection_name(name: str) -> str:
    if not name or not _NAME_RE.match(name):
        raise ValidationError(f'Invalid collection name "{name}"', field="collection")
    return name


class CollectionStore:
    """List / append / update / delete for a single collection."""

    def __init__(self, name: str, data_root: Path, locks: CollectionLockManager):
        self.name = validate_collection_name(name)
        self.data_root = Path(data_root)
        self.locks = locks

    @property
    def path(self) -> Path:
        return self.data_root / self.name / SHEET_FILENAME

    def locked(self):
        """Hold this collection's write lock for a multi-step mutation."""
        return self.locks.hold(self.name)

    def read(self) -> Tuple[List[str], List[Record]]:
        """Decode the file; a collection never written reads as no header and no records."""
        path = self.path
        if not path.exists():
            return [], []
        try:
            data = path.read_bytes()
            return codec.decode(data)
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.exception("Failed to read collection %s from %s", self.name, path)
            raise StorageIOError(self.name, str(e)) from e

    def list(self) -> List[Record]:
        _, records = self.read()
        return records

    def get(self, record_id: str) -> Optional[Record]:
        for record in self.list():
            if record.get("id") == record_id:
                return record
        return None

    def append(self, fields: Dict[str, Any]) -> Record:
        record: Record = {"id": new_record_id(), "timestamp": utc_timestamp()}
        for key, value in fields.items():
            if key not in ("id", "timestamp"):
                record[key] = value

        with self.locked():
            _, records = self.read()
            records.append(record)
            # Live records carry every header field; a header frozen by
            # emptying the collection is dropped here
            self._write(codec.union_header(records), records)

        logger.debug("Appended %s to %s", record["id"], self.name)
        return record

    def update_by_id(self, record_id: str, fields: Dict[str, Any]) -> Record:
        with self.locked():
            _, records = self.read()
            index = self._index_of(records, record_id)

            merged = {**records[index], **fields, "id": records[index]["id"]}
            records[index] = merged
            self._write(codec.union_header(records), records)

        return merged

    def delete_by_id(self, record_id: str) -> None:
        with self.locked():
            header, records = self.read()
            index = self._index_of(records, record_id)

            del records[index]
            if records:
                header = codec.union_header(records)
            # An emptied collection keeps the header it had before the delete
            self._write(header, records)

    def save_all(self, records: List[Record]) -> None:
        """Rewrite the whole collection with ``records``."""
        with self.locked():
            header, _ = self.read()
            if records:
                header = codec.union_header(records)
            self._write(header, records)

    def _index_of(self, records: List[Record], record_id: str) -> int:
        for i, record in enumerate(records):
            if str(record.get("id")) == str(record_id):
                return i
        raise RecordNotFound(self.name, record_id)

    def _write(self, header: List[str], records: List[Record]) -> None:
        path = self.path
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = codec.encode(header, records)
            with tempfile.NamedTemporaryFile(
                "wb", dir=path.parent, prefix=".sheet-", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            logger.exception("Failed to write collection %s to %s", self.name, path)
            raise StorageIOError(self.name, str(e)) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


class Storage:
    """Data root plus the lock manager shared by every collection under it."""

    def __init__(self, data_root: Path, locks: Optional[CollectionLockManager] = None):
        self.data_root = Path(data_root)
        self.locks = locks or CollectionLockManager()

    def collection(self, name: str) -> CollectionStore:
        return CollectionStore(name, self.data_root, self.locks)
