"""
Typed errors raised by the store and the ledger.

Each class carries a machine-readable ``kind`` (returned to API callers) and
the HTTP status the API layer answers with. The Access Facade converts them
into results; they never escape past it.
"""
from typing import List, Optional


class MessbookError(Exception):
    """Base class for all store/ledger errors."""

    kind: str = "MessbookError"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class ValidationError(MessbookError):
    """Missing or malformed field; raised before any I/O."""

    kind = "ValidationError"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ItemNotFound(MessbookError):
    kind = "ItemNotFound"
    status_code = 400

    def __init__(self, item_name: str):
        self.item_name = item_name
        super().__init__(f'Stock item "{item_name}" not found')


class InsufficientStock(MessbookError):
    kind = "InsufficientStock"
    status_code = 400

    def __init__(self, item_name: str, requested: float, available: float):
        self.item_name = item_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough {item_name} in stock: requested {requested}, available {available}"
        )


class RecordNotFound(MessbookError):
    kind = "RecordNotFound"
    status_code = 404

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f'Record "{record_id}" not found in {collection}')


class StorageIOError(MessbookError):
    """A collection file could not be read or written."""

    kind = "StorageIOError"
    status_code = 500

    def __init__(self, collection: str, detail: str):
        self.collection = collection
        self.detail = detail
        super().__init__(f"Failed to access collection {collection}")


class PartialLedgerFailure(MessbookError):
    """
    Stock was already written but the event record could not be appended.

    Not rolled back: the operator reconciles ``stock_ids`` by hand (see
    ``messbook.scripts.check_stock``).
    """

    kind = "PartialLedgerFailure"
    status_code = 500

    def __init__(self, collection: str, stock_ids: List[str], detail: str):
        self.collection = collection
        self.stock_ids = stock_ids
        self.detail = detail
        super().__init__(
            f"Stock updated ({', '.join(stock_ids)}) but the {collection} entry was not saved: {detail}"
        )
