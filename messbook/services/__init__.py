"""
Ledger and access services
"""
from messbook.services.facade import AccessFacade, OperationResult, RecordFilter
from messbook.services.ledger import LEDGER_COLLECTIONS, STOCK_COLLECTION, LedgerCoordinator

__all__ = [
    "AccessFacade",
    "OperationResult",
    "RecordFilter",
    "LEDGER_COLLECTIONS",
    "STOCK_COLLECTION",
    "LedgerCoordinator",
]
