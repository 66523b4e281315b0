"""
Database models
"""
from messbook.models.operation_log import OperationLog

__all__ = [
    "OperationLog",
]
