"""
Operation log model
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from sqlalchemy.sql import func
from messbook.db.database import Base


class OperationLog(Base):
    """One API call against the store"""
    __tablename__ = "operation_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(100), nullable=False, comment="list / add / update / remove / statistics")
    collection = Column(String(100), comment="Collection the call touched, if any")
    record_id = Column(String(100), comment="Record id for update / remove / created record")
    method = Column(String(10), nullable=False, comment="HTTP method")
    path = Column(String(500), nullable=False, comment="Request path")
    ip_address = Column(String(50), comment="Client IP")
    request_data = Column(Text, comment="Request body excerpt")
    status_code = Column(Integer, comment="HTTP status code")
    error_kind = Column(String(50), comment="Error kind, e.g. InsufficientStock")
    error_message = Column(Text, comment="Error message")
    execution_time = Column(Integer, comment="Execution time in ms")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, comment="Created at")

    __table_args__ = (
        Index("idx_operation_logs_action", "action"),
        Index("idx_operation_logs_collection", "collection"),
        Index("idx_operation_logs_error_kind", "error_kind"),
        Index("idx_operation_logs_created_at", "created_at"),
    )
