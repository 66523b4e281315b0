"""
Operation log API
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from typing import List, Optional
from datetime import datetime, date, timedelta
from messbook.db.database import get_db
from messbook.models.operation_log import OperationLog
from pydantic import BaseModel, ConfigDict

router = APIRouter(prefix="/api/operation-logs", tags=["operation logs"])


class OperationLogResponse(BaseModel):
    """Operation log entry"""
    id: int
    action: str
    collection: Optional[str] = None
    record_id: Optional[str] = None
    method: str
    path: str
    ip_address: Optional[str] = None
    request_data: Optional[str] = None
    status_code: Optional[int] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    execution_time: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ErrorKindCount(BaseModel):
    """Failed calls grouped by kind and collection"""
    error_kind: str
    collection: Optional[str] = None
    count: int
    last_seen: datetime


def _day_bounds(query, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        query = query.filter(OperationLog.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        query = query.filter(OperationLog.created_at <= datetime.combine(end_date, datetime.max.time()))
    return query


def _get_or_404(db: Session, log_id: int) -> OperationLog:
    log = db.get(OperationLog, log_id)
    if log is None:
        raise HTTPException(status_code=404, detail="Operation log not found")
    return log


@router.get("", response_model=List[OperationLogResponse])
def get_operation_logs(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=1000, description="Records to return"),
    collection: Optional[str] = Query(None, description="Collection name"),
    action: Optional[str] = Query(None, description="list / add / update / remove / statistics"),
    error_kind: Optional[str] = Query(None, description="e.g. PartialLedgerFailure"),
    start_date: Optional[date] = Query(None, description="From date"),
    end_date: Optional[date] = Query(None, description="To date"),
    db: Session = Depends(get_db)
):
    """List operation logs, newest first"""
    query = db.query(OperationLog)

    # Exact matches; collection names and kinds are identifiers
    for column, value in (
        (OperationLog.collection, collection),
        (OperationLog.action, action),
        (OperationLog.error_kind, error_kind),
    ):
        if value:
            query = query.filter(column == value)

    query = _day_bounds(query, start_date, end_date)
    return query.order_by(desc(OperationLog.created_at), desc(OperationLog.id)).offset(skip).limit(limit).all()


@router.get("/errors", response_model=List[ErrorKindCount])
def get_error_summary(
    start_date: Optional[date] = Query(None, description="From date"),
    end_date: Optional[date] = Query(None, description="To date"),
    db: Session = Depends(get_db)
):
    """Count failed calls by error kind and collection"""
    query = db.query(
        OperationLog.error_kind,
        OperationLog.collection,
        func.count(OperationLog.id).label("count"),
        func.max(OperationLog.created_at).label("last_seen"),
    ).filter(OperationLog.error_kind.isnot(None))
    query = _day_bounds(query, start_date, end_date)

    rows = query.group_by(OperationLog.error_kind, OperationLog.collection).all()
    summary = [
        ErrorKindCount(error_kind=kind, collection=collection, count=count, last_seen=last_seen)
        for kind, collection, count, last_seen in rows
    ]
    summary.sort(key=lambda s: (-s.count, s.error_kind, s.collection or ""))
    return summary


@router.get("/{log_id}", response_model=OperationLogResponse)
def get_operation_log(log_id: int, db: Session = Depends(get_db)):
    """Get one operation log"""
    return _get_or_404(db, log_id)


@router.delete("/{log_id}")
def delete_operation_log(log_id: int, db: Session = Depends(get_db)):
    """Delete one operation log"""
    db.delete(_get_or_404(db, log_id))
    db.commit()
    return {"message": "Operation log deleted"}


@router.delete("")
def prune_operation_logs(
    days: int = Query(30, ge=1, le=365, description="Keep logs from the last N days"),
    db: Session = Depends(get_db)
):
    """Delete operation logs older than N days"""
    cutoff = datetime.now() - timedelta(days=days)
    deleted = db.query(OperationLog).filter(OperationLog.created_at < cutoff).delete()
    db.commit()
    return {"message": f"Deleted {deleted} operation logs", "deleted": deleted}
