"""
Operation log middleware
Records every store API call in the operation_logs table
"""
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.orm import Session
from messbook.core.logging_config import get_logger
from messbook.db.database import SessionLocal
from messbook.models.operation_log import OperationLog

logger = get_logger(__name__)


class OperationLogMiddleware(BaseHTTPMiddleware):
    """Operation log middleware"""

    # Paths that are never logged
    EXCLUDED_PATHS = [
        "/",
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]

    # Querying the log itself is not logged
    EXCLUDED_PREFIXES = [
        "/api/operation-logs",
    ]

    ACTION_MAP = {
        "GET": "list",
        "POST": "add",
        "PUT": "update",
        "DELETE": "remove",
    }

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        if request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        if path in self.EXCLUDED_PATHS or any(path.startswith(p) for p in self.EXCLUDED_PREFIXES):
            return await call_next(request)

        method = request.method
        ip_address = request.client.host if request.client else None

        # Endpoints report what they did through request.state
        state = request.state

        request_data = None
        if method in ["POST", "PUT", "PATCH"]:
            body = await request.body()
            if body:
                request_data = body.decode("utf-8", errors="replace")[:2000]

        response = await call_next(request)

        execution_time = int((time.time() - start_time) * 1000)
        status_code = response.status_code

        error_kind = getattr(state, "error_kind", None)
        error_message = getattr(state, "error_message", None)
        if status_code >= 400 and error_message is None:
            error_message = f"HTTP {status_code}"

        action = getattr(state, "action", None) or self.ACTION_MAP.get(method, method)
        collection = getattr(state, "collection", None) or request.query_params.get("collection")
        record_id = getattr(state, "record_id", None) or request.query_params.get("id")

        db: Session = SessionLocal()
        try:
            db.add(OperationLog(
                action=action,
                collection=collection,
                record_id=record_id,
                method=method,
                path=path,
                ip_address=ip_address,
                request_data=request_data,
                status_code=status_code,
                error_kind=error_kind,
                error_message=error_message,
                execution_time=execution_time,
            ))
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to write operation log for %s %s", method, path)
        finally:
            db.close()

        return response
