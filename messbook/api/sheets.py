"""
Collection API
"""
import threading
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from typing import Optional
from messbook.core.config import settings
from messbook.schemas.sheet import (
    ErrorResponse, SheetCreate, SheetCreateResponse, SheetDeleteResponse,
    SheetListResponse, SheetUpdate, SheetUpdateResponse
)
from messbook.services.facade import AccessFacade, OperationResult, RecordFilter

router = APIRouter(prefix="/api/sheets", tags=["collections"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

# Query parameters that are not field filters
RESERVED_PARAMS = {"collection", "start_date", "end_date"}

_facade: Optional[AccessFacade] = None
_facade_lock = threading.Lock()


def get_facade() -> AccessFacade:
    """Process-wide facade; one lock manager must guard each data root"""
    global _facade
    with _facade_lock:
        if _facade is None:
            _facade = AccessFacade(settings.data_root)
        return _facade


def error_response(request: Request, result: OperationResult) -> JSONResponse:
    """Turn a failed result into a JSON error and tell the operation log about it"""
    request.state.error_kind = result.kind
    request.state.error_message = result.message
    return JSONResponse(status_code=result.error.status_code, content=result.error.to_dict())


@router.get("", response_model=SheetListResponse, responses=ERROR_RESPONSES)
def list_records(
    request: Request,
    collection: str = Query(..., description="Collection name"),
    start_date: Optional[str] = Query(None, description="Earliest date, YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Latest date, YYYY-MM-DD"),
    facade: AccessFacade = Depends(get_facade)
):
    """List records; any other query parameter is an equality filter on that field"""
    equals = {
        key: value for key, value in request.query_params.items()
        if key not in RESERVED_PARAMS
    }
    record_filter = None
    if equals or start_date or end_date:
        record_filter = RecordFilter(equals=equals, start_date=start_date, end_date=end_date)

    request.state.collection = collection
    result = facade.list(collection, record_filter)
    if not result.ok:
        return error_response(request, result)
    return {"data": result.data}


@router.post(
    "", response_model=SheetCreateResponse,
    status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES
)
def add_record(
    request: Request,
    payload: SheetCreate,
    facade: AccessFacade = Depends(get_facade)
):
    """Add a record; ledger collections also move stock"""
    request.state.collection = payload.collection
    result = facade.add(payload.collection, payload.fields)
    if not result.ok:
        return error_response(request, result)

    record = result.data
    request.state.record_id = str(record["id"])
    return {"id": str(record["id"]), "data": record}


@router.put("", response_model=SheetUpdateResponse, responses=ERROR_RESPONSES)
def update_record(
    request: Request,
    payload: SheetUpdate,
    facade: AccessFacade = Depends(get_facade)
):
    """Update a record by id"""
    request.state.collection = payload.collection
    request.state.record_id = str(payload.id)
    result = facade.update(payload.collection, str(payload.id), payload.fields)
    if not result.ok:
        return error_response(request, result)
    return {"ok": True, "data": result.data}


@router.delete("", response_model=SheetDeleteResponse, responses=ERROR_RESPONSES)
def delete_record(
    request: Request,
    collection: str = Query(..., description="Collection name"),
    id: str = Query(..., description="Record id"),
    facade: AccessFacade = Depends(get_facade)
):
    """Delete a record by id"""
    request.state.collection = collection
    request.state.record_id = id
    result = facade.remove(collection, id)
    if not result.ok:
        return error_response(request, result)
    return {"ok": True}
