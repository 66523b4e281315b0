"""
Statistics API
"""
from fastapi import APIRouter, Depends, Query, Request
from datetime import date
from typing import Optional
from messbook.api.sheets import ERROR_RESPONSES, error_response, get_facade
from messbook.core.exceptions import MessbookError
from messbook.schemas.statistics import MemberChargesResponse, MonthlyLedgerResponse, StockSummaryResponse
from messbook.services import reports
from messbook.services.facade import AccessFacade, OperationResult

router = APIRouter(prefix="/api/statistics", tags=["statistics"])


def _failed(request: Request, error: MessbookError):
    return error_response(request, OperationResult(ok=False, error=error))


@router.get("/member-charges", response_model=MemberChargesResponse, responses=ERROR_RESPONSES)
def get_member_charges(
    request: Request,
    year: Optional[int] = Query(None, ge=1900, le=9999, description="Year, defaults to this year"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Month 1-12, defaults to this month"),
    facade: AccessFacade = Depends(get_facade)
):
    """Per-member messing, bar and snack charges for a month"""
    today = date.today()
    request.state.action = "statistics"
    try:
        return reports.member_charges(facade, year or today.year, month or today.month)
    except MessbookError as e:
        return _failed(request, e)


@router.get("/monthly-ledger", response_model=MonthlyLedgerResponse, responses=ERROR_RESPONSES)
def get_monthly_ledger(
    request: Request,
    year: Optional[int] = Query(None, ge=1900, le=9999, description="Year, defaults to this year"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Month 1-12, defaults to this month"),
    facade: AccessFacade = Depends(get_facade)
):
    """Inward and consumption entries of a month, grouped by day"""
    today = date.today()
    request.state.action = "statistics"
    try:
        return reports.monthly_ledger(facade, year or today.year, month or today.month)
    except MessbookError as e:
        return _failed(request, e)


@router.get("/stock-summary", response_model=StockSummaryResponse, responses=ERROR_RESPONSES)
def get_stock_summary(
    request: Request,
    type: Optional[str] = Query(None, description="Exact match on the item's type tag"),
    item_type: Optional[str] = Query(None, description="Exact match on the item's itemType tag"),
    facade: AccessFacade = Depends(get_facade)
):
    """Stock valuation with minimum-level alerts"""
    request.state.action = "statistics"
    request.state.collection = "stockItems"
    try:
        return reports.stock_summary(facade, type_tag=type, item_type=item_type)
    except MessbookError as e:
        return _failed(request, e)
