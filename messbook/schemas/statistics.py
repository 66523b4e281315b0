"""
Statistics response models
"""
from pydantic import BaseModel, Field
from typing import List, Optional


class ChargeLine(BaseModel):
    """One member's share of a consumed item"""
    itemName: str
    quantity: float = Field(..., description="Member's share of the quantity")
    cost: float = Field(..., description="Member's share of the captured cost")
    source: str = Field(..., description="messing / bar / snacks")
    date: Optional[str] = None


class MemberCharge(BaseModel):
    """Monthly charge of one member"""
    memberId: str
    name: Optional[str] = None
    messingCost: float = 0
    barCost: float = 0
    snacksCost: float = 0
    totalCharge: float = 0
    consumedItems: List[ChargeLine] = []


class ChargeTotals(BaseModel):
    messing: float = 0
    bar: float = 0
    snacks: float = 0
    grand: float = 0


class MemberChargesResponse(BaseModel):
    """Per-member charges for a month"""
    year: int
    month: int
    members: List[MemberCharge]
    totals: ChargeTotals


class StockSummaryItem(BaseModel):
    """Stock item with valuation and minimum-level alert"""
    id: str
    itemName: str
    currentQuantity: float
    unitOfMeasurement: Optional[str] = None
    lastUnitCost: float
    totalValue: float = Field(..., description="currentQuantity x lastUnitCost")
    itemType: Optional[str] = None
    type: Optional[str] = None
    minQuantity: Optional[float] = Field(None, description="From minStockLevels, if set")
    isLow: bool = False


class StockSummaryResponse(BaseModel):
    items: List[StockSummaryItem]
    totalValue: float
    lowStockCount: int


class LedgerLine(BaseModel):
    """One entry of the monthly ledger with the amount captured when it was recorded"""
    id: str
    date: str
    source: str = Field(..., description="inward / messing / bar / snacks")
    type: str
    description: str
    details: Optional[str] = None
    amount: float


class LedgerDay(BaseModel):
    date: str
    entries: List[LedgerLine]
    total: float


class LedgerTotals(BaseModel):
    inward: float = 0
    messing: float = 0
    bar: float = 0
    snacks: float = 0


class MonthlyLedgerResponse(BaseModel):
    """Inward and consumption entries of a month, grouped by day"""
    year: int
    month: int
    days: List[LedgerDay]
    totals: LedgerTotals
