"""
Pydantic models for the fields of ledger-linked records

Unknown fields are kept and written to the record as-is.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Union

MemberId = Union[str, int]

# Extra fields are kept. Numbers must be finite: the codec has no encoding
# for infinities or NaN
LEDGER_MODEL_CONFIG = ConfigDict(extra="allow", allow_inf_nan=False)


class ConsumedItem(BaseModel):
    """One line of a messing entry"""
    itemName: str = Field(..., min_length=1, description="Stock item name")
    quantity: float = Field(..., gt=0, description="Quantity consumed")

    model_config = LEDGER_MODEL_CONFIG


class DailyMessingEntryCreate(BaseModel):
    """Meal served from stock"""
    date: Optional[str] = Field(None, description="Business date, YYYY-MM-DD")
    mealType: Optional[str] = Field(None, description="Breakfast / Lunch / Dinner")
    consumedItems: List[ConsumedItem] = Field(..., min_length=1)
    membersPresent: List[MemberId] = Field(default_factory=list)

    model_config = LEDGER_MODEL_CONFIG


class BarEntryCreate(BaseModel):
    """Liquor served at the bar"""
    date: Optional[str] = Field(None, description="Business date, YYYY-MM-DD")
    wineType: str = Field(..., min_length=1, description="Stock item name of the liquor")
    quantity: float = Field(..., gt=0)
    sharingMembers: List[MemberId] = Field(default_factory=list)

    model_config = LEDGER_MODEL_CONFIG


class SnackEntryCreate(BaseModel):
    """Snack served at the bar"""
    date: Optional[str] = Field(None, description="Business date, YYYY-MM-DD")
    itemName: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    sharingMembers: List[MemberId] = Field(default_factory=list)

    model_config = LEDGER_MODEL_CONFIG


class InwardLogCreate(BaseModel):
    """Stock received"""
    date: Optional[str] = Field(None, description="Business date, YYYY-MM-DD")
    itemName: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    unitCost: float = Field(..., ge=0)
    unitOfMeasurement: Optional[str] = None
    itemType: Optional[str] = None
    type: Optional[str] = Field(None, description="Opaque classification tag, e.g. Liquor Inward")

    model_config = LEDGER_MODEL_CONFIG


class StockItemCreate(BaseModel):
    """Stock item entered directly"""
    itemName: str = Field(..., min_length=1)
    currentQuantity: float = Field(0, ge=0)
    lastUnitCost: float = Field(0, ge=0)
    unitOfMeasurement: Optional[str] = None
    itemType: Optional[str] = None
    type: Optional[str] = None

    model_config = LEDGER_MODEL_CONFIG


class StockItemUpdate(BaseModel):
    """Direct edit of a stock item; totalCost is always recomputed"""
    itemName: Optional[str] = Field(None, min_length=1)
    currentQuantity: Optional[float] = Field(None, ge=0)
    lastUnitCost: Optional[float] = Field(None, ge=0)
    unitOfMeasurement: Optional[str] = None
    itemType: Optional[str] = None
    type: Optional[str] = None

    model_config = LEDGER_MODEL_CONFIG
