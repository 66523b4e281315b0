"""
Request / response models of the collection API
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Union


class SheetCreate(BaseModel):
    """Add a record"""
    collection: str = Field(..., description="Collection name, e.g. barEntries")
    fields: Dict[str, Any] = Field(..., description="Record fields; id and timestamp are assigned")


class SheetUpdate(BaseModel):
    """Shallow-merge fields into a record"""
    collection: str = Field(..., description="Collection name")
    id: Union[str, int] = Field(..., description="Record id")
    fields: Dict[str, Any] = Field(..., description="Fields to overwrite; id is ignored")


class SheetListResponse(BaseModel):
    data: List[Dict[str, Any]]


class SheetCreateResponse(BaseModel):
    id: str
    data: Dict[str, Any]


class SheetUpdateResponse(BaseModel):
    ok: bool = True
    data: Dict[str, Any]


class SheetDeleteResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Human-readable message naming the offending item or field")
    kind: str = Field(..., description="ValidationError / ItemNotFound / InsufficientStock / ...")
