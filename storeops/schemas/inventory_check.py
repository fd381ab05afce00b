"""Inventory check request and response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storeops.models.inventory_check import InventoryCheckStatus


class InventoryCheckCreate(BaseModel):
    """Inventory check creation schema."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    title: Optional[str] = Field(default=None, max_length=255)


class InventoryItemUpdate(BaseModel):
    """Count of a single product."""

    actual_quantity: Optional[int] = Field(..., ge=0)
    note: Optional[str] = Field(default=None, max_length=1000)
    reason: Optional[str] = Field(default=None, max_length=1000)
    version: Optional[int] = None


class InventoryDraftItem(BaseModel):
    """One entry of a full-draft save. Snapshot fields sent by clients are ignored."""

    product_id: int
    actual_quantity: Optional[int] = Field(default=None, ge=0)
    note: Optional[str] = Field(default=None, max_length=1000)
    reason: Optional[str] = Field(default=None, max_length=1000)


class InventoryDraftSave(BaseModel):
    """Full edited item list of a draft."""

    items: List[InventoryDraftItem]
    note: Optional[str] = None
    version: Optional[int] = None


class InventoryCheckDelete(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)


class InventoryCheckApprove(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manager_id: str = Field(alias="managerId", min_length=1)


class InventoryCheckReject(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manager_id: str = Field(alias="managerId", min_length=1)
    reason: str = Field(min_length=1, max_length=1000)


class InventoryItemResponse(BaseModel):
    """Inventory check item response schema."""

    product_id: int
    product_name: str
    system_quantity: int
    actual_quantity: Optional[int] = None
    difference: int
    checked: bool
    note: str = ""
    reason: str = ""

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: str
    name: str


class InventoryCheckResponse(BaseModel):
    """Inventory check response schema."""

    id: int
    code: str
    title: str
    note: str = ""
    status: InventoryCheckStatus
    created_by: str
    created_by_user: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    reject_reason: Optional[str] = None
    total_products: int
    checked_products: int
    matched: int
    over: int
    under: int
    version: int
    items: List[InventoryItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ProductDiscrepancyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    product_id: int
    product_name: str = Field(serialization_alias="name")
    count: int
    total_difference: int = Field(serialization_alias="totalDiff")


class MonthlyAccuracyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str
    checks: int
    accuracy: float


class InventoryStatsResponse(BaseModel):
    """Dashboard statistics."""

    model_config = ConfigDict(from_attributes=True)

    total_checks: int = Field(serialization_alias="totalChecks")
    draft_checks: int = Field(serialization_alias="draftChecks")
    submitted_checks: int = Field(serialization_alias="submittedChecks")
    approved_checks: int = Field(serialization_alias="approvedChecks")
    rejected_checks: int = Field(serialization_alias="rejectedChecks")
    avg_accuracy: float = Field(serialization_alias="avgAccuracy")
    top_diff_products: List[ProductDiscrepancyResponse] = Field(serialization_alias="topDiffProducts")
    monthly_trend: List[MonthlyAccuracyResponse] = Field(serialization_alias="monthlyTrend")


class StockMovementResponse(BaseModel):
    """Product transaction history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    ts: datetime
    qty_delta: int
    quantity_before: int
    quantity_after: int
    reason: str
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
