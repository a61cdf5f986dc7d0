# wmsgrn/schemas/vendor_return.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from wmsgrn.models.enums import ReturnReason
from wmsgrn.schemas.common import Pagination, to_utc


class VendorReturnItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    quantity: int
    quantity_in_stock: int
    unit_price: Decimal
    total_price: Decimal
    reason: Optional[str] = None

    @field_serializer("unit_price", "total_price")
    def _ser_money(self, v: Decimal) -> str:
        return str(v)


class VendorReturnOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    return_code: str
    purchase_request_id: int
    inbound_id: Optional[int] = None
    inbound_item_id: Optional[int] = None
    vendor_id: int
    return_date: datetime
    reason: str
    status: str
    notes: Optional[str] = None

    created_by_id: Optional[int] = None
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    sent_to_vendor_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    total_amount: Decimal
    items: List[VendorReturnItemOut] = []

    @field_serializer("return_date")
    def _ser_return_date(self, v: datetime) -> datetime:
        return to_utc(v)

    @field_serializer("approved_at", "sent_to_vendor_at", "completed_at")
    def _ser_opt_dt(self, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None

    @field_serializer("total_amount")
    def _ser_total(self, v: Decimal) -> str:
        return str(v)


class VendorReturnListOut(BaseModel):
    data: List[VendorReturnOut]
    pagination: Pagination


class ReturnItemIn(BaseModel):
    item_id: int
    quantity: int
    unit_price: Decimal = Decimal("0")
    reason: Optional[str] = None


class ReturnCreateIn(BaseModel):
    """手工退货（退已入库的货）。"""

    user_id: int
    purchase_request_id: int
    vendor_id: int
    reason: ReturnReason
    inbound_id: Optional[int] = None
    notes: Optional[str] = None
    items: List[ReturnItemIn] = Field(default_factory=list)


class ReturnDecisionIn(BaseModel):
    user_id: int
    notes: Optional[str] = None
