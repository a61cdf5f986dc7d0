# wmsgrn/schemas/inbound.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from wmsgrn.schemas.common import Pagination, to_utc


class InboundItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    inbound_id: int
    item_id: int

    expected_quantity: int
    received_quantity: int
    accepted_quantity: int
    rejected_quantity: int
    quantity_added_to_stock: int

    discrepancy_type: str
    discrepancy_reason: Optional[str] = None
    discrepancy_action: Optional[str] = None

    status: str
    notes: Optional[str] = None


class InboundOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    grn_number: str
    purchase_request_id: int
    po_number: Optional[str] = None
    vendor_id: int
    warehouse_id: Optional[int] = None

    receive_date: datetime
    status: str
    parent_inbound_id: Optional[int] = None

    created_by_id: Optional[int] = None
    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    verification_notes: Optional[str] = None
    proof_document_url: Optional[str] = None
    notes: Optional[str] = None

    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    payment_proof_url: Optional[str] = None

    items: List[InboundItemOut] = []

    @field_serializer("receive_date")
    def _ser_receive_date(self, v: datetime) -> datetime:
        return to_utc(v)

    @field_serializer("verified_at", "payment_date")
    def _ser_opt_dt(self, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc(v) if v is not None else None

    @field_serializer("payment_amount")
    def _ser_payment_amount(self, v: Optional[Decimal]) -> Optional[str]:
        return str(v) if v is not None else None


class InboundListOut(BaseModel):
    data: List[InboundOut]
    pagination: Pagination


class InboundCreateLineIn(BaseModel):
    item_id: int
    quantity: int


class InboundCreateIn(BaseModel):
    """
    采购侧交接：PO 确认后生成收货单头（expected 来自 PO 行，received=0）
    """

    purchase_request_id: int
    vendor_id: int
    po_number: Optional[str] = None
    warehouse_id: Optional[int] = None
    user_id: Optional[int] = None
    notes: Optional[str] = None
    items: List[InboundCreateLineIn] = Field(default_factory=list)


class InboundPaymentIn(BaseModel):
    user_id: int
    payment_amount: Decimal
    payment_date: datetime
    payment_proof_url: Optional[str] = None


class InboundPaymentApproveIn(BaseModel):
    user_id: int
