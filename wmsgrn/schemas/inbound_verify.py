# wmsgrn/schemas/inbound_verify.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from wmsgrn.models.enums import DiscrepancyType
from wmsgrn.schemas.inbound import InboundOut


class InboundVerifyLineIn(BaseModel):
    """
    单行清点结果（必须覆盖收货单全部行）：

    - accepted_qty + rejected_qty == received_qty
    - discrepancy_type 缺省时按数量比较推导
    """

    item_id: int
    received_qty: int
    accepted_qty: int
    rejected_qty: int = 0
    discrepancy_type: Optional[DiscrepancyType] = None
    discrepancy_reason: Optional[str] = None
    notes: Optional[str] = None


class InboundVerifyIn(BaseModel):
    user_id: int
    verification_notes: Optional[str] = None
    proof_document_url: Optional[str] = None
    items: List[InboundVerifyLineIn] = Field(default_factory=list)


class InboundLedgerRef(BaseModel):
    inbound_item_id: int
    item_id: int
    stock_card_id: int
    quantity_change: int
    quantity_after: int


class InboundVerifyOut(BaseModel):
    inbound: InboundOut
    ledger_written: int
    ledger_refs: List[InboundLedgerRef] = []
