# wmsgrn/schemas/inbound_resolution.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_serializer

from wmsgrn.models.enums import DiscrepancyAction
from wmsgrn.schemas.common import Pagination, to_utc
from wmsgrn.schemas.inbound import InboundItemOut


class DiscrepancyResolveIn(BaseModel):
    user_id: int
    action: DiscrepancyAction
    notes: Optional[str] = None


class DiscrepancyResolveOut(BaseModel):
    inbound_item: InboundItemOut
    inbound_status: str
    action: str
    stock_card_id: Optional[int] = None
    return_id: Optional[int] = None
    return_code: Optional[str] = None
    child_inbound_id: Optional[int] = None
    child_grn_number: Optional[str] = None


class InboundIssueOut(BaseModel):
    """
    差异待办队列的一行（OPEN_ISSUE）
    """

    id: int  # inbound_item_id
    inbound_id: int
    date: datetime
    grn_number: str
    vendor_name: str
    item_id: int
    item_name: str
    sku: Optional[str] = None
    type: str
    qty_involved: int
    status: str  # PENDING / RESOLVED
    resolved_action: Optional[str] = None

    expected_quantity: int
    received_quantity: int
    accepted_quantity: int
    rejected_quantity: int

    @field_serializer("date")
    def _ser_date(self, v: datetime) -> datetime:
        return to_utc(v)


class InboundIssueListOut(BaseModel):
    data: List[InboundIssueOut]
    pagination: Pagination
