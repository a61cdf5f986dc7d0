# wmsgrn/schemas/stock_card.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_serializer

from wmsgrn.schemas.common import Pagination, to_utc


class StockCardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    warehouse_id: Optional[int] = None
    movement_type: str
    reference_type: str
    reference_id: int
    inbound_id: Optional[int] = None
    return_id: Optional[int] = None
    quantity_before: int
    quantity_change: int
    quantity_after: int
    transaction_date: datetime
    notes: Optional[str] = None

    @field_serializer("transaction_date")
    def _ser_txn(self, v: datetime) -> datetime:
        return to_utc(v)


class StockCardListOut(BaseModel):
    data: List[StockCardOut]
    pagination: Pagination


class LedgerChainBreak(BaseModel):
    stock_card_id: int
    previous_card_id: Optional[int] = None
    expected_before: int
    actual_before: int


class LedgerChainReportOut(BaseModel):
    item_id: int
    entries: int
    current_stock: int
    last_quantity_after: Optional[int] = None
    balance_matches: bool
    breaks: List[LedgerChainBreak] = []

    @property
    def ok(self) -> bool:
        return self.balance_matches and not self.breaks
