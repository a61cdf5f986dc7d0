# wmsgrn/api/routers/stock_cards.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.db.session import get_session
from wmsgrn.schemas.stock_card import LedgerChainReportOut, StockCardListOut
from wmsgrn.services.stock_card_query import audit_ledger_chain, list_stock_cards

router = APIRouter(prefix="/stock-cards", tags=["stock-cards"])


@router.get("/", response_model=StockCardListOut)
async def list_stock_cards_endpoint(
    session: AsyncSession = Depends(get_session),
    item_id: Optional[int] = Query(None),
    movement_type: Optional[str] = Query(None, description="INBOUND / OUTBOUND / ADJUSTMENT_IN / ..."),
    date_from: Optional[datetime] = Query(None, description="transaction_date >= date_from"),
    date_to: Optional[datetime] = Query(None, description="transaction_date <= date_to"),
    search: str = Query(""),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
) -> StockCardListOut:
    return await list_stock_cards(
        session,
        item_id=item_id,
        movement_type=movement_type,
        date_from=date_from,
        date_to=date_to,
        search=search,
        page=page,
        limit=limit,
    )


@router.get("/items/{item_id}/chain", response_model=LedgerChainReportOut)
async def audit_chain_endpoint(
    item_id: int,
    session: AsyncSession = Depends(get_session),
) -> LedgerChainReportOut:
    """台账链路核对：before/after 断链 + 余额一致性（只读）。"""
    return await audit_ledger_chain(session, item_id=item_id)
