# wmsgrn/services/stock_card_query.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import NotFoundError, ValidationFailedError
from wmsgrn.models.enums import MovementType
from wmsgrn.models.item import Item
from wmsgrn.models.stock_card import StockCard
from wmsgrn.schemas.common import Pagination
from wmsgrn.schemas.stock_card import LedgerChainBreak, LedgerChainReportOut, StockCardListOut, StockCardOut
from wmsgrn.services.inbound_query import clamp_page


async def list_stock_cards(
    session: AsyncSession,
    *,
    item_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    search: str = "",
    page: int = 1,
    limit: Optional[int] = None,
) -> StockCardListOut:
    """
    库存卡明细（倒序）：按物料 / 变动类型 / 时间窗口过滤；search 命中 SKU / 品名 / 备注。
    """
    page, limit = clamp_page(page, limit)

    base = select(StockCard).join(Item, Item.id == StockCard.item_id)
    if item_id is not None:
        base = base.where(StockCard.item_id == int(item_id))
    if movement_type:
        try:
            mt = MovementType(movement_type.strip().upper())
        except ValueError:
            raise ValidationFailedError(f"unknown movement_type: {movement_type}") from None
        base = base.where(StockCard.movement_type == mt.value)
    if date_from is not None:
        base = base.where(StockCard.transaction_date >= date_from)
    if date_to is not None:
        base = base.where(StockCard.transaction_date <= date_to)
    if search:
        like = f"%{search.strip()}%"
        base = base.where(or_(Item.sku.ilike(like), Item.name.ilike(like), StockCard.notes.ilike(like)))

    total = int((await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one())
    stmt = (
        base.order_by(StockCard.transaction_date.desc(), StockCard.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return StockCardListOut(
        data=[StockCardOut.model_validate(x) for x in rows],
        pagination=Pagination.build(total=total, page=page, limit=limit),
    )


async def audit_ledger_chain(session: AsyncSession, *, item_id: int) -> LedgerChainReportOut:
    """
    台账链路核对（只读）：

    - 按 (transaction_date, id) 顺序，每条的 before 必须等于上一条的 after
    - items.current_stock 必须等于最后一条的 after（无台账时不做要求）
    """
    item = await session.get(Item, int(item_id))
    if item is None:
        raise NotFoundError(f"Item not found: id={item_id}", context={"item_id": int(item_id)})

    stmt = (
        select(StockCard)
        .where(StockCard.item_id == int(item_id))
        .order_by(StockCard.transaction_date.asc(), StockCard.id.asc())
    )
    cards = list((await session.execute(stmt)).scalars().all())

    breaks: List[LedgerChainBreak] = []
    prev: Optional[StockCard] = None
    for card in cards:
        if prev is not None and int(card.quantity_before) != int(prev.quantity_after):
            breaks.append(
                LedgerChainBreak(
                    stock_card_id=card.id,
                    previous_card_id=prev.id,
                    expected_before=int(prev.quantity_after),
                    actual_before=int(card.quantity_before),
                )
            )
        prev = card

    last_after = int(cards[-1].quantity_after) if cards else None
    current = int(item.current_stock or 0)
    return LedgerChainReportOut(
        item_id=item.id,
        entries=len(cards),
        current_stock=current,
        last_quantity_after=last_after,
        balance_matches=last_after is None or last_after == current,
        breaks=breaks,
    )
