from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.models.stock_card import StockCard


async def write_stock_card(
    session: AsyncSession,
    *,
    item_id: int,
    warehouse_id: Optional[int],
    movement_type: str,
    reference_type: str,
    reference_id: int,
    quantity_before: int,
    quantity_change: int,
    transaction_date: datetime,
    inbound_id: Optional[int] = None,
    return_id: Optional[int] = None,
    notes: Optional[str] = None,
    created_by_id: Optional[int] = None,
) -> StockCard:
    """
    台账写入（只增不改）：

    - quantity_after 由本函数计算，调用方只给 before + change
    - 只 flush 不 commit，事务边界由上层 action 控制
    """
    card = StockCard(
        item_id=int(item_id),
        warehouse_id=warehouse_id,
        movement_type=str(movement_type),
        reference_type=str(reference_type),
        reference_id=int(reference_id),
        inbound_id=inbound_id,
        return_id=return_id,
        quantity_before=int(quantity_before),
        quantity_change=int(quantity_change),
        quantity_after=int(quantity_before) + int(quantity_change),
        transaction_date=transaction_date,
        notes=notes,
        created_by_id=created_by_id,
    )
    session.add(card)
    await session.flush()
    return card
