# wmsgrn/services/stock_ledger_poster.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationFailedError
from wmsgrn.metrics import LEDGER_POSTINGS
from wmsgrn.models.enums import MovementType, ReferenceType
from wmsgrn.models.item import Item
from wmsgrn.models.stock_card import StockCard
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.ledger_writer import write_stock_card

logger = logging.getLogger("wmsgrn.ledger")

UTC = timezone.utc


def _as_aware(dt: datetime) -> datetime:
    # sqlite 读回的是 naive datetime，统一按 UTC 处理
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def lock_item_stmt(item_id: int) -> Select:
    """同一 item 的过账串行化：行锁 items（FOR UPDATE），并覆盖 identity map 里的旧余额。"""
    return (
        select(Item)
        .where(Item.id == int(item_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def _lock_item(session: AsyncSession, item_id: int) -> Item:
    item = (await session.execute(lock_item_stmt(item_id))).scalars().first()
    if item is None:
        raise NotFoundError(f"Item not found: id={item_id}", context={"item_id": int(item_id)})
    return item


async def _last_card(session: AsyncSession, item_id: int) -> Optional[StockCard]:
    stmt = (
        select(StockCard)
        .where(StockCard.item_id == int(item_id))
        .order_by(StockCard.transaction_date.desc(), StockCard.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def post_stock_movement(
    session: AsyncSession,
    *,
    item_id: int,
    quantity_change: int,
    movement_type: Union[str, MovementType],
    reference_type: Union[str, ReferenceType],
    reference_id: int,
    warehouse_id: Optional[int] = None,
    inbound_id: Optional[int] = None,
    return_id: Optional[int] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    库存唯一写入口：追加一条库存卡 + 推进 items.current_stock。

    - 加锁读取 items 行（FOR UPDATE），同一 item 的并发落账串行化
    - before = current_stock；after = before + change
    - 减少方向（OUTBOUND / ADJUSTMENT_OUT / RETURN_OUT）不允许出现负库存
    - 只 flush，不控事务；与调用方的其他写入同生共死
    """
    try:
        mt = MovementType(str(movement_type))
    except ValueError:
        raise ValidationFailedError(f"unknown movement_type: {movement_type}") from None
    change = int(quantity_change)

    # ---------- 基础校验 ----------
    if change == 0:
        raise ValidationFailedError("quantity_change must not be zero")
    if mt.is_increase and change < 0:
        raise ValidationFailedError(f"{mt.value} requires a positive quantity_change, got {change}")
    if not mt.is_increase and change > 0:
        raise ValidationFailedError(f"{mt.value} requires a negative quantity_change, got {change}")

    # ---------- 加锁读取当前库存 ----------
    item = await _lock_item(session, item_id)
    before = int(item.current_stock or 0)

    last = await _last_card(session, item.id)
    if last is not None and int(last.quantity_after) != before:
        logger.error(
            "ledger drift: item=%s current_stock=%s last_card_after=%s card_id=%s",
            item.id,
            before,
            last.quantity_after,
            last.id,
        )
        raise InvalidStateError(
            f"stock ledger out of sync for item {item.id}",
            code="LEDGER_DRIFT",
            context={"item_id": item.id, "current_stock": before, "last_after": int(last.quantity_after)},
        )

    after = before + change
    if after < 0:
        raise InsufficientStockError(
            f"insufficient stock for item {item.id}: before={before}, change={change}",
            context={"item_id": item.id, "before": before, "change": change},
        )

    # 时间戳单调：保证按 (transaction_date, id) 排序即为写入顺序
    ts = datetime.now(UTC)
    if last is not None and _as_aware(last.transaction_date) > ts:
        ts = _as_aware(last.transaction_date)

    # ---------- 写台账 ----------
    card = await write_stock_card(
        session,
        item_id=item.id,
        warehouse_id=warehouse_id,
        movement_type=mt.value,
        reference_type=str(reference_type),
        reference_id=int(reference_id),
        quantity_before=before,
        quantity_change=change,
        transaction_date=ts,
        inbound_id=inbound_id,
        return_id=return_id,
        notes=notes,
        created_by_id=user_id,
    )

    # ---------- 更新余额 ----------
    item.current_stock = after
    await session.flush()

    LEDGER_POSTINGS.labels(movement_type=mt.value).inc()
    stage_event(
        session,
        "STOCK_POSTED",
        ref=f"{reference_type}:{reference_id}",
        meta={"item_id": item.id, "movement_type": mt.value, "change": change, "after": after},
    )
    logger.debug("stock posted: item=%s %s %+d -> %s", item.id, mt.value, change, after)

    return {
        "stock_card_id": card.id,
        "item_id": item.id,
        "before": before,
        "change": change,
        "after": after,
        "movement_type": mt.value,
        "reference_type": str(reference_type),
        "reference_id": int(reference_id),
        "transaction_date": ts.isoformat(),
    }
