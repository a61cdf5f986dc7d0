# tests/_flow.py
from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.models.inbound import InboundItem
from wmsgrn.models.item import Item
from wmsgrn.models.stock_card import StockCard
from wmsgrn.schemas.inbound import InboundCreateIn, InboundCreateLineIn, InboundOut
from wmsgrn.schemas.inbound_verify import InboundVerifyIn, InboundVerifyLineIn
from wmsgrn.services.action_runner import ActionResult, run_action
from wmsgrn.services.inbound_create import create_inbound
from wmsgrn.services.inbound_verify import verify_inbound

USER_ID = 7


async def create_po_inbound(
    session: AsyncSession,
    *,
    vendor_id: int,
    lines: Sequence[Tuple[int, int]],
    warehouse_id: Optional[int] = None,
    purchase_request_id: int = 501,
) -> InboundOut:
    """PO 交接生成收货单并提交；lines = [(item_id, expected), ...]"""
    payload = InboundCreateIn(
        purchase_request_id=purchase_request_id,
        vendor_id=vendor_id,
        po_number=f"PO-{purchase_request_id}",
        warehouse_id=warehouse_id,
        user_id=USER_ID,
        items=[InboundCreateLineIn(item_id=i, quantity=q) for i, q in lines],
    )
    res = await run_action(session, "test.inbound.create", create_inbound, payload=payload)
    assert res.success, res.error
    return res.data


def count(item_id: int, received: int, accepted: int, rejected: int = 0, **kw: Any) -> InboundVerifyLineIn:
    return InboundVerifyLineIn(
        item_id=item_id,
        received_qty=received,
        accepted_qty=accepted,
        rejected_qty=rejected,
        **kw,
    )


async def verify(
    session: AsyncSession,
    inbound_id: int,
    lines: List[InboundVerifyLineIn],
    *,
    notes: Optional[str] = None,
) -> ActionResult:
    payload = InboundVerifyIn(user_id=USER_ID, verification_notes=notes, items=lines)
    return await run_action(session, "test.inbound.verify", verify_inbound, inbound_id=inbound_id, payload=payload)


async def reload_item(session: AsyncSession, item_id: int) -> Item:
    obj = await session.get(Item, item_id, populate_existing=True)
    assert obj is not None
    return obj


async def reload_line(session: AsyncSession, inbound_item_id: int) -> InboundItem:
    obj = await session.get(InboundItem, inbound_item_id, populate_existing=True)
    assert obj is not None
    return obj


async def cards_for(session: AsyncSession, item_id: int) -> List[StockCard]:
    stmt = (
        select(StockCard)
        .where(StockCard.item_id == item_id)
        .order_by(StockCard.transaction_date.asc(), StockCard.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


def line_id(inbound: InboundOut, item_id: int) -> int:
    for ln in inbound.items:
        if ln.item_id == item_id:
            return ln.id
    raise AssertionError(f"item {item_id} not on inbound {inbound.grn_number}")
