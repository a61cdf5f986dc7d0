# wmsgrn/services/inbound_create.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import NotFoundError, ValidationFailedError
from wmsgrn.models.enums import DiscrepancyType, InboundItemStatus, InboundStatus
from wmsgrn.models.inbound import Inbound, InboundItem
from wmsgrn.models.item import Item
from wmsgrn.models.vendor import Vendor
from wmsgrn.models.warehouse import Warehouse
from wmsgrn.schemas.inbound import InboundCreateIn, InboundOut
from wmsgrn.services.doc_numbers import next_grn_number
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.inbound_query import get_inbound

logger = logging.getLogger("wmsgrn.inbound")

UTC = timezone.utc


async def _require_vendor(session: AsyncSession, vendor_id: int) -> Vendor:
    v = await session.get(Vendor, int(vendor_id))
    if v is None:
        raise NotFoundError(f"Vendor not found: id={vendor_id}", context={"vendor_id": int(vendor_id)})
    return v


async def create_inbound(
    session: AsyncSession,
    *,
    payload: InboundCreateIn,
    now: Optional[datetime] = None,
) -> InboundOut:
    """
    PO 确认后生成收货单（只写单据，不写库存）：

    - expected = PO 行数量；received / accepted / rejected = 0
    - 头状态 PENDING_VERIFICATION；行状态 OPEN_ISSUE（待清点）
    """
    if not payload.items:
        raise ValidationFailedError("inbound requires at least one line")

    seen: Set[int] = set()
    for idx, ln in enumerate(payload.items):
        if int(ln.quantity) <= 0:
            raise ValidationFailedError(
                f"items[{idx}].quantity must be > 0",
                context={"item_id": int(ln.item_id), "quantity": int(ln.quantity)},
            )
        if int(ln.item_id) in seen:
            raise ValidationFailedError(f"duplicate item_id in lines: {ln.item_id}")
        seen.add(int(ln.item_id))

    await _require_vendor(session, payload.vendor_id)

    if payload.warehouse_id is not None and await session.get(Warehouse, int(payload.warehouse_id)) is None:
        raise NotFoundError(f"Warehouse not found: id={payload.warehouse_id}")

    found = set(
        (await session.execute(select(Item.id).where(Item.id.in_(seen)))).scalars().all()
    )
    missing = sorted(seen - found)
    if missing:
        raise NotFoundError(f"Item not found: ids={missing}", context={"item_ids": missing})

    ts = now or datetime.now(UTC)
    grn = await next_grn_number(session, when=ts)

    inbound = Inbound(
        grn_number=grn,
        purchase_request_id=int(payload.purchase_request_id),
        po_number=payload.po_number,
        vendor_id=int(payload.vendor_id),
        warehouse_id=payload.warehouse_id,
        receive_date=ts,
        status=InboundStatus.PENDING_VERIFICATION.value,
        created_by_id=payload.user_id,
        notes=payload.notes,
        items=[
            InboundItem(
                item_id=int(ln.item_id),
                expected_quantity=int(ln.quantity),
                received_quantity=0,
                accepted_quantity=0,
                rejected_quantity=0,
                quantity_added_to_stock=0,
                discrepancy_type=DiscrepancyType.NONE.value,
                status=InboundItemStatus.OPEN_ISSUE.value,
            )
            for ln in payload.items
        ],
    )
    session.add(inbound)
    await session.flush()

    stage_event(session, "INBOUND_CREATED", ref=grn, meta={"inbound_id": inbound.id})
    logger.info("inbound created: grn=%s pr=%s lines=%d", grn, payload.purchase_request_id, len(payload.items))

    loaded = await get_inbound(session, inbound_id=inbound.id)
    return InboundOut.model_validate(loaded)
