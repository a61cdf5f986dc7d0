# wmsgrn/services/vendor_return_service.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from wmsgrn.api.errors import InvalidStateError, NotFoundError, ValidationFailedError
from wmsgrn.models.enums import MovementType, ReferenceType, ReturnReason, ReturnStatus
from wmsgrn.models.item import Item
from wmsgrn.models.vendor import Vendor
from wmsgrn.models.vendor_return import VendorReturn, VendorReturnItem
from wmsgrn.schemas.common import Pagination
from wmsgrn.schemas.vendor_return import (
    ReturnCreateIn,
    ReturnDecisionIn,
    VendorReturnListOut,
    VendorReturnOut,
)
from wmsgrn.services.doc_numbers import next_return_code
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.inbound_query import clamp_page, split_statuses
from wmsgrn.services.stock_ledger_poster import post_stock_movement

logger = logging.getLogger("wmsgrn.returns")

UTC = timezone.utc

_TERMINAL = {ReturnStatus.COMPLETED.value, ReturnStatus.REJECTED.value}


async def _load_return(session: AsyncSession, return_id: int, *, for_update: bool = False) -> VendorReturn:
    stmt = (
        select(VendorReturn)
        .options(selectinload(VendorReturn.items))
        .where(VendorReturn.id == int(return_id))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    obj = (await session.execute(stmt)).scalars().first()
    if obj is None:
        raise NotFoundError(f"Return not found: id={return_id}", context={"return_id": int(return_id)})
    return obj


async def create_return_document(
    session: AsyncSession,
    *,
    purchase_request_id: int,
    vendor_id: int,
    item_id: int,
    quantity: int,
    quantity_in_stock: int,
    reason: ReturnReason,
    inbound_id: Optional[int] = None,
    inbound_item_id: Optional[int] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> VendorReturn:
    """
    生成单行退货单（DRAFT，单价 0，价格对账不在此处）。

    差异处理（RETURN_TO_VENDOR / REPLACE_ITEM / REFUND）调用；只 flush。
    """
    if int(quantity) <= 0:
        raise ValidationFailedError("return quantity must be > 0", context={"quantity": int(quantity)})
    if not 0 <= int(quantity_in_stock) <= int(quantity):
        raise ValidationFailedError(
            "quantity_in_stock must be within [0, quantity]",
            context={"quantity": int(quantity), "quantity_in_stock": int(quantity_in_stock)},
        )

    ts = now or datetime.now(UTC)
    code = await next_return_code(session, when=ts)

    ret = VendorReturn(
        return_code=code,
        purchase_request_id=int(purchase_request_id),
        inbound_id=inbound_id,
        inbound_item_id=inbound_item_id,
        vendor_id=int(vendor_id),
        return_date=ts,
        reason=ReturnReason(reason).value,
        status=ReturnStatus.DRAFT.value,
        notes=notes,
        created_by_id=user_id,
        total_amount=Decimal("0"),
        items=[
            VendorReturnItem(
                item_id=int(item_id),
                quantity=int(quantity),
                quantity_in_stock=int(quantity_in_stock),
                unit_price=Decimal("0"),
                total_price=Decimal("0"),
                reason=notes,
            )
        ],
    )
    session.add(ret)
    await session.flush()

    stage_event(session, "RETURN_CREATED", ref=code, meta={"return_id": ret.id, "inbound_id": inbound_id})
    logger.info("return created: code=%s item=%s qty=%s in_stock=%s", code, item_id, quantity, quantity_in_stock)
    return ret


async def create_return(session: AsyncSession, *, payload: ReturnCreateIn) -> VendorReturnOut:
    """手工退货：退的是已入库的货，quantity_in_stock = quantity。"""
    if not payload.items:
        raise ValidationFailedError("return requires at least one line")
    for idx, ln in enumerate(payload.items):
        if int(ln.quantity) <= 0:
            raise ValidationFailedError(f"items[{idx}].quantity must be > 0")
        if ln.unit_price < 0:
            raise ValidationFailedError(f"items[{idx}].unit_price must be >= 0")

    if await session.get(Vendor, int(payload.vendor_id)) is None:
        raise NotFoundError(f"Vendor not found: id={payload.vendor_id}")

    ids: Set[int] = {int(x.item_id) for x in payload.items}
    found = set((await session.execute(select(Item.id).where(Item.id.in_(ids)))).scalars().all())
    missing = sorted(ids - found)
    if missing:
        raise NotFoundError(f"Item not found: ids={missing}", context={"item_ids": missing})

    ts = datetime.now(UTC)
    code = await next_return_code(session, when=ts)

    lines = [
        VendorReturnItem(
            item_id=int(ln.item_id),
            quantity=int(ln.quantity),
            quantity_in_stock=int(ln.quantity),
            unit_price=ln.unit_price,
            total_price=ln.unit_price * int(ln.quantity),
            reason=ln.reason,
        )
        for ln in payload.items
    ]
    ret = VendorReturn(
        return_code=code,
        purchase_request_id=int(payload.purchase_request_id),
        inbound_id=payload.inbound_id,
        vendor_id=int(payload.vendor_id),
        return_date=ts,
        reason=payload.reason.value,
        status=ReturnStatus.DRAFT.value,
        notes=payload.notes,
        created_by_id=int(payload.user_id),
        total_amount=sum((x.total_price for x in lines), Decimal("0")),
        items=lines,
    )
    session.add(ret)
    await session.flush()

    stage_event(session, "RETURN_CREATED", ref=code, meta={"return_id": ret.id})
    logger.info("return created (manual): code=%s lines=%d", code, len(lines))
    return VendorReturnOut.model_validate(ret)


async def _transition(
    session: AsyncSession,
    *,
    return_id: int,
    allowed: Iterable[str],
    target: ReturnStatus,
) -> VendorReturn:
    ret = await _load_return(session, return_id, for_update=True)
    allowed = set(allowed)
    if ret.status not in allowed:
        raise InvalidStateError(
            f"return {ret.return_code} is {ret.status}, cannot move to {target.value}",
            context={"return_id": ret.id, "status": ret.status, "target": target.value},
        )
    prev = ret.status
    ret.status = target.value
    stage_event(
        session,
        "RETURN_STATUS_CHANGED",
        ref=ret.return_code,
        meta={"return_id": ret.id, "from": prev, "to": target.value},
    )
    logger.info("return %s: %s -> %s", ret.return_code, prev, target.value)
    return ret


async def submit_return(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={ReturnStatus.DRAFT.value},
        target=ReturnStatus.PENDING_APPROVAL,
    )
    if payload.notes:
        ret.notes = payload.notes
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def approve_return(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={ReturnStatus.PENDING_APPROVAL.value},
        target=ReturnStatus.APPROVED,
    )
    ret.approved_by_id = int(payload.user_id)
    ret.approved_at = datetime.now(UTC)
    ret.approval_notes = payload.notes
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def reject_return(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    if not (payload.notes or "").strip():
        raise ValidationFailedError("rejection requires notes")
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={ReturnStatus.PENDING_APPROVAL.value},
        target=ReturnStatus.REJECTED,
    )
    ret.approved_by_id = int(payload.user_id)
    ret.approved_at = datetime.now(UTC)
    ret.approval_notes = payload.notes
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def mark_return_sent(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={ReturnStatus.APPROVED.value},
        target=ReturnStatus.SENT_TO_VENDOR,
    )
    ret.sent_to_vendor_at = datetime.now(UTC)
    if payload.notes:
        ret.notes = payload.notes
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def complete_return(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    """
    SENT_TO_VENDOR → COMPLETED

    每行已在库的件数（quantity_in_stock）出库：RETURN_OUT，负库存保护生效。
    """
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={ReturnStatus.SENT_TO_VENDOR.value},
        target=ReturnStatus.COMPLETED,
    )
    for ln in ret.items:
        qty = int(ln.quantity_in_stock or 0)
        if qty <= 0:
            continue
        await post_stock_movement(
            session,
            item_id=int(ln.item_id),
            quantity_change=-qty,
            movement_type=MovementType.RETURN_OUT,
            reference_type=ReferenceType.RETURN,
            reference_id=ret.id,
            return_id=ret.id,
            inbound_id=ret.inbound_id,
            notes=f"Return {ret.return_code}: shipped back {qty}",
            user_id=int(payload.user_id),
        )
    ret.completed_at = datetime.now(UTC)
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def keep_return_items(session: AsyncSession, *, return_id: int, payload: ReturnDecisionIn) -> VendorReturnOut:
    """
    放弃退货、货物留库：任意非终态 → COMPLETED

    从未入库的件数（quantity - quantity_in_stock）补入库存：ADJUSTMENT_IN。
    """
    ret = await _transition(
        session,
        return_id=return_id,
        allowed={s.value for s in ReturnStatus if s.value not in _TERMINAL},
        target=ReturnStatus.COMPLETED,
    )
    for ln in ret.items:
        qty = int(ln.quantity) - int(ln.quantity_in_stock or 0)
        if qty <= 0:
            continue
        await post_stock_movement(
            session,
            item_id=int(ln.item_id),
            quantity_change=qty,
            movement_type=MovementType.ADJUSTMENT_IN,
            reference_type=ReferenceType.RETURN_RESOLUTION,
            reference_id=ret.id,
            return_id=ret.id,
            inbound_id=ret.inbound_id,
            notes=f"Return {ret.return_code}: items kept {qty}",
            user_id=int(payload.user_id),
        )
    ret.completed_at = datetime.now(UTC)
    if payload.notes:
        ret.notes = f"{ret.notes}\nKept: {payload.notes}" if ret.notes else f"Kept: {payload.notes}"
    await session.flush()
    return VendorReturnOut.model_validate(ret)


async def get_return(session: AsyncSession, *, return_id: int) -> VendorReturnOut:
    return VendorReturnOut.model_validate(await _load_return(session, return_id))


async def list_returns(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    status: str = "",
) -> VendorReturnListOut:
    page, limit = clamp_page(page, limit)

    base = select(VendorReturn).join(Vendor, Vendor.id == VendorReturn.vendor_id)
    if search:
        like = f"%{search.strip()}%"
        base = base.where(or_(VendorReturn.return_code.ilike(like), Vendor.name.ilike(like)))
    statuses = split_statuses(status)
    if statuses:
        base = base.where(VendorReturn.status.in_(statuses))

    total = int((await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one())
    stmt = (
        base.options(selectinload(VendorReturn.items))
        .order_by(VendorReturn.return_date.desc(), VendorReturn.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return VendorReturnListOut(
        data=[VendorReturnOut.model_validate(x) for x in rows],
        pagination=Pagination.build(total=total, page=page, limit=limit),
    )
