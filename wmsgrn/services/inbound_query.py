# wmsgrn/services/inbound_query.py
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from wmsgrn.api.errors import NotFoundError
from wmsgrn.core.config import get_settings
from wmsgrn.models.enums import DiscrepancyType, InboundItemStatus, InboundStatus
from wmsgrn.models.inbound import Inbound, InboundItem, Resolved
from wmsgrn.models.item import Item
from wmsgrn.models.vendor import Vendor
from wmsgrn.schemas.common import Pagination
from wmsgrn.schemas.inbound import InboundListOut, InboundOut
from wmsgrn.schemas.inbound_resolution import InboundIssueListOut, InboundIssueOut


def clamp_page(page: int, limit: Optional[int]) -> Tuple[int, int]:
    s = get_settings()
    page = max(int(page or 1), 1)
    limit = int(limit or s.DEFAULT_PAGE_LIMIT)
    limit = min(max(limit, 1), s.MAX_PAGE_LIMIT)
    return page, limit


def split_statuses(status: Optional[str]) -> List[str]:
    return [x.strip().upper() for x in (status or "").split(",") if x.strip()]


async def get_inbound(session: AsyncSession, *, inbound_id: int, for_update: bool = False) -> Inbound:
    stmt = (
        select(Inbound)
        .options(selectinload(Inbound.items), selectinload(Inbound.vendor))
        .where(Inbound.id == int(inbound_id))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    obj = (await session.execute(stmt)).scalars().first()
    if obj is None:
        raise NotFoundError(f"Inbound not found: id={inbound_id}", context={"inbound_id": int(inbound_id)})
    return obj


async def get_inbound_item(session: AsyncSession, *, inbound_item_id: int, for_update: bool = False) -> InboundItem:
    stmt = (
        select(InboundItem)
        .where(InboundItem.id == int(inbound_item_id))
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    obj = (await session.execute(stmt)).scalars().first()
    if obj is None:
        raise NotFoundError(
            f"InboundItem not found: id={inbound_item_id}",
            context={"inbound_item_id": int(inbound_item_id)},
        )
    return obj


async def list_inbounds(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    status: str = "",
) -> InboundListOut:
    page, limit = clamp_page(page, limit)

    base = select(Inbound).join(Vendor, Vendor.id == Inbound.vendor_id)
    if search:
        like = f"%{search.strip()}%"
        base = base.where(
            or_(
                Inbound.grn_number.ilike(like),
                Inbound.po_number.ilike(like),
                Vendor.name.ilike(like),
            )
        )
    statuses = split_statuses(status)
    if statuses:
        base = base.where(Inbound.status.in_(statuses))

    total = int(
        (await session.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    )
    stmt = (
        base.options(selectinload(Inbound.items))
        .order_by(Inbound.created_at.desc(), Inbound.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows: Sequence[Inbound] = (await session.execute(stmt)).scalars().all()
    return InboundListOut(
        data=[InboundOut.model_validate(x) for x in rows],
        pagination=Pagination.build(total=total, page=page, limit=limit),
    )


async def list_children(session: AsyncSession, *, inbound_id: int) -> List[Inbound]:
    """补发链：按 parent_inbound_id 查直接子单（按创建顺序）。"""
    await get_inbound(session, inbound_id=inbound_id)
    stmt = (
        select(Inbound)
        .options(selectinload(Inbound.items))
        .where(Inbound.parent_inbound_id == int(inbound_id))
        .order_by(Inbound.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def count_children(session: AsyncSession, *, inbound_id: int) -> int:
    stmt = select(func.count(Inbound.id)).where(Inbound.parent_inbound_id == int(inbound_id))
    return int((await session.execute(stmt)).scalar_one())


def qty_involved(line: InboundItem, dtype: str) -> int:
    if dtype == DiscrepancyType.SHORTAGE.value:
        q = line.expected_quantity - line.accepted_quantity
    elif dtype == DiscrepancyType.OVERAGE.value:
        q = line.received_quantity - line.expected_quantity
    else:
        q = line.rejected_quantity
    return max(0, int(q))


async def list_open_issues(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
) -> InboundIssueListOut:
    """
    差异待办队列：已核验收货单上 status=OPEN_ISSUE 的行。
    WAIT_REMAINING 的行仍在队列里，status=RESOLVED 并带 resolved_action。
    """
    page, limit = clamp_page(page, limit)

    base = (
        select(InboundItem, Inbound, Vendor, Item)
        .join(Inbound, Inbound.id == InboundItem.inbound_id)
        .join(Vendor, Vendor.id == Inbound.vendor_id)
        .join(Item, Item.id == InboundItem.item_id)
        .where(InboundItem.status == InboundItemStatus.OPEN_ISSUE.value)
        .where(Inbound.status != InboundStatus.PENDING_VERIFICATION.value)
    )
    if search:
        like = f"%{search.strip()}%"
        base = base.where(
            or_(
                Inbound.grn_number.ilike(like),
                Vendor.name.ilike(like),
                Item.name.ilike(like),
                Item.sku.ilike(like),
            )
        )

    total = int(
        (
            await session.execute(
                select(func.count()).select_from(base.with_only_columns(InboundItem.id).subquery())
            )
        ).scalar_one()
    )
    stmt = (
        base.order_by(Inbound.receive_date.desc(), InboundItem.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    out: List[InboundIssueOut] = []
    for line, inbound, vendor, item in (await session.execute(stmt)).all():
        state = line.resolution
        dtype = line.discrepancy_type
        out.append(
            InboundIssueOut(
                id=line.id,
                inbound_id=inbound.id,
                date=inbound.receive_date,
                grn_number=inbound.grn_number,
                vendor_name=vendor.name,
                item_id=item.id,
                item_name=item.name,
                sku=item.sku,
                type=dtype,
                qty_involved=qty_involved(line, dtype),
                status="RESOLVED" if isinstance(state, Resolved) else "PENDING",
                resolved_action=state.action.value if isinstance(state, Resolved) else None,
                expected_quantity=line.expected_quantity,
                received_quantity=line.received_quantity,
                accepted_quantity=line.accepted_quantity,
                rejected_quantity=line.rejected_quantity,
            )
        )

    return InboundIssueListOut(data=out, pagination=Pagination.build(total=total, page=page, limit=limit))
