# wmsgrn/services/inbound_verify.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import InvalidStateError, ValidationFailedError
from wmsgrn.api.problem import ProblemDetail
from wmsgrn.metrics import INBOUND_VERIFIED
from wmsgrn.models.enums import DiscrepancyAction, InboundItemStatus, InboundStatus, MovementType, ReferenceType
from wmsgrn.models.inbound import Inbound
from wmsgrn.models.warehouse import Warehouse
from wmsgrn.schemas.inbound import InboundOut
from wmsgrn.schemas.inbound_verify import InboundLedgerRef, InboundVerifyIn, InboundVerifyLineIn, InboundVerifyOut
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.inbound_classify import classify_line
from wmsgrn.services.inbound_query import get_inbound
from wmsgrn.services.stock_ledger_poster import post_stock_movement

logger = logging.getLogger("wmsgrn.inbound")

UTC = timezone.utc


def _validate_lines(inbound: Inbound, lines: List[InboundVerifyLineIn]) -> Dict[int, InboundVerifyLineIn]:
    """
    写库前的全量校验（任何一条不过 → 整单拒绝，不产生写入）：

    - 行必须一一覆盖收货单全部行（不多、不少、不重复）
    - 数量非负
    - accepted + rejected == received
    """
    details: List[ProblemDetail] = []
    known = {int(x.item_id) for x in inbound.items}
    by_item: Dict[int, InboundVerifyLineIn] = {}

    for idx, ln in enumerate(lines):
        path = f"items[{idx}]"
        iid = int(ln.item_id)
        if iid not in known:
            details.append({"type": "validation", "path": path, "item_id": iid, "reason": "item not on this inbound"})
            continue
        if iid in by_item:
            details.append({"type": "validation", "path": path, "item_id": iid, "reason": "duplicate line"})
            continue
        by_item[iid] = ln

        if min(int(ln.received_qty), int(ln.accepted_qty), int(ln.rejected_qty)) < 0:
            details.append({"type": "validation", "path": path, "item_id": iid, "reason": "negative quantity"})
            continue
        if int(ln.accepted_qty) + int(ln.rejected_qty) != int(ln.received_qty):
            details.append(
                {
                    "type": "validation",
                    "path": path,
                    "item_id": iid,
                    "reason": "accepted + rejected must equal received",
                    "received_qty": int(ln.received_qty),
                    "accepted_qty": int(ln.accepted_qty),
                    "rejected_qty": int(ln.rejected_qty),
                }
            )

    for iid in sorted(known - set(by_item)):
        details.append({"type": "validation", "item_id": iid, "reason": "missing count for inbound line"})

    if details:
        raise ValidationFailedError(
            f"inbound {inbound.grn_number} verification input rejected ({len(details)} problem(s))",
            context={"inbound_id": inbound.id, "details": details},
        )
    return by_item


async def resolve_warehouse_id(session: AsyncSession, inbound: Inbound) -> Optional[int]:
    if inbound.warehouse_id is not None:
        return int(inbound.warehouse_id)
    row = (
        await session.execute(select(Warehouse.id).where(Warehouse.is_default.is_(True)).limit(1))
    ).scalar_one_or_none()
    return int(row) if row is not None else None


def _header_status(inbound: Inbound) -> InboundStatus:
    lines = list(inbound.items)
    if all(x.status == InboundItemStatus.COMPLETED.value for x in lines):
        return InboundStatus.VERIFIED
    received = sum(int(x.received_quantity) for x in lines)
    accepted = sum(int(x.accepted_quantity) for x in lines)
    if received > 0 and accepted == 0:
        return InboundStatus.REJECTED
    return InboundStatus.PARTIAL


async def verify_inbound(
    session: AsyncSession,
    *,
    inbound_id: int,
    payload: InboundVerifyIn,
) -> InboundVerifyOut:
    """
    收货核验（一次性）：PENDING_VERIFICATION → VERIFIED / PARTIAL / REJECTED

    单事务：锁收货单 → 全量校验 → 逐行写清点结果 + 分类 → accepted 逐行落账（INBOUND）
    - rejected 永不入账
    - quantity_added_to_stock 作为防重复入账保护
    - 已核验过的单据再次调用 → InvalidState（补货走子单）
    """
    inbound = await get_inbound(session, inbound_id=inbound_id, for_update=True)

    if inbound.status != InboundStatus.PENDING_VERIFICATION.value:
        raise InvalidStateError(
            f"inbound {inbound.grn_number} is {inbound.status}, expected PENDING_VERIFICATION",
            context={"inbound_id": inbound.id, "status": inbound.status},
        )

    by_item = _validate_lines(inbound, payload.items)

    now = datetime.now(UTC)
    inbound.verified_by_id = int(payload.user_id)
    inbound.verified_at = now
    inbound.verification_notes = payload.verification_notes
    if payload.proof_document_url is not None:
        inbound.proof_document_url = payload.proof_document_url

    warehouse_id = await resolve_warehouse_id(session, inbound)
    ledger_refs: List[InboundLedgerRef] = []

    for line in inbound.items:
        inp = by_item[int(line.item_id)]
        cls = classify_line(
            expected=int(line.expected_quantity),
            received=int(inp.received_qty),
            rejected=int(inp.rejected_qty),
            supplied_type=inp.discrepancy_type,
            supplied_reason=inp.discrepancy_reason,
        )

        line.received_quantity = int(inp.received_qty)
        line.accepted_quantity = int(inp.accepted_qty)
        line.rejected_quantity = int(inp.rejected_qty)
        line.discrepancy_type = cls.discrepancy_type.value
        line.discrepancy_reason = cls.discrepancy_reason
        line.discrepancy_action = DiscrepancyAction.PENDING.value if cls.has_issue else None
        line.status = cls.line_status.value
        if inp.notes is not None:
            line.notes = inp.notes

        delta = int(line.accepted_quantity) - int(line.quantity_added_to_stock or 0)
        if delta > 0:
            res = await post_stock_movement(
                session,
                item_id=int(line.item_id),
                quantity_change=delta,
                movement_type=MovementType.INBOUND,
                reference_type=ReferenceType.INBOUND,
                reference_id=inbound.id,
                warehouse_id=warehouse_id,
                inbound_id=inbound.id,
                notes=f"Inbound {inbound.grn_number}: accepted {delta}",
                user_id=int(payload.user_id),
            )
            line.quantity_added_to_stock = int(line.quantity_added_to_stock or 0) + delta
            ledger_refs.append(
                InboundLedgerRef(
                    inbound_item_id=line.id,
                    item_id=int(line.item_id),
                    stock_card_id=int(res["stock_card_id"]),
                    quantity_change=delta,
                    quantity_after=int(res["after"]),
                )
            )

    status = _header_status(inbound)
    inbound.status = status.value
    await session.flush()

    INBOUND_VERIFIED.labels(status=status.value).inc()
    stage_event(
        session,
        "INBOUND_VERIFIED",
        ref=inbound.grn_number,
        meta={"inbound_id": inbound.id, "status": status.value, "ledger_written": len(ledger_refs)},
    )
    logger.info(
        "inbound verified: grn=%s status=%s ledger_written=%d by=%s",
        inbound.grn_number,
        status.value,
        len(ledger_refs),
        payload.user_id,
    )

    return InboundVerifyOut(
        inbound=InboundOut.model_validate(inbound),
        ledger_written=len(ledger_refs),
        ledger_refs=ledger_refs,
    )
