# wmsgrn/services/inbound_resolution.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import InvalidStateError, ValidationFailedError
from wmsgrn.metrics import DISCREPANCY_RESOLVED
from wmsgrn.models.enums import (
    RETURN_ACTIONS,
    DiscrepancyAction,
    DiscrepancyType,
    InboundItemStatus,
    InboundStatus,
    MovementType,
    ReferenceType,
    ReturnReason,
)
from wmsgrn.models.inbound import Inbound, InboundItem, NoIssue, Resolved
from wmsgrn.schemas.inbound import InboundItemOut
from wmsgrn.schemas.inbound_resolution import DiscrepancyResolveIn, DiscrepancyResolveOut
from wmsgrn.services.doc_numbers import replacement_grn_number
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.inbound_query import count_children, get_inbound, get_inbound_item
from wmsgrn.services.inbound_verify import resolve_warehouse_id
from wmsgrn.services.stock_ledger_poster import post_stock_movement
from wmsgrn.services.vendor_return_service import create_return_document

logger = logging.getLogger("wmsgrn.inbound")

UTC = timezone.utc

# 可在处理完全部差异行后收尾为 COMPLETED 的头状态
_COMPLETABLE = {InboundStatus.PARTIAL.value, InboundStatus.REJECTED.value}


def return_quantity(line: InboundItem) -> int:
    """退货数量 = max(拒收, 超收)，不为负。"""
    excess = int(line.received_quantity) - int(line.expected_quantity)
    return max(int(line.rejected_quantity), excess, 0)


def return_reason_for(action: DiscrepancyAction) -> ReturnReason:
    if action is DiscrepancyAction.REPLACE_ITEM:
        return ReturnReason.WRONG_ITEM
    return ReturnReason.OTHER


def _append_note(line: InboundItem, notes: Optional[str]) -> None:
    if not notes:
        return
    entry = f"Resolution: {notes}"
    line.notes = f"{line.notes}\n{entry}" if line.notes else entry


async def _create_replacement_inbound(
    session: AsyncSession,
    *,
    parent: Inbound,
    line: InboundItem,
    quantity: int,
    user_id: int,
) -> Inbound:
    """
    补发子单：{parentGrn}-REP-{A,B,C…}

    字母按父单已有子单数量生成；父单已在本事务内 FOR UPDATE，
    同一父单的并发补发串行化，字母不会撞车（撞了也由唯一约束兜底）。
    """
    existing = await count_children(session, inbound_id=parent.id)
    grn = replacement_grn_number(parent.grn_number, existing)

    child = Inbound(
        grn_number=grn,
        purchase_request_id=parent.purchase_request_id,
        po_number=parent.po_number,
        vendor_id=parent.vendor_id,
        warehouse_id=parent.warehouse_id,
        receive_date=datetime.now(UTC),
        status=InboundStatus.PENDING_VERIFICATION.value,
        parent_inbound_id=parent.id,
        created_by_id=int(user_id),
        notes=f"Replacement for {parent.grn_number} (line {line.id})",
        items=[
            InboundItem(
                item_id=int(line.item_id),
                expected_quantity=int(quantity),
                received_quantity=0,
                accepted_quantity=0,
                rejected_quantity=0,
                quantity_added_to_stock=0,
                discrepancy_type=DiscrepancyType.NONE.value,
                status=InboundItemStatus.OPEN_ISSUE.value,
            )
        ],
    )
    session.add(child)
    await session.flush()

    stage_event(
        session,
        "INBOUND_CREATED",
        ref=grn,
        meta={"inbound_id": child.id, "parent_inbound_id": parent.id},
    )
    logger.info("replacement inbound created: grn=%s parent=%s qty=%s", grn, parent.grn_number, quantity)
    return child


def _maybe_complete(inbound: Inbound) -> None:
    if inbound.status not in _COMPLETABLE:
        return
    if any(x.status == InboundItemStatus.OPEN_ISSUE.value for x in inbound.items):
        return
    logger.info("inbound completed: grn=%s (was %s)", inbound.grn_number, inbound.status)
    inbound.status = InboundStatus.COMPLETED.value


async def resolve_discrepancy(
    session: AsyncSession,
    *,
    inbound_item_id: int,
    payload: DiscrepancyResolveIn,
) -> DiscrepancyResolveOut:
    """
    差异处理（单行一次）：

    - KEEP_EXCESS：拒收件全部转为接受并入账（INBOUND，同一收货单）
    - RETURN_TO_VENDOR / REPLACE_ITEM / REFUND：生成一张退货单；
      REPLACE_ITEM 另生成补发子单（PENDING_VERIFICATION）
    - WAIT_REMAINING / CLOSE_SHORT：只记动作与备注；
      WAIT_REMAINING 的行仍是 OPEN_ISSUE（欠货未到），收货单不收尾

    全部分支同一事务；任何一步失败整体回滚，行状态保持 PENDING。
    """
    action = DiscrepancyAction(payload.action)
    if action is DiscrepancyAction.PENDING:
        raise ValidationFailedError("PENDING is not a resolution action")

    line = await get_inbound_item(session, inbound_item_id=inbound_item_id)
    # 先锁头再取行：同一收货单的处理串行化（补发字母 / 完结判定）
    inbound = await get_inbound(session, inbound_id=line.inbound_id, for_update=True)
    line = await get_inbound_item(session, inbound_item_id=inbound_item_id, for_update=True)

    state = line.resolution
    if isinstance(state, NoIssue):
        raise InvalidStateError(
            f"inbound item {line.id} has no discrepancy to resolve",
            context={"inbound_item_id": line.id},
        )
    if isinstance(state, Resolved):
        raise InvalidStateError(
            f"inbound item {line.id} already resolved with {state.action.value}",
            context={"inbound_item_id": line.id, "action": state.action.value},
        )

    user_id = int(payload.user_id)
    out: Dict[str, Any] = {}

    if action is DiscrepancyAction.KEEP_EXCESS:
        qty = int(line.rejected_quantity)
        if qty <= 0:
            raise InvalidStateError(
                f"inbound item {line.id} has no rejected units to keep",
                context={"inbound_item_id": line.id, "rejected_quantity": qty},
            )
        res = await post_stock_movement(
            session,
            item_id=int(line.item_id),
            quantity_change=qty,
            movement_type=MovementType.INBOUND,
            reference_type=ReferenceType.INBOUND,
            reference_id=inbound.id,
            warehouse_id=await resolve_warehouse_id(session, inbound),
            inbound_id=inbound.id,
            notes=f"Inbound {inbound.grn_number}: kept {qty} rejected unit(s)",
            user_id=user_id,
        )
        line.accepted_quantity = int(line.accepted_quantity) + qty
        line.rejected_quantity = 0
        line.quantity_added_to_stock = int(line.quantity_added_to_stock or 0) + qty
        out["stock_card_id"] = int(res["stock_card_id"])

    elif action in RETURN_ACTIONS:
        qty = return_quantity(line)
        if qty <= 0:
            raise InvalidStateError(
                f"inbound item {line.id} has nothing to return",
                context={"inbound_item_id": line.id},
            )
        rejected = int(line.rejected_quantity)
        if action is DiscrepancyAction.REPLACE_ITEM and rejected <= 0:
            raise InvalidStateError(
                f"inbound item {line.id} has no rejected units to replace",
                context={"inbound_item_id": line.id, "rejected_quantity": rejected},
            )
        # 先落行，再建单据
        line.discrepancy_action = action.value
        _append_note(line, payload.notes)
        await session.flush()

        ret = await create_return_document(
            session,
            purchase_request_id=inbound.purchase_request_id,
            vendor_id=inbound.vendor_id,
            inbound_id=inbound.id,
            inbound_item_id=line.id,
            item_id=int(line.item_id),
            quantity=qty,
            quantity_in_stock=max(0, qty - rejected),
            reason=return_reason_for(action),
            notes=payload.notes or f"{action.value} for {inbound.grn_number}",
            user_id=user_id,
        )
        out["return_id"] = ret.id
        out["return_code"] = ret.return_code

        if action is DiscrepancyAction.REPLACE_ITEM:
            child = await _create_replacement_inbound(
                session,
                parent=inbound,
                line=line,
                quantity=rejected,
                user_id=user_id,
            )
            out["child_inbound_id"] = child.id
            out["child_grn_number"] = child.grn_number

    if line.discrepancy_action != action.value:
        line.discrepancy_action = action.value
        _append_note(line, payload.notes)

    if action is DiscrepancyAction.CLOSE_SHORT:
        line.status = InboundItemStatus.CLOSED_SHORT.value
    elif action is not DiscrepancyAction.WAIT_REMAINING:
        line.status = InboundItemStatus.RESOLVED.value
    _maybe_complete(inbound)
    await session.flush()

    DISCREPANCY_RESOLVED.labels(action=action.value).inc()
    stage_event(
        session,
        "DISCREPANCY_RESOLVED",
        ref=inbound.grn_number,
        meta={"inbound_id": inbound.id, "inbound_item_id": line.id, "action": action.value, **out},
    )
    logger.info(
        "discrepancy resolved: grn=%s line=%s type=%s action=%s by=%s",
        inbound.grn_number,
        line.id,
        line.discrepancy_type,
        action.value,
        user_id,
    )

    return DiscrepancyResolveOut(
        inbound_item=InboundItemOut.model_validate(line),
        inbound_status=inbound.status,
        action=action.value,
        **out,
    )
