# tests/services/test_inbound_resolution.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tests._flow import USER_ID, cards_for, count, create_po_inbound, line_id, reload_item, reload_line, verify
from wmsgrn.models.enums import (
    DiscrepancyAction,
    DiscrepancyType,
    InboundItemStatus,
    InboundStatus,
    ReturnReason,
    ReturnStatus,
)
from wmsgrn.models.inbound import Inbound, InboundItem, Resolved
from wmsgrn.models.vendor_return import VendorReturn
from wmsgrn.schemas.inbound_resolution import DiscrepancyResolveIn
from wmsgrn.services.action_runner import ActionResult, run_action
from wmsgrn.services.inbound_payment import approve_for_payment
from wmsgrn.services.inbound_query import get_inbound, list_children, list_open_issues
from wmsgrn.services.inbound_resolution import resolve_discrepancy, return_quantity, return_reason_for
from wmsgrn.services.vendor_return_service import get_return

pytestmark = pytest.mark.grp_flow

UTC = timezone.utc


async def resolve(
    session: AsyncSession,
    inbound_item_id: int,
    action: DiscrepancyAction,
    notes: str | None = None,
) -> ActionResult:
    payload = DiscrepancyResolveIn(user_id=USER_ID, action=action, notes=notes)
    return await run_action(
        session,
        "test.inbound.resolve",
        resolve_discrepancy,
        inbound_item_id=inbound_item_id,
        payload=payload,
    )


async def _return_count(session: AsyncSession) -> int:
    return int((await session.execute(select(func.count(VendorReturn.id)))).scalar_one())


async def _verified_single_line(session: AsyncSession, seed, key: str, expected: int, *counts, **kw):
    item_id = seed.items[key]
    inbound = await create_po_inbound(session, vendor_id=seed.vendor_id, lines=[(item_id, expected)])
    res = await verify(session, inbound.id, [count(item_id, *counts, **kw)])
    assert res.success, res.error
    return inbound, item_id, line_id(inbound, item_id)


# ---------------------------------------------------------------------------
# 纯函数
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "expected, received, rejected, qty",
    [
        (20, 18, 1, 1),
        (10, 12, 0, 2),
        (10, 12, 3, 3),
        (10, 10, 0, 0),
    ],
)
def test_return_quantity_is_max_of_rejected_and_excess(expected, received, rejected, qty):
    line = InboundItem(expected_quantity=expected, received_quantity=received, rejected_quantity=rejected)
    assert return_quantity(line) == qty


def test_return_reason_mapping():
    assert return_reason_for(DiscrepancyAction.REPLACE_ITEM) is ReturnReason.WRONG_ITEM
    assert return_reason_for(DiscrepancyAction.RETURN_TO_VENDOR) is ReturnReason.OTHER
    assert return_reason_for(DiscrepancyAction.REFUND) is ReturnReason.OTHER


# ---------------------------------------------------------------------------
# KEEP_EXCESS
# ---------------------------------------------------------------------------


async def test_keep_excess_moves_rejected_into_stock(session: AsyncSession, seed):
    inbound, item_id, lid = await _verified_single_line(
        session, seed, "bolt", 10, 10, 7, 3, discrepancy_type=DiscrepancyType.DAMAGED
    )
    before_cards = len(await cards_for(session, item_id))

    res = await resolve(session, lid, DiscrepancyAction.KEEP_EXCESS, notes="scratches acceptable")
    assert res.success, res.error

    line = await reload_line(session, lid)
    assert line.rejected_quantity == 0
    assert line.accepted_quantity == 10
    assert line.quantity_added_to_stock == 10
    assert line.discrepancy_action == DiscrepancyAction.KEEP_EXCESS.value
    assert line.status == InboundItemStatus.RESOLVED.value
    assert "Resolution: scratches acceptable" in (line.notes or "")
    assert line.resolution == Resolved(DiscrepancyType.DAMAGED, DiscrepancyAction.KEEP_EXCESS)

    cards = await cards_for(session, item_id)
    assert len(cards) == before_cards + 1
    assert cards[-1].quantity_change == 3
    assert cards[-1].id == res.data.stock_card_id
    assert (await reload_item(session, item_id)).current_stock == 10

    # 唯一差异行处理完 → 头状态收尾
    assert res.data.inbound_status == InboundStatus.COMPLETED.value


async def test_keep_excess_without_rejects_is_invalid(session: AsyncSession, seed):
    _, item_id, lid = await _verified_single_line(session, seed, "nut", 10, 12, 12)

    res = await resolve(session, lid, DiscrepancyAction.KEEP_EXCESS)
    assert res.success is False
    assert res.error_code == "INVALID_STATE"
    assert (await reload_line(session, lid)).discrepancy_action == DiscrepancyAction.PENDING.value
    assert (await reload_item(session, item_id)).current_stock == 12


# ---------------------------------------------------------------------------
# CLOSE_SHORT / WAIT_REMAINING
# ---------------------------------------------------------------------------


async def test_close_short_only_touches_metadata(session: AsyncSession, seed):
    inbound, item_id, lid = await _verified_single_line(session, seed, "nut", 50, 30, 30)
    cards_before = len(await cards_for(session, item_id))

    res = await resolve(session, lid, DiscrepancyAction.CLOSE_SHORT, notes="vendor out of stock")
    assert res.success, res.error

    line = await reload_line(session, lid)
    assert (line.expected_quantity, line.received_quantity, line.accepted_quantity) == (50, 30, 30)
    assert line.discrepancy_action == DiscrepancyAction.CLOSE_SHORT.value
    assert line.status == InboundItemStatus.CLOSED_SHORT.value
    assert len(await cards_for(session, item_id)) == cards_before
    assert await _return_count(session) == 0

    fresh = await get_inbound(session, inbound_id=inbound.id)
    assert fresh.status == InboundStatus.COMPLETED.value


async def test_wait_remaining_keeps_line_open_and_inbound_partial(session: AsyncSession, seed):
    """SPK 收货单：期望 50 到货 30 → WAIT_REMAINING；欠货未到，不收尾、不可付款"""
    bolt = seed.items["bolt"]
    inbound = await create_po_inbound(session, vendor_id=seed.spk_vendor_id, lines=[(bolt, 50)])
    assert (await verify(session, inbound.id, [count(bolt, 30, 30)])).success
    lid = line_id(inbound, bolt)
    cards_before = len(await cards_for(session, bolt))

    res = await resolve(session, lid, DiscrepancyAction.WAIT_REMAINING, notes="rest due Friday")
    assert res.success, res.error
    assert res.data.inbound_status == InboundStatus.PARTIAL.value

    line = await reload_line(session, lid)
    assert line.status == InboundItemStatus.OPEN_ISSUE.value
    assert line.discrepancy_action == DiscrepancyAction.WAIT_REMAINING.value
    assert "Resolution: rest due Friday" in (line.notes or "")
    assert len(await cards_for(session, bolt)) == cards_before
    assert await _return_count(session) == 0

    queue = await list_open_issues(session)
    assert [x.id for x in queue.data] == [lid]
    assert queue.data[0].status == "RESOLVED"
    assert queue.data[0].resolved_action == DiscrepancyAction.WAIT_REMAINING.value

    r = await run_action(
        session, "test.inbound.approve_payment", approve_for_payment, inbound_id=inbound.id, user_id=USER_ID
    )
    assert r.success is False
    assert r.error_code == "INVALID_STATE"
    assert (await get_inbound(session, inbound_id=inbound.id)).status == InboundStatus.PARTIAL.value


# ---------------------------------------------------------------------------
# 退货类
# ---------------------------------------------------------------------------


async def test_return_to_vendor_creates_one_return_for_rejected(session: AsyncSession, seed):
    """expected=20 received=18 accepted=17 rejected=1 → 退货单 1 行，数量 1"""
    inbound, item_id, lid = await _verified_single_line(session, seed, "cement", 20, 18, 17, 1)

    res = await resolve(session, lid, DiscrepancyAction.RETURN_TO_VENDOR)
    assert res.success, res.error
    assert await _return_count(session) == 1

    ret = await get_return(session, return_id=res.data.return_id)
    assert ret.return_code == res.data.return_code
    assert ret.return_code.startswith(f"RET/{datetime.now(UTC).year}/")
    assert ret.status == ReturnStatus.DRAFT.value
    assert ret.reason == ReturnReason.OTHER.value
    assert ret.inbound_id == inbound.id
    assert ret.inbound_item_id == lid
    assert ret.purchase_request_id == inbound.purchase_request_id
    assert ret.vendor_id == seed.vendor_id

    assert len(ret.items) == 1
    rl = ret.items[0]
    assert rl.item_id == item_id
    assert rl.quantity == 1
    assert rl.quantity_in_stock == 0  # 拒收件从未入库
    assert str(rl.unit_price) in ("0", "0.00")

    # 退货单只是单据，不动库存
    assert (await reload_item(session, item_id)).current_stock == 17
    assert res.data.child_inbound_id is None


async def test_refund_on_overage_returns_units_already_in_stock(session: AsyncSession, seed):
    _, item_id, lid = await _verified_single_line(session, seed, "bolt", 10, 12, 12)

    res = await resolve(session, lid, DiscrepancyAction.REFUND)
    assert res.success, res.error

    ret = await get_return(session, return_id=res.data.return_id)
    assert ret.items[0].quantity == 2
    assert ret.items[0].quantity_in_stock == 2


async def test_return_with_nothing_to_return_is_invalid(session: AsyncSession, seed):
    _, _, lid = await _verified_single_line(session, seed, "nut", 50, 30, 30)

    res = await resolve(session, lid, DiscrepancyAction.RETURN_TO_VENDOR)
    assert res.success is False
    assert res.error_code == "INVALID_STATE"
    assert await _return_count(session) == 0


async def test_replace_item_spawns_child_inbound(session: AsyncSession, seed):
    """父单 GRN-001，无子单，拒收 5 → 子单 GRN-001-REP-A，期望 5，待核验"""
    item_id = seed.items["bolt"]
    parent = Inbound(
        grn_number="GRN-001",
        purchase_request_id=77,
        po_number="PO-77",
        vendor_id=seed.vendor_id,
        receive_date=datetime.now(UTC),
        status=InboundStatus.PENDING_VERIFICATION.value,
        items=[
            InboundItem(
                item_id=item_id,
                expected_quantity=20,
                received_quantity=0,
                accepted_quantity=0,
                rejected_quantity=0,
                quantity_added_to_stock=0,
            )
        ],
    )
    session.add(parent)
    await session.commit()
    parent_id = parent.id
    lid = parent.items[0].id

    res = await verify(
        session,
        parent_id,
        [count(item_id, 20, 15, 5, discrepancy_type=DiscrepancyType.WRONG_ITEM)],
    )
    assert res.success, res.error

    res = await resolve(session, lid, DiscrepancyAction.REPLACE_ITEM)
    assert res.success, res.error
    assert res.data.child_grn_number == "GRN-001-REP-A"

    ret = await get_return(session, return_id=res.data.return_id)
    assert ret.reason == ReturnReason.WRONG_ITEM.value

    children = await list_children(session, inbound_id=parent_id)
    assert [c.grn_number for c in children] == ["GRN-001-REP-A"]
    child = children[0]
    assert child.id == res.data.child_inbound_id
    assert child.parent_inbound_id == parent_id
    assert child.status == InboundStatus.PENDING_VERIFICATION.value
    assert child.vendor_id == seed.vendor_id
    assert len(child.items) == 1
    assert child.items[0].item_id == item_id
    assert child.items[0].expected_quantity == 5
    assert child.items[0].received_quantity == 0


async def test_replace_item_on_overage_without_rejects_is_invalid(session: AsyncSession, seed):
    inbound, item_id, lid = await _verified_single_line(session, seed, "bolt", 10, 12, 12)

    res = await resolve(session, lid, DiscrepancyAction.REPLACE_ITEM)
    assert res.success is False
    assert res.error_code == "INVALID_STATE"
    assert res.context["rejected_quantity"] == 0

    assert (await reload_line(session, lid)).discrepancy_action == DiscrepancyAction.PENDING.value
    assert await _return_count(session) == 0
    assert await list_children(session, inbound_id=inbound.id) == []


async def test_second_replacement_gets_next_letter(session: AsyncSession, seed):
    bolt, nut = seed.items["bolt"], seed.items["nut"]
    inbound = await create_po_inbound(session, vendor_id=seed.vendor_id, lines=[(bolt, 10), (nut, 10)])
    res = await verify(session, inbound.id, [count(bolt, 10, 8, 2), count(nut, 10, 9, 1)])
    assert res.success, res.error

    first = await resolve(session, line_id(inbound, bolt), DiscrepancyAction.REPLACE_ITEM)
    second = await resolve(session, line_id(inbound, nut), DiscrepancyAction.REPLACE_ITEM)
    assert first.success and second.success

    assert first.data.child_grn_number == f"{inbound.grn_number}-REP-A"
    assert second.data.child_grn_number == f"{inbound.grn_number}-REP-B"
    assert second.data.inbound_status == InboundStatus.COMPLETED.value


# ---------------------------------------------------------------------------
# 前置条件 / 原子性
# ---------------------------------------------------------------------------


async def test_resolving_twice_is_invalid_state(session: AsyncSession, seed):
    _, _, lid = await _verified_single_line(session, seed, "nut", 50, 30, 30)

    assert (await resolve(session, lid, DiscrepancyAction.CLOSE_SHORT)).success
    again = await resolve(session, lid, DiscrepancyAction.WAIT_REMAINING)
    assert again.success is False
    assert again.error_code == "INVALID_STATE"
    assert (await reload_line(session, lid)).discrepancy_action == DiscrepancyAction.CLOSE_SHORT.value


async def test_resolving_clean_line_is_invalid_state(session: AsyncSession, seed):
    _, _, lid = await _verified_single_line(session, seed, "bolt", 10, 10, 10)

    res = await resolve(session, lid, DiscrepancyAction.CLOSE_SHORT)
    assert res.success is False
    assert res.error_code == "INVALID_STATE"


async def test_pending_is_not_an_action(session: AsyncSession, seed):
    _, _, lid = await _verified_single_line(session, seed, "nut", 50, 30, 30)

    res = await resolve(session, lid, DiscrepancyAction.PENDING)
    assert res.success is False
    assert res.error_code == "VALIDATION_ERROR"


async def test_missing_line_is_not_found(session: AsyncSession, seed):
    res = await resolve(session, 987_654, DiscrepancyAction.CLOSE_SHORT)
    assert res.success is False
    assert res.error_code == "NOT_FOUND"


async def test_return_creation_failure_rolls_back_line_update(session: AsyncSession, seed, monkeypatch):
    """退货单写入失败（约束冲突）→ 整体回滚，行仍为 PENDING，无退货单、无子单"""
    import wmsgrn.services.inbound_resolution as mod

    inbound, _, lid = await _verified_single_line(session, seed, "cement", 20, 18, 17, 1)

    async def boom(session, **kw):
        raise IntegrityError("INSERT INTO returns", {}, Exception("duplicate return_code"))

    monkeypatch.setattr(mod, "create_return_document", boom)

    res = await resolve(session, lid, DiscrepancyAction.REPLACE_ITEM, notes="should vanish")
    assert res.success is False
    assert res.error_code == "TRANSACTION_FAILURE"
    assert res.retryable is True

    line = await reload_line(session, lid)
    assert line.discrepancy_action == DiscrepancyAction.PENDING.value
    assert line.status == InboundItemStatus.OPEN_ISSUE.value
    assert "should vanish" not in (line.notes or "")
    assert await _return_count(session) == 0
    assert await list_children(session, inbound_id=inbound.id) == []


async def test_open_issue_queue_drops_resolved_lines(session: AsyncSession, seed):
    bolt, nut = seed.items["bolt"], seed.items["nut"]
    inbound = await create_po_inbound(session, vendor_id=seed.vendor_id, lines=[(bolt, 50), (nut, 10)])
    res = await verify(session, inbound.id, [count(bolt, 30, 30), count(nut, 10, 7, 3)])
    assert res.success, res.error

    queue = await list_open_issues(session)
    assert queue.pagination.total == 2
    by_item = {x.item_id: x for x in queue.data}
    assert by_item[bolt].type == DiscrepancyType.SHORTAGE.value
    assert by_item[bolt].qty_involved == 20
    assert by_item[nut].type == DiscrepancyType.DAMAGED.value
    assert by_item[nut].qty_involved == 3
    assert all(x.status == "PENDING" for x in queue.data)

    assert (await resolve(session, line_id(inbound, bolt), DiscrepancyAction.CLOSE_SHORT)).success

    queue = await list_open_issues(session, search="Nut")
    assert [x.item_id for x in queue.data] == [nut]
    assert (await list_open_issues(session, search="Bolt")).pagination.total == 0
