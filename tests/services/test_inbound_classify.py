# tests/services/test_inbound_classify.py
from __future__ import annotations

import pytest

from wmsgrn.models.enums import DiscrepancyType, InboundItemStatus
from wmsgrn.services.inbound_classify import classify_line


@pytest.mark.parametrize(
    "expected, received, rejected, dtype",
    [
        (10, 10, 0, DiscrepancyType.NONE),
        (50, 30, 0, DiscrepancyType.SHORTAGE),
        (10, 12, 0, DiscrepancyType.OVERAGE),
        (10, 10, 2, DiscrepancyType.DAMAGED),
    ],
)
def test_type_derived_from_quantities(expected, received, rejected, dtype):
    c = classify_line(expected=expected, received=received, rejected=rejected)
    assert c.discrepancy_type is dtype
    assert c.has_issue is (dtype is not DiscrepancyType.NONE)


def test_clean_line_is_completed():
    c = classify_line(expected=10, received=10, rejected=0)
    assert c.line_status is InboundItemStatus.COMPLETED
    assert c.discrepancy_reason is None


def test_issue_line_is_open():
    c = classify_line(expected=50, received=30, rejected=0)
    assert c.line_status is InboundItemStatus.OPEN_ISSUE
    # 单一情况不追加说明
    assert c.discrepancy_reason is None


def test_caller_type_wins_over_quantity_rule():
    c = classify_line(
        expected=10,
        received=10,
        rejected=3,
        supplied_type=DiscrepancyType.WRONG_ITEM,
        supplied_reason="blue caps instead of red",
    )
    assert c.discrepancy_type is DiscrepancyType.WRONG_ITEM
    assert c.discrepancy_reason == "blue caps instead of red [rejected 3]"


def test_explicit_none_falls_back_to_quantity_rule():
    c = classify_line(expected=10, received=8, rejected=0, supplied_type=DiscrepancyType.NONE)
    assert c.discrepancy_type is DiscrepancyType.SHORTAGE


def test_compound_condition_keeps_dominant_type_and_notes_the_rest():
    """短缺 + 拒收并存：主类型 SHORTAGE，其余写进 reason"""
    c = classify_line(expected=20, received=18, rejected=1)
    assert c.discrepancy_type is DiscrepancyType.SHORTAGE
    assert c.discrepancy_reason == "[short by 2; rejected 1]"
