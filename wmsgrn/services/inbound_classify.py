# wmsgrn/services/inbound_classify.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from wmsgrn.models.enums import DiscrepancyType, InboundItemStatus


@dataclass(frozen=True)
class LineClassification:
    discrepancy_type: DiscrepancyType
    discrepancy_reason: Optional[str]
    line_status: InboundItemStatus

    @property
    def has_issue(self) -> bool:
        return self.discrepancy_type is not DiscrepancyType.NONE


def _conditions(*, expected: int, received: int, rejected: int) -> List[str]:
    out: List[str] = []
    if received < expected:
        out.append(f"short by {expected - received}")
    elif received > expected:
        out.append(f"over by {received - expected}")
    if rejected > 0:
        out.append(f"rejected {rejected}")
    return out


def classify_line(
    *,
    expected: int,
    received: int,
    rejected: int,
    supplied_type: Optional[DiscrepancyType] = None,
    supplied_reason: Optional[str] = None,
) -> LineClassification:
    """
    差异分类策略：

    - 调用方给了非 NONE 类型：以调用方为准（DAMAGED / WRONG_ITEM 只能靠现场判断）
    - 否则按数量推导：received < expected → SHORTAGE；received > expected → OVERAGE；
      数量一致但有拒收 → DAMAGED；完全一致 → NONE
    - 多种情况并存时只记一个主类型（短缺/超收优先），其余情况写进 discrepancy_reason
    """
    if supplied_type is not None and supplied_type is not DiscrepancyType.NONE:
        dtype = supplied_type
    elif received < expected:
        dtype = DiscrepancyType.SHORTAGE
    elif received > expected:
        dtype = DiscrepancyType.OVERAGE
    elif rejected > 0:
        dtype = DiscrepancyType.DAMAGED
    else:
        dtype = DiscrepancyType.NONE

    if dtype is DiscrepancyType.NONE:
        return LineClassification(
            discrepancy_type=dtype,
            discrepancy_reason=supplied_reason,
            line_status=InboundItemStatus.COMPLETED,
        )

    conds = _conditions(expected=expected, received=received, rejected=rejected)
    reason = supplied_reason
    if len(conds) > 1 or (conds and supplied_type is not None and supplied_type is not DiscrepancyType.NONE):
        note = "; ".join(conds)
        reason = f"{supplied_reason} [{note}]" if supplied_reason else f"[{note}]"

    return LineClassification(
        discrepancy_type=dtype,
        discrepancy_reason=reason,
        line_status=InboundItemStatus.OPEN_ISSUE,
    )
