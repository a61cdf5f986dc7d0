# wmsgrn/models/enums.py
from __future__ import annotations

from enum import StrEnum


class InboundStatus(StrEnum):
    """
    收货单（GRN）头状态：

    - PENDING_VERIFICATION  待核验（由 PO 生成，或补发子单）
    - VERIFIED              核验完成且全部行无差异
    - PARTIAL               核验完成，但存在未处理差异行
    - REJECTED              收到货但一件都未接受
    - COMPLETED             差异行全部处理完毕
    - READY_FOR_PAYMENT     SPK 供应商：已批准付款
    - PAID                  SPK 供应商：已付款
    """

    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    VERIFIED = "VERIFIED"
    PARTIAL = "PARTIAL"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    READY_FOR_PAYMENT = "READY_FOR_PAYMENT"
    PAID = "PAID"


class InboundItemStatus(StrEnum):
    OPEN_ISSUE = "OPEN_ISSUE"
    COMPLETED = "COMPLETED"
    RESOLVED = "RESOLVED"
    CLOSED_SHORT = "CLOSED_SHORT"


class DiscrepancyType(StrEnum):
    NONE = "NONE"
    SHORTAGE = "SHORTAGE"
    OVERAGE = "OVERAGE"
    WRONG_ITEM = "WRONG_ITEM"
    DAMAGED = "DAMAGED"


class DiscrepancyAction(StrEnum):
    """
    差异处理动作（落库 inbound_items.discrepancy_action）：

    - PENDING 仅作为“待处理”标记，核验时写入
    - 其余为终态，一行只能处理一次
    """

    PENDING = "PENDING"
    KEEP_EXCESS = "KEEP_EXCESS"
    RETURN_TO_VENDOR = "RETURN_TO_VENDOR"
    REPLACE_ITEM = "REPLACE_ITEM"
    REFUND = "REFUND"
    WAIT_REMAINING = "WAIT_REMAINING"
    CLOSE_SHORT = "CLOSE_SHORT"


# 会生成退货单的动作
RETURN_ACTIONS = frozenset(
    {
        DiscrepancyAction.RETURN_TO_VENDOR,
        DiscrepancyAction.REPLACE_ITEM,
        DiscrepancyAction.REFUND,
    }
)


class MovementType(StrEnum):
    """
    库存卡（stock_cards.movement_type）：

    增加方向：INBOUND / ADJUSTMENT_IN
    减少方向：OUTBOUND / ADJUSTMENT_OUT / RETURN_OUT（负库存保护生效）
    """

    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    RETURN_OUT = "RETURN_OUT"

    @property
    def is_increase(self) -> bool:
        return self in (MovementType.INBOUND, MovementType.ADJUSTMENT_IN)


class ReferenceType(StrEnum):
    INBOUND = "INBOUND"
    RETURN = "RETURN"
    RETURN_RESOLUTION = "RETURN_RESOLUTION"
    ADJUSTMENT = "ADJUSTMENT"


class ReturnStatus(StrEnum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    SENT_TO_VENDOR = "SENT_TO_VENDOR"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class ReturnReason(StrEnum):
    DAMAGED = "DAMAGED"
    WRONG_ITEM = "WRONG_ITEM"
    EXCESS = "EXCESS"
    QUALITY_ISSUE = "QUALITY_ISSUE"
    OTHER = "OTHER"


__all__ = [
    "InboundStatus",
    "InboundItemStatus",
    "DiscrepancyType",
    "DiscrepancyAction",
    "RETURN_ACTIONS",
    "MovementType",
    "ReferenceType",
    "ReturnStatus",
    "ReturnReason",
]
