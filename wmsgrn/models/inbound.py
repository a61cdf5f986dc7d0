# wmsgrn/models/inbound.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Union

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wmsgrn.db.base import Base
from wmsgrn.models.enums import DiscrepancyAction, DiscrepancyType, InboundItemStatus, InboundStatus

if TYPE_CHECKING:
    from .item import Item
    from .vendor import Vendor


# ---------------------------------------------------------------------------
# 差异行处理状态（由 discrepancy_type + discrepancy_action 推导）
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class NoIssue:
    """行无差异（discrepancy_type = NONE），不进入处理流程。"""


@dataclass(frozen=True)
class Unresolved:
    """有差异，等待处理（discrepancy_action 为空或 PENDING）。"""

    discrepancy_type: DiscrepancyType


@dataclass(frozen=True)
class Resolved:
    discrepancy_type: DiscrepancyType
    action: DiscrepancyAction


ResolutionState = Union[NoIssue, Unresolved, Resolved]


class Inbound(Base):
    """
    收货单（GRN）头：一次到货事件。

    - 由 PO 确认生成（expected 来自 PO 行，received=0）
    - 核验只允许一次：PENDING_VERIFICATION → VERIFIED / PARTIAL / REJECTED
    - 补发通过子单（parent_inbound_id）重新走核验，不修改历史
    - 不做物理删除
    """

    __tablename__ = "inbounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    grn_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # 采购侧（外部协作方）引用
    purchase_request_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    po_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    warehouse_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=True
    )

    receive_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=InboundStatus.PENDING_VERIFICATION.value,
        server_default=text("'PENDING_VERIFICATION'"),
    )

    # 补发链：子单指向原单
    parent_inbound_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    verified_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proof_document_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 收货付款（SPK）
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_proof_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[List["InboundItem"]] = relationship(
        "InboundItem",
        back_populates="inbound",
        lazy="selectin",
        order_by="InboundItem.id",
    )
    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="selectin")

    __table_args__ = (Index("ix_inbounds_status_created", "status", "created_at"),)

    def __repr__(self) -> str:
        return f"<Inbound id={self.id} grn={self.grn_number} status={self.status}>"


class InboundItem(Base):
    """
    收货行：每个 PO 物料一行。

    数量守恒：accepted + rejected == received（核验时强校验）
    quantity_added_to_stock：已落账数量（幂等保护，防止重复入账）
    """

    __tablename__ = "inbound_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    inbound_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    expected_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity_added_to_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    discrepancy_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DiscrepancyType.NONE.value, server_default=text("'NONE'")
    )
    discrepancy_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discrepancy_action: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=InboundItemStatus.OPEN_ISSUE.value,
        server_default=text("'OPEN_ISSUE'"),
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    inbound: Mapped["Inbound"] = relationship("Inbound", back_populates="items")
    item: Mapped["Item"] = relationship("Item", lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "expected_quantity >= 0 AND received_quantity >= 0 "
            "AND accepted_quantity >= 0 AND rejected_quantity >= 0 "
            "AND quantity_added_to_stock >= 0",
            name="ck_inbound_items_qty_nonneg",
        ),
    )

    @property
    def resolution(self) -> ResolutionState:
        dtype = DiscrepancyType(self.discrepancy_type or DiscrepancyType.NONE.value)
        if dtype is DiscrepancyType.NONE:
            return NoIssue()
        action = self.discrepancy_action
        if action is None or action == DiscrepancyAction.PENDING.value:
            return Unresolved(discrepancy_type=dtype)
        return Resolved(discrepancy_type=dtype, action=DiscrepancyAction(action))

    def __repr__(self) -> str:
        return (
            f"<InboundItem id={self.id} inbound={self.inbound_id} item={self.item_id} "
            f"exp={self.expected_quantity} rcv={self.received_quantity} "
            f"acc={self.accepted_quantity} rej={self.rejected_quantity} "
            f"type={self.discrepancy_type} action={self.discrepancy_action}>"
        )
