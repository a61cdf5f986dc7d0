# wmsgrn/models/vendor_return.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wmsgrn.db.base import Base
from wmsgrn.models.enums import ReturnStatus

if TYPE_CHECKING:
    from .item import Item
    from .vendor import Vendor


class VendorReturn(Base):
    """
    退供应商单（RET）

    状态：DRAFT → PENDING_APPROVAL → APPROVED → SENT_TO_VENDOR → COMPLETED
          PENDING_APPROVAL → REJECTED
    """

    __tablename__ = "returns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    return_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    purchase_request_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    inbound_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    inbound_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("inbound_items.id", ondelete="RESTRICT"), nullable=True
    )
    vendor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vendors.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    return_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ReturnStatus.DRAFT.value, server_default=text("'DRAFT'")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sent_to_vendor_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[List["VendorReturnItem"]] = relationship(
        "VendorReturnItem",
        back_populates="vendor_return",
        lazy="selectin",
        order_by="VendorReturnItem.id",
    )
    vendor: Mapped["Vendor"] = relationship("Vendor", lazy="selectin")

    def __repr__(self) -> str:
        return f"<VendorReturn id={self.id} code={self.return_code} status={self.status}>"


class VendorReturnItem(Base):
    """
    退货行

    quantity_in_stock：本行中已在库存里的件数（完成退货时按此扣减）；
    quantity - quantity_in_stock 为从未入库的件数（如核验拒收件）。
    """

    __tablename__ = "return_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    return_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_in_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    vendor_return: Mapped["VendorReturn"] = relationship("VendorReturn", back_populates="items")
    item: Mapped["Item"] = relationship("Item", lazy="selectin")
