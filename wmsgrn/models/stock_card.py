# wmsgrn/models/stock_card.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from wmsgrn.db.base import Base


class StockCard(Base):
    """
    库存卡（台账，只增不改）

    - quantity_after = quantity_before + quantity_change
    - 同一 item 按 (transaction_date, id) 排序形成严格链：
      下一条的 quantity_before == 上一条的 quantity_after
    - 纠错只能追加新记录
    """

    __tablename__ = "stock_cards"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    item_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    warehouse_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=True
    )

    movement_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)

    # 来源单据
    reference_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    reference_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    inbound_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("inbounds.id", ondelete="RESTRICT"), nullable=True
    )
    return_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("returns.id", ondelete="RESTRICT"), nullable=True
    )

    quantity_before: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    quantity_change: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    transaction_date: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    created_by_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        sa.CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_stock_cards_chain_arith",
        ),
        sa.CheckConstraint("quantity_after >= 0", name="ck_stock_cards_after_nonneg"),
        sa.Index("ix_stock_cards_item_txn", "item_id", "transaction_date", "id"),
        sa.Index("ix_stock_cards_ref", "reference_type", "reference_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockCard {self.movement_type} item={self.item_id} "
            f"before={self.quantity_before} change={self.quantity_change} after={self.quantity_after} "
            f"ref={self.reference_type}:{self.reference_id}>"
        )
