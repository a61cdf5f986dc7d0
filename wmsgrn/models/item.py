# wmsgrn/models/item.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from wmsgrn.db.base import Base


class Item(Base):
    """
    Item 主数据模型（public.items）：

        id              INTEGER PRIMARY KEY
        sku             VARCHAR(64) UNIQUE NOT NULL
        name            VARCHAR(128) NOT NULL
        unit            VARCHAR(16) NOT NULL DEFAULT 'PCS'
        current_stock   INTEGER NOT NULL DEFAULT 0   （冗余余额，= 最新一条库存卡的 quantity_after）
        is_active       BOOLEAN NOT NULL DEFAULT true

    current_stock 只能由台账写入口（stock_ledger_poster）修改。
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default="PCS", server_default=text("'PCS'"))

    current_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (CheckConstraint("current_stock >= 0", name="ck_items_current_stock_nonneg"),)

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku} stock={self.current_stock}>"
