# wmsgrn/models/vendor.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from wmsgrn.db.base import Base


class Vendor(Base):
    """
    供应商主数据（外部维护，这里只读）。

    vendor_type：REGULAR / SPK（SPK 才能走收货付款）
    """

    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vendor_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default="REGULAR", server_default=text("'REGULAR'")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r} type={self.vendor_type}>"
