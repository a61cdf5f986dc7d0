# wmsgrn/models/warehouse.py
from __future__ import annotations

from sqlalchemy import Boolean, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from wmsgrn.db.base import Base


class Warehouse(Base):
    """
    仓库主数据（外部维护，这里只读）。

    收货单未指定仓库时，落账使用 is_default=true 的仓库。
    """

    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} default={self.is_default}>"
