# wmsgrn/services/doc_numbers.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from wmsgrn.models.inbound import Inbound
from wmsgrn.models.vendor_return import VendorReturn


def month_prefix(kind: str, when: datetime) -> str:
    return f"{kind}/{when.year}/{when.month:02d}/"


async def _next_seq(session: AsyncSession, column: InstrumentedAttribute, prefix: str) -> int:
    # 先按长度再按字典序，序号超过 4 位时依然取到最大值；补发子单（-REP-x）不参与
    stmt = (
        select(column)
        .where(column.like(prefix + "%"))
        .where(~column.like(prefix + "%-%"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
    )
    last: Optional[str] = (await session.execute(stmt)).scalar_one_or_none()
    if not last:
        return 1
    tail = last[len(prefix) :].split("/")[0]
    return int(tail) + 1 if tail.isdigit() else 1


async def next_grn_number(session: AsyncSession, *, when: datetime) -> str:
    """GRN/{year}/{MM}/{NNNN}，序号按年月重置。"""
    prefix = month_prefix("GRN", when)
    seq = await _next_seq(session, Inbound.grn_number, prefix)
    return f"{prefix}{seq:04d}"


async def next_return_code(session: AsyncSession, *, when: datetime) -> str:
    """RET/{year}/{MM}/{NNNN}，序号按年月重置。"""
    prefix = month_prefix("RET", when)
    seq = await _next_seq(session, VendorReturn.return_code, prefix)
    return f"{prefix}{seq:04d}"


def replacement_letter(index: int) -> str:
    """0 → A, 1 → B, …, 25 → Z, 26 → AA（表格列号风格）"""
    if index < 0:
        raise ValueError("index must be >= 0")
    out = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        out = chr(ord("A") + rem) + out
    return out


def replacement_grn_number(parent_grn: str, existing_children: int) -> str:
    return f"{parent_grn}-REP-{replacement_letter(existing_children)}"
