# wmsgrn/schemas/common.py
from __future__ import annotations

import math
from datetime import datetime, timezone

from pydantic import BaseModel

UTC = timezone.utc


def to_utc(dt: datetime) -> datetime:
    if not isinstance(dt, datetime):
        return dt
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, *, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=int(total), page=int(page), limit=int(limit), total_pages=math.ceil(total / limit) if limit else 0)
