# wmsgrn/api/routers/action_helpers.py
from __future__ import annotations

from typing import TypeVar

from wmsgrn.api.problem import raise_problem
from wmsgrn.services.action_runner import ActionResult

T = TypeVar("T")


def unwrap_or_problem(res: ActionResult[T]) -> T:
    """失败的 ActionResult → Problem 响应（状态码取错误类）；成功则返回 data。"""
    if res.success:
        return res.data  # type: ignore[return-value]

    ctx = dict(res.context or {})
    details = ctx.pop("details", None)
    raise_problem(
        status_code=res.http_status,
        error_code=res.error_code or "BIZ_ERROR",
        message=res.error or "",
        context=ctx or None,
        details=details,
        retryable=res.retryable,
    )
    raise AssertionError("unreachable")
