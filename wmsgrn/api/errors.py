from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from wmsgrn.api.problem import make_problem


class BizError(Exception):
    code = "BIZ_ERROR"
    status = 400
    retryable = False

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status: int | None = None,
        *,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message
        self.context = context or {}


class NotFoundError(BizError):
    code = "NOT_FOUND"
    status = 404


class InvalidStateError(BizError):
    code = "INVALID_STATE"
    status = 409


class InsufficientStockError(InvalidStateError):
    code = "INSUFFICIENT_STOCK"


class ValidationFailedError(BizError):
    code = "VALIDATION_ERROR"
    status = 422


class TransactionFailureError(BizError):
    """存储层事务失败（序列化冲突 / 约束冲突），调用方可重读后重试。"""

    code = "TRANSACTION_FAILURE"
    status = 503
    retryable = True


def biz_error_handler(_: Request, exc: BizError):
    ctx = dict(exc.context)
    details = ctx.pop("details", None)
    return JSONResponse(
        status_code=exc.status,
        content={
            "detail": make_problem(
                status_code=exc.status,
                error_code=exc.code,
                message=exc.message,
                context=ctx or None,
                details=details,
                retryable=exc.retryable,
            )
        },
    )
