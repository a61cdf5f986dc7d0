# wmsgrn/services/action_runner.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import BizError, TransactionFailureError
from wmsgrn.metrics import ACTION_FAILURES
from wmsgrn.services.event_bus import EventBus, bus, discard_staged_events, drain_staged_events
from wmsgrn.services.uow import UnitOfWork

logger = logging.getLogger("wmsgrn.action")

T = TypeVar("T")


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """
    组件边界的返回值：成功标记 + 数据 / 错误信息。

    失败时库里不会留下任何部分写入（整个 action 一个事务）。
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    http_status: int = 200
    retryable: bool = False
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: T) -> "ActionResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: BizError) -> "ActionResult[T]":
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.code,
            http_status=int(exc.status),
            retryable=bool(exc.retryable),
            context=dict(exc.context) or None,
        )


async def run_action(
    session: AsyncSession,
    action: str,
    fn: Callable[..., Awaitable[T]],
    *,
    event_bus: Optional[EventBus] = None,
    **kwargs: Any,
) -> ActionResult[T]:
    """
    单事务执行一个业务动作：

    - fn(session=..., **kwargs) 内部只 flush，不控事务
    - 成功：commit → 发布暂存事件 → ActionResult.ok
    - 失败：rollback → 丢弃暂存事件 → ActionResult.fail（不向外抛）
    """
    target_bus = event_bus or bus
    try:
        async with UnitOfWork(session) as uow:
            data = await fn(session=uow.session, **kwargs)
    except BizError as e:
        discard_staged_events(session)
        ACTION_FAILURES.labels(action=action, code=e.code).inc()
        logger.info("action rolled back: action=%s code=%s msg=%s", action, e.code, e.message)
        return ActionResult.fail(e)
    except SQLAlchemyError as e:
        discard_staged_events(session)
        err = TransactionFailureError(f"transaction aborted: {e.__class__.__name__}")
        ACTION_FAILURES.labels(action=action, code=err.code).inc()
        logger.warning("action transaction failure: action=%s err=%s", action, e)
        return ActionResult.fail(err)
    except Exception as e:
        discard_staged_events(session)
        err = BizError("internal error", code="INTERNAL_ERROR", status=500)
        ACTION_FAILURES.labels(action=action, code=err.code).inc()
        logger.exception("action crashed: action=%s err=%s", action, e)
        return ActionResult.fail(err)

    events = drain_staged_events(session)
    for ev in events:
        await target_bus.publish(ev)

    logger.info("action committed: action=%s events=%d", action, len(events))
    return ActionResult.ok(data)
