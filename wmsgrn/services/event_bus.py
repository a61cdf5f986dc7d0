# wmsgrn/services/event_bus.py
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger("wmsgrn.events")

UTC = timezone.utc

_STAGED_KEY = "wmsgrn.staged_events"


@dataclass(frozen=True)
class DomainEvent:
    """
    领域事件（提交后通知）：

    - name: INBOUND_VERIFIED / DISCREPANCY_RESOLVED / RETURN_CREATED ...
    - ref:  业务单号（GRN / RET）
    - meta: 附加字段（inbound_id / item_id / action ...）
    """

    name: str
    ref: str
    meta: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventBus:
    """
    轻量进程内事件总线：

    - subscribe(name, handler)；name="*" 订阅全部
    - publish 逐个调用 handler；handler 异常只记日志，不影响已提交结果
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        hs = self._handlers.get(name) or []
        if handler in hs:
            hs.remove(handler)

    def clear(self) -> None:
        self._handlers.clear()

    async def publish(self, event: DomainEvent) -> None:
        for h in [*self._handlers.get(event.name, []), *self._handlers.get("*", [])]:
            try:
                res = h(event)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("event handler failed: event=%s ref=%s", event.name, event.ref)


# 全局默认总线（宿主应用在启动时注册订阅者，例如缓存失效）
bus = EventBus()


def stage_event(session: AsyncSession, name: str, *, ref: str, meta: Optional[Dict[str, Any]] = None) -> None:
    """在当前事务内暂存事件；由 action runner 在 commit 成功后统一发布。"""
    staged: List[DomainEvent] = session.info.setdefault(_STAGED_KEY, [])
    staged.append(DomainEvent(name=name, ref=ref, meta=dict(meta or {})))


def drain_staged_events(session: AsyncSession) -> List[DomainEvent]:
    return list(session.info.pop(_STAGED_KEY, None) or [])


def discard_staged_events(session: AsyncSession) -> None:
    session.info.pop(_STAGED_KEY, None)
