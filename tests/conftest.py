# tests/conftest.py
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncGenerator, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from wmsgrn.db.base import Base, init_models
from wmsgrn.db.session import get_session, make_session_factory
from wmsgrn.main import app
from wmsgrn.models.item import Item
from wmsgrn.models.vendor import Vendor
from wmsgrn.models.warehouse import Warehouse
from wmsgrn.services.event_bus import bus

# ==========================
# 每用例独立的内存 sqlite（StaticPool：同一连接，表结构在用例内可见）
# ==========================
TEST_DSN = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    init_models()
    engine = create_async_engine(
        TEST_DSN,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return make_session_factory(async_engine)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    标准 Session：事务由被测的 run_action / 用例自己控制。
    """
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


@pytest.fixture(autouse=True)
def _reset_event_bus():
    bus.clear()
    yield
    bus.clear()


# =========================================
# 最小种子数据：默认仓 + 普通供应商 + SPK 供应商 + 3 个物料
# =========================================
@dataclass
class Seed:
    warehouse_id: int
    vendor_id: int
    spk_vendor_id: int
    items: Dict[str, int]


@pytest_asyncio.fixture(scope="function")
async def seed(async_session_maker) -> Seed:
    async with async_session_maker() as s:
        wh = Warehouse(name="WH-MAIN", is_default=True)
        v = Vendor(code="V-001", name="PT Sumber Makmur", vendor_type="REGULAR")
        spk = Vendor(code="V-SPK", name="CV Karya Mandiri", vendor_type="SPK")
        items = [
            Item(sku="SKU-BOLT", name="Bolt M8", current_stock=0),
            Item(sku="SKU-NUT", name="Nut M8", current_stock=0),
            Item(sku="SKU-CEMENT", name="Cement 50kg", current_stock=0),
        ]
        s.add_all([wh, v, spk, *items])
        await s.commit()
        return Seed(
            warehouse_id=wh.id,
            vendor_id=v.id,
            spk_vendor_id=spk.id,
            items={"bolt": items[0].id, "nut": items[1].id, "cement": items[2].id},
        )


# =========================================
# API 客户端：get_session 指向测试引擎
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as s:
            yield s

    app.dependency_overrides[get_session] = _override_session
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_session, None)
