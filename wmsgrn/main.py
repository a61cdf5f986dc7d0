# wmsgrn/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wmsgrn.api.errors import BizError, biz_error_handler
from wmsgrn.api.problem import make_problem
from wmsgrn.core.config import get_settings
from wmsgrn.core.logging import setup_logging
from wmsgrn.db.base import init_models
from wmsgrn.db.session import close_engines

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("wmsgrn")

# 路由导入前固化 ORM 映射
init_models()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info("wms-grn starting: env=%s", settings.ENV)
    try:
        yield
    finally:
        await close_engines()


app = FastAPI(
    title="WMS-GRN",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def _unhandled_exc(_req: Request, exc: Exception):
    logger.exception("UNHANDLED_EXC: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": make_problem(status_code=500, error_code="INTERNAL_ERROR", message="internal error")},
    )


@app.exception_handler(RequestValidationError)
async def _validation_exc(_req: Request, exc: RequestValidationError):
    safe = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=422, content={"detail": safe})


@app.exception_handler(HTTPException)
async def _http_exc(_req: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_exception_handler(BizError, biz_error_handler)


# ===========================
#          挂载路由
# ===========================
from wmsgrn.api.routers.inbounds import router as inbounds_router  # noqa: E402
from wmsgrn.api.routers.returns import router as returns_router  # noqa: E402
from wmsgrn.api.routers.stock_cards import router as stock_cards_router  # noqa: E402
from wmsgrn.metrics import router as metrics_router  # noqa: E402

# 收货 / 差异处理 / 付款
app.include_router(inbounds_router)
# 退供应商
app.include_router(returns_router)
# 库存卡 / 台账核对
app.include_router(stock_cards_router)
# 观测
app.include_router(metrics_router)


@app.get("/ping")
async def ping():
    return {"pong": True}
