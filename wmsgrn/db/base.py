# wmsgrn/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("wmsgrn.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化


def init_models() -> None:
    """
    集中导入模型 + 固化关系映射：
      1) 导入 wmsgrn.models（按 MODEL_SPECS 顺序注册全部模型）
      2) 最后统一 configure_mappers()

    模型导入失败直接抛出，不做静默跳过。
    """
    global _INITIALIZED
    if _INITIALIZED:
        log.debug("init_models() called again; already initialized, skipping.")
        return

    models = importlib.import_module("wmsgrn.models")
    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (%d classes)", len(models.MODEL_SPECS))
