# wmsgrn/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, generate_latest, multiprocess

# 业务指标
INBOUND_VERIFIED = Counter("inbound_verified_total", "Inbound verifications committed", ["status"])
DISCREPANCY_RESOLVED = Counter("discrepancy_resolved_total", "Discrepancy resolutions committed", ["action"])
LEDGER_POSTINGS = Counter("stock_ledger_postings_total", "Stock card entries written", ["movement_type"])
ACTION_FAILURES = Counter("action_failures_total", "Actions rolled back", ["action", "code"])

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    """
    单进程模式直接导出默认 REGISTRY；
    多进程模式（PROMETHEUS_MULTIPROC_DIR）下合并各分片。
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
