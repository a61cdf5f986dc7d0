# wmsgrn/api/routers/inbounds.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.routers.action_helpers import unwrap_or_problem
from wmsgrn.db.session import get_session
from wmsgrn.schemas.inbound import (
    InboundCreateIn,
    InboundListOut,
    InboundOut,
    InboundPaymentApproveIn,
    InboundPaymentIn,
)
from wmsgrn.schemas.inbound_resolution import DiscrepancyResolveIn, DiscrepancyResolveOut, InboundIssueListOut
from wmsgrn.schemas.inbound_verify import InboundVerifyIn, InboundVerifyOut
from wmsgrn.services.action_runner import run_action
from wmsgrn.services.inbound_create import create_inbound
from wmsgrn.services.inbound_payment import approve_for_payment, process_payment
from wmsgrn.services.inbound_query import get_inbound, list_children, list_inbounds, list_open_issues
from wmsgrn.services.inbound_resolution import resolve_discrepancy
from wmsgrn.services.inbound_verify import verify_inbound

router = APIRouter(prefix="/inbounds", tags=["inbounds"])


@router.post("/", response_model=InboundOut, status_code=status.HTTP_201_CREATED)
async def create_inbound_endpoint(
    payload: InboundCreateIn,
    session: AsyncSession = Depends(get_session),
) -> InboundOut:
    """PO 确认交接：生成收货单（PENDING_VERIFICATION）。"""
    res = await run_action(session, "inbound.create", create_inbound, payload=payload)
    return unwrap_or_problem(res)


@router.get("/", response_model=InboundListOut)
async def list_inbounds_endpoint(
    session: AsyncSession = Depends(get_session),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: str = Query(""),
    status_: str = Query("", alias="status", description="逗号分隔，例如 PARTIAL,REJECTED"),
) -> InboundListOut:
    return await list_inbounds(session, page=page, limit=limit, search=search, status=status_)


@router.get("/issues", response_model=InboundIssueListOut)
async def list_open_issues_endpoint(
    session: AsyncSession = Depends(get_session),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: str = Query(""),
) -> InboundIssueListOut:
    return await list_open_issues(session, page=page, limit=limit, search=search)


@router.post("/items/{inbound_item_id}/resolve", response_model=DiscrepancyResolveOut)
async def resolve_discrepancy_endpoint(
    inbound_item_id: int,
    payload: DiscrepancyResolveIn,
    session: AsyncSession = Depends(get_session),
) -> DiscrepancyResolveOut:
    res = await run_action(
        session,
        "inbound.resolve",
        resolve_discrepancy,
        inbound_item_id=inbound_item_id,
        payload=payload,
    )
    return unwrap_or_problem(res)


@router.get("/{inbound_id}", response_model=InboundOut)
async def get_inbound_endpoint(
    inbound_id: int,
    session: AsyncSession = Depends(get_session),
) -> InboundOut:
    return InboundOut.model_validate(await get_inbound(session, inbound_id=inbound_id))


@router.get("/{inbound_id}/children", response_model=List[InboundOut])
async def list_children_endpoint(
    inbound_id: int,
    session: AsyncSession = Depends(get_session),
) -> List[InboundOut]:
    xs = await list_children(session, inbound_id=inbound_id)
    return [InboundOut.model_validate(x) for x in xs]


@router.post("/{inbound_id}/verify", response_model=InboundVerifyOut)
async def verify_inbound_endpoint(
    inbound_id: int,
    payload: InboundVerifyIn,
    session: AsyncSession = Depends(get_session),
) -> InboundVerifyOut:
    """
    收货核验（一次性）：
    - 成功：accepted 全部落账，单据进入 VERIFIED / PARTIAL / REJECTED
    - 失败：整体回滚，返回 Problem（不产生任何台账）
    """
    res = await run_action(session, "inbound.verify", verify_inbound, inbound_id=inbound_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{inbound_id}/approve-payment", response_model=InboundOut)
async def approve_payment_endpoint(
    inbound_id: int,
    payload: InboundPaymentApproveIn,
    session: AsyncSession = Depends(get_session),
) -> InboundOut:
    res = await run_action(
        session,
        "inbound.approve_payment",
        approve_for_payment,
        inbound_id=inbound_id,
        user_id=payload.user_id,
    )
    return unwrap_or_problem(res)


@router.post("/{inbound_id}/payment", response_model=InboundOut)
async def process_payment_endpoint(
    inbound_id: int,
    payload: InboundPaymentIn,
    session: AsyncSession = Depends(get_session),
) -> InboundOut:
    res = await run_action(session, "inbound.pay", process_payment, inbound_id=inbound_id, payload=payload)
    return unwrap_or_problem(res)
