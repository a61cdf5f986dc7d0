# wmsgrn/api/routers/returns.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.routers.action_helpers import unwrap_or_problem
from wmsgrn.db.session import get_session
from wmsgrn.schemas.vendor_return import ReturnCreateIn, ReturnDecisionIn, VendorReturnListOut, VendorReturnOut
from wmsgrn.services.action_runner import run_action
from wmsgrn.services.vendor_return_service import (
    approve_return,
    complete_return,
    create_return,
    get_return,
    keep_return_items,
    list_returns,
    mark_return_sent,
    reject_return,
    submit_return,
)

router = APIRouter(prefix="/returns", tags=["returns"])


@router.post("/", response_model=VendorReturnOut, status_code=status.HTTP_201_CREATED)
async def create_return_endpoint(
    payload: ReturnCreateIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    res = await run_action(session, "return.create", create_return, payload=payload)
    return unwrap_or_problem(res)


@router.get("/", response_model=VendorReturnListOut)
async def list_returns_endpoint(
    session: AsyncSession = Depends(get_session),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: str = Query(""),
    status_: str = Query("", alias="status"),
) -> VendorReturnListOut:
    return await list_returns(session, page=page, limit=limit, search=search, status=status_)


@router.get("/{return_id}", response_model=VendorReturnOut)
async def get_return_endpoint(
    return_id: int,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    return await get_return(session, return_id=return_id)


@router.post("/{return_id}/submit", response_model=VendorReturnOut)
async def submit_return_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """DRAFT → PENDING_APPROVAL"""
    res = await run_action(session, "return.submit", submit_return, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{return_id}/approve", response_model=VendorReturnOut)
async def approve_return_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """PENDING_APPROVAL → APPROVED"""
    res = await run_action(session, "return.approve", approve_return, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{return_id}/reject", response_model=VendorReturnOut)
async def reject_return_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """PENDING_APPROVAL → REJECTED（需备注）"""
    res = await run_action(session, "return.reject", reject_return, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{return_id}/send", response_model=VendorReturnOut)
async def mark_return_sent_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """APPROVED → SENT_TO_VENDOR"""
    res = await run_action(session, "return.send", mark_return_sent, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{return_id}/complete", response_model=VendorReturnOut)
async def complete_return_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """SENT_TO_VENDOR → COMPLETED，在库件数 RETURN_OUT 出库"""
    res = await run_action(session, "return.complete", complete_return, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)


@router.post("/{return_id}/keep", response_model=VendorReturnOut)
async def keep_return_items_endpoint(
    return_id: int,
    payload: ReturnDecisionIn,
    session: AsyncSession = Depends(get_session),
) -> VendorReturnOut:
    """放弃退货：任意非终态 → COMPLETED，未入库件数 ADJUSTMENT_IN 补入"""
    res = await run_action(session, "return.keep", keep_return_items, return_id=return_id, payload=payload)
    return unwrap_or_problem(res)
