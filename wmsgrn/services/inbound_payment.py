# wmsgrn/services/inbound_payment.py
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from wmsgrn.api.errors import InvalidStateError, ValidationFailedError
from wmsgrn.core.config import get_settings
from wmsgrn.models.enums import InboundStatus
from wmsgrn.models.inbound import Inbound
from wmsgrn.schemas.inbound import InboundOut, InboundPaymentIn
from wmsgrn.services.event_bus import stage_event
from wmsgrn.services.inbound_query import get_inbound

logger = logging.getLogger("wmsgrn.inbound")

_APPROVABLE = {InboundStatus.VERIFIED.value, InboundStatus.COMPLETED.value}
_PAYABLE = {InboundStatus.READY_FOR_PAYMENT.value, InboundStatus.COMPLETED.value}


def _require_payment_vendor(inbound: Inbound) -> None:
    allowed = {x.upper() for x in get_settings().PAYMENT_VENDOR_TYPES}
    vtype = (inbound.vendor.vendor_type or "").upper()
    if vtype not in allowed:
        raise InvalidStateError(
            f"vendor type {vtype or '-'} is not eligible for inbound payment",
            context={"inbound_id": inbound.id, "vendor_type": vtype, "allowed": sorted(allowed)},
        )


async def approve_for_payment(session: AsyncSession, *, inbound_id: int, user_id: int) -> InboundOut:
    """VERIFIED / COMPLETED → READY_FOR_PAYMENT（仅 SPK 类供应商）"""
    inbound = await get_inbound(session, inbound_id=inbound_id, for_update=True)
    _require_payment_vendor(inbound)
    if inbound.status not in _APPROVABLE:
        raise InvalidStateError(
            f"inbound {inbound.grn_number} is {inbound.status}, cannot approve for payment",
            context={"inbound_id": inbound.id, "status": inbound.status},
        )

    inbound.status = InboundStatus.READY_FOR_PAYMENT.value
    await session.flush()

    stage_event(
        session,
        "INBOUND_PAYMENT_UPDATED",
        ref=inbound.grn_number,
        meta={"inbound_id": inbound.id, "status": inbound.status, "user_id": int(user_id)},
    )
    logger.info("inbound approved for payment: grn=%s by=%s", inbound.grn_number, user_id)
    return InboundOut.model_validate(inbound)


async def process_payment(session: AsyncSession, *, inbound_id: int, payload: InboundPaymentIn) -> InboundOut:
    """READY_FOR_PAYMENT / COMPLETED → PAID，记录金额、日期、凭证路径。"""
    if payload.payment_amount <= 0:
        raise ValidationFailedError("payment_amount must be > 0")

    inbound = await get_inbound(session, inbound_id=inbound_id, for_update=True)
    _require_payment_vendor(inbound)
    if inbound.status not in _PAYABLE:
        raise InvalidStateError(
            f"inbound {inbound.grn_number} is {inbound.status}, cannot record payment",
            context={"inbound_id": inbound.id, "status": inbound.status},
        )

    inbound.status = InboundStatus.PAID.value
    inbound.payment_amount = payload.payment_amount
    inbound.payment_date = payload.payment_date
    inbound.payment_proof_url = payload.payment_proof_url
    await session.flush()

    stage_event(
        session,
        "INBOUND_PAYMENT_UPDATED",
        ref=inbound.grn_number,
        meta={"inbound_id": inbound.id, "status": inbound.status, "user_id": int(payload.user_id)},
    )
    logger.info("inbound paid: grn=%s amount=%s by=%s", inbound.grn_number, payload.payment_amount, payload.user_id)
    return InboundOut.model_validate(inbound)
