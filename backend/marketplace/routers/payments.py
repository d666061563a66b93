"""Payment gateway notifications."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.responses import PlainTextResponse

from marketplace.core.config import Settings, get_settings
from marketplace.services import BookingLifecycleManager, get_booking_manager
from marketplace.services.payments import verify_tpay_checksum

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def is_paid_notification(tr_status: str, tr_paid: Optional[str], tr_amount: str) -> bool:
    """tr_status TRUE alone is not enough when the gateway also reports tr_paid.

    tr_paid is either the paid flag ("1") or the amount actually paid.
    """
    if tr_status.strip().upper() != "TRUE":
        return False
    if tr_paid is None:
        return True
    return tr_paid.strip() in ("1", tr_amount.strip())


@router.post("/webhook", response_class=PlainTextResponse)
async def tpay_webhook(
    id: str = Form(...),
    tr_id: str = Form(...),
    tr_amount: str = Form(...),
    tr_crc: str = Form(...),
    md5sum: str = Form(...),
    tr_status: str = Form(...),
    tr_paid: Optional[str] = Form(None),
    tr_error: Optional[str] = Form(None),
    manager: BookingLifecycleManager = Depends(get_booking_manager),
    settings: Settings = Depends(get_settings),
):
    """T-Pay transaction notification.

    tr_crc carries the booking id sent as the payment reference. A paid
    notification (tr_status TRUE and, when sent, a matching tr_paid) moves
    the hold to pending. Anything else counts a failed attempt and leaves
    the hold to expire.
    """
    if not settings.tpay_api_key:
        logger.error("[PAYMENT] Webhook received but TPAY_API_KEY is not configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Payments not configured")

    if not verify_tpay_checksum(id, tr_id, tr_amount, tr_crc, md5sum, settings.tpay_api_key):
        logger.warning(f"[PAYMENT] Invalid checksum for transaction {tr_id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid checksum")

    try:
        booking_id = UUID(tr_crc)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    paid = is_paid_notification(tr_status, tr_paid, tr_amount)
    if not paid and tr_error:
        logger.info(f"[PAYMENT] Transaction {tr_id} failed: {tr_error}")

    await manager.record_payment(
        booking_id,
        transaction_id=tr_id,
        amount=tr_amount,
        paid=paid,
    )
    return "TRUE"
