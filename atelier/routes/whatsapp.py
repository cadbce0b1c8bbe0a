# ==== WHATSAPP WEBHOOK ROUTES ==== #

"""
WhatsApp Cloud API webhook.

``GET`` answers Meta's subscription handshake. ``POST`` receives inbound
messages; every confirmation reply is handed to the correlator. The endpoint
always acknowledges with 200 once the payload parsed, errors of individual
replies are logged and reported in the body.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from atelier.errors import FulfillmentError
from atelier.observability.logging import get_logger
from atelier.observability.tracing import get_tracer
from atelier.schemas.whatsapp import WebhookPayload, extract_replies
from atelier.services.confirmation import ConfirmationCorrelator
from atelier.services.registry import build_confirmation_correlator
from atelier.settings import settings


router = APIRouter()
tracer = get_tracer(__name__)
logger = get_logger(__name__)


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Optional[str] = Query(None, alias="hub.mode"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
) -> str:
    """
    Meta webhook verification handshake.

    Raises:
        HTTPException: 403 if the mode or verify token does not match
    """
    if mode == "subscribe" and settings.WHATSAPP_VERIFY_TOKEN and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("WhatsApp webhook verified")
        return challenge or ""

    logger.warning("WhatsApp webhook verification failed", mode=mode)
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/webhook")
async def receive_webhook(
    payload: WebhookPayload,
    correlator: ConfirmationCorrelator = Depends(build_confirmation_correlator),
) -> Dict[str, Any]:
    """
    Handle inbound WhatsApp messages.

    Args:
        payload: Webhook notification body
        correlator: Confirmation correlator dependency

    Returns:
        Dict[str, Any]: Counts of received, matched, ignored and failed replies
    """
    replies = extract_replies(payload)
    summary = {"received": len(replies), "matched": 0, "ignored": 0, "failed": 0}

    with tracer.start_as_current_span("whatsapp_webhook") as span:
        span.set_attribute("replies", len(replies))

        for reply in replies:
            try:
                outcome = await correlator.handle_reply(reply)
            except FulfillmentError as e:
                summary["failed"] += 1
                logger.error(
                    "Reply handling failed",
                    reply_id=reply.reply_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            if outcome.matched:
                summary["matched"] += 1
            else:
                summary["ignored"] += 1

    return {"status": "ok", **summary}
