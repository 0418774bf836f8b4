"""
Stripe webhook endpoint.

Always answers 200 once the event is verified and recorded, whatever the
provisioning outcome; only a bad signature or payload is rejected (400).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from app.api import deps
from app.schemas.domain_order import WebhookReceipt
from app.services.container import Services

router = APIRouter()
logger = logging.getLogger("domainpub.webhook")


@router.post("/stripe", response_model=WebhookReceipt)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(default="", alias="Stripe-Signature"),
    services: Services = Depends(deps.get_services),
) -> Any:
    payload = await request.body()
    # Provisioning may run inline and block on provider I/O
    ack = await run_in_threadpool(services.receiver.handle, payload, stripe_signature)
    if ack.ignored:
        logger.debug("Webhook %s (%s) acknowledged without action", ack.event_id, ack.event_type)
    return WebhookReceipt(received=True, duplicate=ack.duplicate)
