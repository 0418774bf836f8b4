"""
Stripe webhook receiver.

Verifies the Stripe-Signature header, de-duplicates by event id and records the
idempotency marker in the same transaction that moves the order to
``payment_completed``. Provisioning is dispatched afterwards and its outcome is
never reflected in the webhook response: a failing purchase must not make
Stripe redeliver and retry the purchase.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import stripe

from app.config import settings
from app.core.exceptions import NotFound, SignatureRejected
from app.crud.crud_domain_order import DomainOrderStore
from app.logging_config import order_id_ctx
from app.models.domain_order import OrderStatus
from app.services.order_state import OrderEvent

logger = logging.getLogger("domainpub.webhook")

SUCCEEDED_EVENTS = ("payment_intent.succeeded", "checkout.session.completed")
FAILED_EVENTS = ("payment_intent.payment_failed",)


@dataclass(frozen=True)
class WebhookAck:
    event_id: str
    event_type: str
    order_id: Optional[int] = None
    duplicate: bool = False
    ignored: bool = False


def _extract_order_id(obj: Dict[str, Any]) -> Optional[int]:
    metadata = obj.get("metadata") or {}
    raw = metadata.get("orderId") or metadata.get("order_id")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _payment_intent_id(obj: Dict[str, Any]) -> Optional[str]:
    # checkout.session objects reference the intent; payment_intent objects are the intent
    return obj.get("payment_intent") or obj.get("id")


def _paid_amount(obj: Dict[str, Any]) -> Optional[int]:
    for key in ("amount_received", "amount", "amount_total"):
        if obj.get(key) is not None:
            return int(obj[key])
    return None


class PaymentEventReceiver:
    def __init__(
        self,
        store: DomainOrderStore,
        dispatch: Callable[[int], Any],
        webhook_secret: Optional[str] = None,
        tolerance: Optional[int] = None,
    ):
        self.store = store
        self.dispatch = dispatch
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE

    def verify(self, raw_payload: bytes, signature_header: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise SignatureRejected("Webhook secret is not configured")
        try:
            payload = raw_payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload, signature_header or "", self.webhook_secret, self.tolerance
            )
            event = json.loads(payload)
        except stripe.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise SignatureRejected("Invalid webhook signature") from e
        except (UnicodeDecodeError, ValueError) as e:
            raise SignatureRejected("Malformed webhook payload") from e

        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise SignatureRejected("Malformed webhook payload")
        return event

    def handle(self, raw_payload: bytes, signature_header: str) -> WebhookAck:
        event = self.verify(raw_payload, signature_header)
        event_id = event["id"]
        event_type = event["type"]
        obj = (event.get("data") or {}).get("object") or {}
        order_id = _extract_order_id(obj)

        if event_type not in SUCCEEDED_EVENTS + FAILED_EVENTS:
            logger.info("Ignoring webhook %s of type %s", event_id, event_type)
            return WebhookAck(event_id, event_type, order_id, ignored=True)
        if order_id is None:
            logger.warning("Webhook %s (%s) carries no orderId metadata", event_id, event_type)
            return WebhookAck(event_id, event_type, ignored=True)

        if self.store.has_payment_event(event_id):
            logger.info("Webhook %s already processed; skipping", event_id)
            return WebhookAck(event_id, event_type, order_id, duplicate=True)

        token = order_id_ctx.set(str(order_id))
        try:
            return self._record_and_dispatch(event_id, event_type, order_id, obj)
        finally:
            order_id_ctx.reset(token)

    def _record_and_dispatch(
        self, event_id: str, event_type: str, order_id: int, obj: Dict[str, Any]
    ) -> WebhookAck:
        order = self.store.get(order_id)
        if order is None:
            logger.error("Webhook %s references unknown order %s", event_id, order_id)
            return WebhookAck(event_id, event_type, order_id, ignored=True)

        order_event = OrderEvent.PAYMENT_SUCCEEDED
        error_msg = None
        if event_type in FAILED_EVENTS:
            order_event = OrderEvent.PAYMENT_FAILED
            error_msg = "payment failed"
        else:
            paid = _paid_amount(obj)
            if paid is not None and paid != order.total_price:
                order_event = OrderEvent.FAILED
                error_msg = f"payment amount mismatch: expected {order.total_price}, got {paid}"
                logger.error("Order %s: %s", order_id, error_msg)

        try:
            recorded = self.store.record_payment_event(
                event_id,
                event_type,
                order_id,
                event=order_event,
                error_msg=error_msg,
                payment_intent_id=_payment_intent_id(obj),
            )
        except NotFound:
            logger.error("Webhook %s references unknown order %s", event_id, order_id)
            return WebhookAck(event_id, event_type, order_id, ignored=True)

        if not recorded.created:
            return WebhookAck(event_id, event_type, order_id, duplicate=True)

        if recorded.order is not None and OrderStatus(recorded.order.status) in (
            OrderStatus.PAYMENT_COMPLETED,
            OrderStatus.REGISTERING,
            OrderStatus.REGISTERED,
        ):
            try:
                self.dispatch(order_id)
            except Exception:
                # Marker is durable; the reconcile poller resumes the order
                logger.exception("Provisioning dispatch for order %s raised", order_id)

        return WebhookAck(event_id, event_type, order_id)
