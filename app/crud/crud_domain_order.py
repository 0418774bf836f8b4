"""
Domain order store.

Single access point for the ``domainorder`` and ``paymentevent`` tables. Every
mutating call is one transaction over one row, loaded with SELECT ... FOR
UPDATE so that status checks and writes cannot interleave with another worker.
Returned objects are detached snapshots; callers never hold a session.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.core.exceptions import Conflict, InvalidTransition, NotFound, PreconditionFailed
from app.models.domain_order import DnsStatus, DomainOrder, OrderStatus, SslStatus
from app.models.payment_event import PaymentEvent
from app.services.order_state import (
    OrderEvent,
    Transition,
    allowed_events,
    can_transition,
    is_registered_or_later,
    transition,
)

logger = logging.getLogger("domainpub.store")


def normalize_domain(name: str) -> str:
    return (name or "").strip().rstrip(".").lower()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def publish_blockers(order: DomainOrder) -> List[str]:
    """Reasons an order cannot be published right now (empty list = publishable)."""
    reasons = []
    if not is_registered_or_later(order.status):
        reasons.append(f"domain is not registered (status={order.status})")
    if order.dns_status != DnsStatus.ACTIVE.value:
        reasons.append(f"DNS is not active (dns_status={order.dns_status})")
    if order.persona_id is None:
        reasons.append("no persona is bound")
    return reasons


@dataclass(frozen=True)
class RecordedPaymentEvent:
    created: bool
    order: Optional[DomainOrder] = None
    transition: Optional[Transition] = None


class DomainOrderStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ── plumbing ──

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _locked(db: Session, order_id: int) -> DomainOrder:
        order = (
            db.query(DomainOrder)
            .filter(DomainOrder.id == order_id)
            .with_for_update()
            .first()
        )
        if not order:
            raise NotFound(f"Domain order {order_id} not found")
        return order

    @staticmethod
    def _snapshot(db: Session, order: DomainOrder) -> DomainOrder:
        db.flush()
        db.refresh(order)
        return order

    @staticmethod
    def _apply(order: DomainOrder, event: OrderEvent, error_msg: Optional[str] = None) -> Transition:
        t = transition(OrderStatus(order.status), event)
        order.status = t.status.value
        if t.status is OrderStatus.FAILED:
            order.failure_reason = error_msg
        if error_msg:
            order.last_error_message = error_msg
        logger.info(
            "Order %s: %s --%s--> %s", order.id, t.previous.value, OrderEvent(event).value, t.status.value
        )
        return t

    # ── reads ──

    def get(self, order_id: int) -> Optional[DomainOrder]:
        with self._transaction() as db:
            return db.query(DomainOrder).filter(DomainOrder.id == order_id).first()

    def find_by_domain(self, name: str) -> Optional[DomainOrder]:
        with self._transaction() as db:
            return (
                db.query(DomainOrder)
                .filter(func.lower(DomainOrder.domain) == normalize_domain(name))
                .first()
            )

    def list_for_account(self, account_id: str) -> List[DomainOrder]:
        with self._transaction() as db:
            return (
                db.query(DomainOrder)
                .filter(DomainOrder.account_id == account_id)
                .order_by(DomainOrder.created_at.desc(), DomainOrder.id.desc())
                .all()
            )

    def list_by_status(
        self,
        statuses: Iterable[OrderStatus],
        limit: int = 100,
        updated_before: Optional[datetime] = None,
    ) -> List[DomainOrder]:
        values = [OrderStatus(s).value for s in statuses]
        with self._transaction() as db:
            query = db.query(DomainOrder).filter(DomainOrder.status.in_(values))
            if updated_before is not None:
                query = query.filter(DomainOrder.updated_at <= updated_before)
            return (
                query
                .order_by(DomainOrder.updated_at.asc(), DomainOrder.id.asc())
                .limit(limit)
                .all()
            )

    def lookup_published(self, name: str) -> Optional[DomainOrder]:
        with self._transaction() as db:
            return (
                db.query(DomainOrder)
                .filter(
                    func.lower(DomainOrder.domain) == normalize_domain(name),
                    DomainOrder.is_published.is_(True),
                    DomainOrder.persona_id.isnot(None),
                )
                .first()
            )

    # ── writes ──

    def create(self, order: DomainOrder) -> DomainOrder:
        order.domain = normalize_domain(order.domain)
        order.status = OrderStatus.PENDING_PAYMENT.value
        order.dns_status = DnsStatus.PENDING.value
        order.ssl_status = SslStatus.PENDING.value
        order.is_published = False
        try:
            with self._transaction() as db:
                exists = (
                    db.query(DomainOrder.id)
                    .filter(func.lower(DomainOrder.domain) == order.domain)
                    .first()
                )
                if exists:
                    raise Conflict(f"Domain {order.domain} already has an order")
                db.add(order)
                return self._snapshot(db, order)
        except IntegrityError:
            raise Conflict(f"Domain {order.domain} already has an order") from None

    def apply_event(self, order_id: int, event: OrderEvent, error_msg: Optional[str] = None) -> Transition:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            return self._apply(order, event, error_msg)

    def update_status(self, order_id: int, status: OrderStatus, error_msg: Optional[str] = None) -> DomainOrder:
        """Move an order to ``status`` along a legal edge; re-setting the current status is a no-op."""
        target = OrderStatus(status)
        with self._transaction() as db:
            order = self._locked(db, order_id)
            current = OrderStatus(order.status)
            if current is not target:
                for event in allowed_events(current):
                    if transition(current, event).status is target:
                        self._apply(order, event, error_msg)
                        break
                else:
                    raise InvalidTransition(current, target)
            elif error_msg:
                order.last_error_message = error_msg
            return self._snapshot(db, order)

    def record_purchase(
        self,
        order_id: int,
        confirmation_id: Optional[str],
        price_snapshot: Optional[Decimal] = None,
        expires_at: Optional[datetime] = None,
    ) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            self._apply(order, OrderEvent.PURCHASE_SUCCEEDED)
            order.registrar_order_id = confirmation_id
            order.purchase_price_snapshot = price_snapshot
            order.registration_date = _now()
            order.expiration_date = expires_at
            order.last_error_message = None
            return self._snapshot(db, order)

    def update_dns_config(
        self,
        order_id: int,
        *,
        zone_id: Optional[str] = None,
        nameservers: Optional[Sequence[str]] = None,
        dns_status: Optional[DnsStatus] = None,
        ssl_status: Optional[SslStatus] = None,
        target_host: Optional[str] = None,
        error_msg: Optional[str] = None,
        event: Optional[OrderEvent] = None,
    ) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            if zone_id is not None:
                order.dns_zone_id = zone_id
            if nameservers is not None:
                order.nameservers = list(nameservers)
            if dns_status is not None:
                order.dns_status = DnsStatus(dns_status).value
            if ssl_status is not None:
                order.ssl_status = SslStatus(ssl_status).value
            if target_host is not None:
                order.target_host = target_host
            order.dns_error_message = error_msg
            if event is not None:
                self._apply(order, event, error_msg)
            return self._snapshot(db, order)

    def record_status_check(
        self,
        order_id: int,
        *,
        dns_status: DnsStatus,
        ssl_status: SslStatus,
        dns_error: Optional[str] = None,
        ssl_error: Optional[str] = None,
    ) -> DomainOrder:
        """Persist a propagation/SSL check and advance dns_configuring → dns_active → ready."""
        with self._transaction() as db:
            order = self._locked(db, order_id)
            now = _now()
            order.dns_status = DnsStatus(dns_status).value
            order.ssl_status = SslStatus(ssl_status).value
            order.last_dns_check = now
            order.last_ssl_check = now
            order.dns_error_message = dns_error
            order.ssl_error_message = ssl_error

            status = OrderStatus(order.status)
            if status is OrderStatus.DNS_CONFIGURING and order.dns_status == DnsStatus.ACTIVE.value:
                status = self._apply(order, OrderEvent.DNS_PROPAGATED).status
            if (
                status is OrderStatus.DNS_ACTIVE
                and order.dns_status == DnsStatus.ACTIVE.value
                and order.ssl_status == SslStatus.ACTIVE.value
            ):
                self._apply(order, OrderEvent.SSL_ACTIVATED)
            return self._snapshot(db, order)

    def fail(
        self,
        order_id: int,
        reason: str,
        *,
        dns_status: Optional[DnsStatus] = None,
        ssl_status: Optional[SslStatus] = None,
    ) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            self._apply(order, OrderEvent.FAILED, reason)
            if dns_status is not None:
                order.dns_status = DnsStatus(dns_status).value
                order.dns_error_message = reason
            if ssl_status is not None:
                order.ssl_status = SslStatus(ssl_status).value
                order.ssl_error_message = reason
            return self._snapshot(db, order)

    # ── processing claim ──

    def claim_processing(self, order_id: int, owner: str, lease_seconds: int) -> bool:
        """Take the durable per-order claim with a single conditional UPDATE.

        Succeeds when nobody holds the claim, when ``owner`` already holds it,
        or when the previous holder's lease has run out (a crashed worker).
        Returns False when another live worker holds it or the order is missing.
        """
        now = _now()
        with self._transaction() as db:
            rows = (
                db.query(DomainOrder)
                .filter(
                    DomainOrder.id == order_id,
                    or_(
                        DomainOrder.processing_owner.is_(None),
                        DomainOrder.processing_owner == owner,
                        DomainOrder.processing_expires_at < now,
                    ),
                )
                .update(
                    {
                        DomainOrder.processing_owner: owner,
                        DomainOrder.processing_expires_at: now + timedelta(seconds=lease_seconds),
                    },
                    synchronize_session=False,
                )
            )
        return rows == 1

    def release_processing(self, order_id: int, owner: str) -> None:
        with self._transaction() as db:
            (
                db.query(DomainOrder)
                .filter(DomainOrder.id == order_id, DomainOrder.processing_owner == owner)
                .update(
                    {DomainOrder.processing_owner: None, DomainOrder.processing_expires_at: None},
                    synchronize_session=False,
                )
            )

    # ── binding / publishing ──

    def bind_persona(self, order_id: int, persona_id: int) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            order.persona_id = persona_id
            return self._snapshot(db, order)

    def unbind_persona(self, order_id: int) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            order.persona_id = None
            self._clear_published(order)
            return self._snapshot(db, order)

    def publish(self, order_id: int) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            # Preconditions re-checked under the row lock
            blockers = publish_blockers(order)
            if blockers:
                raise PreconditionFailed("Cannot publish: " + "; ".join(blockers))
            if order.is_published:
                return self._snapshot(db, order)
            order.is_published = True
            order.published_at = _now()
            if can_transition(OrderStatus(order.status), OrderEvent.PUBLISHED):
                self._apply(order, OrderEvent.PUBLISHED)
            return self._snapshot(db, order)

    def unpublish(self, order_id: int) -> DomainOrder:
        with self._transaction() as db:
            order = self._locked(db, order_id)
            self._clear_published(order)
            return self._snapshot(db, order)

    def _clear_published(self, order: DomainOrder) -> None:
        order.is_published = False
        order.published_at = None
        if can_transition(OrderStatus(order.status), OrderEvent.UNPUBLISHED):
            self._apply(order, OrderEvent.UNPUBLISHED)

    # ── payment idempotency markers ──

    def has_payment_event(self, event_id: str) -> bool:
        with self._transaction() as db:
            return (
                db.query(PaymentEvent.id).filter(PaymentEvent.event_id == event_id).first()
                is not None
            )

    def record_payment_event(
        self,
        event_id: str,
        event_type: str,
        order_id: Optional[int],
        event: Optional[OrderEvent] = None,
        error_msg: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> RecordedPaymentEvent:
        """Insert the idempotency marker and apply ``event`` to the order atomically.

        Returns ``created=False`` when the marker already existed; nothing is
        changed in that case. An order that has already moved past the event
        (e.g. a second event type for the same payment) keeps its status.
        """
        try:
            with self._transaction() as db:
                if db.query(PaymentEvent.id).filter(PaymentEvent.event_id == event_id).first():
                    return RecordedPaymentEvent(created=False)

                db.add(PaymentEvent(event_id=event_id, event_type=event_type, order_id=order_id))

                order = None
                applied = None
                if order_id is not None:
                    order = self._locked(db, order_id)
                    if payment_intent_id:
                        order.stripe_payment_intent_id = payment_intent_id
                    if event is not None:
                        if can_transition(OrderStatus(order.status), event):
                            applied = self._apply(order, event, error_msg)
                        else:
                            logger.info(
                                "Payment event %s (%s) leaves order %s at %s",
                                event_id, event_type, order_id, order.status,
                            )
                    order = self._snapshot(db, order)
                else:
                    db.flush()
                return RecordedPaymentEvent(created=True, order=order, transition=applied)
        except IntegrityError:
            # Concurrent delivery inserted the same event id first
            logger.info("Payment event %s already recorded by a concurrent delivery", event_id)
            return RecordedPaymentEvent(created=False)
