"""
Domain order state machine.

Pure functions only: given the persisted status and an event, compute the next
status and the side effects the caller should run. Nothing here touches the
database or a provider, so idempotency decisions can be tested without I/O.

    pending_payment → payment_completed → registering → registered
        → dns_configuring → dns_active → ready → published ⇄ unpublished
    (any non-terminal) → failed
"""
import enum
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from app.core.exceptions import InvalidTransition
from app.models.domain_order import OrderStatus


class OrderEvent(str, enum.Enum):
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    PURCHASE_STARTED = "purchase_started"
    PURCHASE_SUCCEEDED = "purchase_succeeded"
    DNS_PROVISIONED = "dns_provisioned"
    DNS_PROPAGATED = "dns_propagated"
    SSL_ACTIVATED = "ssl_activated"
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"
    FAILED = "failed"


class Effect(str, enum.Enum):
    PURCHASE_DOMAIN = "purchase_domain"
    PROVISION_DNS = "provision_dns"
    NOTIFY_FAILURE = "notify_failure"


@dataclass(frozen=True)
class Transition:
    previous: OrderStatus
    status: OrderStatus
    effects: Tuple[Effect, ...] = ()

    @property
    def changed(self) -> bool:
        return self.previous != self.status


S = OrderStatus
E = OrderEvent

_TABLE: Dict[Tuple[OrderStatus, OrderEvent], Tuple[OrderStatus, Tuple[Effect, ...]]] = {
    (S.PENDING_PAYMENT, E.PAYMENT_SUCCEEDED): (S.PAYMENT_COMPLETED, (Effect.PURCHASE_DOMAIN,)),
    (S.PENDING_PAYMENT, E.PAYMENT_FAILED): (S.FAILED, (Effect.NOTIFY_FAILURE,)),
    (S.PAYMENT_COMPLETED, E.PURCHASE_STARTED): (S.REGISTERING, ()),
    (S.REGISTERING, E.PURCHASE_SUCCEEDED): (S.REGISTERED, (Effect.PROVISION_DNS,)),
    (S.REGISTERED, E.DNS_PROVISIONED): (S.DNS_CONFIGURING, ()),
    (S.DNS_CONFIGURING, E.DNS_PROPAGATED): (S.DNS_ACTIVE, ()),
    (S.DNS_ACTIVE, E.SSL_ACTIVATED): (S.READY, ()),
    (S.READY, E.PUBLISHED): (S.PUBLISHED, ()),
    (S.UNPUBLISHED, E.PUBLISHED): (S.PUBLISHED, ()),
    (S.PUBLISHED, E.UNPUBLISHED): (S.UNPUBLISHED, ()),
}

# Provisioning is finished (or abandoned) in these; FAILED cannot be entered from them.
TERMINAL_STATUSES = frozenset({S.FAILED, S.READY, S.PUBLISHED, S.UNPUBLISHED})

# Forward order of the lifecycle, used for "registered or later" checks.
_RANK = {
    S.PENDING_PAYMENT: 0,
    S.PAYMENT_COMPLETED: 1,
    S.REGISTERING: 2,
    S.REGISTERED: 3,
    S.DNS_CONFIGURING: 4,
    S.DNS_ACTIVE: 5,
    S.READY: 6,
    S.PUBLISHED: 7,
    S.UNPUBLISHED: 7,
}


def transition(current: OrderStatus, event: OrderEvent) -> Transition:
    current = OrderStatus(current)
    event = OrderEvent(event)

    if event is E.FAILED:
        if current in TERMINAL_STATUSES:
            raise InvalidTransition(current, event)
        return Transition(current, S.FAILED, (Effect.NOTIFY_FAILURE,))

    try:
        nxt, effects = _TABLE[(current, event)]
    except KeyError:
        raise InvalidTransition(current, event) from None
    return Transition(current, nxt, effects)


def can_transition(current: OrderStatus, event: OrderEvent) -> bool:
    try:
        transition(current, event)
    except InvalidTransition:
        return False
    return True


def is_registered_or_later(status: OrderStatus) -> bool:
    status = OrderStatus(status)
    if status is S.FAILED:
        return False
    return _RANK[status] >= _RANK[S.REGISTERED]


def resume_effect(status: OrderStatus) -> Optional[Effect]:
    """Effect needed to continue provisioning from a persisted status.

    Purchase is only pending before ``registered``; once the registrar
    confirmation is stored it is never requested again.
    """
    status = OrderStatus(status)
    if status in (S.PAYMENT_COMPLETED, S.REGISTERING):
        return Effect.PURCHASE_DOMAIN
    if status is S.REGISTERED:
        return Effect.PROVISION_DNS
    return None


def allowed_events(current: OrderStatus) -> Tuple[OrderEvent, ...]:
    current = OrderStatus(current)
    events = [event for (status, event) in _TABLE if status is current]
    if current not in TERMINAL_STATUSES:
        events.append(E.FAILED)
    return tuple(events)
