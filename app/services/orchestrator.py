"""
Domain Provisioning Orchestrator

Runs the side effects that app.services.order_state asks for:

  PURCHASE_DOMAIN  → re-fetch price, buy at the registrar, store confirmation
  PROVISION_DNS    → zone + nameserver delegation + CNAMEs + SSL
  NOTIFY_FAILURE   → log for refund review / notify listeners

``advance`` is driven by payment events and by the reconcile poller;
``check_status`` is the separate propagation/SSL poll. Both serialize per
order id twice over: an in-process lock, then a durable claim on the order row
that other processes (uvicorn workers, Celery workers, the poller) respect. A
caller that loses the claim returns the current snapshot without side effects.
"""
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.exceptions import (
    InvalidTransition,
    NotAvailable,
    NotFound,
    PriceChanged,
    ProviderError,
    ProviderPermanent,
)
from app.crud.crud_domain_order import DomainOrderStore
from app.logging_config import order_id_ctx
from app.models.domain_order import DnsStatus, DomainOrder, OrderStatus, SslStatus
from app.services.order_state import Effect, OrderEvent, resume_effect
from app.services.provisioner import Provisioner, SslState
from app.services.registrar import ContactInfo, PriceBand, PurchaseResult, Registrar

logger = logging.getLogger("domainpub.orchestrator")

RESUMABLE_STATUSES = (
    OrderStatus.PAYMENT_COMPLETED,
    OrderStatus.REGISTERING,
    OrderStatus.REGISTERED,
)

CHECKABLE_STATUSES = (
    OrderStatus.DNS_CONFIGURING,
    OrderStatus.DNS_ACTIVE,
    OrderStatus.READY,
    OrderStatus.PUBLISHED,
    OrderStatus.UNPUBLISHED,
)

_SSL_STATUS = {
    SslState.ACTIVE: SslStatus.ACTIVE,
    SslState.PROVISIONING: SslStatus.PROVISIONING,
    SslState.ERROR: SslStatus.ERROR,
}


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class OrderLocks:
    """In-process mutual exclusion keyed by order id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = defaultdict(int)

    @contextmanager
    def hold(self, order_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(order_id, threading.Lock())
            self._users[order_id] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[order_id] -= 1
                if self._users[order_id] == 0:
                    del self._users[order_id]
                    self._locks.pop(order_id, None)


class _ProvisioningFailed(Exception):
    def __init__(self, cause: ProviderError, stage: str):
        super().__init__(str(cause))
        self.cause = cause
        self.stage = stage


class DomainOrchestrator:
    def __init__(
        self,
        store: DomainOrderStore,
        registrar: Registrar,
        provisioner: Provisioner,
        *,
        cname_target: Optional[str] = None,
        retry_attempts: Optional[int] = None,
        retry_min_wait: Optional[float] = None,
        retry_max_wait: Optional[float] = None,
        price_tolerance_percent: Optional[float] = None,
        contact: Optional[ContactInfo] = None,
        locks: Optional[OrderLocks] = None,
        lease_seconds: Optional[int] = None,
        reconcile_stale_seconds: Optional[int] = None,
    ):
        self.store = store
        self.registrar = registrar
        self.provisioner = provisioner
        self.cname_target = cname_target or settings.CNAME_TARGET_HOST
        self.retry_attempts = retry_attempts or settings.PROVIDER_RETRY_ATTEMPTS
        self.retry_min_wait = settings.PROVIDER_RETRY_MIN_WAIT if retry_min_wait is None else retry_min_wait
        self.retry_max_wait = settings.PROVIDER_RETRY_MAX_WAIT if retry_max_wait is None else retry_max_wait
        tolerance = settings.PRICE_TOLERANCE_PERCENT if price_tolerance_percent is None else price_tolerance_percent
        self.price_tolerance = Decimal(str(tolerance))
        self.contact = contact
        self.locks = locks or OrderLocks()
        self.lease_seconds = lease_seconds or settings.PROCESSING_LEASE_SECONDS
        self.reconcile_stale_seconds = (
            settings.RECONCILE_STALE_SECONDS if reconcile_stale_seconds is None else reconcile_stale_seconds
        )
        self.failure_listeners: List[Callable[[DomainOrder, str], None]] = []

    # ── retry plumbing ──

    def _retrying(self, description: str) -> Retrying:
        def _log_retry(retry_state):
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                description,
                retry_state.attempt_number,
                self.retry_attempts,
                retry_state.outcome.exception(),
            )

        return Retrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_min_wait, min=self.retry_min_wait, max=self.retry_max_wait),
            before_sleep=_log_retry,
            reraise=True,
        )

    def _call(self, description: str, fn: Callable, *args, **kwargs):
        return self._retrying(description)(fn, *args, **kwargs)

    # ── public entry points ──

    @contextmanager
    def _claimed(self, order_id: int) -> Iterator[bool]:
        """Hold the durable per-order claim for the duration of one step."""
        owner = uuid.uuid4().hex
        claimed = self.store.claim_processing(order_id, owner, self.lease_seconds)
        try:
            yield claimed
        finally:
            if claimed:
                self.store.release_processing(order_id, owner)

    def advance(self, order_id: int) -> DomainOrder:
        """Run every pending provisioning step for the order, resuming from its persisted status."""
        token = order_id_ctx.set(str(order_id))
        try:
            with self.locks.hold(order_id), self._claimed(order_id) as claimed:
                if not claimed:
                    logger.info("Order %s is being processed by another worker; not advancing", order_id)
                    return self._get(order_id)
                return self._advance_locked(order_id)
        finally:
            order_id_ctx.reset(token)

    def check_status(self, order_id: int) -> DomainOrder:
        """Poll DNS propagation and SSL; promote the order to dns_active / ready when both are live."""
        token = order_id_ctx.set(str(order_id))
        try:
            with self.locks.hold(order_id), self._claimed(order_id) as claimed:
                if not claimed:
                    logger.info("Order %s is being processed by another worker; skipping status check", order_id)
                    return self._get(order_id)
                return self._check_status_locked(order_id)
        finally:
            order_id_ctx.reset(token)

    def reconcile_pending(self, limit: int = 100) -> Dict[str, int]:
        """Resume stalled orders and poll in-flight DNS setups. Used by the periodic task.

        Orders touched within ``reconcile_stale_seconds`` are left alone: they
        were just paid or are mid-step, and their own worker will carry them on.
        """
        summary = {"advanced": 0, "checked": 0, "errors": 0}

        stale_before = None
        if self.reconcile_stale_seconds > 0:
            stale_before = datetime.now(timezone.utc) - timedelta(seconds=self.reconcile_stale_seconds)

        for order in self.store.list_by_status(RESUMABLE_STATUSES, limit=limit, updated_before=stale_before):
            try:
                self.advance(order.id)
                summary["advanced"] += 1
            except Exception:
                summary["errors"] += 1
                logger.exception("Reconcile: advancing order %s failed", order.id)

        for order in self.store.list_by_status(
            (OrderStatus.DNS_CONFIGURING, OrderStatus.DNS_ACTIVE), limit=limit
        ):
            try:
                self.check_status(order.id)
                summary["checked"] += 1
            except Exception:
                summary["errors"] += 1
                logger.exception("Reconcile: status check for order %s failed", order.id)

        logger.info("Reconcile finished: %s", summary)
        return summary

    # ── effect runner ──

    def _get(self, order_id: int) -> DomainOrder:
        order = self.store.get(order_id)
        if order is None:
            raise NotFound(f"Domain order {order_id} not found")
        return order

    def _advance_locked(self, order_id: int) -> DomainOrder:
        order = self._get(order_id)
        while True:
            effect = resume_effect(OrderStatus(order.status))
            if effect is None:
                return order

            before = order.status
            try:
                if effect is Effect.PURCHASE_DOMAIN:
                    order = self._purchase(order)
                elif effect is Effect.PROVISION_DNS:
                    order = self._provision_dns(order)
            except InvalidTransition as e:
                return self._superseded(order_id, e)
            except ProviderError as e:
                return self._fail(order, f"registrar: {e}")
            except _ProvisioningFailed as e:
                return self._fail(order, f"dns: {e.cause}", stage=e.stage)

            if order.status == before:
                logger.warning("Order %s made no progress from %s", order.id, before)
                return order

    def _fail(self, order: DomainOrder, reason: str, stage: Optional[str] = None) -> DomainOrder:
        kwargs = {}
        if stage == "ssl":
            kwargs["ssl_status"] = SslStatus.ERROR
        elif stage is not None:
            kwargs["dns_status"] = DnsStatus.ERROR
        try:
            failed = self.store.fail(order.id, reason, **kwargs)
        except InvalidTransition as e:
            return self._superseded(order.id, e)
        self._notify_failure(failed, reason)
        return failed

    def _superseded(self, order_id: int, error: InvalidTransition) -> DomainOrder:
        """The order moved underneath this step (e.g. a worker whose lease ran out). Report the stored state."""
        current = self._get(order_id)
        logger.warning(
            "Order %s changed while this step ran (%s); leaving it at %s", order_id, error, current.status
        )
        return current

    def _notify_failure(self, order: DomainOrder, reason: str) -> None:
        logger.error(
            "Order %s (%s) failed after payment: %s; refund review required",
            order.id, order.domain, reason,
        )
        for listener in self.failure_listeners:
            try:
                listener(order, reason)
            except Exception:
                logger.exception("Failure listener raised for order %s", order.id)

    # ── PURCHASE_DOMAIN ──

    def _purchase(self, order: DomainOrder) -> DomainOrder:
        if order.status == OrderStatus.PAYMENT_COMPLETED.value:
            self.store.apply_event(order.id, OrderEvent.PURCHASE_STARTED)

        domain = order.domain
        availability = self._call(f"availability check for {domain}", self.registrar.check_availability, domain)

        if not availability.purchasable:
            # A previous attempt may have bought it before crashing
            owned = self._call(f"ownership lookup for {domain}", self.registrar.get_owned_domain, domain)
            if owned is not None:
                logger.info(
                    "Domain %s already registered to this account; recording order %s", domain, owned.confirmation_id
                )
                return self.store.record_purchase(
                    order.id, owned.confirmation_id, availability.current_price, owned.expires_at
                )
            raise NotAvailable(f"{domain} is no longer available", provider=self.registrar.name)

        price = availability.current_price
        if price is None:
            raise ProviderPermanent(f"registrar returned no price for {domain}", provider=self.registrar.name)

        quoted = Decimal(order.quoted_registrar_price) if order.quoted_registrar_price is not None else price
        if not PriceBand(quoted, self.price_tolerance).contains(price):
            raise PriceChanged(
                f"{domain} now costs {price} USD (quoted {quoted} USD)", provider=self.registrar.name
            )

        result = self._purchase_once(order, PriceBand(price, self.price_tolerance))
        logger.info("Domain %s registered, confirmation %s", domain, result.confirmation_id)
        return self.store.record_purchase(order.id, result.confirmation_id, price, result.expires_at)

    def _purchase_once(self, order: DomainOrder, band: PriceBand) -> PurchaseResult:
        """Purchase with retries; a retry first checks whether the earlier attempt actually went through."""
        for attempt in self._retrying(f"purchase of {order.domain}"):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    owned = self.registrar.get_owned_domain(order.domain)
                    if owned is not None:
                        return PurchaseResult(confirmation_id=owned.confirmation_id, expires_at=owned.expires_at)
                return self.registrar.purchase(order.domain, band, order.years or 1, self.contact)

    # ── PROVISION_DNS ──

    def _provision_dns(self, order: DomainOrder) -> DomainOrder:
        domain = order.domain
        self.store.update_dns_config(order.id, dns_status=DnsStatus.CONFIGURING)

        stage = "zone"
        try:
            zone = self._call(f"zone setup for {domain}", self.provisioner.ensure_zone, domain)
            if zone.nameservers:
                stage = "nameservers"
                self._call(
                    f"nameserver delegation for {domain}",
                    self.registrar.set_nameservers, domain, zone.nameservers,
                )
            stage = "records"
            for name in (domain, f"www.{domain}"):
                self._call(
                    f"CNAME {name}",
                    self.provisioner.ensure_cname_record, zone.zone_id, self.cname_target, name,
                )
            stage = "ssl"
            self._call(f"SSL for {domain}", self.provisioner.enable_ssl, zone.zone_id)
        except ProviderError as e:
            raise _ProvisioningFailed(e, stage) from e

        return self.store.update_dns_config(
            order.id,
            zone_id=zone.zone_id,
            nameservers=zone.nameservers,
            dns_status=DnsStatus.PROPAGATING,
            ssl_status=SslStatus.PROVISIONING,
            target_host=self.cname_target,
            event=OrderEvent.DNS_PROVISIONED,
        )

    # ── status checks ──

    def _check_status_locked(self, order_id: int) -> DomainOrder:
        order = self._get(order_id)
        if OrderStatus(order.status) not in CHECKABLE_STATUSES or not order.dns_zone_id:
            return order

        dns_error = None
        ssl_error = None
        dns_broken = False

        try:
            propagated = self.provisioner.check_propagation(order.domain, order.nameservers or [])
        except ProviderError as e:
            propagated = False
            dns_error = str(e)
            dns_broken = not e.retryable

        if propagated or order.dns_status == DnsStatus.ACTIVE.value:
            # Once live, a failed lookup is reported but does not un-publish the domain
            dns_status = DnsStatus.ACTIVE
        elif dns_broken:
            dns_status = DnsStatus.ERROR
        else:
            dns_status = DnsStatus.PROPAGATING

        try:
            ssl_status = _SSL_STATUS[self.provisioner.check_ssl_status(order.dns_zone_id)]
        except ProviderError as e:
            ssl_error = str(e)
            ssl_status = SslStatus.ERROR if not e.retryable else SslStatus(order.ssl_status)

        updated = self.store.record_status_check(
            order.id,
            dns_status=dns_status,
            ssl_status=ssl_status,
            dns_error=dns_error,
            ssl_error=ssl_error,
        )
        logger.info(
            "Status check %s: dns=%s ssl=%s status=%s",
            updated.domain, updated.dns_status, updated.ssl_status, updated.status,
        )
        return updated
