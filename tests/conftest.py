"""Pytest configuration and fixtures."""
import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport

from app.db.base_class import Base
from app.db.session import build_engine, build_session_factory
from app.models.domain_order import DnsStatus, DomainOrder, OrderStatus, SslStatus
from app.models.persona import Persona
from app.services.container import build_services

from fakes import FakeProvisioner, FakeRegistrar

# --- Constants ---
WEBHOOK_SECRET = "whsec_test_secret"
ACCOUNT_ID = "acct_owner"
OTHER_ACCOUNT_ID = "acct_other"
CNAME_TARGET = "personas.test-host.app"


# --- Per-test fixtures ---

@pytest.fixture
def session_factory():
    """In-memory SQLite database with every table created."""
    import app.models  # noqa: F401

    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def registrar():
    return FakeRegistrar()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def services(session_factory, registrar, provisioner):
    services = build_services(
        session_factory,
        registrar=registrar,
        provisioner=provisioner,
        cname_target=CNAME_TARGET,
        retry_attempts=4,
        retry_min_wait=0,
        retry_max_wait=0,
        reconcile_stale_seconds=0,
    )
    services.receiver.webhook_secret = WEBHOOK_SECRET
    return services


@pytest.fixture
def fastapi_app(services):
    from app.main import create_app

    return create_app(services)


@pytest.fixture(scope="function")
async def client(fastapi_app):
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def owner_headers():
    return {"X-Account-Id": ACCOUNT_ID}


# --- Helpers ---

def create_persona(session_factory, account_id: str = ACCOUNT_ID, name: str = "Ada") -> int:
    db = session_factory()
    try:
        persona = Persona(account_id=account_id, name=name)
        db.add(persona)
        db.commit()
        return persona.id
    finally:
        db.close()


def create_order(services, domain: str = "foo.xyz", account_id: str = ACCOUNT_ID, **fields) -> DomainOrder:
    """Pending-payment order quoted at $10 with a $12.99 fee."""
    values = dict(
        account_id=account_id,
        domain=domain,
        tld="." + domain.rsplit(".", 1)[-1],
        years=1,
        domain_price=1300,
        management_fee=1299,
        total_price=2599,
        currency="USD",
        quoted_registrar_price=Decimal("10.00"),
    )
    values.update(fields)
    return services.store.create(DomainOrder(**values))


def force_state(session_factory, order_id: int, **fields) -> None:
    """Write columns directly, bypassing the state machine (test setup only)."""
    db = session_factory()
    try:
        order = db.get(DomainOrder, order_id)
        for key, value in fields.items():
            setattr(order, key, getattr(value, "value", value))
        db.commit()
    finally:
        db.close()


def make_ready(session_factory, order_id: int, persona_id=None) -> None:
    force_state(
        session_factory,
        order_id,
        status=OrderStatus.READY,
        dns_status=DnsStatus.ACTIVE,
        ssl_status=SslStatus.ACTIVE,
        dns_zone_id="zone-ready",
        registrar_order_id="order-ready",
        persona_id=persona_id,
    )


def stripe_event(
    event_id: str,
    order_id: int,
    event_type: str = "payment_intent.succeeded",
    amount: int = 2599,
) -> dict:
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": f"pi_{event_id}",
                "object": "payment_intent",
                "amount": amount,
                "amount_received": amount,
                "currency": "usd",
                "metadata": {"orderId": str(order_id)},
            }
        },
    }


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header (``t=<ts>,v1=<hmac>``)."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_event(event: dict, secret: str = WEBHOOK_SECRET):
    """Return (raw body bytes, signature header) for a webhook delivery."""
    payload = json.dumps(event)
    return payload.encode("utf-8"), sign_payload(payload, secret)
