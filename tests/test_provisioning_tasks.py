"""Celery task bodies, run eagerly against the test container."""
import pytest

from app.models.domain_order import OrderStatus
from app.services.order_state import OrderEvent
from app.tasks import provisioning_tasks

from conftest import create_order


@pytest.fixture(autouse=True)
def task_services(services, monkeypatch):
    monkeypatch.setattr(provisioning_tasks, "_services", services)
    return services


def test_advance_order_task(services, registrar):
    order = create_order(services)
    services.store.apply_event(order.id, OrderEvent.PAYMENT_SUCCEEDED)

    result = provisioning_tasks.advance_order_task(order.id)

    assert result == {"order_id": order.id, "status": OrderStatus.DNS_CONFIGURING.value}
    assert registrar.successful_purchases == ["foo.xyz"]


def test_advance_missing_order():
    assert provisioning_tasks.advance_order_task(4242)["status"] == "missing"


def test_check_order_status_task(services, provisioner):
    order = create_order(services)
    services.store.apply_event(order.id, OrderEvent.PAYMENT_SUCCEEDED)
    services.orchestrator.advance(order.id)
    provisioner.propagated = True

    result = provisioning_tasks.check_order_status_task(order.id)

    assert result["status"] == OrderStatus.DNS_ACTIVE.value
    assert result["dns_status"] == "active"


def test_poll_pending_orders(services, registrar):
    order = create_order(services)
    services.store.apply_event(order.id, OrderEvent.PAYMENT_SUCCEEDED)

    summary = provisioning_tasks.poll_pending_orders()

    assert summary["advanced"] == 1
    assert summary["errors"] == 0
    assert services.store.get(order.id).status == OrderStatus.DNS_CONFIGURING.value


def test_async_dispatch_queues_task(session_factory, registrar, provisioner, monkeypatch):
    from app.config import settings
    from app.services.container import build_services

    queued = []
    monkeypatch.setattr(settings, "PROVISIONING_ASYNC", True)
    monkeypatch.setattr(provisioning_tasks.advance_order_task, "delay", queued.append)

    services = build_services(session_factory, registrar=registrar, provisioner=provisioner)
    services.receiver.dispatch(7)

    assert queued == [7]
    assert registrar.purchase_calls == []
