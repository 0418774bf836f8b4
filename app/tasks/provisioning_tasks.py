"""
Background provisioning tasks.

The tasks only carry an order id; the order row is the source of truth, so a
redelivered or duplicated task resumes from the persisted status and cannot
purchase twice.
"""
import logging
from typing import Optional

from app.celery_app import celery_app
from app.core.exceptions import NotFound
from app.services.container import Services, build_services

logger = logging.getLogger("domainpub.tasks")

_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


@celery_app.task
def advance_order_task(order_id: int):
    """Run the pending purchase / DNS steps for one paid order."""
    try:
        order = get_services().orchestrator.advance(order_id)
    except NotFound:
        logger.error("advance_order_task: order %s does not exist", order_id)
        return {"order_id": order_id, "status": "missing"}
    return {"order_id": order_id, "status": order.status}


@celery_app.task
def check_order_status_task(order_id: int):
    try:
        order = get_services().orchestrator.check_status(order_id)
    except NotFound:
        logger.error("check_order_status_task: order %s does not exist", order_id)
        return {"order_id": order_id, "status": "missing"}
    return {
        "order_id": order_id,
        "status": order.status,
        "dns_status": order.dns_status,
        "ssl_status": order.ssl_status,
    }


@celery_app.task
def poll_pending_orders(limit: int = 100):
    """Periodic: resume stalled paid orders and poll DNS / SSL for in-flight setups."""
    return get_services().orchestrator.reconcile_pending(limit=limit)
