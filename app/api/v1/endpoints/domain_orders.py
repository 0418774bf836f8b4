"""
Domain Order API

Owner-facing operations on purchased domains:
  1. Quote and open an order (payment happens through Stripe checkout)
  2. Follow registration / DNS / SSL progress
  3. Bind a persona, publish and unpublish

The caller's account comes from the X-Account-Id header set by the auth
gateway. Every operation is safe to repeat.
"""
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api import deps
from app.core.exceptions import NotFound
from app.models.domain_order import DomainOrder as DomainOrderModel
from app.schemas.domain_order import (
    DnsStatusRead,
    DomainOrder,
    DomainOrderCreate,
    DomainQuote,
    PersonaBind,
    SslStatusRead,
)
from app.services.container import Services

router = APIRouter()
logger = logging.getLogger("domainpub.api")


# ── Helpers ──

def _owned(services: Services, order_id: int, account_id: str) -> DomainOrderModel:
    order = services.store.get(order_id)
    if order is None or order.account_id != account_id:
        raise NotFound(f"Domain order {order_id} not found")
    return order


# ── Endpoints ──

@router.get("/quote", response_model=DomainQuote)
def quote_domain(
    domain: str = Query(..., min_length=3),
    currency: str = Query("USD"),
    years: Optional[int] = Query(None, ge=1, le=10),
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    """Live price for a domain, including markup and management fee."""
    return services.intake.quote(domain, currency, years)


@router.post("/", response_model=DomainOrder, status_code=status.HTTP_201_CREATED)
def create_order(
    order_in: DomainOrderCreate,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    if order_in.persona_id is not None:
        owner = services.personas.get_owner_account_id(order_in.persona_id)
        if owner != account_id:
            raise NotFound(f"Persona {order_in.persona_id} not found")
    return services.intake.create_order(
        account_id,
        order_in.domain,
        currency=order_in.currency,
        years=order_in.years,
        persona_id=order_in.persona_id,
    )


@router.get("/", response_model=List[DomainOrder])
def list_orders(
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return services.store.list_for_account(account_id)


@router.get("/{order_id}", response_model=DomainOrder)
def get_order(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return _owned(services, order_id, account_id)


@router.post("/{order_id}/check-status", response_model=DomainOrder)
def check_order_status(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    """Poll DNS propagation and SSL now instead of waiting for the periodic check."""
    _owned(services, order_id, account_id)
    return services.orchestrator.check_status(order_id)


@router.get("/{order_id}/dns-status", response_model=DnsStatusRead)
def get_dns_status(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return _owned(services, order_id, account_id)


@router.get("/{order_id}/ssl-status", response_model=SslStatusRead)
def get_ssl_status(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return _owned(services, order_id, account_id)


@router.put("/{order_id}/persona", response_model=DomainOrder)
def bind_persona(
    order_id: int,
    body: PersonaBind,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return services.gateway.bind_persona(order_id, body.persona_id, account_id=account_id)


@router.delete("/{order_id}/persona", response_model=DomainOrder)
def unbind_persona(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return services.gateway.unbind_persona(order_id, account_id=account_id)


@router.post("/{order_id}/publish", response_model=DomainOrder)
def publish_domain(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return services.gateway.publish(order_id, account_id=account_id)


@router.post("/{order_id}/unpublish", response_model=DomainOrder)
def unpublish_domain(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    return services.gateway.unpublish(order_id, account_id=account_id)


@router.post("/{order_id}/resume", response_model=DomainOrder)
def resume_provisioning(
    order_id: int,
    services: Services = Depends(deps.get_services),
    account_id: str = Depends(deps.get_current_account_id),
) -> Any:
    """Re-drive a paid order that stalled between payment and DNS setup."""
    _owned(services, order_id, account_id)
    logger.info("Manual resume requested for order %s", order_id)
    return services.orchestrator.advance(order_id)
