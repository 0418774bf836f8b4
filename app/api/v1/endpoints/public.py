"""
Public Domain Lookup

Unauthenticated endpoint used by edge / frontend to resolve a hostname to the
persona it publishes. Only published domains resolve.
"""
from typing import Any

from fastapi import APIRouter, Depends

from app.api import deps
from app.core.exceptions import NotFound
from app.schemas.domain_order import PublishedDomainRead
from app.services.container import Services

router = APIRouter()


@router.get("/domains/{hostname}", response_model=PublishedDomainRead)
def get_published_domain(
    hostname: str,
    services: Services = Depends(deps.get_services),
) -> Any:
    published = services.gateway.get_published_domain(hostname)
    if published is None:
        raise NotFound(f"No published domain for {hostname}")
    return PublishedDomainRead(
        persona_id=published.persona_id,
        domain=published.domain,
        published=published.published,
    )
