"""
Custom Domain Routing Middleware

Resolves a persona from the Host header when the host is a published custom
domain. Sets request.state.custom_domain_persona_id / custom_domain for
downstream handlers. A failed lookup never blocks the request; it simply
falls back to "no custom domain".

Every request reads the published flag from the store (one indexed lookup on
lower(domain)). Nothing is cached per process, so an unpublish committed by
any worker takes effect on the next request everywhere.
"""

import logging
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger("domainpub.domain")


def _host_from(request: Request) -> str:
    host = request.headers.get("host", "").strip().lower()
    if host.startswith("["):
        # IPv6 literal, e.g. [::1]:8000
        return host[1:].split("]")[0]
    return host.split(":")[0].rstrip(".")


class DomainRouterMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, bypass_hosts=None, bypass_path_prefixes=None):
        super().__init__(app)
        self.bypass_hosts = set(bypass_hosts if bypass_hosts is not None else settings.router_bypass_hosts)
        self.bypass_path_prefixes = tuple(
            bypass_path_prefixes if bypass_path_prefixes is not None else settings.router_bypass_path_prefixes
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        host = _host_from(request)

        # Skip for loopback / platform hosts and internal paths
        if (
            not host
            or host in self.bypass_hosts
            or request.url.path.startswith(self.bypass_path_prefixes)
        ):
            return await call_next(request)

        persona_id = None
        try:
            gateway = request.app.state.services.gateway
            published = await run_in_threadpool(gateway.get_published_domain, host)
            if published:
                persona_id = published.persona_id
        except Exception as e:
            logger.warning("Custom domain resolution failed for %s: %s", host, e)

        if persona_id is not None:
            request.state.custom_domain_persona_id = persona_id
            request.state.custom_domain = host
            logger.debug("Resolved custom domain %s → persona %s", host, persona_id)

        return await call_next(request)


def get_custom_domain_persona_id(request: Request) -> Optional[int]:
    return getattr(request.state, "custom_domain_persona_id", None)


def get_custom_domain(request: Request) -> Optional[str]:
    return getattr(request.state, "custom_domain", None)
