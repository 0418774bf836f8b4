import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.config import settings
from app.core.exceptions import DomainServiceError, InvalidTransition, ProviderError
from app.logging_config import setup_logging
from app.middleware.domain_router import DomainRouterMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.services.container import Services, build_services

logger = logging.getLogger("domainpub.app")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainServiceError)
    async def domain_service_error_handler(request: Request, exc: DomainServiceError):
        content = {"detail": exc.message}
        if isinstance(exc, InvalidTransition):
            content["current_status"] = getattr(exc.current, "value", exc.current)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.warning("Provider %s error on %s: %s", exc.provider, request.url.path, exc)
        status_code = 503 if exc.retryable else 502
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "provider": exc.provider})


def create_app(services: Optional[Services] = None) -> FastAPI:
    setup_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )
    app.state.services = services if services is not None else build_services()

    _register_exception_handlers(app)

    # Middleware added last runs first: request logging wraps domain routing
    app.add_middleware(DomainRouterMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "env": settings.APP_ENV}

    return app
