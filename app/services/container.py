"""
Service wiring.

Everything the HTTP layer and the Celery tasks need is built here from one
session factory, so tests can hand in an in-memory database and fake
providers without touching module globals.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.crud.crud_domain_order import DomainOrderStore
from app.db.session import build_engine, build_session_factory
from app.services.cloudflare_client import CloudflareProvisioner
from app.services.namecom_client import NameComRegistrar
from app.services.order_intake import OrderIntake
from app.services.orchestrator import DomainOrchestrator
from app.services.payment_events import PaymentEventReceiver
from app.services.provisioner import Provisioner
from app.services.publishing import PersonaDirectory, PublishingGateway, SqlPersonaDirectory
from app.services.registrar import Registrar

logger = logging.getLogger("domainpub.services")

_default_session_factory: Optional[sessionmaker] = None


@dataclass
class Services:
    store: DomainOrderStore
    registrar: Registrar
    provisioner: Provisioner
    orchestrator: DomainOrchestrator
    receiver: PaymentEventReceiver
    gateway: PublishingGateway
    personas: PersonaDirectory
    intake: OrderIntake


def get_default_session_factory() -> sessionmaker:
    """Process-wide session factory over settings.database_url, created on first use."""
    global _default_session_factory
    if _default_session_factory is None:
        _default_session_factory = build_session_factory(build_engine())
    return _default_session_factory


def _celery_dispatch(order_id: int) -> Any:
    from app.tasks.provisioning_tasks import advance_order_task

    return advance_order_task.delay(order_id)


def build_services(
    session_factory: Optional[sessionmaker] = None,
    registrar: Optional[Registrar] = None,
    provisioner: Optional[Provisioner] = None,
    dispatch: Optional[Callable[[int], Any]] = None,
    **orchestrator_options,
) -> Services:
    session_factory = session_factory or get_default_session_factory()
    store = DomainOrderStore(session_factory)
    registrar = registrar or NameComRegistrar()
    provisioner = provisioner or CloudflareProvisioner()

    orchestrator = DomainOrchestrator(store, registrar, provisioner, **orchestrator_options)

    if dispatch is None:
        dispatch = _celery_dispatch if settings.PROVISIONING_ASYNC else orchestrator.advance

    personas = SqlPersonaDirectory(session_factory)
    gateway = PublishingGateway(store, personas)

    logger.debug(
        "Services built: registrar=%s provisioner=%s async=%s",
        registrar.name, provisioner.name, settings.PROVISIONING_ASYNC,
    )
    return Services(
        store=store,
        registrar=registrar,
        provisioner=provisioner,
        orchestrator=orchestrator,
        receiver=PaymentEventReceiver(store, dispatch),
        gateway=gateway,
        personas=personas,
        intake=OrderIntake(store, registrar),
    )
