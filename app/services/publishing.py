"""
Publishing Gateway

Binds a purchased domain to a persona and controls public exposure. The
published-domain lookup is the only read the domain router uses, and it
answers strictly from ``is_published``: anything mid-provisioning, unbound or
unpublished resolves to "not found".
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from app.core.exceptions import NotFound, Unauthorized
from app.crud.crud_domain_order import DomainOrderStore, normalize_domain
from app.models.domain_order import DomainOrder
from app.models.persona import Persona

logger = logging.getLogger("domainpub.publishing")


@dataclass(frozen=True)
class PublishedDomain:
    persona_id: int
    domain: str
    published: bool = True


class PersonaDirectory(ABC):
    """Read access to the persona collaborator."""

    @abstractmethod
    def get_owner_account_id(self, persona_id: int) -> Optional[str]:
        ...


class SqlPersonaDirectory(PersonaDirectory):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_owner_account_id(self, persona_id: int) -> Optional[str]:
        db = self._session_factory()
        try:
            row = db.query(Persona.account_id).filter(Persona.id == persona_id).first()
            return row[0] if row else None
        finally:
            db.close()


class PublishingGateway:
    def __init__(self, store: DomainOrderStore, personas: PersonaDirectory):
        self.store = store
        self.personas = personas

    def _owned_order(self, order_id: int, account_id: Optional[str]) -> DomainOrder:
        order = self.store.get(order_id)
        if order is None:
            raise NotFound(f"Domain order {order_id} not found")
        if account_id is not None and order.account_id != account_id:
            # Do not reveal other accounts' orders
            raise NotFound(f"Domain order {order_id} not found")
        return order

    def bind_persona(self, order_id: int, persona_id: int, account_id: Optional[str] = None) -> DomainOrder:
        order = self._owned_order(order_id, account_id)
        owner = self.personas.get_owner_account_id(persona_id)
        if owner is None:
            raise NotFound(f"Persona {persona_id} not found")
        if owner != order.account_id:
            raise Unauthorized("Persona belongs to a different account")

        updated = self.store.bind_persona(order_id, persona_id)
        logger.info("Order %s (%s) bound to persona %s", order_id, updated.domain, persona_id)
        return updated

    def unbind_persona(self, order_id: int, account_id: Optional[str] = None) -> DomainOrder:
        self._owned_order(order_id, account_id)
        updated = self.store.unbind_persona(order_id)
        logger.info("Order %s (%s) unbound from persona; unpublished", order_id, updated.domain)
        return updated

    def publish(self, order_id: int, account_id: Optional[str] = None) -> DomainOrder:
        self._owned_order(order_id, account_id)
        updated = self.store.publish(order_id)
        logger.info("Domain %s published → persona %s", updated.domain, updated.persona_id)
        return updated

    def unpublish(self, order_id: int, account_id: Optional[str] = None) -> DomainOrder:
        self._owned_order(order_id, account_id)
        updated = self.store.unpublish(order_id)
        logger.info("Domain %s unpublished", updated.domain)
        return updated

    def get_published_domain(self, name: str) -> Optional[PublishedDomain]:
        domain = normalize_domain(name)
        if not domain:
            return None
        order = self.store.lookup_published(domain)
        if order is None:
            return None
        return PublishedDomain(persona_id=order.persona_id, domain=order.domain)
