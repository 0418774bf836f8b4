"""Quote and open domain orders against live registrar prices."""
import logging
from typing import Optional

from app.core.exceptions import Conflict, ProviderError
from app.crud.crud_domain_order import DomainOrderStore
from app.models.domain_order import DomainOrder
from app.services import pricing
from app.services.pricing import PriceQuote
from app.services.registrar import Registrar

logger = logging.getLogger("domainpub.orders")


class DomainUnavailable(Conflict):
    pass


class OrderIntake:
    def __init__(self, store: DomainOrderStore, registrar: Registrar):
        self.store = store
        self.registrar = registrar

    def quote(self, domain: str, currency: str = "USD", years: Optional[int] = None) -> PriceQuote:
        domain = pricing.normalize_domain_name(domain)
        try:
            availability = self.registrar.check_availability(domain)
        except ProviderError as e:
            logger.warning("Availability check for %s failed: %s", domain, e)
            raise
        if not availability.purchasable or availability.current_price is None:
            raise DomainUnavailable(f"{domain} is not available for registration")
        return pricing.quote(domain, availability.current_price, currency, years)

    def create_order(
        self,
        account_id: str,
        domain: str,
        currency: str = "USD",
        years: Optional[int] = None,
        persona_id: Optional[int] = None,
    ) -> DomainOrder:
        price = self.quote(domain, currency, years)
        order = DomainOrder(
            account_id=account_id,
            domain=price.domain,
            tld=price.tld,
            years=price.years,
            domain_price=price.domain_price,
            management_fee=price.management_fee,
            total_price=price.total_price,
            currency=price.currency,
            quoted_registrar_price=price.registrar_price_usd,
            persona_id=persona_id,
        )
        created = self.store.create(order)
        logger.info(
            "Order %s opened for %s: %s %s (registrar %s USD)",
            created.id, created.domain, created.total_price, created.currency, price.registrar_price_usd,
        )
        return created
