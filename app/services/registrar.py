"""
Registrar client interface.

The orchestrator only talks to this abstraction; the concrete adapter
(Name.com) lives in app.services.namecom_client.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


@dataclass(frozen=True)
class Availability:
    domain: str
    purchasable: bool
    current_price: Optional[Decimal] = None   # USD per year
    premium: bool = False
    renewal_price: Optional[Decimal] = None


@dataclass(frozen=True)
class PriceBand:
    """Acceptable purchase price around the quoted registrar price."""
    expected: Decimal
    tolerance_percent: Decimal = Decimal("0")

    @property
    def ceiling(self) -> Decimal:
        return self.expected * (Decimal("1") + self.tolerance_percent / Decimal("100"))

    def contains(self, price: Decimal) -> bool:
        return Decimal(price) <= self.ceiling


@dataclass(frozen=True)
class ContactInfo:
    first_name: str
    last_name: str
    address1: str
    city: str
    state: str
    zip: str
    country: str
    phone: str
    email: str
    company_name: Optional[str] = None
    address2: Optional[str] = None


@dataclass(frozen=True)
class PurchaseResult:
    confirmation_id: Optional[str]
    price: Optional[Decimal] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class OwnedDomain:
    domain: str
    confirmation_id: Optional[str] = None   # registrar order id, when the registrar still has it on record
    nameservers: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None


class Registrar(ABC):
    name = "registrar"

    @abstractmethod
    def check_availability(self, domain: str) -> Availability:
        ...

    @abstractmethod
    def purchase(
        self,
        domain: str,
        expected_price: PriceBand,
        years: int = 1,
        contact: Optional[ContactInfo] = None,
    ) -> PurchaseResult:
        """Register ``domain``. Raises NotAvailable / PriceChanged / ProviderTransient."""

    @abstractmethod
    def get_owned_domain(self, domain: str) -> Optional[OwnedDomain]:
        """Return the domain if it is already registered to this account."""

    @abstractmethod
    def set_nameservers(self, domain: str, nameservers: List[str]) -> None:
        ...
