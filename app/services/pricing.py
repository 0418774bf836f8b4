"""
Domain pricing and validation helpers.

Selling price = registrar USD price × (1 + markup), converted to the order
currency, plus a fixed yearly management fee. All amounts leaving this module
are integer minor units (cents).
"""
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.config import settings
from app.core.exceptions import ValidationError

SUPPORTED_CURRENCIES = ("USD", "HKD")

MANAGEMENT_FEE = {
    "USD": Decimal("12.99"),
    "HKD": Decimal("99.00"),
}

# TLDs with a registry-imposed minimum registration period
TLD_MIN_YEARS = {
    ".ai": 2,
}

_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def normalize_domain_name(name: str) -> str:
    """Lower-case, trim and validate a registrable domain name."""
    domain = (name or "").strip().rstrip(".").lower()
    if not domain or len(domain) > 253 or "." not in domain:
        raise ValidationError(f"Invalid domain name: {name!r}")
    labels = domain.split(".")
    if not all(_LABEL.match(label) for label in labels):
        raise ValidationError(f"Invalid domain name: {name!r}")
    if labels[-1].isdigit():
        raise ValidationError(f"Invalid domain name: {name!r}")
    return domain


def extract_tld(domain: str) -> str:
    parts = domain.split(".")
    if len(parts) < 2:
        return ""
    return "." + parts[-1]


def min_years(domain: str) -> int:
    return TLD_MIN_YEARS.get(extract_tld(domain).lower(), 1)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def convert_from_usd(amount_usd: Decimal, currency: str) -> Decimal:
    if currency == "USD":
        return amount_usd
    if currency == "HKD":
        return (amount_usd * Decimal(str(settings.USD_TO_HKD_RATE))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    raise ValidationError(f"Unsupported currency: {currency}")


@dataclass(frozen=True)
class PriceQuote:
    domain: str
    tld: str
    years: int
    currency: str
    registrar_price_usd: Decimal
    domain_price: int      # minor units
    management_fee: int    # minor units
    total_price: int       # minor units


def quote(domain: str, registrar_price_usd: Decimal, currency: str = "USD", years: Optional[int] = None) -> PriceQuote:
    currency = (currency or "USD").upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(f"Unsupported currency: {currency}")

    required = min_years(domain)
    years = years or required
    if years < required:
        raise ValidationError(f"{extract_tld(domain)} domains require at least {required} year(s)")

    markup = Decimal("1") + Decimal(str(settings.PRICE_MARKUP_PERCENT)) / Decimal("100")
    per_year = convert_from_usd(Decimal(registrar_price_usd) * markup, currency)
    domain_price = to_minor_units(per_year * years)
    fee = to_minor_units(MANAGEMENT_FEE[currency])

    return PriceQuote(
        domain=domain,
        tld=extract_tld(domain),
        years=years,
        currency=currency,
        registrar_price_usd=Decimal(registrar_price_usd),
        domain_price=domain_price,
        management_fee=fee,
        total_price=domain_price + fee,
    )
