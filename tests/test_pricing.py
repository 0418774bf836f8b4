"""Unit tests for domain pricing and validation."""
from decimal import Decimal

import pytest

from app.config import settings
from app.core.exceptions import ValidationError
from app.services import pricing


@pytest.mark.parametrize("name,expected", [
    ("Foo.XYZ", "foo.xyz"),
    ("  shop.example.com. ", "shop.example.com"),
    ("my-site.ai", "my-site.ai"),
])
def test_normalize_domain_name(name, expected):
    assert pricing.normalize_domain_name(name) == expected


@pytest.mark.parametrize("name", ["", "localhost", "-bad.com", "bad-.com", "spa ce.com", "a..com", "1.2.3.4"])
def test_normalize_rejects_invalid(name):
    with pytest.raises(ValidationError):
        pricing.normalize_domain_name(name)


def test_extract_tld_and_min_years():
    assert pricing.extract_tld("foo.xyz") == ".xyz"
    assert pricing.extract_tld("foo") == ""
    assert pricing.min_years("foo.AI") == 2
    assert pricing.min_years("foo.com") == 1


def test_usd_quote(monkeypatch):
    monkeypatch.setattr(settings, "PRICE_MARKUP_PERCENT", 30.0)
    quote = pricing.quote("foo.xyz", Decimal("10.00"))
    assert quote.domain_price == 1300
    assert quote.management_fee == 1299
    assert quote.total_price == 2599
    assert quote.years == 1


def test_hkd_quote(monkeypatch):
    monkeypatch.setattr(settings, "PRICE_MARKUP_PERCENT", 30.0)
    monkeypatch.setattr(settings, "USD_TO_HKD_RATE", 7.8)
    quote = pricing.quote("foo.xyz", Decimal("10.00"), currency="hkd")
    assert quote.currency == "HKD"
    assert quote.domain_price == 10140   # 13.00 USD × 7.8
    assert quote.management_fee == 9900
    assert quote.total_price == 20040


def test_multi_year_quote(monkeypatch):
    monkeypatch.setattr(settings, "PRICE_MARKUP_PERCENT", 30.0)
    quote = pricing.quote("foo.ai", Decimal("80.00"))
    assert quote.years == 2
    assert quote.domain_price == 20800


def test_quote_rejects_short_ai_term():
    with pytest.raises(ValidationError):
        pricing.quote("foo.ai", Decimal("80.00"), years=1)


def test_quote_rejects_unknown_currency():
    with pytest.raises(ValidationError):
        pricing.quote("foo.xyz", Decimal("10.00"), currency="EUR")


def test_to_minor_units_rounds_half_up():
    assert pricing.to_minor_units(Decimal("12.345")) == 1235
    assert pricing.to_minor_units(Decimal("0.004")) == 0
