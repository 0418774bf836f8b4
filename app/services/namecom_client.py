"""
Name.com v4 registrar adapter.

Authenticates with HTTP Basic (username + API token). Every call is bounded by
PROVIDER_TIMEOUT_SECONDS; retries are the orchestrator's job, so failures are
only classified here:

  timeout / connection error / 429 / 5xx  → ProviderTransient
  4xx mentioning price                    → PriceChanged
  4xx mentioning availability             → NotAvailable
  other 4xx                               → ProviderPermanent
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.exceptions import (
    NotAvailable,
    PriceChanged,
    ProviderPermanent,
    ProviderTransient,
)
from app.services.registrar import (
    Availability,
    ContactInfo,
    OwnedDomain,
    PriceBand,
    PurchaseResult,
    Registrar,
)

logger = logging.getLogger("domainpub.registrar")

PROVIDER = "namecom"
ORDER_PAGE_SIZE = 100
MAX_ORDER_PAGES = 10


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _contact_payload(contact: ContactInfo) -> Dict[str, Any]:
    payload = {
        "firstName": contact.first_name,
        "lastName": contact.last_name,
        "address1": contact.address1,
        "city": contact.city,
        "state": contact.state,
        "zip": contact.zip,
        "country": contact.country,
        "phone": contact.phone,
        "email": contact.email,
    }
    if contact.company_name:
        payload["companyName"] = contact.company_name
    if contact.address2:
        payload["address2"] = contact.address2
    return payload


class NameComRegistrar(Registrar):
    name = PROVIDER

    def __init__(
        self,
        username: Optional[str] = None,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.NAMECOM_API_URL).rstrip("/")
        self._client = client or httpx.Client(
            auth=(username or settings.NAMECOM_USERNAME, api_token or settings.NAMECOM_API_TOKEN),
            timeout=timeout or settings.PROVIDER_TIMEOUT_SECONDS,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    # ── HTTP ──

    def _request(self, method: str, endpoint: str, json: Optional[dict] = None) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            return self._client.request(method, url, json=json)
        except httpx.TimeoutException as e:
            raise ProviderTransient(f"timeout calling {endpoint}: {e}", provider=PROVIDER) from e
        except httpx.TransportError as e:
            raise ProviderTransient(f"network error calling {endpoint}: {e}", provider=PROVIDER) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text[:500]
        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderTransient(f"HTTP {response.status_code}: {body}", provider=PROVIDER)

        lowered = body.lower()
        if "price" in lowered:
            raise PriceChanged(f"HTTP {response.status_code}: {body}", provider=PROVIDER)
        if "not available" in lowered or "unavailable" in lowered or "already registered" in lowered:
            raise NotAvailable(f"HTTP {response.status_code}: {body}", provider=PROVIDER)
        raise ProviderPermanent(f"HTTP {response.status_code}: {body}", provider=PROVIDER)

    def _call(self, method: str, endpoint: str, json: Optional[dict] = None) -> Dict[str, Any]:
        response = self._request(method, endpoint, json=json)
        self._raise_for_status(response)
        if not response.content:
            return {}
        return response.json()

    # ── Registrar API ──

    def check_availability(self, domain: str) -> Availability:
        data = self._call("POST", "/domains:checkAvailability", {"domainNames": [domain]})
        results = data.get("results") or []
        match = next((r for r in results if r.get("domainName", "").lower() == domain.lower()), None)
        if match is None:
            # Name.com omits domains it cannot sell at all
            return Availability(domain=domain, purchasable=False)

        price = match.get("purchasePrice")
        renewal = match.get("renewalPrice")
        return Availability(
            domain=domain,
            purchasable=bool(match.get("purchasable")),
            current_price=Decimal(str(price)) if price is not None else None,
            premium=bool(match.get("premium")),
            renewal_price=Decimal(str(renewal)) if renewal is not None else None,
        )

    def purchase(
        self,
        domain: str,
        expected_price: PriceBand,
        years: int = 1,
        contact: Optional[ContactInfo] = None,
    ) -> PurchaseResult:
        payload: Dict[str, Any] = {
            "domain": {"domainName": domain},
            # Name.com rejects the order if the live price differs from purchasePrice
            "purchasePrice": float(expected_price.expected),
            "years": years,
        }
        if contact is not None:
            c = _contact_payload(contact)
            payload["domain"]["contacts"] = {
                "registrant": c, "admin": c, "tech": c, "billing": c,
            }

        logger.info("Purchasing %s for %s year(s) at %s USD", domain, years, expected_price.expected)
        data = self._call("POST", "/domains", payload)

        order_ref = data.get("order")
        if order_ref is None:
            raise ProviderPermanent(f"purchase of {domain} returned no order reference", provider=PROVIDER)
        info = data.get("domain") or {}
        total_paid = data.get("totalPaid")
        return PurchaseResult(
            confirmation_id=str(order_ref),
            price=Decimal(str(total_paid)) if total_paid is not None else None,
            expires_at=_parse_datetime(info.get("expireDate")),
        )

    def get_owned_domain(self, domain: str) -> Optional[OwnedDomain]:
        response = self._request("GET", f"/domains/{domain}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        data = response.json()
        name = data.get("domainName", domain)
        order_id = self._find_registration_order(name)
        if order_id is None:
            logger.warning("No Name.com order on record for owned domain %s", name)
        return OwnedDomain(
            domain=name,
            confirmation_id=order_id,
            nameservers=list(data.get("nameservers") or []),
            expires_at=_parse_datetime(data.get("expireDate")),
        )

    def _find_registration_order(self, domain: str) -> Optional[str]:
        """Order id of the registration of ``domain`` from the account's order history."""
        page = 1
        while page and page <= MAX_ORDER_PAGES:
            data = self._call("GET", f"/orders?perPage={ORDER_PAGE_SIZE}&page={page}")
            for order in data.get("orders") or []:
                for item in order.get("orderItems") or []:
                    if (item.get("name") or "").lower() == domain.lower():
                        return str(order["id"])
            page = data.get("nextPage")
        return None

    def set_nameservers(self, domain: str, nameservers: List[str]) -> None:
        self._call("POST", f"/domains/{domain}:setNameservers", {"nameservers": list(nameservers)})
        logger.info("Updated nameservers for %s: %s", domain, ", ".join(nameservers))
