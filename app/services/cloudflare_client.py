"""
Cloudflare v4 DNS / SSL adapter.

Handles:
  1. Zone creation (reuses an existing zone for the same name)
  2. Proxied CNAME records pointing at the persona host
  3. SSL mode
  4. Nameserver propagation (NS lookup via dnspython) and certificate status

All create calls look before they create, so re-running a half-finished setup
never produces duplicate zones or records.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

import dns.exception
import dns.resolver
import httpx

from app.config import settings
from app.core.exceptions import ProviderPermanent, ProviderTransient
from app.services.provisioner import Provisioner, SslState, Zone

logger = logging.getLogger("domainpub.dns")

PROVIDER = "cloudflare"

ZONE_ALREADY_EXISTS = 1061

_CERT_ACTIVE = {"active"}
_CERT_FAILED = {"timed_out", "validation_timed_out", "expired", "deleted", "deactivated"}


class CloudflareProvisioner(Provisioner):
    name = PROVIDER

    def __init__(
        self,
        api_token: Optional[str] = None,
        account_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        resolver: Optional[dns.resolver.Resolver] = None,
    ):
        self.account_id = account_id or settings.CLOUDFLARE_ACCOUNT_ID
        self.base_url = (base_url or settings.CLOUDFLARE_API_URL).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client or httpx.Client(
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {api_token or settings.CLOUDFLARE_API_TOKEN}",
                "Content-Type": "application/json",
            },
        )
        self._resolver = resolver

    def close(self) -> None:
        self._client.close()

    # ── HTTP ──

    def _call(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
        allow_codes: Sequence[int] = (),
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise ProviderTransient(f"timeout calling {endpoint}: {e}", provider=PROVIDER) from e
        except httpx.TransportError as e:
            raise ProviderTransient(f"network error calling {endpoint}: {e}", provider=PROVIDER) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderTransient(
                f"HTTP {response.status_code} from {endpoint}", provider=PROVIDER
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderPermanent(
                f"non-JSON response ({response.status_code}) from {endpoint}", provider=PROVIDER
            ) from None

        if data.get("success"):
            return data

        errors = data.get("errors") or []
        if any(e.get("code") in allow_codes for e in errors):
            return data
        message = ", ".join(str(e.get("message")) for e in errors) or f"HTTP {response.status_code}"
        raise ProviderPermanent(f"{endpoint}: {message}", provider=PROVIDER)

    @staticmethod
    def _zone_from(result: Dict[str, Any]) -> Zone:
        return Zone(
            zone_id=result["id"],
            name=result.get("name", ""),
            nameservers=list(result.get("name_servers") or []),
            status=result.get("status", "pending"),
        )

    # ── Zones ──

    def find_zone(self, domain: str) -> Optional[Zone]:
        data = self._call("GET", "/zones", params={"name": domain})
        results = data.get("result") or []
        if not results:
            return None
        return self._zone_from(results[0])

    def ensure_zone(self, domain: str) -> Zone:
        existing = self.find_zone(domain)
        if existing:
            logger.info("Reusing zone %s for %s", existing.zone_id, domain)
            return existing

        data = self._call(
            "POST",
            "/zones",
            json={"name": domain, "account": {"id": self.account_id}, "type": "full"},
            allow_codes=(ZONE_ALREADY_EXISTS,),
        )
        if data.get("success"):
            zone = self._zone_from(data["result"])
            logger.info("Zone created for %s: %s", domain, zone.zone_id)
            return zone

        # Created by a concurrent call between lookup and create
        existing = self.find_zone(domain)
        if existing:
            return existing
        raise ProviderTransient(
            f"zone for {domain} reported as existing but could not be retrieved", provider=PROVIDER
        )

    # ── DNS records ──

    def ensure_cname_record(self, zone_id: str, target: str, name: str) -> str:
        data = self._call(
            "GET", f"/zones/{zone_id}/dns_records", params={"type": "CNAME", "name": name}
        )
        records: List[Dict[str, Any]] = data.get("result") or []
        for record in records:
            if record.get("content", "").rstrip(".").lower() == target.rstrip(".").lower():
                logger.debug("CNAME %s → %s already present (%s)", name, target, record["id"])
                return record["id"]

        body = {"type": "CNAME", "name": name, "content": target, "proxied": True, "ttl": 1}
        if records:
            # Same name, different target: repoint instead of adding a conflicting record
            record_id = records[0]["id"]
            self._call("PUT", f"/zones/{zone_id}/dns_records/{record_id}", json=body)
            logger.info("CNAME %s repointed to %s (%s)", name, target, record_id)
            return record_id

        created = self._call("POST", f"/zones/{zone_id}/dns_records", json=body)
        record_id = created["result"]["id"]
        logger.info("CNAME %s → %s created (%s)", name, target, record_id)
        return record_id

    # ── SSL ──

    def enable_ssl(self, zone_id: str) -> None:
        self._call("PATCH", f"/zones/{zone_id}/settings/ssl", json={"value": "full"})
        logger.info("SSL mode 'full' enabled for zone %s", zone_id)

    def check_ssl_status(self, zone_id: str) -> SslState:
        data = self._call("GET", f"/zones/{zone_id}/ssl/verification")
        certs = data.get("result") or []
        statuses = {str(c.get("certificate_status", "")).lower() for c in certs}
        if not statuses:
            return SslState.PROVISIONING
        if statuses & _CERT_FAILED:
            return SslState.ERROR
        if statuses <= _CERT_ACTIVE:
            return SslState.ACTIVE
        return SslState.PROVISIONING

    # ── Propagation ──

    def check_propagation(self, domain: str, expected_nameservers: Sequence[str]) -> bool:
        resolver = self._resolver or dns.resolver.Resolver()
        resolver.lifetime = self.timeout
        try:
            answers = resolver.resolve(domain, "NS")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers):
            return False
        except dns.exception.Timeout as e:
            raise ProviderTransient(f"NS lookup for {domain} timed out", provider="dns") from e

        current = {rdata.to_text().rstrip(".").lower() for rdata in answers}
        expected = {ns.rstrip(".").lower() for ns in expected_nameservers}
        propagated = bool(current & expected)
        logger.debug(
            "NS check %s: current=%s expected=%s propagated=%s",
            domain, sorted(current), sorted(expected), propagated,
        )
        return propagated
