"""Cloudflare adapter against a stateful httpx.MockTransport."""
import json

import dns.exception
import dns.resolver
import httpx
import pytest

from app.core.exceptions import ProviderPermanent, ProviderTransient
from app.services.cloudflare_client import CloudflareProvisioner
from app.services.provisioner import SslState

API = "https://cf.test/client/v4"


class _FakeCloudflare:
    """Just enough of the v4 API: zones, CNAME records, SSL settings."""

    def __init__(self):
        self.zones = {}
        self.records = {}
        self.requests = []
        self.ssl_mode = None
        self.certificate_statuses = ["active"]
        self.fail_next = None

    def _ok(self, result):
        return httpx.Response(200, json={"success": True, "errors": [], "result": result})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.fail_next is not None:
            response, self.fail_next = self.fail_next, None
            return response

        path = request.url.path.replace("/client/v4", "")
        params = request.url.params
        body = json.loads(request.content) if request.content else {}

        if path == "/zones" and request.method == "GET":
            zone = self.zones.get(params.get("name"))
            return self._ok([zone] if zone else [])
        if path == "/zones" and request.method == "POST":
            name = body["name"]
            if name in self.zones:
                return httpx.Response(
                    400, json={"success": False, "errors": [{"code": 1061, "message": "already exists"}]}
                )
            zone = {
                "id": f"z{len(self.zones) + 1}",
                "name": name,
                "status": "pending",
                "name_servers": ["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"],
            }
            self.zones[name] = zone
            return self._ok(zone)

        parts = path.strip("/").split("/")
        zone_id = parts[1]
        if parts[2:] == ["dns_records"] and request.method == "GET":
            found = [
                r for r in self.records.values()
                if r["zone_id"] == zone_id and r["name"] == params.get("name") and r["type"] == params.get("type")
            ]
            return self._ok(found)
        if parts[2:] == ["dns_records"] and request.method == "POST":
            record = dict(body, id=f"r{len(self.records) + 1}", zone_id=zone_id)
            self.records[record["id"]] = record
            return self._ok(record)
        if parts[2] == "dns_records" and request.method == "PUT":
            record = dict(body, id=parts[3], zone_id=zone_id)
            self.records[parts[3]] = record
            return self._ok(record)
        if parts[2:] == ["settings", "ssl"]:
            self.ssl_mode = body["value"]
            return self._ok({"id": "ssl", "value": body["value"]})
        if parts[2:] == ["ssl", "verification"]:
            return self._ok([{"certificate_status": s} for s in self.certificate_statuses])
        return httpx.Response(404, json={"success": False, "errors": [{"code": 7003, "message": "no route"}]})


@pytest.fixture
def cloudflare():
    return _FakeCloudflare()


@pytest.fixture
def provisioner(cloudflare):
    client = httpx.Client(transport=httpx.MockTransport(cloudflare))
    return CloudflareProvisioner(api_token="t", account_id="acc", base_url=API, client=client)


def test_ensure_zone_twice_returns_same_zone(provisioner, cloudflare):
    first = provisioner.ensure_zone("foo.xyz")
    second = provisioner.ensure_zone("foo.xyz")

    assert first.zone_id == second.zone_id
    assert first.nameservers == ["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"]
    assert len(cloudflare.zones) == 1
    assert [r for r in cloudflare.requests if r == ("POST", "/client/v4/zones")] == [("POST", "/client/v4/zones")]


def test_ensure_zone_recovers_from_concurrent_create(provisioner, cloudflare):
    # Lookup misses, create reports "already exists", re-lookup finds it
    cloudflare.fail_next = httpx.Response(200, json={"success": True, "errors": [], "result": []})
    cloudflare.zones["foo.xyz"] = {"id": "z9", "name": "foo.xyz", "status": "active", "name_servers": []}

    zone = provisioner.ensure_zone("foo.xyz")

    assert zone.zone_id == "z9"


def test_ensure_cname_record_is_idempotent(provisioner, cloudflare):
    zone = provisioner.ensure_zone("foo.xyz")
    first = provisioner.ensure_cname_record(zone.zone_id, "personas.host.app", "foo.xyz")
    second = provisioner.ensure_cname_record(zone.zone_id, "personas.host.app", "foo.xyz")

    assert first == second
    assert len(cloudflare.records) == 1
    record = cloudflare.records[first]
    assert record["proxied"] is True
    assert record["content"] == "personas.host.app"


def test_ensure_cname_record_repoints_existing_name(provisioner, cloudflare):
    zone = provisioner.ensure_zone("foo.xyz")
    old = provisioner.ensure_cname_record(zone.zone_id, "old.host.app", "www.foo.xyz")
    new = provisioner.ensure_cname_record(zone.zone_id, "personas.host.app", "www.foo.xyz")

    assert old == new
    assert len(cloudflare.records) == 1
    assert cloudflare.records[new]["content"] == "personas.host.app"


def test_enable_ssl_and_status(provisioner, cloudflare):
    zone = provisioner.ensure_zone("foo.xyz")
    provisioner.enable_ssl(zone.zone_id)
    assert cloudflare.ssl_mode == "full"

    assert provisioner.check_ssl_status(zone.zone_id) is SslState.ACTIVE
    cloudflare.certificate_statuses = ["pending_validation"]
    assert provisioner.check_ssl_status(zone.zone_id) is SslState.PROVISIONING
    cloudflare.certificate_statuses = []
    assert provisioner.check_ssl_status(zone.zone_id) is SslState.PROVISIONING
    cloudflare.certificate_statuses = ["active", "validation_timed_out"]
    assert provisioner.check_ssl_status(zone.zone_id) is SslState.ERROR


def test_server_errors_are_transient(provisioner, cloudflare):
    cloudflare.fail_next = httpx.Response(502, text="bad gateway")
    with pytest.raises(ProviderTransient):
        provisioner.ensure_zone("foo.xyz")

    cloudflare.fail_next = httpx.Response(429, json={"success": False, "errors": []})
    with pytest.raises(ProviderTransient):
        provisioner.ensure_zone("foo.xyz")


def test_api_rejection_is_permanent(provisioner, cloudflare):
    cloudflare.fail_next = httpx.Response(
        403, json={"success": False, "errors": [{"code": 10000, "message": "Authentication error"}]}
    )
    with pytest.raises(ProviderPermanent, match="Authentication error"):
        provisioner.ensure_zone("foo.xyz")


def test_network_error_is_transient():
    def _refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(_refuse))
    provisioner = CloudflareProvisioner(api_token="t", account_id="acc", base_url=API, client=client)
    with pytest.raises(ProviderTransient):
        provisioner.ensure_zone("foo.xyz")


class _Answer:
    def __init__(self, text):
        self._text = text

    def to_text(self):
        return self._text


class _FakeResolver:
    def __init__(self, answers=None, error=None):
        self.answers = answers or []
        self.error = error
        self.lifetime = None

    def resolve(self, name, rdtype):
        assert rdtype == "NS"
        if self.error is not None:
            raise self.error
        return [_Answer(a) for a in self.answers]


def _with_resolver(resolver):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    return CloudflareProvisioner(api_token="t", account_id="acc", base_url=API, client=client, resolver=resolver)


def test_propagation_matches_expected_nameservers():
    p = _with_resolver(_FakeResolver(["ADA.NS.CLOUDFLARE.COM.", "bob.ns.cloudflare.com."]))
    assert p.check_propagation("foo.xyz", ["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"]) is True


def test_propagation_with_old_nameservers():
    p = _with_resolver(_FakeResolver(["ns1.registrar-parking.com."]))
    assert p.check_propagation("foo.xyz", ["ada.ns.cloudflare.com"]) is False


def test_propagation_nxdomain_is_not_an_error():
    p = _with_resolver(_FakeResolver(error=dns.resolver.NXDOMAIN()))
    assert p.check_propagation("foo.xyz", ["ada.ns.cloudflare.com"]) is False


def test_propagation_timeout_is_transient():
    p = _with_resolver(_FakeResolver(error=dns.exception.Timeout()))
    with pytest.raises(ProviderTransient):
        p.check_propagation("foo.xyz", ["ada.ns.cloudflare.com"])
