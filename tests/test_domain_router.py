"""Host-header routing to published personas."""
import pytest
from fastapi import Request

from app.middleware.domain_router import get_custom_domain, get_custom_domain_persona_id

from conftest import create_order, create_persona, make_ready


@pytest.fixture
def routed_app(fastapi_app):
    @fastapi_app.get("/site/whoami")
    def whoami(request: Request):
        return {
            "persona_id": get_custom_domain_persona_id(request),
            "domain": get_custom_domain(request),
        }

    @fastapi_app.get("/@admin/whoami")
    def admin_whoami(request: Request):
        return {"persona_id": get_custom_domain_persona_id(request)}

    return fastapi_app


@pytest.fixture
def published(services, session_factory):
    order = create_order(services)
    persona_id = create_persona(session_factory)
    make_ready(session_factory, order.id, persona_id=persona_id)
    services.gateway.publish(order.id)
    return order, persona_id


async def test_published_host_resolves_persona(routed_app, client, published):
    _, persona_id = published
    resp = await client.get("/site/whoami", headers={"host": "FOO.xyz:8443"})
    assert resp.status_code == 200
    assert resp.json() == {"persona_id": persona_id, "domain": "foo.xyz"}


async def test_unknown_host_passes_through(routed_app, client, published):
    resp = await client.get("/site/whoami", headers={"host": "unknown.example"})
    assert resp.status_code == 200
    assert resp.json() == {"persona_id": None, "domain": None}


async def test_bypass_host_and_path(routed_app, client, published):
    resp = await client.get("/site/whoami", headers={"host": "localhost:8000"})
    assert resp.json()["persona_id"] is None

    resp = await client.get("/@admin/whoami", headers={"host": "foo.xyz"})
    assert resp.json()["persona_id"] is None


async def test_unpublish_takes_effect_on_next_request(routed_app, client, services, published):
    order, persona_id = published
    first = await client.get("/site/whoami", headers={"host": "foo.xyz"})
    assert first.json()["persona_id"] == persona_id

    services.gateway.unpublish(order.id)

    second = await client.get("/site/whoami", headers={"host": "foo.xyz"})
    assert second.json()["persona_id"] is None


async def test_lookup_failure_does_not_block_request(routed_app, client, services, monkeypatch):
    def _broken(name):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(services.gateway, "get_published_domain", _broken)
    resp = await client.get("/site/whoami", headers={"host": "foo.xyz"})
    assert resp.status_code == 200
    assert resp.json()["persona_id"] is None


async def test_public_lookup_endpoint(client, published):
    _, persona_id = published
    resp = await client.get("/api/v1/public/domains/FOO.XYZ")
    assert resp.status_code == 200
    assert resp.json() == {"persona_id": persona_id, "domain": "foo.xyz", "published": True}

    missing = await client.get("/api/v1/public/domains/bar.xyz")
    assert missing.status_code == 404


async def test_unpublish_by_another_worker_is_seen_immediately(
    routed_app, client, session_factory, registrar, provisioner, published
):
    from app.services.container import build_services

    order, persona_id = published
    first = await client.get("/site/whoami", headers={"host": "foo.xyz"})
    assert first.json()["persona_id"] == persona_id

    # A separately wired container shares only the database, like a second uvicorn worker
    other_worker = build_services(session_factory, registrar=registrar, provisioner=provisioner)
    other_worker.gateway.unpublish(order.id)

    second = await client.get("/site/whoami", headers={"host": "foo.xyz"})
    assert second.json()["persona_id"] is None
