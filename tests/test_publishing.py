"""Publishing gateway: persona binding, publish / unpublish and lookup."""
import pytest

from app.core.exceptions import NotFound, PreconditionFailed, Unauthorized
from app.models.domain_order import OrderStatus

from conftest import ACCOUNT_ID, OTHER_ACCOUNT_ID, create_order, create_persona, make_ready


@pytest.fixture
def ready_order(services, session_factory):
    order = create_order(services)
    make_ready(session_factory, order.id)
    return order


@pytest.fixture
def persona_id(session_factory):
    return create_persona(session_factory)


def test_publish_requires_persona(services, ready_order):
    with pytest.raises(PreconditionFailed):
        services.gateway.publish(ready_order.id)


def test_publish_requires_active_dns(services, session_factory, persona_id):
    order = create_order(services)
    services.gateway.bind_persona(order.id, persona_id)
    with pytest.raises(PreconditionFailed, match="DNS is not active"):
        services.gateway.publish(order.id)


def test_bind_publish_and_lookup(services, ready_order, persona_id):
    services.gateway.bind_persona(ready_order.id, persona_id, account_id=ACCOUNT_ID)
    published = services.gateway.publish(ready_order.id, account_id=ACCOUNT_ID)

    assert published.status == OrderStatus.PUBLISHED.value
    found = services.gateway.get_published_domain("foo.xyz")
    assert found.persona_id == persona_id
    assert found.domain == "foo.xyz"
    assert found.published is True


def test_publish_twice_is_a_noop(services, ready_order, persona_id):
    services.gateway.bind_persona(ready_order.id, persona_id)
    first = services.gateway.publish(ready_order.id)
    second = services.gateway.publish(ready_order.id)
    assert second.is_published is True
    assert second.published_at == first.published_at
    assert second.status == OrderStatus.PUBLISHED.value


@pytest.mark.parametrize("name", ["FOO.XYZ", "Foo.Xyz", "foo.xyz.", " foo.xyz "])
def test_lookup_is_case_insensitive(services, ready_order, persona_id, name):
    services.gateway.bind_persona(ready_order.id, persona_id)
    services.gateway.publish(ready_order.id)
    assert services.gateway.get_published_domain(name).persona_id == persona_id


def test_unpublish_hides_domain(services, ready_order, persona_id):
    services.gateway.bind_persona(ready_order.id, persona_id)
    services.gateway.publish(ready_order.id)

    unpublished = services.gateway.unpublish(ready_order.id)

    assert unpublished.status == OrderStatus.UNPUBLISHED.value
    assert services.gateway.get_published_domain("foo.xyz") is None
    # Republish from unpublished
    assert services.gateway.publish(ready_order.id).status == OrderStatus.PUBLISHED.value


def test_unbind_then_publish_fails(services, ready_order, persona_id):
    services.gateway.bind_persona(ready_order.id, persona_id)
    services.gateway.publish(ready_order.id)

    unbound = services.gateway.unbind_persona(ready_order.id)

    assert unbound.persona_id is None
    assert unbound.is_published is False
    assert services.gateway.get_published_domain("foo.xyz") is None
    with pytest.raises(PreconditionFailed):
        services.gateway.publish(ready_order.id)


def test_bind_foreign_persona_is_unauthorized(services, ready_order, session_factory):
    foreign = create_persona(session_factory, account_id=OTHER_ACCOUNT_ID, name="Mallory")
    with pytest.raises(Unauthorized):
        services.gateway.bind_persona(ready_order.id, foreign)


def test_bind_unknown_persona(services, ready_order):
    with pytest.raises(NotFound):
        services.gateway.bind_persona(ready_order.id, 9999)


def test_other_account_cannot_touch_order(services, ready_order, persona_id):
    with pytest.raises(NotFound):
        services.gateway.bind_persona(ready_order.id, persona_id, account_id=OTHER_ACCOUNT_ID)
    with pytest.raises(NotFound):
        services.gateway.publish(ready_order.id, account_id=OTHER_ACCOUNT_ID)


def test_lookup_of_garbage_returns_none(services):
    assert services.gateway.get_published_domain("") is None
    assert services.gateway.get_published_domain("nothing.example") is None
