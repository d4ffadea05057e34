import asyncio
from decimal import Decimal

import pytest

from basket_server.bus import Channel
from basket_server.errors import InvalidArgument, InvalidQuantity, ProductNotFound, Unauthenticated
from basket_server.events import CartUpdated, ProductAdded, ProductUpdated
from basket_server.identity import ANONYMOUS, Identity
from basket_server.models import ProductInput, ProductUpdate

USER = Identity("42")


@pytest.fixture
def cart_events(service):
    return service.bus.subscribe(Channel.CART_UPDATED)


def drain(subscription):
    events = []
    while subscription.pending():
        events.append(subscription._queue.get_nowait())
    return events


@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.cart(ANONYMOUS),
        lambda s: s.add_to_cart(ANONYMOUS, "1"),
        lambda s: s.update_cart_item(ANONYMOUS, "1", 2),
        lambda s: s.remove_from_cart(ANONYMOUS, "1"),
        lambda s: s.clear_cart(ANONYMOUS),
    ],
)
def test_cart_operations_require_identity(service, cart_events, call):
    with pytest.raises(Unauthenticated):
        call(service)
    assert len(service.registry) == 0
    assert drain(cart_events) == []


def test_empty_cart_is_not_an_error(service):
    cart = service.cart(USER)
    assert cart.items == []
    assert cart.total == 0


def test_mutation_publishes_the_returned_cart(service, cart_events):
    cart = service.add_to_cart(USER, "1", 2)

    [event] = drain(cart_events)
    assert isinstance(event, CartUpdated)
    assert event.owner == "42"
    assert event.cart == cart
    assert cart.total == Decimal("219.90")


async def test_event_is_queued_before_the_mutation_returns(service):
    stream = service.gateway.cart_updates(USER)
    reader = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)

    cart = service.add_to_cart(USER, "2")
    # Queued synchronously, but the subscriber has not run yet.
    assert not reader.done()
    assert await reader == cart
    await stream.aclose()


def test_each_mutation_publishes_once(service, cart_events):
    service.add_to_cart(USER, "1")
    service.add_to_cart(USER, "2", 3)
    service.update_cart_item(USER, "2", 1)
    service.remove_from_cart(USER, "1")

    events = drain(cart_events)
    assert len(events) == 4
    assert [len(e.cart.items) for e in events] == [1, 2, 2, 1]


def test_removing_a_missing_line_publishes_nothing(service, cart_events):
    service.add_to_cart(USER, "2")
    drain(cart_events)

    cart = service.update_cart_item(USER, "1", 0)
    assert [item.product_id for item in cart.items] == ["2"]
    assert drain(cart_events) == []


@pytest.mark.parametrize(
    "call,error",
    [
        (lambda s: s.add_to_cart(USER, "1", 0), InvalidQuantity),
        (lambda s: s.add_to_cart(USER, "999"), ProductNotFound),
        (lambda s: s.update_cart_item(USER, "999", 2), ProductNotFound),
    ],
)
def test_failed_mutation_leaves_cart_untouched(service, cart_events, call, error):
    service.add_to_cart(USER, "3", 2)
    drain(cart_events)

    with pytest.raises(error):
        call(service)

    assert [(i.product_id, i.quantity) for i in service.cart(USER).items] == [("3", 2)]
    assert drain(cart_events) == []


def test_clear_publishes_one_empty_cart(service, cart_events):
    service.add_to_cart(USER, "1")
    service.add_to_cart(USER, "2")
    drain(cart_events)

    cart = service.clear_cart(USER)

    [event] = drain(cart_events)
    assert cart.items == [] and cart.total == 0
    assert event.cart == cart


def test_identities_are_isolated(service):
    service.add_to_cart(Identity("alice"), "1")
    service.add_to_cart(Identity("bob"), "2", 5)
    assert [i.product_id for i in service.cart(Identity("alice")).items] == ["1"]
    assert [i.quantity for i in service.cart(Identity("bob")).items] == [5]


# --- catalog -----------------------------------------------------------------


def test_add_product_publishes_and_assigns_next_id(service):
    added = service.bus.subscribe(Channel.PRODUCT_ADDED)
    product = service.add_product(ProductInput(title="Mug", price=Decimal("8.5"), category="kitchen"))

    assert product.id == "5"
    assert service.product("5") == product
    assert "kitchen" in service.categories()
    [event] = drain(added)
    assert isinstance(event, ProductAdded) and event.product == product


def test_update_product_applies_only_given_fields(service):
    updated = service.bus.subscribe(Channel.PRODUCT_UPDATED)
    product = service.update_product("1", ProductUpdate(price=Decimal("99"), count=121))

    assert product.title == "Foldsack Backpack"
    assert product.price == Decimal("99")
    assert product.rating.count == 121
    assert product.rating.rate == Decimal("3.9")
    [event] = drain(updated)
    assert isinstance(event, ProductUpdated)


def test_update_product_null_clears_text_but_keeps_title(service):
    product = service.update_product("1", ProductUpdate(title=None, category=None))
    assert product.title == "Foldsack Backpack"
    assert product.category == ""


def test_update_unknown_product(service):
    with pytest.raises(ProductNotFound):
        service.update_product("999", ProductUpdate(title="x"))


def test_removed_product_leaves_a_dangling_line(service):
    service.add_to_cart(USER, "1")
    service.add_to_cart(USER, "2")
    service.remove_product("1")

    cart = service.cart(USER)
    assert len(cart.items) == 2
    assert cart.total == Decimal("22.30")
    # The dangling line can no longer be changed: the product is gone.
    with pytest.raises(ProductNotFound):
        service.add_to_cart(USER, "1")


def test_categories_are_distinct_and_non_empty(service):
    assert service.categories() == ["bags", "clothing"]


def test_products_page_with_limit(service):
    page = service.products(limit=2, offset=1)
    assert [p.id for p in page.items] == ["2", "3"]
    assert page.total == 4
    assert page.has_more is True

    page = service.products(limit=2, offset=2)
    assert page.has_more is False


def test_products_without_limit_ignore_offset(service):
    page = service.products(offset=3)
    assert len(page.items) == 4
    assert page.has_more is False


def test_products_by_category(service):
    page = service.products(category="clothing", limit=1)
    assert [p.id for p in page.items] == ["2"]
    assert page.total == 2
    assert page.has_more is True


@pytest.mark.parametrize("kwargs", [{"limit": -1}, {"offset": -1, "limit": 2}])
def test_negative_paging_is_rejected(service, kwargs):
    with pytest.raises(InvalidArgument):
        service.products(**kwargs)
