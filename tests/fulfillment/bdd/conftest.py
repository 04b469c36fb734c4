"""Shared BDD fixtures and step definitions for the Fulfillment domain."""

import pytest
from fulfillment.exceptions import FulfillmentError
from fulfillment.order.lifecycle import Actor, ActorRole, event_for_target_status
from fulfillment.order.order import Order
from fulfillment.order.placement import build_lines
from fulfillment.pricing.engine import PricedItem, compute_pricing, parse_pricing_config
from fulfillment.settings.memory_adapter import DEFAULT_SETTINGS
from pytest_bdd import given, parsers, then, when

_PRODUCTS = [
    {"product_id": "prod-atta", "product_name": "Whole Wheat Atta 10kg", "unit_price": 520},
    {"product_id": "prod-ghee", "product_name": "Cow Ghee 1L", "unit_price": 640},
    {"product_id": "prod-dal", "product_name": "Toor Dal 2kg", "unit_price": 310},
]


def merchant(merchant_id):
    return Actor(actor_id=merchant_id, role=ActorRole.MERCHANT)


def item_id(order, number):
    return str(order.ordered_items[number - 1].id)


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a placed order with {count:d} items"), target_fixture="order")
def placed_order(count):
    config = parse_pricing_config(DEFAULT_SETTINGS)
    lines = build_lines([dict(product, quantity=1) for product in _PRODUCTS[:count]])
    pricing = compute_pricing(
        [PricedItem(total_price=line["total_price"], quantity=line["quantity"]) for line in lines],
        config,
    )
    order = Order.place(
        order_number="ORD2610180042",
        customer_id="cust-bdd",
        lines=lines,
        pricing=pricing,
        config=config,
        delivery_address={"street": "7 Temple Street", "area": "Old Town"},
        actor=Actor(actor_id="cust-bdd", role=ActorRole.CUSTOMER),
    )
    order._events.clear()
    return order


@given(parsers.cfparse('merchant "{merchant_id}" has claimed item {number:d}'), target_fixture="order")
def claimed_item(order, merchant_id, number):
    order.claim_item(item_id(order, number), merchant_id, merchant(merchant_id))
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('merchant "{merchant_id}" claims item {number:d}'), target_fixture="order")
def claim(order, merchant_id, number):
    order.claim_item(item_id(order, number), merchant_id, merchant(merchant_id))
    return order


@when(parsers.cfparse('merchant "{merchant_id}" rejects item {number:d}'), target_fixture="order")
def reject(order, merchant_id, number):
    order.reject_item(item_id(order, number), merchant_id, merchant(merchant_id))
    return order


@when(parsers.cfparse('merchant "{merchant_id}" moves item {number:d} through "{statuses}"'), target_fixture="order")
def move_through(order, merchant_id, number, statuses):
    for status in statuses.split(","):
        order.advance_item(item_id(order, number), event_for_target_status(status.strip()), merchant(merchant_id))
    return order


@when(parsers.cfparse('merchant "{merchant_id}" attempts to move item {number:d} to "{status}"'), target_fixture="order")
def attempt_move(order, merchant_id, number, status, error):
    try:
        order.advance_item(item_id(order, number), event_for_target_status(status), merchant(merchant_id))
    except FulfillmentError as exc:
        error["exc"] = exc
    return order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.status == status


@then(parsers.cfparse('item {number:d} is "{status}"'))
def item_status_is(order, number, status):
    assert order.ordered_items[number - 1].item_status == status


@then(parsers.cfparse('item {number:d} is owned by "{merchant_id}"'))
def item_owned_by(order, number, merchant_id):
    assert order.ordered_items[number - 1].assigned_merchant_id == merchant_id
