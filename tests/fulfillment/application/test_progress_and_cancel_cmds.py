"""Application tests for item status updates, cancellation and notification bookkeeping."""

import json

import pytest
from fulfillment.exceptions import Forbidden, InvalidTransition, NotFound
from fulfillment.order.assignment import ClaimItem
from fulfillment.order.cancellation import CancelOrder
from fulfillment.order.notification import RecordNotificationAttempt
from fulfillment.order.order import Order
from fulfillment.order.placement import PlaceOrder
from fulfillment.order.progress import UpdateItemStatus
from protean import current_domain
from protean.exceptions import ValidationError


def _place_claimed_order():
    order_id = current_domain.process(
        PlaceOrder(
            customer_id="cust-001",
            items=json.dumps(
                [
                    {"product_id": "prod-1", "product_name": "Jasmine Rice", "unit_price": 300, "quantity": 1},
                    {"product_id": "prod-2", "product_name": "Mustard Oil", "unit_price": 250, "quantity": 1},
                ]
            ),
            delivery_address=json.dumps({"street": "4 Lake View", "area": "Harbour"}),
        ),
        asynchronous=False,
    )
    order = current_domain.repository_for(Order).get(order_id)
    item_ids = [str(item.id) for item in order.ordered_items]
    for item_id, merchant_id in zip(item_ids, ("m-1", "m-2"), strict=True):
        current_domain.process(
            ClaimItem(order_id=order_id, item_id=item_id, merchant_id=merchant_id),
            asynchronous=False,
        )
    return order_id, item_ids


def _update(order_id, item_id, status, actor_id="m-1", actor_role="merchant"):
    return current_domain.process(
        UpdateItemStatus(order_id=order_id, item_id=item_id, status=status, actor_id=actor_id, actor_role=actor_role),
        asynchronous=False,
    )


class TestUpdateItemStatus:
    def test_owner_advances_item(self):
        order_id, (first, _) = _place_claimed_order()
        result = _update(order_id, first, "processing")
        assert result["item_status"] == "processing"

    def test_shortcut_to_delivered(self):
        order_id, (first, _) = _place_claimed_order()
        _update(order_id, first, "processing")
        assert _update(order_id, first, "delivered")["item_status"] == "delivered"

    def test_skipping_processing_is_invalid(self):
        order_id, (first, _) = _place_claimed_order()
        with pytest.raises(InvalidTransition):
            _update(order_id, first, "shipped")

    def test_non_owner_is_forbidden(self):
        order_id, (first, _) = _place_claimed_order()
        with pytest.raises(Forbidden):
            _update(order_id, first, "processing", actor_id="m-2")

    def test_unknown_status(self):
        order_id, (first, _) = _place_claimed_order()
        with pytest.raises(ValidationError):
            _update(order_id, first, "misplaced")

    def test_unknown_item(self):
        order_id, _ = _place_claimed_order()
        with pytest.raises(NotFound):
            _update(order_id, "missing-item", "processing")

    def test_order_delivered_when_all_items_delivered(self):
        order_id, item_ids = _place_claimed_order()
        for item_id, merchant_id in zip(item_ids, ("m-1", "m-2"), strict=True):
            for status in ("processing", "shipped", "delivered"):
                _update(order_id, item_id, status, actor_id=merchant_id)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == "delivered"

    def test_failed_update_leaves_no_trace(self):
        order_id, (first, _) = _place_claimed_order()
        logged = len(current_domain.repository_for(Order).get(order_id).lifecycle())
        with pytest.raises(Forbidden):
            _update(order_id, first, "processing", actor_id="m-2")
        order = current_domain.repository_for(Order).get(order_id)
        assert len(order.lifecycle()) == logged
        assert order.ordered_items[0].item_status == "assigned"


class TestCancelOrder:
    def test_customer_cancels(self):
        order_id, _ = _place_claimed_order()
        status = current_domain.process(
            CancelOrder(order_id=order_id, reason="Ordered twice", actor_id="cust-001", actor_role="customer"),
            asynchronous=False,
        )
        assert status == "cancelled"
        order = current_domain.repository_for(Order).get(order_id)
        assert order.cancellation_reason == "Ordered twice"
        assert {item.item_status for item in order.items} == {"cancelled"}

    def test_partial_delivery_then_cancel(self):
        order_id, (first, _) = _place_claimed_order()
        _update(order_id, first, "processing")
        _update(order_id, first, "delivered")
        status = current_domain.process(
            CancelOrder(order_id=order_id, reason="Second item unavailable", actor_id="ops", actor_role="admin"),
            asynchronous=False,
        )
        assert status == "partially_fulfilled"

    def test_merchant_cannot_cancel_order(self):
        order_id, _ = _place_claimed_order()
        with pytest.raises(Forbidden):
            current_domain.process(
                CancelOrder(order_id=order_id, reason="Busy", actor_id="m-1", actor_role="merchant"),
                asynchronous=False,
            )


class TestRecordNotificationAttempt:
    def test_outcome_is_stored_on_the_event(self):
        order_id, _ = _place_claimed_order()
        outcome = current_domain.process(
            RecordNotificationAttempt(order_id=order_id, sequence=1, channel="whatsapp", succeeded=True),
            asynchronous=False,
        )
        assert outcome["succeeded"] is True

        order = current_domain.repository_for(Order).get(order_id)
        notifications = order.lifecycle()[0].record()["notifications"]
        assert notifications["whatsapp"]["attempted"] is True
        assert notifications["sms"]["attempted"] is False
