"""Order domain events — immutable facts about order and item state changes.

All events are past tense, versioned, and carry enough data for downstream
subscribers (merchant dashboards, notifiers) without reloading the order.
"""

from protean.fields import Boolean, DateTime, Decimal, Identifier, Integer, String, Text

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderPlaced:
    """A customer's checkout was accepted and the order split into items."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    item_count = Integer(required=True)
    total_amount = Decimal(required=True)
    items = Text(required=True)  # JSON list of {item_id, position, product_id, product_name, quantity, total_price}
    delivery_area = String()
    placed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ItemClaimed:
    """A merchant became the exclusive owner of an order item."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    auto_assigned = Boolean(default=False)
    claimed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ItemRejected:
    """A merchant declined an open item and is now excluded from it."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    rejected_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ItemStatusChanged:
    """An item moved along its lifecycle, or was cancelled with its order."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = String(required=True)
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderStatusUpdated:
    """The aggregate order status changed after an item transition."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    updated_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderCancelled:
    """The whole order was cancelled by an administrative action."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True)
    cancelled_by = String(required=True)
    cancelled_item_count = Integer(required=True)
    cancelled_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class LifecycleEventRecorded:
    """An entry was appended to an order's lifecycle log."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    sequence = Integer(required=True)
    item_id = Identifier()
    event_type = String(required=True)
    actor_id = String(required=True)
    actor_role = String(required=True)
    description = String()
    recorded_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class NotificationAttemptRecorded:
    """A notifier reported the outcome of delivering one lifecycle entry on one channel."""

    __version__ = 1

    order_id = Identifier(required=True)
    sequence = Integer(required=True)
    channel = String(required=True)
    succeeded = Boolean(default=False)
    error = String()
    attempted_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class NotificationResendRequested:
    """Channels that did not deliver a lifecycle entry should be tried again."""

    __version__ = 1

    order_id = Identifier(required=True)
    sequence = Integer(required=True)
    event_type = String(required=True)
    channels = Text(required=True)  # JSON list of channel names
    requested_by = String(required=True)
    requested_at = DateTime(required=True)
