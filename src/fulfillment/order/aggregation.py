"""Order status aggregation — one order-level status from all item statuses.

Precedence, first match wins:

    all cancelled                     → cancelled
    all delivered                     → delivered
    some cancelled, rest delivered    → partially_fulfilled
    any pending                       → pending
    otherwise                         → processing
"""

from collections.abc import Iterable
from enum import Enum

from fulfillment.order.lifecycle import ItemStatus


class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PARTIALLY_FULFILLED = "partially_fulfilled"


_CLOSED = {ItemStatus.DELIVERED, ItemStatus.CANCELLED}


def aggregate_status(item_statuses: Iterable) -> OrderStatus:
    """Derive the order status from item statuses (enum members or their values)."""
    statuses = [ItemStatus(s) if not isinstance(s, ItemStatus) else s for s in item_statuses]
    if not statuses:
        return OrderStatus.PENDING

    present = set(statuses)
    if present == {ItemStatus.CANCELLED}:
        return OrderStatus.CANCELLED
    if present == {ItemStatus.DELIVERED}:
        return OrderStatus.DELIVERED
    if present == _CLOSED:
        return OrderStatus.PARTIALLY_FULFILLED
    if ItemStatus.PENDING in present:
        return OrderStatus.PENDING
    return OrderStatus.PROCESSING
