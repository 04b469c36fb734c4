"""Order cancellation — command and handler.

Cancels a whole order by administrative action (or by the customer who
placed it), forcing every open item to cancelled.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.lifecycle import Actor
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class CancelOrder:
    """Cancel every open item of an order."""

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, max_length=20)


@fulfillment.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(Actor.of(command.actor_id, command.actor_role), command.reason)
        repo.add(order)
        logger.info(
            "Order cancelled",
            order_id=str(command.order_id),
            reason=command.reason,
            order_status=order.status,
        )
        return order.status
