"""Item progress — command and handler for merchant status updates.

Moves a claimed item to processing, shipped, delivered or cancelled. Only
the owning merchant may advance an item; cancellation also accepts an
administrative override.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.lifecycle import Actor, event_for_target_status
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class UpdateItemStatus:
    """Request that an item move to ``status``."""

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    note = String(max_length=500)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, max_length=20)


@fulfillment.command_handler(part_of=Order)
class ItemProgressHandler:
    @handle(UpdateItemStatus)
    def update_item_status(self, command):
        actor = Actor.of(command.actor_id, command.actor_role)
        event = event_for_target_status(command.status)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        item = order.advance_item(str(command.item_id), event, actor, note=command.note)
        repo.add(order)
        logger.info(
            "Item status updated",
            order_id=str(command.order_id),
            item_id=str(command.item_id),
            status=item.item_status,
            actor_id=actor.actor_id,
            order_status=order.status,
        )
        return item.summary()
