"""Order listing: one row per order for paged, filtered order lists."""

from decimal import Decimal

from protean.core.projector import on
from protean.fields import DateTime, Decimal as DecimalField, Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import OrderPlaced, OrderStatusUpdated
from fulfillment.order.order import Order


@fulfillment.projection
class OrderListing:
    order_id = Identifier(identifier=True, required=True)
    order_number = String(required=True, max_length=20)
    customer_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    total_amount = DecimalField(default=Decimal("0"))
    item_count = Integer(default=0)
    placed_at = DateTime()
    updated_at = DateTime()

    def summary(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "customer_id": str(self.customer_id),
            "status": self.status,
            "total_amount": str(self.total_amount),
            "item_count": self.item_count,
            "placed_at": self.placed_at.isoformat() if self.placed_at else None,
        }


@fulfillment.projector(projector_for=OrderListing, aggregates=[Order])
class OrderListingProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        current_domain.repository_for(OrderListing).add(
            OrderListing(
                order_id=event.order_id,
                order_number=event.order_number,
                customer_id=event.customer_id,
                status="pending",
                total_amount=event.total_amount,
                item_count=event.item_count,
                placed_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    @on(OrderStatusUpdated)
    def on_order_status_updated(self, event):
        repo = current_domain.repository_for(OrderListing)
        view = repo.get(event.order_id)
        view.status = event.new_status
        view.updated_at = event.updated_at
        repo.add(view)
