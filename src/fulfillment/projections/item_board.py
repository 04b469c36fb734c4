"""Item board: one row per order item, the merchant's view of work.

Rows are created from the item lines carried by OrderPlaced and follow
each item through claims, rejections and status changes. Merchant open
item lists, dashboards and revenue figures read from here.
"""

import json
from decimal import Decimal

from protean.core.projector import on
from protean.fields import DateTime, Decimal as DecimalField, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import ItemClaimed, ItemRejected, ItemStatusChanged, OrderPlaced
from fulfillment.order.order import Order


@fulfillment.projection
class ItemBoard:
    item_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=20)
    position = Integer(default=0)
    product_id = String(required=True, max_length=100)
    product_name = String(max_length=255)
    quantity = Integer(default=1)
    total_price = DecimalField(default=Decimal("0"))
    delivery_area = String(max_length=100)
    item_status = String(required=True, max_length=30)
    assigned_merchant_id = String(max_length=100)
    rejected_by = Text()  # JSON list of merchant ids
    placed_at = DateTime()
    claimed_at = DateTime()
    updated_at = DateTime()

    @property
    def excluded_merchants(self) -> list[str]:
        return json.loads(self.rejected_by) if self.rejected_by else []

    def summary(self) -> dict:
        return {
            "item_id": str(self.item_id),
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "total_price": str(self.total_price),
            "delivery_area": self.delivery_area,
            "item_status": self.item_status,
            "assigned_merchant_id": self.assigned_merchant_id,
            "placed_at": self.placed_at.isoformat() if self.placed_at else None,
        }


@fulfillment.projector(projector_for=ItemBoard, aggregates=[Order])
class ItemBoardProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        repo = current_domain.repository_for(ItemBoard)
        for line in json.loads(event.items):
            repo.add(
                ItemBoard(
                    item_id=line["item_id"],
                    order_id=event.order_id,
                    order_number=event.order_number,
                    position=line["position"],
                    product_id=line["product_id"],
                    product_name=line["product_name"],
                    quantity=line["quantity"],
                    total_price=Decimal(line["total_price"]),
                    delivery_area=event.delivery_area,
                    item_status="pending",
                    rejected_by=json.dumps([]),
                    placed_at=event.placed_at,
                    updated_at=event.placed_at,
                )
            )

    @on(ItemClaimed)
    def on_item_claimed(self, event):
        repo = current_domain.repository_for(ItemBoard)
        view = repo.get(event.item_id)
        view.item_status = "assigned"
        view.assigned_merchant_id = str(event.merchant_id)
        view.claimed_at = event.claimed_at
        view.updated_at = event.claimed_at
        repo.add(view)

    @on(ItemRejected)
    def on_item_rejected(self, event):
        repo = current_domain.repository_for(ItemBoard)
        view = repo.get(event.item_id)
        view.rejected_by = json.dumps(sorted(set(view.excluded_merchants) | {str(event.merchant_id)}))
        view.updated_at = event.rejected_at
        repo.add(view)

    @on(ItemStatusChanged)
    def on_item_status_changed(self, event):
        repo = current_domain.repository_for(ItemBoard)
        view = repo.get(event.item_id)
        view.item_status = event.new_status
        view.updated_at = event.changed_at
        repo.add(view)
