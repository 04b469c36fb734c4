"""Order placement — the checkout command and handler.

Prices the submitted lines with the same engine the cart preview uses,
enforces the minimum order value (the engine only reports it) and creates
the order with all of its items in one unit of work.
"""

import json
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.exceptions import MinimumOrderNotMet
from fulfillment.order.lifecycle import Actor, ActorRole
from fulfillment.order.numbering import next_order_number
from fulfillment.order.order import Order, PaymentMethod
from fulfillment.pricing.engine import PricedItem, compute_pricing, round_money, to_decimal
from fulfillment.settings import get_settings_source

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class PlaceOrder:
    """Submit a checkout: the customer's lines, address and payment method."""

    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of {product_id, product_name, unit_price, quantity, weight}
    delivery_address = Text(required=True)  # JSON object
    payment_method = String(max_length=20, default=PaymentMethod.COD.value)
    delivery_instructions = String(max_length=500)


def build_lines(items_data: list[dict]) -> list[dict]:
    """Validate submitted lines and fix each line's total price."""
    if not items_data:
        raise ValidationError({"items": ["At least one item is required"]})

    lines = []
    for index, data in enumerate(items_data):
        missing = [key for key in ("product_id", "product_name", "unit_price", "quantity") if data.get(key) in (None, "")]
        if missing:
            raise ValidationError({"items": [f"Item {index} is missing {', '.join(missing)}"]})

        quantity = data["quantity"]
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"items": [f"Item {index} quantity must be a positive integer"]})

        unit_price = to_decimal(data["unit_price"], "unit_price")
        if unit_price < 0:
            raise ValidationError({"items": [f"Item {index} unit price must not be negative"]})

        lines.append(
            {
                "product_id": str(data["product_id"]),
                "product_name": data["product_name"],
                "unit_price": unit_price,
                "quantity": quantity,
                "weight": to_decimal(data.get("weight") or 0, "weight"),
                "total_price": round_money(unit_price * quantity),
            }
        )
    return lines


@fulfillment.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        address = (
            json.loads(command.delivery_address)
            if isinstance(command.delivery_address, str)
            else command.delivery_address
        )
        lines = build_lines(items_data)

        config = get_settings_source().current()
        pricing = compute_pricing(
            [PricedItem(total_price=line["total_price"], quantity=line["quantity"], weight=line["weight"]) for line in lines],
            config,
        )
        if pricing.below_minimum:
            logger.warning(
                "Order below minimum value refused",
                customer_id=str(command.customer_id),
                subtotal=str(pricing.subtotal),
                minimum_order_value=str(config.minimum_order_value),
            )
            raise MinimumOrderNotMet(
                f"Order subtotal {pricing.subtotal} is below the minimum order value {config.minimum_order_value}",
                subtotal=pricing.subtotal,
                minimum_order_value=config.minimum_order_value,
            )

        order = Order.place(
            order_number=next_order_number(datetime.now(UTC).date()),
            customer_id=str(command.customer_id),
            lines=lines,
            pricing=pricing,
            config=config,
            delivery_address=address,
            actor=Actor(actor_id=str(command.customer_id), role=ActorRole.CUSTOMER),
            payment_method=command.payment_method or PaymentMethod.COD.value,
            delivery_instructions=command.delivery_instructions,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(lines),
            total_amount=str(pricing.total_amount),
        )
        return str(order.id)
