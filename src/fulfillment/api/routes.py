"""FastAPI routes for the Fulfillment domain."""

import json
import os
from datetime import datetime

from fastapi import APIRouter, Header, HTTPException, Query
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from fulfillment.api.schemas import (
    AssignItemRequest,
    CalculatePricingRequest,
    CancelOrderRequest,
    ConfigureSettingsRequest,
    ItemResponse,
    LifecycleSearchRequest,
    OrderPlacedResponse,
    PlaceOrderRequest,
    RecordNotificationRequest,
    RejectItemRequest,
    ResendNotificationRequest,
    StatusResponse,
    UpdateItemStatusRequest,
)
from fulfillment.directory import get_directory
from fulfillment.exceptions import Forbidden
from fulfillment.order.assignment import AutoAssignItem, ClaimItem, RejectItem
from fulfillment.order.cancellation import CancelOrder
from fulfillment.order.lifecycle import Actor, ActorRole
from fulfillment.order.notification import RecordNotificationAttempt, RequestNotificationResend
from fulfillment.order.order import LifecycleEventType, Order
from fulfillment.order.placement import PlaceOrder
from fulfillment.order.progress import UpdateItemStatus
from fulfillment.pricing.engine import PricedItem, compute_pricing, delivery_preview
from fulfillment.projections import reports
from fulfillment.settings import get_settings_source
from fulfillment.settings.memory_adapter import InMemorySettings


def _order_detail(order) -> dict:
    pricing = order.pricing
    address = order.delivery_address
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "items": [item.summary() for item in order.ordered_items],
        "pricing": {
            "subtotal": str(pricing.subtotal),
            "tax": str(pricing.tax),
            "delivery_charge": str(pricing.delivery_charge),
            "platform_fee": str(pricing.platform_fee),
            "total_amount": str(pricing.total_amount),
            "tax_rate": str(pricing.tax_rate),
            "platform_fee_rate": str(pricing.platform_fee_rate),
            "delivery_mode": pricing.delivery_mode,
        }
        if pricing
        else None,
        "delivery_address": {
            "street": address.street,
            "area": address.area,
            "city": address.city,
            "postal_code": address.postal_code,
            "latitude": address.latitude,
            "longitude": address.longitude,
        }
        if address
        else None,
        "delivery_instructions": order.delivery_instructions,
        "cancellation_reason": order.cancellation_reason,
        "status_history": [
            {"status": entry.status, "timestamp": entry.timestamp.isoformat(), "note": entry.note}
            for entry in sorted(order.status_history or [], key=lambda e: e.timestamp)
        ],
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def _actor(actor_id: str, actor_role: str) -> Actor:
    if not actor_id or not actor_role:
        raise ValidationError({"actor": ["X-Actor-Id and X-Actor-Role headers are required"]})
    return Actor.of(actor_id, actor_role)


def _require_admin(actor: Actor) -> None:
    if not actor.is_administrative:
        raise Forbidden(
            f"{actor.role.value} '{actor.actor_id}' may not view marketplace reports",
            actor_id=actor.actor_id,
        )


def _require_merchant_view(actor: Actor, merchant_id: str) -> None:
    if not actor.is_administrative and not (actor.role == ActorRole.MERCHANT and actor.actor_id == merchant_id):
        raise Forbidden(
            f"{actor.role.value} '{actor.actor_id}' may not view merchant '{merchant_id}'",
            actor_id=actor.actor_id,
            merchant_id=merchant_id,
        )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderPlacedResponse)
async def place_order(body: PlaceOrderRequest) -> OrderPlacedResponse:
    """Place an order from a checkout; every item starts open for merchants."""
    command = PlaceOrder(
        customer_id=body.customer_id,
        items=json.dumps([item.model_dump(mode="json") for item in body.items]),
        delivery_address=json.dumps(body.delivery_address.model_dump()),
        payment_method=body.payment_method,
        delivery_instructions=body.delivery_instructions,
    )
    order_id = current_domain.process(command, asynchronous=False)
    order = current_domain.repository_for(Order).get(order_id)
    return OrderPlacedResponse(order_id=order_id, order_number=order.order_number, status=order.status)


@order_router.get("")
async def list_orders(
    status: str | None = Query(default=None),
    page: int = Query(default=1),
    limit: int = Query(default=10),
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Orders visible to the caller, newest first."""
    return reports.list_orders(_actor(x_actor_id, x_actor_role), status=status, page=page, limit=limit)


@order_router.get("/analytics/summary")
async def order_analytics(
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Marketplace-wide item counts and delivered revenue (administrators only)."""
    _require_admin(_actor(x_actor_id, x_actor_role))
    return reports.order_summary()


@order_router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    order = current_domain.repository_for(Order).get(order_id)
    return _order_detail(order)


@order_router.post("/{order_id}/items/{item_id}/assign", response_model=ItemResponse)
async def assign_item(
    order_id: str,
    item_id: str,
    body: AssignItemRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> ItemResponse:
    """Claim an item for a merchant, or auto-assign it when no merchant is named."""
    if body.merchant_id:
        command = ClaimItem(
            order_id=order_id,
            item_id=item_id,
            merchant_id=body.merchant_id,
            actor_id=x_actor_id or body.merchant_id,
            actor_role=x_actor_role or "merchant",
        )
    else:
        command = AutoAssignItem(
            order_id=order_id,
            item_id=item_id,
            actor_id=x_actor_id or "system",
            actor_role=x_actor_role or "system",
        )
    result = current_domain.process(command, asynchronous=False)
    return ItemResponse(**result)


@order_router.post("/{order_id}/items/{item_id}/reject", response_model=ItemResponse)
async def reject_item(
    order_id: str,
    item_id: str,
    body: RejectItemRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> ItemResponse:
    """Decline an item. Harmless once the item has been claimed by someone else."""
    command = RejectItem(
        order_id=order_id,
        item_id=item_id,
        merchant_id=body.merchant_id,
        actor_id=x_actor_id or body.merchant_id,
        actor_role=x_actor_role or "merchant",
    )
    result = current_domain.process(command, asynchronous=False)
    return ItemResponse(**result)


@order_router.put("/{order_id}/items/{item_id}/status", response_model=ItemResponse)
async def update_item_status(
    order_id: str,
    item_id: str,
    body: UpdateItemStatusRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> ItemResponse:
    """Move an item forward (processing, shipped, delivered) or cancel it."""
    command = UpdateItemStatus(
        order_id=order_id,
        item_id=item_id,
        status=body.status,
        note=body.note,
        actor_id=x_actor_id or None,
        actor_role=x_actor_role or None,
    )
    result = current_domain.process(command, asynchronous=False)
    return ItemResponse(**result)


@order_router.put("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> StatusResponse:
    """Cancel every open item of the order."""
    command = CancelOrder(
        order_id=order_id,
        reason=body.reason,
        actor_id=x_actor_id or None,
        actor_role=x_actor_role or None,
    )
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@order_router.get("/{order_id}/lifecycle")
async def get_lifecycle(
    order_id: str,
    event_type: str | None = Query(default=None),
    item_id: str | None = Query(default=None),
) -> list[dict]:
    """The order's audit trail in the order events were recorded."""
    order = current_domain.repository_for(Order).get(order_id)
    return [event.record() for event in order.lifecycle(event_type=event_type, item_id=item_id)]


@order_router.get("/{order_id}/lifecycle/event-types")
async def get_lifecycle_event_types(order_id: str) -> list[str]:
    """Event types a lifecycle entry can carry."""
    current_domain.repository_for(Order).get(order_id)
    return [event_type.value for event_type in LifecycleEventType]


@order_router.put("/{order_id}/lifecycle/{sequence}/notifications")
async def record_notification(order_id: str, sequence: int, body: RecordNotificationRequest) -> dict:
    """Record the outcome of a notification attempt for a lifecycle event."""
    command = RecordNotificationAttempt(
        order_id=order_id,
        sequence=sequence,
        channel=body.channel,
        succeeded=body.succeeded,
        error=body.error,
    )
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/lifecycle/{sequence}/resend-notification")
async def resend_notification(
    order_id: str,
    sequence: int,
    body: ResendNotificationRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Reset undelivered channels of a lifecycle event so the notifier tries them again."""
    actor = _actor(x_actor_id, x_actor_role)
    command = RequestNotificationResend(
        order_id=order_id,
        sequence=sequence,
        channels=json.dumps(body.channels) if body.channels else None,
        actor_id=actor.actor_id,
        actor_role=actor.role.value,
    )
    return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Merchant Router
# ---------------------------------------------------------------------------
merchant_router = APIRouter(prefix="/merchants", tags=["merchants"])


@merchant_router.get("/by-product/{product_id}")
async def merchants_by_product(
    product_id: str,
    area: str | None = Query(default=None),
    latitude: float | None = Query(default=None),
    longitude: float | None = Query(default=None),
) -> list[dict]:
    """Enabled, approved merchants with stock for a product, near the given location."""
    candidates = get_directory().candidates_for(product_id, area=area, latitude=latitude, longitude=longitude)
    return [candidate.to_dict() for candidate in candidates]


@merchant_router.get("/{merchant_id}/open-items")
async def merchant_open_items(
    merchant_id: str,
    area: str | None = Query(default=None),
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> list[dict]:
    """Unclaimed items the merchant has not rejected, oldest first."""
    _require_merchant_view(_actor(x_actor_id, x_actor_role), merchant_id)
    return reports.open_items_for(merchant_id, area=area)


@merchant_router.get("/{merchant_id}/dashboard")
async def merchant_dashboard(
    merchant_id: str,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    _require_merchant_view(_actor(x_actor_id, x_actor_role), merchant_id)
    return reports.merchant_dashboard(merchant_id)


@merchant_router.get("/{merchant_id}/analytics")
async def merchant_analytics(
    merchant_id: str,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Item counts by status and revenue from delivered items."""
    _require_merchant_view(_actor(x_actor_id, x_actor_role), merchant_id)
    return reports.merchant_analytics(merchant_id)


# ---------------------------------------------------------------------------
# Lifecycle Log Router
# ---------------------------------------------------------------------------
lifecycle_router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


@lifecycle_router.get("/analytics")
async def lifecycle_analytics(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    group_by: str = Query(default="event_type"),
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Lifecycle entries and notification outcomes per group, with a seven day timeline."""
    _require_admin(_actor(x_actor_id, x_actor_role))
    return reports.lifecycle_analytics(start=start, end=end, group_by=group_by)


@lifecycle_router.post("/search")
async def search_lifecycle(
    body: LifecycleSearchRequest,
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> dict:
    """Search lifecycle entries across all orders."""
    _require_admin(_actor(x_actor_id, x_actor_role))
    return reports.search_lifecycle(
        text=body.text,
        event_types=body.event_types,
        actor_roles=body.actor_roles,
        start=body.start,
        end=body.end,
        page=body.page,
        limit=body.limit,
    )


# ---------------------------------------------------------------------------
# Pricing Router
# ---------------------------------------------------------------------------
pricing_router = APIRouter(prefix="/pricing", tags=["pricing"])


@pricing_router.post("/calculate")
async def calculate_pricing(body: CalculatePricingRequest) -> dict:
    """Price a cart under the current settings. The minimum order value is advisory here."""
    items = [PricedItem(total_price=i.total_price, quantity=i.quantity, weight=i.weight) for i in body.items]
    return compute_pricing(items, get_settings_source().current()).to_dict()


# ---------------------------------------------------------------------------
# Settings Router
# ---------------------------------------------------------------------------
settings_router = APIRouter(prefix="/settings", tags=["settings"])


@settings_router.get("")
async def get_settings() -> dict:
    return get_settings_source().current().to_dict()


@settings_router.get("/delivery-preview")
async def get_delivery_preview() -> list[dict]:
    """Delivery charge and tax for a ladder of sample order values."""
    return delivery_preview(get_settings_source().current())


@settings_router.post("/configure")
async def configure_settings(body: ConfigureSettingsRequest) -> dict:
    """Replace the pricing settings (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Settings configuration not available in production")

    source = get_settings_source()
    if not isinstance(source, InMemorySettings):
        raise HTTPException(status_code=400, detail="Settings configuration only available for InMemorySettings")

    config = source.configure(body.model_dump(mode="json"))
    return config.to_dict()
