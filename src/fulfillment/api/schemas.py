"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts, separate from domain commands.
The API layer translates between these schemas and domain commands.

Request bodies accept camelCase keys (``merchantId``, ``totalPrice``) as
well as their snake_case names, and refuse keys they do not know, so a
misspelt field fails loudly instead of changing what the request means.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class OrderLineRequest(RequestModel):
    product_id: str
    product_name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    weight: Decimal = Decimal("0")


class DeliveryAddressRequest(RequestModel):
    street: str
    area: str
    city: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class PlaceOrderRequest(RequestModel):
    customer_id: str
    items: list[OrderLineRequest] = Field(min_length=1)
    delivery_address: DeliveryAddressRequest
    payment_method: str = "cod"
    delivery_instructions: str | None = None


class AssignItemRequest(RequestModel):
    merchant_id: str | None = None


class RejectItemRequest(RequestModel):
    merchant_id: str


class UpdateItemStatusRequest(RequestModel):
    status: str
    note: str | None = None


class CancelOrderRequest(RequestModel):
    reason: str


class RecordNotificationRequest(RequestModel):
    channel: str
    succeeded: bool
    error: str | None = None


class ResendNotificationRequest(RequestModel):
    channels: list[str] | None = None


class LifecycleSearchRequest(RequestModel):
    text: str | None = None
    event_types: list[str] = []
    actor_roles: list[str] = []
    start: datetime | None = None
    end: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class PricingItemRequest(RequestModel):
    total_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    weight: Decimal = Decimal("0")


class CalculatePricingRequest(RequestModel):
    items: list[PricingItemRequest] = Field(min_length=1)


class ConfigureSettingsRequest(RequestModel):
    tax_rate: Decimal
    delivery: dict
    platform_fee_rate: Decimal = Decimal("0")
    minimum_order_value: Decimal = Decimal("0")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class OrderPlacedResponse(BaseModel):
    order_id: str
    order_number: str
    status: str


class ItemResponse(BaseModel):
    item_id: str
    position: int
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    assigned_merchant_id: str | None = None
    item_status: str
    rejected_by: list[str] = []
    claimed_at: str | None = None


class StatusResponse(BaseModel):
    status: str
