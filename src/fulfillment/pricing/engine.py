"""Pricing engine — a pure function from line items and configuration to a price breakdown.

The same function backs the cart preview (``POST /pricing/calculate``) and
the checkout (``PlaceOrder``), so both must agree to the cent: all arithmetic
is done in ``Decimal`` and rounding is applied once, on the output fields.

Delivery configuration is a closed tagged variant:

    fixed      → constant charge
    threshold  → free at or above ``free_above``, otherwise ``charge_below``
    distance   → reserved, raises UnsupportedDeliveryMode
    weight     → reserved, raises UnsupportedDeliveryMode

The minimum order value is reported (``below_minimum``) but not enforced
here; enforcement belongs to the checkout caller.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import ClassVar

from protean.exceptions import ValidationError

from fulfillment.exceptions import UnsupportedDeliveryMode

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Half a cent for each of the five rounded output fields.
ROUNDING_TOLERANCE = Decimal("0.025")

MAX_PLATFORM_FEE_RATE = Decimal("0.1")

DEFAULT_PREVIEW_VALUES = (100, 250, 500, 750, 1000, 1500, 2000)


class DeliveryMode(Enum):
    FIXED = "fixed"
    THRESHOLD = "threshold"
    DISTANCE = "distance"
    WEIGHT = "weight"


def to_decimal(value, field_name: str = "amount") -> Decimal:
    """Convert a payload number to Decimal without inheriting float artefacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError({field_name: ["A numeric value is required"]})
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError({field_name: [f"'{value}' is not a valid number"]}) from exc


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _non_negative(value, field_name: str) -> Decimal:
    amount = to_decimal(value, field_name)
    if amount < ZERO:
        raise ValidationError({field_name: ["Must not be negative"]})
    return amount


# ---------------------------------------------------------------------------
# Delivery configuration variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class FixedDelivery:
    mode: ClassVar[DeliveryMode] = DeliveryMode.FIXED

    charge: Decimal

    def to_dict(self) -> dict:
        return {"type": self.mode.value, "charge": str(self.charge)}


@dataclass(frozen=True)
class ThresholdDelivery:
    mode: ClassVar[DeliveryMode] = DeliveryMode.THRESHOLD

    free_above: Decimal
    charge_below: Decimal

    def to_dict(self) -> dict:
        return {
            "type": self.mode.value,
            "free_above": str(self.free_above),
            "charge_below": str(self.charge_below),
        }


@dataclass(frozen=True)
class DistanceDelivery:
    mode: ClassVar[DeliveryMode] = DeliveryMode.DISTANCE

    base_distance_km: Decimal
    per_km_rate: Decimal

    def to_dict(self) -> dict:
        return {
            "type": self.mode.value,
            "base_distance_km": str(self.base_distance_km),
            "per_km_rate": str(self.per_km_rate),
        }


@dataclass(frozen=True)
class WeightDelivery:
    mode: ClassVar[DeliveryMode] = DeliveryMode.WEIGHT

    free_weight_limit: Decimal
    per_kg_rate: Decimal

    def to_dict(self) -> dict:
        return {
            "type": self.mode.value,
            "free_weight_limit": str(self.free_weight_limit),
            "per_kg_rate": str(self.per_kg_rate),
        }


DeliveryConfig = FixedDelivery | ThresholdDelivery | DistanceDelivery | WeightDelivery


# Parameters a delivery variant falls back to when a configuration omits them
DELIVERY_DEFAULTS = {
    DeliveryMode.FIXED: {"charge": 50},
    DeliveryMode.THRESHOLD: {"free_above": 1000, "charge_below": 100},
    DeliveryMode.DISTANCE: {"base_distance_km": 5, "per_km_rate": 5},
    DeliveryMode.WEIGHT: {"free_weight_limit": 50, "per_kg_rate": 10},
}


def parse_delivery_config(payload: dict) -> DeliveryConfig:
    """Validate an untyped delivery payload into its tagged variant.

    Unknown tags are rejected rather than coerced into a default mode.
    Omitted parameters take the marketplace defaults in ``DELIVERY_DEFAULTS``.
    """
    if not isinstance(payload, dict):
        raise ValidationError({"delivery": ["Delivery configuration must be an object"]})

    tag = payload.get("type")
    try:
        mode = DeliveryMode(tag)
    except ValueError as exc:
        raise ValidationError({"delivery": [f"Unknown delivery mode '{tag}'"]}) from exc

    params = {**DELIVERY_DEFAULTS[mode], **{k: v for k, v in payload.items() if k != "type" and v is not None}}
    if mode == DeliveryMode.FIXED:
        return FixedDelivery(charge=_non_negative(params["charge"], "charge"))
    if mode == DeliveryMode.THRESHOLD:
        return ThresholdDelivery(
            free_above=_non_negative(params["free_above"], "free_above"),
            charge_below=_non_negative(params["charge_below"], "charge_below"),
        )
    if mode == DeliveryMode.DISTANCE:
        return DistanceDelivery(
            base_distance_km=_non_negative(params["base_distance_km"], "base_distance_km"),
            per_km_rate=_non_negative(params["per_km_rate"], "per_km_rate"),
        )
    return WeightDelivery(
        free_weight_limit=_non_negative(params["free_weight_limit"], "free_weight_limit"),
        per_kg_rate=_non_negative(params["per_kg_rate"], "per_kg_rate"),
    )


# ---------------------------------------------------------------------------
# Pricing configuration
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PricingConfig:
    tax_rate: Decimal
    delivery: DeliveryConfig
    platform_fee_rate: Decimal = ZERO
    minimum_order_value: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "tax_rate": str(self.tax_rate),
            "delivery": self.delivery.to_dict(),
            "platform_fee_rate": str(self.platform_fee_rate),
            "minimum_order_value": str(self.minimum_order_value),
        }


def parse_pricing_config(payload: dict) -> PricingConfig:
    tax_rate = _non_negative(payload.get("tax_rate", 0), "tax_rate")
    if tax_rate > 1:
        raise ValidationError({"tax_rate": ["Tax rate must be a fraction between 0 and 1"]})

    platform_fee_rate = _non_negative(payload.get("platform_fee_rate", 0), "platform_fee_rate")
    if platform_fee_rate > MAX_PLATFORM_FEE_RATE:
        raise ValidationError({"platform_fee_rate": [f"Platform fee rate cannot exceed {MAX_PLATFORM_FEE_RATE}"]})

    return PricingConfig(
        tax_rate=tax_rate,
        delivery=parse_delivery_config(payload.get("delivery")),
        platform_fee_rate=platform_fee_rate,
        minimum_order_value=_non_negative(payload.get("minimum_order_value", 0), "minimum_order_value"),
    )


# ---------------------------------------------------------------------------
# Inputs and outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PricedItem:
    """A priced line: the engine only needs the line total, quantity and unit weight."""

    total_price: Decimal
    quantity: int = 1
    weight: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: dict) -> "PricedItem":
        quantity = data.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be a positive integer"]})
        return cls(
            total_price=_non_negative(data.get("total_price"), "total_price"),
            quantity=quantity,
            weight=_non_negative(data.get("weight") or 0, "weight"),
        )


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax: Decimal
    delivery_charges: Decimal
    platform_fee: Decimal | None
    total_amount: Decimal
    below_minimum: bool
    breakdown: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "delivery_charges": str(self.delivery_charges),
            "total_amount": str(self.total_amount),
            "below_minimum": self.below_minimum,
            "breakdown": self.breakdown,
        }
        if self.platform_fee is not None:
            result["platform_fee"] = str(self.platform_fee)
        return result


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------
def delivery_charge(delivery: DeliveryConfig, subtotal: Decimal) -> Decimal:
    if isinstance(delivery, FixedDelivery):
        return delivery.charge
    if isinstance(delivery, ThresholdDelivery):
        return ZERO if subtotal >= delivery.free_above else delivery.charge_below
    raise UnsupportedDeliveryMode(
        f"Delivery mode '{delivery.mode.value}' is not supported yet",
        mode=delivery.mode.value,
    )


def compute_pricing(items: Iterable[PricedItem], config: PricingConfig) -> PriceBreakdown:
    """Price a set of lines under ``config``.

    Deterministic: identical ``(items, config)`` always produce an identical
    breakdown, which is what keeps cart previews and checkouts in step.
    """
    items = list(items)
    subtotal = sum((item.total_price for item in items), ZERO)

    tax = subtotal * config.tax_rate
    delivery = delivery_charge(config.delivery, subtotal)

    platform_fee = None
    if config.platform_fee_rate != ZERO:
        platform_fee = subtotal * config.platform_fee_rate

    total = subtotal + tax + delivery + (platform_fee or ZERO)

    breakdown = {
        "tax_rate": str(config.tax_rate),
        "delivery_config": config.delivery.to_dict(),
        "minimum_order_value": str(config.minimum_order_value),
    }
    if platform_fee is not None:
        breakdown["platform_fee_rate"] = str(config.platform_fee_rate)

    return PriceBreakdown(
        subtotal=round_money(subtotal),
        tax=round_money(tax),
        delivery_charges=round_money(delivery),
        platform_fee=round_money(platform_fee) if platform_fee is not None else None,
        total_amount=round_money(total),
        below_minimum=subtotal < config.minimum_order_value,
        breakdown=breakdown,
    )


def totals_consistent(subtotal, tax, delivery_charges, platform_fee, total_amount) -> bool:
    """True when the total matches the sum of its parts within rounding tolerance."""
    parts = sum((to_decimal(v) for v in (subtotal, tax, delivery_charges, platform_fee or 0)), ZERO)
    return abs(to_decimal(total_amount) - parts) <= ROUNDING_TOLERANCE


def delivery_preview(config: PricingConfig, order_values: Iterable = DEFAULT_PREVIEW_VALUES) -> list[dict]:
    """Show what a ladder of sample order values would pay for delivery and tax."""
    preview = []
    for value in order_values:
        priced = compute_pricing([PricedItem(total_price=to_decimal(value))], config)
        preview.append(
            {
                "order_value": str(priced.subtotal),
                "delivery_charges": str(priced.delivery_charges),
                "tax": str(priced.tax),
                "total": str(priced.total_amount),
            }
        )
    return preview
