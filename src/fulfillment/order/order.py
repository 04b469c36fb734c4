"""Order aggregate (CQRS) — the core of the fulfillment domain.

An Order is created at checkout together with all of its items and never
changes shape afterwards: only item statuses, assignments and timestamps
move. Each item is claimed and fulfilled independently by one merchant;
the order-level status is always derived from the item statuses.

Every successful mutation appends exactly one LifecycleEvent per change to
the order's lifecycle log before the aggregate is saved, so the log and the
state it describes are persisted together.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Decimal as DecimalField,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from fulfillment.domain import fulfillment
from fulfillment.exceptions import AlreadyAssigned, Forbidden, InvalidTransition, MerchantExcluded, NotFound
from fulfillment.order.aggregation import OrderStatus, aggregate_status
from fulfillment.order.events import (
    ItemClaimed,
    ItemRejected,
    ItemStatusChanged,
    LifecycleEventRecorded,
    NotificationAttemptRecorded,
    NotificationResendRequested,
    OrderCancelled,
    OrderPlaced,
    OrderStatusUpdated,
)
from fulfillment.order.lifecycle import (
    OWNED_STATUSES,
    Actor,
    ActorRole,
    ItemEvent,
    ItemStatus,
    apply_transition,
    authorize,
    is_terminal,
    next_status,
)
from fulfillment.pricing.engine import PriceBreakdown, PricingConfig, totals_consistent


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentMethod(Enum):
    COD = "cod"
    ONLINE = "online"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class LifecycleEventType(Enum):
    ORDER_CREATED = "order_created"
    ITEM_CLAIMED = "item_claimed"
    ITEM_AUTO_ASSIGNED = "item_auto_assigned"
    ITEM_REJECTED = "item_rejected"
    ITEM_PROCESSING = "item_processing"
    ITEM_SHIPPED = "item_shipped"
    ITEM_DELIVERED = "item_delivered"
    ITEM_CANCELLED = "item_cancelled"
    ORDER_STATUS_UPDATED = "order_status_updated"
    ORDER_CANCELLED = "order_cancelled"


class NotificationChannel(Enum):
    WEBHOOK = "webhook"
    SMS = "sms"
    WHATSAPP = "whatsapp"


_STATUS_EVENT_TYPES = {
    ItemStatus.PROCESSING: LifecycleEventType.ITEM_PROCESSING,
    ItemStatus.SHIPPED: LifecycleEventType.ITEM_SHIPPED,
    ItemStatus.DELIVERED: LifecycleEventType.ITEM_DELIVERED,
    ItemStatus.CANCELLED: LifecycleEventType.ITEM_CANCELLED,
}


def _blank_notifications() -> str:
    return json.dumps(
        {
            channel.value: {"attempted": False, "succeeded": False, "attempted_at": None, "error": None}
            for channel in NotificationChannel
        },
        sort_keys=True,
    )


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class DeliveryAddress:
    """Where the order goes, captured at checkout and never updated."""

    street = String(required=True, max_length=255)
    area = String(required=True, max_length=100)
    city = String(max_length=100)
    postal_code = String(max_length=20)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)


@fulfillment.value_object(part_of="Order")
class OrderPricing:
    """Amounts charged at checkout, with the configuration they were computed under.

    Amounts are rounded to the cent by the pricing engine before they land
    here and are stored as exact decimals.
    """

    subtotal = DecimalField(default=Decimal("0"))
    tax = DecimalField(default=Decimal("0"))
    delivery_charge = DecimalField(default=Decimal("0"))
    platform_fee = DecimalField(default=Decimal("0"))
    total_amount = DecimalField(default=Decimal("0"))
    tax_rate = DecimalField(default=Decimal("0"))
    platform_fee_rate = DecimalField(default=Decimal("0"))
    delivery_mode = String(max_length=20)
    minimum_order_value = DecimalField(default=Decimal("0"))


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    """One line of an order — the unit a merchant claims and fulfils."""

    position = Integer(required=True, min_value=0)
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    unit_price = DecimalField(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    weight = DecimalField(default=Decimal("0"))
    total_price = DecimalField(required=True, min_value=0)
    assigned_merchant_id = Identifier()
    item_status = String(
        choices=ItemStatus,
        default=ItemStatus.PENDING.value,
    )
    rejected_by = Text()  # JSON list of merchant IDs (exclusion set)
    claimed_at = DateTime()
    updated_at = DateTime()

    @property
    def excluded_merchants(self) -> list[str]:
        return json.loads(self.rejected_by) if self.rejected_by else []

    def is_excluded(self, merchant_id: str) -> bool:
        return str(merchant_id) in self.excluded_merchants

    def summary(self) -> dict:
        return {
            "item_id": str(self.id),
            "position": self.position,
            "product_id": str(self.product_id),
            "product_name": self.product_name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "total_price": str(self.total_price),
            "assigned_merchant_id": str(self.assigned_merchant_id) if self.assigned_merchant_id else None,
            "item_status": self.item_status,
            "rejected_by": self.excluded_merchants,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
        }


@fulfillment.entity(part_of="Order")
class LifecycleEvent:
    """An audit record of one state change or assignment decision.

    Event fields are written once. Only the notification record is updated
    afterwards, when an external notifier reports a delivery attempt
    or an administrator asks for undelivered channels to be resent.
    """

    sequence = Integer(required=True, min_value=1)
    item_id = Identifier()
    event_type = String(required=True, choices=LifecycleEventType)
    timestamp = DateTime(required=True)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, choices=ActorRole)
    description = String(max_length=500)
    previous_status = String(max_length=50)
    new_status = String(max_length=50)
    details = Text()  # JSON object
    notifications = Text()  # JSON: channel -> {attempted, succeeded, attempted_at, error}

    def record(self) -> dict:
        return {
            "sequence": self.sequence,
            "item_id": str(self.item_id) if self.item_id else None,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "triggered_by": {"actor_id": self.actor_id, "actor_role": self.actor_role},
            "description": self.description,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "details": json.loads(self.details) if self.details else {},
            "notifications": self.notification_record(),
        }

    def notification_record(self) -> dict:
        return json.loads(self.notifications or _blank_notifications())


@fulfillment.entity(part_of="Order")
class StatusHistoryEntry:
    """A change of the aggregate order status."""

    status = String(required=True, choices=OrderStatus)
    timestamp = DateTime(required=True)
    note = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    customer_id = Identifier(required=True)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    items = HasMany(OrderItem)
    pricing = ValueObject(OrderPricing)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.COD.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    delivery_address = ValueObject(DeliveryAddress)
    delivery_instructions = String(max_length=500)
    cancellation_reason = String(max_length=500)
    status_history = HasMany(StatusHistoryEntry)
    lifecycle_events = HasMany(LifecycleEvent)
    placed_on = String(max_length=10)  # ISO date
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_matches_sum_of_charges(self):
        if self.pricing is None:
            return
        p = self.pricing
        if not totals_consistent(p.subtotal, p.tax, p.delivery_charge, p.platform_fee, p.total_amount):
            raise ValidationError({"pricing": ["Total amount does not match the sum of its charges"]})

    @invariant.post
    def claimed_items_have_an_owner(self):
        for item in self.items or []:
            status = ItemStatus(item.item_status)
            if status == ItemStatus.PENDING and item.assigned_merchant_id:
                raise ValidationError({"items": ["A pending item cannot have an assigned merchant"]})
            if status in OWNED_STATUSES and not item.assigned_merchant_id:
                raise ValidationError({"items": [f"An {status.value} item must have an assigned merchant"]})

    @invariant.post
    def excluded_merchants_never_own_items(self):
        for item in self.items or []:
            if item.assigned_merchant_id and item.is_excluded(str(item.assigned_merchant_id)):
                raise ValidationError({"items": ["A merchant who rejected an item cannot own it"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number: str,
        customer_id: str,
        lines: list[dict],
        pricing: PriceBreakdown,
        config: PricingConfig,
        delivery_address: dict,
        actor: Actor,
        payment_method: str = PaymentMethod.COD.value,
        delivery_instructions: str | None = None,
    ):
        """Create an order and all of its items in one step.

        ``lines`` carry their computed ``total_price``; ``pricing`` is the
        engine's breakdown for exactly those lines under ``config``.
        """
        if not lines:
            raise ValidationError({"items": ["At least one item is required"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            customer_id=customer_id,
            status=OrderStatus.PENDING.value,
            pricing=OrderPricing(
                subtotal=pricing.subtotal,
                tax=pricing.tax,
                delivery_charge=pricing.delivery_charges,
                platform_fee=pricing.platform_fee or Decimal("0"),
                total_amount=pricing.total_amount,
                tax_rate=config.tax_rate,
                platform_fee_rate=config.platform_fee_rate,
                delivery_mode=config.delivery.mode.value,
                minimum_order_value=config.minimum_order_value,
            ),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            delivery_address=DeliveryAddress(**delivery_address),
            delivery_instructions=delivery_instructions,
            placed_on=now.date().isoformat(),
            created_at=now,
            updated_at=now,
        )
        for position, line in enumerate(lines):
            order.add_items(
                OrderItem(
                    position=position,
                    product_id=line["product_id"],
                    product_name=line["product_name"],
                    unit_price=line["unit_price"],
                    quantity=line["quantity"],
                    weight=line.get("weight") or Decimal("0"),
                    total_price=line["total_price"],
                    item_status=ItemStatus.PENDING.value,
                    rejected_by=json.dumps([]),
                    updated_at=now,
                )
            )

        order.add_status_history(StatusHistoryEntry(status=OrderStatus.PENDING.value, timestamp=now, note="Order placed"))
        order._record(
            LifecycleEventType.ORDER_CREATED,
            actor,
            description=f"Order {order_number} placed with {len(lines)} item(s)",
            new_status=OrderStatus.PENDING.value,
            details={"total_amount": str(pricing.total_amount), "item_count": len(lines)},
            at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=customer_id,
                item_count=len(lines),
                total_amount=pricing.total_amount,
                items=json.dumps(
                    [
                        {
                            "item_id": str(item.id),
                            "position": item.position,
                            "product_id": str(item.product_id),
                            "product_name": item.product_name,
                            "quantity": item.quantity,
                            "total_price": str(item.total_price),
                        }
                        for item in order.ordered_items
                    ]
                ),
                delivery_area=order.delivery_address.area,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def ordered_items(self) -> list:
        return sorted(self.items or [], key=lambda i: i.position)

    def get_item(self, item_id: str):
        item = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if item is None:
            raise NotFound(f"Item {item_id} not found in order {self.id}", order_id=self.id, item_id=item_id)
        return item

    def lifecycle(self, event_type: str | None = None, item_id: str | None = None) -> list:
        """Lifecycle events in creation order, optionally filtered."""
        events = sorted(self.lifecycle_events or [], key=lambda e: e.sequence)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        if item_id is not None:
            events = [e for e in events if e.item_id and str(e.item_id) == str(item_id)]
        return events

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------
    def claim_item(self, item_id: str, merchant_id: str, actor: Actor, auto_assigned: bool = False):
        """Make ``merchant_id`` the exclusive owner of a pending item.

        The precondition (pending, unowned, merchant not excluded) is checked
        against the loaded state. Saving a claim made against a stale copy
        fails the aggregate version check, so only one claim ever commits.
        """
        item = self.get_item(item_id)
        merchant_id = str(merchant_id)

        if not actor.is_administrative and not (actor.role == ActorRole.MERCHANT and actor.actor_id == merchant_id):
            raise Forbidden(
                f"{actor.role.value} '{actor.actor_id}' may not claim items for merchant '{merchant_id}'",
                actor_id=actor.actor_id,
                merchant_id=merchant_id,
            )
        if item.assigned_merchant_id:
            raise AlreadyAssigned(
                f"Item {item_id} is already assigned",
                item_id=item_id,
                merchant_id=merchant_id,
            )
        next_status(ItemStatus(item.item_status), ItemEvent.CLAIM)
        if item.is_excluded(merchant_id):
            raise MerchantExcluded(
                f"Merchant '{merchant_id}' rejected item {item_id} and cannot claim it",
                item_id=item_id,
                merchant_id=merchant_id,
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            apply_transition(item, ItemEvent.CLAIM, actor)
            item.assigned_merchant_id = merchant_id
            item.claimed_at = now
            self.updated_at = now

            event_type = LifecycleEventType.ITEM_AUTO_ASSIGNED if auto_assigned else LifecycleEventType.ITEM_CLAIMED
            self._record(
                event_type,
                actor,
                item_id=item_id,
                description=f"{item.product_name} assigned to merchant {merchant_id}",
                previous_status=ItemStatus.PENDING.value,
                new_status=ItemStatus.ASSIGNED.value,
                details={"merchant_id": merchant_id},
                at=now,
            )
            self._recompute_status(actor, at=now)

        self.raise_(
            ItemClaimed(
                order_id=str(self.id),
                item_id=str(item_id),
                merchant_id=merchant_id,
                auto_assigned=auto_assigned,
                claimed_at=now,
            )
        )
        return item

    def reject_item(self, item_id: str, merchant_id: str, actor: Actor) -> bool:
        """Exclude ``merchant_id`` from an open item.

        Returns False, recording nothing, when the item is no longer pending
        or the merchant already rejected it. Rejection only matters while
        the item is still open.
        """
        item = self.get_item(item_id)
        merchant_id = str(merchant_id)

        if not actor.is_administrative and not (actor.role == ActorRole.MERCHANT and actor.actor_id == merchant_id):
            raise Forbidden(
                f"{actor.role.value} '{actor.actor_id}' may not reject items for merchant '{merchant_id}'",
                actor_id=actor.actor_id,
                merchant_id=merchant_id,
            )
        if ItemStatus(item.item_status) != ItemStatus.PENDING or item.is_excluded(merchant_id):
            return False

        now = datetime.now(UTC)
        with atomic_change(self):
            apply_transition(item, ItemEvent.REJECT, actor)
            item.rejected_by = json.dumps(item.excluded_merchants + [merchant_id])
            self.updated_at = now
            self._record(
                LifecycleEventType.ITEM_REJECTED,
                actor,
                item_id=item_id,
                description=f"Merchant {merchant_id} rejected {item.product_name}",
                previous_status=ItemStatus.PENDING.value,
                new_status=ItemStatus.PENDING.value,
                details={"merchant_id": merchant_id},
                at=now,
            )
            self._recompute_status(actor, at=now)

        self.raise_(
            ItemRejected(
                order_id=str(self.id),
                item_id=str(item_id),
                merchant_id=merchant_id,
                rejected_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Item progress
    # -------------------------------------------------------------------
    def advance_item(self, item_id: str, event: ItemEvent, actor: Actor, note: str | None = None):
        """Move a claimed item along its lifecycle."""
        if event in (ItemEvent.CLAIM, ItemEvent.REJECT, ItemEvent.FORCE_CANCEL):
            raise InvalidTransition(f"'{event.value}' is not an item status update", event=event.value)

        item = self.get_item(item_id)
        previous = ItemStatus(item.item_status)
        target = next_status(previous, event)
        authorize(item, event, actor, customer_id=str(self.customer_id))

        now = datetime.now(UTC)
        with atomic_change(self):
            apply_transition(item, event, actor, customer_id=str(self.customer_id))
            self.updated_at = now
            self._record(
                _STATUS_EVENT_TYPES[target],
                actor,
                item_id=item_id,
                description=f"{item.product_name} moved from {previous.value} to {target.value}",
                previous_status=previous.value,
                new_status=target.value,
                details={"note": note} if note else None,
                at=now,
            )
            self._recompute_status(actor, note=note, at=now)

        self.raise_(
            ItemStatusChanged(
                order_id=str(self.id),
                item_id=str(item_id),
                previous_status=previous.value,
                new_status=target.value,
                changed_by=actor.actor_id,
                changed_at=now,
            )
        )
        return item

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, actor: Actor, reason: str) -> None:
        """Cancel the whole order, forcing every open item to cancelled.

        Delivered items stay delivered, so an order with some deliveries
        ends up partially fulfilled rather than cancelled.
        """
        owns_order = actor.role == ActorRole.CUSTOMER and actor.actor_id == str(self.customer_id)
        if not actor.is_administrative and not owns_order:
            raise Forbidden(
                f"{actor.role.value} '{actor.actor_id}' may not cancel order {self.id}",
                actor_id=actor.actor_id,
            )

        open_items = [i for i in self.ordered_items if not is_terminal(ItemStatus(i.item_status))]
        if not open_items:
            raise InvalidTransition(
                f"Order {self.id} has no open items to cancel",
                status=self.status,
            )

        now = datetime.now(UTC)
        previous_statuses = {}
        with atomic_change(self):
            for item in open_items:
                previous = previous_statuses[str(item.id)] = item.item_status
                apply_transition(item, ItemEvent.FORCE_CANCEL, actor, customer_id=str(self.customer_id))
                self._record(
                    LifecycleEventType.ITEM_CANCELLED,
                    actor,
                    item_id=str(item.id),
                    description=f"{item.product_name} cancelled with the order",
                    previous_status=previous,
                    new_status=ItemStatus.CANCELLED.value,
                    at=now,
                )

            self.cancellation_reason = reason
            self.updated_at = now
            self._record(
                LifecycleEventType.ORDER_CANCELLED,
                actor,
                description=f"Order cancelled: {reason}",
                previous_status=self.status,
                details={"reason": reason, "cancelled_items": len(open_items)},
                at=now,
            )
            self._recompute_status(actor, note=reason, at=now)

        for item_id, previous in previous_statuses.items():
            self.raise_(
                ItemStatusChanged(
                    order_id=str(self.id),
                    item_id=item_id,
                    previous_status=previous,
                    new_status=ItemStatus.CANCELLED.value,
                    changed_by=actor.actor_id,
                    changed_at=now,
                )
            )
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=actor.actor_id,
                cancelled_item_count=len(open_items),
                cancelled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Notification bookkeeping
    # -------------------------------------------------------------------
    def record_notification(self, sequence: int, channel: str, succeeded: bool, error: str | None = None) -> dict:
        """Record the outcome of a notification attempt for one lifecycle event."""
        try:
            channel = NotificationChannel(channel)
        except ValueError as exc:
            raise ValidationError({"channel": [f"Unknown notification channel '{channel}'"]}) from exc

        event = self._lifecycle_event(sequence)
        now = datetime.now(UTC)
        notifications = event.notification_record()
        notifications[channel.value] = {
            "attempted": True,
            "succeeded": succeeded,
            "attempted_at": now.isoformat(),
            "error": None if succeeded else error,
        }
        event.notifications = json.dumps(notifications, sort_keys=True)
        self.raise_(
            NotificationAttemptRecorded(
                order_id=str(self.id),
                sequence=sequence,
                channel=channel.value,
                succeeded=succeeded,
                error=None if succeeded else error,
                attempted_at=now,
            )
        )
        return notifications[channel.value]

    def request_notification_resend(self, sequence: int, actor: Actor, channels: list[str] | None = None) -> dict:
        """Reset undelivered channels of a lifecycle event so the notifier tries them again.

        Without ``channels`` every channel that has not succeeded is reset.
        Nothing is raised when there is nothing left to resend.
        """
        if not actor.is_administrative:
            raise Forbidden(
                f"{actor.role.value} '{actor.actor_id}' may not resend notifications",
                actor_id=actor.actor_id,
            )
        try:
            requested = [NotificationChannel(c).value for c in channels] if channels else None
        except ValueError as exc:
            raise ValidationError({"channels": [f"Unknown notification channel in {channels}"]}) from exc

        event = self._lifecycle_event(sequence)
        notifications = event.notification_record()
        if requested is None:
            requested = [name for name, record in sorted(notifications.items()) if not record["succeeded"]]

        if requested:
            for name in requested:
                notifications[name] = {"attempted": False, "succeeded": False, "attempted_at": None, "error": None}
            event.notifications = json.dumps(notifications, sort_keys=True)
            self.raise_(
                NotificationResendRequested(
                    order_id=str(self.id),
                    sequence=sequence,
                    event_type=event.event_type,
                    channels=json.dumps(requested),
                    requested_by=actor.actor_id,
                    requested_at=datetime.now(UTC),
                )
            )
        return {"sequence": sequence, "channels": requested, "notifications": notifications}

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _record(
        self,
        event_type: LifecycleEventType,
        actor: Actor,
        item_id: str | None = None,
        description: str | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
        details: dict | None = None,
        at: datetime | None = None,
    ) -> None:
        at = at or datetime.now(UTC)
        sequence = len(self.lifecycle_events or []) + 1
        self.add_lifecycle_events(
            LifecycleEvent(
                sequence=sequence,
                item_id=item_id,
                event_type=event_type.value,
                timestamp=at,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                description=description,
                previous_status=previous_status,
                new_status=new_status,
                details=json.dumps(details or {}, sort_keys=True),
                notifications=_blank_notifications(),
            )
        )
        self.raise_(
            LifecycleEventRecorded(
                order_id=str(self.id),
                order_number=self.order_number,
                sequence=sequence,
                item_id=item_id,
                event_type=event_type.value,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                description=description,
                recorded_at=at,
            )
        )

    def _lifecycle_event(self, sequence: int):
        event = next((e for e in (self.lifecycle_events or []) if e.sequence == sequence), None)
        if event is None:
            raise NotFound(
                f"Lifecycle event {sequence} not found in order {self.id}",
                order_id=self.id,
                sequence=sequence,
            )
        return event

    def _recompute_status(self, actor: Actor, note: str | None = None, at: datetime | None = None) -> None:
        """Re-derive the order status after an item transition and log the result."""
        at = at or datetime.now(UTC)
        previous = self.status
        current = aggregate_status(i.item_status for i in self.items or []).value
        changed = current != previous

        self._record(
            LifecycleEventType.ORDER_STATUS_UPDATED,
            actor,
            description=f"Order status {previous} → {current}" if changed else f"Order status remains {current}",
            previous_status=previous,
            new_status=current,
            details={"changed": changed},
            at=at,
        )
        if not changed:
            return

        self.status = current
        self.add_status_history(StatusHistoryEntry(status=current, timestamp=at, note=note))
        self.raise_(
            OrderStatusUpdated(
                order_id=str(self.id),
                previous_status=previous,
                new_status=current,
                updated_at=at,
            )
        )

    # -------------------------------------------------------------------
    # Money helpers
    # -------------------------------------------------------------------
    def amount(self, name: str) -> Decimal:
        """A pricing amount, zero when the order carries no pricing."""
        return getattr(self.pricing, name, None) or Decimal("0")
