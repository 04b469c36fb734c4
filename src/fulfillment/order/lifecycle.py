"""Item lifecycle state machine — validates and applies transitions for one order item.

State Machine:
    PENDING → ASSIGNED → PROCESSING → SHIPPED → DELIVERED
    PROCESSING → DELIVERED                      (shortcut)
    {ASSIGNED, PROCESSING} → CANCELLED
    PENDING → PENDING                           (merchant rejects, item stays open)
    {PENDING, ASSIGNED, PROCESSING, SHIPPED} → CANCELLED  (administrative force-cancel)

DELIVERED and CANCELLED are terminal: every event on them is an
InvalidTransition, never a silent no-op.

The table check runs before the actor check, and both run before anything
on the item changes.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError

from fulfillment.exceptions import Forbidden, InvalidTransition


class ItemStatus(Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ItemEvent(Enum):
    CLAIM = "claim"
    REJECT = "reject"
    START_PROCESSING = "start_processing"
    SHIP = "ship"
    DELIVER = "deliver"
    CANCEL = "cancel"
    FORCE_CANCEL = "force_cancel"


class ActorRole(Enum):
    CUSTOMER = "customer"
    MERCHANT = "merchant"
    ADMIN = "admin"
    SYSTEM = "system"


TERMINAL_STATUSES = frozenset({ItemStatus.DELIVERED, ItemStatus.CANCELLED})

# Statuses that always carry an owning merchant
OWNED_STATUSES = frozenset(
    {
        ItemStatus.ASSIGNED,
        ItemStatus.PROCESSING,
        ItemStatus.SHIPPED,
        ItemStatus.DELIVERED,
    }
)

_TRANSITIONS = {
    (ItemStatus.PENDING, ItemEvent.CLAIM): ItemStatus.ASSIGNED,
    (ItemStatus.PENDING, ItemEvent.REJECT): ItemStatus.PENDING,
    (ItemStatus.PENDING, ItemEvent.FORCE_CANCEL): ItemStatus.CANCELLED,
    (ItemStatus.ASSIGNED, ItemEvent.START_PROCESSING): ItemStatus.PROCESSING,
    (ItemStatus.ASSIGNED, ItemEvent.CANCEL): ItemStatus.CANCELLED,
    (ItemStatus.ASSIGNED, ItemEvent.FORCE_CANCEL): ItemStatus.CANCELLED,
    (ItemStatus.PROCESSING, ItemEvent.SHIP): ItemStatus.SHIPPED,
    (ItemStatus.PROCESSING, ItemEvent.DELIVER): ItemStatus.DELIVERED,
    (ItemStatus.PROCESSING, ItemEvent.CANCEL): ItemStatus.CANCELLED,
    (ItemStatus.PROCESSING, ItemEvent.FORCE_CANCEL): ItemStatus.CANCELLED,
    (ItemStatus.SHIPPED, ItemEvent.DELIVER): ItemStatus.DELIVERED,
    (ItemStatus.SHIPPED, ItemEvent.FORCE_CANCEL): ItemStatus.CANCELLED,
}

_TARGET_EVENTS = {
    ItemStatus.PROCESSING: ItemEvent.START_PROCESSING,
    ItemStatus.SHIPPED: ItemEvent.SHIP,
    ItemStatus.DELIVERED: ItemEvent.DELIVER,
    ItemStatus.CANCELLED: ItemEvent.CANCEL,
}

_OVERRIDE_ROLES = frozenset({ActorRole.ADMIN, ActorRole.SYSTEM})


@dataclass(frozen=True)
class Actor:
    """Who is asking for a change."""

    actor_id: str
    role: ActorRole

    @classmethod
    def of(cls, actor_id: str, role: str) -> "Actor":
        try:
            return cls(actor_id=actor_id, role=ActorRole(role))
        except ValueError as exc:
            raise ValidationError({"actor_role": [f"Unknown actor role '{role}'"]}) from exc

    @property
    def is_administrative(self) -> bool:
        return self.role in _OVERRIDE_ROLES


SYSTEM_ACTOR = Actor(actor_id="system", role=ActorRole.SYSTEM)


def is_terminal(status: ItemStatus) -> bool:
    return status in TERMINAL_STATUSES


def next_status(current: ItemStatus, event: ItemEvent) -> ItemStatus:
    """Look ``(current, event)`` up in the transition table."""
    target = _TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition(
            f"Cannot apply '{event.value}' to an item in '{current.value}' state",
            status=current.value,
            event=event.value,
        )
    return target


def event_for_target_status(status: str) -> ItemEvent:
    """Map a requested target status (from the REST surface) to its event."""
    try:
        target = ItemStatus(status)
    except ValueError as exc:
        raise ValidationError({"status": [f"Unknown item status '{status}'"]}) from exc

    event = _TARGET_EVENTS.get(target)
    if event is None:
        raise InvalidTransition(
            f"Items cannot be moved to '{target.value}' by a status update",
            status=target.value,
        )
    return event


def authorize(item, event: ItemEvent, actor: Actor, customer_id: str | None = None) -> None:
    """Check the actor may apply ``event`` to ``item``.

    CLAIM and REJECT are arbitrated by the assignment engine, which knows the
    merchant being claimed for; everything else is reserved for the owning
    merchant, with an administrative override for cancellation.
    """
    if event in (ItemEvent.CLAIM, ItemEvent.REJECT):
        return

    is_owner = actor.role == ActorRole.MERCHANT and actor.actor_id == item.assigned_merchant_id
    is_override = actor.is_administrative or (
        actor.role == ActorRole.CUSTOMER and customer_id is not None and actor.actor_id == customer_id
    )

    if event == ItemEvent.FORCE_CANCEL:
        allowed = is_override
    elif event == ItemEvent.CANCEL:
        allowed = is_owner or is_override
    else:
        allowed = is_owner

    if not allowed:
        raise Forbidden(
            f"{actor.role.value} '{actor.actor_id}' may not apply '{event.value}' to this item",
            actor_id=actor.actor_id,
            event=event.value,
        )


def apply_transition(item, event: ItemEvent, actor: Actor, customer_id: str | None = None):
    """Validate ``event`` against the item's state and actor, then apply it.

    Returns the updated item. Raises InvalidTransition when the pair is not
    in the table and Forbidden when the actor may not apply it.
    """
    current = ItemStatus(item.item_status)
    target = next_status(current, event)
    authorize(item, event, actor, customer_id)

    if target != current:
        item.item_status = target.value
    item.updated_at = datetime.now(UTC)
    return item
