"""Lifecycle log: every order's lifecycle entries in one searchable table.

Each row mirrors one lifecycle entry and tracks how its notifications went,
so administrators can search the log across orders and see delivery rates
per event type.
"""

import json

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.events import (
    LifecycleEventRecorded,
    NotificationAttemptRecorded,
    NotificationResendRequested,
)
from fulfillment.order.order import Order


def entry_key(order_id, sequence) -> str:
    return f"{order_id}:{sequence}"


@fulfillment.projection
class LifecycleLogEntry:
    entry_id = String(identifier=True, required=True, max_length=60)  # "<order_id>:<sequence>"
    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=20)
    sequence = Integer(required=True)
    item_id = String(max_length=50)
    event_type = String(required=True, max_length=50)
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, max_length=20)
    description = String(max_length=500)
    recorded_at = DateTime(required=True)
    recorded_on = String(max_length=10)  # YYYY-MM-DD
    channel_outcomes = Text()  # JSON: channel -> succeeded
    notification_state = String(default="unattempted", max_length=20)

    @property
    def outcomes(self) -> dict:
        return json.loads(self.channel_outcomes) if self.channel_outcomes else {}

    def record(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "sequence": self.sequence,
            "item_id": self.item_id,
            "event_type": self.event_type,
            "triggered_by": {"actor_id": self.actor_id, "actor_role": self.actor_role},
            "description": self.description,
            "recorded_at": self.recorded_at.isoformat(),
            "notification_state": self.notification_state,
        }


def notification_state(outcomes: dict) -> str:
    """delivered once any channel succeeded, failed when every attempt so far failed."""
    if any(outcomes.values()):
        return "delivered"
    if outcomes:
        return "failed"
    return "unattempted"


@fulfillment.projector(projector_for=LifecycleLogEntry, aggregates=[Order])
class LifecycleLogProjector:
    @on(LifecycleEventRecorded)
    def on_lifecycle_event_recorded(self, event):
        current_domain.repository_for(LifecycleLogEntry).add(
            LifecycleLogEntry(
                entry_id=entry_key(event.order_id, event.sequence),
                order_id=event.order_id,
                order_number=event.order_number,
                sequence=event.sequence,
                item_id=str(event.item_id) if event.item_id else None,
                event_type=event.event_type,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                description=event.description,
                recorded_at=event.recorded_at,
                recorded_on=event.recorded_at.date().isoformat(),
                channel_outcomes=json.dumps({}),
                notification_state="unattempted",
            )
        )

    @on(NotificationAttemptRecorded)
    def on_notification_attempt_recorded(self, event):
        repo = current_domain.repository_for(LifecycleLogEntry)
        try:
            entry = repo.get(entry_key(event.order_id, event.sequence))
        except ObjectNotFoundError:
            return
        outcomes = entry.outcomes
        outcomes[event.channel] = bool(event.succeeded)
        entry.channel_outcomes = json.dumps(outcomes, sort_keys=True)
        entry.notification_state = notification_state(outcomes)
        repo.add(entry)

    @on(NotificationResendRequested)
    def on_notification_resend_requested(self, event):
        repo = current_domain.repository_for(LifecycleLogEntry)
        try:
            entry = repo.get(entry_key(event.order_id, event.sequence))
        except ObjectNotFoundError:
            return
        outcomes = entry.outcomes
        for channel in json.loads(event.channels):
            outcomes.pop(channel, None)
        entry.channel_outcomes = json.dumps(outcomes, sort_keys=True)
        entry.notification_state = notification_state(outcomes)
        repo.add(entry)
