"""Notification bookkeeping: record delivery attempts against lifecycle events.

Notification transport lives outside this service; the notifier reports
back whether each channel was attempted and whether it succeeded. An
administrator can ask for undelivered channels to be tried again, which
resets them and publishes NotificationResendRequested for the notifier.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.order.lifecycle import Actor
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class RecordNotificationAttempt:
    """Record the outcome of a notification attempt for one lifecycle event."""

    order_id = Identifier(required=True)
    sequence = Integer(required=True, min_value=1)
    channel = String(required=True, max_length=20)
    succeeded = Boolean(default=False)
    error = String(max_length=500)


@fulfillment.command(part_of="Order")
class RequestNotificationResend:
    """Try the channels that did not deliver a lifecycle event again."""

    order_id = Identifier(required=True)
    sequence = Integer(required=True, min_value=1)
    channels = Text()  # JSON list; empty means every undelivered channel
    actor_id = String(required=True, max_length=100)
    actor_role = String(required=True, max_length=20)


@fulfillment.command_handler(part_of=Order)
class NotificationBookkeepingHandler:
    @handle(RecordNotificationAttempt)
    def record_notification_attempt(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        outcome = order.record_notification(command.sequence, command.channel, command.succeeded, command.error)
        repo.add(order)
        return outcome

    @handle(RequestNotificationResend)
    def request_notification_resend(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        result = order.request_notification_resend(
            command.sequence,
            Actor.of(command.actor_id, command.actor_role),
            channels=json.loads(command.channels) if command.channels else None,
        )
        repo.add(order)
        logger.info(
            "Notification resend requested",
            order_id=str(command.order_id),
            sequence=command.sequence,
            channels=result["channels"],
        )
        return result
