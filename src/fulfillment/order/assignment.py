"""Item assignment — manual claims, auto-assignment and rejections.

Manual claim:
    A merchant (or an admin on its behalf) claims one pending item. Losers
    of a race receive AlreadyAssigned so they can refresh their view.

Auto-assign:
    Candidates come from the merchant directory, are filtered for stock,
    exclusion and distance, then ranked by a fixed policy:
    lowest price → nearest → most stock → merchant id.
    The top candidate is claimed with the same conditional claim.

Reject:
    Adds the merchant to the item's exclusion set while the item is open;
    a harmless no-op once the item has been claimed.
"""

import os

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.directory import get_directory
from fulfillment.directory.port import MerchantCandidate
from fulfillment.domain import fulfillment
from fulfillment.exceptions import AlreadyAssigned, NoEligibleMerchant
from fulfillment.order.lifecycle import Actor, ActorRole
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)

DEFAULT_MAX_DISTANCE_KM = 25.0


def max_distance_km() -> float:
    return float(os.environ.get("ASSIGNMENT_MAX_DISTANCE_KM", DEFAULT_MAX_DISTANCE_KM))


@fulfillment.command(part_of="Order")
class ClaimItem:
    """Claim an open item for a merchant."""

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    actor_id = String(max_length=100)
    actor_role = String(max_length=20, default=ActorRole.MERCHANT.value)


@fulfillment.command(part_of="Order")
class AutoAssignItem:
    """Assign an open item to the best-ranked eligible merchant."""

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    actor_id = String(max_length=100, default="system")
    actor_role = String(max_length=20, default=ActorRole.SYSTEM.value)


@fulfillment.command(part_of="Order")
class RejectItem:
    """Decline an open item; the merchant is excluded from it for good."""

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    merchant_id = Identifier(required=True)
    actor_id = String(max_length=100)
    actor_role = String(max_length=20, default=ActorRole.MERCHANT.value)


def _ranking_key(candidate: MerchantCandidate):
    distance = candidate.distance_km if candidate.distance_km is not None else float("inf")
    return (candidate.price, distance, -candidate.stock, candidate.merchant_id)


def rank_candidates(
    candidates: list[MerchantCandidate],
    quantity: int,
    excluded: list[str] | None = None,
    max_distance: float | None = None,
) -> list[MerchantCandidate]:
    """Eligible candidates, best first.

    Eligible means enough stock for the line, not in the exclusion set and,
    when a distance is known, within ``max_distance`` kilometres.
    """
    excluded = set(excluded or [])
    eligible = [
        c
        for c in candidates
        if c.stock >= quantity
        and c.merchant_id not in excluded
        and (max_distance is None or c.distance_km is None or c.distance_km <= max_distance)
    ]
    return sorted(eligible, key=_ranking_key)


def _actor(command, default_id: str | None = None) -> Actor:
    return Actor.of(command.actor_id or default_id, command.actor_role)


@fulfillment.command_handler(part_of=Order)
class AssignmentHandler:
    @handle(ClaimItem)
    def claim_item(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        try:
            item = order.claim_item(
                str(command.item_id),
                str(command.merchant_id),
                _actor(command, default_id=str(command.merchant_id)),
            )
        except AlreadyAssigned:
            logger.warning(
                "Claim lost, item already assigned",
                order_id=str(command.order_id),
                item_id=str(command.item_id),
                merchant_id=str(command.merchant_id),
            )
            raise
        repo.add(order)
        logger.info(
            "Item claimed",
            order_id=str(command.order_id),
            item_id=str(command.item_id),
            merchant_id=str(command.merchant_id),
        )
        return item.summary()

    @handle(AutoAssignItem)
    def auto_assign_item(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        item = order.get_item(str(command.item_id))
        if item.assigned_merchant_id:
            raise AlreadyAssigned(
                f"Item {command.item_id} is already assigned",
                item_id=command.item_id,
            )

        address = order.delivery_address
        candidates = get_directory().candidates_for(
            str(item.product_id),
            area=address.area if address else None,
            latitude=address.latitude if address else None,
            longitude=address.longitude if address else None,
        )
        ranked = rank_candidates(candidates, item.quantity, item.excluded_merchants, max_distance_km())
        if not ranked:
            logger.warning(
                "No eligible merchant for item",
                order_id=str(command.order_id),
                item_id=str(command.item_id),
                product_id=str(item.product_id),
                candidate_count=len(candidates),
            )
            raise NoEligibleMerchant(
                f"No eligible merchant for item {command.item_id}",
                item_id=command.item_id,
                product_id=item.product_id,
            )

        chosen = ranked[0]
        order.claim_item(str(command.item_id), chosen.merchant_id, _actor(command), auto_assigned=True)
        repo.add(order)
        logger.info(
            "Item auto-assigned",
            order_id=str(command.order_id),
            item_id=str(command.item_id),
            merchant_id=chosen.merchant_id,
            price=str(chosen.price),
            distance_km=chosen.distance_km,
        )
        return item.summary()

    @handle(RejectItem)
    def reject_item(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        rejected = order.reject_item(
            str(command.item_id),
            str(command.merchant_id),
            _actor(command, default_id=str(command.merchant_id)),
        )
        if rejected:
            repo.add(order)
            logger.info(
                "Item rejected",
                order_id=str(command.order_id),
                item_id=str(command.item_id),
                merchant_id=str(command.merchant_id),
            )
        else:
            logger.info(
                "Reject ignored, item no longer open",
                order_id=str(command.order_id),
                item_id=str(command.item_id),
                merchant_id=str(command.merchant_id),
            )
        return order.get_item(str(command.item_id)).summary()
