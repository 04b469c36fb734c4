"""Fulfillment bounded context — Marketplace Order Fulfillment.

Splits placed orders into independently claimable items, arbitrates merchant
claims, drives each item through its lifecycle and keeps an append-only
lifecycle log per order. Uses CQRS (not event sourcing) because claims need a
conditional write against the current item state.
"""

from protean.domain import Domain

from fulfillment.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

fulfillment = Domain(name="fulfillment")
