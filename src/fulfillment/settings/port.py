"""Settings port — read-only access to the admin-managed pricing configuration.

Configuration management owns writes; the fulfillment core only reads the
current snapshot, once per pricing computation.
"""

from abc import ABC, abstractmethod

from fulfillment.pricing.engine import PricingConfig


class SettingsPort(ABC):
    """Abstract interface for pricing settings providers."""

    @abstractmethod
    def current(self) -> PricingConfig:
        """Return the current pricing configuration snapshot."""
        ...
