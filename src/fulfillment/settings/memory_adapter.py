"""In-memory settings source, process-local pricing configuration.

Starts from the marketplace defaults (18% tax, free delivery from 1000,
100 below that, 2% platform fee, minimum order 100). Replaceable wholesale
for development and tests; delivery parameters a new configuration omits
fall back to ``DELIVERY_DEFAULTS`` (a fixed charge of 50, for instance).
"""

from fulfillment.pricing.engine import PricingConfig, parse_pricing_config
from fulfillment.settings.port import SettingsPort

DEFAULT_SETTINGS = {
    "tax_rate": "0.18",
    "delivery": {"type": "threshold", "free_above": "1000", "charge_below": "100"},
    "platform_fee_rate": "0.02",
    "minimum_order_value": "100",
}


class InMemorySettings(SettingsPort):
    def __init__(self):
        self._config = parse_pricing_config(DEFAULT_SETTINGS)

    def current(self) -> PricingConfig:
        return self._config

    def configure(self, payload: dict) -> PricingConfig:
        """Replace the configuration; the payload is validated before it is swapped in."""
        self._config = parse_pricing_config(payload)
        return self._config
