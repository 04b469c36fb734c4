"""Pricing settings source — pluggable provider of the current PricingConfig."""

import os

_settings_instance = None


def get_settings_source():
    """Return the configured settings source (singleton).

    Uses InMemorySettings by default. In production, configure via
    SETTINGS_ADAPTER environment variable.
    """
    global _settings_instance
    if _settings_instance is None:
        adapter = os.environ.get("SETTINGS_ADAPTER", "memory")
        if adapter == "memory":
            from fulfillment.settings.memory_adapter import InMemorySettings

            _settings_instance = InMemorySettings()
        else:
            raise ValueError(f"Unknown settings adapter: {adapter}")
    return _settings_instance


def reset_settings_source():
    """Reset the settings singleton (useful for testing)."""
    global _settings_instance
    _settings_instance = None
