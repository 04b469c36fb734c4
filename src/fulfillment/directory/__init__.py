"""Merchant directory adapter abstraction — who sells what, where, at what price."""

import os

_directory_instance = None


def get_directory():
    """Return the configured merchant directory adapter (singleton).

    Uses InMemoryMerchantDirectory by default. In production, configure via
    MERCHANT_DIRECTORY_ADAPTER environment variable.
    """
    global _directory_instance
    if _directory_instance is None:
        adapter = os.environ.get("MERCHANT_DIRECTORY_ADAPTER", "memory")
        if adapter == "memory":
            from fulfillment.directory.memory_adapter import InMemoryMerchantDirectory

            _directory_instance = InMemoryMerchantDirectory()
        else:
            raise ValueError(f"Unknown merchant directory adapter: {adapter}")
    return _directory_instance


def reset_directory():
    """Reset the directory singleton (useful for testing)."""
    global _directory_instance
    _directory_instance = None
