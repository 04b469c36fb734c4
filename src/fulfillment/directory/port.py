"""Merchant directory port — abstract candidate lookup for auto-assignment.

The directory is an external collaborator owned by merchant onboarding.
The assignment engine only asks it which approved merchants carry a product
near a customer; eligibility and ranking stay in the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MerchantCandidate:
    merchant_id: str
    name: str
    price: Decimal
    stock: int
    area: str
    distance_km: float | None = None

    def to_dict(self) -> dict:
        return {
            "merchant_id": self.merchant_id,
            "name": self.name,
            "price": str(self.price),
            "stock": self.stock,
            "area": self.area,
            "distance_km": self.distance_km,
        }


class MerchantDirectoryPort(ABC):
    """Abstract interface for merchant directory adapters."""

    @abstractmethod
    def candidates_for(
        self,
        product_id: str,
        area: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> list[MerchantCandidate]:
        """List approved merchants offering ``product_id`` with stock.

        Returns:
            candidates in the customer's area, plus any whose distance to the
            given coordinates is known; ``distance_km`` is filled in when both
            locations are known.
        """
        ...
