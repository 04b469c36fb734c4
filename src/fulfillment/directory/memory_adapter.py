"""In-memory merchant directory — deterministic listings for tests and development."""

import math
from dataclasses import dataclass
from decimal import Decimal

from fulfillment.directory.port import MerchantCandidate, MerchantDirectoryPort

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres, rounded to two decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    return round(EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)), 2)


@dataclass
class _Listing:
    merchant_id: str
    name: str
    product_id: str
    price: Decimal
    stock: int
    area: str
    latitude: float | None = None
    longitude: float | None = None
    enabled: bool = True
    approved: bool = True


class InMemoryMerchantDirectory(MerchantDirectoryPort):
    def __init__(self):
        self._listings: dict[tuple[str, str], _Listing] = {}

    def register(
        self,
        merchant_id: str,
        product_id: str,
        price,
        stock: int,
        area: str,
        name: str | None = None,
        latitude: float | None = None,
        longitude: float | None = None,
        enabled: bool = True,
        approved: bool = True,
    ) -> None:
        """Add or replace the listing of one merchant for one product."""
        self._listings[(merchant_id, product_id)] = _Listing(
            merchant_id=merchant_id,
            name=name or merchant_id,
            product_id=product_id,
            price=Decimal(str(price)),
            stock=stock,
            area=area,
            latitude=latitude,
            longitude=longitude,
            enabled=enabled,
            approved=approved,
        )

    def clear(self) -> None:
        self._listings.clear()

    def candidates_for(self, product_id, area=None, latitude=None, longitude=None):
        candidates = []
        for listing in self._listings.values():
            if listing.product_id != product_id or not listing.enabled or not listing.approved:
                continue
            if listing.stock <= 0:
                continue

            distance = None
            if None not in (latitude, longitude, listing.latitude, listing.longitude):
                distance = haversine_km(latitude, longitude, listing.latitude, listing.longitude)
            elif area is not None and listing.area != area:
                continue

            candidates.append(
                MerchantCandidate(
                    merchant_id=listing.merchant_id,
                    name=listing.name,
                    price=listing.price,
                    stock=listing.stock,
                    area=listing.area,
                    distance_km=distance,
                )
            )
        return sorted(candidates, key=lambda c: c.merchant_id)
