"""Tests for auto-assignment candidate eligibility and ranking."""

from decimal import Decimal

from fulfillment.directory.memory_adapter import InMemoryMerchantDirectory, haversine_km
from fulfillment.directory.port import MerchantCandidate
from fulfillment.order.assignment import rank_candidates


def _candidate(merchant_id, price, stock=10, distance_km=None):
    return MerchantCandidate(
        merchant_id=merchant_id,
        name=merchant_id,
        price=Decimal(str(price)),
        stock=stock,
        area="Downtown",
        distance_km=distance_km,
    )


class TestRanking:
    def test_lowest_price_wins(self):
        ranked = rank_candidates([_candidate("m-a", 120), _candidate("m-b", 99)], quantity=1)
        assert [c.merchant_id for c in ranked] == ["m-b", "m-a"]

    def test_nearest_breaks_price_ties(self):
        ranked = rank_candidates(
            [_candidate("m-a", 100, distance_km=8.0), _candidate("m-b", 100, distance_km=2.5)],
            quantity=1,
        )
        assert ranked[0].merchant_id == "m-b"

    def test_unknown_distance_ranks_after_known(self):
        ranked = rank_candidates(
            [_candidate("m-a", 100), _candidate("m-b", 100, distance_km=20.0)],
            quantity=1,
        )
        assert ranked[0].merchant_id == "m-b"

    def test_most_stock_then_merchant_id(self):
        ranked = rank_candidates(
            [_candidate("m-c", 100, stock=5), _candidate("m-b", 100, stock=9), _candidate("m-a", 100, stock=9)],
            quantity=1,
        )
        assert [c.merchant_id for c in ranked] == ["m-a", "m-b", "m-c"]


class TestEligibility:
    def test_insufficient_stock_is_ineligible(self):
        assert rank_candidates([_candidate("m-a", 100, stock=2)], quantity=3) == []

    def test_excluded_merchants_are_ineligible(self):
        ranked = rank_candidates([_candidate("m-a", 90), _candidate("m-b", 100)], quantity=1, excluded=["m-a"])
        assert [c.merchant_id for c in ranked] == ["m-b"]

    def test_merchants_beyond_max_distance_are_ineligible(self):
        ranked = rank_candidates(
            [_candidate("m-a", 90, distance_km=40.0), _candidate("m-b", 100, distance_km=3.0)],
            quantity=1,
            max_distance=25.0,
        )
        assert [c.merchant_id for c in ranked] == ["m-b"]


class TestInMemoryDirectory:
    def test_filters_disabled_unapproved_and_out_of_stock(self):
        directory = InMemoryMerchantDirectory()
        directory.register("m-a", "p-1", 100, stock=5, area="Downtown")
        directory.register("m-b", "p-1", 100, stock=5, area="Downtown", enabled=False)
        directory.register("m-c", "p-1", 100, stock=5, area="Downtown", approved=False)
        directory.register("m-d", "p-1", 100, stock=0, area="Downtown")
        directory.register("m-e", "p-2", 100, stock=5, area="Downtown")

        assert [c.merchant_id for c in directory.candidates_for("p-1", area="Downtown")] == ["m-a"]

    def test_filters_by_area_without_coordinates(self):
        directory = InMemoryMerchantDirectory()
        directory.register("m-a", "p-1", 100, stock=5, area="Downtown")
        directory.register("m-b", "p-1", 100, stock=5, area="Harbour")

        assert [c.merchant_id for c in directory.candidates_for("p-1", area="Harbour")] == ["m-b"]

    def test_computes_distance_when_both_locations_known(self):
        directory = InMemoryMerchantDirectory()
        directory.register("m-a", "p-1", 100, stock=5, area="Harbour", latitude=12.97, longitude=77.59)

        [candidate] = directory.candidates_for("p-1", area="Downtown", latitude=12.97, longitude=77.60)
        assert candidate.distance_km is not None
        assert candidate.distance_km < 2

    def test_haversine_is_zero_for_same_point(self):
        assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0.0
