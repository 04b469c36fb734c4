"""Application tests for claims, auto-assignment and rejections via domain.process()."""

import json
import threading

import pytest
from fulfillment.domain import fulfillment
from fulfillment.exceptions import AlreadyAssigned, ConflictError, MerchantExcluded, NoEligibleMerchant
from fulfillment.order.assignment import AutoAssignItem, ClaimItem, RejectItem
from fulfillment.order.lifecycle import Actor, ActorRole
from fulfillment.order.order import Order
from fulfillment.order.placement import PlaceOrder
from protean import current_domain
from protean.exceptions import ExpectedVersionError

ADDRESS = {"street": "12 Market Road", "area": "Downtown", "city": "Springfield"}


def _place_single_item(quantity=1):
    order_id = current_domain.process(
        PlaceOrder(
            customer_id="cust-001",
            items=json.dumps(
                [{"product_id": "prod-tea", "product_name": "Assam Tea 1kg", "unit_price": 600, "quantity": quantity}]
            ),
            delivery_address=json.dumps(ADDRESS),
        ),
        asynchronous=False,
    )
    order = current_domain.repository_for(Order).get(order_id)
    return order_id, str(order.items[0].id)


def _load_item(order_id):
    return current_domain.repository_for(Order).get(order_id).items[0]


class TestClaimItem:
    def test_claim_assigns_item(self):
        order_id, item_id = _place_single_item()
        result = current_domain.process(
            ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1", actor_id="m-1"),
            asynchronous=False,
        )
        assert result["assigned_merchant_id"] == "m-1"
        assert result["item_status"] == "assigned"

        order = current_domain.repository_for(Order).get(order_id)
        assert order.items[0].assigned_merchant_id == "m-1"
        assert order.status == "processing"

    def test_second_claim_is_already_assigned(self):
        order_id, item_id = _place_single_item()
        current_domain.process(ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1"), asynchronous=False)
        with pytest.raises(AlreadyAssigned):
            current_domain.process(
                ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-2"),
                asynchronous=False,
            )
        assert _load_item(order_id).assigned_merchant_id == "m-1"

    def test_concurrent_claims_have_exactly_one_winner(self):
        order_id, item_id = _place_single_item()
        contenders = [f"m-{n}" for n in range(8)]
        barrier = threading.Barrier(len(contenders))
        winners, losers, failures = [], [], []

        def claim(merchant_id):
            with fulfillment.domain_context():
                barrier.wait()
                try:
                    current_domain.process(
                        ClaimItem(order_id=order_id, item_id=item_id, merchant_id=merchant_id),
                        asynchronous=False,
                    )
                    winners.append(merchant_id)
                except AlreadyAssigned:
                    losers.append(merchant_id)
                except Exception as exc:  # noqa: BLE001
                    failures.append(exc)

        threads = [threading.Thread(target=claim, args=(m,)) for m in contenders]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
        assert len(winners) == 1
        assert len(losers) == len(contenders) - 1

        item = _load_item(order_id)
        assert item.assigned_merchant_id == winners[0]
        order = current_domain.repository_for(Order).get(order_id)
        claims = order.lifecycle(event_type="item_claimed")
        assert len(claims) == 1

    def test_stale_copy_cannot_overwrite_a_claim(self):
        order_id, item_id = _place_single_item()
        repo = current_domain.repository_for(Order)
        first, second = repo.get(order_id), repo.get(order_id)

        first.claim_item(item_id, "m-1", Actor(actor_id="m-1", role=ActorRole.MERCHANT))
        repo.add(first)

        second.claim_item(item_id, "m-2", Actor(actor_id="m-2", role=ActorRole.MERCHANT))
        with pytest.raises(ExpectedVersionError):
            repo.add(second)
        assert _load_item(order_id).assigned_merchant_id == "m-1"

    def test_already_assigned_is_a_conflict(self):
        assert issubclass(AlreadyAssigned, ConflictError)
        assert AlreadyAssigned("taken").status_code == 409


class TestRejectItem:
    def test_reject_excludes_merchant(self):
        order_id, item_id = _place_single_item()
        result = current_domain.process(
            RejectItem(order_id=order_id, item_id=item_id, merchant_id="m-1"),
            asynchronous=False,
        )
        assert result["rejected_by"] == ["m-1"]
        assert result["item_status"] == "pending"

        with pytest.raises(MerchantExcluded):
            current_domain.process(
                ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1"),
                asynchronous=False,
            )

    def test_reject_after_claim_leaves_owner_in_place(self):
        order_id, item_id = _place_single_item()
        current_domain.process(ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1"), asynchronous=False)
        result = current_domain.process(
            RejectItem(order_id=order_id, item_id=item_id, merchant_id="m-2"),
            asynchronous=False,
        )
        assert result["assigned_merchant_id"] == "m-1"
        assert result["rejected_by"] == []

    def test_reject_racing_claim_never_excludes_the_owner(self):
        order_id, item_id = _place_single_item()
        barrier = threading.Barrier(2)
        outcomes = {}

        def run(name, command):
            with fulfillment.domain_context():
                barrier.wait()
                try:
                    outcomes[name] = current_domain.process(command, asynchronous=False)
                except MerchantExcluded as exc:
                    outcomes[name] = exc

        threads = [
            threading.Thread(
                target=run,
                args=("claim", ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1")),
            ),
            threading.Thread(
                target=run,
                args=("reject", RejectItem(order_id=order_id, item_id=item_id, merchant_id="m-1")),
            ),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        item = _load_item(order_id)
        if item.assigned_merchant_id:
            # Claim went first; the reject was ignored
            assert item.excluded_merchants == []
        else:
            # Reject went first; the claim was refused
            assert isinstance(outcomes["claim"], MerchantExcluded)
            assert item.excluded_merchants == ["m-1"]


class TestAutoAssignItem:
    def test_picks_cheapest_merchant_with_stock(self, directory):
        directory.register("m-pricey", "prod-tea", 640, stock=10, area="Downtown")
        directory.register("m-cheap", "prod-tea", 590, stock=10, area="Downtown")
        directory.register("m-cheaper", "prod-tea", 550, stock=1, area="Downtown")
        order_id, item_id = _place_single_item(quantity=2)

        result = current_domain.process(AutoAssignItem(order_id=order_id, item_id=item_id), asynchronous=False)
        assert result["assigned_merchant_id"] == "m-cheap"

        order = current_domain.repository_for(Order).get(order_id)
        [assigned] = order.lifecycle(event_type="item_auto_assigned")
        assert assigned.actor_role == "system"

    def test_skips_merchants_in_other_areas(self, directory):
        directory.register("m-far", "prod-tea", 500, stock=10, area="Harbour")
        directory.register("m-near", "prod-tea", 600, stock=10, area="Downtown")
        order_id, item_id = _place_single_item()

        result = current_domain.process(AutoAssignItem(order_id=order_id, item_id=item_id), asynchronous=False)
        assert result["assigned_merchant_id"] == "m-near"

    def test_skips_excluded_merchants(self, directory):
        directory.register("m-1", "prod-tea", 500, stock=10, area="Downtown")
        directory.register("m-2", "prod-tea", 600, stock=10, area="Downtown")
        order_id, item_id = _place_single_item()
        current_domain.process(RejectItem(order_id=order_id, item_id=item_id, merchant_id="m-1"), asynchronous=False)

        result = current_domain.process(AutoAssignItem(order_id=order_id, item_id=item_id), asynchronous=False)
        assert result["assigned_merchant_id"] == "m-2"

    def test_no_eligible_merchant(self, directory):
        directory.register("m-1", "prod-tea", 500, stock=10, area="Downtown")
        order_id, item_id = _place_single_item()
        current_domain.process(RejectItem(order_id=order_id, item_id=item_id, merchant_id="m-1"), asynchronous=False)

        with pytest.raises(NoEligibleMerchant):
            current_domain.process(AutoAssignItem(order_id=order_id, item_id=item_id), asynchronous=False)
        assert _load_item(order_id).item_status == "pending"

    def test_already_assigned_item(self, directory):
        directory.register("m-2", "prod-tea", 500, stock=10, area="Downtown")
        order_id, item_id = _place_single_item()
        current_domain.process(ClaimItem(order_id=order_id, item_id=item_id, merchant_id="m-1"), asynchronous=False)

        with pytest.raises(AlreadyAssigned):
            current_domain.process(AutoAssignItem(order_id=order_id, item_id=item_id), asynchronous=False)
