"""BDD tests for item progress and order status aggregation."""

from fulfillment.exceptions import Forbidden, InvalidTransition
from fulfillment.order.lifecycle import Actor, ActorRole
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/order_lifecycle.feature")


@when(parsers.cfparse('the customer cancels the order with reason "{reason}"'), target_fixture="order")
def customer_cancels(order, reason):
    order.cancel(Actor(actor_id=str(order.customer_id), role=ActorRole.CUSTOMER), reason)
    return order


@then("the transition is refused")
def transition_refused(error):
    assert isinstance(error["exc"], InvalidTransition)


@then("the transition is forbidden")
def transition_forbidden(error):
    assert isinstance(error["exc"], Forbidden)
