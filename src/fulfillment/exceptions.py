"""Fulfillment error taxonomy.

Every failure an engine operation can surface carries a stable, machine
readable ``code`` and the HTTP status it maps to, so a client can tell
"someone else took it" apart from "you're not allowed" and "this order
doesn't exist". Malformed input keeps using ``protean.exceptions.ValidationError``.
"""


class FulfillmentError(Exception):
    """Base class for fulfillment engine failures."""

    code = "fulfillment_error"
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.context:
            payload["context"] = {k: str(v) for k, v in self.context.items()}
        return payload


class NotFound(FulfillmentError):
    code = "not_found"
    status_code = 404


class ConflictError(FulfillmentError):
    code = "conflict"
    status_code = 409


class AlreadyAssigned(ConflictError):
    """The item was claimed by another merchant first."""

    code = "already_assigned"


class InvalidTransition(FulfillmentError):
    code = "invalid_transition"
    status_code = 422


class Forbidden(FulfillmentError):
    code = "forbidden"
    status_code = 403


class MerchantExcluded(Forbidden):
    """The merchant rejected this item earlier and may not claim it."""

    code = "merchant_excluded"


class NoEligibleMerchant(FulfillmentError):
    code = "no_eligible_merchant"
    status_code = 422


class UnsupportedDeliveryMode(FulfillmentError):
    """A reserved delivery pricing variant was used before it is implemented."""

    code = "unsupported_delivery_mode"
    status_code = 422


class MinimumOrderNotMet(FulfillmentError):
    code = "minimum_order_not_met"
    status_code = 422
