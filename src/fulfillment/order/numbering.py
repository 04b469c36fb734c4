"""Daily order-number sequence.

Order numbers read ``ORD<yymmdd><nnnn>`` where ``nnnn`` counts the day's
orders from 1. The counter is its own small aggregate, keyed by the ISO
date, so two checkouts issuing a number at the same time conflict on its
version and the loser is re-run against the advanced counter.
"""

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment


@fulfillment.aggregate
class OrderNumberSequence:
    day = String(identifier=True, required=True, max_length=10)  # YYYY-MM-DD
    last_issued = Integer(default=0, min_value=0)

    def issue(self, today) -> str:
        self.last_issued = (self.last_issued or 0) + 1
        return f"ORD{today.strftime('%y%m%d')}{self.last_issued:04d}"


def next_order_number(today) -> str:
    """Issue the next number for ``today`` inside the caller's unit of work."""
    repo = current_domain.repository_for(OrderNumberSequence)
    try:
        sequence = repo.get(today.isoformat())
    except ObjectNotFoundError:
        sequence = OrderNumberSequence(day=today.isoformat(), last_issued=0)
    number = sequence.issue(today)
    repo.add(sequence)
    return number
