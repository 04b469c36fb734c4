"""Queries over the read models: order lists, dashboards and log analytics.

Read models are updated after each command commits, so figures here can
trail the order aggregates by the events still being projected.
"""

from collections import Counter, defaultdict
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from protean.utils.query import Q

from fulfillment.order.aggregation import OrderStatus
from fulfillment.order.lifecycle import Actor, ActorRole, ItemStatus
from fulfillment.projections.item_board import ItemBoard
from fulfillment.projections.lifecycle_log import LifecycleLogEntry
from fulfillment.projections.order_listing import OrderListing

MAX_PAGE_SIZE = 100
LOG_GROUPINGS = ("event_type", "actor_role")
TIMELINE_DAYS = 7


def _page_window(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        raise ValidationError({"page": ["Page numbers start at 1"]})
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError({"limit": [f"Page size must be between 1 and {MAX_PAGE_SIZE}"]})
    return (page - 1) * limit, limit


def _pagination(results, page: int, limit: int) -> dict:
    return {"page": page, "limit": limit, "total": results.total, "total_pages": -(-results.total // limit)}


def _as_utc(moment: datetime | None) -> datetime | None:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def _items(**filters) -> list:
    return current_domain.repository_for(ItemBoard)._dao.query.filter(**filters).limit(None).all().items


def _revenue(items) -> str:
    return str(sum((i.total_price or Decimal("0") for i in items if i.item_status == "delivered"), Decimal("0")))


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
def list_orders(actor: Actor, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
    """Orders visible to ``actor``, newest first.

    Customers see their own orders, merchants see orders holding an item
    they own (with those items attached), administrators see everything.
    """
    offset, limit = _page_window(page, limit)
    query = current_domain.repository_for(OrderListing)._dao.query

    merchant_items = defaultdict(list)
    if actor.role == ActorRole.CUSTOMER:
        query = query.filter(customer_id=actor.actor_id)
    elif actor.role == ActorRole.MERCHANT:
        for item in _items(assigned_merchant_id=actor.actor_id):
            merchant_items[str(item.order_id)].append(item.summary())
        if not merchant_items:
            return {"orders": [], "page": page, "limit": limit, "total": 0, "total_pages": 0}
        query = query.filter(order_id__in=list(merchant_items))

    if status is not None:
        try:
            query = query.filter(status=OrderStatus(status).value)
        except ValueError as exc:
            raise ValidationError({"status": [f"Unknown order status '{status}'"]}) from exc

    results = query.order_by("-placed_at").offset(offset).limit(limit).all()
    orders = []
    for row in results.items:
        summary = row.summary()
        if actor.role == ActorRole.MERCHANT:
            summary["items"] = sorted(merchant_items[str(row.order_id)], key=lambda i: i["item_id"])
        orders.append(summary)
    return {"orders": orders, **_pagination(results, page, limit)}


def order_summary() -> dict:
    """Marketplace-wide order and item counts, with revenue from delivered items."""
    total_orders = current_domain.repository_for(OrderListing)._dao.query.all().total
    items = _items()
    counts = Counter(i.item_status for i in items)
    return {
        "total_orders": total_orders,
        "total_items": len(items),
        "pending_items": counts[ItemStatus.PENDING.value],
        "assigned_items": counts[ItemStatus.ASSIGNED.value],
        "processing_items": counts[ItemStatus.PROCESSING.value],
        "shipped_items": counts[ItemStatus.SHIPPED.value],
        "delivered_items": counts[ItemStatus.DELIVERED.value],
        "cancelled_items": counts[ItemStatus.CANCELLED.value],
        "revenue": _revenue(items),
    }


# ---------------------------------------------------------------------------
# Merchants
# ---------------------------------------------------------------------------
def open_items_for(merchant_id: str, area: str | None = None) -> list[dict]:
    """Unclaimed items the merchant may still claim, oldest first."""
    filters = {"item_status": ItemStatus.PENDING.value}
    if area:
        filters["delivery_area__iexact"] = area
    items = [i for i in _items(**filters) if not i.assigned_merchant_id and merchant_id not in i.excluded_merchants]
    return [i.summary() for i in sorted(items, key=lambda i: (i.placed_at, i.position))]


def merchant_dashboard(merchant_id: str, recent: int = 5) -> dict:
    items = _items(assigned_merchant_id=merchant_id)
    counts = Counter(i.item_status for i in items)
    latest = sorted(items, key=lambda i: i.claimed_at or i.placed_at, reverse=True)[:recent]
    return {
        "merchant_id": merchant_id,
        "total_items": len(items),
        "assigned": counts[ItemStatus.ASSIGNED.value],
        "processing": counts[ItemStatus.PROCESSING.value],
        "completed": counts[ItemStatus.DELIVERED.value],
        "recent_items": [i.summary() for i in latest],
    }


def merchant_analytics(merchant_id: str) -> dict:
    items = _items(assigned_merchant_id=merchant_id)
    counts = Counter(i.item_status for i in items)
    return {
        "merchant_id": merchant_id,
        "total_items": len(items),
        "assigned": counts[ItemStatus.ASSIGNED.value],
        "processing": counts[ItemStatus.PROCESSING.value],
        "shipped": counts[ItemStatus.SHIPPED.value],
        "delivered": counts[ItemStatus.DELIVERED.value],
        "cancelled": counts[ItemStatus.CANCELLED.value],
        "total_revenue": _revenue(items),
    }


# ---------------------------------------------------------------------------
# Lifecycle log
# ---------------------------------------------------------------------------
def _log_query(start: datetime | None = None, end: datetime | None = None):
    query = current_domain.repository_for(LifecycleLogEntry)._dao.query
    if start is not None:
        query = query.filter(recorded_at__gte=_as_utc(start))
    if end is not None:
        query = query.filter(recorded_at__lte=_as_utc(end))
    return query


def lifecycle_analytics(
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: str = "event_type",
    now: datetime | None = None,
) -> dict:
    """Entry counts and notification outcomes per group, plus a daily timeline.

    The timeline always covers the last seven days up to ``now``, whatever
    the ``start``/``end`` window of the grouped figures.
    """
    if group_by not in LOG_GROUPINGS:
        raise ValidationError({"group_by": [f"Group by one of {', '.join(LOG_GROUPINGS)}"]})

    groups = defaultdict(lambda: {"count": 0, "successful_notifications": 0, "failed_notifications": 0})
    for entry in _log_query(start, end).limit(None).all().items:
        group = groups[getattr(entry, group_by)]
        group["count"] += 1
        if entry.notification_state == "delivered":
            group["successful_notifications"] += 1
        elif entry.notification_state == "failed":
            group["failed_notifications"] += 1
    analytics = sorted(({group_by: key, **figures} for key, figures in groups.items()), key=lambda g: -g["count"])

    since = (_as_utc(now) or datetime.now(UTC)) - timedelta(days=TIMELINE_DAYS)
    days = defaultdict(list)
    for entry in _log_query(start=since).limit(None).all().items:
        days[entry.recorded_on].append(entry.event_type)
    timeline = [
        {"date": day, "count": len(event_types), "event_types": sorted(set(event_types))}
        for day, event_types in sorted(days.items())
    ]
    return {"group_by": group_by, "analytics": analytics, "timeline": timeline}


def search_lifecycle(
    text: str | None = None,
    event_types: list[str] | None = None,
    actor_roles: list[str] | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Lifecycle entries across all orders, newest first."""
    offset, limit = _page_window(page, limit)
    query = _log_query(start, end)
    if text:
        query = query.filter(Q(description__icontains=text) | Q(order_number__icontains=text))
    if event_types:
        query = query.filter(event_type__in=event_types)
    if actor_roles:
        query = query.filter(actor_role__in=actor_roles)

    results = query.order_by(["-recorded_at", "-sequence"]).offset(offset).limit(limit).all()
    return {"entries": [entry.record() for entry in results.items], **_pagination(results, page, limit)}
