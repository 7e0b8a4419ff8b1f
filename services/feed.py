"""
Available Order Feed projections.

Filters and sorts are applied per request on top of the pending,
unassigned pool and are never stored. Filter first, then sort; ties in
the payout/distance/time orderings fall back to oldest first.
"""
from datetime import datetime, timedelta
from typing import Optional

import config
from models import AvailableOrder, FeedFilter, FeedSort, Order, OrderStatus, Urgency


def urgency_for(created_at: datetime, now: datetime) -> Urgency:
    age = now - created_at
    if age < timedelta(hours=config.ASAP_HOURS):
        return Urgency.ASAP
    if age < timedelta(hours=config.TODAY_HOURS):
        return Urgency.TODAY
    return Urgency.TODAY_EVENING


def to_available_order(order: Order, now: datetime) -> AvailableOrder:
    return AvailableOrder(
        order_id=order.order_id,
        customer_name=order.customer_name or "Customer",
        store_name=order.store_name,
        delivery_address=order.delivery_address,
        item_count=len(order.items),
        estimated_payout=order.estimated_payout,
        delivery_distance=order.delivery_distance or 0.0,
        estimated_time=order.estimated_time or config.DEFAULT_ESTIMATED_MINUTES,
        created_at=order.created_at,
        urgency=urgency_for(order.created_at, now),
    )


FILTERS = {
    FeedFilter.ALL: lambda card: True,
    FeedFilter.HIGH_PAY: lambda card: card.estimated_payout >= config.HIGH_PAY_THRESHOLD,
    FeedFilter.NEARBY: lambda card: card.delivery_distance <= config.NEARBY_DISTANCE_KM,
    FeedFilter.URGENT: lambda card: card.urgency == Urgency.ASAP,
}

SORT_KEYS = {
    FeedSort.OLDEST: lambda card: (card.created_at, card.order_id),
    FeedSort.PAYOUT: lambda card: (-card.estimated_payout, card.created_at, card.order_id),
    FeedSort.DISTANCE: lambda card: (card.delivery_distance, card.created_at, card.order_id),
    FeedSort.TIME: lambda card: (card.estimated_time, card.created_at, card.order_id),
}


def apply_filter(cards: list[AvailableOrder], feed_filter: FeedFilter) -> list[AvailableOrder]:
    predicate = FILTERS[FeedFilter(feed_filter)]
    return [card for card in cards if predicate(card)]


def apply_sort(cards: list[AvailableOrder], sort: FeedSort) -> list[AvailableOrder]:
    sort = FeedSort(sort)
    if sort == FeedSort.NEWEST:
        return sorted(cards, key=lambda card: (card.created_at, card.order_id), reverse=True)
    return sorted(cards, key=SORT_KEYS[sort])


def build_feed(
    orders: list[Order],
    feed_filter: FeedFilter = FeedFilter.ALL,
    sort: FeedSort = FeedSort(config.DEFAULT_FEED_SORT),
    now: Optional[datetime] = None,
) -> list[AvailableOrder]:
    """Project claimable orders into feed cards. Orders already taken are dropped."""
    now = now or datetime.now()
    cards = [
        to_available_order(order, now)
        for order in orders
        if order.status == OrderStatus.PENDING and order.driver_id is None
    ]
    return apply_sort(apply_filter(cards, feed_filter), sort)
