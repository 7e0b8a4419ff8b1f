"""
Timeline rendering and Performance Metrics.

Metrics are derived on every read from the phase timestamps (or, when an
order snapshot is not available, from the events themselves). A metric
whose endpoints are missing is left as None rather than estimated.
"""
from datetime import datetime
from typing import Optional

from models import (
    EventType,
    Order,
    PerformanceMetrics,
    TimelineEntry,
    TimelineEvent,
    TimelineView,
)

EMPTY_TIMELINE_MESSAGE = "No timeline events available"

EVENT_ICONS = {
    EventType.CREATED: "receipt-outline",
    EventType.ASSIGNED: "person-add-outline",
    EventType.ACCEPTED: "checkmark-circle-outline",
    EventType.SHOPPING_STARTED: "basket-outline",
    EventType.ITEM_FOUND: "search-outline",
    EventType.ITEM_SUBSTITUTED: "swap-horizontal-outline",
    EventType.ITEM_UNAVAILABLE: "close-circle-outline",
    EventType.SHOPPING_COMPLETED: "bag-check-outline",
    EventType.DELIVERY_STARTED: "car-outline",
    EventType.DELIVERED: "home-outline",
    EventType.CANCELLED: "ban-outline",
}
DEFAULT_ICON = "ellipsis-horizontal-outline"

EVENT_COLORS = {
    EventType.CREATED: "#6B7280",
    EventType.ASSIGNED: "#3B82F6",
    EventType.ACCEPTED: "#10B981",
    EventType.SHOPPING_STARTED: "#F59E0B",
    EventType.ITEM_FOUND: "#10B981",
    EventType.ITEM_SUBSTITUTED: "#F59E0B",
    EventType.ITEM_UNAVAILABLE: "#EF4444",
    EventType.SHOPPING_COMPLETED: "#8B5CF6",
    EventType.DELIVERY_STARTED: "#3B82F6",
    EventType.DELIVERED: "#059669",
    EventType.CANCELLED: "#DC2626",
}
DEFAULT_COLOR = "#9CA3AF"

# Event that marks each phase boundary when reading timestamps off the log
PHASE_EVENTS = {
    "accepted_at": (EventType.ACCEPTED, EventType.ASSIGNED),
    "shopping_started_at": (EventType.SHOPPING_STARTED,),
    "shopping_completed_at": (EventType.SHOPPING_COMPLETED,),
    "delivery_started_at": (EventType.DELIVERY_STARTED,),
    "delivered_at": (EventType.DELIVERED,),
}


def format_time(dt: datetime) -> str:
    return dt.strftime("%b %d, %Y %I:%M %p")


def time_ago(occurred_at: datetime, now: datetime) -> str:
    seconds = max(0, int((now - occurred_at).total_seconds()))
    if seconds < 60:
        return "just now"
    for size, unit in ((86400, "day"), (3600, "hour"), (60, "minute")):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"


def render_entry(event: TimelineEvent, now: datetime) -> TimelineEntry:
    if event.actor is None:
        user_name = "System"
    else:
        user_name = event.actor.name or event.actor.role.value.capitalize()
    return TimelineEntry(
        event_id=event.event_id,
        event_type=event.event_type,
        icon=EVENT_ICONS.get(event.event_type, DEFAULT_ICON),
        color=EVENT_COLORS.get(event.event_type, DEFAULT_COLOR),
        description=event.description,
        user_name=user_name,
        occurred_at=event.occurred_at,
        formatted_time=format_time(event.occurred_at),
        time_ago=time_ago(event.occurred_at, now),
        data=event.data,
    )


def render_timeline(events: list[TimelineEvent], now: Optional[datetime] = None) -> list[TimelineEntry]:
    """Oldest first."""
    now = now or datetime.now()
    ordered = sorted(events, key=lambda e: e.occurred_at)
    return [render_entry(event, now) for event in ordered]


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 60


def _phase_timestamps(order: Optional[Order], events: list[TimelineEvent]) -> dict[str, Optional[datetime]]:
    stamps = {field: getattr(order, field, None) if order else None for field in PHASE_EVENTS}
    for field, event_types in PHASE_EVENTS.items():
        if stamps[field] is None:
            matches = [e.occurred_at for e in events if e.event_type in event_types]
            stamps[field] = min(matches) if matches else None
    return stamps


def derive_metrics(order: Optional[Order], events: list[TimelineEvent] | None = None) -> PerformanceMetrics:
    stamps = _phase_timestamps(order, events or [])

    shopping_end = stamps["shopping_completed_at"] or stamps["delivery_started_at"]
    return PerformanceMetrics(
        total_processing_time=minutes_between(stamps["accepted_at"], stamps["delivered_at"]),
        shopping_duration=minutes_between(stamps["shopping_started_at"], shopping_end),
        delivery_duration=minutes_between(stamps["delivery_started_at"], stamps["delivered_at"]),
        accepted_at=stamps["accepted_at"],
        shopping_started_at=stamps["shopping_started_at"],
        delivery_started_at=stamps["delivery_started_at"],
        delivered_at=stamps["delivered_at"],
    )


def build_timeline_view(
    events: list[TimelineEvent],
    metrics: PerformanceMetrics,
    now: Optional[datetime] = None,
) -> TimelineView:
    entries = render_timeline(events, now)
    return TimelineView(
        entries=entries,
        metrics=metrics,
        error=None if entries else EMPTY_TIMELINE_MESSAGE,
    )
