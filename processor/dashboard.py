"""Event details and dashboard helpers."""
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Sequence

from processor.event_processor import parse_event_date
from processor.models import Event, EventSummary

# Events have no end time; one is considered running this long after it starts
RUNNING_WINDOW = timedelta(hours=4)
RECENT_LIMIT = 5


def related_events(events: Sequence[Event], event: Event, limit: int = 3) -> List[Event]:
    """Other events of the same type, in input order."""
    related = [
        other for other in events
        if other.event_id != event.event_id and other.event_type == event.event_type
    ]
    return related[:limit]


def is_joinable(event: Event, now: datetime) -> bool:
    """An event can be joined only before it starts."""
    return event.event_date is not None and event.event_date > now


def joined_by_month(joined_records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """
    Count joined events per month of joining.

    Records come from /joined; the join time (joinedAt) is used when present,
    otherwise the event date. Records with neither are not counted.
    """
    counts = {}
    for record in joined_records:
        moment = parse_event_date(record.get('joinedAt')) or parse_event_date(record.get('eventDate'))
        if moment is None:
            continue
        month = moment.strftime('%Y-%m')
        counts[month] = counts.get(month, 0) + 1
    return dict(sorted(counts.items()))


def summarize_events(
    events: Sequence[Event],
    now: datetime,
    joined_records: Sequence[Dict[str, Any]] = ()
) -> EventSummary:
    """
    Count events for the dashboard.

    Args:
        events: Events created by the user, newest first as the API lists them
        now: Reference time (timezone-aware)
        joined_records: Raw /joined records for the same user

    Returns:
        EventSummary; undated events count only toward total and by_type
    """
    summary = EventSummary(total=len(events))
    by_month = {}

    for event in events:
        if event.event_type:
            summary.by_type[event.event_type] = summary.by_type.get(event.event_type, 0) + 1

        if event.event_date is None:
            continue

        if event.event_date > now:
            summary.upcoming += 1
        elif event.event_date < now:
            summary.past += 1
        if event.event_date <= now <= event.event_date + RUNNING_WINDOW:
            summary.running += 1

        month = event.event_date.strftime('%Y-%m')
        by_month[month] = by_month.get(month, 0) + 1

    summary.by_month = dict(sorted(by_month.items()))
    summary.recent = list(events[:RECENT_LIMIT])
    summary.joined = len(joined_records)
    summary.joined_by_month = joined_by_month(joined_records)
    return summary
