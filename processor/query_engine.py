"""Search, filter, sort and pagination over an in-memory event list."""
import logging
import math
from typing import List, Sequence

from processor.models import Event, QueryResult, QueryState, SortKey

logger = logging.getLogger(__name__)


def facet_values(events: Sequence[Event], attribute: str) -> List[str]:
    """
    Distinct values of an event attribute, sorted.

    Blank values are left out: an empty filter already means "all", so a
    blank entry could never be selected on its own.

    Args:
        events: Events to collect values from
        attribute: Event attribute name, e.g. 'event_type' or 'location'

    Returns:
        Sorted list of distinct non-empty values
    """
    return sorted({getattr(event, attribute) for event in events if getattr(event, attribute)})


def matches_search(event: Event, search_text: str) -> bool:
    """Case-insensitive substring match on title, description and location."""
    needle = search_text.strip().lower()
    if not needle:
        return True
    return (
        needle in event.title.lower()
        or needle in event.description.lower()
        or needle in event.location.lower()
    )


def filter_events(events: Sequence[Event], query: QueryState) -> List[Event]:
    """
    Apply the search text, type filter and location filter (all must match).

    Args:
        events: Events to filter
        query: Query parameters

    Returns:
        Matching events in input order
    """
    return [
        event for event in events
        if matches_search(event, query.search_text)
        and (not query.type_filter or event.event_type == query.type_filter)
        and (not query.location_filter or event.location == query.location_filter)
    ]


def sort_events(events: Sequence[Event], sort_key: SortKey) -> List[Event]:
    """
    Sort events by date or title, keeping input order for ties.

    Titles compare by plain code-point order (case-sensitive). Events without
    a usable date go after all dated events for both date orders.

    Args:
        events: Events to sort
        sort_key: Sort order

    Returns:
        New sorted list

    Raises:
        ValueError: If sort_key is not a known sort key
    """
    sort_key = SortKey.parse(sort_key)

    if sort_key in (SortKey.TITLE_ASC, SortKey.TITLE_DESC):
        return sorted(
            events,
            key=lambda event: event.title,
            reverse=sort_key is SortKey.TITLE_DESC
        )

    dated = [event for event in events if event.event_date is not None]
    undated = [event for event in events if event.event_date is None]
    dated = sorted(
        dated,
        key=lambda event: event.event_date,
        reverse=sort_key is SortKey.DATE_DESC
    )
    return dated + undated


def paginate(events: Sequence[Event], page_number: int, page_size: int) -> List[Event]:
    """Return one page of events; pages past the end are empty."""
    start = (page_number - 1) * page_size
    return list(events[start:start + page_size])


def _validate(query: QueryState) -> None:
    if not isinstance(query.page_size, int) or query.page_size <= 0:
        raise ValueError(f"Page size must be a positive integer, got {query.page_size!r}")
    if not isinstance(query.page_number, int) or query.page_number < 1:
        raise ValueError(f"Page number must be a positive integer, got {query.page_number!r}")
    SortKey.parse(query.sort_key)


def run_query(events: Sequence[Event], query: QueryState) -> QueryResult:
    """
    Produce the visible page of events and the filter facets.

    Facets are computed from the full collection so every type and location
    stays selectable regardless of the active filters.

    Args:
        events: Full event collection
        query: Query parameters

    Returns:
        QueryResult

    Raises:
        ValueError: If the query has an invalid sort key, page number or page size
    """
    _validate(query)

    matched = sort_events(filter_events(events, query), query.sort_key)
    filtered_count = len(matched)
    total_pages = max(1, math.ceil(filtered_count / query.page_size))

    logger.debug(
        f"Query matched {filtered_count} of {len(events)} events, "
        f"page {query.page_number}/{total_pages}"
    )

    return QueryResult(
        available_types=facet_values(events, 'event_type'),
        available_locations=facet_values(events, 'location'),
        filtered_count=filtered_count,
        total_pages=total_pages,
        page_items=paginate(matched, query.page_number, query.page_size)
    )
