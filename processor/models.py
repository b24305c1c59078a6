"""Data models for the event browser."""
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Dict, List, Mapping, Optional


@dataclass
class Event:
    """Normalized event record from the events API."""
    event_id: str
    title: str
    description: str
    event_type: str
    location: str
    event_date: Optional[datetime]
    event_date_raw: Optional[str] = None
    thumbnail: Optional[str] = None
    creator_email: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize back to the API's camelCase shape."""
        return {
            'id': self.event_id,
            'title': self.title,
            'description': self.description,
            'eventType': self.event_type,
            'location': self.location,
            'eventDate': self.event_date_raw,
            'thumbnail': self.thumbnail,
            'creatorEmail': self.creator_email,
        }


class SortKey(str, Enum):
    """Sort orders offered by the event list."""
    DATE_ASC = 'dateAsc'
    DATE_DESC = 'dateDesc'
    TITLE_ASC = 'titleAsc'
    TITLE_DESC = 'titleDesc'

    @classmethod
    def parse(cls, value) -> 'SortKey':
        """
        Convert a wire value into a SortKey.

        Raises:
            ValueError: If the value is not one of the known sort keys
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            accepted = ', '.join(key.value for key in cls)
            raise ValueError(
                f"Invalid sort key {value!r}; expected one of: {accepted}"
            ) from None


DEFAULT_PAGE_SIZE = 12

# Fields whose change sends the user back to the first page
_PAGE_RESETTING_FIELDS = ('search_text', 'type_filter', 'location_filter', 'sort_key')


@dataclass
class QueryState:
    """Search, filter, sort and page parameters for the event list."""
    search_text: str = ''
    type_filter: str = ''
    location_filter: str = ''
    sort_key: SortKey = SortKey.DATE_ASC
    page_number: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def update(self, **changes) -> 'QueryState':
        """
        Apply changes in place.

        Changing the search text, a filter or the sort key resets the page
        number to 1.

        Returns:
            self, for chaining
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown query fields: {', '.join(sorted(unknown))}")

        if 'sort_key' in changes:
            changes['sort_key'] = SortKey.parse(changes['sort_key'])

        reset_page = any(
            name in changes and changes[name] != getattr(self, name)
            for name in _PAGE_RESETTING_FIELDS
        )
        for name, value in changes.items():
            setattr(self, name, value)
        if reset_page:
            self.page_number = 1
        return self

    def clear(self) -> 'QueryState':
        """Reset every parameter except the page size."""
        self.search_text = ''
        self.type_filter = ''
        self.location_filter = ''
        self.sort_key = SortKey.DATE_ASC
        self.page_number = 1
        return self

    @classmethod
    def from_params(
        cls,
        params: Optional[Mapping[str, str]],
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> 'QueryState':
        """
        Build a query from request query-string parameters.

        Args:
            params: Mapping with optional search, type, location, sort, page
            page_size: Number of events per page

        Returns:
            QueryState

        Raises:
            ValueError: If sort or page is invalid
        """
        params = params or {}

        raw_page = (params.get('page') or '1').strip()
        try:
            page_number = int(raw_page)
        except ValueError:
            raise ValueError(f"Invalid page number: {raw_page!r}") from None
        if page_number < 1:
            raise ValueError(f"Page number must be positive, got {page_number}")

        sort = (params.get('sort') or '').strip()
        return cls(
            search_text=params.get('search') or '',
            type_filter=(params.get('type') or '').strip(),
            location_filter=(params.get('location') or '').strip(),
            sort_key=SortKey.parse(sort) if sort else SortKey.DATE_ASC,
            page_number=page_number,
            page_size=page_size,
        )


@dataclass
class QueryResult:
    """One page of the event list plus the filter facets."""
    available_types: List[str]
    available_locations: List[str]
    filtered_count: int
    total_pages: int
    page_items: List[Event]

    def to_dict(self) -> dict:
        return {
            'availableTypes': list(self.available_types),
            'availableLocations': list(self.available_locations),
            'filteredCount': self.filtered_count,
            'totalPages': self.total_pages,
            'pageItems': [event.to_dict() for event in self.page_items],
        }


@dataclass(frozen=True)
class Remaining:
    """Time left until an event, broken down by unit."""
    days: int
    hours: int
    minutes: int
    seconds: int
    total_ms: int


@dataclass(frozen=True)
class CountdownState:
    """Either pending with time remaining, or expired."""
    expired: bool
    remaining: Optional[Remaining] = None

    @classmethod
    def pending(cls, remaining: Remaining) -> 'CountdownState':
        return cls(expired=False, remaining=remaining)

    @classmethod
    def expired_state(cls) -> 'CountdownState':
        return cls(expired=True)

    def to_dict(self) -> dict:
        return {
            'expired': self.expired,
            'remaining': asdict(self.remaining) if self.remaining else None,
        }


@dataclass
class EventSummary:
    """Dashboard statistics over a set of events."""
    total: int = 0
    upcoming: int = 0
    past: int = 0
    running: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_month: Dict[str, int] = field(default_factory=dict)
    joined: int = 0
    joined_by_month: Dict[str, int] = field(default_factory=dict)
    recent: List[Event] = field(default_factory=list)
