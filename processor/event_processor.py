"""Event processor for validating and normalizing event records."""
import hashlib
import logging
from datetime import datetime, timezone
from typing import List, Optional

from processor.models import Event

logger = logging.getLogger(__name__)


def parse_event_date(value) -> Optional[datetime]:
    """
    Parse an event date into a timezone-aware UTC datetime.

    Args:
        value: ISO 8601 string (trailing 'Z' allowed) or datetime

    Returns:
        Aware datetime in UTC, or None if the value is missing or unparsable
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    # Naive values are taken as UTC
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_event_date(value: datetime) -> str:
    """Format a datetime as ISO 8601 UTC with millisecond precision and 'Z'."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


class EventProcessor:
    """Processor for validating and normalizing event records from the API."""

    def process_events(self, raw_events: List[dict]) -> List[Event]:
        """
        Process and validate raw event records.

        Args:
            raw_events: List of JSON records from the events API

        Returns:
            List of validated Event objects
        """
        processed_events = []

        for record in raw_events:
            try:
                processed_event = self._process_single_event(record)
                if processed_event:
                    processed_events.append(processed_event)
            except Exception as e:
                logger.warning(
                    f"Failed to process event record {record!r:.80}: {e}"
                )
                continue

        logger.info(
            f"Processed {len(processed_events)} valid events out of "
            f"{len(raw_events)} total events"
        )
        return processed_events

    def _process_single_event(self, record: dict) -> Optional[Event]:
        """
        Process a single event record.

        Args:
            record: Raw JSON record

        Returns:
            Event object or None if validation fails
        """
        if not isinstance(record, dict):
            logger.warning(f"Skipping non-object event record: {record!r:.80}")
            return None

        title = self._text(record.get('title'))
        if not title.strip():
            logger.warning("Event missing required field: title")
            return None

        raw_date = record.get('eventDate')
        location = self._text(record.get('location'))

        # Malformed dates are kept so the event still shows up in listings
        event_date = parse_event_date(raw_date)
        if event_date is None:
            logger.warning(
                f"Invalid or missing date for event '{title}': {raw_date!r}"
            )

        event_id = record.get('_id') or record.get('id')
        if not event_id:
            event_id = self.generate_event_id(
                title=title,
                date=raw_date if isinstance(raw_date, str) else '',
                location=location
            )

        return Event(
            event_id=str(event_id),
            title=title,
            description=self._text(record.get('description')),
            event_type=self._text(record.get('eventType')),
            location=location,
            event_date=event_date,
            event_date_raw=raw_date if isinstance(raw_date, str) else None,
            thumbnail=record.get('thumbnail') or None,
            creator_email=record.get('creatorEmail') or None
        )

    @staticmethod
    def _text(value) -> str:
        return value if isinstance(value, str) else ''

    def generate_event_id(self, title: str, date: str, location: str) -> str:
        """
        Generate an identifier for a record the API sent without one.

        Args:
            title: Event title
            date: Raw event date string
            location: Event location

        Returns:
            Event ID (SHA256 hash)
        """
        composite = f"{title}|{date}|{location}"
        return hashlib.sha256(composite.encode('utf-8')).hexdigest()


def prepare_new_event(
    title: str,
    description: str,
    event_type: str,
    location: str,
    event_date: datetime,
    creator_email: Optional[str],
    thumbnail: str = '',
    now: Optional[datetime] = None
) -> dict:
    """
    Validate a new event and build the payload for the events API.

    Args:
        title: Event title
        description: Event description
        event_type: Category such as "Cleanup" or "Donation"
        location: Where the event takes place
        event_date: When the event starts
        creator_email: Email of the logged-in creator
        thumbnail: Optional image URL
        now: Reference time (defaults to the current UTC time)

    Returns:
        JSON-ready payload dict

    Raises:
        ValueError: If a required field is missing or the date is not in the future
    """
    if not creator_email:
        raise ValueError("You must be logged in to create an event.")
    if event_date is None:
        raise ValueError("Please select an event date.")

    for name, value in (('title', title), ('event type', event_type), ('location', location)):
        if not value or not value.strip():
            raise ValueError(f"Event {name} is required.")

    selected = parse_event_date(event_date)
    if selected is None:
        raise ValueError(f"Invalid event date: {event_date!r}")

    reference = parse_event_date(now) if now is not None else datetime.now(timezone.utc)
    if selected <= reference:
        raise ValueError("Event date must be in the future.")

    return {
        'title': title.strip(),
        'description': description or '',
        'eventType': event_type.strip(),
        'thumbnail': thumbnail or '',
        'location': location.strip(),
        'eventDate': format_event_date(selected),
        'creatorEmail': creator_email,
    }
