"""REST client for the community events API."""
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from processor.event_processor import format_event_date, parse_event_date

logger = logging.getLogger(__name__)


class EventsApiError(Exception):
    """The API answered but reported a failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class EventsApiClient:
    """Client for the events backend."""

    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, base_url: str, timeout: int = 30):
        """
        Initialize the API client.

        Args:
            base_url: API base URL, e.g. https://api.example.org
            timeout: HTTP request timeout in seconds (default: 30)
        """
        if not base_url:
            raise ValueError("API base URL is required")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()

    def fetch_upcoming_events(self) -> List[Dict[str, Any]]:
        """Fetch all events that have not started yet."""
        data = self._request('GET', '/events/upcoming', default_error="Failed to load events")
        events = data.get('events') or []
        logger.info(f"Fetched {len(events)} upcoming events")
        return events

    def fetch_all_events(self) -> List[Dict[str, Any]]:
        """Fetch every event, past and upcoming (admin view)."""
        data = self._request('GET', '/events', default_error="Failed to load events")
        return data.get('events') or []

    def fetch_event(self, event_id: str) -> Dict[str, Any]:
        """Fetch a single event by id."""
        data = self._request('GET', f'/events/{event_id}', default_error="Failed to load event")
        return data.get('event') or {}

    def fetch_user_events(self, email: str) -> List[Dict[str, Any]]:
        """Fetch the events created by a user."""
        data = self._request(
            'GET', '/events/user',
            params={'email': email},
            default_error="Failed to load your events."
        )
        return data.get('events') or []

    def fetch_joined_events(self, email: str) -> List[Dict[str, Any]]:
        """Fetch the events a user has joined."""
        data = self._request(
            'GET', '/joined',
            params={'email': email},
            default_error="Failed to load joined events."
        )
        return data.get('joinedEvents') or []

    def create_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an event.

        Args:
            payload: Body built by processor.event_processor.prepare_new_event

        Returns:
            Decoded response body
        """
        return self._request('POST', '/events', json=payload, default_error="Failed to create event.")

    def update_event(
        self,
        event_id: str,
        payload: Dict[str, Any],
        requestor_email: str
    ) -> Dict[str, Any]:
        """
        Edit an event owned by the requestor.

        Args:
            event_id: Event to update
            payload: Edited fields; eventDate may be a datetime or ISO string
            requestor_email: Email of the logged-in owner

        Returns:
            Decoded response body
        """
        body = dict(payload, requestorEmail=requestor_email)
        event_date = body.get('eventDate')
        if event_date is not None:
            parsed = parse_event_date(event_date)
            if parsed is None:
                raise ValueError(f"Invalid event date: {event_date!r}")
            body['eventDate'] = format_event_date(parsed)
        return self._request(
            'PUT', f'/events/{event_id}',
            json=body,
            default_error="Failed to update event."
        )

    def fetch_users(self, requestor_email: str) -> List[Dict[str, Any]]:
        """Fetch every registered user (admins only)."""
        data = self._request(
            'GET', '/users',
            params={'requestorEmail': requestor_email},
            default_error="Failed to load users"
        )
        return data.get('users') or []

    def update_user_role(self, email: str, role: str, requestor_email: str) -> Dict[str, Any]:
        """Change a user's role, e.g. promote to "admin" (admins only)."""
        return self._request(
            'PATCH', f'/users/{email}/role',
            json={'role': role, 'requestorEmail': requestor_email},
            default_error="Failed to update role"
        )

    def join_event(self, event_id: str, user_email: str) -> Dict[str, Any]:
        """Register a user for an event."""
        return self._request(
            'POST', '/join-event',
            json={'eventId': event_id, 'userEmail': user_email},
            default_error="Failed to join event."
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        default_error: str = "Request failed"
    ) -> Dict[str, Any]:
        """
        Send a request with retry logic and unwrap the {ok, message} envelope.

        Connection errors, timeouts and 5xx responses are retried with
        exponential backoff.

        Returns:
            Decoded JSON body

        Raises:
            requests.RequestException: If all retry attempts fail
            EventsApiError: If the API reports a failure
        """
        url = f"{self.base_url}{path}"

        for attempt in range(self.MAX_RETRIES):
            try:
                logger.info(f"{method} {url} (attempt {attempt + 1}/{self.MAX_RETRIES})")
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    timeout=self.timeout
                )
                if response.status_code >= 500:
                    response.raise_for_status()
                break

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} retry attempts failed. Last error: {e}"
                    )
                    raise

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.ok or not data.get('ok'):
            message = data.get('message') or default_error
            logger.error(f"{method} {url} failed with status {response.status_code}: {message}")
            raise EventsApiError(message, status_code=response.status_code)

        return data
