"""AWS Lambda handler serving pages of the community event list."""
import json
import logging
import os
import time
from typing import Dict, Any

import requests

from client.events_api import EventsApiClient, EventsApiError
from processor.countdown import compute_state, format_compact, now_ms, to_epoch_ms
from processor.event_processor import EventProcessor
from processor.models import QueryState
from processor.query_engine import run_query


# Attributes every LogRecord has; anything else came in through `extra`
_RECORD_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """JSON formatter that also emits fields passed via `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith('_'):
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _error_response(status_code: int, message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps({
            'message': message,
            'error': str(error),
            'error_type': type(error).__name__,
            'duration_seconds': round(time.time() - start_time, 2)
        })
    }


def _with_countdown(item: Dict[str, Any], current_ms: int) -> Dict[str, Any]:
    """Attach a countdown snapshot to a serialized event."""
    try:
        state = compute_state(to_epoch_ms(item.get('eventDate')), current_ms)
    except ValueError:
        item['countdown'] = None
        return item
    item['countdown'] = {
        'expired': state.expired,
        'text': format_compact(state),
    }
    return item


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler returning one page of upcoming events.

    Args:
        event: API Gateway proxy event; queryStringParameters may hold
            search, type, location, sort and page
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    api_url = os.environ.get('API_URL', '')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    page_size = int(os.environ.get('PAGE_SIZE', '12'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)
    request_id = getattr(context, 'aws_request_id', None)

    start_time = time.time()
    params = (event or {}).get('queryStringParameters') or {}
    logger.info(
        "Event list request started",
        extra={'request_id': request_id, 'params': params, 'page_size': page_size}
    )

    try:
        try:
            query = QueryState.from_params(params, page_size=page_size)
        except ValueError as e:
            logger.warning(
                f"Rejected query parameters: {e}",
                extra={'request_id': request_id, 'params': params}
            )
            return _error_response(400, 'Invalid query parameters', e, start_time)

        client = EventsApiClient(base_url=api_url, timeout=timeout_seconds)
        processor = EventProcessor()

        try:
            logger.info("Fetching upcoming events")
            raw_events = client.fetch_upcoming_events()
        except (EventsApiError, requests.RequestException) as e:
            logger.error(
                f"Failed to fetch events from API: {str(e)}",
                extra={'request_id': request_id, 'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(502, 'Failed to load events', e, start_time)

        events = processor.process_events(raw_events)
        result = run_query(events, query)

        current_ms = now_ms()
        body = result.to_dict()
        body['pageItems'] = [_with_countdown(item, current_ms) for item in body['pageItems']]
        body['pageNumber'] = query.page_number
        body['pageSize'] = query.page_size

        duration = time.time() - start_time
        logger.info(
            f"Returned {len(result.page_items)} of {result.filtered_count} matching events",
            extra={
                'request_id': request_id,
                'duration_seconds': round(duration, 2),
                'page_number': query.page_number,
                'total_pages': result.total_pages
            }
        )

        return {
            'statusCode': 200,
            'body': json.dumps(body)
        }

    except Exception as e:
        logger.error(
            f"Event list request failed: {str(e)}",
            extra={
                'request_id': request_id,
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response(500, 'Request failed', e, start_time)
