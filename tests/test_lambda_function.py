"""Integration tests for Lambda handler."""
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
from requests.exceptions import Timeout

from client.events_api import EventsApiError
from lambda_function import JsonFormatter, lambda_handler, setup_logging


def iso_in(days):
    moment = datetime.now(timezone.utc) + timedelta(days=days)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.000Z')


@pytest.fixture
def mock_env():
    """Set up environment variables for testing."""
    env_vars = {
        'API_URL': 'https://api.example.org',
        'LOG_LEVEL': 'INFO',
        'TIMEOUT_SECONDS': '15',
        'PAGE_SIZE': '2'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def mock_context():
    """Create a mock Lambda context."""
    context = Mock()
    context.function_name = 'test-function'
    context.aws_request_id = 'test-request-id'
    return context


@pytest.fixture
def sample_api_events():
    """Records as returned by /events/upcoming."""
    return [
        {'_id': '1', 'title': 'Zoo Cleanup', 'eventType': 'Cleanup',
         'location': 'City Zoo', 'description': '', 'eventDate': iso_in(3)},
        {'_id': '2', 'title': 'Canal Cleanup', 'eventType': 'Cleanup',
         'location': 'Canal Walk', 'description': '', 'eventDate': iso_in(5)},
        {'_id': '3', 'title': 'Coat Drive', 'eventType': 'Donation',
         'location': 'Town Hall', 'description': '', 'eventDate': iso_in(1)},
        {'_id': '4', 'title': 'Recycling Talk', 'eventType': 'Awareness',
         'location': 'Library', 'description': '', 'eventDate': 'TBD'},
        {'_id': '5', 'title': 'Market Cleanup', 'eventType': 'Cleanup',
         'location': 'Market Square', 'description': '', 'eventDate': iso_in(-1)},
    ]


class TestLambdaHandler:
    """Test cases for Lambda handler."""

    @patch('lambda_function.EventsApiClient')
    def test_returns_filtered_page(self, mock_client_class, mock_env, mock_context,
                                   sample_api_events):
        """Test a filtered, sorted page is returned with facets and countdowns."""
        mock_client = Mock()
        mock_client.fetch_upcoming_events.return_value = sample_api_events
        mock_client_class.return_value = mock_client

        event = {'queryStringParameters': {'type': 'Cleanup', 'sort': 'titleAsc'}}
        response = lambda_handler(event, mock_context)

        assert response['statusCode'] == 200
        body = json.loads(response['body'])
        assert body['filteredCount'] == 3
        assert body['totalPages'] == 2
        assert body['pageNumber'] == 1
        assert body['pageSize'] == 2
        assert [item['title'] for item in body['pageItems']] == ['Canal Cleanup', 'Market Cleanup']
        assert body['availableTypes'] == ['Awareness', 'Cleanup', 'Donation']
        assert 'Library' in body['availableLocations']

        canal, market = body['pageItems']
        assert canal['countdown']['expired'] is False
        assert canal['countdown']['text'].startswith('4d ')
        assert market['countdown'] == {'expired': True, 'text': 'Event started'}

        mock_client_class.assert_called_once_with(base_url='https://api.example.org', timeout=15)

    @patch('lambda_function.EventsApiClient')
    def test_undated_event_has_no_countdown(self, mock_client_class, mock_env, mock_context,
                                            sample_api_events):
        """Test events with unparsable dates are listed without a countdown."""
        mock_client_class.return_value.fetch_upcoming_events.return_value = sample_api_events

        response = lambda_handler(
            {'queryStringParameters': {'search': 'recycling'}}, mock_context
        )

        body = json.loads(response['body'])
        assert body['filteredCount'] == 1
        assert body['pageItems'][0]['eventDate'] == 'TBD'
        assert body['pageItems'][0]['countdown'] is None

    @patch('lambda_function.EventsApiClient')
    def test_no_parameters_uses_defaults(self, mock_client_class, mock_env, mock_context,
                                         sample_api_events):
        """Test a bare request lists events by date, undated last."""
        mock_client_class.return_value.fetch_upcoming_events.return_value = sample_api_events

        response = lambda_handler({'queryStringParameters': None}, mock_context)

        body = json.loads(response['body'])
        assert body['filteredCount'] == 5
        assert body['totalPages'] == 3
        assert [item['id'] for item in body['pageItems']] == ['5', '3']

    @patch('lambda_function.EventsApiClient')
    def test_invalid_sort_returns_400(self, mock_client_class, mock_env, mock_context):
        """Test bad query parameters are rejected before calling the API."""
        response = lambda_handler({'queryStringParameters': {'sort': 'popular'}}, mock_context)

        assert response['statusCode'] == 400
        body = json.loads(response['body'])
        assert body['message'] == 'Invalid query parameters'
        assert body['error_type'] == 'ValueError'
        mock_client_class.assert_not_called()

    @patch('lambda_function.EventsApiClient')
    def test_invalid_page_returns_400(self, mock_client_class, mock_env, mock_context):
        response = lambda_handler({'queryStringParameters': {'page': '0'}}, mock_context)

        assert response['statusCode'] == 400

    @patch('lambda_function.EventsApiClient')
    def test_api_failure_returns_502(self, mock_client_class, mock_env, mock_context):
        """Test an API envelope failure is reported as a bad gateway."""
        mock_client_class.return_value.fetch_upcoming_events.side_effect = EventsApiError(
            'Failed to load events', status_code=500
        )

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 502
        body = json.loads(response['body'])
        assert body['message'] == 'Failed to load events'
        assert body['error_type'] == 'EventsApiError'
        assert 'duration_seconds' in body

    @patch('lambda_function.EventsApiClient')
    def test_network_failure_returns_502(self, mock_client_class, mock_env, mock_context):
        mock_client_class.return_value.fetch_upcoming_events.side_effect = Timeout('timed out')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 502
        assert json.loads(response['body'])['error_type'] == 'Timeout'

    def test_missing_api_url_returns_500(self, mock_context):
        """Test a missing API_URL is reported clearly."""
        with patch.dict(os.environ, {'LOG_LEVEL': 'INFO'}, clear=True):
            response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        body = json.loads(response['body'])
        assert body['message'] == 'Request failed'
        assert 'API base URL is required' in body['error']

    @patch('lambda_function.run_query')
    @patch('lambda_function.EventsApiClient')
    def test_unexpected_error_returns_500(self, mock_client_class, mock_run_query, mock_env,
                                          mock_context):
        mock_client_class.return_value.fetch_upcoming_events.return_value = []
        mock_run_query.side_effect = RuntimeError('boom')

        response = lambda_handler({}, mock_context)

        assert response['statusCode'] == 500
        assert json.loads(response['body'])['error'] == 'boom'


class TestLogging:
    """JSON logging setup."""

    def test_setup_logging_installs_json_handler(self):
        setup_logging('DEBUG')

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JsonFormatter)

    def test_unknown_level_falls_back_to_info(self):
        setup_logging('chatty')

        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_output(self):
        record = logging.LogRecord('processor.query_engine', logging.WARNING, __file__, 1,
                                   'Skipped %d events', (2,), None)

        data = json.loads(JsonFormatter().format(record))

        assert data['level'] == 'WARNING'
        assert data['message'] == 'Skipped 2 events'
        assert data['logger'] == 'processor.query_engine'
        assert 'exception' not in data

    def test_json_formatter_includes_extra_fields(self):
        """Test fields passed via extra appear in the JSON record."""
        logger = logging.getLogger('tests.extra')
        record = logger.makeRecord('tests.extra', logging.INFO, __file__, 1, 'Fetched', (), None,
                                   extra={'request_id': 'req-1', 'params': {'type': 'Cleanup'}})

        data = json.loads(JsonFormatter().format(record))

        assert data['request_id'] == 'req-1'
        assert data['params'] == {'type': 'Cleanup'}
        assert 'lineno' not in data

    @patch('lambda_function.EventsApiClient')
    def test_handler_logs_carry_request_id(self, mock_client_class, mock_env, mock_context,
                                           capsys):
        """Test every handler log line is tagged with the Lambda request id."""
        mock_client_class.return_value.fetch_upcoming_events.return_value = []

        lambda_handler({'queryStringParameters': {'type': 'Cleanup'}}, mock_context)

        lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()
                 if line.startswith('{')]
        handler_lines = [line for line in lines if line['logger'] == 'lambda_function']
        assert handler_lines
        assert all(line['request_id'] == 'test-request-id' for line in handler_lines)
        assert handler_lines[0]['params'] == {'type': 'Cleanup'}
