"""AWS Lambda handler for the Community Events Board API."""
import base64
import json
import logging
import math
import os
import re
import time
from typing import Any, Dict, Optional, Tuple

from processor.analytics import AnalyticsService
from processor.errors import (
    NotFoundError,
    StorageError,
    ValidationError,
)
from processor.event_processor import EventProcessor
from processor.geo import DEFAULT_RADIUS_KM, locate_nearby, parse_user_location
from processor.models import ALL_CATEGORIES
from processor.pipeline import filter_and_sort, parse_sort_spec
from processor.sharing import build_share_url
from storage.event_storage import EventStorage
from storage.kv_store import (
    DynamoDBKeyValueStore,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
)


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


EVENT_PATH = re.compile(r'^/api/events/(?P<event_id>[^/]+)$')
TRACK_PATH = re.compile(r'^/api/events/(?P<event_id>[^/]+)/(?P<action>views|shares|scans)$')
SHARE_PATH = re.compile(r'^/api/events/(?P<event_id>[^/]+)/share$')

# Carries the geolocation failure message when the nearby filter falls back.
LOCATION_ERROR_HEADER = 'X-Location-Error'

# In-memory state survives only as long as the Lambda container.
_memory_store: Optional[InMemoryKeyValueStore] = None


def read_config() -> Dict[str, Any]:
    """Read configuration from environment variables."""
    return {
        'storage_backend': os.environ.get('STORAGE_BACKEND', 'file'),
        'data_dir': os.environ.get('DATA_DIR', '/tmp/community-events'),
        'table_name': os.environ.get('TABLE_NAME', 'community-events-state'),
        'log_level': os.environ.get('LOG_LEVEL', 'INFO'),
        'default_radius_km': float(
            os.environ.get('DEFAULT_RADIUS_KM', str(DEFAULT_RADIUS_KM))
        ),
        'cors_origin': os.environ.get('CORS_ORIGIN', '*'),
    }


def build_store(config: Dict[str, Any]) -> KeyValueStore:
    """Create the persistence backend named by the configuration."""
    global _memory_store

    backend = config['storage_backend']
    if backend == 'dynamodb':
        return DynamoDBKeyValueStore(table_name=config['table_name'])
    if backend == 'memory':
        if _memory_store is None:
            _memory_store = InMemoryKeyValueStore()
        return _memory_store
    if backend != 'file':
        raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")
    return FileKeyValueStore(config['data_dir'])


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for API Gateway proxy requests.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        API Gateway proxy response dict
    """
    config = read_config()
    setup_logging(config['log_level'])
    logger = logging.getLogger(__name__)

    start_time = time.time()
    method = (event.get('httpMethod') or 'GET').upper()
    path = (event.get('path') or '/').rstrip('/') or '/'

    logger.info(
        f"Request started: {method} {path}",
        extra={'method': method, 'path': path}
    )

    headers: Dict[str, str] = {}

    try:
        store = build_store(config)
        storage = EventStorage(store, processor=EventProcessor())
        analytics = AnalyticsService(store)

        status, body = route_request(
            method, path, event, storage, analytics, config, headers
        )

    except ValidationError as e:
        status, body = 400, {'error': 'Validation failed', 'details': e.errors}

    except NotFoundError:
        status, body = 404, {'error': 'Event not found'}

    except StorageError as e:
        logger.error(
            f"Storage failure: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        status, body = 500, {
            'error': 'Storage failure',
            'message': str(e),
            'error_type': type(e).__name__
        }

    except Exception as e:
        logger.error(
            f"Request failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        status, body = 500, {
            'error': 'Internal server error',
            'message': str(e),
            'error_type': type(e).__name__
        }

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {method} {path} -> {status}",
        extra={'status': status, 'duration_seconds': round(duration, 3)}
    )
    return build_response(status, body, config['cors_origin'], headers)


def route_request(
    method: str,
    path: str,
    event: Dict[str, Any],
    storage: EventStorage,
    analytics: AnalyticsService,
    config: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None
) -> Tuple[int, Any]:
    """
    Dispatch a request to the matching operation.

    Extra response headers are written into ``headers`` when given.
    """
    if headers is None:
        headers = {}
    params = event.get('queryStringParameters') or {}

    if path == '/api/health' and method == 'GET':
        return 200, {'status': 'OK', 'message': 'Server is running'}

    if path == '/api/analytics' and method == 'GET':
        reconcile = str(params.get('reconcile', '')).lower() in ('1', 'true', 'yes')
        report = analytics.build_report(storage.list_events(), reconcile=reconcile)
        return 200, report.to_dict()

    if path == '/api/events':
        if method == 'GET':
            events, location_error = list_events(storage, params, config)
            if location_error:
                headers[LOCATION_ERROR_HEADER] = location_error
            return 200, events
        if method == 'POST':
            created = storage.create_event(parse_body(event))
            return 201, created.to_dict()

    match = TRACK_PATH.match(path)
    if match and method == 'POST':
        return 200, track_event(
            storage, analytics, match.group('event_id'), match.group('action')
        )

    match = SHARE_PATH.match(path)
    if match and method == 'GET':
        found = storage.get_event(match.group('event_id'))
        base_url = params.get('base') or 'http://localhost:5173'
        return 200, {'url': build_share_url(found, base_url)}

    match = EVENT_PATH.match(path)
    if match:
        event_id = match.group('event_id')
        if method == 'GET':
            return 200, storage.get_event(event_id).to_dict()
        if method == 'PUT':
            data = parse_body(event)
            storage.processor.ensure_valid(data)
            return 200, storage.update_event(event_id, data).to_dict()
        if method == 'DELETE':
            if not storage.delete_event(event_id):
                raise NotFoundError(event_id)
            return 204, None

    return 404, {'error': 'Not found'}


def list_events(
    storage: EventStorage,
    params: Dict[str, str],
    config: Dict[str, Any]
) -> Tuple[list, Optional[str]]:
    """
    List events, applying the filter pipeline when query parameters ask
    for it. Without parameters the stored order is kept.

    Returns:
        The event dicts and, when the user location could not be used,
        the geolocation message. The list is then left unfiltered by
        distance.

    Raises:
        ValidationError: If the radius is not a finite, non-negative number
    """
    events = storage.list_events()

    category = params.get('category') or ALL_CATEGORIES
    search = params.get('q') or ''
    if category != ALL_CATEGORIES or search or params.get('sort') or params.get('order'):
        spec = parse_sort_spec(params.get('sort'), params.get('order'))
        events = filter_and_sort(events, category=category, search=search, spec=spec)

    location_error = None
    if 'lat' in params or 'lng' in params:
        radius = parse_radius(params.get('radius'), config['default_radius_km'])
        result = locate_nearby(
            events,
            lambda: parse_user_location(params.get('lat'), params.get('lng')),
            radius
        )
        events, location_error = result.events, result.error

    return [item.to_dict() for item in events], location_error


def parse_radius(value: Optional[str], default: float) -> float:
    """Parse the search radius in kilometers, falling back to the default."""
    try:
        radius = float(value or default)
    except (TypeError, ValueError):
        raise ValidationError(['Radius must be a number of kilometers'])
    if not math.isfinite(radius) or radius < 0:
        raise ValidationError(['Radius must be a non-negative number of kilometers'])
    return radius


def track_event(
    storage: EventStorage,
    analytics: AnalyticsService,
    event_id: str,
    action: str
) -> Dict[str, Any]:
    """Record a view, share or QR scan for an existing event."""
    found = storage.get_event(event_id)

    if action == 'views':
        stats = analytics.record_view(found.id, found.title, found.category)
    elif action == 'shares':
        stats = analytics.record_share(found.id)
    else:
        stats = analytics.record_qr_scan(found.id)

    return {'stats': stats.to_dict() if stats else None}


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode the JSON request body.

    Raises:
        ValidationError: If the body is not a JSON object
    """
    raw = event.get('body') or '{}'
    if event.get('isBase64Encoded'):
        raw = base64.b64decode(raw).decode('utf-8')
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(['Request body must be valid JSON'])

    if not isinstance(data, dict):
        raise ValidationError(['Request body must be a JSON object'])
    return data


def build_response(
    status: int,
    body: Any,
    cors_origin: str = '*',
    extra_headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Build an API Gateway proxy response."""
    headers = {
        'Content-Type': 'application/json',
        'Access-Control-Allow-Origin': cors_origin
    }
    if extra_headers:
        headers.update(extra_headers)
        # Lets browser scripts read the extra headers.
        headers['Access-Control-Expose-Headers'] = ', '.join(sorted(extra_headers))

    response = {
        'statusCode': status,
        'headers': headers,
        'body': '' if status == 204 else json.dumps(body)
    }
    return response
