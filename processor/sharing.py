"""Shareable event links."""
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote, urlsplit

from processor.models import Event

logger = logging.getLogger(__name__)

SHARED_FIELDS = (
    'title', 'date', 'time', 'location',
    'description', 'category', 'organizer'
)


def build_share_url(event: Event, base_url: str) -> str:
    """
    Link that carries the event's public fields as URL-encoded JSON in the
    "event" query parameter, e.g. https://host/?event=%7B...%7D
    """
    payload = {name: getattr(event, name) for name in SHARED_FIELDS}
    encoded = quote(json.dumps(payload, separators=(',', ':')), safe='')
    separator = '&' if '?' in base_url else '?'
    return f"{base_url}{separator}event={encoded}"


def parse_share_url(url: str) -> Optional[Dict[str, Any]]:
    """
    Extract the shared event fields from a link built by build_share_url.

    Returns:
        Dict of the shared fields, or None if the link carries no valid
        event payload
    """
    values = parse_qs(urlsplit(url).query).get('event')
    if not values:
        return None

    try:
        payload = json.loads(values[0])
    except json.JSONDecodeError as e:
        logger.warning(f"Shared event payload is not valid JSON: {e}")
        return None

    if not isinstance(payload, dict):
        return None

    return {name: payload[name] for name in SHARED_FIELDS if name in payload}
