"""Filtering and sorting of event collections."""
import logging
import unicodedata
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from processor.models import ALL_CATEGORIES, SORT_KEYS, Event, SortSpec

logger = logging.getLogger(__name__)

# Combined sort values accepted by the events API, e.g. "date_desc".
COMBINED_SORT_KEYS = {
    'date': 'date',
    'title': 'title',
    'created': 'createdAt',
    'createdAt': 'createdAt',
}


def filter_by_category(events: List[Event], category: str) -> List[Event]:
    """Keep events in the given category; "all" keeps everything."""
    if not category or category == ALL_CATEGORIES:
        return list(events)
    return [event for event in events if event.category == category]


def filter_by_search(events: List[Event], term: str) -> List[Event]:
    """
    Keep events whose title, description or organizer contains the term,
    ignoring case. An empty term keeps everything.
    """
    if not term:
        return list(events)

    needle = term.lower()
    return [
        event for event in events
        if needle in event.title.lower()
        or needle in event.description.lower()
        or needle in event.organizer.lower()
    ]


def parse_sort_spec(sort: Optional[str], order: Optional[str] = None) -> SortSpec:
    """
    Build a SortSpec from query values.

    Accepts either a bare key ("date", "title", "createdAt") with a
    separate order, or a combined value such as "title_desc". Unknown
    values fall back to date ascending.
    """
    key = sort or 'date'
    direction = (order or 'asc').lower()

    prefix, _, suffix = key.rpartition('_')
    if prefix and suffix in ('asc', 'desc'):
        key, direction = prefix, suffix

    key = COMBINED_SORT_KEYS.get(key, key)
    if key not in SORT_KEYS:
        logger.warning(f"Unknown sort key '{sort}', using date")
        key = 'date'
    if direction not in ('asc', 'desc'):
        logger.warning(f"Unknown sort order '{order}', using asc")
        direction = 'asc'

    return SortSpec(key=key, order=direction)


def sort_events(events: List[Event], spec: SortSpec) -> List[Event]:
    """
    Stable sort by the spec's key and direction.

    Events whose sort value cannot be parsed are placed after every
    well-formed event in both directions, keeping their original order.
    """
    key_func = _SORT_KEY_FUNCS[spec.key]

    comparable = []
    malformed = []
    for event in events:
        value = key_func(event)
        if value is None:
            malformed.append(event)
        else:
            comparable.append((value, event))

    if malformed:
        logger.debug(
            f"{len(malformed)} events have an unparseable {spec.key} value"
        )

    comparable.sort(key=lambda pair: pair[0], reverse=spec.descending)
    return [event for _, event in comparable] + malformed


def filter_and_sort(
    events: List[Event],
    category: str = ALL_CATEGORIES,
    search: str = '',
    spec: Optional[SortSpec] = None
) -> List[Event]:
    """Apply category and text filters, then sort."""
    filtered = filter_by_category(events, category)
    filtered = filter_by_search(filtered, search)
    return sort_events(filtered, spec or SortSpec())


def event_start(event: Event) -> Optional[datetime]:
    """Date and time of an event as a naive datetime, or None if malformed."""
    try:
        return datetime.strptime(f"{event.date} {event.time}", '%Y-%m-%d %H:%M')
    except (TypeError, ValueError):
        return None


def created_instant(event: Event) -> Optional[datetime]:
    """Creation instant as an aware datetime, or None if malformed."""
    value = event.created_at
    if not isinstance(value, str) or not value:
        return None
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def title_key(event: Event) -> Optional[Tuple[str, str]]:
    """
    Collation key for titles: accents and case are ignored first, so
    "Émile" sorts with "E", then the folded title breaks ties.
    """
    if not isinstance(event.title, str):
        return None
    folded = event.title.casefold()
    decomposed = unicodedata.normalize('NFKD', folded)
    base = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base, folded


_SORT_KEY_FUNCS: Dict[str, Callable[[Event], object]] = {
    'date': event_start,
    'title': title_key,
    'createdAt': created_instant,
}
