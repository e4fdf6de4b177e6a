"""Distance calculation and location lookup for nearby-event filtering."""
import logging
import math
import re
from typing import Callable, List, Optional, Tuple

from processor.errors import GeolocationError
from processor.models import Coordinates, Event, NearbyResult

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
DEFAULT_RADIUS_KM = 10

COORDINATE_PATTERN = re.compile(r'(-?\d+\.?\d*),\s*(-?\d+\.?\d*)')

# Checked in order; the first fragment found in a location wins, so venue
# types take precedence over districts.
GAZETTEER: Tuple[Tuple[str, Coordinates], ...] = (
    ('park', Coordinates(40.7831, -73.9712)),
    ('community center', Coordinates(40.7589, -73.9851)),
    ('library', Coordinates(40.7532, -73.9822)),
    ('school', Coordinates(40.7614, -73.9776)),
    ('downtown', Coordinates(40.7128, -74.0060)),
)


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in kilometers."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push h past 1 for antipodal points.
    h = min(h, 1.0)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def resolve_coordinates(location: str) -> Optional[Coordinates]:
    """
    Best-effort coordinates for a free-text location.

    An explicit "lat, lng" pair is used when present; otherwise the first
    gazetteer fragment contained in the text (case-insensitive).

    Returns:
        Coordinates or None if the location cannot be resolved
    """
    if not location:
        return None

    match = COORDINATE_PATTERN.search(location)
    if match:
        return Coordinates(float(match.group(1)), float(match.group(2)))

    lowered = location.lower()
    for fragment, coords in GAZETTEER:
        if fragment in lowered:
            return coords

    return None


def distance_to_event(origin: Coordinates, event: Event) -> Optional[float]:
    """Distance from origin to the event in km, or None if unresolvable."""
    coords = resolve_coordinates(event.location)
    if coords is None:
        return None
    return haversine_km(origin, coords)


def filter_nearby(
    events: List[Event],
    origin: Coordinates,
    max_km: float = DEFAULT_RADIUS_KM
) -> List[Event]:
    """
    Keep events within max_km of origin, closest first.

    Events without a resolvable location are never excluded; they follow
    all resolved events in their original order.
    """
    located = []
    unknown = []

    for event in events:
        distance = distance_to_event(origin, event)
        if distance is None:
            unknown.append(event)
        elif distance <= max_km:
            located.append((distance, event))

    located.sort(key=lambda pair: pair[0])

    logger.debug(
        f"Nearby filter kept {len(located)} located and {len(unknown)} "
        f"unlocated events of {len(events)} within {max_km} km"
    )
    return [event for _, event in located] + unknown


def format_distance(distance_km: float) -> str:
    """Render a distance as whole meters under 1 km, else km to 0.1."""
    if distance_km < 1:
        return f"{math.floor(distance_km * 1000 + 0.5)}m"
    return f"{distance_km:.1f}km"


def parse_user_location(lat, lng) -> Coordinates:
    """
    Validate a user position received from a request.

    Raises:
        GeolocationError: If either value is missing, non-numeric or out
            of range
    """
    try:
        coords = Coordinates(float(lat), float(lng))
    except (TypeError, ValueError):
        raise GeolocationError(GeolocationError.POSITION_UNAVAILABLE)

    if not (-90 <= coords.lat <= 90 and -180 <= coords.lng <= 180):
        raise GeolocationError(GeolocationError.POSITION_UNAVAILABLE)

    return coords


def locate_nearby(
    events: List[Event],
    locate: Callable[[], Coordinates],
    max_km: float = DEFAULT_RADIUS_KM
) -> NearbyResult:
    """
    Filter events around the position reported by a location provider.

    When the provider fails, the unfiltered events are returned together
    with a user-facing message.
    """
    try:
        origin = locate()
    except GeolocationError as e:
        logger.warning(f"Geolocation failed (code {e.code}): {e.message}")
        return NearbyResult(events=list(events), error=e.message)

    return NearbyResult(
        events=filter_nearby(events, origin, max_km),
        location=origin
    )
