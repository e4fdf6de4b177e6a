"""Data models for community events and their analytics."""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


CATEGORIES = ('Social', 'Education', 'Sports', 'Arts', 'Other')
ALL_CATEGORIES = 'all'

SORT_KEYS = ('date', 'title', 'createdAt')
SORT_ORDERS = ('asc', 'desc')


@dataclass
class Event:
    """A single bulletin-board posting."""
    id: str
    title: str
    date: str
    time: str
    location: str
    description: str
    category: str
    organizer: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted/wire JSON form."""
        return {
            'id': self.id,
            'title': self.title,
            'date': self.date,
            'time': self.time,
            'location': self.location,
            'description': self.description,
            'category': self.category,
            'organizer': self.organizer,
            'createdAt': self.created_at
        }

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> 'Event':
        """
        Build an Event from its persisted JSON form.

        Raises:
            KeyError: If a required attribute is missing
        """
        return cls(
            id=str(item['id']),
            title=item['title'],
            date=item['date'],
            time=item['time'],
            location=item.get('location', ''),
            description=item.get('description', ''),
            category=item['category'],
            organizer=item.get('organizer', ''),
            created_at=item['createdAt']
        )


@dataclass
class EventStats:
    """Per-event analytics counters."""
    id: str
    title: str
    category: str
    views: int = 0
    shares: int = 0
    qr_scans: int = 0
    estimated_attendance: int = 0
    popularity_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'category': self.category,
            'views': self.views,
            'shares': self.shares,
            'qrScans': self.qr_scans,
            'estimatedAttendance': self.estimated_attendance,
            'popularityScore': self.popularity_score
        }

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> 'EventStats':
        return cls(
            id=str(item['id']),
            title=item.get('title', ''),
            category=item.get('category', ''),
            views=int(item.get('views', 0)),
            shares=int(item.get('shares', 0)),
            qr_scans=int(item.get('qrScans', 0)),
            estimated_attendance=int(item.get('estimatedAttendance', 0)),
            popularity_score=int(item.get('popularityScore', 0))
        )


@dataclass(frozen=True)
class Coordinates:
    """A point in decimal degrees."""
    lat: float
    lng: float


@dataclass(frozen=True)
class SortSpec:
    """Sort key and direction for the event pipeline."""
    key: str = 'date'
    order: str = 'asc'

    @property
    def descending(self) -> bool:
        return self.order == 'desc'


@dataclass
class CategoryStat:
    category: str
    count: int
    percentage: int


@dataclass
class ActivityPoint:
    date: str
    views: int
    shares: int


@dataclass
class AnalyticsReport:
    """Aggregate analytics over an event collection."""
    total_events: int
    total_views: int
    total_shares: int
    popular_events: List[EventStats] = field(default_factory=list)
    category_stats: List[CategoryStat] = field(default_factory=list)
    recent_activity: List[ActivityPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalEvents': self.total_events,
            'totalViews': self.total_views,
            'totalShares': self.total_shares,
            'popularEvents': [stats.to_dict() for stats in self.popular_events],
            'categoryStats': [asdict(stat) for stat in self.category_stats],
            'recentActivity': [asdict(point) for point in self.recent_activity]
        }


@dataclass
class NearbyResult:
    """Outcome of a nearby-events lookup."""
    events: List[Event]
    location: Optional[Coordinates] = None
    error: Optional[str] = None
