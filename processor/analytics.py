"""Per-event view/share/QR-scan counters and aggregate reports."""
import json
import logging
import math
import random
from collections import Counter
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from processor.errors import StorageError
from processor.models import (
    ActivityPoint,
    AnalyticsReport,
    CategoryStat,
    Event,
    EventStats,
)
from storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SHARE_WEIGHT = 3
QR_SCAN_WEIGHT = 2
ATTENDANCE_PER_SCAN = 1.5
POPULAR_EVENTS_LIMIT = 5
ACTIVITY_DAYS = 7


def popularity_score(stats: EventStats) -> int:
    return stats.views + SHARE_WEIGHT * stats.shares + QR_SCAN_WEIGHT * stats.qr_scans


def estimated_attendance(qr_scans: int) -> int:
    return math.floor(qr_scans * ATTENDANCE_PER_SCAN)


class ActivitySource:
    """Supplies the view/share figures for one day of recent activity."""

    def figures_for(self, day: date) -> Tuple[int, int]:
        raise NotImplementedError


class RandomActivitySource(ActivitySource):
    """Placeholder figures: 10-59 views and 2-16 shares per day."""

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    def figures_for(self, day: date) -> Tuple[int, int]:
        return self.rng.randint(10, 59), self.rng.randint(2, 16)


class FixedActivitySource(ActivitySource):
    """Replays a fixed sequence of (views, shares) pairs, cycling."""

    def __init__(self, figures: Sequence[Tuple[int, int]]):
        if not figures:
            raise ValueError("FixedActivitySource needs at least one pair")
        self.figures = list(figures)
        self.position = 0

    def figures_for(self, day: date) -> Tuple[int, int]:
        pair = self.figures[self.position % len(self.figures)]
        self.position += 1
        return pair


class AnalyticsService:
    """
    Accumulates analytics per event id in a key/value store.

    Each update reads the whole stats list and writes it back; concurrent
    writers can lose updates.
    """

    ANALYTICS_KEY = 'eventAnalytics'

    def __init__(
        self,
        store: KeyValueStore,
        activity_source: Optional[ActivitySource] = None,
        today: Optional[Callable[[], date]] = None,
        key: str = ANALYTICS_KEY
    ):
        """
        Args:
            store: Key/value backend holding the stats document
            activity_source: Figures for the recent-activity series
            today: Clock returning the current calendar date
            key: Key the stats array is stored under
        """
        self.store = store
        self.activity_source = activity_source or RandomActivitySource()
        self.today = today or date.today
        self.key = key

    def get_event_stats(self, event_id: str) -> Optional[EventStats]:
        for stats in self._load():
            if stats.id == event_id:
                return stats
        return None

    def record_view(self, event_id: str, title: str, category: str) -> EventStats:
        """
        Count a view, creating the record on first observation.

        title and category are only used when the record is created.
        """
        analytics = self._load()
        stats = self._find(analytics, event_id)

        if stats is None:
            stats = EventStats(
                id=event_id,
                title=title,
                category=category,
                views=1
            )
            stats.popularity_score = popularity_score(stats)
            analytics.append(stats)
            logger.info(f"Started tracking analytics for event {event_id}")
        else:
            stats.views += 1
            stats.popularity_score = popularity_score(stats)

        self._save(analytics)
        return stats

    def record_share(self, event_id: str) -> Optional[EventStats]:
        """Count a share. Ids that were never viewed are ignored."""
        analytics = self._load()
        stats = self._find(analytics, event_id)

        if stats is None:
            logger.info(f"Ignoring share for untracked event {event_id}")
            return None

        stats.shares += 1
        stats.popularity_score = popularity_score(stats)
        self._save(analytics)
        return stats

    def record_qr_scan(self, event_id: str) -> Optional[EventStats]:
        """Count a QR scan. Ids that were never viewed are ignored."""
        analytics = self._load()
        stats = self._find(analytics, event_id)

        if stats is None:
            logger.info(f"Ignoring QR scan for untracked event {event_id}")
            return None

        stats.qr_scans += 1
        stats.estimated_attendance = estimated_attendance(stats.qr_scans)
        stats.popularity_score = popularity_score(stats)
        self._save(analytics)
        return stats

    def build_report(
        self,
        events: Iterable[Event],
        reconcile: bool = False
    ) -> AnalyticsReport:
        """
        Aggregate analytics against an event collection.

        Args:
            events: Events the category breakdown is computed over
            reconcile: Drop stats whose event is not in the collection

        Returns:
            AnalyticsReport with totals, top events, categories and the
            7-day activity series
        """
        events = list(events)
        analytics = self._load()

        if reconcile:
            live_ids = {event.id for event in events}
            orphaned = [stats.id for stats in analytics if stats.id not in live_ids]
            if orphaned:
                logger.info(f"Excluding {len(orphaned)} orphaned stats from report")
            analytics = [stats for stats in analytics if stats.id in live_ids]

        popular = sorted(
            analytics,
            key=lambda stats: stats.popularity_score,
            reverse=True
        )[:POPULAR_EVENTS_LIMIT]

        return AnalyticsReport(
            total_events=len(events),
            total_views=sum(stats.views for stats in analytics),
            total_shares=sum(stats.shares for stats in analytics),
            popular_events=popular,
            category_stats=self.category_breakdown(events),
            recent_activity=self.recent_activity()
        )

    def category_breakdown(self, events: List[Event]) -> List[CategoryStat]:
        """Count events per category, in order of first appearance."""
        counts = Counter(event.category for event in events)
        total = len(events)

        return [
            CategoryStat(
                category=category,
                count=count,
                percentage=_percentage(count, total)
            )
            for category, count in counts.items()
        ]

    def recent_activity(self) -> List[ActivityPoint]:
        """One entry per day for the last 7 days, oldest first, ending today."""
        today = self.today()
        activity = []

        for offset in range(ACTIVITY_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            views, shares = self.activity_source.figures_for(day)
            activity.append(
                ActivityPoint(date=day.isoformat(), views=views, shares=shares)
            )

        return activity

    def _find(self, analytics: List[EventStats], event_id: str) -> Optional[EventStats]:
        for stats in analytics:
            if stats.id == event_id:
                return stats
        return None

    def _load(self) -> List[EventStats]:
        raw = self.store.get(self.key)
        if raw is None:
            return []

        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Stored analytics under '{self.key}' are not JSON: {e}")
            raise StorageError(f"Corrupt analytics data: {e}") from e

        if not isinstance(items, list):
            logger.error(f"Stored analytics under '{self.key}' are not a JSON array")
            raise StorageError(
                f"Expected a JSON array under '{self.key}', got {type(items).__name__}"
            )

        analytics = []
        for item in items:
            try:
                analytics.append(EventStats.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed analytics record: {e}")
        return analytics

    def _save(self, analytics: List[EventStats]) -> None:
        self.store.set(
            self.key,
            json.dumps([stats.to_dict() for stats in analytics])
        )


def _percentage(count: int, total: int) -> int:
    if total == 0:
        return 0
    # Half-up rounding.
    return math.floor(count / total * 100 + 0.5)
