"""Event processor for validating new events and partial updates."""
import logging
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from processor.errors import ValidationError
from processor.models import CATEGORIES, Event

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_PATTERN = re.compile(r'^\d{2}:\d{2}$')


class EventProcessor:
    """Processor for validating and building event records."""

    UPDATABLE_FIELDS = (
        'title', 'date', 'time', 'location',
        'description', 'category', 'organizer'
    )

    def validate(self, data: Dict[str, Any]) -> List[str]:
        """
        Check event data against every validation rule.

        Rules are evaluated independently so that all violations are
        reported together.

        Args:
            data: Event fields as received from a request body

        Returns:
            List of human-readable messages, empty when the data is valid
        """
        errors = []

        if not self._is_non_empty_string(data.get('title')):
            errors.append('Title is required and must be a non-empty string')

        if not self._is_valid_date(data.get('date')):
            errors.append('Date is required and must be in YYYY-MM-DD format')

        if not self._is_valid_time(data.get('time')):
            errors.append('Time is required and must be in HH:MM format')

        if not self._is_non_empty_string(data.get('location')):
            errors.append(
                'Location is required and must be a non-empty string'
            )

        if not self._is_non_empty_string(data.get('description')):
            errors.append(
                'Description is required and must be a non-empty string'
            )

        if data.get('category') not in CATEGORIES:
            errors.append(
                'Category is required and must be one of: '
                + ', '.join(CATEGORIES)
            )

        if not self._is_non_empty_string(data.get('organizer')):
            errors.append(
                'Organizer is required and must be a non-empty string'
            )

        return errors

    def ensure_valid(self, data: Dict[str, Any]) -> None:
        """
        Raise ValidationError listing every violated rule, if any.

        Args:
            data: Event fields as received from a request body
        """
        errors = self.validate(data)
        if errors:
            logger.warning(f"Event data failed validation: {errors}")
            raise ValidationError(errors)

    def create_event(
        self,
        data: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Event:
        """
        Validate data and build a new Event with a fresh id and timestamp.

        Args:
            data: Event fields (id and createdAt are ignored if present)
            now: Creation instant, defaults to the current UTC time

        Returns:
            New Event object

        Raises:
            ValidationError: If any rule is violated
        """
        self.ensure_valid(data)

        created = now or datetime.now(timezone.utc)

        return Event(
            id=self.generate_event_id(created),
            title=data['title'],
            date=data['date'],
            time=data['time'],
            location=data['location'],
            description=data['description'],
            category=data['category'],
            organizer=data['organizer'],
            created_at=self.format_timestamp(created)
        )

    def sanitize_update(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reduce a partial update to the fields that may change.

        id and createdAt are fixed at creation, so they are dropped along
        with any unknown keys.
        """
        ignored = [key for key in partial if key not in self.UPDATABLE_FIELDS]
        if ignored:
            logger.debug(f"Ignoring non-updatable fields: {ignored}")

        return {
            key: value for key, value in partial.items()
            if key in self.UPDATABLE_FIELDS
        }

    def generate_event_id(self, created: datetime) -> str:
        """
        Generate an id from the creation time in milliseconds plus a random
        suffix, so ids sort roughly by creation and never collide.
        """
        millis = int(created.timestamp() * 1000)
        return f"{millis}{secrets.token_hex(5)}"

    @staticmethod
    def format_timestamp(moment: datetime) -> str:
        """Render an instant as ISO 8601 UTC with millisecond precision."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        moment = moment.astimezone(timezone.utc)
        return moment.strftime('%Y-%m-%dT%H:%M:%S.') + \
            f"{moment.microsecond // 1000:03d}Z"

    def _is_non_empty_string(self, value: Any) -> bool:
        return isinstance(value, str) and bool(value.strip())

    def _is_valid_date(self, value: Any) -> bool:
        if not isinstance(value, str) or not DATE_PATTERN.match(value):
            return False
        try:
            datetime.strptime(value, '%Y-%m-%d')
        except ValueError:
            return False
        return True

    def _is_valid_time(self, value: Any) -> bool:
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            return False
        try:
            datetime.strptime(value, '%H:%M')
        except ValueError:
            return False
        return True
