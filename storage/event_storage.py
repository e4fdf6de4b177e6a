"""Event storage backed by a single JSON array."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from processor.errors import NotFoundError, StorageError
from processor.event_processor import EventProcessor
from processor.models import Event
from storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class EventStorage:
    """
    CRUD operations over the persisted event list.

    Every mutation reads the whole array, changes it, and writes the whole
    array back. There is no concurrency guard: the last writer wins.
    """

    EVENTS_KEY = 'events'

    def __init__(
        self,
        store: KeyValueStore,
        processor: Optional[EventProcessor] = None,
        key: str = EVENTS_KEY
    ):
        """
        Initialize storage over a persistence backend.

        Args:
            store: Key/value backend holding the JSON document
            processor: Validator used for create/update
            key: Key the event array is stored under
        """
        self.store = store
        self.processor = processor or EventProcessor()
        self.key = key

    def list_events(self) -> List[Event]:
        """
        Return all stored events in storage order.

        Records that cannot be converted are skipped with a warning but are
        left untouched in storage.
        """
        events = []
        for item in self._read_records():
            event = self._record_to_event(item)
            if event:
                events.append(event)
        return events

    def get_event(self, event_id: str) -> Event:
        """
        Raises:
            NotFoundError: If no event has this id
        """
        for item in self._read_records():
            if item.get('id') == event_id:
                event = self._record_to_event(item)
                if event:
                    return event
        raise NotFoundError(event_id)

    def create_event(
        self,
        data: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Event:
        """
        Validate and store a new event at the front of the list.

        Raises:
            ValidationError: If the data violates any rule
        """
        event = self.processor.create_event(data, now=now)

        records = self._read_records()
        records.insert(0, event.to_dict())
        self._write_records(records)

        logger.info(f"Created event {event.id}: '{event.title}'")
        return event

    def update_event(self, event_id: str, partial: Dict[str, Any]) -> Event:
        """
        Merge a partial update into an existing event.

        id and createdAt are never changed.

        Raises:
            NotFoundError: If no event has this id
        """
        changes = self.processor.sanitize_update(partial)
        records = self._read_records()

        for index, item in enumerate(records):
            if item.get('id') == event_id:
                merged = {**item, **changes}
                event = Event.from_dict(merged)
                records[index] = merged
                self._write_records(records)
                logger.info(
                    f"Updated event {event_id}: fields {sorted(changes)}"
                )
                return event

        raise NotFoundError(event_id)

    def delete_event(self, event_id: str) -> bool:
        """
        Remove an event.

        Returns:
            True if an event was removed, False if none had this id
        """
        records = self._read_records()
        remaining = [item for item in records if item.get('id') != event_id]

        if len(remaining) == len(records):
            logger.info(f"Delete requested for unknown event {event_id}")
            return False

        self._write_records(remaining)
        logger.info(f"Deleted event {event_id}")
        return True

    def replace_all(self, events: List[Event]) -> None:
        """Overwrite the stored list, e.g. to seed sample events."""
        self._write_records([event.to_dict() for event in events])
        logger.info(f"Replaced stored events with {len(events)} events")

    def _read_records(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.key)
        if raw is None:
            return []

        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Stored events under '{self.key}' are not JSON: {e}")
            raise StorageError(f"Corrupt event data: {e}") from e

        if not isinstance(records, list):
            raise StorageError(
                f"Expected a JSON array under '{self.key}', "
                f"got {type(records).__name__}"
            )
        return records

    def _write_records(self, records: List[Dict[str, Any]]) -> None:
        self.store.set(self.key, json.dumps(records, indent=2))

    def _record_to_event(self, item: Dict[str, Any]) -> Optional[Event]:
        try:
            return Event.from_dict(item)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to convert record to Event: {e}")
            return None
