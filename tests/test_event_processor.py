"""Unit tests for EventProcessor."""
from datetime import datetime, timezone

import pytest

from processor.errors import ValidationError
from processor.event_processor import EventProcessor
from processor.models import Event


@pytest.fixture
def valid_data():
    """Request body for a valid event."""
    return {
        'title': 'Community Garden Workshop',
        'date': '2025-06-05',
        'time': '10:00',
        'location': 'Maple Street Community Center',
        'description': 'Learn about organic gardening techniques.',
        'category': 'Education',
        'organizer': 'Green Thumbs Society'
    }


class TestValidation:
    """Test cases for EventProcessor.validate."""

    def test_valid_data_has_no_errors(self, valid_data):
        """Test that a complete event passes validation."""
        assert EventProcessor().validate(valid_data) == []

    def test_empty_body_reports_every_rule(self):
        """Test that all seven rules are reported together."""
        errors = EventProcessor().validate({})

        assert len(errors) == 7
        assert errors[0] == 'Title is required and must be a non-empty string'
        assert errors[5] == (
            'Category is required and must be one of: '
            'Social, Education, Sports, Arts, Other'
        )

    def test_multiple_violations_not_short_circuited(self, valid_data):
        """Test that a bad date and a bad time are both reported."""
        valid_data['date'] = '06/05/2025'
        valid_data['time'] = '10am'

        errors = EventProcessor().validate(valid_data)

        assert errors == [
            'Date is required and must be in YYYY-MM-DD format',
            'Time is required and must be in HH:MM format'
        ]

    def test_whitespace_only_title_rejected(self, valid_data):
        """Test that a blank title is treated as missing."""
        valid_data['title'] = '   '
        errors = EventProcessor().validate(valid_data)
        assert errors == ['Title is required and must be a non-empty string']

    def test_non_string_organizer_rejected(self, valid_data):
        """Test that non-string values fail the string rules."""
        valid_data['organizer'] = 42
        errors = EventProcessor().validate(valid_data)
        assert errors == ['Organizer is required and must be a non-empty string']

    def test_category_is_case_sensitive(self, valid_data):
        """Test that category must match the enum exactly."""
        valid_data['category'] = 'sports'
        errors = EventProcessor().validate(valid_data)
        assert len(errors) == 1
        assert errors[0].startswith('Category is required')

    @pytest.mark.parametrize('value', ['2025-13-01', '2025-02-30', '25-06-05'])
    def test_impossible_dates_rejected(self, valid_data, value):
        """Test that dates must be real calendar dates in YYYY-MM-DD form."""
        valid_data['date'] = value
        assert EventProcessor().validate(valid_data) == [
            'Date is required and must be in YYYY-MM-DD format'
        ]

    @pytest.mark.parametrize('value', ['24:00', '9:00', '12:60'])
    def test_impossible_times_rejected(self, valid_data, value):
        """Test that times must be valid 24-hour HH:MM values."""
        valid_data['time'] = value
        assert EventProcessor().validate(valid_data) == [
            'Time is required and must be in HH:MM format'
        ]

    def test_ensure_valid_raises_with_all_errors(self):
        """Test that ensure_valid raises ValidationError carrying messages."""
        with pytest.raises(ValidationError) as exc_info:
            EventProcessor().ensure_valid({'title': 'Only a title'})

        assert len(exc_info.value.errors) == 6


class TestCreateEvent:
    """Test cases for EventProcessor.create_event."""

    def test_create_assigns_id_and_created_at(self, valid_data):
        """Test that a new event gets an id and an ISO creation instant."""
        now = datetime(2025, 6, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)

        event = EventProcessor().create_event(valid_data, now=now)

        assert isinstance(event, Event)
        assert event.title == 'Community Garden Workshop'
        assert event.category == 'Education'
        assert event.created_at == '2025-06-01T12:30:45.123Z'
        assert event.id.startswith(str(int(now.timestamp() * 1000)))

    def test_create_ignores_client_supplied_id(self, valid_data):
        """Test that id and createdAt in the body are not used."""
        valid_data['id'] = 'client-id'
        valid_data['createdAt'] = '1999-01-01T00:00:00.000Z'

        event = EventProcessor().create_event(valid_data)

        assert event.id != 'client-id'
        assert event.created_at != '1999-01-01T00:00:00.000Z'

    def test_generated_ids_are_unique(self, valid_data):
        """Test that events created at the same instant get distinct ids."""
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        processor = EventProcessor()

        ids = {processor.create_event(valid_data, now=now).id for _ in range(20)}

        assert len(ids) == 20

    def test_create_invalid_raises(self, valid_data):
        """Test that creation fails on invalid data."""
        del valid_data['organizer']
        with pytest.raises(ValidationError):
            EventProcessor().create_event(valid_data)

    def test_naive_timestamp_treated_as_utc(self):
        """Test formatting of naive datetimes."""
        stamp = EventProcessor.format_timestamp(datetime(2025, 1, 2, 3, 4, 5))
        assert stamp == '2025-01-02T03:04:05.000Z'


class TestSanitizeUpdate:
    """Test cases for EventProcessor.sanitize_update."""

    def test_id_and_created_at_dropped(self):
        """Test that immutable fields never reach an update."""
        changes = EventProcessor().sanitize_update({
            'id': 'other',
            'createdAt': '2000-01-01T00:00:00.000Z',
            'title': 'New title'
        })
        assert changes == {'title': 'New title'}

    def test_unknown_fields_dropped(self):
        """Test that fields outside the event model are dropped."""
        changes = EventProcessor().sanitize_update({'color': 'red', 'time': '11:00'})
        assert changes == {'time': '11:00'}


class TestSerialization:
    """Test cases for Event JSON conversion."""

    def test_event_round_trip(self, valid_data):
        """Test that serializing and parsing an event yields an equal event."""
        event = EventProcessor().create_event(valid_data)

        restored = Event.from_dict(event.to_dict())

        assert restored == event

    def test_to_dict_uses_created_at_key(self, valid_data):
        """Test the persisted attribute name for the creation instant."""
        event = EventProcessor().create_event(valid_data)
        item = event.to_dict()
        assert 'createdAt' in item
        assert 'created_at' not in item
