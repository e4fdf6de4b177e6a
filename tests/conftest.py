"""Shared fixtures for event tests."""
import pytest

from processor.models import Event


@pytest.fixture
def make_event():
    """Factory for Event objects with overridable fields."""
    counter = {'next': 0}

    def _make(**overrides):
        counter['next'] += 1
        fields = {
            'id': f"event-{counter['next']}",
            'title': f"Event {counter['next']}",
            'date': '2025-06-01',
            'time': '10:00',
            'location': 'Somewhere',
            'description': 'A community event',
            'category': 'Social',
            'organizer': 'Neighborhood Association',
            'created_at': '2025-05-01T12:00:00.000Z'
        }
        fields.update(overrides)
        return Event(**fields)

    return _make
