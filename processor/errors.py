"""Exceptions raised by the event services."""
from typing import List


class ValidationError(Exception):
    """Event data failed one or more validation rules."""

    def __init__(self, errors: List[str]):
        super().__init__('Validation failed: ' + '; '.join(errors))
        self.errors = list(errors)


class NotFoundError(Exception):
    """No event exists with the given id."""

    def __init__(self, event_id: str):
        super().__init__(f"Event not found: {event_id}")
        self.event_id = event_id


class StorageError(Exception):
    """Reading or writing persisted state failed."""


class GeolocationError(Exception):
    """The user's position could not be determined."""

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    MESSAGES = {
        PERMISSION_DENIED: 'User denied the request for Geolocation.',
        POSITION_UNAVAILABLE: 'Location information is unavailable.',
        TIMEOUT: 'The request to get user location timed out.',
    }

    def __init__(self, code: int, message: str = None):
        self.code = code
        self.message = message or self.MESSAGES.get(
            code, 'Unknown error occurred'
        )
        super().__init__(self.message)
