"""Exceptions raised by the Pulse recommendation service."""

from __future__ import annotations

from typing import Optional


class PulseError(Exception):
    """Base class for service errors."""


class ConfigurationError(PulseError):
    """A required setting (API key, credentials) is missing."""


class StoreError(PulseError):
    """The backing store rejected or failed a request."""


class PlacesAPIError(PulseError):
    """Google Places returned a transport or status error."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class UserNotFoundError(PulseError):
    """No user exists with the requested id."""

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id
