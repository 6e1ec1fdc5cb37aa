"""A CalDAV calendar client for listing and adding events."""

from .caldav import CalendarCollection, CalendarEvent, Credentials, EventResult, NewEventRequest
from .client import Client, compute_window
from .config import CalDAVConfig
from .internal import (
    CalSyncError,
    CollectionQueryError,
    ConfigurationError,
    DiscoveryError,
    HTTPError,
    ParseError,
    ValidationError,
    WriteError,
)

__version__ = "0.1.0"

__all__ = [
    "CalendarCollection",
    "CalendarEvent",
    "Credentials",
    "EventResult",
    "NewEventRequest",
    "Client",
    "compute_window",
    "CalDAVConfig",
    "CalSyncError",
    "CollectionQueryError",
    "ConfigurationError",
    "DiscoveryError",
    "HTTPError",
    "ParseError",
    "ValidationError",
    "WriteError",
]
