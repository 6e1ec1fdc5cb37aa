"""CalDAV client support for py-calsync."""

from .caldav import (
    SPECIAL_COLLECTIONS,
    CalendarCollection,
    CalendarEvent,
    Credentials,
    EventResult,
    NewEventRequest,
    classify_collection,
    validate_calendar_object,
)
from .discovery import ResourceDiscoverer, calendar_home_fallback
from .ical import decode, encode, parse_compact_datetime
from .report import EventQueryClient, QueryResult, calendar_query_xml, extract_calendar_data, filter_window
from .write import EventWriteClient, event_filename

__all__ = [
    "SPECIAL_COLLECTIONS",
    "CalendarCollection",
    "CalendarEvent",
    "Credentials",
    "EventResult",
    "NewEventRequest",
    "classify_collection",
    "validate_calendar_object",
    "ResourceDiscoverer",
    "calendar_home_fallback",
    "decode",
    "encode",
    "parse_compact_datetime",
    "EventQueryClient",
    "QueryResult",
    "calendar_query_xml",
    "extract_calendar_data",
    "filter_window",
    "EventWriteClient",
    "event_filename",
]
