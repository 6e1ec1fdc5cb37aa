"""CalDAV types shared by the discovery, query and write clients.

CalDAV is defined in RFC 4791.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
from icalendar import Calendar as iCalendar

from ..internal import ValidationError

# Collections that exist on iCloud-style servers but never hold user events
SPECIAL_COLLECTIONS = ("inbox", "notification", "outbox", "tasks")

UNTITLED = "Untitled Event"


@dataclass(frozen=True)
class Credentials:
    """Server root URL and Basic-auth credentials for one account."""

    url: str
    username: str
    password: str = field(repr=False)

    def auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.username, self.password)


@dataclass(frozen=True)
class CalendarEvent:
    """An event decoded from iCalendar data."""

    title: str
    date: str  # YYYY-MM-DD in the display timezone
    time: str  # HH:MM in the display timezone
    start: datetime
    end: datetime | None = None
    location: str | None = None
    description: str | None = None
    uid: str | None = None
    calendar: str = "personal"

    def to_dict(self) -> dict[str, Any]:
        """Shape handed to the chat orchestrator and HTTP handlers."""
        data: dict[str, Any] = {
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "calendar": self.calendar,
        }
        if self.location:
            data["location"] = self.location
        return data


def classify_collection(url: str, display_name: str | None = None) -> bool:
    """Return True for special collections (inbox, outbox, ...).

    A collection is special when a path segment or its display name
    contains one of the special names.
    """
    path = unquote(urlparse(url).path).lower()
    name = (display_name or "").lower()
    for special in SPECIAL_COLLECTIONS:
        if f"/{special}/" in path or path.endswith(f"/{special}"):
            return True
        if special in name:
            return True
    return False


@dataclass(frozen=True)
class CalendarCollection:
    """A calendar collection found under the calendar home."""

    url: str
    display_name: str | None = None
    special: bool = False

    @classmethod
    def classify(cls, url: str, display_name: str | None = None) -> CalendarCollection:
        return cls(url=url, display_name=display_name, special=classify_collection(url, display_name))

    @property
    def writable(self) -> bool:
        return not self.special


@dataclass(frozen=True)
class NewEventRequest:
    """Input for creating an event."""

    title: str
    start: datetime
    end: datetime
    location: str | None = None
    description: str | None = None

    def localized(self, tz: tzinfo) -> NewEventRequest:
        """Attach ``tz`` to naive start/end times."""
        start, end = self.start, self.end
        if isinstance(start, datetime) and start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if isinstance(end, datetime) and end.tzinfo is None:
            end = end.replace(tzinfo=tz)
        return replace(self, start=start, end=end)

    def validate(self) -> None:
        """Check the request before anything is sent.

        Raises:
            ValidationError: If the title is empty or end is not after start
        """
        if not self.title or not self.title.strip():
            raise ValidationError("Event title must not be empty")
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise ValidationError("Event start and end must be datetimes")
        try:
            if self.end <= self.start:
                raise ValidationError("End date must be after start date")
        except TypeError as e:
            raise ValidationError(
                "Event start and end must both carry a timezone or both be naive"
            ) from e


@dataclass
class EventResult:
    """Outcome of an add-event call."""

    success: bool
    error: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error:
            data["error"] = self.error
        return data


def validate_calendar_object(ical_data: str) -> tuple[str, str]:
    """Validate a calendar object according to RFC 4791 section 4.1.

    Args:
        ical_data: iCalendar data as string

    Returns:
        Tuple of (component type, uid)

    Raises:
        ValueError: If validation fails
    """
    try:
        cal = iCalendar.from_ical(ical_data)
    except ValueError as e:
        raise ValueError(f"invalid calendar object: {e}") from e

    component_type = ""
    uid = ""

    for component in cal.walk():
        comp_name = component.name

        if comp_name in ("VCALENDAR", "VTIMEZONE"):
            continue

        if not component_type:
            component_type = comp_name
        elif component_type != comp_name:
            raise ValueError(
                f"invalid calendar object: conflicting component types: {component_type}, {comp_name}"
            )

        comp_uid = str(component.get("UID", ""))
        if not uid:
            uid = comp_uid
        elif comp_uid and uid != comp_uid:
            raise ValueError(f"invalid calendar object: conflicting UID values: {uid}, {comp_uid}")

    if not component_type:
        raise ValueError("invalid calendar object: no components")
    if not uid:
        raise ValueError("invalid calendar object: missing UID")

    return component_type, uid
