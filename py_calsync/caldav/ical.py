"""iCalendar (RFC 5545) encoding and decoding for single events.

Only the handful of VEVENT properties the assistant displays are read:
SUMMARY, DTSTART, DTEND, LOCATION, DESCRIPTION and UID. Everything else,
including nested components such as VALARM, is skipped. RRULE is not
expanded.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from icalendar import Calendar as iCalendar
from icalendar import Event as iEvent
from icalendar import vText

from ..internal import ParseError
from .caldav import UNTITLED, CalendarEvent, NewEventRequest

logger = logging.getLogger(__name__)

PRODID = "-//py-calsync//CalDAV Client//EN"
UID_DOMAIN = "py-calsync"

_RECOGNIZED = frozenset({"SUMMARY", "DTSTART", "DTEND", "LOCATION", "DESCRIPTION", "UID"})
_LINE_BREAK = re.compile(r"\r\n|\n|\r")


def local_timezone() -> tzinfo:
    """Return the host's local timezone."""
    return datetime.now().astimezone().tzinfo or timezone.utc


def unfold_lines(text: str) -> list[str]:
    """Split text into logical content lines.

    A physical line starting with a single space or tab continues the
    previous one (RFC 5545 section 3.1).
    """
    lines: list[str] = []
    for line in _LINE_BREAK.split(text):
        if line[:1] in (" ", "\t") and lines:
            lines[-1] += line[1:]
        else:
            lines.append(line)
    return lines


def unescape_text(text: str) -> str:
    """Undo TEXT value escaping (RFC 5545 section 3.3.11)."""
    return str(vText.from_ical(text))


def parse_compact_datetime(value: str, tz: tzinfo | None = None) -> datetime:
    """Parse ``YYYYMMDD[THHMM[SS]][Z]`` by fixed offsets.

    A trailing ``Z`` means UTC. Other values are floating and get ``tz``
    attached, or stay naive when ``tz`` is None. Missing time fields
    default to zero, so a DATE value means midnight.

    Raises:
        ParseError: If the value is not a valid compact date-time
    """
    value = value.strip()
    is_utc = value.upper().endswith("Z")
    digits = value[:-1] if is_utc else value

    if len(digits) != 8 and (len(digits) < 13 or digits[8:9].upper() != "T"):
        raise ParseError(f"invalid date-time {value!r}")

    fields = [
        digits[0:4],
        digits[4:6],
        digits[6:8],
        digits[9:11] or "00",
        digits[11:13] or "00",
        digits[13:15] or "00",
    ]
    if not all(f.isdigit() for f in fields) or len(digits) > 15:
        raise ParseError(f"invalid date-time {value!r}")

    try:
        dt = datetime(*(int(f) for f in fields))
    except ValueError as e:
        raise ParseError(f"invalid date-time {value!r}: {e}") from e

    if is_utc:
        return dt.replace(tzinfo=timezone.utc)
    if tz is not None:
        return dt.replace(tzinfo=tz)
    return dt


def format_compact_datetime(dt: datetime) -> str:
    """Format a datetime as ``YYYYMMDDTHHMMSSZ`` in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return (
        f"{dt.year:04d}{dt.month:02d}{dt.day:02d}"
        f"T{dt.hour:02d}{dt.minute:02d}{dt.second:02d}Z"
    )


def generate_uid() -> str:
    """Generate a globally unique event UID."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}@{UID_DOMAIN}"


def _split_content_line(line: str) -> tuple[str, dict[str, str], str] | None:
    """Split ``NAME;PARAM=x:value`` at the first colon outside quotes."""
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == ":" and not in_quotes:
            head, value = line[:i], line[i + 1 :]
            break
    else:
        return None

    name, *raw_params = head.split(";")
    params: dict[str, str] = {}
    for raw in raw_params:
        key, _, val = raw.partition("=")
        params[key.strip().upper()] = val.strip().strip('"')
    return name.strip().upper(), params, value


def _zone_for(params: dict[str, str], default: tzinfo) -> tzinfo:
    tzid = params.get("TZID")
    if not tzid:
        return default
    try:
        return ZoneInfo(tzid)
    except (ZoneInfoNotFoundError, ValueError):
        # Vendor TZIDs (e.g. Outlook names) are treated as floating
        logger.debug("Unknown TZID %r, using display timezone", tzid)
        return default


def _build_event(props: dict[str, tuple[dict[str, str], str]], tz: tzinfo) -> CalendarEvent:
    if "DTSTART" not in props:
        raise ParseError("VEVENT without DTSTART")

    params, value = props["DTSTART"]
    start = parse_compact_datetime(value, _zone_for(params, tz))

    end = None
    if "DTEND" in props:
        end_params, end_value = props["DTEND"]
        try:
            end = parse_compact_datetime(end_value, _zone_for(end_params, tz))
        except ParseError as e:
            logger.warning("Ignoring DTEND of event starting %s: %s", value, e)

    def text(name: str) -> str | None:
        if name not in props:
            return None
        return unescape_text(props[name][1]).strip() or None

    try:
        local = start.astimezone(tz)
    except (OverflowError, ValueError) as e:
        raise ParseError(f"DTSTART {value!r} out of range in display timezone: {e}") from e

    return CalendarEvent(
        title=text("SUMMARY") or UNTITLED,
        date=local.strftime("%Y-%m-%d"),
        time=local.strftime("%H:%M"),
        start=start,
        end=end,
        location=text("LOCATION"),
        description=text("DESCRIPTION"),
        uid=text("UID"),
    )


def decode(text: str, tz: tzinfo | None = None) -> list[CalendarEvent]:
    """Decode every VEVENT in an iCalendar stream.

    Malformed events (missing or invalid DTSTART) are dropped; the rest of
    the stream is still decoded.

    Args:
        text: iCalendar data, one or more VCALENDAR objects
        tz: Display timezone, also used for floating times

    Returns:
        Decoded events in stream order
    """
    tz = tz or local_timezone()
    events: list[CalendarEvent] = []

    props: dict[str, tuple[dict[str, str], str]] | None = None
    nested = 0

    for raw_line in unfold_lines(text):
        line = raw_line.strip()
        if not line:
            continue
        upper = line.upper()

        if upper == "BEGIN:VEVENT":
            props = {}
            nested = 0
            continue
        if props is None:
            continue

        if upper == "END:VEVENT":
            try:
                events.append(_build_event(props, tz))
            except ParseError as e:
                logger.warning("Dropping malformed event: %s", e)
            props = None
            continue
        if upper.startswith("BEGIN:"):
            nested += 1
            continue
        if upper.startswith("END:"):
            nested = max(nested - 1, 0)
            continue
        if nested:
            continue

        parsed = _split_content_line(line)
        if parsed is None:
            continue
        name, params, value = parsed
        if name in _RECOGNIZED and name not in props:
            props[name] = (params, value)

    return events


def _as_utc(dt: datetime) -> datetime:
    # Naive values are taken to be UTC already, as in format_compact_datetime
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def encode(
    request: NewEventRequest, uid: str | None = None, now: datetime | None = None
) -> str:
    """Encode a new event as a VCALENDAR resource.

    Date-times are written in UTC (``YYYYMMDDTHHMMSSZ``). icalendar takes
    care of text escaping, line folding and CRLF line endings.

    Args:
        request: Validated event request
        uid: UID to use (generated if None)
        now: Timestamp for DTSTAMP/CREATED/LAST-MODIFIED

    Returns:
        iCalendar text with CRLF line endings

    Raises:
        ValueError: If the request was not validated (empty title or end
            not after start)
    """
    if not request.title or not request.title.strip():
        raise ValueError("encode: event title must not be empty")
    if request.end <= request.start:
        raise ValueError("encode: end must be after start")

    stamp = _as_utc(now or datetime.now(timezone.utc))

    cal = iCalendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    event = iEvent()
    event.add("uid", uid or generate_uid())
    event.add("dtstamp", stamp)
    event.add("created", stamp)
    event.add("last-modified", stamp)
    event.add("dtstart", _as_utc(request.start))
    event.add("dtend", _as_utc(request.end))
    event.add("summary", request.title)
    if request.location:
        event.add("location", request.location)
    if request.description:
        event.add("description", request.description)
    event.add("status", "CONFIRMED")
    event.add("sequence", 0)

    cal.add_component(event)

    ical_str: str = cal.to_ical().decode("utf-8")
    return ical_str
