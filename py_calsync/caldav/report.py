"""CalDAV calendar-query REPORT client."""

from __future__ import annotations

import asyncio
import logging
import re
import textwrap
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, tzinfo

import httpx
from lxml import etree

from ..internal import CALDAV_NAMESPACE, NAMESPACE, Client, CollectionQueryError, HTTPError, resolve_href
from ..internal.elements import CALENDAR_DATA, GET_ETAG, NSMAP, descendants, element_text, parse_xml
from .caldav import CalendarEvent, Credentials
from .ical import decode, format_compact_datetime, local_timezone

logger = logging.getLogger(__name__)

# Used only when a REPORT body cannot be parsed as XML at all
_CALENDAR_DATA_RE = re.compile(
    r"<(?:[\w.-]+:)?calendar-data\b[^>]*>(.*?)</(?:[\w.-]+:)?calendar-data\s*>", re.S
)
_ICS_HREF_RE = re.compile(r"<(?:[\w.-]+:)?href\b[^>]*>\s*([^<]+?\.ics)\s*</(?:[\w.-]+:)?href\s*>", re.I)


def calendar_query_xml(start: datetime, end: datetime) -> etree._Element:
    """Build a calendar-query body selecting VEVENTs overlapping [start, end)."""
    root = etree.Element(f"{{{CALDAV_NAMESPACE}}}calendar-query", nsmap=NSMAP)

    prop = etree.SubElement(root, f"{{{NAMESPACE}}}prop")
    etree.SubElement(prop, GET_ETAG)
    etree.SubElement(prop, CALENDAR_DATA)

    filter_el = etree.SubElement(root, f"{{{CALDAV_NAMESPACE}}}filter")
    vcalendar = etree.SubElement(filter_el, f"{{{CALDAV_NAMESPACE}}}comp-filter", name="VCALENDAR")
    vevent = etree.SubElement(vcalendar, f"{{{CALDAV_NAMESPACE}}}comp-filter", name="VEVENT")
    etree.SubElement(
        vevent,
        f"{{{CALDAV_NAMESPACE}}}time-range",
        start=format_compact_datetime(start),
        end=format_compact_datetime(end),
    )
    return root


def unescape_entities(text: str) -> str:
    """Undo XML escaping of ``<``, ``>`` and ``&``."""
    return text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")


def extract_calendar_data(body: bytes | str) -> tuple[list[str], list[str]]:
    """Pull iCalendar payloads and event hrefs out of a REPORT response.

    Returns:
        Tuple of (calendar-data payloads, hrefs of .ics resources)
    """
    root = parse_xml(body)
    if root is not None:
        payloads = []
        for el in descendants(root, CALENDAR_DATA):
            text = textwrap.dedent("".join(el.itertext())).strip()
            if text:
                payloads.append(text)
        hrefs = [
            element_text(el)
            for el in descendants(root, f"{{{NAMESPACE}}}href")
            if element_text(el).lower().endswith(".ics")
        ]
        return payloads, hrefs

    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    payloads = [
        unescape_entities(textwrap.dedent(m)).strip() for m in _CALENDAR_DATA_RE.findall(text)
    ]
    hrefs = [unescape_entities(m) for m in _ICS_HREF_RE.findall(text)]
    return [p for p in payloads if p], hrefs


def filter_window(
    events: Iterable[CalendarEvent], start: datetime, end: datetime
) -> list[CalendarEvent]:
    """Keep events whose start lies in the half-open window [start, end)."""
    return [event for event in events if start <= event.start < end]


def _labelled(events: list[CalendarEvent], calendar_name: str | None) -> list[CalendarEvent]:
    if not calendar_name:
        return events
    return [replace(event, calendar=calendar_name) for event in events]


@dataclass
class QueryResult:
    """Events gathered from several collections and the per-collection failures."""

    events: list[CalendarEvent] = field(default_factory=list)
    errors: list[CollectionQueryError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """Some collections failed while others still returned events."""
        return bool(self.errors) and bool(self.events)

    @property
    def failed_urls(self) -> list[str]:
        return [e.url for e in self.errors]


class EventQueryClient:
    """Queries calendar collections for events in a time window."""

    def __init__(self, client: Client, max_concurrency: int = 4, tz: tzinfo | None = None):
        """Initialize query client.

        Args:
            client: Internal WebDAV transport
            max_concurrency: Collections queried at the same time
            tz: Display timezone for decoded events
        """
        self.client = client
        self.max_concurrency = max(1, max_concurrency)
        self.tz = tz or local_timezone()

    async def _fetch_resources(
        self, collection_url: str, hrefs: Sequence[str], auth: httpx.Auth
    ) -> list[CalendarEvent]:
        """GET each referenced .ics resource and decode it."""
        events: list[CalendarEvent] = []
        for href in dict.fromkeys(hrefs):
            event_url = resolve_href(collection_url, href)
            try:
                resp = await self.client.get(event_url, auth=auth)
            except (HTTPError, httpx.HTTPError) as e:
                logger.warning("Failed to fetch event %s: %s", event_url, e)
                continue
            fetched = decode(resp.text, self.tz)
            logger.debug("Fetched %d events from %s", len(fetched), event_url)
            events.extend(fetched)
        return events

    async def query_collection(
        self,
        collection_url: str,
        query: etree._Element,
        credentials: Credentials,
        calendar_name: str | None = None,
    ) -> list[CalendarEvent]:
        """Run the calendar-query REPORT against one collection.

        Decoded events are labelled with ``calendar_name`` when given.

        Raises:
            CollectionQueryError: If the REPORT fails
        """
        auth = credentials.auth()
        try:
            resp = await self.client.report(collection_url, query, auth=auth)
        except (HTTPError, httpx.HTTPError) as e:
            raise CollectionQueryError(collection_url, e) from e

        payloads, hrefs = extract_calendar_data(resp.content)
        if payloads:
            events = [event for payload in payloads for event in decode(payload, self.tz)]
            logger.info("Parsed %d events from %s", len(events), collection_url)
            return _labelled(events, calendar_name)

        if hrefs:
            logger.info(
                "No calendar-data in REPORT from %s, fetching %d events individually",
                collection_url, len(hrefs),
            )
            return _labelled(await self._fetch_resources(collection_url, hrefs, auth), calendar_name)

        logger.debug("No events in %s", collection_url)
        return []

    async def query_collections(
        self,
        collection_urls: Sequence[str],
        window_start: datetime,
        window_end: datetime,
        credentials: Credentials,
        calendar_names: Mapping[str, str] | None = None,
    ) -> QueryResult:
        """Query all collections concurrently, collecting failures.

        Any error raised while querying or decoding one collection is
        recorded as a CollectionQueryError for that collection only.
        """
        query = calendar_query_xml(window_start, window_end)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        names = calendar_names or {}

        async def run(url: str) -> list[CalendarEvent] | CollectionQueryError:
            async with semaphore:
                try:
                    return await self.query_collection(url, query, credentials, names.get(url))
                except CollectionQueryError as e:
                    error = e
                except Exception as e:
                    error = CollectionQueryError(url, e)
                logger.warning("CalDAV query failed for %s: %s", url, error.err)
                return error

        outcomes = await asyncio.gather(*(run(url) for url in collection_urls))

        result = QueryResult()
        for outcome in outcomes:
            if isinstance(outcome, CollectionQueryError):
                result.errors.append(outcome)
            else:
                result.events.extend(outcome)
        return result

    async def query_events(
        self,
        collection_urls: Sequence[str],
        window_start: datetime,
        window_end: datetime,
        credentials: Credentials,
        calendar_names: Mapping[str, str] | None = None,
    ) -> list[CalendarEvent]:
        """Fetch events starting in [window_start, window_end).

        A failing collection is skipped; the others still contribute.
        Failed collections are named in a single warning.

        Args:
            collection_urls: Calendar collection URLs
            window_start: Inclusive window start (timezone-aware)
            window_end: Exclusive window end (timezone-aware)
            credentials: Account credentials
            calendar_names: Display name per collection URL, used as the
                events' calendar label

        Returns:
            Events in collection order
        """
        result = await self.query_collections(
            collection_urls, window_start, window_end, credentials, calendar_names
        )
        if result.errors:
            logger.warning(
                "%d of %d calendar collections could not be queried (%s): %s",
                len(result.errors),
                len(collection_urls),
                "partial results" if result.partial else "no results",
                ", ".join(result.failed_urls),
            )
        events = filter_window(result.events, window_start, window_end)
        logger.info("%d events in window (%d before filtering)", len(events), len(result.events))
        return events
