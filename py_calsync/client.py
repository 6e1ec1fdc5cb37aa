"""Calendar client used by the assistant: list events and add new ones."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, Literal

import httpx

from .caldav import (
    CalendarCollection,
    CalendarEvent,
    Credentials,
    EventQueryClient,
    EventResult,
    EventWriteClient,
    NewEventRequest,
    ResourceDiscoverer,
)
from .caldav.ical import encode, generate_uid
from .config import CalDAVConfig
from .internal import Client as InternalClient
from .internal import ConfigurationError, DiscoveryError, ValidationError, WriteError

logger = logging.getLogger(__name__)

Period = Literal["today", "tomorrow", "week"]
PERIODS: tuple[str, ...] = ("today", "tomorrow", "week")

NO_WRITABLE_CALENDAR = "No writable calendar found. Please check your calendar settings."


def compute_window(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Return the [start, end) window of a period around ``now``.

    Day boundaries are midnights in the timezone of ``now``.

    Raises:
        ValueError: If the period is unknown
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight, midnight + timedelta(days=1)
    elif period == "tomorrow":
        return midnight + timedelta(days=1), midnight + timedelta(days=2)
    elif period == "week":
        return midnight, midnight + timedelta(days=7)
    raise ValueError(f"unknown period {period!r}, expected one of {', '.join(PERIODS)}")


def select_target(collections: Sequence[CalendarCollection]) -> CalendarCollection | None:
    """Pick the collection new events are written to."""
    for collection in collections:
        if collection.writable:
            return collection
    if collections:
        logger.warning("Only special calendars found, trying %s", collections[0].url)
        return collections[0]
    return None


class Client:
    """CalDAV calendar client.

    Every call rediscovers the calendar collections, so calendars added or
    renamed on the server are picked up without restarting.
    """

    def __init__(
        self,
        config: CalDAVConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        debug: bool = False,
    ):
        """Initialize calendar client.

        Args:
            config: Account configuration (read from the environment if None)
            http_client: HTTP client to use
            debug: Log request and response bodies
        """
        self.config = config or CalDAVConfig.from_env()
        self.tz = self.config.tzinfo()
        self.transport = InternalClient(
            http_client,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
            retry_backoff=self.config.retry_backoff,
            debug=debug,
        )
        self.discoverer = ResourceDiscoverer(self.transport, self.config.calendar_name)
        self.query_client = EventQueryClient(
            self.transport, max_concurrency=self.config.max_concurrency, tz=self.tz
        )
        self.write_client = EventWriteClient(self.transport)

    async def _collections(self, calendar_home_url: str, credentials: Credentials) -> list[CalendarCollection]:
        try:
            return await self.discoverer.list_collections(calendar_home_url, credentials)
        except DiscoveryError as e:
            logger.warning("%s", e)
            return []

    async def list_events(self, period: Period, now: datetime | None = None) -> list[CalendarEvent]:
        """List the events of today, tomorrow or the coming week.

        Never raises: failures are logged and yield an empty list.

        Args:
            period: "today", "tomorrow" or "week"
            now: Current time (defaults to the clock, in the display timezone)

        Returns:
            Events sorted by start time
        """
        try:
            credentials = self.config.credentials()
        except ConfigurationError as e:
            logger.warning("%s", e)
            return []

        now = (now or datetime.now(self.tz)).astimezone(self.tz)
        try:
            window_start, window_end = compute_window(period, now)
        except ValueError as e:
            logger.error("%s", e)
            return []

        logger.info("Fetching %s events (%s - %s)", period, window_start, window_end)
        try:
            home_url = await self.discoverer.discover_calendar_home(credentials.url, credentials)
            collections = await self._collections(home_url, credentials)
            if collections:
                urls = [c.url for c in collections]
            else:
                logger.info("No calendars found, querying calendar home %s directly", home_url)
                urls = [home_url]
            names = {c.url: c.display_name for c in collections if c.display_name}

            events = await self.query_client.query_events(
                urls, window_start, window_end, credentials, calendar_names=names
            )
        except Exception:
            logger.exception("Error fetching calendar events")
            return []

        events.sort(key=lambda event: event.start)
        logger.info("Found %d %s events", len(events), period)
        return events

    async def add_event(self, request: NewEventRequest) -> EventResult:
        """Create an event in the preferred writable calendar.

        Never raises: every failure is reported in the result.

        Args:
            request: Event to create; naive times are in the display timezone

        Returns:
            Result with ``success`` and, on failure, a readable ``error``
        """
        try:
            credentials = self.config.credentials()
        except ConfigurationError as e:
            return EventResult(success=False, error=str(e))

        try:
            request = request.localized(self.tz)
            request.validate()
        except ValidationError as e:
            return EventResult(success=False, error=str(e))

        try:
            home_url = await self.discoverer.discover_calendar_home(credentials.url, credentials)
            target = select_target(await self._collections(home_url, credentials))
            if target is None:
                logger.warning("No calendar collections under %s", home_url)
                return EventResult(success=False, error=NO_WRITABLE_CALENDAR)

            uid = generate_uid()
            ical_text = encode(request, uid=uid)
            url = await self.write_client.create_event(target.url, ical_text, uid, credentials)
        except WriteError as e:
            return EventResult(success=False, error=f"Failed to add event: {e}")
        except Exception as e:
            logger.exception("Error adding calendar event")
            return EventResult(success=False, error=str(e) or e.__class__.__name__)

        return EventResult(success=True, url=url)

    async def close(self) -> None:
        """Close the client."""
        await self.transport.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
