"""Storing new calendar object resources with PUT."""

from __future__ import annotations

import logging
import re

import httpx

from ..internal import Client, HTTPError, WriteError
from .caldav import Credentials, validate_calendar_object

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9\-_]")
_LINE_BREAK = re.compile(r"\r?\n")


def event_filename(uid: str) -> str:
    """Build a resource name from an event UID."""
    return f"{_UNSAFE_FILENAME_CHARS.sub('-', uid)}.ics"


def to_crlf(ical_text: str) -> str:
    """Normalize line endings to CRLF."""
    return _LINE_BREAK.sub("\r\n", ical_text)


class EventWriteClient:
    """Creates calendar object resources in a collection."""

    def __init__(self, client: Client):
        self.client = client

    async def create_event(
        self, collection_url: str, ical_text: str, uid: str, credentials: Credentials
    ) -> str:
        """Upload a new event.

        The request carries ``If-None-Match: *`` so an existing resource
        with the same name is never overwritten. The PUT is not retried.

        Args:
            collection_url: Target calendar collection
            ical_text: Complete VCALENDAR resource
            uid: UID of the event in ``ical_text``
            credentials: Account credentials

        Returns:
            URL of the created resource

        Raises:
            WriteError: If the payload is inconsistent or the server does
                not answer 200/201
        """
        try:
            _, payload_uid = validate_calendar_object(ical_text)
        except ValueError as e:
            raise WriteError(0, str(e)) from e
        if payload_uid != uid:
            raise WriteError(0, f"UID mismatch: payload has {payload_uid!r}, expected {uid!r}")

        base_url = collection_url if collection_url.endswith("/") else f"{collection_url}/"
        event_url = f"{base_url}{event_filename(uid)}"

        body = to_crlf(ical_text).encode("utf-8")
        headers = {
            "Content-Type": "text/calendar; charset=utf-8",
            "Content-Length": str(len(body)),
            "If-None-Match": "*",
        }

        logger.info("Adding event %s to %s", uid, collection_url)
        try:
            resp = await self.client.put(event_url, body, auth=credentials.auth(), headers=headers)
        except HTTPError as e:
            detail = str(e.err) if e.err else "No error details provided by server"
            logger.error("Failed to add event at %s: %d %s", event_url, e.code, detail)
            raise WriteError(e.code, detail) from e
        except httpx.HTTPError as e:
            logger.error("Failed to add event at %s: %s", event_url, e)
            raise WriteError(0, f"Request failed: {e}") from e

        if resp.status_code not in (200, 201):
            detail = resp.text[:500].strip() or "No error details provided by server"
            logger.error("Unexpected status %d storing %s", resp.status_code, event_url)
            raise WriteError(resp.status_code, detail)

        logger.info("Event stored at %s", event_url)
        return event_url
