"""HTTP endpoints exposing the calendar client.

    GET  /calendar?period=today|tomorrow|week
    POST /calendar   {"title", "start", "end", "location"?, "description"?}
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .caldav import NewEventRequest
from .client import PERIODS, Client

logger = logging.getLogger(__name__)


def _optional_text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value or None


def parse_event_payload(payload: Any) -> NewEventRequest:
    """Build a NewEventRequest from a JSON body.

    Raises:
        ValueError: If a field is missing or malformed
    """
    if not isinstance(payload, dict):
        raise ValueError("request body must be a JSON object")

    title = payload.get("title")
    if not isinstance(title, str):
        raise ValueError("'title' is required")

    times = {}
    for key in ("start", "end"):
        value = payload.get(key)
        if not isinstance(value, str):
            raise ValueError(f"'{key}' is required (ISO 8601 date-time)")
        try:
            times[key] = datetime.fromisoformat(value)
        except ValueError as e:
            raise ValueError(f"'{key}' is not an ISO 8601 date-time: {value!r}") from e

    return NewEventRequest(
        title=title,
        start=times["start"],
        end=times["end"],
        location=_optional_text(payload, "location"),
        description=_optional_text(payload, "description"),
    )


class CalendarHandler:
    """Request handlers for the calendar endpoints."""

    def __init__(self, client: Client):
        self.client = client

    async def list_events(self, request: Request) -> JSONResponse:
        period = request.query_params.get("period", "today")
        if period not in PERIODS:
            return JSONResponse(
                {"error": f"Invalid period {period!r}. Use one of: {', '.join(PERIODS)}"},
                status_code=400,
            )

        events = await self.client.list_events(period)  # type: ignore[arg-type]
        return JSONResponse({"events": [event.to_dict() for event in events]})

    async def add_event(self, request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)

        try:
            new_event = parse_event_payload(payload)
        except ValueError as e:
            return JSONResponse({"success": False, "error": str(e)}, status_code=400)

        result = await self.client.add_event(new_event)
        return JSONResponse(result.to_dict(), status_code=201 if result.success else 200)


def create_app(client: Client | None = None) -> Starlette:
    """Create the Starlette application.

    Args:
        client: Calendar client (configured from the environment if None)
    """
    client = client or Client()
    handler = CalendarHandler(client)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await client.close()

    return Starlette(
        routes=[
            Route("/calendar", handler.list_events, methods=["GET"]),
            Route("/calendar", handler.add_event, methods=["POST"]),
        ],
        lifespan=lifespan,
    )
