"""Calendar client command-line tool."""

import argparse
import asyncio
import json
import sys
from datetime import datetime

from py_calsync.caldav import NewEventRequest
from py_calsync.client import PERIODS, Client
from py_calsync.config import CalDAVConfig
from py_calsync.internal import ConfigurationError


async def _list(config: CalDAVConfig, period: str, debug: bool) -> int:
    async with Client(config, debug=debug) as client:
        events = await client.list_events(period)  # type: ignore[arg-type]
    print(json.dumps({"events": [e.to_dict() for e in events]}, indent=2, ensure_ascii=False))
    return 0


async def _add(config: CalDAVConfig, request: NewEventRequest, debug: bool) -> int:
    async with Client(config, debug=debug) as client:
        result = await client.add_event(request)
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def _datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 date-time: {value!r}") from e


def main() -> None:
    """Main entry point for the calendar tool."""
    parser = argparse.ArgumentParser(
        description="CalDAV calendar client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show today's events
  py-calsync list today

  # Add an event (times without offset are in CALDAV_TIMEZONE)
  py-calsync add --title "Dentist" --start 2024-01-16T10:00 --end 2024-01-16T11:00

  # Serve the HTTP endpoints
  py-calsync serve --port 8080

Configuration is read from CALDAV_URL, CALDAV_USERNAME, CALDAV_PASSWORD,
CALDAV_CALENDAR_NAME and CALDAV_TIMEZONE.
        """,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="enable debug logging (logs request/response bodies with formatted XML)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="list events")
    list_parser.add_argument("period", nargs="?", default="today", choices=PERIODS)

    add_parser = subparsers.add_parser("add", help="add an event")
    add_parser.add_argument("--title", required=True)
    add_parser.add_argument("--start", required=True, type=_datetime)
    add_parser.add_argument("--end", required=True, type=_datetime)
    add_parser.add_argument("--location")
    add_parser.add_argument("--description")

    serve_parser = subparsers.add_parser("serve", help="serve the HTTP endpoints")
    serve_parser.add_argument(
        "--addr",
        default="127.0.0.1",
        help="listening address (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="listening port (default: 8080)",
    )

    args = parser.parse_args()

    if args.debug:
        from py_calsync.debug import setup_debug_logging
        setup_debug_logging()

    try:
        config = CalDAVConfig.from_env()
        config.credentials()
        config.tzinfo()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command == "list":
        sys.exit(asyncio.run(_list(config, args.period, args.debug)))

    if args.command == "add":
        request = NewEventRequest(
            title=args.title,
            start=args.start,
            end=args.end,
            location=args.location,
            description=args.description,
        )
        sys.exit(asyncio.run(_add(config, request, args.debug)))

    # serve
    import uvicorn

    from py_calsync.server import create_app

    app = create_app(Client(config, debug=args.debug))
    print(f"Calendar API listening on {args.addr}:{args.port}")
    print(f"  Events: http://{args.addr}:{args.port}/calendar?period=today")

    uvicorn.run(
        app,
        host=args.addr,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()
