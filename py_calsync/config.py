"""Configuration for the CalDAV calendar client."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .caldav.caldav import Credentials
from .caldav.ical import local_timezone
from .internal import ConfigurationError


def _env(environ: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = environ.get(name, "").strip().strip('"')
        if value:
            return value
    return ""


@dataclass
class CalDAVConfig:
    """Configuration for a CalDAV account.

    The values are supplied by the caller; use :meth:`from_env` to read them
    from ``CALDAV_*`` (or the older ``APPLE_CALENDAR_*``) variables.
    """

    # Server and Basic-auth credentials
    url: str = ""
    username: str = ""
    password: str = ""

    # Display name of the calendar to prefer (substring, case-insensitive)
    calendar_name: str = ""

    # IANA timezone used for day boundaries and displayed times; empty means
    # the host's local timezone
    timezone: str = ""

    # Transport
    timeout: float = 10.0  # Request timeout in seconds
    max_retries: int = 2
    retry_backoff: float = 0.5
    max_concurrency: int = 4

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CalDAVConfig:
        """Build a configuration from environment variables."""
        env = os.environ if environ is None else environ
        config = cls(
            url=_env(env, "CALDAV_URL", "APPLE_CALENDAR_URL"),
            username=_env(env, "CALDAV_USERNAME", "APPLE_CALENDAR_USERNAME"),
            password=_env(env, "CALDAV_PASSWORD", "APPLE_CALENDAR_PASSWORD"),
            calendar_name=_env(env, "CALDAV_CALENDAR_NAME", "APPLE_CALENDAR_NAME"),
            timezone=_env(env, "CALDAV_TIMEZONE"),
        )
        timeout = _env(env, "CALDAV_TIMEOUT")
        if timeout:
            try:
                config.timeout = float(timeout)
            except ValueError as e:
                raise ConfigurationError(f"invalid CALDAV_TIMEOUT {timeout!r}") from e
        return config

    def credentials(self) -> Credentials:
        """Return the account credentials.

        Raises:
            ConfigurationError: If the URL, username or password is missing
        """
        missing = [
            name
            for name, value in (
                ("url", self.url),
                ("username", self.username),
                ("password", self.password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"CalDAV credentials not configured (missing: {', '.join(missing)})"
            )
        return Credentials(url=self.url, username=self.username, password=self.password)

    def tzinfo(self) -> tzinfo:
        """Resolve the display timezone.

        Raises:
            ConfigurationError: If the timezone name is unknown
        """
        if not self.timezone:
            return local_timezone()
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"unknown timezone {self.timezone!r}") from e
