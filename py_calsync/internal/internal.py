"""Low-level helpers and error types for the CalDAV client."""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus


class Depth(IntEnum):
    """Depth indicates whether a request applies to the resource's members.

    Defined in RFC 4918 section 10.2.
    """

    ZERO = 0  # Request applies only to the resource
    ONE = 1  # Request applies to resource and its internal members only


def depth_to_string(d: Depth) -> str:
    """Format the depth."""
    if d == Depth.ZERO:
        return "0"
    elif d == Depth.ONE:
        return "1"
    else:
        raise ValueError("webdav: invalid Depth value")


class HTTPError(Exception):
    """HTTP error with status code and the server's response body."""

    def __init__(self, code: int, err: Exception | None = None, body: str = ""):
        self.code = code
        self.err = err
        self.body = body
        super().__init__(str(self))

    @property
    def phrase(self) -> str:
        try:
            return HTTPStatus(self.code).phrase
        except ValueError:
            return "Unknown"

    def __str__(self) -> str:
        s = f"{self.code} {self.phrase}"
        if self.err:
            return f"{s}: {self.err}"
        return s


class CalSyncError(Exception):
    """Base class for calendar sync failures."""


class ConfigurationError(CalSyncError):
    """Server URL or credentials are missing."""


class DiscoveryError(CalSyncError):
    """A discovery step answered non-2xx or without a usable href."""


class CollectionQueryError(CalSyncError):
    """The REPORT against a single calendar collection failed."""

    def __init__(self, url: str, err: Exception):
        self.url = url
        self.err = err
        super().__init__(f"{url}: {err}")


class ParseError(CalSyncError):
    """A single VEVENT block could not be decoded."""


class ValidationError(CalSyncError):
    """A new event request violates a local precondition."""


class WriteError(CalSyncError):
    """The server refused to store a new calendar resource.

    Carries the HTTP status (0 when the request never completed) and the
    server-provided detail.
    """

    def __init__(self, code: int, detail: str):
        self.code = code
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.code:
            return self.detail
        try:
            text = HTTPStatus(self.code).phrase
        except ValueError:
            text = "Unknown"
        return f"{self.code} {text}. {self.detail}"
