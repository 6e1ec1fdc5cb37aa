"""Internal WebDAV plumbing shared by the CalDAV client."""

from .client import Client, origin, resolve_href
from .elements import (
    CALDAV_NAMESPACE,
    NAMESPACE,
    Href,
    Prop,
    PropFind,
    PropStat,
    ResourceType,
    Response,
    Status,
)
from .internal import (
    CalSyncError,
    CollectionQueryError,
    ConfigurationError,
    Depth,
    DiscoveryError,
    HTTPError,
    ParseError,
    ValidationError,
    WriteError,
    depth_to_string,
)

__all__ = [
    "Client",
    "origin",
    "resolve_href",
    "CALDAV_NAMESPACE",
    "NAMESPACE",
    "Href",
    "Prop",
    "PropFind",
    "PropStat",
    "ResourceType",
    "Response",
    "Status",
    "CalSyncError",
    "CollectionQueryError",
    "ConfigurationError",
    "Depth",
    "DiscoveryError",
    "HTTPError",
    "ParseError",
    "ValidationError",
    "WriteError",
    "depth_to_string",
]
