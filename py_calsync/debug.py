"""Debug logging utilities for the CalDAV client."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from lxml import etree

logger = logging.getLogger("py_calsync")
wire_logger = logging.getLogger("py_calsync.wire")


def format_xml(xml_bytes: bytes | str) -> str:
    """Format XML with proper indentation.

    Args:
        xml_bytes: XML content as bytes or string

    Returns:
        Pretty-formatted XML string
    """
    try:
        if isinstance(xml_bytes, str):
            xml_bytes = xml_bytes.encode("utf-8")

        parser = etree.XMLParser(remove_blank_text=True)
        root = etree.fromstring(xml_bytes, parser)
        return etree.tostring(root, pretty_print=True, encoding="unicode")
    except etree.XMLSyntaxError:
        # Not XML after all, return as-is
        if isinstance(xml_bytes, bytes):
            return xml_bytes.decode("utf-8", errors="replace")
        return str(xml_bytes)


def is_xml_content(content_type: str | None) -> bool:
    """Check if content type is XML."""
    if not content_type:
        return False

    xml_types = ["application/xml", "text/xml"]
    return any(xml_type in content_type.lower() for xml_type in xml_types)


def _header(headers: Mapping[str, Any], name: str) -> Any:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return None


def _log_body(content_type: str, body: bytes) -> None:
    if is_xml_content(content_type):
        formatted = format_xml(body)
        for line in formatted.split("\n"):
            if line.strip():
                wire_logger.debug(f"  {line}")
    else:
        body_preview = body[:200].decode("utf-8", errors="replace")
        wire_logger.debug(f"  [{len(body)} bytes] {body_preview}")
        if len(body) > 200:
            wire_logger.debug(f"  ... ({len(body) - 200} more bytes)")


def log_request(
    method: str, url: str, headers: Mapping[str, Any], body: bytes | None
) -> None:
    """Log an outgoing HTTP request.

    Args:
        method: HTTP method
        url: Request URL
        headers: Request headers
        body: Request body (if any)
    """
    wire_logger.debug("=" * 80)
    wire_logger.debug(f">>> OUTGOING REQUEST: {method} {url}")

    interesting_headers = [
        "Content-Type",
        "Content-Length",
        "Depth",
        "If-None-Match",
        "Authorization",
    ]
    for header in interesting_headers:
        value = _header(headers, header)
        if value:
            if header == "Authorization":
                value = "[REDACTED]"
            wire_logger.debug(f"  {header}: {value}")

    if body:
        wire_logger.debug("-" * 80)
        _log_body(str(_header(headers, "Content-Type") or ""), body)


def log_response(status_code: int, headers: Mapping[str, Any], body: bytes | None) -> None:
    """Log an incoming HTTP response.

    Args:
        status_code: HTTP status code
        headers: Response headers
        body: Response body (if any)
    """
    wire_logger.debug(f"<<< INCOMING RESPONSE: {status_code}")

    for header in ["Content-Type", "Content-Length", "ETag", "DAV"]:
        value = _header(headers, header)
        if value:
            wire_logger.debug(f"  {header}: {value}")

    if body:
        wire_logger.debug("-" * 80)
        _log_body(str(_header(headers, "Content-Type") or ""), body)

    wire_logger.debug("=" * 80)


def setup_debug_logging() -> None:
    """Configure debug logging for the client and its wire traffic."""
    logger.setLevel(logging.DEBUG)

    handler = logging.StreamHandler()
    handler.setLevel(logging.DEBUG)

    # Simple format - just the message (since we format the logs ourselves)
    formatter = logging.Formatter("%(message)s")
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    # Prevent propagation to avoid duplicate logs
    logger.propagate = False
