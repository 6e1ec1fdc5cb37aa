"""Internal HTTP transport for WebDAV and CalDAV requests."""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlparse, urlunparse

import httpx
from lxml import etree
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..debug import log_request, log_response
from .elements import PropFind, error_message, parse_xml
from .internal import Depth, HTTPError, depth_to_string

logger = logging.getLogger(__name__)

# Methods that are safe to send twice
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PROPFIND", "REPORT"})
RETRY_STATUSES = frozenset({502, 503, 504})


class _GatewayError(Exception):
    """A retryable gateway status, carrying the response."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def resolve_href(base: str, href: str) -> str:
    """Resolve an href against a base URL.

    Absolute-path hrefs keep only the scheme and host of ``base``.

    Args:
        base: URL the href was returned for
        href: Href as returned by the server

    Returns:
        Absolute URL
    """
    href = href.strip()
    if href.startswith("/") and not href.startswith("//"):
        base_url = urlparse(base)
        path, _, query = href.partition("?")
        return urlunparse((base_url.scheme, base_url.netloc, path, "", query, ""))
    return urljoin(base, href)


def origin(url: str) -> str:
    """Return the ``scheme://host`` part of a URL."""
    u = urlparse(url)
    return f"{u.scheme}://{u.netloc}"


class Client:
    """WebDAV HTTP client.

    Credentials are passed with each call rather than stored, so one
    instance can serve several accounts concurrently.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        debug: bool = False,
    ):
        """Initialize client.

        Args:
            http_client: HTTP client to use (creates default if None)
            timeout: Timeout in seconds applied to every request
            max_retries: Extra attempts for idempotent requests
            retry_backoff: Initial backoff delay, doubled per attempt
            debug: Log request and response bodies
        """
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.debug = debug

    def _log_retry(self, method: str, url: str):
        def log(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            if isinstance(exc, _GatewayError):
                reason = f"answered {exc.response.status_code}"
            else:
                reason = f"failed ({exc.__class__.__name__})"
            logger.warning(
                "%s %s %s, retrying (%d/%d)",
                method, url, reason, retry_state.attempt_number, self.max_retries,
            )

        return log

    async def _send(
        self,
        method: str,
        url: str,
        auth: httpx.Auth | None,
        content: bytes | None,
        headers: dict[str, str],
    ) -> httpx.Response:
        resp = await self.http_client.request(
            method,
            url,
            content=content,
            headers=headers,
            auth=auth,
            timeout=self.timeout,
        )
        if resp.status_code in RETRY_STATUSES:
            raise _GatewayError(resp)
        return resp

    async def request(
        self,
        method: str,
        url: str,
        auth: httpx.Auth | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request.

        Idempotent methods are retried on transport errors and gateway
        failures. PUT and other unsafe methods are sent exactly once.

        Args:
            method: HTTP method
            url: Absolute request URL
            auth: Authentication for this request
            content: Request body
            headers: Request headers

        Returns:
            HTTP response with a 2xx status

        Raises:
            HTTPError: If the server answers with a non-2xx status
            httpx.HTTPError: If the request could not be completed
        """
        headers = headers or {}
        attempts = 1 + (self.max_retries if method in IDEMPOTENT_METHODS else 0)

        if self.debug:
            log_request(method, url, headers, content)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.retry_backoff),
            retry=retry_if_exception_type((httpx.TransportError, _GatewayError)),
            before_sleep=self._log_retry(method, url),
            reraise=True,
        )
        try:
            resp = await retrying(self._send, method, url, auth, content, headers)
        except _GatewayError as e:
            resp = e.response

        if self.debug:
            log_response(resp.status_code, dict(resp.headers), resp.content)

        if resp.status_code // 100 != 2:
            raise self._error_from_response(resp)

        return resp

    @staticmethod
    def _error_from_response(resp: httpx.Response) -> HTTPError:
        content_type = resp.headers.get("content-type", "text/plain")
        text = resp.text

        wrapped_err: Exception | None = None
        if "application/xml" in content_type or "text/xml" in content_type:
            root = parse_xml(resp.content)
            message = error_message(root) if root is not None else None
            wrapped_err = Exception(message or text[:1024].strip() or "no error details")
        elif content_type.startswith("text/"):
            preview = text[:1024].strip()
            if preview:
                if len(text) > 1024:
                    preview += " […]"
                wrapped_err = Exception(preview)

        return HTTPError(resp.status_code, wrapped_err, body=text)

    async def xml_request(
        self,
        method: str,
        url: str,
        xml_obj: etree._Element,
        auth: httpx.Auth | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an XML HTTP request.

        Args:
            method: HTTP method
            url: Request URL
            xml_obj: XML object to send
            auth: Authentication for this request
            headers: Additional request headers

        Returns:
            HTTP response
        """
        xml_bytes = etree.tostring(
            xml_obj, encoding="utf-8", xml_declaration=True, pretty_print=False
        )

        req_headers = dict(headers or {})
        req_headers["Content-Type"] = "application/xml; charset=utf-8"

        return await self.request(method, url, auth=auth, content=xml_bytes, headers=req_headers)

    async def propfind_xml(
        self, url: str, depth: Depth, propfind: PropFind, auth: httpx.Auth | None = None
    ) -> etree._Element:
        """Perform a PROPFIND request and return the parsed response body.

        Raises:
            ValueError: If the response body is not XML
        """
        headers = {"Depth": depth_to_string(depth)}
        resp = await self.xml_request("PROPFIND", url, propfind.to_xml(), auth=auth, headers=headers)

        root = parse_xml(resp.content)
        if root is None:
            raise ValueError(f"PROPFIND {url}: response is not XML")
        return root

    async def report(
        self,
        url: str,
        xml_obj: etree._Element,
        auth: httpx.Auth | None = None,
        depth: Depth = Depth.ONE,
    ) -> httpx.Response:
        """Perform a REPORT request and return the raw response.

        The body is left unparsed because some servers answer REPORT with
        markup that only a tolerant scanner can read.
        """
        headers = {"Depth": depth_to_string(depth)}
        return await self.xml_request("REPORT", url, xml_obj, auth=auth, headers=headers)

    async def get(self, url: str, auth: httpx.Auth | None = None) -> httpx.Response:
        """Fetch a single resource."""
        return await self.request("GET", url, auth=auth)

    async def put(
        self,
        url: str,
        content: bytes,
        auth: httpx.Auth | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Store a resource. Never retried."""
        return await self.request("PUT", url, auth=auth, content=content, headers=headers)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.http_client.aclose()
