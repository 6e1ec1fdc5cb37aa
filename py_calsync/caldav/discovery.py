"""Calendar home and collection discovery (RFC 4791 section 6, RFC 5397)."""

from __future__ import annotations

import logging
from urllib.parse import unquote, urlparse

import httpx

from ..internal import Client, Depth, DiscoveryError, HTTPError, Prop, PropFind, resolve_href
from ..internal import Response as WebDAVResponse
from ..internal.client import origin
from ..internal.elements import (
    CALENDAR_HOME_SET,
    COLLECTION,
    CURRENT_USER_PRINCIPAL,
    DISPLAY_NAME,
    NAMESPACE,
    RESOURCE_TYPE,
    ResourceType,
    child,
    descendants,
    element_text,
    find_href,
)
from .caldav import CalendarCollection, Credentials

logger = logging.getLogger(__name__)

# Errors a discovery step recovers from
DISCOVERY_ERRORS = (DiscoveryError, HTTPError, httpx.HTTPError, ValueError)


def calendar_home_fallback(principal_url: str) -> str | None:
    """Derive the calendar home from an iCloud-style principal URL.

    ``/12345/principal/`` becomes ``/12345/calendars/`` on the same host.
    Returns None when the path does not follow that convention.
    """
    path = urlparse(principal_url).path
    if "/principal/" not in path:
        return None
    head, _, tail = path.rpartition("/principal/")
    return f"{origin(principal_url)}{head}/calendars/{tail}"


def _same_path(a: str, b: str) -> bool:
    return unquote(urlparse(a).path).rstrip("/") == unquote(urlparse(b).path).rstrip("/")


class ResourceDiscoverer:
    """Walks principal -> calendar-home-set -> calendar collections."""

    def __init__(self, client: Client, preferred_name: str = ""):
        """Initialize discoverer.

        Args:
            client: Internal WebDAV transport
            preferred_name: Display name (substring) of the calendar to prefer
        """
        self.client = client
        self.preferred_name = preferred_name

    async def _find_property_href(self, url: str, tag: str, auth: httpx.Auth) -> str:
        """PROPFIND ``tag`` on ``url`` and return the href it contains.

        The multistatus structure is tried first; when the server's answer
        does not follow it, any matching property anywhere in the body is
        accepted.
        """
        propfind = PropFind(prop=Prop.of(tag))
        root = await self.client.propfind_xml(url, Depth.ZERO, propfind, auth=auth)

        for resp_el in descendants(root, f"{{{NAMESPACE}}}response"):
            try:
                resp = WebDAVResponse.from_xml(resp_el)
            except ValueError:
                continue
            prop = resp.get_prop(tag)
            if prop is None:
                continue
            href = element_text(child(prop, f"{{{NAMESPACE}}}href"))
            if href:
                return href

        href = find_href(root, tag)
        if href:
            return href

        raise DiscoveryError(f"no {tag} href in PROPFIND response from {url}")

    async def discover_calendar_home(self, server_root_url: str, credentials: Credentials) -> str:
        """Find the calendar home URL of the authenticated user.

        Best effort: when discovery fails and no fallback applies, the
        server root URL is returned unchanged.

        Args:
            server_root_url: CalDAV server root
            credentials: Account credentials

        Returns:
            Absolute calendar home URL
        """
        auth = credentials.auth()

        principal_url = server_root_url
        try:
            href = await self._find_property_href(server_root_url, CURRENT_USER_PRINCIPAL, auth)
            principal_url = resolve_href(server_root_url, href)
            logger.info("Found principal URL: %s", principal_url)
        except DISCOVERY_ERRORS as e:
            logger.warning("current-user-principal lookup on %s failed: %s", server_root_url, e)

        try:
            href = await self._find_property_href(principal_url, CALENDAR_HOME_SET, auth)
            home_url = resolve_href(principal_url, href)
            logger.info("Found calendar home URL: %s", home_url)
            return home_url
        except DISCOVERY_ERRORS as e:
            logger.warning("calendar-home-set lookup on %s failed: %s", principal_url, e)

        fallback = calendar_home_fallback(principal_url)
        if fallback:
            logger.info("Using fallback calendar home URL: %s", fallback)
            return fallback

        logger.warning(
            "Cannot construct calendar home URL from %s, using server URL", principal_url
        )
        return server_root_url

    async def list_collections(
        self,
        calendar_home_url: str,
        credentials: Credentials,
        preferred_name: str | None = None,
    ) -> list[CalendarCollection]:
        """List the calendar collections under a calendar home.

        Special collections (inbox, outbox, ...) are left out unless nothing
        else exists. When exactly one writable collection matches the
        preferred name, only that one is returned.

        Args:
            calendar_home_url: Calendar home URL
            credentials: Account credentials
            preferred_name: Overrides the discoverer's preferred name

        Returns:
            Collections in server order

        Raises:
            DiscoveryError: If the listing request fails
        """
        propfind = PropFind(prop=Prop.of(DISPLAY_NAME, RESOURCE_TYPE))
        try:
            root = await self.client.propfind_xml(
                calendar_home_url, Depth.ONE, propfind, auth=credentials.auth()
            )
        except (HTTPError, httpx.HTTPError, ValueError) as e:
            raise DiscoveryError(f"listing calendars in {calendar_home_url} failed: {e}") from e

        collections: list[CalendarCollection] = []
        for resp_el in descendants(root, f"{{{NAMESPACE}}}response"):
            try:
                collection = self._collection_from_response(resp_el, calendar_home_url)
            except ValueError as e:
                logger.warning("Skipping malformed response in %s: %s", calendar_home_url, e)
                continue
            if collection is not None:
                logger.debug("Found calendar %r -> %s", collection.display_name, collection.url)
                collections.append(collection)

        return self._select(collections, self.preferred_name if preferred_name is None else preferred_name)

    @staticmethod
    def _collection_from_response(resp_el, calendar_home_url: str) -> CalendarCollection | None:
        resp = WebDAVResponse.from_xml(resp_el)
        href = resp.href()

        url = resolve_href(calendar_home_url, str(href))
        if url == calendar_home_url or _same_path(url, calendar_home_url):
            return None
        if href.path.lower().endswith(".ics"):
            return None

        res_type_elem = resp.get_prop(RESOURCE_TYPE)
        if res_type_elem is not None and len(res_type_elem):
            res_type = ResourceType.from_xml(res_type_elem)
            if not res_type.is_type(COLLECTION):
                return None

        display_name = element_text(resp.get_prop(DISPLAY_NAME)) or None
        return CalendarCollection.classify(url, display_name)

    @staticmethod
    def _select(collections: list[CalendarCollection], preferred_name: str) -> list[CalendarCollection]:
        writable = [c for c in collections if c.writable]
        if not writable:
            if collections:
                logger.warning("Only special calendars found under calendar home")
            return collections

        if preferred_name:
            wanted = preferred_name.lower()
            matching = [c for c in writable if c.display_name and wanted in c.display_name.lower()]
            if len(matching) == 1:
                logger.info("Using preferred calendar %r", matching[0].display_name)
                return matching
            logger.info(
                "Preferred calendar %r matched %d calendars, using all %d",
                preferred_name, len(matching), len(writable),
            )

        return writable
