"""Tests for calendar home and collection discovery."""

import pytest
from davserver import (
    SERVER,
    collection_response,
    home_set_response,
    install_standard_account,
    multistatus,
    principal_response,
)

from py_calsync.caldav import ResourceDiscoverer, calendar_home_fallback
from py_calsync.internal import DiscoveryError


@pytest.fixture
def discoverer(transport):
    return ResourceDiscoverer(transport)


def test_calendar_home_fallback():
    assert (
        calendar_home_fallback("https://p01-caldav.example.com/12345/principal/")
        == "https://p01-caldav.example.com/12345/calendars/"
    )
    assert calendar_home_fallback("https://cal.example.com/dav/users/alice/") is None


@pytest.mark.asyncio
async def test_discover_calendar_home(server, discoverer, credentials):
    install_standard_account(server)

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == f"{SERVER}/123/calendars/"
    propfinds = server.requests_for("PROPFIND")
    assert [r.url.path for r in propfinds] == ["/", "/123/principal/"]
    for request in propfinds:
        assert request.headers["Depth"] == "0"
        assert request.headers["Authorization"].startswith("Basic ")
        assert request.headers["Content-Type"].startswith("application/xml")
    assert b"current-user-principal" in propfinds[0].content
    assert b"calendar-home-set" in propfinds[1].content


@pytest.mark.asyncio
async def test_discover_calendar_home_absolute_href(server, discoverer, credentials):
    server.route("PROPFIND", "/", (207, principal_response("/123/principal/")))
    server.route(
        "PROPFIND",
        "/123/principal/",
        (207, home_set_response("/123/principal/", "https://p07.example.com:443/123/calendars/")),
    )

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == "https://p07.example.com:443/123/calendars/"


@pytest.mark.asyncio
async def test_discover_calendar_home_fallback(server, discoverer, credentials):
    server.route("PROPFIND", "/", (207, principal_response("/12345/principal/")))
    server.route("PROPFIND", "/12345/principal/", (500, "Internal Server Error"))

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == f"{SERVER}/12345/calendars/"


@pytest.mark.asyncio
async def test_discover_calendar_home_fallback_without_home_set(server, discoverer, credentials):
    server.route("PROPFIND", "/", (207, principal_response("/12345/principal/")))
    server.route("PROPFIND", "/12345/principal/", (207, multistatus()))

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == f"{SERVER}/12345/calendars/"


@pytest.mark.asyncio
async def test_discover_calendar_home_returns_root_when_nothing_works(server, discoverer, credentials):
    server.route("PROPFIND", "/dav/", (403, "Forbidden"))

    home = await discoverer.discover_calendar_home(f"{SERVER}/dav/", credentials)

    assert home == f"{SERVER}/dav/"
    # The principal step falls back to the root URL as well
    assert len(server.requests_for("PROPFIND", "/dav/")) == 2


@pytest.mark.asyncio
async def test_discover_calendar_home_tolerates_namespaces(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/",
        (
            207,
            '<multistatus xmlns="DAV:"><response><href>/</href><propstat><prop>'
            "<current-user-principal><href>/9/principal/</href></current-user-principal>"
            "</prop><status>HTTP/1.1 200 OK</status></propstat></response></multistatus>",
        ),
    )
    server.route(
        "PROPFIND",
        "/9/principal/",
        (
            207,
            '<A:multistatus xmlns:A="DAV:" xmlns:B="http://calendarserver.org/ns/">'
            "<A:response><A:href>/9/principal/</A:href><A:propstat><A:prop>"
            "<B:calendar-home-set><A:href>/9/calendars/</A:href></B:calendar-home-set>"
            "</A:prop><A:status>HTTP/1.1 200 OK</A:status></A:propstat></A:response>"
            "</A:multistatus>",
        ),
    )

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == f"{SERVER}/9/calendars/"


@pytest.mark.asyncio
async def test_discover_calendar_home_without_multistatus(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/",
        (
            207,
            '<d:prop xmlns:d="DAV:"><d:current-user-principal>'
            "<d:href>/7/principal/</d:href></d:current-user-principal></d:prop>",
        ),
    )
    server.route(
        "PROPFIND",
        "/7/principal/",
        (207, home_set_response("/7/principal/", "/7/calendars/")),
    )

    home = await discoverer.discover_calendar_home(f"{SERVER}/", credentials)

    assert home == f"{SERVER}/7/calendars/"


def _listing(*responses):
    return (
        207,
        multistatus(
            collection_response("/123/calendars/", "Calendars", calendar=False),
            *responses,
        ),
    )


@pytest.mark.asyncio
async def test_list_collections(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            collection_response("/123/calendars/home/", "Home"),
            collection_response("/123/calendars/inbox/", "Inbox"),
            collection_response("/123/calendars/work/", "Work"),
            collection_response("/123/calendars/outbox/"),
            '<d:response><d:href>/123/calendars/home/stray.ics</d:href><d:propstat><d:prop>'
            "<d:resourcetype/></d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>",
            '<d:response><d:href>/123/calendars/me</d:href><d:propstat><d:prop>'
            "<d:resourcetype><d:principal/></d:resourcetype></d:prop>"
            "<d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>",
        ),
    )

    collections = await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials)

    assert [c.url for c in collections] == [
        f"{SERVER}/123/calendars/home/",
        f"{SERVER}/123/calendars/work/",
    ]
    assert [c.display_name for c in collections] == ["Home", "Work"]
    assert all(c.writable for c in collections)

    request = server.requests_for("PROPFIND")[0]
    assert request.headers["Depth"] == "1"
    assert b"displayname" in request.content
    assert b"resourcetype" in request.content


@pytest.mark.asyncio
async def test_list_collections_preferred_name(server, transport, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            collection_response("/123/calendars/home/", "Home"),
            collection_response("/123/calendars/work/", "Work"),
        ),
    )
    discoverer = ResourceDiscoverer(transport, preferred_name="WORK")

    collections = await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials)

    assert [c.display_name for c in collections] == ["Work"]

    # An explicit name overrides the configured one
    collections = await discoverer.list_collections(
        f"{SERVER}/123/calendars/", credentials, preferred_name="home"
    )
    assert [c.display_name for c in collections] == ["Home"]


@pytest.mark.asyncio
async def test_list_collections_ambiguous_preferred_name(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            collection_response("/123/calendars/a/", "Family"),
            collection_response("/123/calendars/b/", "Family trips"),
            collection_response("/123/calendars/c/", "Work"),
        ),
    )

    collections = await discoverer.list_collections(
        f"{SERVER}/123/calendars/", credentials, preferred_name="family"
    )

    assert [c.display_name for c in collections] == ["Family", "Family trips", "Work"]


@pytest.mark.asyncio
async def test_list_collections_preferred_name_ignores_special(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            collection_response("/123/calendars/inbox/", "Inbox"),
            collection_response("/123/calendars/home/", "Home"),
        ),
    )

    collections = await discoverer.list_collections(
        f"{SERVER}/123/calendars/", credentials, preferred_name="inbox"
    )

    assert [c.display_name for c in collections] == ["Home"]


@pytest.mark.asyncio
async def test_list_collections_only_special(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            collection_response("/123/calendars/inbox/"),
            collection_response("/123/calendars/outbox/"),
        ),
    )

    collections = await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials)

    assert [c.url for c in collections] == [
        f"{SERVER}/123/calendars/inbox/",
        f"{SERVER}/123/calendars/outbox/",
    ]
    assert not any(c.writable for c in collections)


@pytest.mark.asyncio
async def test_list_collections_skips_malformed_response(server, discoverer, credentials):
    server.route(
        "PROPFIND",
        "/123/calendars/",
        _listing(
            "<d:response><d:href>/123/calendars/x/</d:href><d:href>/123/calendars/y/</d:href>"
            "</d:response>",
            "<d:response><d:propstat><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>",
            collection_response("/123/calendars/home/", "Home"),
        ),
    )

    collections = await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials)

    assert [c.display_name for c in collections] == ["Home"]


@pytest.mark.asyncio
async def test_list_collections_empty(server, discoverer, credentials):
    server.route("PROPFIND", "/123/calendars/", _listing())

    assert await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials) == []


@pytest.mark.asyncio
async def test_list_collections_error(server, discoverer, credentials):
    server.route("PROPFIND", "/123/calendars/", (403, "Forbidden"))

    with pytest.raises(DiscoveryError, match="403"):
        await discoverer.list_collections(f"{SERVER}/123/calendars/", credentials)
