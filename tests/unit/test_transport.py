"""Tests for the internal HTTP transport."""

import logging

import httpx
import pytest
from davserver import SERVER

from py_calsync.debug import format_xml, is_xml_content
from py_calsync.internal import Client, Depth, HTTPError, Prop, PropFind, origin, resolve_href
from py_calsync.internal.elements import DISPLAY_NAME


@pytest.mark.parametrize(
    "base, href, expected",
    [
        ("https://cal.example.com/dav/", "/123/principal/", "https://cal.example.com/123/principal/"),
        ("https://cal.example.com:8443/dav/", "/p/", "https://cal.example.com:8443/p/"),
        ("https://cal.example.com/dav/", "https://p02.example.com/x/", "https://p02.example.com/x/"),
        ("https://cal.example.com/dav/home/", "work/", "https://cal.example.com/dav/home/work/"),
        ("https://cal.example.com/dav/", "  /padded/  ", "https://cal.example.com/padded/"),
    ],
)
def test_resolve_href(base, href, expected):
    assert resolve_href(base, href) == expected


def test_origin():
    assert origin("https://cal.example.com:8443/a/b/?q=1") == "https://cal.example.com:8443"


@pytest.mark.asyncio
async def test_request_gives_up_after_retries(server, transport):
    server.route("PROPFIND", "/busy/", (503, "Service Unavailable"))

    with pytest.raises(HTTPError) as exc_info:
        await transport.request("PROPFIND", f"{SERVER}/busy/")

    assert exc_info.value.code == 503
    assert len(server.requests) == 3


@pytest.mark.asyncio
async def test_request_does_not_retry_client_errors(server, transport):
    server.route("GET", "/missing.ics", (404, "Not Found"))

    with pytest.raises(HTTPError) as exc_info:
        await transport.get(f"{SERVER}/missing.ics")

    assert exc_info.value.code == 404
    assert len(server.requests) == 1


@pytest.mark.asyncio
async def test_request_transport_error_propagates(server):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    server.route("GET", "/a.ics", refuse)
    transport = Client(server.http_client(), max_retries=1, retry_backoff=0)

    with pytest.raises(httpx.ConnectError):
        await transport.get(f"{SERVER}/a.ics")

    assert len(server.requests) == 2


@pytest.mark.asyncio
async def test_error_keeps_body_and_text_preview(server, transport):
    server.route("GET", "/a.ics", (401, "Authentication required\n", {"Content-Type": "text/plain"}))

    with pytest.raises(HTTPError) as exc_info:
        await transport.get(f"{SERVER}/a.ics")

    assert str(exc_info.value) == "401 Unauthorized: Authentication required"
    assert exc_info.value.body == "Authentication required\n"


@pytest.mark.asyncio
async def test_propfind_rejects_non_xml(server, transport):
    server.route("PROPFIND", "/", (207, "", {"Content-Type": "application/xml"}))

    with pytest.raises(ValueError, match="not XML"):
        await transport.propfind_xml(f"{SERVER}/", Depth.ZERO, PropFind(prop=Prop.of(DISPLAY_NAME)))


@pytest.mark.asyncio
async def test_debug_logging(server, caplog):
    server.route("PROPFIND", "/", (207, '<d:multistatus xmlns:d="DAV:"/>'))
    transport = Client(server.http_client(), debug=True)
    caplog.set_level(logging.DEBUG, logger="py_calsync.wire")

    await transport.propfind_xml(
        f"{SERVER}/", Depth.ZERO, PropFind(prop=Prop.of(DISPLAY_NAME)), auth=httpx.BasicAuth("a", "secret")
    )

    messages = [r.getMessage() for r in caplog.records if r.name == "py_calsync.wire"]
    assert any(m.startswith(">>> OUTGOING REQUEST: PROPFIND") for m in messages)
    assert any(m == "<<< INCOMING RESPONSE: 207" for m in messages)
    assert any("displayname" in m for m in messages)
    assert not any("secret" in m for m in messages)


def test_format_xml():
    assert format_xml(b'<a><b>x</b></a>') == "<a>\n  <b>x</b>\n</a>\n"
    assert format_xml("not xml") == "not xml"
    assert is_xml_content("application/xml; charset=utf-8")
    assert not is_xml_content("text/calendar")
    assert not is_xml_content(None)
