"""Tests for the HTTP endpoints."""

from datetime import UTC, datetime

import pytest
from davserver import calendar_data_response, install_standard_account, multistatus, vevent
from starlette.testclient import TestClient

from py_calsync import Client
from py_calsync.server import create_app, parse_event_payload


@pytest.fixture
def http(server, config):
    app = create_app(Client(config, http_client=server.http_client()))
    with TestClient(app) as test_client:
        yield test_client


def test_list_events(server, http):
    today = datetime.now(UTC).strftime("%Y%m%d")
    install_standard_account(server)
    server.route(
        "REPORT",
        "/123/calendars/home/",
        (
            207,
            multistatus(
                calendar_data_response(
                    "/a.ics",
                    vevent("a", "Breakfast", f"{today}T000000Z", extra="LOCATION:Kitchen"),
                )
            ),
        ),
    )

    resp = http.get("/calendar")

    assert resp.status_code == 200
    assert resp.json() == {
        "events": [
            {
                "title": "Breakfast",
                "date": f"{today[:4]}-{today[4:6]}-{today[6:]}",
                "time": "00:00",
                "calendar": "Home",
                "location": "Kitchen",
            }
        ]
    }


def test_list_events_invalid_period(server, http):
    resp = http.get("/calendar", params={"period": "month"})

    assert resp.status_code == 400
    assert "Invalid period" in resp.json()["error"]
    assert server.requests == []


def test_list_events_failure_is_empty(server, http):
    resp = http.get("/calendar", params={"period": "week"})

    assert resp.status_code == 200
    assert resp.json() == {"events": []}


def test_add_event(server, http):
    install_standard_account(server)
    server.route("PUT", "/123/calendars/home/*", (201, ""))

    resp = http.post(
        "/calendar",
        json={
            "title": "Dentist",
            "start": "2024-01-17T10:00:00+00:00",
            "end": "2024-01-17T11:00:00+00:00",
            "location": "Main St 1",
        },
    )

    assert resp.status_code == 201
    assert resp.json() == {"success": True}
    assert b"SUMMARY:Dentist" in server.requests_for("PUT")[0].content


def test_add_event_invalid_json(server, http):
    resp = http.post("/calendar", content=b"{not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Invalid JSON body"}


def test_add_event_malformed_payload(server, http):
    resp = http.post("/calendar", json={"title": "Dentist", "start": "tomorrow at ten"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "start" in resp.json()["error"]
    assert server.requests == []


def test_add_event_validation_failure(server, http):
    resp = http.post(
        "/calendar",
        json={"title": "X", "start": "2024-01-17T10:00:00Z", "end": "2024-01-17T10:00:00Z"},
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "End date must be after start date"}
    assert server.requests == []


def test_parse_event_payload():
    request = parse_event_payload(
        {"title": "Gym", "start": "2024-01-17T18:00", "end": "2024-01-17T19:00", "location": ""}
    )

    assert request.title == "Gym"
    assert request.start == datetime(2024, 1, 17, 18, 0)
    assert request.location is None
    assert request.description is None


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"start": "2024-01-17T18:00", "end": "2024-01-17T19:00"},
        {"title": "Gym", "start": "2024-01-17T18:00"},
        {"title": "Gym", "start": "2024-01-17T18:00", "end": "2024-01-17T19:00", "location": 3},
    ],
)
def test_parse_event_payload_rejects(payload):
    with pytest.raises(ValueError):
        parse_event_payload(payload)
