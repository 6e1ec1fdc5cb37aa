"""Shared fixtures."""

import pytest
from davserver import SERVER, FakeDAVServer

from py_calsync.caldav import Credentials
from py_calsync.config import CalDAVConfig
from py_calsync.internal import Client


@pytest.fixture
def server() -> FakeDAVServer:
    return FakeDAVServer()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(url=f"{SERVER}/", username="alice", password="secret")


@pytest.fixture
def transport(server: FakeDAVServer) -> Client:
    return Client(server.http_client(), retry_backoff=0)


@pytest.fixture
def config() -> CalDAVConfig:
    return CalDAVConfig(
        url=f"{SERVER}/",
        username="alice",
        password="secret",
        timezone="UTC",
        retry_backoff=0,
    )
