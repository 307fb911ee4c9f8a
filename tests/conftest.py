from __future__ import annotations

import asyncio

import pytest

from widgetkit.server import WidgetServer
from widgetkit.settings import WidgetServerSettings


class FakeSession:
    """Records list-changed notifications like mcp's ServerSession would send them."""

    def __init__(self) -> None:
        self.tool_list_changed = 0
        self.resource_list_changed = 0

    async def send_tool_list_changed(self) -> None:
        self.tool_list_changed += 1

    async def send_resource_list_changed(self) -> None:
        self.resource_list_changed += 1


class DisconnectedSession:
    async def send_tool_list_changed(self) -> None:
        raise ConnectionResetError("transport closed")

    async def send_resource_list_changed(self) -> None:
        raise ConnectionResetError("transport closed")


async def _drain(server: WidgetServer) -> None:
    if server.pending_notifications:
        await asyncio.gather(*list(server.pending_notifications))


@pytest.fixture()
def settings() -> WidgetServerSettings:
    return WidgetServerSettings(
        _env_file=None,
        base_url="https://host:3000",
        tool_notify_delay=0.0,
    )


@pytest.fixture()
def server(settings: WidgetServerSettings) -> WidgetServer:
    return WidgetServer(settings=settings)


@pytest.fixture()
def session(server: WidgetServer) -> FakeSession:
    live = FakeSession()
    server.sessions["session-a"] = live
    return live


@pytest.fixture()
def drain():
    """Wait for delayed tool-list notifications to fire."""
    return _drain


@pytest.fixture()
def disconnected_session(server: WidgetServer) -> DisconnectedSession:
    dead = DisconnectedSession()
    server.sessions["session-dead"] = dead
    return dead
