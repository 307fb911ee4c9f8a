"""List-changed notifications to live sessions.

Delivery is best-effort: one task per session, each catching its own
failure so the rest still get notified. Sessions whose transport turns out
to be closed are dropped from the registry they were read from.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import MutableMapping
from typing import Protocol

import anyio
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

CLOSED_TRANSPORT_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    ConnectionError,
)


class SessionNotifier(Protocol):
    async def send_tool_list_changed(self) -> None: ...

    async def send_resource_list_changed(self) -> None: ...


async def _notify(session_id: str, session: SessionNotifier, method: str) -> bool:
    """Send one notification; False when the session's transport is gone."""
    send = getattr(session, method, None)
    if send is None:
        return True
    try:
        result = send()
        if inspect.isawaitable(result):
            await result
    except CLOSED_TRANSPORT_ERRORS:
        logger.debug("Session %s is closed", session_id, exc_info=True)
        return False
    except Exception:
        logger.debug("Failed to send %s to session %s", method, session_id, exc_info=True)
    return True


async def broadcast(
    sessions: MutableMapping[str, SessionNotifier], method: str
) -> list[str]:
    """Notify every session and forget the closed ones; returns their ids."""
    snapshot = list(sessions.items())
    delivered = await asyncio.gather(
        *(_notify(session_id, session, method) for session_id, session in snapshot)
    )
    closed = [session_id for (session_id, _), ok in zip(snapshot, delivered) if not ok]
    for session_id in closed:
        sessions.pop(session_id, None)
    if closed:
        logger.info("Dropped %d closed session(s)", len(closed))
    return closed


async def notify_tool_list_changed(
    sessions: MutableMapping[str, SessionNotifier],
) -> list[str]:
    return await broadcast(sessions, "send_tool_list_changed")


async def notify_resource_list_changed(
    sessions: MutableMapping[str, SessionNotifier],
) -> list[str]:
    return await broadcast(sessions, "send_resource_list_changed")


def schedule_tool_list_changed(
    sessions: MutableMapping[str, SessionNotifier],
    delay: float,
    pending: set[asyncio.Task],
) -> asyncio.Task:
    """Announce a new tool after ``delay`` seconds.

    The session mapping is read when the delay expires, not now.
    """

    async def _later() -> None:
        await asyncio.sleep(delay)
        await notify_tool_list_changed(sessions)

    task = asyncio.create_task(_later())
    pending.add(task)
    task.add_done_callback(pending.discard)
    return task
