"""
Connection wrapper around one aiohttp WebSocket and its transport
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Set, Union

logger = logging.getLogger("camera_relay")

CONNECTING = "connecting"
OPEN = "open"
CLOSING = "closing"
CLOSED = "closed"


@dataclass(frozen=True)
class BroadcasterRole:
    broadcaster_id: str
    name: str


@dataclass
class ViewerRole:
    is_photographer: bool = False


Role = Union[BroadcasterRole, ViewerRole]


class Connection:
    """
    One accepted WebSocket.

    The role is assigned at most once. Liveness is always read from the
    socket and transport, never stored.
    """

    def __init__(self, ws, transport=None, peer: Optional[str] = None):
        self.ws = ws
        self.transport = transport
        self.peer = peer or "unknown"
        self.role: Optional[Role] = None
        self._released = False
        self._sends: Set[asyncio.Task] = set()

    def __repr__(self):
        return f"<Connection {self.peer} role={self.role_name} state={self.state}>"

    @property
    def role_name(self) -> str:
        if isinstance(self.role, BroadcasterRole):
            return "broadcaster"
        if isinstance(self.role, ViewerRole):
            return "viewer"
        return "unclassified"

    @property
    def is_broadcaster(self) -> bool:
        return isinstance(self.role, BroadcasterRole)

    @property
    def is_viewer(self) -> bool:
        return isinstance(self.role, ViewerRole)

    @property
    def is_photographer(self) -> bool:
        return isinstance(self.role, ViewerRole) and self.role.is_photographer

    @property
    def broadcaster_id(self) -> Optional[str]:
        if isinstance(self.role, BroadcasterRole):
            return self.role.broadcaster_id
        return None

    @property
    def state(self) -> str:
        if self._released or self.ws.closed:
            return CLOSED
        if not self.ws.prepared:
            return CONNECTING
        if self.transport is None or self.transport.is_closing():
            return CLOSING
        return OPEN

    @property
    def is_open(self) -> bool:
        return self.state == OPEN

    @property
    def buffered_amount(self) -> int:
        """Bytes queued in the transport but not yet written to the socket"""
        if self.transport is None:
            return 0
        return self.transport.get_write_buffer_size()

    def assign_role(self, role: Role) -> None:
        if self._released:
            raise RuntimeError(f"{self!r} was already torn down")
        if self.role is not None:
            raise RuntimeError(f"{self!r} already has role {self.role_name}")
        self.role = role

    @property
    def send_pending(self) -> bool:
        """True while a send started by send_soon is still waiting to drain"""
        return any(not task.done() for task in self._sends)

    async def send(self, text: str) -> None:
        await self.ws.send_str(text)

    def send_soon(self, text: str) -> asyncio.Task:
        """Start a send without waiting for the socket to drain.

        Tasks start in call order, and aiohttp writes the frame before it
        waits on drain, so messages to one connection keep their order.
        """
        task = asyncio.create_task(self.ws.send_str(text))
        self._sends.add(task)
        task.add_done_callback(self._send_done)
        return task

    def _send_done(self, task: asyncio.Task) -> None:
        self._sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Failed to send to %s: %s", self.peer, task.exception())

    async def close(self) -> None:
        await self.ws.close()

    def release(self) -> None:
        """Drop role and transport references after teardown"""
        self._released = True
        self.role = None
        self.transport = None
        for task in list(self._sends):
            task.cancel()
