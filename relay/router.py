"""
Message routing between broadcasters and viewers
"""
import asyncio
import logging
from typing import Dict, Iterable, Optional

from . import config, protocol
from .connection import Connection
from .protocol import MalformedEnvelope
from .registry import Registry, SweepResult

logger = logging.getLogger("camera_relay")


class Router:
    """Dispatch inbound envelopes using the registry's current membership"""

    def __init__(self, registry: Registry, max_buffered_bytes: int = config.MAX_BUFFERED_BYTES):
        self.registry = registry
        self.max_buffered_bytes = max_buffered_bytes
        self._handlers = {
            "register": self._on_register,
            "photographer_status": self._on_photographer_status,
            "frame": self._on_frame,
            "polaroid": self._on_polaroid,
        }

    # ============================================================
    # INBOUND
    # ============================================================

    async def handle_message(self, conn: Connection, raw) -> None:
        """Route one inbound message. Failures never leave this call."""
        try:
            message = protocol.parse_envelope(raw)
            handler = self._handlers.get(message["type"])
            if handler is None:
                logger.debug("Ignoring %r message from %s", message["type"], conn.peer)
                return
            await handler(conn, message)
        except MalformedEnvelope as e:
            logger.warning("Dropping malformed message from %s: %s", conn.peer, e)
        except Exception:
            logger.exception("Error handling message from %s", conn.peer)

    async def _on_register(self, conn: Connection, message: dict) -> None:
        role = message["role"]
        if conn.role is not None:
            logger.debug("Ignoring re-registration of %r as %r", conn, role)
            return

        if role == "broadcaster":
            broadcaster_id = self.registry.register_broadcaster(conn, message.get("name"))
            name = conn.role.name
            logger.info(
                "Broadcaster registered: %s (%s) - Total: %d",
                broadcaster_id, name, self.registry.broadcaster_count
            )
            await self.fanout(self.registry.viewers, protocol.broadcaster_online(broadcaster_id, name))
        elif role == "viewer":
            if await self._catch_up_viewer(conn):
                logger.info("Viewer registered. Total viewers: %d", self.registry.viewer_count)
        else:
            logger.warning("Unknown role %r from %s", role, conn.peer)

    async def _catch_up_viewer(self, conn: Connection) -> bool:
        """Send current state to a new viewer, then add it to the viewer set.

        The viewer only joins the set once a pass finds nothing left to
        send, so fanout traffic cannot reach it before its catch-up.
        """
        sent_taken: Optional[bool] = None
        announced: Dict[str, str] = {}
        while True:
            pending = []
            taken = self.registry.photographer_taken
            if taken != sent_taken:
                pending.append(protocol.photographer_status(taken))
                sent_taken = taken

            live = dict(self.registry.list_broadcasters())
            for broadcaster_id, name in live.items():
                if broadcaster_id not in announced:
                    pending.append(protocol.broadcaster_online(broadcaster_id, name))
            for broadcaster_id in announced:
                if broadcaster_id not in live:
                    pending.append(protocol.broadcaster_offline(broadcaster_id))
            announced = live

            if not pending:
                return self.registry.register_viewer(conn)

            if not conn.is_open:
                return False
            try:
                for envelope in pending:
                    await conn.send(protocol.dumps(envelope))
            except Exception as e:
                logger.debug("Viewer %s went away during catch-up: %s", conn.peer, e)
                return False

    async def _on_photographer_status(self, conn: Connection, message: dict) -> None:
        if not conn.is_viewer:
            logger.debug("Dropping photographer_status from %r", conn)
            return
        taken = message["taken"]
        if not isinstance(taken, bool):
            raise MalformedEnvelope("photographer_status.taken must be a boolean")

        taken = self.registry.set_photographer_status(conn, taken)
        logger.info("Photographer status from %s: taken=%s", conn.peer, taken)
        await self.fanout(self.registry.viewers, protocol.photographer_status(taken))

    async def _on_frame(self, conn: Connection, message: dict) -> None:
        if not conn.is_broadcaster:
            logger.debug("Dropping frame from %r", conn)
            return
        envelope = protocol.frame(
            message["data"],
            conn.role.broadcaster_id,
            conn.role.name,
            message.get("timestamp"),
        )
        sent = await self.fanout(self.registry.viewers, envelope, ceiling=self.max_buffered_bytes)
        logger.debug("Frame from %s sent to %d viewers", conn.role.broadcaster_id, sent)

    async def _on_polaroid(self, conn: Connection, message: dict) -> None:
        if not conn.is_viewer:
            logger.debug("Dropping polaroid from %r", conn)
            return
        envelope = protocol.polaroid(message["imageUrl"], message.get("timestamp"))
        sent = await self.fanout(self.registry.broadcasters.values(), envelope)
        logger.info("Polaroid from %s forwarded to %d broadcasters", conn.peer, sent)

    # ============================================================
    # FANOUT
    # ============================================================

    async def fanout(self, targets: Iterable[Connection], envelope: dict,
                     ceiling: Optional[int] = None) -> int:
        """Start sending ``envelope`` to every open target, returning how many.

        Sends run as per-connection tasks so a target that stops reading
        never holds up the caller. With a ``ceiling``, targets whose previous
        send is still pending or whose transport buffer holds more than
        that many bytes are skipped for this message.
        """
        message = protocol.dumps(envelope)
        ready = []
        for conn in list(targets):
            if not conn.is_open:
                continue
            if ceiling is not None and (conn.send_pending or conn.buffered_amount > ceiling):
                logger.debug(
                    "Backpressure: dropping %s for %s (%d bytes buffered)",
                    envelope["type"], conn.peer, conn.buffered_amount
                )
                continue
            ready.append(conn)

        for conn in ready:
            conn.send_soon(message)
        # let the sends write before the next inbound message is handled
        await asyncio.sleep(0)
        return len(ready)

    # ============================================================
    # TEARDOWN
    # ============================================================

    async def handle_close(self, conn: Connection) -> None:
        """Remove a closed connection and tell viewers what changed"""
        registry = self.registry
        broadcaster_id = None
        released = False

        if conn.is_broadcaster:
            broadcaster_id = registry.remove_broadcaster(conn)
        elif conn.is_viewer:
            released = registry.remove_viewer(conn)
        registry.discard(conn)
        role_name = conn.role_name
        conn.release()

        if broadcaster_id is not None:
            logger.info(
                "Broadcaster disconnected: %s - Remaining: %d",
                broadcaster_id, registry.broadcaster_count
            )
            await self.fanout(registry.viewers, protocol.broadcaster_offline(broadcaster_id))
        elif role_name == "viewer":
            logger.info("Viewer disconnected. Remaining: %d", registry.viewer_count)
            if released:
                await self.fanout(registry.viewers, protocol.photographer_status(False))

    async def announce_sweep(self, result: SweepResult) -> None:
        """Notify viewers about departures the sweep discovered"""
        for broadcaster_id in result.removed_broadcaster_ids:
            await self.fanout(self.registry.viewers, protocol.broadcaster_offline(broadcaster_id))
        if result.photographer_released:
            await self.fanout(self.registry.viewers, protocol.photographer_status(False))
