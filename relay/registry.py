"""
In-memory registry of live connections by role

Every method is synchronous so a mutation never spans an await and is
atomic on the event loop.
"""
import logging
import weakref
from typing import Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

from .connection import CLOSED, BroadcasterRole, Connection, ViewerRole
from .utils import default_broadcaster_name, generate_broadcaster_id

logger = logging.getLogger("camera_relay")


class SweepResult(NamedTuple):
    removed_broadcaster_ids: List[str]
    removed_viewer_count: int
    photographer_released: bool
    removed_unclassified_count: int = 0


class Registry:
    def __init__(self):
        self.connections: Set[Connection] = set()
        self.broadcasters: Dict[str, Connection] = {}
        self.viewers: Set[Connection] = set()
        self._photographer: Optional[weakref.ref] = None

    # ------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------

    def accept(self, conn: Connection) -> None:
        self.connections.add(conn)

    def discard(self, conn: Connection) -> None:
        """Drop a connection from every structure without notifications"""
        self.remove_broadcaster(conn)
        self.remove_viewer(conn)
        self.connections.discard(conn)

    def register_broadcaster(self, conn: Connection, requested_name=None) -> Optional[str]:
        """Classify ``conn`` as a broadcaster and return its new id.

        Returns None when the connection already has a role; re-registration
        is ignored rather than treated as an error.
        """
        if conn.role is not None:
            return None

        broadcaster_id = generate_broadcaster_id()
        while broadcaster_id in self.broadcasters:
            broadcaster_id = generate_broadcaster_id()

        if isinstance(requested_name, str) and requested_name:
            name = requested_name
        else:
            name = default_broadcaster_name(len(self.broadcasters))

        conn.assign_role(BroadcasterRole(broadcaster_id, name))
        self.connections.add(conn)
        self.broadcasters[broadcaster_id] = conn
        return broadcaster_id

    def register_viewer(self, conn: Connection) -> bool:
        if conn.role is not None:
            return False
        conn.assign_role(ViewerRole())
        self.connections.add(conn)
        self.viewers.add(conn)
        return True

    def remove_broadcaster(self, conn: Connection) -> Optional[str]:
        broadcaster_id = conn.broadcaster_id
        if broadcaster_id is None or self.broadcasters.get(broadcaster_id) is not conn:
            return None
        del self.broadcasters[broadcaster_id]
        return broadcaster_id

    def remove_viewer(self, conn: Connection) -> bool:
        """Remove a viewer; True when it was holding photographer status"""
        self.viewers.discard(conn)
        if self.photographer_holder is conn:
            self._clear_photographer()
            return True
        return False

    # ------------------------------------------------------------
    # Photographer status
    # ------------------------------------------------------------

    @property
    def photographer_holder(self) -> Optional[Connection]:
        if self._photographer is None:
            return None
        return self._photographer()

    @property
    def photographer_taken(self) -> bool:
        return self.photographer_holder is not None

    def set_photographer_status(self, conn: Connection, taken: bool) -> bool:
        """Rebind or clear the photographer, returning the resulting state.

        Taking always wins over the current holder (last write wins) and
        releasing clears the holder no matter who asks.
        """
        if taken:
            if not isinstance(conn.role, ViewerRole):
                return self.photographer_taken
            self._clear_photographer()
            conn.role.is_photographer = True
            self._photographer = weakref.ref(conn)
        else:
            self._clear_photographer()
        return self.photographer_taken

    def _clear_photographer(self) -> None:
        holder = self.photographer_holder
        if holder is not None and isinstance(holder.role, ViewerRole):
            holder.role.is_photographer = False
        self._photographer = None

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def list_broadcasters(self) -> Iterator[Tuple[str, str]]:
        """Lazily yield (broadcaster_id, name) over a snapshot taken now"""
        snapshot = list(self.broadcasters.items())
        return (
            (broadcaster_id, conn.role.name)
            for broadcaster_id, conn in snapshot
            if isinstance(conn.role, BroadcasterRole)
        )

    @property
    def broadcaster_count(self) -> int:
        return len(self.broadcasters)

    @property
    def viewer_count(self) -> int:
        return len(self.viewers)

    def stats(self) -> dict:
        return {
            "broadcasters": self.broadcaster_count,
            "viewers": self.viewer_count,
            "connections": len(self.connections),
            "photographer": self.photographer_taken,
        }

    # ------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------

    def sweep_dead(self) -> SweepResult:
        """Remove every entry whose transport is definitively closed"""
        removed_ids = []
        for broadcaster_id, conn in list(self.broadcasters.items()):
            if conn.state == CLOSED:
                del self.broadcasters[broadcaster_id]
                self.connections.discard(conn)
                removed_ids.append(broadcaster_id)

        removed_viewers = 0
        released = False
        for conn in list(self.viewers):
            if conn.state == CLOSED:
                released = self.remove_viewer(conn) or released
                self.connections.discard(conn)
                removed_viewers += 1

        removed_bare = 0
        for conn in list(self.connections):
            if conn.role is None and conn.state == CLOSED:
                self.connections.discard(conn)
                removed_bare += 1

        if removed_ids or removed_viewers or removed_bare:
            logger.info(
                "Swept %d broadcasters, %d viewers, %d unclassified",
                len(removed_ids), removed_viewers, removed_bare
            )

        return SweepResult(removed_ids, removed_viewers, released, removed_bare)
