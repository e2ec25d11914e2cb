"""
In-memory registry of open signaling connections.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from config import ROLE_PHONE, ROLE_VIEWER, ROLES


class DuplicateConnectionError(Exception):
    """Raised when a connection id is registered twice."""


@dataclass
class Connection:
    """Represents one open signaling channel to a phone or viewer."""
    id: str
    channel: Any  # Outbound side: async send(text), async close()
    role: Optional[str] = None  # None until a register message arrives
    peer_id: Optional[str] = None  # Matched counterpart, if any
    remote_address: Optional[str] = None
    connected_at: float = field(default_factory=time.monotonic)

    @property
    def is_registered(self) -> bool:
        return self.role is not None

    @property
    def is_matched(self) -> bool:
        return self.peer_id is not None


class ConnectionRegistry:
    """
    Authoritative mapping from connection id to Connection record.

    All methods are plain in-memory operations and never block. Callers that
    combine several of them (look up, then mutate) must hold ``lock`` for the
    whole sequence, and must fully consume ``scan_by_role`` while holding it.
    Sending on a channel must happen after the lock is released.
    """

    def __init__(self):
        # dicts keep insertion order, which scan_by_role relies on
        self.connections: Dict[str, Connection] = {}
        self.lock = asyncio.Lock()

    def create(self, connection_id: str, channel: Any,
               remote_address: Optional[str] = None) -> Connection:
        """Insert a new unregistered, unmatched connection."""
        if connection_id in self.connections:
            raise DuplicateConnectionError(f"Connection already registered: {connection_id}")

        connection = Connection(id=connection_id, channel=channel, remote_address=remote_address)
        self.connections[connection_id] = connection
        return connection

    def get(self, connection_id: Optional[str]) -> Optional[Connection]:
        if connection_id is None:
            return None
        return self.connections.get(connection_id)

    def set_role(self, connection_id: str, role: str) -> None:
        """Set the role of a connection. Missing ids are ignored."""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")

        connection = self.connections.get(connection_id)
        if connection is not None:
            connection.role = role

    def set_peer(self, connection_id: str, peer_id: Optional[str]) -> None:
        """
        Point a connection at its matched peer (or clear it with None).

        Only this side of the link is touched; keeping the pairing symmetric
        is up to the caller.
        """
        connection = self.connections.get(connection_id)
        if connection is not None:
            connection.peer_id = peer_id

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Remove and return a connection, or None if it is already gone."""
        return self.connections.pop(connection_id, None)

    def scan_by_role(self, role: str, exclude_id: Optional[str] = None) -> Iterator[Connection]:
        """Lazily yield connections with the given role, in registration order."""
        for connection_id, connection in self.connections.items():
            if connection.role == role and connection_id != exclude_id:
                yield connection

    def all(self) -> List[Connection]:
        """Snapshot of every open connection."""
        return list(self.connections.values())

    def count_by_role(self) -> Dict[str, int]:
        counts = {role: 0 for role in ROLES}
        counts['unregistered'] = 0
        for connection in self.connections.values():
            counts[connection.role or 'unregistered'] += 1
        return counts

    def get_stats(self) -> dict:
        """Get registry statistics."""
        counts = self.count_by_role()
        return {
            'active_connections': len(self.connections),
            'phones': counts[ROLE_PHONE],
            'viewers': counts[ROLE_VIEWER],
            'unregistered': counts['unregistered'],
            'matched': sum(1 for c in self.connections.values() if c.is_matched),
        }

    def __len__(self) -> int:
        return len(self.connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self.connections
