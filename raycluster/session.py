"""Server-side sessions: one per connected worker, and the registry of them."""

from __future__ import annotations

import logging
import time
from enum import Enum

from raycluster.packets import Kiss, Ping
from raycluster.tile import Tile
from raycluster.transport import PacketSocket

log = logging.getLogger(__name__)


def current_timestamp() -> int:
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


class SessionState(Enum):
    """What a connected worker is doing."""

    READY = "ready"
    RENDERING = "rendering"
    DEADASS = "deadass"


class Session:
    """A connected worker, its socket and its rendering status."""

    def __init__(self, sock: PacketSocket, session_id: int) -> None:
        self.id = session_id
        self.control_socket = sock
        self.latency = 0
        self.last_latency_refresh = time.monotonic()
        self.state = SessionState.READY
        self.current_tile = Tile()

    def refresh_latency(self) -> None:
        """Send a ping stamped with the current time to the worker."""
        self.control_socket.send_packet(Ping(current_timestamp()).serialize())

    def __repr__(self) -> str:
        return (
            f"Session(id={self.id}, fd={self.control_socket.fileno()}, "
            f"state={self.state.name}, latency={self.latency})"
        )


class SessionManager:
    """Sessions of the connected workers, keyed by socket descriptor."""

    def __init__(self) -> None:
        self._sessions_created = 0
        self._sessions: dict[int, Session] = {}

    def create_session(self, sock: PacketSocket) -> Session:
        """Open a session for ``sock``; an existing one is returned unchanged."""
        fd = sock.fileno()
        existing = self._sessions.get(fd)
        if existing is not None:
            return existing
        session = Session(sock, self._sessions_created)
        self._sessions_created += 1
        self._sessions[fd] = session
        return session

    def close_session(self, sock: PacketSocket) -> None:
        """Close the session of ``sock`` and its socket.

        Raises KeyError if the socket has no session.
        """
        session = self._sessions.pop(sock.fileno())
        session.control_socket.close()

    def close_all_sessions(self) -> None:
        """Say goodbye to every worker and close all sessions."""
        for session in self._sessions.values():
            session.control_socket.send_packet(Kiss().serialize())
            session.control_socket.close()
        self._sessions.clear()

    def has_session(self, sock: PacketSocket) -> bool:
        """Whether ``sock`` has an open session."""
        return sock.fileno() in self._sessions

    def get_session(self, sock: PacketSocket) -> Session:
        """Return the session of ``sock``; raises KeyError if there is none."""
        return self._sessions[sock.fileno()]

    def sessions(self) -> list[Session]:
        """All open sessions."""
        return list(self._sessions.values())