"""Chunked packet framing over stream sockets.

Each packet is sent as chunks of at most ``CHUNK_SIZE`` bytes, every chunk
preceded by a two-byte big-endian length, and the packet ends with a zero
length header.
"""

from __future__ import annotations

import logging
import select
import socket
from collections import deque
from typing import Optional

log = logging.getLogger(__name__)

BUFFER_SIZE = 1024
DEFAULT_MAX_CLIENTS = 192
CHUNK_SIZE = 32768
HEADER_SIZE = 2
POLL_TIMEOUT = 1.0
MAX_SEND_RETRIES = 100
END_HEADER = b"\x00\x00"


class ClientDisconnected(Exception):
    """The peer closed the connection or it failed."""

    def __init__(self, fd: int) -> None:
        super().__init__(f"Client (SFD: {fd}) disconnected")
        self.fd = fd


def encode_frames(data: bytes) -> bytes:
    """Return ``data`` split into length-prefixed chunks and terminated."""
    frames = bytearray()
    for start in range(0, len(data), CHUNK_SIZE):
        chunk = data[start:start + CHUNK_SIZE]
        frames += len(chunk).to_bytes(HEADER_SIZE, "big")
        frames += chunk
    frames += END_HEADER
    return bytes(frames)


class FrameDecoder:
    """Rebuilds packets from a stream of framed bytes fed in any pieces."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._packet = bytearray()

    def feed(self, data: bytes) -> list[bytes]:
        """Add received bytes; return the packets that are now complete."""
        self._buffer += data
        packets: list[bytes] = []
        while len(self._buffer) >= HEADER_SIZE:
            size = int.from_bytes(self._buffer[:HEADER_SIZE], "big")
            if size == 0:
                del self._buffer[:HEADER_SIZE]
                packets.append(bytes(self._packet))
                self._packet.clear()
                continue
            end = HEADER_SIZE + size
            if len(self._buffer) < end:
                break
            self._packet += self._buffer[HEADER_SIZE:end]
            del self._buffer[:end]
        return packets


class PacketSocket:
    """A stream socket that sends and receives whole framed packets."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock: Optional[socket.socket] = sock
        self._fd = sock.fileno()
        self._decoder = FrameDecoder()
        self._pending: deque[bytes] = deque()
        self._write_buffer = bytearray()

    @classmethod
    def listening(cls, port: int, max_clients: int = DEFAULT_MAX_CLIENTS) -> "PacketSocket":
        """Open a TCP socket listening on every interface at ``port``."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", port))
            sock.listen(max_clients)
        except OSError:
            sock.close()
            raise
        return cls(sock)

    def fileno(self) -> int:
        """The socket's file descriptor, or -1 once closed."""
        return self._fd

    def send_packet(self, data: bytes) -> None:
        """Frame and send ``data``; failures are logged, not raised."""
        if self.sock is None or not data:
            log.warning("Skipping send: invalid fd or empty data")
            return
        self._write_buffer += encode_frames(data)
        try:
            self._flush()
        except (ClientDisconnected, OSError) as error:
            log.error("Error while sending packet (SFD: %d): %s", self._fd, error)
            return
        log.debug("Sent a packet of size %d (SFD: %d)", len(data), self._fd)

    def _flush(self) -> None:
        for _ in range(MAX_SEND_RETRIES):
            if not self._write_buffer:
                return
            _, writable, _ = select.select([], [self.sock], [], POLL_TIMEOUT)
            if not writable:
                continue
            try:
                sent = self.sock.send(self._write_buffer)
            except (BrokenPipeError, ConnectionResetError):
                raise ClientDisconnected(self._fd) from None
            del self._write_buffer[:sent]
        if self._write_buffer:
            log.warning("Max retries reached while sending data (SFD: %d)", self._fd)

    def receive_packet(self) -> bytes:
        """Block until a whole packet has arrived and return it.

        Returns an empty byte string once the socket is closed.
        """
        while True:
            if self.sock is None:
                return b""
            if self._pending:
                return self._pending.popleft()
            readable, _, _ = select.select([self.sock], [], [], POLL_TIMEOUT)
            if not readable:
                continue
            try:
                chunk = self.sock.recv(BUFFER_SIZE)
            except (ConnectionResetError, ConnectionAbortedError):
                raise ClientDisconnected(self._fd) from None
            if not chunk:
                raise ClientDisconnected(self._fd)
            self._pending.extend(self._decoder.feed(chunk))

    def close(self) -> None:
        """Close the socket; closing twice does nothing."""
        if self.sock is None:
            return
        self.sock.close()
        self.sock = None
        self._fd = -1

    def __enter__(self) -> "PacketSocket":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()