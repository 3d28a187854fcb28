"""Worker-side connection to the render server."""

from __future__ import annotations

import logging
import select
import socket
import threading
from collections import deque
from typing import Callable, Optional

from raycluster.channel import Channel
from raycluster.packets import Packet, packet_from_bytes
from raycluster.transport import (
    BUFFER_SIZE,
    ClientDisconnected,
    FrameDecoder,
    PacketSocket,
)

log = logging.getLogger(__name__)

POLL_TIMEOUT = 0.2


class EmptyPacket(Exception):
    """An empty packet was received."""

    def __init__(self) -> None:
        super().__init__("Received an empty packet")


class ConnectionFail(Exception):
    """The connection to the server could not be made."""

    def __init__(self, port: int, address: str, reason: str) -> None:
        super().__init__(f"Could not connect to {address} on port {port}: {reason}")
        self.port = port
        self.address = address
        self.reason = reason


class Client:
    """A connection to the server with queues of packets to send and to handle."""

    def __init__(self, host: str, port: int) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.connect((host, port))
        except OSError as error:
            sock.close()
            raise ConnectionFail(port, host, error.strerror or str(error)) from error
        self._socket = PacketSocket(sock)
        self._to_send = Channel()
        self._to_process = Channel()
        self._decoder = FrameDecoder()
        self._inbox: deque[bytes] = deque()
        self._stop_requested = threading.Event()
        log.info("Server successfully connected to %s on port %d", host, port)

    def send_packet(self, packet: Optional[Packet]) -> None:
        """Send a packet right away; None is ignored."""
        if packet is None:
            return
        self._socket.send_packet(packet.serialize())

    def _read_raw(self) -> bytes:
        while not self._inbox:
            sock = self._socket.sock
            if sock is None:
                return b""
            readable, _, _ = select.select([sock], [], [], POLL_TIMEOUT)
            if not readable:
                continue
            try:
                chunk = sock.recv(BUFFER_SIZE)
            except (ConnectionResetError, ConnectionAbortedError):
                raise ClientDisconnected(self._socket.fileno()) from None
            if not chunk:
                raise ClientDisconnected(self._socket.fileno())
            self._inbox.extend(self._decoder.feed(chunk))
        return self._inbox.popleft()

    def receive_packet(self) -> Packet:
        """Block until a packet arrives and return it; empty packets raise EmptyPacket."""
        raw = self._read_raw()
        if not raw:
            raise EmptyPacket()
        log.debug("Received Packet")
        return packet_from_bytes(raw)

    def push_packet(self, packet: Packet) -> None:
        """Queue a packet to be sent by :meth:`run`."""
        self._to_send.push(packet)

    def pop_packet(self) -> Optional[Packet]:
        """Take the oldest received packet, or None if there is none."""
        return self._to_process.pop()

    def has_packet_to_process(self) -> bool:
        """Whether received packets are waiting."""
        return not self._to_process.empty()

    def run(self, on_error: Optional[Callable[[BaseException], None]]) -> None:
        """Send queued packets and queue received ones until stopped.

        An error ends the loop and is handed to ``on_error``, or raised if
        ``on_error`` is None.
        """
        try:
            while not self._stop_requested.is_set():
                self.send_packet(self._to_send.pop())
                if not self._inbox:
                    sock = self._socket.sock
                    if sock is None:
                        break
                    readable, _, _ = select.select([sock], [], [], POLL_TIMEOUT)
                    if not readable:
                        continue
                self._to_process.push(self.receive_packet())
        except Exception as error:
            if on_error is None:
                raise
            on_error(error)

    def stop(self) -> None:
        """Ask :meth:`run` to return."""
        self._stop_requested.set()

    def close(self) -> None:
        """Close the connection; closing twice does nothing."""
        if self._socket.sock is None:
            return
        self._socket.close()
        log.info("Disconnecting from server.")

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()