"""The render server: accepts workers, hands out tiles and collects results."""

from __future__ import annotations

import dataclasses
import logging
import select
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml

from raycluster.cluster import Cluster, ClusterState
from raycluster.packets import (
    EmptyByteBuffer,
    Packet,
    PacketType,
    UnexpectedRemainingData,
    UnknownPacket,
    packet_from_bytes,
    packet_type_name,
)
from raycluster.serialization import InvalidPacketSize, ValueOverflow
from raycluster.session import Session, SessionManager, SessionState, current_timestamp
from raycluster.transport import ClientDisconnected, PacketSocket

log = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_FREQUENCY = 1
DEFAULT_CLUSTER_TILE_SIZE = 1024
MAX_COLOR_SHADES = 255.0

PathLike = Union[str, Path]
Handler = Callable[[Packet, "Server", Session], None]


class Huh(Exception):
    """A worker answered with a timestamp later than the current time."""

    def __init__(self) -> None:
        super().__init__("Received a timestamp from the future")


@dataclass
class ServerProperties:
    """How the server was started."""

    port: int
    configuration_file_path: str = ""
    scene_filepaths: list[str] = field(default_factory=list)
    tile_size: int = DEFAULT_CLUSTER_TILE_SIZE
    heartbeat_frequency: int = DEFAULT_HEARTBEAT_FREQUENCY


@dataclass
class ServerSettings:
    """Values read from the server configuration file."""

    server_name: str
    server_description: str
    max_clients: int
    heartbeat_frequency: int = DEFAULT_HEARTBEAT_FREQUENCY


def _read_yaml(path: PathLike) -> tuple[str, Any]:
    text = Path(path).read_text(encoding="utf-8")
    return text, yaml.safe_load(text)


def load_settings(path: PathLike) -> ServerSettings:
    """Read the server configuration file.

    Raises KeyError when one of ``serverName``, ``serverDescription``,
    ``maxClients`` or ``heartbeatFrequency`` is missing.
    """
    _, config = _read_yaml(path)
    if not isinstance(config, dict):
        raise ValueError(f"{path}: server configuration must be a mapping")
    return ServerSettings(
        server_name=str(config["serverName"]),
        server_description=str(config["serverDescription"]),
        max_clients=int(config["maxClients"]) & 0xFFFF,
        heartbeat_frequency=int(config["heartbeatFrequency"]),
    )


def _handle_pong(packet: Packet, server: "Server", session: Session) -> None:
    now = current_timestamp()
    sent = packet.timestamp
    if sent > now:
        raise Huh()
    session.latency = now - sent


def _handle_cestciao(packet: Packet, server: "Server", session: Session) -> None:
    log.debug("Worker leaving (SID: %d)", session.id)
    session.state = SessionState.DEADASS


def _handle_finito(packet: Packet, server: "Server", session: Session) -> None:
    pixels = [pixel / MAX_COLOR_SHADES for pixel in packet.pixel_buffer]
    server.cluster.result += pixels
    server.cluster.on_tile_finished(session)
    tile = session.current_tile
    log.debug(
        "Render done. Tile: x=%d y=%d w=%d h=%d", tile.x, tile.y, tile.width, tile.height
    )
    log.debug("Client (SID: %d) finished rendering.", session.id)
    session.state = SessionState.READY


class ServerPacketManager:
    """Routes packets received from workers to their handlers."""

    def __init__(self, server: "Server") -> None:
        self.server = server
        self._handlers: dict[PacketType, Handler] = {}
        self.register_handler(PacketType.PONG, _handle_pong)
        self.register_handler(PacketType.CESTCIAO, _handle_cestciao)
        self.register_handler(PacketType.FINITO, _handle_finito)

    def register_handler(self, ptype: PacketType, handler: Handler) -> None:
        """Register ``handler`` for ``ptype``; the first registration for a type wins."""
        if ptype in self._handlers:
            return
        self._handlers[ptype] = handler
        log.debug("Registered Packet handler %s", packet_type_name(ptype))

    def dispatch(self, packet: Packet, session: Session) -> None:
        """Run the handler for the packet's type; packets without one are ignored."""
        log.debug(
            "Received Packet %s (SID: %d)", packet_type_name(packet.type), session.id
        )
        handler = self._handlers.get(packet.type)
        if handler is None:
            log.debug("No handler has been registered for this kind of Packet. Ignoring.")
            return
        handler(packet, self.server, session)


_REQUEST_ERRORS = (
    EmptyByteBuffer,
    UnknownPacket,
    UnexpectedRemainingData,
    InvalidPacketSize,
    ValueOverflow,
    Huh,
)


class Server:
    """Serves the scenes one after another to the connected workers.

    ``image_factory(width, height)`` builds the image collecting the
    result; it must support ``image += pixels`` and ``image.save(path)``.
    ``scene_validator(config)`` is called on every scene; a scene for which
    it raises or returns False is skipped.
    """

    def __init__(
        self,
        properties: ServerProperties,
        image_factory: Callable[[int, int], Any],
        scene_validator: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        if not properties.scene_filepaths:
            raise ValueError("at least one scene file path is required")
        self.properties = dataclasses.replace(
            properties, scene_filepaths=list(properties.scene_filepaths)
        )
        self._scene_validator = scene_validator
        self.scene_content, self.scene_config = _read_yaml(
            self.properties.scene_filepaths[0]
        )
        self.is_running = False
        self.current_scene = 0
        self._resolution: tuple[int, int] = (0, 0)
        self.session_manager = SessionManager()
        self.packet_manager = ServerPacketManager(self)
        self.cluster = Cluster(self, image_factory)

        self.settings = load_settings(self.properties.configuration_file_path)
        self.properties.heartbeat_frequency = self.settings.heartbeat_frequency
        self.cluster.heartbeat_frequency = self.properties.heartbeat_frequency
        if self.properties.tile_size == -1:
            self.properties.tile_size = DEFAULT_CLUSTER_TILE_SIZE

        for path in self.properties.scene_filepaths:
            log.debug("Found filepath: %s", path)

        self.server_socket = PacketSocket.listening(
            self.properties.port, self.settings.max_clients
        )
        self._clients: dict[int, PacketSocket] = {}

    def start(self) -> None:
        """Run the server until every scene is rendered or :meth:`stop` is called."""
        self.is_running = True
        log.info("Server started!")
        log.debug(
            "Server settings: port %d, configuration %r, name %r, description %r, "
            "max clients %d, scenes %r, heartbeat %ds",
            self.properties.port,
            self.properties.configuration_file_path or "NONE",
            self.settings.server_name,
            self.settings.server_description,
            self.settings.max_clients,
            self.properties.scene_filepaths,
            self.properties.heartbeat_frequency,
        )

        while True:
            state = self.cluster.state
            if state in (ClusterState.FINISHED, ClusterState.LOADING):
                if state is ClusterState.FINISHED:
                    self.current_scene += 1
                if not self._load_current_scene():
                    self.stop()
                    return
                self.cluster.setup_image_output(*self._resolution)
                self.cluster.state = (
                    ClusterState.READY
                    if state is ClusterState.FINISHED
                    else ClusterState.WAITING
                )

            self.cluster.update()
            if not self.is_running:
                break

            try:
                readable, _, _ = select.select(
                    [self.server_socket, *self._clients.values()],
                    [],
                    [],
                    self.properties.heartbeat_frequency,
                )
            except (OSError, ValueError):
                if not self.is_running:
                    break
                raise
            if not self.is_running:
                break

            for sock in readable:
                if sock is self.server_socket:
                    self._handle_new_connection()
                else:
                    self._handle_client_request(sock)

    def stop(self) -> None:
        """Say goodbye to every worker and close the listening socket."""
        if not self.is_running:
            return
        self.is_running = False
        self._shutdown()

    def _shutdown(self) -> None:
        self.session_manager.close_all_sessions()
        self._clients.clear()
        self.server_socket.close()

    def disconnect_client(self, sock: PacketSocket) -> None:
        """Forget a worker, giving its tile back to the queue, and close its socket."""
        fd = sock.fileno()
        session = self.session_manager.get_session(sock)
        self.cluster.remove_slave(session)
        self._clients.pop(fd, None)
        self.session_manager.close_session(sock)
        log.info("Client (SFD: %d) disconnected.", fd)

    def _load_current_scene(self) -> bool:
        paths = self.properties.scene_filepaths
        while self.current_scene < len(paths):
            path = paths[self.current_scene]
            self.scene_content, self.scene_config = _read_yaml(path)
            if self._check_current_scene():
                return True
            log.critical("Invalid scene file, skipping... (%s)", path)
            self.current_scene += 1
        return False

    def _check_current_scene(self) -> bool:
        try:
            resolution = self.scene_config["camera"]["resolution"]
            width, height = int(resolution["width"]), int(resolution["height"])
            if self._scene_validator is not None:
                if self._scene_validator(self.scene_config) is False:
                    return False
        except Exception:
            return False
        self._resolution = (width, height)
        return True

    def _handle_new_connection(self) -> None:
        conn, _ = self.server_socket.sock.accept()
        client = PacketSocket(conn)
        self._clients[client.fileno()] = client
        session = self.session_manager.create_session(client)
        self.cluster.add_slave(session)
        log.info("Client (SFD: %d) connected.", client.fileno())

    def _handle_client_request(self, sock: PacketSocket) -> None:
        fd = sock.fileno()
        try:
            raw = sock.receive_packet()
            if not raw:
                return
            log.debug("Received packet client (SFD: %d)", fd)
            packet = packet_from_bytes(raw)
            session = self.session_manager.get_session(sock)
            self.packet_manager.dispatch(packet, session)
        except ClientDisconnected:
            self.disconnect_client(sock)
        except _REQUEST_ERRORS as error:
            log.error("Error while handling Client's request (SFD: %d): %s", fd, error)

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *exc_info: object) -> None:
        log.info("Shutting down server...")
        self.is_running = False
        self._shutdown()
        log.info("Server shut down. Bye!")