"""Splits an image into tiles and hands them out to connected workers."""

from __future__ import annotations

import logging
import os
import time
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from raycluster.packets import Workslave
from raycluster.session import Session, SessionState
from raycluster.tile import Tile

log = logging.getLogger(__name__)


class ClusterState(Enum):
    """Progress of the cluster through a scene."""

    LOADING = "loading"
    WAITING = "waiting"
    READY = "ready"
    RENDERING = "rendering"
    FINISHED = "finished"


def _timestamp_name() -> str:
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")


class Cluster:
    """Distributes the tiles of one image among worker sessions.

    ``server`` must provide ``settings.max_clients``,
    ``properties.tile_size``, ``scene_config`` (a mapping holding
    ``"outputDirectory"``) and ``scene_content`` (the raw scene text sent
    to the workers). ``image_factory(width, height)`` builds the image
    that collects the result; it must have a ``save(path)`` method.
    """

    def __init__(self, server: Any, image_factory: Callable[[int, int], Any]) -> None:
        self.server = server
        self._image_factory = image_factory
        self.state = ClusterState.LOADING
        self.heartbeat_frequency = 0
        self.result: Any = None
        self._dimensions: Optional[tuple[int, int]] = None
        self._slaves: dict[int, Session] = {}
        self._total_tiles = 0
        self._pending: deque[Tile] = deque()
        self._assigned: dict[int, Tile] = {}

    def update(self) -> None:
        """Advance the state machine by one step."""
        self._update_state()
        if self.state is ClusterState.WAITING:
            return
        self._update_slaves_data()
        if self.state is ClusterState.READY:
            self._start_render()
        if self.state is ClusterState.RENDERING:
            self._check_render_status()

    def _update_state(self) -> None:
        if self.state is ClusterState.WAITING:
            if len(self._slaves) == self.server.settings.max_clients:
                self.state = ClusterState.READY

    def _update_slaves_data(self) -> None:
        now = time.monotonic()
        for slave in list(self._slaves.values()):
            if int(now - slave.last_latency_refresh) >= self.heartbeat_frequency:
                slave.refresh_latency()
                slave.last_latency_refresh = now
                log.debug("Slave latency: %d ms", slave.latency)

    def add_slave(self, session: Session) -> None:
        """Add a worker; adding one twice does nothing."""
        self._slaves.setdefault(session.id, session)

    def remove_slave(self, session: Session) -> None:
        """Remove a worker, putting back any tile it was rendering."""
        if session.id not in self._slaves:
            return
        tile = self._assigned.pop(session.id, None)
        if tile is not None:
            self._pending.append(tile)
        del self._slaves[session.id]

    def setup_image_output(self, width: int, height: int) -> None:
        """Create the image that will receive the finished tiles."""
        self.result = self._image_factory(width, height)
        self._dimensions = (width, height)

    def on_tile_finished(self, session: Session) -> None:
        """Mark the tile of ``session`` as done."""
        self._assigned.pop(session.id, None)

    def _start_render(self) -> None:
        if self._dimensions is None:
            raise RuntimeError("image output is not set up")
        self.state = ClusterState.RENDERING
        self.create_tiles(*self._dimensions)

    def _check_render_status(self) -> None:
        if not self._pending and not self._assigned:
            log.debug("Everything is finished.")
            output_directory = str(self.server.scene_config["outputDirectory"])
            os.makedirs(output_directory, exist_ok=True)
            self.result.save(os.path.join(output_directory, _timestamp_name()))
            log.info("Done.")
            self.state = ClusterState.FINISHED
            return

        for slave in list(self._slaves.values()):
            if slave.state is SessionState.READY:
                if not self._pending:
                    log.debug("Nothing to give, just not done yet.")
                    return
                tile = self._pending.popleft()
                slave.state = SessionState.RENDERING
                self._assigned[slave.id] = tile
                slave.current_tile = tile
                packet = Workslave(
                    self.server.scene_content, tile.x, tile.y, tile.width, tile.height
                )
                log.debug(
                    "Giving tile x=%d y=%d w=%d h=%d",
                    tile.x, tile.y, tile.width, tile.height,
                )
                slave.control_socket.send_packet(packet.serialize())
            elif slave.state is SessionState.RENDERING:
                log.debug("Slave is still rendering, let it work...")

    def create_tiles(self, width: int, height: int) -> None:
        """Cut a ``width`` by ``height`` image into square tiles, row by row."""
        self._pending = deque()
        self._assigned.clear()
        self._total_tiles = 0
        size = self.server.properties.tile_size
        if size <= 0:
            raise ValueError(f"tile size must be positive, got {size}")
        for y in range(0, height, size):
            for x in range(0, width, size):
                tile = Tile(x, y, min(size, width - x), min(size, height - y))
                self._pending.append(tile)
                self._total_tiles += 1
                log.debug(
                    "Generated tile: x=%d, y=%d, w=%d, h=%d",
                    tile.x, tile.y, tile.width, tile.height,
                )

    def pending_tiles(self) -> int:
        """Number of tiles not yet handed out."""
        return len(self._pending)

    def assigned_tiles(self) -> int:
        """Number of tiles being rendered."""
        return len(self._assigned)

    def done_tiles(self) -> int:
        """Number of finished tiles."""
        return self._total_tiles - len(self._pending) - len(self._assigned)

    def total_tiles(self) -> int:
        """Number of tiles in the current image."""
        return self._total_tiles

    def pending(self) -> list[Tile]:
        """The tiles not yet handed out, in order."""
        return list(self._pending)