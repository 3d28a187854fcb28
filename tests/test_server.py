import socket
import threading
from pathlib import Path

import pytest
import yaml

from raycluster.client import Client
from raycluster.cluster import ClusterState
from raycluster.packets import Cestciao, Finito, Kiss, PacketType, Pong, Workslave
from raycluster.server import (
    DEFAULT_CLUSTER_TILE_SIZE,
    Huh,
    Server,
    ServerProperties,
    ServerSettings,
    load_settings,
)
from raycluster.session import Session, SessionState, current_timestamp
from raycluster.transport import PacketSocket
from raycluster.vector import Vec


class FakeImage:
    def __init__(self, width, height):
        self.size = (width, height)
        self.pixels = []
        self.saved = []

    def __iadd__(self, pixels):
        self.pixels.extend(pixels)
        return self

    def save(self, path):
        Path(path).write_text("image")
        self.saved.append(path)


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return str(path)


def server_config(tmp_path, max_clients=1, heartbeat=1):
    return write_yaml(
        tmp_path / "server.yml",
        {
            "serverName": "render farm",
            "serverDescription": "test cluster",
            "maxClients": max_clients,
            "heartbeatFrequency": heartbeat,
        },
    )


def scene_file(tmp_path, name="scene.yml", width=4, height=4):
    return write_yaml(
        tmp_path / name,
        {
            "outputDirectory": str(tmp_path / "renders"),
            "camera": {"resolution": {"width": width, "height": height}},
        },
    )


@pytest.fixture
def server(tmp_path):
    props = ServerProperties(
        port=0,
        configuration_file_path=server_config(tmp_path, heartbeat=3),
        scene_filepaths=[scene_file(tmp_path)],
        tile_size=-1,
    )
    with Server(props, FakeImage) as srv:
        yield srv


@pytest.fixture
def session():
    a, b = socket.socketpair()
    sess = Session(PacketSocket(a), 7)
    yield sess
    sess.control_socket.close()
    b.close()


def test_load_settings_reads_fields(tmp_path):
    settings = load_settings(server_config(tmp_path, max_clients=5, heartbeat=2))
    assert settings == ServerSettings("render farm", "test cluster", 5, 2)


def test_load_settings_missing_key(tmp_path):
    path = write_yaml(tmp_path / "bad.yml", {"serverName": "x"})
    with pytest.raises(KeyError):
        load_settings(path)


def test_server_requires_a_scene(tmp_path):
    props = ServerProperties(port=0, configuration_file_path=server_config(tmp_path))
    with pytest.raises(ValueError):
        Server(props, FakeImage)


def test_auto_tile_size_and_heartbeat(server):
    assert server.properties.tile_size == DEFAULT_CLUSTER_TILE_SIZE
    assert server.properties.heartbeat_frequency == 3
    assert server.cluster.heartbeat_frequency == 3
    assert server.settings.max_clients == 1


def test_pong_sets_latency(server, session):
    sent = current_timestamp() - 50
    server.packet_manager.dispatch(Pong(timestamp=sent), session)
    assert 50 <= session.latency < 60_000


def test_pong_from_the_future_raises(server, session):
    with pytest.raises(Huh):
        server.packet_manager.dispatch(Pong(timestamp=current_timestamp() + 60_000), session)


def test_cestciao_marks_session_dead(server, session):
    server.packet_manager.dispatch(Cestciao(), session)
    assert session.state is SessionState.DEADASS


def test_finito_scales_pixels_and_frees_worker(server, session):
    server.cluster.setup_image_output(2, 1)
    session.state = SessionState.RENDERING
    packet = Finito([Vec(255.0, 0.0, 510.0), Vec(0.0, 255.0, 0.0)])
    server.packet_manager.dispatch(packet, session)
    assert server.cluster.result.pixels == [Vec(1.0, 0.0, 2.0), Vec(0.0, 1.0, 0.0)]
    assert session.state is SessionState.READY
    assert server.cluster.assigned_tiles() == 0


def test_packet_without_handler_is_ignored(server, session):
    server.packet_manager.dispatch(Kiss(), session)
    assert session.state is SessionState.READY
    assert session.latency == 0


def test_first_registered_handler_wins(server, session):
    calls = []
    server.packet_manager.register_handler(
        PacketType.PONG, lambda packet, srv, sess: calls.append(packet)
    )
    server.packet_manager.dispatch(Pong(timestamp=current_timestamp()), session)
    assert calls == []
    assert session.latency >= 0


def test_new_handler_is_called(server, session):
    calls = []
    server.packet_manager.register_handler(
        PacketType.KISS, lambda packet, srv, sess: calls.append((packet, srv, sess))
    )
    packet = Kiss()
    server.packet_manager.dispatch(packet, session)
    assert calls == [(packet, server, session)]


def test_start_skips_invalid_scenes(tmp_path):
    def reject(config):
        raise ValueError("bad scene")

    props = ServerProperties(
        port=0,
        configuration_file_path=server_config(tmp_path),
        scene_filepaths=[scene_file(tmp_path, "a.yml"), scene_file(tmp_path, "b.yml")],
    )
    with Server(props, FakeImage, reject) as srv:
        srv.start()
        assert srv.current_scene == 2
        assert srv.is_running is False
        assert srv.cluster.state is ClusterState.LOADING


def test_full_render_with_one_worker(tmp_path):
    scene_path = scene_file(tmp_path, width=4, height=4)
    props = ServerProperties(
        port=0,
        configuration_file_path=server_config(tmp_path, max_clients=1, heartbeat=1),
        scene_filepaths=[scene_path],
        tile_size=4,
    )
    errors = []
    with Server(props, FakeImage) as srv:
        port = srv.server_socket.sock.getsockname()[1]

        def run():
            try:
                srv.start()
            except Exception as error:
                errors.append(error)
                srv.stop()

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        with Client("127.0.0.1", port) as worker:
            packet = worker.receive_packet()
            while not isinstance(packet, Workslave):
                packet = worker.receive_packet()
            assert (packet.x, packet.y, packet.width, packet.height) == (0, 0, 4, 4)
            assert packet.scene_content == Path(scene_path).read_text()
            pixels = [Vec(255.0, 255.0, 255.0)] * 16
            worker.send_packet(Finito(pixels))
            thread.join(timeout=20)
        assert not thread.is_alive()
        assert errors == []
        image = srv.cluster.result
        assert image.pixels == [Vec(1.0, 1.0, 1.0)] * 16
        assert len(image.saved) == 1
        assert Path(image.saved[0]).parent == tmp_path / "renders"
        assert srv.cluster.state is ClusterState.FINISHED
        assert srv.is_running is False