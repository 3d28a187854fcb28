import socket

import pytest

from raycluster.packets import Kiss, Ping, packet_from_bytes
from raycluster.session import (
    Session,
    SessionManager,
    SessionState,
    current_timestamp,
)
from raycluster.tile import Tile
from raycluster.transport import PacketSocket


@pytest.fixture
def pairs():
    created = []

    def make():
        a, b = socket.socketpair()
        local, peer = PacketSocket(a), PacketSocket(b)
        created.extend([local, peer])
        return local, peer

    yield make
    for sock in created:
        sock.close()


def test_new_session_defaults(pairs):
    local, _ = pairs()
    session = Session(local, 7)
    assert session.id == 7
    assert session.control_socket is local
    assert session.latency == 0
    assert session.state is SessionState.READY
    assert session.current_tile == Tile()


def test_refresh_latency_sends_current_timestamp(pairs):
    local, peer = pairs()
    session = Session(local, 0)
    before = current_timestamp()
    session.refresh_latency()
    after = current_timestamp()
    packet = packet_from_bytes(peer.receive_packet())
    assert isinstance(packet, Ping)
    assert before <= packet.timestamp <= after


def test_create_session_assigns_increasing_ids(pairs):
    manager = SessionManager()
    first, _ = pairs()
    second, _ = pairs()
    s1 = manager.create_session(first)
    s2 = manager.create_session(second)
    assert s1.id == 0
    assert s2.id == s1.id + 1
    assert manager.sessions() == [s1, s2]


def test_create_session_twice_keeps_one(pairs):
    manager = SessionManager()
    local, _ = pairs()
    s1 = manager.create_session(local)
    s2 = manager.create_session(local)
    assert s1 is s2
    assert len(manager.sessions()) == 1


def test_get_and_has_session(pairs):
    manager = SessionManager()
    local, _ = pairs()
    other, _ = pairs()
    session = manager.create_session(local)
    assert manager.has_session(local)
    assert not manager.has_session(other)
    assert manager.get_session(local) is session
    with pytest.raises(KeyError):
        manager.get_session(other)


def test_close_session_closes_socket(pairs):
    manager = SessionManager()
    local, _ = pairs()
    manager.create_session(local)
    manager.close_session(local)
    assert local.fileno() == -1
    assert manager.sessions() == []
    assert not manager.has_session(local)


def test_close_unknown_session_raises(pairs):
    manager = SessionManager()
    local, _ = pairs()
    with pytest.raises(KeyError):
        manager.close_session(local)


def test_close_all_sessions_sends_kiss(pairs):
    manager = SessionManager()
    local1, peer1 = pairs()
    local2, peer2 = pairs()
    manager.create_session(local1)
    manager.create_session(local2)
    manager.close_all_sessions()
    assert manager.sessions() == []
    assert local1.fileno() == -1 and local2.fileno() == -1
    assert packet_from_bytes(peer1.receive_packet()) == Kiss()
    assert packet_from_bytes(peer2.receive_packet()) == Kiss()