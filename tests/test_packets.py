import pytest

from raycluster.packets import (
    Cestciao,
    EmptyByteBuffer,
    Finito,
    Kiss,
    Nvmstop,
    Ping,
    Pong,
    PacketType,
    UnexpectedRemainingData,
    UnknownPacket,
    Workslave,
    packet_from_bytes,
    packet_type_name,
)
from raycluster.serialization import InvalidPacketSize
from raycluster.vector import Vec


@pytest.mark.parametrize(
    "raw, expected",
    [
        (0x01, PacketType.PING),
        (0x02, PacketType.PONG),
        (0x03, PacketType.KISS),
        (0x04, PacketType.WORKSLAVE),
        (0x05, PacketType.CESTCIAO),
        (0x06, PacketType.FINITO),
        (0x07, PacketType.NVMSTOP),
        (0x00, PacketType.UNKNOWN),
        (0x42, PacketType.UNKNOWN),
    ],
)
def test_from_raw(raw, expected):
    assert PacketType.from_raw(raw) is expected


def test_type_names():
    assert packet_type_name(PacketType.WORKSLAVE) == "WORKSLAVE"
    assert packet_type_name(PacketType.NVMSTOP) == "NVMSTOP"
    assert packet_type_name(0x99) == "UNKNOWN"


@pytest.mark.parametrize(
    "packet, type_byte",
    [(Kiss(), 0x03), (Cestciao(), 0x05), (Nvmstop(), 0x07)],
)
def test_empty_packets_are_one_byte(packet, type_byte):
    assert packet.serialize() == bytes([type_byte])
    assert packet_from_bytes(packet.serialize()) == packet


def test_ping_wire_format():
    data = Ping(7).serialize()
    assert data[0] == 0x01
    assert data[1:] == (7).to_bytes(8, "big")


@pytest.mark.parametrize(
    "packet",
    [
        Ping(1_700_000_000_123),
        Pong(99),
        Workslave("camera: {}\n", 0, 1024, 512, 256),
        Finito([Vec(1.0, 0.5, 0.25), Vec(255.0, 0.0, 12.5)]),
        Finito(),
    ],
)
def test_round_trip(packet):
    rebuilt = packet_from_bytes(packet.serialize())
    assert type(rebuilt) is type(packet)
    assert rebuilt == packet


def test_pong_progress_is_not_sent():
    rebuilt = packet_from_bytes(Pong(5, 42).serialize())
    assert rebuilt.timestamp == 5
    assert rebuilt.progress == 0


def test_workslave_fields_after_round_trip():
    packet = Workslave("scene", 3, 4, 5, 6)
    rebuilt = Workslave.deserialize(packet.serialize())
    assert (rebuilt.scene_content, rebuilt.x, rebuilt.y, rebuilt.width, rebuilt.height) == (
        "scene", 3, 4, 5, 6,
    )
    assert rebuilt.type is PacketType.WORKSLAVE


def test_finito_size_matches_pixels():
    pixels = [Vec(0.0, 0.0, 0.0)] * 4
    data = Finito(pixels).serialize()
    assert len(data) == 1 + 4 + len(pixels) * 3 * 8


def test_empty_buffer_raises():
    with pytest.raises(EmptyByteBuffer):
        packet_from_bytes(b"")


def test_unknown_type_raises():
    with pytest.raises(UnknownPacket):
        packet_from_bytes(b"\x2a\x00")


def test_remaining_data_raises():
    with pytest.raises(UnexpectedRemainingData) as info:
        packet_from_bytes(Kiss().serialize() + b"\x00")
    assert info.value.packet_type is PacketType.KISS


def test_truncated_packet_raises():
    with pytest.raises(InvalidPacketSize):
        packet_from_bytes(Ping(3).serialize()[:-1])