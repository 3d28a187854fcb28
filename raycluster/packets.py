"""Packets exchanged between the render server and its workers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar, Union

from raycluster.serialization import Deserializer, Serializer
from raycluster.vector import Color, Vec

_COLOR_SIZE = 3


class PacketType(IntEnum):
    """The first byte of every packet."""

    UNKNOWN = 0x00
    PING = 0x01  # server -> client: asks for a worker's status
    PONG = 0x02  # client -> server: answer to PING
    KISS = 0x03  # server -> client: disconnects a client
    WORKSLAVE = 0x04  # server -> client: a new tile to render
    CESTCIAO = 0x05  # client -> server: the worker is leaving
    FINITO = 0x06  # client -> server: a tile has been rendered
    NVMSTOP = 0x07  # server -> client: stop the current render

    @classmethod
    def from_raw(cls, raw: int) -> "PacketType":
        """Return the type for a raw byte; unknown bytes give UNKNOWN."""
        try:
            ptype = cls(raw)
        except ValueError:
            return cls.UNKNOWN
        return ptype


class EmptyByteBuffer(Exception):
    """A packet was built from an empty buffer."""

    def __init__(self) -> None:
        super().__init__("Cannot build a packet from an empty byte buffer")


class UnknownPacket(Exception):
    """The packet type byte is not one that is known."""

    def __init__(self, raw: int = 0) -> None:
        super().__init__(f"Unknown packet type: 0x{raw:02X}")
        self.raw = raw


class UnexpectedRemainingData(Exception):
    """Bytes were left over after a packet was read."""

    def __init__(self, ptype: PacketType) -> None:
        super().__init__(
            f"Unexpected remaining data in packet {packet_type_name(ptype)}"
        )
        self.packet_type = ptype


def packet_type_name(ptype: Union[PacketType, int]) -> str:
    """Name of a packet type, or ``"UNKNOWN"``."""
    try:
        return PacketType(ptype).name
    except ValueError:
        return "UNKNOWN"


class Packet:
    """Base class of all packets: a type byte followed by a body."""

    packet_type: ClassVar[PacketType] = PacketType.UNKNOWN

    @property
    def type(self) -> PacketType:
        return self.packet_type

    def _write_body(self, writer: Serializer) -> None:
        """Write the fields that follow the type byte."""

    @classmethod
    def _read_body(cls, reader: Deserializer) -> dict[str, Any]:
        """Read the fields that follow the type byte, as constructor arguments."""
        return {}

    def serialize(self) -> bytes:
        """Return the packet's bytes for sending."""
        writer = Serializer()
        writer.write_uint(int(self.packet_type), 1)
        self._write_body(writer)
        return writer.data()

    @classmethod
    def deserialize(cls, data: bytes) -> "Packet":
        """Build a packet of this class from its bytes."""
        reader = Deserializer(data)
        ptype = PacketType.from_raw(reader.read_uint(1))
        fields = cls._read_body(reader)
        if reader.has_remaining():
            raise UnexpectedRemainingData(ptype)
        return cls(**fields)


@dataclass
class Ping(Packet):
    """Heartbeat carrying the server's timestamp."""

    packet_type: ClassVar[PacketType] = PacketType.PING

    timestamp: int = 0

    def _write_body(self, writer: Serializer) -> None:
        writer.write_uint(self.timestamp, 8)

    @classmethod
    def _read_body(cls, reader: Deserializer) -> dict[str, Any]:
        return {"timestamp": reader.read_uint(8)}


@dataclass
class Pong(Packet):
    """Answer to a ping, echoing its timestamp.

    The progress is kept locally only; it is not sent on the wire.
    """

    packet_type: ClassVar[PacketType] = PacketType.PONG

    timestamp: int = 0
    progress: int = 0

    def _write_body(self, writer: Serializer) -> None:
        writer.write_uint(self.timestamp, 8)

    @classmethod
    def _read_body(cls, reader: Deserializer) -> dict[str, Any]:
        return {"timestamp": reader.read_uint(8)}


@dataclass
class Kiss(Packet):
    """Tells a client to disconnect."""

    packet_type: ClassVar[PacketType] = PacketType.KISS


@dataclass
class Cestciao(Packet):
    """Sent by a worker that is leaving."""

    packet_type: ClassVar[PacketType] = PacketType.CESTCIAO


@dataclass
class Nvmstop(Packet):
    """Tells a worker to stop its current render."""

    packet_type: ClassVar[PacketType] = PacketType.NVMSTOP


@dataclass
class Workslave(Packet):
    """A tile to render, with the full scene description."""

    packet_type: ClassVar[PacketType] = PacketType.WORKSLAVE

    scene_content: str = ""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def _write_body(self, writer: Serializer) -> None:
        writer.write_string(self.scene_content)
        for value in (self.x, self.y, self.width, self.height):
            writer.write_uint(value, 4)

    @classmethod
    def _read_body(cls, reader: Deserializer) -> dict[str, Any]:
        return {
            "scene_content": reader.read_string(),
            "x": reader.read_uint(4),
            "y": reader.read_uint(4),
            "width": reader.read_uint(4),
            "height": reader.read_uint(4),
        }


@dataclass
class Finito(Packet):
    """The pixels of a finished tile."""

    packet_type: ClassVar[PacketType] = PacketType.FINITO

    pixel_buffer: list[Vec] = field(default_factory=list)

    def _write_body(self, writer: Serializer) -> None:
        writer.write_vector(self.pixel_buffer, writer.write_vec)

    @classmethod
    def _read_body(cls, reader: Deserializer) -> dict[str, Any]:
        pixels: list[Color] = reader.read_vector(lambda: reader.read_vec(_COLOR_SIZE))
        return {"pixel_buffer": pixels}


_PACKET_CLASSES: dict[PacketType, type[Packet]] = {
    cls.packet_type: cls
    for cls in (Ping, Pong, Kiss, Workslave, Cestciao, Finito, Nvmstop)
}


def packet_from_bytes(data: bytes) -> Packet:
    """Build the right kind of packet from received bytes."""
    if not data:
        raise EmptyByteBuffer()
    raw = data[0]
    ptype = PacketType.from_raw(raw)
    cls = _PACKET_CLASSES.get(ptype)
    if cls is None:
        raise UnknownPacket(raw)
    return cls.deserialize(data)