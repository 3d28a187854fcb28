"""Big-endian binary writer and reader used by the network packets."""

from __future__ import annotations

import struct
from typing import Callable, Iterable, TypeVar

from raycluster.vector import Vec

T = TypeVar("T")

_UINT32_MAX = 0xFFFFFFFF
_SIZES = (1, 2, 4, 8)
_DOUBLE = struct.Struct(">d")
_TEXT_ENCODING = "utf-8"
_TEXT_ERRORS = "surrogateescape"


class ValueOverflow(Exception):
    """A value does not fit in the field meant to hold it."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Value overflow: {value}")
        self.value = value


class InvalidPacketSize(Exception):
    """A read would go past the end of the buffer."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Invalid packet size: expected at least {expected} bytes, got {actual}"
        )
        self.expected = expected
        self.actual = actual


def _check_size(size: int) -> None:
    if size not in _SIZES:
        raise ValueError(f"integer size must be one of {_SIZES}, got {size}")


class Serializer:
    """Accumulates values into a byte buffer in network byte order."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def write_bytes(self, data: bytes) -> None:
        """Append raw bytes unchanged."""
        self._buf += data

    def write_uint(self, value: int, size: int) -> None:
        """Append an unsigned integer of ``size`` bytes, big-endian."""
        _check_size(size)
        try:
            self._buf += int(value).to_bytes(size, "big", signed=False)
        except OverflowError:
            raise ValueOverflow(value) from None

    def write_double(self, value: float) -> None:
        """Append an IEEE 754 double, big-endian."""
        self._buf += _DOUBLE.pack(float(value))

    def write_bool(self, value: bool) -> None:
        """Append a boolean as a single byte, 1 or 0."""
        self._buf.append(1 if value else 0)

    def write_string(self, text: str) -> None:
        """Append a string as a 32-bit length followed by its bytes."""
        raw = text.encode(_TEXT_ENCODING, _TEXT_ERRORS)
        if len(raw) > _UINT32_MAX:
            raise ValueOverflow(len(raw))
        self.write_uint(len(raw), 4)
        self._buf += raw

    def write_vec(self, vec: Vec) -> None:
        """Append every component of a vector as a double."""
        for component in vec:
            self.write_double(component)

    def write_vector(self, items: Iterable[T], write_item: Callable[[T], None]) -> None:
        """Append a 32-bit count, then each item written by ``write_item``."""
        items = list(items)
        if len(items) > _UINT32_MAX:
            raise ValueOverflow(len(items))
        self.write_uint(len(items), 4)
        for item in items:
            write_item(item)

    def clear(self) -> None:
        """Drop everything written so far."""
        self._buf.clear()

    def data(self) -> bytes:
        """Return the bytes written so far."""
        return bytes(self._buf)


class Deserializer:
    """Reads values back from a byte buffer written by :class:`Serializer`."""

    def __init__(self, data: bytes) -> None:
        self._buf = bytes(data)
        self._offset = 0

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._buf):
            raise InvalidPacketSize(end, len(self._buf))
        chunk = self._buf[self._offset:end]
        self._offset = end
        return chunk

    def read_uint(self, size: int) -> int:
        """Read an unsigned big-endian integer of ``size`` bytes."""
        _check_size(size)
        return int.from_bytes(self._take(size), "big", signed=False)

    def read_double(self) -> float:
        """Read a big-endian IEEE 754 double."""
        return _DOUBLE.unpack(self._take(_DOUBLE.size))[0]

    def read_bool(self) -> bool:
        """Read a single-byte boolean; any byte other than 0 or 1 is refused."""
        byte = self.read_uint(1)
        if byte > 1:
            raise ValueOverflow(byte)
        return byte == 1

    def read_string(self) -> str:
        """Read a string stored as a 32-bit length and its bytes."""
        length = self.read_uint(4)
        return self._take(length).decode(_TEXT_ENCODING, _TEXT_ERRORS)

    def read_vec(self, n: int) -> Vec:
        """Read a vector of ``n`` doubles."""
        return Vec(*(self.read_double() for _ in range(n)))

    def read_vector(self, read_item: Callable[[], T]) -> list[T]:
        """Read a 32-bit count, then that many items using ``read_item``."""
        count = self.read_uint(4)
        return [read_item() for _ in range(count)]

    def has_remaining(self) -> bool:
        """Whether unread bytes are left."""
        return self._offset < len(self._buf)

    def remaining(self) -> int:
        """Number of unread bytes."""
        return len(self._buf) - self._offset