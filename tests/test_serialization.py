import pytest

from raycluster.serialization import (
    Deserializer,
    InvalidPacketSize,
    Serializer,
    ValueOverflow,
)
from raycluster.vector import Vec


def test_uint_is_big_endian():
    s = Serializer()
    s.write_uint(1, 4)
    assert s.data() == b"\x00\x00\x00\x01"


def test_bool_is_one_byte():
    s = Serializer()
    s.write_bool(True)
    assert s.data() == b"\x01"


def test_string_has_length_prefix():
    s = Serializer()
    s.write_string("ab")
    assert s.data() == b"\x00\x00\x00\x02ab"


@pytest.mark.parametrize("size", [1, 2, 4, 8])
def test_uint_round_trip_at_maximum(size):
    value = 2 ** (8 * size) - 1
    s = Serializer()
    s.write_uint(value, size)
    assert len(s.data()) == size
    d = Deserializer(s.data())
    assert d.read_uint(size) == value
    assert not d.has_remaining()


def test_uint_too_large_overflows():
    s = Serializer()
    with pytest.raises(ValueOverflow):
        s.write_uint(256, 1)


def test_negative_uint_overflows():
    s = Serializer()
    with pytest.raises(ValueOverflow):
        s.write_uint(-1, 4)


def test_bad_integer_size_rejected():
    with pytest.raises(ValueError):
        Serializer().write_uint(1, 3)
    with pytest.raises(ValueError):
        Deserializer(b"\x00\x00\x00").read_uint(3)


def test_mixed_values_round_trip():
    s = Serializer()
    s.write_uint(7, 1)
    s.write_string("scene: résumé")
    s.write_bool(False)
    s.write_double(-2.5)
    s.write_uint(123456789, 8)
    d = Deserializer(s.data())
    assert d.read_uint(1) == 7
    assert d.read_string() == "scene: résumé"
    assert d.read_bool() is False
    assert d.read_double() == -2.5
    assert d.read_uint(8) == 123456789
    assert d.remaining() == 0


def test_vec_round_trip():
    s = Serializer()
    s.write_vec(Vec(0.25, 1.0, 255.0))
    assert len(s.data()) == 24
    assert Deserializer(s.data()).read_vec(3) == Vec(0.25, 1.0, 255.0)


def test_vector_of_colors_round_trip():
    colors = [Vec(1.0, 2.0, 3.0), Vec(0.0, 0.5, 0.75)]
    s = Serializer()
    s.write_vector(colors, s.write_vec)
    d = Deserializer(s.data())
    assert d.read_vector(lambda: d.read_vec(3)) == colors
    assert not d.has_remaining()


def test_empty_vector_round_trip():
    s = Serializer()
    s.write_vector([], s.write_vec)
    d = Deserializer(s.data())
    assert d.read_vector(lambda: d.read_vec(3)) == []
    assert d.remaining() == 0


def test_read_past_end_raises():
    d = Deserializer(b"\x00\x01")
    with pytest.raises(InvalidPacketSize) as info:
        d.read_uint(4)
    assert info.value.expected == 4
    assert info.value.actual == 2


def test_truncated_string_raises():
    s = Serializer()
    s.write_string("hello")
    with pytest.raises(InvalidPacketSize):
        Deserializer(s.data()[:-1]).read_string()


def test_bool_above_one_overflows():
    with pytest.raises(ValueOverflow):
        Deserializer(b"\x02").read_bool()


def test_remaining_tracks_offset():
    d = Deserializer(b"\x01\x02\x03")
    assert d.remaining() == 3
    d.read_uint(1)
    assert d.remaining() == 2
    assert d.has_remaining()


def test_clear_empties_buffer():
    s = Serializer()
    s.write_uint(5, 2)
    s.clear()
    assert s.data() == b""