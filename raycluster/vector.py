"""N-dimensional vectors, points and colours with the usual arithmetic."""

from __future__ import annotations

import math
import random
from numbers import Real
from typing import Iterable, Iterator, Union

Scalar = Union[int, float]

_generator = random.Random(5489)


def random_double(low: float = 0.0, high: float = 1.0) -> float:
    """Return a pseudo-random float in ``[low, high)``."""
    return low + (high - low) * _generator.random()


def _is_scalar(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


class Vec:
    """An immutable N-dimensional vector of floats."""

    __slots__ = ("_data",)

    def __init__(self, *args: Scalar) -> None:
        for value in args:
            if not _is_scalar(value):
                raise TypeError(f"vector components must be numbers, got {value!r}")
        self._data: tuple[float, ...] = tuple(float(value) for value in args)

    @classmethod
    def _from_iter(cls, values: Iterable[float]) -> "Vec":
        return cls(*values)

    @classmethod
    def zeros(cls, n: int) -> "Vec":
        """Return the zero vector of dimension ``n``."""
        if n < 0:
            raise ValueError("dimension must not be negative")
        return cls(*([0.0] * n))

    @classmethod
    def random(cls, n: int, low: float = 0.0, high: float = 1.0) -> "Vec":
        """Return a vector of ``n`` components drawn from ``[low, high)``."""
        return cls(*(random_double(low, high) for _ in range(n)))

    @classmethod
    def random_unit(cls) -> "Vec":
        """Return a random 3D vector of length 1, uniform over the sphere."""
        while True:
            p = cls.random(3, -1.0, 1.0)
            squared = p.length() ** 2
            if 0.0 < squared <= 1.0:
                return p / math.sqrt(squared)

    def length(self) -> float:
        """Euclidean length of the vector."""
        return math.sqrt(sum(value * value for value in self._data))

    def normalized(self) -> "Vec":
        """Return the unit vector in the same direction; a zero vector is returned unchanged."""
        size = self.length()
        if size == 0.0:
            return self._from_iter(self._data)
        return self._from_iter(value / size for value in self._data)

    def clamped(self, low: float, high: float) -> "Vec":
        """Return a copy with every component clamped to ``[low, high]``."""
        return self._from_iter(min(max(value, low), high) for value in self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index: int) -> float:
        return self._data[index]

    def __iter__(self) -> Iterator[float]:
        return iter(self._data)

    def _combine(self, other: object, op) -> "Vec":
        if isinstance(other, Vec):
            if len(other) != len(self):
                raise ValueError(
                    f"dimension mismatch: {len(self)} and {len(other)}"
                )
            return Vec(*(op(a, b) for a, b in zip(self._data, other._data)))
        if _is_scalar(other):
            scalar = float(other)
            return Vec(*(op(a, scalar) for a in self._data))
        return NotImplemented

    def __add__(self, other: object) -> "Vec":
        return self._combine(other, lambda a, b: a + b)

    def __radd__(self, other: object) -> "Vec":
        return self.__add__(other)

    def __sub__(self, other: object) -> "Vec":
        return self._combine(other, lambda a, b: a - b)

    def __rsub__(self, other: object) -> "Vec":
        # A scalar on the left applies the operation as if it were on the right.
        return self.__sub__(other)

    def __mul__(self, other: object) -> "Vec":
        return self._combine(other, lambda a, b: a * b)

    def __rmul__(self, other: object) -> "Vec":
        return self.__mul__(other)

    def __truediv__(self, other: object) -> "Vec":
        return self._combine(other, lambda a, b: a / b)

    def __rtruediv__(self, other: object) -> "Vec":
        # A scalar on the left applies the operation as if it were on the right.
        return self.__truediv__(other)

    def __neg__(self) -> "Vec":
        return self._from_iter(-value for value in self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vec):
            return NotImplemented
        return self._data == other._data

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        inner = ", ".join(repr(value) for value in self._data)
        return f"{type(self).__name__}({inner})"


Color = Vec


class Point(Vec):
    """A position in space.

    A point may be moved by a vector, and two points subtract to the vector
    between them; adding points or scaling a point is refused.
    """

    __slots__ = ()

    @classmethod
    def to_vec(cls, p1: "Point", p2: "Point") -> Vec:
        """Return the vector that goes from ``p1`` to ``p2``."""
        return Vec(*p2) - Vec(*p1)

    def __add__(self, other: object) -> "Point":
        if isinstance(other, Point):
            raise TypeError("cannot add two points")
        if not isinstance(other, Vec):
            raise TypeError(f"a point can only be moved by a vector, not {other!r}")
        return Point(*Vec.__add__(Vec(*self), other))

    def __radd__(self, other: object) -> "Point":
        raise TypeError(f"cannot add {type(other).__name__} and a point")

    def __sub__(self, other: object) -> Union["Point", Vec]:
        if isinstance(other, Point):
            return Vec.__sub__(Vec(*self), Vec(*other))
        if not isinstance(other, Vec):
            raise TypeError(f"a point can only be moved by a vector, not {other!r}")
        return Point(*Vec.__sub__(Vec(*self), other))

    def __rsub__(self, other: object) -> Vec:
        raise TypeError(f"cannot subtract a point from {type(other).__name__}")

    def __mul__(self, other: object) -> "Point":
        raise TypeError("a point cannot be scaled")

    def __rmul__(self, other: object) -> "Point":
        raise TypeError("a point cannot be scaled")

    def __truediv__(self, other: object) -> "Point":
        raise TypeError("a point cannot be divided")

    def __rtruediv__(self, other: object) -> "Point":
        raise TypeError("a point cannot be divided")

    __hash__ = Vec.__hash__


def dot(lhs: Vec, rhs: Vec) -> float:
    """Dot product of two vectors of the same dimension."""
    if len(lhs) != len(rhs):
        raise ValueError(f"dimension mismatch: {len(lhs)} and {len(rhs)}")
    return sum(a * b for a, b in zip(lhs, rhs))


def cross(lhs: Vec, rhs: Vec) -> Vec:
    """Cross product of two 3D vectors."""
    if len(lhs) != 3 or len(rhs) != 3:
        raise ValueError("cross product is defined for 3D vectors only")
    return Vec(
        lhs[1] * rhs[2] - lhs[2] * rhs[1],
        lhs[2] * rhs[0] - lhs[0] * rhs[2],
        lhs[0] * rhs[1] - lhs[1] * rhs[0],
    )


def reflect(lhs: Vec, rhs: Vec) -> Vec:
    """Reflect ``lhs`` about the (normally unit) vector ``rhs``."""
    return Vec(*lhs) - 2 * dot(lhs, rhs) * Vec(*rhs)