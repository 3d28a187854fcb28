"""Square matrices, rays and rectangles built on the vector types."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Union

from raycluster.vector import Point, Vec

ALMOST_ZERO = 1e-6
RAY_T_MIN = 0.001
RAY_T_MAX = 1.0e30


class Mat:
    """An immutable N×N matrix of floats."""

    __slots__ = ("_rows",)

    def __init__(self, rows: Sequence[Sequence[float]]) -> None:
        rows = [tuple(row) for row in rows]
        size = len(rows)
        if any(len(row) != size for row in rows):
            raise ValueError("Each matrix row must have exactly N columns")
        self._rows: tuple[tuple[float, ...], ...] = tuple(
            tuple(float(value) for value in row) for row in rows
        )

    @classmethod
    def zeros(cls, n: int) -> "Mat":
        """Return the N×N matrix filled with zeros."""
        if n < 0:
            raise ValueError("dimension must not be negative")
        return cls([[0.0] * n for _ in range(n)])

    @classmethod
    def from_euler(cls, yaw: float, pitch: float, roll: float) -> "Mat":
        """Return the 3×3 rotation for the given angles in radians.

        ``yaw`` turns about Y, ``pitch`` about X and ``roll`` about Z; the
        combined rotation is roll * pitch * yaw.
        """
        cy, sy = math.cos(yaw), math.sin(yaw)
        cp, sp = math.cos(pitch), math.sin(pitch)
        cr, sr = math.cos(roll), math.sin(roll)
        return cls(
            [
                [cr * cy + sr * sp * sy, -sr * cp, cr * sy - sr * sp * cy],
                [sr * cy - cr * sp * sy, cr * cp, sr * sy + cr * sp * cy],
                [-cp * sy, sp, cp * cy],
            ]
        )

    def __mul__(self, other: object) -> Union["Mat", Vec]:
        size = len(self)
        if isinstance(other, Mat):
            if len(other) != size:
                raise ValueError(f"dimension mismatch: {size} and {len(other)}")
            columns = list(zip(*other._rows))
            return Mat(
                [
                    [sum(a * b for a, b in zip(row, column)) for column in columns]
                    for row in self._rows
                ]
            )
        if isinstance(other, Vec):
            if len(other) != size:
                raise ValueError(f"dimension mismatch: {size} and {len(other)}")
            return Vec(*(sum(a * b for a, b in zip(row, other)) for row in self._rows))
        return NotImplemented

    def __getitem__(self, row: int) -> tuple[float, ...]:
        return self._rows[row]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterable[tuple[float, ...]]:
        return iter(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mat):
            return NotImplemented
        return self._rows == other._rows

    def __hash__(self) -> int:
        return hash(self._rows)

    def __repr__(self) -> str:
        return f"Mat({[list(row) for row in self._rows]!r})"


def _origin() -> Point:
    return Point(0.0, 0.0, 0.0)


def _zero3() -> Vec:
    return Vec(0.0, 0.0, 0.0)


@dataclass
class Ray:
    """A half-line from ``origin`` along ``direction``, up to ``t_max``."""

    origin: Point = field(default_factory=_origin)
    direction: Vec = field(default_factory=_zero3)
    t_max: float = RAY_T_MAX

    def at(self, t: float) -> Point:
        """Return the point ``origin + direction * t``."""
        return self.origin + self.direction * t


@dataclass
class Rect:
    """A parallelogram given by a corner and its bottom and left sides."""

    origin: Point = field(default_factory=_origin)
    bottom_side: Vec = field(default_factory=_zero3)
    left_side: Vec = field(default_factory=_zero3)

    def at(self, u: float, v: float) -> Point:
        """Return ``origin + bottom_side * u + left_side * v``."""
        return self.origin + self.bottom_side * u + self.left_side * v