"""Coordinate transforms between screen points and window-relative fractions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List


class CoordinateError(ValueError):
    """Raised when window bounds cannot anchor a relative coordinate."""


@dataclass(frozen=True, slots=True)
class Point:
    """A screen position, or a window fraction when used as a relative coordinate."""

    x: float
    y: float

    def __iter__(self):
        yield self.x
        yield self.y


@dataclass(frozen=True, slots=True)
class Bounds:
    """Window frame with a top-left origin."""

    x: float
    y: float
    width: float
    height: float

    @property
    def is_degenerate(self) -> bool:
        return not (self.width > 0 and self.height > 0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bounds":
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            width=float(data["width"]),
            height=float(data["height"]),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    def __str__(self) -> str:
        return f"({self.x:g}, {self.y:g}, {self.width:g}x{self.height:g})"


def to_relative(point: Point, bounds: Bounds) -> Point:
    """Express ``point`` as a fraction of ``bounds``.

    Raises CoordinateError when the bounds have no area. The result is not
    clamped; points outside the window map outside [0, 1].
    """
    if bounds.is_degenerate:
        raise CoordinateError(f"Cannot compute relative coordinates against degenerate bounds {bounds}")
    return Point(
        (float(point.x) - bounds.x) / bounds.width,
        (float(point.y) - bounds.y) / bounds.height,
    )


def to_absolute(fraction: Point, bounds: Bounds) -> Point:
    """Project a window fraction back onto the screen using ``bounds``."""
    return Point(
        bounds.x + float(fraction.x) * bounds.width,
        bounds.y + float(fraction.y) * bounds.height,
    )


def clamp_fraction(fraction: Point) -> Point:
    return Point(min(1.0, max(0.0, fraction.x)), min(1.0, max(0.0, fraction.y)))


def contains(bounds: Bounds, point: Point) -> bool:
    return (
        bounds.x <= point.x < bounds.x + bounds.width
        and bounds.y <= point.y < bounds.y + bounds.height
    )


def distance(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def interpolate(start: Point, end: Point, steps: int) -> List[Point]:
    """Linear path of ``steps`` points from just after ``start`` up to ``end``."""
    steps = max(1, int(steps))
    path: List[Point] = []
    for i in range(1, steps + 1):
        progress = i / steps
        path.append(
            Point(
                start.x + (end.x - start.x) * progress,
                start.y + (end.y - start.y) * progress,
            )
        )
    return path


def scale_bounds(bounds: Bounds, factor: float) -> Bounds:
    """Scale width and height by ``factor`` keeping the origin fixed."""
    return Bounds(bounds.x, bounds.y, bounds.width * factor, bounds.height * factor)
