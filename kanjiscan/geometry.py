# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Integer rectangle and point helpers used by segmentation and matching.

Rectangles follow the usual raster convention: ``(x, y)`` is the top-left
pixel and ``width``/``height`` count pixels, so ``max_x``/``max_y`` are the
inclusive right/bottom pixel coordinates.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    def distance(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> Tuple[int, int]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_points(cls, p1: Point, p2: Point) -> "Rect":
        """Smallest rectangle covering both points (inclusive)."""

        min_x = min(p1.x, p2.x)
        min_y = min(p1.y, p2.y)
        max_x = max(p1.x, p2.x)
        max_y = max(p1.y, p2.y)
        return cls(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1)

    @property
    def max_x(self) -> int:
        return self.x + self.width - 1

    @property
    def max_y(self) -> int:
        return self.y + self.height - 1

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def midpoint(self) -> Point:
        return Point(self.x + self.width // 2, self.y + self.height // 2)

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersects(self, other: "Rect") -> bool:
        if self.is_empty() or other.is_empty():
            return False
        return (
            other.x + other.width > self.x
            and other.y + other.height > self.y
            and self.x + self.width > other.x
            and self.y + self.height > other.y
        )

    def intersection(self, other: "Rect") -> "Rect":
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.x + self.width, other.x + other.width)
        y1 = min(self.y + self.height, other.y + other.height)
        return Rect(x0, y0, max(0, x1 - x0), max(0, y1 - y0))

    def union(self, other: "Rect") -> "Rect":
        x0 = min(self.x, other.x)
        y0 = min(self.y, other.y)
        x1 = max(self.x + self.width, other.x + other.width)
        y1 = max(self.y + self.height, other.y + other.height)
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def contains_point(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def contains(self, other: "Rect") -> bool:
        if other.is_empty() or self.is_empty():
            return False
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.x + other.width <= self.x + self.width
            and other.y + other.height <= self.y + self.height
        )

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


def scale(value: float, lo: float, hi: float, target_lo: float, target_hi: float) -> float:
    """Clamp ``value`` into ``[lo, hi]`` and map it linearly onto the targets."""

    if lo > hi:
        raise ValueError(f"invalid range: {lo} > {hi}")
    if value <= lo:
        return float(target_lo)
    if value >= hi:
        return float(target_hi)
    s = (value - lo) / (hi - lo)
    return target_lo * (1.0 - s) + target_hi * s


__all__ = ["Point", "Rect", "scale"]
