# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Rectangle index used to find intersecting areas and columns.

Each node is either a leaf holding up to ``MAX_VALUES_PER_NODE`` entries or
an internal node with four quadrant children plus an overflow child that
holds entries straddling the quadrant borders. Removal is lazy: nodes are
never rebalanced and the recorded coverage never shrinks.
"""
from __future__ import annotations

from typing import Generic, Iterable, List, Optional, Protocol, TypeVar

from ..geometry import Point, Rect

MAX_VALUES_PER_NODE = 16


class HasRect(Protocol):
    @property
    def rect(self) -> Rect:
        ...


T = TypeVar("T", bound=HasRect)


class SpatialIndex(Generic[T]):
    """R-tree like index keyed on each entry's ``rect``."""

    def __init__(self, bounds: Rect, values: Optional[Iterable[T]] = None) -> None:
        self.bounds = bounds
        self.coverage: Optional[Rect] = None
        self._leaf = True
        self._no_split = False
        self._values: List[T] = []
        self._nodes: List["SpatialIndex[T]"] = []
        self._overflow: Optional["SpatialIndex[T]"] = None
        if values is not None:
            self.add_all(values)

    @classmethod
    def for_image(cls, width: int, height: int, values: Optional[Iterable[T]] = None) -> "SpatialIndex[T]":
        return cls(Rect(0, 0, width, height), values)

    def __len__(self) -> int:
        return len(self.all())

    def add(self, value: T) -> None:
        rect = value.rect
        if self._leaf:
            self._values.append(value)
            if len(self._values) > MAX_VALUES_PER_NODE and not self._no_split:
                self._split()
        else:
            self._child_for(rect).add(value)
        self.coverage = rect if self.coverage is None else self.coverage.union(rect)

    def add_all(self, values: Iterable[T]) -> None:
        for value in values:
            self.add(value)

    def remove(self, value: T) -> bool:
        """Remove ``value`` (matched by identity); ``True`` if it was found."""

        if self._leaf:
            for i, existing in enumerate(self._values):
                if existing is value:
                    del self._values[i]
                    return True
            return False
        rect = value.rect
        ordered = [n for n in self._nodes if n.coverage is not None and n.coverage.contains(rect)]
        ordered.append(self._overflow)
        ordered.extend(n for n in self._nodes if n not in ordered)
        for node in ordered:
            if node.remove(value):
                return True
        return False

    def query(self, rect: Rect, skip: Optional[T] = None) -> List[T]:
        """Entries whose rectangle intersects ``rect``, excluding ``skip``."""

        results: List[T] = []
        self._collect(rect, results)
        if skip is not None:
            results = [value for value in results if value is not skip]
        return results

    def contains(self, rect: Rect, skip: Optional[T] = None) -> bool:
        return bool(self.query(rect, skip))

    def all(self) -> List[T]:
        if self._leaf:
            return list(self._values)
        collected: List[T] = []
        for node in self._nodes:
            collected.extend(node.all())
        collected.extend(self._overflow.all())
        return collected

    def _collect(self, rect: Rect, results: List[T]) -> None:
        if self._leaf:
            results.extend(value for value in self._values if value.rect.intersects(rect))
            return
        for node in self._nodes:
            if node.coverage is not None and node.coverage.intersects(rect):
                node._collect(rect, results)
        overflow = self._overflow
        if overflow.coverage is not None and overflow.coverage.intersects(rect):
            overflow._collect(rect, results)

    def _child_for(self, rect: Rect) -> "SpatialIndex[T]":
        for node in self._nodes:
            if node.bounds.contains(rect):
                return node
        return self._overflow

    def _split(self) -> None:
        mid = self._average_midpoint()
        b = self.bounds
        left_w = mid.x - b.x
        right_w = b.x + b.width - mid.x
        up_h = mid.y - b.y
        down_h = b.y + b.height - mid.y
        self._nodes = [
            SpatialIndex(Rect(b.x, b.y, left_w, up_h)),
            SpatialIndex(Rect(mid.x, b.y, right_w, up_h)),
            SpatialIndex(Rect(b.x, mid.y, left_w, down_h)),
            SpatialIndex(Rect(mid.x, mid.y, right_w, down_h)),
        ]
        self._overflow = SpatialIndex(b)
        for value in self._values:
            target = self._child_for(value.rect)
            if len(target._values) == MAX_VALUES_PER_NODE:
                # too many entries share one child, keep this node a leaf for good
                self._no_split = True
                self._nodes = []
                self._overflow = None
                return
            target.add(value)
        self._leaf = False
        self._values = []

    def _average_midpoint(self) -> Point:
        xs = 0
        ys = 0
        for value in self._values:
            mid = value.rect.midpoint
            xs += mid.x
            ys += mid.y
        n = len(self._values)
        return Point(xs // n, ys // n)


__all__ = ["HasRect", "MAX_VALUES_PER_NODE", "SpatialIndex"]
