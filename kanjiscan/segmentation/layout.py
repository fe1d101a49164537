# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Areas, columns and the arena that links them.

Columns reference each other (reading order, furigana) and areas reference
their column by integer id instead of by object, so relationships can be
walked through :class:`ColumnArena` with a visited set and never form
ownership cycles.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..geometry import Point, Rect


@dataclass(eq=False)
class Area:
    """Candidate glyph (or glyph fragment) inside the target image."""

    rect: Rect
    pixels: int
    min_rgb: int = 0
    punctuation: bool = False
    changed: bool = False
    splitted: bool = False
    removed: bool = False
    column_id: Optional[int] = None
    vertical: Optional[bool] = None
    source_ids: Tuple[int, ...] = ()

    @property
    def x(self) -> int:
        return self.rect.x

    @property
    def y(self) -> int:
        return self.rect.y

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    @property
    def max_x(self) -> int:
        return self.rect.max_x

    @property
    def max_y(self) -> int:
        return self.rect.max_y

    @property
    def size(self) -> int:
        return self.rect.width * self.rect.height

    @property
    def midpoint(self) -> Point:
        return self.rect.midpoint

    @property
    def ratio(self) -> float:
        """``min(w/h, h/w)``: 1.0 for a square, close to 0 for a line."""

        w, h = self.rect.width, self.rect.height
        return min(w / h, h / w)

    @property
    def min_dim(self) -> int:
        return min(self.rect.width, self.rect.height)

    @property
    def max_dim(self) -> int:
        return max(self.rect.width, self.rect.height)

    def _orientation(self) -> bool:
        if self.vertical is None:
            raise RuntimeError("area orientation is not known before columns are built")
        return self.vertical

    @property
    def minor_dim(self) -> int:
        return self.rect.width if self._orientation() else self.rect.height

    @property
    def major_dim(self) -> int:
        return self.rect.height if self._orientation() else self.rect.width

    @property
    def major_minor_ratio(self) -> float:
        return self.major_dim / self.minor_dim

    def merge(self, other: "Area") -> "Area":
        return Area(
            rect=self.rect.union(other.rect),
            pixels=self.pixels + other.pixels,
            min_rgb=min(self.min_rgb, other.min_rgb),
            column_id=self.column_id,
            vertical=self.vertical,
            source_ids=self.source_ids + other.source_ids,
        )

    def _half(self, rect: Rect) -> "Area":
        return Area(
            rect=rect,
            pixels=self.pixels // 2,
            min_rgb=self.min_rgb,
            changed=True,
            splitted=True,
            column_id=self.column_id,
            vertical=self.vertical,
            source_ids=self.source_ids,
        )

    def split_x(self, x: int) -> List["Area"]:
        """Split into ``[x0, x)`` and ``[x, max_x]``."""

        r = self.rect
        return [
            self._half(Rect(r.x, r.y, x - r.x, r.height)),
            self._half(Rect(x, r.y, r.x + r.width - x, r.height)),
        ]

    def split_y(self, y: int) -> List["Area"]:
        """Split into ``[y0, y)`` and ``[y, max_y]``."""

        r = self.rect
        return [
            self._half(Rect(r.x, r.y, r.width, y - r.y)),
            self._half(Rect(r.x, y, r.width, r.y + r.height - y)),
        ]

    def clone(self) -> "Area":
        return Area(
            rect=self.rect,
            pixels=self.pixels,
            min_rgb=self.min_rgb,
            column_id=self.column_id,
            vertical=self.vertical,
            source_ids=self.source_ids,
        )


def _reading_key(vertical: bool):
    if vertical:
        return lambda area: area.midpoint.y
    return lambda area: area.midpoint.x


@dataclass(eq=False)
class Column:
    """Areas sharing one reading line, sorted along the reading axis."""

    areas: List[Area]
    vertical: bool = True
    rect: Optional[Rect] = None
    id: int = -1
    furigana: bool = False
    furigana_ids: List[int] = field(default_factory=list)
    area_distance: Optional[float] = None
    score: Optional[float] = None
    next_id: Optional[int] = None
    previous_id: Optional[int] = None
    changed: bool = False
    removed: bool = False

    def __post_init__(self) -> None:
        if not self.areas:
            raise ValueError("a column needs at least one area")
        self.areas.sort(key=_reading_key(self.vertical))
        if self.rect is None:
            rect = self.areas[0].rect
            for area in self.areas[1:]:
                rect = rect.union(area.rect)
            self.rect = rect
        self.adopt_areas()

    def adopt_areas(self) -> None:
        for area in self.areas:
            area.column_id = self.id
            area.vertical = self.vertical

    @property
    def x(self) -> int:
        return self.rect.x

    @property
    def y(self) -> int:
        return self.rect.y

    @property
    def width(self) -> int:
        return self.rect.width

    @property
    def height(self) -> int:
        return self.rect.height

    @property
    def max_x(self) -> int:
        return self.rect.max_x

    @property
    def max_y(self) -> int:
        return self.rect.max_y

    @property
    def midpoint(self) -> Point:
        return self.rect.midpoint

    @property
    def size(self) -> int:
        return self.rect.width * self.rect.height

    @property
    def area_size_sum(self) -> int:
        return sum(area.size for area in self.areas)

    @property
    def min_dim(self) -> int:
        return min(self.rect.width, self.rect.height)

    @property
    def minor_dim(self) -> int:
        return self.rect.width if self.vertical else self.rect.height

    @property
    def major_dim(self) -> int:
        return self.rect.height if self.vertical else self.rect.width

    @property
    def pixels(self) -> int:
        return sum(area.pixels for area in self.areas)

    @property
    def pixel_area_ratio(self) -> float:
        return self.pixels / self.size

    @property
    def ratio(self) -> float:
        return min(self.rect.width, self.rect.height) / max(self.rect.width, self.rect.height)

    @property
    def avg_area_ratio(self) -> float:
        if not self.areas:
            return 1.0
        return sum(area.ratio for area in self.areas) / len(self.areas)

    @property
    def median_area_size(self) -> float:
        sizes = sorted(area.size for area in self.areas)
        n = len(sizes)
        if n % 2 == 1:
            return float(sizes[n // 2])
        return (sizes[n // 2 - 1] + sizes[n // 2]) / 2

    @property
    def min_rgb_value(self) -> int:
        return min([255] + [area.min_rgb for area in self.areas])

    @property
    def avg_rgb_value(self) -> float:
        weight = sum(area.pixels for area in self.areas)
        if weight == 0:
            return float(self.min_rgb_value)
        return sum(area.min_rgb * area.pixels for area in self.areas) / weight

    def contains_point(self, x: int, y: int) -> bool:
        return self.rect.contains_point(x, y)

    def intersect_ratio(self, other: "Column") -> float:
        """Shared area relative to the smaller of the two columns."""

        if not other.rect.intersects(self.rect):
            return 0.0
        common = other.rect.intersection(self.rect)
        return common.area / min(self.size, other.size)

    def horizontal_intersect_ratio(self, other: "Column") -> float:
        if other.x > self.max_x or other.max_x < self.x:
            return 0.0
        common = min(self.max_x, other.max_x) - max(self.x, other.x) + 1
        return common / min(self.width, other.width)

    def merge(self, other: "Column") -> "Column":
        """Return a new column holding both columns' areas.

        Areas overlapping along the reading axis are merged into one.
        """

        areas = [area.clone() for area in self.areas] + [area.clone() for area in other.areas]
        merged = Column(areas=areas, vertical=self.vertical, rect=self.rect.union(other.rect))
        merged.areas = _merge_overlapping(merged.areas, self.vertical)
        merged.adopt_areas()
        return merged

    def __repr__(self) -> str:
        r = self.rect
        return f"Column({'v' if self.vertical else 'h'}:{r.x},{r.y},{r.width}:{r.height}, id={self.id})"


def _merge_overlapping(areas: List[Area], vertical: bool) -> List[Area]:
    areas = list(areas)
    i = 0
    while i < len(areas) - 1:
        a1 = areas[i]
        a2 = areas[i + 1]
        if vertical:
            overlap = a1.max_y >= a2.y and a1.y <= a2.max_y
        else:
            overlap = a1.max_x >= a2.x and a1.x <= a2.max_x
        if overlap:
            areas[i : i + 2] = [a1.merge(a2)]
            continue
        i += 1
    return areas


class ColumnArena:
    """Registry of columns addressed by stable integer ids."""

    def __init__(self) -> None:
        self._columns: Dict[int, Column] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._columns)

    def __contains__(self, column_id: object) -> bool:
        return column_id in self._columns

    def add(self, column: Column) -> Column:
        if column.id < 0 or self._columns.get(column.id) is not column:
            column.id = self._next_id
            self._next_id += 1
            self._columns[column.id] = column
            column.adopt_areas()
        return column

    def add_all(self, columns: Iterable[Column]) -> List[Column]:
        return [self.add(column) for column in columns]

    def get(self, column_id: Optional[int]) -> Optional[Column]:
        if column_id is None:
            return None
        return self._columns.get(column_id)

    def next_of(self, column: Column) -> Optional[Column]:
        return self.get(column.next_id)

    def previous_of(self, column: Column) -> Optional[Column]:
        return self.get(column.previous_id)

    def furigana_of(self, column: Column) -> List[Column]:
        return [self._columns[i] for i in column.furigana_ids if i in self._columns]

    def column_of(self, area: Area) -> Optional[Column]:
        return self.get(area.column_id)

    def link(self, column: Column, next_column: Column) -> None:
        column.next_id = next_column.id
        next_column.previous_id = column.id

    def follow_chain(self, start: Column, limit: Optional[int] = None) -> Iterator[Column]:
        """Yield ``start`` and its ``next`` successors, stopping at a revisit."""

        visited = set()
        column: Optional[Column] = start
        while column is not None and column.id not in visited:
            if limit is not None and len(visited) >= limit:
                return
            visited.add(column.id)
            yield column
            column = self.next_of(column)


__all__ = ["Area", "Column", "ColumnArena"]
