# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Link each column to the column that continues its text."""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from ..geometry import Point, Rect
from .layout import Column, ColumnArena
from .spatial_index import SpatialIndex
from .task import SegmentationTask

logger = logging.getLogger(__name__)


def start_point(col: Column) -> Point:
    return Point(col.x, col.y) if col.vertical else Point(col.x, col.max_y)


def end_point(col: Column) -> Point:
    return Point(col.max_x, col.y) if col.vertical else Point(col.x, col.y)


class FindConnections:
    """Vertical text continues to the left, horizontal text below."""

    name = "connections"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation
        self.arena: ColumnArena = task.arena
        self.index: SpatialIndex[Column] = SpatialIndex.for_image(task.width, task.height)

    def run(self, columns: Sequence[Column]) -> None:
        self.index.add_all(columns)
        for col in columns:
            self.find_next_column(col)

    def search_rect(self, col: Column) -> Rect:
        factor = self.th.connection_reach
        if col.vertical:
            size = int(math.ceil(col.width * factor))
            return Rect(col.x - size - 1, col.y - size // 2, size, size)
        size = int(math.ceil(col.height * factor))
        return Rect(col.x - size // 2, col.max_y + 1, size, size)

    def closest_target(self, col: Column, search: Rect) -> Optional[Column]:
        start = start_point(col)
        target: Optional[Column] = None
        distance = 100000.0
        for candidate in self.index.query(search, col):
            if candidate.furigana:
                continue
            anchor = (candidate.max_x, candidate.y) if col.vertical else (candidate.x, candidate.y)
            if not search.contains_point(*anchor):
                continue
            d = start.distance(end_point(candidate))
            if d < distance:
                target = candidate
                distance = d
        return target

    def find_next_column(self, col: Column) -> None:
        search = self.search_rect(col)
        target = self.closest_target(col, search)
        if target is None:
            return
        if target.previous_id is not None:
            logger.debug("%r: target %r already connected", col, target)
            return

        task = self.task
        tolerance = self.th.background_tolerance
        start, end = start_point(col), end_point(target)
        between = Rect.from_points(start, end)
        if task.count_pixels(between, background=True) >= tolerance:
            return
        if task.count_pixels(Rect.from_points(col.midpoint, end), background=True) >= tolerance:
            return

        limit = self.th.connection_width_ratio
        if col.minor_dim < target.minor_dim * limit or target.minor_dim < col.minor_dim * limit:
            return

        for other in self.index.query(between):
            if other is not col and other is not target:
                return

        self.arena.link(col, target)
        logger.debug("%r continues in %r", col, target)


__all__ = ["FindConnections", "end_point", "start_point"]
