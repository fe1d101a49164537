# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Region growing that merges areas into reading-direction columns."""
from __future__ import annotations

import heapq
import itertools
import logging
import math
from typing import List, Sequence

from ..geometry import Rect, scale
from .layout import Area, Column
from .spatial_index import SpatialIndex
from .task import SegmentationTask

logger = logging.getLogger(__name__)


class ColumnBuilder:
    """Grow single-area columns into full columns for one orientation.

    Columns are grown in rounds: three rounds along the reading direction
    with a growing search rectangle, then one sideways round. Each merge
    must not lower the weighted column score, must not cross background ink
    and must keep both column ends dense enough.
    """

    name = "columns"

    def __init__(self, task: SegmentationTask, vertical: bool) -> None:
        self.task = task
        self.vertical = vertical
        self.th = task.config.segmentation
        self.index: SpatialIndex[Column] = SpatialIndex.for_image(task.width, task.height)

    def run(self, areas: Sequence[Area]) -> List[Column]:
        if not areas:
            return []
        for area in areas:
            column = Column(areas=[area.clone()], vertical=self.vertical)
            column.score = column.ratio
            self.index.add(column)
        for iteration in range(1, self.th.long_search_rounds + 1):
            self.merge_columns(True, iteration)
        self.merge_columns(False, 1)
        columns = self.index.all()
        logger.debug(
            "%s columns: %d from %d areas",
            "vertical" if self.vertical else "horizontal",
            len(columns),
            len(areas),
        )
        return columns

    def merge_columns(self, expand_length: bool, iteration: int) -> None:
        counter = itertools.count()
        todo = [(self._priority(col), next(counter), col) for col in self.index.all()]
        heapq.heapify(todo)
        while todo:
            _, _, col = heapq.heappop(todo)
            if col.removed:
                continue
            search = self.long_search_rect(col, iteration) if expand_length else self.thick_search_rect(col)
            targets = self.index.query(search, col)

            largest = col
            for target in targets:
                if target.minor_dim > largest.minor_dim:
                    largest = target

            if col.avg_rgb_value - largest.avg_rgb_value > self.th.rgb_max_delta:
                continue
            targets, rejected = self.filter_targets_by_rgb(targets, largest)
            if not targets:
                continue

            merged = col
            for target in targets:
                merged = merged.merge(target)

            if not expand_length and self.has_new_targets(merged, col, targets, rejected):
                continue

            if self.check_merge(merged, col, targets, largest):
                for target in targets:
                    self.index.remove(target)
                    target.removed = True
                self.index.remove(col)
                col.removed = True
                self.index.add(merged)
                heapq.heappush(todo, (self._priority(merged), next(counter), merged))

    @staticmethod
    def _priority(col: Column) -> int:
        return col.minor_dim * col.size

    def long_search_rect(self, col: Column, iteration: int) -> Rect:
        extra = int(math.ceil(min(col.width, col.height) * self.th.long_search_factor * iteration))
        if col.vertical:
            return Rect(col.x, col.y - extra, col.width, col.height + extra * 2)
        return Rect(col.x - extra, col.y, col.width + extra * 2, col.height)

    def thick_search_rect(self, col: Column) -> Rect:
        extra = min(col.width, col.height)
        if col.vertical:
            return Rect(col.x - extra, col.y, col.width + extra * 2, col.height)
        return Rect(col.x, col.y - extra, col.width, col.height + extra * 2)

    def filter_targets_by_rgb(self, targets: List[Column], largest: Column):
        """Split targets into (kept, rejected) by intensity difference."""

        kept: List[Column] = []
        rejected: List[Column] = []
        reference = largest.avg_rgb_value
        for target in targets:
            if largest.rect.contains(target.rect) or self._is_dakuten(target, largest):
                kept.append(target)
            elif target.avg_rgb_value - reference > self.th.rgb_max_delta:
                rejected.append(target)
            else:
                kept.append(target)
        return kept, rejected

    @staticmethod
    def _is_dakuten(target: Column, largest: Column) -> bool:
        # voicing marks are often gray and would fail the intensity check
        return (
            len(target.areas) == 1
            and target.ratio >= 0.6
            and target.max_y >= largest.y - largest.width // 4
            and target.max_y < largest.max_y
            and target.midpoint.x > largest.midpoint.x
            and target.pixel_area_ratio >= 0.5
            and largest.horizontal_intersect_ratio(target) >= 0.7
        )

    def has_new_targets(
        self,
        merged: Column,
        original: Column,
        targets: Sequence[Column],
        rejected: Sequence[Column],
    ) -> bool:
        """Sideways merges may only absorb the columns that were searched."""

        known = {id(original)} | {id(c) for c in targets} | {id(c) for c in rejected}
        return any(id(col) not in known for col in self.index.query(merged.rect))

    def check_merge(self, merged: Column, col: Column, targets: Sequence[Column], largest: Column) -> bool:
        merged.score = self.calc_score(merged)
        old_columns = list(targets) + [col]

        if all(largest.intersect_ratio(c) >= self.th.contain_ratio for c in old_columns):
            return True

        # wide expansions of long columns are usually furigana being swallowed
        minor_expansion = merged.minor_dim / largest.minor_dim
        max_penalty = scale(len(col.areas), 2, 4, 1.0, 0.8)
        merged.score *= scale(minor_expansion, 1.15, 1.4, 1.0, max_penalty)

        lowest = min(c.score for c in old_columns)
        score_sum = 0.0
        weight_sum = 0.0
        threshold = self.task.config.pixel_rgb_threshold
        for c in old_columns:
            weight = c.size ** self.th.column_weight_exponent
            if c.score == lowest:
                weight *= self.th.lowest_score_bonus
            weight *= scale(c.min_rgb_value, 0, threshold, 1.0, 0.5)
            score_sum += c.score * weight
            weight_sum += weight
        old_score = score_sum / weight_sum

        if merged.score < old_score:
            return False
        if not self.check_background(merged):
            return False
        return self.check_column_ends(merged)

    def calc_score(self, col: Column) -> float:
        total = 0.0
        for area in col.areas:
            size_score = min(1.0, area.max_dim / (col.minor_dim * 0.9)) ** 2
            shape_score = scale(area.ratio, 0.0, 0.9, 0.0, 1.0) ** 1.2
            location_score = self._location_score(area, col, size_score)
            rgb_score = scale(area.min_rgb - col.min_rgb_value, 50, 100, 1.0, 0.4)
            total += size_score * shape_score * location_score * rgb_score
        return math.sqrt(total)

    @staticmethod
    def _location_score(area: Area, col: Column, size_score: float) -> float:
        if col.vertical:
            first, second = area.x - col.x, col.max_x - area.max_x
        else:
            first, second = area.y - col.y, col.max_y - area.max_y
        diff = scale(abs(first - second) / col.minor_dim, 0.1, 1.0, 0.0, 1.0)
        exponent = scale(size_score, 0.2, 0.8, 6.0, 3.0)
        return (1.0 - diff) ** exponent

    def check_background(self, col: Column) -> bool:
        """Reject columns that cross divider lines or bubble outlines."""

        tolerance = self.th.background_tolerance
        if self.task.count_pixels(col.rect, background=True, inside=False) >= tolerance:
            if self.task.count_pixels(col.rect, background=True, inside=True) >= col.minor_dim:
                return False
        return True

    def check_column_ends(self, col: Column) -> bool:
        length = col.minor_dim
        if col.vertical:
            first = Rect(col.x, col.y, col.width, length)
            second = Rect(col.x, col.max_y - length, col.width, length)
        else:
            first = Rect(col.x, col.y, length, col.height)
            second = Rect(col.max_x - length, col.y, length, col.height)
        return self._column_end_ok(col, first) and self._column_end_ok(col, second)

    def _column_end_ok(self, col: Column, search: Rect) -> bool:
        pixels = 0.0
        for area in col.areas:
            if not search.intersects(area.rect):
                continue
            common = search.intersection(area.rect)
            share = area.pixels * common.area / area.size
            # thin strokes along the reading axis count for more
            pixels += share * scale(area.major_minor_ratio, 0.5, 1.5, 0.5, 1.5)
        return pixels / search.area >= self.th.column_end_ratio


__all__ = ["ColumnBuilder"]
