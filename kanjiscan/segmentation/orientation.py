# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Choose between the vertical and horizontal column hypotheses."""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Set

from ..config import Orientation
from ..geometry import scale
from .layout import Area, Column
from .spatial_index import SpatialIndex
from .task import SegmentationTask

logger = logging.getLogger(__name__)


class OrientationMerge:
    """Keep one orientation per group of overlapping columns.

    Columns of both hypotheses are flood-filled into groups through their
    overlaps. Each group is scored once per orientation (lower is better)
    and only the better orientation's columns survive, so every character
    ends up in exactly one column.
    """

    name = "combined"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation
        self.index: SpatialIndex[Column] = SpatialIndex.for_image(task.width, task.height)
        self.furigana_areas: Dict[bool, SpatialIndex[Area]] = {
            True: SpatialIndex.for_image(task.width, task.height),
            False: SpatialIndex.for_image(task.width, task.height),
        }
        self.visited: Set[int] = set()

    def run(self) -> None:
        task = self.task
        orientation = task.config.orientation
        if orientation is Orientation.VERTICAL:
            task.columns = list(task.vertical_columns)
            return
        if orientation is Orientation.HORIZONTAL:
            task.columns = list(task.horizontal_columns)
            return
        task.columns = []
        self.create_indexes()
        self.process_columns()
        self.remove_small_columns()

    def create_indexes(self) -> None:
        for cols in (self.task.vertical_columns, self.task.horizontal_columns):
            self.index.add_all(cols)
            for col in cols:
                if col.furigana:
                    self.furigana_areas[col.vertical].add_all(col.areas)

    def process_columns(self) -> None:
        cols = list(self.task.vertical_columns) + list(self.task.horizontal_columns)
        # large first so small areas are pulled into the larger groups
        cols.sort(key=lambda c: c.size, reverse=True)
        for col in cols:
            col.score = None
        for col in cols:
            self.process_column(col)

    def process_column(self, col: Column) -> None:
        if id(col) in self.visited:
            return
        arena = self.task.arena
        vertical_group: List[Column] = []
        horizontal_group: List[Column] = []
        todo = [col]
        bounds = col.rect
        reference_rgb = col.min_rgb_value
        while todo:
            current = todo.pop()
            if id(current) in self.visited:
                continue
            (vertical_group if current.vertical else horizontal_group).append(current)

            candidates = self.index.query(current.rect, current)
            for furigana in arena.furigana_of(current):
                candidates.extend(self.index.query(furigana.rect))
            candidates = [
                c for c in candidates if abs(reference_rgb - c.min_rgb_value) <= self.th.rgb_max_delta
            ]
            for candidate in candidates:
                common = current.rect.intersection(candidate.rect).area
                ref1 = int(math.ceil(current.minor_dim ** 2 / 4))
                ref2 = int(math.ceil(candidate.minor_dim ** 2 / 4))
                if common >= ref1 or common >= ref2:
                    todo.append(candidate)
            self.visited.add(id(current))
            bounds = bounds.union(current.rect)

        vertical_score = self.calc_score(vertical_group)
        horizontal_score = self.calc_score(horizontal_group)
        logger.debug(
            "group %s: vertical=%s horizontal=%s", bounds.as_tuple(), vertical_score, horizontal_score
        )
        if horizontal_score is None:
            self.task.columns.extend(vertical_group)
        elif vertical_score is None or vertical_score > horizontal_score:
            self.task.columns.extend(horizontal_group)
        else:
            self.task.columns.extend(vertical_group)

    def calc_score(self, cols: Sequence[Column]) -> Optional[float]:
        """Lower is better; ``None`` when the group can't be scored."""

        if not cols:
            return None
        distance = self.calc_score_area_distance(cols)
        connected = self.calc_score_connected(cols)
        null_columns = self.calc_score_null_columns(cols)
        if distance is None or connected is None:
            return None
        return distance * connected * null_columns

    def calc_score_area_distance(self, cols: Sequence[Column]) -> Optional[float]:
        distance_sum = 0.0
        weight_sum = 0.0
        for col in cols:
            col.area_distance = self.calc_area_distance(col)
            if col.area_distance is None:
                continue
            weight = math.sqrt(col.area_size_sum)
            if len(col.areas) == 2:
                weight *= col.avg_area_ratio ** 2
            distance_sum += col.area_distance * weight
            weight_sum += weight
        if weight_sum > 0:
            return distance_sum / weight_sum
        return None

    def calc_area_distance(self, col: Column) -> Optional[float]:
        """Average step between well-formed neighbouring areas."""

        areas = self.filter_furigana(col.areas, col.vertical)
        distance_sum = 0.0
        pairs = 0
        for prev, nxt in zip(areas, areas[1:]):
            if prev.punctuation or nxt.punctuation:
                continue
            if prev.splitted or nxt.splitted:
                continue
            smaller = prev if prev.size < nxt.size else nxt
            # small square areas, for example か in the wrong orientation
            if smaller.size / col.minor_dim ** 2 <= 0.3 and smaller.ratio >= 0.5:
                continue
            # two thin areas, for example い in the wrong orientation
            if (prev.major_minor_ratio + nxt.major_minor_ratio) / 2 <= 0.7:
                continue
            if max(prev.major_dim, nxt.major_dim) > col.minor_dim * 1.5:
                continue
            if col.vertical:
                distance = nxt.midpoint.y - prev.midpoint.y
            else:
                distance = nxt.midpoint.x - prev.midpoint.x
            if distance > col.minor_dim * 2:
                continue
            distance_sum += distance
            pairs += 1
        if pairs == 0:
            return None
        return distance_sum / pairs

    @staticmethod
    def calc_score_null_columns(cols: Sequence[Column]) -> float:
        null_weight = 0.0
        total_weight = 0.0
        for col in cols:
            weight = math.sqrt(col.area_size_sum)
            if col.area_distance is None:
                null_weight += weight
            total_weight += weight
        ratio = null_weight / total_weight if total_weight else 1.0
        if ratio < 0.5:
            return scale(ratio, 0.0, 0.5, 1.0, 1.1)
        return scale(ratio, 0.5, 1.0, 1.1, 10.0)

    def calc_score_connected(self, cols: Sequence[Column]) -> Optional[float]:
        """Best score over the connected chains starting inside the group."""

        arena = self.task.arena
        members = {id(col) for col in cols}
        best: Optional[float] = None
        for col in cols:
            previous = arena.previous_of(col)
            if previous is not None and id(previous) in members:
                continue
            score = self.calc_score_chain(list(arena.follow_chain(col)))
            if score is not None and (best is None or score < best):
                best = score
        return best

    @staticmethod
    def calc_score_chain(chain: Sequence[Column]) -> Optional[float]:
        total: Optional[float] = None
        for col in chain:
            for area in col.areas:
                if area.punctuation:
                    continue
                # square areas are preferred, the wrong orientation splits glyphs like い
                total = (total or 0.0) + area.ratio
        if total is None:
            return None
        return 1.0 / total ** 0.2

    def filter_furigana(self, areas: Sequence[Area], vertical: bool) -> List[Area]:
        """Drop areas that exactly match furigana of the other orientation."""

        other = self.furigana_areas[not vertical]
        valid = []
        for area in areas:
            shadow = sum(a.pixels for a in other.query(area.rect))
            if shadow != area.pixels:
                valid.append(area)
        valid.sort(key=(lambda a: a.y) if vertical else (lambda a: a.x))
        return valid

    def remove_small_columns(self) -> None:
        limit = self.th.min_column_thickness
        self.task.columns = [col for col in self.task.columns if col.min_dim > limit]


__all__ = ["OrientationMerge"]
