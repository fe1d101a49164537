# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Merge thin neighbouring areas along the reading direction."""
from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from .layout import Area, Column
from .task import SegmentationTask


def next_combination(combination: List[bool]) -> None:
    """Advance like a binary counter: ``ftff -> ttff -> fftf -> tftf``."""

    for i in range(len(combination)):
        combination[i] = not combination[i]
        if combination[i]:
            break


class MergeAreas:
    """Pick the best way to merge each run of small areas in a column.

    A combination flag at position ``i`` merges area ``i`` with area
    ``i + 1``; every combination of a chunk is scored against the expected
    character size derived from the column thickness.
    """

    name = "mergeareas"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation
        self.target_size = 0
        self.max_size = 0

    def run(self, columns: Sequence[Column]) -> None:
        for col in columns:
            self.merge_column(col)

    def merge_column(self, col: Column) -> None:
        th = self.th
        factor = self.calc_scale(col)
        self.target_size = int(math.ceil(col.minor_dim * factor))
        self.max_size = int(math.ceil(col.minor_dim * th.merge_max_ratio * factor))
        chunk: List[Area] = []
        chunk_start = -1
        i = 0
        while i < len(col.areas):
            area = col.areas[i]
            punctuation = area.punctuation
            last_in_col = i == len(col.areas) - 1
            last_in_chunk = punctuation or last_in_col
            if not punctuation:
                chunk.append(area)
                if len(chunk) == 1:
                    chunk_start = i
                if len(chunk) == th.merge_chunk_size:
                    last_in_chunk = True
                elif not last_in_col and area.merge(col.areas[i + 1]).major_dim > self.max_size:
                    last_in_chunk = True
            if last_in_chunk and chunk:
                merged = self.find_best_merge(chunk)
                col.areas[chunk_start : chunk_start + len(chunk)] = merged
                i = chunk_start + len(merged) - 1
                if not punctuation and not last_in_col and len(chunk) > 1:
                    # continue from the last merged area
                    i -= 1
                chunk = []
            i += 1

    def calc_scale(self, col: Column) -> float:
        """Width scale for compressed horizontal fonts (title lines)."""

        if col.vertical or len(col.areas) < 15:
            return 1.0
        widths = sorted(area.width for area in col.areas)
        n = len(widths)
        lo = min(int(math.floor(n * 0.75)), n - 1)
        hi = min(int(math.ceil(n * 0.75)), n - 1)
        width = (widths[lo] + widths[hi]) // 2
        factor = width / col.height
        if factor > 0.8:
            return 1.0
        return max(factor, 0.6)

    def find_best_merge(self, areas: List[Area]) -> List[Area]:
        if len(areas) == 1:
            return areas
        combination = [False] * len(areas)
        best_score = 0.0
        best = areas
        while True:
            result = self.merge_areas(areas, combination)
            if result is not None:
                merged, distances = result
                score = self.calc_score(merged, distances)
                if score is not None and score > best_score:
                    best_score = score
                    best = merged
            next_combination(combination)
            if combination[-1]:
                break
        return best

    def merge_areas(self, areas: Sequence[Area], combination: Sequence[bool]):
        """Apply ``combination``; ``None`` if a merged area grows too long."""

        merged: List[Area] = []
        distances: Dict[int, int] = {}
        prev: Optional[Area] = None
        max_distance = 0
        for i, area in enumerate(areas):
            if prev is not None:
                distance = area.y - prev.max_y if area.vertical else area.x - prev.max_x
                max_distance = max(max_distance, distance)
                area = prev.merge(area)
                if area.major_dim > self.max_size:
                    return None
                area.changed = True
            if combination[i]:
                prev = area
            else:
                merged.append(area)
                distances[id(area)] = max_distance
                prev = None
        return merged, distances

    def calc_score(self, areas: Sequence[Area], distances: Dict[int, int]) -> Optional[float]:
        """Mean closeness to the target size; ``None`` if any area is oversized."""

        target, maximum = self.target_size, self.max_size
        total = 0.0
        for area in areas:
            size = area.major_dim
            if size > maximum:
                return None
            if size <= target:
                score = size / target
            else:
                score = (1 - (size - target) / (maximum - target)) ** 1.5
            distance = min(distances[id(area)], maximum)
            score *= 1.0 - distance / maximum
            total += score
        return total / len(areas)


__all__ = ["MergeAreas", "next_combination"]
