# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Split areas that are too long to be a single character."""
from __future__ import annotations

import math
from typing import Sequence

from .layout import Area, Column
from .task import SegmentationTask

SCAN_FROM = 0.25
SCAN_TO = 0.75
MAX_PIXELS_RATIO = 0.14


class SplitAreas:
    name = "splitareas"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation

    def run(self, columns: Sequence[Column]) -> None:
        for col in columns:
            min_length = int(math.ceil(col.min_dim * self.th.split_min_ratio))
            i = 0
            while i < len(col.areas):
                area = col.areas[i]
                if area.height < 10 and area.width < 10:
                    i += 1
                    continue
                length = area.height if col.vertical else area.width
                if length > min_length and self.split_area(area, col, i):
                    # re-examine the first half
                    continue
                i += 1

    def split_area(self, area: Area, col: Column, index: int) -> bool:
        split_at = self._find_split(area, col.vertical)
        if split_at is None:
            return False
        task = self.task
        before = after = 0
        if col.vertical:
            for x in range(col.x, col.max_x + 1):
                if task.get_pixel(x, split_at):
                    before += task.get_pixel(x, split_at - 1)
                    after += task.get_pixel(x, split_at + 1)
        else:
            for y in range(col.y, col.max_y + 1):
                if task.get_pixel(split_at, y):
                    before += task.get_pixel(split_at - 1, y)
                    after += task.get_pixel(split_at + 1, y)
        # the cut line goes to the side it is more connected to
        if before > after:
            split_at += 1
        halves = area.split_y(split_at) if col.vertical else area.split_x(split_at)
        col.areas[index : index + 1] = halves
        return True

    def _find_split(self, area: Area, vertical: bool):
        """Sparsest cut line in the central window, scanned centre-out."""

        task = self.task
        if vertical:
            lo = area.y + int(math.floor(area.height * SCAN_FROM))
            hi = area.y + int(math.ceil(area.height * SCAN_TO))
            min_pixels = int(math.ceil(area.width * MAX_PIXELS_RATIO)) + 1
            if lo <= 0 or hi >= task.height - 1:
                return None
        else:
            lo = area.x + int(math.floor(area.width * SCAN_FROM))
            hi = area.x + int(math.ceil(area.width * SCAN_TO))
            min_pixels = int(math.ceil(area.height * MAX_PIXELS_RATIO))
            if lo <= 0 or hi >= task.width - 1:
                return None

        split_at = None
        delta = 0
        pos = lo + (hi - lo) // 2
        while lo <= pos <= hi:
            if vertical:
                pixels = task.count_pixels_horizontal(area.x, area.max_x, pos)
            else:
                pixels = task.count_pixels_vertical(pos, area.y, area.max_y)
            if pixels < min_pixels:
                min_pixels = pixels
                split_at = pos
            delta += 1
            if delta == (hi - lo) // 4:
                # later lines must be clearly sparser than the centre
                min_pixels = int(math.floor(min_pixels * 0.9))
            pos = pos + delta if delta % 2 == 0 else pos - delta
        return split_at


__all__ = ["SplitAreas"]
