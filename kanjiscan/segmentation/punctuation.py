# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Mark bracket, dot and comma areas as punctuation."""
from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from ..geometry import Point, Rect
from .layout import Area, Column
from .task import SegmentationTask

Triangle = Tuple[Point, Point, Point]


class FindPunctuation:
    name = "punctuation"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation

    def run(self, columns: Sequence[Column]) -> None:
        for col in columns:
            for area in col.areas:
                if self.is_bracket(area, col):
                    area.punctuation = True
                    area.changed = True
            self.mark_dot_comma(col)

    def _any_ink(self, rect: Rect) -> bool:
        return self.task.count_pixels(rect) > 0

    def is_bracket(self, area: Area, col: Column) -> bool:
        """Bracket shapes such as 「 ［ 【 〈 ｛ ( or their rotations."""

        if area.major_minor_ratio > self.th.bracket_max_ratio or area.major_dim < 0.1:
            return False
        if area.min_dim <= 2:
            return False

        sq = int(math.ceil(area.min_dim * self.th.bracket_square))
        tri_w = int(math.floor(area.width * self.th.bracket_triangle))
        tri_h = int(math.floor(area.height * self.th.bracket_triangle))
        min_x, max_x, min_y, max_y = area.x, area.max_x, area.y, area.max_y
        mid = area.midpoint

        ne = self._any_ink(Rect(max_x - sq + 1, min_y, sq, sq))
        nw = self._any_ink(Rect(min_x, min_y, sq, sq))
        se = self._any_ink(Rect(max_x - sq + 1, max_y - sq + 1, sq, sq))
        sw = self._any_ink(Rect(min_x, max_y - sq + 1, sq, sq))

        candidates = []
        if col.vertical:
            # horizontal brackets such as ﹁ and ﹂
            t_min_x = min_x + (area.width - tri_w) // 2
            t_max_x = max_x - (area.width - tri_w) // 2
            if se and (ne or sw):
                candidates.append((Point(mid.x, max_y - tri_h), Point(t_max_x, max_y), Point(t_min_x, max_y)))
            if nw and (sw or ne):
                candidates.append((Point(mid.x, min_y + tri_h), Point(t_min_x, min_y), Point(t_max_x, min_y)))
        else:
            t_min_y = min_y + (area.height - tri_h) // 2
            t_max_y = max_y - (area.height - tri_h) // 2
            if ne and (nw or se):
                candidates.append((Point(max_x - tri_w, mid.y), Point(max_x, t_min_y), Point(max_x, t_max_y)))
            if sw and (se or nw):
                candidates.append((Point(min_x + tri_w, mid.y), Point(min_x, t_max_y), Point(min_x, t_min_y)))
        return any(not self._triangle_has_ink(area.rect, t) for t in candidates)

    def _triangle_has_ink(self, rect: Rect, t: Triangle) -> bool:
        ys, xs = np.mgrid[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width]

        def sign(a: Point, b: Point):
            return (xs - b.x) * (a.y - b.y) - (a.x - b.x) * (ys - b.y)

        d1 = sign(t[0], t[1])
        d2 = sign(t[1], t[2])
        d3 = sign(t[2], t[0])
        has_neg = (d1 < 0) | (d2 < 0) | (d3 < 0)
        has_pos = (d1 > 0) | (d2 > 0) | (d3 > 0)
        inside = ~(has_neg & has_pos)
        crop = self.task.binary[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width]
        return bool((crop & inside).any())

    def mark_dot_comma(self, col: Column) -> None:
        """Small trailing marks near the column's trailing edge."""

        th = self.th
        areas = col.areas
        for i in range(1, len(areas)):
            prev = areas[i - 1]
            area = areas[i]
            nxt = areas[i + 1] if i < len(areas) - 1 else None
            if col.vertical:
                size = area.max_dim <= math.ceil(th.dot_max_size * col.width)
                location = col.max_x - area.max_x < col.width * th.dot_edge_distance
                distance = nxt is None or (area.y - prev.max_y) < (nxt.y - area.max_y)
            else:
                size = area.max_dim <= math.ceil(th.dot_max_size * col.height)
                location = col.max_y - area.max_y < col.height * th.dot_edge_distance
                distance = nxt is None or (area.x - prev.max_x) < (nxt.x - area.max_x)
            if size and location and distance:
                area.punctuation = True
                area.changed = True


__all__ = ["FindPunctuation"]
