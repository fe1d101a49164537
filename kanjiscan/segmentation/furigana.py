# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Detect furigana columns beside their main column."""
from __future__ import annotations

from typing import Sequence

from ..geometry import Rect
from .layout import Column
from .spatial_index import SpatialIndex
from .task import SegmentationTask


class FindFurigana:
    """Furigana sit right of vertical text and above horizontal text.

    A candidate must be clearly thinner than the main column, no longer than
    it and made of much smaller areas.
    """

    name = "furigana"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation
        self.index: SpatialIndex[Column] = SpatialIndex.for_image(task.width, task.height)

    def run(self, columns: Sequence[Column]) -> None:
        self.index.add_all(columns)
        for col in columns:
            self.find_furigana(col)

    def search_rect(self, col: Column) -> Rect:
        if col.vertical:
            return Rect(col.max_x + 1, col.y, col.width // 2, col.height)
        return Rect(col.x, col.y - col.height // 2 - 1, col.width, col.height // 2)

    def find_furigana(self, col: Column) -> None:
        th = self.th
        search = self.search_rect(col)
        if self.task.count_pixels(search, background=True, inside=False) >= th.background_tolerance:
            return
        for candidate in self.index.query(search, col):
            if not th.furigana_min_thickness * col.minor_dim < candidate.minor_dim < th.furigana_max_thickness * col.minor_dim:
                continue
            if candidate.major_dim >= col.major_dim * th.furigana_max_length:
                continue
            if candidate.median_area_size >= col.median_area_size * th.furigana_max_area:
                continue
            candidate.furigana = True
            candidate.changed = True
            if candidate.id not in col.furigana_ids:
                col.furigana_ids.append(candidate.id)


__all__ = ["FindFurigana"]
