# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Run the segmentation steps from raw image to resolved columns."""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from PIL import Image

from ..config import OCRConfig, Orientation
from ..diagnostics import DiagnosticsObserver, NullDiagnostics
from .areas import FindAreas
from .columns import ColumnBuilder
from .connections import FindConnections
from .furigana import FindFurigana
from .layout import Column
from .merge import MergeAreas
from .orientation import OrientationMerge
from .preprocess import binarize, invert_regions, sharpen_image
from .punctuation import FindPunctuation
from .split import SplitAreas
from .task import SegmentationTask

logger = logging.getLogger(__name__)

# column post steps, applied in this order to each orientation
POST_STEPS = (FindPunctuation, SplitAreas, MergeAreas, FindFurigana, FindConnections)


class AreaDetector:
    """Find character areas and reading columns in a target image."""

    def __init__(self, config: OCRConfig, diagnostics: Optional[DiagnosticsObserver] = None) -> None:
        self.config = config
        self.diagnostics = diagnostics or NullDiagnostics()

    def _step(self, name: str, task: SegmentationTask, fn: Callable, *args):
        t0 = time.perf_counter()
        out = fn(*args)
        dt = (time.perf_counter() - t0) * 1000.0
        logger.debug("%s (%.1f ms)", name, dt)
        self.diagnostics.on_segmentation_step(name, task)
        return out

    def run(self, image: Image.Image) -> SegmentationTask:
        started = time.perf_counter()
        task = SegmentationTask(image, self.config)

        def prepare() -> None:
            task.sharpened_image = sharpen_image(task.original_image, self.config)
            task.binary = binarize(task.sharpened_image, self.config.pixel_rgb_threshold)

        self._step("binary", task, prepare)
        self._step("invert", task, invert_regions, task)
        self._step(FindAreas.name, task, FindAreas(task).run)

        areas = list(task.areas)
        orientation = self.config.orientation
        if orientation in (Orientation.AUTOMATIC, Orientation.VERTICAL):
            task.vertical_columns = self.find_columns(task, areas, True)
        if orientation in (Orientation.AUTOMATIC, Orientation.HORIZONTAL):
            task.horizontal_columns = self.find_columns(task, areas, False)
        task.areas = areas

        self._step(OrientationMerge.name, task, self._resolve, task)
        logger.debug(
            "area detector: %d columns, %d areas (%.1f ms)",
            len(task.columns),
            len(task.areas),
            (time.perf_counter() - started) * 1000.0,
        )
        return task

    def find_columns(self, task: SegmentationTask, areas, vertical: bool) -> List[Column]:
        suffix = "vertical" if vertical else "horizontal"
        builder = ColumnBuilder(task, vertical)

        def build() -> None:
            task.columns = task.arena.add_all(builder.run(areas))
            task.collect_areas()

        self._step(f"{ColumnBuilder.name}.{suffix}", task, build)
        for step_type in POST_STEPS:
            step = step_type(task)

            def apply(step=step) -> None:
                step.run(task.columns)
                for column in task.columns:
                    column.adopt_areas()
                task.collect_areas()

            self._step(f"{step.name}.{suffix}", task, apply)
        return task.columns

    @staticmethod
    def _resolve(task: SegmentationTask) -> None:
        OrientationMerge(task).run()
        task.collect_areas()


__all__ = ["AreaDetector", "POST_STEPS"]
