# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Observer hooks called by segmentation steps and recognition stages.

The engine only talks to :class:`DiagnosticsObserver`; the default
:class:`NullDiagnostics` does nothing. :class:`DebugImageWriter` renders
snapshots with Pillow and never lets an I/O failure reach the caller.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional, Protocol, Sequence, Union

import numpy as np
from PIL import Image, ImageDraw

if TYPE_CHECKING:  # pragma: no cover
    from .recognition.scoring import OCRResult
    from .segmentation.task import SegmentationTask

logger = logging.getLogger(__name__)


class DiagnosticsObserver(Protocol):
    def on_segmentation_step(self, step: str, task: "SegmentationTask") -> None:
        ...

    def on_recognition_stage(self, char_index: int, stage: str, results: Sequence["OCRResult"]) -> None:
        ...


class NullDiagnostics:
    def on_segmentation_step(self, step: str, task: "SegmentationTask") -> None:
        return None

    def on_recognition_stage(self, char_index: int, stage: str, results: Sequence["OCRResult"]) -> None:
        return None


class LoggingDiagnostics:
    """Log a one-line summary per step at DEBUG level."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def on_segmentation_step(self, step: str, task: "SegmentationTask") -> None:
        self.log.debug("step %s: %d areas, %d columns", step, len(task.areas), len(task.columns))

    def on_recognition_stage(self, char_index: int, stage: str, results: Sequence["OCRResult"]) -> None:
        top = ", ".join(f"{r.character}:{r.score}" for r in list(results)[:5])
        self.log.debug("char %d %s: %s", char_index, stage, top)


class DebugImageWriter:
    """Write PNG snapshots of segmentation steps and recognition stages."""

    def __init__(self, directory: Union[str, Path], steps: Optional[Iterable[str]] = None) -> None:
        self.directory = Path(directory)
        self.steps = set(steps) if steps is not None else None
        self._counter = 0
        self._lock = threading.Lock()

    def _next_path(self, name: str) -> Path:
        with self._lock:
            self._counter += 1
            index = self._counter
        return self.directory / f"{index:03d}.{name}.png"

    def _save(self, image: Image.Image, name: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            image.save(self._next_path(name))
        except OSError as exc:
            logger.warning("failed to write debug image %s: %s", name, exc)

    def on_segmentation_step(self, step: str, task: "SegmentationTask") -> None:
        if self.steps is not None and step not in self.steps:
            return
        self._save(render_task(task), step)

    def on_recognition_stage(self, char_index: int, stage: str, results: Sequence["OCRResult"]) -> None:
        if self.steps is not None and stage not in self.steps:
            return
        if not results:
            return
        self._save(render_results(results), f"char{char_index}.{stage}")


def render_task(task: "SegmentationTask") -> Image.Image:
    """Binary image with background, areas and columns drawn on top."""

    canvas = np.full((task.height, task.width, 3), 255, dtype=np.uint8)
    canvas[task.binary] = (0, 0, 0)
    canvas[task.background] = (255, 170, 170)
    image = Image.fromarray(canvas)
    draw = ImageDraw.Draw(image)
    for column in task.columns:
        r = column.rect
        color = (255, 140, 0) if column.furigana else ((220, 0, 0) if column.vertical else (0, 160, 0))
        draw.rectangle([r.x - 1, r.y - 1, r.max_x + 1, r.max_y + 1], outline=color)
    for area in task.areas:
        r = area.rect
        color = (0, 0, 255) if area.punctuation else (0, 170, 220)
        if area.changed:
            color = (200, 0, 200)
        draw.rectangle([r.x, r.y, r.max_x, r.max_y], outline=color)
    return image


def render_results(results: Sequence["OCRResult"], limit: int = 8) -> Image.Image:
    """Target bitmap followed by the best reference bitmaps, side by side."""

    from .matrix import matrix_to_image

    shown = list(results)[:limit]
    tiles = [matrix_to_image(shown[0].target.matrix)]
    tiles.extend(matrix_to_image(r.reference.matrix) for r in shown)
    strip = Image.new("L", (34 * len(tiles), 32), 128)
    for i, tile in enumerate(tiles):
        strip.paste(tile, (i * 34, 0))
    return strip


__all__ = [
    "DebugImageWriter",
    "DiagnosticsObserver",
    "LoggingDiagnostics",
    "NullDiagnostics",
    "render_results",
    "render_task",
]
