# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Public entry point: segment a target image and recognise characters.

Typical use::

    with KanjiScan() as ocr:
        ocr.load_data()
        ocr.set_target_image("page.png")
        results = ocr.run_ocr(Point(120, 48))
        print(results.best_matching_characters)

``load_data`` reads the reference cache and starts the worker pool; it is
called on first use when the caller skips it. Recognition before
``set_target_image`` raises :class:`TargetImageNotSetError` without doing
any work.
"""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
from PIL import Image

from .config import OCRConfig, Orientation
from .diagnostics import DiagnosticsObserver, NullDiagnostics
from .errors import EngineClosedError, TargetImageNotSetError
from .geometry import Point, Rect
from .models import ColumnInfo, OCRResults, RectModel, build_results
from .recognition.cache import ReferenceCacheLoader
from .recognition.engine import RecognitionEngine
from .recognition.scoring import OCRResult
from .scheduler import TaskScheduler
from .segmentation.detector import AreaDetector
from .segmentation.task import SegmentationTask, SubImage

logger = logging.getLogger(__name__)

ImageInput = Union[Image.Image, np.ndarray, str, Path]


def _as_image(image: ImageInput) -> Image.Image:
    if isinstance(image, Image.Image):
        return image.convert("RGB")
    if isinstance(image, np.ndarray):
        return Image.fromarray(image).convert("RGB")
    with Image.open(image) as opened:
        return opened.convert("RGB")


class KanjiScan:
    def __init__(
        self,
        config: Optional[OCRConfig] = None,
        diagnostics: Optional[DiagnosticsObserver] = None,
    ) -> None:
        self.config = config or OCRConfig()
        self.diagnostics = diagnostics or NullDiagnostics()
        self.loader = ReferenceCacheLoader(self.config)
        self.detector = AreaDetector(self.config, self.diagnostics)
        self.engine: Optional[RecognitionEngine] = None
        self.scheduler: Optional[TaskScheduler[List[OCRResult]]] = None
        self.task: Optional[SegmentationTask] = None
        self._lock = threading.Lock()

    # -- lifecycle ---------------------------------------------------------

    def load_data(self) -> None:
        """Load reference glyphs and start the worker pool (idempotent)."""

        with self._lock:
            if self.engine is not None:
                return
            references = self.loader.load()
            self.engine = RecognitionEngine(self.config, references, self.diagnostics)
            self.scheduler = TaskScheduler(
                self.engine.run,
                threads=self.config.threads,
                queue_size=self.config.task_queue_size,
            )

    def close(self) -> None:
        with self._lock:
            if self.scheduler is not None:
                self.scheduler.shutdown()
                self.scheduler = None
            self.engine = None

    def __enter__(self) -> "KanjiScan":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- target image --------------------------------------------------------

    def set_target_image(self, image: ImageInput) -> None:
        started = time.perf_counter()
        self.task = self.detector.run(_as_image(image))
        logger.info(
            "target image processed: %dx%d, %d columns (%.1f ms)",
            self.task.width,
            self.task.height,
            len(self.task.columns),
            (time.perf_counter() - started) * 1000.0,
        )

    def _require_task(self) -> SegmentationTask:
        if self.task is None:
            raise TargetImageNotSetError()
        return self.task

    @property
    def columns(self) -> List[ColumnInfo]:
        """Columns of the current target image, in detection order."""

        task = self._require_task()
        index = {column.id: i for i, column in enumerate(task.columns)}
        infos = []
        for i, column in enumerate(task.columns):
            infos.append(
                ColumnInfo(
                    index=i,
                    rect=RectModel.from_rect(column.rect),
                    areas=[RectModel.from_rect(area.rect) for area in column.areas],
                    vertical=column.vertical,
                    furigana=column.furigana,
                    next_index=index.get(column.next_id),
                    previous_index=index.get(column.previous_id),
                    furigana_indexes=[index[f] for f in column.furigana_ids if f in index],
                )
            )
        return infos

    # -- recognition ---------------------------------------------------------

    def run_ocr(self, point: Union[Point, Sequence[int]]) -> Optional[OCRResults]:
        """Recognise up to ``max_characters`` starting near ``point``.

        Returns ``None`` when no character area is close to the point.
        """

        task = self._require_task()
        if not isinstance(point, Point):
            point = Point(int(point[0]), int(point[1]))
        logger.info("run OCR at point %d,%d", point.x, point.y)
        sub_images = task.sub_images(point)
        if not sub_images:
            logger.debug("no character near %d,%d", point.x, point.y)
            return None
        vertical = sub_images[0].vertical
        if vertical is None:
            vertical = self.config.orientation != Orientation.HORIZONTAL
        return self._recognize(sub_images, vertical)

    def run_ocr_rects(self, rects: Iterable[Union[Rect, Sequence[int]]]) -> Optional[OCRResults]:
        """Recognise one character per caller-supplied rectangle.

        Rectangles are clipped to the image and trimmed to their ink; empty
        ones are skipped.
        """

        task = self._require_task()
        rects = [r if isinstance(r, Rect) else Rect(*(int(v) for v in r)) for r in rects]
        logger.info("run OCR on %d rectangles", len(rects))
        sub_images = task.sub_images_for(rects)
        if not sub_images:
            return None
        return self._recognize(sub_images, self.config.orientation != Orientation.HORIZONTAL)

    def _recognize(self, sub_images: List[SubImage], vertical: bool) -> OCRResults:
        self.load_data()
        with self._lock:
            scheduler = self.scheduler
        if scheduler is None:
            raise EngineClosedError()
        started = time.perf_counter()
        ranked = scheduler.run([sub_image.pixels for sub_image in sub_images])
        results = build_results(
            [[(r.character, r.score) for r in ranking] for ranking in ranked],
            [sub_image.rect for sub_image in sub_images],
            vertical,
        )
        logger.info(
            "recognised %r (%.1f ms)",
            results.best_matching_characters,
            (time.perf_counter() - started) * 1000.0,
        )
        return results


__all__ = ["KanjiScan"]
