# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Image preparation: unsharp mask, thresholding and background inversion."""
from __future__ import annotations

import logging
import math
from collections import deque
from typing import List, Tuple

import numpy as np
from PIL import Image, ImageFilter

from ..config import CharacterColor, OCRConfig
from ..geometry import Rect
from .task import SegmentationTask

logger = logging.getLogger(__name__)


def sharpen_image(image: Image.Image, config: OCRConfig) -> Image.Image:
    """Increase contrast around strokes with an unsharp mask."""

    unsharp = ImageFilter.UnsharpMask(
        radius=config.unsharp_radius,
        percent=int(round(config.unsharp_amount * 100)),
        threshold=config.unsharp_threshold,
    )
    return image.convert("RGB").filter(unsharp)


def binarize(image: Image.Image, threshold: int) -> np.ndarray:
    """Ink where at least two of the three RGB channels are below ``threshold``."""

    rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    dark = (rgb < threshold).sum(axis=2)
    return dark >= 2


def invert_regions(task: SegmentationTask) -> None:
    """Flip white-on-black text so it reads as black-on-white."""

    color = task.config.character_color
    if color is CharacterColor.BLACK_ON_WHITE:
        return
    if color is CharacterColor.WHITE_ON_BLACK:
        task.binary = ~task.binary
        task.invert_all = True
        return
    _BlockInverter(task).run()


Block = Tuple[int, int]


class _BlockInverter:
    """Detects dark regions block by block and inverts them in place."""

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation
        self.block = self.th.invert_block_size
        self.bw = int(math.ceil(task.width / self.block))
        self.bh = int(math.ceil(task.height / self.block))
        self.visited = np.zeros((self.bh, self.bw), dtype=bool)
        self.invert = np.zeros((self.bh, self.bw), dtype=bool)
        self.neighbours = np.zeros((self.bh, self.bw), dtype=np.int32)

    def run(self) -> None:
        ratios = self._block_ratios()
        for by in range(self.bh):
            for bx in range(self.bw):
                self._check_block(bx, by, ratios)
        for by in range(self.bh):
            for bx in range(self.bw):
                if self.invert[by, bx]:
                    self._invert_block(bx, by)
        self.task.inverted_blocks = self.invert
        if self.invert.any():
            logger.debug("inverted %d of %d blocks", int(self.invert.sum()), self.invert.size)

    def _block_ratios(self) -> np.ndarray:
        ratios = np.zeros((self.bh, self.bw), dtype=np.float64)
        binary = self.task.binary
        for by in range(self.bh):
            for bx in range(self.bw):
                cell = binary[by * self.block : (by + 1) * self.block, bx * self.block : (bx + 1) * self.block]
                ratios[by, bx] = cell.mean() if cell.size else 0.0
        return ratios

    def _inverted(self, bx: int, by: int) -> bool:
        return 0 <= bx < self.bw and 0 <= by < self.bh and bool(self.invert[by, bx])

    def _check_block(self, x: int, y: int, ratios: np.ndarray) -> None:
        marked: List[Block] = []
        black_blocks = 0
        min_x = max_x = x
        min_y = max_y = y
        todo = deque([(x, y)])
        while todo:
            bx, by = todo.popleft()
            if self.visited[by, bx]:
                continue
            self.visited[by, bx] = True
            ratio = ratios[by, bx]
            threshold = self.th.invert_block_ratio - self.neighbours[by, bx] * self.th.invert_neighbour_bonus
            if ratio >= threshold:
                self._mark(bx, by, todo)
                marked.append((bx, by))
            if ratio >= self.th.invert_block_ratio:
                black_blocks += 1
            min_x, max_x = min(min_x, bx), max(max_x, bx)
            min_y, max_y = min(min_y, by), max(max_y, by)

        quads = sum(
            1
            for bx, by in marked
            if self._inverted(bx + 1, by) and self._inverted(bx, by + 1) and self._inverted(bx + 1, by + 1)
        )
        if quads < self.th.invert_min_blocks or black_blocks < self.th.invert_min_blocks:
            # isolated dark blocks are usually thick strokes, not a background
            for bx, by in marked:
                self.invert[by, bx] = False
            return
        self._fill_gaps(Rect(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1))

    def _mark(self, x: int, y: int, todo: deque) -> None:
        self.invert[y, x] = True
        for nx, ny in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
            if 0 <= nx < self.bw and 0 <= ny < self.bh:
                self.neighbours[ny, nx] += 1
                todo.append((nx, ny))

    def _fill_gaps(self, region: Rect) -> None:
        internal = Rect(region.x + 1, region.y + 1, region.width - 2, region.height - 2)
        visited = np.zeros((self.bh, self.bw), dtype=bool)
        for x in range(internal.x, internal.x + internal.width):
            for y in range(internal.y, internal.y + internal.height):
                if self.invert[y, x] or visited[y, x]:
                    continue
                marked: List[Block] = []
                touches_border = False
                min_x = max_x = x
                min_y = max_y = y
                todo = deque([(x, y)])
                while todo:
                    bx, by = todo.popleft()
                    if self._inverted(bx, by) or (0 <= bx < self.bw and 0 <= by < self.bh and visited[by, bx]):
                        continue
                    if not internal.contains_point(bx, by):
                        touches_border = True
                        continue
                    visited[by, bx] = True
                    marked.append((bx, by))
                    todo.extend(((bx, by - 1), (bx, by + 1), (bx - 1, by), (bx + 1, by)))
                    min_x, max_x = min(min_x, bx), max(max_x, bx)
                    min_y, max_y = min(min_y, by), max(max_y, by)
                if touches_border:
                    continue
                width = max_x - min_x + 1
                height = max_y - min_y + 1
                max_gap = self.th.invert_max_gap_blocks
                if width > max_gap and height > max_gap:
                    continue
                if width >= 3 and height >= 3:
                    # low ink inside an ellipse: a speech bubble on a dark background
                    ratio = self._ellipse_ratio(min_x, max_x, min_y, max_y, self.th.invert_gap_ellipse)
                    if ratio < self.th.invert_gap_min_ratio:
                        continue
                for bx, by in marked:
                    self.invert[by, bx] = True

    def _ellipse_ratio(self, min_x: int, max_x: int, min_y: int, max_y: int, size: float) -> float:
        block = self.block
        pw = (max_x - min_x + 1) * block
        ph = (max_y - min_y + 1) * block
        a2 = (pw / 2 * size) ** 2
        b2 = (ph / 2 * size) ** 2
        px0, py0 = min_x * block, min_y * block
        px1 = min((max_x + 1) * block, self.task.width)
        py1 = min((max_y + 1) * block, self.task.height)
        cx, cy = px0 + pw // 2, py0 + ph // 2
        ys, xs = np.mgrid[py0:py1, px0:px1]
        inside = ((xs - cx) ** 2 / a2 + (ys - cy) ** 2 / b2) <= 1.0
        total = int(inside.sum())
        if total == 0:
            return 0.0
        return int(self.task.binary[py0:py1, px0:px1][inside].sum()) / total

    def _invert_block(self, x: int, y: int) -> None:
        top = y > 0 and not self.invert[y - 1, x]
        bottom = y < self.bh - 1 and not self.invert[y + 1, x]
        left = x > 0 and not self.invert[y, x - 1]
        right = x < self.bw - 1 and not self.invert[y, x + 1]
        task = self.task
        block = self.block
        min_x, min_y = x * block, y * block
        max_x, max_y = min_x + block - 1, min_y + block - 1
        cell = task.binary[min_y : max_y + 1, min_x : max_x + 1]
        cell[...] = ~cell
        # region outline is drawn as ink and remembered as a border so the
        # area finder treats it as background
        if top:
            self._line(min_x, max_x, min_y, min_y)
        if bottom:
            self._line(min_x, max_x, max_y, max_y)
        if left:
            self._line(min_x, min_x, min_y, max_y)
        if right:
            self._line(max_x, max_x, min_y, max_y)

    def _line(self, x0: int, x1: int, y0: int, y1: int) -> None:
        task = self.task
        task.binary[y0 : y1 + 1, x0 : x1 + 1] = True
        task.border[y0 : y1 + 1, x0 : x1 + 1] = True


__all__ = ["binarize", "invert_regions", "sharpen_image"]
