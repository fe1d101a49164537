# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Segmentation state shared by the area detection steps."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from PIL import Image

from ..config import OCRConfig
from ..geometry import Point, Rect
from .layout import Area, Column, ColumnArena


@dataclass
class SubImage:
    """Cropped binary image of one character candidate."""

    pixels: np.ndarray
    rect: Rect
    column_id: Optional[int] = None
    vertical: Optional[bool] = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class SegmentationTask:
    """Images, areas and columns for one target image.

    Pixel grids are ``(height, width)`` boolean arrays indexed ``[y, x]``.
    """

    def __init__(self, image: Image.Image, config: OCRConfig) -> None:
        self.config = config
        self.original_image = image.convert("RGB")
        self.width, self.height = self.original_image.size
        self.sharpened_image: Optional[Image.Image] = None
        self.binary = np.zeros((self.height, self.width), dtype=bool)
        self.background = np.zeros((self.height, self.width), dtype=bool)
        self.border = np.zeros((self.height, self.width), dtype=bool)
        self.inverted_blocks: Optional[np.ndarray] = None
        self.invert_all = False
        self.arena = ColumnArena()
        self.areas: List[Area] = []
        self.columns: List[Column] = []
        self.vertical_columns: List[Column] = []
        self.horizontal_columns: List[Column] = []
        self._intensity: Optional[np.ndarray] = None

    @property
    def bounds(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    def get_pixel(self, x: int, y: int) -> bool:
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return False
        return bool(self.binary[y, x])

    @property
    def intensity(self) -> np.ndarray:
        """Minimum RGB channel per pixel, flipped inside inverted regions."""

        if self._intensity is None:
            rgb = np.asarray(self.original_image, dtype=np.uint8)
            lowest = rgb.min(axis=2).astype(np.int16)
            inverted = self.inverted_mask()
            self._intensity = np.where(inverted, 255 - lowest, lowest)
        return self._intensity

    def inverted_mask(self) -> np.ndarray:
        if self.invert_all:
            return np.ones((self.height, self.width), dtype=bool)
        if self.inverted_blocks is None:
            return np.zeros((self.height, self.width), dtype=bool)
        block = self.config.segmentation.invert_block_size
        ys = np.arange(self.height) // block
        xs = np.arange(self.width) // block
        return self.inverted_blocks[np.ix_(ys, xs)]

    def count_pixels(self, rect: Rect, background: bool = False, inside: bool = True) -> int:
        """Count ink (or background) pixels in ``rect``.

        Without ``inside`` only the rectangle's outline is counted. Pixels
        outside the image are ignored.
        """

        grid = self.background if background else self.binary
        if rect.width <= 0 or rect.height <= 0:
            return 0
        if inside:
            return int(_clip(grid, rect).sum())
        total = int(_clip(grid, Rect(rect.x, rect.y, rect.width, 1)).sum())
        if rect.height > 1:
            total += int(_clip(grid, Rect(rect.x, rect.max_y, rect.width, 1)).sum())
        if rect.height > 2:
            total += int(_clip(grid, Rect(rect.x, rect.y + 1, 1, rect.height - 2)).sum())
            if rect.width > 1:
                total += int(_clip(grid, Rect(rect.max_x, rect.y + 1, 1, rect.height - 2)).sum())
        return total

    def count_pixels_horizontal(self, min_x: int, max_x: int, y: int) -> int:
        return self.count_pixels(Rect(min_x, y, max_x - min_x + 1, 1))

    def count_pixels_vertical(self, x: int, min_y: int, max_y: int) -> int:
        return self.count_pixels(Rect(x, min_y, 1, max_y - min_y + 1))

    def collect_areas(self) -> None:
        self.areas = [area for column in self.columns for area in column.areas]

    def closest_area(self, point: Point) -> Optional[Area]:
        """Nearest non-punctuation area, ``None`` when it is too far away."""

        best: Optional[Area] = None
        best_distance = 1_000_000
        for area in self.areas:
            if area.punctuation:
                continue
            distance = int(area.midpoint.distance(point))
            if distance < best_distance:
                best_distance = distance
                best = area
        if best is None or best_distance > best.max_dim:
            return None
        return best

    def sub_images(self, point: Point) -> List[SubImage]:
        """Characters starting at the area closest to ``point``.

        Follows the column's reading order into linked next columns and
        stops after ``max_characters`` areas or when the chain loops.
        """

        first = self.closest_area(point)
        if first is None:
            return []
        limit = self.config.max_characters
        selected: List[Area] = []
        found = False
        start = self.arena.column_of(first)
        chain = self.arena.follow_chain(start) if start is not None else iter(())
        resolved = {column.id for column in self.columns}
        for column in chain:
            if column.id not in resolved:
                break
            for area in column.areas:
                if area is first:
                    found = True
                if found and not area.punctuation:
                    selected.append(area)
                if len(selected) == limit:
                    break
            if len(selected) == limit:
                break
        if not selected:
            selected = [first]
        return [
            SubImage(self.binary_crop(area.rect), area.rect, area.column_id, area.vertical)
            for area in selected
        ]

    def sub_images_for(self, rects: Sequence[Rect]) -> List[SubImage]:
        """Crop caller-supplied rectangles and trim their empty borders.

        Rectangles without ink are skipped.
        """

        result = []
        for rect in rects:
            rect = self._trim_border(rect.intersection(self.bounds))
            if rect.is_empty():
                continue
            pixels = self.binary_crop(rect)
            if not pixels.any():
                continue
            result.append(SubImage(pixels, rect))
        return result

    def binary_crop(self, rect: Rect) -> np.ndarray:
        return _clip(self.binary, rect).copy()

    def _trim_border(self, rect: Rect) -> Rect:
        if rect.is_empty():
            return rect
        crop = _clip(self.binary, rect)
        mid = rect.midpoint
        cols = crop.any(axis=0)
        rows = crop.any(axis=1)
        min_x, max_x = rect.x, rect.max_x
        while min_x < mid.x and not cols[min_x - rect.x]:
            min_x += 1
        while max_x > mid.x and not cols[max_x - rect.x]:
            max_x -= 1
        min_y, max_y = rect.y, rect.max_y
        while min_y < mid.y and not rows[min_y - rect.y]:
            min_y += 1
        while max_y > mid.y and not rows[max_y - rect.y]:
            max_y -= 1
        return Rect(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1)


def _clip(grid: np.ndarray, rect: Rect) -> np.ndarray:
    x0 = max(rect.x, 0)
    y0 = max(rect.y, 0)
    x1 = min(rect.x + rect.width, grid.shape[1])
    y1 = min(rect.y + rect.height, grid.shape[0])
    if x1 <= x0 or y1 <= y0:
        return grid[0:0, 0:0]
    return grid[y0:y1, x0:x1]


__all__ = ["SegmentationTask", "SubImage"]
