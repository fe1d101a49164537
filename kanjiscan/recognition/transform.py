# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Fit a cropped glyph to the target size and generate shifted variants."""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageFilter

from ..config import OCRConfig
from ..geometry import scale
from ..matrix import MATRIX_SIZE, array_to_matrix, move_matrix
from .matrices import TargetMatrix, Transformation

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


def glyph_image(pixels: np.ndarray) -> Image.Image:
    """Black-on-white RGB image from a boolean ``[y, x]`` ink array."""

    return Image.fromarray(np.where(pixels, 0, 255).astype(np.uint8)).convert("RGB")


def square_image(image: Image.Image, size: int) -> Image.Image:
    """Centre ``image`` on a white square, cutting what does not fit."""

    canvas = Image.new("RGB", (size, size), WHITE)
    dx = int((size - image.width) / 2)
    dy = int((size - image.height) / 2)
    canvas.paste(image, (dx, dy))
    return canvas


def fit_to_size(image: Image.Image, target_size: int, final_size: int) -> Image.Image:
    """Resize to ``target_size`` keeping thin glyphs (一, ｜) thin."""

    ratio = image.width / image.height
    if ratio > 1.0:
        ratio = 1 / ratio
    minor = int(round(scale(ratio, 0.1, 0.4, 8, target_size)))
    if image.width > image.height:
        size = (target_size, minor)
    else:
        size = (minor, target_size)
    return square_image(image.resize(size, Image.Resampling.BICUBIC), final_size)


def threshold_image(image: Image.Image, threshold: int) -> np.ndarray:
    rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    return (rgb < threshold).sum(axis=2) >= 2


def image_to_matrix(image: Image.Image, threshold: int) -> np.ndarray:
    return array_to_matrix(threshold_image(image, threshold))


class TargetTransformer:
    """Translate and stretch variants of one target glyph.

    The fitted and sharpened glyph is built once and stretched 32x32
    matrices are cached per stretch amount. Stages 1 and 2 share one
    transformer.
    """

    def __init__(self, pixels: np.ndarray, config: OCRConfig, char_index: Optional[int] = None) -> None:
        self.config = config
        self.char_index = char_index
        resized = fit_to_size(glyph_image(pixels), config.target_size, config.target_size)
        # resizing brings back gray edges
        self.image = resized.filter(
            ImageFilter.UnsharpMask(
                radius=config.unsharp_radius,
                percent=int(round(config.unsharp_amount * 100)),
                threshold=config.unsharp_threshold,
            )
        )
        self._stretched: Dict[Tuple[int, int], np.ndarray] = {}
        self.default_target: Optional[TargetMatrix] = None

    def transformations(self, max_translate: int, max_stretch: int, max_steps: int) -> List[Transformation]:
        limit = (MATRIX_SIZE - self.config.target_size) // 2
        result = []
        for ht in range(-max_translate, max_translate + 1):
            for vt in range(-max_translate, max_translate + 1):
                for hs in range(-max_stretch, max_stretch + 1):
                    for vs in range(-max_stretch, max_stretch + 1):
                        if abs(ht) + abs(vt) + abs(hs) + abs(vs) > max_steps:
                            continue
                        if math.ceil(hs / 2) + abs(ht) > limit:
                            continue
                        if math.ceil(vs / 2) + abs(vt) > limit:
                            continue
                        result.append(Transformation(ht, vt, hs, vs))
        return result

    def run(self, max_translate: int, max_stretch: int, max_steps: int) -> List[TargetMatrix]:
        targets = [
            self.transform(t) for t in self.transformations(max_translate, max_stretch, max_steps)
        ]
        logger.debug("char %s: %d target variants", self.char_index, len(targets))
        return targets

    def transform(self, transformation: Transformation) -> TargetMatrix:
        stretched = self.stretched_matrix(transformation.horizontal_stretch, transformation.vertical_stretch)
        matrix = move_matrix(stretched, transformation.horizontal_translate, transformation.vertical_translate)
        target = TargetMatrix.build(matrix, self.config.halo_layers, self.char_index, transformation)
        if self.default_target is None and transformation.is_identity:
            self.default_target = target
        return target

    def stretched_matrix(self, horizontal: int, vertical: int) -> np.ndarray:
        key = (horizontal, vertical)
        matrix = self._stretched.get(key)
        if matrix is None:
            size = self.config.target_size
            stretched = self.image.resize((size + horizontal, size + vertical), Image.Resampling.BICUBIC)
            matrix = image_to_matrix(square_image(stretched, MATRIX_SIZE), self.config.pixel_rgb_threshold)
            self._stretched[key] = matrix
        return matrix


__all__ = [
    "TargetTransformer",
    "fit_to_size",
    "glyph_image",
    "image_to_matrix",
    "square_image",
    "threshold_image",
]
