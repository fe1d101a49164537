# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Reference glyph cache: file naming, JSON records, loading and building.

One cache file exists per (font, target size, halo layers, character set).
Its name carries a 32-bit hash of those inputs so that changing any of them
points the loader at a different file::

    CHARACTERS_<HEX>.cache

Files are JSON lists of :class:`ReferenceRecord` validated with pydantic.
"""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont
from pydantic import BaseModel, Field, TypeAdapter

from ..config import OCRConfig, ReferenceFont
from ..errors import FontNotFoundError, KanjiScanError, ReferenceCacheMissingError
from ..geometry import Rect
from ..matrix import MATRIX_SIZE, array_to_matrix, build_halo, count_bits
from .charset import score_modifier
from .components import ComponentBuilder
from .matrices import Component, ReferenceBatch, ReferenceMatrix
from .transform import fit_to_size, threshold_image

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF

FONT_SIZES = range(25, 45)
CANVAS_SIZE = 120
CANVAS_OFFSET = 20
CHECK_CHARACTERS = "新をア"

FontLoader = Callable[[ReferenceFont, int], ImageFont.FreeTypeFont]


# ---------------------------------------------------------------------------
# File naming


def _utf16_units(text: str) -> List[int]:
    raw = text.encode("utf-16-le")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def string_hash(text: str) -> int:
    """``s[0]*31^(n-1) + ... + s[n-1]`` over UTF-16 units, 32-bit."""

    h = 0
    for unit in _utf16_units(text):
        h = (31 * h + unit) & _MASK32
    return h


def smear(h: int) -> int:
    h &= _MASK32
    h ^= (h >> 20) ^ (h >> 12)
    return (h ^ (h >> 7) ^ (h >> 4)) & _MASK32


def cache_hash(font: str, target_size: int, halo_layers: int, characters: str) -> int:
    h = smear(string_hash(font))
    h += smear(target_size * 1000)
    h += smear(halo_layers * 1000000)
    for unit in _utf16_units(characters):
        h += smear(unit)
    return h & _MASK32


def cache_file_name(font: ReferenceFont, config: OCRConfig) -> str:
    h = cache_hash(font.key, config.target_size, config.halo_layers, config.character_set)
    return f"CHARACTERS_{h:X}.cache"


def cache_path(font: ReferenceFont, config: OCRConfig) -> Path:
    return Path(config.cache_dir) / cache_file_name(font, config)


# ---------------------------------------------------------------------------
# Records


class ComponentRecord(BaseModel):
    rows: List[int] = Field(..., min_length=MATRIX_SIZE, max_length=MATRIX_SIZE)
    bounds: Tuple[int, int, int, int]
    pixels: int


class ReferenceRecord(BaseModel):
    character: str = Field(..., min_length=1, max_length=1)
    rows: List[int] = Field(..., min_length=MATRIX_SIZE, max_length=MATRIX_SIZE)
    halo: List[List[int]] = Field(default_factory=list)
    pixels: int
    font_name: str = ""
    score_modifier: float = 1.0
    components: List[ComponentRecord] = Field(default_factory=list)

    @classmethod
    def from_reference(cls, reference: ReferenceMatrix) -> "ReferenceRecord":
        return cls(
            character=reference.character,
            rows=[int(v) for v in reference.matrix],
            halo=[[int(v) for v in layer] for layer in reference.halo],
            pixels=reference.pixels,
            font_name=reference.font_name,
            score_modifier=reference.score_modifier,
            components=[
                ComponentRecord(
                    rows=[int(v) for v in c.matrix],
                    bounds=(c.bounds.x, c.bounds.y, c.bounds.width, c.bounds.height),
                    pixels=c.pixels,
                )
                for c in reference.components
            ],
        )

    def to_reference(self) -> ReferenceMatrix:
        return ReferenceMatrix(
            character=self.character,
            matrix=np.array(self.rows, dtype=np.uint32),
            halo=[np.array(layer, dtype=np.uint32) for layer in self.halo],
            pixels=self.pixels,
            font_name=self.font_name,
            score_modifier=self.score_modifier,
            components=[
                Component(
                    matrix=np.array(c.rows, dtype=np.uint32),
                    bounds=Rect(*c.bounds),
                    pixels=c.pixels,
                )
                for c in self.components
            ],
        )


_RECORDS = TypeAdapter(List[ReferenceRecord])


def write_references(path: Path, references: Iterable[ReferenceMatrix]) -> None:
    records = [ReferenceRecord.from_reference(r) for r in references]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(_RECORDS.dump_json(records))


def read_references(path: Path) -> List[ReferenceMatrix]:
    return [record.to_reference() for record in _RECORDS.validate_json(path.read_bytes())]


# ---------------------------------------------------------------------------
# Loading


class ReferenceCache:
    """Reference matrices per font, read-only once loaded."""

    def __init__(self, halo_layers: int) -> None:
        self.halo_layers = halo_layers
        self._references: Dict[str, List[ReferenceMatrix]] = {}
        self._batches: Dict[str, ReferenceBatch] = {}

    def put(self, font: ReferenceFont, references: List[ReferenceMatrix]) -> None:
        self._references[font.key] = references
        self._batches[font.key] = ReferenceBatch(references, self.halo_layers)

    def get(self, font: ReferenceFont) -> List[ReferenceMatrix]:
        return self._references[font.key]

    def batch(self, font: ReferenceFont) -> ReferenceBatch:
        return self._batches[font.key]

    def all(self) -> List[ReferenceMatrix]:
        return [r for refs in self._references.values() for r in refs]

    def __contains__(self, font: ReferenceFont) -> bool:
        return font.key in self._references


class ReferenceCacheLoader:
    """Load the cache files for every configured font exactly once."""

    def __init__(self, config: OCRConfig) -> None:
        self.config = config
        self._lock = threading.Lock()
        self._cache: Optional[ReferenceCache] = None

    @property
    def loaded(self) -> bool:
        return self._cache is not None

    def load(self) -> ReferenceCache:
        with self._lock:
            if self._cache is None:
                started = time.perf_counter()
                cache = ReferenceCache(self.config.halo_layers)
                for font in self.config.reference_fonts:
                    cache.put(font, self._read_font(font))
                self._cache = cache
                logger.debug("reference cache loaded (%.1f ms)", (time.perf_counter() - started) * 1000.0)
            return self._cache

    def _read_font(self, font: ReferenceFont) -> List[ReferenceMatrix]:
        path = cache_path(font, self.config)
        if not path.exists():
            raise ReferenceCacheMissingError(font.key, path)
        logger.info("loading references for %s from %s", font.key, path)
        references = read_references(path)
        for reference in references:
            reference.score_modifier = score_modifier(reference.character)
        return references


# ---------------------------------------------------------------------------
# Building


def _truetype(font: ReferenceFont, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(font.path or font.name, size)


def cut_borders(image: Image.Image) -> Optional[Image.Image]:
    """Crop to the ink of a black-on-white ``L`` image, ``None`` if blank."""

    box = Image.eval(image, lambda v: 255 if v == 0 else 0).getbbox()
    if box is None:
        return None
    return image.crop(box)


def check_row(bits: np.ndarray, row: int) -> None:
    """Clear ``row`` when only small corner spikes reach it.

    Some fonts draw sharp feet at the bottom corners (山); the reference
    should be as neutral as possible so that row is cut.
    """

    line = bits[row]
    left = int(line[:13].sum())
    middle = int(line[13:20].sum())
    right = int(line[20:].sum())
    if middle > 0:
        return
    if left > 5 or right > 5:
        return
    if left == 0 or right == 0:
        return
    line[:] = False


class ReferenceCacheBuilder:
    """Render reference glyphs with Pillow and write the cache files."""

    def __init__(self, config: OCRConfig, font_loader: Optional[FontLoader] = None) -> None:
        self.config = config
        self.font_loader = font_loader or _truetype
        self.components = ComponentBuilder(split=config.split_components)
        self._fonts: Dict[Tuple[str, int], ImageFont.FreeTypeFont] = {}

    def build(self, fonts: Optional[Iterable[ReferenceFont]] = None) -> List[Path]:
        written = []
        for font in fonts if fonts is not None else self.config.reference_fonts:
            written.append(self.build_font(font))
        return written

    def build_font(self, font: ReferenceFont) -> Path:
        path = cache_path(font, self.config)
        self.check_font(font)
        logger.info("generating references for %s into %s", font.key, path)
        started = time.perf_counter()
        seen = set()
        references = []
        for index, character in enumerate(self.config.character_set, start=1):
            if character in seen:
                raise KanjiScanError(f"Duplicate character: {character}")
            seen.add(character)
            references.append(self.build_reference(character, font))
            if index % 100 == 0:
                logger.debug("%s: %d characters", font.key, index)
        write_references(path, references)
        logger.info(
            "%s: %d characters done (%.1f ms)",
            font.key,
            len(references),
            (time.perf_counter() - started) * 1000.0,
        )
        return path

    def load_font(self, font: ReferenceFont, size: int) -> ImageFont.FreeTypeFont:
        key = (font.key, size)
        loaded = self._fonts.get(key)
        if loaded is None:
            try:
                loaded = self.font_loader(font, size)
            except OSError as exc:
                raise FontNotFoundError(font.key, str(exc)) from exc
            self._fonts[key] = loaded
        return loaded

    def check_font(self, font: ReferenceFont) -> None:
        """Fail early when the font cannot render the check characters."""

        loaded = self.load_font(font, FONT_SIZES[0])
        charset = self.config.character_set
        for character in CHECK_CHARACTERS:
            if character not in charset:
                continue
            if self.paint(character, loaded, font.bold) is None:
                raise FontNotFoundError(font.key, f"no glyph for {character!r}")

    def paint(self, character: str, loaded: ImageFont.FreeTypeFont, bold: bool) -> Optional[Image.Image]:
        image = Image.new("L", (CANVAS_SIZE, CANVAS_SIZE), 255)
        draw = ImageDraw.Draw(image)
        draw.fontmode = "1"
        stroke = 1 if bold else 0
        draw.text((CANVAS_OFFSET, CANVAS_OFFSET), character, font=loaded, fill=0, stroke_width=stroke, stroke_fill=0)
        return cut_borders(image)

    def paint_best_fit(self, character: str, font: ReferenceFont) -> np.ndarray:
        """Glyph rendered at the size closest to the target, as 32x32 bits."""

        target = self.config.target_size
        best: Optional[Image.Image] = None
        best_fit = 100
        for size in FONT_SIZES:
            image = self.paint(character, self.load_font(font, size), font.bold)
            if image is None:
                continue
            fit = min(abs(image.width - target), abs(image.height - target))
            if fit < best_fit:
                best_fit = fit
                best = image
        if best is None:
            return np.zeros((MATRIX_SIZE, MATRIX_SIZE), dtype=bool)
        fitted = fit_to_size(best.convert("RGB"), target, MATRIX_SIZE)
        bits = threshold_image(fitted, self.config.pixel_rgb_threshold)
        check_row(bits, MATRIX_SIZE - 1 - (MATRIX_SIZE - target) // 2)
        return bits

    def build_reference(self, character: str, font: ReferenceFont) -> ReferenceMatrix:
        matrix = array_to_matrix(self.paint_best_fit(character, font))
        # the only glyph that differs between orientations
        if character == "｜":
            character = "ー"
        return ReferenceMatrix(
            character=character,
            matrix=matrix,
            halo=build_halo(matrix, self.config.halo_layers - 1),
            pixels=count_bits(matrix),
            font_name=font.key,
            score_modifier=score_modifier(character),
            components=self.components.build(matrix),
        )


__all__ = [
    "ComponentRecord",
    "ReferenceCache",
    "ReferenceCacheBuilder",
    "ReferenceCacheLoader",
    "ReferenceRecord",
    "cache_file_name",
    "cache_hash",
    "cache_path",
    "check_row",
    "read_references",
    "smear",
    "string_hash",
    "write_references",
]
