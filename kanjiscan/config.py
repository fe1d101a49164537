# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Immutable engine configuration.

``OCRConfig`` is passed explicitly to every component that needs tuning
values. The empirically tuned segmentation constants live in
``SegmentationThresholds`` so they can be adjusted without touching the
algorithms. ``OCRConfig.from_env`` mirrors the ``KANJISCAN_*`` environment
conventions used by the CLI.
"""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class Orientation(str, Enum):
    AUTOMATIC = "automatic"
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class CharacterColor(str, Enum):
    AUTOMATIC = "automatic"
    BLACK_ON_WHITE = "black_on_white"
    WHITE_ON_BLACK = "white_on_black"


@dataclass(frozen=True)
class ReferenceFont:
    """Font used to render reference glyphs.

    ``path`` points at a TrueType/OpenType file; when omitted ``name`` is
    handed to Pillow which resolves it against the system font directories.
    """

    name: str
    bold: bool = False
    path: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.name}{' Bold' if self.bold else ''}"

    @classmethod
    def parse(cls, text: str) -> "ReferenceFont":
        """Parse ``NAME[:PATH][+bold]`` as accepted on the command line."""

        bold = False
        if text.endswith("+bold"):
            bold = True
            text = text[: -len("+bold")]
        name, _, path = text.partition(":")
        return cls(name=name.strip(), bold=bold, path=path.strip() or None)


@dataclass(frozen=True)
class SegmentationThresholds:
    """Named constants for the segmentation heuristics."""

    # areas
    max_area_size: int = 120
    min_area_pixels: int = 3
    sparse_area_size: int = 300
    sparse_area_density: float = 0.09
    bubble_min_size: int = 80
    bubble_ellipse_scale: float = 0.88
    bubble_outside_ratio: float = 0.92
    dither_min_pixels: int = 15
    dither_score: float = 1.3
    dither_tile_size: int = 80
    dither_tile_overlap: int = 8
    dither_max_pixels: int = 6
    dither_min_ratio: float = 0.6
    dither_cluster_count: int = 80

    # inversion
    invert_block_size: int = 15
    invert_block_ratio: float = 0.95
    invert_neighbour_bonus: float = 0.25
    invert_min_blocks: int = 4
    invert_max_gap_blocks: int = 8
    invert_gap_ellipse: float = 0.9
    invert_gap_min_ratio: float = 0.1

    # columns
    rgb_max_delta: int = 100
    long_search_rounds: int = 3
    long_search_factor: float = 0.5
    contain_ratio: float = 0.65
    column_weight_exponent: float = 0.58
    lowest_score_bonus: float = 1.25
    column_end_ratio: float = 0.05
    background_tolerance: int = 2
    min_column_thickness: int = 7

    # post-processing
    bracket_max_ratio: float = 0.44
    bracket_square: float = 0.15
    bracket_triangle: float = 0.55
    dot_max_size: float = 0.35
    dot_edge_distance: float = 0.25
    split_min_ratio: float = 1.25
    merge_chunk_size: int = 10
    merge_max_ratio: float = 1.5
    furigana_min_thickness: float = 0.20
    furigana_max_thickness: float = 0.55
    furigana_max_length: float = 1.05
    furigana_max_area: float = 0.5
    connection_reach: float = 1.75
    connection_width_ratio: float = 0.75


DEFAULT_FONTS: Tuple[ReferenceFont, ...] = (
    ReferenceFont("MS Gothic", bold=False),
    ReferenceFont("MS Gothic", bold=True),
)


def _default_cache_dir() -> Path:
    return Path.home() / ".cache" / "kanjiscan"


@dataclass(frozen=True)
class OCRConfig:
    orientation: Orientation = Orientation.AUTOMATIC
    character_color: CharacterColor = CharacterColor.AUTOMATIC
    pixel_rgb_threshold: int = 140
    max_characters: int = 4
    threads: int = 4
    task_queue_size: int = 10
    reference_fonts: Tuple[ReferenceFont, ...] = DEFAULT_FONTS
    halo_layers: int = 3
    target_size: int = 30
    unsharp_amount: float = 4.0
    unsharp_radius: int = 2
    unsharp_threshold: int = 2
    base_score: int = 1000
    black_pixel_score: float = 4.0
    white_pixel_score: float = 4.0
    target_halo_scores: Tuple[float, ...] = (-1.0, -5.0, -12.0)
    reference_halo_scores: Tuple[float, ...] = (-1.0, -4.0, -10.0)
    keep_results_stage1: int = 30
    keep_results_stage2: int = 10
    cache_dir: Path = field(default_factory=_default_cache_dir)
    characters: Optional[str] = None
    split_components: bool = False
    segmentation: SegmentationThresholds = field(default_factory=SegmentationThresholds)

    def __post_init__(self) -> None:
        if not self.reference_fonts:
            raise ValueError("at least one reference font is required")
        if self.halo_layers < 1:
            raise ValueError("halo_layers must be >= 1")
        if len(self.target_halo_scores) < self.halo_layers:
            raise ValueError("target_halo_scores must cover every halo layer")
        if len(self.reference_halo_scores) < self.halo_layers:
            raise ValueError("reference_halo_scores must cover every halo layer")
        if not 8 <= self.target_size <= 32:
            raise ValueError("target_size must be within 8..32")
        if self.threads < 1 or self.task_queue_size < 1:
            raise ValueError("threads and task_queue_size must be positive")

    @property
    def primary_font(self) -> ReferenceFont:
        return self.reference_fonts[0]

    @property
    def character_set(self) -> str:
        if self.characters is not None:
            return self.characters
        from .recognition.charset import DEFAULT_CHARACTERS

        return DEFAULT_CHARACTERS

    def replace(self, **changes) -> "OCRConfig":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "KANJISCAN_", **overrides) -> "OCRConfig":
        """Build a configuration from ``KANJISCAN_*`` environment variables."""

        base = cls()
        values = {
            "orientation": _env_enum(prefix + "ORIENTATION", Orientation, base.orientation),
            "character_color": _env_enum(
                prefix + "CHARACTER_COLOR", CharacterColor, base.character_color
            ),
            "pixel_rgb_threshold": _env_int(prefix + "RGB_THRESHOLD", base.pixel_rgb_threshold),
            "max_characters": _env_int(prefix + "MAX_CHARACTERS", base.max_characters),
            "threads": max(1, _env_int(prefix + "THREADS", base.threads)),
            "halo_layers": _env_int(prefix + "HALO_LAYERS", base.halo_layers),
            "target_size": _env_int(prefix + "TARGET_SIZE", base.target_size),
            "unsharp_amount": _env_float(prefix + "UNSHARP_AMOUNT", base.unsharp_amount),
            "split_components": _env_truthy(prefix + "SPLIT_COMPONENTS", base.split_components),
        }
        cache_dir = os.environ.get(prefix + "CACHE_DIR")
        if cache_dir and cache_dir.strip():
            values["cache_dir"] = Path(cache_dir.strip()).expanduser()
        fonts = os.environ.get(prefix + "FONTS")
        if fonts and fonts.strip():
            parsed = tuple(ReferenceFont.parse(item) for item in fonts.split(",") if item.strip())
            if parsed:
                values["reference_fonts"] = parsed
        values.update(overrides)
        return cls(**values)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_truthy(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _env_enum(name: str, enum_type, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return enum_type(raw.strip().lower())
    except ValueError:
        return default


__all__ = [
    "CharacterColor",
    "DEFAULT_FONTS",
    "OCRConfig",
    "Orientation",
    "ReferenceFont",
    "SegmentationThresholds",
]
