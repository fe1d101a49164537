# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Target and reference glyph matrices."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..geometry import Rect
from ..matrix import MATRIX_SIZE, build_halo, count_bits


@dataclass(frozen=True)
class Transformation:
    """Translate moves right/down, stretch grows the glyph by pixels."""

    horizontal_translate: int = 0
    vertical_translate: int = 0
    horizontal_stretch: int = 0
    vertical_stretch: int = 0

    @property
    def is_identity(self) -> bool:
        return self == IDENTITY

    def __str__(self) -> str:
        return (
            f"{self.horizontal_translate}.{self.vertical_translate}."
            f"{self.horizontal_stretch}.{self.vertical_stretch}"
        )


IDENTITY = Transformation()


@dataclass
class Component:
    """Connected piece of a reference glyph, aligned on its own in stage 3."""

    matrix: np.ndarray
    bounds: Rect
    pixels: int


@dataclass
class TargetMatrix:
    matrix: np.ndarray
    halo: List[np.ndarray]
    pixels: int
    char_index: Optional[int] = None
    transform: Transformation = IDENTITY

    @classmethod
    def build(
        cls,
        matrix: np.ndarray,
        halo_layers: int,
        char_index: Optional[int] = None,
        transform: Transformation = IDENTITY,
    ) -> "TargetMatrix":
        return cls(
            matrix=matrix,
            halo=build_halo(matrix, halo_layers - 1),
            pixels=count_bits(matrix),
            char_index=char_index,
            transform=transform,
        )


@dataclass
class ReferenceMatrix:
    character: str
    matrix: np.ndarray
    halo: List[np.ndarray]
    pixels: int
    font_name: str = ""
    score_modifier: float = 1.0
    components: List[Component] = field(default_factory=list)
    transformations: Optional[List[Transformation]] = None

    def clone(self) -> "ReferenceMatrix":
        """Shallow copy; the transformation list is copied, bitmaps are shared."""

        transformations = list(self.transformations) if self.transformations is not None else None
        return replace(self, transformations=transformations)

    def with_matrix(self, matrix: np.ndarray, halo_layers: int) -> "ReferenceMatrix":
        copy = self.clone()
        copy.matrix = matrix
        copy.halo = build_halo(matrix, halo_layers - 1)
        copy.pixels = count_bits(matrix)
        return copy


def _stack_halo(halo: Sequence[np.ndarray], layers: int) -> np.ndarray:
    if layers == 0:
        return np.zeros((0, MATRIX_SIZE), dtype=np.uint32)
    return np.stack([np.asarray(h, dtype=np.uint32) for h in halo[:layers]])


class ReferenceBatch:
    """References of one font stacked into arrays for vectorised scoring."""

    def __init__(self, references: Iterable[ReferenceMatrix], halo_layers: int) -> None:
        self.references = list(references)
        self.halo_layers = halo_layers
        n = len(self.references)
        extra = halo_layers - 1
        self.matrices = np.zeros((n, MATRIX_SIZE), dtype=np.uint32)
        self.halos = np.zeros((n, extra, MATRIX_SIZE), dtype=np.uint32)
        for i, ref in enumerate(self.references):
            self.matrices[i] = ref.matrix
            if extra:
                self.halos[i] = _stack_halo(ref.halo, extra)
        self.pixels = np.array([ref.pixels for ref in self.references], dtype=np.int64)
        self.modifiers = np.array([ref.score_modifier for ref in self.references], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.references)

    def subset(self, characters: Optional[Iterable[str]]) -> "ReferenceBatch":
        if characters is None:
            return self
        wanted = set(characters)
        return ReferenceBatch((r for r in self.references if r.character in wanted), self.halo_layers)


__all__ = [
    "Component",
    "IDENTITY",
    "ReferenceBatch",
    "ReferenceMatrix",
    "TargetMatrix",
    "Transformation",
]
