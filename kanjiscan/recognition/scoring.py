# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Alignment scores between target and reference matrices.

The score rewards pixels set in both matrices (black) and pixels set in
neither (white) and penalises unmatched pixels by how far they are from the
other glyph, measured with halo layers::

    score = base + black * w_black + white * w_white
          + sum(target_halo[i] * w_target[i])
          + sum(reference_halo[i] * w_reference[i])

Every count is an AND + popcount over packed rows, computed for all
(target, reference) pairs at once.
"""
from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ..config import OCRConfig
from ..matrix import MATRIX_SIZE, popcount
from .matrices import ReferenceBatch, ReferenceMatrix, TargetMatrix

MATRIX_PIXELS = MATRIX_SIZE * MATRIX_SIZE


@dataclass
class OCRResult:
    target: TargetMatrix
    reference: ReferenceMatrix
    black_pixels: int
    white_pixels: int
    target_halo_pixels: Tuple[int, ...]
    reference_halo_pixels: Tuple[int, ...]
    score: int
    refined: bool = False

    @property
    def character(self) -> str:
        return self.reference.character

    def __str__(self) -> str:
        return (
            f"{self.character}\tscore:{self.score}\tblack:{self.black_pixels}\twhite:{self.white_pixels}"
            f"\ttargetHalo:{list(self.target_halo_pixels)}\treferenceHalo:{list(self.reference_halo_pixels)}"
            f"\tmodifier:{self.reference.score_modifier}\ttransform:{self.target.transform}"
            f"\tfont:{self.reference.font_name}"
        )


@dataclass
class ScoreGrid:
    """Pixel counts and scores indexed ``[target, reference]``."""

    black: np.ndarray
    white: np.ndarray
    target_halo: np.ndarray
    reference_halo: np.ndarray
    score: np.ndarray
    refined: bool


class ScoreCalculator:
    def __init__(self, config: OCRConfig) -> None:
        self.config = config
        self.target_weights = np.asarray(config.target_halo_scores, dtype=np.float64)
        self.reference_weights = np.asarray(config.reference_halo_scores, dtype=np.float64)

    def grid(self, targets: Sequence[TargetMatrix], batch: ReferenceBatch, halo: bool = True) -> ScoreGrid:
        layers = self.config.halo_layers
        t_rows = np.stack([t.matrix for t in targets]).astype(np.uint32)
        t_pixels = np.array([t.pixels for t in targets], dtype=np.int64)
        r_rows = batch.matrices

        black = popcount(t_rows[:, None, :] & r_rows[None, :, :])
        target_rest = t_pixels[:, None] - black
        reference_rest = batch.pixels[None, :] - black
        white = MATRIX_PIXELS - black - target_rest - reference_rest

        if halo and layers > 1:
            t_halo = np.stack([np.stack(t.halo[: layers - 1]) for t in targets]).astype(np.uint32)
            # target pixels inside the reference's rings and vice versa
            th = popcount(t_rows[:, None, None, :] & batch.halos[None, :, :, :])
            rh = popcount(r_rows[None, :, None, :] & t_halo[:, None, :, :])
            target_halo = np.concatenate([th, (target_rest - th.sum(axis=-1))[..., None]], axis=-1)
            reference_halo = np.concatenate([rh, (reference_rest - rh.sum(axis=-1))[..., None]], axis=-1)
        else:
            target_halo = target_rest[..., None]
            reference_halo = reference_rest[..., None]

        cfg = self.config
        count = target_halo.shape[-1]
        score = np.floor(cfg.base_score + black * cfg.black_pixel_score + white * cfg.white_pixel_score)
        score = score + np.floor(target_halo * self.target_weights[:count]).sum(axis=-1)
        score = score + np.floor(reference_halo * self.reference_weights[:count]).sum(axis=-1)
        modified = np.trunc(batch.modifiers[None, :] * score)
        score = np.where(score > 1, modified, score).astype(np.int64)
        return ScoreGrid(black, white, target_halo, reference_halo, score, bool(halo))

    @staticmethod
    def result(
        grid: ScoreGrid,
        targets: Sequence[TargetMatrix],
        batch: ReferenceBatch,
        t: int,
        r: int,
    ) -> OCRResult:
        return OCRResult(
            target=targets[t],
            reference=batch.references[r],
            black_pixels=int(grid.black[t, r]),
            white_pixels=int(grid.white[t, r]),
            target_halo_pixels=tuple(int(v) for v in grid.target_halo[t, r]),
            reference_halo_pixels=tuple(int(v) for v in grid.reference_halo[t, r]),
            score=int(grid.score[t, r]),
            refined=grid.refined,
        )

    def calc_score(self, target: TargetMatrix, reference: ReferenceMatrix, halo: bool = True) -> OCRResult:
        batch = ReferenceBatch([reference], self.config.halo_layers)
        grid = self.grid([target], batch, halo)
        return self.result(grid, [target], batch, 0, 0)

    def best_per_reference(
        self, targets: Sequence[TargetMatrix], batch: ReferenceBatch, halo: bool = True
    ) -> List[OCRResult]:
        """Best target alignment for every reference (first one on ties)."""

        if not targets or not len(batch):
            return []
        grid = self.grid(targets, batch, halo)
        best = np.argmax(grid.score, axis=0)
        return [self.result(grid, targets, batch, int(best[r]), r) for r in range(len(batch))]


class ResultQueue:
    """Keep the ``capacity`` best results; earlier results win ties."""

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._heap: List[Tuple[int, int, OCRResult]] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def add(self, result: OCRResult) -> None:
        entry = (result.score, -next(self._counter), result)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, entry)
        elif entry[:2] > self._heap[0][:2]:
            heapq.heapreplace(self._heap, entry)

    def add_all(self, results: Sequence[OCRResult]) -> None:
        for result in results:
            self.add(result)

    def results(self) -> List[OCRResult]:
        """Best first."""

        return [entry[2] for entry in sorted(self._heap, key=lambda e: (-e[0], -e[1]))]


__all__ = ["OCRResult", "ResultQueue", "ScoreCalculator", "ScoreGrid"]
