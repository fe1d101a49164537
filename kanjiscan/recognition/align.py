# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Whole-glyph and per-component alignment stages."""
from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..config import OCRConfig, ReferenceFont
from ..matrix import build_halo, copy_bits, count_bits, empty_matrix, stretch_bits
from .matrices import IDENTITY, ReferenceBatch, ReferenceMatrix, TargetMatrix, Transformation
from .scoring import OCRResult, ResultQueue, ScoreCalculator
from .transform import TargetTransformer

logger = logging.getLogger(__name__)

COMPONENT_MAX_DELTA = 1
COMPONENT_MAX_STRETCH = 4


def combine_results(
    first: Optional[List[OCRResult]], second: List[OCRResult], limit: int
) -> List[OCRResult]:
    """Best result per character across fonts, best first, at most ``limit``."""

    if first is None:
        return list(second)[:limit]
    best: Dict[str, OCRResult] = {}
    for result in first:
        best[result.character] = result
    for result in second:
        current = best.get(result.character)
        if current is None or current.score < result.score:
            best[result.character] = result
    combined = sorted(best.values(), key=lambda r: r.score, reverse=True)
    return combined[:limit]


class CharacterAligner:
    """Align whole reference glyphs against transformed targets."""

    def __init__(self, config: OCRConfig, references, calculator: Optional[ScoreCalculator] = None) -> None:
        self.config = config
        self.references = references
        self.calculator = calculator or ScoreCalculator(config)

    def run(
        self,
        transformer: TargetTransformer,
        fonts: Sequence[ReferenceFont],
        characters: Optional[Set[str]],
        max_translate: int,
        max_stretch: int,
        max_steps: int,
        top_n: int,
    ) -> List[OCRResult]:
        started = time.perf_counter()
        targets = transformer.run(max_translate, max_stretch, max_steps)
        best: Optional[List[OCRResult]] = None
        for font in fonts:
            batch = self.references.batch(font).subset(characters)
            results = self.find_best_alignment(targets, batch, top_n)
            best = combine_results(best, results, top_n)
        logger.debug(
            "aligned %d targets against %d fonts (%.1f ms)",
            len(targets),
            len(fonts),
            (time.perf_counter() - started) * 1000.0,
        )
        return best or []

    def find_best_alignment(
        self, targets: Sequence[TargetMatrix], batch: ReferenceBatch, top_n: int
    ) -> List[OCRResult]:
        queue = ResultQueue(top_n)
        queue.add_all(self.calculator.best_per_reference(targets, batch, halo=True))
        return queue.results()


def component_transformations() -> List[Transformation]:
    """Translate within +-1 and stretch one axis by 0..4, in search order."""

    result = []
    span = range(-COMPONENT_MAX_DELTA, COMPONENT_MAX_DELTA + 1)
    stretch = range(0, COMPONENT_MAX_STRETCH + 1)
    for dx in span:
        for dy in span:
            for sx in stretch:
                for sy in stretch:
                    if sx != 0 and sy != 0:
                        continue
                    result.append(Transformation(dx, dy, sx, sy))
    return result


class ComponentAligner:
    """Greedy per-component refinement of stage 2 results.

    Components are visited in order; each keeps the transformation that
    improves the whole-glyph score the most, and only a strictly better
    score replaces the running best.
    """

    def __init__(self, config: OCRConfig, calculator: Optional[ScoreCalculator] = None) -> None:
        self.config = config
        self.calculator = calculator or ScoreCalculator(config)
        self.candidates = component_transformations()

    def run(self, results: Iterable[OCRResult]) -> List[OCRResult]:
        started = time.perf_counter()
        aligned = [self.align_components(result) for result in results]
        aligned.sort(key=lambda r: r.score, reverse=True)
        logger.debug("component alignment (%.1f ms)", (time.perf_counter() - started) * 1000.0)
        return aligned

    def align_components(self, result: OCRResult) -> OCRResult:
        reference = result.reference
        components = reference.components
        if not components:
            return result
        layers = self.config.halo_layers
        cache: Dict[Tuple[int, Transformation], np.ndarray] = {}

        def placed(index: int, transformation: Transformation) -> np.ndarray:
            key = (index, transformation)
            matrix = cache.get(key)
            if matrix is None:
                matrix = apply_transformation(components[index], transformation)
                cache[key] = matrix
            return matrix

        transformations = [IDENTITY] * len(components)
        best_score = result.score
        for i in range(len(components)):
            base = empty_matrix()
            for j, transformation in enumerate(transformations):
                if j != i:
                    base |= placed(j, transformation)
            matrices = np.stack([base | placed(i, t) for t in self.candidates])
            halo = build_halo(matrices, layers - 1)
            variants = [
                ReferenceMatrix(
                    character=reference.character,
                    matrix=matrices[k],
                    halo=[layer[k] for layer in halo],
                    pixels=count_bits(matrices[k]),
                    font_name=reference.font_name,
                    score_modifier=reference.score_modifier,
                    components=components,
                )
                for k in range(len(self.candidates))
            ]
            batch = ReferenceBatch(variants, layers)
            scores = self.calculator.grid([result.target], batch, halo=True).score[0]
            k = int(np.argmax(scores))
            if scores[k] > best_score:
                best_score = int(scores[k])
                transformations[i] = self.candidates[k]

        matrix = empty_matrix()
        for j, transformation in enumerate(transformations):
            matrix |= placed(j, transformation)
        refined = reference.with_matrix(matrix, layers)
        refined.transformations = list(transformations)
        return self.calculator.calc_score(result.target, refined, halo=True)


def apply_transformation(component, transformation: Transformation) -> np.ndarray:
    """Component bitmap moved (and optionally stretched) onto an empty matrix."""

    matrix = empty_matrix()
    dx = transformation.horizontal_translate
    dy = transformation.vertical_translate
    if transformation.horizontal_stretch == 0 and transformation.vertical_stretch == 0:
        copy_bits(component.matrix, matrix, component.bounds, dx, dy)
        return matrix
    stretched = empty_matrix()
    bounds = stretch_bits(
        component.matrix,
        stretched,
        component.bounds,
        transformation.horizontal_stretch,
        transformation.vertical_stretch,
    )
    copy_bits(stretched, matrix, bounds, dx, dy)
    return matrix


__all__ = [
    "CharacterAligner",
    "ComponentAligner",
    "apply_transformation",
    "combine_results",
    "component_transformations",
]
