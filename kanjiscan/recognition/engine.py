# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Three-stage recognition of one cropped character."""
from __future__ import annotations

import logging
import time
from typing import List, Optional

import numpy as np

from ..config import OCRConfig
from ..diagnostics import DiagnosticsObserver, NullDiagnostics
from .align import CharacterAligner, ComponentAligner
from .scoring import OCRResult, ScoreCalculator
from .transform import TargetTransformer

logger = logging.getLogger(__name__)

# (max translate, max stretch, max steps)
STAGE1_SEARCH = (1, 1, 1)
STAGE2_SEARCH = (2, 2, 4)


class RecognitionEngine:
    """Rank reference characters for a binary glyph crop.

    Stage 1 compares a few cheap variants against every reference of the
    primary font. Stage 2 searches more variants, restricted to the stage 1
    candidates, across all fonts. Stage 3 realigns the components of each
    stage 2 reference against the best target.
    """

    def __init__(
        self,
        config: OCRConfig,
        references,
        diagnostics: Optional[DiagnosticsObserver] = None,
    ) -> None:
        self.config = config
        self.references = references
        self.diagnostics = diagnostics or NullDiagnostics()
        self.calculator = ScoreCalculator(config)
        self.characters = CharacterAligner(config, references, self.calculator)
        self.components = ComponentAligner(config, self.calculator)

    def run(self, pixels: np.ndarray, char_index: int = 0) -> List[OCRResult]:
        started = time.perf_counter()
        if not np.any(pixels):
            logger.debug("char %d: empty crop", char_index)
            return []
        # variants are shared by stages 1 and 2
        transformer = TargetTransformer(pixels, self.config, char_index)

        results = self.characters.run(
            transformer,
            [self.config.primary_font],
            None,
            *STAGE1_SEARCH,
            top_n=self.config.keep_results_stage1,
        )
        self.diagnostics.on_recognition_stage(char_index, "stage1", results)

        candidates = {r.character for r in results}
        results = self.characters.run(
            transformer,
            self.config.reference_fonts,
            candidates,
            *STAGE2_SEARCH,
            top_n=self.config.keep_results_stage2,
        )
        self.diagnostics.on_recognition_stage(char_index, "stage2", results)

        results = self.components.run(results)
        self.diagnostics.on_recognition_stage(char_index, "stage3", results)

        if results:
            logger.debug(
                "char %d: %s (%d) in %.1f ms",
                char_index,
                results[0].character,
                results[0].score,
                (time.perf_counter() - started) * 1000.0,
            )
        return results


__all__ = ["RecognitionEngine", "STAGE1_SEARCH", "STAGE2_SEARCH"]
