# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Bitmap matching against pre-rendered reference glyphs."""

from .cache import ReferenceCache, ReferenceCacheBuilder, ReferenceCacheLoader, cache_file_name
from .engine import RecognitionEngine
from .matrices import Component, ReferenceMatrix, TargetMatrix, Transformation
from .scoring import OCRResult, ResultQueue, ScoreCalculator

__all__ = [
    "Component",
    "OCRResult",
    "RecognitionEngine",
    "ReferenceCache",
    "ReferenceCacheBuilder",
    "ReferenceCacheLoader",
    "ReferenceMatrix",
    "ResultQueue",
    "ScoreCalculator",
    "TargetMatrix",
    "Transformation",
    "cache_file_name",
]
