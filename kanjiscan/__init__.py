# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""kanjiscan public package surface."""

from __future__ import annotations

from importlib import import_module as _import_module
from typing import Any, Dict

from .config import CharacterColor, OCRConfig, Orientation, ReferenceFont, SegmentationThresholds
from .errors import (
    EngineClosedError,
    FontNotFoundError,
    InvalidTransformationError,
    KanjiScanError,
    ReferenceCacheMissingError,
    TargetImageNotSetError,
)
from .geometry import Point, Rect

__version__ = "0.1.0"

__all__ = [
    "CharacterColor",
    "ColumnInfo",
    "EngineClosedError",
    "FontNotFoundError",
    "IdentifiedCharacter",
    "InvalidTransformationError",
    "KanjiScan",
    "KanjiScanError",
    "OCRConfig",
    "OCRResults",
    "Orientation",
    "Point",
    "Rect",
    "ReferenceCacheBuilder",
    "ReferenceCacheMissingError",
    "ReferenceFont",
    "SegmentationThresholds",
    "TargetImageNotSetError",
]

# Mapping of public attribute -> defining module, imported on first access
_ATTR_TO_SPEC: Dict[str, str] = {
    "KanjiScan": ".api",
    "ColumnInfo": ".models",
    "IdentifiedCharacter": ".models",
    "OCRResults": ".models",
    "ReferenceCacheBuilder": ".recognition.cache",
}


def __getattr__(name: str) -> Any:
    spec = _ATTR_TO_SPEC.get(name)
    if spec is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = getattr(_import_module(spec, __name__), name)
    globals()[name] = value
    return value


def __dir__() -> list:
    return sorted(set(globals()) | set(__all__))
