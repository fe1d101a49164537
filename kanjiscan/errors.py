# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Exception types raised by the OCR engine."""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class KanjiScanError(RuntimeError):
    """Base class for engine failures."""


class TargetImageNotSetError(KanjiScanError):
    """Recognition or column lookup was requested before an image was set."""

    reason = "no_target_image"

    def __init__(self, message: str = "Target image not set") -> None:
        super().__init__(message)


class ReferenceCacheMissingError(KanjiScanError):
    """The reference glyph cache for a font has not been built."""

    reason = "reference_cache_missing"

    def __init__(self, font: str, path: Union[str, Path]) -> None:
        self.font = font
        self.path = Path(path)
        super().__init__(
            f"Reference cache for font {font!r} not found at {self.path}, rebuild cache"
        )


class FontNotFoundError(KanjiScanError):
    """A reference font could not be loaded while building the cache."""

    reason = "font_not_found"

    def __init__(self, font: str, detail: Optional[str] = None) -> None:
        self.font = font
        msg = f"Unable to load reference font {font!r}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class EngineClosedError(KanjiScanError):
    """The engine was closed while a recognition request was in flight."""

    reason = "engine_closed"

    def __init__(self, message: str = "OCR engine has been closed") -> None:
        super().__init__(message)


class InvalidTransformationError(ValueError):
    """A bitmap transformation that the matcher cannot apply was requested."""


__all__ = [
    "KanjiScanError",
    "TargetImageNotSetError",
    "ReferenceCacheMissingError",
    "FontNotFoundError",
    "EngineClosedError",
    "InvalidTransformationError",
]
