# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Result models returned by the public API.

Recognition and segmentation work on numpy-backed dataclasses; these
pydantic models are the stable, JSON-friendly shape handed to callers and
printed by the CLI.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .geometry import Rect


class RectModel(BaseModel):
    """Axis-aligned rectangle in target image pixel coordinates."""

    x: int
    y: int
    width: int = Field(..., ge=0)
    height: int = Field(..., ge=0)

    @classmethod
    def from_rect(cls, rect: Rect) -> "RectModel":
        return cls(x=rect.x, y=rect.y, width=rect.width, height=rect.height)

    def to_rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


class IdentifiedCharacter(BaseModel):
    """Ranked reference characters for one target glyph, best first."""

    reference_characters: str
    location: RectModel
    scores: List[int]

    @property
    def best(self) -> Optional[str]:
        return self.reference_characters[0] if self.reference_characters else None


class OCRResults(BaseModel):
    characters: List[IdentifiedCharacter] = Field(default_factory=list)
    vertical: bool = True

    @property
    def best_matching_characters(self) -> str:
        """Best match of every character, in reading order."""

        return "".join(c.reference_characters[:1] for c in self.characters)

    def __str__(self) -> str:
        lines = ["Characters:"]
        lines.extend(c.reference_characters for c in self.characters)
        lines.append("Locations:")
        lines.extend(str(c.location.to_rect().as_tuple()) for c in self.characters)
        return "\n".join(lines)


class ColumnInfo(BaseModel):
    """Detected column; links are indexes into the same column list."""

    index: int
    rect: RectModel
    areas: List[RectModel]
    vertical: bool
    furigana: bool = False
    next_index: Optional[int] = None
    previous_index: Optional[int] = None
    furigana_indexes: List[int] = Field(default_factory=list)


def build_results(
    ranked: Sequence[Sequence[tuple]],
    locations: Sequence[Rect],
    vertical: bool,
) -> OCRResults:
    """Results from per-character ``(character, score)`` rankings."""

    characters = []
    for ranking, location in zip(ranked, locations):
        characters.append(
            IdentifiedCharacter(
                reference_characters="".join(c for c, _ in ranking),
                location=RectModel.from_rect(location),
                scores=[int(s) for _, s in ranking],
            )
        )
    return OCRResults(characters=characters, vertical=vertical)


__all__ = ["ColumnInfo", "IdentifiedCharacter", "OCRResults", "RectModel", "build_results"]
