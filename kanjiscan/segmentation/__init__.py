# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Segmentation: pixels to areas to reading columns."""

from .detector import AreaDetector
from .layout import Area, Column, ColumnArena
from .spatial_index import SpatialIndex
from .task import SegmentationTask, SubImage

__all__ = [
    "Area",
    "AreaDetector",
    "Column",
    "ColumnArena",
    "SegmentationTask",
    "SpatialIndex",
    "SubImage",
]
