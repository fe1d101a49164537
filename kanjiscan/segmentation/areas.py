# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Connected-component extraction with noise and dither rejection."""
from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

import numpy as np

from ..geometry import Rect, scale
from .layout import Area
from .spatial_index import SpatialIndex
from .task import SegmentationTask

logger = logging.getLogger(__name__)

Run = Tuple[int, int]


def _rle_runs(binary: np.ndarray) -> List[List[Run]]:
    """Half-open ``[start, end)`` ink runs for each row of ``binary``."""

    runs_by_row = []
    for row in binary:
        edges = np.diff(np.concatenate(([False], row, [False])).astype(np.int8))
        starts = np.flatnonzero(edges == 1)
        ends = np.flatnonzero(edges == -1)
        runs_by_row.append(list(zip(starts.tolist(), ends.tolist())))
    return runs_by_row


def _find(idx: int, parent: list) -> int:
    while parent[idx] != idx:
        parent[idx] = parent[parent[idx]]
        idx = parent[idx]
    return idx


def label_components(binary: np.ndarray) -> Tuple[np.ndarray, int]:
    """Label 8-connected ink components.

    Returns an ``int32`` label image (0 = no ink, components numbered from
    1 in scan order of their first run) and the component count.
    """

    runs_by_row = _rle_runs(binary)
    parent: List[int] = []
    row_offsets = [0]
    for y, runs in enumerate(runs_by_row):
        row_offsets.append(row_offsets[-1] + len(runs))
        for _ in runs:
            parent.append(len(parent))
        if y == 0:
            continue
        prev_runs = runs_by_row[y - 1]
        if not runs or not prev_runs:
            continue
        i = 0
        j = 0
        while i < len(prev_runs) and j < len(runs):
            p0, p1 = prev_runs[i]
            c0, c1 = runs[j]
            if p1 < c0:
                i += 1
            elif c1 < p0:
                j += 1
            else:
                rp = _find(row_offsets[y - 1] + i, parent)
                rc = _find(row_offsets[y] + j, parent)
                if rp != rc:
                    if rp < rc:
                        parent[rc] = rp
                    else:
                        parent[rp] = rc
                if p1 < c1:
                    i += 1
                else:
                    j += 1

    labels = np.zeros(binary.shape, dtype=np.int32)
    numbering = {}
    run_index = 0
    for y, runs in enumerate(runs_by_row):
        for x0, x1 in runs:
            root = _find(run_index, parent)
            label = numbering.get(root)
            if label is None:
                label = len(numbering) + 1
                numbering[root] = label
            labels[y, x0:x1] = label
            run_index += 1
    return labels, len(numbering)


def _component_pixels(labels: np.ndarray) -> List[Tuple[np.ndarray, np.ndarray]]:
    ys, xs = np.nonzero(labels)
    if ys.size == 0:
        return []
    lab = labels[ys, xs]
    order = np.argsort(lab, kind="stable")
    ys, xs, lab = ys[order], xs[order], lab[order]
    cuts = np.flatnonzero(np.diff(lab)) + 1
    return list(zip(np.split(ys, cuts), np.split(xs, cuts)))


class FindAreas:
    """Turn the binary image into candidate character areas."""

    name = "areas"

    def __init__(self, task: SegmentationTask) -> None:
        self.task = task
        self.th = task.config.segmentation

    def run(self) -> None:
        task = self.task
        task.background = task.binary.copy()
        task.areas = self.find_areas()
        before = len(task.areas)
        task.areas = self.remove_dither_areas(task.areas)
        task.areas = self.remove_dither_clusters(task.areas)
        task.areas = [a for a in task.areas if a.pixels >= self.th.min_area_pixels]
        logger.debug("found %d areas (%d before noise rejection)", len(task.areas), before)

    def find_areas(self) -> List[Area]:
        task = self.task
        th = self.th
        labels, _ = label_components(task.binary)
        intensity = task.intensity
        areas: List[Area] = []
        for ys, xs in _component_pixels(labels):
            if (
                xs.min() <= 0
                or ys.min() <= 0
                or xs.max() >= task.width - 1
                or ys.max() >= task.height - 1
                or task.border[ys, xs].any()
            ):
                continue
            x0, y0 = int(xs.min()), int(ys.min())
            rect = Rect(x0, y0, int(xs.max()) - x0 + 1, int(ys.max()) - y0 + 1)
            if rect.height > th.max_area_size or rect.width > th.max_area_size:
                continue
            pixels = int(ys.size)
            if rect.area > th.sparse_area_size and pixels / rect.area < th.sparse_area_density:
                continue
            if self.is_speech_bubble(rect, pixels):
                continue
            area = Area(rect=rect, pixels=pixels, min_rgb=int(intensity[ys, xs].min()))
            area.source_ids = (len(areas),)
            task.background[ys, xs] = False
            areas.append(area)
        return areas

    def is_speech_bubble(self, rect: Rect, pixels: int) -> bool:
        """Most ink outside an inscribed ellipse: a bubble outline, not a glyph."""

        th = self.th
        if rect.width < th.bubble_min_size or rect.height < th.bubble_min_size:
            return False
        a2 = (rect.width / 2 * th.bubble_ellipse_scale) ** 2
        b2 = (rect.height / 2 * th.bubble_ellipse_scale) ** 2
        mid = rect.midpoint
        ys, xs = np.mgrid[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width]
        outside = ((xs - mid.x) ** 2 / a2 + (ys - mid.y) ** 2 / b2) > 1.0
        crop = self.task.binary[rect.y : rect.y + rect.height, rect.x : rect.x + rect.width]
        return int((crop & outside).sum()) / pixels > th.bubble_outside_ratio

    def remove_dither_areas(self, areas: Sequence[Area]) -> List[Area]:
        """Drop areas made mostly of pixels with no or one 4-neighbour."""

        th = self.th
        padded = np.pad(self.task.binary, 1)
        threshold_rgb = self.task.config.pixel_rgb_threshold
        kept = []
        for area in areas:
            if area.pixels <= th.dither_min_pixels:
                kept.append(area)
                continue
            r = area.rect
            core = padded[r.y + 1 : r.max_y + 2, r.x + 1 : r.max_x + 2]
            neighbours = (
                padded[r.y : r.max_y + 1, r.x + 1 : r.max_x + 2].astype(np.int8)
                + padded[r.y + 2 : r.max_y + 3, r.x + 1 : r.max_x + 2]
                + padded[r.y + 1 : r.max_y + 2, r.x : r.max_x + 1]
                + padded[r.y + 1 : r.max_y + 2, r.x + 2 : r.max_x + 3]
            )
            counts = np.bincount(neighbours[core], minlength=5)
            if counts[0] > area.pixels // 2:
                continue
            score = (counts[0] * 2.0 + counts[1]) / area.pixels
            rgb_factor = scale(area.min_rgb / threshold_rgb, 0.5, 0.7, 1.0, 0.6)
            if score >= th.dither_score * rgb_factor:
                continue
            kept.append(area)
        return kept

    def remove_dither_clusters(self, areas: Sequence[Area]) -> List[Area]:
        """Drop dense clusters of tiny squarish areas (dither patterns)."""

        th = self.th
        task = self.task
        index: SpatialIndex[Area] = SpatialIndex.for_image(task.width, task.height, areas)
        step = th.dither_tile_size - th.dither_tile_overlap
        for x in range(0, task.width, step):
            for y in range(0, task.height, step):
                tile = Rect(x, y, th.dither_tile_size, th.dither_tile_size)
                small = [
                    a
                    for a in index.query(tile)
                    if a.pixels <= th.dither_max_pixels and a.ratio > th.dither_min_ratio
                ]
                if len(small) >= th.dither_cluster_count:
                    for area in small:
                        area.removed = True
        return [a for a in areas if not a.removed]


__all__ = ["FindAreas", "label_components"]
