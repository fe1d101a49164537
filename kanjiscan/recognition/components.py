# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Decompose reference glyphs into independently aligned components."""
from __future__ import annotations

from typing import List

import numpy as np

from ..geometry import Rect
from ..matrix import MATRIX_BOUNDS, MATRIX_SIZE, add_bits, array_to_matrix, count_bits, find_bounds, matrix_to_array
from .matrices import Component

MIN_SPLIT_SIZE = 20


def find_unconnected(matrix: np.ndarray, bounds: Rect = MATRIX_BOUNDS) -> List[Component]:
    """4-connected components inside ``bounds``, ordered by column-major scan."""

    bits = matrix_to_array(matrix)
    visited = np.zeros_like(bits)
    components: List[Component] = []
    x0, y0 = bounds.x, bounds.y
    x1, y1 = bounds.x + bounds.width, bounds.y + bounds.height
    for x in range(x0, x1):
        for y in range(y0, y1):
            if visited[y, x] or not bits[y, x]:
                continue
            mask = np.zeros_like(bits)
            todo = [(x, y)]
            visited[y, x] = True
            while todo:
                px, py = todo.pop()
                mask[py, px] = True
                for nx, ny in ((px - 1, py), (px + 1, py), (px, py - 1), (px, py + 1)):
                    if x0 <= nx < x1 and y0 <= ny < y1 and not visited[ny, nx] and bits[ny, nx]:
                        visited[ny, nx] = True
                        todo.append((nx, ny))
            component_matrix = array_to_matrix(mask)
            components.append(
                Component(
                    matrix=component_matrix,
                    bounds=find_bounds(component_matrix),
                    pixels=int(mask.sum()),
                )
            )
    return components


def _piece(component: Component, rect: Rect) -> List[Component]:
    matrix = np.zeros(MATRIX_SIZE, dtype=np.uint32)
    add_bits(component.matrix, matrix, rect)
    pixels = count_bits(matrix)
    if pixels == 0:
        return []
    return [Component(matrix=matrix, bounds=find_bounds(matrix), pixels=pixels)]


def split_component(component: Component, min_size: int = MIN_SPLIT_SIZE) -> List[Component]:
    """Cut large components at their midlines, first across x then y."""

    b = component.bounds
    pieces = [component]
    if b.width >= min_size:
        split_x = b.x + b.width // 2
        left = Rect(b.x, b.y, split_x - b.x + 1, b.height)
        right = Rect(split_x + 1, b.y, b.width - left.width, b.height)
        pieces = _piece(component, left) + _piece(component, right)
    if b.height >= min_size:
        split_y = b.y + b.height // 2
        result = []
        for piece in pieces:
            pb = piece.bounds
            up = Rect(pb.x, b.y, pb.width, split_y - b.y + 1)
            down = Rect(pb.x, split_y + 1, pb.width, b.y + b.height - split_y - 1)
            result.extend(_piece(piece, up) + _piece(piece, down))
        pieces = result
    return pieces


class ComponentBuilder:
    """Components for stage 3 alignment; splitting is optional."""

    def __init__(self, split: bool = False, min_split_size: int = MIN_SPLIT_SIZE) -> None:
        self.split = split
        self.min_split_size = min_split_size

    def build(self, matrix: np.ndarray) -> List[Component]:
        components = find_unconnected(matrix)
        if not self.split:
            return components
        result: List[Component] = []
        for component in components:
            result.extend(split_component(component, self.min_split_size))
        return result


__all__ = ["ComponentBuilder", "MIN_SPLIT_SIZE", "find_unconnected", "split_component"]
