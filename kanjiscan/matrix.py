# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Pixel grids and 32x32 bit-packed glyph matrices.

A glyph matrix is a ``numpy.uint32`` array of 32 rows. Bit 31 of a row is the
leftmost pixel (``x == 0``) so shifting a row right moves the glyph right.
Batches of matrices are stacked as ``(N, 32)`` arrays, which keeps overlap
counting (AND + popcount) vectorised across every reference glyph.
"""
from __future__ import annotations

from typing import List, Optional

import numpy as np

from .errors import InvalidTransformationError
from .geometry import Rect

MATRIX_SIZE = 32
FULL_ROW = 0xFFFFFFFF
MATRIX_BOUNDS = Rect(0, 0, MATRIX_SIZE, MATRIX_SIZE)

_POPCOUNT8 = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


class PixelGrid:
    """Width x height boolean matrix, ``True`` marks ink.

    Reads outside the grid return ``False`` and writes outside it are
    ignored, which lets neighbourhood scans run up to the image edge
    without special cases.
    """

    __slots__ = ("data",)

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None) -> None:
        if data is None:
            data = np.zeros((height, width), dtype=bool)
        elif data.shape != (height, width):
            raise ValueError(f"grid data shape {data.shape} != {(height, width)}")
        self.data = data.astype(bool, copy=False)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelGrid":
        array = np.asarray(array, dtype=bool)
        return cls(array.shape[1], array.shape[0], array.copy())

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def bounds(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    def get(self, x: int, y: int) -> bool:
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return False
        return bool(self.data[y, x])

    def set(self, x: int, y: int, value: bool = True) -> None:
        if x < 0 or y < 0 or x >= self.width or y >= self.height:
            return
        self.data[y, x] = value

    def crop(self, rect: Rect) -> np.ndarray:
        """Return the pixels inside ``rect`` clipped to the grid."""

        clipped = rect.intersection(self.bounds)
        return self.data[clipped.y : clipped.y + clipped.height, clipped.x : clipped.x + clipped.width]

    def count(self, rect: Optional[Rect] = None) -> int:
        if rect is None:
            return int(self.data.sum())
        return int(self.crop(rect).sum())

    def copy(self) -> "PixelGrid":
        return PixelGrid(self.width, self.height, self.data.copy())


def empty_matrix() -> np.ndarray:
    return np.zeros(MATRIX_SIZE, dtype=np.uint32)


def _row_mask(x: int, width: int) -> int:
    if width <= 0 or x >= MATRIX_SIZE:
        return 0
    if x < 0:
        width += x
        x = 0
        if width <= 0:
            return 0
    width = min(width, MATRIX_SIZE - x)
    return ((FULL_ROW << (MATRIX_SIZE - width)) & FULL_ROW) >> x


def _shift_row(row: int, dx: int) -> int:
    if dx >= 0:
        return row >> dx
    return (row << -dx) & FULL_ROW


def is_bit_set(matrix: np.ndarray, x: int, y: int) -> bool:
    if x < 0 or x >= MATRIX_SIZE or y < 0 or y >= MATRIX_SIZE:
        return False
    return bool(int(matrix[y]) & (1 << (31 - x)))


def set_bit(matrix: np.ndarray, x: int, y: int) -> None:
    if x < 0 or x >= MATRIX_SIZE or y < 0 or y >= MATRIX_SIZE:
        return
    matrix[y] = int(matrix[y]) | (1 << (31 - x))


def clear_bit(matrix: np.ndarray, x: int, y: int) -> None:
    if x < 0 or x >= MATRIX_SIZE or y < 0 or y >= MATRIX_SIZE:
        return
    matrix[y] = int(matrix[y]) & ~(1 << (31 - x)) & FULL_ROW


def popcount(matrices: np.ndarray) -> np.ndarray:
    """Set bits per matrix: ``(32,)`` -> scalar array, ``(N, 32)`` -> ``(N,)``."""

    rows = np.ascontiguousarray(matrices, dtype=np.uint32)
    per_byte = _POPCOUNT8[rows.view(np.uint8)]
    return per_byte.reshape(rows.shape[:-1] + (-1,)).sum(axis=-1, dtype=np.int64)


def count_bits(matrix: np.ndarray, bounds: Optional[Rect] = None) -> int:
    if bounds is None:
        return int(popcount(matrix))
    masked = empty_matrix()
    add_bits(matrix, masked, bounds)
    return int(popcount(masked))


def move_matrix(matrix: np.ndarray, horizontal: int, vertical: int) -> np.ndarray:
    """Translate ``matrix``; bits pushed past the edges are dropped."""

    moved = empty_matrix()
    for y in range(MATRIX_SIZE):
        ny = y + vertical
        if 0 <= ny < MATRIX_SIZE:
            moved[ny] = _shift_row(int(matrix[y]), horizontal)
    return moved


def _dilate(matrix: np.ndarray) -> np.ndarray:
    rows = matrix.astype(np.uint64)
    one = np.uint64(1)
    horizontal = rows | ((rows << one) & np.uint64(FULL_ROW)) | (rows >> one)
    grown = horizontal.copy()
    grown[..., 1:] |= horizontal[..., :-1]
    grown[..., :-1] |= horizontal[..., 1:]
    return grown.astype(np.uint32)


def build_halo(matrix: np.ndarray, layers: int) -> List[np.ndarray]:
    """Return ``layers`` rings of pixels around ``matrix``.

    Layer ``i`` holds the unset pixels that have an 8-neighbour in the
    matrix united with layers ``0..i-1``. A ``(N, 32)`` batch yields
    ``(N, 32)`` layers.
    """

    work = np.array(matrix, dtype=np.uint32, copy=True)
    halo: List[np.ndarray] = []
    for _ in range(layers):
        layer = _dilate(work) & ~work
        halo.append(layer.astype(np.uint32))
        work = work | layer
    return halo


def add_bits(source: np.ndarray, target: np.ndarray, bounds: Optional[Rect] = None) -> None:
    """OR ``source`` into ``target``, optionally restricted to ``bounds``."""

    if bounds is None:
        target |= source
        return
    mask = _row_mask(bounds.x, bounds.width)
    for y in range(max(0, bounds.y), min(MATRIX_SIZE, bounds.y + bounds.height)):
        target[y] = int(target[y]) | (int(source[y]) & mask)


def copy_bits(
    source: np.ndarray,
    target: np.ndarray,
    rect: Rect,
    delta_x: int,
    delta_y: int,
    clear_target: bool = False,
) -> None:
    """Copy the bits inside ``rect`` translated by ``(delta_x, delta_y)``.

    With ``clear_target`` the destination rectangle is zeroed first,
    otherwise bits are only added.
    """

    if clear_target:
        dest = Rect(rect.x + delta_x, rect.y + delta_y, rect.width, rect.height)
        dest = dest.intersection(MATRIX_BOUNDS)
        keep = ~_row_mask(dest.x, dest.width) & FULL_ROW
        for y in range(dest.y, dest.y + dest.height):
            target[y] = int(target[y]) & keep

    mask = _row_mask(rect.x, rect.width)
    for sy in range(max(0, rect.y), min(MATRIX_SIZE, rect.y + rect.height)):
        ty = sy + delta_y
        if ty < 0 or ty >= MATRIX_SIZE:
            continue
        target[ty] = int(target[ty]) | _shift_row(int(source[sy]) & mask, delta_x)


def stretch_bits(
    source: np.ndarray,
    target: np.ndarray,
    rect: Rect,
    horizontal: int,
    vertical: int,
) -> Rect:
    """Stretch the bits in ``rect`` by duplicating its middle line.

    Only one axis can be stretched at a time. Returns the new bounds of the
    stretched region clipped to the matrix.
    """

    if horizontal != 0 and vertical != 0:
        raise InvalidTransformationError("combined horizontal and vertical stretch is not supported")
    if horizontal != 0:
        return stretch_bits_x(source, target, rect, horizontal)
    return stretch_bits_y(source, target, rect, vertical)


def stretch_bits_x(source: np.ndarray, target: np.ndarray, rect: Rect, amount: int) -> Rect:
    if amount <= 0:
        raise InvalidTransformationError(f"stretch amount must be positive, got {amount}")
    divider_x = rect.x + rect.width // 2
    right = Rect(divider_x, rect.y, rect.x + rect.width - divider_x, rect.height)
    left = Rect(rect.x, rect.y, divider_x - rect.x + 1, rect.height)
    divider = Rect(divider_x, rect.y, 1, rect.height)
    move_right = (amount + 1) // 2
    move_left = amount - move_right

    copy_bits(source, target, right, move_right, 0)
    copy_bits(source, target, left, -move_left, 0)
    for dx in range(-move_left + 1, move_right):
        copy_bits(source, target, divider, dx, 0)

    return Rect(rect.x - move_left, rect.y, rect.width + amount, rect.height).intersection(MATRIX_BOUNDS)


def stretch_bits_y(source: np.ndarray, target: np.ndarray, rect: Rect, amount: int) -> Rect:
    if amount <= 0:
        raise InvalidTransformationError(f"stretch amount must be positive, got {amount}")
    divider_y = rect.y + rect.height // 2
    bottom = Rect(rect.x, divider_y, rect.width, rect.y + rect.height - divider_y)
    top = Rect(rect.x, rect.y, rect.width, divider_y - rect.y + 1)
    divider = Rect(rect.x, divider_y, rect.width, 1)
    move_down = (amount + 1) // 2
    move_up = amount - move_down

    copy_bits(source, target, bottom, 0, move_down)
    copy_bits(source, target, top, 0, -move_up)
    for dy in range(-move_up + 1, move_down):
        copy_bits(source, target, divider, 0, dy)

    return Rect(rect.x, rect.y - move_up, rect.width, rect.height + amount).intersection(MATRIX_BOUNDS)


def find_bounds(matrix: np.ndarray) -> Optional[Rect]:
    """Tight bounds of the set bits, ``None`` for an empty matrix."""

    bits = matrix_to_array(matrix)
    ys = np.flatnonzero(bits.any(axis=1))
    if ys.size == 0:
        return None
    xs = np.flatnonzero(bits.any(axis=0))
    return Rect(int(xs[0]), int(ys[0]), int(xs[-1] - xs[0] + 1), int(ys[-1] - ys[0] + 1))


def matrix_to_array(matrix: np.ndarray) -> np.ndarray:
    """Unpack a ``(32,)`` matrix into a ``(32, 32)`` boolean array."""

    rows = np.asarray(matrix, dtype=np.uint32).astype(">u4")
    return np.unpackbits(rows.view(np.uint8)).reshape(MATRIX_SIZE, MATRIX_SIZE).astype(bool)


def array_to_matrix(bits: np.ndarray) -> np.ndarray:
    """Pack a ``(32, 32)`` boolean array (row-major, ``bits[y, x]``)."""

    bits = np.asarray(bits, dtype=bool)
    if bits.shape != (MATRIX_SIZE, MATRIX_SIZE):
        raise ValueError(f"expected a 32x32 bitmap, got {bits.shape}")
    packed = np.packbits(bits.astype(np.uint8), axis=1)
    return packed.view(">u4").reshape(MATRIX_SIZE).astype(np.uint32)


def matrix_to_image(matrix: np.ndarray):
    """Render ``matrix`` as a black-on-white Pillow image."""

    from PIL import Image

    pixels = np.where(matrix_to_array(matrix), 0, 255).astype(np.uint8)
    return Image.fromarray(pixels)


__all__ = [
    "FULL_ROW",
    "MATRIX_BOUNDS",
    "MATRIX_SIZE",
    "PixelGrid",
    "add_bits",
    "array_to_matrix",
    "build_halo",
    "clear_bit",
    "copy_bits",
    "count_bits",
    "empty_matrix",
    "find_bounds",
    "is_bit_set",
    "matrix_to_array",
    "matrix_to_image",
    "move_matrix",
    "popcount",
    "set_bit",
    "stretch_bits",
    "stretch_bits_x",
    "stretch_bits_y",
]
