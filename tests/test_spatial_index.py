# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import random
from dataclasses import dataclass

from kanjiscan.geometry import Rect
from kanjiscan.segmentation.spatial_index import MAX_VALUES_PER_NODE, SpatialIndex


@dataclass(eq=False)
class Box:
    rect: Rect


def _random_boxes(count, seed=7, size=400):
    rnd = random.Random(seed)
    boxes = []
    for _ in range(count):
        w = rnd.randint(1, 40)
        h = rnd.randint(1, 40)
        boxes.append(Box(Rect(rnd.randint(0, size - w), rnd.randint(0, size - h), w, h)))
    return boxes


def test_query_has_no_false_negatives():
    boxes = _random_boxes(300)
    index = SpatialIndex.for_image(400, 400, boxes)
    rnd = random.Random(11)

    for _ in range(50):
        window = Rect(rnd.randint(0, 380), rnd.randint(0, 380), rnd.randint(1, 60), rnd.randint(1, 60))
        expected = {id(b) for b in boxes if b.rect.intersects(window)}
        found = {id(b) for b in index.query(window)}
        assert found == expected


def test_query_skips_given_value():
    a = Box(Rect(10, 10, 5, 5))
    b = Box(Rect(12, 12, 5, 5))
    index = SpatialIndex.for_image(50, 50, [a, b])

    assert index.query(a.rect, skip=a) == [b]
    assert index.contains(Rect(0, 0, 5, 5)) is False


def test_removed_values_are_not_returned():
    boxes = _random_boxes(200, seed=5)
    index = SpatialIndex.for_image(400, 400, boxes)
    removed = boxes[::3]

    for box in removed:
        assert index.remove(box) is True
    assert index.remove(removed[0]) is False

    remaining = {id(b) for b in boxes} - {id(b) for b in removed}
    assert {id(b) for b in index.all()} == remaining
    for box in removed:
        assert box not in index.query(box.rect)


def test_identical_rects_keep_leaf_from_splitting_forever():
    boxes = [Box(Rect(5, 5, 3, 3)) for _ in range(MAX_VALUES_PER_NODE * 3)]
    index = SpatialIndex.for_image(20, 20, boxes)

    assert len(index.query(Rect(5, 5, 1, 1))) == len(boxes)
    assert len(index) == len(boxes)
