# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

from PIL import Image, ImageDraw

from kanjiscan.config import OCRConfig, Orientation
from kanjiscan.geometry import Rect
from kanjiscan.segmentation import AreaDetector


def _image(size, boxes):
    image = Image.new("RGB", size, "white")
    draw = ImageDraw.Draw(image)
    for x, y, w, h in boxes:
        draw.rectangle((x, y, x + w - 1, y + h - 1), fill="black")
    return image


STACKED = ((60, 80), [(10, 10, 15, 15), (10, 40, 15, 15)])


def test_stacked_squares_resolve_to_vertical_column():
    task = AreaDetector(OCRConfig()).run(_image(*STACKED))

    assert len(task.columns) == 1
    column = task.columns[0]
    assert column.vertical
    assert [a.rect for a in column.areas] == [Rect(10, 10, 15, 15), Rect(10, 40, 15, 15)]


def test_fixed_orientation_skips_resolution():
    config = OCRConfig(orientation=Orientation.HORIZONTAL)
    task = AreaDetector(config).run(_image(*STACKED))

    assert task.vertical_columns == []
    assert len(task.columns) == 2
    assert not any(c.vertical for c in task.columns)


def test_thin_columns_are_dropped_in_automatic_mode():
    image = _image((40, 40), [(15, 15, 5, 5)])

    automatic = AreaDetector(OCRConfig()).run(image)
    fixed = AreaDetector(OCRConfig(orientation=Orientation.VERTICAL)).run(image)

    assert automatic.columns == []
    assert len(fixed.columns) == 1


def test_every_area_ends_in_exactly_one_column():
    boxes = [(x, y, 18, 18) for x in (20, 60, 100) for y in (10, 40, 70)]
    task = AreaDetector(OCRConfig()).run(_image((140, 110), boxes))

    seen = set()
    for column in task.columns:
        for area in column.areas:
            assert id(area) not in seen
            seen.add(id(area))
            assert area.column_id == column.id
            assert area.vertical == column.vertical
    assert sum(a.pixels for a in task.areas) == 9 * 18 * 18
