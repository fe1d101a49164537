# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

from PIL import Image, ImageDraw

from kanjiscan.config import OCRConfig
from kanjiscan.geometry import Rect
from kanjiscan.segmentation.areas import FindAreas
from kanjiscan.segmentation.columns import ColumnBuilder
from kanjiscan.segmentation.layout import Area, Column, ColumnArena
from kanjiscan.segmentation.preprocess import binarize
from kanjiscan.segmentation.task import SegmentationTask


def _task_with_squares(size, boxes):
    image = Image.new("RGB", size, "white")
    draw = ImageDraw.Draw(image)
    for x, y, w, h in boxes:
        draw.rectangle((x, y, x + w - 1, y + h - 1), fill="black")
    task = SegmentationTask(image, OCRConfig())
    task.binary = binarize(task.original_image, task.config.pixel_rgb_threshold)
    FindAreas(task).run()
    return task


def test_two_stacked_squares_form_one_vertical_column():
    task = _task_with_squares((60, 80), [(10, 10, 15, 15), (10, 40, 15, 15)])
    assert len(task.areas) == 2

    columns = ColumnBuilder(task, vertical=True).run(task.areas)

    assert len(columns) == 1
    column = columns[0]
    assert column.vertical
    assert [a.rect for a in column.areas] == [Rect(10, 10, 15, 15), Rect(10, 40, 15, 15)]
    assert column.rect == Rect(10, 10, 15, 45)


def test_squares_side_by_side_stay_apart_in_vertical_mode():
    task = _task_with_squares((120, 60), [(10, 20, 15, 15), (80, 20, 15, 15)])

    columns = ColumnBuilder(task, vertical=True).run(task.areas)

    assert len(columns) == 2
    assert all(len(c.areas) == 1 for c in columns)


def test_builder_leaves_input_areas_untouched():
    task = _task_with_squares((60, 80), [(10, 10, 15, 15), (10, 40, 15, 15)])
    originals = list(task.areas)

    columns = ColumnBuilder(task, vertical=True).run(task.areas)

    assert all(a.column_id is None for a in originals)
    assert not any(a in originals for c in columns for a in c.areas)


def test_no_areas_yield_no_columns():
    task = _task_with_squares((30, 30), [])

    assert ColumnBuilder(task, vertical=False).run([]) == []


def test_column_sorts_areas_in_reading_order():
    lower = Area(Rect(0, 30, 10, 10), pixels=100)
    upper = Area(Rect(0, 0, 10, 10), pixels=100)
    right = Area(Rect(30, 0, 10, 10), pixels=100)
    left = Area(Rect(0, 0, 10, 10), pixels=100)

    vertical = Column([lower, upper], vertical=True)
    horizontal = Column([right, left], vertical=False)

    assert vertical.areas == [upper, lower]
    assert horizontal.areas == [left, right]
    assert vertical.rect == Rect(0, 0, 10, 40)


def test_arena_follow_chain_stops_at_cycles():
    arena = ColumnArena()
    a, b, c = (arena.add(Column([Area(Rect(i * 20, 0, 10, 10), pixels=50)])) for i in range(3))
    arena.link(a, b)
    arena.link(b, c)
    arena.link(c, a)

    assert [col.id for col in arena.follow_chain(a)] == [a.id, b.id, c.id]
    assert [col.id for col in arena.follow_chain(b, limit=2)] == [b.id, c.id]
    assert arena.column_of(a.areas[0]) is a
