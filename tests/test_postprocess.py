# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

from PIL import Image

from kanjiscan.config import OCRConfig
from kanjiscan.geometry import Point, Rect
from kanjiscan.segmentation.connections import FindConnections, end_point, start_point
from kanjiscan.segmentation.furigana import FindFurigana
from kanjiscan.segmentation.layout import Area, Column
from kanjiscan.segmentation.merge import MergeAreas, next_combination
from kanjiscan.segmentation.punctuation import FindPunctuation
from kanjiscan.segmentation.split import SplitAreas
from kanjiscan.segmentation.task import SegmentationTask


def _blank_task(width=100, height=100):
    return SegmentationTask(Image.new("RGB", (width, height), "white"), OCRConfig())


def _area(x, y, w, h):
    return Area(Rect(x, y, w, h), pixels=w * h // 2)


def test_next_combination_counts_in_binary():
    combination = [False, False, False]
    seen = []
    for _ in range(4):
        next_combination(combination)
        seen.append("".join("t" if c else "f" for c in combination))

    assert seen == ["tff", "ftf", "ttf", "fft"]


def test_split_glyph_halves_are_merged_back():
    task = _blank_task()
    col = Column([_area(10, 10, 20, 9), _area(10, 20, 20, 9)], vertical=True)

    MergeAreas(task).merge_column(col)

    assert len(col.areas) == 1
    assert col.areas[0].rect == Rect(10, 10, 20, 19)
    assert col.areas[0].changed


def test_full_size_characters_are_not_merged():
    task = _blank_task()
    col = Column([_area(10, 10, 20, 20), _area(10, 34, 20, 20)], vertical=True)

    MergeAreas(task).merge_column(col)

    assert [a.rect for a in col.areas] == [Rect(10, 10, 20, 20), Rect(10, 34, 20, 20)]


def test_trailing_dot_is_punctuation():
    task = _blank_task()
    first = _area(10, 10, 20, 20)
    dot = _area(26, 32, 3, 3)
    second = _area(10, 40, 20, 20)
    col = Column([first, dot, second], vertical=True)

    FindPunctuation(task).mark_dot_comma(col)

    assert dot.punctuation
    assert not first.punctuation
    assert not second.punctuation


def test_column_end_points_follow_reading_direction():
    vertical = Column([_area(10, 20, 10, 30)], vertical=True)
    horizontal = Column([_area(10, 20, 30, 10)], vertical=False)

    assert start_point(vertical) == Point(10, 20)
    assert end_point(vertical) == Point(19, 20)
    assert start_point(horizontal) == Point(10, 29)
    assert end_point(horizontal) == Point(10, 20)


def test_vertical_column_continues_to_the_left():
    task = _blank_task()
    right = task.arena.add(Column([_area(60, 10, 20, 80)], vertical=True))
    left = task.arena.add(Column([_area(30, 10, 20, 80)], vertical=True))

    FindConnections(task).run([right, left])

    assert right.next_id == left.id
    assert left.previous_id == right.id
    assert left.next_id is None
    assert [c.id for c in task.arena.follow_chain(right)] == [right.id, left.id]


def test_columns_of_different_thickness_are_not_connected():
    task = _blank_task()
    right = task.arena.add(Column([_area(60, 10, 20, 80)], vertical=True))
    left = task.arena.add(Column([_area(45, 10, 8, 80)], vertical=True))

    FindConnections(task).run([right, left])

    assert right.next_id is None
    assert left.previous_id is None


def test_background_between_columns_blocks_connection():
    task = _blank_task()
    task.background[5:95, 54:56] = True
    right = task.arena.add(Column([_area(60, 10, 20, 80)], vertical=True))
    left = task.arena.add(Column([_area(30, 10, 20, 80)], vertical=True))

    FindConnections(task).run([right, left])

    assert right.next_id is None


def test_oversized_area_blocks_every_merge_in_its_chunk():
    task = _blank_task()
    col = Column(
        [_area(10, 10, 20, 9), _area(10, 20, 20, 9), _area(10, 32, 20, 40)], vertical=True
    )
    merger = MergeAreas(task)
    merger.target_size = 20
    merger.max_size = 30

    best = merger.find_best_merge(col.areas)

    assert [a.rect for a in best] == [Rect(10, 10, 20, 9), Rect(10, 20, 20, 9), Rect(10, 32, 20, 40)]
    assert not any(a.changed for a in best)


def test_thin_column_right_of_vertical_text_is_furigana():
    task = _blank_task(100, 120)
    main = task.arena.add(
        Column([_area(10, y, 20, 20) for y in (10, 34, 58, 82)], vertical=True)
    )
    thin = task.arena.add(
        Column([_area(32, y, 8, 8) for y in (12, 22, 32, 42)], vertical=True)
    )

    FindFurigana(task).run([main, thin])

    assert thin.furigana
    assert main.furigana_ids == [thin.id]
    assert not main.furigana
    assert thin.furigana_ids == []


def test_two_touching_glyphs_are_split_at_the_gap():
    task = _blank_task(60, 70)
    task.binary[10:29, 10:30] = True
    task.binary[29, 19:21] = True
    task.binary[30:50, 10:30] = True
    col = Column([Area(Rect(10, 10, 20, 40), pixels=int(task.binary.sum()))], vertical=True)

    SplitAreas(task).run([col])

    assert [a.rect for a in col.areas] == [Rect(10, 10, 20, 19), Rect(10, 29, 20, 21)]
    assert all(a.splitted for a in col.areas)


def _bracket_column(task):
    # 20x20 glyph, a flat corner bracket, another 20x20 glyph
    task.binary[10:30, 20:40] = True
    task.binary[34:36, 20:40] = True
    task.binary[34:42, 38:40] = True
    task.binary[46:66, 20:40] = True
    first = _area(20, 10, 20, 20)
    bracket = Area(Rect(20, 34, 20, 8), pixels=int(task.binary[34:42, 20:40].sum()))
    second = _area(20, 46, 20, 20)
    col = task.arena.add(Column([first, bracket, second], vertical=True))
    task.columns = [col]
    task.collect_areas()
    return col, first, bracket, second


def test_corner_bracket_is_punctuation():
    task = _blank_task()
    col, first, bracket, second = _bracket_column(task)

    FindPunctuation(task).run([col])

    assert bracket.punctuation
    assert not first.punctuation
    assert not second.punctuation


def test_bracket_is_skipped_by_closest_area_and_sub_images():
    task = _blank_task()
    col, first, bracket, second = _bracket_column(task)
    FindPunctuation(task).run([col])

    assert task.closest_area(bracket.midpoint) is first
    sub_images = task.sub_images(first.midpoint)
    assert [s.rect for s in sub_images] == [first.rect, second.rect]


def test_sub_images_stay_inside_resolved_columns():
    task = _blank_task()
    right = task.arena.add(Column([_area(60, 10, 20, 20)], vertical=True))
    stale = task.arena.add(Column([_area(30, 10, 20, 20)], vertical=True))
    task.arena.link(right, stale)
    task.columns = [right]
    task.collect_areas()

    sub_images = task.sub_images(Point(70, 20))

    assert [s.rect for s in sub_images] == [Rect(60, 10, 20, 20)]
