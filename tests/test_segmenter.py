# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import numpy as np
from PIL import Image, ImageDraw

from kanjiscan.config import CharacterColor, OCRConfig
from kanjiscan.geometry import Point, Rect
from kanjiscan.segmentation import AreaDetector
from kanjiscan.segmentation.areas import FindAreas, label_components
from kanjiscan.segmentation.preprocess import binarize, invert_regions
from kanjiscan.segmentation.task import SegmentationTask


def _square_image(size=(60, 60), box=(20, 20, 39, 39)):
    image = Image.new("RGB", size, "white")
    ImageDraw.Draw(image).rectangle(box, fill="black")
    return image


def _prepared_task(image, config=None):
    task = SegmentationTask(image, config or OCRConfig())
    task.binary = binarize(task.original_image, task.config.pixel_rgb_threshold)
    return task


def test_label_components_is_eight_connected():
    binary = np.zeros((6, 6), dtype=bool)
    binary[1, 1] = True
    binary[2, 2] = True
    binary[4, 4] = True

    labels, count = label_components(binary)

    assert count == 2
    assert labels[1, 1] == labels[2, 2] == 1
    assert labels[4, 4] == 2


def test_single_square_becomes_one_tight_area():
    task = AreaDetector(OCRConfig()).run(_square_image())

    assert len(task.areas) == 1
    area = task.areas[0]
    assert area.rect == Rect(20, 20, 20, 20)
    assert area.pixels == 400
    assert len(task.columns) == 1
    assert task.columns[0].areas == [area]


def test_components_touching_the_border_are_ignored():
    image = _square_image(box=(0, 10, 15, 25))
    task = _prepared_task(image)
    FindAreas(task).run()

    assert task.areas == []


def test_tiny_specks_are_dropped():
    image = _square_image(box=(20, 20, 39, 39))
    draw = ImageDraw.Draw(image)
    draw.point((5, 5), fill="black")
    task = _prepared_task(image)
    FindAreas(task).run()

    assert [a.rect for a in task.areas] == [Rect(20, 20, 20, 20)]


def test_areas_are_disjoint_and_each_in_one_column():
    image = Image.new("RGB", (120, 120), "white")
    draw = ImageDraw.Draw(image)
    for x in (20, 70):
        for y in (15, 50, 85):
            draw.rectangle((x, y, x + 19, y + 19), fill="black")
    task = AreaDetector(OCRConfig()).run(image)

    rects = [a.rect for a in task.areas]
    assert len(rects) == 6
    for i, a in enumerate(rects):
        for b in rects[i + 1 :]:
            assert not a.intersects(b)
    owners = {}
    for column in task.columns:
        for area in column.areas:
            assert id(area) not in owners
            owners[id(area)] = column.id
    assert len(owners) == len(task.areas)


def test_white_on_black_is_inverted_before_area_search():
    image = Image.new("RGB", (60, 60), "black")
    ImageDraw.Draw(image).rectangle((20, 20, 39, 39), fill="white")
    task = _prepared_task(image, OCRConfig(character_color=CharacterColor.WHITE_ON_BLACK))
    invert_regions(task)
    FindAreas(task).run()

    assert [a.rect for a in task.areas] == [Rect(20, 20, 20, 20)]


def test_closest_area_and_sub_images():
    task = AreaDetector(OCRConfig()).run(_square_image())

    assert task.closest_area(Point(30, 30)) is task.areas[0]
    assert task.closest_area(Point(59, 59)) is None
    sub_images = task.sub_images(Point(25, 25))
    assert len(sub_images) == 1
    assert sub_images[0].rect == Rect(20, 20, 20, 20)
    assert sub_images[0].pixels.all()


def test_sub_images_for_trims_empty_border():
    task = AreaDetector(OCRConfig()).run(_square_image())

    sub_images = task.sub_images_for([Rect(10, 10, 40, 40), Rect(0, 0, 5, 5)])

    assert len(sub_images) == 1
    assert sub_images[0].rect == Rect(20, 20, 20, 20)


def test_speech_bubble_outline_is_rejected_and_text_kept():
    image = Image.new("RGB", (140, 130), "white")
    draw = ImageDraw.Draw(image)
    draw.ellipse((20, 20, 119, 109), outline="black", width=4)
    draw.rectangle((60, 55, 79, 74), fill="black")
    task = _prepared_task(image)

    FindAreas(task).run()

    assert [a.rect for a in task.areas] == [Rect(60, 55, 20, 20)]
    # the outline stays known as background
    assert task.background[20:24, 60:80].any()


def test_checkerboard_dither_is_rejected():
    pixels = np.full((60, 60, 3), 255, dtype=np.uint8)
    ys, xs = np.mgrid[10:30, 10:30]
    pixels[ys[(ys + xs) % 2 == 0], xs[(ys + xs) % 2 == 0]] = 0
    pixels[36:50, 36:50] = 0
    task = _prepared_task(Image.fromarray(pixels))

    FindAreas(task).run()

    assert [a.rect for a in task.areas] == [Rect(36, 36, 14, 14)]


def test_cluster_of_specks_is_rejected():
    image = Image.new("RGB", (100, 100), "white")
    draw = ImageDraw.Draw(image)
    for x in range(8, 68, 6):
        for y in range(8, 68, 6):
            draw.rectangle((x, y, x + 1, y + 1), fill="black")
    draw.rectangle((72, 72, 91, 91), fill="black")
    task = _prepared_task(image)

    FindAreas(task).run()

    assert [a.rect for a in task.areas] == [Rect(72, 72, 20, 20)]
