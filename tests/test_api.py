# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import numpy as np
import pytest
from PIL import Image, ImageDraw, ImageFont

from kanjiscan import KanjiScan, OCRConfig, ReferenceFont
from kanjiscan.errors import EngineClosedError, ReferenceCacheMissingError, TargetImageNotSetError
from kanjiscan.geometry import Point, Rect
from kanjiscan.models import OCRResults, build_results
from kanjiscan.recognition.cache import ReferenceCacheBuilder

FONT = ReferenceFont("Default")


def _square_image():
    image = Image.new("RGB", (60, 60), "white")
    ImageDraw.Draw(image).rectangle((20, 20, 39, 39), fill="black")
    return image


def _config(tmp_path, **changes):
    values = dict(reference_fonts=(FONT,), cache_dir=tmp_path, characters="AHO", threads=2)
    values.update(changes)
    return OCRConfig(**values)


def test_ocr_before_target_image_fails_without_loading(tmp_path):
    ocr = KanjiScan(_config(tmp_path))

    with pytest.raises(TargetImageNotSetError) as excinfo:
        ocr.run_ocr(Point(10, 10))
    assert excinfo.value.reason == "no_target_image"
    with pytest.raises(TargetImageNotSetError):
        ocr.run_ocr_rects([Rect(0, 0, 5, 5)])
    with pytest.raises(TargetImageNotSetError):
        ocr.columns

    assert not ocr.loader.loaded
    assert ocr.scheduler is None


def test_columns_describe_the_target(tmp_path):
    ocr = KanjiScan(_config(tmp_path))
    ocr.set_target_image(np.asarray(_square_image()))

    (column,) = ocr.columns

    assert column.index == 0
    assert column.rect.to_rect() == Rect(20, 20, 20, 20)
    assert [a.to_rect() for a in column.areas] == [Rect(20, 20, 20, 20)]
    assert column.next_index is None
    assert column.furigana_indexes == []


def test_point_far_from_any_character_returns_none(tmp_path):
    with KanjiScan(_config(tmp_path)) as ocr:
        ocr.set_target_image(_square_image())
        assert ocr.run_ocr(Point(2, 2)) is None
        assert ocr.run_ocr_rects([Rect(0, 0, 10, 10)]) is None
        assert not ocr.loader.loaded


def test_missing_reference_cache_is_raised_on_first_ocr(tmp_path):
    with KanjiScan(_config(tmp_path)) as ocr:
        ocr.set_target_image(_square_image())
        with pytest.raises(ReferenceCacheMissingError):
            ocr.run_ocr(Point(30, 30))


def test_rendered_letter_is_recognised(tmp_path):
    config = _config(tmp_path)
    ReferenceCacheBuilder(config, font_loader=lambda font, size: ImageFont.load_default(size)).build()
    image = Image.new("RGB", (100, 100), "white")
    ImageDraw.Draw(image).text((30, 20), "A", font=ImageFont.load_default(40), fill="black")

    with KanjiScan(config) as ocr:
        ocr.load_data()
        ocr.load_data()
        ocr.set_target_image(image)
        results = ocr.run_ocr_rects([(0, 0, 100, 100)])

    assert results.best_matching_characters == "A"
    (character,) = results.characters
    assert sorted(character.reference_characters) == ["A", "H", "O"]
    assert character.scores == sorted(character.scores, reverse=True)
    assert ocr.scheduler is None


def test_results_text_lists_characters_and_locations():
    results = build_results([[("日", 900), ("目", 850)]], [Rect(1, 2, 3, 4)], vertical=True)

    assert isinstance(results, OCRResults)
    assert results.characters[0].best == "日"
    assert str(results) == "Characters:\n日目\nLocations:\n(1, 2, 3, 4)"


def test_recognition_after_concurrent_close_raises_clear_error(tmp_path, monkeypatch):
    ocr = KanjiScan(_config(tmp_path))
    ocr.set_target_image(_square_image())
    # close() won the race against load_data(): no worker pool is left
    monkeypatch.setattr(ocr, "load_data", lambda: None)

    with pytest.raises(EngineClosedError) as excinfo:
        ocr.run_ocr(Point(30, 30))

    assert excinfo.value.reason == "engine_closed"
