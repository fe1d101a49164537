# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import re

import numpy as np
import pytest
from PIL import ImageFont

from kanjiscan.config import OCRConfig, ReferenceFont
from kanjiscan.errors import FontNotFoundError, KanjiScanError, ReferenceCacheMissingError
from kanjiscan.recognition.cache import (
    ReferenceCacheBuilder,
    ReferenceCacheLoader,
    cache_file_name,
    cache_path,
    check_row,
    read_references,
    smear,
    string_hash,
    write_references,
)

FONT = ReferenceFont("Default")


def _default_font(font, size):
    return ImageFont.load_default(size)


def _config(tmp_path, **changes):
    values = dict(reference_fonts=(FONT,), cache_dir=tmp_path, characters="AB")
    values.update(changes)
    return OCRConfig(**values)


def test_string_hash_matches_polynomial_definition():
    assert string_hash("") == 0
    assert string_hash("ab") == 97 * 31 + 98
    assert smear(0) == 0


def test_cache_name_depends_on_inputs(tmp_path):
    config = _config(tmp_path)
    name = cache_file_name(FONT, config)

    assert re.fullmatch(r"CHARACTERS_[0-9A-F]+\.cache", name)
    assert cache_file_name(FONT, config) == name
    assert cache_file_name(FONT, config.replace(halo_layers=2)) != name
    assert cache_file_name(FONT, config.replace(characters="AC")) != name
    assert cache_file_name(ReferenceFont("Default", bold=True), config) != name
    assert cache_path(FONT, config).parent == tmp_path


def test_build_then_load_round_trips_bitmaps(tmp_path):
    config = _config(tmp_path)
    builder = ReferenceCacheBuilder(config, font_loader=_default_font)

    paths = builder.build()

    assert paths == [cache_path(FONT, config)]
    written = read_references(paths[0])
    assert [r.character for r in written] == ["A", "B"]
    assert all(r.pixels > 0 for r in written)
    assert all(len(r.halo) == config.halo_layers - 1 for r in written)

    loader = ReferenceCacheLoader(config)
    assert not loader.loaded
    cache = loader.load()
    assert loader.loaded
    assert loader.load() is cache
    loaded = cache.get(FONT)
    for before, after in zip(written, loaded):
        assert np.array_equal(before.matrix, after.matrix)
        assert [c.bounds for c in before.components] == [c.bounds for c in after.components]
    assert len(cache.batch(FONT)) == 2
    assert FONT in cache


def test_records_preserve_components(tmp_path):
    config = _config(tmp_path)
    reference = ReferenceCacheBuilder(config, font_loader=_default_font).build_reference("A", FONT)
    path = tmp_path / "refs.cache"

    write_references(path, [reference])
    (restored,) = read_references(path)

    assert restored.character == "A"
    assert restored.pixels == reference.pixels
    assert np.array_equal(restored.matrix, reference.matrix)
    for a, b in zip(restored.halo, reference.halo):
        assert np.array_equal(a, b)
    assert len(restored.components) == len(reference.components)


def test_missing_cache_file_is_reported(tmp_path):
    loader = ReferenceCacheLoader(_config(tmp_path))

    with pytest.raises(ReferenceCacheMissingError) as excinfo:
        loader.load()

    assert excinfo.value.reason == "reference_cache_missing"
    assert not loader.loaded


def test_duplicate_characters_are_rejected(tmp_path):
    builder = ReferenceCacheBuilder(_config(tmp_path, characters="ABA"), font_loader=_default_font)

    with pytest.raises(KanjiScanError):
        builder.build()


def test_unloadable_font_raises_font_not_found(tmp_path):
    def broken(font, size):
        raise OSError("cannot open resource")

    builder = ReferenceCacheBuilder(_config(tmp_path), font_loader=broken)

    with pytest.raises(FontNotFoundError):
        builder.build()


def test_check_row_cuts_corner_spikes_only():
    bits = np.zeros((32, 32), dtype=bool)
    bits[31, 2:4] = True
    bits[31, 28:30] = True
    check_row(bits, 31)
    assert not bits[31].any()

    bits[31, 2:4] = True
    bits[31, 15] = True
    check_row(bits, 31)
    assert bits[31].sum() == 3
