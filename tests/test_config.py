# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

from pathlib import Path

import pytest

from kanjiscan.config import CharacterColor, OCRConfig, Orientation, ReferenceFont
from kanjiscan.recognition.charset import DEFAULT_CHARACTERS, is_kana, is_kanji, score_modifier


def test_reference_font_parse():
    assert ReferenceFont.parse("MS Gothic") == ReferenceFont("MS Gothic")
    assert ReferenceFont.parse("MS Gothic+bold") == ReferenceFont("MS Gothic", bold=True)
    parsed = ReferenceFont.parse("Noto:/usr/share/fonts/noto.otf")
    assert parsed.path == "/usr/share/fonts/noto.otf"
    assert parsed.key == "Noto"
    assert ReferenceFont("Noto", bold=True).key == "Noto Bold"


def test_from_env_reads_prefixed_variables(monkeypatch, tmp_path):
    monkeypatch.setenv("KANJISCAN_ORIENTATION", "Horizontal")
    monkeypatch.setenv("KANJISCAN_CHARACTER_COLOR", "white_on_black")
    monkeypatch.setenv("KANJISCAN_THREADS", "0")
    monkeypatch.setenv("KANJISCAN_MAX_CHARACTERS", "not a number")
    monkeypatch.setenv("KANJISCAN_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("KANJISCAN_FONTS", "A,B+bold")

    config = OCRConfig.from_env()

    assert config.orientation is Orientation.HORIZONTAL
    assert config.character_color is CharacterColor.WHITE_ON_BLACK
    assert config.threads == 1
    assert config.max_characters == 4
    assert config.cache_dir == Path(tmp_path)
    assert config.reference_fonts == (ReferenceFont("A"), ReferenceFont("B", bold=True))
    assert config.primary_font == ReferenceFont("A")


def test_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("KANJISCAN_HALO_LAYERS", "2")

    assert OCRConfig.from_env().halo_layers == 2
    assert OCRConfig.from_env(halo_layers=3).halo_layers == 3


@pytest.mark.parametrize(
    "changes",
    [
        {"reference_fonts": ()},
        {"halo_layers": 0},
        {"halo_layers": 4},
        {"target_size": 40},
        {"threads": 0},
    ],
)
def test_invalid_configurations_are_rejected(changes):
    with pytest.raises(ValueError):
        OCRConfig(**changes)


def test_character_set_defaults_and_modifiers():
    config = OCRConfig()

    assert config.character_set == DEFAULT_CHARACTERS
    assert config.replace(characters="AB").character_set == "AB"
    assert len(set(DEFAULT_CHARACTERS)) == len(DEFAULT_CHARACTERS)
    assert is_kana("あ") and is_kana("ア") and not is_kana("日")
    assert is_kanji("日")
    assert score_modifier("日") == 1.0
