# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import json

import pytest
from PIL import Image, ImageDraw

from kanjiscan import cli


@pytest.fixture()
def square_png(tmp_path):
    path = tmp_path / "square.png"
    image = Image.new("RGB", (60, 60), "white")
    ImageDraw.Draw(image).rectangle((20, 20, 39, 39), fill="black")
    image.save(path)
    return path


def test_columns_prints_json(square_png, tmp_path, capsys):
    code = cli.main(["columns", str(square_png), "--cache-dir", str(tmp_path)])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert len(payload) == 1
    assert payload[0]["rect"] == {"x": 20, "y": 20, "width": 20, "height": 20}
    assert payload[0]["vertical"] is True


def test_columns_writes_debug_images(square_png, tmp_path, capsys):
    debug_dir = tmp_path / "debug"

    assert cli.main(["columns", str(square_png), "--debug-dir", str(debug_dir)]) == 0

    assert any(p.suffix == ".png" for p in debug_dir.iterdir())


def test_ocr_without_cache_exits_with_error(square_png, tmp_path, capsys):
    code = cli.main(
        ["ocr", str(square_png), "--point", "30", "30", "--cache-dir", str(tmp_path / "empty")]
    )

    assert code == 1
    assert "rebuild cache" in capsys.readouterr().err


def test_ocr_far_from_text_prints_empty_result(square_png, tmp_path, capsys):
    code = cli.main(["ocr", str(square_png), "--point", "1", "1", "--cache-dir", str(tmp_path)])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["characters"] == []
    assert payload["best_matching_characters"] == ""


def test_point_and_rect_are_exclusive(square_png):
    with pytest.raises(SystemExit):
        cli.main(["ocr", str(square_png), "--point", "1", "1", "--rect", "0", "0", "5", "5"])


def test_config_flags_override_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("KANJISCAN_ORIENTATION", "horizontal")
    args = cli._parser().parse_args(
        ["columns", "img.png", "--orientation", "vertical", "--font", "Mincho:/fonts/m.ttf+bold"]
    )

    config = cli._config(args)

    assert config.orientation.value == "vertical"
    assert config.reference_fonts[0].path == "/fonts/m.ttf"
    assert config.reference_fonts[0].bold
