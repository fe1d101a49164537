# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

import logging

from PIL import Image, ImageDraw

from kanjiscan.config import OCRConfig
from kanjiscan.diagnostics import DebugImageWriter, LoggingDiagnostics, render_task
from kanjiscan.segmentation import AreaDetector


def _image():
    image = Image.new("RGB", (60, 60), "white")
    ImageDraw.Draw(image).rectangle((20, 20, 39, 39), fill="black")
    return image


def test_debug_writer_saves_selected_steps(tmp_path):
    writer = DebugImageWriter(tmp_path / "out", steps={"combined"})

    AreaDetector(OCRConfig(), writer).run(_image())

    names = sorted(p.name for p in (tmp_path / "out").iterdir())
    assert names == ["001.combined.png"]


def test_debug_writer_never_raises_on_io_errors(tmp_path, caplog):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    writer = DebugImageWriter(blocker / "nested")

    with caplog.at_level(logging.WARNING, logger="kanjiscan.diagnostics"):
        AreaDetector(OCRConfig(), writer).run(_image())

    assert "failed to write debug image" in caplog.text


def test_logging_diagnostics_reports_each_step(caplog):
    with caplog.at_level(logging.DEBUG, logger="kanjiscan.diagnostics"):
        AreaDetector(OCRConfig(), LoggingDiagnostics()).run(_image())

    assert "step binary" in caplog.text
    assert "step combined" in caplog.text


def test_render_task_matches_image_size():
    task = AreaDetector(OCRConfig()).run(_image())

    rendered = render_task(task)

    assert rendered.size == (60, 60)
    assert rendered.getpixel((30, 30)) == (0, 0, 0)
