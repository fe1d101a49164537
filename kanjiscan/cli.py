# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Command line interface; every subcommand prints JSON to stdout.

    kanjiscan ocr IMAGE --point X Y
    kanjiscan ocr IMAGE --rect X Y W H [--rect ...]
    kanjiscan columns IMAGE
    kanjiscan build-cache --font "MS Gothic:/path/msgothic.ttc" [--font ...]

Defaults come from ``KANJISCAN_*`` environment variables (see
``OCRConfig.from_env``); flags override them.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .api import KanjiScan
from .config import CharacterColor, OCRConfig, Orientation, ReferenceFont
from .diagnostics import DebugImageWriter, DiagnosticsObserver
from .errors import KanjiScanError
from .geometry import Point, Rect
from .recognition.cache import ReferenceCacheBuilder

logger = logging.getLogger("kanjiscan")


def _configure_logging(level: Optional[str]) -> None:
    name = (level or os.environ.get("KANJISCAN_LOG_LEVEL") or "WARNING").strip().upper()
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, name, logging.WARNING))


def _parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", help="DEBUG, INFO, WARNING (default: $KANJISCAN_LOG_LEVEL or WARNING)")
    common.add_argument("--cache-dir", type=Path, help="Directory holding reference cache files")
    common.add_argument("--orientation", choices=[o.value for o in Orientation])
    common.add_argument("--color", choices=[c.value for c in CharacterColor], dest="character_color")
    common.add_argument(
        "--font",
        action="append",
        dest="fonts",
        metavar="NAME[:PATH][+bold]",
        help="Reference font; repeat for secondary fonts",
    )

    parser = argparse.ArgumentParser(prog="kanjiscan", description="Japanese character OCR")
    sub = parser.add_subparsers(dest="command", required=True)

    ocr = sub.add_parser("ocr", parents=[common], help="Recognise characters in an image")
    ocr.add_argument("image", type=Path)
    target = ocr.add_mutually_exclusive_group(required=True)
    target.add_argument("--point", nargs=2, type=int, metavar=("X", "Y"))
    target.add_argument("--rect", nargs=4, type=int, action="append", metavar=("X", "Y", "W", "H"))
    ocr.add_argument("--max-characters", type=int)
    ocr.add_argument("--debug-dir", type=Path, help="Write diagnostic images here")

    columns = sub.add_parser("columns", parents=[common], help="Print detected columns")
    columns.add_argument("image", type=Path)
    columns.add_argument("--debug-dir", type=Path, help="Write diagnostic images here")

    sub.add_parser("build-cache", parents=[common], help="Render reference glyphs for the configured fonts")
    return parser


def _config(args: argparse.Namespace) -> OCRConfig:
    overrides: Dict[str, Any] = {}
    if args.cache_dir is not None:
        overrides["cache_dir"] = args.cache_dir
    if args.orientation:
        overrides["orientation"] = Orientation(args.orientation)
    if args.character_color:
        overrides["character_color"] = CharacterColor(args.character_color)
    if args.fonts:
        overrides["reference_fonts"] = tuple(ReferenceFont.parse(f) for f in args.fonts)
    if getattr(args, "max_characters", None):
        overrides["max_characters"] = args.max_characters
    return OCRConfig.from_env(**overrides)


def _diagnostics(args: argparse.Namespace) -> Optional[DiagnosticsObserver]:
    debug_dir = getattr(args, "debug_dir", None)
    if debug_dir is None:
        return None
    return DebugImageWriter(debug_dir)


def _print_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _handle_ocr(args: argparse.Namespace) -> None:
    with KanjiScan(_config(args), _diagnostics(args)) as ocr:
        ocr.set_target_image(args.image)
        if args.point:
            results = ocr.run_ocr(Point(*args.point))
        else:
            results = ocr.run_ocr_rects([Rect(*r) for r in args.rect])
    if results is None:
        _print_json({"characters": [], "best_matching_characters": "", "vertical": None})
        return
    payload = results.model_dump()
    payload["best_matching_characters"] = results.best_matching_characters
    _print_json(payload)


def _handle_columns(args: argparse.Namespace) -> None:
    with KanjiScan(_config(args), _diagnostics(args)) as ocr:
        ocr.set_target_image(args.image)
        _print_json([column.model_dump() for column in ocr.columns])


def _handle_build_cache(args: argparse.Namespace) -> None:
    config = _config(args)
    paths = ReferenceCacheBuilder(config).build()
    _print_json(
        {
            "fonts": [font.key for font in config.reference_fonts],
            "files": [str(path) for path in paths],
        }
    )


_HANDLERS = {
    "ocr": _handle_ocr,
    "columns": _handle_columns,
    "build-cache": _handle_build_cache,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        _HANDLERS[args.command](args)
    except KanjiScanError as exc:
        logger.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
