#!/usr/bin/env python3
# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors
"""Unified CLI entry point for layoutocr."""
from __future__ import annotations

import runpy
import sys
from textwrap import dedent

_COMMAND_TO_MODULE = {
    "run": "layoutocr.ocr_pipeline.cli",
    "ocr": "layoutocr.ocr_pipeline.cli",
}

_DEFAULT_COMMAND = "run"


def _print_help() -> None:
    msg = dedent(
        """
        Usage:
          python -m layoutocr [command] [args...]

        Commands:
          run | ocr           Detect layout, recognize lines and export the result (default)
          help                Show this message

        Examples:
          python -m layoutocr run --images page1.png page2.png --models-dir models --format xml
          python -m layoutocr --images scan.png --use-mocks --format json
        """
    ).strip()
    print(msg)


def _run_module(module: str, argv: list[str]) -> None:
    old_argv = sys.argv
    try:
        sys.argv = [module, *argv]
        runpy.run_module(module, run_name="__main__")
    finally:
        sys.argv = old_argv


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        _print_help()
        return
    cmd = argv[0]
    if cmd in {"-h", "--help", "help"}:
        _print_help()
        return
    module = _COMMAND_TO_MODULE.get(cmd)
    if module is None:
        module = _COMMAND_TO_MODULE[_DEFAULT_COMMAND]
        args = argv
    else:
        args = argv[1:]
    _run_module(module, args)


if __name__ == "__main__":
    main()
