# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Recognizer character sets.

Recognizer vocabularies reserve index 0 for end-of-sequence and indices 1-3
for control tokens; ``charset[i - 1]`` is the symbol of vocabulary entry ``i``.
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_CHARSET: Tuple[str, ...] = tuple(chr(code) for code in range(0x20, 0x7F))


def load_charset(path: str | Path) -> Tuple[str, ...]:
    """Read a charset file.

    Files with several lines hold one symbol per line (a line containing a
    single space is the space symbol). A one-line file is read as a run of
    symbols.
    """
    text = Path(path).read_text(encoding="utf-8")
    lines = [line.rstrip("\r") for line in text.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()

    symbols: List[str]
    if len(lines) > 1:
        symbols = [line for line in lines if line != ""]
    elif lines:
        symbols = list(lines[0])
    else:
        symbols = []

    if not symbols:
        raise ConfigurationError(f"Charset file {path} is empty")
    return tuple(symbols)


def resolve_charset(charset_path: Optional[str]) -> Tuple[str, ...]:
    if charset_path:
        return load_charset(charset_path)
    return DEFAULT_CHARSET


__all__ = ["DEFAULT_CHARSET", "load_charset", "resolve_charset"]
