# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Layout detector category table (17 classes, 0-indexed)."""
from __future__ import annotations

from typing import FrozenSet, Tuple

OTHER_CATEGORY = "other"

CATEGORY_NAMES: Tuple[str, ...] = (
    "body",  # text_block
    "column",  # line_main
    "caption",  # line_caption
    "advertisement",  # line_ad
    "footnote",  # line_note
    "footnote",  # line_note_tochu
    "figure",  # block_fig
    "advertisement",  # block_ad
    "column",  # block_pillar
    "page_number",  # block_folio
    "other",  # block_rubi
    "table",  # block_chart
    "equation",  # block_eqn
    "separator",  # block_cfm
    "body",  # block_eng
    "table",  # block_table
    "title",  # line_title
)

DETECTOR_CLASS_NAMES: Tuple[str, ...] = (
    "text_block",
    "line_main",
    "line_caption",
    "line_ad",
    "line_note",
    "line_note_tochu",
    "block_fig",
    "block_ad",
    "block_pillar",
    "block_folio",
    "block_rubi",
    "block_chart",
    "block_eqn",
    "block_cfm",
    "block_eng",
    "block_table",
    "line_title",
)

# classes holding a single line of text to recognize
TEXT_LINE_CATEGORIES: FrozenSet[int] = frozenset({1, 2, 3, 4, 5, 16})

# container classes lines are grouped into
BLOCK_CATEGORIES: FrozenSet[int] = frozenset({0, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15})


def category_name(index: int) -> str:
    """Map a 0-based category index to its semantic name; unknown indices map to ``"other"``."""
    if 0 <= index < len(CATEGORY_NAMES):
        return CATEGORY_NAMES[index]
    return OTHER_CATEGORY


def is_text_line(index: int) -> bool:
    return index in TEXT_LINE_CATEGORIES


def is_block(index: int) -> bool:
    return index in BLOCK_CATEGORIES


__all__ = [
    "BLOCK_CATEGORIES",
    "CATEGORY_NAMES",
    "DETECTOR_CLASS_NAMES",
    "OTHER_CATEGORY",
    "TEXT_LINE_CATEGORIES",
    "category_name",
    "is_block",
    "is_text_line",
]
