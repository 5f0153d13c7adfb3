# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Grouping of recognized lines into block-level regions."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .models import BoundingBox, Detection, RecognizedLine, TextRegion
from .reading_order import solve_reading_order

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "body"


def _best_block(line: RecognizedLine, blocks: Sequence[Detection]) -> Tuple[Optional[int], float]:
    """Block covering the largest share of ``line`` and that share; first block wins ties."""
    line_area = line.bbox.area
    if line_area <= 0:
        return None, 0.0
    best_idx: Optional[int] = None
    best_overlap = 0.0
    for idx, block in enumerate(blocks):
        overlap = line.bbox.intersection_area(block.bbox) / line_area
        if overlap > best_overlap:
            best_overlap = overlap
            best_idx = idx
    return best_idx, best_overlap


def assemble_regions(
    blocks: Sequence[Detection],
    lines: Sequence[RecognizedLine],
    line_ranks: Sequence[int],
    overlap_threshold: float = 0.3,
) -> List[TextRegion]:
    """Attach lines to blocks and order the resulting regions.

    ``line_ranks[i]`` is the reading position of ``lines[i]`` on the page.
    Without any block a single ``"body"`` region spans every line. Lines whose
    best block covers no more than ``overlap_threshold`` of their area are
    dropped, as are blocks that end up holding no line.
    """
    if len(line_ranks) != len(lines):
        raise ValueError(f"Got {len(line_ranks)} ranks for {len(lines)} lines")

    by_rank = sorted(range(len(lines)), key=lambda i: line_ranks[i])

    if not blocks:
        if not lines:
            return []
        return [
            TextRegion(
                bbox=BoundingBox.union(line.bbox for line in lines),
                category=FALLBACK_CATEGORY,
                lines=[lines[i] for i in by_rank],
                reading_order=0,
            )
        ]

    members: List[List[int]] = [[] for _ in blocks]
    dropped = 0
    for i in by_rank:
        idx, overlap = _best_block(lines[i], blocks)
        if idx is not None and overlap > overlap_threshold:
            members[idx].append(i)
        else:
            dropped += 1

    kept = [idx for idx, assigned in enumerate(members) if assigned]
    if dropped:
        logger.debug("Dropped %d lines outside every block", dropped)

    block_ranks = solve_reading_order([blocks[idx].bbox for idx in kept])
    regions = [
        TextRegion(
            bbox=blocks[idx].bbox,
            category=blocks[idx].category,
            lines=[lines[i] for i in members[idx]],
            reading_order=rank,
        )
        for idx, rank in zip(kept, block_ranks)
    ]
    regions.sort(key=lambda region: region.reading_order)
    return regions


__all__ = ["FALLBACK_CATEGORY", "assemble_regions"]
