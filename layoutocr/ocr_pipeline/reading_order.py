# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""XY-Cut reading order.

Boxes are rasterized onto a coarse occupancy grid whose resolution depends
only on the number of boxes. The grid is then cut recursively along the
widest run of its emptiest rows or columns, boxes are attached to the leaf
cells they overlap most, and a pre-order walk of the resulting tree yields
the reading order. Leaves dominated by tall boxes are read as vertical text
(right-to-left columns); an X-cut whose content is vertical has its children
visited right to left as well.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence, Tuple, Union

import numpy as np

from .models import BoundingBox

BoxLike = Union[BoundingBox, Sequence[float]]
Rect = Tuple[int, int, int, int]


@dataclass
class _BlockNode:
    x0: int
    y0: int
    x1: int
    y1: int
    children: List["_BlockNode"] = field(default_factory=list)
    line_idx: List[int] = field(default_factory=list)
    num_lines: int = 0
    num_vertical_lines: int = 0

    @property
    def rect(self) -> Rect:
        return (self.x0, self.y0, self.x1, self.y1)

    def is_x_split(self) -> bool:
        return all(child.y0 == self.y0 and child.y1 == self.y1 for child in self.children)

    def is_vertical(self) -> bool:
        return self.num_lines > 0 and self.num_vertical_lines * 2 >= self.num_lines


def _iter_preorder(root: _BlockNode) -> Iterator[_BlockNode]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _as_array(boxes: Sequence[BoxLike]) -> np.ndarray:
    rows = []
    for box in boxes:
        if isinstance(box, BoundingBox):
            rows.append(box.as_tuple())
        else:
            x1, y1, x2, y2 = (float(v) for v in box)
            rows.append((min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)))
    return np.asarray(rows, dtype=np.float64).reshape(-1, 4)


def optimal_grid(num_boxes: int) -> float:
    return 100.0 * math.sqrt(num_boxes)


def normalize_boxes(boxes: np.ndarray, grid: float) -> np.ndarray:
    """Map pixel boxes onto integer grid cells, keeping the page aspect ratio."""
    x_min = boxes[:, 0].min()
    y_min = boxes[:, 1].min()
    w_page = boxes[:, 2].max() - x_min
    h_page = boxes[:, 3].max() - y_min
    offset = np.array([x_min, y_min, x_min, y_min])

    if w_page == 0 or h_page == 0:
        return np.maximum(0, np.floor(boxes - offset)).astype(np.int64)

    x_grid = grid if w_page < h_page else grid * (w_page / h_page)
    y_grid = grid if h_page < w_page else grid * (h_page / w_page)

    shifted = boxes - offset
    out = np.empty_like(shifted)
    out[:, [0, 2]] = shifted[:, [0, 2]] * x_grid / w_page
    out[:, [1, 3]] = shifted[:, [1, 3]] * y_grid / h_page
    return np.maximum(0, np.floor(out)).astype(np.int64)


def make_mesh_table(grid_boxes: np.ndarray) -> np.ndarray:
    """Occupancy grid: 1 wherever any box covers the cell."""
    x_max = int(grid_boxes[:, 2].max()) + 1
    y_max = int(grid_boxes[:, 3].max()) + 1
    table = np.zeros((y_max, x_max), dtype=np.uint8)
    for x0, y0, x1, y1 in grid_boxes.tolist():
        table[y0:y1, x0:x1] = 1
    return table


def _min_span(hist: np.ndarray) -> Tuple[int, int, float]:
    """Longest run of the histogram minimum as ``(start, end, score)``.

    ``score`` is ``-min/max`` (0 for an empty axis): the closer to zero, the
    cleaner the gap.
    """
    if hist.shape[0] <= 1:
        return 0, 1, 0.0

    min_val = int(hist.min())
    max_val = int(hist.max())
    padded = np.concatenate(([0], (hist == min_val).astype(np.int8), [0]))
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)
    if starts.shape[0] == 0:
        return 0, hist.shape[0], 0.0

    best = int(np.argmax(ends - starts))
    score = -min_val / max_val if max_val > 0 else 0.0
    return int(starts[best]), int(ends[best]), score


def _child_rects(table: np.ndarray, node: _BlockNode) -> List[Rect]:
    x0, y0, x1, y1 = node.rect
    region = table[y0:y1, x0:x1]
    x_start, x_stop, x_score = _min_span(region.sum(axis=0, dtype=np.int64))
    y_start, y_stop, y_score = _min_span(region.sum(axis=1, dtype=np.int64))
    x_beg, x_end = x_start + x0, x_stop + x0
    y_beg, y_end = y_start + y0, y_stop + y0

    if x0 == x_beg and x1 == x_end and y0 == y_beg and y1 == y_end:
        return []

    if y_score < x_score:
        split_x = True
    elif x_score < y_score:
        split_x = False
    else:
        split_x = not (x_end - x_beg) < (y_end - y_beg)

    if split_x:
        candidates = [(x0, y0, x_beg, y1), (x_beg, y0, x_end, y1), (x_end, y0, x1, y1)]
    else:
        candidates = [(x0, y0, x1, y_beg), (x0, y_beg, x1, y_end), (x0, y_end, x1, y1)]

    return [
        rect
        for rect in candidates
        if rect[0] < rect[2] and rect[1] < rect[3] and rect != node.rect
    ]


def build_partition_tree(table: np.ndarray) -> _BlockNode:
    height, width = table.shape
    root = _BlockNode(0, 0, width, height)
    stack = [root]
    while stack:
        node = stack.pop()
        node.children = [_BlockNode(*rect) for rect in _child_rects(table, node)]
        stack.extend(node.children)
    return root


def _assign_boxes(root: _BlockNode, grid_boxes: np.ndarray) -> None:
    leaves = [node for node in _iter_preorder(root) if not node.children]
    leaf_rects = np.asarray([leaf.rect for leaf in leaves], dtype=np.int64)

    for i, (bx0, by0, bx1, by1) in enumerate(grid_boxes.tolist()):
        inter_w = np.maximum(0, np.minimum(bx1, leaf_rects[:, 2]) - np.maximum(bx0, leaf_rects[:, 0]) + 1)
        inter_h = np.maximum(0, np.minimum(by1, leaf_rects[:, 3]) - np.maximum(by0, leaf_rects[:, 1]) + 1)
        box_area = (bx1 - bx0 + 1) * (by1 - by0 + 1)
        overlap = (inter_w * inter_h) / box_area
        leaves[int(np.argmax(overlap))].line_idx.append(i)


def _sort_nodes(root: _BlockNode, grid_boxes: np.ndarray) -> None:
    widths = grid_boxes[:, 2] - grid_boxes[:, 0]
    heights = grid_boxes[:, 3] - grid_boxes[:, 1]

    # reversed pre-order visits every child before its parent
    for node in reversed(list(_iter_preorder(root))):
        if node.line_idx:
            node.num_lines = len(node.line_idx)
            node.num_vertical_lines = sum(1 for i in node.line_idx if widths[i] < heights[i])
            if node.num_lines > 1:
                if node.is_vertical():
                    node.line_idx.sort(key=lambda i: (-grid_boxes[i, 0], grid_boxes[i, 1]))
                else:
                    node.line_idx.sort(key=lambda i: (grid_boxes[i, 1], grid_boxes[i, 0]))
        else:
            node.num_lines = sum(child.num_lines for child in node.children)
            node.num_vertical_lines = sum(child.num_vertical_lines for child in node.children)
            if node.children and node.is_x_split() and node.is_vertical():
                node.children.reverse()


def _rank(root: _BlockNode, count: int) -> List[int]:
    ranks = [-1] * count
    rank = 0
    for node in _iter_preorder(root):
        for i in node.line_idx:
            ranks[i] = rank
            rank += 1
    return ranks


def solve_reading_order(boxes: Sequence[BoxLike]) -> List[int]:
    """Return ``rank`` where ``rank[i]`` is the reading position of ``boxes[i]``.

    The result is always a permutation of ``range(len(boxes))``.
    """
    if len(boxes) == 0:
        return []
    if len(boxes) == 1:
        return [0]

    pixel_boxes = _as_array(boxes)
    grid_boxes = normalize_boxes(pixel_boxes, optimal_grid(len(boxes)))
    table = make_mesh_table(grid_boxes)

    root = build_partition_tree(table)
    _assign_boxes(root, grid_boxes)
    _sort_nodes(root, grid_boxes)
    return _rank(root, len(boxes))


def reading_sequence(ranks: Sequence[int]) -> List[int]:
    """Invert a rank list into box indices in reading order."""
    order = [0] * len(ranks)
    for index, rank in enumerate(ranks):
        order[rank] = index
    return order


__all__ = [
    "build_partition_tree",
    "make_mesh_table",
    "normalize_boxes",
    "optimal_grid",
    "reading_sequence",
    "solve_reading_order",
]
