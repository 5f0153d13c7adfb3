import numpy as np
import pytest

from layoutocr.ocr_pipeline import BoundingBox, solve_reading_order
from layoutocr.ocr_pipeline.reading_order import (
    _BlockNode,
    _sort_nodes,
    build_partition_tree,
    make_mesh_table,
    normalize_boxes,
    optimal_grid,
    reading_sequence,
)


def test_empty_and_single_box():
    assert solve_reading_order([]) == []
    assert solve_reading_order([(5, 5, 10, 10)]) == [0]


def test_stacked_horizontal_lines_read_top_to_bottom():
    boxes = [(0, 0, 100, 10), (0, 20, 100, 30), (0, 40, 100, 50)]
    assert solve_reading_order(boxes) == [0, 1, 2]


def test_rank_follows_position_not_input_order():
    boxes = [(0, 40, 100, 50), (0, 0, 100, 10), (0, 20, 100, 30)]
    assert solve_reading_order(boxes) == [2, 0, 1]


def test_vertical_columns_read_right_to_left():
    boxes = [(0, 0, 10, 100), (20, 0, 30, 100), (40, 0, 50, 100)]
    assert solve_reading_order(boxes) == [2, 1, 0]


def test_two_column_layout_reads_left_column_first():
    boxes = [
        (0, 0, 90, 10),  # left, top
        (110, 0, 200, 10),  # right, top
        (0, 20, 90, 30),  # left, bottom
        (110, 20, 200, 30),  # right, bottom
    ]
    ranks = solve_reading_order(boxes)
    assert reading_sequence(ranks) == [0, 2, 1, 3]


def test_accepts_bounding_boxes():
    boxes = [BoundingBox(x1=0, y1=20, x2=100, y2=30), BoundingBox(x1=0, y1=0, x2=100, y2=10)]
    assert solve_reading_order(boxes) == [1, 0]


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_result_is_always_a_permutation(seed):
    rng = np.random.default_rng(seed)
    count = int(rng.integers(2, 60))
    x1 = rng.uniform(0, 900, count)
    y1 = rng.uniform(0, 1200, count)
    boxes = list(zip(x1, y1, x1 + rng.uniform(1, 200, count), y1 + rng.uniform(1, 200, count)))

    ranks = solve_reading_order(boxes)

    assert sorted(ranks) == list(range(count))


def test_degenerate_and_inverted_boxes_still_rank():
    flat = [(0, 5, 10, 5), (20, 5, 30, 5)]
    assert solve_reading_order(flat) == [0, 1]

    inverted = [(10, 10, 0, 0), (30, 10, 20, 0), (10, 10, 10, 10)]
    assert sorted(solve_reading_order(inverted)) == [0, 1, 2]


def test_duplicate_boxes_rank_in_input_order():
    boxes = [(0, 0, 50, 10)] * 3
    assert solve_reading_order(boxes) == [0, 1, 2]


def test_normalize_keeps_aspect_ratio():
    boxes = np.array([[0, 0, 200, 10], [0, 90, 200, 100]], dtype=np.float64)

    grid_boxes = normalize_boxes(boxes, optimal_grid(2))

    grid = optimal_grid(2)
    assert grid_boxes[:, 0].min() == 0
    assert grid_boxes[:, 2].max() == int(grid * 2)
    assert grid_boxes[:, 3].max() == int(grid)


def test_partition_tree_splits_on_gap():
    table = make_mesh_table(np.array([[0, 0, 4, 2], [6, 0, 10, 2]]))

    root = build_partition_tree(table)

    assert table.shape == (3, 11)
    assert [child.rect for child in root.children][:2] == [(0, 0, 4, 3), (4, 0, 6, 3)]


def test_leaf_with_half_vertical_lines_reads_right_to_left():
    grid_boxes = np.array([[0, 0, 10, 2], [20, 0, 22, 10]])  # wide, tall
    leaf = _BlockNode(0, 0, 30, 12, line_idx=[0, 1])

    _sort_nodes(leaf, grid_boxes)

    assert (leaf.num_lines, leaf.num_vertical_lines) == (2, 1)
    assert leaf.is_vertical()
    assert leaf.line_idx == [1, 0]


def test_leaf_with_minority_vertical_lines_reads_top_to_bottom():
    grid_boxes = np.array([[0, 5, 10, 7], [20, 0, 22, 10], [0, 8, 10, 10]])
    leaf = _BlockNode(0, 0, 30, 12, line_idx=[2, 1, 0])

    _sort_nodes(leaf, grid_boxes)

    assert not leaf.is_vertical()
    assert leaf.line_idx == [1, 0, 2]
