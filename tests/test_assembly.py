from layoutocr.ocr_pipeline import BoundingBox, Detection, RecognizedLine, assemble_regions


def _line(text, x1, y1, x2, y2):
    return RecognizedLine(text=text, bbox=BoundingBox(x1=x1, y1=y1, x2=x2, y2=y2), confidence=0.9)


def _block(category, x1, y1, x2, y2):
    return Detection(
        bbox=BoundingBox(x1=x1, y1=y1, x2=x2, y2=y2),
        category_index=0,
        category=category,
        score=0.9,
    )


def test_no_blocks_and_no_lines():
    assert assemble_regions([], [], []) == []


def test_no_blocks_makes_single_body_region():
    lines = [_line("second", 0, 20, 50, 30), _line("first", 10, 0, 80, 10)]

    regions = assemble_regions([], lines, [1, 0])

    assert len(regions) == 1
    region = regions[0]
    assert region.category == "body"
    assert region.reading_order == 0
    assert [line.text for line in region.lines] == ["first", "second"]
    assert region.bbox == BoundingBox(x1=0, y1=0, x2=80, y2=30)


def test_lines_grouped_into_best_block_and_blocks_ordered():
    left = _block("body", 0, 0, 100, 100)
    right = _block("title", 200, 0, 300, 100)
    unused = _block("figure", 500, 500, 600, 600)
    lines = [
        _line("l1", 10, 10, 90, 20),
        _line("r1", 210, 10, 290, 20),
        _line("l2", 10, 40, 90, 50),
        _line("stray", 400, 400, 450, 410),
    ]

    regions = assemble_regions([right, unused, left], lines, [0, 2, 1, 3])

    assert [region.category for region in regions] == ["body", "title"]
    assert [region.reading_order for region in regions] == [0, 1]
    assert [line.text for line in regions[0].lines] == ["l1", "l2"]
    assert [line.text for line in regions[1].lines] == ["r1"]


def test_overlap_must_exceed_threshold():
    block = _block("body", 0, 0, 100, 100)
    half_inside = _line("half", 80, 10, 120, 20)
    quarter_inside = _line("quarter", 90, 40, 130, 50)

    regions = assemble_regions([block], [half_inside, quarter_inside], [0, 1])

    assert [line.text for line in regions[0].lines] == ["half"]


def test_threshold_is_configurable():
    block = _block("body", 0, 0, 100, 100)
    quarter_inside = _line("quarter", 90, 40, 130, 50)

    assert assemble_regions([block], [quarter_inside], [0], overlap_threshold=0.5) == []
    assert len(assemble_regions([block], [quarter_inside], [0], overlap_threshold=0.2)) == 1


def test_ties_go_to_first_block():
    first = _block("body", 0, 0, 100, 100)
    second = _block("caption", 0, 0, 100, 100)

    regions = assemble_regions([first, second], [_line("x", 10, 10, 50, 20)], [0])

    assert len(regions) == 1
    assert regions[0].category == "body"
