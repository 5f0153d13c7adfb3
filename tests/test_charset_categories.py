import pytest

from layoutocr.ocr_pipeline import BLOCK_CATEGORIES, CATEGORY_NAMES, DEFAULT_CHARSET, TEXT_LINE_CATEGORIES
from layoutocr.ocr_pipeline import ConfigurationError, category_name, load_charset
from layoutocr.ocr_pipeline.charset import resolve_charset


def test_default_charset_is_printable_ascii():
    assert DEFAULT_CHARSET[0] == " "
    assert len(DEFAULT_CHARSET) == 95
    assert "A" in DEFAULT_CHARSET and "z" in DEFAULT_CHARSET and "9" in DEFAULT_CHARSET


def test_load_charset_one_symbol_per_line(tmp_path):
    path = tmp_path / "charset.txt"
    path.write_text("a\nb\n \nc\n", encoding="utf-8")

    assert load_charset(path) == ("a", "b", " ", "c")


def test_load_charset_single_line(tmp_path):
    path = tmp_path / "charset.txt"
    path.write_text("あいう\n", encoding="utf-8")

    assert load_charset(path) == ("あ", "い", "う")


def test_load_charset_rejects_empty_file(tmp_path):
    path = tmp_path / "charset.txt"
    path.write_text("\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_charset(path)


def test_resolve_charset_defaults():
    assert resolve_charset(None) is DEFAULT_CHARSET


def test_category_table():
    assert len(CATEGORY_NAMES) == 17
    assert category_name(0) == "body"
    assert category_name(16) == "title"
    assert category_name(17) == "other"
    assert category_name(-1) == "other"


def test_line_and_block_sets_partition_categories():
    assert not TEXT_LINE_CATEGORIES & BLOCK_CATEGORIES
    assert TEXT_LINE_CATEGORIES | BLOCK_CATEGORIES == set(range(17))


def test_detector_class_names_line_up_with_categories():
    from layoutocr.ocr_pipeline.categories import DETECTOR_CLASS_NAMES

    assert len(DETECTOR_CLASS_NAMES) == len(CATEGORY_NAMES)
    for index in TEXT_LINE_CATEGORIES - {0}:
        assert DETECTOR_CLASS_NAMES[index].startswith("line_")
