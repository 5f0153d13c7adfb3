import json

import pytest

from layoutocr.ocr_pipeline import (
    BoundingBox,
    DocumentResult,
    PageResult,
    RecognizedLine,
    TextRegion,
    export,
    format_as_json,
    format_as_text,
    format_as_xml,
)
from layoutocr.ocr_pipeline.exporters import escape_xml


def _page(*regions, width=200, height=100):
    return PageResult(width=width, height=height, regions=list(regions), detections=[])


def _region(order, *texts, category="body"):
    lines = [
        RecognizedLine(text=text, bbox=BoundingBox(x1=20, y1=40 + 20 * i, x2=180, y2=60 + 20 * i), confidence=0.95)
        for i, text in enumerate(texts)
    ]
    return TextRegion(
        bbox=BoundingBox(x1=10, y1=30, x2=190, y2=90.5),
        category=category,
        lines=lines,
        reading_order=order,
    )


def test_text_follows_reading_order_and_breaks_pages():
    first = _page(_region(1, "c"), _region(0, "a", "b"))
    second = _page(_region(0, "d"))

    text = format_as_text(DocumentResult(pages=[first, second]))

    assert text == "a\nb\nc\n\n--- Page Break ---\n\nd"


def test_text_of_empty_page_is_empty():
    assert format_as_text(_page()) == ""


def test_json_round_trips_structure():
    payload = json.loads(format_as_json([_page(_region(0, "テスト"))]))

    assert payload["pages"][0]["regions"][0]["lines"][0]["text"] == "テスト"
    assert payload["pages"][0]["width"] == 200


def test_json_of_document_includes_errors():
    payload = json.loads(format_as_json(DocumentResult(pages=[_page()])))
    assert payload["errors"] == []
    assert "テスト" in format_as_json(_page(_region(0, "テスト")))


def test_xml_page_structure():
    xml = format_as_xml([_page(_region(0, "テスト", category="title"))])

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')
    assert '<PcGts xmlns="http://schema.primaresearch.org/PAGE/gts/pagecontent/2013-07-15">' in xml
    assert '<Page imageWidth="200" imageHeight="100" pageNumber="1">' in xml
    assert '<TextRegion type="title" readingOrder="0">' in xml
    assert '<Coords points="10,30 190,30 190,90.5 10,90.5"/>' in xml
    assert '<Coords points="20,40 180,40 180,60 20,60"/>' in xml
    assert '<TextEquiv conf="0.9500">' in xml
    assert "<Unicode>テスト</Unicode>" in xml
    assert xml.endswith("</PcGts>")


def test_xml_escapes_special_characters():
    xml = format_as_xml(_page(_region(0, '<tag>&"value"</tag>')))

    assert "&lt;tag&gt;&amp;&quot;value&quot;&lt;/tag&gt;" in xml


def test_escape_xml_handles_apostrophes_once():
    assert escape_xml("it's & <ok>") == "it&apos;s &amp; &lt;ok&gt;"


def test_xml_numbers_pages():
    xml = format_as_xml([_page(), _page()])
    assert 'pageNumber="1"' in xml
    assert 'pageNumber="2"' in xml


def test_export_dispatch():
    page = _page(_region(0, "a"))
    assert export(page, "text") == "a"
    with pytest.raises(ValueError):
        export(page, "docx")
