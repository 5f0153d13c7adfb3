# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Serialization of page results to plain text, JSON and PAGE XML."""
from __future__ import annotations

import json
from typing import Callable, Dict, List, Sequence, Union

from .models import BoundingBox, DocumentResult, PageResult, TextRegion

PAGE_BREAK = "\n\n--- Page Break ---\n\n"
PAGE_XML_NAMESPACE = "http://schema.primaresearch.org/PAGE/gts/pagecontent/2013-07-15"

ResultLike = Union[DocumentResult, PageResult, Sequence[PageResult]]

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def _pages(result: ResultLike) -> List[PageResult]:
    if isinstance(result, DocumentResult):
        return list(result.pages)
    if isinstance(result, PageResult):
        return [result]
    return list(result)


def _ordered(regions: Sequence[TextRegion]) -> List[TextRegion]:
    return sorted(regions, key=lambda region: region.reading_order)


def escape_xml(text: str) -> str:
    for raw, entity in _XML_ESCAPES:
        text = text.replace(raw, entity)
    return text


def _num(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _points(bbox: BoundingBox) -> str:
    x1, y1, x2, y2 = (_num(v) for v in bbox.as_tuple())
    return f"{x1},{y1} {x2},{y1} {x2},{y2} {x1},{y2}"


def format_as_text(result: ResultLike) -> str:
    """Lines of every region in reading order; pages separated by a page-break marker."""
    page_texts = []
    for page in _pages(result):
        page_texts.append(
            "\n".join("\n".join(line.text for line in region.lines) for region in _ordered(page.regions))
        )
    return PAGE_BREAK.join(page_texts)


def format_as_json(result: ResultLike) -> str:
    if isinstance(result, DocumentResult):
        payload = result.model_dump(mode="json")
    else:
        payload = {"pages": [page.model_dump(mode="json") for page in _pages(result)]}
    return json.dumps(payload, ensure_ascii=False, indent=2)


def format_as_xml(result: ResultLike) -> str:
    """PAGE XML (2013-07-15 schema) with regions in reading order."""
    out = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<PcGts xmlns="{PAGE_XML_NAMESPACE}">',
    ]
    for page_number, page in enumerate(_pages(result), start=1):
        out.append(f'  <Page imageWidth="{page.width}" imageHeight="{page.height}" pageNumber="{page_number}">')
        for region in _ordered(page.regions):
            out.append(
                f'    <TextRegion type="{escape_xml(region.category)}" readingOrder="{region.reading_order}">'
            )
            out.append(f'      <Coords points="{_points(region.bbox)}"/>')
            for line in region.lines:
                out.append("      <TextLine>")
                out.append(f'        <Coords points="{_points(line.bbox)}"/>')
                out.append(f'        <TextEquiv conf="{line.confidence:.4f}">')
                out.append(f"          <Unicode>{escape_xml(line.text)}</Unicode>")
                out.append("        </TextEquiv>")
                out.append("      </TextLine>")
            out.append("    </TextRegion>")
        out.append("  </Page>")
    out.append("</PcGts>")
    return "\n".join(out)


FORMATTERS: Dict[str, Callable[[ResultLike], str]] = {
    "text": format_as_text,
    "json": format_as_json,
    "xml": format_as_xml,
}


def export(result: ResultLike, fmt: str) -> str:
    try:
        formatter = FORMATTERS[fmt]
    except KeyError:
        raise ValueError(f"Unknown export format {fmt!r}; expected one of {', '.join(FORMATTERS)}") from None
    return formatter(result)


__all__ = [
    "FORMATTERS",
    "PAGE_BREAK",
    "PAGE_XML_NAMESPACE",
    "escape_xml",
    "export",
    "format_as_json",
    "format_as_text",
    "format_as_xml",
]
