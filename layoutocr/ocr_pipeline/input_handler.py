# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Input handling utilities for preparing pages for the OCR pipeline."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import numpy as np
from PIL import Image, ImageSequence

from .interfaces import InputHandler
from .models import PageImage

logger = logging.getLogger(__name__)


def image_to_page(image: Image.Image, page_number: int = 1) -> PageImage:
    return PageImage(pixels=np.asarray(image.convert("RGBA")), page_number=page_number)


class BasicInputHandler(InputHandler):
    """Loads image files with Pillow.

    * Each path becomes one page, in the order given.
    * Multi-frame files (TIFF, animated formats) contribute one page per frame.
    * PDFs are rejected: rasterize them first and pass the page images.
    """

    def load(self, paths: List[str]) -> List[PageImage]:
        if not paths:
            raise ValueError("BasicInputHandler requires at least one image path")

        pages: List[PageImage] = []
        for raw in paths:
            path = Path(raw)
            if path.suffix.lower() == ".pdf":
                raise ValueError(f"{path}: PDF input is not supported; rasterize the pages to images first")
            with Image.open(path.as_posix()) as image:
                for frame in ImageSequence.Iterator(image):
                    pages.append(image_to_page(frame, page_number=len(pages) + 1))
            logger.debug("Loaded %s (%d pages so far)", path, len(pages))
        return pages


__all__ = ["BasicInputHandler", "image_to_page"]
