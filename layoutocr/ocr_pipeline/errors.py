# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Exception types raised by the OCR pipeline."""
from __future__ import annotations

from typing import Optional


class OcrPipelineError(RuntimeError):
    """Base class for failures that abort a page."""


class ConfigurationError(OcrPipelineError):
    """Raised when executor outputs or pipeline resources do not match the expected contract."""


class InferenceError(OcrPipelineError):
    """Raised when the inference executor rejects a load or run request."""

    def __init__(self, message: str, model_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.model_id = model_id


class PageProcessingError(OcrPipelineError):
    """Wraps the failure of a single page inside a multi-page run."""

    def __init__(self, page_index: int, cause: BaseException) -> None:
        super().__init__(f"Page {page_index + 1} failed: {cause}")
        self.page_index = page_index
        self.cause = cause


__all__ = ["ConfigurationError", "InferenceError", "OcrPipelineError", "PageProcessingError"]
