# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Data models for the layout-detection + recognition OCR pipeline.

Every stage exchanges pydantic models so components can be swapped or mocked
without changing data exchange formats. Results are frozen: once a stage has
produced a :class:`PageResult` it is treated as read-only by exporters and
callers.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BoundingBox(BaseModel):
    """Axis-aligned box in pixel coordinates (``x1, y1`` top-left, ``x2, y2`` bottom-right).

    Zero-width or zero-height boxes are representable so that degenerate
    detector output can be carried around, but callers must check
    :attr:`is_empty` before cropping or measuring overlap against them.
    """

    model_config = ConfigDict(frozen=True)

    x1: float
    y1: float
    x2: float
    y2: float

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(
                f"BoundingBox requires x2 >= x1 and y2 >= y1, got ({self.x1}, {self.y1}, {self.x2}, {self.y2})"
            )
        return self

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    def intersection_area(self, other: "BoundingBox") -> float:
        ix1 = max(self.x1, other.x1)
        iy1 = max(self.y1, other.y1)
        ix2 = min(self.x2, other.x2)
        iy2 = min(self.y2, other.y2)
        if ix2 <= ix1 or iy2 <= iy1:
            return 0.0
        return (ix2 - ix1) * (iy2 - iy1)

    @classmethod
    def union(cls, boxes: Iterable["BoundingBox"]) -> "BoundingBox":
        items = list(boxes)
        if not items:
            raise ValueError("BoundingBox.union requires at least one box")
        return cls(
            x1=min(b.x1 for b in items),
            y1=min(b.y1 for b in items),
            x2=max(b.x2 for b in items),
            y2=max(b.y2 for b in items),
        )


class ModelTier(str, Enum):
    """Recognizer capacity tiers, smallest first."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


RECOGNITION_HEIGHT = 16

TIER_WIDTHS: Dict[ModelTier, int] = {
    ModelTier.SMALL: 256,
    ModelTier.MEDIUM: 384,
    ModelTier.LARGE: 768,
}


class BoxFormat(str, Enum):
    """Coordinate system of the raw detector boxes."""

    NORMALIZED = "normalized"
    INPUT_PIXELS = "input_pixels"


class DecodeMode(str, Enum):
    CANONICAL = "canonical"
    DEDUP = "dedup"


class PageImage(BaseModel):
    """One page as an ``(height, width, 4)`` RGBA ``uint8`` array.

    RGB arrays are accepted and receive an opaque alpha channel.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pixels: np.ndarray
    page_number: int = Field(1, ge=1)

    @field_validator("pixels", mode="before")
    @classmethod
    def _coerce_rgba(cls, value: object) -> np.ndarray:
        arr = np.asarray(value)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"PageImage expects an HxWx3 or HxWx4 array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            if not np.issubdtype(arr.dtype, np.integer):
                raise ValueError(f"PageImage expects 8-bit integer pixels, got dtype {arr.dtype}")
            if arr.size and (arr.min() < 0 or arr.max() > 255):
                raise ValueError("PageImage pixel values must lie in 0..255")
            arr = arr.astype(np.uint8)
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=2)
        return arr

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])


class ScaleMetadata(BaseModel):
    """What is needed to map detector-space boxes back to the original page."""

    model_config = ConfigDict(frozen=True)

    original_height: int = Field(..., ge=0)
    original_width: int = Field(..., ge=0)
    padded_size: int = Field(..., ge=0)
    input_size: int = Field(..., ge=1)

    @property
    def input_scale(self) -> float:
        """Factor from model-input pixels to original pixels."""
        return self.padded_size / self.input_size


class Detection(BaseModel):
    """A layout detector box that survived filtering and suppression."""

    model_config = ConfigDict(frozen=True)

    bbox: BoundingBox
    category_index: int
    category: str
    score: float
    predicted_char_count: Optional[float] = None


class DecodedPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    char_index: int
    probability: float = Field(..., ge=0.0, le=1.0)


class DecodeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    positions: List[DecodedPosition] = Field(default_factory=list)


class RecognizedLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    bbox: BoundingBox
    confidence: float = Field(..., ge=0.0, le=1.0)


class TextRegion(BaseModel):
    """A block-level region with its lines already in reading order."""

    model_config = ConfigDict(frozen=True)

    bbox: BoundingBox
    category: str
    lines: List[RecognizedLine]
    reading_order: int = Field(..., ge=0)


class PageResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    regions: List[TextRegion]
    detections: List[Detection]


class PageError(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_index: int = Field(..., ge=0)
    message: str


class DocumentResult(BaseModel):
    """Pages that completed plus the pages that failed, in page order."""

    model_config = ConfigDict(frozen=True)

    pages: List[PageResult] = Field(default_factory=list)
    errors: List[PageError] = Field(default_factory=list)


class ProgressStage(str, Enum):
    LOADING_MODEL = "loading-model"
    DETECTING_LAYOUT = "detecting-layout"
    RECOGNIZING_TEXT = "recognizing-text"
    ORDERING_TEXT = "ordering-text"
    COMPLETE = "complete"


class ProgressInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: ProgressStage
    fraction: float = Field(..., ge=0.0, le=1.0)
    message: str
    detail: Optional[str] = None


def _default_recognizer_ids() -> Dict[ModelTier, str]:
    return {tier: f"parseq-{tier.value}" for tier in ModelTier}


def _default_recognizer_urls() -> Dict[ModelTier, str]:
    return {
        ModelTier.SMALL: "models/parseq-ndl-16x256-30-tiny-192epoch-tegaki3.onnx",
        ModelTier.MEDIUM: "models/parseq-ndl-16x384-50-tiny-146epoch-tegaki2.onnx",
        ModelTier.LARGE: "models/parseq-ndl-16x768-100-tiny-165epoch-tegaki2.onnx",
    }


class PipelineConfig(BaseModel):
    """Thresholds and model identifiers for one pipeline run.

    The numeric defaults are empirically chosen values, exposed here so they
    can be tuned without touching the algorithms.
    """

    model_config = ConfigDict(frozen=True)

    det_conf_threshold: float = Field(0.3, ge=0.0, le=1.0)
    det_iou_threshold: float = Field(0.5, ge=0.0, le=1.0)
    overlap_threshold: float = Field(0.3, ge=0.0, le=1.0)
    min_box_size: float = Field(10.0, ge=0.0)
    vertical_expand_ratio: float = Field(0.02, ge=0.0)
    detection_input_size: int = Field(1024, ge=1)
    box_format: BoxFormat = BoxFormat.NORMALIZED

    escalate_small_above: int = Field(25, ge=0)
    escalate_medium_above: int = Field(45, ge=0)
    decode_mode: DecodeMode = DecodeMode.CANONICAL
    dedup_confidence: float = Field(1.0, ge=0.0, le=1.0)

    # 1 = sequential, 0 = one worker per available core (bounded), N = N workers
    recognition_workers: int = Field(1, ge=0)

    detector_model_id: str = "deim"
    detector_model_url: str = "models/deim-s-1024x1024.onnx"
    recognizer_model_ids: Dict[ModelTier, str] = Field(default_factory=_default_recognizer_ids)
    recognizer_model_urls: Dict[ModelTier, str] = Field(default_factory=_default_recognizer_urls)
    recognizer_output_name: Optional[str] = None
    charset_path: Optional[str] = None

    @model_validator(mode="after")
    def _check_tiers(self) -> "PipelineConfig":
        missing = [tier.value for tier in ModelTier if tier not in self.recognizer_model_ids]
        if missing:
            raise ValueError(f"recognizer_model_ids is missing tiers: {', '.join(missing)}")
        return self


__all__ = [
    "BoundingBox",
    "BoxFormat",
    "DecodeMode",
    "DecodeResult",
    "DecodedPosition",
    "Detection",
    "DocumentResult",
    "ModelTier",
    "PageError",
    "PageImage",
    "PageResult",
    "PipelineConfig",
    "ProgressInfo",
    "ProgressStage",
    "RECOGNITION_HEIGHT",
    "RecognizedLine",
    "ScaleMetadata",
    "TIER_WIDTHS",
    "TextRegion",
]
