# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Image normalization for the layout detector and the line recognizers.

All helpers operate on ``(height, width, channels)`` ``uint8`` arrays holding
RGBA pixels and return new arrays; inputs are never modified in place.
"""
from __future__ import annotations

import math
from typing import Sequence, Tuple, Union

import numpy as np

from .models import RECOGNITION_HEIGHT, TIER_WIDTHS, BoundingBox, ModelTier, PageImage, ScaleMetadata

DETECTION_INPUT_SIZE = 1024

IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float64)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float64)

PixelSource = Union[PageImage, np.ndarray]
BoxLike = Union[BoundingBox, Sequence[float]]


def _as_pixels(image: PixelSource) -> np.ndarray:
    if isinstance(image, PageImage):
        return image.pixels
    arr = np.asarray(image)
    if arr.ndim != 3:
        raise ValueError(f"Expected an HxWxC pixel array, got shape {arr.shape}")
    return arr


def pad_to_square(pixels: np.ndarray) -> np.ndarray:
    """Zero-pad to ``max(h, w)`` on both sides, keeping the image at the top-left corner."""
    height, width = pixels.shape[:2]
    size = max(height, width)
    if height == size and width == size:
        return pixels
    padded = np.zeros((size, size, pixels.shape[2]), dtype=pixels.dtype)
    padded[:height, :width] = pixels
    return padded


def resize_bilinear(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
    """Bilinear resize sampling source position ``dst * src_len / dst_len`` (no half-pixel shift)."""
    src_h, src_w = pixels.shape[:2]
    if src_w == width and src_h == height:
        return pixels
    if src_w <= 0 or src_h <= 0:
        raise ValueError("Cannot resize an empty image")

    src_x = np.arange(width, dtype=np.float64) * (src_w / width)
    src_y = np.arange(height, dtype=np.float64) * (src_h / height)
    x0 = np.floor(src_x).astype(np.int64)
    y0 = np.floor(src_y).astype(np.int64)
    x1 = np.minimum(x0 + 1, src_w - 1)
    y1 = np.minimum(y0 + 1, src_h - 1)
    x_frac = (src_x - x0)[None, :, None]
    y_frac = (src_y - y0)[:, None, None]

    rows_top = pixels[y0]
    rows_bottom = pixels[y1]
    top_left = rows_top[:, x0].astype(np.float64)
    top_right = rows_top[:, x1].astype(np.float64)
    bottom_left = rows_bottom[:, x0].astype(np.float64)
    bottom_right = rows_bottom[:, x1].astype(np.float64)

    top = top_left + (top_right - top_left) * x_frac
    bottom = bottom_left + (bottom_right - bottom_left) * x_frac
    out = top + (bottom - top) * y_frac
    return np.clip(np.floor(out + 0.5), 0, 255).astype(np.uint8)


def rotate90_counter_clockwise(pixels: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(np.rot90(pixels, k=1, axes=(0, 1)))


def normalize_imagenet(pixels: np.ndarray) -> np.ndarray:
    """``(p/255 - mean) / std`` per RGB channel; alpha is dropped. Returns HWC float32."""
    rgb = pixels[..., :3].astype(np.float64) / 255.0
    return ((rgb - IMAGENET_MEAN) / IMAGENET_STD).astype(np.float32)


def normalize_minus_one_to_one(pixels: np.ndarray) -> np.ndarray:
    """``p/255 * 2 - 1`` per RGB channel; alpha is dropped. Returns HWC float32."""
    rgb = pixels[..., :3].astype(np.float64)
    return (rgb / 255.0 * 2.0 - 1.0).astype(np.float32)


def hwc_to_chw(values: np.ndarray) -> np.ndarray:
    return np.ascontiguousarray(np.transpose(values, (2, 0, 1)))


def prepare_for_detection(
    image: PixelSource, input_size: int = DETECTION_INPUT_SIZE
) -> Tuple[np.ndarray, ScaleMetadata]:
    """Build the ``(1, 3, S, S)`` detector tensor and the metadata to undo its scaling."""
    pixels = _as_pixels(image)
    height, width = pixels.shape[:2]
    if height <= 0 or width <= 0:
        raise ValueError("Page image must have positive dimensions")

    padded = pad_to_square(pixels)
    resized = resize_bilinear(padded, input_size, input_size)
    tensor = hwc_to_chw(normalize_imagenet(resized))[np.newaxis]
    metadata = ScaleMetadata(
        original_height=height,
        original_width=width,
        padded_size=padded.shape[0],
        input_size=input_size,
    )
    return tensor, metadata


def prepare_for_recognition(crop: np.ndarray, tier: ModelTier) -> np.ndarray:
    """Build the ``(1, 3, 16, W)`` recognizer tensor for one line crop.

    Portrait crops hold vertical text and are turned counter-clockwise so the
    glyph sequence runs left to right.
    """
    pixels = _as_pixels(crop)
    if pixels.shape[0] > pixels.shape[1]:
        pixels = rotate90_counter_clockwise(pixels)
    resized = resize_bilinear(pixels, TIER_WIDTHS[tier], RECOGNITION_HEIGHT)
    return hwc_to_chw(normalize_minus_one_to_one(resized))[np.newaxis]


def crop_region(image: PixelSource, bbox: BoxLike) -> np.ndarray:
    """Cut ``bbox`` out of the page; an empty ``(0, 0, C)`` array when nothing is left after clamping."""
    pixels = _as_pixels(image)
    height, width = pixels.shape[:2]
    if isinstance(bbox, BoundingBox):
        x1, y1, x2, y2 = bbox.as_tuple()
    else:
        x1, y1, x2, y2 = bbox

    cx1 = max(0, min(math.floor(x1), width))
    cy1 = max(0, min(math.floor(y1), height))
    cx2 = max(0, min(math.ceil(x2), width))
    cy2 = max(0, min(math.ceil(y2), height))
    if cx2 <= cx1 or cy2 <= cy1:
        return np.zeros((0, 0, pixels.shape[2]), dtype=pixels.dtype)
    return pixels[cy1:cy2, cx1:cx2].copy()


__all__ = [
    "DETECTION_INPUT_SIZE",
    "IMAGENET_MEAN",
    "IMAGENET_STD",
    "crop_region",
    "hwc_to_chw",
    "normalize_imagenet",
    "normalize_minus_one_to_one",
    "pad_to_square",
    "prepare_for_detection",
    "prepare_for_recognition",
    "resize_bilinear",
    "rotate90_counter_clockwise",
]
