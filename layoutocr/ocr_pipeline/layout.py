# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Decoding of raw layout-detector tensors into scored, categorized boxes."""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .categories import category_name
from .errors import ConfigurationError
from .models import BoundingBox, BoxFormat, Detection, PipelineConfig, ScaleMetadata

logger = logging.getLogger(__name__)

LABELS_OUTPUT = "labels"
BOXES_OUTPUT = "boxes"
SCORES_OUTPUT = "scores"
CHAR_COUNT_OUTPUT = "char_count"
REQUIRED_OUTPUTS = (LABELS_OUTPUT, BOXES_OUTPUT, SCORES_OUTPUT)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def scale_factors(metadata: ScaleMetadata, box_format: BoxFormat) -> Tuple[float, float]:
    """Return ``(scale_x, scale_y)`` mapping raw detector boxes to original pixels."""
    if box_format == BoxFormat.NORMALIZED:
        return float(metadata.original_width), float(metadata.original_height)
    scale = metadata.input_scale
    return scale, scale


def iou(a: BoundingBox, b: BoundingBox) -> float:
    inter = a.intersection_area(b)
    if inter == 0:
        return 0.0
    union = a.area + b.area - inter
    return inter / union if union > 0 else 0.0


def non_max_suppression(detections: Iterable[Detection], iou_threshold: float) -> List[Detection]:
    """Greedy, class-agnostic suppression in descending score order (stable on ties)."""
    ordered = sorted(detections, key=lambda det: -det.score)
    kept: List[Detection] = []
    for candidate in ordered:
        if all(iou(existing.bbox, candidate.bbox) < iou_threshold for existing in kept):
            kept.append(candidate)
    return kept


def postprocess_detections(
    labels: Sequence[float],
    boxes: Sequence[Sequence[float]],
    scores: Sequence[float],
    char_counts: Optional[Sequence[float]] = None,
    *,
    width: int,
    height: int,
    scale_x: float,
    scale_y: float,
    conf_threshold: float = 0.3,
    iou_threshold: float = 0.5,
    vertical_expand_ratio: float = 0.02,
    min_box_size: float = 10.0,
) -> List[Detection]:
    """Filter, rescale, pad, clamp and suppress raw detector candidates.

    Labels are 1-indexed class ids. Boxes are ``x1, y1, x2, y2`` in whatever
    coordinate system ``scale_x``/``scale_y`` convert from. Each box grows by
    ``vertical_expand_ratio`` of its height above and below so ascenders and
    descenders stay inside the crop.
    """
    label_arr = np.asarray(labels, dtype=np.float64).reshape(-1)
    score_arr = np.asarray(scores, dtype=np.float64).reshape(-1)
    box_arr = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    count_arr = None if char_counts is None else np.asarray(char_counts, dtype=np.float64).reshape(-1)

    n = score_arr.shape[0]
    if label_arr.shape[0] != n or box_arr.shape[0] != n:
        raise ConfigurationError(
            f"Detector outputs disagree on candidate count: labels={label_arr.shape[0]}, "
            f"boxes={box_arr.shape[0]}, scores={n}"
        )
    if count_arr is not None and count_arr.shape[0] != n:
        raise ConfigurationError(f"char_count has {count_arr.shape[0]} entries for {n} candidates")

    candidates: List[Detection] = []
    for i in range(n):
        score = float(score_arr[i])
        if score < conf_threshold:
            continue

        category_index = _round_half_up(float(label_arr[i])) - 1
        x1 = box_arr[i, 0] * scale_x
        y1 = box_arr[i, 1] * scale_y
        x2 = box_arr[i, 2] * scale_x
        y2 = box_arr[i, 3] * scale_y

        delta_h = (y2 - y1) * vertical_expand_ratio
        fx1 = min(max(0, _round_half_up(x1)), width)
        fy1 = min(max(0, _round_half_up(y1 - delta_h)), height)
        fx2 = min(max(0, _round_half_up(x2)), width)
        fy2 = min(max(0, _round_half_up(y2 + delta_h)), height)

        box_w = fx2 - fx1
        box_h = fy2 - fy1
        if box_w <= 0 or box_h <= 0 or box_w < min_box_size or box_h < min_box_size:
            continue

        candidates.append(
            Detection(
                bbox=BoundingBox(x1=fx1, y1=fy1, x2=fx2, y2=fy2),
                category_index=category_index,
                category=category_name(category_index),
                score=score,
                predicted_char_count=None if count_arr is None else float(count_arr[i]),
            )
        )

    kept = non_max_suppression(candidates, iou_threshold)
    logger.debug("Layout postprocess: %d raw, %d after filtering, %d after NMS", n, len(candidates), len(kept))
    return kept


def decode_detector_outputs(
    outputs: Mapping[str, np.ndarray], metadata: ScaleMetadata, config: PipelineConfig
) -> List[Detection]:
    """Pull the named detector tensors out of an executor response and post-process them."""
    missing = [name for name in REQUIRED_OUTPUTS if name not in outputs]
    if missing:
        raise ConfigurationError(
            f"Detector output missing expected tensors: {', '.join(missing)} "
            f"(got {', '.join(sorted(outputs)) or 'nothing'})"
        )

    scale_x, scale_y = scale_factors(metadata, config.box_format)
    return postprocess_detections(
        outputs[LABELS_OUTPUT],
        outputs[BOXES_OUTPUT],
        outputs[SCORES_OUTPUT],
        outputs.get(CHAR_COUNT_OUTPUT),
        width=metadata.original_width,
        height=metadata.original_height,
        scale_x=scale_x,
        scale_y=scale_y,
        conf_threshold=config.det_conf_threshold,
        iou_threshold=config.det_iou_threshold,
        vertical_expand_ratio=config.vertical_expand_ratio,
        min_box_size=config.min_box_size,
    )


def detector_inputs(tensor: np.ndarray, metadata: ScaleMetadata) -> Dict[str, np.ndarray]:
    return {
        "images": tensor,
        "orig_target_sizes": np.array(
            [[metadata.original_height, metadata.original_width]], dtype=np.int64
        ),
    }


__all__ = [
    "BOXES_OUTPUT",
    "CHAR_COUNT_OUTPUT",
    "LABELS_OUTPUT",
    "SCORES_OUTPUT",
    "decode_detector_outputs",
    "detector_inputs",
    "iou",
    "non_max_suppression",
    "postprocess_detections",
    "scale_factors",
]
