# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Line recognition with a cascade of recognizer tiers.

A line is first decoded by the tier its predicted character count suggests.
When the decoded text is longer than that tier can hold reliably, the line is
re-run on the next wider tier and the earlier decode is thrown away.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .charset import DEFAULT_CHARSET
from .errors import ConfigurationError
from .interfaces import InferenceExecutor
from .models import DecodeMode, DecodeResult, DecodedPosition, ModelTier, PipelineConfig
from .preprocess import prepare_for_recognition

logger = logging.getLogger(__name__)

RECOGNIZER_INPUT = "input"

EOS_INDEX = 0
# vocabulary entries 1..3 are control tokens (<s>, </s>, <pad>)
FIRST_CHAR_INDEX = 4

_NEXT_TIER: Dict[ModelTier, Optional[ModelTier]] = {
    ModelTier.SMALL: ModelTier.MEDIUM,
    ModelTier.MEDIUM: ModelTier.LARGE,
    ModelTier.LARGE: None,
}


def select_tier(predicted_char_count: Optional[float]) -> ModelTier:
    """Detector char-count class 3 → small, 2 → medium, anything else → large."""
    if predicted_char_count == 3:
        return ModelTier.SMALL
    if predicted_char_count == 2:
        return ModelTier.MEDIUM
    return ModelTier.LARGE


def next_tier(tier: ModelTier) -> Optional[ModelTier]:
    return _NEXT_TIER[ModelTier(tier)]


def should_escalate(
    tier: ModelTier | str,
    decoded_length: int,
    small_limit: int = 25,
    medium_limit: int = 45,
) -> bool:
    tier = ModelTier(tier)
    if tier == ModelTier.SMALL:
        return decoded_length > small_limit
    if tier == ModelTier.MEDIUM:
        return decoded_length > medium_limit
    return False


def _sequence_logits(logits: np.ndarray) -> np.ndarray:
    arr = np.asarray(logits, dtype=np.float64)
    if arr.ndim == 3:
        if arr.shape[0] != 1:
            raise ConfigurationError(f"Recognizer output batch must be 1, got shape {arr.shape}")
        arr = arr[0]
    if arr.ndim != 2:
        raise ConfigurationError(f"Recognizer output must be [1, seq, vocab], got shape {arr.shape}")
    return arr


def _softmax_of_argmax(arr: np.ndarray, ids: np.ndarray) -> np.ndarray:
    peaks = arr[np.arange(arr.shape[0]), ids]
    return 1.0 / np.exp(arr - peaks[:, None]).sum(axis=1)


def decode_logits(logits: np.ndarray, charset: Sequence[str]) -> DecodeResult:
    """Greedy decode with end-of-sequence truncation.

    Confidence is the geometric mean of the softmax probability of each
    accepted symbol, or 0 when nothing was accepted.
    """
    arr = _sequence_logits(logits)
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        return DecodeResult(text="", confidence=0.0)

    ids = arr.argmax(axis=1)
    probabilities = _softmax_of_argmax(arr, ids)

    chars: List[str] = []
    positions: List[DecodedPosition] = []
    total_log_prob = 0.0
    for idx, prob in zip(ids.tolist(), probabilities.tolist()):
        if idx == EOS_INDEX:
            break
        if idx < FIRST_CHAR_INDEX:
            continue
        char_index = idx - 1
        if char_index >= len(charset):
            continue
        chars.append(charset[char_index])
        positions.append(DecodedPosition(char_index=char_index, probability=min(1.0, prob)))
        total_log_prob += math.log(prob)

    confidence = math.exp(total_log_prob / len(positions)) if positions else 0.0
    return DecodeResult(text="".join(chars), confidence=min(1.0, confidence), positions=positions)


def decode_logits_dedup(
    logits: np.ndarray, charset: Sequence[str], confidence: float = 1.0
) -> DecodeResult:
    """Alternate decode: arg-max with consecutive duplicates collapsed and a fixed confidence."""
    arr = _sequence_logits(logits)
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        return DecodeResult(text="", confidence=0.0)

    class_ids: List[int] = []
    for idx in arr.argmax(axis=1).tolist():
        if idx == EOS_INDEX:
            break
        if idx < FIRST_CHAR_INDEX:
            continue
        class_ids.append(idx - 1)

    chars: List[str] = []
    positions: List[DecodedPosition] = []
    prev_id = -1
    for char_index in class_ids:
        if char_index != prev_id and char_index < len(charset):
            chars.append(charset[char_index])
            positions.append(DecodedPosition(char_index=char_index, probability=confidence))
            prev_id = char_index

    text = "".join(chars).strip()
    return DecodeResult(text=text, confidence=confidence if text else 0.0, positions=positions)


def decode_logits_for_mode(
    logits: np.ndarray,
    charset: Sequence[str],
    mode: DecodeMode = DecodeMode.CANONICAL,
    dedup_confidence: float = 1.0,
) -> DecodeResult:
    if DecodeMode(mode) == DecodeMode.DEDUP:
        return decode_logits_dedup(logits, charset, confidence=dedup_confidence)
    return decode_logits(logits, charset)


@dataclass
class RecognitionCascade:
    """Recognize line crops, escalating to wider tiers when text overflows a tier."""

    executor: InferenceExecutor
    config: PipelineConfig
    charset: Sequence[str] = DEFAULT_CHARSET

    def recognize(self, crop: np.ndarray, predicted_char_count: Optional[float] = None) -> DecodeResult:
        tier = select_tier(predicted_char_count)
        result = self._run_tier(crop, tier)
        while should_escalate(
            tier,
            len(result.text),
            small_limit=self.config.escalate_small_above,
            medium_limit=self.config.escalate_medium_above,
        ):
            bigger = next_tier(tier)
            if bigger is None:
                break
            logger.debug("Escalating %s -> %s (%d chars decoded)", tier.value, bigger.value, len(result.text))
            tier = bigger
            result = self._run_tier(crop, tier)
        return result

    def _run_tier(self, crop: np.ndarray, tier: ModelTier) -> DecodeResult:
        model_id = self.config.recognizer_model_ids[tier]
        tensor = prepare_for_recognition(crop, tier)
        outputs = self.executor.run_inference(model_id, {RECOGNIZER_INPUT: tensor})
        logits = self._select_output(outputs, model_id)
        self._check_vocabulary(logits, model_id)
        return decode_logits_for_mode(
            logits,
            self.charset,
            mode=self.config.decode_mode,
            dedup_confidence=self.config.dedup_confidence,
        )

    def _select_output(self, outputs: Mapping[str, np.ndarray], model_id: str) -> np.ndarray:
        name = self.config.recognizer_output_name
        if name is not None:
            if name not in outputs:
                raise ConfigurationError(f"Recognizer {model_id} output missing tensor {name!r}")
            return outputs[name]
        if not outputs:
            raise ConfigurationError(f"Recognizer {model_id} returned no output tensors")
        return next(iter(outputs.values()))

    def _check_vocabulary(self, logits: np.ndarray, model_id: str) -> None:
        # vocabulary = EOS + one entry per charset symbol
        vocab = int(np.shape(logits)[-1]) if np.ndim(logits) else 0
        expected = len(self.charset) + 1
        if vocab != expected:
            raise ConfigurationError(
                f"Recognizer {model_id} emits {vocab} classes but the charset holds "
                f"{len(self.charset)} symbols (expected {expected} classes); "
                "set charset_path to the model's charset file"
            )


__all__ = [
    "EOS_INDEX",
    "FIRST_CHAR_INDEX",
    "RECOGNIZER_INPUT",
    "RecognitionCascade",
    "decode_logits",
    "decode_logits_dedup",
    "decode_logits_for_mode",
    "next_tier",
    "select_tier",
    "should_escalate",
]
