# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Mock implementations of pipeline collaborators for testing."""
from __future__ import annotations

import threading
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .charset import DEFAULT_CHARSET
from .errors import InferenceError
from .interfaces import InferenceExecutor, InputHandler, LoadProgressCallback
from .models import PageImage, PipelineConfig

TensorMap = Dict[str, np.ndarray]
Responder = Union[TensorMap, Callable[[Mapping[str, np.ndarray]], TensorMap]]

# (label, (x1, y1, x2, y2) in 0..1, score, char_count)
MockDetection = Tuple[int, Tuple[float, float, float, float], float, float]


def detector_outputs(detections: Sequence[MockDetection]) -> TensorMap:
    """Build the tensors a layout detector returns for ``detections``."""
    count = len(detections)
    labels = np.zeros((1, count), dtype=np.int64)
    boxes = np.zeros((1, count, 4), dtype=np.float32)
    scores = np.zeros((1, count), dtype=np.float32)
    char_counts = np.zeros((1, count), dtype=np.float32)
    for i, (label, box, score, char_count) in enumerate(detections):
        labels[0, i] = label
        boxes[0, i] = box
        scores[0, i] = score
        char_counts[0, i] = char_count
    return {"labels": labels, "boxes": boxes, "scores": scores, "char_count": char_counts}


def recognizer_logits(
    text: str,
    charset: Sequence[str] = DEFAULT_CHARSET,
    seq_len: Optional[int] = None,
    peak: float = 12.0,
) -> np.ndarray:
    """Logits of shape ``(1, seq_len, len(charset) + 1)`` that decode to ``text``."""
    vocab = len(charset) + 1
    seq_len = seq_len if seq_len is not None else len(text) + 1
    if seq_len < len(text):
        raise ValueError(f"seq_len {seq_len} cannot hold {len(text)} characters")

    logits = np.zeros((1, seq_len, vocab), dtype=np.float32)
    for pos, char in enumerate(text):
        if char not in charset:
            raise ValueError(f"{char!r} is not in the charset")
        idx = list(charset).index(char) + 1
        if idx < 4:
            raise ValueError(f"{char!r} maps to a reserved vocabulary index")
        logits[0, pos, idx] = peak
    logits[0, len(text):, 0] = peak
    return logits


class MockExecutor(InferenceExecutor):
    """Scripted executor: each model id answers with fixed tensors or a callable.

    Every call is recorded in :attr:`calls` as ``(model_id, inputs)``.
    """

    def __init__(self, responses: Optional[Dict[str, Responder]] = None) -> None:
        self.responses: Dict[str, Responder] = dict(responses or {})
        self.calls: List[Tuple[str, Dict[str, np.ndarray]]] = []
        self.load_calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def load_model(
        self, url: str, model_id: str, on_progress: Optional[LoadProgressCallback] = None
    ) -> None:
        with self._lock:
            self.load_calls.append((url, model_id))
        if on_progress is not None:
            on_progress(model_id, 0.5)
            on_progress(model_id, 1.0)

    def run_inference(self, model_id: str, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        with self._lock:
            self.calls.append((model_id, dict(inputs)))
        if model_id not in self.responses:
            raise InferenceError(f"Unknown model {model_id}", model_id=model_id)
        response = self.responses[model_id]
        if callable(response):
            return dict(response(inputs))
        return dict(response)

    def calls_for(self, model_id: str) -> List[Dict[str, np.ndarray]]:
        with self._lock:
            return [inputs for called_id, inputs in self.calls if called_id == model_id]


def build_mock_executor(
    config: Optional[PipelineConfig] = None,
    detections: Optional[Sequence[MockDetection]] = None,
    text: str = "Hello",
) -> MockExecutor:
    """An executor whose detector finds one text line and whose recognizers read ``text``."""
    config = config or PipelineConfig()
    if detections is None:
        detections = [(2, (0.1, 0.4, 0.9, 0.6), 0.9, 3.0)]
    logits = recognizer_logits(text)
    responses: Dict[str, Responder] = {config.detector_model_id: detector_outputs(detections)}
    for model_id in config.recognizer_model_ids.values():
        responses[model_id] = {"output": logits}
    return MockExecutor(responses)


class MockInputHandler(InputHandler):
    """Hands out blank white pages, one per path."""

    def __init__(self, width: int = 200, height: int = 100) -> None:
        self.width = width
        self.height = height
        self.calls: List[List[str]] = []

    def load(self, paths: List[str]) -> List[PageImage]:
        self.calls.append(list(paths))
        if not paths:
            raise ValueError("MockInputHandler requires at least one path")
        return [
            PageImage(pixels=np.full((self.height, self.width, 4), 255, dtype=np.uint8), page_number=idx + 1)
            for idx in range(len(paths))
        ]


__all__ = [
    "MockExecutor",
    "MockInputHandler",
    "build_mock_executor",
    "detector_outputs",
    "recognizer_logits",
]
