# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Interfaces for the collaborators the OCR pipeline consumes."""
from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Protocol

import numpy as np

from .models import PageImage, ProgressInfo

LoadProgressCallback = Callable[[str, float], None]
ProgressSink = Callable[[ProgressInfo], None]


class InferenceExecutor(Protocol):
    """Tensor-in/tensor-out model execution.

    Implementations raise :class:`~layoutocr.ocr_pipeline.errors.InferenceError`
    when a model is unknown or execution fails.
    """

    def load_model(
        self, url: str, model_id: str, on_progress: Optional[LoadProgressCallback] = None
    ) -> None:
        ...

    def run_inference(self, model_id: str, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        ...


class InputHandler(Protocol):
    def load(self, paths: List[str]) -> List[PageImage]:
        ...
