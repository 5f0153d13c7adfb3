# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""ONNX Runtime backed :class:`InferenceExecutor`.

Models are loaded from a local path or fetched over HTTP(S) and kept as one
``onnxruntime.InferenceSession`` per model id. ``onnxruntime`` and ``httpx``
are optional dependencies imported on first use.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np

from .errors import InferenceError
from .interfaces import InferenceExecutor, LoadProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS = ("CPUExecutionProvider",)


def _import_onnxruntime() -> Any:
    try:
        import onnxruntime
    except ImportError as exc:
        raise InferenceError(
            "onnxruntime is required to run the ONNX models. Install with `pip install -e '.[onnx]'` "
            "(or `pip install 'layoutocr[onnx]'`)."
        ) from exc
    return onnxruntime


def _import_httpx() -> Any:
    try:
        import httpx
    except ImportError as exc:
        raise InferenceError(
            "httpx is required to download models over HTTP. Install with `pip install -e '.[onnx]'` "
            "or point the model URLs at local files."
        ) from exc
    return httpx


def is_remote(url: str) -> bool:
    return url.startswith(("http://", "https://"))


class OnnxRuntimeExecutor(InferenceExecutor):
    """Runs named-tensor inference on ONNX models.

    Sessions are created once per model id; ``run_inference`` may be called
    from several threads at once.
    """

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        timeout_sec: float = 120.0,
        intra_op_threads: int = 0,
    ) -> None:
        self.providers = list(providers or DEFAULT_PROVIDERS)
        self.timeout_sec = timeout_sec
        self.intra_op_threads = intra_op_threads
        self._sessions: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def load_model(
        self, url: str, model_id: str, on_progress: Optional[LoadProgressCallback] = None
    ) -> None:
        ort = _import_onnxruntime()
        payload = self._fetch(url, model_id, on_progress)

        options = ort.SessionOptions()
        if self.intra_op_threads > 0:
            options.intra_op_num_threads = self.intra_op_threads
        try:
            session = ort.InferenceSession(payload, sess_options=options, providers=self.providers)
        except Exception as exc:
            raise InferenceError(f"Failed to create a session for {model_id}: {exc}", model_id=model_id) from exc

        with self._lock:
            self._sessions[model_id] = session
        logger.info("Loaded model %s (%d bytes, providers=%s)", model_id, len(payload), ",".join(self.providers))
        if on_progress is not None:
            on_progress(model_id, 1.0)

    def run_inference(self, model_id: str, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        with self._lock:
            session = self._sessions.get(model_id)
        if session is None:
            raise InferenceError(f"Model {model_id} is not loaded", model_id=model_id)

        output_names = [output.name for output in session.get_outputs()]
        try:
            values = session.run(output_names, dict(inputs))
        except Exception as exc:
            raise InferenceError(f"Inference failed for {model_id}: {exc}", model_id=model_id) from exc
        return dict(zip(output_names, values))

    def dispose_model(self, model_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(model_id, None) is not None

    def loaded_models(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)

    def _fetch(self, url: str, model_id: str, on_progress: Optional[LoadProgressCallback]) -> bytes:
        if not is_remote(url):
            path = Path(url).expanduser()
            try:
                return path.read_bytes()
            except OSError as exc:
                raise InferenceError(f"Cannot read model {model_id} from {path}: {exc}", model_id=model_id) from exc

        httpx = _import_httpx()
        chunks: List[bytes] = []
        received = 0
        try:
            with httpx.stream("GET", url, timeout=self.timeout_sec, follow_redirects=True) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                for chunk in response.iter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if on_progress is not None and total > 0:
                        on_progress(model_id, min(1.0, received / total))
        except httpx.HTTPError as exc:
            raise InferenceError(f"Failed to download {model_id} from {url}: {exc}", model_id=model_id) from exc

        logger.debug("Downloaded %s: %d bytes", url, received)
        return b"".join(chunks)


__all__ = ["DEFAULT_PROVIDERS", "OnnxRuntimeExecutor", "is_remote"]
