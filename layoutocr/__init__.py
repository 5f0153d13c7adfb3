# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""layoutocr public package surface."""

from __future__ import annotations

from importlib import import_module as _import_module
from typing import Any, Dict, Tuple

from ._version import __version__

__all__ = [
    "OnnxRuntimeExecutor",
    "PageResult",
    "PipelineConfig",
    "__version__",
    "export",
    "load_config",
    "load_models",
    "run_document",
    "run_multi_page",
    "run_pipeline",
    "solve_reading_order",
]

# Mapping of public attribute -> (module, attribute)
_ATTR_TO_SPEC: Dict[str, Tuple[str, str]] = {
    "OnnxRuntimeExecutor": (".ocr_pipeline.executors", "OnnxRuntimeExecutor"),
    "PageResult": (".ocr_pipeline.models", "PageResult"),
    "PipelineConfig": (".ocr_pipeline.models", "PipelineConfig"),
    "export": (".ocr_pipeline.exporters", "export"),
    "load_config": (".ocr_pipeline.config", "load_config"),
    "load_models": (".ocr_pipeline.pipeline", "load_models"),
    "run_document": (".ocr_pipeline.pipeline", "run_document"),
    "run_multi_page": (".ocr_pipeline.pipeline", "run_multi_page"),
    "run_pipeline": (".ocr_pipeline.pipeline", "run_pipeline"),
    "solve_reading_order": (".ocr_pipeline.reading_order", "solve_reading_order"),
}

_loaded: Dict[str, Any] = {}


def _load(name: str) -> Any:
    if name not in _ATTR_TO_SPEC:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    value = _loaded.get(name)
    if value is None:
        module_name, attr = _ATTR_TO_SPEC[name]
        value = getattr(_import_module(module_name, __name__), attr)
        _loaded[name] = value
    return value


def __getattr__(name: str) -> Any:
    return _load(name)


def __dir__() -> list[str]:
    return sorted(set(__all__ + list(globals().keys())))
