# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Loading :class:`PipelineConfig` from a JSON file and ``LAYOUTOCR_*`` variables."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .errors import ConfigurationError
from .executors import is_remote
from .models import ModelTier, PipelineConfig

ENV_PREFIX = "LAYOUTOCR_"

_FLOAT_FIELDS = (
    "det_conf_threshold",
    "det_iou_threshold",
    "overlap_threshold",
    "min_box_size",
    "vertical_expand_ratio",
    "dedup_confidence",
)
_INT_FIELDS = (
    "detection_input_size",
    "escalate_small_above",
    "escalate_medium_above",
    "recognition_workers",
)
_STR_FIELDS = (
    "box_format",
    "decode_mode",
    "detector_model_url",
    "charset_path",
)


def _env_int(env: Mapping[str, str], name: str, default: Optional[int] = None) -> Optional[int]:
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: Optional[float] = None) -> Optional[float]:
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    raw = env.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


def env_overrides(env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Config fields set through ``LAYOUTOCR_<FIELD>`` variables; unparsable values are ignored."""
    env = os.environ if env is None else env
    overrides: Dict[str, Any] = {}
    for name in _FLOAT_FIELDS:
        value = _env_float(env, ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    for name in _INT_FIELDS:
        value = _env_int(env, ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    for name in _STR_FIELDS:
        value = _env_str(env, ENV_PREFIX + name.upper())
        if value is not None:
            overrides[name] = value
    return overrides


def with_models_dir(config: PipelineConfig, models_dir: str | Path) -> PipelineConfig:
    """Point every local model URL at the file of the same name inside ``models_dir``."""
    base = Path(models_dir)

    def rebase(url: str) -> str:
        return url if is_remote(url) else (base / Path(url).name).as_posix()

    return config.model_copy(
        update={
            "detector_model_url": rebase(config.detector_model_url),
            "recognizer_model_urls": {tier: rebase(url) for tier, url in config.recognizer_model_urls.items()},
        }
    )


def load_config(path: Optional[str | Path] = None, env: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Build a config from defaults, an optional JSON file, then environment overrides."""
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}
    if path is not None:
        try:
            loaded = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")
        data.update(loaded)

    data.update(env_overrides(env))
    try:
        config = PipelineConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc

    models_dir = _env_str(env, ENV_PREFIX + "MODELS_DIR")
    if models_dir:
        config = with_models_dir(config, models_dir)
    return config


__all__ = ["ENV_PREFIX", "env_overrides", "load_config", "with_models_dir"]
