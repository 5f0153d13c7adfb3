# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Command-line entry for the layout-detection + recognition OCR pipeline.

Pages are processed in the order given and the combined result is written as
plain text, JSON or PAGE XML. ``--use-mocks`` swaps the ONNX models and file
loading for scripted stand-ins so the wiring can be smoke-tested without any
model files.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .config import load_config, with_models_dir
from .executors import OnnxRuntimeExecutor
from .exporters import FORMATTERS, export
from .input_handler import BasicInputHandler
from .interfaces import InferenceExecutor
from .mocks import MockInputHandler, build_mock_executor
from .models import PipelineConfig, ProgressInfo
from .pipeline import DocumentPipeline, OcrPipeline, load_models

logger = logging.getLogger("layoutocr")


def configure_logging(level: Optional[str] = None) -> None:
    name = (level or os.environ.get("LAYOUTOCR_LOG_LEVEL") or "WARNING").strip().upper()
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, name, logging.WARNING))
    logger.propagate = False


def _log_progress(info: ProgressInfo) -> None:
    logger.info("[%s %3.0f%%] %s", info.stage.value, info.fraction * 100, info.message)


def build_document_pipeline(
    config: PipelineConfig, *, use_mocks: bool = False
) -> Tuple[DocumentPipeline, InferenceExecutor]:
    if use_mocks:
        executor: InferenceExecutor = build_mock_executor(config)
        input_handler = MockInputHandler()
    else:
        executor = OnnxRuntimeExecutor()
        input_handler = BasicInputHandler()
    page_pipeline = OcrPipeline(executor=executor, config=config)
    return DocumentPipeline(input_handler=input_handler, page_pipeline=page_pipeline), executor


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run layout detection + text recognition OCR on page images")
    parser.add_argument("--images", nargs="+", help="Image files to process as one document, in order")
    parser.add_argument("--out", default="-", help="Output file path or '-' for stdout")
    parser.add_argument("--format", choices=sorted(FORMATTERS), default="text", help="Output format")
    parser.add_argument("--config", help="JSON file with pipeline settings")
    parser.add_argument("--models-dir", help="Directory holding the detector and recognizer .onnx files")
    parser.add_argument(
        "--workers",
        type=int,
        help="Parallel recognition workers (0 = one per core, 1 = sequential)",
    )
    parser.add_argument(
        "--use-mocks",
        action="store_true",
        help="Use mock models and blank pages (no model files needed) for fast smoke tests",
    )
    parser.add_argument("--log-level", help="Logging level (default: $LAYOUTOCR_LOG_LEVEL or WARNING)")
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    if not args.images:
        raise SystemExit("Provide --images")

    config = load_config(args.config)
    if args.models_dir:
        config = with_models_dir(config, args.models_dir)
    if args.workers is not None:
        config = config.model_copy(update={"recognition_workers": max(0, args.workers)})

    pipeline, executor = build_document_pipeline(config, use_mocks=args.use_mocks)
    load_models(executor, config, progress=_log_progress)
    result = pipeline.process(list(args.images), progress=_log_progress)

    rendered = export(result, args.format)
    if args.out == "-":
        print(rendered)
    else:
        Path(args.out).write_text(rendered, encoding="utf-8")

    for error in result.errors:
        logger.error("Page %d failed: %s", error.page_index + 1, error.message)
    return 1 if result.errors else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
