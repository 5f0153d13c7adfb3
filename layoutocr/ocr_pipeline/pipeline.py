# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Page and document drivers for the detection + recognition pipeline.

A page goes through layout detection, per-line recognition (optionally fanned
out over a thread pool), line reading order and region assembly. Progress is
reported through an optional callback that is only ever invoked from the
calling thread.
"""
from __future__ import annotations

import concurrent.futures
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .assembly import assemble_regions
from .categories import is_block, is_text_line
from .charset import resolve_charset
from .errors import PageProcessingError
from .interfaces import InferenceExecutor, InputHandler, ProgressSink
from .layout import decode_detector_outputs, detector_inputs
from .models import (
    DecodeResult,
    Detection,
    DocumentResult,
    ModelTier,
    PageError,
    PageImage,
    PageResult,
    PipelineConfig,
    ProgressInfo,
    ProgressStage,
    RecognizedLine,
)
from .preprocess import crop_region, prepare_for_detection
from .reading_order import solve_reading_order
from .recognition import RecognitionCascade

logger = logging.getLogger(__name__)

PageSource = Union[PageImage, np.ndarray]

MAX_AUTO_WORKERS = 8
DETAIL_PREVIEW_CHARS = 30


def resolve_worker_count(requested: int) -> int:
    """``0`` means one worker per core, at least 2 and at most 8."""
    if requested == 0:
        return min(max(os.cpu_count() or 4, 2), MAX_AUTO_WORKERS)
    return max(1, requested)


def _emit(
    progress: Optional[ProgressSink],
    stage: ProgressStage,
    fraction: float,
    message: str,
    detail: Optional[str] = None,
) -> None:
    if progress is not None:
        progress(ProgressInfo(stage=stage, fraction=fraction, message=message, detail=detail))


def _as_page(image: PageSource, page_number: int = 1) -> PageImage:
    if isinstance(image, PageImage):
        return image
    return PageImage(pixels=image, page_number=page_number)


@dataclass
class _LineJob:
    job_id: int
    detection: Detection
    crop: np.ndarray


def _recognize_shard(cascade: RecognitionCascade, jobs: List[_LineJob]) -> List[Tuple[int, DecodeResult]]:
    return [(job.job_id, cascade.recognize(job.crop, job.detection.predicted_char_count)) for job in jobs]


@dataclass
class OcrPipeline:
    """Runs one page through detection, recognition, ordering and assembly."""

    executor: InferenceExecutor
    config: PipelineConfig = field(default_factory=PipelineConfig)
    charset: Optional[Sequence[str]] = None
    cascade: RecognitionCascade = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.charset is None:
            self.charset = resolve_charset(self.config.charset_path)
        self.cascade = RecognitionCascade(executor=self.executor, config=self.config, charset=self.charset)

    def process(self, image: PageSource, progress: Optional[ProgressSink] = None) -> PageResult:
        page = _as_page(image)

        _emit(progress, ProgressStage.DETECTING_LAYOUT, 0.0, "Detecting layout...")
        detections = self.detect(page)
        _emit(progress, ProgressStage.DETECTING_LAYOUT, 1.0, f"Detected {len(detections)} regions")

        line_detections = [det for det in detections if is_text_line(det.category_index)]
        blocks = [det for det in detections if is_block(det.category_index)]

        jobs: List[_LineJob] = []
        for det in line_detections:
            crop = crop_region(page, det.bbox)
            if crop.shape[0] == 0 or crop.shape[1] == 0:
                continue
            jobs.append(_LineJob(job_id=len(jobs), detection=det, crop=crop))

        _emit(progress, ProgressStage.RECOGNIZING_TEXT, 0.0, f"Recognizing {len(jobs)} text lines...")
        decoded = self.recognize(jobs, progress)
        lines = [
            RecognizedLine(text=result.text, bbox=job.detection.bbox, confidence=result.confidence)
            for job, result in zip(jobs, decoded)
        ]

        _emit(progress, ProgressStage.ORDERING_TEXT, 0.0, "Determining reading order...")
        line_ranks = solve_reading_order([line.bbox for line in lines])
        regions = assemble_regions(blocks, lines, line_ranks, overlap_threshold=self.config.overlap_threshold)

        _emit(progress, ProgressStage.COMPLETE, 1.0, "OCR complete")
        logger.info(
            "Page %d: %d detections, %d lines, %d regions",
            page.page_number,
            len(detections),
            len(lines),
            len(regions),
        )
        return PageResult(width=page.width, height=page.height, regions=regions, detections=detections)

    def detect(self, page: PageImage) -> List[Detection]:
        tensor, metadata = prepare_for_detection(page, self.config.detection_input_size)
        outputs = self.executor.run_inference(self.config.detector_model_id, detector_inputs(tensor, metadata))
        return decode_detector_outputs(outputs, metadata, self.config)

    def recognize(self, jobs: List[_LineJob], progress: Optional[ProgressSink] = None) -> List[DecodeResult]:
        """Decode every job, returning results in job order."""
        total = len(jobs)
        workers = min(resolve_worker_count(self.config.recognition_workers), total)
        if workers <= 1:
            results: List[DecodeResult] = []
            for job in jobs:
                result = self.cascade.recognize(job.crop, job.detection.predicted_char_count)
                results.append(result)
                _emit(
                    progress,
                    ProgressStage.RECOGNIZING_TEXT,
                    len(results) / total,
                    f"Recognized {len(results)}/{total} lines",
                    detail=result.text[:DETAIL_PREVIEW_CHARS],
                )
            return results

        shards: List[List[_LineJob]] = [[] for _ in range(workers)]
        for job in jobs:
            shards[job.job_id % workers].append(job)

        logger.debug("Recognizing %d lines on %d workers", total, workers)
        by_id = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="layoutocr-rec") as pool:
            futures = [pool.submit(_recognize_shard, self.cascade, shard) for shard in shards]
            for fut in concurrent.futures.as_completed(futures):
                shard_results = fut.result()
                by_id.update(shard_results)
                _emit(
                    progress,
                    ProgressStage.RECOGNIZING_TEXT,
                    len(by_id) / total,
                    f"Recognized {len(by_id)}/{total} lines",
                    detail=shard_results[-1][1].text[:DETAIL_PREVIEW_CHARS] if shard_results else None,
                )
        return [by_id[job.job_id] for job in jobs]


def run_pipeline(
    image: PageSource,
    executor: InferenceExecutor,
    config: Optional[PipelineConfig] = None,
    progress: Optional[ProgressSink] = None,
) -> PageResult:
    return OcrPipeline(executor=executor, config=config or PipelineConfig()).process(image, progress)


def _page_progress(
    progress: Optional[ProgressSink], page_index: int, total: int
) -> Optional[ProgressSink]:
    if progress is None:
        return None

    def report(info: ProgressInfo) -> None:
        progress(
            info.model_copy(
                update={
                    "fraction": min(1.0, (page_index + info.fraction) / total),
                    "message": f"Page {page_index + 1}/{total}: {info.message}",
                }
            )
        )

    return report


def run_multi_page(
    images: Sequence[PageSource],
    executor: InferenceExecutor,
    config: Optional[PipelineConfig] = None,
    progress: Optional[ProgressSink] = None,
) -> List[PageResult]:
    """Process pages in order; the first failing page raises :class:`PageProcessingError`."""
    pipeline = OcrPipeline(executor=executor, config=config or PipelineConfig())
    total = len(images)
    results: List[PageResult] = []
    for index, image in enumerate(images):
        try:
            results.append(pipeline.process(_as_page(image, index + 1), _page_progress(progress, index, total)))
        except Exception as exc:
            raise PageProcessingError(index, exc) from exc
    return results


def _collect_pages(
    pipeline: OcrPipeline, images: Sequence[PageSource], progress: Optional[ProgressSink]
) -> DocumentResult:
    total = len(images)
    pages: List[PageResult] = []
    errors: List[PageError] = []
    for index, image in enumerate(images):
        try:
            pages.append(pipeline.process(_as_page(image, index + 1), _page_progress(progress, index, total)))
        except Exception as exc:
            logger.exception("Page %d/%d failed", index + 1, total)
            errors.append(PageError(page_index=index, message=str(exc)))
    return DocumentResult(pages=pages, errors=errors)


def run_document(
    images: Sequence[PageSource],
    executor: InferenceExecutor,
    config: Optional[PipelineConfig] = None,
    progress: Optional[ProgressSink] = None,
) -> DocumentResult:
    """Like :func:`run_multi_page` but keeps going after a failed page and records the failure."""
    pipeline = OcrPipeline(executor=executor, config=config or PipelineConfig())
    return _collect_pages(pipeline, images, progress)


def load_models(
    executor: InferenceExecutor,
    config: Optional[PipelineConfig] = None,
    progress: Optional[ProgressSink] = None,
) -> None:
    """Load the detector and every recognizer tier, reporting ``loading-model`` progress."""
    config = config or PipelineConfig()
    models = [(config.detector_model_id, config.detector_model_url)]
    models.extend((config.recognizer_model_ids[tier], config.recognizer_model_urls[tier]) for tier in ModelTier)
    total = len(models)

    for index, (model_id, url) in enumerate(models):
        _emit(progress, ProgressStage.LOADING_MODEL, index / total, f"Loading {model_id}...")

        def on_load(loaded_id: str, fraction: float, index: int = index) -> None:
            share = min(1.0, max(0.0, fraction))
            _emit(progress, ProgressStage.LOADING_MODEL, (index + share) / total, f"Loading {loaded_id}...")

        logger.info("Loading model %s from %s", model_id, url)
        executor.load_model(url, model_id, on_progress=on_load)

    _emit(progress, ProgressStage.LOADING_MODEL, 1.0, "Models ready")


@dataclass
class DocumentPipeline:
    """Loads files through an :class:`InputHandler` and runs every page."""

    input_handler: InputHandler
    page_pipeline: OcrPipeline

    def process(self, paths: List[str], progress: Optional[ProgressSink] = None) -> DocumentResult:
        pages = self.input_handler.load(paths)
        return _collect_pages(self.page_pipeline, pages, progress)


__all__ = [
    "DocumentPipeline",
    "OcrPipeline",
    "load_models",
    "resolve_worker_count",
    "run_document",
    "run_multi_page",
    "run_pipeline",
]
