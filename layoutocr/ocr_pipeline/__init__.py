"""Layout detection + text recognition OCR pipeline."""

from .assembly import assemble_regions
from .categories import BLOCK_CATEGORIES, CATEGORY_NAMES, TEXT_LINE_CATEGORIES, category_name
from .charset import DEFAULT_CHARSET, load_charset
from .config import load_config, with_models_dir
from .errors import ConfigurationError, InferenceError, OcrPipelineError, PageProcessingError
from .executors import OnnxRuntimeExecutor
from .exporters import export, format_as_json, format_as_text, format_as_xml
from .input_handler import BasicInputHandler
from .interfaces import InferenceExecutor, InputHandler, ProgressSink
from .layout import non_max_suppression, postprocess_detections
from .mocks import MockExecutor, MockInputHandler, build_mock_executor, detector_outputs, recognizer_logits
from .models import (
    BoundingBox,
    BoxFormat,
    DecodeMode,
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
    TextRegion,
)
from .pipeline import DocumentPipeline, OcrPipeline, load_models, run_document, run_multi_page, run_pipeline
from .preprocess import crop_region, prepare_for_detection, prepare_for_recognition
from .reading_order import solve_reading_order
from .recognition import RecognitionCascade, decode_logits, decode_logits_dedup, select_tier, should_escalate

__all__ = [
    "BLOCK_CATEGORIES",
    "BasicInputHandler",
    "BoundingBox",
    "BoxFormat",
    "CATEGORY_NAMES",
    "ConfigurationError",
    "DEFAULT_CHARSET",
    "DecodeMode",
    "DecodeResult",
    "Detection",
    "DocumentPipeline",
    "DocumentResult",
    "InferenceError",
    "InferenceExecutor",
    "InputHandler",
    "MockExecutor",
    "MockInputHandler",
    "ModelTier",
    "OcrPipeline",
    "OcrPipelineError",
    "OnnxRuntimeExecutor",
    "PageError",
    "PageImage",
    "PageProcessingError",
    "PageResult",
    "PipelineConfig",
    "ProgressInfo",
    "ProgressSink",
    "ProgressStage",
    "RecognitionCascade",
    "RecognizedLine",
    "TEXT_LINE_CATEGORIES",
    "TextRegion",
    "assemble_regions",
    "build_mock_executor",
    "category_name",
    "crop_region",
    "decode_logits",
    "decode_logits_dedup",
    "detector_outputs",
    "export",
    "format_as_json",
    "format_as_text",
    "format_as_xml",
    "load_charset",
    "load_config",
    "load_models",
    "non_max_suppression",
    "postprocess_detections",
    "prepare_for_detection",
    "prepare_for_recognition",
    "recognizer_logits",
    "run_document",
    "run_multi_page",
    "run_pipeline",
    "select_tier",
    "should_escalate",
    "solve_reading_order",
    "with_models_dir",
]
