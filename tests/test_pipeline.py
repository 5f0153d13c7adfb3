import threading

import numpy as np
import pytest

from layoutocr.ocr_pipeline import (
    ConfigurationError,
    DocumentPipeline,
    InferenceError,
    MockExecutor,
    MockInputHandler,
    OcrPipeline,
    PageImage,
    PageProcessingError,
    PipelineConfig,
    ProgressStage,
    build_mock_executor,
    detector_outputs,
    load_models,
    recognizer_logits,
    run_document,
    run_multi_page,
    run_pipeline,
)
from layoutocr.ocr_pipeline.pipeline import resolve_worker_count

LINE = (2, (0.1, 0.4, 0.9, 0.6), 0.9, 3.0)


def _executor(detector, recognizer=None):
    config = PipelineConfig()
    responses = {config.detector_model_id: detector}
    for model_id in config.recognizer_model_ids.values():
        responses[model_id] = recognizer or {"output": recognizer_logits("Hello")}
    return MockExecutor(responses)


def test_end_to_end_single_line(white_page):
    executor = build_mock_executor()
    events = []

    result = run_pipeline(white_page, executor, PipelineConfig(), progress=events.append)

    assert (result.width, result.height) == (200, 100)
    assert len(result.detections) == 1
    assert len(result.regions) == 1
    region = result.regions[0]
    assert region.category == "body"
    assert region.reading_order == 0
    assert [line.text for line in region.lines] == ["Hello"]
    assert region.lines[0].confidence > 0.99
    assert region.lines[0].bbox.as_tuple() == (20, 40, 180, 60)

    assert [model_id for model_id, _ in executor.calls] == ["deim", "parseq-small"]
    detector_call = executor.calls[0][1]
    assert detector_call["images"].shape == (1, 3, 1024, 1024)
    assert detector_call["orig_target_sizes"].tolist() == [[100, 200]]

    assert [(event.stage, event.fraction) for event in events] == [
        (ProgressStage.DETECTING_LAYOUT, 0.0),
        (ProgressStage.DETECTING_LAYOUT, 1.0),
        (ProgressStage.RECOGNIZING_TEXT, 0.0),
        (ProgressStage.RECOGNIZING_TEXT, 1.0),
        (ProgressStage.ORDERING_TEXT, 0.0),
        (ProgressStage.COMPLETE, 1.0),
    ]
    assert events[1].message == "Detected 1 regions"
    assert events[3].detail == "Hello"


def test_lines_grouped_into_detected_block(white_page):
    block = (1, (0.0, 0.0, 1.0, 1.0), 0.8, 0.0)
    executor = _executor(detector_outputs([LINE, block]))

    result = run_pipeline(white_page, executor)

    assert len(result.regions) == 1
    assert result.regions[0].category == "body"
    assert result.regions[0].bbox.as_tuple() == (0, 0, 200, 100)
    assert [line.text for line in result.regions[0].lines] == ["Hello"]


def test_no_detections_yields_empty_page(white_page):
    executor = _executor(detector_outputs([]))
    events = []

    result = run_pipeline(white_page, executor, progress=events.append)

    assert result.regions == []
    assert result.detections == []
    assert events[-1].stage == ProgressStage.COMPLETE
    assert [model_id for model_id, _ in executor.calls] == ["deim"]


def test_missing_detector_tensor_is_configuration_error(white_page):
    outputs = detector_outputs([LINE])
    del outputs["scores"]

    with pytest.raises(ConfigurationError):
        run_pipeline(white_page, _executor(outputs))


def test_unknown_recognizer_is_inference_error(white_page):
    executor = MockExecutor({"deim": detector_outputs([LINE])})

    with pytest.raises(InferenceError) as excinfo:
        run_pipeline(white_page, executor)

    assert excinfo.value.model_id == "parseq-small"


LEVELS = {50: "Alpha", 80: "Bravo", 110: "Charlie", 140: "Delta", 170: "Echo"}


def _banded_page():
    pixels = np.full((500, 200, 4), 255, dtype=np.uint8)
    for i, level in enumerate(LEVELS):
        pixels[100 * i : 100 * (i + 1), :, :3] = level
    return PageImage(pixels=pixels)


def _banded_detections():
    return detector_outputs(
        [(2, (0.1, (100 * i + 30) / 500, 0.9, (100 * i + 70) / 500), 0.9, 3.0) for i in range(len(LEVELS))]
    )


def _level_reader(inputs):
    tensor = inputs["input"]
    level = int(round((float(tensor.mean()) + 1.0) / 2.0 * 255.0))
    nearest = min(LEVELS, key=lambda key: abs(key - level))
    return {"output": recognizer_logits(LEVELS[nearest])}


def test_fan_out_matches_sequential_result():
    page = _banded_page()
    sequential = run_pipeline(page, _executor(_banded_detections(), _level_reader))

    executor = _executor(_banded_detections(), _level_reader)
    threads = []
    parallel = run_pipeline(
        page,
        executor,
        PipelineConfig(recognition_workers=3),
        progress=lambda info: threads.append(threading.current_thread()),
    )

    assert [line.text for line in parallel.regions[0].lines] == list(LEVELS.values())
    assert parallel == sequential
    assert len(executor.calls_for("parseq-small")) == len(LEVELS)
    assert set(threads) == {threading.current_thread()}


def test_fan_out_failure_fails_the_page():
    def flaky_reader(inputs):
        response = _level_reader(inputs)
        if recognizer_logits("Delta").tobytes() == response["output"].tobytes():
            raise InferenceError("worker crashed", model_id="parseq-small")
        return response

    with pytest.raises(InferenceError):
        run_pipeline(
            _banded_page(),
            _executor(_banded_detections(), flaky_reader),
            PipelineConfig(recognition_workers=2),
        )


def test_resolve_worker_count():
    assert 2 <= resolve_worker_count(0) <= 8
    assert resolve_worker_count(1) == 1
    assert resolve_worker_count(5) == 5


def test_multi_page_scales_progress(white_page):
    events = []

    results = run_multi_page([white_page, white_page], build_mock_executor(), progress=events.append)

    assert len(results) == 2
    first, second = events[:6], events[6:]
    assert all(event.message.startswith("Page 1/2: ") for event in first)
    assert all(event.message.startswith("Page 2/2: ") for event in second)
    assert max(event.fraction for event in first) == pytest.approx(0.5)
    assert min(event.fraction for event in second) == pytest.approx(0.5)
    assert events[-1].fraction == pytest.approx(1.0)


def _rejects_short_pages(inputs):
    if inputs["orig_target_sizes"][0, 0] == 50:
        raise InferenceError("detector rejected the page", model_id="deim")
    return detector_outputs([LINE])


def test_multi_page_raises_for_failed_page(white_page):
    short_page = np.full((50, 200, 4), 255, dtype=np.uint8)

    with pytest.raises(PageProcessingError) as excinfo:
        run_multi_page([white_page, short_page], _executor(_rejects_short_pages))

    assert excinfo.value.page_index == 1
    assert isinstance(excinfo.value.__cause__, InferenceError)
    assert "Page 2 failed" in str(excinfo.value)


def test_run_document_continues_past_failed_page(white_page):
    short_page = np.full((50, 200, 4), 255, dtype=np.uint8)

    document = run_document([short_page, white_page], _executor(_rejects_short_pages))

    assert len(document.pages) == 1
    assert [error.page_index for error in document.errors] == [0]
    assert "detector rejected the page" in document.errors[0].message


def test_document_pipeline_uses_input_handler():
    handler = MockInputHandler()
    pipeline = DocumentPipeline(input_handler=handler, page_pipeline=OcrPipeline(executor=build_mock_executor()))

    document = pipeline.process(["a.png", "b.png"])

    assert handler.calls == [["a.png", "b.png"]]
    assert len(document.pages) == 2
    assert document.errors == []


def test_load_models_reports_progress():
    executor = MockExecutor()
    events = []

    load_models(executor, PipelineConfig(), progress=events.append)

    assert executor.load_calls == [
        ("models/deim-s-1024x1024.onnx", "deim"),
        ("models/parseq-ndl-16x256-30-tiny-192epoch-tegaki3.onnx", "parseq-small"),
        ("models/parseq-ndl-16x384-50-tiny-146epoch-tegaki2.onnx", "parseq-medium"),
        ("models/parseq-ndl-16x768-100-tiny-165epoch-tegaki2.onnx", "parseq-large"),
    ]
    assert all(event.stage == ProgressStage.LOADING_MODEL for event in events)
    fractions = [event.fraction for event in events]
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
