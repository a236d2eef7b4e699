"""Tests for report schema and event serialization."""

import dataclasses
import json

import pytest

from sonoscope.core.stream import ErrorEvent, ProgressEvent, WaveformPoint
from sonoscope.io.exporter import SCHEMA_VERSION, ReportMetadata, ResultExporter
from sonoscope.pipeline import AudioPipeline


@pytest.fixture
def sine_events(pure_sine):
    y, sr = pure_sine
    return list(AudioPipeline().analyze(y, sr))


@pytest.fixture
def sine_result(sine_events):
    return sine_events[-1].result


def test_report_blocks(sine_result):
    report = ResultExporter().to_dict(sine_result)
    for block in ("metadata", "stats", "tempo", "key", "tonality", "waveform"):
        assert block in report, f"Missing block: {block}"


def test_metadata_includes_schema_version(sine_result):
    meta = ResultExporter().to_dict(sine_result)["metadata"]
    assert meta["schema_version"] == SCHEMA_VERSION
    assert meta["sample_rate"] == 22050
    assert meta["duration"] == pytest.approx(2.0)


def test_metadata_mirrors_report_metadata(sine_result):
    meta = ResultExporter().to_dict(sine_result)["metadata"]
    assert list(meta) == [f.name for f in dataclasses.fields(ReportMetadata)]


def test_values_rounded_to_precision(sine_result):
    report = ResultExporter(precision=2).to_dict(sine_result)
    rms = report["stats"]["rms"]
    assert rms == round(rms, 2)
    assert report["key"]["note"] == "A4"


def test_waveform_optional(sine_result):
    report = ResultExporter(include_waveform=False).to_dict(sine_result)
    assert "waveform" not in report


def test_non_finite_becomes_none():
    exporter = ResultExporter()
    assert exporter._safe_float(float("nan")) is None
    assert exporter._safe_float(float("inf")) is None
    assert exporter._safe_float(None) is None
    assert exporter._safe_float(1.234567) == 1.2346


def test_report_is_json_serializable(sine_result):
    text = json.dumps(ResultExporter().to_dict(sine_result))
    assert json.loads(text)["tempo"]["bpm"] is not None


def test_every_event_serializes(sine_events):
    exporter = ResultExporter()
    messages = [exporter.event_to_dict(e) for e in sine_events]
    assert [m["type"] for m in messages] == [e.kind for e in sine_events]
    json.dumps(messages)


def test_progress_message_shape():
    message = ResultExporter().event_to_dict(ProgressEvent(stage="tempo", percent=40))
    assert message == {"type": "progress", "data": {"stage": "tempo", "progress": 40}}


def test_error_message_shape():
    message = ResultExporter().event_to_dict(ErrorEvent(message="No audio data"))
    assert message == {"type": "error", "data": {"message": "No audio data"}}


def test_waveform_block():
    block = ResultExporter().waveform_block([WaveformPoint(x=0, y=0.123456)])
    assert block == [{"x": 0, "y": 0.1235}]


def test_unknown_event_type():
    with pytest.raises(TypeError):
        ResultExporter().event_to_dict(object())


def test_export_json(sine_result, tmp_path):
    path = ResultExporter().export_json(sine_result, tmp_path / "report.json")
    assert path.exists()
    with open(path, encoding="utf-8") as f:
        report = json.load(f)
    assert report["key"]["note"] == "A4"
    assert report["metadata"]["schema_version"] == SCHEMA_VERSION
