"""Tests for background analysis."""

import numpy as np
import pytest

from sonoscope.core.stream import CompleteEvent, ErrorEvent
from sonoscope.errors import InputError
from sonoscope.worker import AnalysisWorker


@pytest.fixture
def worker():
    with AnalysisWorker() as w:
        yield w


def test_events_end_with_complete(worker, pure_sine):
    y, sr = pure_sine
    job = worker.submit(y, sr)
    events = list(job.events(timeout=60))
    assert isinstance(events[-1], CompleteEvent)
    assert [e.kind for e in events][:2] == ["progress", "progress"]
    assert sum(e.is_terminal for e in events) == 1


def test_result(worker, pure_sine):
    y, sr = pure_sine
    result = worker.submit(y, sr).result(timeout=60)
    assert result.key.note_name == "A4"


def test_caller_may_reuse_buffer(worker, pure_sine):
    y, sr = pure_sine
    buffer = y.copy()
    job = worker.submit(buffer, sr)
    buffer[:] = 0.0
    assert job.result(timeout=60).key.note_name == "A4"


def test_invalid_input(worker):
    job = worker.submit(np.array([]), 22050)
    events = list(job.events(timeout=60))
    assert isinstance(events[-1], ErrorEvent)
    with pytest.raises(InputError):
        job.result(timeout=60)


def test_jobs_run_in_order(worker, pure_sine, silence):
    y, sr = pure_sine
    first = worker.submit(y, sr)
    second = worker.submit(*silence)
    assert second.result(timeout=60).key.note_name == "Unknown"
    assert first.result(timeout=60).key.note_name == "A4"
    assert first.done
