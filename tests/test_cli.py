"""Tests for the command-line entry point."""

import json

import numpy as np
import pytest
from scipy.io import wavfile

from sonoscope.cli import analyze_file, format_summary, main


@pytest.fixture
def sine_wav(tmp_path, pure_sine):
    y, sr = pure_sine
    path = tmp_path / "sine.wav"
    wavfile.write(path, sr, y.astype(np.float32))
    return path


def test_main_prints_summary(sine_wav, capsys):
    main([str(sine_wav)])
    out = capsys.readouterr().out
    assert "100%" in out
    assert "A4" in out
    assert "BPM" in out


def test_main_writes_report(sine_wav, tmp_path):
    output = tmp_path / "report.json"
    main([str(sine_wav), "-o", str(output)])
    with open(output, encoding="utf-8") as f:
        report = json.load(f)
    assert report["key"]["note"] == "A4"
    assert report["metadata"]["sample_rate"] == 22050
    assert "waveform" in report


def test_main_no_waveform(sine_wav, tmp_path):
    output = tmp_path / "report.json"
    main([str(sine_wav), "-o", str(output), "--no-waveform"])
    with open(output, encoding="utf-8") as f:
        assert "waveform" not in json.load(f)


def test_main_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "missing.wav")])
    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().err


def test_analyze_file_resamples(sine_wav):
    result = analyze_file(sine_wav, sr=16000, progress_callback=None)
    assert result.stats.sample_rate == 16000
    assert result.key.note_class == "A"
    assert "Tempo:" in format_summary(result)


def test_progress_callback(sine_wav):
    seen = []
    analyze_file(sine_wav, progress_callback=lambda pct, msg: seen.append(pct))
    assert seen == [5, 15, 40, 60, 80, 100]
