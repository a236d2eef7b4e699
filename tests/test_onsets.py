"""Tests for onset detection and peak picking."""

import numpy as np
import pytest

from sonoscope.config import AnalysisConfig, policy_for
from sonoscope.core.onsets import (
    Onset,
    OnsetDetector,
    PeakPicker,
    pick_peaks,
    pre_emphasis_coefficient,
)


def _onset(time, flux, hfc=0.1):
    return Onset(
        time=time,
        flux=flux,
        spectral_flux=flux,
        complex_flux=0.0,
        phase_deviation=0.0,
        high_freq_content=hfc,
        magnitude=flux,
        centroid=1000.0,
    )


def _spiky_onsets(n=300, step=0.01, every=50):
    """Low-level onsets with a strong spike every ``every`` frames."""
    return [
        _onset(i * step, 1.0 if i % every == 0 else 0.01)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Onset detection
# ---------------------------------------------------------------------------

class TestOnsetDetector:
    def test_pre_emphasis_range(self):
        assert pre_emphasis_coefficient(np.zeros(100)) == pytest.approx(0.98)
        assert pre_emphasis_coefficient(np.ones(100)) == pytest.approx(0.95)
        assert 0.95 <= pre_emphasis_coefficient(0.05 * np.ones(100)) <= 0.98

    def test_times_strictly_increasing(self, click_track):
        y, sr = click_track
        onsets = OnsetDetector().detect(y, sr)
        times = np.array([o.time for o in onsets])
        assert len(onsets) > 0
        assert np.all(np.diff(times) > 0)

    def test_one_onset_per_frame_pair(self, click_track):
        y, sr = click_track
        policy = policy_for(len(y) / sr)
        onsets = OnsetDetector().detect(y, sr, policy)
        n_frames = 1 + int(np.ceil((len(y) - policy.frame_size) / policy.hop_size))
        assert len(onsets) == n_frames - 1

    def test_features_non_negative(self, click_track):
        y, sr = click_track
        for onset in OnsetDetector().detect(y, sr):
            assert onset.flux >= 0
            assert onset.spectral_flux >= 0
            assert onset.high_freq_content >= 0

    def test_silence_has_no_flux(self, silence):
        y, sr = silence
        onsets = OnsetDetector().detect(y, sr)
        assert all(o.flux == 0.0 for o in onsets)

    def test_empty_buffer(self):
        assert OnsetDetector().detect(np.array([]), 22050) == []

    def test_quiet_buffer_has_no_onsets(self, white_noise):
        y, sr = white_noise
        assert OnsetDetector().detect(1e-6 * y, sr) == []

    def test_rms_floor_is_configurable(self, white_noise):
        y, sr = white_noise
        detector = OnsetDetector(AnalysisConfig(onset_rms_floor=0.0))
        assert len(detector.detect(1e-6 * y, sr)) > 0

    def test_clicks_stand_out(self, click_track):
        y, sr = click_track
        onsets = OnsetDetector().detect(y, sr)
        fluxes = np.array([o.flux for o in onsets])
        assert fluxes.max() > 10 * np.median(fluxes)


# ---------------------------------------------------------------------------
# Peak picking
# ---------------------------------------------------------------------------

class TestPeakPicker:
    def test_picks_spikes(self):
        onsets = _spiky_onsets()
        peaks = PeakPicker().pick(onsets)
        assert [round(p.time, 2) for p in peaks] == [0.0, 0.5, 1.0, 1.5, 2.0, 2.5]

    def test_peaks_respect_min_interval(self, click_track):
        y, sr = click_track
        policy = policy_for(len(y) / sr)
        onsets = OnsetDetector().detect(y, sr, policy)
        peaks = pick_peaks(onsets, policy)
        gap = PeakPicker(policy).min_interval(onsets)
        times = np.array([p.time for p in peaks])
        assert len(peaks) >= 2
        assert np.all(np.diff(times) >= gap - 1e-9)

    def test_click_track_peaks_near_clicks(self, click_track):
        y, sr = click_track
        policy = policy_for(len(y) / sr)
        peaks = pick_peaks(OnsetDetector().detect(y, sr, policy), policy)
        assert 15 <= len(peaks) <= 25

    def test_closer_spikes_keep_stronger(self):
        onsets = _spiky_onsets()
        onsets[53] = _onset(onsets[53].time, 2.0)
        peaks = PeakPicker().pick(onsets)
        times = [round(p.time, 2) for p in peaks]
        assert 0.53 in times
        assert 0.5 not in times

    def test_fewer_than_three_unchanged(self):
        onsets = [_onset(0.0, 1.0), _onset(0.1, 0.5)]
        assert PeakPicker().pick(onsets) == onsets

    def test_flat_zero_flux(self):
        onsets = [_onset(i * 0.01, 0.0) for i in range(100)]
        assert PeakPicker().pick(onsets) == []

    def test_dense_onsets_shrink_interval(self):
        onsets = [_onset(i * 0.001, 0.1) for i in range(1000)]
        assert PeakPicker().min_interval(onsets) == pytest.approx(0.06)

    def test_threshold_floor(self):
        fluxes = np.zeros(100)
        fluxes[10] = 1.0
        assert PeakPicker().threshold(fluxes) >= 0.05

    def test_output_sorted(self):
        rng = np.random.RandomState(3)
        onsets = [_onset(i * 0.01, float(rng.rand()) ** 4) for i in range(400)]
        peaks = PeakPicker().pick(onsets)
        times = [p.time for p in peaks]
        assert len(peaks) > 0
        assert times == sorted(times)

    def test_flat_onset_strength_has_no_peaks(self):
        rng = np.random.RandomState(4)
        onsets = [_onset(i * 0.01, 0.8 + 0.2 * float(rng.rand())) for i in range(300)]
        assert PeakPicker().pick(onsets) == []

    def test_white_noise_has_no_peaks(self, white_noise):
        y, sr = white_noise
        policy = policy_for(len(y) / sr)
        onsets = OnsetDetector().detect(y, sr, policy)
        assert len(onsets) > 0
        assert pick_peaks(onsets, policy) == []

    def test_relaxed_pass_keeps_double_spacing(self):
        # One strong spike; weaker bumps at 0.15 s, 0.30 s and 0.38 s
        fluxes = np.full(40, 0.01)
        fluxes[5] = 1.0
        fluxes[15] = 0.034
        fluxes[30] = 0.03
        fluxes[38] = 0.025
        onsets = [_onset(i * 0.01, float(f)) for i, f in enumerate(fluxes)]
        picker = PeakPicker(policy_for(10.0))
        gap = picker.min_interval(onsets)
        peaks = picker.pick(onsets)
        # Only the 0.30 s bump is at least 2 * gap from every accepted peak
        assert [round(p.time, 2) for p in peaks] == [0.05, 0.3]
        assert peaks[1].time - peaks[0].time >= 2 * gap
