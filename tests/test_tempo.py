"""Tests for tempo estimation."""

import numpy as np
import pytest

from sonoscope.config import AnalysisConfig, policy_for
from sonoscope.core.onsets import Onset, OnsetDetector, PeakPicker
from sonoscope.core.tempo import TempoCandidate, TempoEstimator


def _peaks(times, flux=1.0):
    return [
        Onset(
            time=float(t),
            flux=flux,
            spectral_flux=flux,
            complex_flux=0.0,
            phase_deviation=0.0,
            high_freq_content=0.1,
            magnitude=flux,
            centroid=1000.0,
        )
        for t in times
    ]


@pytest.fixture
def estimator():
    return TempoEstimator()


class TestEstimators:
    def test_autocorrelation_regular_peaks(self, estimator):
        peaks = _peaks(np.arange(0, 10, 0.5))
        candidate = estimator.autocorrelation_candidate(peaks, 10.0, policy_for(10.0))
        assert candidate is not None
        assert candidate.bpm == pytest.approx(120.0, abs=1.0)
        assert 0.0 <= candidate.confidence <= 1.0

    def test_interval_regular_peaks(self, estimator):
        peaks = _peaks(np.arange(0, 10, 0.5))
        candidate = estimator.interval_candidate(peaks)
        assert candidate.bpm == pytest.approx(120.0, abs=0.5)
        assert candidate.confidence == pytest.approx(1.0)

    def test_direct_only_for_short_clips(self, estimator):
        peaks = _peaks(np.arange(0, 2.5, 0.5))
        assert estimator.direct_candidate(peaks, 2.5).bpm == pytest.approx(120.0)
        assert estimator.direct_candidate(peaks, 5.0) is None

    def test_direct_ignores_out_of_band_intervals(self, estimator):
        # 40 BPM intervals have no in-band reading
        assert estimator.direct_candidate(_peaks([0.0, 1.5, 3.0]), 2.9) is None

    def test_direct_confidence_scales_with_coverage(self, estimator):
        # Two 120 BPM intervals around a 600 BPM one
        candidate = estimator.direct_candidate(_peaks([0.0, 0.5, 0.6, 1.1]), 2.0)
        assert candidate.bpm == pytest.approx(120.0)
        assert candidate.confidence == pytest.approx(2.0 / 3.0)

    def test_direct_dense_peaks_low_confidence(self, estimator):
        # One in-band interval among six at 400 BPM
        times = [0.0, 0.15, 0.3, 0.45, 0.6, 1.1, 1.25, 1.4]
        candidate = estimator.direct_candidate(_peaks(times), 2.0)
        assert candidate.bpm == pytest.approx(120.0)
        assert candidate.confidence == pytest.approx(0.1)

    def test_autocorrelation_band_edge_is_clamped(self):
        # 201 BPM sits just past the top of a 150-200 band
        estimator = TempoEstimator(AnalysisConfig(min_bpm=150.0, max_bpm=200.0))
        peaks = _peaks(np.arange(0, 10, 60.0 / 201.0))
        candidate = estimator.autocorrelation_candidate(peaks, 10.0, policy_for(10.0))
        assert candidate is not None
        assert 195.0 <= candidate.bpm <= 200.0


class TestReconcile:
    def test_agreeing_candidates_merge(self, estimator):
        candidates = [
            TempoCandidate(120.0, 0.8, "autocorrelation"),
            TempoCandidate(121.0, 0.7, "intervals"),
            TempoCandidate(90.0, 0.3, "direct"),
        ]
        merged = estimator.reconcile(candidates)
        assert 120.0 <= merged.bpm <= 121.0
        assert "autocorrelation" in merged.method
        assert "intervals" in merged.method
        assert merged.confidence <= 0.95

    def test_inputs_not_modified(self, estimator):
        candidates = [TempoCandidate(120.0, 0.8, "autocorrelation")]
        estimator.reconcile(candidates)
        assert candidates[0] == TempoCandidate(120.0, 0.8, "autocorrelation")

    def test_empty(self, estimator):
        assert estimator.reconcile([]) is None


class TestSnapping:
    def test_snaps_when_confident(self, estimator):
        assert estimator.snap_to_common_tempo(121.5, 0.8, policy_for(20.0)) == 120.0

    def test_no_snap_when_unconfident(self, estimator):
        assert estimator.snap_to_common_tempo(121.5, 0.2, policy_for(20.0)) == 121.5

    def test_no_snap_outside_tolerance(self, estimator):
        assert estimator.snap_to_common_tempo(122.5, 0.8, policy_for(20.0)) == 122.5

    def test_short_clip_tolerance_is_wider(self, estimator):
        assert estimator.snap_to_common_tempo(122.5, 0.8, policy_for(1.0)) == 120.0


class TestEstimate:
    def test_regular_peaks(self, estimator):
        result = estimator.estimate(_peaks(np.arange(0, 10, 0.5)), 22050, 10.0)
        assert result.bpm == pytest.approx(120.0, abs=0.5)
        assert result.confidence > 0.5
        assert result.peak_count == 20
        assert result.audio_duration_seconds == 10.0

    def test_too_few_peaks(self, estimator):
        result = estimator.estimate(_peaks([1.0]), 22050, 10.0)
        assert result.bpm == 120.0
        assert result.confidence == pytest.approx(0.1)
        assert result.method == "default"

    def test_too_short(self, estimator):
        result = estimator.estimate(_peaks([0.0, 0.2, 0.4]), 22050, 0.45)
        assert result.method == "default"

    def test_result_always_in_band(self, estimator):
        rng = np.random.RandomState(7)
        for _ in range(10):
            times = np.sort(rng.uniform(0, 8, size=rng.randint(2, 40)))
            result = estimator.estimate(_peaks(times), 22050, 8.0)
            assert 60.0 <= result.bpm <= 200.0
            assert 0.05 <= result.confidence <= 1.0

    def test_custom_band(self):
        estimator = TempoEstimator(AnalysisConfig(min_bpm=70.0, max_bpm=180.0))
        result = estimator.estimate(_peaks(np.arange(0, 10, 0.3)), 22050, 10.0)
        assert 70.0 <= result.bpm <= 180.0

    def test_click_track(self, click_track):
        y, sr = click_track
        duration = len(y) / sr
        policy = policy_for(duration)
        onsets = OnsetDetector().detect(y, sr, policy)
        peaks = PeakPicker(policy).pick(onsets)
        result = TempoEstimator().estimate(peaks, sr, duration, policy)
        assert result.bpm == pytest.approx(120.0, abs=5.0)
