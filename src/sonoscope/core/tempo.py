"""
Tempo estimation from picked onset peaks.

Three independent estimators each propose a :class:`TempoCandidate`:

1. autocorrelation of an onset-strength signal rebuilt from the peaks,
2. multi-hypothesis inter-peak interval tracking,
3. direct interval statistics (clips under three seconds only).

The candidates are reconciled by confidence-weighted agreement, snapped to a
common musical tempo when close enough, and finally refined by scoring beat
grids against the detected peaks. Every BPM the module produces lies in the
configured ``[min_bpm, max_bpm]`` band.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from sonoscope.config import AnalysisConfig, AnalysisPolicy, policy_for
from sonoscope.core.onsets import Peak

logger = logging.getLogger(__name__)


COMMON_TEMPOS = tuple(range(60, 195, 5))

# Multiples of the inter-peak tempo considered by interval tracking, with the
# weight each hypothesis contributes relative to the direct reading.
INTERVAL_HYPOTHESES = (
    (1.0, 1.0),
    (2.0, 0.5),
    (0.5, 0.5),
    (3.0, 0.3),
    (1.0 / 3.0, 0.3),
    (1.5, 0.25),
    (2.0 / 3.0, 0.25),
)

METHOD_WEIGHTS = {
    "autocorrelation": 1.0,
    "intervals": 0.9,
    "direct": 0.7,
}

MIN_AUDIO_SECONDS = 0.5
DIRECT_MAX_SECONDS = 3.0
MIN_AUTOCORRELATION = 0.1
AGREEMENT_TOLERANCE = 4.0   # BPM
HISTOGRAM_TOLERANCE = 2.0   # BPM
SNAP_MIN_CONFIDENCE = 0.4
MAX_RECONCILED_CONFIDENCE = 0.95


@dataclass
class TempoCandidate:
    """A single estimator's proposal."""

    bpm: float
    confidence: float
    method: str


@dataclass
class TempoResult:
    """Final tempo estimate for a buffer."""

    bpm: float
    confidence: float
    method: str
    peak_count: int
    audio_duration_seconds: float


class TempoEstimator:
    """Estimates tempo from peaks and reconciles the competing methods."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _in_band(self, bpm: float) -> bool:
        return self.config.min_bpm <= bpm <= self.config.max_bpm

    def _clamp_bpm(self, bpm: float) -> float:
        return float(min(self.config.max_bpm, max(self.config.min_bpm, bpm)))

    def default_result(self, peak_count: int, duration: float) -> TempoResult:
        """Low-confidence fallback used whenever there is too little data."""
        return TempoResult(
            bpm=self.config.default_bpm,
            confidence=self.config.default_confidence,
            method="default",
            peak_count=peak_count,
            audio_duration_seconds=duration,
        )

    @staticmethod
    def _tempo_prior(bpm: float) -> float:
        """Log-normal preference for tempi near 120 BPM (one-octave sigma)."""
        return math.exp(-0.5 * math.log2(bpm / 120.0) ** 2)

    # ------------------------------------------------------------------
    # Estimators
    # ------------------------------------------------------------------

    def autocorrelation_candidate(
        self,
        peaks: list[Peak],
        duration: float,
        policy: AnalysisPolicy,
    ) -> Optional[TempoCandidate]:
        """
        Estimate tempo from the autocorrelation of the peak strength signal.

        Each peak's flux is split linearly between the two nearest cells of a
        fixed-resolution grid before correlating.
        """
        if len(peaks) < 2:
            return None
        resolution = policy.autocorr_resolution
        n_cells = int(math.ceil(duration / resolution)) + 2
        strength = np.zeros(n_cells)
        for p in peaks:
            pos = p.time / resolution
            left = int(math.floor(pos))
            frac = pos - left
            if 0 <= left < n_cells:
                strength[left] += p.flux * (1.0 - frac)
            if 0 <= left + 1 < n_cells:
                strength[left + 1] += p.flux * frac

        energy = float(np.dot(strength, strength))
        if energy <= 0:
            return None

        min_lag = max(1, int(math.floor(60.0 / (self.config.max_bpm * resolution))))
        max_lag = min(n_cells - 2, int(math.ceil(60.0 / (self.config.min_bpm * resolution))))
        if max_lag <= min_lag:
            return None

        # One extra lag on each side so band edges can be local maxima
        lags = np.arange(min_lag - 1, max_lag + 2)
        corr = np.array([
            float(np.dot(strength[:n_cells - lag], strength[lag:])) / energy if lag > 0 else 1.0
            for lag in lags
        ])

        best_index = None
        best_score = 0.0
        for i in range(1, len(lags) - 1):
            c = corr[i]
            if c < MIN_AUTOCORRELATION or c < corr[i - 1] or c < corr[i + 1]:
                continue
            score = c * self._tempo_prior(60.0 / (lags[i] * resolution))
            if score > best_score:
                best_score = score
                best_index = i
        if best_index is None:
            return None

        # Parabolic interpolation around the chosen lag
        a, b, c = corr[best_index - 1], corr[best_index], corr[best_index + 1]
        denominator = a - 2.0 * b + c
        offset = 0.5 * (a - c) / denominator if denominator != 0 else 0.0
        offset = max(-0.5, min(0.5, offset))
        lag = lags[best_index] + offset

        # Lags just past a band edge clamp to that edge
        bpm = self._clamp_bpm(60.0 / (lag * resolution))
        confidence = float(np.clip(b, 0.0, 1.0))
        logger.debug("autocorrelation: lag=%.2f bpm=%.2f conf=%.3f", lag, bpm, confidence)
        return TempoCandidate(bpm=bpm, confidence=confidence, method="autocorrelation")

    def interval_candidate(self, peaks: list[Peak]) -> Optional[TempoCandidate]:
        """
        Multi-hypothesis tempo histogram over consecutive peak intervals.

        Each interval votes for its direct tempo and for its double/half,
        triple/third and dotted relations. A 1-BPM bucket collects every
        candidate within ``HISTOGRAM_TOLERANCE`` and is scored by
        ``weight * log(count + 1)``.
        """
        if len(peaks) < 2:
            return None

        values = []
        weights = []
        base_bpms = []
        for first, second in zip(peaks[:-1], peaks[1:]):
            interval = second.time - first.time
            if interval <= 0:
                continue
            base = 60.0 / interval
            base_bpms.append(base)
            pair_weight = max(first.flux * second.flux, 1e-12)
            for factor, hypothesis_weight in INTERVAL_HYPOTHESES:
                bpm = base * factor
                if self._in_band(bpm):
                    values.append(bpm)
                    weights.append(pair_weight * hypothesis_weight)
        if not values:
            return None

        values = np.array(values)
        weights = np.array(weights)
        best_score = 0.0
        best_mask = None
        best_bucket = None
        for bucket in range(int(self.config.min_bpm), int(self.config.max_bpm) + 1):
            mask = np.abs(values - bucket) <= HISTOGRAM_TOLERANCE
            count = int(np.count_nonzero(mask))
            if count == 0:
                continue
            score = float(weights[mask].sum()) * math.log(count + 1)
            if score > best_score:
                best_score = score
                best_mask = mask
                best_bucket = bucket
        if best_mask is None:
            return None

        bpm = float(np.average(values[best_mask], weights=weights[best_mask]))
        supporting = sum(1 for b in base_bpms if abs(b - best_bucket) <= HISTOGRAM_TOLERANCE)
        confidence = max(0.1, supporting / len(base_bpms))
        logger.debug("intervals: bucket=%d bpm=%.2f conf=%.3f", best_bucket, bpm, confidence)
        return TempoCandidate(bpm=bpm, confidence=min(1.0, confidence), method="intervals")

    def direct_candidate(
        self,
        peaks: list[Peak],
        duration: float,
    ) -> Optional[TempoCandidate]:
        """
        Median interval tempo, used only for clips under three seconds.

        Only intervals whose own tempo lies in the band count. Confidence is
        ``1 - rsd`` of those tempi scaled by the share of intervals that were
        in band, clipped to [0.1, 0.9].
        """
        if duration >= DIRECT_MAX_SECONDS or len(peaks) < 2:
            return None
        bpms = []
        n_intervals = 0
        for first, second in zip(peaks[:-1], peaks[1:]):
            interval = second.time - first.time
            if interval <= 0:
                continue
            n_intervals += 1
            bpm = 60.0 / interval
            if self._in_band(bpm):
                bpms.append(bpm)
        if not bpms:
            return None

        bpms = np.array(bpms)
        median = float(np.median(bpms))
        rsd = float(np.std(bpms) / np.mean(bpms)) if len(bpms) > 1 else 0.5
        coverage = len(bpms) / n_intervals
        confidence = float(np.clip((1.0 - rsd) * coverage, 0.1, 0.9))
        logger.debug(
            "direct: bpm=%.2f rsd=%.3f coverage=%.2f conf=%.3f",
            median, rsd, coverage, confidence,
        )
        return TempoCandidate(bpm=median, confidence=confidence, method="direct")

    # ------------------------------------------------------------------
    # Reconciliation and post-processing
    # ------------------------------------------------------------------

    def reconcile(self, candidates: list[TempoCandidate]) -> Optional[TempoCandidate]:
        """
        Merge candidates by confidence-weighted agreement.

        Returns a new candidate; the inputs are not modified.
        """
        if not candidates:
            return None

        best_group = None
        best_score = -1.0
        for seed in candidates:
            group = [c for c in candidates if abs(c.bpm - seed.bpm) <= AGREEMENT_TOLERANCE]
            score = sum(c.confidence * METHOD_WEIGHTS.get(c.method, 0.5) for c in group)
            if score > best_score:
                best_score = score
                best_group = group

        weights = np.array([
            max(c.confidence * METHOD_WEIGHTS.get(c.method, 0.5), 1e-9) for c in best_group
        ])
        bpm = float(np.average([c.bpm for c in best_group], weights=weights))
        confidence = float(np.average([c.confidence for c in best_group], weights=weights))
        confidence *= 1.0 + 0.15 * (len(best_group) - 1)
        confidence = min(MAX_RECONCILED_CONFIDENCE, confidence)
        method = "+".join(c.method for c in best_group)
        return TempoCandidate(bpm=bpm, confidence=confidence, method=method)

    def snap_to_common_tempo(
        self,
        bpm: float,
        confidence: float,
        policy: AnalysisPolicy,
    ) -> float:
        """Snap to the nearest common tempo when close and confident enough."""
        if confidence < SNAP_MIN_CONFIDENCE:
            return bpm
        nearest = min(COMMON_TEMPOS, key=lambda t: abs(t - bpm))
        if abs(nearest - bpm) <= policy.snap_tolerance:
            return float(nearest)
        return bpm

    def beat_alignment_score(
        self,
        bpm: float,
        peak_times: np.ndarray,
        peak_weights: np.ndarray,
        anchors: np.ndarray,
        duration: float,
        tolerance_fraction: float,
    ) -> float:
        """
        Best alignment of a beat grid at ``bpm`` with the peaks.

        Grids are anchored at each anchor time and extended in both
        directions over the clip. Each expected beat contributes the weight
        of its nearest peak scaled by ``1 - distance / tolerance``.
        """
        period = 60.0 / bpm
        tolerance = tolerance_fraction * period
        best = 0.0
        for anchor in anchors:
            first = anchor - math.floor(anchor / period) * period
            beats = np.arange(first, duration + 1e-9, period)
            if len(beats) == 0:
                continue
            idx = np.searchsorted(peak_times, beats)
            left = np.clip(idx - 1, 0, len(peak_times) - 1)
            right = np.clip(idx, 0, len(peak_times) - 1)
            d_left = np.abs(beats - peak_times[left])
            d_right = np.abs(beats - peak_times[right])
            nearest = np.where(d_left <= d_right, left, right)
            distance = np.minimum(d_left, d_right)
            hit = distance <= tolerance
            contributions = peak_weights[nearest] * (1.0 - distance / tolerance)
            score = float(np.sum(contributions[hit])) / len(beats)
            best = max(best, score)
        return best

    def refine_with_beats(
        self,
        bpm: float,
        peaks: list[Peak],
        duration: float,
        policy: AnalysisPolicy,
    ) -> float:
        """
        Scan tempi around ``bpm`` and keep the one whose beat grid best fits.

        A candidate replaces the current estimate only when it scores more
        than 2% higher, so a well-supported estimate is not nudged by noise.
        """
        if len(peaks) < 2:
            return bpm
        times = np.array([p.time for p in peaks])
        fluxes = np.array([p.flux for p in peaks])
        max_flux = float(fluxes.max())
        weights = fluxes / max_flux if max_flux > 0 else np.ones_like(fluxes)
        anchors = times[np.argsort(-fluxes, kind="stable")[:8]]

        def score(value):
            return self.beat_alignment_score(
                value, times, weights, anchors, duration, policy.beat_tolerance,
            )

        best_bpm = bpm
        best_score = score(bpm)
        n_steps = int(round(policy.refine_window / policy.refine_step))
        offsets = sorted(
            (k * policy.refine_step for k in range(-n_steps, n_steps + 1) if k != 0),
            key=abs,
        )
        for offset in offsets:
            candidate = bpm + offset
            if not self._in_band(candidate):
                continue
            s = score(candidate)
            if s > best_score * 1.02:
                best_bpm, best_score = candidate, s
        logger.debug("beat refinement: %.2f -> %.2f (score=%.3f)", bpm, best_bpm, best_score)
        return best_bpm

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def estimate(
        self,
        peaks: list[Peak],
        sample_rate: int,
        audio_duration_seconds: float,
        policy: Optional[AnalysisPolicy] = None,
    ) -> TempoResult:
        """
        Estimate tempo from time-ordered peaks.

        Args:
            peaks: Picked onset peaks.
            sample_rate: Sample rate of the analysed buffer in Hz.
            audio_duration_seconds: Buffer duration in seconds.
            policy: Duration policy; derived from the duration if None.

        Returns:
            TempoResult with bpm inside the configured band and confidence in
            [0.05, 1.0]. Falls back to the default tempo with low confidence
            when there is not enough data.
        """
        duration = audio_duration_seconds
        peak_count = len(peaks)
        if duration < MIN_AUDIO_SECONDS or peak_count < 2 or sample_rate <= 0:
            logger.warning(
                "Not enough material for tempo (%.2fs, %d peaks); using default",
                duration, peak_count,
            )
            return self.default_result(peak_count, duration)

        try:
            return self._estimate(peaks, duration, policy or policy_for(duration))
        except Exception:
            logger.exception("Tempo estimation failed; using default")
            return self.default_result(peak_count, duration)

    def _estimate(
        self,
        peaks: list[Peak],
        duration: float,
        policy: AnalysisPolicy,
    ) -> TempoResult:
        peaks = sorted(peaks, key=lambda p: p.time)
        candidates = [
            c for c in (
                self.autocorrelation_candidate(peaks, duration, policy),
                self.interval_candidate(peaks),
                self.direct_candidate(peaks, duration),
            )
            if c is not None
        ]
        logger.debug("tempo candidates: %s", candidates)

        merged = self.reconcile(candidates)
        if merged is None:
            logger.warning("No tempo candidate survived; using default")
            return self.default_result(len(peaks), duration)

        bpm = self.snap_to_common_tempo(merged.bpm, merged.confidence, policy)
        bpm = self.refine_with_beats(bpm, peaks, duration, policy)

        return TempoResult(
            bpm=self._clamp_bpm(bpm),
            confidence=float(np.clip(merged.confidence, 0.05, 1.0)),
            method=merged.method,
            peak_count=len(peaks),
            audio_duration_seconds=duration,
        )
