"""
Onset detection and peak picking.

The onset-strength signal mixes four frame-to-frame features computed over
the 30-4000 Hz range of a Blackman-Harris windowed STFT:

* spectral flux: summed positive magnitude increase
* complex-domain flux: distance between the predicted and actual complex bins
* phase deviation: wrapped phase change weighted by magnitude
* high-frequency content: position-weighted magnitude in the top 30% of bins

Peak picking then reduces the per-frame onsets to the musically significant
ones using an adaptive threshold and a minimum spacing between peaks.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import librosa
import numpy as np
from scipy import signal as scipy_signal

from sonoscope.config import AnalysisConfig, AnalysisPolicy, policy_for
from sonoscope.core.framing import blackman_harris, iter_frames
from sonoscope.core.spectral import fft, magnitude, phase

logger = logging.getLogger(__name__)


# Feature weights for the combined onset strength
SPECTRAL_FLUX_WEIGHT = 0.4
COMPLEX_FLUX_WEIGHT = 0.3
PHASE_DEVIATION_WEIGHT = 0.2
HFC_WEIGHT = 0.1

ONSET_MIN_HZ = 30.0
ONSET_MAX_HZ = 4000.0

# Onset strength whose maximum stays under this multiple of its median has no
# transients to pick (stationary noise sits around 2x)
MIN_FLUX_CONTRAST = 3.0


@dataclass
class Onset:
    """Onset strength for one frame, compared against its predecessor."""

    time: float
    flux: float
    spectral_flux: float
    complex_flux: float
    phase_deviation: float
    high_freq_content: float
    magnitude: float
    centroid: float


# A peak is an onset that survived peak picking.
Peak = Onset


def pre_emphasis_coefficient(buffer: np.ndarray) -> float:
    """
    Adaptive pre-emphasis coefficient in [0.95, 0.98].

    Quiet material (low mean absolute amplitude) gets the stronger 0.98.
    """
    if len(buffer) == 0:
        return 0.98
    mean_abs = float(np.mean(np.abs(buffer)))
    loudness = min(1.0, max(0.0, mean_abs / 0.1))
    return 0.98 - 0.03 * loudness


def _wrap_phase(angles: np.ndarray) -> np.ndarray:
    """Wrap angles into (-pi, pi]."""
    return np.pi - np.mod(np.pi - angles, 2.0 * np.pi)


class OnsetDetector:
    """Multi-feature onset detector."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def detect(
        self,
        buffer: np.ndarray,
        sample_rate: int,
        policy: Optional[AnalysisPolicy] = None,
    ) -> list[Onset]:
        """
        Compute one onset per consecutive frame pair.

        Args:
            buffer: Mono sample buffer.
            sample_rate: Sample rate in Hz.
            policy: Framing policy; derived from the buffer duration if None.

        Returns:
            Onsets in strictly increasing time order. The first frame has no
            predecessor and produces no onset. Empty when the buffer's RMS is
            below ``config.onset_rms_floor``.
        """
        buffer = np.asarray(buffer, dtype=np.float64)
        if len(buffer) == 0 or sample_rate <= 0:
            return []
        rms = float(np.sqrt(np.mean(buffer ** 2)))
        if rms < self.config.onset_rms_floor:
            logger.debug("onsets: rms %.3g below floor, skipping", rms)
            return []
        if policy is None:
            policy = policy_for(len(buffer) / sample_rate)

        alpha = pre_emphasis_coefficient(buffer)
        emphasized = scipy_signal.lfilter([1.0, -alpha], [1.0], buffer)

        frame_size = policy.frame_size
        lo = max(1, int(math.floor(ONSET_MIN_HZ * frame_size / sample_rate)))
        hi = min(frame_size // 2, int(math.ceil(ONSET_MAX_HZ * frame_size / sample_rate)))
        if hi <= lo:
            return []

        bins = np.arange(lo, hi)
        freqs = bins * float(sample_rate) / frame_size
        hfc_start = lo + int(0.7 * (hi - lo))
        hfc_weights = (bins - lo) / float(hi - lo)
        hfc_mask = bins >= hfc_start

        logger.debug(
            "onsets: frame=%d hop=%d alpha=%.3f bins=[%d, %d)",
            frame_size, policy.hop_size, alpha, lo, hi,
        )

        window = blackman_harris(frame_size)
        onsets: list[Onset] = []
        prev_mag = prev_phase = prev2_phase = None

        for start, frame in iter_frames(emphasized, frame_size, policy.hop_size, window):
            spectrum = fft(frame)[lo:hi]
            mag = magnitude(spectrum)
            ph = phase(spectrum)

            if prev_mag is not None:
                diff = mag - prev_mag
                spectral_flux = float(np.sum(diff[diff > 0]))

                if prev2_phase is not None:
                    predicted_phase = 2.0 * prev_phase - prev2_phase
                else:
                    predicted_phase = prev_phase
                predicted = prev_mag * np.exp(1j * predicted_phase)
                complex_flux = float(np.sum(np.abs(spectrum - predicted)))

                phase_dev = float(np.sum(np.abs(_wrap_phase(ph - prev_phase)) * mag))
                hfc = float(np.sum(mag[hfc_mask] * hfc_weights[hfc_mask]))

                total_mag = float(np.sum(mag))
                centroid = float(np.sum(freqs * mag) / total_mag) if total_mag > 0 else 0.0

                flux = (
                    SPECTRAL_FLUX_WEIGHT * spectral_flux
                    + COMPLEX_FLUX_WEIGHT * complex_flux
                    + PHASE_DEVIATION_WEIGHT * phase_dev
                    + HFC_WEIGHT * hfc
                )
                onsets.append(Onset(
                    time=float(librosa.samples_to_time(start, sr=sample_rate)),
                    flux=flux,
                    spectral_flux=spectral_flux,
                    complex_flux=complex_flux,
                    phase_deviation=phase_dev,
                    high_freq_content=hfc,
                    magnitude=total_mag,
                    centroid=centroid,
                ))

            prev2_phase = prev_phase
            prev_mag, prev_phase = mag, ph

        return onsets


class PeakPicker:
    """Selects musically significant onsets."""

    def __init__(self, policy: Optional[AnalysisPolicy] = None):
        self.policy = policy

    def _policy(self, onsets: list[Onset]) -> AnalysisPolicy:
        if self.policy is not None:
            return self.policy
        duration = onsets[-1].time if onsets else 0.0
        return policy_for(duration)

    def min_interval(self, onsets: list[Onset]) -> float:
        """Minimum time gap in seconds enforced between accepted peaks."""
        gap = self._policy(onsets).min_peak_interval
        if len(onsets) >= 2:
            span = onsets[-1].time - onsets[0].time
            if span > 0 and len(onsets) / span > 200:
                gap = min(gap, 0.06)
        return gap

    def threshold(self, fluxes: np.ndarray) -> float:
        """Adaptive flux threshold for the first scan."""
        median = float(np.median(fluxes))
        p75 = float(np.percentile(fluxes, 75))
        p90 = float(np.percentile(fluxes, 90))
        peak = float(np.max(fluxes))
        if peak <= 0:
            return 0.0

        dynamic = (peak - median) / peak
        n = len(fluxes)
        if dynamic < 0.3:
            threshold = median + 0.25 * (p90 - median)
        elif n < 50:
            threshold = median + 0.5 * (p75 - median)
        elif n > 500:
            threshold = max(p75, median + 0.4 * (p90 - median))
        else:
            threshold = p75
        return max(threshold, 0.05 * peak)

    @staticmethod
    def _is_local_max(fluxes: np.ndarray, i: int, radius: int) -> bool:
        lo = max(0, i - radius)
        hi = min(len(fluxes), i + radius + 1)
        value = fluxes[i]
        # Strict on the left so a plateau yields a single maximum
        return bool(np.all(fluxes[lo:i] < value) and np.all(fluxes[i + 1:hi] <= value))

    @staticmethod
    def _votes(onset: Onset) -> int:
        votes = 0
        if onset.high_freq_content > 0:
            votes += 1
        if onset.phase_deviation > 0.1 * onset.flux:
            votes += 1
        if onset.spectral_flux > 0.3 * onset.flux:
            votes += 1
        return votes

    def pick(self, onsets: list[Onset]) -> list[Peak]:
        """
        Filter onsets down to time-ordered, well-separated peaks.

        Never raises; fewer than 3 onsets are returned unchanged. A flat
        onset-strength curve (see ``MIN_FLUX_CONTRAST``) yields no peaks.
        """
        if len(onsets) < 3:
            return list(onsets)
        try:
            return self._pick(onsets)
        except Exception:
            logger.exception("Peak picking failed; returning no peaks")
            return []

    def _pick(self, onsets: list[Onset]) -> list[Peak]:
        fluxes = np.array([o.flux for o in onsets], dtype=np.float64)
        median = float(np.median(fluxes))
        if fluxes.max() < MIN_FLUX_CONTRAST * median:
            logger.debug(
                "peaks: flat onset strength (max %.4g, median %.4g), none picked",
                fluxes.max(), median,
            )
            return []

        threshold = self.threshold(fluxes)
        if threshold <= 0:
            return []

        required_votes = 1 if len(onsets) < 20 else 2
        gap = self.min_interval(onsets)

        selected = set()
        for radius, level in ((3, threshold), (1, 0.7 * threshold)):
            for i in range(len(onsets)):
                if i in selected or fluxes[i] <= level:
                    continue
                if not self._is_local_max(fluxes, i, radius):
                    continue
                if self._votes(onsets[i]) >= required_votes:
                    selected.add(i)

        peaks: list[Onset] = []
        for i in sorted(selected):
            candidate = onsets[i]
            if peaks and candidate.time - peaks[-1].time < gap:
                if candidate.flux > peaks[-1].flux:
                    peaks[-1] = candidate
                continue
            peaks.append(candidate)

        if len(peaks) < 4 and len(onsets) > 10:
            peaks = self._relaxed_pass(onsets, fluxes, peaks, gap)

        logger.debug(
            "peaks: %d of %d onsets (threshold=%.4g, gap=%.3fs)",
            len(peaks), len(onsets), threshold, gap,
        )
        return sorted(peaks, key=lambda p: p.time)

    def _relaxed_pass(
        self,
        onsets: list[Onset],
        fluxes: np.ndarray,
        peaks: list[Onset],
        gap: float,
    ) -> list[Onset]:
        """Accept up to three weaker local maxima spaced by twice the gap."""
        accepted = list(peaks)
        taken = {id(p) for p in peaks}
        candidates = [
            i for i in range(len(onsets))
            if fluxes[i] > 0
            and id(onsets[i]) not in taken
            and self._is_local_max(fluxes, i, 1)
        ]
        candidates.sort(key=lambda i: fluxes[i], reverse=True)

        added = 0
        for i in candidates:
            if added >= 3:
                break
            t = onsets[i].time
            if all(abs(t - p.time) >= 2 * gap for p in accepted):
                accepted.append(onsets[i])
                added += 1
        return accepted


def pick_peaks(
    onsets: list[Onset],
    policy: Optional[AnalysisPolicy] = None,
) -> list[Peak]:
    """Functional shortcut for :meth:`PeakPicker.pick`."""
    return PeakPicker(policy).pick(onsets)
