"""
Loudness and brightness statistics.

RMS, peak, dynamic range and zero-crossing rate are computed over a strided
view that visits at most ``stats_sample_cap`` samples, so results on very
long buffers are representative rather than exhaustive. The spectral
centroid is averaged over a handful of frames spread across the buffer.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from sonoscope.config import AnalysisConfig
from sonoscope.core.framing import hann
from sonoscope.core.spectral import bin_frequencies, fft, magnitude, next_power_of_two

logger = logging.getLogger(__name__)


@dataclass
class StatsResult:
    """Summary statistics for one buffer."""

    duration_seconds: float
    rms: float
    peak: float
    dynamic_range: float      # peak - rms, not dB
    zero_crossing_rate: float  # crossings per second
    spectral_centroid_hz: float
    sample_rate: int


class StatisticsExtractor:
    """Computes :class:`StatsResult` for a mono buffer."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def extract(self, buffer: np.ndarray, sample_rate: int) -> StatsResult:
        """
        Compute statistics, never raising.

        Any internal failure is logged and replaced by a zero-valued result.
        """
        try:
            return self._extract(np.asarray(buffer, dtype=np.float64), sample_rate)
        except Exception:
            logger.exception("Statistics extraction failed; using zero result")
            try:
                duration = len(buffer) / sample_rate if sample_rate > 0 else 0.0
            except TypeError:
                duration = 0.0
            return StatsResult(
                duration_seconds=duration,
                rms=0.0,
                peak=0.0,
                dynamic_range=0.0,
                zero_crossing_rate=0.0,
                spectral_centroid_hz=0.0,
                sample_rate=sample_rate,
            )

    def _extract(self, buffer: np.ndarray, sample_rate: int) -> StatsResult:
        n = len(buffer)
        duration = n / sample_rate

        stride = max(1, n // self.config.stats_sample_cap)
        view = buffer[::stride]

        if len(view) == 0:
            rms = peak = zcr = 0.0
        else:
            rms = float(np.sqrt(np.mean(view ** 2)))
            peak = float(np.max(np.abs(view)))
            signs = view >= 0
            crossings = int(np.count_nonzero(signs[1:] != signs[:-1]))
            zcr = crossings * sample_rate / (len(view) * stride)

        centroid = self.spectral_centroid(buffer, sample_rate)

        logger.debug(
            "stats: n=%d stride=%d rms=%.4f peak=%.4f centroid=%.1f",
            n, stride, rms, peak, centroid,
        )
        return StatsResult(
            duration_seconds=duration,
            rms=rms,
            peak=peak,
            dynamic_range=peak - rms,
            zero_crossing_rate=float(zcr),
            spectral_centroid_hz=centroid,
            sample_rate=sample_rate,
        )

    def spectral_centroid(self, buffer: np.ndarray, sample_rate: int) -> float:
        """
        Mean spectral centroid in Hz over evenly spaced Hann-windowed frames.

        Frames without energy are skipped; returns 0.0 if none carry energy.
        """
        frame_size = self.config.centroid_frame_size
        n_frames = self.config.centroid_frames
        n = len(buffer)
        if n == 0:
            return 0.0

        if n <= frame_size:
            starts = [0]
        else:
            starts = np.linspace(0, n - frame_size, n_frames).astype(int)

        window = hann(frame_size)
        padded_length = next_power_of_two(frame_size)
        n_bins = padded_length // 2 + 1
        freqs = bin_frequencies(n_bins, padded_length, sample_rate)

        centroids = []
        for start in starts:
            frame = np.zeros(frame_size)
            chunk = buffer[start:start + frame_size]
            frame[:len(chunk)] = chunk
            mags = magnitude(fft(frame * window))[:n_bins]
            total = mags.sum()
            if total > 0:
                centroids.append(float(np.sum(freqs * mags) / total))

        return float(np.mean(centroids)) if centroids else 0.0


def compute_stats(
    buffer: np.ndarray,
    sample_rate: int,
    config: Optional[AnalysisConfig] = None,
) -> StatsResult:
    """Functional shortcut for :meth:`StatisticsExtractor.extract`."""
    return StatisticsExtractor(config).extract(buffer, sample_rate)
