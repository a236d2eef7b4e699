"""
Dominant pitch and major/minor tonality.

Two independent detectors:

* :meth:`TonalAnalyzer.detect_key` finds the single strongest partial in a
  mid-signal segment and names its note (e.g. ``"A4"``).
* :meth:`TonalAnalyzer.detect_tonality` folds the spectrum of many frames
  into a 12-bin chroma vector and correlates it with the
  Krumhansl-Schmuckler major and minor profiles.

Both confidences are normalised to [0, 1]. For the key detector it is the
dominant bin's share of the in-band spectral power; for tonality it is the
winning Pearson correlation clipped at zero.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from sonoscope.config import AnalysisConfig
from sonoscope.core.framing import hann
from sonoscope.core.spectral import bin_frequencies, fft, magnitude, next_power_of_two

logger = logging.getLogger(__name__)


NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

A4_HZ = 440.0
C0_HZ = A4_HZ * 2.0 ** -4.75

UNKNOWN = "Unknown"

# Krumhansl-Schmuckler key profiles (major / natural minor)
MAJOR_PROFILE = np.array(
    [6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88]
)
MINOR_PROFILE = np.array(
    [6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17]
)


@dataclass
class KeyResult:
    """Dominant frequency and the note it maps to."""

    dominant_frequency_hz: float
    note_name: str       # e.g. "A4"
    note_class: str      # e.g. "A"
    octave: int
    confidence: float    # [0,1]

    @property
    def is_known(self) -> bool:
        return self.note_name != UNKNOWN


@dataclass
class TonalityResult:
    """Major/minor classification from chroma correlation."""

    tonality: str        # "Major" | "Minor" | "Unknown"
    key_note: str        # e.g. "C", or "Unknown"
    confidence: float    # [0,1]
    major_correlation: float
    minor_correlation: float


def unknown_key() -> KeyResult:
    return KeyResult(
        dominant_frequency_hz=0.0,
        note_name=UNKNOWN,
        note_class=UNKNOWN,
        octave=0,
        confidence=0.0,
    )


def unknown_tonality() -> TonalityResult:
    return TonalityResult(
        tonality=UNKNOWN,
        key_note=UNKNOWN,
        confidence=0.0,
        major_correlation=0.0,
        minor_correlation=0.0,
    )


def half_steps_from_c0(frequency_hz):
    """Nearest semitone count above C0 (``round(12*log2(f/C0))``)."""
    return np.round(12.0 * np.log2(np.asarray(frequency_hz) / C0_HZ)).astype(int)


def frequency_to_note(frequency_hz: float) -> tuple[str, int]:
    """
    Map a frequency to its nearest equal-tempered note.

    Returns:
        (note_class, octave), e.g. ("A", 4) for 440 Hz.
    """
    half_steps = int(half_steps_from_c0(frequency_hz))
    return NOTE_NAMES[half_steps % 12], half_steps // 12


class TonalAnalyzer:
    """Key and tonality detection for mono buffers."""

    NOTE_NAMES = NOTE_NAMES
    MAJOR_PROFILE = MAJOR_PROFILE
    MINOR_PROFILE = MINOR_PROFILE

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    # ------------------------------------------------------------------
    # Dominant frequency / key
    # ------------------------------------------------------------------

    def _key_segment(self, buffer: np.ndarray) -> np.ndarray:
        """Centred mid-signal segment, at most ``key_max_segment`` long."""
        n = len(buffer)
        if n < 4096:
            return buffer
        length = min(n // 2, self.config.key_max_segment)
        start = (n - length) // 2
        return buffer[start:start + length]

    def detect_key(self, buffer: np.ndarray, sample_rate: int) -> KeyResult:
        """
        Find the dominant partial between ``key_min_hz`` and ``key_max_hz``.

        Never raises; returns an ``Unknown`` result with zero confidence when
        the band carries no energy or on any internal failure.
        """
        try:
            return self._detect_key(np.asarray(buffer, dtype=np.float64), sample_rate)
        except Exception:
            logger.exception("Key detection failed")
            return unknown_key()

    def _detect_key(self, buffer: np.ndarray, sample_rate: int) -> KeyResult:
        segment = self._key_segment(buffer)
        if len(segment) < 2 or sample_rate <= 0:
            return unknown_key()

        windowed = segment * hann(len(segment))
        padded_length = next_power_of_two(len(segment))
        mags = magnitude(fft(windowed))
        n_bins = min(len(mags), padded_length // 2)
        mags = mags[:n_bins]
        freqs = bin_frequencies(n_bins, padded_length, sample_rate)

        band = np.nonzero((freqs > self.config.key_min_hz) & (freqs < self.config.key_max_hz))[0]
        if len(band) == 0:
            return unknown_key()
        band_mags = mags[band]
        power = band_mags ** 2
        total_power = float(power.sum())
        if total_power <= 1e-18:
            logger.warning("No energy in the key band; key is unknown")
            return unknown_key()

        best = int(np.argmax(band_mags))
        k = int(band[best])
        offset = 0.0
        if 0 < k < n_bins - 1:
            a, b, c = mags[k - 1], mags[k], mags[k + 1]
            denominator = a - 2.0 * b + c
            if denominator != 0:
                offset = float(np.clip(0.5 * (a - c) / denominator, -0.5, 0.5))
        dominant = (k + offset) * float(sample_rate) / padded_length

        if dominant <= C0_HZ:
            return unknown_key()

        note_class, octave = frequency_to_note(dominant)
        confidence = float(np.clip(power[best] / total_power, 0.0, 1.0))
        logger.debug("key: %.2f Hz -> %s%d (conf=%.3f)", dominant, note_class, octave, confidence)
        return KeyResult(
            dominant_frequency_hz=float(dominant),
            note_name=f"{note_class}{octave}",
            note_class=note_class,
            octave=octave,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Chroma / tonality (Krumhansl-Schmuckler)
    # ------------------------------------------------------------------

    def _chroma_starts(self, n: int) -> np.ndarray:
        frame_size = self.config.chroma_frame_size
        hop = self.config.chroma_hop_size
        if n <= frame_size:
            return np.array([0])
        starts = np.arange(0, n - frame_size + 1, hop)
        max_frames = self.config.chroma_max_frames
        if len(starts) > max_frames:
            idx = np.round(np.linspace(0, len(starts) - 1, max_frames)).astype(int)
            starts = starts[idx]
        return starts

    def chroma_vector(self, buffer: np.ndarray, sample_rate: int) -> np.ndarray:
        """
        Max-normalised 12-bin chroma vector (index 0 = C).

        Returns all zeros when the band carries no energy.
        """
        buffer = np.asarray(buffer, dtype=np.float64)
        frame_size = self.config.chroma_frame_size
        padded_length = next_power_of_two(frame_size)
        n_bins = padded_length // 2
        freqs = bin_frequencies(n_bins, padded_length, sample_rate)
        band = np.nonzero(
            (freqs >= self.config.key_min_hz) & (freqs <= self.config.key_max_hz)
        )[0]
        chroma = np.zeros(12)
        if len(band) == 0 or len(buffer) == 0:
            return chroma
        pitch_classes = half_steps_from_c0(freqs[band]) % 12

        window = hann(frame_size)
        for start in self._chroma_starts(len(buffer)):
            frame = np.zeros(frame_size)
            chunk = buffer[start:start + frame_size]
            frame[:len(chunk)] = chunk
            mags = magnitude(fft(frame * window))
            np.add.at(chroma, pitch_classes, mags[band])

        peak = chroma.max()
        if peak <= 0:
            return np.zeros(12)
        return chroma / peak

    def detect_tonality(self, buffer: np.ndarray, sample_rate: int) -> TonalityResult:
        """
        Classify major/minor tonality and its key note. Never raises.
        """
        try:
            chroma = self.chroma_vector(buffer, sample_rate)
            return self.classify_chroma(chroma)
        except Exception:
            logger.exception("Tonality detection failed")
            return unknown_tonality()

    def classify_chroma(self, chroma: np.ndarray) -> TonalityResult:
        """
        Correlate a chroma vector against all 24 major/minor key profiles.
        """
        chroma = np.asarray(chroma, dtype=np.float64)
        if chroma.shape != (12,) or np.ptp(chroma) <= 0:
            return unknown_tonality()

        best_corr = -np.inf
        best_root = 0
        best_mode = UNKNOWN
        best_major = -1.0
        best_minor = -1.0

        for i in range(12):
            corr_maj = float(np.corrcoef(chroma, np.roll(self.MAJOR_PROFILE, i))[0, 1])
            if math.isnan(corr_maj):
                corr_maj = 0.0
            corr_min = float(np.corrcoef(chroma, np.roll(self.MINOR_PROFILE, i))[0, 1])
            if math.isnan(corr_min):
                corr_min = 0.0

            best_major = max(best_major, corr_maj)
            best_minor = max(best_minor, corr_min)

            if corr_maj > best_corr:
                best_corr, best_root, best_mode = corr_maj, i, "Major"
            if corr_min > best_corr:
                best_corr, best_root, best_mode = corr_min, i, "Minor"

        return TonalityResult(
            tonality=best_mode,
            key_note=self.NOTE_NAMES[best_root],
            confidence=float(np.clip(best_corr, 0.0, 1.0)),
            major_correlation=best_major,
            minor_correlation=best_minor,
        )
