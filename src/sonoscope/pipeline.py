"""
Analysis pipeline orchestration.

Runs the stages in a fixed order over one immutable buffer and streams
progress, partial results and the final :class:`AnalysisResult` as events.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

import librosa
import numpy as np

from sonoscope.config import AnalysisConfig, policy_for
from sonoscope.core.onsets import OnsetDetector, PeakPicker
from sonoscope.core.stats import StatisticsExtractor, StatsResult
from sonoscope.core.stream import (
    AnalysisEvent,
    CompleteEvent,
    ErrorEvent,
    PartialResultEvent,
    ProgressEvent,
    WaveformEvent,
    WaveformPoint,
)
from sonoscope.core.tempo import TempoEstimator, TempoResult
from sonoscope.core.tonal import KeyResult, TonalAnalyzer, TonalityResult
from sonoscope.errors import InputError
from sonoscope.io.loader import load_audio

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything one pipeline run produces."""

    stats: StatsResult
    tempo: TempoResult
    key: KeyResult
    tonality: TonalityResult
    waveform: list[WaveformPoint] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.stats.duration_seconds


def downsample_waveform(samples: np.ndarray, target_points: int = 4000) -> list[WaveformPoint]:
    """
    Pick every Nth sample for display, ``N = ceil(n / target_points)``.

    Buffers of at least ``target_points`` samples yield between
    ``target_points / 2`` and ``target_points`` points.
    """
    n = len(samples)
    if n == 0:
        return []
    factor = max(1, math.ceil(n / target_points))
    picked = samples[::factor]
    return [WaveformPoint(x=i, y=float(v)) for i, v in enumerate(picked)]


def validate_input(samples, sample_rate) -> np.ndarray:
    """
    Turn caller input into a private, read-only mono float64 buffer.

    A 2-D buffer is reduced to its first channel. The shorter axis is taken
    as the channel axis, so both (channels, samples) and the
    (samples, channels) layout of most decoders are accepted.

    Raises:
        InputError: For missing, empty, zero-channel or non-finite buffers,
            or a non-positive sample rate.
    """
    if samples is None:
        raise InputError("No audio data")
    try:
        rate = int(sample_rate)
    except (TypeError, ValueError):
        raise InputError(f"Invalid sample rate: {sample_rate!r}") from None
    if rate <= 0:
        raise InputError(f"Invalid sample rate: {sample_rate!r}")

    try:
        buffer = np.array(samples, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InputError(f"Invalid audio data: {exc}") from exc

    if buffer.ndim == 2:
        if buffer.shape[0] > buffer.shape[1]:
            buffer = buffer.T
        if buffer.shape[0] == 0:
            raise InputError("Audio data has no channels")
        buffer = np.array(buffer[0])
    elif buffer.ndim != 1:
        raise InputError(f"Expected 1-D or 2-D audio data, got {buffer.ndim}-D")

    if buffer.size == 0:
        raise InputError("Audio data is empty")
    if not np.all(np.isfinite(buffer)):
        raise InputError("Audio data contains NaN or infinite samples")

    buffer.flags.writeable = False
    return buffer


class AudioPipeline:
    """
    Sequences statistics, tempo, key and tonality analysis.

    Stage failures degrade to that stage's documented default; only invalid
    input ends a run with an error event.
    """

    STAGE_PERCENT = {
        "initializing": 5,
        "statistics": 15,
        "tempo": 40,
        "key": 60,
        "tonality": 80,
        "finalizing": 100,
    }

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()
        self.stats_extractor = StatisticsExtractor(self.config)
        self.onset_detector = OnsetDetector(self.config)
        self.tempo_estimator = TempoEstimator(self.config)
        self.tonal_analyzer = TonalAnalyzer(self.config)

    def _progress(self, stage: str) -> ProgressEvent:
        return ProgressEvent(stage=stage, percent=self.STAGE_PERCENT[stage])

    def analyze_tempo(self, buffer: np.ndarray, sample_rate: int) -> TempoResult:
        """Onset detection, peak picking and tempo estimation."""
        duration = len(buffer) / sample_rate
        policy = policy_for(duration)
        try:
            onsets = self.onset_detector.detect(buffer, sample_rate, policy)
            peaks = PeakPicker(policy).pick(onsets)
        except Exception:
            logger.exception("Onset detection failed; using default tempo")
            return self.tempo_estimator.default_result(0, duration)
        logger.debug("%d onsets, %d peaks", len(onsets), len(peaks))
        return self.tempo_estimator.estimate(peaks, sample_rate, duration, policy)

    def analyze(self, samples, sample_rate: int) -> Iterator[AnalysisEvent]:
        """
        Analyse a decoded buffer, yielding events in stage order.

        Args:
            samples: Mono samples in [-1, 1] (or a 2-D multichannel array,
                of which the first channel is used).
            sample_rate: Sample rate in Hz.

        Yields:
            ProgressEvent, PartialResultEvent and WaveformEvent instances,
            then exactly one CompleteEvent or ErrorEvent.
        """
        yield self._progress("initializing")
        try:
            buffer = validate_input(samples, sample_rate)
        except InputError as exc:
            logger.error("Cannot analyse input: %s", exc)
            yield ErrorEvent(message=str(exc))
            return
        sample_rate = int(sample_rate)

        duration = float(librosa.get_duration(y=buffer, sr=sample_rate))
        logger.info("Analysing %.2fs of audio at %d Hz", duration, sample_rate)

        try:
            yield self._progress("statistics")
            stats = self.stats_extractor.extract(buffer, sample_rate)
            yield PartialResultEvent(stats=stats)

            waveform = downsample_waveform(buffer, self.config.waveform_target_points)
            yield WaveformEvent(points=waveform)

            yield self._progress("tempo")
            tempo = self.analyze_tempo(buffer, sample_rate)
            yield PartialResultEvent(tempo=tempo)

            yield self._progress("key")
            key = self.tonal_analyzer.detect_key(buffer, sample_rate)
            yield PartialResultEvent(key=key)

            yield self._progress("tonality")
            tonality = self.tonal_analyzer.detect_tonality(buffer, sample_rate)
            yield PartialResultEvent(tonality=tonality)

            yield self._progress("finalizing")
            result = AnalysisResult(
                stats=stats,
                tempo=tempo,
                key=key,
                tonality=tonality,
                waveform=waveform,
            )
        except Exception as exc:
            logger.exception("Analysis failed")
            yield ErrorEvent(message=f"Analysis failed: {exc}")
            return

        logger.info(
            "Analysis complete: %.1f BPM (%.2f), key %s, %s %s",
            tempo.bpm, tempo.confidence, key.note_name, tonality.key_note, tonality.tonality,
        )
        yield CompleteEvent(result=result)

    def run(self, samples, sample_rate: int) -> AnalysisResult:
        """
        Analyse a buffer and return only the final result.

        Raises:
            InputError: If the stream ends with an error event.
        """
        for event in self.analyze(samples, sample_rate):
            if isinstance(event, CompleteEvent):
                return event.result
            if isinstance(event, ErrorEvent):
                raise InputError(event.message)
        raise InputError("Analysis stream ended without a result")

    def process_file(
        self,
        audio_path: Union[str, Path],
        sr: Optional[int] = None,
    ) -> Iterator[AnalysisEvent]:
        """
        Decode an audio file and analyse it.

        Decoding failures end the stream with a single error event.
        """
        try:
            samples, sample_rate = load_audio(audio_path, sr=sr)
        except Exception as exc:
            logger.error("Cannot decode %s: %s", audio_path, exc)
            yield self._progress("initializing")
            yield ErrorEvent(message=f"Cannot decode {audio_path}: {exc}")
            return
        yield from self.analyze(samples, sample_rate)
