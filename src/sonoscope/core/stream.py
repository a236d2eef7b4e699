"""
Typed events emitted by the analysis pipeline.

A run produces, in order::

    progress(initializing)
    progress(statistics) -> partial_result(stats) -> waveform
    progress(tempo)      -> partial_result(tempo)
    progress(key)        -> partial_result(key)
    progress(tonality)   -> partial_result(tonality)
    progress(finalizing) -> complete

or stops with a single ``error`` event when the input cannot be analysed.
Exactly one terminal event (``complete`` or ``error``) ends every stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from sonoscope.core.stats import StatsResult
from sonoscope.core.tempo import TempoResult
from sonoscope.core.tonal import KeyResult, TonalityResult

if TYPE_CHECKING:
    from sonoscope.pipeline import AnalysisResult


@dataclass
class WaveformPoint:
    """One display point: x is the downsampled index, y the sample value."""

    x: int
    y: float


@dataclass
class ProgressEvent:
    """Stage transition with overall completion percentage."""

    kind = "progress"
    is_terminal = False

    stage: str
    percent: int


@dataclass
class PartialResultEvent:
    """
    Result of one finished stage.

    Exactly one field is populated per event; the rest stay None.
    """

    kind = "partial_result"
    is_terminal = False

    stats: Optional[StatsResult] = None
    tempo: Optional[TempoResult] = None
    key: Optional[KeyResult] = None
    tonality: Optional[TonalityResult] = None


@dataclass
class WaveformEvent:
    """Downsampled waveform for display."""

    kind = "waveform"
    is_terminal = False

    points: list[WaveformPoint] = field(default_factory=list)


@dataclass
class CompleteEvent:
    """Terminal event carrying the assembled result."""

    kind = "complete"
    is_terminal = True

    result: AnalysisResult


@dataclass
class ErrorEvent:
    """Terminal event: analysis could not start."""

    kind = "error"
    is_terminal = True

    message: str


AnalysisEvent = Union[
    ProgressEvent, PartialResultEvent, WaveformEvent, CompleteEvent, ErrorEvent
]
