"""
Result serialization module.

Converts analysis results and stream events to JSON-ready dictionaries and
writes analysis reports to disk.
"""

from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from sonoscope.core.stream import (
    AnalysisEvent,
    CompleteEvent,
    ErrorEvent,
    PartialResultEvent,
    ProgressEvent,
    WaveformEvent,
)

if TYPE_CHECKING:
    from sonoscope.pipeline import AnalysisResult

SCHEMA_VERSION = "1.0"


@dataclass
class ReportMetadata:
    """Metadata header for an analysis report."""

    duration: float
    sample_rate: int
    schema_version: str = SCHEMA_VERSION


class ResultExporter:
    """
    Exports analysis results and events to JSON.

    Floats are rounded to ``precision`` decimal places; NaN and infinite
    values become ``None``.
    """

    def __init__(self, precision: int = 4, include_waveform: bool = True):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
            include_waveform: Emit the waveform block in reports.
        """
        self.precision = precision
        self.include_waveform = include_waveform

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _safe_float(self, value) -> Optional[float]:
        """Round a value, returning None if it is missing or not finite."""
        if value is None:
            return None
        try:
            f = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(f) or math.isinf(f):
            return None
        return self._round(f)

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def stats_block(self, stats) -> dict[str, Any]:
        return {
            "duration": self._safe_float(stats.duration_seconds),
            "rms": self._safe_float(stats.rms),
            "peak": self._safe_float(stats.peak),
            "dynamic_range": self._safe_float(stats.dynamic_range),
            "zero_crossing_rate": self._safe_float(stats.zero_crossing_rate),
            "spectral_centroid": self._safe_float(stats.spectral_centroid_hz),
            "sample_rate": int(stats.sample_rate),
        }

    def tempo_block(self, tempo) -> dict[str, Any]:
        return {
            "bpm": self._safe_float(tempo.bpm),
            "confidence": self._safe_float(tempo.confidence),
            "method": tempo.method,
            "peak_count": int(tempo.peak_count),
            "audio_duration": self._safe_float(tempo.audio_duration_seconds),
        }

    def key_block(self, key) -> dict[str, Any]:
        return {
            "note": key.note_name,
            "note_class": key.note_class,
            "octave": int(key.octave),
            "frequency": self._safe_float(key.dominant_frequency_hz),
            "confidence": self._safe_float(key.confidence),
        }

    def tonality_block(self, tonality) -> dict[str, Any]:
        return {
            "tonality": tonality.tonality,
            "key": tonality.key_note,
            "confidence": self._safe_float(tonality.confidence),
            "major_correlation": self._safe_float(tonality.major_correlation),
            "minor_correlation": self._safe_float(tonality.minor_correlation),
        }

    def waveform_block(self, points) -> list[dict[str, Any]]:
        return [{"x": int(p.x), "y": self._safe_float(p.y)} for p in points]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def to_dict(self, result: AnalysisResult) -> dict[str, Any]:
        """
        Return the report as a dictionary (for in-memory use).

        Args:
            result: Completed analysis result.

        Returns:
            Report dictionary with metadata, stats, tempo, key, tonality and
            (optionally) waveform blocks.
        """
        metadata = ReportMetadata(
            duration=self._round(result.stats.duration_seconds),
            sample_rate=int(result.stats.sample_rate),
        )
        report: dict[str, Any] = {
            "metadata": asdict(metadata),
            "stats": self.stats_block(result.stats),
            "tempo": self.tempo_block(result.tempo),
            "key": self.key_block(result.key),
            "tonality": self.tonality_block(result.tonality),
        }
        if self.include_waveform:
            report["waveform"] = self.waveform_block(result.waveform)
        return report

    def event_to_dict(self, event: AnalysisEvent) -> dict[str, Any]:
        """
        Render a stream event as ``{"type": kind, "data": {...}}``.
        """
        if isinstance(event, ProgressEvent):
            data: dict[str, Any] = {"stage": event.stage, "progress": int(event.percent)}
        elif isinstance(event, PartialResultEvent):
            data = {}
            if event.stats is not None:
                data["stats"] = self.stats_block(event.stats)
            if event.tempo is not None:
                data["tempo"] = self.tempo_block(event.tempo)
            if event.key is not None:
                data["key"] = self.key_block(event.key)
            if event.tonality is not None:
                data["tonality"] = self.tonality_block(event.tonality)
        elif isinstance(event, WaveformEvent):
            data = {"waveform": self.waveform_block(event.points)}
        elif isinstance(event, CompleteEvent):
            data = self.to_dict(event.result)
        elif isinstance(event, ErrorEvent):
            data = {"message": event.message}
        else:
            raise TypeError(f"Unknown event type: {type(event).__name__}")
        return {"type": event.kind, "data": data}

    def export_json(
        self,
        result: AnalysisResult,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """
        Export the report to a JSON file.

        Args:
            result: Completed analysis result.
            output_path: Path for output JSON file.
            indent: JSON indentation level.

        Returns:
            Path to written file.
        """
        report = self.to_dict(result)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=indent)

        return output_path
