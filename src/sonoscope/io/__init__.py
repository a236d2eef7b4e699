"""Input/output: file decoding and report serialization."""

from sonoscope.io.exporter import ResultExporter
from sonoscope.io.loader import load_audio

__all__ = ["ResultExporter", "load_audio"]
