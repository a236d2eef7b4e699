"""Core audio analysis modules."""

from sonoscope.core.onsets import OnsetDetector, PeakPicker
from sonoscope.core.stats import StatisticsExtractor
from sonoscope.core.tempo import TempoEstimator
from sonoscope.core.tonal import TonalAnalyzer

__all__ = ["OnsetDetector", "PeakPicker", "StatisticsExtractor", "TempoEstimator", "TonalAnalyzer"]
