"""Audio feature extraction: tempo, key, tonality and signal statistics."""

from sonoscope.config import AnalysisConfig
from sonoscope.errors import InputError
from sonoscope.io.exporter import ResultExporter
from sonoscope.pipeline import AnalysisResult, AudioPipeline
from sonoscope.worker import AnalysisWorker

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "AnalysisWorker",
    "AudioPipeline",
    "InputError",
    "ResultExporter",
]
