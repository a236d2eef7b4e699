"""
Command-line audio analysis.

    sonoscope song.wav -o song.json
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

from sonoscope.core.stream import CompleteEvent, ErrorEvent, ProgressEvent
from sonoscope.errors import InputError
from sonoscope.io.exporter import ResultExporter
from sonoscope.io.loader import load_audio
from sonoscope.pipeline import AnalysisResult, AudioPipeline

logger = logging.getLogger(__name__)

STAGE_MESSAGES = {
    "initializing": "Loading audio...",
    "statistics": "Computing statistics...",
    "tempo": "Detecting tempo...",
    "key": "Detecting key...",
    "tonality": "Detecting tonality...",
    "finalizing": "Finalizing...",
}


def report_progress(pct: int, msg: str):
    """
    Render a text progress bar on a terminal, or one line per update
    when stdout is redirected.
    """
    bar_width = 30
    pct_clamped = max(0, min(100, int(pct)))
    filled = int(bar_width * (pct_clamped / 100.0))
    bar = "[" + "#" * filled + "-" * (bar_width - filled) + "]"

    if sys.stdout.isatty():
        sys.stdout.write(f"\r{bar} {pct_clamped:3d}%  {msg:40.40}")
        sys.stdout.flush()
        if pct_clamped >= 100:
            sys.stdout.write("\n")
    else:
        print(f"{pct_clamped:3d}% {msg}", flush=True)


def analyze_file(
    audio_path: Path,
    sr: Optional[int] = None,
    progress_callback: Optional[Callable[[int, str], None]] = report_progress,
) -> AnalysisResult:
    """
    Decode and analyse one file, reporting progress as it goes.

    Raises:
        FileNotFoundError: If the file does not exist.
        InputError: If the audio cannot be analysed.
    """
    samples, sample_rate = load_audio(audio_path, sr=sr)

    pipeline = AudioPipeline()
    for event in pipeline.analyze(samples, sample_rate):
        if isinstance(event, ProgressEvent):
            if progress_callback:
                progress_callback(event.percent, STAGE_MESSAGES.get(event.stage, event.stage))
        elif isinstance(event, CompleteEvent):
            return event.result
        elif isinstance(event, ErrorEvent):
            raise InputError(event.message)
    raise InputError("Analysis ended without a result")


def format_summary(result: AnalysisResult) -> str:
    """Human-readable summary of a result."""
    tonality = result.tonality
    if tonality.tonality == "Unknown":
        tonality_text = "Unknown"
    else:
        tonality_text = f"{tonality.key_note} {tonality.tonality}"
    lines = [
        f"Duration:  {result.stats.duration_seconds:.2f}s @ {result.stats.sample_rate} Hz",
        f"Tempo:     {result.tempo.bpm:.1f} BPM (confidence {result.tempo.confidence:.2f})",
        f"Key:       {result.key.note_name} ({result.key.dominant_frequency_hz:.1f} Hz)",
        f"Tonality:  {tonality_text} (confidence {tonality.confidence:.2f})",
        f"RMS:       {result.stats.rms:.4f}",
        f"Centroid:  {result.stats.spectral_centroid_hz:.1f} Hz",
    ]
    return "\n".join(lines)


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Analyse tempo, key, tonality and statistics of an audio file"
    )

    parser.add_argument(
        "audio",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )

    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write the JSON report to this file",
    )

    parser.add_argument(
        "--sr",
        type=int,
        default=None,
        help="Resample to this rate before analysis (default: native rate)",
    )

    parser.add_argument(
        "--no-waveform",
        action="store_true",
        help="Omit the downsampled waveform from the JSON report",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        sys.exit(1)

    try:
        result = analyze_file(args.audio, sr=args.sr)
    except Exception as exc:
        logger.debug("Analysis of %s failed", args.audio, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(format_summary(result))

    if args.output is not None:
        exporter = ResultExporter(include_waveform=not args.no_waveform)
        path = exporter.export_json(result, args.output)
        print(f"Report written to {path}")


if __name__ == "__main__":
    main()
