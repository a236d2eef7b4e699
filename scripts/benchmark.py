"""
Sonoscope analysis benchmark + FFT parity validation.

Usage:
    python scripts/benchmark.py [--quick]

Modes:
    default  : 30 s synthetic mix, 2 warm-up + 5 timed runs per stage
    --quick  : 8 s synthetic mix, 1 warm-up + 3 timed runs (CI-friendly)

Output: timing table + parity report printed to stdout.

Parity check: compares sonoscope.core.spectral.fft against numpy.fft.fft on
random power-of-two and odd-length inputs.
"""

import argparse
import os
import sys
import time
from typing import List

import numpy as np

# Make sure the installed package is on the path when run from repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sonoscope.config import AnalysisConfig, policy_for
from sonoscope.core.onsets import OnsetDetector, PeakPicker
from sonoscope.core.spectral import fft, next_power_of_two
from sonoscope.core.stats import StatisticsExtractor
from sonoscope.core.tempo import TempoEstimator
from sonoscope.core.tonal import TonalAnalyzer
from sonoscope.pipeline import AudioPipeline

_SEP = "─" * 72
SR = 44100


def _hdr(title: str) -> None:
    print(f"\n{_SEP}")
    print(f"  {title}")
    print(_SEP)


def _timeit(fn, *args, warmup: int = 2, runs: int = 5, **kwargs) -> List[float]:
    """Run fn(*args, **kwargs), discard warmup iterations, return timed samples."""
    for _ in range(warmup):
        fn(*args, **kwargs)
    times = []
    for _ in range(runs):
        t0 = time.perf_counter()
        fn(*args, **kwargs)
        times.append(time.perf_counter() - t0)
    return times


def _stats(times: List[float]) -> str:
    arr = np.array(times)
    return f"mean={arr.mean()*1000:.1f} ms  min={arr.min()*1000:.1f} ms  max={arr.max()*1000:.1f} ms"


def _test_signal(seconds: float) -> np.ndarray:
    """C-major triad under a 120 BPM click track."""
    t = np.arange(int(seconds * SR)) / SR
    y = np.zeros_like(t)
    for freq in (261.63, 329.63, 392.0):
        y += 0.15 * np.sin(2 * np.pi * freq * t)
    click_len = int(0.02 * SR)
    click = 0.6 * np.sin(2 * np.pi * 1500 * t[:click_len]) * np.hanning(click_len)
    for start in range(0, len(y) - click_len, SR // 2):
        y[start:start + click_len] += click
    return y


# ---------------------------------------------------------------------------
# Parity helpers
# ---------------------------------------------------------------------------

def _parity_report(ours: np.ndarray, reference: np.ndarray) -> dict:
    """Error metrics between our FFT and numpy's."""
    diff = np.abs(ours - reference)
    scale = float(np.max(np.abs(reference))) or 1.0
    return {
        "max_diff": float(diff.max()),
        "rel_diff": float(diff.max()) / scale,
    }


def _parity_fft(n: int, rng: np.random.RandomState) -> dict:
    x = rng.randn(n)
    padded = np.zeros(next_power_of_two(n))
    padded[:n] = x
    return _parity_report(fft(x), np.fft.fft(padded)[:n])


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Sonoscope analysis benchmark")
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Use an 8 s clip and fewer runs for fast CI runs",
    )
    args = parser.parse_args()

    if args.quick:
        SECONDS = 8.0
        WARMUP, RUNS = 1, 3
        label = "8 s clip (quick mode)"
    else:
        SECONDS = 30.0
        WARMUP, RUNS = 2, 5
        label = "30 s clip (full mode)"

    print(f"\nSonoscope Analysis Benchmark  ({label})")
    print(f"Warm-up runs: {WARMUP}  |  Timed runs: {RUNS}")

    config = AnalysisConfig()
    y = _test_signal(SECONDS)
    policy = policy_for(SECONDS)
    results = {}

    # ------------------------------------------------------------------
    # 1. fft
    # ------------------------------------------------------------------
    _hdr("1. fft (4096 points)")
    frame = np.random.RandomState(0).randn(4096)
    t = _timeit(fft, frame, warmup=WARMUP, runs=RUNS * 20)
    results["fft_4096"] = t
    print(f"  {_stats(t)}")

    # ------------------------------------------------------------------
    # 2. statistics
    # ------------------------------------------------------------------
    _hdr("2. statistics")
    extractor = StatisticsExtractor(config)
    t = _timeit(extractor.extract, y, SR, warmup=WARMUP, runs=RUNS)
    results["statistics"] = t
    print(f"  {_stats(t)}")

    # ------------------------------------------------------------------
    # 3. onsets + peaks + tempo
    # ------------------------------------------------------------------
    _hdr("3. onset detection")
    detector = OnsetDetector(config)
    t = _timeit(detector.detect, y, SR, policy, warmup=WARMUP, runs=RUNS)
    results["onsets"] = t
    print(f"  {_stats(t)}")

    onsets = detector.detect(y, SR, policy)
    peaks = PeakPicker(policy).pick(onsets)
    estimator = TempoEstimator(config)
    _hdr("4. peak picking + tempo")
    t = _timeit(
        lambda: estimator.estimate(PeakPicker(policy).pick(onsets), SR, SECONDS, policy),
        warmup=WARMUP, runs=RUNS,
    )
    results["tempo"] = t
    tempo = estimator.estimate(peaks, SR, SECONDS, policy)
    print(f"  {_stats(t)}")
    print(f"  {len(onsets)} onsets -> {len(peaks)} peaks -> {tempo.bpm:.1f} BPM"
          f" (conf {tempo.confidence:.2f})")

    # ------------------------------------------------------------------
    # 5. key + tonality
    # ------------------------------------------------------------------
    _hdr("5. key + tonality")
    tonal = TonalAnalyzer(config)
    t = _timeit(tonal.detect_key, y, SR, warmup=WARMUP, runs=RUNS)
    results["key"] = t
    print(f"  key:      {_stats(t)}")
    t = _timeit(tonal.detect_tonality, y, SR, warmup=WARMUP, runs=RUNS)
    results["tonality"] = t
    print(f"  tonality: {_stats(t)}")

    # ------------------------------------------------------------------
    # 6. full pipeline
    # ------------------------------------------------------------------
    _hdr("6. full pipeline")
    pipeline = AudioPipeline(config)
    t = _timeit(pipeline.run, y, SR, warmup=1, runs=RUNS)
    results["pipeline"] = t
    print(f"  {_stats(t)}  ({SECONDS / np.mean(t):.1f}x realtime)")

    # ------------------------------------------------------------------
    # Parity validation
    # ------------------------------------------------------------------
    _hdr("Parity validation (fft vs numpy.fft)")
    rng = np.random.RandomState(1)
    REL_MAX = 1e-9

    rows = {n: _parity_fft(n, rng) for n in (8, 1000, 1024, 4096, 65536)}
    print(f"  {'n':>8}  {'max':>10}  {'rel':>10}  status")
    print(f"  {'-'*8}  {'-'*10}  {'-'*10}  ------")
    for n, r in rows.items():
        status = "PASS" if r["rel_diff"] <= REL_MAX else "FAIL"
        print(f"  {n:>8}  {r['max_diff']:>10.2e}  {r['rel_diff']:>10.2e}  [{status}]")

    if all(r["rel_diff"] <= REL_MAX for r in rows.values()):
        print("\n  All parity checks PASSED.")
    else:
        print("\n  !! PARITY FAILURES DETECTED !!")
        sys.exit(1)

    # ------------------------------------------------------------------
    # Summary table
    # ------------------------------------------------------------------
    _hdr("Summary")
    name_w = max(len(name) for name in results) + 2
    print(f"  {'Stage':<{name_w}} Time (ms, mean)")
    print(f"  {'-'*name_w} ---------------")
    for name, times in results.items():
        print(f"  {name:<{name_w}} {np.mean(times)*1000:.1f}")

    print(f"\n{_SEP}\n")


if __name__ == "__main__":
    main()
