"""
Analysis configuration and the duration-dependent policy table.

Short clips need fine temporal resolution while long clips can trade it for
speed, so frame sizes, tempo search windows and snapping tolerances all
depend on the clip length. Those choices live in one table here instead of
being scattered across the stages.
"""

from dataclasses import dataclass


@dataclass
class AnalysisConfig:
    """Tunable constants shared by every analysis stage."""

    # Tempo band applied by every estimator and by the final clamp
    min_bpm: float = 60.0
    max_bpm: float = 200.0
    default_bpm: float = 120.0
    default_confidence: float = 0.1

    # Onset detection: no onsets below this buffer RMS (about -80 dBFS)
    onset_rms_floor: float = 1e-4

    # Statistics
    stats_sample_cap: int = 50_000
    centroid_frames: int = 10
    centroid_frame_size: int = 2048

    # Tonal analysis
    key_min_hz: float = 80.0
    key_max_hz: float = 2000.0
    key_max_segment: int = 65_536
    chroma_frame_size: int = 4096
    chroma_hop_size: int = 2048
    chroma_max_frames: int = 64

    # Display
    waveform_target_points: int = 4000


@dataclass(frozen=True)
class AnalysisPolicy:
    """Per-duration analysis parameters. Build with :func:`policy_for`."""

    frame_size: int
    hop_size: int
    is_short: bool
    autocorr_resolution: float   # seconds per onset-strength cell
    snap_tolerance: float        # BPM
    refine_window: float         # +/- BPM scanned by beat refinement
    refine_step: float           # BPM
    beat_tolerance: float        # fraction of the beat period
    min_peak_interval: float     # seconds


SHORT_CLIP_SECONDS = 2.0
MEDIUM_CLIP_SECONDS = 10.0


def policy_for(duration_seconds: float) -> AnalysisPolicy:
    """
    Return the analysis policy for a clip of the given duration.

    Args:
        duration_seconds: Length of the analysed buffer in seconds.

    Returns:
        AnalysisPolicy with 75%-overlap framing and tempo search settings.
    """
    if duration_seconds < SHORT_CLIP_SECONDS:
        return AnalysisPolicy(
            frame_size=256,
            hop_size=64,
            is_short=True,
            autocorr_resolution=0.005,
            snap_tolerance=3.0,
            refine_window=6.0,
            refine_step=0.25,
            beat_tolerance=0.15,
            min_peak_interval=0.08,
        )
    if duration_seconds < MEDIUM_CLIP_SECONDS:
        frame_size, hop_size = 512, 128
    else:
        frame_size, hop_size = 1024, 256

    return AnalysisPolicy(
        frame_size=frame_size,
        hop_size=hop_size,
        is_short=False,
        autocorr_resolution=0.01,
        snap_tolerance=2.0,
        refine_window=3.0,
        refine_step=0.5,
        beat_tolerance=0.1,
        min_peak_interval=0.1,
    )
