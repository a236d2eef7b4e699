"""
Frame slicing and analysis windows.

Frames start at ``0, hop, 2*hop, ...`` and the last frame may run past the
end of the buffer, in which case it is zero-padded.
"""

import math
from typing import Iterator, Optional

import numpy as np
from scipy.signal import windows as scipy_windows


def hann(size: int) -> np.ndarray:
    """Periodic Hann window ``0.5 - 0.5*cos(2*pi*n/N)``."""
    return scipy_windows.hann(size, sym=False)


def blackman_harris(size: int) -> np.ndarray:
    """Periodic 4-term Blackman-Harris window."""
    return scipy_windows.blackmanharris(size, sym=False)


_WINDOWS = {
    "hann": hann,
    "blackman_harris": blackman_harris,
}


def get_window(name: str, size: int) -> np.ndarray:
    """
    Look up an analysis window by name.

    Args:
        name: "hann" or "blackman_harris".
        size: Window length in samples.

    Raises:
        ValueError: If the window name is unknown.
    """
    try:
        factory = _WINDOWS[name]
    except KeyError:
        raise ValueError(
            f"Unknown window '{name}'. Available: {sorted(_WINDOWS)}"
        ) from None
    return factory(size)


def frame_count(n_samples: int, frame_size: int, hop_size: int) -> int:
    """Number of frames :func:`iter_frames` yields for a buffer of n_samples."""
    if n_samples <= 0:
        return 0
    return 1 + math.ceil(max(0, n_samples - frame_size) / hop_size)


def iter_frames(
    buffer: np.ndarray,
    frame_size: int,
    hop_size: int,
    window: Optional[np.ndarray] = None,
) -> Iterator[tuple[int, np.ndarray]]:
    """
    Lazily slice a buffer into (optionally windowed) frames.

    Args:
        buffer: 1-D sample buffer.
        frame_size: Samples per frame.
        hop_size: Samples between frame starts.
        window: Optional window of length frame_size multiplied into each frame.

    Yields:
        (start_sample, frame) tuples. Each frame is a fresh array.
    """
    if hop_size <= 0 or frame_size <= 0:
        raise ValueError("frame_size and hop_size must be positive")
    if window is not None and len(window) != frame_size:
        raise ValueError("window length must equal frame_size")

    n = len(buffer)
    for i in range(frame_count(n, frame_size, hop_size)):
        start = i * hop_size
        chunk = buffer[start:start + frame_size]
        if len(chunk) < frame_size:
            frame = np.zeros(frame_size, dtype=np.float64)
            frame[:len(chunk)] = chunk
        else:
            frame = np.array(chunk, dtype=np.float64)
        if window is not None:
            frame *= window
        yield start, frame
