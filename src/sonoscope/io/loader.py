"""
Audio file decoding.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import librosa
import numpy as np

logger = logging.getLogger(__name__)


def load_audio(
    audio_path: Union[str, Path],
    sr: Optional[int] = None,
) -> tuple[np.ndarray, int]:
    """
    Load an audio file as a mono buffer.

    Args:
        audio_path: Path to audio file (wav, mp3, flac).
        sr: Target sample rate. None preserves original.

    Returns:
        Tuple of (audio_signal, sample_rate).

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    audio_path = Path(audio_path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {audio_path}")

    y, sr_out = librosa.load(audio_path, sr=sr, mono=True)
    logger.debug("Loaded %s: %d samples at %d Hz", audio_path, len(y), sr_out)
    return y, int(sr_out)
