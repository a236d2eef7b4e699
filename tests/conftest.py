"""Shared synthetic-signal fixtures."""

import librosa
import numpy as np
import pytest

TEST_SR = 22050


@pytest.fixture
def pure_sine():
    """Two seconds of a 440 Hz sine at half scale."""
    sr = TEST_SR
    y = 0.5 * librosa.tone(440.0, sr=sr, duration=2.0)
    return y, sr


@pytest.fixture
def click_track():
    """Ten seconds of clicks every 0.5 s (120 BPM)."""
    sr = TEST_SR
    duration = 10.0
    times = np.arange(0.0, duration, 0.5)
    y = librosa.clicks(
        times=times,
        sr=sr,
        click_freq=1000.0,
        click_duration=0.05,
        length=int(sr * duration),
    )
    return y, sr


@pytest.fixture
def c_major_chord():
    """A C-major chord (C4, E4, G4 plus C5) lasting 4 seconds."""
    sr = TEST_SR
    duration = 4.0
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    y = (
        0.3 * np.sin(2 * np.pi * 261.63 * t) +   # C4
        0.2 * np.sin(2 * np.pi * 329.63 * t) +   # E4
        0.2 * np.sin(2 * np.pi * 392.00 * t) +   # G4
        0.2 * np.sin(2 * np.pi * 523.25 * t)     # C5
    )
    return y, sr


@pytest.fixture
def silence():
    """Three seconds of digital silence."""
    sr = TEST_SR
    return np.zeros(int(sr * 3.0)), sr


@pytest.fixture
def white_noise():
    """Three seconds of seeded white noise at 0.3 scale."""
    sr = TEST_SR
    rng = np.random.RandomState(2)
    return 0.3 * rng.randn(int(sr * 3.0)), sr
