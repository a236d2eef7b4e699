"""
Spectral kernel: radix-2 FFT plus magnitude and phase helpers.

The transform zero-pads its input to the next power of two but hands back
only as many bins as there were input samples. Bin ``k`` still corresponds
to ``k * sample_rate / padded_length``; callers that convert bins to Hz must
use the padded length (see :func:`bin_frequencies`).
"""

import numpy as np


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def fft(signal) -> np.ndarray:
    """
    Discrete Fourier transform by radix-2 decimation in time.

    The even/odd recursion is unrolled level by level: every length-1
    sub-transform is the sample itself, and each level combines pairs of
    half-length transforms with the twiddles ``exp(-2j*pi*k/N)``. All
    sub-transforms of one level are combined in a single vectorised
    butterfly.

    Args:
        signal: Real or complex 1-D sequence of any length.

    Returns:
        Complex128 array with the same length as ``signal``.
    """
    x = np.asarray(signal)
    n = len(x)
    if n == 0:
        return np.zeros(0, dtype=np.complex128)

    size = next_power_of_two(n)
    padded = np.zeros(size, dtype=np.complex128)
    padded[:n] = x

    # Row r, column c holds bin r of the sub-transform over padded[c::columns]
    spectrum = padded.reshape((1, size))
    while spectrum.shape[0] < size:
        half = spectrum.shape[1] // 2
        even = spectrum[:, :half]
        odd = spectrum[:, half:]
        m = spectrum.shape[0]
        twiddle = np.exp(-1j * np.pi * np.arange(m) / m)[:, None]
        spectrum = np.vstack([even + twiddle * odd, even - twiddle * odd])

    return spectrum.ravel()[:n]


def magnitude(spectrum: np.ndarray) -> np.ndarray:
    """Per-bin magnitude ``sqrt(re^2 + im^2)``."""
    spectrum = np.asarray(spectrum)
    return np.sqrt(spectrum.real ** 2 + spectrum.imag ** 2)


def phase(spectrum: np.ndarray) -> np.ndarray:
    """Per-bin phase ``atan2(im, re)`` in radians."""
    spectrum = np.asarray(spectrum)
    return np.arctan2(spectrum.imag, spectrum.real)


def bin_frequencies(n_bins: int, padded_length: int, sample_rate: int) -> np.ndarray:
    """Centre frequency in Hz of the first ``n_bins`` bins of a padded FFT."""
    return np.arange(n_bins) * float(sample_rate) / padded_length
