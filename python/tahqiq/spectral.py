"""
Spectral and statistics toolkit shared by the analyzers.

Every function here is pure and total: empty, length-1, or otherwise
degenerate input yields a neutral value (0 or an empty array) instead of
raising, so a malformed window can never crash an analyzer.
"""
from typing import Iterable, Sequence, Union

import numpy as np
from scipy.fft import fft

ArrayLike = Union[Sequence[float], np.ndarray, Iterable[float]]


def _as_array(values: ArrayLike) -> np.ndarray:
    if values is None:
        return np.zeros(0, dtype=np.float64)
    arr = np.asarray(list(values) if not hasattr(values, '__len__') else values,
                     dtype=np.float64)
    return arr.ravel()


# ---------------------------------------------------------------------------
# Fourier transforms
# ---------------------------------------------------------------------------

def dft(signal: ArrayLike) -> np.ndarray:
    """Complex discrete Fourier transform (unnormalized, like the direct sum)."""
    x = _as_array(signal)
    if x.size == 0:
        return np.zeros(0, dtype=np.complex128)
    return fft(x)


def magnitude_spectrum(signal: ArrayLike, half: bool = False) -> np.ndarray:
    """|X_k| for every bin, or only bins k < N/2 when ``half`` is set."""
    spectrum = np.abs(dft(signal))
    if half:
        spectrum = spectrum[:(spectrum.size + 1) // 2]
    return spectrum


def power_spectrum(signal: ArrayLike) -> np.ndarray:
    """|X_k|^2 on the raw (unnormalized) scale."""
    return np.abs(dft(signal)) ** 2


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------

def mean(values: ArrayLike) -> float:
    x = _as_array(values)
    if x.size == 0:
        return 0.0
    return float(np.mean(x))


def variance(values: ArrayLike) -> float:
    """Population variance."""
    x = _as_array(values)
    if x.size < 2:
        return 0.0
    return float(np.var(x))


def std(values: ArrayLike) -> float:
    """Population standard deviation."""
    return float(np.sqrt(variance(values)))


def rms(values: ArrayLike) -> float:
    x = _as_array(values)
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


def pearson(a: ArrayLike, b: ArrayLike) -> float:
    """Pearson correlation over the common prefix of ``a`` and ``b``.

    Returns 0 when either side is empty or has zero variance.
    """
    x = _as_array(a)
    y = _as_array(b)
    n = min(x.size, y.size)
    if n < 2:
        return 0.0
    x = x[:n]
    y = y[:n]
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    dx = x - x.mean()
    dy = y - y.mean()
    denom = np.sqrt(np.sum(dx * dx) * np.sum(dy * dy))
    if denom == 0 or not np.isfinite(denom):
        return 0.0
    return float(np.clip(np.sum(dx * dy) / denom, -1.0, 1.0))


def shannon_entropy(values: ArrayLike, normalized: bool = True) -> float:
    """Entropy (bits) of the distribution ``values / sum(values)``.

    With ``normalized`` the result is divided by log2(len(values)), giving
    a value in [0, 1].
    """
    x = _as_array(values)
    if x.size < 2:
        return 0.0
    total = float(np.sum(x[x > 0]))
    if total <= 0:
        return 0.0
    p = x[x > 0] / total
    entropy = float(-np.sum(p * np.log2(p)))
    if normalized:
        return entropy / float(np.log2(x.size))
    return entropy


def euclidean_distance(p: Sequence[float], q: Sequence[float]) -> float:
    """Planar distance between the (x, y) parts of two points."""
    return float(np.hypot(q[0] - p[0], q[1] - p[1]))


# ---------------------------------------------------------------------------
# Moving / short-time statistics
# ---------------------------------------------------------------------------

def frame_starts(length: int, window: int, hop: int) -> range:
    """Start offsets of windows that fit strictly inside ``length``."""
    if window <= 0 or hop <= 0:
        return range(0)
    return range(0, max(0, length - window), hop)


def zero_crossing_rate(frame: ArrayLike) -> float:
    """Sign changes per sample, treating 0 as positive."""
    x = _as_array(frame)
    if x.size < 2:
        return 0.0
    positive = x >= 0
    return float(np.count_nonzero(positive[:-1] != positive[1:])) / x.size


def short_time_rms(signal: ArrayLike, window: int, hop: int) -> np.ndarray:
    x = _as_array(signal)
    return np.array([rms(x[i:i + window]) for i in frame_starts(x.size, window, hop)])


def short_time_zcr(signal: ArrayLike, window: int, hop: int) -> np.ndarray:
    x = _as_array(signal)
    return np.array([zero_crossing_rate(x[i:i + window])
                     for i in frame_starts(x.size, window, hop)])


def moving_average(values: ArrayLike, window: int = 5) -> np.ndarray:
    x = _as_array(values)
    if window <= 1 or x.size < window:
        return x
    return np.convolve(x, np.ones(window) / window, mode='valid')
