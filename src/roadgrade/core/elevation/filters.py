"""
Longitudinal low-pass filters for road elevation profiles.

Both filters run in linear time over the profile and preserve its length.
"""

import logging
import math

import numpy as np
from numpy.typing import NDArray
from scipy import signal

logger = logging.getLogger(__name__)

MIN_CUTOFF = 0.001
MAX_CUTOFF = 0.99
MAX_SLOPE_ITERATIONS = 10


def box_filter(values: NDArray[np.float64], window: int) -> NDArray[np.float64]:
    """
    Centered moving average computed from prefix sums.

    Near the ends the window is clamped to the available samples, so the
    first and last outputs average fewer values instead of padding.

    Args:
        values: 1D profile
        window: Window size in samples (half window = window // 2)

    Returns:
        Smoothed profile
    """
    values = np.asarray(values, dtype=np.float64)
    n = len(values)
    half = window // 2
    if n == 0 or half <= 0:
        return values.copy()
    if np.ptp(values) == 0:
        return values.copy()

    prefix = np.concatenate([[0.0], np.cumsum(values)])
    idx = np.arange(n)
    lo = np.maximum(idx - half, 0)
    hi = np.minimum(idx + half, n - 1)
    return (prefix[hi + 1] - prefix[lo]) / (hi - lo + 1)


def butterworth_cutoff(window: int) -> float:
    """Normalized cutoff (fraction of Nyquist) for a window in samples."""
    return float(np.clip(2.0 / max(window, 1), MIN_CUTOFF, MAX_CUTOFF))


def butterworth_filter(values: NDArray[np.float64], window: int, order: int = 3) -> NDArray[np.float64]:
    """
    Zero-phase Butterworth low-pass of an elevation profile.

    Higher orders give a flatter passband and sharper rolloff, which keeps
    long grades intact while removing short bumps. The profile is filtered
    forward and backward with cascaded second-order sections; filter state
    starts from the edge samples so the ends do not droop.

    Args:
        values: 1D profile
        window: Smoothing window in samples, sets the cutoff to 2 / window
        order: Filter order (1-8)

    Returns:
        Smoothed profile; profiles shorter than 3 samples are returned unchanged
    """
    values = np.asarray(values, dtype=np.float64)
    n = len(values)
    if n < 3:
        return values.copy()
    if np.ptp(values) == 0:
        # Already level
        return values.copy()
    if not 1 <= order <= 8:
        raise ValueError(f"Butterworth order must be between 1 and 8, got {order}")

    sos = signal.butter(order, butterworth_cutoff(window), btype="low", output="sos")
    padlen = min(3 * (2 * len(sos) + 1), n - 1)
    return signal.sosfiltfilt(sos, values, padtype="constant", padlen=padlen)


def enforce_max_slope(
    values: NDArray[np.float64], spacing: float, max_slope_degrees: float
) -> NDArray[np.float64]:
    """
    Clamp a profile so consecutive samples never rise or fall more than allowed.

    Alternates forward and backward passes until the profile satisfies the
    limit or the iteration cap is reached.

    Args:
        values: 1D profile
        spacing: Distance between samples (meters)
        max_slope_degrees: Longitudinal slope cap

    Returns:
        Clamped profile
    """
    result = np.asarray(values, dtype=np.float64).copy()
    if len(result) < 2 or spacing <= 0:
        return result

    max_rise = math.tan(math.radians(max_slope_degrees)) * spacing
    for iteration in range(MAX_SLOPE_ITERATIONS):
        changed = False
        for i in range(1, len(result)):
            low, high = result[i - 1] - max_rise, result[i - 1] + max_rise
            if result[i] > high or result[i] < low:
                result[i] = min(max(result[i], low), high)
                changed = True
        for i in range(len(result) - 2, -1, -1):
            low, high = result[i + 1] - max_rise, result[i + 1] + max_rise
            if result[i] > high or result[i] < low:
                result[i] = min(max(result[i], low), high)
                changed = True
        if not changed:
            break
    else:
        logger.debug(f"Max slope enforcement stopped after {MAX_SLOPE_ITERATIONS} iterations")

    return result
