"""
Blend curves mapping normalized shoulder distance to terrain weight.

All curves map [0, 1] onto [0, 1] monotonically with f(0) = 0 and f(1) = 1.
At 0 the road target fully applies, at 1 the original terrain is kept.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray

from roadgrade.models.parameters import BlendFunctionType


def blend_weight(t: ArrayLike, function_type: BlendFunctionType) -> NDArray[np.float64]:
    """
    Evaluate a blend curve.

    Args:
        t: Normalized distance, clamped to [0, 1]
        function_type: Curve shape

    Returns:
        Weight of the original terrain, same shape as ``t``
    """
    t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
    if function_type == BlendFunctionType.LINEAR:
        return t
    if function_type == BlendFunctionType.COSINE:
        return 0.5 - 0.5 * np.cos(np.pi * t)
    if function_type == BlendFunctionType.CUBIC:
        return t * t * (3.0 - 2.0 * t)
    if function_type == BlendFunctionType.QUINTIC:
        return t * t * t * (t * (6.0 * t - 15.0) + 10.0)
    raise ValueError(f"Unknown blend function: {function_type}")
