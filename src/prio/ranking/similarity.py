"""Vector similarity primitives used by reflection re-ranking."""

from __future__ import annotations

import math
from typing import Callable, Sequence

import numpy as np

SimilarityFn = Callable[[Sequence[float], Sequence[float]], float]


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity of two vectors clamped into ``[0, 1]``.

    Empty, zero-norm, or mismatched vectors have no similarity signal and
    score ``0.0``.
    """
    left_array = np.asarray(left, dtype="float64")
    right_array = np.asarray(right, dtype="float64")
    if left_array.ndim != 1 or left_array.shape != right_array.shape or left_array.size == 0:
        return 0.0
    norm = float(np.linalg.norm(left_array) * np.linalg.norm(right_array))
    if norm == 0.0 or not math.isfinite(norm):
        return 0.0
    value = float(np.dot(left_array, right_array) / norm)
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))
