"""
Vector Similarity Helpers

Pure functions shared by the semantic cache and the vector store adapter.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity dot(a, b) / (|a| * |b|).

    A zero-norm vector on either side yields 0.0.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")

    if va.shape != vb.shape:
        raise ValueError(
            f"Vector dimensionality mismatch: {va.shape} vs {vb.shape}"
        )

    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0

    return float(np.dot(va, vb) / norm)


def distance_to_similarity(distance: float) -> float:
    """Convert a backend cosine distance into a similarity clamped to [0, 1]."""
    return min(1.0, max(0.0, 1.0 - float(distance)))
