"""
Vector similarity helpers for the scoring engine.
"""

import logging
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as sk_cosine_similarity

logger = logging.getLogger(__name__)


def as_vector(values: Sequence[float]) -> np.ndarray:
    """Convert to a finite float array; non-finite entries become 0."""
    if values is None:
        values = ()
    vector = np.asarray(values, dtype=float).ravel()
    return np.nan_to_num(vector, nan=0.0, posinf=0.0, neginf=0.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity (A.B) / (|A| |B|) in [-1, 1].

    Defined as 0.0 when either vector has zero norm or the lengths differ.
    """
    vec_a = as_vector(a)
    vec_b = as_vector(b)

    if vec_a.size == 0 or vec_a.shape != vec_b.shape:
        return 0.0
    if not np.any(vec_a) or not np.any(vec_b):
        return 0.0

    similarity = sk_cosine_similarity(vec_a.reshape(1, -1), vec_b.reshape(1, -1))[0][0]
    return float(np.clip(similarity, -1.0, 1.0))


def combined_vector(product) -> np.ndarray:
    """13-dimension vector: flavor profile followed by character axes."""
    return np.concatenate([
        as_vector(getattr(product, "flavor_profile", None)),
        as_vector(getattr(product, "character_axes", None)),
    ])


def is_zero_vector(values: Sequence[float]) -> bool:
    return not np.any(as_vector(values))
