"""Importance-weight utilities for sequential Monte Carlo populations.

Weights are carried as log-weights; normalization is always a read-time
operation and never modifies the stored values.
"""

from enum import StrEnum, auto

import numpy as np
import numpy.typing as npt
from scipy.special import logsumexp

from ..utils.exceptions import InputError
from ..utils.types import FloatArray, IntArray


class ResampleMethod(StrEnum):
    """Available resampling schemes."""

    MULTINOMIAL = auto()
    SYSTEMATIC = auto()


def normalize_weights(log_weights: npt.ArrayLike) -> FloatArray:
    """Normalize log-weights to probabilities summing to one.

    Parameters
    ----------
    log_weights : array_like
        Unnormalized log-weights. ``-inf`` denotes a zero weight.

    Returns
    -------
    FloatArray
        Normalized weights. If every weight is zero the result is all zeros.
    """
    log_weights = np.asarray(log_weights, dtype=float)
    if log_weights.size == 0 or np.all(log_weights == -np.inf):
        return np.zeros_like(log_weights)
    return np.exp(log_weights - logsumexp(log_weights))


def effective_sample_size(log_weights: npt.ArrayLike) -> float:
    """Effective sample size ``1 / sum(w**2)`` of normalized weights.

    Ranges from 1 (all weight on one particle) to the population size
    (uniform weights); 0 if every weight is zero.
    """
    w = normalize_weights(log_weights)
    sum_sq = float(np.sum(w**2))
    if sum_sq == 0.0:
        return 0.0
    return 1.0 / sum_sq


def resample_indices(
    weights: npt.ArrayLike,
    rng: np.random.Generator,
    method: ResampleMethod | str = ResampleMethod.MULTINOMIAL,
) -> IntArray:
    """Draw particle indices with replacement in proportion to ``weights``.

    Parameters
    ----------
    weights : array_like
        Non-negative weights, not necessarily normalized.
    rng : numpy.random.Generator
        Random stream for the draw.
    method : ResampleMethod or str, optional
        ``"multinomial"`` or ``"systematic"``. Default is multinomial.

    Returns
    -------
    IntArray
        As many indices as there are weights.

    Raises
    ------
    InputError
        If the weights are negative or all zero, or the method is unknown.
    """
    weights = np.asarray(weights, dtype=float)
    if np.any(weights < 0) or not np.any(weights > 0):
        raise InputError("Resampling needs non-negative weights with a positive sum.")
    try:
        method = ResampleMethod(method)
    except ValueError as e:
        raise InputError(f"Unknown resampling method {method!r}.") from e

    n = weights.size
    p = weights / weights.sum()
    if method == ResampleMethod.MULTINOMIAL:
        return rng.choice(n, size=n, replace=True, p=p)

    positions = (rng.random() + np.arange(n)) / n
    cumulative = np.cumsum(p)
    cumulative[-1] = 1.0  # guard against round-off
    return np.searchsorted(cumulative, positions, side="right")
