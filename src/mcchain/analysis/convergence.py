"""Minimal chain diagnostics built on emcee's autocorrelation estimator."""

import numpy as np
from emcee.autocorr import integrated_time

from ..utils.types import FloatArray


def integrated_autocorr_time(chain, c: float = 5.0, tol: float = 50.0) -> FloatArray:
    """Integrated autocorrelation time of each parameter of a single chain.

    Uses :func:`emcee.autocorr.integrated_time` in quiet mode, so short
    chains give a (logged) rough estimate instead of raising.

    Parameters
    ----------
    chain : Chain
        A chain with recorded samples.
    c : float, optional
        Window size factor for automatic windowing. Default is 5.0.
    tol : float, optional
        Minimum number of autocorrelation times the chain should span for a
        reliable estimate. Default is 50.

    Returns
    -------
    FloatArray
        Autocorrelation time of each parameter, shape (n_dims,).
    """
    samples = chain.samples
    if samples.shape[0] < 2:
        return np.full(samples.shape[1], np.nan)
    return integrated_time(samples, c=c, tol=tol, quiet=True, has_walkers=False)


def chain_effective_sample_size(chain, **kwargs) -> FloatArray:
    """Number of recorded samples divided by the autocorrelation time, per parameter."""
    return chain.n_kept / integrated_autocorr_time(chain, **kwargs)


def acceptance_rate(chain) -> float:
    """Fraction of recorded steps whose proposal was accepted."""
    return chain.acceptance_rate
