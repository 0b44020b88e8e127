"""Analysis tools for chain and population results.

- Importance-weight normalization, effective sample size and resampling
- Autocorrelation-based diagnostics of single chains
"""

from .convergence import acceptance_rate, chain_effective_sample_size, integrated_autocorr_time
from .weights import ResampleMethod, effective_sample_size, normalize_weights, resample_indices

__all__ = [
    "ResampleMethod",
    "acceptance_rate",
    "chain_effective_sample_size",
    "effective_sample_size",
    "integrated_autocorr_time",
    "normalize_weights",
    "resample_indices",
]
