"""Runners that drive samplers and record their output.

- Single chain: ``run`` a bound task (or continue a chain) with burn-in and
  thinning
- Population: independent chains, optionally in parallel, with isolated
  failures
- Sequential Monte Carlo: a weighted particle population moved through a
  sequence of bridge models
"""

from .population import MultiChain, resume_population, run_population
from .serial import resume, run
from .smc import SMCChain, resume_smc, run_smc

__all__ = [
    "run",
    "resume",
    "run_population",
    "resume_population",
    "MultiChain",
    "run_smc",
    "resume_smc",
    "SMCChain",
]
