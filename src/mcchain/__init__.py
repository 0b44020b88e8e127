"""mcchain: resumable Markov chain Monte Carlo chains.

mcchain composes three independent pieces into a chain that can be paused,
resumed and run in populations:

- A model: a log-density with optional gradient, metric tensor and tensor
  derivative
- A sampler: a stateful proposal algorithm declaring the model capabilities
  it needs
- A runner: the loop that drives the sampler, applies burn-in and thinning,
  and records samples and diagnostics

Examples
--------
Basic usage:

    >>> import numpy as np
    >>> from mcchain import bind, model, run
    >>> from mcchain.samplers import MALA
    >>> m = model(lambda x: -0.5 * np.sum(x**2), init=np.zeros(2),
    ...           gradient=lambda x: -x)
    >>> chain = run(bind(m, MALA(step_size=0.8)), steps=1000, burnin=100)
    >>> chain = run(chain, steps=1000)  # continue where it stopped

The same with the infix form:

    >>> chain = m * MALA(step_size=0.8) * range(101, 1001)
"""

from .chain import Chain, ChainStatus, Schedule
from .model import Model, model
from .runners import (
    MultiChain,
    SMCChain,
    resume,
    resume_population,
    resume_smc,
    run,
    run_population,
    run_smc,
)
from .task import Task, bind
from .utils.exceptions import (
    CapabilityError,
    DimensionMismatch,
    InputError,
    MCChainError,
    NumericalError,
    ScheduleError,
)
from .utils.types import Capability

__all__ = [
    "Model",
    "model",
    "Task",
    "bind",
    "Chain",
    "ChainStatus",
    "Schedule",
    "run",
    "resume",
    "run_population",
    "resume_population",
    "MultiChain",
    "run_smc",
    "resume_smc",
    "SMCChain",
    "Capability",
    "MCChainError",
    "InputError",
    "CapabilityError",
    "NumericalError",
    "ScheduleError",
    "DimensionMismatch",
]
