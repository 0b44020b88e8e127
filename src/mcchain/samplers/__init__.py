"""Sampling algorithms for mcchain.

Every sampler follows the same state-machine contract (see
:class:`mcchain.samplers.base.Sampler`) and declares the model capabilities
it requires:

- Random-walk Metropolis: no derivatives
- MALA and HMC: gradient
- Simplified manifold MALA: gradient and metric tensor
- Manifold MALA: gradient, metric tensor and its derivative
"""

from .base import Sampler, StepDiagnostics, Transition
from .hmc import HMC
from .mala import MALA
from .manifold import MMALA, SmMALA
from .metropolis import RandomWalkMetropolis

__all__ = [
    "Sampler",
    "StepDiagnostics",
    "Transition",
    "RandomWalkMetropolis",
    "MALA",
    "HMC",
    "SmMALA",
    "MMALA",
]
