"""Common contract and helpers for samplers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from ..utils.exceptions import NumericalError
from ..utils.types import Capability, FloatArray, Params


@dataclass(frozen=True)
class StepDiagnostics:
    """Per-step record kept alongside each recorded sample.

    ``weight`` is only set for importance-weighted (sequential Monte Carlo) rows.
    """

    accepted: bool
    log_density: float
    weight: float | None = None


@dataclass(frozen=True)
class Transition:
    """Outcome of one sampler step.

    ``params`` is the chain position after the accept/reject decision, i.e. it
    is the previous position if the proposal was rejected.
    """

    params: Params
    state: Any
    diagnostics: StepDiagnostics


class Sampler(ABC):
    """A stateful proposal-generating algorithm.

    Subclasses declare the model capabilities they need in
    ``required_capabilities`` and keep every adaptive quantity in the state
    object returned by :meth:`init_state`. The sampler instance itself only
    holds static configuration, so the same instance can drive many chains.
    """

    required_capabilities: ClassVar[frozenset[Capability]] = frozenset()

    @property
    def name(self) -> str:
        """Name of the sampler kind."""
        return type(self).__name__

    @abstractmethod
    def init_state(self, params: Params, model) -> Any:
        """Build a fresh sampler state at ``params``.

        Raises
        ------
        NumericalError
            If the model cannot be evaluated at ``params``.
        """

    @abstractmethod
    def propose(self, params: Params, state: Any, model, rng: np.random.Generator) -> Transition:
        """Perform one proposal and accept/reject step.

        Must be a deterministic function of its arguments and the draws taken
        from ``rng``; it must not mutate ``state``.

        Raises
        ------
        NumericalError
            If an evaluation at the current or proposed point is non-finite.
        """


def check_log_density(value: float, params: Params) -> float:
    """Validate a log-density evaluation.

    ``-inf`` is a legitimate zero density; NaN and ``+inf`` are errors.
    """
    if np.isnan(value) or value == np.inf:
        raise NumericalError(f"Non-finite log-density {value}", params=np.array(params))
    return value


def check_finite(values: FloatArray, what: str, params: Params) -> FloatArray:
    """Validate a gradient or tensor evaluation."""
    if not np.all(np.isfinite(values)):
        raise NumericalError(f"Non-finite {what}", params=np.array(params))
    return values


def accept_log_ratio(log_ratio: float, rng: np.random.Generator) -> bool:
    """Metropolis-Hastings acceptance on a log acceptance ratio.

    A uniform draw is always consumed so that the number of draws per step
    does not depend on the outcome.
    """
    u = rng.random()
    if np.isnan(log_ratio) or log_ratio == -np.inf:
        return False
    return bool(log_ratio >= np.log(u))


def acceptance_probability(log_ratio: float) -> float:
    if np.isnan(log_ratio):
        return 0.0
    return float(np.exp(min(0.0, log_ratio)))


def adapt_log_scale(
    log_scale: float,
    accept_prob: float,
    target_rate: float,
    n_iter: int,
    decay: float = 0.6,
) -> float:
    """Robbins-Monro update of a log step size toward a target acceptance rate.

    The gain decays as ``n_iter ** -decay`` so the adaptation vanishes.
    """
    gain = (n_iter + 1) ** -decay
    return log_scale + gain * (accept_prob - target_rate)
