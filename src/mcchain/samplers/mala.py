"""Metropolis-adjusted Langevin algorithm."""

from dataclasses import dataclass, replace

import numpy as np

from ..utils.types import Capability, FloatArray
from .base import (
    Sampler,
    StepDiagnostics,
    Transition,
    acceptance_probability,
    accept_log_ratio,
    adapt_log_scale,
    check_finite,
    check_log_density,
)


@dataclass(frozen=True)
class MALAState:
    """Adaptive state of MALA, caching the density and gradient at the current point."""

    log_density: float
    gradient: FloatArray
    log_step_size: float
    n_accepted: int = 0
    n_proposed: int = 0


def _log_q(to: FloatArray, mean: FloatArray, step_size: float) -> float:
    """Log-density (up to a constant) of the isotropic Langevin proposal."""
    return -0.5 * float(np.sum((to - mean) ** 2)) / step_size**2


@dataclass
class MALA(Sampler):
    """Metropolis-adjusted Langevin algorithm with optional step-size adaptation.

    Parameters
    ----------
    step_size : float
        Initial Langevin step size (proposal standard deviation).
    adapt : bool
        Whether to tune the step size toward ``target_rate``.
    target_rate : float
        Target acceptance rate for adaptation. Default is 0.574.
    """

    required_capabilities = frozenset({Capability.GRADIENT})

    step_size: float = 0.5
    adapt: bool = False
    target_rate: float = 0.574

    def init_state(self, params, model) -> MALAState:
        log_density = check_log_density(model.evaluate(params), params)
        gradient = check_finite(model.evaluate_gradient(params), "gradient", params)
        return MALAState(log_density, gradient, float(np.log(self.step_size)))

    def propose(self, params, state: MALAState, model, rng) -> Transition:
        eps = np.exp(state.log_step_size)
        mean_forward = params + 0.5 * eps**2 * state.gradient
        proposed = mean_forward + eps * rng.standard_normal(params.shape[0])

        log_density = check_log_density(model.evaluate(proposed), proposed)
        if np.isfinite(log_density):
            gradient = check_finite(model.evaluate_gradient(proposed), "gradient", proposed)
            mean_backward = proposed + 0.5 * eps**2 * gradient
            log_ratio = (
                log_density
                - state.log_density
                + _log_q(params, mean_backward, eps)
                - _log_q(proposed, mean_forward, eps)
            )
        else:
            gradient = state.gradient
            log_ratio = -np.inf
        accepted = accept_log_ratio(log_ratio, rng)

        log_step_size = state.log_step_size
        if self.adapt:
            log_step_size = adapt_log_scale(
                log_step_size, acceptance_probability(log_ratio), self.target_rate, state.n_proposed
            )

        if accepted:
            params = proposed
        else:
            log_density, gradient = state.log_density, state.gradient
        new_state = replace(
            state,
            log_density=log_density,
            gradient=gradient,
            log_step_size=log_step_size,
            n_accepted=state.n_accepted + int(accepted),
            n_proposed=state.n_proposed + 1,
        )
        return Transition(params, new_state, StepDiagnostics(accepted, log_density))
