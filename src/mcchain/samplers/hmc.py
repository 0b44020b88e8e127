"""Hamiltonian Monte Carlo with a leapfrog integrator."""

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
class HMCState:
    """Adaptive state of HMC."""

    log_density: float
    gradient: FloatArray
    log_step_size: float
    n_accepted: int = 0
    n_proposed: int = 0


@dataclass
class HMC(Sampler):
    """Hamiltonian Monte Carlo with identity mass matrix.

    Parameters
    ----------
    step_size : float
        Initial leapfrog step size.
    n_leapfrog : int
        Number of leapfrog steps per proposal.
    adapt : bool
        Whether to tune the step size toward ``target_rate``.
    target_rate : float
        Target acceptance rate for adaptation. Default is 0.65.
    """

    required_capabilities = frozenset({Capability.GRADIENT})

    step_size: float = 0.1
    n_leapfrog: int = 10
    adapt: bool = False
    target_rate: float = 0.65

    def init_state(self, params, model) -> HMCState:
        log_density = check_log_density(model.evaluate(params), params)
        gradient = check_finite(model.evaluate_gradient(params), "gradient", params)
        return HMCState(log_density, gradient, float(np.log(self.step_size)))

    def propose(self, params, state: HMCState, model, rng) -> Transition:
        eps = np.exp(state.log_step_size)
        momentum = rng.standard_normal(params.shape[0])
        log_joint_current = state.log_density - 0.5 * float(momentum @ momentum)

        x, p, gradient = params.copy(), momentum.copy(), state.gradient
        log_density = state.log_density
        for _ in range(self.n_leapfrog):
            p = p + 0.5 * eps * gradient
            x = x + eps * p
            log_density = check_log_density(model.evaluate(x), x)
            if not np.isfinite(log_density):
                # left the support, reject the whole trajectory
                break
            gradient = check_finite(model.evaluate_gradient(x), "gradient", x)
            p = p + 0.5 * eps * gradient

        if np.isfinite(log_density):
            log_ratio = log_density - 0.5 * float(p @ p) - log_joint_current
        else:
            log_ratio = -np.inf
        accepted = accept_log_ratio(log_ratio, rng)

        log_step_size = state.log_step_size
        if self.adapt:
            log_step_size = adapt_log_scale(
                log_step_size, acceptance_probability(log_ratio), self.target_rate, state.n_proposed
            )

        if accepted:
            params = x
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
