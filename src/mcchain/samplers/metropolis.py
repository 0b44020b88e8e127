"""Random-walk Metropolis sampler."""

from dataclasses import dataclass, replace

import numpy as np

from .base import (
    Sampler,
    StepDiagnostics,
    Transition,
    acceptance_probability,
    accept_log_ratio,
    adapt_log_scale,
    check_log_density,
)


@dataclass(frozen=True)
class RWMState:
    """Adaptive state of the random-walk Metropolis sampler."""

    log_density: float
    log_scale: float
    n_accepted: int = 0
    n_proposed: int = 0


@dataclass
class RandomWalkMetropolis(Sampler):
    """Gaussian random-walk Metropolis with optional scale adaptation.

    Parameters
    ----------
    scale : float
        Initial standard deviation of the isotropic Gaussian proposal.
    adapt : bool
        Whether to tune the scale toward ``target_rate`` during sampling.
    target_rate : float
        Target acceptance rate for adaptation. Default is 0.234.
    """

    scale: float = 1.0
    adapt: bool = False
    target_rate: float = 0.234

    def init_state(self, params, model) -> RWMState:
        log_density = check_log_density(model.evaluate(params), params)
        return RWMState(log_density=log_density, log_scale=float(np.log(self.scale)))

    def propose(self, params, state: RWMState, model, rng) -> Transition:
        scale = np.exp(state.log_scale)
        proposed = params + scale * rng.standard_normal(params.shape[0])
        log_density = check_log_density(model.evaluate(proposed), proposed)

        log_ratio = log_density - state.log_density
        accepted = accept_log_ratio(log_ratio, rng)

        log_scale = state.log_scale
        if self.adapt:
            log_scale = adapt_log_scale(
                log_scale, acceptance_probability(log_ratio), self.target_rate, state.n_proposed
            )

        if accepted:
            params = proposed
        else:
            log_density = state.log_density
        new_state = replace(
            state,
            log_density=log_density,
            log_scale=log_scale,
            n_accepted=state.n_accepted + int(accepted),
            n_proposed=state.n_proposed + 1,
        )
        return Transition(params, new_state, StepDiagnostics(accepted, log_density))
