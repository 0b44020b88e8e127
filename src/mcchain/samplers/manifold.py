"""Riemannian manifold Langevin samplers.

Both samplers propose from ``N(mean(x), step_size**2 * G(x)^-1)`` where
``G`` is the model's metric tensor. The simplified variant (SmMALA) ignores
the curvature of the metric in the drift; the full variant (MMALA) includes
it and therefore needs the tensor derivative.

Reference: Girolami, M. & Calderhead, B. (2011). Riemann manifold Langevin and
Hamiltonian Monte Carlo methods. JRSS B, 73(2), 123-214.
"""

from dataclasses import dataclass, replace

import numpy as np
from scipy.linalg import cho_solve, solve_triangular

from ..utils.exceptions import NumericalError
from ..utils.types import Capability, FloatArray, Matrix
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
class Geometry:
    """Local quantities needed to propose from, or evaluate a proposal at, a point."""

    log_density: float
    gradient: FloatArray
    chol: Matrix  # lower Cholesky factor of the metric
    mean: FloatArray  # proposal mean for a move away from this point


@dataclass(frozen=True)
class ManifoldState:
    """Adaptive state of the manifold samplers."""

    geometry: Geometry
    log_step_size: float
    n_accepted: int = 0
    n_proposed: int = 0

    @property
    def log_density(self) -> float:
        return self.geometry.log_density


def _cholesky(metric: Matrix, params) -> Matrix:
    try:
        return np.linalg.cholesky(metric)
    except np.linalg.LinAlgError as e:
        raise NumericalError("Metric tensor is not positive definite", params=np.array(params)) from e


def _log_q(to: FloatArray, frm: Geometry, eps: float) -> float:
    """Log-density (up to a constant) of proposing ``to`` from the point described by ``frm``."""
    diff = to - frm.mean
    half_log_det = float(np.sum(np.log(np.diag(frm.chol))))
    mahalanobis = float(np.sum((frm.chol.T @ diff) ** 2))
    return half_log_det - 0.5 * mahalanobis / eps**2


@dataclass
class SmMALA(Sampler):
    """Simplified manifold MALA, using the metric tensor but not its derivative.

    Parameters
    ----------
    step_size : float
        Initial step size.
    adapt : bool
        Whether to tune the step size toward ``target_rate``.
    target_rate : float
        Target acceptance rate for adaptation. Default is 0.574.

    Notes
    -----
    Unlike the other samplers, the manifold samplers cannot start at a point
    of zero density: the proposal is built from the gradient and metric at
    the current point, which are undefined there. :meth:`init_state` raises
    NumericalError for a ``-inf`` initial log-density. Proposals that leave
    the support are rejected as usual.
    """

    required_capabilities = frozenset({Capability.GRADIENT, Capability.TENSOR})

    step_size: float = 0.5
    adapt: bool = False
    target_rate: float = 0.574

    def _drift_correction(self, params, model, inverse_metric: Matrix) -> FloatArray:
        return np.zeros(params.shape[0])

    def geometry(self, params, model, eps: float) -> Geometry | None:
        """Evaluate the local geometry at ``params``; None outside the support."""
        log_density = check_log_density(model.evaluate(params), params)
        if not np.isfinite(log_density):
            return None
        gradient = check_finite(model.evaluate_gradient(params), "gradient", params)
        metric = check_finite(model.evaluate_tensor(params), "tensor", params)
        chol = _cholesky(metric, params)
        inverse_metric = cho_solve((chol, True), np.eye(params.shape[0]))
        mean = (
            params
            + 0.5 * eps**2 * inverse_metric @ gradient
            + eps**2 * self._drift_correction(params, model, inverse_metric)
        )
        return Geometry(log_density, gradient, chol, mean)

    def init_state(self, params, model) -> ManifoldState:
        log_step_size = float(np.log(self.step_size))
        geometry = self.geometry(params, model, self.step_size)
        if geometry is None:
            raise NumericalError("Initial point has zero density", params=np.array(params))
        return ManifoldState(geometry, log_step_size)

    def propose(self, params, state: ManifoldState, model, rng) -> Transition:
        eps = np.exp(state.log_step_size)
        current = state.geometry
        if self.adapt:
            # the cached mean was computed with the previous step size
            current = self.geometry(params, model, eps)

        z = rng.standard_normal(params.shape[0])
        proposed = current.mean + eps * solve_triangular(current.chol.T, z, lower=False)
        geometry = self.geometry(proposed, model, eps)

        if geometry is not None:
            log_ratio = (
                geometry.log_density
                - current.log_density
                + _log_q(params, geometry, eps)
                - _log_q(proposed, current, eps)
            )
        else:
            log_ratio = -np.inf
        accepted = accept_log_ratio(log_ratio, rng)

        log_step_size = state.log_step_size
        if self.adapt:
            log_step_size = adapt_log_scale(
                log_step_size, acceptance_probability(log_ratio), self.target_rate, state.n_proposed
            )

        if accepted:
            params, current = proposed, geometry
        new_state = replace(
            state,
            geometry=current,
            log_step_size=log_step_size,
            n_accepted=state.n_accepted + int(accepted),
            n_proposed=state.n_proposed + 1,
        )
        return Transition(params, new_state, StepDiagnostics(accepted, current.log_density))


@dataclass
class MMALA(SmMALA):
    """Full manifold MALA, whose drift accounts for the change in the metric.

    Parameters are those of :class:`SmMALA`.
    """

    required_capabilities = frozenset(Capability)

    def _drift_correction(self, params, model, inverse_metric: Matrix) -> FloatArray:
        # derivatives[k] is dG/dx_k
        derivatives = check_finite(
            model.evaluate_tensor_derivative(params), "tensor derivative", params
        )
        curvature = np.einsum("ij,kjl,lm->kim", inverse_metric, derivatives, inverse_metric)
        traces = np.einsum("ij,kji->k", inverse_metric, derivatives)
        return -np.einsum("kik->i", curvature) + 0.5 * inverse_metric @ traces
