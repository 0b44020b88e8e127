"""Behavioural tests for the built-in sampler kinds."""

import numpy as np
import pytest

from mcchain import NumericalError, bind, run
from mcchain.model import Model
from mcchain.samplers import HMC, MALA, MMALA, RandomWalkMetropolis, SmMALA, Transition


def log_normal(x):
    return -0.5 * float(np.sum(x**2))


def grad_normal(x):
    return -x


def identity_metric(x):
    return np.eye(x.shape[0])


def zero_metric_derivative(x):
    n = x.shape[0]
    return np.zeros((n, n, n))


def log_half_normal(x):
    """Standard normal restricted to the positive orthant."""
    if np.any(x <= 0):
        return -np.inf
    return log_normal(x)


@pytest.fixture
def normal_model() -> Model:
    """Two-dimensional standard normal with every capability."""
    return Model(
        log_normal,
        init=np.array([0.5, -0.5]),
        gradient=grad_normal,
        tensor=identity_metric,
        tensor_derivative=zero_metric_derivative,
    )


SAMPLERS = [
    RandomWalkMetropolis(scale=1.0),
    MALA(step_size=0.9),
    HMC(step_size=0.2, n_leapfrog=8),
    SmMALA(step_size=0.9),
    MMALA(step_size=0.9),
]


@pytest.mark.parametrize("sampler", SAMPLERS, ids=lambda s: s.name)
class TestSamplerContract:
    """Every sampler kind honours the same step contract."""

    def test_propose_is_deterministic(self, sampler, normal_model) -> None:
        params = normal_model.init
        state = sampler.init_state(params, normal_model)

        first = sampler.propose(params, state, normal_model, np.random.default_rng(3))
        second = sampler.propose(params, state, normal_model, np.random.default_rng(3))

        assert isinstance(first, Transition)
        assert np.array_equal(first.params, second.params)
        assert first.diagnostics == second.diagnostics

    def test_state_not_mutated(self, sampler, normal_model) -> None:
        params = normal_model.init.copy()
        state = sampler.init_state(params, normal_model)
        before = repr(state)

        for seed in range(5):
            sampler.propose(params, state, normal_model, np.random.default_rng(seed))

        assert repr(state) == before
        assert np.array_equal(params, normal_model.init)

    def test_counts_proposals(self, sampler, normal_model) -> None:
        chain = run(bind(normal_model, sampler), steps=50, seed=1)
        state = chain.suspended_state.sampler_state
        assert state.n_proposed == 50
        assert state.n_accepted == int(np.sum(chain.diagnostics["accepted"]))

    def test_targets_standard_normal(self, sampler, normal_model) -> None:
        chain = run(bind(normal_model, sampler), steps=4000, burnin=200, seed=2024)
        samples = chain.samples

        assert samples.shape == (3800, 2)
        assert np.all(np.abs(samples.mean(axis=0)) < 0.25)
        assert np.all((samples.var(axis=0) > 0.6) & (samples.var(axis=0) < 1.5))
        assert 0.0 < chain.acceptance_rate < 1.0

    def test_log_density_diagnostic(self, sampler, normal_model) -> None:
        chain = run(bind(normal_model, sampler), steps=20, seed=5)
        expected = [log_normal(x) for x in chain.samples]
        assert np.allclose(chain.diagnostics["log_density"], expected)


class TestZeroDensity:
    """Proposals outside the support are rejected, not errors."""

    def test_random_walk_stays_in_support(self) -> None:
        m = Model(log_half_normal, init=np.array([0.1, 0.1]))
        chain = run(bind(m, RandomWalkMetropolis(scale=2.0)), steps=500, seed=9)

        assert chain.error is None
        assert np.all(chain.samples > 0)
        assert not np.all(chain.diagnostics["accepted"])

    def test_random_walk_accepts_zero_density_start(self) -> None:
        m = Model(log_half_normal, init=np.array([-1.0, 1.0]))
        chain = run(bind(m, RandomWalkMetropolis(scale=2.0)), steps=500, seed=9)

        assert chain.error is None
        assert chain.n_kept == 500
        # once inside the support the chain never leaves it
        assert np.all(chain.samples[-100:] > 0)

    def test_mala_stays_in_support(self) -> None:
        m = Model(log_half_normal, init=np.array([0.1, 0.1]), gradient=grad_normal)
        chain = run(bind(m, MALA(step_size=1.5)), steps=300, seed=9)
        assert np.all(chain.samples > 0)

    def test_hmc_stays_in_support(self) -> None:
        m = Model(log_half_normal, init=np.array([0.1, 0.1]), gradient=grad_normal)
        chain = run(bind(m, HMC(step_size=0.5, n_leapfrog=5)), steps=300, seed=9)
        assert np.all(chain.samples > 0)

    def test_manifold_stays_in_support(self) -> None:
        m = Model(
            log_half_normal,
            init=np.array([0.1, 0.1]),
            gradient=grad_normal,
            tensor=identity_metric,
        )
        chain = run(bind(m, SmMALA(step_size=1.5)), steps=300, seed=9)
        assert np.all(chain.samples > 0)

    def test_manifold_rejects_zero_density_start(self) -> None:
        m = Model(
            log_half_normal,
            init=np.array([-1.0, 1.0]),
            gradient=grad_normal,
            tensor=identity_metric,
        )
        with pytest.raises(NumericalError, match="zero density"):
            SmMALA().init_state(m.init, m)


class TestNumericalErrors:
    """Non-finite evaluations raise NumericalError carrying the offending point."""

    def test_nan_log_density(self) -> None:
        m = Model(lambda x: np.nan, init=np.zeros(2))
        with pytest.raises(NumericalError) as excinfo:
            RandomWalkMetropolis().init_state(m.init, m)
        assert np.array_equal(excinfo.value.params, [0.0, 0.0])

    def test_positive_infinite_log_density(self) -> None:
        m = Model(lambda x: np.inf, init=np.zeros(2))
        with pytest.raises(NumericalError):
            RandomWalkMetropolis().init_state(m.init, m)

    def test_non_finite_gradient(self) -> None:
        m = Model(log_normal, init=np.zeros(2), gradient=lambda x: np.full(2, np.inf))
        with pytest.raises(NumericalError, match="gradient"):
            MALA().init_state(m.init, m)

    def test_indefinite_metric(self) -> None:
        m = Model(
            log_normal,
            init=np.zeros(2),
            gradient=grad_normal,
            tensor=lambda x: -np.eye(2),
        )
        with pytest.raises(NumericalError, match="positive definite"):
            SmMALA().init_state(m.init, m)


class TestAdaptation:
    """Step-size adaptation lives in the sampler state."""

    def test_random_walk_scale_grows(self) -> None:
        m = Model(log_normal, init=np.zeros(2))
        sampler = RandomWalkMetropolis(scale=0.01, adapt=True)
        chain = run(bind(m, sampler), steps=2000, seed=4)

        assert chain.suspended_state.sampler_state.log_scale > np.log(0.01) + 1.0
        # the sampler itself holds only configuration
        assert sampler.scale == 0.01

    def test_mala_step_size_shrinks(self) -> None:
        m = Model(log_normal, init=np.zeros(2), gradient=grad_normal)
        chain = run(bind(m, MALA(step_size=10.0, adapt=True)), steps=2000, seed=4)
        assert chain.suspended_state.sampler_state.log_step_size < np.log(10.0)

    def test_no_adaptation_by_default(self) -> None:
        m = Model(log_normal, init=np.zeros(2))
        chain = run(bind(m, RandomWalkMetropolis(scale=0.3)), steps=100, seed=4)
        assert chain.suspended_state.sampler_state.log_scale == pytest.approx(np.log(0.3))
