"""Tests for model construction and capability flags."""

import math

import numpy as np
import pytest
from scipy import stats

from mcchain.model import Model, is_partition, model
from mcchain.samplers import RandomWalkMetropolis
from mcchain.task import Task
from mcchain.utils.exceptions import InputError, NumericalError
from mcchain.utils.types import Capability


def log_normal(x):
    """Standard normal log-density, up to a constant."""
    return -0.5 * float(np.sum(x**2))


def grad_normal(x):
    return -x


def identity_metric(x):
    return np.eye(x.shape[0])


def zero_metric_derivative(x):
    n = x.shape[0]
    return np.zeros((n, n, n))


class TestModel:
    """Test the Model dataclass."""

    def test_no_capabilities(self) -> None:
        m = Model(log_normal, init=np.zeros(3))
        assert m.ndim == 3
        assert not m.has_gradient
        assert not m.has_tensor
        assert not m.has_tensor_derivative
        assert m.capabilities == frozenset()

    def test_all_capabilities(self) -> None:
        m = Model(
            log_normal,
            init=np.zeros(2),
            gradient=grad_normal,
            tensor=identity_metric,
            tensor_derivative=zero_metric_derivative,
        )
        assert m.capabilities == frozenset(Capability)
        assert m.has_gradient and m.has_tensor and m.has_tensor_derivative

    def test_gradient_only(self) -> None:
        m = Model(log_normal, init=np.zeros(2), gradient=grad_normal)
        assert m.capabilities == frozenset({Capability.GRADIENT})

    def test_tensor_requires_gradient(self) -> None:
        with pytest.raises(InputError, match="tensor must also provide a gradient"):
            Model(log_normal, init=np.zeros(2), tensor=identity_metric)

    def test_tensor_derivative_requires_tensor(self) -> None:
        with pytest.raises(InputError, match="tensor derivative must also provide a tensor"):
            Model(
                log_normal,
                init=np.zeros(2),
                gradient=grad_normal,
                tensor_derivative=zero_metric_derivative,
            )

    def test_init_is_converted_to_float_vector(self) -> None:
        m = Model(log_normal, init=[1, 2])
        assert m.init.dtype == float
        assert m.init.shape == (2,)

    def test_scalar_init(self) -> None:
        m = Model(log_normal, init=0.5)
        assert m.ndim == 1

    def test_matrix_init_rejected(self) -> None:
        with pytest.raises(InputError):
            Model(log_normal, init=np.zeros((2, 2)))

    def test_evaluate(self) -> None:
        m = Model(log_normal, init=np.zeros(2), gradient=grad_normal)
        x = np.array([1.0, 2.0])
        assert m.evaluate(x) == pytest.approx(-2.5)
        assert np.array_equal(m.evaluate_gradient(x), -x)

    def test_arithmetic_errors_are_numerical(self) -> None:
        def log_overflow(x):
            return math.exp(1000.0)

        def grad_divide(x):
            return [1.0 / (xi - 1) for xi in x]

        m = Model(log_overflow, init=np.zeros(2), gradient=grad_divide)
        with pytest.raises(NumericalError, match="OverflowError evaluating log-density") as excinfo:
            m.evaluate(np.ones(2))
        assert np.array_equal(excinfo.value.params, np.ones(2))
        assert isinstance(excinfo.value.__cause__, OverflowError)

        with pytest.raises(NumericalError, match="ZeroDivisionError evaluating gradient"):
            m.evaluate_gradient([1, 2])

    def test_other_errors_propagate(self) -> None:
        def log_broken(x):
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            Model(log_broken, init=np.zeros(2)).evaluate(np.zeros(2))

    def test_mul_binds_sampler(self) -> None:
        m = Model(log_normal, init=np.zeros(2))
        task = m * RandomWalkMetropolis()
        assert isinstance(task, Task)
        assert task.model is m


class TestParameterMap:
    """Test named parameter blocks."""

    def test_is_partition(self) -> None:
        assert is_partition({"a": (0, (2,)), "b": (2, (2, 2))}, 6)

    def test_gap(self) -> None:
        assert not is_partition({"a": (0, (2,)), "b": (3, (1,))}, 4)

    def test_overlap(self) -> None:
        assert not is_partition({"a": (0, (2,)), "b": (1, (3,))}, 4)

    def test_out_of_range(self) -> None:
        assert not is_partition({"a": (0, (5,))}, 4)

    def test_invalid_pmap_rejected(self) -> None:
        with pytest.raises(InputError, match="does not partition"):
            Model(log_normal, init=np.zeros(3), pmap={"a": (0, (2,))})


class TestModelFactory:
    """Test the model() construction helper."""

    def test_from_callable(self) -> None:
        m = model(log_normal, init=[0.0, 0.0])
        assert m.log_density is log_normal
        assert m.capabilities == frozenset()

    def test_from_univariate_distribution(self) -> None:
        dist = stats.norm(1.0, 2.0)
        m = model(dist, init=[0.0, 0.0])
        x = np.array([0.5, -1.0])
        assert m.evaluate(x) == pytest.approx(np.sum(dist.logpdf(x)))

    def test_from_multivariate_distribution(self) -> None:
        dist = stats.multivariate_normal(mean=np.zeros(2), cov=np.eye(2))
        m = model(dist, init=[0.0, 0.0])
        assert m.evaluate(np.array([1.0, 1.0])) == pytest.approx(dist.logpdf([1.0, 1.0]))

    def test_not_a_model(self) -> None:
        with pytest.raises(InputError, match="Cannot build a model"):
            model(42, init=[0.0])

    def test_unknown_derivative_level(self) -> None:
        with pytest.raises(InputError, match="Unknown derivative level"):
            model(log_normal, init=[0.0], derivatives="hessian")

    def test_finite_difference_gradient(self) -> None:
        m = model(log_normal, init=[0.0, 0.0], derivatives="gradient")
        assert m.capabilities == frozenset({Capability.GRADIENT})
        x = np.array([0.3, -1.2])
        assert np.allclose(m.evaluate_gradient(x), -x, atol=1e-6)

    def test_finite_difference_tensor(self) -> None:
        m = model(log_normal, init=[0.0, 0.0], derivatives=Capability.TENSOR)
        assert m.capabilities == frozenset({Capability.GRADIENT, Capability.TENSOR})
        # observed information of a standard normal is the identity
        assert np.allclose(m.evaluate_tensor(np.array([0.5, 0.5])), np.eye(2), atol=1e-6)

    def test_explicit_derivatives_take_precedence(self) -> None:
        m = model(log_normal, init=[0.0, 0.0], gradient=grad_normal, derivatives="gradient")
        assert m.gradient is grad_normal

    def test_finite_difference_tensor_derivative(self) -> None:
        def tensor(x):
            return np.diag(x**2 + 1.0)

        m = model(
            log_normal,
            init=[0.0, 0.0],
            gradient=grad_normal,
            tensor=tensor,
            derivatives="tensor_derivative",
        )
        assert m.capabilities == frozenset(Capability)

        derivatives = m.evaluate_tensor_derivative(np.array([1.0, 2.0]))
        expected = np.zeros((2, 2, 2))
        expected[0, 0, 0] = 2.0  # d/dx_0 of x_0**2 + 1
        expected[1, 1, 1] = 4.0  # d/dx_1 of x_1**2 + 1
        assert derivatives.shape == (2, 2, 2)
        assert np.allclose(derivatives, expected, atol=1e-6)

    def test_pmap_passed_through(self) -> None:
        pmap = {"mu": (0, (1,)), "beta": (1, (2,))}
        m = model(log_normal, init=np.zeros(3), pmap=pmap)
        assert m.pmap == pmap
