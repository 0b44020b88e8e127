"""Model definition and construction.

A :class:`Model` bundles a log-density with optional derivative evaluators
and a starting point. Samplers never see how the model was built; they only
query its capabilities and evaluate it.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numdifftools as nd
import numpy as np

from .utils.exceptions import InputError, NumericalError
from .utils.types import (
    CAPABILITY_LEVELS,
    Capability,
    FloatArray,
    Gradient,
    LogDensity,
    Matrix,
    MetricTensor,
    MetricTensorDerivative,
    ParameterMap,
    Params,
    Tensor3,
)


def is_partition(pmap: ParameterMap, n_dims: int) -> bool:
    """Check that the blocks of a parameter map cover ``range(n_dims)`` exactly once.

    Parameters
    ----------
    pmap : ParameterMap
        Mapping of block name to ``(start, shape)`` where ``start`` is the
        0-based index of the first element of the block.
    n_dims : int
        Length of the parameter vector.

    Returns
    -------
    bool
        True if every index is covered by exactly one block.
    """
    counts = np.zeros(n_dims, dtype=int)
    for start, shape in pmap.values():
        size = int(np.prod(shape))
        if start < 0 or start + size > n_dims:
            return False
        counts[start : start + size] += 1
    return bool(np.all(counts == 1))


@dataclass
class Model:
    """A log-density with optional gradient, metric tensor and tensor derivative.

    Capability flags are derived from which evaluators are present. The
    evaluators obey a hierarchy: a tensor derivative requires a tensor, and a
    tensor requires a gradient.
    """

    log_density: LogDensity
    init: FloatArray
    gradient: Gradient | None = None
    tensor: MetricTensor | None = None
    tensor_derivative: MetricTensorDerivative | None = None
    pmap: ParameterMap | None = field(default=None)

    def __post_init__(self):
        """Post-initialization checks."""
        self.init = np.atleast_1d(np.asarray(self.init, dtype=float))
        if self.init.ndim != 1:
            raise InputError("Model init must be a 1-dimensional parameter vector.")
        if not callable(self.log_density):
            raise InputError("Model log_density must be callable.")

        if self.tensor_derivative is not None and self.tensor is None:
            raise InputError("A model with a tensor derivative must also provide a tensor.")
        if self.tensor is not None and self.gradient is None:
            raise InputError("A model with a tensor must also provide a gradient.")

        if self.pmap is not None and not is_partition(self.pmap, self.ndim):
            raise InputError(
                f"Parameter map does not partition a vector of length {self.ndim}."
            )

    def __repr__(self) -> str:
        """String representation of the model."""
        caps = ", ".join(sorted(self.capabilities)) or "none"
        return f"Model(ndim={self.ndim}, capabilities=[{caps}])"

    def __mul__(self, sampler):
        """Bind a sampler to this model, ``model * sampler``."""
        from .task import bind

        return bind(self, sampler)

    @property
    def ndim(self) -> int:
        """Dimensionality of the parameter vector."""
        return self.init.shape[0]

    @property
    def has_gradient(self) -> bool:
        return self.gradient is not None

    @property
    def has_tensor(self) -> bool:
        return self.tensor is not None

    @property
    def has_tensor_derivative(self) -> bool:
        return self.tensor_derivative is not None

    @property
    def capabilities(self) -> frozenset[Capability]:
        """The set of optional evaluators this model provides."""
        flags = {
            Capability.GRADIENT: self.has_gradient,
            Capability.TENSOR: self.has_tensor,
            Capability.TENSOR_DERIVATIVE: self.has_tensor_derivative,
        }
        return frozenset(c for c, present in flags.items() if present)

    def _call(self, evaluator, x: Params, what: str):
        # floating-point exceptions raised by user code are non-finite evaluations
        try:
            return evaluator(x)
        except ArithmeticError as e:
            raise NumericalError(
                f"{type(e).__name__} evaluating {what}: {e}", params=np.array(x)
            ) from e

    def evaluate(self, x: Params) -> float:
        """Evaluate the log-density at x as a float.

        Raises
        ------
        NumericalError
            If the log-density raises an ``ArithmeticError`` (overflow,
            division by zero, floating-point error).
        """
        return float(self._call(self.log_density, x, "log-density"))

    def evaluate_gradient(self, x: Params) -> Params:
        return np.asarray(self._call(self.gradient, x, "gradient"), dtype=float).reshape(self.ndim)

    def evaluate_tensor(self, x: Params) -> Matrix:
        tensor = self._call(self.tensor, x, "tensor")
        return np.asarray(tensor, dtype=float).reshape(self.ndim, self.ndim)

    def evaluate_tensor_derivative(self, x: Params) -> Tensor3:
        n = self.ndim
        derivative = self._call(self.tensor_derivative, x, "tensor derivative")
        return np.asarray(derivative, dtype=float).reshape(n, n, n)


class _DistributionLogDensity:
    """Log-density of a distribution object exposing ``logpdf``."""

    def __init__(self, distribution):
        self.distribution = distribution

    def __call__(self, x):
        return float(np.sum(self.distribution.logpdf(x)))


class _FiniteDifferenceGradient:
    def __init__(self, log_density):
        self._gradient = nd.Gradient(log_density)

    def __call__(self, x):
        return np.atleast_1d(self._gradient(x))


class _FiniteDifferenceTensor:
    """Observed information: the negative Hessian of the log-density."""

    def __init__(self, log_density):
        self._hessian = nd.Hessian(log_density)

    def __call__(self, x):
        n = np.size(x)
        return -np.reshape(self._hessian(x), (n, n))


class _FiniteDifferenceTensorDerivative:
    def __init__(self, tensor):
        self.tensor = tensor
        self._jacobian = nd.Jacobian(self._flat_tensor)

    def _flat_tensor(self, x):
        return np.ravel(self.tensor(x))

    def __call__(self, x):
        n = np.size(x)
        # Jacobian rows index the flattened tensor, columns the parameter.
        jac = np.reshape(self._jacobian(x), (n, n, n))
        return np.moveaxis(jac, -1, 0)


def model(
    f: Callable[[Params], float] | Any,
    init: FloatArray,
    *,
    gradient: Gradient | None = None,
    tensor: MetricTensor | None = None,
    tensor_derivative: MetricTensorDerivative | None = None,
    derivatives: Capability | str | None = None,
    pmap: ParameterMap | None = None,
) -> Model:
    """Build a :class:`Model` from a callable or a distribution object.

    Parameters
    ----------
    f : callable or distribution
        Either a function returning the log-density at a parameter vector,
        or an object with a ``logpdf`` method such as a frozen
        ``scipy.stats`` distribution. For the latter, the log-density is the
        sum of ``logpdf`` over the elements of the parameter vector.
    init : FloatArray
        Starting parameter vector.
    gradient, tensor, tensor_derivative : callable, optional
        Explicit derivative evaluators. These take precedence over
        synthesized ones.
    derivatives : Capability or str, optional
        Highest derivative level to synthesize by finite differences with
        numdifftools (``"gradient"``, ``"tensor"`` or ``"tensor_derivative"``).
        All lower levels are synthesized as well unless given explicitly.
        The synthesized tensor is the negative Hessian of the log-density.
    pmap : ParameterMap, optional
        Named blocks of the parameter vector.

    Returns
    -------
    Model
        The normalized model.

    Raises
    ------
    InputError
        If ``f`` is neither callable nor a distribution, if ``derivatives``
        is not a known capability, or if the resulting model is invalid.

    Examples
    --------
    >>> from scipy import stats
    >>> m = model(stats.norm(0.0, 1.0), init=[0.0, 0.0], derivatives="gradient")
    >>> m.has_gradient
    True
    """
    if hasattr(f, "logpdf"):
        log_density = _DistributionLogDensity(f)
    elif callable(f):
        log_density = f
    else:
        raise InputError(
            f"Cannot build a model from {type(f).__name__}; expected a callable or an object with logpdf."
        )

    if derivatives is not None:
        try:
            level = Capability(derivatives)
        except ValueError as e:
            raise InputError(f"Unknown derivative level {derivatives!r}.") from e
        requested = CAPABILITY_LEVELS[level]
        if Capability.GRADIENT in requested and gradient is None:
            gradient = _FiniteDifferenceGradient(log_density)
        if Capability.TENSOR in requested and tensor is None:
            tensor = _FiniteDifferenceTensor(log_density)
        if Capability.TENSOR_DERIVATIVE in requested and tensor_derivative is None:
            tensor_derivative = _FiniteDifferenceTensorDerivative(tensor)

    return Model(
        log_density=log_density,
        init=init,
        gradient=gradient,
        tensor=tensor,
        tensor_derivative=tensor_derivative,
        pmap=pmap,
    )
