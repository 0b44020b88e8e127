"""Custom types for mcchain."""

from enum import StrEnum, auto
from typing import Annotated, Protocol, TypeAlias

import numpy as np
import numpy.typing as npt

# Shape annotations are documentation only; type checkers see the dtype.
IntArray: TypeAlias = npt.NDArray[np.integer]
FloatArray: TypeAlias = npt.NDArray[np.floating]
Params: TypeAlias = Annotated[FloatArray, "(n_dims,)"]
Matrix: TypeAlias = Annotated[FloatArray, "(n_dims, n_dims)"]
Tensor3: TypeAlias = Annotated[FloatArray, "(n_dims, n_dims, n_dims)"]
ParticleArray: TypeAlias = Annotated[FloatArray, "(n_particles, n_dims)"]
ParameterMap: TypeAlias = dict[str, tuple[int, tuple[int, ...]]]


class Capability(StrEnum):
    """Optional evaluators a model may provide.

    The members form a hierarchy: each level presupposes the ones before it.
    """

    GRADIENT = auto()
    TENSOR = auto()
    TENSOR_DERIVATIVE = auto()


# Capabilities implied by each level, lowest first.
CAPABILITY_LEVELS: dict[Capability, frozenset[Capability]] = {
    Capability.GRADIENT: frozenset({Capability.GRADIENT}),
    Capability.TENSOR: frozenset({Capability.GRADIENT, Capability.TENSOR}),
    Capability.TENSOR_DERIVATIVE: frozenset(Capability),
}


class LogDensity(Protocol):
    """Protocol for (unnormalized) log-density functions."""

    def __call__(self, x: Params) -> float:
        """Evaluate the log-density at x.

        Parameters
        ----------
        x : Params
            Point in parameter space, shape (n_dims,).

        Returns
        -------
        float
            Log-density value at x. ``-inf`` denotes zero density.
        """
        ...


class Gradient(Protocol):
    """Protocol for the gradient of a log-density."""

    def __call__(self, x: Params) -> Params:
        """Evaluate the gradient of the log-density at x, shape (n_dims,)."""
        ...


class MetricTensor(Protocol):
    """Protocol for a position-dependent metric tensor (e.g. Fisher information)."""

    def __call__(self, x: Params) -> Matrix:
        """Evaluate the metric tensor at x, shape (n_dims, n_dims)."""
        ...


class MetricTensorDerivative(Protocol):
    """Protocol for the partial derivatives of a metric tensor.

    Element ``[k]`` of the returned array is the derivative of the metric
    with respect to the k-th parameter.
    """

    def __call__(self, x: Params) -> Tensor3:
        """Evaluate the metric derivatives at x, shape (n_dims, n_dims, n_dims)."""
        ...


class CancelToken(Protocol):
    """Anything that can signal cancellation between steps, e.g. ``threading.Event``."""

    def is_set(self) -> bool:
        """Whether cancellation has been requested."""
        ...
