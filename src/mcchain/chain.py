"""The chain: durable, resumable record of one sampling run."""

from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import Any

import numpy as np

from .model import Model
from .samplers.base import Sampler, StepDiagnostics
from .utils.exceptions import InputError, ScheduleError
from .utils.types import FloatArray, IntArray, Params


class ChainStatus(StrEnum):
    """Lifecycle of a chain."""

    IDLE = auto()
    RUNNING = auto()
    SUSPENDED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class Schedule:
    """Which steps to run and which of them to record.

    Step ``t`` (1-based) is kept iff ``t > burnin`` and
    ``(t - burnin) % thinning == 0``.
    """

    total_steps: int
    burnin: int = 0
    thinning: int = 1

    def __post_init__(self):
        """Post-initialization checks."""
        if self.thinning < 1:
            raise ScheduleError(f"thinning must be a positive integer, got {self.thinning}.")
        if self.burnin < 0:
            raise ScheduleError(f"burnin must be non-negative, got {self.burnin}.")
        if self.total_steps < 1:
            raise ScheduleError(f"total_steps must be positive, got {self.total_steps}.")
        if self.burnin >= self.total_steps:
            raise ScheduleError(
                f"burnin ({self.burnin}) must be smaller than total_steps ({self.total_steps})."
            )

    @classmethod
    def from_range(cls, steps: range) -> "Schedule":
        """Build a schedule whose kept steps are exactly the elements of ``steps``.

        The range must be non-empty with a positive step, and must start at or
        after its step so that the implied burn-in is non-negative.
        """
        if steps.step < 1:
            raise ScheduleError(f"Step range must be increasing, got {steps}.")
        if len(steps) == 0:
            raise ScheduleError(f"Step range {steps} is empty.")
        if steps.start < steps.step:
            raise ScheduleError(
                f"Step range {steps} must start at or after its step ({steps.step}), "
                f"e.g. range({steps.step}, {steps.stop}, {steps.step}) keeps every "
                f"{steps.step}-th step."
            )
        return cls(total_steps=steps[-1], burnin=steps.start - steps.step, thinning=steps.step)

    def keeps(self, step: int) -> bool:
        """Whether step ``step`` is recorded."""
        return step > self.burnin and (step - self.burnin) % self.thinning == 0

    def kept_steps(self) -> range:
        """All recorded step indices, in order."""
        return range(self.burnin + self.thinning, self.total_steps + 1, self.thinning)


@dataclass(frozen=True)
class SuspendedState:
    """Everything needed to continue a chain exactly where it stopped."""

    params: Params
    sampler_state: Any
    rng_state: dict
    step: int = 0


@dataclass
class Chain:
    """Data class to hold the state and output of a single sampling run.

    Samples, diagnostics and kept step indices are index-aligned and only
    ever appended to; resuming a chain continues them.
    """

    model: Model
    sampler: Sampler
    schedule: Schedule
    suspended_state: SuspendedState
    chain_id: str = "0"
    sample_chain: list[Params] = field(default_factory=list)
    diagnostic_chain: list[StepDiagnostics] = field(default_factory=list)
    step_chain: list[int] = field(default_factory=list)
    status: ChainStatus = ChainStatus.IDLE
    error: Exception | None = None

    def __repr__(self):
        """String representation of the chain."""
        return (
            f"Chain(id={self.chain_id}, sampler={self.sampler.name}, "
            f"n_steps={self.n_steps}, n_kept={self.n_kept}, status={self.status})"
        )

    def __post_init__(self):
        """Post-initialization checks."""
        if not len(self.sample_chain) == len(self.diagnostic_chain) == len(self.step_chain):
            raise InputError("Sample, diagnostic and step chains must have the same length.")

    def record(self, step: int, params: Params, diagnostics: StepDiagnostics) -> None:
        """Append one recorded row."""
        self.sample_chain.append(params)
        self.diagnostic_chain.append(diagnostics)
        self.step_chain.append(step)

    @property
    def n_steps(self) -> int:
        """Number of steps completed so far, recorded or not."""
        return self.suspended_state.step

    @property
    def n_kept(self) -> int:
        """Number of recorded rows."""
        return len(self.sample_chain)

    @property
    def params(self) -> Params:
        """Current position of the chain."""
        return self.suspended_state.params

    @property
    def resumable(self) -> bool:
        return self.status in (ChainStatus.IDLE, ChainStatus.SUSPENDED)

    @property
    def samples(self) -> FloatArray:
        """Recorded samples, shape (n_kept, n_dims)."""
        if not self.sample_chain:
            return np.empty((0, self.model.ndim))
        return np.array(self.sample_chain)

    @property
    def steps(self) -> IntArray:
        """Indices of the recorded steps."""
        return np.array(self.step_chain, dtype=int)

    @property
    def diagnostics(self) -> np.ndarray:
        """Recorded diagnostics as a structured array.

        Fields are ``accepted`` and ``log_density``, plus ``weight`` if any
        row carries an importance weight.
        """
        return diagnostics_table(self.diagnostic_chain)

    @property
    def acceptance_rate(self) -> float:
        """Fraction of recorded rows whose proposal was accepted."""
        if not self.diagnostic_chain:
            return float("nan")
        return float(np.mean([d.accepted for d in self.diagnostic_chain]))

    def get_param(self, name: str) -> FloatArray:
        """Samples of a named parameter block, shape (n_kept, *block_shape)."""
        if self.model.pmap is None or name not in self.model.pmap:
            raise InputError(f"Model has no parameter named {name!r}.")
        start, shape = self.model.pmap[name]
        size = int(np.prod(shape))
        return self.samples[:, start : start + size].reshape(-1, *shape)

    def autocorr_time(self) -> FloatArray:
        """Integrated autocorrelation time of each parameter, see :mod:`mcchain.analysis.convergence`."""
        from .analysis.convergence import integrated_autocorr_time

        return integrated_autocorr_time(self)


def diagnostics_table(rows: list[StepDiagnostics]) -> np.ndarray:
    """Convert diagnostics records to a numpy structured array."""
    weighted = any(r.weight is not None for r in rows)
    dtype = [("accepted", bool), ("log_density", float)]
    if weighted:
        dtype.append(("weight", float))
        values = [
            (r.accepted, r.log_density, np.nan if r.weight is None else r.weight) for r in rows
        ]
    else:
        values = [(r.accepted, r.log_density) for r in rows]
    return np.array(values, dtype=dtype)
