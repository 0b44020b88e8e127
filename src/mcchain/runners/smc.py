"""Sequential Monte Carlo over a sequence of bridge models."""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from ..analysis.weights import (
    ResampleMethod,
    effective_sample_size,
    normalize_weights,
    resample_indices,
)
from ..chain import Schedule, diagnostics_table
from ..model import Model
from ..samplers.base import Sampler, StepDiagnostics
from ..task import Task, bind
from ..utils.exceptions import DimensionMismatch, InputError, NumericalError, ScheduleError
from ..utils.types import FloatArray, IntArray, ParticleArray
from .serial import DEFAULT_SEED, advance, new_chain

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class SMCChain:
    """Aggregated, importance-weighted result of a sequential Monte Carlo run.

    Every generation appends one row per particle, so after ``g`` generations
    the chain holds ``g * n_particles`` rows. The current population
    (positions, log-weights and per-particle random streams) is kept so the
    run can be continued with further bridge models.
    """

    models: list[Model]
    sampler: Sampler
    inner_steps: int
    particles: ParticleArray
    log_weights: FloatArray
    rng_states: list[dict]
    resample_rng_state: dict
    resample_threshold: float | None = None
    resample_method: ResampleMethod = ResampleMethod.MULTINOMIAL
    sample_chain: list[FloatArray] = field(default_factory=list)
    diagnostic_chain: list[StepDiagnostics] = field(default_factory=list)
    generation_chain: list[int] = field(default_factory=list)
    ess_chain: list[float] = field(default_factory=list)
    resampled: list[bool] = field(default_factory=list)
    errors: list[tuple[int, int, Exception]] = field(default_factory=list)

    def __repr__(self):
        """String representation of the SMC chain."""
        return (
            f"SMCChain(n_particles={self.n_particles}, n_generations={self.n_generations}, "
            f"sampler={self.sampler.name})"
        )

    def __post_init__(self):
        """Post-initialization checks."""
        self.particles = np.asarray(self.particles, dtype=float)
        self.log_weights = np.asarray(self.log_weights, dtype=float)
        check_population(self.particles, self.log_weights, len(self.rng_states))

    @property
    def n_particles(self) -> int:
        """Population size."""
        return self.particles.shape[0]

    @property
    def n_generations(self) -> int:
        """Number of generations run so far."""
        return len(self.ess_chain)

    @property
    def weights(self) -> FloatArray:
        """Unnormalized, non-negative weights of the current population."""
        return np.exp(self.log_weights)

    @property
    def normalized_weights(self) -> FloatArray:
        """Weights of the current population normalized to sum to one."""
        return normalize_weights(self.log_weights)

    @property
    def effective_sample_size(self) -> float:
        """Effective sample size of the current population."""
        return effective_sample_size(self.log_weights)

    @property
    def samples(self) -> FloatArray:
        """All recorded particle positions, shape (n_generations * n_particles, n_dims)."""
        if not self.sample_chain:
            return np.empty((0, self.particles.shape[1]))
        return np.array(self.sample_chain)

    @property
    def generations(self) -> IntArray:
        """Generation index of each recorded row."""
        return np.array(self.generation_chain, dtype=int)

    @property
    def diagnostics(self) -> np.ndarray:
        """Recorded diagnostics with ``accepted``, ``log_density`` and ``weight`` fields."""
        return diagnostics_table(self.diagnostic_chain)


def check_population(particles: FloatArray, log_weights: FloatArray, n_particles: int) -> None:
    """Raise DimensionMismatch unless particles and weights both have ``n_particles`` entries."""
    if particles.ndim != 2 or len(particles) != n_particles or log_weights.shape != (n_particles,):
        raise DimensionMismatch(
            f"Population out of sync: {len(particles)} particles, "
            f"{len(log_weights)} weights, expected {n_particles}."
        )


def run_smc(
    models: list[Model],
    sampler: Sampler,
    particles: npt.ArrayLike,
    inner_steps: int,
    seed=DEFAULT_SEED,
    resample_threshold: float | None = None,
    resample_method: ResampleMethod | str = ResampleMethod.MULTINOMIAL,
    pool: Any | None = None,
    n_processors: int | None = None,
    progress: bool = False,
) -> SMCChain:
    """Move a weighted particle population through a sequence of bridge models.

    Parameters
    ----------
    models : list of Model
        Bridge models ordered toward the target, e.g. tempered posteriors.
    sampler : Sampler
        Sampler used for every particle's inner chain. It is bound to every
        model before the run starts.
    particles : array_like
        Initial particle positions, shape (n_particles, n_dims). A 1-D array
        of shape (n_particles,) is accepted when every model is 1-dimensional.
    inner_steps : int
        Number of sampler steps each particle takes per generation.
    seed : int, optional
        Root seed; each particle slot and the resampler get independent
        streams spawned from it. Default is 61254557.
    resample_threshold : float, optional
        If given, resample whenever the effective sample size falls below
        ``resample_threshold * n_particles``. Must lie in (0, 1]. Default is
        None (never resample).
    resample_method : ResampleMethod or str, optional
        ``"multinomial"`` (default) or ``"systematic"``.
    pool : Any | None, optional
        User-provided pool for moving particles in parallel within a
        generation. The pool must implement a map() method compatible with
        the standard library's map() function. Default is None.
    n_processors : int | None, optional
        If given and larger than one (and no ``pool`` is provided), particles
        move on an internal ProcessPoolExecutor.
    progress : bool, optional
        Whether to display progress over generations. Default is False.

    Returns
    -------
    SMCChain
        The aggregated weighted chain and final population.

    Raises
    ------
    CapabilityError
        If any bridge model lacks a capability the sampler requires.
    DimensionMismatch
        If particle and model dimensions disagree, or the sampler changes
        the length of a particle.
    ScheduleError
        If ``inner_steps`` is not positive.
    InputError
        If ``models`` is empty, the resampling options are invalid, or a 1-D
        particle array is given for multi-dimensional models.

    Notes
    -----
    In generation ``g`` every particle first runs ``inner_steps`` steps of a
    chain targeting ``models[g]`` from its current position. Its log-weight
    is then incremented by ``log models[g](x) - log models[g-1](x)`` at the
    new position ``x`` (no increment in the first generation). A zero or
    undefined density ratio gives the particle a zero weight. A particle
    whose inner chain fails numerically (including overflow or division by
    zero in the model) stays at its last good position with zero weight; the
    error is recorded in ``SMCChain.errors``.
    """
    particles = np.asarray(particles, dtype=float)
    if particles.ndim == 1:
        # one scalar parameter per particle
        if any(m.ndim != 1 for m in models):
            raise InputError(
                "A 1-dimensional particle array is only accepted for 1-dimensional "
                "models; pass particles with shape (n_particles, n_dims)."
            )
        particles = particles[:, np.newaxis]
    elif particles.ndim != 2:
        raise DimensionMismatch(
            f"Particles must have shape (n_particles, n_dims), got {particles.shape}."
        )
    n_particles = particles.shape[0]

    seed_seqs = np.random.SeedSequence(seed).spawn(n_particles + 1)
    smc_chain = SMCChain(
        models=[],
        sampler=sampler,
        inner_steps=inner_steps,
        particles=particles,
        log_weights=np.zeros(n_particles),
        rng_states=[np.random.default_rng(s).bit_generator.state for s in seed_seqs[:-1]],
        resample_rng_state=np.random.default_rng(seed_seqs[-1]).bit_generator.state,
        resample_threshold=resample_threshold,
        resample_method=_validate_resampling(resample_threshold, resample_method),
    )
    return resume_smc(smc_chain, models, pool=pool, n_processors=n_processors, progress=progress)


def resume_smc(
    smc_chain: SMCChain,
    models: list[Model],
    pool: Any | None = None,
    n_processors: int | None = None,
    progress: bool = False,
) -> SMCChain:
    """Continue an SMC run with further bridge models.

    The first new model is weighted against the last model already run.
    Parameters are as for :func:`run_smc`.
    """
    if not models:
        raise InputError("At least one bridge model is required.")
    if smc_chain.inner_steps < 1:
        raise ScheduleError(f"inner_steps must be positive, got {smc_chain.inner_steps}.")
    n_dims = smc_chain.particles.shape[1]
    tasks = []
    for i, m in enumerate(models):
        if m.ndim != n_dims:
            raise DimensionMismatch(
                f"Bridge model {i} has {m.ndim} dimensions, particles have {n_dims}."
            )
        tasks.append(bind(m, smc_chain.sampler))

    logger.info("Running sequential Monte Carlo with %s", smc_chain.sampler.name)
    logger.info("Number of particles: %d", smc_chain.n_particles)
    logger.info("Number of bridge models: %d", len(models))
    logger.info("Inner steps per generation: %d", smc_chain.inner_steps)

    for task in tqdm(tasks, disable=not progress):
        _run_generation(smc_chain, task, pool, n_processors)
    return smc_chain


def _validate_resampling(threshold, method) -> ResampleMethod:
    if threshold is not None and not 0.0 < threshold <= 1.0:
        raise InputError(f"resample_threshold must lie in (0, 1], got {threshold}.")
    try:
        return ResampleMethod(method)
    except ValueError as e:
        raise InputError(f"Unknown resampling method {method!r}.") from e


def _run_generation(smc_chain: SMCChain, task: Task, pool, n_processors) -> None:
    generation = smc_chain.n_generations
    previous = smc_chain.models[-1] if smc_chain.models else None
    n_particles = smc_chain.n_particles

    jobs = [
        {
            "task": task,
            "inner_steps": smc_chain.inner_steps,
            "init": smc_chain.particles[j],
            "rng_state": smc_chain.rng_states[j],
            "chain_id": f"{generation}/{j}",
        }
        for j in range(n_particles)
    ]
    if pool is not None:
        moves = list(pool.map(_move_particle, jobs))
    elif n_processors is not None and n_processors > 1:
        with ProcessPoolExecutor(max_workers=n_processors) as executor:
            moves = list(executor.map(_move_particle, jobs))
    else:
        moves = [_move_particle(job) for job in jobs]

    # synchronization barrier: every particle has moved
    if len(moves) != n_particles:
        raise DimensionMismatch(f"Got {len(moves)} moved particles, expected {n_particles}.")
    particles = np.array([move["params"] for move in moves])
    log_weights = smc_chain.log_weights.copy()
    check_population(particles, log_weights, n_particles)

    for j, move in enumerate(moves):
        x = particles[j]
        log_density = _safe_log_density(task.model, x)
        if move["error"] is not None:
            smc_chain.errors.append((generation, j, move["error"]))
            logger.warning("Particle %d failed in generation %d: %s", j, generation, move["error"])
            log_weights[j] = -np.inf
        elif previous is not None:
            increment = log_density - _safe_log_density(previous, x)
            # zero or undefined density ratio: the particle keeps a zero weight
            log_weights[j] += increment if np.isfinite(increment) else -np.inf

        smc_chain.sample_chain.append(x)
        smc_chain.diagnostic_chain.append(
            StepDiagnostics(move["accepted"], log_density, float(np.exp(log_weights[j])))
        )
        smc_chain.generation_chain.append(generation)

    smc_chain.particles = particles
    smc_chain.log_weights = log_weights
    smc_chain.rng_states = [move["rng_state"] for move in moves]
    smc_chain.models.append(task.model)

    ess = effective_sample_size(log_weights)
    smc_chain.ess_chain.append(ess)
    smc_chain.resampled.append(_maybe_resample(smc_chain, ess))
    check_population(smc_chain.particles, smc_chain.log_weights, n_particles)


def _maybe_resample(smc_chain: SMCChain, ess: float) -> bool:
    threshold = smc_chain.resample_threshold
    if threshold is None or ess >= threshold * smc_chain.n_particles:
        return False
    if ess == 0.0:
        logger.warning("All particle weights are zero; skipping resampling.")
        return False

    rng = np.random.default_rng()
    rng.bit_generator.state = smc_chain.resample_rng_state
    indices = resample_indices(smc_chain.weights, rng, smc_chain.resample_method)
    smc_chain.resample_rng_state = rng.bit_generator.state

    # random streams stay with their slots so duplicated particles diverge
    smc_chain.particles = smc_chain.particles[indices]
    smc_chain.log_weights = np.zeros(smc_chain.n_particles)
    logger.info("Resampled population (ESS %.1f)", ess)
    return True


def _safe_log_density(model: Model, x: FloatArray) -> float:
    # an undefined density at a particle gives it a zero weight
    try:
        value = model.evaluate(x)
    except NumericalError:
        return -np.inf
    return value if not np.isnan(value) else -np.inf


def _move_particle(job: dict) -> dict:
    """Run one particle's inner chain for a generation.

    This function is designed to be called by pool.map(). Only the final
    step of the inner chain is recorded.
    """
    inner_steps = job["inner_steps"]
    schedule = Schedule(total_steps=inner_steps, burnin=inner_steps - 1, thinning=1)
    chain = new_chain(
        job["task"],
        schedule,
        chain_id=job["chain_id"],
        init=job["init"],
        rng_state=job["rng_state"],
    )
    error = None
    try:
        advance(chain)
    except NumericalError as err:
        error = err
        # drop the back-reference so the result stays cheap to pickle
        err.chain = None
    accepted = chain.diagnostic_chain[-1].accepted if chain.diagnostic_chain else False
    return {
        "params": chain.params,
        "rng_state": chain.suspended_state.rng_state,
        "accepted": accepted,
        "error": error,
    }
