"""Population runner: many independent chains."""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from tqdm import tqdm

from ..chain import Chain, Schedule
from ..task import Task, check_capabilities
from ..utils.exceptions import DimensionMismatch, NumericalError, ScheduleError
from ..utils.types import FloatArray
from .serial import DEFAULT_SEED, advance, make_schedule, new_chain

logger = logging.getLogger(__name__)


@dataclass
class MultiChain:
    """Class to hold and manage the chains of a population run.

    Chains are kept in the order of the tasks that produced them.
    """

    chains: list[Chain] = field(default_factory=list)

    def __repr__(self):
        """String representation of the population."""
        return f"MultiChain(n_chains={self.n_chains}, failed={self.failed})"

    def __post_init__(self):
        """Post-initialization checks."""
        if any(not isinstance(chain, Chain) for chain in self.chains):
            raise TypeError("All chains must be instances of Chain.")

    def __getitem__(self, index: int) -> Chain:
        return self.chains[index]

    def __len__(self) -> int:
        return len(self.chains)

    def __iter__(self):
        return iter(self.chains)

    @property
    def n_chains(self) -> int:
        """Number of chains in the population."""
        return len(self.chains)

    @property
    def samples(self) -> list[FloatArray]:
        """Recorded samples of each chain."""
        return [chain.samples for chain in self.chains]

    @property
    def errors(self) -> list[Exception | None]:
        """Error of each chain's last run, or None if it succeeded."""
        return [chain.error for chain in self.chains]

    @property
    def failed(self) -> list[int]:
        """Indices of chains whose last run ended in an error."""
        return [i for i, chain in enumerate(self.chains) if chain.error is not None]

    @property
    def succeeded(self) -> list[int]:
        """Indices of chains whose last run completed."""
        return [i for i, chain in enumerate(self.chains) if chain.error is None]


def run_population(
    tasks: list[Task],
    steps: int | range,
    burnin: int | None = None,
    thinning: int | None = None,
    seed=DEFAULT_SEED,
    seeds: list[Any] | None = None,
    pool: Any | None = None,
    n_processors: int | None = None,
    progress: bool = False,
) -> MultiChain:
    """Run several tasks as independent chains.

    Each chain owns its own random stream, so results do not depend on the
    order in which chains execute or on whether they run concurrently. A
    chain that raises (numerically or otherwise) does not affect its
    siblings; it is returned with ``chain.error`` set. Interrupts such as
    KeyboardInterrupt still propagate.

    Parameters
    ----------
    tasks : list of Task
        Bound model/sampler pairs, one per chain. The same task may appear
        several times.
    steps : int or range
        Step schedule shared by all chains, see :func:`mcchain.runners.serial.run`.
    burnin : int, optional
        Number of initial steps not recorded. Default is 0.
    thinning : int, optional
        Record every ``thinning``-th step after burn-in. Default is 1.
    seed : int, optional
        Root seed from which independent per-chain streams are spawned.
        Default is 61254557.
    seeds : list, optional
        Explicit per-chain seeds (ints or ``numpy.random.SeedSequence``).
        Overrides ``seed``.
    pool : Any | None, optional
        User-provided pool for running chains in parallel. The pool must
        implement a map() method compatible with the standard library's
        map() function. Default is None.
    n_processors : int | None, optional
        If given and larger than one (and no ``pool`` is provided), chains
        run on an internal ProcessPoolExecutor with this many workers.
    progress : bool, optional
        Whether to display progress over chains. Default is False.

    Returns
    -------
    MultiChain
        Chains in task order.

    Raises
    ------
    CapabilityError
        If any task's model lacks a capability its sampler requires.
    ScheduleError
        If the schedule or the number of seeds is invalid.

    Examples
    --------
    >>> from concurrent.futures import ThreadPoolExecutor
    >>> tasks = [bind(model, RandomWalkMetropolis(scale=s)) for s in (0.1, 0.5, 1.0)]
    >>> with ThreadPoolExecutor(max_workers=3) as pool:
    ...     population = run_population(tasks, steps=1000, burnin=100, pool=pool)
    """
    for task in tasks:
        check_capabilities(task.model, task.sampler)
    schedule = make_schedule(steps, burnin, thinning)

    if seeds is None:
        seeds = np.random.SeedSequence(seed).spawn(len(tasks))
    elif len(seeds) != len(tasks):
        raise ScheduleError(f"Got {len(seeds)} seeds for {len(tasks)} tasks.")

    logger.info("Running population of %d chains", len(tasks))
    logger.info(
        "Steps: %d, burn-in: %d, thinning: %d",
        schedule.total_steps,
        schedule.burnin,
        schedule.thinning,
    )

    jobs = [
        {"chain": new_chain(task, schedule, seed=s, chain_id=str(i))}
        for i, (task, s) in enumerate(zip(tasks, seeds))
    ]
    return MultiChain(_map_jobs(jobs, pool, n_processors, progress))


def resume_population(
    population: MultiChain,
    steps: int,
    pool: Any | None = None,
    n_processors: int | None = None,
    progress: bool = False,
) -> MultiChain:
    """Continue every resumable chain of a population for ``steps`` more steps.

    Chains that failed are carried through unchanged.
    """
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps < 1:
        raise ScheduleError(f"Number of steps to add must be a positive int, got {steps!r}.")

    jobs = []
    for chain in population.chains:
        if chain.resumable:
            check_capabilities(chain.model, chain.sampler)
        jobs.append({"chain": chain, "steps": int(steps)})

    logger.info("Resuming population of %d chains for %d steps", population.n_chains, steps)
    return MultiChain(_map_jobs(jobs, pool, n_processors, progress))


def _map_jobs(jobs: list[dict], pool, n_processors, progress) -> list[Chain]:
    if pool is not None:
        results = pool.map(_run_chain_job, jobs)
    elif n_processors is not None and n_processors > 1:
        with ProcessPoolExecutor(max_workers=n_processors) as executor:
            return list(tqdm(executor.map(_run_chain_job, jobs), total=len(jobs), disable=not progress))
    else:
        results = map(_run_chain_job, jobs)
    return list(tqdm(results, total=len(jobs), disable=not progress))


def _run_chain_job(job: dict) -> Chain:
    """Run a single chain of a population, isolating its failures.

    This function is designed to be called by pool.map(); it returns the
    chain (which may be a copy in another process) rather than raising.
    """
    chain: Chain = job["chain"]
    steps = job.get("steps")

    if steps is not None:
        if not chain.resumable:
            logger.warning("Chain %s is %s; not resumed", chain.chain_id, chain.status)
            return chain
        chain.schedule = Schedule(
            chain.n_steps + steps, chain.schedule.burnin, chain.schedule.thinning
        )

    try:
        advance(chain)
    except NumericalError as err:
        logger.warning("Chain %s stopped at step %s: %s", chain.chain_id, err.step, err.msg)
    except DimensionMismatch as err:
        logger.warning("Chain %s failed: %s", chain.chain_id, err)
    except Exception as err:
        logger.warning(
            "Chain %s stopped after step %d: %r", chain.chain_id, chain.n_steps, err
        )
    return chain
