"""Single-chain runner."""

import logging

import numpy as np
from tqdm import tqdm

from ..chain import Chain, ChainStatus, Schedule, SuspendedState
from ..task import Task, check_capabilities
from ..utils.exceptions import DimensionMismatch, InputError, NumericalError, ScheduleError
from ..utils.types import CancelToken, Params

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_SEED = 61254557


def make_schedule(steps: int | range, burnin: int | None = None, thinning: int | None = None) -> Schedule:
    """Build a schedule from a step count or an explicit step range.

    Parameters
    ----------
    steps : int or range
        Either the total number of steps, run as ``1..steps``, or the range
        of step indices to record. A range must start at or after its
        step.
    burnin : int, optional
        Number of initial steps not recorded. Only valid with a step count.
        Default is 0.
    thinning : int, optional
        Record every ``thinning``-th step after burn-in. Only valid with a
        step count. Default is 1.

    Raises
    ------
    ScheduleError
        If the combination is invalid.
    """
    if isinstance(steps, range):
        if burnin is not None or thinning is not None:
            raise ScheduleError("burnin and thinning are implied by a step range; do not pass them.")
        return Schedule.from_range(steps)
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)):
        raise ScheduleError(f"steps must be an int or a range, got {type(steps).__name__}.")
    return Schedule(
        total_steps=int(steps),
        burnin=0 if burnin is None else burnin,
        thinning=1 if thinning is None else thinning,
    )


def new_chain(
    task: Task,
    schedule: Schedule,
    seed=DEFAULT_SEED,
    chain_id: str = "0",
    init: Params | None = None,
    rng_state: dict | None = None,
) -> Chain:
    """Create an idle chain at the model's starting point (or ``init``).

    The random stream is seeded from ``seed`` (an int or a
    ``numpy.random.SeedSequence``) unless an explicit ``rng_state`` is given.
    The sampler state is built when the chain first runs.
    """
    params = task.model.init if init is None else np.asarray(init, dtype=float)
    if params.shape != (task.model.ndim,):
        raise DimensionMismatch(
            f"Initial point has shape {params.shape}, model expects ({task.model.ndim},)."
        )
    if rng_state is None:
        rng_state = np.random.default_rng(seed).bit_generator.state
    return Chain(
        model=task.model,
        sampler=task.sampler,
        schedule=schedule,
        suspended_state=SuspendedState(params, None, rng_state, 0),
        chain_id=chain_id,
    )


def _restore_rng(rng_state: dict) -> np.random.Generator:
    bit_generator = getattr(np.random, rng_state["bit_generator"])()
    bit_generator.state = rng_state
    return np.random.Generator(bit_generator)


def advance(chain: Chain, progress: bool = False, cancel: CancelToken | None = None) -> Chain:
    """Run ``chain`` from its suspended state up to ``chain.schedule.total_steps``.

    Rows are recorded according to the chain's schedule. On return the chain
    is suspended; its suspended state always reflects the last successful
    step.

    Raises
    ------
    NumericalError
        If a step fails numerically. The chain is left suspended at the last
        good step and attached to the error.
    DimensionMismatch
        If the sampler returns a point of the wrong size. The chain is
        marked failed.

    Any other exception raised by the model or sampler (or an interrupt)
    also leaves the chain suspended at the last good step with the chain
    attached as ``err.chain``, and is re-raised unchanged.
    """
    model, sampler, schedule = chain.model, chain.sampler, chain.schedule
    current = chain.suspended_state
    rng = _restore_rng(current.rng_state)
    params, state, step = current.params, current.sampler_state, current.step

    chain.status = ChainStatus.RUNNING
    chain.error = None
    # index reported if an evaluation fails; the starting point is step 0
    failing_step = step
    try:
        if state is None:
            state = sampler.init_state(params, model)
            chain.suspended_state = SuspendedState(params, state, current.rng_state, step)

        for _ in tqdm(range(step, schedule.total_steps), disable=not progress):
            if cancel is not None and cancel.is_set():
                logger.info("Chain %s cancelled after step %d", chain.chain_id, step)
                break
            failing_step = step + 1
            transition = sampler.propose(params, state, model, rng)
            new_params = np.asarray(transition.params, dtype=float)
            if new_params.shape != params.shape:
                raise DimensionMismatch(
                    f"Sampler {sampler.name} returned shape {new_params.shape} "
                    f"at step {step + 1}, expected {params.shape}."
                )
            step += 1
            params, state = new_params, transition.state
            if schedule.keeps(step):
                chain.record(step, params, transition.diagnostics)
            chain.suspended_state = SuspendedState(params, state, rng.bit_generator.state, step)
    except NumericalError as err:
        err.step = failing_step
        err.chain_id = chain.chain_id
        err.chain = chain
        chain.status = ChainStatus.SUSPENDED
        chain.error = err
        logger.error("Chain %s aborted: %s", chain.chain_id, err)
        raise
    except DimensionMismatch as err:
        err.chain = chain
        chain.status = ChainStatus.FAILED
        chain.error = err
        logger.error("Chain %s failed: %s", chain.chain_id, err)
        raise
    except BaseException as err:
        # anything else, including KeyboardInterrupt, stops at the last good step
        err.chain = chain
        chain.status = ChainStatus.SUSPENDED
        chain.error = err
        logger.error(
            "Chain %s interrupted after step %d: %r", chain.chain_id, chain.n_steps, err
        )
        raise

    chain.status = ChainStatus.SUSPENDED
    return chain


def run(
    task: Task | Chain,
    steps: int | range,
    burnin: int | None = None,
    thinning: int | None = None,
    seed=DEFAULT_SEED,
    progress: bool = False,
    cancel: CancelToken | None = None,
) -> Chain:
    """Run a task as a single chain, or continue an existing chain.

    Parameters
    ----------
    task : Task or Chain
        A bound model/sampler pair (see :func:`mcchain.task.bind`), or a
        chain returned by a previous run, in which case this is
        :func:`resume` and ``steps`` is the number of additional steps.
    steps : int or range
        Number of steps (run as ``1..steps``) or the range of step indices
        to record. A range must start at or after its step, since steps
        before its first element are the burn-in: ``range(10, 1001, 10)``
        keeps steps 10, 20, ..., 1000, while ``range(1, 1001, 10)`` is
        rejected.
    burnin : int, optional
        Number of initial steps not recorded. Default is 0.
    thinning : int, optional
        Record every ``thinning``-th step after burn-in. Default is 1.
    seed : int or numpy.random.SeedSequence, optional
        Seed of the chain's random stream. Default is 61254557.
    progress : bool, optional
        Whether to display a progress bar. Default is False.
    cancel : CancelToken, optional
        Checked between steps; once set, the run stops and the chain is
        suspended so it can be resumed.

    Returns
    -------
    Chain
        The suspended chain holding all recorded samples and diagnostics.

    Raises
    ------
    CapabilityError
        If the task's model lacks a capability its sampler requires.
    ScheduleError
        If the step schedule is invalid. Raised before any step executes.
    NumericalError
        If a step fails numerically; ``err.chain`` holds the partial chain.
    DimensionMismatch
        If the sampler breaks the dimensionality contract.

    Examples
    --------
    >>> task = bind(model, RandomWalkMetropolis(scale=0.5))
    >>> chain = run(task, steps=1000, burnin=100, thinning=5)
    >>> chain = run(chain, steps=500)  # continue for 500 more steps
    """
    if isinstance(task, Chain):
        if burnin is not None or thinning is not None:
            raise ScheduleError("A resumed chain keeps its burnin and thinning.")
        return resume(task, steps, progress=progress, cancel=cancel)
    if not isinstance(task, Task):
        raise InputError(f"Expected a Task or a Chain, got {type(task).__name__}.")

    check_capabilities(task.model, task.sampler)
    schedule = make_schedule(steps, burnin, thinning)

    logger.info("Running %s for %d steps", task.sampler.name, schedule.total_steps)
    logger.info("Burn-in: %d, thinning: %d", schedule.burnin, schedule.thinning)

    chain = new_chain(task, schedule, seed=seed)
    return advance(chain, progress=progress, cancel=cancel)


def resume(
    chain: Chain,
    steps: int,
    progress: bool = False,
    cancel: CancelToken | None = None,
) -> Chain:
    """Continue a suspended chain for ``steps`` more steps.

    The keep policy is unchanged, so a resumed run records exactly the rows an
    uninterrupted run with the combined budget would have recorded.

    Raises
    ------
    InputError
        If the chain failed or is currently running.
    ScheduleError
        If ``steps`` is not a positive integer.
    """
    if not chain.resumable:
        raise InputError(f"Chain {chain.chain_id} is {chain.status} and cannot be resumed.")
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)):
        raise ScheduleError(f"A chain is resumed for an int number of steps, got {type(steps).__name__}.")
    if steps < 1:
        raise ScheduleError(f"Number of steps to add must be positive, got {steps}.")
    check_capabilities(chain.model, chain.sampler)

    # counted from the last completed step, which trails total_steps after a cancel
    chain.schedule = Schedule(
        chain.n_steps + int(steps), chain.schedule.burnin, chain.schedule.thinning
    )

    logger.info(
        "Resuming chain %s at step %d for %d steps", chain.chain_id, chain.n_steps, steps
    )
    return advance(chain, progress=progress, cancel=cancel)
