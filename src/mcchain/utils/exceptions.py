"""Custom exceptions for mcchain.

This module defines the exception hierarchy for the mcchain package,
providing specific error types for the different ways a run can fail.
"""


class MCChainError(Exception):
    """Base exception class for all mcchain-specific errors.

    This is the root exception class from which all other mcchain
    exceptions inherit. It can be used to catch any mcchain-related
    error in a general exception handler.
    """

    pass


class InputError(MCChainError):
    """Raised when required inputs are missing or invalid.

    This exception is raised when:
    - A model violates the derivative hierarchy
    - A parameter map does not partition the parameter vector
    - A chain is resumed from a state that does not allow it

    Parameters
    ----------
    msg : str, optional
        Human-readable error message describing the input problem.
    """

    def __init__(self, msg="Invalid or missing input parameters"):
        super().__init__(msg)


class CapabilityError(MCChainError):
    """Raised at bind time when a model lacks a capability a sampler requires.

    Parameters
    ----------
    missing : iterable of Capability
        The capabilities the sampler requires but the model does not provide.
    sampler : str
        Name of the sampler kind that was being bound.
    """

    def __init__(self, missing, sampler: str):
        self.missing = frozenset(missing)
        self.sampler = sampler
        super().__init__(self.missing, sampler)

    def __str__(self):
        names = ", ".join(sorted(str(c) for c in self.missing))
        return f"Model lacks {names}; sampler {self.sampler} requires it"


class NumericalError(MCChainError):
    """Raised when a density, gradient or tensor evaluation is non-finite.

    The sampler raises it with the offending parameter vector; the runner
    then fills in the step index and chain before propagating it. The chain
    holding all steps completed before the failure is available as
    ``chain``.

    Parameters
    ----------
    msg : str
        Description of the failed evaluation.
    params : FloatArray, optional
        Parameter vector at which the evaluation failed.
    step : int, optional
        1-based index of the step that failed.
    chain_id : str, optional
        Identifier of the chain that failed.
    """

    def __init__(self, msg="Non-finite evaluation", params=None, step=None, chain_id=None):
        super().__init__(msg)
        self.msg = msg
        self.params = params
        self.step = step
        self.chain_id = chain_id
        self.chain = None

    def __str__(self):
        parts = [self.msg]
        if self.step is not None:
            parts.append(f"at step {self.step}")
        if self.chain_id is not None:
            parts.append(f"of chain {self.chain_id}")
        if self.params is not None:
            parts.append(f"(params={list(self.params)})")
        return " ".join(parts)


class ScheduleError(MCChainError):
    """Raised for invalid burn-in, thinning or step range configuration.

    Always raised before any sampling step executes.
    """

    def __init__(self, msg="Invalid step schedule"):
        super().__init__(msg)


class DimensionMismatch(MCChainError):
    """Raised when a parameter vector or particle collection changes length.

    Indicates a contract violation by a plugged-in sampler or model and is
    fatal to the run. The partially filled chain, if any, is available as
    ``chain``.
    """

    def __init__(self, msg="Dimension mismatch"):
        super().__init__(msg)
        self.chain = None
