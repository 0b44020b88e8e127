"""Binding of models to samplers."""

from dataclasses import dataclass

from .model import Model
from .samplers.base import Sampler
from .utils.exceptions import CapabilityError, InputError


def check_capabilities(model: Model, sampler: Sampler) -> None:
    """Raise CapabilityError if the model lacks anything the sampler requires."""
    missing = sampler.required_capabilities - model.capabilities
    if missing:
        raise CapabilityError(missing, sampler.name)


@dataclass(frozen=True)
class Task:
    """A model bound to a sampler, validated and ready to run.

    Tasks are only created through :func:`bind` (or ``model * sampler``), so
    holding a Task means the capability check has passed.
    """

    model: Model
    sampler: Sampler

    def __repr__(self) -> str:
        """String representation of the task."""
        return f"Task(sampler={self.sampler.name}, ndim={self.model.ndim})"

    def __mul__(self, steps):
        """Run this task, ``task * steps``; equivalent to ``run(task, steps)``."""
        from .runners.serial import run

        return run(self, steps=steps)


def bind(model: Model, sampler: Sampler) -> Task:
    """Bind a model to a sampler, checking capabilities before any step runs.

    Parameters
    ----------
    model : Model
        The model to sample from.
    sampler : Sampler
        The sampler kind and its configuration.

    Returns
    -------
    Task
        The validated pairing.

    Raises
    ------
    InputError
        If the arguments are not a Model and a Sampler.
    CapabilityError
        If the model lacks a capability the sampler requires.
    """
    if not isinstance(model, Model):
        raise InputError(f"Expected a Model, got {type(model).__name__}.")
    if not isinstance(sampler, Sampler):
        raise InputError(f"Expected a Sampler, got {type(sampler).__name__}.")
    check_capabilities(model, sampler)
    return Task(model, sampler)
