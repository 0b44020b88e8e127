"""Utility types and exceptions for mcchain.

This module contains type definitions and custom exceptions used
throughout the mcchain package:

- Type annotations for parameter vectors, metric tensors and particles
- The closed ``Capability`` set a model may provide
- Custom exception classes for error handling
"""

from .exceptions import (
    CapabilityError,
    DimensionMismatch,
    InputError,
    MCChainError,
    NumericalError,
    ScheduleError,
)
from .types import Capability

__all__ = [
    "Capability",
    "CapabilityError",
    "DimensionMismatch",
    "InputError",
    "MCChainError",
    "NumericalError",
    "ScheduleError",
]
