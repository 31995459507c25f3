"""
Typed exceptions for ensemble analysis.

Every error here reflects a usage or data problem, never a transient fault.
They are raised immediately and no computation returns a partially populated
result after one of them.
"""

from enum import Enum
from typing import Optional, Type, TypeVar, Union


class EnsembleError(Exception):
    """Base ensemble analysis error."""


class MissingDataError(EnsembleError, LookupError):
    """A trajectory lacks an expected error field or analytic companion."""


class ShapeMismatchError(EnsembleError, ValueError):
    """Trajectories are not aligned where an index-wise operation needs them to be."""


class DimensionMismatchError(EnsembleError, ValueError):
    """A per-trajectory vector does not have one entry per trajectory."""


class AnalyticEvaluationError(EnsembleError, RuntimeError):
    """The analytic accessor raised or returned an invalid value."""

    def __init__(
        self,
        message: str,
        trajectory_index: Optional[int] = None,
        time: Optional[float] = None,
    ):
        super().__init__(message)
        self.trajectory_index = trajectory_index
        self.time = time


class UnsupportedOperationError(EnsembleError, TypeError):
    """An operation needs continuous evaluation a trajectory does not provide."""


class InvalidChoiceError(EnsembleError, ValueError):
    """An unrecognized configuration value."""


class InsufficientSamplesError(EnsembleError, ValueError):
    """Too few trajectories for a statistic under the ``error`` policy."""


E = TypeVar("E", bound=Enum)


def coerce_choice(enum_cls: Type[E], value: Union[E, str], name: str) -> E:
    """
    Resolve an enum member from either the member itself or its string value.

    Raises
    ------
    InvalidChoiceError
        If ``value`` names no member of ``enum_cls``.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise InvalidChoiceError(
            f"{name} choice {value!r} not valid. Must be one of: {allowed}"
        ) from None
