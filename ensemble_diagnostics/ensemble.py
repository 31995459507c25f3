"""
Ensemble of independently computed trajectories.

The ensemble is built once after every trajectory has completed and is never
mutated afterwards. Everything else in the package consumes it.
"""

import numpy as np
from numpy.typing import ArrayLike
from dataclasses import dataclass
from typing import Any, Iterator, List, Sequence, Tuple, Union

from .errors import ShapeMismatchError, UnsupportedOperationError
from .trajectory import StateKind, Trajectory


@dataclass(eq=False)
class EnsembleResult:
    """
    N independent trajectories plus run metadata.

    Read-only once constructed: assigning to any attribute raises
    AttributeError. Derived ensembles (``reverse()``) are new instances.
    """

    trajectories: Tuple[Trajectory, ...]
    elapsed_time: float = 0.0
    converged: bool = False
    stats: Any = None               # Opaque solver statistics

    def __post_init__(self):
        self._validate()
        object.__setattr__(self, "_sealed", True)

    def __setattr__(self, name, value):
        if getattr(self, "_sealed", False):
            raise AttributeError(
                f"{type(self).__name__} is read-only; cannot set {name!r}"
            )
        super().__setattr__(name, value)

    def _validate(self):
        """Normalize and check fields; subclasses extend this before sealing."""
        self.trajectories = tuple(self.trajectories)
        if len(self.trajectories) == 0:
            raise ValueError("Ensemble must contain at least one trajectory")
        for i, traj in enumerate(self.trajectories):
            if not isinstance(traj, Trajectory):
                raise TypeError(
                    f"Ensemble member {i} is {type(traj).__name__}, expected Trajectory"
                )

        kinds = {traj.state_kind for traj in self.trajectories}
        if len(kinds) > 1:
            raise ShapeMismatchError(
                "Ensemble mixes scalar-state and array-state trajectories"
            )
        self.elapsed_time = float(self.elapsed_time)
        self.converged = bool(self.converged)

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.trajectories)

    def __iter__(self) -> Iterator[Trajectory]:
        return iter(self.trajectories)

    def __getitem__(self, index: Union[int, slice]) -> Union[Trajectory, List[Trajectory]]:
        if isinstance(index, slice):
            return list(self.trajectories[index])
        return self.trajectories[index]

    @property
    def n_trajectories(self) -> int:
        return len(self.trajectories)

    @property
    def state_kind(self) -> StateKind:
        return self.trajectories[0].state_kind

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def __call__(self, time: Union[float, ArrayLike]) -> List[Union[float, np.ndarray]]:
        """
        Evaluate every trajectory's interpolant at ``time``.

        Fails before evaluating anything if any trajectory lacks continuous
        evaluation.
        """
        self.require_interpolants()
        return [traj.value_at(time) for traj in self.trajectories]

    def require_interpolants(self):
        """Raise UnsupportedOperationError unless every trajectory can be interpolated."""
        for i, traj in enumerate(self.trajectories):
            if not traj.has_interpolant:
                raise UnsupportedOperationError(
                    f"Trajectory {i} does not provide continuous evaluation"
                )

    def reverse(self) -> "EnsembleResult":
        """New ensemble with the trajectory order reversed; trajectories are shared."""
        return EnsembleResult(
            trajectories=self.trajectories[::-1],
            elapsed_time=self.elapsed_time,
            converged=self.converged,
            stats=self.stats,
        )

    # ------------------------------------------------------------------
    # Alignment helpers
    # ------------------------------------------------------------------

    def shares_time_grid(self) -> bool:
        """True if every trajectory uses exactly the same discretization."""
        t_ref = self.trajectories[0].t
        return all(np.array_equal(traj.t, t_ref) for traj in self.trajectories[1:])

    def common_time_grid(self) -> np.ndarray:
        """
        The shared discretization.

        Raises
        ------
        ShapeMismatchError
            If any trajectory's grid differs from trajectory 0's.
        """
        t_ref = self.trajectories[0].t
        for i, traj in enumerate(self.trajectories[1:], start=1):
            if len(traj.t) != len(t_ref):
                raise ShapeMismatchError(
                    f"Trajectory {i} has {len(traj.t)} time points, "
                    f"trajectory 0 has {len(t_ref)}"
                )
            if not np.array_equal(traj.t, t_ref):
                raise ShapeMismatchError(
                    f"Trajectory {i} is not on the same time grid as trajectory 0"
                )
        return t_ref

    def state_shape(self) -> Tuple[int, ...]:
        """Common state shape; raises ShapeMismatchError if trajectories disagree."""
        shape = self.trajectories[0].state_shape
        for i, traj in enumerate(self.trajectories[1:], start=1):
            if traj.state_shape != shape:
                raise ShapeMismatchError(
                    f"Trajectory {i} has state shape {traj.state_shape}, "
                    f"trajectory 0 has {shape}"
                )
        return shape

    def states_at(self, index: int) -> np.ndarray:
        """States at time index ``index``, shape (N, *state_shape)."""
        self.state_shape()
        return np.stack([traj.u[index] for traj in self.trajectories])

    def final_states(self) -> np.ndarray:
        """Final states, shape (N, *state_shape)."""
        return self.states_at(-1)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__} of length {len(self)} with "
            f"{self.state_kind.value} state{self.trajectories[0].state_shape or ''}, "
            f"elapsed_time={self.elapsed_time:.3g}s, converged={self.converged}"
        )


def as_ensemble(
    trajectories: Union[EnsembleResult, Sequence[Trajectory]],
    elapsed_time: float = 0.0,
    converged: bool = False,
) -> EnsembleResult:
    """Wrap a plain sequence of trajectories; ensembles pass through unchanged."""
    if isinstance(trajectories, EnsembleResult):
        return trajectories
    return EnsembleResult(list(trajectories), elapsed_time=elapsed_time, converged=converged)
