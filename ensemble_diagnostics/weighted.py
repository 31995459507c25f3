"""
Weighted reductions over an ensemble.

A WeightedEnsemble is a read-through projection: it holds a weak reference to
an ensemble owned elsewhere plus one scalar weight per trajectory. It must not
outlive the ensemble; once the ensemble has been garbage collected any access
raises ReferenceError.

Weights are used as given. Importance-sampling estimators that need
normalized weights ask for ``view.normalized()`` explicitly.
"""

import numpy as np
from numpy.typing import ArrayLike
from typing import Tuple, Union
import weakref

from .ensemble import EnsembleResult
from .errors import DimensionMismatchError, ShapeMismatchError


Selector = Union[int, Tuple[int, ...]]


class WeightedEnsemble:
    """
    Scalar weight per trajectory over a separately owned ensemble.

    Parameters
    ----------
    ensemble : EnsembleResult
        Backing ensemble. Not copied; the caller keeps it alive.
    weights : array_like
        One number per trajectory.

    Examples
    --------
    >>> view = WeightedEnsemble(ensemble, [0.5, 0.5])
    >>> view[-1]          # weighted sum of final states
    """

    def __init__(self, ensemble: EnsembleResult, weights: ArrayLike):
        weights = np.array(weights, dtype=float)
        if weights.ndim != 1 or len(weights) != len(ensemble):
            raise DimensionMismatchError(
                f"Expected {len(ensemble)} weights (one per trajectory), "
                f"got shape {weights.shape}"
            )
        weights.setflags(write=False)
        self.weights = weights
        self._ensemble_ref = weakref.ref(ensemble)

    @property
    def ensemble(self) -> EnsembleResult:
        ensemble = self._ensemble_ref()
        if ensemble is None:
            raise ReferenceError("WeightedEnsemble outlived its backing ensemble")
        return ensemble

    def __len__(self) -> int:
        return len(self.weights)

    def __getitem__(self, selector: Selector) -> Union[float, np.ndarray]:
        return weighted_reduce(self, selector)

    def normalized(self) -> "WeightedEnsemble":
        """New view over the same ensemble with weights scaled to sum to 1."""
        total = float(np.sum(self.weights))
        if total == 0.0:
            raise ValueError("Cannot normalize weights that sum to 0")
        return WeightedEnsemble(self.ensemble, self.weights / total)

    def __repr__(self) -> str:
        return (
            f"WeightedEnsemble(n_trajectories={len(self.weights)}, "
            f"weight_sum={float(np.sum(self.weights)):.4g})"
        )


def _select(traj, selector: Selector) -> np.ndarray:
    if isinstance(selector, tuple):
        time_index, component = selector[0], selector[1:]
    else:
        time_index, component = selector, ()
    value = np.asarray(traj.u[time_index], dtype=float)
    if component:
        value = value[component]
    return value


def weighted_reduce(view: WeightedEnsemble, selector: Selector) -> Union[float, np.ndarray]:
    """
    Weighted sum over trajectories of the values picked by ``selector``.

    Parameters
    ----------
    view : WeightedEnsemble
        Weights and their backing ensemble.
    selector : int or tuple of int
        Time index, or ``(time_index, *component_index)``.

    Returns
    -------
    float or np.ndarray
        ``sum_j weights[j] * value_j``, not normalized.

    Raises
    ------
    ShapeMismatchError
        If the selector is out of range for a trajectory or the selected
        values differ in shape.
    """
    ensemble = view.ensemble
    values = []
    for i, traj in enumerate(ensemble):
        try:
            values.append(_select(traj, selector))
        except IndexError as exc:
            raise ShapeMismatchError(
                f"Selector {selector!r} out of range for trajectory {i}: {exc}"
            ) from exc

    shape = values[0].shape
    for i, value in enumerate(values[1:], start=1):
        if value.shape != shape:
            raise ShapeMismatchError(
                f"Trajectory {i} selection has shape {value.shape}, expected {shape}"
            )

    total = np.tensordot(view.weights, np.stack(values), axes=1)
    if np.ndim(total) == 0:
        return float(total)
    return total
