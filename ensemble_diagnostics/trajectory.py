"""
Trajectory records consumed by the ensemble analysis.

A trajectory is a discretized solution ``u[0..M-1]`` on times ``t[0..M-1]``
with, optionally:
- a continuous interpolant (``value_at``) for resampling at arbitrary times
- an analytic companion, either inline analytic states on the same grid or an
  accessor ``analytic(u0, p, t, W)`` evaluated with this trajectory's own
  initial state, parameters and realized noise
- a mapping of strong-error scalars computed by the producer

How the trajectory was integrated is irrelevant here.
"""

import numpy as np
from numpy.typing import ArrayLike
from scipy.interpolate import interp1d
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .errors import (
    AnalyticEvaluationError,
    InvalidChoiceError,
    MissingDataError,
    ShapeMismatchError,
    UnsupportedOperationError,
)


class StateKind(Enum):
    """Shape class of a trajectory's state, resolved once at construction."""
    SCALAR = "scalar"       # u[i] is a number
    ARRAY = "array"         # u[i] is an ndarray of fixed shape


INTERPOLATION_KINDS = ("linear", "cubic")

AnalyticFunction = Callable[[Any, Any, float, Any], ArrayLike]


def _as_state(value: np.ndarray, kind: StateKind) -> Union[float, np.ndarray]:
    if kind == StateKind.SCALAR and np.ndim(value) == 0:
        return float(value)
    return value


class NoisePath:
    """
    Realized Wiener path W(t) sampled on a time grid.

    Between samples the path is evaluated by linear interpolation (the
    conditional mean of the Brownian bridge).

    Parameters
    ----------
    t : array_like
        Strictly increasing sample times, shape (n_times,).
    W : array_like
        Sampled values, shape (n_times,) or (n_times, *noise_shape).
    """

    def __init__(self, t: ArrayLike, W: ArrayLike):
        self.t = np.asarray(t, dtype=float)
        self.W = np.asarray(W, dtype=float)
        if self.t.ndim != 1 or len(self.t) < 2:
            raise ValueError("Noise path needs at least 2 sample times")
        if len(self.W) != len(self.t):
            raise ValueError(
                f"Noise path has {len(self.t)} times but {len(self.W)} values"
            )
        if np.any(np.diff(self.t) <= 0):
            raise ValueError("Noise path times must be strictly increasing")
        self._interp = interp1d(self.t, self.W, axis=0, assume_sorted=True)

    def __call__(self, time: Union[float, ArrayLike]) -> Union[float, np.ndarray]:
        value = self._interp(time)
        if np.ndim(value) == 0:
            return float(value)
        return value

    def __repr__(self) -> str:
        return (
            f"NoisePath(n_times={len(self.t)}, "
            f"t=[{self.t[0]:.3g}, {self.t[-1]:.3g}], shape={self.W.shape[1:]})"
        )


class Trajectory:
    """
    One solution of an ensemble.

    Parameters
    ----------
    t : array_like
        Non-decreasing times, shape (M,), M >= 1.
    u : array_like
        States, shape (M,) for scalar state or (M, *state_shape).
    u_analytic : array_like or Trajectory, optional
        Inline analytic states on the same grid as ``u``.
    analytic : callable, optional
        Accessor ``analytic(u0, p, time, W) -> state``.
    u0 : optional
        Initial state handed to ``analytic``. Defaults to ``u[0]``.
    p : optional
        Parameters handed to ``analytic``.
    noise : NoisePath or callable, optional
        Realized noise; ``noise(time)`` is handed to ``analytic`` as ``W``.
        When absent ``W`` is None.
    errors : dict, optional
        Strong-error scalars computed upstream, e.g. ``{"final": ..., "l2": ...}``.
    interpolation : {"linear", "cubic"} or None
        Kind of continuous interpolant. None disables ``value_at``.

    Examples
    --------
    >>> traj = Trajectory([0.0, 1.0], [1.0, 2.0], u_analytic=[1.0, 2.1])
    >>> traj.value_at(0.5)
    1.5
    """

    def __init__(
        self,
        t: ArrayLike,
        u: ArrayLike,
        u_analytic: Optional[Union[ArrayLike, "Trajectory"]] = None,
        analytic: Optional[AnalyticFunction] = None,
        u0: Any = None,
        p: Any = None,
        noise: Optional[Callable] = None,
        errors: Optional[Dict[str, float]] = None,
        interpolation: Optional[str] = "linear",
    ):
        self.t = np.asarray(t, dtype=float)
        self.u = np.asarray(u, dtype=float)

        if self.t.ndim != 1:
            raise ValueError(f"Times must be 1-D, got shape {self.t.shape}")
        if len(self.t) == 0:
            raise ValueError("Trajectory must contain at least one time point")
        if len(self.u) != len(self.t):
            raise ShapeMismatchError(
                f"Trajectory has {len(self.t)} times but {len(self.u)} states"
            )
        if np.any(np.diff(self.t) < 0):
            raise ValueError("Trajectory times must be non-decreasing")

        self.state_kind = StateKind.SCALAR if self.u.ndim == 1 else StateKind.ARRAY

        if interpolation is not None and interpolation not in INTERPOLATION_KINDS:
            raise InvalidChoiceError(
                f"interpolation choice {interpolation!r} not valid. "
                f"Must be one of: {', '.join(INTERPOLATION_KINDS)} or None"
            )
        self.interpolation = interpolation
        self._interp = None

        if isinstance(u_analytic, Trajectory):
            u_analytic = u_analytic.u
        if u_analytic is not None:
            u_analytic = np.asarray(u_analytic, dtype=float)
            if u_analytic.shape != self.u.shape:
                raise ShapeMismatchError(
                    f"Analytic states have shape {u_analytic.shape}, "
                    f"expected {self.u.shape}"
                )
        self.u_analytic = u_analytic

        self.analytic = analytic
        self.u0 = self.u[0] if u0 is None else u0
        self.p = p
        self.noise = noise
        self.errors = dict(errors) if errors is not None else None

    # ------------------------------------------------------------------
    # Discrete access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.t)

    def __getitem__(self, index):
        value = self.u[index]
        return _as_state(value, self.state_kind)

    @property
    def state_shape(self) -> Tuple[int, ...]:
        return self.u.shape[1:]

    @property
    def final_state(self) -> Union[float, np.ndarray]:
        return self[-1]

    @property
    def t_span(self) -> Tuple[float, float]:
        return float(self.t[0]), float(self.t[-1])

    @property
    def has_interpolant(self) -> bool:
        return self.interpolation is not None

    @property
    def has_inline_analytic(self) -> bool:
        return self.u_analytic is not None

    @property
    def has_analytic_function(self) -> bool:
        return self.analytic is not None

    def covers(self, times: ArrayLike) -> bool:
        """True if every time lies within this trajectory's span."""
        times = np.asarray(times, dtype=float)
        t_start, t_end = self.t_span
        return bool(np.all((times >= t_start) & (times <= t_end)))

    # ------------------------------------------------------------------
    # Continuous evaluation
    # ------------------------------------------------------------------

    def value_at(self, time: Union[float, ArrayLike]) -> Union[float, np.ndarray]:
        """
        Evaluate the interpolant at one time or an array of times.

        Returns a state for a scalar time, or an array of shape
        (n_times, *state_shape) for an array of times.

        Raises
        ------
        UnsupportedOperationError
            If the trajectory was built without interpolation.
        ValueError
            If a time lies outside ``[t[0], t[-1]]``.
        """
        if not self.has_interpolant:
            raise UnsupportedOperationError(
                "Trajectory does not provide continuous evaluation (interpolation=None)"
            )
        if not self.covers(time):
            t_start, t_end = self.t_span
            raise ValueError(
                f"Requested time outside trajectory span [{t_start}, {t_end}]"
            )

        if len(self.t) == 1:
            # Single point: the only admissible query time is t[0]
            times = np.asarray(time, dtype=float)
            value = np.broadcast_to(self.u[0], times.shape + self.state_shape).copy()
        else:
            value = self._interpolant()(time)
        return _as_state(value, self.state_kind)

    def __call__(self, time: Union[float, ArrayLike]) -> Union[float, np.ndarray]:
        return self.value_at(time)

    def _interpolant(self):
        if self._interp is None:
            kind = self.interpolation
            if kind == "cubic" and len(self.t) < 4:
                kind = "linear"
            self._interp = interp1d(
                self.t, self.u, kind=kind, axis=0, assume_sorted=True
            )
        return self._interp

    # ------------------------------------------------------------------
    # Analytic companion
    # ------------------------------------------------------------------

    def analytic_at(self, time: float) -> Union[float, np.ndarray]:
        """
        Evaluate the analytic accessor at ``time``.

        Uses this trajectory's own ``u0``, ``p`` and realized noise value at
        ``time``, so each trajectory is compared against its own analytic path.

        Raises
        ------
        MissingDataError
            If no accessor is attached.
        AnalyticEvaluationError
            If the accessor raises, returns a value of the wrong shape, or a
            non-finite value.
        """
        if self.analytic is None:
            raise MissingDataError("Trajectory has no analytic accessor")

        try:
            W = self.noise(time) if self.noise is not None else None
            value = np.asarray(self.analytic(self.u0, self.p, time, W), dtype=float)
        except Exception as exc:
            raise AnalyticEvaluationError(
                f"Analytic solution failed at t={time}: {exc}", time=time
            ) from exc

        if value.shape != self.state_shape:
            raise AnalyticEvaluationError(
                f"Analytic solution at t={time} has shape {value.shape}, "
                f"expected {self.state_shape}",
                time=time,
            )
        if not np.all(np.isfinite(value)):
            raise AnalyticEvaluationError(
                f"Analytic solution at t={time} is not finite", time=time
            )
        return _as_state(value, self.state_kind)

    def analytic_states(self) -> np.ndarray:
        """Analytic states on this trajectory's own grid, shaped like ``u``."""
        if self.u_analytic is not None:
            return self.u_analytic
        if self.analytic is not None:
            return np.array([self.analytic_at(s) for s in self.t], dtype=float)
        raise MissingDataError("Trajectory has no analytic solution attached")

    def analytic_final(self) -> Union[float, np.ndarray]:
        """Analytic state at the final time."""
        if self.u_analytic is not None:
            return _as_state(self.u_analytic[-1], self.state_kind)
        if self.analytic is not None:
            return self.analytic_at(float(self.t[-1]))
        raise MissingDataError("Trajectory has no analytic solution attached")

    def __repr__(self) -> str:
        t_start, t_end = self.t_span
        return (
            f"Trajectory(n_times={len(self.t)}, t=[{t_start:.3g}, {t_end:.3g}], "
            f"state={self.state_kind.value}{self.state_shape or ''}, "
            f"interpolation={self.interpolation})"
        )


def l2_linf_norms(differences: np.ndarray) -> Tuple[float, float]:
    """
    Time-series norms of a difference path.

    Parameters
    ----------
    differences : np.ndarray
        Shape (M,) or (M, *state_shape).

    Returns
    -------
    l2 : float
        sqrt of the mean over time of the squared per-time RMS over components.
    linf : float
        Largest absolute entry over all times and components.
    """
    d = np.asarray(differences, dtype=float).reshape(len(differences), -1)
    rms = np.sqrt(np.mean(d ** 2, axis=1))
    l2 = float(np.sqrt(np.mean(rms ** 2)))
    linf = float(np.max(np.abs(d)))
    return l2, linf


def solution_errors(u: ArrayLike, u_analytic: ArrayLike) -> Dict[str, float]:
    """
    Standard strong-error scalars of one trajectory against its analytic path.

    Returns
    -------
    dict
        ``final``: norm of the final-time difference,
        ``l2``: time-series RMS error, ``linf``: maximum absolute error.
    """
    u = np.asarray(u, dtype=float)
    u_analytic = np.asarray(u_analytic, dtype=float)
    if u.shape != u_analytic.shape:
        raise ShapeMismatchError(
            f"Numeric states {u.shape} and analytic states {u_analytic.shape} differ"
        )
    diff = u - u_analytic
    l2, linf = l2_linf_norms(diff)
    return {
        "final": float(np.linalg.norm(np.ravel(diff[-1]))),
        "l2": l2,
        "linf": linf,
    }
