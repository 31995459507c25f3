"""
Strong and weak convergence errors of an ensemble against analytic solutions.

Strong errors are per-trajectory scalars computed by the producer against an
analytic path driven by the same noise realization; here they are only
collected and summarized (mean, median).

Weak errors compare the ensemble *mean* of the numeric solutions with the
ensemble mean of the analytic solutions. For stochastic solvers a single
numeric path against a single analytic path is only meaningful when both use
the same realization, whereas the distributional mean is always a valid
diagnostic. Three variants:
- final time: norm of the difference of the mean final states
- time series: on the shared native grid, l2 and l-infinity norms of the
  per-time mean difference
- dense: on an equally spaced grid, each trajectory resampled through its own
  interpolant and compared against its own analytic path (own u0, p and noise
  value at each time)

Aggregation is a per-trajectory map followed by a single sum/max combine. It
either fully succeeds or raises; no partial report is ever returned.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union
import json
import warnings

from .ensemble import EnsembleResult, as_ensemble
from .errors import (
    AnalyticEvaluationError,
    DimensionMismatchError,
    MissingDataError,
    ShapeMismatchError,
    UnsupportedOperationError,
)
from .trajectory import Trajectory, l2_linf_norms


WEAK_ERROR_KEYS = ("weak_final", "weak_l2", "weak_linf", "weak_L2", "weak_Linf")


@dataclass
class ErrorOptions:
    """Which weak-error variants to compute."""
    compute_timeseries_weak: bool = False
    compute_dense_weak: bool = False
    dense_grid_size: int = 100

    def __post_init__(self):
        if self.dense_grid_size < 2:
            raise ValueError(
                f"dense_grid_size must be >= 2, got {self.dense_grid_size}"
            )


@dataclass(eq=False)
class ErrorReport(EnsembleResult):
    """Ensemble plus its strong-error summaries and weak convergence errors."""

    strong_errors: Dict[str, np.ndarray] = field(default_factory=dict)   # name -> (N,)
    error_means: Dict[str, float] = field(default_factory=dict)
    error_medians: Dict[str, float] = field(default_factory=dict)
    weak_errors: Dict[str, float] = field(default_factory=dict)

    def _validate(self):
        super()._validate()
        n = len(self.trajectories)
        self.strong_errors = {
            name: np.asarray(values, dtype=float)
            for name, values in self.strong_errors.items()
        }
        self.error_means = dict(self.error_means)
        self.error_medians = dict(self.error_medians)
        self.weak_errors = dict(self.weak_errors)
        for name, values in self.strong_errors.items():
            if values.shape != (n,):
                raise DimensionMismatchError(
                    f"Strong error '{name}' has {values.size} values for {n} trajectories"
                )
            for i, traj in enumerate(self.trajectories):
                if traj.errors is None or name not in traj.errors:
                    raise MissingDataError(
                        f"Trajectory {i} has no strong error '{name}'"
                    )
        unknown = set(self.weak_errors) - set(WEAK_ERROR_KEYS)
        if unknown:
            raise ValueError(f"Unrecognized weak error keys: {sorted(unknown)}")

    def reverse(self) -> "ErrorReport":
        """Reverse trajectory order together with the per-trajectory strong errors."""
        return ErrorReport(
            trajectories=self.trajectories[::-1],
            elapsed_time=self.elapsed_time,
            converged=self.converged,
            stats=self.stats,
            strong_errors={k: v[::-1] for k, v in self.strong_errors.items()},
            error_means=dict(self.error_means),
            error_medians=dict(self.error_medians),
            weak_errors=dict(self.weak_errors),
        )

    def to_dict(self) -> Dict:
        return {
            'n_trajectories': len(self.trajectories),
            'elapsed_time': self.elapsed_time,
            'converged': self.converged,
            'strong_errors': {k: v.tolist() for k, v in self.strong_errors.items()},
            'error_means': dict(self.error_means),
            'error_medians': dict(self.error_medians),
            'weak_errors': dict(self.weak_errors),
        }

    def __repr__(self) -> str:
        lines = [f"ErrorReport(n_trajectories={len(self.trajectories)},"]
        for name in self.strong_errors:
            lines.append(
                f"  {name}: mean={self.error_means[name]:.3e}, "
                f"median={self.error_medians[name]:.3e},"
            )
        for name, value in self.weak_errors.items():
            lines.append(f"  {name}={value:.3e},")
        lines.append(")")
        return "\n".join(lines)


class ErrorAggregator:
    """
    Computes an ErrorReport from an ensemble with analytic references.

    Examples
    --------
    >>> agg = ErrorAggregator(ErrorOptions(compute_timeseries_weak=True))
    >>> report = agg.aggregate(ensemble)
    >>> report.weak_errors["weak_final"], report.weak_errors["weak_l2"]
    """

    DEFAULT_DENSE_GRID_SIZE = 100

    def __init__(self, options: Optional[ErrorOptions] = None):
        self.options = options if options is not None else ErrorOptions()

    def aggregate(self, ensemble: EnsembleResult) -> ErrorReport:
        """
        Compute strong-error summaries and the requested weak errors.

        Raises
        ------
        MissingDataError
            Trajectory 0 carries no error mapping, another trajectory lacks one
            of its keys, or an analytic solution is missing.
        ShapeMismatchError
            Time-series weak errors requested on unaligned grids, differing
            state shapes, or a trajectory not covering the dense grid.
        UnsupportedOperationError
            Dense weak errors requested for a trajectory without interpolant.
        AnalyticEvaluationError
            The analytic accessor failed during dense evaluation.
        """
        trajectories = ensemble.trajectories
        ensemble.state_shape()

        if len(trajectories) == 1:
            warnings.warn(
                "Ensemble has a single trajectory; weak errors reduce to the "
                "pathwise error of that trajectory."
            )

        strong_errors, error_means, error_medians = self._strong_errors(trajectories)

        weak_errors = {"weak_final": self._weak_final(trajectories)}

        if self.options.compute_timeseries_weak:
            l2, linf = self._timeseries_weak(ensemble)
            weak_errors["weak_l2"] = l2
            weak_errors["weak_linf"] = linf

        if self.options.compute_dense_weak:
            L2, Linf = self._dense_weak(ensemble)
            weak_errors["weak_L2"] = L2
            weak_errors["weak_Linf"] = Linf

        return ErrorReport(
            trajectories=trajectories,
            elapsed_time=ensemble.elapsed_time,
            converged=ensemble.converged,
            stats=ensemble.stats,
            strong_errors=strong_errors,
            error_means=error_means,
            error_medians=error_medians,
            weak_errors=weak_errors,
        )

    def _strong_errors(self, trajectories: Sequence[Trajectory]):
        if trajectories[0].errors is None:
            raise MissingDataError(
                "Trajectory 0 carries no strong-error mapping; ensemble errors "
                "need per-trajectory error metrics from the producer"
            )

        strong_errors = {}
        error_means = {}
        error_medians = {}
        for name in trajectories[0].errors:
            values = []
            for i, traj in enumerate(trajectories):
                if traj.errors is None or name not in traj.errors:
                    raise MissingDataError(
                        f"Trajectory {i} has no strong error '{name}'"
                    )
                values.append(traj.errors[name])
            values = np.asarray(values, dtype=float)
            strong_errors[name] = values
            error_means[name] = float(np.mean(values))
            error_medians[name] = float(np.median(values))
        return strong_errors, error_means, error_medians

    def _weak_final(self, trajectories: Sequence[Trajectory]) -> float:
        numeric = np.stack([np.asarray(traj.final_state) for traj in trajectories])
        analytic = np.stack([
            np.asarray(self._with_index(i, traj.analytic_final))
            for i, traj in enumerate(trajectories)
        ])
        diff = np.mean(numeric, axis=0) - np.mean(analytic, axis=0)
        return float(np.linalg.norm(np.ravel(diff)))

    def _timeseries_weak(self, ensemble: EnsembleResult):
        ensemble.common_time_grid()
        for i, traj in enumerate(ensemble):
            if not (traj.has_inline_analytic or traj.has_analytic_function):
                raise MissingDataError(f"Trajectory {i} has no analytic solution")

        differences = [
            self._with_index(i, lambda traj=traj: traj.u - traj.analytic_states())
            for i, traj in enumerate(ensemble)
        ]
        return self._combine(differences)

    def _dense_weak(self, ensemble: EnsembleResult):
        t_start, t_end = ensemble[0].t_span
        dense_times = np.linspace(t_start, t_end, self.options.dense_grid_size)

        # All preconditions up front so no work is done on a doomed aggregation
        for i, traj in enumerate(ensemble):
            if not traj.has_interpolant:
                raise UnsupportedOperationError(
                    f"Trajectory {i} does not provide continuous evaluation"
                )
            if not traj.has_analytic_function:
                raise MissingDataError(
                    f"Trajectory {i} has no analytic accessor for dense weak errors"
                )
            if not traj.covers(dense_times):
                raise ShapeMismatchError(
                    f"Trajectory {i} span {traj.t_span} does not cover "
                    f"[{t_start}, {t_end}]"
                )

        differences = [
            self._with_index(
                i, lambda traj=traj: self._dense_difference(traj, dense_times)
            )
            for i, traj in enumerate(ensemble)
        ]
        return self._combine(differences)

    @staticmethod
    def _dense_difference(traj: Trajectory, dense_times: np.ndarray) -> np.ndarray:
        numeric = np.asarray(traj.value_at(dense_times))
        analytic = np.array([traj.analytic_at(s) for s in dense_times], dtype=float)
        return numeric - analytic

    @staticmethod
    def _with_index(index: int, compute):
        try:
            return compute()
        except AnalyticEvaluationError as exc:
            exc.trajectory_index = index
            raise

    @staticmethod
    def _combine(differences: List[np.ndarray]):
        """Mean over trajectories of the difference paths, then l2 / linf norms."""
        mean_difference = np.sum(differences, axis=0) / len(differences)
        return l2_linf_norms(mean_difference)


def calculate_ensemble_errors(
    ensemble: Union[EnsembleResult, Sequence[Trajectory]],
    weak_timeseries_errors: bool = False,
    weak_dense_errors: bool = False,
    dense_grid_size: int = ErrorAggregator.DEFAULT_DENSE_GRID_SIZE,
    elapsed_time: float = 0.0,
    converged: bool = False,
) -> ErrorReport:
    """
    Convenience function to compute ensemble errors.

    Parameters
    ----------
    ensemble : EnsembleResult or list of Trajectory
        Trajectories carrying strong-error mappings and analytic solutions.
        A plain list is wrapped with ``elapsed_time`` and ``converged``.
    weak_timeseries_errors : bool
        Compute ``weak_l2`` and ``weak_linf`` on the shared native grid.
    weak_dense_errors : bool
        Compute ``weak_L2`` and ``weak_Linf`` on a dense resampled grid.
    dense_grid_size : int
        Number of equally spaced dense grid points.

    Returns
    -------
    ErrorReport
    """
    options = ErrorOptions(
        compute_timeseries_weak=weak_timeseries_errors,
        compute_dense_weak=weak_dense_errors,
        dense_grid_size=dense_grid_size,
    )
    ensemble = as_ensemble(ensemble, elapsed_time=elapsed_time, converged=converged)
    return ErrorAggregator(options).aggregate(ensemble)


def save_report_json(report: ErrorReport, path: str):
    """Save the statistics of an ErrorReport to JSON."""
    with open(path, 'w') as f:
        json.dump(report.to_dict(), f, indent=2)
