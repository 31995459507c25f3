"""
Per-time summary statistics across an ensemble.

At every time point and state component the N sampled values are reduced to
mean, population variance, median and a low/high quantile band. Two modes:
- native grid: all trajectories share one discretization, statistics are
  taken index-wise with no interpolation
- query times: each trajectory is evaluated through its interpolant at the
  requested times, so trajectories from different adaptive step sequences
  can be compared

Variance divides by N, so a single trajectory has variance 0. That convention
is an explicit policy (``on_insufficient_samples``) rather than silent
behaviour: ``zero`` keeps it (with a warning), ``error`` refuses ensembles of
fewer than two trajectories.
"""

import numpy as np
from numpy.typing import ArrayLike
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union
from enum import Enum
import csv
import warnings

from .ensemble import EnsembleResult
from .errors import InsufficientSamplesError, InvalidChoiceError, coerce_choice
from .trajectory import StateKind


class InsufficientSamplesPolicy(Enum):
    """What to do when the ensemble is too small for a variance."""
    ZERO = "zero"       # Report variance 0 for N = 1
    ERROR = "error"     # Raise InsufficientSamplesError


@dataclass(eq=False)
class SummaryResult:
    """Summary statistics of an ensemble on a shared time grid."""

    t: np.ndarray                       # Shape (M,)
    mean: np.ndarray                    # Shape (M, *state_shape)
    variance: np.ndarray                # Population variance, same shape
    median: np.ndarray
    qlow: np.ndarray
    qhigh: np.ndarray

    quantiles: Tuple[float, float]
    num_trajectories: int
    elapsed_time: float
    converged: bool
    state_kind: StateKind = StateKind.SCALAR

    @property
    def state_shape(self) -> Tuple[int, ...]:
        return self.mean.shape[1:]

    @property
    def n_components(self) -> int:
        return int(np.prod(self.state_shape, dtype=int))

    def standard_error(self) -> np.ndarray:
        """Standard error of the mean, sqrt(variance / N). Not stored."""
        return np.sqrt(self.variance / self.num_trajectories)

    def gaussian_halfwidth(self, z: float = 1.96) -> np.ndarray:
        """Half-width of a Gaussian confidence band on the mean (z=1.96 for 95%)."""
        return z * self.standard_error()

    def component(self, statistic: str, index: int) -> np.ndarray:
        """
        Time series of one statistic for one flattened state component.

        Parameters
        ----------
        statistic : str
            One of 'mean', 'variance', 'median', 'qlow', 'qhigh'.
        index : int
            Component index into the flattened state (0 for scalar state).
        """
        if statistic not in ('mean', 'variance', 'median', 'qlow', 'qhigh'):
            raise InvalidChoiceError(f"Unknown statistic: {statistic!r}")
        values = getattr(self, statistic).reshape(len(self.t), -1)
        if not 0 <= index < values.shape[1]:
            raise InvalidChoiceError(
                f"Component {index} out of range for {values.shape[1]} components"
            )
        return values[:, index]

    def to_dict(self) -> Dict:
        return {
            't': self.t.tolist(),
            'mean': self.mean.tolist(),
            'variance': self.variance.tolist(),
            'median': self.median.tolist(),
            'qlow': self.qlow.tolist(),
            'qhigh': self.qhigh.tolist(),
            'quantiles': list(self.quantiles),
            'num_trajectories': self.num_trajectories,
            'elapsed_time': self.elapsed_time,
            'converged': self.converged,
            'state_kind': self.state_kind.value,
        }

    def __repr__(self) -> str:
        return (
            f"SummaryResult(\n"
            f"  n_times={len(self.t)}, t=[{self.t[0]:.3g}, {self.t[-1]:.3g}],\n"
            f"  num_trajectories={self.num_trajectories}, "
            f"state={self.state_kind.value}{self.state_shape or ''},\n"
            f"  quantiles=({self.quantiles[0]:.3g}, {self.quantiles[1]:.3g})\n"
            f")"
        )


class SummaryBuilder:
    """
    Builds SummaryResult objects from ensembles.

    Examples
    --------
    >>> builder = SummaryBuilder(quantiles=(0.05, 0.95))
    >>> summary = builder.build(ensemble)                  # native grid
    >>> summary = builder.build(ensemble, at_times=ts)     # via interpolation
    """

    DEFAULT_QUANTILES = (0.05, 0.95)

    def __init__(
        self,
        quantiles: Tuple[float, float] = DEFAULT_QUANTILES,
        on_insufficient_samples: Union[InsufficientSamplesPolicy, str] = InsufficientSamplesPolicy.ZERO,
    ):
        """
        Parameters
        ----------
        quantiles : (float, float)
            Probabilities of the low and high band edges. Must satisfy
            0 <= low <= 0.5 <= high <= 1 so that qlow <= median <= qhigh.
        on_insufficient_samples : {"zero", "error"}
            Policy for ensembles with a single trajectory.
        """
        if len(quantiles) != 2:
            raise InvalidChoiceError(
                f"quantiles must be a (low, high) pair, got {quantiles!r}"
            )
        q_low, q_high = float(quantiles[0]), float(quantiles[1])
        if not 0.0 <= q_low <= 0.5 <= q_high <= 1.0:
            raise InvalidChoiceError(
                f"quantiles must satisfy 0 <= low <= 0.5 <= high <= 1, got {quantiles!r}"
            )
        self.quantiles = (q_low, q_high)
        self.on_insufficient_samples = coerce_choice(
            InsufficientSamplesPolicy, on_insufficient_samples, "on_insufficient_samples"
        )

    def build(
        self,
        ensemble: EnsembleResult,
        at_times: Optional[ArrayLike] = None,
    ) -> SummaryResult:
        """
        Summarize the ensemble on its native grid or at ``at_times``.

        Raises
        ------
        ShapeMismatchError
            Native-grid mode on trajectories with different grids, or differing
            state shapes.
        UnsupportedOperationError
            Query-time mode with a trajectory lacking continuous evaluation.
        InsufficientSamplesError
            Single trajectory under the ``error`` policy.
        """
        n = len(ensemble)
        if n < 2:
            if self.on_insufficient_samples == InsufficientSamplesPolicy.ERROR:
                raise InsufficientSamplesError(
                    f"Summary statistics need at least 2 trajectories, got {n}"
                )
            warnings.warn(
                "Ensemble has a single trajectory; variance is reported as 0 "
                "and the quantile band collapses onto the trajectory."
            )

        ensemble.state_shape()
        if at_times is None:
            t = ensemble.common_time_grid()
            samples = np.stack([traj.u for traj in ensemble])
        else:
            t = np.atleast_1d(np.asarray(at_times, dtype=float))
            if t.ndim != 1:
                raise ValueError(f"at_times must be 1-D, got shape {t.shape}")
            ensemble.require_interpolants()
            samples = np.stack([np.asarray(traj.value_at(t)) for traj in ensemble])

        mean, variance, median, qlow, qhigh = timepoint_statistics(samples, self.quantiles)
        return SummaryResult(
            t=np.array(t, dtype=float),
            mean=mean,
            variance=variance,
            median=median,
            qlow=qlow,
            qhigh=qhigh,
            quantiles=self.quantiles,
            num_trajectories=n,
            elapsed_time=ensemble.elapsed_time,
            converged=ensemble.converged,
            state_kind=ensemble.state_kind,
        )


def timepoint_statistics(
    samples: np.ndarray,
    quantiles: Tuple[float, float],
):
    """
    Reduce samples over the trajectory axis.

    Parameters
    ----------
    samples : np.ndarray
        Shape (N, M, *state_shape).
    quantiles : (float, float)
        Low and high probabilities, linear interpolation between order
        statistics at index p*(N-1).

    Returns
    -------
    mean, variance, median, qlow, qhigh : np.ndarray
        Each of shape (M, *state_shape). Variance divides by N.
        qlow <= median <= qhigh holds exactly; identical samples give
        variance 0 and qlow == median == mean == qhigh.
    """
    q_low, q_high = quantiles
    qlow, median, qhigh = np.quantile(
        samples, (q_low, 0.5, q_high), axis=0, method='linear'
    )
    # Lerp rounding can put a band edge an ulp past the median
    qlow = np.minimum(qlow, median)
    qhigh = np.maximum(qhigh, median)

    # Moments about the median: zero deviations stay exactly zero
    deviations = samples - median
    mean = median + np.mean(deviations, axis=0)
    variance = np.mean((samples - mean) ** 2, axis=0)
    return mean, variance, median, qlow, qhigh


def summarize_ensemble(
    ensemble: EnsembleResult,
    at_times: Optional[ArrayLike] = None,
    quantiles: Tuple[float, float] = SummaryBuilder.DEFAULT_QUANTILES,
    on_insufficient_samples: Union[InsufficientSamplesPolicy, str] = InsufficientSamplesPolicy.ZERO,
) -> SummaryResult:
    """
    Convenience function: summary statistics of an ensemble.

    Parameters
    ----------
    ensemble : EnsembleResult
        Trajectories to summarize.
    at_times : array_like, optional
        Query times. None uses the trajectories' shared native grid.
    quantiles : (float, float)
        Band probabilities, default 5% / 95%.
    on_insufficient_samples : {"zero", "error"}
        Policy for single-trajectory ensembles.

    Returns
    -------
    SummaryResult
    """
    builder = SummaryBuilder(quantiles=quantiles, on_insufficient_samples=on_insufficient_samples)
    return builder.build(ensemble, at_times=at_times)


def save_summary_csv(summary: SummaryResult, path: str):
    """Save a summary as one CSV row per time point and state component."""
    fieldnames = ['t', 'component', 'mean', 'variance', 'median', 'qlow', 'qhigh']
    n_times = len(summary.t)

    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for c in range(summary.n_components):
            columns = {
                name: getattr(summary, name).reshape(n_times, -1)[:, c]
                for name in ('mean', 'variance', 'median', 'qlow', 'qhigh')
            }
            for i in range(n_times):
                row = {'t': summary.t[i], 'component': c}
                row.update({name: values[i] for name, values in columns.items()})
                writer.writerow(row)
