"""
Declarative plot series for ensemble results.

The analysis core does not draw anything. It describes what to draw: x
points, one y curve per selected state component, and an optional asymmetric
error band given as distances below and above the curve. Any renderer can
consume these records; ``visualization`` is the matplotlib one.

Error bands come from one of two sources:
- quantile: curve is the median, band reaches qlow / qhigh
- gaussian: curve is the mean, band is +/- z * sqrt(variance / N), z = 1.96
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

from .ensemble import EnsembleResult
from .errors import InvalidChoiceError, coerce_choice
from .summary import SummaryResult


GAUSSIAN_Z = 1.96


class ErrorStyle(Enum):
    """How a renderer should draw the error band."""
    RIBBON = "ribbon"
    BARS = "bars"
    NONE = "none"


class CISource(Enum):
    """Where the error band comes from."""
    QUANTILE = "quantile"
    GAUSSIAN = "gaussian"


@dataclass
class Series:
    """One curve to draw."""
    x: np.ndarray
    y: np.ndarray
    label: str
    component: int
    error_low: Optional[np.ndarray] = None      # Distance below y
    error_high: Optional[np.ndarray] = None     # Distance above y
    error_style: ErrorStyle = ErrorStyle.NONE

    @property
    def has_errors(self) -> bool:
        return self.error_style != ErrorStyle.NONE and self.error_low is not None


def _resolve_components(
    components: Optional[Sequence[int]],
    n_components: int,
) -> List[int]:
    if components is None:
        return list(range(n_components))
    resolved = []
    for c in components:
        if isinstance(c, bool) or not isinstance(c, (int, np.integer)):
            raise InvalidChoiceError(f"Component index must be an int, got {c!r}")
        if not 0 <= c < n_components:
            raise InvalidChoiceError(
                f"Component {c} out of range for {n_components} components"
            )
        resolved.append(int(c))
    return resolved


def summary_series(
    summary: SummaryResult,
    error_style: Union[ErrorStyle, str] = ErrorStyle.RIBBON,
    ci_source: Union[CISource, str] = CISource.QUANTILE,
    components: Optional[Sequence[int]] = None,
) -> List[Series]:
    """
    Series for a SummaryResult, one per selected component.

    Parameters
    ----------
    summary : SummaryResult
        Ensemble summary.
    error_style : {"ribbon", "bars", "none"}
        Band style passed on to the renderer.
    ci_source : {"quantile", "gaussian"}
        Band source (see module docstring).
    components : list of int, optional
        Flattened state components to include (None = all).

    Raises
    ------
    InvalidChoiceError
        Unknown error style, band source, or component index.
    """
    error_style = coerce_choice(ErrorStyle, error_style, "error_style")
    ci_source = coerce_choice(CISource, ci_source, "ci_source")
    components = _resolve_components(components, summary.n_components)

    series = []
    for c in components:
        if ci_source == CISource.QUANTILE:
            y = summary.component('median', c)
            low = y - summary.component('qlow', c)
            high = summary.component('qhigh', c) - y
        else:
            y = summary.component('mean', c)
            halfwidth = GAUSSIAN_Z * np.sqrt(
                summary.component('variance', c) / summary.num_trajectories
            )
            low = halfwidth
            high = halfwidth

        if error_style == ErrorStyle.NONE:
            low, high = None, None

        series.append(Series(
            x=summary.t,
            y=y,
            label=f"u[{c}]" if summary.n_components > 1 else "u",
            component=c,
            error_low=low,
            error_high=high,
            error_style=error_style,
        ))
    return series


def ensemble_series(
    ensemble: EnsembleResult,
    trajectories: Optional[Sequence[int]] = None,
    components: Optional[Sequence[int]] = None,
) -> List[Series]:
    """
    One series per trajectory and component, without error bands.

    Parameters
    ----------
    ensemble : EnsembleResult
        Ensemble to draw.
    trajectories : list of int, optional
        Trajectory indices (None = all).
    components : list of int, optional
        Flattened state components (None = all).
    """
    if trajectories is None:
        trajectories = range(len(ensemble))
    n_components = int(np.prod(ensemble.state_shape(), dtype=int))
    components = _resolve_components(components, n_components)

    series = []
    for i in trajectories:
        if not 0 <= i < len(ensemble):
            raise InvalidChoiceError(
                f"Trajectory {i} out of range for ensemble of {len(ensemble)}"
            )
        traj = ensemble[i]
        values = traj.u.reshape(len(traj), -1)
        for c in components:
            series.append(Series(
                x=traj.t,
                y=values[:, c],
                label=f"trajectory {i}" + (f" u[{c}]" if n_components > 1 else ""),
                component=c,
            ))
    return series
