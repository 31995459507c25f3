"""
Matplotlib rendering of ensemble series.

Draws the declarative ``Series`` records produced by ``series``:
- ribbons with ``fill_between``
- error bars with ``errorbar``
- convergence plots (error vs step size on log-log axes)
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from typing import Dict, List, Optional, Sequence

from .ensemble import EnsembleResult
from .series import ErrorStyle, Series, ensemble_series, summary_series
from .summary import SummaryResult


def plot_series(
    series: List[Series],
    ax: Optional[Axes] = None,
    title: Optional[str] = None,
    fillalpha: float = 0.2,
    linewidth: float = 1.5,
    legend: bool = False,
) -> Axes:
    """
    Draw a list of series on one axes.

    Parameters
    ----------
    series : list of Series
        Curves to draw.
    ax : Axes, optional
        Matplotlib axes (creates new if None).
    fillalpha : float
        Transparency of ribbons.

    Returns
    -------
    Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 4))

    for s in series:
        line, = ax.plot(s.x, s.y, label=s.label, linewidth=linewidth)
        if not s.has_errors:
            continue
        if s.error_style == ErrorStyle.RIBBON:
            ax.fill_between(
                s.x, s.y - s.error_low, s.y + s.error_high,
                alpha=fillalpha, color=line.get_color(),
            )
        elif s.error_style == ErrorStyle.BARS:
            ax.errorbar(
                s.x, s.y, yerr=np.vstack([s.error_low, s.error_high]),
                fmt='none', ecolor=line.get_color(), alpha=0.6,
            )

    ax.set_xlabel('t')
    if legend:
        ax.legend(loc='best', framealpha=0.9)
    if title:
        ax.set_title(title)
    return ax


def plot_summary(
    summary: SummaryResult,
    ax: Optional[Axes] = None,
    error_style: str = "ribbon",
    ci_source: str = "quantile",
    components: Optional[Sequence[int]] = None,
    title: Optional[str] = None,
) -> Axes:
    """Plot a SummaryResult: central curve per component with its error band."""
    series = summary_series(
        summary, error_style=error_style, ci_source=ci_source, components=components
    )
    ax = plot_series(series, ax=ax, title=title, linewidth=3, legend=len(series) > 1)
    ax.set_xlim(summary.t[0], summary.t[-1])
    return ax


def plot_ensemble(
    ensemble: EnsembleResult,
    ax: Optional[Axes] = None,
    trajectories: Optional[Sequence[int]] = None,
    components: Optional[Sequence[int]] = None,
    title: Optional[str] = None,
) -> Axes:
    """Plot individual trajectories of an ensemble."""
    series = ensemble_series(ensemble, trajectories=trajectories, components=components)
    return plot_series(series, ax=ax, title=title, linewidth=0.8)


def plot_convergence(
    dts: Sequence[float],
    errors: Dict[str, Sequence[float]],
    ax: Optional[Axes] = None,
    reference_orders: Optional[Dict[str, float]] = None,
    title: Optional[str] = None,
) -> Axes:
    """
    Log-log plot of errors against step size.

    Parameters
    ----------
    dts : sequence of float
        Step sizes.
    errors : dict
        {label: error per step size}.
    reference_orders : dict, optional
        {label: order} reference slopes drawn through the first point.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))

    dts = np.asarray(dts, dtype=float)
    for label, values in errors.items():
        values = np.asarray(values, dtype=float)
        line, = ax.loglog(dts, values, 'o-', label=label)
        if reference_orders and label in reference_orders:
            order = reference_orders[label]
            ref = values[0] * (dts / dts[0]) ** order
            ax.loglog(dts, ref, '--', color=line.get_color(), alpha=0.5,
                      label=f'order {order:g}')

    ax.set_xlabel('dt')
    ax.set_ylabel('Error')
    ax.legend(loc='best', framealpha=0.9)
    ax.grid(True, alpha=0.3, which='both')
    if title:
        ax.set_title(title)
    return ax
