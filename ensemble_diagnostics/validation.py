"""
Validation of the convergence diagnostics against a known SDE.

Benchmark: geometric Brownian motion

    du = mu u dt + sigma u dW,   u(t) = u0 exp((mu - sigma^2/2) t + sigma W(t))

integrated with Euler-Maruyama, whose expected orders are:
- strong order 0.5 (mean final pathwise error)
- weak order 1.0 (error of the mean final state)

Each generated trajectory carries its own noise path, inline analytic states,
the analytic accessor and its strong-error scalars, so every diagnostic in
``convergence`` can be exercised on it.
"""

import numpy as np
from numpy.typing import ArrayLike
from dataclasses import dataclass
from typing import Dict, List, Sequence, Union
import time

from tqdm import tqdm

from .convergence import calculate_ensemble_errors
from .ensemble import EnsembleResult
from .trajectory import NoisePath, Trajectory, solution_errors


EULER_MARUYAMA_STRONG_ORDER = 0.5
EULER_MARUYAMA_WEAK_ORDER = 1.0

DEFAULT_DTS = (2.0**-3, 2.0**-4, 2.0**-5, 2.0**-6)


@dataclass
class ValidationResult:
    """Measured convergence order of one error measure."""
    name: str
    expected_order: float
    measured_order: float
    dts: List[float]
    errors: List[float]
    passed: bool

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return (
            f"{self.name}: order = {self.measured_order:.3f} "
            f"(expected {self.expected_order:.2f}) [{status}]"
        )


@dataclass
class ValidationReport:
    """Complete validation report."""
    results: List[ValidationResult]
    n_passed: int
    n_failed: int
    n_total: int
    n_trajectories: int

    def __repr__(self) -> str:
        lines = ["=" * 60, "CONVERGENCE VALIDATION REPORT", "=" * 60]
        for r in self.results:
            lines.append(str(r))
        lines.append("-" * 60)
        lines.append(f"Passed: {self.n_passed}/{self.n_total}")
        return "\n".join(lines)

    def to_dict(self) -> Dict:
        return {
            'n_passed': self.n_passed,
            'n_failed': self.n_failed,
            'n_total': self.n_total,
            'n_trajectories': self.n_trajectories,
            'results': [
                {
                    'name': r.name,
                    'expected_order': r.expected_order,
                    'measured_order': r.measured_order,
                    'dts': r.dts,
                    'errors': r.errors,
                    'passed': r.passed,
                }
                for r in self.results
            ]
        }


def gbm_analytic(u0, p, t, W):
    """Closed-form geometric Brownian motion; p = (mu, sigma)."""
    mu, sigma = p
    return u0 * np.exp((mu - 0.5 * sigma**2) * t + sigma * W)


def generate_gbm_ensemble(
    n_trajectories: int = 100,
    dt: float = 2.0**-5,
    t_end: float = 1.0,
    u0: Union[float, ArrayLike] = 1.0,
    mu: float = 1.0,
    sigma: float = 0.5,
    seed: int = 42,
    interpolation: str = "linear",
    progress: bool = False,
) -> EnsembleResult:
    """
    Euler-Maruyama ensemble of geometric Brownian motion.

    Parameters
    ----------
    n_trajectories : int
        Number of independent paths.
    dt : float
        Step size; t_end / dt is rounded to a whole number of steps.
    u0 : float or array_like
        Initial state. An array gives independent components with diagonal noise.
    mu, sigma : float
        Drift and volatility.
    seed : int
        Seed of the Wiener increments.
    progress : bool
        Show a tqdm progress bar over trajectories.

    Returns
    -------
    EnsembleResult
        Trajectories with noise paths, analytic solutions and strong errors.
    """
    if n_trajectories < 1:
        raise ValueError(f"n_trajectories must be >= 1, got {n_trajectories}")
    n_steps = int(round(t_end / dt))
    if n_steps < 1:
        raise ValueError(f"dt={dt} too large for t_end={t_end}")

    u0 = np.asarray(u0, dtype=float)
    shape = u0.shape
    t = np.linspace(0.0, t_end, n_steps + 1)
    h = t_end / n_steps
    t_broadcast = t.reshape((-1,) + (1,) * len(shape))
    p = (mu, sigma)
    rng = np.random.default_rng(seed)

    start = time.perf_counter()
    trajectories = []
    iterator = tqdm(
        range(n_trajectories), desc=f"  dt={h:.4g}", disable=not progress,
        bar_format='{desc}: {n_fmt}/{total_fmt} [{elapsed}<{remaining}]',
    )
    for _ in iterator:
        dW = rng.normal(0.0, np.sqrt(h), size=(n_steps,) + shape)
        W = np.concatenate([np.zeros((1,) + shape), np.cumsum(dW, axis=0)])

        u = np.empty((n_steps + 1,) + shape)
        u[0] = u0
        for k in range(n_steps):
            u[k + 1] = u[k] + mu * u[k] * h + sigma * u[k] * dW[k]

        u_analytic = gbm_analytic(u0, p, t_broadcast, W)
        trajectories.append(Trajectory(
            t, u,
            u_analytic=u_analytic,
            analytic=gbm_analytic,
            u0=float(u0) if u0.ndim == 0 else u0,
            p=p,
            noise=NoisePath(t, W),
            errors=solution_errors(u, u_analytic),
            interpolation=interpolation,
        ))
    elapsed = time.perf_counter() - start

    return EnsembleResult(
        trajectories,
        elapsed_time=elapsed,
        converged=True,
        stats={'n_steps': n_steps, 'dt': h, 'seed': seed},
    )


def estimate_order(dts: Sequence[float], errors: Sequence[float]) -> float:
    """Slope of log(error) against log(dt). NaN if any error is not positive."""
    dts = np.asarray(dts, dtype=float)
    errors = np.asarray(errors, dtype=float)
    if len(dts) < 2 or np.any(errors <= 0) or not np.all(np.isfinite(errors)):
        return np.nan
    slope, _ = np.polyfit(np.log(dts), np.log(errors), 1)
    return float(slope)


def run_validation(
    dts: Sequence[float] = DEFAULT_DTS,
    n_trajectories: int = 1000,
    tolerance: float = 0.25,
    verbose: bool = True,
    random_state: int = 42,
    **gbm_kwargs,
) -> ValidationReport:
    """
    Measure Euler-Maruyama strong and weak orders on geometric Brownian motion.

    Parameters
    ----------
    dts : sequence of float
        Step sizes, one ensemble each.
    n_trajectories : int
        Ensemble size per step size.
    tolerance : float
        Maximum |measured - expected| order for a PASS.
    random_state : int
        Base seed; step size i uses random_state + i.
    **gbm_kwargs
        Passed to generate_gbm_ensemble (u0, mu, sigma, t_end).
    """
    strong_errors = []
    weak_errors = []
    for i, dt in enumerate(dts):
        ensemble = generate_gbm_ensemble(
            n_trajectories=n_trajectories, dt=dt, seed=random_state + i,
            progress=verbose, **gbm_kwargs,
        )
        report = calculate_ensemble_errors(ensemble, weak_timeseries_errors=True)
        strong_errors.append(report.error_means["final"])
        weak_errors.append(report.weak_errors["weak_final"])
        if verbose:
            print(
                f"  strong={strong_errors[-1]:.3e} weak={weak_errors[-1]:.3e} "
                f"({ensemble.elapsed_time:.2f}s)"
            )

    results = []
    for name, expected, errors in [
        ("Euler-Maruyama strong order", EULER_MARUYAMA_STRONG_ORDER, strong_errors),
        ("Euler-Maruyama weak order", EULER_MARUYAMA_WEAK_ORDER, weak_errors),
    ]:
        measured = estimate_order(dts, errors)
        passed = bool(not np.isnan(measured) and abs(measured - expected) <= tolerance)
        results.append(ValidationResult(
            name=name,
            expected_order=expected,
            measured_order=measured,
            dts=[float(dt) for dt in dts],
            errors=[float(e) for e in errors],
            passed=passed,
        ))

    n_passed = sum(1 for r in results if r.passed)
    return ValidationReport(
        results=results, n_passed=n_passed, n_failed=len(results) - n_passed,
        n_total=len(results), n_trajectories=n_trajectories,
    )


def print_validation_table(report: ValidationReport) -> str:
    """Format validation report as markdown table."""
    lines = [
        "| Measure | Expected order | Measured order | Status |",
        "|---------|----------------|----------------|--------|",
    ]
    for r in report.results:
        status = "PASS" if r.passed else "FAIL"
        measured = "N/A" if np.isnan(r.measured_order) else f"{r.measured_order:.3f}"
        lines.append(f"| {r.name} | {r.expected_order:.2f} | {measured} | {status} |")
    lines.append(f"\n**Passed: {report.n_passed}/{report.n_total}**")
    return "\n".join(lines)
