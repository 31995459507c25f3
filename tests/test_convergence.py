"""
Tests for convergence module.

1. Strong errors: collected per trajectory, mean and median
2. Weak final error: norm of the difference of ensemble means
3. Time-series weak errors on a shared grid (l2, linf); misaligned grids fail
4. Dense weak errors: each trajectory against its own analytic path
5. Fail-fast behaviour: no partial report on any error
"""

import json

import numpy as np
import pytest
from numpy.testing import assert_allclose

from ensemble_diagnostics.convergence import (
    ErrorAggregator,
    ErrorOptions,
    ErrorReport,
    calculate_ensemble_errors,
    save_report_json,
)
from ensemble_diagnostics.ensemble import EnsembleResult
from ensemble_diagnostics.errors import (
    AnalyticEvaluationError,
    DimensionMismatchError,
    MissingDataError,
    ShapeMismatchError,
    UnsupportedOperationError,
)
from ensemble_diagnostics.trajectory import NoisePath, Trajectory
from ensemble_diagnostics.validation import generate_gbm_ensemble


def two_point_ensemble():
    """Final values 2 and 4 against analytic final 3 for both."""
    return EnsembleResult([
        Trajectory([0.0, 1.0], [1.0, 2.0], u_analytic=[1.0, 3.0], errors={"final": 1.0}),
        Trajectory([0.0, 1.0], [1.0, 4.0], u_analytic=[1.0, 3.0], errors={"final": 1.0}),
    ])


def noise_driven_ensemble(n=4, seed=0):
    """u = u0 + W sampled on a grid, analytic u0 + W(t)."""
    rng = np.random.default_rng(seed)
    t = np.linspace(0.0, 1.0, 11)
    trajectories = []
    for i in range(n):
        W = np.concatenate([[0.0], np.cumsum(rng.normal(0, 0.3, 10))])
        u0 = 1.0 + i
        trajectories.append(Trajectory(
            t, u0 + W,
            analytic=lambda u0, p, time, W: u0 + W,
            u0=u0,
            noise=NoisePath(t, W),
            errors={"final": 0.0},
        ))
    return EnsembleResult(trajectories)


class TestStrongErrors:
    """Tests for strong-error collection."""

    def test_mean_and_median(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0],
                       errors={"final": e, "l2": 2 * e})
            for e in (1.0, 2.0, 6.0)
        ])
        report = ErrorAggregator().aggregate(ens)
        assert_allclose(report.strong_errors["final"], [1.0, 2.0, 6.0])
        assert_allclose(report.error_means["final"], 3.0)
        assert_allclose(report.error_medians["final"], 2.0)
        assert_allclose(report.error_means["l2"], 6.0)
        assert_allclose(report.error_medians["l2"], 4.0)

    def test_trajectory_zero_without_errors(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0]),
        ])
        with pytest.raises(MissingDataError, match="Trajectory 0"):
            calculate_ensemble_errors(ens)

    def test_other_trajectory_missing_key(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0],
                       errors={"final": 0.1, "l2": 0.1}),
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0],
                       errors={"final": 0.1}),
        ])
        with pytest.raises(MissingDataError, match="'l2'"):
            calculate_ensemble_errors(ens)

    def test_empty_error_mapping_gives_no_strong_errors(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={}),
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={}),
        ])
        report = calculate_ensemble_errors(ens)
        assert report.strong_errors == {}
        assert "weak_final" in report.weak_errors


class TestWeakFinal:
    """Tests for the final-time weak error."""

    def test_concrete_scenario(self):
        """Means of final states 3.0 and analytic 3.0 give zero weak error."""
        ens = two_point_ensemble()
        assert_allclose(np.mean(ens.final_states()), 3.0)
        report = calculate_ensemble_errors(ens)
        assert report.weak_errors["weak_final"] == 0.0

    def test_single_trajectory_is_plain_norm(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [[0.0, 0.0], [4.0, 1.0]],
                       u_analytic=[[0.0, 0.0], [1.0, 5.0]], errors={"final": 5.0}),
        ])
        with pytest.warns(UserWarning, match="single trajectory"):
            report = calculate_ensemble_errors(ens)
        assert_allclose(report.weak_errors["weak_final"], 5.0)

    def test_pathwise_errors_cancel_in_mean(self):
        """Strong error nonzero on every path while the weak error vanishes."""
        ens = two_point_ensemble()
        report = calculate_ensemble_errors(ens)
        assert report.error_means["final"] == 1.0
        assert report.weak_errors["weak_final"] == 0.0

    def test_analytic_final_from_accessor(self):
        ens = EnsembleResult([
            Trajectory([0.0, 2.0], [0.0, 3.0], analytic=lambda u0, p, t, W: t,
                       errors={"final": 1.0}),
            Trajectory([0.0, 2.0], [0.0, 2.0], analytic=lambda u0, p, t, W: t,
                       errors={"final": 0.0}),
        ])
        report = calculate_ensemble_errors(ens)
        assert_allclose(report.weak_errors["weak_final"], 0.5)

    def test_missing_analytic(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], errors={"final": 0.0}),
            Trajectory([0.0, 1.0], [0.0, 1.0], errors={"final": 0.0}),
        ])
        with pytest.raises(MissingDataError):
            calculate_ensemble_errors(ens)

    def test_deterministic_gbm_weak_equals_strong(self):
        """Without noise every path is identical, so weak and strong final errors agree."""
        ens = generate_gbm_ensemble(n_trajectories=5, dt=0.1, sigma=0.0, seed=1)
        report = calculate_ensemble_errors(ens)
        assert_allclose(report.weak_errors["weak_final"], report.error_means["final"])
        assert_allclose(report.weak_errors["weak_final"], np.e - 1.1**10, rtol=1e-10)


class TestTimeseriesWeak:
    """Tests for time-series weak errors on the shared grid."""

    def test_hand_computed(self):
        t = [0.0, 1.0, 2.0]
        ens = EnsembleResult([
            Trajectory(t, [0.0, 1.0, 2.0], u_analytic=[0.0, 0.0, 0.0], errors={}),
            Trajectory(t, [0.0, 3.0, 4.0], u_analytic=[0.0, 1.0, 0.0], errors={}),
        ])
        report = calculate_ensemble_errors(ens, weak_timeseries_errors=True)
        # mean differences [0, 1.5, 3]
        assert_allclose(report.weak_errors["weak_l2"], np.sqrt((0 + 2.25 + 9) / 3))
        assert_allclose(report.weak_errors["weak_linf"], 3.0)

    def test_array_state(self):
        t = [0.0, 1.0]
        ens = EnsembleResult([
            Trajectory(t, [[0.0, 0.0], [2.0, 0.0]], u_analytic=[[0.0, 0.0], [0.0, 0.0]],
                       errors={}),
            Trajectory(t, [[0.0, 0.0], [0.0, 4.0]], u_analytic=[[0.0, 0.0], [0.0, 0.0]],
                       errors={}),
        ])
        report = calculate_ensemble_errors(ens, weak_timeseries_errors=True)
        # mean difference at t1 = [1, 2]; rms = sqrt(5/2); l2 = sqrt(mean([0, 2.5]))
        assert_allclose(report.weak_errors["weak_l2"], np.sqrt(1.25))
        assert_allclose(report.weak_errors["weak_linf"], 2.0)

    def test_not_computed_by_default(self):
        report = calculate_ensemble_errors(two_point_ensemble())
        assert "weak_l2" not in report.weak_errors
        assert "weak_linf" not in report.weak_errors

    def test_mismatched_lengths_raise(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={}),
            Trajectory([0.0, 0.5, 1.0], [0.0, 0.5, 1.0], u_analytic=[0.0, 0.5, 1.0],
                       errors={}),
        ])
        with pytest.raises(ShapeMismatchError):
            calculate_ensemble_errors(ens, weak_timeseries_errors=True)

    def test_mismatched_grid_values_raise(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={}),
            Trajectory([0.0, 2.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={}),
        ])
        with pytest.raises(ShapeMismatchError):
            calculate_ensemble_errors(ens, weak_timeseries_errors=True)


class TestDenseWeak:
    """Tests for dense resampled weak errors."""

    def test_own_noise_per_trajectory(self):
        """Each path matches its own analytic path exactly, so dense errors vanish."""
        report = calculate_ensemble_errors(noise_driven_ensemble(), weak_dense_errors=True)
        assert_allclose(report.weak_errors["weak_L2"], 0.0, atol=1e-12)
        assert_allclose(report.weak_errors["weak_Linf"], 0.0, atol=1e-12)

    def test_shared_analytic_path_differs(self):
        """Comparing every path against one shared analytic path leaves an error."""
        ens = noise_driven_ensemble(n=2)
        a, b = ens[0], ens[1]
        shared = EnsembleResult([
            Trajectory(a.t, a.u, analytic=a.analytic, u0=a.u0, noise=a.noise, errors={}),
            Trajectory(b.t, b.u, analytic=b.analytic, u0=b.u0, noise=a.noise, errors={}),
        ])
        # Dense grid of 11 points coincides with the native grid
        report = calculate_ensemble_errors(shared, weak_dense_errors=True, dense_grid_size=11)
        # Mean difference is (W_b - W_a) / 2
        expected = np.max(np.abs(b.noise.W - a.noise.W)) / 2
        assert_allclose(report.weak_errors["weak_Linf"], expected)

    def test_linear_drift_dense(self):
        t = np.linspace(0.0, 1.0, 5)
        ens = EnsembleResult([
            Trajectory(t, 2.0 * t + 0.1, analytic=lambda u0, p, s, W: 2.0 * s,
                       errors={}),
            Trajectory(t, 2.0 * t + 0.3, analytic=lambda u0, p, s, W: 2.0 * s,
                       errors={}),
        ])
        report = calculate_ensemble_errors(ens, weak_dense_errors=True, dense_grid_size=7)
        assert_allclose(report.weak_errors["weak_L2"], 0.2)
        assert_allclose(report.weak_errors["weak_Linf"], 0.2)

    def test_accessor_failure_aborts(self):
        def fails_late(u0, p, t, W):
            if t > 0.5:
                raise FloatingPointError("overflow")
            return u0

        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [1.0, 1.0], analytic=lambda u0, p, t, W: u0, errors={}),
            Trajectory([0.0, 1.0], [1.0, 1.0], analytic=fails_late, errors={}),
        ])
        with pytest.raises(AnalyticEvaluationError) as excinfo:
            calculate_ensemble_errors(ens, weak_dense_errors=True)
        assert excinfo.value.trajectory_index == 1

    def test_requires_interpolant(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [1.0, 1.0], analytic=lambda u0, p, t, W: u0,
                       errors={}, interpolation=None),
            Trajectory([0.0, 1.0], [1.0, 1.0], analytic=lambda u0, p, t, W: u0, errors={}),
        ])
        with pytest.raises(UnsupportedOperationError):
            calculate_ensemble_errors(ens, weak_dense_errors=True)

    def test_requires_accessor(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [1.0, 1.0], u_analytic=[1.0, 1.0], errors={}),
            Trajectory([0.0, 1.0], [1.0, 1.0], u_analytic=[1.0, 1.0], errors={}),
        ])
        with pytest.raises(MissingDataError, match="accessor"):
            calculate_ensemble_errors(ens, weak_dense_errors=True)

    def test_span_not_covered(self):
        f = lambda u0, p, t, W: u0
        ens = EnsembleResult([
            Trajectory([0.0, 2.0], [1.0, 1.0], analytic=f, errors={}),
            Trajectory([0.0, 1.0], [1.0, 1.0], analytic=f, errors={}),
        ])
        with pytest.raises(ShapeMismatchError, match="cover"):
            calculate_ensemble_errors(ens, weak_dense_errors=True)

    def test_dense_grid_size_validated(self):
        with pytest.raises(ValueError):
            ErrorOptions(dense_grid_size=1)

    def test_gbm_array_state_all_keys(self):
        ens = generate_gbm_ensemble(n_trajectories=20, dt=0.1, u0=[1.0, 2.0], seed=3)
        report = calculate_ensemble_errors(
            ens, weak_timeseries_errors=True, weak_dense_errors=True, dense_grid_size=25
        )
        assert set(report.weak_errors) == {
            "weak_final", "weak_l2", "weak_linf", "weak_L2", "weak_Linf"
        }
        assert all(np.isfinite(v) for v in report.weak_errors.values())


class TestErrorReport:
    """Tests for the ErrorReport record."""

    def test_carries_ensemble_metadata(self):
        ens = EnsembleResult(two_point_ensemble().trajectories, elapsed_time=2.5,
                             converged=True)
        report = calculate_ensemble_errors(ens)
        assert isinstance(report, ErrorReport)
        assert isinstance(report, EnsembleResult)
        assert report.elapsed_time == 2.5
        assert report.converged is True
        assert len(report) == 2

    def test_list_input_wrapped(self):
        report = calculate_ensemble_errors(
            list(two_point_ensemble()), elapsed_time=1.0, converged=True
        )
        assert report.elapsed_time == 1.0

    def test_construction_requires_keys_on_every_trajectory(self):
        ens = two_point_ensemble()
        with pytest.raises(MissingDataError):
            ErrorReport(
                trajectories=ens.trajectories,
                strong_errors={"l2": np.array([0.1, 0.2])},
            )

    def test_construction_requires_one_value_per_trajectory(self):
        ens = two_point_ensemble()
        with pytest.raises(DimensionMismatchError):
            ErrorReport(
                trajectories=ens.trajectories,
                strong_errors={"final": np.array([1.0])},
            )

    def test_construction_leaves_caller_mapping_untouched(self):
        ens = two_point_ensemble()
        strong = {"final": [1.0, 1.0]}
        report = ErrorReport(trajectories=ens.trajectories, strong_errors=strong)
        assert strong == {"final": [1.0, 1.0]}
        assert isinstance(strong["final"], list)
        assert report.strong_errors is not strong
        assert isinstance(report.strong_errors["final"], np.ndarray)

    def test_report_is_read_only(self):
        report = calculate_ensemble_errors(two_point_ensemble())
        with pytest.raises(AttributeError):
            report.weak_errors = {}

    def test_unknown_weak_key(self):
        ens = two_point_ensemble()
        with pytest.raises(ValueError):
            ErrorReport(trajectories=ens.trajectories, weak_errors={"weak_other": 1.0})

    def test_reverse_reverses_strong_errors(self):
        ens = EnsembleResult([
            Trajectory([0.0, 1.0], [0.0, 1.0], u_analytic=[0.0, 1.0], errors={"final": e})
            for e in (1.0, 2.0, 3.0)
        ])
        report = calculate_ensemble_errors(ens)
        rev = report.reverse()
        assert isinstance(rev, ErrorReport)
        assert_allclose(rev.strong_errors["final"], [3.0, 2.0, 1.0])
        assert rev[0] is report[2]
        assert rev.weak_errors == report.weak_errors
        twice = rev.reverse()
        assert_allclose(twice.strong_errors["final"], report.strong_errors["final"])

    def test_repr_and_dict(self):
        report = calculate_ensemble_errors(two_point_ensemble())
        assert "weak_final" in repr(report)
        data = report.to_dict()
        assert data["n_trajectories"] == 2
        assert data["strong_errors"]["final"] == [1.0, 1.0]

    def test_save_json(self, tmp_path):
        report = calculate_ensemble_errors(two_point_ensemble())
        path = tmp_path / "report.json"
        save_report_json(report, str(path))
        with open(path) as f:
            data = json.load(f)
        assert data["weak_errors"]["weak_final"] == 0.0
        assert data["error_means"]["final"] == 1.0
