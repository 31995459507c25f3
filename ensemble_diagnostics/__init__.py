"""
Ensemble Diagnostics: statistics and convergence errors of trajectory ensembles.

Aggregates N independently computed trajectories (repeated stochastic
simulations, Monte-Carlo realizations) into strong/weak convergence errors
against analytic solutions, per-time summary statistics with quantile bands,
and weighted reductions for importance-sampling estimators.
"""

from .errors import (
    EnsembleError,
    MissingDataError,
    ShapeMismatchError,
    DimensionMismatchError,
    AnalyticEvaluationError,
    UnsupportedOperationError,
    InvalidChoiceError,
    InsufficientSamplesError,
)

from .trajectory import (
    Trajectory,
    StateKind,
    NoisePath,
    solution_errors,
)

from .ensemble import (
    EnsembleResult,
)

from .convergence import (
    ErrorAggregator,
    ErrorOptions,
    ErrorReport,
    calculate_ensemble_errors,
    save_report_json,
)

from .summary import (
    SummaryBuilder,
    SummaryResult,
    InsufficientSamplesPolicy,
    summarize_ensemble,
    save_summary_csv,
)

from .weighted import (
    WeightedEnsemble,
    weighted_reduce,
)

from .series import (
    Series,
    ErrorStyle,
    CISource,
    summary_series,
    ensemble_series,
)

from .visualization import (
    plot_series,
    plot_summary,
    plot_ensemble,
    plot_convergence,
)

from .validation import (
    ValidationResult,
    ValidationReport,
    gbm_analytic,
    generate_gbm_ensemble,
    estimate_order,
    run_validation,
    print_validation_table,
)

__version__ = "0.1.0"
__all__ = [
    # Errors
    "EnsembleError",
    "MissingDataError",
    "ShapeMismatchError",
    "DimensionMismatchError",
    "AnalyticEvaluationError",
    "UnsupportedOperationError",
    "InvalidChoiceError",
    "InsufficientSamplesError",
    # Trajectories
    "Trajectory",
    "StateKind",
    "NoisePath",
    "solution_errors",
    # Ensemble
    "EnsembleResult",
    # Convergence errors
    "ErrorAggregator",
    "ErrorOptions",
    "ErrorReport",
    "calculate_ensemble_errors",
    "save_report_json",
    # Summary statistics
    "SummaryBuilder",
    "SummaryResult",
    "InsufficientSamplesPolicy",
    "summarize_ensemble",
    "save_summary_csv",
    # Weighted reductions
    "WeightedEnsemble",
    "weighted_reduce",
    # Plot series
    "Series",
    "ErrorStyle",
    "CISource",
    "summary_series",
    "ensemble_series",
    # Visualization
    "plot_series",
    "plot_summary",
    "plot_ensemble",
    "plot_convergence",
    # Validation
    "ValidationResult",
    "ValidationReport",
    "gbm_analytic",
    "generate_gbm_ensemble",
    "estimate_order",
    "run_validation",
    "print_validation_table",
]
