"""
Convergence Study Runner: standalone script

Usage:
    python scripts/run_convergence_study.py --n_trajectories 1000 --seed 42 --output data/convergence.json

Measures Euler-Maruyama strong and weak convergence orders on geometric
Brownian motion, saves the validation report to JSON and draws the error
curves plus an ensemble summary of the finest ensemble.
"""

import matplotlib
matplotlib.use('Agg')

import argparse
import json
import os

import matplotlib.pyplot as plt

from ensemble_diagnostics.summary import summarize_ensemble, save_summary_csv
from ensemble_diagnostics.validation import (
    DEFAULT_DTS,
    EULER_MARUYAMA_STRONG_ORDER,
    EULER_MARUYAMA_WEAK_ORDER,
    generate_gbm_ensemble,
    print_validation_table,
    run_validation,
)
from ensemble_diagnostics.visualization import plot_convergence, plot_summary


def main():
    parser = argparse.ArgumentParser(
        description="Euler-Maruyama convergence study on geometric Brownian motion"
    )
    parser.add_argument(
        '--n_trajectories', type=int, default=1000,
        help='Trajectories per step size (default: 1000)')
    parser.add_argument(
        '--mu', type=float, default=1.0,
        help='Drift (default: 1.0)')
    parser.add_argument(
        '--sigma', type=float, default=0.5,
        help='Volatility (default: 0.5)')
    parser.add_argument(
        '--seed', type=int, default=42,
        help='Random seed (default: 42)')
    parser.add_argument(
        '--tolerance', type=float, default=0.25,
        help='Allowed deviation from the expected order (default: 0.25)')
    parser.add_argument(
        '--output', type=str, default='data/convergence.json',
        help='Output JSON path (default: data/convergence.json)')
    parser.add_argument(
        '--figure', type=str, default='figures/convergence.png',
        help='Output figure path (default: figures/convergence.png)')

    args = parser.parse_args()

    for path in (args.output, args.figure):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    report = run_validation(
        dts=DEFAULT_DTS,
        n_trajectories=args.n_trajectories,
        tolerance=args.tolerance,
        random_state=args.seed,
        mu=args.mu,
        sigma=args.sigma,
    )
    print()
    print(print_validation_table(report))

    with open(args.output, 'w') as f:
        json.dump(report.to_dict(), f, indent=2, default=str)
    print(f"\nResults saved to {args.output}")

    # Summary of the finest ensemble
    ensemble = generate_gbm_ensemble(
        n_trajectories=args.n_trajectories, dt=DEFAULT_DTS[-1], seed=args.seed,
        mu=args.mu, sigma=args.sigma,
    )
    summary = summarize_ensemble(ensemble)
    csv_path = os.path.splitext(args.output)[0] + '_summary.csv'
    save_summary_csv(summary, csv_path)
    print(f"Summary saved to {csv_path}")

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))
    strong, weak = report.results
    plot_convergence(
        strong.dts,
        {'strong': strong.errors, 'weak': weak.errors},
        ax=ax1,
        reference_orders={
            'strong': EULER_MARUYAMA_STRONG_ORDER,
            'weak': EULER_MARUYAMA_WEAK_ORDER,
        },
        title='Euler-Maruyama convergence',
    )
    plot_summary(summary, ax=ax2, title=f'GBM ensemble (n={summary.num_trajectories})')
    plt.tight_layout()
    plt.savefig(args.figure, dpi=150, bbox_inches='tight')
    plt.close(fig)
    print(f"Figure saved to {args.figure}")


if __name__ == '__main__':
    main()
