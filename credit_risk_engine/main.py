"""
Vasicek Credit Loss Engine — Main Orchestrator
===============================================
Entry point for the complete credit loss analysis pipeline.

Execution Flow:
    1. Load / override portfolio parameters
    2. Closed-form EL & UL
    3. Monte Carlo loss simulation (flagship)
    4. Empirical vs closed-form comparison
    5. Correlation sensitivity & stress testing
    6. Visualization
    7. Results export
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
from loguru import logger

from credit_risk_engine.monte_carlo import log_progress, run_simulation
from credit_risk_engine.parameters import (
    DEFAULT_PARAMETERS,
    ParameterError,
    PortfolioParameters,
    load_parameters,
    parameters_from_dict,
    parameters_to_dict,
)
from credit_risk_engine.risk_metrics import closed_form_metrics
from credit_risk_engine.statistics import default_count_statistics
from credit_risk_engine.stress_testing import (
    correlation_sensitivity,
    full_stress_analysis,
    ul_sensitivity_grid,
)
from credit_risk_engine.visualization import (
    plot_correlation_sensitivity,
    plot_loss_distribution,
    plot_tail_zoom,
    plot_ul_heatmap,
)

# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────
RESULTS_DIR = Path("results")
RANDOM_SEED = 42

PARAMETER_OPTIONS = {
    "pd_mean": float,
    "lgd": float,
    "ead": float,
    "rho": float,
    "n": int,
    "t": int,
    "quantile": float,
}


def print_header(text: str) -> None:
    """Print formatted section header."""
    width = 60
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width)


def print_metrics(metrics: dict, indent: int = 4) -> None:
    """Print dictionary of metrics with formatting."""
    prefix = " " * indent
    for key, val in metrics.items():
        if isinstance(val, float):
            print(f"{prefix}{key:.<35} {val:>18,.4f}")
        else:
            print(f"{prefix}{key:.<35} {str(val):>18}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monte Carlo credit loss engine (one-factor Gaussian copula)"
    )
    parser.add_argument("--config", help="JSON file with portfolio options")
    for name, kind in PARAMETER_OPTIONS.items():
        parser.add_argument(
            f"--{name.replace('_', '-')}", dest=name, type=kind, default=None,
            help=f"Override {name} (default: {getattr(DEFAULT_PARAMETERS, name)})",
        )
    parser.add_argument("--seed", type=int, default=RANDOM_SEED,
                        help=f"Random seed (default: {RANDOM_SEED})")
    parser.add_argument("--workers", type=int, default=1,
                        help="Worker threads for the scenario loop")
    parser.add_argument("--batch-size", type=int, default=None,
                        help="Scenarios per batch")
    parser.add_argument("--output-dir", default=str(RESULTS_DIR),
                        help="Directory for tables and figures")
    parser.add_argument("--no-plots", action="store_true", help="Skip figures")
    parser.add_argument("--no-stress", action="store_true", help="Skip stress testing")
    parser.add_argument("--log-level", default="INFO",
                        help="Log level (DEBUG, INFO, WARNING, ...)")
    return parser


def resolve_parameters(args: argparse.Namespace) -> PortfolioParameters:
    """Combine defaults, the optional config file and CLI overrides."""
    params = DEFAULT_PARAMETERS
    if args.config:
        params = load_parameters(args.config)

    overrides = {
        name: getattr(args, name)
        for name in PARAMETER_OPTIONS
        if getattr(args, name) is not None
    }
    return parameters_from_dict(overrides, base=params)


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def main(argv: Optional[List[str]] = None) -> int:
    """Execute the complete credit loss pipeline."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        params = resolve_parameters(args)
    except ParameterError as e:
        logger.error(f"Invalid parameters: {e}")
        return 2

    results_dir = Path(args.output_dir)
    figures_dir = results_dir / "figures"
    tables_dir = results_dir / "tables"

    print("\n" + "╔" + "═" * 58 + "╗")
    print("║   VASICEK CREDIT LOSS ENGINE                             ║")
    print("║   One-Factor Gaussian Copula Monte Carlo                 ║")
    print("╚" + "═" * 58 + "╝")

    # ── PHASE 1: Parameters ───────────────────────────────────
    print_header("PHASE 1 — PORTFOLIO PARAMETERS")
    print_metrics(parameters_to_dict(params))

    # ── PHASE 2: Closed Form ──────────────────────────────────
    print_header("PHASE 2 — CLOSED-FORM EL & UL")
    closed_form = closed_form_metrics(params)
    print_metrics(closed_form)

    # ── PHASE 3: Monte Carlo ──────────────────────────────────
    print_header("PHASE 3 — MONTE CARLO LOSS SIMULATION")
    print(f"    Running {params.t:,} scenarios x {params.n:,} obligors...")
    try:
        report = run_simulation(
            params,
            seed=args.seed,
            batch_size=args.batch_size,
            n_workers=args.workers,
            progress_callback=log_progress,
        )
    except ParameterError as e:
        logger.error(f"Invalid simulation settings: {e}")
        return 2

    print("\n  ┌─ Empirical Distribution ────────────────────┐")
    print_metrics(report.summary.to_dict())
    print("\n  ┌─ Default Counts ────────────────────────────┐")
    print_metrics(default_count_statistics(report.default_counts, params.n))

    # ── PHASE 4: Comparison ───────────────────────────────────
    print_header("PHASE 4 — EMPIRICAL VS CLOSED FORM")
    report_dict = report.to_dict()
    comparison = pd.DataFrame({
        "Metric": ["Expected Loss", f"Unexpected Loss ({params.quantile:.1%})"],
        "Closed Form": [report.expected_loss, report.unexpected_loss],
        "Monte Carlo": [report.empirical_mean, report.empirical_quantile],
        "Relative Error": [
            report_dict["mean_relative_error"],
            report_dict["quantile_relative_error"],
        ],
    })
    print("\n" + comparison.to_string(index=False, float_format=lambda x: f"{x:,.4f}"))

    # ── PHASE 5: Stress Testing ───────────────────────────────
    print_header("PHASE 5 — CORRELATION SENSITIVITY & STRESS")
    sensitivity = correlation_sensitivity(params)
    grid = ul_sensitivity_grid(params)
    print("\n" + sensitivity.to_string(index=False, float_format=lambda x: f"{x:,.2f}"))

    stress_results = None
    if not args.no_stress:
        stress_results = full_stress_analysis(
            params, report, seed=args.seed,
            batch_size=args.batch_size, n_workers=args.workers,
        )
        print("\n  ┌─ Correlation Stress ────────────────────────┐")
        print_metrics(stress_results["corr_stress"]["impact"])
        print("\n  ┌─ PD Shock ──────────────────────────────────┐")
        print_metrics(stress_results["pd_shock"]["impact"])

    # ── PHASE 6: Visualization ────────────────────────────────
    if not args.no_plots:
        print_header("PHASE 6 — GENERATING VISUALIZATIONS")
        fig_dir = str(figures_dir)
        for path in (
            plot_loss_distribution(report, output_dir=fig_dir),
            plot_tail_zoom(report, output_dir=fig_dir),
            plot_correlation_sensitivity(sensitivity, output_dir=fig_dir),
            plot_ul_heatmap(grid, output_dir=fig_dir),
        ):
            print(f"  ✓ {path}")

    # ── Results Export ────────────────────────────────────────
    tables_dir.mkdir(parents=True, exist_ok=True)
    comparison.to_csv(tables_dir / "el_ul_comparison.csv", index=False)
    sensitivity.to_csv(tables_dir / "correlation_sensitivity.csv", index=False)
    grid.to_csv(tables_dir / "ul_grid.csv")
    pd.DataFrame({
        "scenario": range(params.t),
        "defaults": report.default_counts,
        "loss": report.loss_vector,
    }).to_csv(tables_dir / "loss_vector.csv", index=False)

    all_results = {"simulation": report_dict}
    if stress_results is not None:
        all_results["stress_testing"] = {
            name: {
                "parameters": parameters_to_dict(scenario["params"]),
                "impact": scenario["impact"],
            }
            for name, scenario in stress_results.items()
        }

    results_path = tables_dir / "summary.json"
    with open(results_path, "w") as f:
        json.dump(all_results, f, indent=2, default=str)

    print(f"\n  Results saved to: {results_path}")

    print("\n" + "╔" + "═" * 58 + "╗")
    print("║   CREDIT LOSS ENGINE EXECUTION COMPLETE                  ║")
    print("╚" + "═" * 58 + "╝\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
