"""
Stress Testing Module
=====================
Measures how portfolio credit losses react to stressed model inputs.

Stress Scenarios:
    1. Correlation Stress:  ρ → ρ_stress   (systemic co-movement rises)
    2. PD Shock:            PD → k · PD    (credit quality deteriorates)

Closed-form sensitivities are cheap and exact; Monte Carlo reruns use the
same seed as the baseline so differences come from the inputs only.
"""

import numpy as np
import pandas as pd
from loguru import logger
from typing import Dict, Iterable, Optional

from credit_risk_engine.monte_carlo import (
    DEFAULT_SEED,
    SeedLike,
    SimulationReport,
    run_simulation,
)
from credit_risk_engine.parameters import (
    PortfolioParameters,
    check_correlation,
    check_non_negative,
)
from credit_risk_engine.risk_metrics import (
    expected_loss,
    unexpected_loss,
    vasicek_loss_quantile,
)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_STRESS_CORRELATION: float = 0.4
DEFAULT_PD_SHOCK: float = 2.0
DEFAULT_CORRELATION_BUMP: float = 0.1
MAX_STRESSED_RHO: float = 0.99
MAX_STRESSED_PD: float = 0.9999
DEFAULT_RHO_GRID = np.round(np.arange(0.0, 0.95, 0.05), 2)
DEFAULT_PD_GRID = np.array([0.005, 0.01, 0.02, 0.05, 0.1, 0.2])

STRESS_METRICS = ["empirical_mean", "empirical_quantile", "unexpected_loss"]


def apply_correlation_stress(
    params: PortfolioParameters,
    target_rho: float = DEFAULT_STRESS_CORRELATION,
    bump: float = DEFAULT_CORRELATION_BUMP,
) -> PortfolioParameters:
    """
    Raise the asset correlation to a stressed value.

    Mathematical Definition:
        ρ_stress = min(max(ρ_target, ρ + bump), ρ_max),  never below ρ

    Parameters
    ----------
    params : PortfolioParameters
        Baseline parameters.
    target_rho : float
        Stressed asset correlation floor in [0, 1).
    bump : float
        Minimum additive increase over the baseline correlation.

    Returns
    -------
    PortfolioParameters
        Stressed parameters.
    """
    check_correlation(target_rho)
    stressed = min(max(target_rho, params.rho + bump), MAX_STRESSED_RHO)
    return params.replace(rho=max(stressed, params.rho))


def apply_pd_shock(
    params: PortfolioParameters,
    shock_factor: float = DEFAULT_PD_SHOCK,
) -> PortfolioParameters:
    """
    Multiply the probability of default by a shock factor.

    Mathematical Definition:
        PD_shock = min(k · PD, PD_max)

    The cap keeps a high baseline PD (e.g. 0.6 with k = 2) inside (0, 1).

    Raises
    ------
    ParameterError
        If the shock factor is negative, or zero (shocked PD of 0).
    """
    check_non_negative("shock_factor", shock_factor)
    return params.replace(pd_mean=min(params.pd_mean * shock_factor, MAX_STRESSED_PD))


def correlation_sensitivity(
    params: PortfolioParameters,
    rhos: Iterable[float] = DEFAULT_RHO_GRID,
) -> pd.DataFrame:
    """
    Closed-form EL / UL across a grid of asset correlations.

    EL does not depend on ρ; UL increases strictly with ρ.

    Parameters
    ----------
    params : PortfolioParameters
        Baseline parameters (ρ is overridden).
    rhos : iterable of float
        Correlations in [0, 1).

    Returns
    -------
    pd.DataFrame
        Columns: rho, expected_loss, unexpected_loss, vasicek_quantile,
        economic_capital.
    """
    rows = []
    for rho in rhos:
        rho = float(rho)
        el = expected_loss(params.n, params.ead, params.pd_mean, params.lgd)
        ul = unexpected_loss(
            params.n, params.ead, params.lgd, rho, params.pd_mean, params.quantile
        )
        vq = vasicek_loss_quantile(
            params.n, params.ead, params.lgd, rho, params.pd_mean, params.quantile
        )
        rows.append({
            "rho": rho,
            "expected_loss": el,
            "unexpected_loss": ul,
            "vasicek_quantile": vq,
            "economic_capital": ul - el,
        })

    return pd.DataFrame(rows)


def ul_sensitivity_grid(
    params: PortfolioParameters,
    pds: Iterable[float] = DEFAULT_PD_GRID,
    rhos: Iterable[float] = DEFAULT_RHO_GRID,
) -> pd.DataFrame:
    """
    Closed-form UL over a PD × ρ grid.

    Returns
    -------
    pd.DataFrame
        UL indexed by PD (rows) with one column per ρ.
    """
    rhos = [float(r) for r in rhos]
    grid = {
        float(p): [
            unexpected_loss(params.n, params.ead, params.lgd, r, float(p), params.quantile)
            for r in rhos
        ]
        for p in pds
    }
    frame = pd.DataFrame.from_dict(grid, orient="index", columns=rhos)
    frame.index.name = "pd_mean"
    frame.columns.name = "rho"
    return frame


def _report_metrics(report: SimulationReport) -> Dict[str, float]:
    return {
        "empirical_mean": report.empirical_mean,
        "empirical_quantile": report.empirical_quantile,
        "unexpected_loss": report.unexpected_loss,
    }


def compute_stress_impact(
    base_results: SimulationReport,
    stressed_results: SimulationReport,
) -> Dict[str, float]:
    """
    Compare base and stressed loss metrics.

    Parameters
    ----------
    base_results : SimulationReport
        Baseline Monte Carlo results.
    stressed_results : SimulationReport
        Stressed Monte Carlo results.

    Returns
    -------
    dict
        Base, stressed and percentage change of each metric.
    """
    base = _report_metrics(base_results)
    stressed = _report_metrics(stressed_results)
    impact = {}

    for m in STRESS_METRICS:
        base_val = base[m]
        stress_val = stressed[m]
        pct_change = ((stress_val - base_val) / base_val) * 100 if base_val != 0 else 0.0
        impact[f"{m}_base"] = base_val
        impact[f"{m}_stressed"] = stress_val
        impact[f"{m}_pct_change"] = pct_change

    return impact


def full_stress_analysis(
    params: PortfolioParameters,
    base_results: SimulationReport,
    seed: SeedLike = DEFAULT_SEED,
    target_rho: float = DEFAULT_STRESS_CORRELATION,
    pd_shock: float = DEFAULT_PD_SHOCK,
    batch_size: Optional[int] = None,
    n_workers: int = 1,
) -> Dict[str, Dict]:
    """
    Execute the complete stress testing suite.

    Runs correlation stress and PD shock scenarios by Monte Carlo.

    Parameters
    ----------
    params : PortfolioParameters
        Baseline parameters.
    base_results : SimulationReport
        Baseline Monte Carlo results for comparison.
    seed : int
        Random seed (reuse the baseline seed for a like-for-like rerun).
    target_rho : float
        Stressed asset correlation floor.
    pd_shock : float
        PD multiplier.

    Returns
    -------
    dict
        Contains 'corr_stress' and 'pd_shock' sub-dicts with
        params, results and impact analysis.
    """
    scenarios = {
        "corr_stress": apply_correlation_stress(params, target_rho),
        "pd_shock": apply_pd_shock(params, pd_shock),
    }

    analysis = {}
    for name, stressed_params in scenarios.items():
        logger.info(f"Running stress scenario '{name}'")
        results = run_simulation(
            stressed_params, seed=seed, batch_size=batch_size, n_workers=n_workers
        )
        analysis[name] = {
            "params": stressed_params,
            "results": results,
            "impact": compute_stress_impact(base_results, results),
        }

    return analysis
