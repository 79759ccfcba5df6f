"""
Empirical Loss Statistics Module
================================
Summarizes a simulated loss vector: mean, standard deviation, empirical
quantiles and Expected Shortfall, plus default-count diagnostics.

Mathematical Foundation:
    Mean:               L̄ = (1/t) Σ L_i
    Empirical quantile: linear interpolation between order statistics
    Expected Shortfall: ES_q = E[L | L ≥ VaR_q]
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict

from credit_risk_engine.parameters import (
    DEFAULT_QUANTILE,
    ParameterError,
    check_open_unit_interval,
)


@dataclass(frozen=True)
class LossSummary:
    """
    Read-only summary of an empirical loss distribution.

    ``percentile(q)`` evaluates any further quantile against the
    underlying loss vector; ``quantile`` / ``empirical_quantile`` are the
    values at the configured confidence level.
    """

    mean: float
    std: float
    quantile: float
    empirical_quantile: float
    expected_shortfall: float
    num_scenarios: int
    _losses: np.ndarray = field(repr=False, compare=False)

    def percentile(self, q: float) -> float:
        return compute_percentile(self._losses, q)

    def to_dict(self) -> Dict[str, float]:
        return {
            "empirical_mean": self.mean,
            "empirical_std": self.std,
            "quantile": self.quantile,
            "empirical_quantile": self.empirical_quantile,
            "expected_shortfall": self.expected_shortfall,
            "num_scenarios": self.num_scenarios,
        }


def _as_loss_array(loss_vector) -> np.ndarray:
    losses = np.asarray(loss_vector, dtype=float)
    if losses.ndim != 1 or losses.size == 0:
        raise ParameterError("Loss vector must be a non-empty 1-D sequence")
    return losses


def compute_percentile(loss_vector: np.ndarray, q: float) -> float:
    """
    Empirical q-quantile of the loss vector.

    Uses linear interpolation between order statistics (NumPy default).

    Parameters
    ----------
    loss_vector : np.ndarray
        Simulated portfolio losses.
    q : float
        Quantile level in (0, 1), e.g. 0.999.

    Returns
    -------
    float
        Loss at the q-th quantile.
    """
    check_open_unit_interval("quantile", q)
    losses = _as_loss_array(loss_vector)
    return float(np.percentile(losses, q * 100))


def compute_expected_shortfall(loss_vector: np.ndarray, q: float) -> float:
    """
    Expected Shortfall: mean of the losses at or beyond the q-quantile.

    ES = E[L | L ≥ VaR_q]
    """
    losses = _as_loss_array(loss_vector)
    var = compute_percentile(losses, q)
    tail_losses = losses[losses >= var]
    return float(np.mean(tail_losses))


def summarize(loss_vector: np.ndarray, quantile: float = DEFAULT_QUANTILE) -> LossSummary:
    """
    Summarize the loss distribution.

    Parameters
    ----------
    loss_vector : np.ndarray
        Simulated portfolio losses (t,).
    quantile : float
        Confidence level of the headline quantile (default: 0.999).

    Returns
    -------
    LossSummary
        mean, std, empirical quantile, expected shortfall, and a
        ``percentile(q)`` accessor.

    Raises
    ------
    ParameterError
        If the loss vector is empty or the quantile lies outside (0, 1).
    """
    check_open_unit_interval("quantile", quantile)
    losses = _as_loss_array(loss_vector)

    # private copy so later mutation of the caller's array cannot leak in
    losses = losses.copy()
    losses.setflags(write=False)

    return LossSummary(
        mean=float(np.mean(losses)),
        std=float(np.std(losses, ddof=1)) if losses.size > 1 else 0.0,
        quantile=float(quantile),
        empirical_quantile=compute_percentile(losses, quantile),
        expected_shortfall=compute_expected_shortfall(losses, quantile),
        num_scenarios=int(losses.size),
        _losses=losses,
    )


def default_count_statistics(default_counts: np.ndarray, n: int) -> Dict[str, float]:
    """
    Diagnostics of the simulated number of defaults per scenario.

    Parameters
    ----------
    default_counts : np.ndarray
        Number of defaulted obligors in each scenario.
    n : int
        Number of obligors.

    Returns
    -------
    dict
        mean/std/min/max default count and mean default rate.
    """
    counts = np.asarray(default_counts)
    return {
        "mean_defaults": float(counts.mean()),
        "std_defaults": float(counts.std(ddof=1)) if counts.size > 1 else 0.0,
        "min_defaults": int(counts.min()),
        "max_defaults": int(counts.max()),
        "mean_default_rate": float(counts.mean() / n),
    }


def relative_error(estimate: float, reference: float) -> float:
    """Relative deviation (estimate − reference) / reference."""
    if reference == 0:
        return 0.0 if estimate == 0 else float("inf")
    return float((estimate - reference) / reference)
