"""
Closed-Form Risk Metrics Module
================================
Implements the analytical Expected Loss and Unexpected Loss of a
homogeneous portfolio, together with the asymptotic (large portfolio)
Vasicek loss distribution.

Mathematical Foundation:
    Expected Loss:         EL = n · EAD · PD · LGD
    Unexpected Loss:       UL = Φ(Φ⁻¹(PD) + √ρ · Φ⁻¹(q)) · EAD · LGD · n
    Conditional PD:        p(y) = Φ((Φ⁻¹(PD) − √ρ · y) / √(1 − ρ))
    Vasicek quantile:      L_q = Φ((Φ⁻¹(PD) + √ρ · Φ⁻¹(q)) / √(1 − ρ))
    Vasicek CDF:           F(x) = Φ((√(1 − ρ) · Φ⁻¹(x) − Φ⁻¹(PD)) / √ρ)
"""

import numpy as np
from scipy import stats
from typing import Dict, Union

from credit_risk_engine.parameters import (
    DEFAULT_QUANTILE,
    ParameterError,
    PortfolioParameters,
    check_correlation,
    check_non_negative,
    check_open_unit_interval,
    check_positive_int,
)

ArrayLike = Union[float, np.ndarray]


def _check_exposure(n: int, ead: float, lgd: float) -> None:
    check_positive_int("n", n)
    check_non_negative("ead", ead)
    check_non_negative("lgd", lgd)


# ─────────────────────────────────────────────────────────────
# Expected & Unexpected Loss
# ─────────────────────────────────────────────────────────────

def expected_loss(n: int, ead: float, pd_mean: float, lgd: float) -> float:
    """
    Compute the closed-form Expected Loss of the portfolio.

    Mathematical Definition:
        EL = n · EAD · PD · LGD

    Parameters
    ----------
    n : int
        Number of obligors.
    ead : float
        Exposure at default per obligor.
    pd_mean : float
        Probability of default.
    lgd : float
        Loss given default.

    Returns
    -------
    float
        Expected Loss.

    Raises
    ------
    ParameterError
        If any input lies outside its domain.
    """
    _check_exposure(n, ead, lgd)
    check_open_unit_interval("pd_mean", pd_mean)

    return float(n * ead * pd_mean * lgd)


def unexpected_loss(
    n: int,
    ead: float,
    lgd: float,
    rho: float,
    pd_mean: float,
    quantile: float = DEFAULT_QUANTILE,
) -> float:
    """
    Compute the closed-form Unexpected Loss at the given quantile.

    Single-factor large-portfolio approximation: idiosyncratic risk is
    assumed fully diversified, so only the systemic factor drives the
    tail.

    Mathematical Definition:
        UL = Φ(Φ⁻¹(PD) + √ρ · Φ⁻¹(q)) · EAD · LGD · n

    Parameters
    ----------
    n : int
        Number of obligors.
    ead : float
        Exposure at default per obligor.
    lgd : float
        Loss given default.
    rho : float
        Asset correlation in [0, 1).
    pd_mean : float
        Probability of default in (0, 1).
    quantile : float
        Confidence level (default: 0.999).

    Returns
    -------
    float
        Unexpected Loss.

    Raises
    ------
    ParameterError
        If any input lies outside its domain.
    """
    _check_exposure(n, ead, lgd)
    check_open_unit_interval("pd_mean", pd_mean)
    check_correlation(rho)
    check_open_unit_interval("quantile", quantile)

    threshold = stats.norm.ppf(pd_mean)
    z_q = stats.norm.ppf(quantile)
    stressed_pd = stats.norm.cdf(threshold + np.sqrt(rho) * z_q)

    return float(stressed_pd * ead * lgd * n)


def economic_capital(ul: float, el: float) -> float:
    """Capital held against unexpected losses: UL − EL."""
    return float(ul - el)


# ─────────────────────────────────────────────────────────────
# Asymptotic Vasicek Distribution
# ─────────────────────────────────────────────────────────────

def conditional_default_probability(
    systemic: ArrayLike,
    pd_mean: float,
    rho: float,
) -> ArrayLike:
    """
    Default probability of one obligor given the systemic factor y.

    Mathematical Definition:
        p(y) = Φ((Φ⁻¹(PD) − √ρ · y) / √(1 − ρ))

    Integrating p(y) against the standard normal density returns PD.

    Parameters
    ----------
    systemic : float or np.ndarray
        Systemic factor realization(s).
    pd_mean : float
        Unconditional probability of default.
    rho : float
        Asset correlation.

    Returns
    -------
    float or np.ndarray
        Conditional default probability, same shape as ``systemic``.
    """
    check_open_unit_interval("pd_mean", pd_mean)
    check_correlation(rho)

    threshold = stats.norm.ppf(pd_mean)
    return stats.norm.cdf(
        (threshold - np.sqrt(rho) * np.asarray(systemic)) / np.sqrt(1.0 - rho)
    )


def vasicek_loss_quantile(
    n: int,
    ead: float,
    lgd: float,
    rho: float,
    pd_mean: float,
    quantile: float = DEFAULT_QUANTILE,
) -> float:
    """
    Exact q-quantile of the asymptotic Vasicek portfolio loss.

    Unlike :func:`unexpected_loss`, the stressed threshold is scaled by
    1/√(1 − ρ), which is the quantile the Monte Carlo estimator converges
    to as n → ∞.

    Returns
    -------
    float
        Loss quantile in currency units.
    """
    _check_exposure(n, ead, lgd)
    check_open_unit_interval("pd_mean", pd_mean)
    check_correlation(rho)
    check_open_unit_interval("quantile", quantile)

    threshold = stats.norm.ppf(pd_mean)
    z_q = stats.norm.ppf(quantile)
    fraction = stats.norm.cdf((threshold + np.sqrt(rho) * z_q) / np.sqrt(1.0 - rho))

    return float(fraction * ead * lgd * n)


def vasicek_cdf(loss_fraction: ArrayLike, pd_mean: float, rho: float) -> ArrayLike:
    """
    CDF of the asymptotic portfolio default fraction.

    Mathematical Definition:
        F(x) = Φ((√(1 − ρ) · Φ⁻¹(x) − Φ⁻¹(PD)) / √ρ),   0 < x < 1

    For ρ = 0 the distribution collapses to a point mass at PD.
    """
    check_open_unit_interval("pd_mean", pd_mean)
    check_correlation(rho)

    x = np.asarray(loss_fraction, dtype=float)
    if rho == 0.0:
        return np.where(x >= pd_mean, 1.0, 0.0)

    threshold = stats.norm.ppf(pd_mean)
    with np.errstate(divide="ignore"):
        z = stats.norm.ppf(np.clip(x, 0.0, 1.0))
    return stats.norm.cdf((np.sqrt(1.0 - rho) * z - threshold) / np.sqrt(rho))


def vasicek_pdf(loss_fraction: ArrayLike, pd_mean: float, rho: float) -> ArrayLike:
    """
    Density of the asymptotic portfolio default fraction.

    Mathematical Definition:
        f(x) = √((1 − ρ)/ρ) · φ((√(1 − ρ) · Φ⁻¹(x) − Φ⁻¹(PD)) / √ρ) / φ(Φ⁻¹(x))

    Returns zero outside (0, 1).

    Raises
    ------
    ParameterError
        If rho is 0 (degenerate distribution without a density).
    """
    check_open_unit_interval("pd_mean", pd_mean)
    check_correlation(rho)
    if rho == 0.0:
        raise ParameterError(
            "Vasicek density is undefined for rho = 0 (point mass at PD)"
        )

    x = np.asarray(loss_fraction, dtype=float)
    inside = (x > 0.0) & (x < 1.0)
    z = stats.norm.ppf(np.where(inside, x, 0.5))
    threshold = stats.norm.ppf(pd_mean)

    density = (
        np.sqrt((1.0 - rho) / rho)
        * stats.norm.pdf((np.sqrt(1.0 - rho) * z - threshold) / np.sqrt(rho))
        / stats.norm.pdf(z)
    )
    return np.where(inside, density, 0.0)


# ─────────────────────────────────────────────────────────────
# Aggregate
# ─────────────────────────────────────────────────────────────

def closed_form_metrics(params: PortfolioParameters) -> Dict[str, float]:
    """
    Compute the full suite of closed-form metrics.

    Parameters
    ----------
    params : PortfolioParameters
        Portfolio parameters.

    Returns
    -------
    dict
        expected_loss, unexpected_loss, economic_capital,
        vasicek_quantile.
    """
    el = expected_loss(params.n, params.ead, params.pd_mean, params.lgd)
    ul = unexpected_loss(
        params.n, params.ead, params.lgd, params.rho,
        params.pd_mean, params.quantile,
    )
    return {
        "expected_loss": el,
        "unexpected_loss": ul,
        "economic_capital": economic_capital(ul, el),
        "vasicek_quantile": vasicek_loss_quantile(
            params.n, params.ead, params.lgd, params.rho,
            params.pd_mean, params.quantile,
        ),
    }

