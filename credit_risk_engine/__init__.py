"""
Vasicek Credit Loss Engine
==========================
Monte Carlo credit portfolio loss model implementing:
- One-Factor Gaussian Copula (Vasicek-Merton) Default Simulation
- Closed-Form Expected Loss (EL) and Unexpected Loss (UL)
- Empirical Loss Quantiles and Expected Shortfall
- Asymptotic Vasicek Loss Distribution
- Correlation Stress and PD Shock Scenarios
"""

from credit_risk_engine.parameters import (
    DEFAULT_PARAMETERS,
    ParameterError,
    PortfolioParameters,
    load_parameters,
)
from credit_risk_engine.monte_carlo import (
    derive_threshold,
    run_scenarios,
    run_simulation,
    sample_idiosyncratic,
)
from credit_risk_engine.risk_metrics import expected_loss, unexpected_loss
from credit_risk_engine.statistics import summarize

__version__ = "1.0.0"

__all__ = [
    "DEFAULT_PARAMETERS",
    "ParameterError",
    "PortfolioParameters",
    "load_parameters",
    "derive_threshold",
    "sample_idiosyncratic",
    "run_scenarios",
    "run_simulation",
    "expected_loss",
    "unexpected_loss",
    "summarize",
]
