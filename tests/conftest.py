"""Shared fixtures for the credit loss engine tests."""

import matplotlib

matplotlib.use("Agg")

import pytest

from credit_risk_engine.parameters import PortfolioParameters


@pytest.fixture
def small_params():
    """Small portfolio that simulates in well under a second."""
    return PortfolioParameters(
        pd_mean=0.1,
        lgd=0.45,
        ead=1000.0,
        rho=0.2,
        n=2_000,
        t=2_000,
        quantile=0.99,
    )

