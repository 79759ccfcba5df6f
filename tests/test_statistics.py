"""
Tests for empirical loss statistics.
"""

import dataclasses

import numpy as np
import pytest

from credit_risk_engine.parameters import ParameterError
from credit_risk_engine.statistics import (
    compute_expected_shortfall,
    compute_percentile,
    default_count_statistics,
    relative_error,
    summarize,
)


@pytest.fixture
def ramp():
    return np.arange(1, 101, dtype=float)


class TestSummarize:

    def test_mean_and_percentile(self, ramp):
        summary = summarize(ramp, quantile=0.99)

        assert summary.mean == pytest.approx(50.5)
        assert summary.empirical_quantile == pytest.approx(99.01)
        assert summary.percentile(0.5) == pytest.approx(50.5)
        assert summary.percentile(0.9) == pytest.approx(90.1)
        assert summary.num_scenarios == 100

    def test_linear_interpolation_between_order_statistics(self):
        summary = summarize([0.0, 10.0], quantile=0.25)
        assert summary.empirical_quantile == pytest.approx(2.5)

    def test_default_quantile(self, ramp):
        summary = summarize(ramp)
        assert summary.quantile == 0.999
        assert summary.empirical_quantile == pytest.approx(np.percentile(ramp, 99.9))

    def test_constant_vector(self):
        summary = summarize(np.full(50, 7.0))
        assert summary.mean == 7.0
        assert summary.std == 0.0
        assert summary.empirical_quantile == 7.0
        assert summary.expected_shortfall == 7.0

    def test_single_scenario(self):
        summary = summarize([3.0])
        assert summary.std == 0.0
        assert summary.percentile(0.5) == 3.0

    def test_detached_from_input(self, ramp):
        summary = summarize(ramp, quantile=0.99)
        ramp[:] = 0.0
        assert summary.percentile(0.5) == pytest.approx(50.5)

    def test_frozen(self, ramp):
        summary = summarize(ramp)
        with pytest.raises(dataclasses.FrozenInstanceError):
            summary.mean = 0.0

    def test_empty_loss_vector(self):
        with pytest.raises(ParameterError):
            summarize(np.array([]))

    @pytest.mark.parametrize("q", [0.0, 1.0, 1.5])
    def test_bad_quantile(self, ramp, q):
        with pytest.raises(ParameterError):
            summarize(ramp, quantile=q)
        with pytest.raises(ParameterError):
            summarize(ramp).percentile(q)

    def test_to_dict(self, ramp):
        data = summarize(ramp, quantile=0.9).to_dict()
        assert data["empirical_mean"] == pytest.approx(50.5)
        assert data["num_scenarios"] == 100


class TestTailMetrics:

    def test_expected_shortfall(self, ramp):
        # VaR_0.9 = 90.1, tail = 91..100
        assert compute_expected_shortfall(ramp, 0.9) == pytest.approx(95.5)

    def test_expected_shortfall_at_least_var(self, ramp):
        assert compute_expected_shortfall(ramp, 0.95) >= compute_percentile(ramp, 0.95)


class TestHelpers:

    def test_default_count_statistics(self):
        stats = default_count_statistics(np.array([0, 2, 4, 6]), n=10)
        assert stats["mean_defaults"] == 3.0
        assert stats["min_defaults"] == 0
        assert stats["max_defaults"] == 6
        assert stats["mean_default_rate"] == pytest.approx(0.3)

    def test_relative_error(self):
        assert relative_error(110.0, 100.0) == pytest.approx(0.1)
        assert relative_error(0.0, 0.0) == 0.0
        assert relative_error(1.0, 0.0) == float("inf")
