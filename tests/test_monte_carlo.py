"""
Tests for the Monte Carlo loss simulation engine.

Sizes are kept small except for the convergence fixture, whose tolerances
sit about three standard errors above its Monte Carlo noise.
"""

import numpy as np
import pytest
from scipy import stats

from credit_risk_engine.monte_carlo import (
    SimulationReport,
    count_defaults,
    derive_threshold,
    make_rng,
    run_scenarios,
    run_simulation,
    sample_idiosyncratic,
    sample_systemic,
    simulate_default_counts,
)
from credit_risk_engine.parameters import ParameterError, PortfolioParameters
from credit_risk_engine.risk_metrics import (
    expected_loss,
    unexpected_loss,
    vasicek_loss_quantile,
)


@pytest.fixture(scope="module")
def convergence_report():
    params = PortfolioParameters(
        pd_mean=0.1, lgd=1.0, ead=1000.0, rho=0.2, n=100_000, t=20_000, quantile=0.99,
    )
    return run_simulation(params, seed=7)


class TestThreshold:

    @pytest.mark.parametrize("pd_mean", [1e-12, 1e-4, 0.01, 0.1, 0.5, 0.9, 0.999999])
    def test_round_trip(self, pd_mean):
        assert stats.norm.cdf(derive_threshold(pd_mean)) == pytest.approx(pd_mean, rel=1e-9)

    def test_median(self):
        assert derive_threshold(0.5) == pytest.approx(0.0, abs=1e-15)

    def test_extreme_pd_is_finite(self):
        threshold = derive_threshold(1e-300)
        assert np.isfinite(threshold)
        assert threshold < -30

    @pytest.mark.parametrize("pd_mean", [0.0, 1.0, -0.2, 1.1, float("nan")])
    def test_domain_error(self, pd_mean):
        with pytest.raises(ParameterError):
            derive_threshold(pd_mean)


class TestSampling:

    def test_idiosyncratic_shape_and_read_only(self):
        eps = sample_idiosyncratic(1_000, make_rng(1))
        assert eps.shape == (1_000,)
        with pytest.raises(ValueError):
            eps[0] = 0.0

    def test_idiosyncratic_is_standard_normal(self):
        eps = sample_idiosyncratic(200_000, 3)
        assert eps.mean() == pytest.approx(0.0, abs=0.01)
        assert eps.std() == pytest.approx(1.0, abs=0.01)

    @pytest.mark.parametrize("n", [0, -1])
    def test_idiosyncratic_requires_positive_n(self, n):
        with pytest.raises(ParameterError):
            sample_idiosyncratic(n, 0)

    def test_seeded_draws_repeat(self):
        np.testing.assert_array_equal(sample_systemic(50, 11), sample_systemic(50, 11))

    def test_generator_passed_through(self):
        rng = np.random.default_rng(5)
        assert make_rng(rng) is rng


class TestCountDefaults:

    def test_matches_direct_comparison(self):
        rng = make_rng(2)
        eps = rng.standard_normal(300)
        y = rng.standard_normal(8)
        rho, threshold = 0.3, derive_threshold(0.2)

        counts = count_defaults(y, rho, threshold, eps)

        for i, yi in enumerate(y):
            latent = np.sqrt(rho) * yi + np.sqrt(1 - rho) * eps
            assert counts[i] == np.sum(latent < threshold)

    def test_full_correlation_limit(self):
        # ρ → 1: every obligor follows the systemic factor
        eps = sample_idiosyncratic(500, 4)
        counts = count_defaults(np.array([-5.0, 5.0]), 0.999999, derive_threshold(0.1), eps)
        assert counts.tolist() == [500, 0]


class TestRunScenarios:

    def test_loss_vector_shape_and_units(self, small_params):
        p = small_params
        eps = sample_idiosyncratic(p.n, 0)
        losses = run_scenarios(p.t, p.rho, derive_threshold(p.pd_mean), eps, p.ead, p.lgd, rng=1)

        assert losses.shape == (p.t,)
        defaults = losses / (p.ead * p.lgd)
        np.testing.assert_allclose(defaults, np.round(defaults))
        assert losses.min() >= 0
        assert losses.max() <= p.n * p.ead * p.lgd

    def test_loss_vector_is_read_only(self, small_params):
        p = small_params
        eps = sample_idiosyncratic(p.n, 0)
        losses = run_scenarios(10, p.rho, derive_threshold(p.pd_mean), eps, p.ead, p.lgd, rng=1)
        with pytest.raises(ValueError):
            losses[0] = 1.0

    @pytest.mark.parametrize("rho", [-0.1, 1.0])
    def test_rejects_bad_correlation(self, rho):
        eps = sample_idiosyncratic(10, 0)
        with pytest.raises(ParameterError):
            run_scenarios(5, rho, 0.0, eps, 1.0, 1.0, rng=0)

    def test_rejects_non_positive_scenarios(self):
        eps = sample_idiosyncratic(10, 0)
        with pytest.raises(ParameterError):
            run_scenarios(0, 0.2, 0.0, eps, 1.0, 1.0, rng=0)

    @pytest.mark.parametrize("eps", [np.array([]), np.zeros((4, 5))])
    def test_rejects_empty_or_2d_idiosyncratic(self, eps):
        with pytest.raises(ParameterError):
            run_scenarios(5, 0.2, 0.0, eps, 1.0, 1.0, rng=0)

    def test_zero_correlation_has_no_systemic_comovement(self):
        eps = sample_idiosyncratic(5_000, 9)
        threshold = derive_threshold(0.05)

        losses = run_scenarios(200, 0.0, threshold, eps, 10.0, 0.5, rng=3)

        expected = np.sum(eps < threshold) * 10.0 * 0.5
        np.testing.assert_array_equal(losses, np.full(200, expected))

    def test_zero_correlation_default_count_is_binomial(self):
        n, pd_mean = 1_000, 0.1
        threshold = derive_threshold(pd_mean)
        counts = [
            run_scenarios(1, 0.0, threshold, sample_idiosyncratic(n, seed), 1.0, 1.0, rng=seed)[0]
            for seed in range(300)
        ]
        assert np.mean(counts) == pytest.approx(n * pd_mean, abs=3.0)
        assert np.var(counts, ddof=1) == pytest.approx(n * pd_mean * (1 - pd_mean), rel=0.3)

    def test_matches_full_pipeline_with_shared_generator(self, small_params):
        p = small_params
        rng = make_rng(21)
        eps = sample_idiosyncratic(p.n, rng)
        losses = run_scenarios(p.t, p.rho, derive_threshold(p.pd_mean), eps, p.ead, p.lgd, rng=rng)

        report = run_simulation(p, seed=21)

        np.testing.assert_array_equal(losses, report.loss_vector)


class TestDeterminism:

    def test_same_seed_bit_identical(self, small_params):
        a = run_simulation(small_params, seed=123)
        b = run_simulation(small_params, seed=123)
        np.testing.assert_array_equal(a.loss_vector, b.loss_vector)

    def test_different_seeds_differ(self, small_params):
        a = run_simulation(small_params, seed=1)
        b = run_simulation(small_params, seed=2)
        assert not np.array_equal(a.loss_vector, b.loss_vector)

    def test_independent_of_batching_and_workers(self, small_params):
        base = run_simulation(small_params, seed=99)
        batched = run_simulation(small_params, seed=99, batch_size=37)
        threaded = run_simulation(small_params, seed=99, batch_size=64, n_workers=4)

        np.testing.assert_array_equal(base.loss_vector, batched.loss_vector)
        np.testing.assert_array_equal(base.loss_vector, threaded.loss_vector)


class TestProgress:

    def test_reports_about_every_ten_percent(self):
        eps = sample_idiosyncratic(100, 0)
        y = sample_systemic(1_000, 1)
        calls = []

        simulate_default_counts(
            y, 0.2, derive_threshold(0.1), eps,
            batch_size=50, progress_callback=lambda done, total: calls.append((done, total)),
        )

        assert len(calls) == 10
        assert calls[-1] == (1_000, 1_000)
        assert [done for done, _ in calls] == sorted(done for done, _ in calls)

    def test_threaded_progress_completes(self):
        eps = sample_idiosyncratic(100, 0)
        y = sample_systemic(503, 1)
        calls = []

        simulate_default_counts(
            y, 0.2, derive_threshold(0.1), eps,
            batch_size=20, n_workers=3,
            progress_callback=lambda done, total: calls.append(done),
        )

        assert calls[-1] == 503

    def test_progress_does_not_change_result(self):
        eps = sample_idiosyncratic(100, 0)
        y = sample_systemic(250, 1)
        threshold = derive_threshold(0.1)

        silent = simulate_default_counts(y, 0.2, threshold, eps)
        noisy = simulate_default_counts(y, 0.2, threshold, eps, progress_callback=lambda *a: None)

        np.testing.assert_array_equal(silent, noisy)


class TestConvergence:

    def test_mean_converges_to_expected_loss(self, convergence_report):
        p = convergence_report.params
        el = expected_loss(p.n, p.ead, p.pd_mean, p.lgd)
        assert convergence_report.expected_loss == el
        assert convergence_report.empirical_mean == pytest.approx(el, rel=0.03)

    def test_quantile_converges_to_vasicek_quantile(self, convergence_report):
        p = convergence_report.params
        vq = vasicek_loss_quantile(p.n, p.ead, p.lgd, p.rho, p.pd_mean, p.quantile)
        assert convergence_report.vasicek_quantile == vq
        assert convergence_report.empirical_quantile == pytest.approx(vq, rel=0.05)

    def test_quantile_close_to_unexpected_loss(self, convergence_report):
        p = convergence_report.params
        ul = unexpected_loss(p.n, p.ead, p.lgd, p.rho, p.pd_mean, p.quantile)
        assert convergence_report.unexpected_loss == ul
        assert convergence_report.empirical_quantile == pytest.approx(ul, rel=0.08)

    def test_higher_correlation_widens_distribution(self, small_params):
        low = run_simulation(small_params.replace(rho=0.05), seed=3)
        high = run_simulation(small_params.replace(rho=0.5), seed=3)
        assert high.summary.std > low.summary.std
        assert high.empirical_quantile > low.empirical_quantile


class TestSimulationReport:

    def test_report_fields(self, small_params):
        report = run_simulation(small_params, seed=5)

        assert isinstance(report, SimulationReport)
        assert report.seed == 5
        assert report.threshold == pytest.approx(derive_threshold(small_params.pd_mean))
        assert report.loss_vector.shape == (small_params.t,)
        assert report.default_counts.shape == (small_params.t,)
        np.testing.assert_allclose(
            report.loss_vector, report.default_counts * small_params.ead * small_params.lgd
        )
        assert report.empirical_mean == pytest.approx(report.loss_vector.mean())
        assert report.economic_capital == pytest.approx(
            report.empirical_quantile - report.empirical_mean
        )

    def test_numpy_integer_seed_is_recorded(self, small_params):
        report = run_simulation(small_params, seed=np.int64(7))

        assert report.seed == 7
        assert type(report.seed) is int
        np.testing.assert_array_equal(
            report.loss_vector, run_simulation(small_params, seed=7).loss_vector
        )

    def test_generator_seed_is_not_recorded(self, small_params):
        assert run_simulation(small_params, seed=make_rng(7)).seed is None

    def test_to_dict(self, small_params):
        data = run_simulation(small_params, seed=5).to_dict()

        for key in (
            "parameters", "expected_loss", "unexpected_loss", "empirical_mean",
            "empirical_quantile", "mean_relative_error", "defaults", "summary",
        ):
            assert key in data
        assert "loss_vector" not in data
        assert data["parameters"]["n"] == small_params.n

    def test_rejects_plain_mapping(self):
        with pytest.raises(ParameterError):
            run_simulation({"pd_mean": 0.1}, seed=0)
