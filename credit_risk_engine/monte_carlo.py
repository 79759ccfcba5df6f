"""
Monte Carlo Loss Simulation Engine (Flagship Module)
=====================================================
Simulates portfolio default losses under the one-factor Gaussian copula
(Vasicek-Merton) model and compares them with the closed-form EL / UL.

Mathematical Foundation:
    Threshold:      T = Φ⁻¹(PD)
    Latent value:   v_k = √ρ · y + √(1 − ρ) · ε_k,   y, ε_k ~ N(0, 1)
    Default:        v_k < T
    Scenario loss:  L_i = #defaults_i · EAD · LGD

The idiosyncratic vector ε is drawn once and shared read-only by every
scenario. All systemic draws y are taken from the same generator right
after ε, so results do not depend on batch size or worker count.
"""

import numbers

import numpy as np
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from loguru import logger
from scipy import stats
from typing import Callable, Dict, Optional, Union

from credit_risk_engine.parameters import (
    PortfolioParameters,
    ParameterError,
    check_correlation,
    check_non_negative,
    check_open_unit_interval,
    check_positive_int,
    parameters_to_dict,
)
from credit_risk_engine.risk_metrics import (
    expected_loss,
    unexpected_loss,
    vasicek_loss_quantile,
)
from credit_risk_engine.statistics import (
    LossSummary,
    default_count_statistics,
    relative_error,
    summarize,
)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_SEED: int = 42
# Upper bound on latent values held in memory per batch (≈ 32 MB of float64)
MAX_BATCH_ELEMENTS: int = 4_194_304
PROGRESS_STEPS: int = 10

SeedLike = Union[None, int, np.random.SeedSequence, np.random.Generator]
ProgressCallback = Callable[[int, int], None]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """
    Build the random source for a simulation run.

    Parameters
    ----------
    seed : None, int, SeedSequence or Generator
        Seed for reproducibility. An existing Generator is returned
        unchanged; None gives fresh OS entropy.

    Returns
    -------
    np.random.Generator
    """
    return np.random.default_rng(seed)


def _is_integer_seed(seed: SeedLike) -> bool:
    # numpy integer scalars count as integer seeds
    return isinstance(seed, numbers.Integral) and not isinstance(seed, bool)


def derive_threshold(pd_mean: float) -> float:
    """
    Derive the default threshold from the mean probability of default.

    Mathematical Definition:
        T = Φ⁻¹(PD),  so that  P(v_k < T) = PD

    No clamping is applied near the boundaries: SciPy returns large
    finite magnitudes (≈ −37.5 at PD = 1e-300) and ±inf only at exactly
    0 or 1, which are rejected.

    Parameters
    ----------
    pd_mean : float
        Probability of default in (0, 1).

    Returns
    -------
    float
        Default threshold T.

    Raises
    ------
    ParameterError
        If pd_mean lies outside (0, 1).
    """
    check_open_unit_interval("pd_mean", pd_mean)
    return float(stats.norm.ppf(pd_mean))


def sample_idiosyncratic(n: int, rng: SeedLike = None) -> np.ndarray:
    """
    Draw the idiosyncratic factor of every obligor.

    Parameters
    ----------
    n : int
        Number of obligors.
    rng : Generator or seed
        Random source.

    Returns
    -------
    np.ndarray
        Read-only vector of n i.i.d. N(0, 1) draws.
    """
    check_positive_int("n", n)
    eps = make_rng(rng).standard_normal(n)
    eps.setflags(write=False)
    return eps


def sample_systemic(t: int, rng: SeedLike = None) -> np.ndarray:
    """Draw one systemic factor per scenario, t i.i.d. N(0, 1) values."""
    check_positive_int("t", t)
    return make_rng(rng).standard_normal(t)


def count_defaults(
    systemic: np.ndarray,
    rho: float,
    threshold: float,
    idiosyncratic: np.ndarray,
) -> np.ndarray:
    """
    Count defaulted obligors for each systemic draw.

    Algorithm:
        1. v = √ρ · y[:, None] + √(1 − ρ) · ε[None, :]
        2. defaults = Σ_k 1{v_k < T}   (per row)

    Parameters
    ----------
    systemic : np.ndarray
        Systemic factor draws (b,).
    rho : float
        Asset correlation.
    threshold : float
        Default threshold T.
    idiosyncratic : np.ndarray
        Idiosyncratic factors (n,).

    Returns
    -------
    np.ndarray
        Default counts (b,), dtype int64.
    """
    latent = (
        np.sqrt(rho) * np.asarray(systemic)[:, None]
        + np.sqrt(1.0 - rho) * idiosyncratic[None, :]
    )
    return np.count_nonzero(latent < threshold, axis=1).astype(np.int64)


def default_batch_size(n: int) -> int:
    return max(1, MAX_BATCH_ELEMENTS // n)


def simulate_default_counts(
    systemic: np.ndarray,
    rho: float,
    threshold: float,
    idiosyncratic: np.ndarray,
    batch_size: Optional[int] = None,
    n_workers: int = 1,
    progress_callback: Optional[ProgressCallback] = None,
) -> np.ndarray:
    """
    Default count of every scenario, processed in batches.

    Each batch writes a disjoint slice of the output. With n_workers > 1
    batches run on a thread pool (NumPy releases the GIL) and the result
    is returned only after every batch has finished.

    Parameters
    ----------
    systemic : np.ndarray
        One systemic draw per scenario (t,).
    rho : float
        Asset correlation in [0, 1).
    threshold : float
        Default threshold T.
    idiosyncratic : np.ndarray
        Shared idiosyncratic factors (n,).
    batch_size : int, optional
        Scenarios per batch (default: bounded by MAX_BATCH_ELEMENTS).
    n_workers : int
        Number of worker threads (default: 1, sequential).
    progress_callback : callable, optional
        Called as ``progress_callback(done, total)`` about every 10%.

    Returns
    -------
    np.ndarray
        Default counts (t,).
    """
    check_correlation(rho)
    check_positive_int("n_workers", n_workers)
    total = len(systemic)
    check_positive_int("t", total)

    idiosyncratic = np.asarray(idiosyncratic, dtype=float)
    if idiosyncratic.ndim != 1 or idiosyncratic.size == 0:
        raise ParameterError(
            "Idiosyncratic factors must be a non-empty 1-D array, "
            f"got shape {idiosyncratic.shape}"
        )
    if batch_size is None:
        batch_size = default_batch_size(idiosyncratic.size)
    check_positive_int("batch_size", batch_size)

    counts = np.empty(total, dtype=np.int64)
    slices = [slice(i, min(i + batch_size, total)) for i in range(0, total, batch_size)]

    step = max(1, total // PROGRESS_STEPS)
    next_report = step
    done = 0

    def run_batch(s: slice) -> int:
        counts[s] = count_defaults(systemic[s], rho, threshold, idiosyncratic)
        return s.stop - s.start

    def report(finished: int) -> None:
        nonlocal done, next_report
        done += finished
        if progress_callback is not None and (done >= next_report or done == total):
            progress_callback(done, total)
            while next_report <= done:
                next_report += step

    if n_workers == 1:
        for s in slices:
            report(run_batch(s))
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(run_batch, s) for s in slices]
            for future in as_completed(futures):
                report(future.result())

    counts.setflags(write=False)
    return counts


def run_scenarios(
    t: int,
    rho: float,
    threshold: float,
    idiosyncratic: np.ndarray,
    ead: float,
    lgd: float,
    rng: SeedLike = None,
    batch_size: Optional[int] = None,
    n_workers: int = 1,
    progress_callback: Optional[ProgressCallback] = None,
) -> np.ndarray:
    """
    Simulate the portfolio loss of t economic scenarios.

    Algorithm (per scenario i):
        1. Draw y ~ N(0, 1)
        2. v_k = √ρ · y + √(1 − ρ) · ε_k  for every obligor
        3. defaults = |{k : v_k < T}|
        4. loss[i] = defaults · EAD · LGD

    Parameters
    ----------
    t : int
        Number of scenarios.
    rho : float
        Asset correlation in [0, 1). ρ = 0 gives fully idiosyncratic
        defaults; ρ → 1 makes all obligors default together.
    threshold : float
        Default threshold T = Φ⁻¹(PD).
    idiosyncratic : np.ndarray
        Idiosyncratic factors, shared read-only across scenarios.
    ead : float
        Exposure at default.
    lgd : float
        Loss given default.
    rng : Generator or seed
        Source of the systemic draws.
    batch_size, n_workers, progress_callback
        See :func:`simulate_default_counts`.

    Returns
    -------
    np.ndarray
        Loss vector (t,).
    """
    check_positive_int("t", t)
    check_correlation(rho)
    check_non_negative("ead", ead)
    check_non_negative("lgd", lgd)

    systemic = sample_systemic(t, rng)
    counts = simulate_default_counts(
        systemic, rho, threshold, idiosyncratic,
        batch_size=batch_size,
        n_workers=n_workers,
        progress_callback=progress_callback,
    )
    return losses_from_counts(counts, ead, lgd)


def losses_from_counts(default_counts: np.ndarray, ead: float, lgd: float) -> np.ndarray:
    losses = default_counts * ead * lgd
    losses = losses.astype(float)
    losses.setflags(write=False)
    return losses


def log_progress(done: int, total: int) -> None:
    """Progress hook that logs completed scenarios."""
    logger.info(f"Simulated {done:,}/{total:,} scenarios ({done / total:.0%})")


# ─────────────────────────────────────────────────────────────
# Full Pipeline
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SimulationReport:
    """Container for a Monte Carlo run and its closed-form comparison."""

    params: PortfolioParameters
    threshold: float
    loss_vector: np.ndarray = field(repr=False)
    default_counts: np.ndarray = field(repr=False)
    expected_loss: float
    unexpected_loss: float
    vasicek_quantile: float
    summary: LossSummary
    seed: Optional[int] = None

    @property
    def empirical_mean(self) -> float:
        return self.summary.mean

    @property
    def empirical_quantile(self) -> float:
        return self.summary.empirical_quantile

    @property
    def economic_capital(self) -> float:
        """Empirical quantile minus empirical mean."""
        return self.summary.empirical_quantile - self.summary.mean

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly view of the report (the loss vector is omitted)."""
        return {
            "parameters": parameters_to_dict(self.params),
            "seed": self.seed,
            "threshold": self.threshold,
            "expected_loss": self.expected_loss,
            "unexpected_loss": self.unexpected_loss,
            "vasicek_quantile": self.vasicek_quantile,
            "empirical_mean": self.empirical_mean,
            "empirical_quantile": self.empirical_quantile,
            "economic_capital": self.economic_capital,
            "mean_relative_error": relative_error(self.empirical_mean, self.expected_loss),
            "quantile_relative_error": relative_error(
                self.empirical_quantile, self.unexpected_loss
            ),
            "summary": self.summary.to_dict(),
            "defaults": default_count_statistics(self.default_counts, self.params.n),
        }


def run_simulation(
    params: PortfolioParameters,
    seed: SeedLike = DEFAULT_SEED,
    batch_size: Optional[int] = None,
    n_workers: int = 1,
    progress_callback: Optional[ProgressCallback] = None,
) -> SimulationReport:
    """
    Full Monte Carlo engine execution.

    Runs threshold derivation, idiosyncratic sampling and the scenario
    loop, then compares the empirical distribution with EL and UL.

    Parameters
    ----------
    params : PortfolioParameters
        Validated portfolio parameters.
    seed : int, Generator or None
        Seed shared by idiosyncratic and systemic draws.
    batch_size : int, optional
        Scenarios per batch.
    n_workers : int
        Worker threads for the scenario loop.
    progress_callback : callable, optional
        Progress hook, e.g. :func:`log_progress`.

    Returns
    -------
    SimulationReport
    """
    if not isinstance(params, PortfolioParameters):
        raise ParameterError(
            f"Expected PortfolioParameters, got {type(params).__name__}"
        )

    rng = make_rng(seed)
    logger.debug(f"Running simulation with {params} (seed={seed})")

    threshold = derive_threshold(params.pd_mean)
    idiosyncratic = sample_idiosyncratic(params.n, rng)
    systemic = sample_systemic(params.t, rng)

    counts = simulate_default_counts(
        systemic, params.rho, threshold, idiosyncratic,
        batch_size=batch_size,
        n_workers=n_workers,
        progress_callback=progress_callback,
    )
    losses = losses_from_counts(counts, params.ead, params.lgd)
    summary = summarize(losses, params.quantile)

    el = expected_loss(params.n, params.ead, params.pd_mean, params.lgd)
    ul = unexpected_loss(
        params.n, params.ead, params.lgd, params.rho,
        params.pd_mean, params.quantile,
    )
    vq = vasicek_loss_quantile(
        params.n, params.ead, params.lgd, params.rho,
        params.pd_mean, params.quantile,
    )

    logger.info(
        f"EL={el:,.2f} mean={summary.mean:,.2f} | "
        f"UL={ul:,.2f} q{params.quantile}={summary.empirical_quantile:,.2f}"
    )

    return SimulationReport(
        params=params,
        threshold=threshold,
        loss_vector=losses,
        default_counts=counts,
        expected_loss=el,
        unexpected_loss=ul,
        vasicek_quantile=vq,
        summary=summary,
        seed=int(seed) if _is_integer_seed(seed) else None,
    )
