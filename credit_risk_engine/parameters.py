"""
Portfolio Parameters Module
===========================
Defines and validates the risk parameters of a homogeneous loan
portfolio, and loads them from JSON configuration files.

Model Assumptions:
    - All obligors share the same LGD and EAD
    - All obligors share the same asset correlation ρ
    - All obligors share the same default threshold T = Φ⁻¹(PD)

Recognized options:
    pd_mean   ∈ (0, 1)     mean probability of default
    lgd       ≥ 0          loss given default
    ead       ≥ 0          exposure at default
    rho       ∈ [0, 1)     asset correlation
    n         > 0          number of obligors
    t         > 0          number of simulated scenarios
    quantile  ∈ (0, 1)     UL confidence level (default: 0.999)
"""

import json
import math
import numbers
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Union


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
DEFAULT_QUANTILE: float = 0.999


class ParameterError(ValueError):
    """Raised when a model parameter lies outside its valid domain."""


def check_open_unit_interval(name: str, value: float) -> float:
    """Validate that ``value`` lies strictly inside (0, 1)."""
    if not _is_real(value) or not 0.0 < value < 1.0:
        raise ParameterError(f"{name} must lie in (0, 1), got {value!r}")
    return float(value)


def check_correlation(rho: float) -> float:
    """Validate that the asset correlation lies in [0, 1)."""
    if not _is_real(rho) or not 0.0 <= rho < 1.0:
        raise ParameterError(f"rho must lie in [0, 1), got {rho!r}")
    return float(rho)


def check_non_negative(name: str, value: float) -> float:
    if not _is_real(value) or not value >= 0.0 or math.isinf(value):
        raise ParameterError(f"{name} must be a finite value >= 0, got {value!r}")
    return float(value)


def check_positive_int(name: str, value: int) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, numbers.Integral)
        or value <= 0
    ):
        raise ParameterError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def _is_real(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


@dataclass(frozen=True)
class PortfolioParameters:
    """
    Risk parameters of a homogeneous loan portfolio.

    Every field is validated on construction, so an instance that exists
    is always safe to simulate.

    Raises
    ------
    ParameterError
        If any field lies outside its domain.
    """

    pd_mean: float
    lgd: float
    ead: float
    rho: float
    n: int
    t: int
    quantile: float = DEFAULT_QUANTILE

    def __post_init__(self) -> None:
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "pd_mean", check_open_unit_interval("pd_mean", self.pd_mean))
        object.__setattr__(self, "lgd", check_non_negative("lgd", self.lgd))
        object.__setattr__(self, "ead", check_non_negative("ead", self.ead))
        object.__setattr__(self, "rho", check_correlation(self.rho))
        object.__setattr__(self, "n", check_positive_int("n", self.n))
        object.__setattr__(self, "t", check_positive_int("t", self.t))
        object.__setattr__(self, "quantile", check_open_unit_interval("quantile", self.quantile))

    @property
    def total_exposure(self) -> float:
        """Portfolio exposure n · EAD."""
        return self.n * self.ead

    @property
    def loss_per_default(self) -> float:
        """Loss booked for a single default, EAD · LGD."""
        return self.ead * self.lgd

    def replace(self, **changes: Any) -> "PortfolioParameters":
        """Return a validated copy with the given fields changed."""
        return replace(self, **changes)


# Illustrative configuration (one example, not a system constant)
DEFAULT_PARAMETERS = PortfolioParameters(
    pd_mean=0.1,
    lgd=1.0,
    ead=1000.0,
    rho=0.2,
    n=100_000,
    t=1_000_000,
    quantile=DEFAULT_QUANTILE,
)


def parameters_from_dict(
    options: Dict[str, Any],
    base: PortfolioParameters = DEFAULT_PARAMETERS,
) -> PortfolioParameters:
    """
    Build parameters from a mapping of recognized options.

    Options absent from ``options`` are taken from ``base``.

    Parameters
    ----------
    options : dict
        Mapping of option name -> value.
    base : PortfolioParameters
        Parameters supplying values for missing options.

    Returns
    -------
    PortfolioParameters
        Validated parameters.

    Raises
    ------
    ParameterError
        On unknown option names or out-of-domain values.
    """
    known = {f.name for f in fields(PortfolioParameters)}
    unknown = sorted(set(options) - known)
    if unknown:
        raise ParameterError(f"Unknown portfolio options: {unknown}")

    return replace(base, **options)


def load_parameters(
    path: Union[str, Path],
    base: PortfolioParameters = DEFAULT_PARAMETERS,
) -> PortfolioParameters:
    """
    Load portfolio parameters from a JSON file.

    Parameters
    ----------
    path : str or Path
        JSON file containing an object of recognized options.
    base : PortfolioParameters
        Parameters supplying values for options missing from the file.

    Returns
    -------
    PortfolioParameters
        Validated parameters.
    """
    with open(path, "r", encoding="utf-8") as f:
        options = json.load(f)

    if not isinstance(options, dict):
        raise ParameterError(
            f"Configuration in {path} must be a JSON object, got {type(options).__name__}"
        )

    return parameters_from_dict(options, base)


def parameters_to_dict(params: PortfolioParameters) -> Dict[str, Any]:
    return asdict(params)
