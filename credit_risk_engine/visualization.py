"""
Visualization Module
====================
Produces static charts of the simulated credit loss distribution.

Generated Figures:
    1. Monte Carlo Loss Distribution (Histogram + Vasicek Density)
    2. Right-Tail Zoom with EL / UL / Empirical Quantile Lines
    3. Unexpected Loss vs Asset Correlation
    4. UL Sensitivity Heatmap (PD × ρ)
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.ticker as mtick
import seaborn as sns
from pathlib import Path

from credit_risk_engine.monte_carlo import SimulationReport
from credit_risk_engine.risk_metrics import vasicek_pdf


# ─────────────────────────────────────────────────────────────
# Style Configuration
# ─────────────────────────────────────────────────────────────
plt.rcParams.update({
    "figure.figsize": (12, 7),
    "figure.dpi": 150,
    "font.size": 11,
    "font.family": "serif",
    "axes.grid": True,
    "grid.alpha": 0.3,
    "axes.spines.top": False,
    "axes.spines.right": False,
})

COLORS = {
    "primary": "#1f77b4",
    "el": "#2ecc71",
    "ul": "#d62728",
    "empirical": "#ff7f0e",
    "vasicek": "#9467bd",
}

_money = mtick.FuncFormatter(lambda x, _: f"{x:,.0f}")


def save_figure(fig: plt.Figure, name: str, output_dir: str = "results/figures") -> str:
    """Save figure to disk and return the path."""
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)
    filepath = path / f"{name}.png"
    fig.savefig(filepath, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    return str(filepath)


def _add_reference_lines(ax: plt.Axes, report: SimulationReport) -> None:
    q = report.params.quantile
    ax.axvline(report.expected_loss, color=COLORS["el"], linewidth=2,
               linestyle="--", label=f"EL = {report.expected_loss:,.0f}")
    ax.axvline(report.unexpected_loss, color=COLORS["ul"], linewidth=2,
               linestyle="--", label=f"UL ({q:.1%}) = {report.unexpected_loss:,.0f}")
    ax.axvline(report.empirical_quantile, color=COLORS["empirical"], linewidth=2,
               linestyle=":", label=f"Empirical {q:.1%} = {report.empirical_quantile:,.0f}")


def plot_loss_distribution(
    report: SimulationReport,
    bins: int = 200,
    title: str = "Monte Carlo Simulated Portfolio Loss Distribution",
    output_dir: str = "results/figures",
) -> str:
    """
    Plot histogram of simulated losses with EL, UL and the asymptotic
    Vasicek density.

    Parameters
    ----------
    report : SimulationReport
        Output of the Monte Carlo engine.
    bins : int
        Number of histogram bins.
    title : str
        Plot title.
    output_dir : str
        Output directory for figure.

    Returns
    -------
    str
        Path to saved figure.
    """
    fig, ax = plt.subplots(figsize=(14, 7))
    losses = report.loss_vector

    ax.hist(
        losses, bins=bins, density=True,
        color=COLORS["primary"], alpha=0.7, edgecolor="none",
        label="Simulated Loss",
    )

    params = report.params
    scale = params.n * params.ead * params.lgd
    if params.rho > 0 and scale > 0:
        # density of the loss = density of the default fraction / scale
        grid = np.linspace(max(losses.min(), 1e-12), losses.max(), 500)
        density = vasicek_pdf(grid / scale, params.pd_mean, params.rho) / scale
        ax.plot(grid, density, color=COLORS["vasicek"], linewidth=2,
                label="Vasicek Density (n → ∞)")

    _add_reference_lines(ax, report)

    ax.set_xlabel("Portfolio Loss", fontsize=12)
    ax.set_ylabel("Density", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(fontsize=11, loc="upper right")
    ax.xaxis.set_major_formatter(_money)

    return save_figure(fig, "mc_loss_distribution", output_dir)


def plot_tail_zoom(
    report: SimulationReport,
    tail_fraction: float = 0.10,
    output_dir: str = "results/figures",
) -> str:
    """
    Zoom into the right tail of the loss distribution.

    Parameters
    ----------
    report : SimulationReport
        Output of the Monte Carlo engine.
    tail_fraction : float
        Share of worst scenarios shown (default: worst 10%).
    output_dir : str
        Output directory.

    Returns
    -------
    str
        Path to saved figure.
    """
    fig, ax = plt.subplots(figsize=(14, 7))
    losses = report.loss_vector

    cutoff = np.percentile(losses, (1 - tail_fraction) * 100)
    tail_data = losses[losses >= cutoff]

    ax.hist(
        tail_data, bins=100, density=True,
        color=COLORS["primary"], alpha=0.7, edgecolor="none",
        label="Right Tail Loss",
    )
    _add_reference_lines(ax, report)

    ax.axvspan(report.empirical_quantile, tail_data.max(), alpha=0.15,
               color=COLORS["ul"], label="Beyond Empirical Quantile")

    ax.set_xlabel("Portfolio Loss", fontsize=12)
    ax.set_ylabel("Density", fontsize=12)
    ax.set_title("Right Tail Zoom — EL, UL & Empirical Quantile",
                 fontsize=14, fontweight="bold")
    ax.legend(fontsize=11)
    ax.xaxis.set_major_formatter(_money)

    return save_figure(fig, "right_tail_zoom", output_dir)


def plot_correlation_sensitivity(
    sensitivity: pd.DataFrame,
    output_dir: str = "results/figures",
) -> str:
    """
    Plot closed-form EL, UL and Vasicek quantile against ρ.

    Parameters
    ----------
    sensitivity : pd.DataFrame
        Output of ``stress_testing.correlation_sensitivity``.
    output_dir : str
        Output directory.

    Returns
    -------
    str
        Path to saved figure.
    """
    fig, ax = plt.subplots(figsize=(12, 7))

    ax.plot(sensitivity["rho"], sensitivity["expected_loss"],
            color=COLORS["el"], linewidth=2, linestyle="--", label="EL")
    ax.plot(sensitivity["rho"], sensitivity["unexpected_loss"],
            color=COLORS["ul"], linewidth=2, marker="o", label="UL")
    ax.plot(sensitivity["rho"], sensitivity["vasicek_quantile"],
            color=COLORS["vasicek"], linewidth=1.5, linestyle=":",
            label="Vasicek Quantile")

    ax.set_xlabel("Asset Correlation ρ", fontsize=12)
    ax.set_ylabel("Loss", fontsize=12)
    ax.set_title("Unexpected Loss Sensitivity to Asset Correlation",
                 fontsize=14, fontweight="bold")
    ax.legend(fontsize=11)
    ax.yaxis.set_major_formatter(_money)

    return save_figure(fig, "ul_vs_correlation", output_dir)


def plot_ul_heatmap(
    grid: pd.DataFrame,
    output_dir: str = "results/figures",
) -> str:
    """
    Plot the PD × ρ Unexpected Loss grid as an annotated heatmap.

    Parameters
    ----------
    grid : pd.DataFrame
        Output of ``stress_testing.ul_sensitivity_grid``.
    output_dir : str
        Output directory.

    Returns
    -------
    str
        Path to saved figure.
    """
    fig, ax = plt.subplots(figsize=(14, 7))

    # express UL as a share of the largest cell so annotations stay short
    scaled = grid / grid.to_numpy().max() if grid.to_numpy().max() > 0 else grid

    sns.heatmap(
        scaled,
        annot=True,
        fmt=".2f",
        cmap="RdYlBu_r",
        linewidths=0.5,
        xticklabels=[f"{c:.2f}" for c in grid.columns],
        yticklabels=[f"{i:.3f}" for i in grid.index],
        ax=ax,
        cbar_kws={"shrink": 0.8, "label": "UL (relative to max)"},
    )

    ax.set_xlabel("Asset Correlation ρ", fontsize=12)
    ax.set_ylabel("Probability of Default", fontsize=12)
    ax.set_title("Unexpected Loss Sensitivity — PD × ρ",
                 fontsize=14, fontweight="bold")

    return save_figure(fig, "ul_heatmap", output_dir)
