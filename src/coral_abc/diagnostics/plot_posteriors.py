# src/coral_abc/diagnostics/plot_posteriors.py
"""
Diagnostic plots for sampler output.

- Density plots of each parameter (histogram + KDE), optionally with the true values
- Trace plots of an MCMC chain
- Autocorrelation and lag plots of an MCMC chain
- The realised SMC tolerance schedule
- Observed series overlaid on simulated paths
Every function saves a PNG and returns its path.
"""

from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from scipy.stats import gaussian_kde

from .summaries import autocorrelation
from ..dataset.observed import PARAM_NAMES

# Defaults
FIGSIZE: Tuple[int, int] = (12, 4)
BLUE: str = "tab:blue"
RED: str = "tab:red"
GRAY: str = "dimgray"
ALPHA: float = 0.6
# ----------------------


def _save(fig, save_path: str) -> Path:
    out = Path(save_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return out


def plot_densities(
    samples,
    save_path: str = "figs/posterior_densities.png",
    weights: Optional[Sequence[float]] = None,
    truth: Optional[Sequence[float]] = None,
    bins: int = 30,
    title: str = "Posterior densities",
):
    """Histogram and KDE per parameter; weighted for SMC particles."""
    arr = np.asarray(samples, dtype=float)
    w = None if weights is None else np.asarray(weights, dtype=float)
    fig, axes = plt.subplots(1, len(PARAM_NAMES), figsize=FIGSIZE)
    for j, (ax, name) in enumerate(zip(axes, PARAM_NAMES)):
        x = arr[:, j]
        ax.hist(x, bins=bins, weights=w, density=True, color=BLUE, alpha=0.35)
        # KDE needs spread in the data
        support = x if w is None else x[w > 0]
        if support.size > 1 and np.std(support) > 0:
            kde = gaussian_kde(x, weights=w)
            grid = np.linspace(x.min(), x.max(), 200)
            ax.plot(grid, kde(grid), color=BLUE, linewidth=2.0)
        if truth is not None:
            ax.axvline(truth[j], color=RED, linestyle="--", label="true value")
            ax.legend(fontsize="small")
        ax.set_xlabel(name)
        ax.grid(alpha=0.25)
    axes[0].set_ylabel("density")
    fig.suptitle(title)
    return _save(fig, save_path)


def plot_traces(samples, save_path: str = "figs/mcmc_traces.png", truth: Optional[Sequence[float]] = None):
    arr = np.asarray(samples, dtype=float)
    it = np.arange(1, arr.shape[0] + 1)
    fig, axes = plt.subplots(len(PARAM_NAMES), 1, figsize=(10, 7), sharex=True)
    for j, (ax, name) in enumerate(zip(axes, PARAM_NAMES)):
        ax.plot(it, arr[:, j], color=GRAY, linewidth=0.7)
        if truth is not None:
            ax.axhline(truth[j], color=RED, linestyle="--")
        ax.set_ylabel(name)
        ax.grid(alpha=0.25)
    axes[-1].set_xlabel("Iteration")
    fig.suptitle("ABC-MCMC traces")
    return _save(fig, save_path)


def plot_autocorrelation(samples, save_path: str = "figs/mcmc_acf.png", max_lag: int = 50):
    arr = np.asarray(samples, dtype=float)
    fig, axes = plt.subplots(1, len(PARAM_NAMES), figsize=FIGSIZE, sharey=True)
    for j, (ax, name) in enumerate(zip(axes, PARAM_NAMES)):
        acf = autocorrelation(arr[:, j], max_lag)
        ax.vlines(np.arange(acf.size), 0, acf, color=BLUE)
        ax.axhline(0.0, color="black", linewidth=0.8)
        # approximate 95% band for white noise
        band = 1.96 / np.sqrt(arr.shape[0])
        ax.axhspan(-band, band, color=GRAY, alpha=0.15)
        ax.set_title(name)
        ax.set_xlabel("Lag")
    axes[0].set_ylabel("ACF")
    return _save(fig, save_path)


def plot_lags(samples, save_path: str = "figs/mcmc_lags.png", lag: int = 1):
    """Scatter of x_t against x_{t+lag} for each parameter."""
    arr = np.asarray(samples, dtype=float)
    if lag < 1 or lag >= arr.shape[0]:
        raise ValueError("lag must be in [1, n_samples)")
    fig, axes = plt.subplots(1, len(PARAM_NAMES), figsize=FIGSIZE)
    for j, (ax, name) in enumerate(zip(axes, PARAM_NAMES)):
        ax.scatter(arr[:-lag, j], arr[lag:, j], s=6, alpha=ALPHA, color=BLUE)
        ax.set_xlabel(f"{name}[t]")
        ax.set_ylabel(f"{name}[t+{lag}]")
        ax.grid(alpha=0.25)
    return _save(fig, save_path)


def plot_tolerance_schedule(tolerances, save_path: str = "figs/smc_tolerances.png", ess=None):
    tol = np.asarray(tolerances, dtype=float)
    gens = np.arange(1, tol.size + 1)
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(gens, tol, marker="o", color=BLUE, label="tolerance")
    ax.set_xlabel("Generation")
    ax.set_ylabel("Tolerance")
    ax.set_xticks(gens)
    ax.grid(alpha=0.3)
    if ess is not None:
        ax2 = ax.twinx()
        ax2.plot(gens, np.asarray(ess, dtype=float), marker="s", color=GRAY, label="ESS")
        ax2.set_ylabel("ESS")
    ax.set_title("SMC-ABC tolerance schedule")
    return _save(fig, save_path)


def plot_trajectory_fit(observed, simulated, save_path: str = "figs/trajectory_fit.png"):
    """Observed coral and COTS counts (points) over a stack of simulated paths (lines)."""
    obs = np.asarray(observed, dtype=float)
    sims = np.asarray(simulated, dtype=float)
    if sims.ndim == 2:
        sims = sims[None, :, :]
    fig, axes = plt.subplots(1, 2, figsize=FIGSIZE, sharex=True)
    for ax, col, label in zip(axes, (1, 2), ("Coral", "COTS")):
        for path in sims:
            ax.plot(path[:, 0], path[:, col], color=GRAY, alpha=0.3, linewidth=0.8)
        ax.plot(obs[:, 0], obs[:, col], "o-", color=RED, label="observed")
        ax.set_xlabel("Time")
        ax.set_ylabel(f"{label} count")
        ax.grid(alpha=0.25)
        ax.legend(loc="upper left", fontsize="small")
    return _save(fig, save_path)
