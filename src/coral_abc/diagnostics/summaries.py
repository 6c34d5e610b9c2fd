# src/coral_abc/diagnostics/summaries.py
"""
Post-processing of sampler output: posterior summaries, chain autocorrelation,
and burn-in / thinning (which the MCMC sampler itself never applies).
"""
from typing import Optional

import numpy as np
import pandas as pd

from ..dataset.observed import PARAM_NAMES


def weighted_quantile(x, q, weights=None):
    """Quantile(s) of x under normalised weights (plain np.quantile if None)."""
    x = np.asarray(x, dtype=float)
    if weights is None:
        return np.quantile(x, q)
    w = np.asarray(weights, dtype=float)
    order = np.argsort(x)
    xs, ws = x[order], w[order]
    cdf = np.cumsum(ws) / ws.sum()
    return np.interp(q, cdf, xs)


def posterior_summary(samples, weights: Optional[np.ndarray] = None) -> pd.DataFrame:
    """Mean, sd and central quantiles for each of mu, delta, nu."""
    arr = np.asarray(samples, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != len(PARAM_NAMES) or arr.shape[0] == 0:
        raise ValueError("samples must have shape (k, 3) with k >= 1")

    if weights is None:
        w = np.full(arr.shape[0], 1.0 / arr.shape[0])
    else:
        w = np.asarray(weights, dtype=float)
        if w.shape != (arr.shape[0],) or w.sum() <= 0:
            raise ValueError("weights must be (k,) with a positive sum")
        w = w / w.sum()

    rows = {}
    for j, name in enumerate(PARAM_NAMES):
        x = arr[:, j]
        mean = float(np.sum(w * x))
        sd = float(np.sqrt(np.sum(w * (x - mean) ** 2)))
        q025, q50, q975 = weighted_quantile(x, [0.025, 0.5, 0.975], None if weights is None else w)
        rows[name] = {"mean": mean, "sd": sd, "q2.5": float(q025), "median": float(q50), "q97.5": float(q975)}
    return pd.DataFrame.from_dict(rows, orient="index")


def autocorrelation(x, max_lag: int = 50) -> np.ndarray:
    """Normalised autocorrelation for lags 0..max_lag (constant chains give 1 then 0)."""
    x = np.asarray(x, dtype=float)
    n = x.size
    if n == 0:
        raise ValueError("x must be non-empty")
    max_lag = int(min(max_lag, n - 1))
    xc = x - x.mean()
    var = float(np.dot(xc, xc))
    acf = np.zeros(max_lag + 1)
    acf[0] = 1.0
    if var == 0.0:
        return acf
    for k in range(1, max_lag + 1):
        acf[k] = float(np.dot(xc[:-k], xc[k:])) / var
    return acf


def integrated_autocorrelation_time(x, max_lag: Optional[int] = None) -> float:
    """1 + 2 * sum of autocorrelations, truncated at the first non-positive pair sum."""
    x = np.asarray(x, dtype=float)
    if max_lag is None:
        max_lag = x.size - 1
    rho = autocorrelation(x, max_lag)
    tau = 1.0
    # Geyer's initial positive sequence over pairs (rho_{2m+1} + rho_{2m+2})
    for m in range(0, (len(rho) - 1) // 2):
        pair = rho[2 * m + 1] + rho[2 * m + 2]
        if pair <= 0:
            break
        tau += 2.0 * pair
    return float(tau)


def burn_in_and_thin(samples, burn_in: int = 0, thin: int = 1) -> np.ndarray:
    if burn_in < 0 or thin < 1:
        raise ValueError("burn_in must be >= 0 and thin >= 1")
    arr = np.asarray(samples)
    return arr[burn_in::thin]
