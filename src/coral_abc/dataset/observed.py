# src/coral_abc/dataset/observed.py

from pathlib import Path
from typing import Optional, Sequence, Dict, Any

import numpy as np
import pandas as pd

# Canonical column names used throughout the package
TIME_COL = "time"
PREY_COL = "coral"
PREDATOR_COL = "cots"
CANONICAL_COLUMNS = [TIME_COL, PREY_COL, PREDATOR_COL]
PARAM_NAMES = ["mu", "delta", "nu"]


def load_observed(
    path: str,
    time_col: str = TIME_COL,
    prey_col: str = PREY_COL,
    predator_col: str = PREDATOR_COL,
) -> pd.DataFrame:
    """
    Read the observed time series and return it with canonical column names.

    Parameters
    ----------
    path :
        CSV file with one row per observation time.
    time_col, prey_col, predator_col :
        Column names in the file for time, coral count and starfish count.

    Returns
    -------
    DataFrame with columns ``time, coral, cots`` sorted as in the file.

    Notes
    -----
    - Times must be strictly ascending with no gaps (missing values).
    - Counts must be non-negative.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Observed CSV not found: {path}")

    df = pd.read_csv(csv_path)
    df.columns = [c.strip() for c in df.columns]

    missing = [c for c in (time_col, prey_col, predator_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns in {path}: {missing}")

    out = df[[time_col, prey_col, predator_col]].copy()
    out.columns = CANONICAL_COLUMNS
    return validate_observed(out)


def validate_observed(df: pd.DataFrame) -> pd.DataFrame:
    if len(df) == 0:
        raise ValueError("Observed dataset is empty")
    if df[CANONICAL_COLUMNS].isna().any().any():
        raise ValueError("Observed dataset contains missing values")
    t = df[TIME_COL].to_numpy(dtype=float)
    if len(t) > 1 and np.any(np.diff(t) <= 0):
        raise ValueError("Observed times must be strictly ascending")
    if (df[[PREY_COL, PREDATOR_COL]] < 0).any().any():
        raise ValueError("Observed counts must be non-negative")
    return df.reset_index(drop=True)


def observed_array(df: pd.DataFrame) -> np.ndarray:
    """(n, 3) float array in the order time, C, S."""
    return df[CANONICAL_COLUMNS].to_numpy(dtype=float)


def trajectory_frame(trajectory) -> pd.DataFrame:
    arr = np.asarray(trajectory, dtype=float)
    return pd.DataFrame(arr, columns=CANONICAL_COLUMNS)


def lag1_autocorrelation(x) -> float:
    x = np.asarray(x, dtype=float)
    if x.size < 3 or np.std(x) == 0:
        return float("nan")
    return float(np.corrcoef(x[:-1], x[1:])[0, 1])


def describe_observed(df: pd.DataFrame) -> Dict[str, Any]:
    """Descriptive summary of the observed series."""
    counts = df[[PREY_COL, PREDATOR_COL]]
    return {
        "describe": counts.describe(),
        "mean": counts.mean().to_dict(),
        "variance": counts.var().to_dict(),
        "lag1_autocorrelation": {c: lag1_autocorrelation(counts[c]) for c in counts.columns},
        "n_times": int(len(df)),
        "time_span": (float(df[TIME_COL].iloc[0]), float(df[TIME_COL].iloc[-1])),
    }


def write_samples(
    samples,
    path: str,
    weights: Optional[Sequence[float]] = None,
    extra: Optional[Dict[str, Sequence]] = None,
) -> Path:
    """Write a (k, 3) parameter table as CSV with columns mu, delta, nu [, weight, ...]."""
    arr = np.asarray(samples, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError("samples must have shape (k, 3)")
    df = pd.DataFrame(arr, columns=PARAM_NAMES)
    if weights is not None:
        df["weight"] = np.asarray(weights, dtype=float)
    for name, values in (extra or {}).items():
        df[name] = np.asarray(values)

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(out, index=False)
    return out


def read_samples(path: str) -> pd.DataFrame:
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Samples CSV not found: {path}")
    df = pd.read_csv(csv_path)
    missing = [c for c in PARAM_NAMES if c not in df.columns]
    if missing:
        raise ValueError(f"Samples CSV {path} is missing columns: {missing}")
    return df
