# src/coral_abc/inference/distance.py
"""
Distance between an observed and a simulated trajectory.

Both trajectories are tables of (time, C, S) on the same observation grid.
The distance is the Euclidean norm of their difference, flattened over all
columns. A simulated path that is empty or carries NaN counts (the simulator
gave up on it) has no defined distance; samplers treat that as a reject.
"""
import math

import numpy as np

from ..errors import ConfigurationError

# Sentinel for "no comparable data"
UNDEFINED_DISTANCE = float("nan")


def is_defined(d) -> bool:
    """True when d is a usable (finite) distance."""
    return bool(np.isfinite(d))


def trajectory_distance(observed, simulated) -> float:
    """Euclidean distance between two (time, C, S) tables of equal shape.

    Parameters
    ----------
    observed :
        Observed dataset, array-like or DataFrame with shape (n_times, 3).
    simulated :
        Simulated trajectory on the same grid.

    Returns
    -------
    float
        Non-negative distance, or ``UNDEFINED_DISTANCE`` when the simulated
        trajectory has no comparable data.
    """
    obs = np.asarray(observed, dtype=float)
    sim = np.asarray(simulated, dtype=float)

    if sim.size == 0 or obs.size == 0:
        return UNDEFINED_DISTANCE
    if obs.shape != sim.shape:
        raise ConfigurationError(f"Trajectory shapes differ: observed {obs.shape} vs simulated {sim.shape}")
    if not np.all(np.isfinite(sim)) or not np.all(np.isfinite(obs)):
        return UNDEFINED_DISTANCE

    diff = (obs - sim).ravel()
    return math.sqrt(float(np.dot(diff, diff)))


def finite_or_inf(distances) -> np.ndarray:
    """Replace undefined distances with +inf so they always lose a comparison."""
    d = np.asarray(distances, dtype=float)
    return np.where(np.isfinite(d), d, np.inf)
