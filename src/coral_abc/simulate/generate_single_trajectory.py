# ###
# **generate_single_trajectory.py**

# Purpose: this file produces one sample path of the coral (C) / starfish (S)
# jump process, read off at a caller-supplied grid of observation times.

# Events:
# - birth:     C -> C + 1          at rate mu * C
# - predation: C -> C - 1, S + 1   at rate delta * C * S
# - death:     S -> S - 1          at rate nu * S

# Functions:
# - simulate_trajectory()

#   - Input: theta = (mu, delta, nu), initial state (C0, S0), observation times.
#   - Output: array of shape (n_times, 3) with columns time, C, S.

# - event_rates()

#   - Input: theta and a state (C, S).
#   - Output: the three event rates.
# ###

import logging

import numpy as np
from numpy.random import default_rng

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

# Upper bound on events processed in one call
DEFAULT_MAX_EVENTS = 100_000


def event_rates(theta, C, S):
    """Birth, predation and death rates for state (C, S)."""
    mu, delta, nu = theta
    return mu * C, delta * C * S, nu * S


def check_times(times):
    """Return the observation grid as a float array, failing on a bad grid."""
    t = np.asarray(times, dtype=float)
    if t.ndim != 1 or t.size == 0:
        raise ConfigurationError("Observation times must be a non-empty 1D sequence")
    if not np.all(np.isfinite(t)):
        raise ConfigurationError("Observation times must be finite")
    if t.size > 1 and np.any(np.diff(t) <= 0):
        raise ConfigurationError("Observation times must be strictly increasing")
    return t


def check_initial_state(initial_state):
    """Return (C0, S0) as Python ints, failing on negative or fractional counts."""
    state = np.asarray(initial_state)
    if state.shape != (2,):
        raise ConfigurationError("initial_state must be a pair (C0, S0)")
    if not np.all(np.isfinite(state.astype(float))) or np.any(state.astype(float) != np.round(state.astype(float))):
        raise ConfigurationError("initial_state counts must be integers")
    C0, S0 = int(state[0]), int(state[1])
    if C0 < 0 or S0 < 0:
        raise ConfigurationError("initial_state counts must be >= 0")
    return C0, S0


def check_theta(theta):
    th = np.asarray(theta, dtype=float)
    if th.shape != (3,):
        raise ConfigurationError("theta must have exactly three entries (mu, delta, nu)")
    if not np.all(np.isfinite(th)) or np.any(th < 0):
        raise ConfigurationError("theta entries must be finite and >= 0")
    return th


def simulate_trajectory(theta, initial_state, times, rng=None, max_events=DEFAULT_MAX_EVENTS):
    """Simulate a single trajectory with the stochastic simulation algorithm

    Args:
        theta: (mu, delta, nu) birth, predation and death rates
        initial_state: (C0, S0) counts at times[0]
        times: strictly increasing observation times
        rng: numpy Generator; a fresh one is created if None
        max_events: events allowed before the path is declared degenerate
    Returns:
        trajectory (np.ndarray (n_times, 3)): columns time, C, S. Rows that
        could not be filled because max_events was hit hold NaN counts.
    Raises:
        ConfigurationError
    """
    th = check_theta(theta)
    t_obs = check_times(times)
    C, S = check_initial_state(initial_state)
    if max_events < 1:
        raise ConfigurationError("max_events must be >= 1")

    # Select rng from np.random
    if rng is None:
        rng = default_rng()

    mu, delta, nu = float(th[0]), float(th[1]), float(th[2])
    n = t_obs.size

    # Define trajectory array; first row is the initial state
    trajectory = np.empty((n, 3), dtype=float)
    trajectory[:, 0] = t_obs
    trajectory[0, 1] = C
    trajectory[0, 2] = S

    t = t_obs[0]
    i = 1
    n_events = 0
    while i < n:
        t_next = t_obs[i]

        # Coral only: pure birth, NegBin increment over the interval
        if S == 0 and C > 0 and mu > 0.0:
            p_keep = np.exp(-mu * (t_next - t))
            if p_keep <= 0.0:
                logger.debug("Pure-birth growth overflows at t=%.3f (C=%d); path is degenerate", t, C)
                trajectory[i:, 1:] = np.nan
                break
            C += int(rng.negative_binomial(C, p_keep))
            trajectory[i, 1:] = (C, S)
            t = t_next
            i += 1
            continue

        # Starfish only: pure death, binomial survivors
        if C == 0 and S > 0 and nu > 0.0:
            S = int(rng.binomial(S, np.exp(-nu * (t_next - t))))
            trajectory[i, 1:] = (C, S)
            t = t_next
            i += 1
            continue

        r_birth, r_pred, r_death = event_rates((mu, delta, nu), C, S)
        r_total = r_birth + r_pred + r_death

        # Absorbing: hold the state for the rest of the grid
        if r_total <= 0.0:
            trajectory[i:, 1] = C
            trajectory[i:, 2] = S
            break

        dt = rng.exponential(1.0 / r_total)

        # Next event falls beyond the grid point: record and restart the clock there
        if t + dt >= t_next:
            trajectory[i, 1:] = (C, S)
            t = t_next
            i += 1
            continue

        u = rng.random() * r_total
        if u < r_birth:
            C += 1
        elif u < r_birth + r_pred:
            C -= 1
            S += 1
        else:
            S -= 1
        t += dt

        n_events += 1
        if n_events >= max_events:
            logger.debug("Event bound %d hit at t=%.3f (C=%d, S=%d); path is degenerate", max_events, t, C, S)
            trajectory[i:, 1:] = np.nan
            break

    return trajectory
