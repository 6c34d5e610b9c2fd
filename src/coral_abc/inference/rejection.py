# src/coral_abc/inference/rejection.py
"""
Rejection ABC.

Draw parameter vectors from the Uniform(0, 1)^3 prior, simulate each one,
and keep the draws whose distance to the observation is below the empirical
`quantile` of all distances. The tolerance is therefore chosen from the data
rather than fixed in advance. The draws are independent, so the simulations
can be spread over several processes.
"""
from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np
from numpy.random import Generator, default_rng
from numpy.typing import NDArray

from ..errors import ConfigurationError, NoAcceptancesError
from ..simulate.batch_processing import simulate_distances
from ..simulate.generate_single_trajectory import DEFAULT_MAX_EVENTS

logger = logging.getLogger(__name__)

N_PARAMS = 3


class RejectionResult(NamedTuple):
    """Output of rejection_abc.

    Attributes:
        samples: (k, 3) retained parameter vectors, the approximate posterior
        distances: (M,) distance of every draw (NaN for degenerate paths)
        params: (M, 3) every prior draw, in draw order
        accepted: (M,) bool, True for retained draws
        tolerance: the quantile cutoff that was applied
    """
    samples: NDArray
    distances: NDArray
    params: NDArray
    accepted: NDArray
    tolerance: float


def grid_from_observed(observed, initial_state=None, times=None):
    """Fill in the simulator's initial state and time grid from the observed table."""
    obs = np.asarray(observed, dtype=float)
    if obs.ndim != 2 or obs.shape[1] != 3 or obs.shape[0] == 0:
        raise ConfigurationError("observed must be a non-empty (n_times, 3) table of time, C, S")
    if times is None:
        times = obs[:, 0]
    if initial_state is None:
        initial_state = (int(obs[0, 1]), int(obs[0, 2]))
    return obs, initial_state, times


def quantile_tolerance(distances, quantile: float) -> float:
    """Empirical quantile of the distances with undefined entries ranked last.

    Undefined distances count towards M but must not set the cutoff: when the
    quantile falls on or next to one of them (too few defined distances),
    NoAcceptancesError is raised instead of returning a meaningless tolerance.
    At quantile=1 the cutoff is the largest distance, which the strict
    `d < eps` rule then excludes.
    """
    d = np.asarray(distances, dtype=float)
    n_defined = int(np.isfinite(d).sum())
    # np.quantile interpolates between sorted positions floor(h) and ceil(h)
    upper = int(np.ceil((d.size - 1) * quantile))
    if upper >= n_defined:
        raise NoAcceptancesError(
            f"Only {n_defined} of {d.size} distances are defined; too few for the {quantile:.3g} quantile"
        )
    big = np.finfo(float).max
    return float(np.quantile(np.where(np.isfinite(d), d, big), quantile))


def rejection_abc(
    observed,
    n_draws: int,
    initial_state=None,
    times=None,
    quantile: float = 0.05,
    rng: Optional[Generator] = None,
    n_workers: int = 1,
    max_events: int = DEFAULT_MAX_EVENTS,
) -> RejectionResult:
    """Vanilla rejection ABC with an adaptive (quantile) tolerance.

    Args:
        observed: (n_times, 3) observed table of time, C, S
        n_draws: number of prior draws M
        initial_state: (C0, S0); defaults to the first observed row
        times: observation grid; defaults to the observed time column
        quantile: fraction of draws to keep, e.g. 0.05
        rng: numpy Generator for the prior draws and the simulation streams
        n_workers: processes used for simulation
        max_events: per-simulation event bound
    Returns:
        RejectionResult
    Raises:
        ConfigurationError
        NoAcceptancesError: nothing retained, or too many degenerate draws
            for the quantile to land on a defined distance
    """
    if int(n_draws) != n_draws or n_draws < 1:
        raise ConfigurationError("n_draws must be a positive integer")
    if not 0.0 < quantile <= 1.0:
        raise ConfigurationError("quantile must be in (0, 1]")
    obs, initial_state, times = grid_from_observed(observed, initial_state, times)

    if rng is None:
        rng = default_rng()

    n_draws = int(n_draws)
    logger.info("Rejection ABC: %d prior draws, keeping the %.3g quantile", n_draws, quantile)

    params = rng.uniform(0.0, 1.0, size=(n_draws, N_PARAMS))
    distances = simulate_distances(
        params,
        obs,
        initial_state,
        times,
        seed=rng,
        n_workers=n_workers,
        max_events=max_events,
    )

    tolerance = quantile_tolerance(distances, quantile)
    accepted = np.isfinite(distances) & (distances < tolerance)
    n_accepted = int(accepted.sum())

    n_degenerate = int((~np.isfinite(distances)).sum())
    if n_degenerate:
        logger.debug("%d of %d simulations were degenerate", n_degenerate, n_draws)

    if n_accepted == 0:
        raise NoAcceptancesError(
            f"No draw had a distance below the tolerance {tolerance:.6g} ({n_draws} draws)"
        )

    logger.info("Rejection ABC retained %d of %d draws (tolerance %.6g)", n_accepted, n_draws, tolerance)
    return RejectionResult(
        samples=params[accepted].copy(),
        distances=distances,
        params=params,
        accepted=accepted,
        tolerance=tolerance,
    )
