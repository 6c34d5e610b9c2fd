# src/coral_abc/inference/mcmc.py
"""
ABC-MCMC: random-walk Metropolis-Hastings on the logit scale.

The likelihood is replaced by an indicator on the distance: a proposal that
survives the prior-ratio gate is simulated and accepted only when its
distance to the observation is within a fixed tolerance. A proposal the
prior alone rejects is never simulated. Every iteration records the current
state, so a rejected step repeats the previous sample exactly.
"""
from __future__ import annotations

import logging
import math
from typing import NamedTuple, Optional

import numpy as np
from numpy.random import Generator, default_rng
from numpy.typing import NDArray

from .distance import is_defined, trajectory_distance
from .rejection import grid_from_observed
from .transforms import clamp_unit, log_prior_logit, logit, perturb, sigmoid, validate_covariance
from ..errors import ConfigurationError
from ..simulate.generate_single_trajectory import DEFAULT_MAX_EVENTS, simulate_trajectory

logger = logging.getLogger(__name__)


class MCMCResult(NamedTuple):
    """Output of abc_mcmc.

    Attributes:
        samples: (M, 3) chain, one row per iteration
        accepted: (M,) bool, True where the proposal replaced the state
        prior_rejected: (M,) bool, True where the prior-ratio gate rejected
            the proposal without simulating it
        distances: (M,) distance of the simulated proposal, NaN where no
            simulation ran or the path was degenerate
        acceptance_rate: accepted.mean()
    """
    samples: NDArray
    accepted: NDArray
    prior_rejected: NDArray
    distances: NDArray
    acceptance_rate: float


def check_theta_init(theta_init) -> NDArray:
    th = np.asarray(theta_init, dtype=float)
    if th.shape != (3,) or not np.all(np.isfinite(th)):
        raise ConfigurationError("theta_init must be three finite values")
    if np.any(th < 0.0) or np.any(th > 1.0):
        raise ConfigurationError("theta_init must lie in [0, 1]^3")
    return clamp_unit(th)


def abc_mcmc(
    observed,
    n_iter: int,
    theta_init,
    tolerance: float,
    proposal_cov,
    initial_state=None,
    times=None,
    rng: Optional[Generator] = None,
    max_events: int = DEFAULT_MAX_EVENTS,
) -> MCMCResult:
    """Run one ABC-MCMC chain of fixed length.

    Args:
        observed: (n_times, 3) observed table of time, C, S
        n_iter: number of iterations M (= number of recorded samples)
        theta_init: starting parameter vector in (0, 1)^3
        tolerance: fixed ABC tolerance epsilon
        proposal_cov: (3, 3) random-walk covariance on the logit scale
        initial_state: (C0, S0); defaults to the first observed row
        times: observation grid; defaults to the observed time column
        rng: numpy Generator driving proposals, gates and simulations
    Returns:
        MCMCResult
    Raises:
        ConfigurationError
    """
    if int(n_iter) != n_iter or n_iter < 1:
        raise ConfigurationError("n_iter must be a positive integer")
    if not np.isfinite(tolerance) or tolerance < 0:
        raise ConfigurationError("tolerance must be finite and >= 0")
    cov = validate_covariance(proposal_cov)
    theta_cur = check_theta_init(theta_init)
    obs, initial_state, times = grid_from_observed(observed, initial_state, times)

    if rng is None:
        rng = default_rng()

    n_iter = int(n_iter)
    samples = np.empty((n_iter, 3), dtype=float)
    accepted = np.zeros(n_iter, dtype=bool)
    prior_rejected = np.zeros(n_iter, dtype=bool)
    distances = np.full(n_iter, np.nan)

    logger.info("ABC-MCMC: %d iterations at tolerance %.6g", n_iter, tolerance)

    phi_cur = logit(theta_cur)
    log_prior_cur = log_prior_logit(phi_cur)
    for k in range(n_iter):
        phi_prop = perturb(phi_cur, cov, rng)
        theta_prop = clamp_unit(sigmoid(phi_prop))
        log_prior_prop = log_prior_logit(phi_prop)

        # Prior gate: reject before paying for a simulation
        u = rng.random()
        if u > math.exp(min(log_prior_prop - log_prior_cur, 0.0)):
            prior_rejected[k] = True
            samples[k] = theta_cur
            continue

        traj = simulate_trajectory(theta_prop, initial_state, times, rng=rng, max_events=max_events)
        d = trajectory_distance(obs, traj)
        distances[k] = d

        if is_defined(d) and d <= tolerance:
            theta_cur = theta_prop
            phi_cur = phi_prop
            log_prior_cur = log_prior_prop
            accepted[k] = True

        samples[k] = theta_cur

    acceptance_rate = float(accepted.mean())
    logger.info(
        "ABC-MCMC finished: acceptance rate %.4f, %d proposals stopped by the prior gate",
        acceptance_rate,
        int(prior_rejected.sum()),
    )
    return MCMCResult(
        samples=samples,
        accepted=accepted,
        prior_rejected=prior_rejected,
        distances=distances,
        acceptance_rate=acceptance_rate,
    )
