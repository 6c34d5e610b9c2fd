# src/coral_abc/inference/smc.py
"""
Adaptive SMC-ABC.

A population of M particles is carried through a fixed number of generations.
Each generation perturbs every particle on the logit scale, simulates it, and
weights it with a Gaussian kernel on its distance. The tolerance starts at
the median distance and then follows a capped quantile schedule, so it never
increases. When the effective sample size (ESS) drops below a threshold, the
population is resampled and the weights are reset to uniform.

Perturbation centring: generation 1 perturbs every particle around the shared
theta_init. Later generations perturb each particle around its own current
value.
"""
from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np
from numpy.random import Generator, default_rng
from numpy.typing import NDArray
from scipy.special import logsumexp

from .rejection import grid_from_observed
from .transforms import clamp_unit, logit, perturb, sigmoid, validate_covariance
from .mcmc import check_theta_init
from ..errors import ConfigurationError, NoAcceptancesError
from ..simulate.batch_processing import simulate_distances
from ..simulate.generate_single_trajectory import DEFAULT_MAX_EVENTS

logger = logging.getLogger(__name__)

RESAMPLING_METHODS = ("multinomial", "systematic")


class SMCResult(NamedTuple):
    """Output of abc_smc.

    Attributes:
        particles: (M, 3) final-generation particles (the posterior sample)
        weights: (M,) final normalised weights
        tolerances: (tau,) realised tolerance schedule
        ess: (tau,) ESS of each generation before any resampling
        resampled: (tau,) bool, True where the population was resampled
        history: (tau, M, 3) particles stored at the end of each generation
        distances: (M,) distances of the final generation's proposals
    """
    particles: NDArray
    weights: NDArray
    tolerances: NDArray
    ess: NDArray
    resampled: NDArray
    history: NDArray
    distances: NDArray


def effective_sample_size(weights) -> float:
    """ESS = 1 / sum(w_i^2) for weights normalised to sum to one.

    ESS equals M for uniform weights and 1 when one particle holds all the mass.
    """
    w = np.asarray(weights, dtype=float).ravel()
    total = w.sum()
    if total <= 0:
        raise ValueError("weights must have a positive sum")
    w = w / total
    return float(1.0 / np.sum(w ** 2))


def normalise_log_weights(log_weights) -> NDArray:
    """exp(log_weights) scaled to sum to one; -inf entries get weight zero."""
    logw = np.asarray(log_weights, dtype=float)
    if not np.any(np.isfinite(logw)):
        raise NoAcceptancesError("Every particle has zero weight")
    return np.exp(logw - logsumexp(logw))


def kernel_log_weights(distances, tolerance: float) -> NDArray:
    """Gaussian ABC kernel: log w_i = -d_i^2 / (2 eps^2); undefined d -> -inf.

    A zero tolerance (more than half the particles reproduce the data exactly)
    degenerates to the indicator kernel: weight only on d == 0.
    """
    d = np.asarray(distances, dtype=float)
    eps = float(tolerance)
    if eps <= 0.0:
        return np.where(d == 0.0, 0.0, -np.inf)
    # scale before squaring so a tiny eps cannot underflow to zero
    with np.errstate(over="ignore"):
        logw = -0.5 * (d / eps) ** 2
    return np.where(np.isfinite(d), logw, -np.inf)



def multinomial_resample(weights, rng: Generator) -> NDArray:
    """Indices drawn with replacement in proportion to the weights."""
    w = np.asarray(weights, dtype=float)
    return rng.choice(w.size, size=w.size, replace=True, p=w / w.sum())


def systematic_resample(weights, rng: Generator) -> NDArray:
    """Low-variance resampling: one uniform offset, M evenly spaced pointers."""
    w = np.asarray(weights, dtype=float)
    n = w.size
    positions = (rng.random() + np.arange(n)) / n
    cumulative = np.cumsum(w / w.sum())
    cumulative[-1] = 1.0
    return np.searchsorted(cumulative, positions, side="right").clip(0, n - 1)


def next_tolerance(distances, previous: float, quantile: float, scaling_factor: float) -> float:
    """min(quantile_q(d) * scaling_factor, previous), over defined distances."""
    d = np.asarray(distances, dtype=float)
    d = d[np.isfinite(d)]
    if d.size == 0:
        return previous
    return float(min(np.quantile(d, quantile) * scaling_factor, previous))


def abc_smc(
    observed,
    n_particles: int,
    n_generations: int,
    theta_init,
    proposal_cov,
    initial_tolerance: float,
    scaling_factor: float = 1.0,
    quantile: float = 0.05,
    ess_threshold: Optional[float] = None,
    resampling: str = "multinomial",
    initial_state=None,
    times=None,
    rng: Optional[Generator] = None,
    n_workers: int = 1,
    max_events: int = DEFAULT_MAX_EVENTS,
) -> SMCResult:
    """Adaptive-tolerance SMC-ABC with ESS-triggered resampling.

    Args:
        observed: (n_times, 3) observed table of time, C, S
        n_particles: population size M
        n_generations: number of generations tau
        theta_init: shared centre of the generation-1 perturbation
        proposal_cov: (3, 3) perturbation covariance on the logit scale
        initial_tolerance: upper bound eps_0 on every tolerance
        scaling_factor: multiplier on the distance quantile for t >= 2
        quantile: distance quantile used for t >= 2
        ess_threshold: resample when ESS falls below this (default M / 2)
        resampling: "multinomial" or "systematic"
        initial_state: (C0, S0); defaults to the first observed row
        times: observation grid; defaults to the observed time column
        rng: numpy Generator
        n_workers: processes used for the per-generation simulations
    Returns:
        SMCResult
    Raises:
        ConfigurationError, NoAcceptancesError
    """
    if int(n_particles) != n_particles or n_particles < 1:
        raise ConfigurationError("n_particles must be a positive integer")
    if int(n_generations) != n_generations or n_generations < 1:
        raise ConfigurationError("n_generations must be a positive integer")
    if not np.isfinite(initial_tolerance) or initial_tolerance <= 0:
        raise ConfigurationError("initial_tolerance must be finite and > 0")
    if not np.isfinite(scaling_factor) or scaling_factor <= 0:
        raise ConfigurationError("scaling_factor must be finite and > 0")
    if not 0.0 < quantile <= 1.0:
        raise ConfigurationError("quantile must be in (0, 1]")
    if resampling not in RESAMPLING_METHODS:
        raise ConfigurationError(f"Unknown resampling method: {resampling}")
    cov = validate_covariance(proposal_cov)
    theta0 = check_theta_init(theta_init)
    obs, initial_state, times = grid_from_observed(observed, initial_state, times)

    M = int(n_particles)
    tau = int(n_generations)
    if ess_threshold is None:
        ess_threshold = M / 2.0
    resample = multinomial_resample if resampling == "multinomial" else systematic_resample

    if rng is None:
        rng = default_rng()

    tolerances = np.empty(tau, dtype=float)
    ess_hist = np.empty(tau, dtype=float)
    resampled = np.zeros(tau, dtype=bool)
    history = np.empty((tau, M, 3), dtype=float)

    logger.info("SMC-ABC: %d particles, %d generations, eps0=%.6g", M, tau, initial_tolerance)

    # Generation-1 centres are all theta_init
    particles = np.tile(theta0, (M, 1))
    tolerance = float(initial_tolerance)
    for g in range(tau):
        # 1. Perturb on the logit scale, particle by particle
        phi = logit(particles)
        proposals = np.empty_like(particles)
        for i in range(M):
            proposals[i] = clamp_unit(sigmoid(perturb(phi[i], cov, rng)))

        # 2. Simulate and score
        distances = simulate_distances(
            proposals,
            obs,
            initial_state,
            times,
            seed=rng,
            n_workers=n_workers,
            max_events=max_events,
        )
        if not np.any(np.isfinite(distances)):
            raise NoAcceptancesError(f"All {M} particles were degenerate in generation {g + 1}")

        # 3. Tolerance: median first, then the capped quantile schedule
        if g == 0:
            finite = distances[np.isfinite(distances)]
            tolerance = float(min(np.median(finite), initial_tolerance))
        else:
            tolerance = next_tolerance(distances, tolerance, quantile, scaling_factor)
        tolerances[g] = tolerance

        # 4. Kernel weights
        weights = normalise_log_weights(kernel_log_weights(distances, tolerance))

        # 5. Degeneracy check
        ess = effective_sample_size(weights)
        ess_hist[g] = ess
        particles = proposals
        if ess < ess_threshold:
            idx = resample(weights, rng)
            particles = proposals[idx]
            distances = distances[idx]
            weights = np.full(M, 1.0 / M)
            resampled[g] = True

        # 6. Store this generation
        history[g] = particles
        logger.debug(
            "Generation %d: eps=%.6g ESS=%.1f%s",
            g + 1,
            tolerance,
            ess,
            " (resampled)" if resampled[g] else "",
        )

    logger.info("SMC-ABC finished: final tolerance %.6g, final ESS %.1f", tolerances[-1], ess_hist[-1])
    return SMCResult(
        particles=particles.copy(),
        weights=weights,
        tolerances=tolerances,
        ess=ess_hist,
        resampled=resampled,
        history=history,
        distances=distances,
    )
