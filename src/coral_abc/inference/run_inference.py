# src/coral_abc/inference/run_inference.py
"""
Config-driven wrappers around the three samplers, used by the CLI.

Each run_* function loads the observed CSV, resolves whatever the sampler
needs that the user did not give (proposal covariance, tolerance, start
point) from a pilot rejection run or an earlier samples CSV, runs the
sampler, writes the samples CSV and optionally renders diagnostics.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
import logging

import numpy as np
from numpy.random import default_rng

# Import API
from .mcmc import abc_mcmc
from .rejection import rejection_abc
from .smc import abc_smc
from .transforms import estimate_proposal_covariance
from .distance import finite_or_inf
from ..dataset.observed import PARAM_NAMES, describe_observed, load_observed, observed_array, read_samples, write_samples
from ..diagnostics.summaries import burn_in_and_thin, integrated_autocorrelation_time, posterior_summary
from ..diagnostics import plot_posteriors as plots
from ..errors import ConfigurationError
from ..simulate.generate_single_trajectory import DEFAULT_MAX_EVENTS, simulate_trajectory

# Start logger
logger = logging.getLogger(__name__)


@dataclass
class InferenceConfig:
    observed_csv: str = "data/observed.csv"
    out_path: str = "data/samples.csv"
    seed: Optional[int] = None
    n: int = 10_000
    quantile: float = 0.05
    tolerance: Optional[float] = None
    n_generations: int = 5
    scaling_factor: float = 1.0
    ess_fraction: float = 0.5
    theta_init: Optional[Tuple[float, float, float]] = None
    initial_state: Optional[Tuple[int, int]] = None
    n_workers: int = 1
    max_events: int = DEFAULT_MAX_EVENTS
    cov_from: Optional[str] = None
    pilot_draws: int = 2000
    cov_scale: float = 1.0
    burn_in: int = 0
    thin: int = 1
    resampling: str = "multinomial"
    plot_dir: Optional[str] = None
    truth: Optional[Tuple[float, float, float]] = None


@dataclass
class Proposal:
    cov: np.ndarray
    theta_init: np.ndarray
    tolerance: Optional[float]


def resolve_proposal(cfg: InferenceConfig, obs: np.ndarray, rng) -> Proposal:
    """Covariance, start point and tolerance for MCMC / SMC.

    Taken from cfg.cov_from when given, otherwise from a pilot rejection run.
    Explicit cfg.theta_init / cfg.tolerance always win.
    """
    if cfg.cov_from is not None:
        df = read_samples(cfg.cov_from)
        samples = df[PARAM_NAMES].to_numpy(dtype=float)
        pilot_tolerance = None
        logger.info("Proposal covariance from %d samples in %s", len(samples), cfg.cov_from)
    else:
        pilot = rejection_abc(
            obs,
            cfg.pilot_draws,
            initial_state=cfg.initial_state,
            quantile=cfg.quantile,
            rng=rng,
            n_workers=cfg.n_workers,
            max_events=cfg.max_events,
        )
        samples = pilot.samples
        pilot_tolerance = pilot.tolerance
        logger.info("Proposal covariance from a pilot rejection run (%d retained)", len(samples))

    cov = estimate_proposal_covariance(samples, scale=cfg.cov_scale)
    theta_init = np.asarray(cfg.theta_init if cfg.theta_init is not None else samples.mean(axis=0), dtype=float)
    tolerance = cfg.tolerance if cfg.tolerance is not None else pilot_tolerance
    if tolerance is None:
        raise ConfigurationError("A tolerance is required when the covariance comes from --cov-from")
    return Proposal(cov=cov, theta_init=theta_init, tolerance=float(tolerance))


def _plot_safely(fn, *args, **kwargs):
    """Diagnostics are best effort; a failed plot should not lose the samples."""
    try:
        path = fn(*args, **kwargs)
        logger.info("Saved %s", path)
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.warning("%s failed: %s", fn.__name__, e)


def _load(cfg: InferenceConfig) -> np.ndarray:
    df = load_observed(cfg.observed_csv)
    summary = describe_observed(df)
    logger.info("Observed %d times over %s from %s", summary["n_times"], summary["time_span"], cfg.observed_csv)
    logger.debug("Observed series:\n%s", summary["describe"])
    return observed_array(df)


def _log_summary(samples, weights=None):
    logger.info("Posterior summary:\n%s", posterior_summary(samples, weights).to_string(float_format="%.4f"))


def run_rejection(cfg: InferenceConfig):
    obs = _load(cfg)
    rng = default_rng(cfg.seed)

    result = rejection_abc(
        obs,
        cfg.n,
        initial_state=cfg.initial_state,
        quantile=cfg.quantile,
        rng=rng,
        n_workers=cfg.n_workers,
        max_events=cfg.max_events,
    )
    out = write_samples(result.samples, cfg.out_path, extra={"distance": result.distances[result.accepted]})
    logger.info("CSV written to: %s", out)
    _log_summary(result.samples)

    if cfg.plot_dir:
        plot_dir = Path(cfg.plot_dir)
        _plot_safely(plots.plot_densities, result.samples, str(plot_dir / "rejection_densities.png"),
                     truth=cfg.truth, title="Rejection ABC posterior")
        # the closest retained draws against the data
        order = np.argsort(finite_or_inf(result.distances[result.accepted]))[:20]
        init = cfg.initial_state or (int(obs[0, 1]), int(obs[0, 2]))
        sims = [simulate_trajectory(th, init, obs[:, 0], rng=rng, max_events=cfg.max_events)
                for th in result.samples[order]]
        _plot_safely(plots.plot_trajectory_fit, obs, np.stack(sims), str(plot_dir / "rejection_fit.png"))
    return result


def mcmc_chain(samples, burn_in: int = 0, thin: int = 1) -> np.ndarray:
    """Chain left after dropping `burn_in` iterations and keeping every `thin`-th."""
    if burn_in < 0 or thin < 1:
        raise ConfigurationError("burn_in must be >= 0 and thin >= 1")
    chain = burn_in_and_thin(samples, burn_in, thin)
    if len(chain) == 0:
        raise ConfigurationError(f"burn_in={burn_in} leaves no samples out of {len(samples)}")
    return chain


def run_mcmc(cfg: InferenceConfig):
    if cfg.burn_in < 0 or cfg.thin < 1 or cfg.burn_in >= cfg.n:
        raise ConfigurationError("burn_in must be in [0, n) and thin >= 1")

    obs = _load(cfg)
    rng = default_rng(cfg.seed)
    proposal = resolve_proposal(cfg, obs, rng)

    result = abc_mcmc(
        obs,
        cfg.n,
        proposal.theta_init,
        proposal.tolerance,
        proposal.cov,
        initial_state=cfg.initial_state,
        rng=rng,
        max_events=cfg.max_events,
    )
    out = write_samples(result.samples, cfg.out_path, extra={"accepted": result.accepted.astype(int)})
    logger.info("CSV written to: %s", out)
    # the CSV keeps every iteration; burn-in and thinning apply to the summary and plots
    chain = mcmc_chain(result.samples, cfg.burn_in, cfg.thin)
    if len(chain) < len(result.samples):
        logger.info("Burn-in %d, thin %d: %d of %d iterations kept", cfg.burn_in, cfg.thin, len(chain), len(result.samples))
    _log_summary(chain)
    iat = [integrated_autocorrelation_time(chain[:, j]) for j in range(len(PARAM_NAMES))]
    logger.info("Integrated autocorrelation times: %s", dict(zip(PARAM_NAMES, np.round(iat, 2))))

    if cfg.plot_dir:
        plot_dir = Path(cfg.plot_dir)
        _plot_safely(plots.plot_traces, chain, str(plot_dir / "mcmc_traces.png"), truth=cfg.truth)
        _plot_safely(plots.plot_autocorrelation, chain, str(plot_dir / "mcmc_acf.png"))
        _plot_safely(plots.plot_lags, chain, str(plot_dir / "mcmc_lags.png"))
        _plot_safely(plots.plot_densities, chain, str(plot_dir / "mcmc_densities.png"),
                     truth=cfg.truth, title="ABC-MCMC posterior")
    return result


def run_smc(cfg: InferenceConfig):
    obs = _load(cfg)
    rng = default_rng(cfg.seed)
    proposal = resolve_proposal(cfg, obs, rng)

    result = abc_smc(
        obs,
        cfg.n,
        cfg.n_generations,
        proposal.theta_init,
        proposal.cov,
        proposal.tolerance,
        scaling_factor=cfg.scaling_factor,
        quantile=cfg.quantile,
        ess_threshold=cfg.ess_fraction * cfg.n,
        resampling=cfg.resampling,
        initial_state=cfg.initial_state,
        rng=rng,
        n_workers=cfg.n_workers,
        max_events=cfg.max_events,
    )
    out = write_samples(result.particles, cfg.out_path, weights=result.weights)
    logger.info("CSV written to: %s", out)
    _log_summary(result.particles, result.weights)
    logger.info("Tolerance schedule: %s", np.array2string(result.tolerances, precision=4))

    if cfg.plot_dir:
        plot_dir = Path(cfg.plot_dir)
        _plot_safely(plots.plot_densities, result.particles, str(plot_dir / "smc_densities.png"),
                     weights=result.weights, truth=cfg.truth, title="SMC-ABC posterior")
        _plot_safely(plots.plot_tolerance_schedule, result.tolerances, str(plot_dir / "smc_tolerances.png"),
                     ess=result.ess)
    return result
