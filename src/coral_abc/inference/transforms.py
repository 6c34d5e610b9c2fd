# src/coral_abc/inference/transforms.py
"""
Logit-scale helpers shared by the MCMC and SMC samplers.

The parameters live in the open unit cube. Random-walk proposals are made on
phi = logit(theta), which is unconstrained, and mapped back with the sigmoid.
A Uniform(0, 1) prior on theta becomes a standard logistic density on phi,
which is what log_prior_logit evaluates.
"""
from typing import Optional

import numpy as np
from numpy.random import Generator
from scipy.special import expit, logit as _logit

from ..errors import ConfigurationError

# Distance kept from the boundary of (0, 1) before transforming
THETA_EPS = 1e-10
# Slack when checking symmetry / eigenvalues of a covariance
COV_ATOL = 1e-10


def clamp_unit(theta, eps: float = THETA_EPS) -> np.ndarray:
    return np.clip(np.asarray(theta, dtype=float), eps, 1.0 - eps)


def logit(theta) -> np.ndarray:
    """log(theta / (1 - theta)), with theta clamped away from 0 and 1."""
    return _logit(clamp_unit(theta))


def sigmoid(phi) -> np.ndarray:
    return expit(np.asarray(phi, dtype=float))


def log_prior_logit(phi) -> float:
    """Log density of the uniform prior expressed on the logit scale.

    Each component contributes -phi - 2 log(1 + exp(-phi)) (the Jacobian of
    the inverse logit). np.logaddexp keeps this finite for large |phi|.
    """
    phi = np.asarray(phi, dtype=float)
    return float(np.sum(-phi - 2.0 * np.logaddexp(0.0, -phi)))


def validate_covariance(cov, dim: int = 3) -> np.ndarray:
    """Check a proposal covariance is a finite, symmetric PSD (dim x dim) matrix."""
    cov = np.asarray(cov, dtype=float)
    if cov.shape != (dim, dim):
        raise ConfigurationError(f"Proposal covariance must be {dim}x{dim}, got {cov.shape}")
    if not np.all(np.isfinite(cov)):
        raise ConfigurationError("Proposal covariance contains non-finite entries")
    if not np.allclose(cov, cov.T, atol=COV_ATOL):
        raise ConfigurationError("Proposal covariance must be symmetric")
    eig = np.linalg.eigvalsh(cov)
    if eig.min() < -COV_ATOL * max(1.0, float(np.abs(eig).max())):
        raise ConfigurationError("Proposal covariance must be positive semi-definite")
    return cov


def estimate_proposal_covariance(samples, scale: float = 1.0) -> np.ndarray:
    """Sample covariance of logit(samples), e.g. from a rejection run.

    Args:
        samples: (k, 3) array of accepted parameter vectors
        scale: multiplier applied to the covariance
    Returns:
        (3, 3) covariance matrix on the logit scale
    Raises:
        ConfigurationError
    """
    arr = np.asarray(samples, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ConfigurationError("samples must have shape (k, 3)")
    if arr.shape[0] < 2:
        raise ConfigurationError("At least two samples are needed to estimate a covariance")
    if scale <= 0:
        raise ConfigurationError("scale must be > 0")
    cov = np.cov(logit(arr), rowvar=False) * float(scale)
    return validate_covariance(cov)


def perturb(phi_center, cov, rng: Optional[Generator] = None) -> np.ndarray:
    """Draw phi ~ Normal(phi_center, cov)."""
    if rng is None:
        rng = np.random.default_rng()
    return rng.multivariate_normal(np.asarray(phi_center, dtype=float), cov)
