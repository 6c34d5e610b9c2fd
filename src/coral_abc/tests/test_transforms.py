import numpy as np
import pytest
from scipy.stats import logistic

from coral_abc.errors import ConfigurationError
from coral_abc.inference.transforms import (
    clamp_unit,
    estimate_proposal_covariance,
    log_prior_logit,
    logit,
    perturb,
    sigmoid,
    validate_covariance,
)


def test_sigmoid_logit_round_trip():
    theta = np.linspace(0.001, 0.999, 101)
    assert np.allclose(sigmoid(logit(theta)), theta, atol=1e-12)


def test_boundary_values_are_clamped():
    """
    theta exactly 0 or 1 must not produce infinities.
    """
    phi = logit(np.array([0.0, 1.0]))
    assert np.all(np.isfinite(phi))
    assert phi[0] < 0 < phi[1]
    c = clamp_unit([0.0, 0.5, 1.0])
    assert 0.0 < c[0] and c[2] < 1.0 and c[1] == 0.5


def test_log_prior_matches_standard_logistic():
    """
    A Uniform(0,1) prior on theta is a standard logistic density on phi.
    """
    phi = np.array([-3.0, 0.2, 5.0])
    assert log_prior_logit(phi) == pytest.approx(float(np.sum(logistic.logpdf(phi))))


def test_log_prior_is_finite_far_out():
    assert np.isfinite(log_prior_logit(np.array([800.0, -800.0, 0.0])))


def test_validate_covariance_accepts_psd():
    cov = np.diag([0.1, 0.2, 0.3])
    assert np.array_equal(validate_covariance(cov), cov)
    # singular but PSD is allowed
    validate_covariance(np.zeros((3, 3)))


@pytest.mark.parametrize(
    "cov",
    [
        np.eye(2),
        np.array([[1.0, 0.5, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]),
        np.diag([1.0, -1.0, 1.0]),
        np.full((3, 3), np.nan),
    ],
)
def test_validate_covariance_rejects(cov):
    with pytest.raises(ConfigurationError):
        validate_covariance(cov)


def test_estimate_proposal_covariance():
    rng = np.random.default_rng(11)
    samples = rng.uniform(0.1, 0.9, size=(200, 3))
    cov = estimate_proposal_covariance(samples)
    assert cov.shape == (3, 3)
    assert np.allclose(cov, cov.T)
    assert np.allclose(cov, np.cov(logit(samples), rowvar=False))
    assert np.allclose(estimate_proposal_covariance(samples, scale=2.0), 2.0 * cov)


def test_estimate_proposal_covariance_needs_two_samples():
    with pytest.raises(ConfigurationError):
        estimate_proposal_covariance(np.array([[0.5, 0.5, 0.5]]))


def test_perturb_with_zero_covariance_is_identity():
    phi = np.array([0.1, -2.0, 1.5])
    out = perturb(phi, np.zeros((3, 3)), np.random.default_rng(0))
    assert np.allclose(out, phi)
