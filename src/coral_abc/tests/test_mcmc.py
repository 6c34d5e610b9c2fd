import numpy as np
import pytest

from coral_abc.errors import ConfigurationError
from coral_abc.inference.mcmc import abc_mcmc
from coral_abc.simulate.generate_single_trajectory import simulate_trajectory

TIMES = np.arange(0.0, 21.0, 2.0)
THETA = (0.6, 0.01, 0.4)
COV = np.diag([0.05, 0.5, 0.05])


def _observed(seed=0):
    return simulate_trajectory(THETA, (34, 16), TIMES, rng=np.random.default_rng(seed))


def test_one_sample_per_iteration_and_stickiness():
    """
    Every iteration records a sample; a rejected proposal (prior gate or
    tolerance gate) repeats the previous sample exactly.
    """
    n_iter = 300
    res = abc_mcmc(_observed(), n_iter, THETA, tolerance=150.0, proposal_cov=COV, rng=np.random.default_rng(1))

    assert res.samples.shape == (n_iter, 3)
    assert res.accepted.shape == (n_iter,)
    for k in range(1, n_iter):
        if not res.accepted[k]:
            assert np.array_equal(res.samples[k], res.samples[k - 1])
        else:
            assert not res.prior_rejected[k]
    assert res.acceptance_rate == pytest.approx(res.accepted.mean())


def test_prior_gate_skips_simulation():
    """
    Proposals stopped by the prior ratio are never simulated (distance stays NaN).
    """
    res = abc_mcmc(_observed(), 200, THETA, tolerance=150.0, proposal_cov=np.eye(3) * 4.0,
                   rng=np.random.default_rng(2))
    assert res.prior_rejected.any()
    assert np.all(np.isnan(res.distances[res.prior_rejected]))
    assert not np.any(res.accepted & res.prior_rejected)


def test_zero_tolerance_never_moves():
    """
    With a tolerance no simulation can meet, the chain stays at its start.
    """
    start = np.array([0.5, 0.2, 0.3])
    res = abc_mcmc(_observed(), 50, start, tolerance=0.0, proposal_cov=COV, rng=np.random.default_rng(3))
    assert not res.accepted.any()
    assert np.allclose(res.samples, start)


def test_huge_tolerance_accepts_every_simulated_proposal():
    res = abc_mcmc(_observed(), 100, THETA, tolerance=1e12, proposal_cov=COV, rng=np.random.default_rng(4))
    simulated = ~res.prior_rejected & np.isfinite(res.distances)
    assert np.array_equal(res.accepted, simulated)
    assert np.all((res.samples > 0) & (res.samples < 1))


def test_same_seed_same_chain():
    a = abc_mcmc(_observed(), 60, THETA, 150.0, COV, rng=np.random.default_rng(5))
    b = abc_mcmc(_observed(), 60, THETA, 150.0, COV, rng=np.random.default_rng(5))
    assert np.array_equal(a.samples, b.samples)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"n_iter": 0},
        {"tolerance": -1.0},
        {"proposal_cov": np.diag([1.0, -1.0, 1.0])},
        {"proposal_cov": np.eye(2)},
        {"theta_init": (1.5, 0.1, 0.1)},
    ],
)
def test_invalid_configuration(kwargs):
    args = dict(n_iter=10, theta_init=THETA, tolerance=100.0, proposal_cov=COV)
    args.update(kwargs)
    with pytest.raises(ConfigurationError):
        abc_mcmc(_observed(), **args)
