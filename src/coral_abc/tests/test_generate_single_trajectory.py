import numpy as np
import pytest

from coral_abc.errors import ConfigurationError
from coral_abc.simulate.generate_single_trajectory import (
    simulate_trajectory,
    event_rates,
)

TIMES = np.arange(0.0, 21.0, 2.0)


def test_first_row_is_initial_state():
    """
    The trajectory has one row per observation time, and row 0 is (t0, C0, S0).
    """
    traj = simulate_trajectory((0.6, 0.01, 0.4), (34, 16), TIMES, rng=np.random.default_rng(1))

    assert traj.shape == (len(TIMES), 3)
    assert np.array_equal(traj[:, 0], TIMES)
    assert traj[0, 1] == 34
    assert traj[0, 2] == 16


def test_counts_never_negative():
    """
    Over many random parameter vectors in (0,1)^3 every recorded count is >= 0.
    """
    rng = np.random.default_rng(2024)
    for _ in range(200):
        theta = rng.uniform(0.0, 1.0, size=3)
        traj = simulate_trajectory(theta, (34, 16), TIMES, rng=rng, max_events=20_000)
        counts = traj[:, 1:]
        finite = counts[np.isfinite(counts)]
        assert np.all(finite >= 0)


def test_coral_extinction_is_absorbing():
    """
    Once C hits 0 it stays 0 for the rest of the trajectory.
    """
    rng = np.random.default_rng(7)
    # heavy predation wipes out coral quickly
    for _ in range(50):
        traj = simulate_trajectory((0.1, 0.9, 0.05), (10, 20), TIMES, rng=rng)
        C = traj[:, 1]
        zero = np.nonzero(C == 0)[0]
        if zero.size:
            assert np.all(C[zero[0]:] == 0)


def test_zero_state_is_held():
    """
    With C=S=0 all rates are zero, so the state is held constant.
    """
    traj = simulate_trajectory((0.5, 0.5, 0.5), (0, 0), TIMES, rng=np.random.default_rng(0))
    assert np.all(traj[:, 1:] == 0)


def test_zero_rates_hold_initial_state():
    traj = simulate_trajectory((0.0, 0.0, 0.0), (5, 3), TIMES, rng=np.random.default_rng(0))
    assert np.all(traj[:, 1] == 5)
    assert np.all(traj[:, 2] == 3)


def test_starfish_only_can_only_decline():
    """
    With no coral, starfish can only die; counts are non-increasing.
    """
    traj = simulate_trajectory((0.6, 0.01, 0.4), (0, 50), TIMES, rng=np.random.default_rng(3))
    S = traj[:, 2]
    assert np.all(traj[:, 1] == 0)
    assert np.all(np.diff(S) <= 0)


def test_coral_only_can_only_grow():
    traj = simulate_trajectory((0.3, 0.01, 0.4), (10, 0), TIMES, rng=np.random.default_rng(3))
    C = traj[:, 1]
    assert np.all(traj[:, 2] == 0)
    assert np.all(np.diff(C) >= 0)


def test_same_seed_same_path():
    a = simulate_trajectory((0.6, 0.01, 0.4), (34, 16), TIMES, rng=np.random.default_rng(99))
    b = simulate_trajectory((0.6, 0.01, 0.4), (34, 16), TIMES, rng=np.random.default_rng(99))
    assert np.array_equal(a, b)


def test_event_bound_marks_path_degenerate():
    """
    Hitting max_events leaves the unfilled rows as NaN counts (times are kept).
    """
    traj = simulate_trajectory((0.9, 0.001, 0.01), (200, 50), TIMES, rng=np.random.default_rng(5), max_events=10)
    assert np.array_equal(traj[:, 0], TIMES)
    assert np.isnan(traj[-1, 1]) and np.isnan(traj[-1, 2])


def test_event_rates():
    assert event_rates((0.5, 0.1, 0.2), 10, 4) == pytest.approx((5.0, 4.0, 0.8))
    # predation and death cannot fire without prey / predators
    assert event_rates((0.5, 0.1, 0.2), 0, 4)[:2] == (0.0, 0.0)
    assert event_rates((0.5, 0.1, 0.2), 10, 0)[1:] == (0.0, 0.0)


@pytest.mark.parametrize("times", [[0, 2, 2, 4], [0, 4, 2], [], [[0, 1], [2, 3]]])
def test_bad_times_raise(times):
    with pytest.raises(ConfigurationError):
        simulate_trajectory((0.6, 0.01, 0.4), (34, 16), times, rng=np.random.default_rng(0))


@pytest.mark.parametrize("state", [(-1, 5), (3.5, 2), (1, 2, 3)])
def test_bad_initial_state_raises(state):
    with pytest.raises(ConfigurationError):
        simulate_trajectory((0.6, 0.01, 0.4), state, TIMES, rng=np.random.default_rng(0))


def test_bad_theta_raises():
    with pytest.raises(ConfigurationError):
        simulate_trajectory((0.6, 0.01), (34, 16), TIMES)
    with pytest.raises(ConfigurationError):
        simulate_trajectory((0.6, -0.01, 0.4), (34, 16), TIMES)
