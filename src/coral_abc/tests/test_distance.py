import math

import numpy as np
import pandas as pd
import pytest

from coral_abc.errors import ConfigurationError
from coral_abc.inference.distance import trajectory_distance, is_defined, finite_or_inf
from coral_abc.simulate.generate_single_trajectory import simulate_trajectory

TIMES = np.arange(0.0, 21.0, 2.0)


def _pair(seed_a=1, seed_b=2):
    a = simulate_trajectory((0.6, 0.01, 0.4), (34, 16), TIMES, rng=np.random.default_rng(seed_a))
    b = simulate_trajectory((0.5, 0.02, 0.3), (34, 16), TIMES, rng=np.random.default_rng(seed_b))
    return a, b


def test_distance_to_self_is_zero():
    a, _ = _pair()
    assert trajectory_distance(a, a) == 0.0


def test_distance_is_symmetric():
    a, b = _pair()
    assert trajectory_distance(a, b) == trajectory_distance(b, a)
    assert trajectory_distance(a, b) > 0


def test_known_value():
    """
    Only the counts differ: (3, 4) in one row gives a 3-4-5 triangle.
    """
    obs = np.array([[0.0, 10, 5], [1.0, 10, 5]])
    sim = np.array([[0.0, 10, 5], [1.0, 13, 9]])
    assert trajectory_distance(obs, sim) == pytest.approx(5.0)


def test_dataframe_input():
    obs = pd.DataFrame({"time": [0.0, 1.0], "coral": [1, 2], "cots": [3, 4]})
    sim = np.array([[0.0, 1, 3], [1.0, 2, 5]])
    assert trajectory_distance(obs, sim) == pytest.approx(1.0)


def test_degenerate_simulation_is_undefined():
    obs = np.array([[0.0, 10, 5], [1.0, 10, 5]])
    sim = np.array([[0.0, 10, 5], [1.0, np.nan, np.nan]])
    d = trajectory_distance(obs, sim)
    assert math.isnan(d)
    assert not is_defined(d)
    assert math.isnan(trajectory_distance(obs, np.empty((0, 3))))


def test_shape_mismatch_raises():
    with pytest.raises(ConfigurationError):
        trajectory_distance(np.zeros((3, 3)), np.zeros((4, 3)))


def test_finite_or_inf():
    out = finite_or_inf([1.0, np.nan, np.inf, 2.0])
    assert out[0] == 1.0 and out[3] == 2.0
    assert np.isposinf(out[1]) and np.isposinf(out[2])
