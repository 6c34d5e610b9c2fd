import csv

import numpy as np
import pytest

from coral_abc.errors import ConfigurationError
from coral_abc.inference.distance import trajectory_distance
from coral_abc.simulate.batch_processing import generate_batch, simulate_distances
from coral_abc.simulate.generate_single_trajectory import simulate_trajectory

TIMES = np.arange(0.0, 11.0, 2.0)


def _observed():
    return simulate_trajectory((0.6, 0.01, 0.4), (34, 16), TIMES, rng=np.random.default_rng(0))


def test_generate_batch_shapes_and_csv(tmp_path):
    """
    Basic integration test for generate_batch:
    - trajectories array has shape (N, n_times, 3)
    - CSV is created with N rows + header
    - parameter columns lie inside theta_range
    """
    N = 5
    out_csv = tmp_path / "simulated_paths.csv"

    trajectories, csv_path = generate_batch(
        N=N,
        initial_state=(34, 16),
        times=TIMES,
        theta_range=((0.2, 0.3), (0.0, 0.05), (0.4, 0.5)),
        out_path=str(out_csv),
        use_tempfile=False,
        seed=123,
    )

    # Array properties
    assert trajectories.shape == (N, len(TIMES), 3)
    assert np.all(trajectories[:, 0, 1] == 34)
    assert np.all(trajectories[:, 0, 2] == 16)

    # CSV existence
    assert csv_path == out_csv
    assert csv_path.exists()

    rows = list(csv.reader(csv_path.open()))
    assert len(rows) == N + 1  # header + N simulations
    header = rows[0]
    assert header[:4] == ["sim_id", "mu", "delta", "nu"]
    assert len(header) == 4 + 2 * len(TIMES)

    for row in csv.DictReader(csv_path.open()):
        assert 0.2 <= float(row["mu"]) <= 0.3
        assert 0.0 <= float(row["delta"]) <= 0.05
        assert 0.4 <= float(row["nu"]) <= 0.5


def test_generate_batch_is_reproducible(tmp_path):
    a, _ = generate_batch(N=3, initial_state=(34, 16), times=TIMES, out_path=str(tmp_path / "a.csv"), seed=9)
    b, _ = generate_batch(N=3, initial_state=(34, 16), times=TIMES, out_path=str(tmp_path / "b.csv"), seed=9)
    assert np.array_equal(a, b, equal_nan=True)


def test_generate_batch_invalid_N():
    with pytest.raises(ConfigurationError):
        generate_batch(N=0, initial_state=(34, 16), times=TIMES)


def test_simulate_distances_order_and_values():
    """
    Row k of the output is the distance of the path simulated for row k.
    Zero rates keep the path at the initial state, so its distance is known exactly.
    """
    obs = _observed()
    thetas = np.array([[0.0, 0.0, 0.0], [0.6, 0.01, 0.4], [0.0, 0.0, 0.0]])
    d = simulate_distances(thetas, obs, (34, 16), TIMES, seed=1)

    flat = np.column_stack([TIMES, np.full(len(TIMES), 34.0), np.full(len(TIMES), 16.0)])
    expected = trajectory_distance(obs, flat)
    assert d.shape == (3,)
    assert d[0] == pytest.approx(expected)
    assert d[2] == pytest.approx(expected)
    assert np.isfinite(d[1])


def test_simulate_distances_independent_of_worker_count():
    obs = _observed()
    thetas = np.random.default_rng(4).uniform(0.0, 1.0, size=(8, 3))
    serial = simulate_distances(thetas, obs, (34, 16), TIMES, seed=77, n_workers=1)
    parallel = simulate_distances(thetas, obs, (34, 16), TIMES, seed=77, n_workers=2)
    assert np.array_equal(serial, parallel, equal_nan=True)


def test_simulate_distances_bad_shape():
    with pytest.raises(ConfigurationError):
        simulate_distances(np.zeros((4, 2)), _observed(), (34, 16), TIMES)
