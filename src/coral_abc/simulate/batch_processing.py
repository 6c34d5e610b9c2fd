#
# **batch_processing.py**

# Purpose: call `generate_single_trajectory` as many times as needed. Two uses:
# - simulate_distances(): simulate a stack of parameter vectors and return the
#   distance of each path to the observed data (the inner loop of rejection
#   and SMC-ABC). Every row gets its own child random stream so the output does
#   not depend on how many worker processes are used.
# - generate_batch(): draw N parameter vectors from a uniform box, simulate them
#   and write the paths to a .csv or a Python `tempfile`.
#

import csv
import logging
import multiprocessing as mp
import tempfile
from functools import partial
from pathlib import Path

import numpy as np
from numpy.random import SeedSequence, default_rng

# Import APIs from other files in folder
from .generate_single_trajectory import DEFAULT_MAX_EVENTS, check_times, check_initial_state, simulate_trajectory
from ..errors import ConfigurationError
from ..inference.distance import trajectory_distance

logger = logging.getLogger(__name__)


def _distance_worker(job, observed, initial_state, times, max_events):
    """Simulate one parameter vector with its own stream and score it."""
    theta, seed_seq = job
    rng = default_rng(seed_seq)
    traj = simulate_trajectory(theta, initial_state, times, rng=rng, max_events=max_events)
    return trajectory_distance(observed, traj)


def child_seeds(seed, n):
    """Spawn n independent SeedSequences from an int, SeedSequence or Generator."""
    if isinstance(seed, np.random.Generator):
        seed = int(seed.integers(0, 2**63 - 1))
    if not isinstance(seed, SeedSequence):
        seed = SeedSequence(seed)
    return seed.spawn(n)


def simulate_distances(
    thetas,
    observed,
    initial_state,
    times,
    seed=None,
    n_workers=1,
    max_events=DEFAULT_MAX_EVENTS,
):
    """Distance to `observed` for every row of `thetas`

    Args:
        thetas: (N, 3) parameter vectors
        observed: (n_times, 3) observed table
        initial_state: (C0, S0)
        times: observation grid
        seed: int, SeedSequence or Generator used to derive per-row streams
        n_workers: processes to spread the rows over (1 = in-process loop)
    Returns:
        distances (np.ndarray (N,)): NaN where the simulation was degenerate
    """
    thetas = np.asarray(thetas, dtype=float)
    if thetas.ndim != 2 or thetas.shape[1] != 3:
        raise ConfigurationError("thetas must have shape (N, 3)")
    if n_workers < 1:
        raise ConfigurationError("n_workers must be >= 1")

    times = check_times(times)
    initial_state = check_initial_state(initial_state)
    observed = np.asarray(observed, dtype=float)

    jobs = list(zip(thetas, child_seeds(seed, thetas.shape[0])))
    worker = partial(
        _distance_worker,
        observed=observed,
        initial_state=initial_state,
        times=times,
        max_events=max_events,
    )

    if n_workers == 1 or len(jobs) < 2:
        distances = [worker(job) for job in jobs]
    else:
        logger.debug("Simulating %d parameter vectors on %d processes", len(jobs), n_workers)
        # pool.map keeps input order
        with mp.Pool(processes=n_workers) as pool:
            distances = pool.map(worker, jobs)

    return np.asarray(distances, dtype=float)


def default_csv_path(use_tempfile=True):
    """Define the filepath of csv
    """
    if use_tempfile:
        tf = tempfile.NamedTemporaryFile(prefix="simulated_paths_", suffix=".csv")
        p = Path(tf.name)
        tf.close()
        return p
    else:
        return Path("simulated_paths.csv")


def generate_batch(
    N,
    initial_state,
    times,
    theta_range=((0.0, 1.0), (0.0, 1.0), (0.0, 1.0)),
    out_path=None,
    use_tempfile=True,
    seed=None,
    max_events=DEFAULT_MAX_EVENTS,
):
    """Simulate N trajectories with parameters drawn uniformly from theta_range

    Returns:
        trajectories (np.ndarray (N, n_times, 3)), csv_path (Path)
    """
    if N < 1:
        raise ConfigurationError("N must be >= 1")
    bounds = np.asarray(theta_range, dtype=float)
    if bounds.shape != (3, 2) or np.any(bounds[:, 0] > bounds[:, 1]):
        raise ConfigurationError("theta_range must be three (low, high) pairs with low <= high")

    times = check_times(times)
    rng = default_rng(seed)

    # Do file pathing
    if out_path is None:
        csv_path = default_csv_path(use_tempfile=use_tempfile)
    else:
        csv_path = Path(out_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    # Setup csv headers
    header = (
        ["sim_id", "mu", "delta", "nu"]
        + [f"C_{k}" for k in range(len(times))]
        + [f"S_{k}" for k in range(len(times))]
    )
    trajectories = np.zeros((N, len(times), 3), dtype=float)

    with csv_path.open("w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(header)

        for sim_id in range(1, N + 1):
            theta = rng.uniform(bounds[:, 0], bounds[:, 1])
            traj = simulate_trajectory(theta, initial_state, times, rng=rng, max_events=max_events)
            trajectories[sim_id - 1] = traj

            row = [sim_id, *theta.tolist(), *traj[:, 1].tolist(), *traj[:, 2].tolist()]
            writer.writerow(row)

    logger.info("Wrote %d simulated paths to %s", N, csv_path)
    return trajectories, csv_path
