# src/coral_abc/simulate/simulate_observed.py
"""
Generate a synthetic observed dataset: one simulated coral / starfish path at
known parameters, written as an observed CSV that the samplers can read back.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import pathlib

import numpy as np
from numpy.random import default_rng

# Import API
from .generate_single_trajectory import DEFAULT_MAX_EVENTS, simulate_trajectory
from ..dataset.observed import trajectory_frame
from ..errors import ConfigurationError

# Start logger
logger = logging.getLogger(__name__)

# Reference scenario
DEFAULT_THETA = (0.6, 0.01, 0.4)
DEFAULT_INITIAL_STATE = (34, 16)


@dataclass
class SimConfig:
    theta: Tuple[float, float, float] = DEFAULT_THETA
    initial_state: Tuple[int, int] = DEFAULT_INITIAL_STATE
    t_max: float = 20.0
    step: float = 2.0
    seed: Optional[int] = None
    out_path: str = "data/observed.csv"
    max_events: int = DEFAULT_MAX_EVENTS


def observation_times(t_max: float = 20.0, step: float = 2.0) -> np.ndarray:
    """Grid 0, step, 2*step, ..., t_max."""
    if step <= 0 or t_max <= 0:
        raise ConfigurationError("t_max and step must be > 0")
    n = int(np.floor(t_max / step + 1e-9))
    return step * np.arange(n + 1, dtype=float)


def simulate_observed(cfg: SimConfig):
    """Simulate one path at cfg.theta and write it to cfg.out_path.

    Returns the DataFrame and the csv path.
    """
    out_path = pathlib.Path(cfg.out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    times = observation_times(cfg.t_max, cfg.step)
    rng = default_rng(cfg.seed)
    traj = simulate_trajectory(cfg.theta, cfg.initial_state, times, rng=rng, max_events=cfg.max_events)
    if not np.all(np.isfinite(traj)):
        raise RuntimeError("Observed path hit the event bound; raise max_events or shorten t_max")

    df = trajectory_frame(traj)
    df[["coral", "cots"]] = df[["coral", "cots"]].astype(int)
    df.to_csv(out_path, index=False)

    logger.info("Simulated observed series at theta=%s (%d times)", tuple(cfg.theta), len(times))
    logger.info("CSV written to: %s", out_path)
    return df, out_path


def main(argv=None):
    """Use this part to check file"""
    import argparse

    parser = argparse.ArgumentParser(description="Write a synthetic observed coral / COTS series.")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--out", type=str, default="data/observed.csv", help="Output CSV path")
    args = parser.parse_args(argv)

    cfg = SimConfig(seed=args.seed, out_path=args.out)
    simulate_observed(cfg)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
