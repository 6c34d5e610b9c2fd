#!/usr/bin/env python3
# src/coral_abc/runner.py - concise runner for simulation and the three ABC samplers

import argparse
import logging
import re
import time
from typing import Optional, Tuple

# Make sure imports are correct for running from source
from .simulate import simulate_observed as sim
from .simulate.batch_processing import generate_batch
from .inference import run_inference as inf


# Parser for triples like 0.6,0.01,0.4
def parse_float_tuple(s: Optional[str], n: int) -> Optional[Tuple[float, ...]]:
    if not s:
        return None
    vals = tuple(float(x) for x in re.split(r"[,\s;]+", s.strip()) if x)
    if len(vals) != n:
        raise argparse.ArgumentTypeError(f"Expected {n} comma separated values, got '{s}'")
    return vals


# Parser for initial state like 34,16
def parse_state(s: Optional[str]) -> Optional[Tuple[int, int]]:
    vals = parse_float_tuple(s, 2)
    if vals is None:
        return None
    return (int(vals[0]), int(vals[1]))


def add_sampler_args(p, default_n, default_out):
    """Options shared by the rejection / mcmc / smc subcommands."""
    p.add_argument("--observed", default="data/observed.csv", metavar="PATH",
                   help="Observed CSV with columns time, coral, cots (default: data/observed.csv)")
    p.add_argument("--out", default=default_out, metavar="PATH",
                   help=f"Output samples CSV (default: {default_out})")
    p.add_argument("-N", "--num", dest="N", type=int, default=default_n, metavar="N",
                   help=f"Draws / iterations / particles (default: {default_n})")
    p.add_argument("--seed", type=int, default=42, metavar="SEED",
                   help="RNG seed for reproducibility (default: 42)")
    p.add_argument("--quantile", type=float, default=0.05, metavar="Q",
                   help="Distance quantile used for tolerances (default: 0.05)")
    p.add_argument("--initial-state", type=str, default=None, metavar="C0,S0",
                   help="Initial coral,COTS counts (default: first observed row)")
    p.add_argument("--workers", type=int, default=1, metavar="W",
                   help="Worker processes for independent simulations (default: 1)")
    p.add_argument("--max-events", type=int, default=100_000, metavar="E",
                   help="Event bound per simulated path (default: 100000)")
    p.add_argument("--plot-dir", default=None, metavar="DIR",
                   help="Write diagnostic plots to this folder")
    p.add_argument("--truth", type=str, default=None, metavar="MU,DELTA,NU",
                   help="True parameters to mark on plots")


def add_proposal_args(p):
    """Options for the samplers that need a proposal covariance."""
    p.add_argument("--tolerance", type=float, default=None, metavar="EPS",
                   help="Tolerance (MCMC) or initial tolerance (SMC); default from the pilot run")
    p.add_argument("--theta-init", type=str, default=None, metavar="MU,DELTA,NU",
                   help="Start point (default: mean of the pilot / covariance samples)")
    p.add_argument("--cov-from", default=None, metavar="PATH",
                   help="Samples CSV used to estimate the proposal covariance")
    p.add_argument("--pilot-draws", type=int, default=2000, metavar="N",
                   help="Rejection draws for the pilot run when --cov-from is not given (default: 2000)")
    p.add_argument("--cov-scale", type=float, default=1.0, metavar="S",
                   help="Multiplier on the estimated covariance (default: 1.0)")


def config_from_args(args) -> inf.InferenceConfig:
    return inf.InferenceConfig(
        observed_csv=args.observed,
        out_path=args.out,
        seed=args.seed,
        n=args.N,
        quantile=args.quantile,
        tolerance=getattr(args, "tolerance", None),
        n_generations=getattr(args, "generations", 5),
        scaling_factor=getattr(args, "scaling_factor", 1.0),
        ess_fraction=getattr(args, "ess_fraction", 0.5),
        theta_init=parse_float_tuple(getattr(args, "theta_init", None), 3),
        initial_state=parse_state(args.initial_state),
        n_workers=args.workers,
        max_events=args.max_events,
        cov_from=getattr(args, "cov_from", None),
        pilot_draws=getattr(args, "pilot_draws", 2000),
        cov_scale=getattr(args, "cov_scale", 1.0),
        burn_in=getattr(args, "burn_in", 0),
        thin=getattr(args, "thin", 1),
        resampling=getattr(args, "resampling", "multinomial"),
        plot_dir=args.plot_dir,
        truth=parse_float_tuple(args.truth, 3),
    )


def main(argv=None):
    p = argparse.ArgumentParser(description="Runner")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Generate a synthetic observed coral / COTS series")
    sim_p.add_argument("--theta", type=str, default="0.6,0.01,0.4", metavar="MU,DELTA,NU",
                       help="Generating parameters (default: 0.6,0.01,0.4)")
    sim_p.add_argument("--initial-state", type=str, default="34,16", metavar="C0,S0",
                       help="Initial coral,COTS counts (default: 34,16)")
    sim_p.add_argument("--t-max", type=float, default=20.0, metavar="T",
                       help="Last observation time (default: 20)")
    sim_p.add_argument("--step", type=float, default=2.0, metavar="DT",
                       help="Spacing of observation times (default: 2)")
    sim_p.add_argument("--seed", type=int, default=42, metavar="SEED",
                       help="RNG seed for reproducibility (default: 42)")
    sim_p.add_argument("--out", default="data/observed.csv", metavar="PATH",
                       help="Output CSV path (default: data/observed.csv)")

    # ---------- batch ----------
    batch_p = sub.add_parser("batch", help="Simulate N paths with uniformly drawn parameters (prior predictive)")
    batch_p.add_argument("-N", "--num", dest="N", type=int, default=100, metavar="N",
                         help="Number of simulations (default: 100)")
    batch_p.add_argument("--mu-range", type=str, default="0,1", metavar="LO,HI",
                         help="Uniform range for mu (default: 0,1)")
    batch_p.add_argument("--delta-range", type=str, default="0,1", metavar="LO,HI",
                         help="Uniform range for delta (default: 0,1)")
    batch_p.add_argument("--nu-range", type=str, default="0,1", metavar="LO,HI",
                         help="Uniform range for nu (default: 0,1)")
    batch_p.add_argument("--initial-state", type=str, default="34,16", metavar="C0,S0",
                         help="Initial coral,COTS counts (default: 34,16)")
    batch_p.add_argument("--t-max", type=float, default=20.0, metavar="T",
                         help="Last observation time (default: 20)")
    batch_p.add_argument("--step", type=float, default=2.0, metavar="DT",
                         help="Spacing of observation times (default: 2)")
    batch_p.add_argument("--seed", type=int, default=42, metavar="SEED",
                         help="RNG seed for reproducibility (default: 42)")
    batch_p.add_argument("--out", default=None, metavar="PATH",
                         help="Output CSV path (default: a temporary file)")

    # ---------- rejection ----------
    rej_p = sub.add_parser("rejection", help="Rejection ABC with a quantile tolerance")
    add_sampler_args(rej_p, default_n=10_000, default_out="data/rejection_samples.csv")

    # ---------- mcmc ----------
    mcmc_p = sub.add_parser("mcmc", help="ABC-MCMC on the logit scale")
    add_sampler_args(mcmc_p, default_n=10_000, default_out="data/mcmc_samples.csv")
    add_proposal_args(mcmc_p)
    mcmc_p.add_argument("--burn-in", type=int, default=0, metavar="B",
                        help="Iterations dropped before the summary and plots (default: 0)")
    mcmc_p.add_argument("--thin", type=int, default=1, metavar="K",
                        help="Keep every K-th iteration after burn-in (default: 1)")

    # ---------- smc ----------
    smc_p = sub.add_parser("smc", help="Adaptive SMC-ABC")
    add_sampler_args(smc_p, default_n=1000, default_out="data/smc_samples.csv")
    add_proposal_args(smc_p)
    smc_p.add_argument("--generations", type=int, default=5, metavar="TAU",
                       help="Number of SMC generations (default: 5)")
    smc_p.add_argument("--scaling-factor", type=float, default=1.0, metavar="F",
                       help="Multiplier on the distance quantile for later tolerances (default: 1.0)")
    smc_p.add_argument("--ess-fraction", type=float, default=0.5, metavar="F",
                       help="Resample when ESS < F * N (default: 0.5)")
    smc_p.add_argument("--resampling", choices=["multinomial", "systematic"], default="multinomial")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    t0 = time.perf_counter()

    if args.cmd == "simulate":
        cfg = sim.SimConfig(
            theta=parse_float_tuple(args.theta, 3),
            initial_state=parse_state(args.initial_state),
            t_max=args.t_max,
            step=args.step,
            seed=args.seed,
            out_path=args.out,
        )
        sim.simulate_observed(cfg)
        print("Simulation done ->", args.out)

    elif args.cmd == "batch":
        _, csv_path = generate_batch(
            N=args.N,
            initial_state=parse_state(args.initial_state),
            times=sim.observation_times(args.t_max, args.step),
            theta_range=(
                parse_float_tuple(args.mu_range, 2),
                parse_float_tuple(args.delta_range, 2),
                parse_float_tuple(args.nu_range, 2),
            ),
            out_path=args.out,
            seed=args.seed,
        )
        print(f"Batch of {args.N} simulations ->", csv_path)

    elif args.cmd == "rejection":
        res = inf.run_rejection(config_from_args(args))
        print(f"Retained {len(res.samples)} of {len(res.distances)} draws (tolerance {res.tolerance:.4g}) ->", args.out)

    elif args.cmd == "mcmc":
        res = inf.run_mcmc(config_from_args(args))
        print(f"Chain of {len(res.samples)} (acceptance rate {res.acceptance_rate:.3f}) ->", args.out)

    elif args.cmd == "smc":
        res = inf.run_smc(config_from_args(args))
        print(f"{len(res.particles)} particles, final tolerance {res.tolerances[-1]:.4g} ->", args.out)

    print(f"Done in {time.perf_counter() - t0:.2f}s")


if __name__ == "__main__":
    main()
