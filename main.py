#!/usr/bin/env python3
# fieldroute-dispatch/main.py
"""
Command-Line Interface for the field-service dispatch simulation.

Runs the optimizer and the live position simulation over a dataset without
the dashboard, and prints each technician's schedule.

Usage:
    python main.py                          # Optimize, then run 60 ticks
    python main.py --dataset nyc --ticks 300
    python main.py --no-optimize --ticks 30 # Just move technicians
    python main.py --off T002               # Take a technician off duty first
    python main.py --verbose                # Show log output

Exit Codes:
    0: Success
    1: Data loading error
    2: Simulation error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import random
import sys
from typing import Dict, List, Optional

# Ensure the fieldroute package is importable when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fieldroute import config, utils
from fieldroute.routing import RouteResult, RouteSequencingError
from fieldroute.simulation import PositionSimulator, Simulation
from fieldroute.stores import InMemoryJobStore, InMemoryTechnicianStore, snapshot_records


# Available datasets
DATASETS: Dict[str, Dict[str, str]] = {
    "nyc": {
        "jobs": "data/nyc_jobs.csv",
        "technicians": "data/nyc_technicians.csv",
        "description": "3 technicians, 8 jobs across Manhattan, Brooklyn and Jersey City",
    },
}


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  FIELD-SERVICE DISPATCH - Route Optimizer & Live GPS")
    print("=" * 60 + "\n")


def print_schedules(sim: Simulation) -> None:
    """
    Print a table of every technician's sequenced route.

    Args:
        sim: Simulation whose local view is printed
    """
    schedules: Dict[str, RouteResult] = sim.technician_schedules()

    print("\n" + "=" * 60)
    print("  TECHNICIAN SCHEDULES")
    print("=" * 60 + "\n")

    header = f"| {'Tech':<6} | {'Level':<10} | {'Duty':<4} | {'Stops':<24} | {'Day':>7} |"
    print(header)
    print("|" + "-" * (len(header) - 2) + "|")

    for tech in sim.technicians:
        route = schedules[tech.tech_id]
        stops = " > ".join(route.job_ids) or "-"
        if len(stops) > 24:
            stops = stops[:21] + "..."
        duty = "on" if tech.is_available else "off"
        print(
            f"| {tech.tech_id:<6} | {tech.skill_level.value:<10} | {duty:<4} | "
            f"{stops:<24} | {utils.format_hours(route.total_hours):>7} |"
        )

    print()


def print_summary(sim: Simulation) -> None:
    """Print job counts by status and any writes still waiting on the store."""
    results = sim.get_results()
    print("=" * 60)
    print(f"  Ticks run:        {results['ticks']}")
    print(f"  Arrivals:         {results['arrivals']}")
    print(f"  Unassigned jobs:  {results['unassigned']}")
    for status, count in results["by_status"].items():
        print(f"  {status + ':':<18}{count}")
    if results["pending_writes"]:
        print(f"  Pending writes:   {results['pending_writes']}")
    print("=" * 60 + "\n")


def load_simulation_safe(dataset_name: str, seed: Optional[int]) -> Optional[Simulation]:
    """
    Load data and build a simulation with graceful error handling.

    Args:
        dataset_name: Key from DATASETS dictionary
        seed: Random seed for GPS jitter (None = nondeterministic)

    Returns:
        A ready Simulation, or None on error
    """
    if dataset_name not in DATASETS:
        print(f"ERROR: Unknown dataset '{dataset_name}'")
        print(f"Available datasets: {', '.join(DATASETS.keys())}")
        return None

    dataset = DATASETS[dataset_name]
    try:
        technicians, jobs = Simulation.load_data(dataset["jobs"], dataset["technicians"])
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        print("Please ensure the data/ directory contains the required CSV files.")
        return None
    except ValueError as e:
        print(f"ERROR: Failed to load data: {e}")
        return None

    print(f"Loaded {len(jobs)} jobs and {len(technicians)} technicians from '{dataset_name}' dataset")

    rng = random.Random(seed)
    return Simulation(
        InMemoryJobStore(jobs, rng=rng),
        InMemoryTechnicianStore(technicians),
        simulator=PositionSimulator(rng=rng),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Field-service dispatch simulation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # Default: nyc, optimize, 60 ticks
  python main.py --ticks 600 --seed 7     # Longer, reproducible run
  python main.py --off T001 --off T003    # Dispatch with a short-handed crew
  python main.py --list-datasets          # Show available datasets
        """
    )

    parser.add_argument(
        "--dataset", "-d",
        type=str,
        default="nyc",
        help=f"Dataset to use (default: nyc). Options: {', '.join(DATASETS.keys())}"
    )

    parser.add_argument(
        "--ticks", "-t",
        type=int,
        default=60,
        help="Position ticks to simulate after optimizing (default: 60)"
    )

    parser.add_argument(
        "--no-optimize",
        action="store_true",
        help="Skip the optimizer run"
    )

    parser.add_argument(
        "--off",
        action="append",
        default=[],
        metavar="TECH_ID",
        help="Take a technician off duty before dispatching (repeatable)"
    )

    parser.add_argument(
        "--deadline",
        type=float,
        default=config.OPTIMIZE_DEADLINE_SECONDS,
        help="Optimizer time budget in seconds (default: none)"
    )

    parser.add_argument(
        "--realtime",
        action="store_true",
        help=f"Sleep {config.TICK_INTERVAL_SECONDS}s between ticks like the live board"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for GPS jitter"
    )

    parser.add_argument(
        "--dump",
        type=str,
        default=None,
        metavar="PATH",
        help="Write the final job records to a JSON file"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed log output"
    )

    parser.add_argument(
        "--list-datasets",
        action="store_true",
        help="List available datasets and exit"
    )

    args = parser.parse_args(argv)

    # List datasets mode
    if args.list_datasets:
        print("\nAvailable Datasets:")
        print("-" * 50)
        for name, info in DATASETS.items():
            exists = "OK" if (os.path.exists(info["jobs"]) and os.path.exists(info["technicians"])) else "MISSING"
            print(f"  {name:15} [{exists}] - {info['description']}")
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print_header()

    sim = load_simulation_safe(args.dataset, args.seed)
    if sim is None:
        return 1

    for tech_id in args.off:
        try:
            sim.set_availability(tech_id, False)
            print(f"Technician {tech_id} taken off duty")
        except KeyError:
            print(f"ERROR: Unknown technician '{tech_id}'")
            return 1

    if not args.no_optimize:
        try:
            result = sim.optimize(deadline=args.deadline)
        except RouteSequencingError as e:
            print(f"ERROR: Optimization failed: {e}")
            return 2

        print(f"\nOptimizer assigned {result.assigned_count} job(s) in {result.elapsed_seconds:.3f}s")
        for assignment in result.assignments:
            print(f"  {assignment.job_id} -> {assignment.tech_id}")
        if result.unassigned:
            print(f"  Still unassigned: {', '.join(result.unassigned)}")
        if result.cancelled:
            print("  (stopped early: deadline reached)")

    print_schedules(sim)

    if args.ticks > 0:
        print(f"Simulating {args.ticks} ticks...")
        interval = config.TICK_INTERVAL_SECONDS if args.realtime else None
        sim.run(args.ticks, interval=interval)
        for tick, job_id, tech_id in sim.arrivals_log:
            print(f"  [tick {tick:>4}] {tech_id} arrived at {job_id}")

    print_summary(sim)

    if args.dump:
        with open(args.dump, "w") as f:
            json.dump(snapshot_records(sim.jobs), f, indent=2)
        print(f"Job records written to {args.dump}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
