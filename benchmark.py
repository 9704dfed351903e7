# fieldroute-dispatch/benchmark.py
"""
Benchmark script for the field-service dispatch optimizer.

Builds synthetic fleets of increasing size inside the map bounds, runs the
greedy optimizer against a nearest-technician baseline and writes CSV files
for analysis.

Usage:
    python benchmark.py
    python benchmark.py --seed 7 --ticks 400
"""

import argparse
import copy
import csv
import json
import os
import random
import shutil
import statistics
import time
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from fieldroute import routing, utils
from fieldroute.dispatch import DispatchEngine
from fieldroute.models import Job, JobStatus, SkillLevel, Technician, is_qualified
from fieldroute.simulation import PositionSimulator, Simulation
from fieldroute.stores import InMemoryJobStore, InMemoryTechnicianStore

# Synthetic scenarios: (jobs, technicians)
SCENARIOS = [
    {"name": "Small_10x3", "jobs": 10, "technicians": 3},
    {"name": "Medium_40x8", "jobs": 40, "technicians": 8},
    {"name": "Large_120x20", "jobs": 120, "technicians": 20},
    {"name": "Crowded_200x10", "jobs": 200, "technicians": 10},
]

STRATEGIES = ["nearest", "optimized"]

CSV_KPIS = [
    "jobs_assigned",
    "jobs_unassigned",
    "technicians_used",
    "avg_day_hours",
    "max_day_hours",
    "std_day_hours",
    "total_breaks",
    "total_travel_hours",
    "arrivals",
    "elapsed_seconds",
]

LOWER_IS_BETTER = [
    "jobs_unassigned",
    "avg_day_hours",
    "max_day_hours",
    "std_day_hours",
    "total_breaks",
    "total_travel_hours",
    "elapsed_seconds",
]


def build_fleet(job_count: int, tech_count: int, rng: random.Random):
    """Random technicians and pending jobs inside the map bounds."""
    levels = list(SkillLevel)
    technicians = [
        Technician(
            tech_id=f"T{i:03d}",
            location=utils.random_point_in_bounds(rng),
            skill_level=rng.choice(levels),
        )
        for i in range(1, tech_count + 1)
    ]
    jobs = [
        Job(
            job_id=f"J{i:04d}",
            location=utils.random_point_in_bounds(rng),
            required_skill_level=rng.choice(levels + [None]),
            estimated_duration_hours=rng.choice([0.5, 1.0, 1.5, 2.0, 3.0, None]),
        )
        for i in range(1, job_count + 1)
    ]
    return technicians, jobs


def assign_nearest(jobs: List[Job], technicians: List[Technician]) -> List[Job]:
    """Baseline: every job goes to the closest qualified technician, ignoring workload."""
    assigned = []
    for job in jobs:
        if not job.is_unassigned:
            assigned.append(job)
            continue
        candidates = [t for t in technicians if t.is_available and is_qualified(t, job)]
        if not candidates:
            assigned.append(job)
            continue
        nearest = min(candidates, key=lambda t: utils.distance_miles(t.location, job.location))
        assigned.append(replace(job, tech_id=nearest.tech_id, status=JobStatus.EN_ROUTE))
    return assigned


def measure(jobs: List[Job], technicians: List[Technician], ticks: int, seed: int) -> Dict[str, float]:
    """Schedule KPIs for an assignment, plus arrivals over a short live run."""
    days = []
    breaks = 0
    travel = 0.0
    for tech in technicians:
        route = routing.sequence_route(tech.location, routing.active_route(jobs, tech.tech_id))
        if route.order:
            days.append(route.total_hours)
            breaks += route.break_count
            travel += sum(leg.travel_hours for leg in route.legs)

    sim = Simulation(
        InMemoryJobStore(jobs),
        InMemoryTechnicianStore(technicians),
        simulator=PositionSimulator(rng=random.Random(seed)),
        persist_locations=False,
    )
    sim.run(ticks)

    return {
        "jobs_assigned": sum(1 for j in jobs if j.tech_id is not None),
        "jobs_unassigned": sum(1 for j in jobs if j.is_unassigned),
        "technicians_used": len(days),
        "avg_day_hours": round(statistics.mean(days), 3) if days else 0.0,
        "max_day_hours": round(max(days), 3) if days else 0.0,
        "std_day_hours": round(statistics.pstdev(days), 3) if days else 0.0,
        "total_breaks": breaks,
        "total_travel_hours": round(travel, 3),
        "arrivals": len(sim.arrivals_log),
    }


def run_scenario(scenario: dict, seed: int, ticks: int) -> Optional[dict]:
    """Run every strategy on one synthetic scenario and return results."""
    print(f"\n{'='*60}")
    print(f"SCENARIO: {scenario['name']}")
    print(f"Jobs: {scenario['jobs']}  Technicians: {scenario['technicians']}")
    print(f"{'='*60}")

    rng = random.Random(seed)
    technicians, jobs = build_fleet(scenario["jobs"], scenario["technicians"], rng)

    scenario_results = {
        "scenario": scenario["name"],
        "total_jobs": len(jobs),
        "total_technicians": len(technicians),
        "job_tech_ratio": round(len(jobs) / len(technicians), 2),
        "strategies": {},
    }

    for strategy in STRATEGIES:
        print(f"\n  Running {strategy.upper()}...")
        started = time.monotonic()
        if strategy == "nearest":
            assigned = assign_nearest(copy.deepcopy(jobs), technicians)
        else:
            assigned = DispatchEngine().optimize(copy.deepcopy(jobs), technicians).jobs
        elapsed = time.monotonic() - started

        results = measure(assigned, technicians, ticks, seed)
        results["elapsed_seconds"] = round(elapsed, 4)
        scenario_results["strategies"][strategy] = results

        print(
            f"    ✓ {strategy}: {results['jobs_assigned']} assigned, "
            f"max day {results['max_day_hours']:.2f}h, {results['elapsed_seconds']:.3f}s"
        )

    return scenario_results


def calculate_comparison_stats(results: dict, baseline_key: str = "nearest") -> dict:
    """Difference and improvement flag vs the baseline for each strategy."""
    baseline = results["strategies"][baseline_key]

    for strategy, data in results["strategies"].items():
        comparison = {}
        is_improvement = {}
        for kpi in CSV_KPIS:
            diff = data.get(kpi, 0) - baseline.get(kpi, 0)
            comparison[kpi] = round(diff, 4)
            if strategy == baseline_key:
                is_improvement[kpi] = False
            elif kpi in LOWER_IS_BETTER:
                is_improvement[kpi] = diff < 0
            else:
                is_improvement[kpi] = diff > 0
        data["vs_baseline"] = comparison
        data["is_improvement"] = is_improvement

    return results


def save_scenario_csv(results: dict, output_dir: str, timestamp: str) -> str:
    """Save a KPI-per-row CSV for a single scenario."""
    filename = f"{output_dir}/{results['scenario']}_{timestamp}.csv"
    strategies = list(results["strategies"].keys())

    with open(filename, 'w', newline='') as f:
        writer = csv.writer(f)
        header = ["KPI", "Lower_Is_Better"]
        for strat in strategies:
            header.append(strat)
            if strat != "nearest":
                header.append(f"{strat}_vs_nearest")
                header.append(f"{strat}_is_improvement")
        writer.writerow(header)

        for kpi in CSV_KPIS:
            row = [kpi, "yes" if kpi in LOWER_IS_BETTER else "no"]
            for strat in strategies:
                data = results["strategies"][strat]
                row.append(data.get(kpi, ""))
                if strat != "nearest":
                    row.append(data["vs_baseline"].get(kpi, ""))
                    row.append("yes" if data["is_improvement"].get(kpi) else "no")
            writer.writerow(row)

    print(f"  ✓ Saved: {filename}")
    return filename


def save_summary_csv(all_results: list, output_dir: str, timestamp: str) -> str:
    """One row per scenario and strategy."""
    filename = f"{output_dir}/SUMMARY_{timestamp}.csv"
    with open(filename, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(["scenario", "jobs", "technicians", "strategy"] + CSV_KPIS)
        for result in all_results:
            for strat, data in result["strategies"].items():
                writer.writerow(
                    [result["scenario"], result["total_jobs"], result["total_technicians"], strat]
                    + [data.get(kpi, "") for kpi in CSV_KPIS]
                )
    print(f"✓ Saved summary: {filename}")
    return filename


def main():
    """Run the benchmark suite."""
    parser = argparse.ArgumentParser(description="Dispatch optimizer benchmark")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--ticks", type=int, default=200, help="Live ticks per strategy (default: 200)")
    parser.add_argument("--output", type=str, default="results", help="Output directory (default: results)")
    args = parser.parse_args()

    print("=" * 60)
    print("FIELD-SERVICE DISPATCH BENCHMARK SUITE")
    print("=" * 60)

    os.makedirs(args.output, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    all_results = []
    for scenario in SCENARIOS:
        result = run_scenario(scenario, args.seed, args.ticks)
        if result:
            result = calculate_comparison_stats(result)
            all_results.append(result)
            save_scenario_csv(result, args.output, timestamp)

    print(f"\n{'='*60}")
    print("GENERATING SUMMARY FILES")
    print("=" * 60)

    summary = save_summary_csv(all_results, args.output, timestamp)

    json_file = f"{args.output}/benchmark_{timestamp}.json"
    with open(json_file, 'w') as f:
        json.dump(all_results, f, indent=2, default=str)
    print(f"✓ Saved JSON: {json_file}")

    shutil.copy(summary, f"{args.output}/LATEST_SUMMARY.csv")
    print("✓ Updated LATEST_SUMMARY.csv")

    print(f"\n{'='*60}")
    print("BENCHMARK COMPLETE")
    print(f"{'='*60}")


if __name__ == "__main__":
    main()
