# fieldroute-dispatch/fieldroute/routing.py
"""
Route sequencing for technician schedules.

A technician's stops are ordered with a greedy nearest-neighbor heuristic
(always drive to the closest unvisited job next), then scored with a simple
workday model:

- Travel time = haversine miles / average speed
- On-site time = the job's estimated duration
- A mandatory break is inserted before any job that would push continuous
  work past the break threshold

The same sequencer scores candidate assignments in the optimizer and numbers
the stops on the dispatch board, so both always agree on the visiting order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from . import config, utils
from .models import Coordinate, Job, Technician


class RouteSequencingError(RuntimeError):
    """Raised when nearest-neighbor sequencing exceeds its iteration cap."""


@dataclass
class RouteLeg:
    """
    One stop in a scheduled route.

    All ``*_hours`` offsets are measured from the moment the technician
    leaves the route's start position.

    Attributes:
        job: The job visited
        travel_hours: Driving time from the previous stop
        break_hours: Break taken before starting work here (0 if none)
        arrival_hours: When work on this job starts
        finish_hours: When work on this job ends
    """
    job: Job
    travel_hours: float
    break_hours: float
    arrival_hours: float
    finish_hours: float


@dataclass
class RouteResult:
    """Visiting order for a set of jobs and the total time to complete it."""
    order: List[Job]
    total_hours: float
    legs: List[RouteLeg] = field(default_factory=list)

    @property
    def job_ids(self) -> List[str]:
        return [job.job_id for job in self.order]

    @property
    def break_count(self) -> int:
        return sum(1 for leg in self.legs if leg.break_hours > 0)

    def __repr__(self) -> str:
        return f"RouteResult(order={self.job_ids}, total={self.total_hours:.2f}h)"


def nearest_neighbor_order(start: Coordinate, jobs: Sequence[Job]) -> List[Job]:
    """
    Order jobs by repeatedly visiting the closest remaining one.

    Ties are broken by input order: the first job encountered at the minimum
    distance wins.

    Args:
        start: Technician's starting position
        jobs: Jobs to visit (not modified)

    Returns:
        A permutation of ``jobs``

    Raises:
        RouteSequencingError: If the loop runs past its safety cap
    """
    remaining: List[Job] = list(jobs)
    order: List[Job] = []
    position = start

    max_iterations = config.ROUTE_ITERATION_FACTOR * len(remaining)
    iterations = 0

    while remaining:
        if iterations >= max_iterations:
            raise RouteSequencingError(
                f"sequencing {len(jobs)} jobs exceeded {max_iterations} iterations "
                f"with {len(remaining)} left: {[j.job_id for j in remaining]}"
            )
        iterations += 1

        best_index = 0
        best_dist = float('inf')
        for index, job in enumerate(remaining):
            dist = utils.distance_miles(position, job.location)
            if dist < best_dist:
                best_dist = dist
                best_index = index

        next_job = remaining.pop(best_index)
        order.append(next_job)
        position = next_job.location

    return order


def schedule_route(start: Coordinate, order: Sequence[Job]) -> Tuple[float, List[RouteLeg]]:
    """
    Total elapsed hours to work through ``order`` starting from ``start``.

    Args:
        start: Technician's starting position
        order: Jobs in visiting order

    Returns:
        Tuple of (total_hours, per-stop legs)
    """
    total_hours = 0.0
    work_since_break = 0.0
    position = start
    legs: List[RouteLeg] = []

    for job in order:
        travel = utils.travel_time_hours(utils.distance_miles(position, job.location))
        total_hours += travel

        duration = job.duration_hours
        break_hours = 0.0
        if work_since_break + duration > config.BREAK_THRESHOLD_HOURS:
            break_hours = config.BREAK_DURATION_HOURS
            total_hours += break_hours
            work_since_break = 0.0

        arrival = total_hours
        total_hours += duration
        work_since_break += duration

        legs.append(RouteLeg(
            job=job,
            travel_hours=travel,
            break_hours=break_hours,
            arrival_hours=arrival,
            finish_hours=total_hours,
        ))
        position = job.location

    return total_hours, legs


def sequence_route(start: Coordinate, jobs: Sequence[Job]) -> RouteResult:
    """
    Sequence a technician's jobs and compute how long the day takes.

    Deterministic: the same start and jobs always give the same order and total.

    Args:
        start: Technician's current position
        jobs: Jobs on (or proposed for) the technician's route

    Returns:
        RouteResult with the visiting order, total hours and per-stop legs.
        An empty job list gives an empty order and 0 hours.
    """
    order = nearest_neighbor_order(start, jobs)
    total_hours, legs = schedule_route(start, order)
    return RouteResult(order=order, total_hours=total_hours, legs=legs)


def active_route(jobs: Sequence[Job], tech_id: str) -> List[Job]:
    """All non-completed jobs assigned to ``tech_id``, in input order."""
    return [job for job in jobs if job.tech_id == tech_id and job.is_active]


def stop_numbers(technician: Technician, jobs: Sequence[Job]) -> Dict[str, int]:
    """
    Number a technician's active stops for display (1 = next stop).

    Uses the same sequencer as the optimizer so the board's labels match
    the order the optimizer scored.

    Returns:
        Mapping of job_id -> 1-based stop number
    """
    route = active_route(jobs, technician.tech_id)
    order = nearest_neighbor_order(technician.location, route)
    return {job.job_id: index for index, job in enumerate(order, start=1)}
