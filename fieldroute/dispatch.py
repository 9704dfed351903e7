# fieldroute-dispatch/fieldroute/dispatch.py
"""
Dispatch Engine for the field-service dispatch simulation.

This module assigns unassigned jobs to technicians.

**Optimize**: For each unassigned job (in input order), every available,
skill-qualified technician "bids" the total hours their day would take if the
job were added to their route and the route re-sequenced. The lowest bid wins
and the job joins that technician's working route, so later jobs in the same
run see the extra load. This is a greedy sequential policy, not a global
optimum.

**Manual assignment**: An operator can also hand a job to a specific
technician, subject to the same availability and skill checks. A forced
assignment skips the skill check; ``rank_candidates`` orders the fleet for
the operator (on-duty first, then nearest).

Cost: O(unassigned x technicians x route_length^2) because every bid
re-sequences a full route. Treat ``optimize`` as a batch operation and keep
it off latency-sensitive paths.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from . import config, routing, utils
from .models import Job, JobAssignment, JobStatus, Technician, is_qualified

logger = logging.getLogger(__name__)


class AssignmentError(ValueError):
    """Raised when a manual assignment is not allowed."""


@dataclass
class OptimizationResult:
    """
    Outcome of one optimizer run.

    Attributes:
        jobs: Every input job, in input order, with assignments merged in
        assignments: Decisions made in this run, in the order they were made
        unassigned: Ids of jobs still without a technician after the run
        cancelled: True if the deadline or cancel event stopped the run early
        elapsed_seconds: Wall time spent
    """
    jobs: List[Job]
    assignments: List[JobAssignment] = field(default_factory=list)
    unassigned: List[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def assigned_count(self) -> int:
        return len(self.assignments)

    def __repr__(self) -> str:
        return (
            f"OptimizationResult(assigned={self.assigned_count}, "
            f"unassigned={len(self.unassigned)}, cancelled={self.cancelled})"
        )


class DispatchEngine:
    """
    Orchestrates job-to-technician assignment.

    The engine is the "auctioneer": it announces each job to the qualified
    technicians, collects their total-schedule bids and awards the job to the
    lowest bidder. It holds no state between runs.
    """

    def optimize(
        self,
        jobs: Sequence[Job],
        technicians: Sequence[Technician],
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> OptimizationResult:
        """
        Assign every unassigned job to the technician with the shortest resulting day.

        Input jobs are never mutated; assigned jobs come back as updated copies.

        Args:
            jobs: All known jobs (any status)
            technicians: Fleet snapshot
            deadline: Time budget in seconds (default: config.OPTIMIZE_DEADLINE_SECONDS)
            cancel_event: Set from another thread to stop the run early

        Returns:
            OptimizationResult. On deadline or cancellation the assignments made
            so far are kept and ``cancelled`` is True.

        Raises:
            routing.RouteSequencingError: Internal sequencing failure; nothing is applied
        """
        started = time.monotonic()
        if deadline is None:
            deadline = config.OPTIMIZE_DEADLINE_SECONDS
        stop_at = started + deadline if deadline is not None else None

        # Working routes, keyed by technician id (available technicians only)
        available = [t for t in technicians if t.is_available]
        tech_routes: Dict[str, List[Job]] = {
            tech.tech_id: routing.active_route(jobs, tech.tech_id) for tech in available
        }

        unassigned_jobs = [job for job in jobs if job.is_unassigned]
        updated: Dict[str, Job] = {}
        assignments: List[JobAssignment] = []
        cancelled = False

        for job in unassigned_jobs:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if stop_at is not None and time.monotonic() >= stop_at:
                cancelled = True
                break

            best_tech: Optional[Technician] = None
            best_hours = float('inf')

            for tech in available:
                if not is_qualified(tech, job):
                    continue

                proposed = tech_routes[tech.tech_id] + [job]
                bid = routing.sequence_route(tech.location, proposed).total_hours

                if bid < best_hours:
                    best_hours = bid
                    best_tech = tech

            if best_tech is None:
                logger.debug(f"No qualified technician for job {job.job_id}")
                continue

            assigned_job = replace(job, tech_id=best_tech.tech_id, status=JobStatus.EN_ROUTE)
            updated[job.job_id] = assigned_job
            tech_routes[best_tech.tech_id].append(assigned_job)
            assignments.append(JobAssignment(job_id=job.job_id, tech_id=best_tech.tech_id))

            logger.debug(f"Job {job.job_id} -> {best_tech.tech_id} (day {best_hours:.2f}h)")

        merged = [updated.get(job.job_id, job) for job in jobs]
        still_unassigned = [job.job_id for job in merged if job.is_unassigned]
        elapsed = time.monotonic() - started

        if cancelled:
            logger.warning(
                f"Optimization stopped early after {len(assignments)} assignments ({elapsed:.3f}s)"
            )
        logger.info(
            f"Optimization assigned {len(assignments)} of {len(unassigned_jobs)} jobs "
            f"across {len(available)} technicians in {elapsed:.3f}s"
        )

        return OptimizationResult(
            jobs=merged,
            assignments=assignments,
            unassigned=still_unassigned,
            cancelled=cancelled,
            elapsed_seconds=elapsed,
        )

    def assign_job(
        self,
        jobs: Sequence[Job],
        job_id: str,
        tech_id: str,
        technicians: Sequence[Technician],
        force: bool = False,
    ) -> List[Job]:
        """
        Manually hand one job to a technician.

        Reassigning a job that already has a technician is allowed; the job
        goes back to En Route for the new technician.

        Args:
            jobs: All known jobs
            job_id: Job to assign
            tech_id: Receiving technician
            technicians: Fleet snapshot
            force: Skip the skill check (off-duty technicians are still refused)

        Returns:
            The job list with that single job updated (a copy; inputs untouched)

        Raises:
            AssignmentError: Unknown ids, completed job, off-duty technician, or
                under-skilled technician without ``force``
        """
        job = next((j for j in jobs if j.job_id == job_id), None)
        if job is None:
            raise AssignmentError(f"Unknown job: {job_id}")
        tech = next((t for t in technicians if t.tech_id == tech_id), None)
        if tech is None:
            raise AssignmentError(f"Unknown technician: {tech_id}")

        if job.status == JobStatus.COMPLETED:
            raise AssignmentError(f"Job {job_id} is already completed")
        if not tech.is_available:
            raise AssignmentError(f"Technician {tech_id} is not available")
        if not is_qualified(tech, job):
            if not force:
                raise AssignmentError(
                    f"Technician {tech_id} ({tech.skill_level.value}) does not meet "
                    f"{job.required_skill_level.value} requirement of job {job_id}"
                )
            logger.warning(
                f"Force-assigning {job_id} ({job.required_skill_level.value}) "
                f"to {tech_id} ({tech.skill_level.value})"
            )

        assigned_job = replace(job, tech_id=tech_id, status=JobStatus.EN_ROUTE)
        return [assigned_job if j.job_id == job_id else j for j in jobs]


def rank_candidates(job: Job, technicians: Sequence[Technician]) -> List[Tuple[Technician, float, bool]]:
    """
    Order technicians for a manual assignment of ``job``.

    On-duty technicians come first, then by straight-line distance to the
    job site; ties keep fleet order.

    Returns:
        List of (technician, miles to the job, skill-qualified)
    """
    candidates = [
        (tech, utils.distance_miles(tech.location, job.location), is_qualified(tech, job))
        for tech in technicians
    ]
    return sorted(candidates, key=lambda c: (not c[0].is_available, c[1]))
