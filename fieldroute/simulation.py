# fieldroute-dispatch/fieldroute/simulation.py
"""
Simulation Engine for the field-service dispatch board.

This module implements the live side of the board:
- PositionSimulator: a pure, scheduler-agnostic ``advance()`` that moves
  technicians over a snapshot and reports arrivals
- Simulation: the host that owns the local (optimistic) view, drives ticks,
  runs the optimizer and pushes every change to the job/technician stores

Technician state is derived each tick, never stored:
- Available, no En Route job  -> Idle: small GPS jitter
- Available, En Route job     -> Traveling: step toward the job site
- Not available               -> Frozen: no movement

On arrival the job moves En Route -> In Progress. The local view changes
first; the store write follows and is retried by ``reconcile()`` if it fails.
"""

from __future__ import annotations

import copy
import csv
import logging
import os
import random
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import config, routing, utils
from .dispatch import DispatchEngine, OptimizationResult
from .models import (
    Coordinate,
    Job,
    JobDraft,
    JobStatus,
    Technician,
    parse_coordinate,
    parse_job_status,
    parse_skill_level,
)
from .stores import JobStore, StoreResult, TechnicianStore

logger = logging.getLogger(__name__)


class DispatchBusyError(RuntimeError):
    """Raised when an optimizer run is requested while another is in flight."""


def active_destination(tech_id: str, position: Coordinate, jobs: Sequence[Job]) -> Optional[Job]:
    """
    The job a technician is currently driving to.

    Walks the technician's active route in stop order (the order the board
    numbers it from ``position``) and returns the first En Route job.
    """
    route = routing.active_route(jobs, tech_id)
    if not any(job.status == JobStatus.EN_ROUTE for job in route):
        return None
    for job in routing.nearest_neighbor_order(position, route):
        if job.status == JobStatus.EN_ROUTE:
            return job
    return None


@dataclass
class TickReport:
    """
    Result of advancing the simulation.

    Attributes:
        technicians: Technicians with their new positions (input order)
        arrivals: Ids of jobs whose technician reached the site, in arrival order
        moved: Ids of technicians whose position changed
        ticks: Number of ticks covered by this report
    """
    technicians: List[Technician]
    arrivals: List[str] = field(default_factory=list)
    moved: List[str] = field(default_factory=list)
    ticks: int = 1


class PositionSimulator:
    """
    Moves technicians toward their destinations one tick at a time.

    Holds no job or technician state; every call works on the snapshot it
    is given and returns new objects.
    """

    def __init__(
        self,
        step_size: Optional[float] = None,
        jitter_bound: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.step_size = step_size if step_size is not None else config.SPEED_STEP_DEGREES
        self.jitter_bound = jitter_bound if jitter_bound is not None else config.IDLE_JITTER_DEGREES
        self.rng = rng or random.Random()

    def advance(
        self,
        jobs: Sequence[Job],
        technicians: Sequence[Technician],
        ticks: int = 1,
    ) -> TickReport:
        """
        Advance every technician by ``ticks`` ticks.

        Args:
            jobs: Job snapshot (read-only)
            technicians: Technician snapshot (read-only)
            ticks: How many ticks to simulate

        Returns:
            TickReport with new technician positions and the jobs that arrived
        """
        if ticks < 0:
            raise ValueError(f"ticks must be non-negative, got {ticks}")

        # Local status overlay so a job reported as arrived is not re-reported
        statuses: Dict[str, JobStatus] = {job.job_id: job.status for job in jobs}
        positions: Dict[str, Coordinate] = {t.tech_id: t.location for t in technicians}
        arrivals: List[str] = []

        for _ in range(ticks):
            view = [
                job if statuses[job.job_id] == job.status else replace(job, status=statuses[job.job_id])
                for job in jobs
            ]
            for tech in technicians:
                if not tech.is_available:
                    continue

                current = positions[tech.tech_id]
                destination = active_destination(tech.tech_id, current, view)

                if destination is None:
                    positions[tech.tech_id] = utils.jitter(current, self.jitter_bound, self.rng)
                    continue

                new_position = utils.step_toward(current, destination.location, self.step_size)
                positions[tech.tech_id] = new_position

                if new_position == destination.location and statuses[destination.job_id] == JobStatus.EN_ROUTE:
                    statuses[destination.job_id] = JobStatus.IN_PROGRESS
                    arrivals.append(destination.job_id)
                    logger.debug(f"Technician {tech.tech_id} arrived at job {destination.job_id}")

        moved_techs = [
            replace(tech, location=positions[tech.tech_id]) for tech in technicians
        ]
        moved_ids = [
            tech.tech_id for tech in technicians if positions[tech.tech_id] != tech.location
        ]
        return TickReport(technicians=moved_techs, arrivals=arrivals, moved=moved_ids, ticks=ticks)


# Store record that may lag the local view: ("job", job_id) or ("tech", tech_id)
WriteKey = Tuple[str, str]


class Simulation:
    """
    Host for the live dispatch board.

    Owns the local view of jobs and technicians, applies every change to it
    immediately (optimistic) and then writes through to the stores. A failed
    write marks its record in ``pending_writes``; ``reconcile()`` pushes the
    record's current local state rather than replaying the failed call, so
    a later write to the same record can never be overwritten by an older one.

    Locking:
        ``_state_lock`` guards the local view, so ticks and operator actions
        never interleave their read-modify-write sequences.
        ``_optimize_lock`` allows at most one optimizer run in flight. The run
        itself works on a copied snapshot outside ``_state_lock`` and merges
        only into jobs that are still unassigned.

    Attributes:
        jobs: Local job view (store order)
        technicians: Local technician view (store order)
        tick_count: Ticks applied so far
        arrivals_log: (tick, job_id, tech_id) for every arrival seen
        pending_writes: Records whose last write failed -> label of that write
    """

    def __init__(
        self,
        job_store: JobStore,
        tech_store: TechnicianStore,
        simulator: Optional[PositionSimulator] = None,
        engine: Optional[DispatchEngine] = None,
        persist_locations: bool = True,
    ) -> None:
        self.job_store = job_store
        self.tech_store = tech_store
        self.simulator = simulator or PositionSimulator()
        self.engine = engine or DispatchEngine()
        self.persist_locations = persist_locations

        self.jobs: List[Job] = []
        self.technicians: List[Technician] = []
        self.tick_count: int = 0
        self.arrivals_log: List[Tuple[int, str, str]] = []
        self.pending_writes: Dict[WriteKey, str] = {}
        self.last_optimization: Optional[OptimizationResult] = None

        self._state_lock = threading.RLock()
        self._optimize_lock = threading.Lock()

        self.refresh()

    @staticmethod
    def load_data(job_file: str, tech_file: str) -> Tuple[List[Technician], List[Job]]:
        """
        Load seed data from CSV files.

        Jobs CSV columns: job_id, lat, lng, required_skill_level,
        estimated_duration_hours, status, tech_id, client_name, address, description
        (only job_id, lat and lng are required).

        Technicians CSV columns: tech_id, name, skill_level, lat, lng, is_available

        Args:
            job_file: Path to jobs CSV
            tech_file: Path to technicians CSV

        Returns:
            Tuple of (technicians, jobs) lists

        Raises:
            FileNotFoundError: If files don't exist
            ValueError: If a row is malformed
        """
        if not os.path.exists(job_file):
            raise FileNotFoundError(f"Job file not found: {job_file}")
        if not os.path.exists(tech_file):
            raise FileNotFoundError(f"Technician file not found: {tech_file}")

        jobs: List[Job] = []
        with open(job_file, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for line_no, row in enumerate(reader, start=2):
                try:
                    duration_raw = (row.get('estimated_duration_hours') or '').strip()
                    duration = float(duration_raw) if duration_raw else None
                    if duration is not None and duration < 0:
                        raise ValueError("negative estimated_duration_hours")
                    jobs.append(Job(
                        job_id=row['job_id'],
                        location=parse_coordinate({"lat": row['lat'], "lng": row['lng']}),
                        required_skill_level=parse_skill_level((row.get('required_skill_level') or '').strip()),
                        estimated_duration_hours=duration,
                        status=parse_job_status((row.get('status') or '').strip()),
                        tech_id=(row.get('tech_id') or '').strip() or None,
                        client_name=row.get('client_name') or '',
                        address=row.get('address') or '',
                        description=row.get('description') or '',
                    ))
                except (KeyError, ValueError) as e:
                    raise ValueError(f"Invalid job data in {job_file} line {line_no}: {e}")

        technicians: List[Technician] = []
        with open(tech_file, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for line_no, row in enumerate(reader, start=2):
                try:
                    level = parse_skill_level(row['skill_level'].strip())
                    if level is None:
                        raise ValueError("missing skill_level")
                    available_raw = (row.get('is_available') or 'true').strip().lower()
                    technicians.append(Technician(
                        tech_id=row['tech_id'],
                        location=parse_coordinate({"lat": row['lat'], "lng": row['lng']}),
                        skill_level=level,
                        is_available=available_raw in ('1', 'true', 'yes', 'y'),
                        name=row.get('name') or '',
                    ))
                except (KeyError, ValueError) as e:
                    raise ValueError(f"Invalid technician data in {tech_file} line {line_no}: {e}")

        return technicians, jobs

    # -------------------------------------------------------------------------
    # Local view
    # -------------------------------------------------------------------------

    def refresh(self) -> None:
        """Reload the local view from the stores."""
        jobs = self.job_store.list()
        technicians = self.tech_store.list()
        with self._state_lock:
            self.jobs = jobs
            self.technicians = technicians

    def snapshot(self) -> Tuple[List[Job], List[Technician]]:
        """Deep copies of the local view, safe to hand to other threads."""
        with self._state_lock:
            return copy.deepcopy(self.jobs), copy.deepcopy(self.technicians)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._state_lock:
            return next((j for j in self.jobs if j.job_id == job_id), None)

    def get_technician(self, tech_id: str) -> Optional[Technician]:
        with self._state_lock:
            return next((t for t in self.technicians if t.tech_id == tech_id), None)

    def _replace_job(self, updated: Job) -> None:
        self.jobs = [updated if j.job_id == updated.job_id else j for j in self.jobs]

    def _replace_technician(self, updated: Technician) -> None:
        self.technicians = [updated if t.tech_id == updated.tech_id else t for t in self.technicians]

    # -------------------------------------------------------------------------
    # Store writes
    # -------------------------------------------------------------------------

    def _write(
        self,
        label: str,
        operation: Callable[[], StoreResult],
        key: Optional[WriteKey] = None,
        settles: bool = True,
    ) -> bool:
        """
        Issue a store write. Never raises: an exception from the store is
        treated as a failed write.

        Args:
            label: Human-readable description for the log
            operation: The bound store call
            key: Record the write touches. Failures are marked pending for
                ``reconcile()``; None means best-effort (not retried)
            settles: The write carries the record's full mutable state, so
                success clears a pending mark for ``key``
        """
        try:
            result = operation()
        except Exception as e:
            logger.warning(f"Store write '{label}' raised: {e}")
            result = StoreResult.failure(str(e))

        if not result.ok:
            logger.warning(f"Store write '{label}' failed: {result.error}")

        if key is not None:
            with self._state_lock:
                if not result.ok:
                    self.pending_writes[key] = label
                elif settles:
                    self.pending_writes.pop(key, None)
        return result.ok

    def _sync_operation(self, key: WriteKey) -> Optional[Callable[[], StoreResult]]:
        """Store call that pushes a record's current local state, or None if it is gone."""
        kind, record_id = key
        if kind == "job":
            job = next((j for j in self.jobs if j.job_id == record_id), None)
            if job is None:
                return None
            return _bind(self.job_store.update_assignment, record_id, job.tech_id, job.status)
        tech = next((t for t in self.technicians if t.tech_id == record_id), None)
        if tech is None:
            return None
        return _bind(self.tech_store.update_availability, record_id, tech.is_available)

    def reconcile(self) -> int:
        """
        Push the current local state of every record with a failed write.

        Returns:
            Number of records still pending
        """
        with self._state_lock:
            queued = list(self.pending_writes)
            for key in queued:
                operation = self._sync_operation(key)
                if operation is None:
                    self.pending_writes.pop(key, None)
                    continue
                self._write(f"sync {key[0]} {key[1]}", operation, key=key)
            remaining = len(self.pending_writes)

        if queued:
            logger.info(f"Reconciled {len(queued) - remaining} of {len(queued)} pending writes")
        return remaining

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    def tick(self, ticks: int = 1) -> TickReport:
        """
        Advance positions, apply arrivals locally, then write through to the stores.

        Location writes are best-effort (not retried) and are issued after
        the state lock is released. Status writes for arrivals are marked for
        ``reconcile()`` when they fail.
        """
        location_writes: List[Tuple[str, Coordinate]] = []
        with self._state_lock:
            report = self.simulator.advance(self.jobs, self.technicians, ticks)
            self.technicians = report.technicians
            self.tick_count += ticks

            arrived: List[str] = []
            for job_id in report.arrivals:
                job = next(j for j in self.jobs if j.job_id == job_id)
                # Guard: only En Route jobs transition
                if job.status != JobStatus.EN_ROUTE:
                    continue
                self._replace_job(replace(job, status=JobStatus.IN_PROGRESS))
                self.arrivals_log.append((self.tick_count, job_id, job.tech_id))
                arrived.append(job_id)
                logger.info(f"[tick {self.tick_count}] {job.tech_id} arrived at {job_id}")

            if self.persist_locations:
                location_writes = [
                    (tech.tech_id, tech.location)
                    for tech in self.technicians if tech.tech_id in report.moved
                ]

            for job_id in arrived:
                self._write(
                    f"status {job_id} -> {JobStatus.IN_PROGRESS.value}",
                    _bind(self.job_store.update_status, job_id, JobStatus.IN_PROGRESS),
                    key=("job", job_id),
                    settles=False,
                )

        for tech_id, location in location_writes:
            self._write(
                f"location {tech_id}",
                _bind(self.tech_store.update_location, tech_id, location),
            )

        return report

    def run(self, ticks: int, interval: Optional[float] = None,
            stop_event: Optional[threading.Event] = None) -> List[TickReport]:
        """
        Drive the simulation for ``ticks`` ticks.

        Args:
            ticks: Number of ticks to run
            interval: Seconds to sleep between ticks (None = as fast as possible,
                e.g. config.TICK_INTERVAL_SECONDS for real time)
            stop_event: Set from another thread to stop early

        Returns:
            One TickReport per tick
        """
        reports: List[TickReport] = []
        for i in range(ticks):
            if stop_event is not None and stop_event.is_set():
                break
            reports.append(self.tick())
            if self.pending_writes:
                self.reconcile()
            if interval and i < ticks - 1:
                time.sleep(interval)
        return reports

    # -------------------------------------------------------------------------
    # Optimizer
    # -------------------------------------------------------------------------

    def optimize(
        self,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> OptimizationResult:
        """
        Run the optimizer over a snapshot and apply its assignments.

        Only one run may be in flight. Ticks keep running meanwhile; an
        assignment is merged only if the job is still unassigned and not
        completed when the run finishes.

        Raises:
            DispatchBusyError: If another run is already in flight
            routing.RouteSequencingError: Internal sequencing failure (nothing applied)
        """
        if not self._optimize_lock.acquire(blocking=False):
            raise DispatchBusyError("An optimization run is already in progress")

        try:
            jobs, technicians = self.snapshot()
            result = self.engine.optimize(jobs, technicians, deadline=deadline, cancel_event=cancel_event)

            with self._state_lock:
                applied = []
                for assignment in result.assignments:
                    live = next((j for j in self.jobs if j.job_id == assignment.job_id), None)
                    if live is None or not live.is_unassigned:
                        logger.warning(
                            f"Skipping assignment of {assignment.job_id}: job changed during optimization"
                        )
                        continue
                    self._replace_job(replace(live, tech_id=assignment.tech_id, status=JobStatus.EN_ROUTE))
                    applied.append(assignment)

                for assignment in applied:
                    self._write(
                        f"assign {assignment.job_id} -> {assignment.tech_id}",
                        _bind(self.job_store.update_assignment, assignment.job_id,
                              assignment.tech_id, JobStatus.EN_ROUTE),
                        key=("job", assignment.job_id),
                    )

                result.assignments = applied
                result.jobs = copy.deepcopy(self.jobs)
                result.unassigned = [j.job_id for j in self.jobs if j.is_unassigned]
                self.last_optimization = result

            return result
        finally:
            self._optimize_lock.release()

    @property
    def optimizing(self) -> bool:
        return self._optimize_lock.locked()

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    def assign(self, job_id: str, tech_id: str, force: bool = False) -> Job:
        """
        Manually assign a job to a technician.

        ``force`` lets an available but under-qualified technician take the job.

        Raises:
            dispatch.AssignmentError: If the assignment is not allowed
        """
        with self._state_lock:
            self.jobs = self.engine.assign_job(self.jobs, job_id, tech_id, self.technicians, force=force)
            job = next(j for j in self.jobs if j.job_id == job_id)
            self._write(
                f"assign {job_id} -> {tech_id}",
                _bind(self.job_store.update_assignment, job_id, tech_id, JobStatus.EN_ROUTE),
                key=("job", job_id),
            )
            return job

    def set_availability(self, tech_id: str, is_available: bool) -> Technician:
        """
        Put a technician on or off duty.

        Going off duty releases the technician's En Route and In Progress
        jobs: they lose their technician and go back to Pending, so the next
        optimizer run can hand them to someone else.

        Raises:
            KeyError: Unknown technician
        """
        with self._state_lock:
            tech = next((t for t in self.technicians if t.tech_id == tech_id), None)
            if tech is None:
                raise KeyError(f"Unknown technician: {tech_id}")
            updated = replace(tech, is_available=is_available)
            self._replace_technician(updated)
            self._write(
                f"availability {tech_id} -> {is_available}",
                _bind(self.tech_store.update_availability, tech_id, is_available),
                key=("tech", tech_id),
            )

            if not is_available:
                released = [
                    job for job in self.jobs
                    if job.tech_id == tech_id
                    and job.status in (JobStatus.EN_ROUTE, JobStatus.IN_PROGRESS)
                ]
                for job in released:
                    self._replace_job(replace(job, tech_id=None, status=JobStatus.PENDING))
                    self._write(
                        f"release {job.job_id} from {tech_id}",
                        _bind(self.job_store.update_assignment, job.job_id, None, JobStatus.PENDING),
                        key=("job", job.job_id),
                    )
                if released:
                    logger.info(
                        f"{tech_id} went off duty; released {', '.join(j.job_id for j in released)}"
                    )
            return updated

    def toggle_availability(self, tech_id: str) -> Technician:
        tech = self.get_technician(tech_id)
        if tech is None:
            raise KeyError(f"Unknown technician: {tech_id}")
        return self.set_availability(tech_id, not tech.is_available)

    def book_job(self, draft: JobDraft) -> Job:
        """
        Book a new job through the store and add it to the local view.

        Unlike other writes this one must succeed first: the store assigns the id.

        Raises:
            stores.StoreError: If the store rejects the booking
        """
        job = self.job_store.create(draft)
        with self._state_lock:
            self.jobs = [job] + self.jobs
        logger.info(f"Booked job {job.job_id} for {job.client_name or 'unknown client'}")
        return job

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def stop_numbers(self) -> Dict[str, Dict[str, int]]:
        """Stop labels per technician: tech_id -> {job_id: stop number}."""
        with self._state_lock:
            return {
                tech.tech_id: routing.stop_numbers(tech, self.jobs)
                for tech in self.technicians
            }

    def technician_schedules(self) -> Dict[str, routing.RouteResult]:
        """Sequenced active route and total hours for every technician."""
        with self._state_lock:
            return {
                tech.tech_id: routing.sequence_route(
                    tech.location, routing.active_route(self.jobs, tech.tech_id)
                )
                for tech in self.technicians
            }

    def get_results(self) -> Dict[str, object]:
        """Summary counters for the CLI and dashboard."""
        with self._state_lock:
            by_status = {status.value: 0 for status in JobStatus}
            for job in self.jobs:
                by_status[job.status.value] += 1
            return {
                "ticks": self.tick_count,
                "jobs": len(self.jobs),
                "unassigned": sum(1 for j in self.jobs if j.is_unassigned),
                "technicians": len(self.technicians),
                "available_technicians": sum(1 for t in self.technicians if t.is_available),
                "arrivals": len(self.arrivals_log),
                "pending_writes": len(self.pending_writes),
                "by_status": by_status,
            }


def _bind(func: Callable[..., StoreResult], *args) -> Callable[[], StoreResult]:
    """Freeze a store call and its arguments so it can be retried later."""
    def call() -> StoreResult:
        return func(*args)
    return call
