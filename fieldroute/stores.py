# fieldroute-dispatch/fieldroute/stores.py
"""
Job and technician stores for the field-service dispatch simulation.

The optimizer and simulator never own the job/technician collections. They
read snapshots from a store and push changes back through a narrow update
interface:

- JobStore: list, get, update_status, update_assignment, create
- TechnicianStore: list, get, update_availability, update_location

Two implementations are provided:

- In-memory key-value stores (seed data, tests, the CLI)
- HTTP clients for the dispatch board's REST API, built on ``requests``

Writes report failure through ``StoreResult`` instead of raising, so a flaky
backend can never crash the tick loop. Reads raise ``StoreError``.
"""

from __future__ import annotations

import copy
import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

import requests

from . import config
from .models import (
    Coordinate,
    Job,
    JobDraft,
    JobStatus,
    Technician,
    job_from_dict,
    job_to_dict,
    technician_from_dict,
)

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when a store read fails or returns unusable data."""


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a store write."""
    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> StoreResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> StoreResult:
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok


class JobStore(Protocol):
    def list(self) -> List[Job]: ...
    def get(self, job_id: str) -> Job: ...
    def update_status(self, job_id: str, status: JobStatus) -> StoreResult: ...
    def update_assignment(self, job_id: str, tech_id: Optional[str], status: JobStatus) -> StoreResult: ...
    def create(self, draft: JobDraft) -> Job: ...


class TechnicianStore(Protocol):
    def list(self) -> List[Technician]: ...
    def get(self, tech_id: str) -> Technician: ...
    def update_availability(self, tech_id: str, is_available: bool) -> StoreResult: ...
    def update_location(self, tech_id: str, location: Coordinate) -> StoreResult: ...


def _timestamp() -> str:
    return datetime.now().strftime("%I:%M %p")


# =============================================================================
# IN-MEMORY STORES
# =============================================================================

class InMemoryJobStore:
    """
    Key-value job store.

    Records are copied on the way in and out so callers never alias stored
    state.
    """

    def __init__(self, jobs: Optional[Iterable[Job]] = None, rng: Optional[random.Random] = None) -> None:
        self._jobs: Dict[str, Job] = {}
        self._rng = rng or random.Random()
        for job in jobs or []:
            self._jobs[job.job_id] = copy.deepcopy(job)

    def list(self) -> List[Job]:
        return [copy.deepcopy(job) for job in self._jobs.values()]

    def get(self, job_id: str) -> Job:
        try:
            return copy.deepcopy(self._jobs[job_id])
        except KeyError:
            raise StoreError(f"Unknown job: {job_id}") from None

    def update_status(self, job_id: str, status: JobStatus) -> StoreResult:
        if job_id not in self._jobs:
            return StoreResult.failure(f"Unknown job: {job_id}")
        self._jobs[job_id] = replace(self._jobs[job_id], status=status)
        return StoreResult.success()

    def update_assignment(self, job_id: str, tech_id: Optional[str], status: JobStatus) -> StoreResult:
        if job_id not in self._jobs:
            return StoreResult.failure(f"Unknown job: {job_id}")
        self._jobs[job_id] = replace(self._jobs[job_id], tech_id=tech_id, status=status)
        return StoreResult.success()

    def create(self, draft: JobDraft) -> Job:
        job = Job(
            job_id=self._new_id(),
            location=draft.location,
            required_skill_level=draft.required_skill_level,
            estimated_duration_hours=draft.estimated_duration_hours,
            status=JobStatus.PENDING,
            tech_id=None,
            client_name=draft.client_name,
            address=draft.address,
            description=draft.description,
            created_at=_timestamp(),
        )
        self._jobs[job.job_id] = job
        return copy.deepcopy(job)

    def _new_id(self) -> str:
        # J1000-J9999 like the board; fall back to a sequential id once crowded
        for _ in range(100):
            candidate = f"J{self._rng.randint(1000, 9999)}"
            if candidate not in self._jobs:
                return candidate
        return f"J{10000 + len(self._jobs)}"

    def __len__(self) -> int:
        return len(self._jobs)


class InMemoryTechnicianStore:
    """Key-value technician store."""

    def __init__(self, technicians: Optional[Iterable[Technician]] = None) -> None:
        self._techs: Dict[str, Technician] = {}
        for tech in technicians or []:
            self._techs[tech.tech_id] = copy.deepcopy(tech)

    def list(self) -> List[Technician]:
        return [copy.deepcopy(tech) for tech in self._techs.values()]

    def get(self, tech_id: str) -> Technician:
        try:
            return copy.deepcopy(self._techs[tech_id])
        except KeyError:
            raise StoreError(f"Unknown technician: {tech_id}") from None

    def update_availability(self, tech_id: str, is_available: bool) -> StoreResult:
        if tech_id not in self._techs:
            return StoreResult.failure(f"Unknown technician: {tech_id}")
        self._techs[tech_id] = replace(self._techs[tech_id], is_available=is_available)
        return StoreResult.success()

    def update_location(self, tech_id: str, location: Coordinate) -> StoreResult:
        if tech_id not in self._techs:
            return StoreResult.failure(f"Unknown technician: {tech_id}")
        self._techs[tech_id] = replace(self._techs[tech_id], location=location)
        return StoreResult.success()

    def __len__(self) -> int:
        return len(self._techs)


# =============================================================================
# HTTP STORES
# =============================================================================
# Talks to the board's REST API:
#   GET  {base}/jobs               -> [job, ...]
#   POST {base}/jobs               -> job
#   PUT  {base}/jobs/{id}          partial job body
#   GET  {base}/technicians        -> [technician, ...]
#   PUT  {base}/technicians/{id}   partial technician body

class _HttpStore:
    """Shared request plumbing for the HTTP stores."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or config.STORE_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.STORE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _get_json(self, path: str) -> Any:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            raise StoreError(f"GET {url} timed out") from None
        except requests.exceptions.RequestException as e:
            raise StoreError(f"GET {url} failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"GET {url} returned invalid JSON: {e}") from e

    def _send(self, method: str, path: str, body: Dict[str, Any]) -> StoreResult:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return StoreResult.success()
        except requests.exceptions.Timeout:
            logger.warning(f"{method} {url} timed out")
            return StoreResult.failure(f"{method} {url} timed out")
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {e}")
            return StoreResult.failure(f"{method} {url} failed: {e}")


class HttpJobStore(_HttpStore):
    """JobStore backed by the board's ``/jobs`` endpoint."""

    def list(self) -> List[Job]:
        records = self._get_json("jobs")
        if not isinstance(records, list):
            raise StoreError(f"Expected a list of jobs, got {type(records).__name__}")
        try:
            return [job_from_dict(record) for record in records]
        except ValueError as e:
            raise StoreError(f"Malformed job record: {e}") from e

    def get(self, job_id: str) -> Job:
        for job in self.list():
            if job.job_id == job_id:
                return job
        raise StoreError(f"Unknown job: {job_id}")

    def update_status(self, job_id: str, status: JobStatus) -> StoreResult:
        return self._send("PUT", f"jobs/{job_id}", {"status": status.value})

    def update_assignment(self, job_id: str, tech_id: Optional[str], status: JobStatus) -> StoreResult:
        return self._send("PUT", f"jobs/{job_id}", {"techId": tech_id, "status": status.value})

    def create(self, draft: JobDraft) -> Job:
        body: Dict[str, Any] = {
            "clientName": draft.client_name,
            "address": draft.address,
            "description": draft.description,
            "location": {"lat": draft.location.lat, "lng": draft.location.lng},
        }
        if draft.required_skill_level is not None:
            body["requiredSkillLevel"] = draft.required_skill_level.value
        if draft.estimated_duration_hours is not None:
            body["estimatedDuration"] = draft.estimated_duration_hours

        url = f"{self.base_url}/jobs"
        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return job_from_dict(response.json())
        except requests.exceptions.RequestException as e:
            raise StoreError(f"POST {url} failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"POST {url} returned an unusable job: {e}") from e


class HttpTechnicianStore(_HttpStore):
    """TechnicianStore backed by the board's ``/technicians`` endpoint."""

    def list(self) -> List[Technician]:
        records = self._get_json("technicians")
        if not isinstance(records, list):
            raise StoreError(f"Expected a list of technicians, got {type(records).__name__}")
        try:
            return [technician_from_dict(record) for record in records]
        except ValueError as e:
            raise StoreError(f"Malformed technician record: {e}") from e

    def get(self, tech_id: str) -> Technician:
        for tech in self.list():
            if tech.tech_id == tech_id:
                return tech
        raise StoreError(f"Unknown technician: {tech_id}")

    def update_availability(self, tech_id: str, is_available: bool) -> StoreResult:
        return self._send("PUT", f"technicians/{tech_id}", {"isAvailable": is_available})

    def update_location(self, tech_id: str, location: Coordinate) -> StoreResult:
        return self._send(
            "PUT", f"technicians/{tech_id}",
            {"location": {"lat": location.lat, "lng": location.lng}},
        )


def snapshot_records(jobs: Iterable[Job]) -> List[Dict[str, Any]]:
    """Serialize jobs to store records (used by the CLI's ``--dump``)."""
    return [job_to_dict(job) for job in jobs]
