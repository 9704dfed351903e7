# fieldroute-dispatch/fieldroute/models.py
"""
Core domain models for the field-service dispatch simulation.

This module defines the fundamental data structures used throughout the system:
- Coordinate: An immutable (lat, lng) point
- Technician: A field technician with a skill tier, position and availability
- Job: A service call with a fixed site, skill requirement and lifecycle status
- JobAssignment: The optimizer's output record (job -> technician)
- JobDraft: What an operator fills in to book a new job

It also holds the boundary converters between these models and the plain
dicts exchanged with stores (enums travel as their display strings).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from . import config


class SkillLevel(Enum):
    """
    Technician proficiency tiers.

    Tiers are ordered: Apprentice < Journeyman < Master. Comparisons use the
    ordinal rank, never the string value.
    """
    APPRENTICE = "Apprentice"
    JOURNEYMAN = "Journeyman"
    MASTER = "Master"

    @property
    def rank(self) -> int:
        """Ordinal used for qualification checks (Apprentice=1 ... Master=3)."""
        return _SKILL_RANKS[self]

    def __lt__(self, other: SkillLevel) -> bool:
        if not isinstance(other, SkillLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: SkillLevel) -> bool:
        if not isinstance(other, SkillLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: SkillLevel) -> bool:
        if not isinstance(other, SkillLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: SkillLevel) -> bool:
        if not isinstance(other, SkillLevel):
            return NotImplemented
        return self.rank >= other.rank


_SKILL_RANKS: Dict[SkillLevel, int] = {
    SkillLevel.APPRENTICE: 1,
    SkillLevel.JOURNEYMAN: 2,
    SkillLevel.MASTER: 3,
}


class JobStatus(Enum):
    """Lifecycle states for a job."""
    PENDING = "Pending"          # Booked, no technician yet
    EN_ROUTE = "En Route"        # Assigned, technician travelling
    IN_PROGRESS = "In Progress"  # Technician on site
    COMPLETED = "Completed"      # Closed out externally


@dataclass(frozen=True)
class Coordinate:
    """A point on the map in decimal degrees."""
    lat: float
    lng: float

    def as_tuple(self) -> tuple:
        return (self.lat, self.lng)

    def __repr__(self) -> str:
        return f"({self.lat:.5f}, {self.lng:.5f})"


@dataclass
class Technician:
    """
    Represents a field technician.

    Attributes:
        tech_id: Unique identifier
        location: Current position (moved by the position simulator)
        skill_level: Proficiency tier used for job qualification
        is_available: On duty. Off-duty technicians get no work and do not move
        name: Display name
    """
    tech_id: str
    location: Coordinate
    skill_level: SkillLevel
    is_available: bool = True
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.tech_id

    def __repr__(self) -> str:
        state = "on" if self.is_available else "off"
        return f"Technician({self.tech_id}, {self.skill_level.value}, {state})"


@dataclass
class Job:
    """
    Represents a service call.

    Attributes:
        job_id: Unique identifier
        location: Job site (never moves)
        required_skill_level: Minimum tier; None means anyone qualifies
        estimated_duration_hours: On-site work estimate; None means the default
        status: Current lifecycle state
        tech_id: Assigned technician, if any
        client_name/address/description/created_at: Booking details for display
    """
    job_id: str
    location: Coordinate
    required_skill_level: Optional[SkillLevel] = None
    estimated_duration_hours: Optional[float] = None
    status: JobStatus = JobStatus.PENDING
    tech_id: Optional[str] = None

    client_name: str = ""
    address: str = ""
    description: str = ""
    created_at: str = ""

    @property
    def duration_hours(self) -> float:
        """Effective on-site duration, falling back to the configured default."""
        if not self.estimated_duration_hours:
            return config.DEFAULT_JOB_DURATION_HOURS
        return self.estimated_duration_hours

    @property
    def is_active(self) -> bool:
        """Whether the job still takes part in routing (anything but Completed)."""
        return self.status != JobStatus.COMPLETED

    @property
    def is_unassigned(self) -> bool:
        return self.tech_id is None and self.is_active

    def __repr__(self) -> str:
        return f"Job({self.job_id}, {self.status.value}, tech={self.tech_id})"


@dataclass(frozen=True)
class JobAssignment:
    """One optimizer decision: job ``job_id`` goes to technician ``tech_id``."""
    job_id: str
    tech_id: str


@dataclass
class JobDraft:
    """Operator input for booking a job. The store fills in id and status."""
    location: Coordinate
    client_name: str = ""
    address: str = ""
    description: str = ""
    required_skill_level: Optional[SkillLevel] = SkillLevel.JOURNEYMAN
    estimated_duration_hours: Optional[float] = None


def is_qualified(technician: Technician, job: Job) -> bool:
    """True if the technician's tier meets the job's requirement (or there is none)."""
    if job.required_skill_level is None:
        return True
    return technician.skill_level.rank >= job.required_skill_level.rank


# =============================================================================
# BOUNDARY CONVERSION
# =============================================================================
# Records coming from a store or a CSV are validated here so the core can
# assume well-formed entities.

def parse_coordinate(raw: Any) -> Coordinate:
    """
    Build a Coordinate from a ``{"lat": .., "lng": ..}`` mapping.

    Raises:
        ValueError: If either component is missing, non-numeric or out of range
    """
    if not isinstance(raw, dict):
        raise ValueError(f"location must be an object with lat/lng, got {raw!r}")
    try:
        lat = float(raw["lat"])
        lng = float(raw["lng"])
    except KeyError as e:
        raise ValueError(f"location is missing {e.args[0]!r}") from e
    except (TypeError, ValueError) as e:
        raise ValueError(f"location has a non-numeric component: {raw!r}") from e

    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"longitude out of range: {lng}")
    return Coordinate(lat, lng)


def parse_skill_level(raw: Optional[str]) -> Optional[SkillLevel]:
    """Parse a skill string; empty or None means no requirement."""
    if raw is None or raw == "":
        return None
    try:
        return SkillLevel(raw)
    except ValueError:
        raise ValueError(f"unknown skill level: {raw!r}") from None


def parse_job_status(raw: Optional[str]) -> JobStatus:
    if raw is None or raw == "":
        return JobStatus.PENDING
    try:
        return JobStatus(raw)
    except ValueError:
        raise ValueError(f"unknown job status: {raw!r}") from None


def job_from_dict(data: Dict[str, Any]) -> Job:
    """
    Convert a store record into a Job.

    Raises:
        ValueError: If the record is malformed
    """
    if not data.get("id"):
        raise ValueError("job record has no id")

    duration = data.get("estimatedDuration")
    if duration is not None:
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            raise ValueError(f"job {data['id']}: invalid estimatedDuration {duration!r}") from None
        if duration < 0:
            raise ValueError(f"job {data['id']}: negative estimatedDuration")

    try:
        location = parse_coordinate(data.get("location"))
    except ValueError as e:
        raise ValueError(f"job {data['id']}: {e}") from e

    return Job(
        job_id=str(data["id"]),
        location=location,
        required_skill_level=parse_skill_level(data.get("requiredSkillLevel")),
        estimated_duration_hours=duration,
        status=parse_job_status(data.get("status")),
        tech_id=data.get("techId") or None,
        client_name=data.get("clientName", ""),
        address=data.get("address", ""),
        description=data.get("description", ""),
        created_at=data.get("timestamp", ""),
    )


def job_to_dict(job: Job) -> Dict[str, Any]:
    """Convert a Job to the store's record shape."""
    record: Dict[str, Any] = {
        "id": job.job_id,
        "clientName": job.client_name,
        "address": job.address,
        "description": job.description,
        "status": job.status.value,
        "timestamp": job.created_at,
        "location": {"lat": job.location.lat, "lng": job.location.lng},
    }
    if job.tech_id is not None:
        record["techId"] = job.tech_id
    if job.required_skill_level is not None:
        record["requiredSkillLevel"] = job.required_skill_level.value
    if job.estimated_duration_hours is not None:
        record["estimatedDuration"] = job.estimated_duration_hours
    return record


def technician_from_dict(data: Dict[str, Any]) -> Technician:
    """
    Convert a store record into a Technician.

    Raises:
        ValueError: If the record is malformed
    """
    if not data.get("id"):
        raise ValueError("technician record has no id")

    level = parse_skill_level(data.get("level"))
    if level is None:
        raise ValueError(f"technician {data['id']}: missing skill level")

    try:
        location = parse_coordinate(data.get("location"))
    except ValueError as e:
        raise ValueError(f"technician {data['id']}: {e}") from e

    return Technician(
        tech_id=str(data["id"]),
        location=location,
        skill_level=level,
        is_available=bool(data.get("isAvailable", True)),
        name=data.get("name", ""),
    )


def technician_to_dict(tech: Technician) -> Dict[str, Any]:
    return {
        "id": tech.tech_id,
        "name": tech.name,
        "level": tech.skill_level.value,
        "location": {"lat": tech.location.lat, "lng": tech.location.lng},
        "isAvailable": tech.is_available,
    }
