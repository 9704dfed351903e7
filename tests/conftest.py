"""
Pytest configuration and fixtures.
"""

import random

import pytest

from fieldroute.models import Coordinate, Job, JobStatus, SkillLevel, Technician
from fieldroute.simulation import PositionSimulator, Simulation
from fieldroute.stores import InMemoryJobStore, InMemoryTechnicianStore, StoreResult


@pytest.fixture
def rng():
    """Seeded random source for reproducible jitter."""
    return random.Random(1234)


@pytest.fixture
def journeyman():
    return Technician(
        tech_id="T2",
        location=Coordinate(40.71, -74.00),
        skill_level=SkillLevel.JOURNEYMAN,
        name="Sarah Chen",
    )


@pytest.fixture
def apprentice():
    return Technician(
        tech_id="T3",
        location=Coordinate(40.78, -73.97),
        skill_level=SkillLevel.APPRENTICE,
    )


@pytest.fixture
def master():
    return Technician(
        tech_id="T1",
        location=Coordinate(40.7128, -74.0060),
        skill_level=SkillLevel.MASTER,
    )


@pytest.fixture
def pending_job():
    return Job(
        job_id="J1",
        location=Coordinate(40.75, -73.98),
        required_skill_level=SkillLevel.JOURNEYMAN,
        estimated_duration_hours=2.0,
    )


@pytest.fixture
def sample_jobs():
    """A small mixed board: one job in each active state plus a completed one."""
    return [
        Job("J1", Coordinate(40.75, -73.98), SkillLevel.JOURNEYMAN, 2.0),
        Job("J2", Coordinate(40.73, -74.00), SkillLevel.APPRENTICE, 1.0),
        Job("J3", Coordinate(40.72, -73.96), SkillLevel.MASTER, 3.0),
        Job("J4", Coordinate(40.76, -73.99), None, None, JobStatus.EN_ROUTE, "T2"),
        Job("J5", Coordinate(40.70, -74.01), None, 1.0, JobStatus.COMPLETED, "T1"),
    ]


@pytest.fixture
def sample_technicians(master, journeyman, apprentice):
    return [master, journeyman, apprentice]


@pytest.fixture
def simulation(sample_jobs, sample_technicians, rng):
    """Simulation over in-memory stores seeded with the sample board."""
    return Simulation(
        InMemoryJobStore(sample_jobs, rng=rng),
        InMemoryTechnicianStore(sample_technicians),
        simulator=PositionSimulator(rng=rng),
    )


class FlakyJobStore(InMemoryJobStore):
    """In-memory job store whose writes fail while ``failing`` is set."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.failing = True
        self.write_attempts = 0

    def update_status(self, job_id, status):
        self.write_attempts += 1
        if self.failing:
            return StoreResult.failure("backend unavailable")
        return super().update_status(job_id, status)

    def update_assignment(self, job_id, tech_id, status):
        self.write_attempts += 1
        if self.failing:
            return StoreResult.failure("backend unavailable")
        return super().update_assignment(job_id, tech_id, status)


@pytest.fixture
def flaky_store_factory():
    return FlakyJobStore
