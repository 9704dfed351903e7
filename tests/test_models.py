"""
Unit tests for domain models and record conversion.
"""

import pytest

from fieldroute import config
from fieldroute.models import (
    Coordinate,
    Job,
    JobStatus,
    SkillLevel,
    Technician,
    is_qualified,
    job_from_dict,
    job_to_dict,
    parse_coordinate,
    parse_job_status,
    parse_skill_level,
    technician_from_dict,
    technician_to_dict,
)


class TestSkillLevel:
    """Test cases for skill tier ordering."""

    def test_ordering_uses_rank(self):
        assert SkillLevel.APPRENTICE < SkillLevel.JOURNEYMAN < SkillLevel.MASTER
        assert SkillLevel.MASTER >= SkillLevel.MASTER
        assert not SkillLevel.MASTER < SkillLevel.JOURNEYMAN

    def test_ranks(self):
        assert [s.rank for s in SkillLevel] == [1, 2, 3]


class TestQualification:
    """Test cases for skill gating."""

    @pytest.mark.parametrize(
        "tech_level,required,expected",
        [
            (SkillLevel.APPRENTICE, SkillLevel.APPRENTICE, True),
            (SkillLevel.APPRENTICE, SkillLevel.JOURNEYMAN, False),
            (SkillLevel.JOURNEYMAN, SkillLevel.MASTER, False),
            (SkillLevel.MASTER, SkillLevel.APPRENTICE, True),
            (SkillLevel.APPRENTICE, None, True),
        ],
    )
    def test_is_qualified(self, tech_level, required, expected):
        tech = Technician("T", Coordinate(0, 0), tech_level)
        job = Job("J", Coordinate(0, 0), required_skill_level=required)
        assert is_qualified(tech, job) is expected


class TestJob:
    def test_duration_defaults_when_missing_or_zero(self):
        assert Job("J", Coordinate(0, 0)).duration_hours == config.DEFAULT_JOB_DURATION_HOURS
        assert Job("J", Coordinate(0, 0), estimated_duration_hours=0).duration_hours == (
            config.DEFAULT_JOB_DURATION_HOURS
        )
        assert Job("J", Coordinate(0, 0), estimated_duration_hours=1.5).duration_hours == 1.5

    def test_unassigned_excludes_completed(self):
        job = Job("J", Coordinate(0, 0), status=JobStatus.COMPLETED)
        assert not job.is_active
        assert not job.is_unassigned

    def test_technician_name_defaults_to_id(self):
        assert Technician("T9", Coordinate(0, 0), SkillLevel.MASTER).name == "T9"


class TestParsing:
    """Test cases for boundary validation."""

    def test_parse_coordinate_accepts_numeric_strings(self):
        assert parse_coordinate({"lat": "40.5", "lng": "-74"}) == Coordinate(40.5, -74.0)

    @pytest.mark.parametrize(
        "raw",
        [None, {"lat": 1}, {"lat": "x", "lng": 0}, {"lat": 91, "lng": 0}, {"lat": 0, "lng": -181}],
    )
    def test_parse_coordinate_rejects_bad_input(self, raw):
        with pytest.raises(ValueError):
            parse_coordinate(raw)

    def test_parse_skill_level(self):
        assert parse_skill_level("Master") is SkillLevel.MASTER
        assert parse_skill_level("") is None
        with pytest.raises(ValueError, match="unknown skill level"):
            parse_skill_level("Wizard")

    def test_parse_job_status(self):
        assert parse_job_status("En Route") is JobStatus.EN_ROUTE
        assert parse_job_status(None) is JobStatus.PENDING
        with pytest.raises(ValueError):
            parse_job_status("Lost")


class TestRecordConversion:
    """Test cases for store record conversion."""

    def test_job_from_dict(self):
        job = job_from_dict({
            "id": "J101",
            "clientName": "Empire State Prop",
            "address": "350 5th Ave, NY",
            "description": "Chiller 2 vibration alert",
            "status": "In Progress",
            "timestamp": "08:00 AM",
            "location": {"lat": 40.7484, "lng": -73.9857},
            "techId": "T001",
            "requiredSkillLevel": "Master",
            "estimatedDuration": 4,
        })
        assert job.job_id == "J101"
        assert job.status is JobStatus.IN_PROGRESS
        assert job.tech_id == "T001"
        assert job.required_skill_level is SkillLevel.MASTER
        assert job.estimated_duration_hours == 4.0
        assert job.created_at == "08:00 AM"

    def test_job_to_dict_omits_unset_optionals(self):
        record = job_to_dict(Job("J1", Coordinate(40.0, -74.0)))
        assert record["status"] == "Pending"
        assert "techId" not in record
        assert "requiredSkillLevel" not in record
        assert "estimatedDuration" not in record

    def test_job_round_trip_preserves_assignment(self):
        job = Job("J1", Coordinate(40.0, -74.0), SkillLevel.APPRENTICE, 1.5, JobStatus.EN_ROUTE, "T1")
        assert job_from_dict(job_to_dict(job)) == job

    def test_job_from_dict_rejects_negative_duration(self):
        with pytest.raises(ValueError, match="negative"):
            job_from_dict({"id": "J1", "location": {"lat": 0, "lng": 0}, "estimatedDuration": -1})

    def test_job_from_dict_requires_id(self):
        with pytest.raises(ValueError, match="no id"):
            job_from_dict({"location": {"lat": 0, "lng": 0}})

    def test_technician_conversion(self):
        tech = technician_from_dict({
            "id": "T002",
            "name": "Sarah Chen",
            "level": "Journeyman",
            "location": {"lat": 40.7484, "lng": -73.9857},
            "isAvailable": False,
        })
        assert tech.skill_level is SkillLevel.JOURNEYMAN
        assert tech.is_available is False
        assert technician_to_dict(tech)["level"] == "Journeyman"

    def test_technician_requires_level(self):
        with pytest.raises(ValueError, match="missing skill level"):
            technician_from_dict({"id": "T1", "location": {"lat": 0, "lng": 0}})
