"""
Unit tests for DispatchEngine.
"""

import copy
import threading
from dataclasses import replace

import pytest

from fieldroute.dispatch import AssignmentError, DispatchEngine, rank_candidates
from fieldroute.models import Coordinate, Job, JobStatus, SkillLevel, Technician


class TestOptimize:
    """Test cases for greedy optimization."""

    @pytest.fixture
    def engine(self):
        return DispatchEngine()

    def test_assigns_single_job(self, engine, journeyman, pending_job):
        result = engine.optimize([pending_job], [journeyman])

        assert result.assigned_count == 1
        assert result.unassigned == []
        job = result.jobs[0]
        assert job.tech_id == "T2"
        assert job.status is JobStatus.EN_ROUTE

    def test_skill_mismatch_leaves_job_pending(self, engine, apprentice, pending_job):
        result = engine.optimize([pending_job], [apprentice])

        assert result.assigned_count == 0
        assert result.unassigned == ["J1"]
        assert result.jobs[0].status is JobStatus.PENDING
        assert result.jobs[0].tech_id is None

    def test_off_duty_technician_gets_nothing(self, engine, journeyman, pending_job):
        off_duty = replace(journeyman, is_available=False)
        result = engine.optimize([pending_job], [off_duty])
        assert result.assigned_count == 0

    def test_inputs_are_not_mutated(self, engine, sample_jobs, sample_technicians):
        before_jobs = copy.deepcopy(sample_jobs)
        before_techs = copy.deepcopy(sample_technicians)
        engine.optimize(sample_jobs, sample_technicians)
        assert sample_jobs == before_jobs
        assert sample_technicians == before_techs

    def test_only_unassigned_jobs_change(self, engine, sample_jobs, sample_technicians):
        result = engine.optimize(sample_jobs, sample_technicians)
        by_id = {j.job_id: j for j in result.jobs}

        # Already assigned and completed jobs pass through untouched
        assert by_id["J4"] == sample_jobs[3]
        assert by_id["J5"] == sample_jobs[4]
        assert {a.job_id for a in result.assignments} == {"J1", "J2", "J3"}
        assert [j.job_id for j in result.jobs] == [j.job_id for j in sample_jobs]

    def test_every_assignment_is_qualified(self, engine, sample_jobs, sample_technicians):
        result = engine.optimize(sample_jobs, sample_technicians)
        techs = {t.tech_id: t for t in sample_technicians}
        jobs = {j.job_id: j for j in result.jobs}
        for assignment in result.assignments:
            required = jobs[assignment.job_id].required_skill_level
            if required is not None:
                assert techs[assignment.tech_id].skill_level >= required

    def test_master_only_job_goes_to_master(self, engine, sample_jobs, sample_technicians):
        result = engine.optimize(sample_jobs, sample_technicians)
        assert next(j for j in result.jobs if j.job_id == "J3").tech_id == "T1"

    def test_tie_goes_to_first_technician(self, engine, pending_job):
        a = Technician("A", Coordinate(40.71, -74.00), SkillLevel.MASTER)
        b = Technician("B", Coordinate(40.71, -74.00), SkillLevel.MASTER)
        result = engine.optimize([pending_job], [a, b])
        assert result.assignments[0].tech_id == "A"

    def test_working_route_grows_within_run(self, engine):
        """Test that a second job sees the load the first one added."""
        a = Technician("A", Coordinate(40.71, -74.00), SkillLevel.MASTER)
        b = Technician("B", Coordinate(40.71, -74.00), SkillLevel.MASTER)
        jobs = [
            Job("J1", Coordinate(40.75, -73.98), estimated_duration_hours=2.0),
            Job("J2", Coordinate(40.75, -73.98), estimated_duration_hours=2.0),
        ]
        result = engine.optimize(jobs, [a, b])
        assert [(x.job_id, x.tech_id) for x in result.assignments] == [("J1", "A"), ("J2", "B")]

    def test_deterministic(self, engine, sample_jobs, sample_technicians):
        first = engine.optimize(sample_jobs, sample_technicians)
        second = engine.optimize(sample_jobs, sample_technicians)
        assert first.assignments == second.assignments

    def test_no_technicians(self, engine, pending_job):
        result = engine.optimize([pending_job], [])
        assert result.unassigned == ["J1"]
        assert not result.cancelled

    def test_cancel_event_stops_run(self, engine, sample_jobs, sample_technicians):
        cancel = threading.Event()
        cancel.set()
        result = engine.optimize(sample_jobs, sample_technicians, cancel_event=cancel)

        assert result.cancelled
        assert result.assignments == []
        assert len(result.jobs) == len(sample_jobs)

    def test_zero_deadline_returns_partial(self, engine, sample_jobs, sample_technicians):
        result = engine.optimize(sample_jobs, sample_technicians, deadline=0.0)
        assert result.cancelled
        assert set(result.unassigned) == {"J1", "J2", "J3"}


class TestAssignJob:
    """Test cases for manual assignment."""

    @pytest.fixture
    def engine(self):
        return DispatchEngine()

    def test_assigns(self, engine, sample_jobs, sample_technicians):
        jobs = engine.assign_job(sample_jobs, "J2", "T3", sample_technicians)
        job = next(j for j in jobs if j.job_id == "J2")
        assert job.tech_id == "T3"
        assert job.status is JobStatus.EN_ROUTE
        assert sample_jobs[1].tech_id is None

    def test_reassign(self, engine, sample_jobs, sample_technicians):
        jobs = engine.assign_job(sample_jobs, "J4", "T1", sample_technicians)
        assert next(j for j in jobs if j.job_id == "J4").tech_id == "T1"

    @pytest.mark.parametrize(
        "job_id,tech_id,message",
        [
            ("J99", "T1", "Unknown job"),
            ("J1", "T99", "Unknown technician"),
            ("J5", "T1", "already completed"),
            ("J3", "T2", "does not meet"),
        ],
    )
    def test_rejects(self, engine, sample_jobs, sample_technicians, job_id, tech_id, message):
        with pytest.raises(AssignmentError, match=message):
            engine.assign_job(sample_jobs, job_id, tech_id, sample_technicians)

    def test_rejects_off_duty(self, engine, sample_jobs, sample_technicians):
        techs = [replace(t, is_available=False) if t.tech_id == "T1" else t for t in sample_technicians]
        with pytest.raises(AssignmentError, match="not available"):
            engine.assign_job(sample_jobs, "J1", "T1", techs)

    def test_force_assigns_under_skilled(self, engine, sample_jobs, sample_technicians):
        jobs = engine.assign_job(sample_jobs, "J3", "T2", sample_technicians, force=True)
        job = next(j for j in jobs if j.job_id == "J3")
        assert (job.tech_id, job.status) == ("T2", JobStatus.EN_ROUTE)

    def test_force_still_rejects_off_duty(self, engine, sample_jobs, sample_technicians):
        techs = [replace(t, is_available=False) if t.tech_id == "T3" else t for t in sample_technicians]
        with pytest.raises(AssignmentError, match="not available"):
            engine.assign_job(sample_jobs, "J3", "T3", techs, force=True)


class TestRankCandidates:
    """Test cases for the manual-assignment candidate list."""

    def test_nearest_first_with_qualification(self, sample_jobs, sample_technicians):
        j3 = next(j for j in sample_jobs if j.job_id == "J3")

        ranked = rank_candidates(j3, sample_technicians)

        assert [(t.tech_id, qualified) for t, _, qualified in ranked] == [
            ("T2", False), ("T1", True), ("T3", False),
        ]
        miles = [m for _, m, _ in ranked]
        assert miles == sorted(miles)
        assert miles[0] == pytest.approx(2.2, abs=0.1)

    def test_off_duty_sink_to_bottom(self, sample_jobs, sample_technicians):
        j3 = next(j for j in sample_jobs if j.job_id == "J3")
        techs = [replace(t, is_available=False) if t.tech_id == "T2" else t for t in sample_technicians]

        ranked = rank_candidates(j3, techs)

        assert [t.tech_id for t, _, _ in ranked] == ["T1", "T3", "T2"]

    def test_no_requirement_qualifies_everyone(self, sample_jobs, sample_technicians):
        j4 = next(j for j in sample_jobs if j.job_id == "J4")
        assert all(qualified for _, _, qualified in rank_candidates(j4, sample_technicians))
