# fieldroute-dispatch/fieldroute/__init__.py

from .models import (
    Coordinate,
    Job,
    JobAssignment,
    JobDraft,
    JobStatus,
    SkillLevel,
    Technician,
)
from .config import (
    AVG_SPEED_MPH,
    BREAK_THRESHOLD_HOURS,
    BREAK_DURATION_HOURS,
    SPEED_STEP_DEGREES,
    SNAP_THRESHOLD_DEGREES,
)
from .utils import distance_miles, step_toward
from .routing import RouteResult, RouteSequencingError, sequence_route, stop_numbers
from .dispatch import AssignmentError, DispatchEngine, OptimizationResult, rank_candidates
from .simulation import DispatchBusyError, PositionSimulator, Simulation, TickReport
from .stores import (
    HttpJobStore,
    HttpTechnicianStore,
    InMemoryJobStore,
    InMemoryTechnicianStore,
    StoreError,
    StoreResult,
)

__version__ = "1.0.0"

__all__ = [
    # Models
    "Coordinate",
    "Job",
    "JobAssignment",
    "JobDraft",
    "JobStatus",
    "SkillLevel",
    "Technician",
    # Core
    "DispatchEngine",
    "OptimizationResult",
    "PositionSimulator",
    "Simulation",
    "TickReport",
    "RouteResult",
    # Stores
    "InMemoryJobStore",
    "InMemoryTechnicianStore",
    "HttpJobStore",
    "HttpTechnicianStore",
    "StoreResult",
    # Errors
    "AssignmentError",
    "DispatchBusyError",
    "RouteSequencingError",
    "StoreError",
    # Functions
    "distance_miles",
    "step_toward",
    "sequence_route",
    "stop_numbers",
    "rank_candidates",
    # Config
    "AVG_SPEED_MPH",
    "BREAK_THRESHOLD_HOURS",
    "BREAK_DURATION_HOURS",
    "SPEED_STEP_DEGREES",
    "SNAP_THRESHOLD_DEGREES",
]
