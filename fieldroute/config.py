# fieldroute-dispatch/fieldroute/config.py
"""
Configuration parameters for the field-service dispatch simulation.

This module centralizes all tunable parameters, making it easy to:
- Adjust the workday model used to score technician schedules
- Tune how fast technicians move on the live map
- Point the store clients at a different backend

Values are read as ``config.NAME`` at call time, so tests and scripts can
override them by assignment (or ``monkeypatch.setattr``).
"""

from typing import Dict, Final, Optional

# =============================================================================
# GEO AND TRAVEL CONSTANTS
# =============================================================================

EARTH_RADIUS_MILES: Final[float] = 3958.8
"""Mean Earth radius used by the haversine formula."""

AVG_SPEED_MPH: float = 15.0
"""Average van speed in mph. Dense-metro assumption, includes traffic and parking."""

# =============================================================================
# WORKDAY MODEL
# =============================================================================

BREAK_THRESHOLD_HOURS: float = 4.0
"""
Maximum continuous on-site work before a mandatory break.
A break is inserted before any job that would push work-since-break past this.
"""

BREAK_DURATION_HOURS: float = 1.0
"""Length of the mandatory break."""

DEFAULT_JOB_DURATION_HOURS: float = 2.0
"""On-site duration assumed for jobs booked without an estimate."""

# =============================================================================
# ROUTE SEQUENCING
# =============================================================================

ROUTE_ITERATION_FACTOR: int = 2
"""
Safety cap for nearest-neighbor sequencing, as a multiple of the job count.
The pool shrinks by one per iteration, so hitting the cap means a bug.
"""

# =============================================================================
# LIVE POSITION SIMULATION
# =============================================================================

TICK_INTERVAL_SECONDS: float = 1.0
"""Wall-clock interval between position ticks when the host runs in real time."""

SPEED_STEP_DEGREES: float = 0.0015
"""Distance (in coordinate degrees) a travelling technician covers per tick."""

SNAP_THRESHOLD_DEGREES: float = 0.002
"""Remaining distance below which a technician snaps onto the job site (arrival)."""

IDLE_JITTER_DEGREES: float = 0.00005
"""Maximum per-axis GPS jitter applied to idle technicians each tick."""

# =============================================================================
# DISPATCH BOARD MAP
# =============================================================================

MAP_BOUNDS: Dict[str, float] = {
    "min_lat": 40.68,   # South
    "max_lat": 40.82,   # North
    "min_lng": -74.05,  # West
    "max_lng": -73.93,  # East
}
"""NYC metro rectangle used to normalize coordinates for the board and to place booked jobs."""

# =============================================================================
# OPTIMIZER
# =============================================================================

OPTIMIZE_DEADLINE_SECONDS: Optional[float] = None
"""
Default time budget for one optimizer run. None disables the deadline.
When the budget runs out the run returns the assignments made so far.
"""

# =============================================================================
# STORE BACKEND
# =============================================================================

STORE_BASE_URL: str = "http://localhost:3000/api"
"""Base URL of the dispatch board's REST API (jobs and technicians collections)."""

STORE_TIMEOUT_SECONDS: float = 5.0
"""Timeout for store requests. Fail fast so a slow backend never stalls the tick loop."""
