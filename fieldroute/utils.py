# fieldroute-dispatch/fieldroute/utils.py
"""
Geographic utilities for the field-service dispatch simulation.

Provides the distance and movement math shared by the route sequencer and
the live position simulator, plus small display helpers for the board.

Two distance notions are used:
- Great-circle miles (haversine) for travel-time estimates
- Plain coordinate-space (degree) distance for animating movement on the map
"""

from __future__ import annotations

import math
import random
from typing import Dict, Optional, Tuple

from . import config
from .models import Coordinate


def distance_miles(a: Coordinate, b: Coordinate) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula. The result is symmetric in its arguments and
    exactly zero when both points are equal.

    Args:
        a: First point in decimal degrees
        b: Second point in decimal degrees

    Returns:
        Distance in miles between the two points

    Example:
        >>> distance_miles(Coordinate(40.7128, -74.0060), Coordinate(40.7484, -73.9857))
        2.68  # Lower Manhattan to Midtown
    """
    if a == b:
        return 0.0

    lat1, lng1, lat2, lng2 = map(math.radians, [a.lat, a.lng, b.lat, b.lng])

    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return config.EARTH_RADIUS_MILES * c


def euclidean_degrees(a: Coordinate, b: Coordinate) -> float:
    """Straight-line distance in coordinate space (degrees), not geodesic."""
    return math.hypot(b.lat - a.lat, b.lng - a.lng)


def step_toward(
    current: Coordinate,
    target: Coordinate,
    step_size: Optional[float] = None,
    snap_threshold: Optional[float] = None,
) -> Coordinate:
    """
    Move ``current`` one fixed step along the straight line toward ``target``.

    Movement happens in coordinate space, which is what the map animates.
    When the remaining distance is under the snap threshold the target itself
    is returned (the same object), which callers treat as arrival.

    Args:
        current: Present position
        target: Destination
        step_size: Degrees to advance (default: config.SPEED_STEP_DEGREES)
        snap_threshold: Arrival radius in degrees (default: config.SNAP_THRESHOLD_DEGREES)

    Returns:
        The new position, or ``target`` on arrival
    """
    if step_size is None:
        step_size = config.SPEED_STEP_DEGREES
    if snap_threshold is None:
        snap_threshold = config.SNAP_THRESHOLD_DEGREES

    remaining = euclidean_degrees(current, target)
    if remaining < snap_threshold:
        return target

    ratio = step_size / remaining
    return Coordinate(
        current.lat + (target.lat - current.lat) * ratio,
        current.lng + (target.lng - current.lng) * ratio,
    )


def jitter(
    location: Coordinate,
    bound: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> Coordinate:
    """
    Apply uniform GPS noise of at most ``bound`` degrees on each axis.

    Args:
        location: Present position
        bound: Per-axis maximum offset (default: config.IDLE_JITTER_DEGREES)
        rng: Random source; pass a seeded ``random.Random`` for reproducible runs
    """
    if bound is None:
        bound = config.IDLE_JITTER_DEGREES
    rng = rng or random

    return Coordinate(
        location.lat + rng.uniform(-bound, bound),
        location.lng + rng.uniform(-bound, bound),
    )


def travel_time_hours(distance: float) -> float:
    """
    Estimate driving time for a distance at the configured average speed.

    Args:
        distance: Distance in miles

    Returns:
        Travel time in hours (infinite if the configured speed is not positive)

    Example:
        >>> travel_time_hours(7.5)  # 7.5 mi at 15 mph
        0.5
    """
    if config.AVG_SPEED_MPH <= 0:
        return float('inf')
    return distance / config.AVG_SPEED_MPH


def project_to_map(
    location: Coordinate,
    bounds: Optional[Dict[str, float]] = None,
) -> Tuple[float, float]:
    """
    Normalize a coordinate into the board's map rectangle.

    Latitude is inverted because screen Y grows downward.

    Returns:
        (top_pct, left_pct), both 0-100 for points inside the bounds
    """
    if bounds is None:
        bounds = config.MAP_BOUNDS

    lat_pct = (location.lat - bounds["min_lat"]) / (bounds["max_lat"] - bounds["min_lat"])
    lng_pct = (location.lng - bounds["min_lng"]) / (bounds["max_lng"] - bounds["min_lng"])
    return (1 - lat_pct) * 100, lng_pct * 100


def random_point_in_bounds(
    rng: Optional[random.Random] = None,
    bounds: Optional[Dict[str, float]] = None,
) -> Coordinate:
    """Pick a uniformly random point inside the map bounds (fallback site for bookings)."""
    if bounds is None:
        bounds = config.MAP_BOUNDS
    rng = rng or random
    return Coordinate(
        rng.uniform(bounds["min_lat"], bounds["max_lat"]),
        rng.uniform(bounds["min_lng"], bounds["max_lng"]),
    )


def format_hours(hours: float) -> str:
    """
    Format a duration in hours as a human-readable string.

    Args:
        hours: Duration in hours

    Returns:
        Formatted string like "2h 05m" or "45m"
    """
    total_minutes = int(round(hours * 60))
    if total_minutes < 60:
        return f"{total_minutes}m"
    return f"{total_minutes // 60}h {total_minutes % 60:02d}m"
