"""
Field-Service Dispatch - Live Board
======================================

Operator dashboard for the dispatch simulation.

Features:
- Live map of technicians and job sites (pydeck)
- Optimize Routes: greedy assignment of every unassigned job
- Tick controls to advance technician GPS positions
- Duty toggles, manual assignment and job booking

Run:
    streamlit run app.py
"""

import os
import random
import sys
import time
from typing import Dict, List, Optional

import pandas as pd
import pydeck as pdk
import streamlit as st

# Ensure fieldroute is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fieldroute import config, utils
from fieldroute.dispatch import AssignmentError, rank_candidates
from fieldroute.models import Coordinate, Job, JobDraft, JobStatus, SkillLevel, Technician
from fieldroute.simulation import DispatchBusyError, Simulation
from fieldroute.stores import InMemoryJobStore, InMemoryTechnicianStore, StoreError

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Field-Service Dispatch",
    page_icon="🛠️",
    layout="wide",
    initial_sidebar_state="expanded"
)

# =============================================================================
# DATA LOADING
# =============================================================================

DATASETS: Dict[str, Dict[str, str]] = {
    "New York City": {
        "jobs": "data/nyc_jobs.csv",
        "technicians": "data/nyc_technicians.csv",
    },
}

STATUS_COLORS: Dict[JobStatus, List[int]] = {
    JobStatus.PENDING: [251, 191, 36],
    JobStatus.EN_ROUTE: [59, 130, 246],
    JobStatus.IN_PROGRESS: [16, 185, 129],
    JobStatus.COMPLETED: [148, 163, 184],
}

SKILL_COLORS: Dict[SkillLevel, List[int]] = {
    SkillLevel.APPRENTICE: [100, 116, 139],
    SkillLevel.JOURNEYMAN: [99, 102, 241],
    SkillLevel.MASTER: [168, 85, 247],
}


def get_available_datasets() -> Dict[str, Dict[str, str]]:
    """Return only datasets that exist on disk."""
    return {
        name: paths for name, paths in DATASETS.items()
        if os.path.exists(paths["jobs"]) and os.path.exists(paths["technicians"])
    }


def start_simulation(paths: Dict[str, str]) -> Simulation:
    """Build a fresh simulation over in-memory stores seeded from CSV."""
    technicians, jobs = Simulation.load_data(paths["jobs"], paths["technicians"])
    return Simulation(InMemoryJobStore(jobs), InMemoryTechnicianStore(technicians))


def get_simulation() -> Optional[Simulation]:
    return st.session_state.get("simulation")


# =============================================================================
# MAP LAYERS
# =============================================================================

def technician_layer(technicians: List[Technician]) -> pdk.Layer:
    data = [
        {
            "position": [t.location.lng, t.location.lat],
            "color": SKILL_COLORS[t.skill_level] if t.is_available else [203, 213, 225],
            "label": f"{t.name} ({t.skill_level.value}){'' if t.is_available else ' - off duty'}",
        }
        for t in technicians
    ]
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=160,
        pickable=True,
        stroked=True,
        filled=True,
        line_width_min_pixels=2,
    )


def job_layer(jobs: List[Job], stops: Dict[str, Dict[str, int]]) -> pdk.Layer:
    data = []
    for job in jobs:
        stop = stops.get(job.tech_id or "", {}).get(job.job_id)
        label = f"{job.job_id} · {job.client_name or 'Unknown client'} · {job.status.value}"
        if stop is not None:
            label += f" · stop {stop} for {job.tech_id}"
        data.append({
            "position": [job.location.lng, job.location.lat],
            "color": STATUS_COLORS[job.status],
            "label": label,
        })
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=110,
        opacity=0.7,
        pickable=True,
    )


def route_layer(sim: Simulation) -> pdk.Layer:
    """Planned path per technician: current position, then each stop in order."""
    schedules = sim.technician_schedules()
    data = []
    for tech in sim.technicians:
        route = schedules[tech.tech_id]
        if not route.order:
            continue
        path = [[tech.location.lng, tech.location.lat]]
        path += [[job.location.lng, job.location.lat] for job in route.order]
        data.append({"path": path, "color": SKILL_COLORS[tech.skill_level], "label": tech.name})
    return pdk.Layer(
        "PathLayer",
        data,
        get_path="path",
        get_color="color",
        width_min_pixels=2,
        opacity=0.5,
    )


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar() -> Optional[Simulation]:
    """Render sidebar controls and return the active simulation."""
    st.sidebar.markdown("## 🎛️ Controls")

    datasets = get_available_datasets()
    if not datasets:
        st.sidebar.error("No datasets found in data/ folder!")
        return None

    selected = st.sidebar.selectbox("Dataset", options=list(datasets.keys()))
    if st.sidebar.button("🔄 Reset Board", use_container_width=True) or get_simulation() is None:
        try:
            st.session_state["simulation"] = start_simulation(datasets[selected])
        except (FileNotFoundError, ValueError) as e:
            st.sidebar.error(f"Failed to load data: {e}")
            return None

    sim = get_simulation()

    st.sidebar.markdown("---")
    st.sidebar.markdown("### 🧠 Dispatch")
    if st.sidebar.button("⚡ Optimize Routes", use_container_width=True):
        try:
            result = sim.optimize(deadline=config.OPTIMIZE_DEADLINE_SECONDS)
            st.sidebar.success(
                f"Assigned {result.assigned_count} job(s); {len(result.unassigned)} still unassigned"
            )
        except DispatchBusyError as e:
            st.sidebar.warning(str(e))

    st.sidebar.markdown("---")
    st.sidebar.markdown("### ⏱️ Live GPS")
    ticks = st.sidebar.slider("Ticks per step", min_value=1, max_value=100, value=10)
    if st.sidebar.button("▶️ Advance", use_container_width=True):
        sim.run(ticks)
    st.sidebar.toggle("Live mode", key="live", help=f"Tick every {config.TICK_INTERVAL_SECONDS:g}s")

    if sim.pending_writes:
        st.sidebar.warning(f"{len(sim.pending_writes)} store write(s) pending")
        if st.sidebar.button("Retry writes", use_container_width=True):
            sim.reconcile()

    return sim


# =============================================================================
# PANELS
# =============================================================================

def render_kpi_row(sim: Simulation) -> None:
    results = sim.get_results()
    by_status = results["by_status"]
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Unassigned", results["unassigned"])
    col2.metric("En Route", by_status[JobStatus.EN_ROUTE.value])
    col3.metric("In Progress", by_status[JobStatus.IN_PROGRESS.value])
    col4.metric(
        "On Duty",
        f"{results['available_technicians']}/{results['technicians']}",
    )


def render_map(sim: Simulation) -> None:
    jobs, technicians = sim.snapshot()
    points = [j.location for j in jobs] + [t.location for t in technicians]
    if points:
        center_lat = sum(p.lat for p in points) / len(points)
        center_lng = sum(p.lng for p in points) / len(points)
    else:
        center_lat = (config.MAP_BOUNDS["min_lat"] + config.MAP_BOUNDS["max_lat"]) / 2
        center_lng = (config.MAP_BOUNDS["min_lng"] + config.MAP_BOUNDS["max_lng"]) / 2

    layers = [route_layer(sim), job_layer(jobs, sim.stop_numbers()), technician_layer(technicians)]
    view_state = pdk.ViewState(latitude=center_lat, longitude=center_lng, zoom=11)
    st.pydeck_chart(pdk.Deck(layers=layers, initial_view_state=view_state, tooltip={"text": "{label}"}))


def render_roster(sim: Simulation) -> None:
    st.markdown("#### 👷 Technicians")
    schedules = sim.technician_schedules()
    for tech in sim.technicians:
        route = schedules[tech.tech_id]
        col1, col2 = st.columns([4, 1])
        with col1:
            stops = " → ".join(route.job_ids) or "—"
            st.markdown(
                f"**{tech.name}** · {tech.skill_level.value} · "
                f"{'on duty' if tech.is_available else 'off duty'}  \n"
                f"Route: {stops} · Day: {utils.format_hours(route.total_hours)}"
                + (f" · {route.break_count} break(s)" if route.break_count else "")
            )
        with col2:
            label = "Off duty" if tech.is_available else "On duty"
            if st.button(label, key=f"duty-{tech.tech_id}", use_container_width=True):
                sim.toggle_availability(tech.tech_id)
                st.rerun()


def render_jobs_table(sim: Simulation) -> None:
    st.markdown("#### 📋 Jobs")
    jobs, _ = sim.snapshot()
    rows = [
        {
            "Job": j.job_id,
            "Client": j.client_name,
            "Address": j.address,
            "Skill": j.required_skill_level.value if j.required_skill_level else "Any",
            "Duration": utils.format_hours(j.duration_hours),
            "Status": j.status.value,
            "Technician": j.tech_id or "—",
            "Booked": j.created_at,
        }
        for j in jobs
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def render_manual_assign(sim: Simulation) -> None:
    st.markdown("#### ✋ Manual Assignment")
    open_jobs = [j.job_id for j in sim.jobs if j.is_active]
    if not open_jobs or not sim.technicians:
        st.info("Nothing to assign.")
        return

    col1, col2 = st.columns(2)
    job_id = col1.selectbox("Job", open_jobs, key="assign_job")
    job = sim.get_job(job_id)

    # On-duty first, then nearest
    candidates = rank_candidates(job, sim.technicians)
    labels = {}
    for index, (tech, miles, qualified) in enumerate(candidates):
        tag = ""
        if not tech.is_available:
            tag = " · OFF-DUTY"
        elif not qualified:
            tag = " · UNDERQUALIFIED"
        elif index == 0:
            tag = " · BEST MATCH"
        labels[tech.tech_id] = f"{tech.name} ({tech.skill_level.value}, {miles:.1f} mi){tag}"

    tech_id = col2.selectbox(
        "Technician", list(labels), format_func=labels.get, key="assign_tech",
    )
    force = st.checkbox("Force assign (ignore skill requirement)", key="assign_force")
    if st.button("Assign", key="assign_submit"):
        try:
            sim.assign(job_id, tech_id, force=force)
            st.success(f"{job_id} assigned to {tech_id}")
        except AssignmentError as e:
            st.error(str(e))


def render_booking_form(sim: Simulation) -> None:
    st.markdown("#### ➕ Book a Job")
    with st.form("book", clear_on_submit=True):
        client_name = st.text_input("Client name")
        address = st.text_input("Address")
        description = st.text_area("Description")
        col1, col2 = st.columns(2)
        level = col1.selectbox(
            "Required skill", [s.value for s in SkillLevel], index=1,
        )
        duration = col2.number_input(
            "Estimated hours", min_value=0.25, max_value=12.0,
            value=config.DEFAULT_JOB_DURATION_HOURS, step=0.25,
        )
        col3, col4 = st.columns(2)
        lat = col3.number_input("Latitude (0 = random)", value=0.0, format="%.4f")
        lng = col4.number_input("Longitude (0 = random)", value=0.0, format="%.4f")

        if st.form_submit_button("Book"):
            # No geocoder: drop the job somewhere on the map if no coordinate was given
            if lat == 0.0 and lng == 0.0:
                location = utils.random_point_in_bounds(random.Random())
            else:
                location = Coordinate(lat=lat, lng=lng)
            draft = JobDraft(
                location=location,
                client_name=client_name,
                address=address,
                description=description,
                required_skill_level=SkillLevel(level),
                estimated_duration_hours=duration,
            )
            try:
                job = sim.book_job(draft)
                st.success(f"Booked {job.job_id}")
            except StoreError as e:
                st.error(f"Booking failed: {e}")


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    """Main application entry point."""
    st.title("🛠️ Field-Service Dispatch")

    sim = render_sidebar()
    if sim is None:
        return

    render_kpi_row(sim)
    render_map(sim)

    col1, col2 = st.columns([3, 2])
    with col1:
        render_jobs_table(sim)
        render_manual_assign(sim)
    with col2:
        render_roster(sim)
        render_booking_form(sim)

    if sim.arrivals_log:
        with st.expander(f"Arrivals ({len(sim.arrivals_log)})"):
            for tick, job_id, tech_id in reversed(sim.arrivals_log[-20:]):
                st.markdown(f"- tick {tick}: {tech_id} arrived at {job_id}")

    if st.session_state.get("live"):
        time.sleep(config.TICK_INTERVAL_SECONDS)
        sim.tick()
        st.rerun()


if __name__ == "__main__":
    main()
