import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from typing import Any, Dict, List, Tuple
import streamlit as st

# (label, key, format)
RUN_METRICS: List[Tuple[str, str, str]] = [
    ("Finished", "finished", "{:.0f}"),
    ("Avg delay", "avg_delay_s", "{:.0f} s"),
    ("Throughput", "throughput_per_hour", "{:.2f} trains/h"),
    ("Sim time", "sim_time_s", "{:.0f} s"),
]
STATUS_METRICS: List[Tuple[str, str]] = [
    ("Waiting", "waiting"),
    ("Running", "running"),
    ("Held", "held"),
]


def render_kpis(kpis: Dict[str, Any]) -> None:
    """Two rows of metrics from the run summary returned by ``/analytics``."""
    if not kpis:
        st.warning("KPIs unavailable")
        return
    for col, (label, key, fmt) in zip(st.columns(len(RUN_METRICS)), RUN_METRICS):
        value = kpis.get(key)
        col.metric(label, fmt.format(value) if value is not None else "-")
    total = kpis.get("total_trains", 0)
    for col, (label, key) in zip(st.columns(len(STATUS_METRICS)), STATUS_METRICS):
        col.metric(label, f"{kpis.get(key, 0)} / {total}")
