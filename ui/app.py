import json
import os, sys
import time
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import pandas as pd
import streamlit as st

from ui.api_client import ApiClient
from ui.state_manager import ensure_defaults, log_action, recent_actions
from ui.components.kpi_display import render_kpis
from ui.components.delay_chart import render_delay_chart

st.set_page_config(page_title="RailPulse", layout="wide")
ensure_defaults()
api = ApiClient()

st.title("RailPulse – Network Simulation")

try:
    snap = api.get_snapshot(events_limit=int(st.session_state.events_limit))
except Exception as e:
    st.error(f"API unavailable at {api.base_url}: {e}")
    st.stop()

# Controls
col_top = st.columns([1, 1, 1, 3, 1])
with col_top[0]:
    label = "Pause" if snap.get("is_running") else "Start"
    if st.button(label, type="primary"):
        r = api.toggle()
        log_action(f"{label} -> running={r.get('is_running')}")
        st.rerun()
with col_top[1]:
    if st.button("Step"):
        api.tick(1)
        st.rerun()
with col_top[2]:
    if st.button("Restart"):
        api.restart()
        log_action("Restarted simulation")
        st.rerun()
with col_top[3]:
    speed = st.slider("Speed", min_value=1, max_value=100, value=int(snap.get("speed", 1)))
    if speed != int(snap.get("speed", 1)):
        r = api.set_speed(speed)
        if "error" in r:
            st.error(r["error"])
        else:
            log_action(f"Speed set to {speed}x")
with col_top[4]:
    st.session_state.auto_refresh = st.toggle("Auto refresh", value=st.session_state.auto_refresh)

st.caption(f"t = {snap.get('time', 0):.0f}s · state: {snap.get('progress')} · running: {snap.get('is_running')}")

tab_trains, tab_log, tab_analytics, tab_data = st.tabs(["Trains", "Event Log", "Analytics", "Data"])

with tab_trains:
    trains = snap.get("trains", [])
    positions = snap.get("positions", {})
    rows = []
    for t in trains:
        pos = positions.get(t["train_id"], {})
        where = pos.get("code") if pos.get("kind") == "station" else f"{pos.get('u')}-{pos.get('v')} ({pos.get('progress', 0):.0%})"
        rows.append({
            "train": t["train_id"],
            "category": t["category"],
            "priority": t["priority"],
            "status": "held" if t.get("held_since") is not None else t["status"],
            "position": where,
            "route": "|".join(t["route"]),
            "depart_s": t["depart_time_s"],
            "delay_s": t["delay_s"],
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    ids = [t["train_id"] for t in trains]
    if ids:
        current = snap.get("selected_train_id")
        sel = st.selectbox("Train details", ids, index=ids.index(current) if current in ids else 0)
        if sel != current:
            api.select_train(sel)
        detail = next(t for t in trains if t["train_id"] == sel)
        c1, c2 = st.columns(2)
        with c1:
            st.json(detail)
        with c2:
            new_dep = st.number_input("Scheduled departure (s)", min_value=0, value=int(detail["depart_time_s"]), step=60)
            if st.button("Update departure"):
                r = api.update_departure(sel, new_dep)
                if "error" in r:
                    st.error(r["error"])
                else:
                    log_action(f"Departure of {sel} moved to {new_dep}s")
                    st.success("Departure rescheduled")
            summary = api.train_summary(sel)
            st.subheader("Advisory summary")
            st.write(summary.get("text", summary.get("error")))
            st.caption(summary.get("realtime_events", ""))

with tab_log:
    events = list(reversed(snap.get("events", [])))
    st.dataframe(pd.DataFrame(events), use_container_width=True, hide_index=True)

with tab_analytics:
    data = api.get_analytics()
    render_kpis(data.get("kpis", {}))
    fig = render_delay_chart(data.get("delay_by_train", []))
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No finished trains yet.")
    st.text(api.disruption_summary().get("summary", ""))

with tab_data:
    st.write("Upload stations, sections and trains JSON files (disruptions optional).")
    f_st = st.file_uploader("Stations", type="json")
    f_sec = st.file_uploader("Sections", type="json")
    f_tr = st.file_uploader("Trains", type="json")
    f_dis = st.file_uploader("Disruptions", type="json")
    cA, cB = st.columns(2)
    if cA.button("Load custom data"):
        if not (f_st and f_sec and f_tr):
            st.error("Please select all three JSON files.")
        else:
            try:
                r = api.reset(
                    stations=json.loads(f_st.getvalue()),
                    sections=json.loads(f_sec.getvalue()),
                    trains=json.loads(f_tr.getvalue()),
                    disruptions=json.loads(f_dis.getvalue()) if f_dis else None,
                )
            except json.JSONDecodeError as e:
                st.error(f"Invalid JSON: {e}")
                st.stop()
            if "error" in r:
                st.error(r["error"])
                for p in r.get("problems", []):
                    st.write(f"- {p}")
            else:
                log_action("Loaded custom data")
                st.success(f"Loaded {r.get('trains')} trains")
    if cB.button("Reset to default data"):
        api.reset()
        log_action("Reset to default data")
        st.rerun()
    st.write(recent_actions())

if st.session_state.auto_refresh and snap.get("is_running"):
    time.sleep(1.0)
    st.rerun()
