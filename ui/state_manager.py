from __future__ import annotations
import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from typing import List
import streamlit as st


def ensure_defaults() -> None:
    if "auto_refresh" not in st.session_state:
        st.session_state.auto_refresh = False
    if "events_limit" not in st.session_state:
        st.session_state.events_limit = 200
    if "action_log" not in st.session_state:
        st.session_state.action_log = []  # list of strings


def log_action(msg: str) -> None:
    st.session_state.action_log.append(msg)


def recent_actions(n: int = 10) -> List[str]:
    return list(st.session_state.get("action_log", []))[-n:]
