"""Plain-text summaries handed to advisory tools.

Advisory collaborators never get live engine objects; they get the strings
and plain fields produced here from a snapshot's copies.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List

from railpulse.core.models import Disruption, Train, TrainStatus
from railpulse.core.network import BUFFER_FACTOR, DEFAULT_DWELL_S, Network, disruptions_on_route, planned_arrival


def describe_disruption(d: Disruption) -> str:
    return (f"Section {d.key}: speed factor {d.speed_factor:.2f} "
            f"from {d.start_time_s:g}s to {d.end_time_s:g}s")


def disruption_summary(disruptions: Iterable[Disruption]) -> str:
    lines = [describe_disruption(d) for d in disruptions]
    if not lines:
        return "No active disruptions."
    return "\n".join(lines)


def realtime_events(trains: Iterable[Train], disruptions: Iterable[Disruption]) -> str:
    parts: List[str] = [describe_disruption(d) for d in disruptions]
    for t in trains:
        if t.is_held and t.location is not None:
            nxt = t.route[t.current_section_idx + 1] if t.current_section_idx + 1 < len(t.route) else t.destination
            parts.append(f"Train {t.train_id} held at {t.location.label} waiting for {t.location.label}-{nxt}")
    if not parts:
        return "No major disruptions reported."
    return "; ".join(parts)


def train_summary(train: Train, network: Network, trains: Iterable[Train] = (),
                  buffer_factor: float = BUFFER_FACTOR, default_dwell: float = DEFAULT_DWELL_S) -> Dict[str, Any]:
    """Fields and text describing one train's location, route and schedule."""
    loc = train.location.label if train.location is not None else train.origin
    route_so_far = "|".join(train.route[: train.current_section_idx + 1])
    arrival = planned_arrival(train, network, buffer_factor, default_dwell)
    route_disruptions = disruptions_on_route(train, network)

    status = train.status.value
    if train.status is TrainStatus.RUNNING and train.is_held:
        status = "held"
    text = (
        f"Train {train.train_id} ({train.category}, priority {train.priority}) is {status} "
        f"at {loc}. Route {'|'.join(train.route)}, travelled {route_so_far}. "
        f"Scheduled departure {train.depart_time_s:g}s, planned arrival {arrival:.0f}s, "
        f"accumulated delay {float(train.delay_s):.0f}s."
    )
    return {
        "train_id": train.train_id,
        "status": status,
        "current_location": loc,
        "route_so_far": route_so_far,
        "scheduled_departure_s": train.depart_time_s,
        "scheduled_arrival_time_s": round(arrival, 1),
        "delay_s": float(train.delay_s),
        "route_disruptions": disruption_summary(route_disruptions),
        "realtime_events": realtime_events(trains, network.active_disruptions()),
        "text": text,
    }
