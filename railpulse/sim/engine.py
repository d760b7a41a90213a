"""Discrete-event simulation engine.

One ``SimulationEngine`` owns the network, the event queue, the occupancy
arbiter and the ``SimulationState``. Time only moves in :meth:`tick`; every
event due by the new time is applied to completion, one at a time, before
the clock is set. Collaborators read :meth:`snapshot`, which returns copies.
"""
from __future__ import annotations
import copy
import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from railpulse.config import SimConfig
from railpulse.core.errors import DepartureEditRejected, LoadValidationError
from railpulse.core.event_queue import EventId, EventKind, EventQueue
from railpulse.core.models import (
    SYSTEM_ID,
    Disruption,
    Event,
    Location,
    Section,
    SimEvent,
    Station,
    Train,
    TrainStatus,
    section_key,
)
from railpulse.core.network import Network, travel_time
from railpulse.core.occupancy import OccupancyArbiter
from railpulse.sim.loader import Scenario, validate_network
from railpulse.sim.projection import Position, project
from railpulse.sim.summary import train_summary

logger = logging.getLogger(__name__)


class ProgressState(str, Enum):
    ACTIVE = "active"        # events still pending
    FINISHED = "finished"    # queue empty, every train reached its destination
    STALLED = "stalled"      # queue empty but some trains never finished


@dataclass
class SimulationState:
    time: float = 0.0
    trains: Dict[str, Train] = field(default_factory=dict)
    events: List[SimEvent] = field(default_factory=list)
    is_running: bool = False
    speed: float = 1.0
    selected_train_id: Optional[str] = None


@dataclass(frozen=True)
class SimulationSnapshot:
    time: float
    is_running: bool
    speed: float
    selected_train_id: Optional[str]
    progress: str
    trains: Tuple[Train, ...]
    events: Tuple[SimEvent, ...]
    occupancy: Dict[str, str]
    disruptions: Tuple[Disruption, ...]
    positions: Dict[str, Position]

    def train(self, train_id: str) -> Train:
        for t in self.trains:
            if t.train_id == train_id:
                return t
        raise KeyError(train_id)

    @property
    def selected_train(self) -> Optional[Train]:
        if self.selected_train_id is None:
            return None
        return self.train(self.selected_train_id)

    def as_dict(self) -> Dict[str, Any]:
        trains = []
        for t in self.trains:
            d = asdict(t)
            d["status"] = t.status.value
            trains.append(d)
        return {
            "time": self.time,
            "is_running": self.is_running,
            "speed": self.speed,
            "selected_train_id": self.selected_train_id,
            "progress": self.progress,
            "trains": trains,
            "events": [asdict(e) for e in self.events],
            "occupancy": dict(self.occupancy),
            "disruptions": [asdict(d) for d in self.disruptions],
            "positions": {k: asdict(p) for k, p in self.positions.items()},
        }


class SimulationEngine:
    def __init__(self, config: Optional[SimConfig] = None) -> None:
        self.config = config or SimConfig()
        self.network = Network()
        self.queue = EventQueue()
        self.arbiter = OccupancyArbiter(self.network, self.config.retry_interval_s)
        self.state = SimulationState()
        self._scenario = Scenario()
        self._disruptions: List[Disruption] = []
        self._depart_handles: Dict[str, EventId] = {}
        self._ended = False
        self._handlers: Dict[str, Callable[[Event, Optional[Train]], None]] = {
            EventKind.DEPART.value: self._handle_depart,
            EventKind.ENTER_SECTION.value: self._handle_enter_section,
            EventKind.ARRIVE_STATION.value: self._handle_arrive_station,
            EventKind.DISRUPTION_START.value: self._handle_disruption_start,
            EventKind.DISRUPTION_END.value: self._handle_disruption_end,
        }

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def reset(self, stations: Sequence[Station], sections: Sequence[Section], trains: Sequence[Train],
              disruptions: Sequence[Disruption] = ()) -> None:
        """Replace all simulation state with a fresh run over the given data.

        Data is validated first; on failure the current run is left untouched.
        """
        problems = validate_network(stations, sections, trains, disruptions)
        if problems:
            logger.warning("Rejected simulation data (%d problems)", len(problems))
            raise LoadValidationError("Inconsistent network data", problems)

        scenario = Scenario(
            stations=copy.deepcopy(list(stations)),
            sections=copy.deepcopy(list(sections)),
            trains=copy.deepcopy(list(trains)),
            disruptions=copy.deepcopy(list(disruptions)),
        )
        network = Network.build(copy.deepcopy(scenario.stations), copy.deepcopy(scenario.sections))
        for st in network.stations.values():
            st.occupied_platforms = []
        for sec in network.sections.values():
            sec.active_disruptions = []

        run_trains: Dict[str, Train] = {}
        for t in copy.deepcopy(scenario.trains):
            t.status = TrainStatus.WAITING
            t.delay_s = 0
            t.current_section_idx = 0
            t.location = Location.at_station(t.origin)
            t.last_event_time = None
            t.held_since = None
            run_trains[t.train_id] = t

        self._scenario = scenario
        self.network = network
        self.arbiter = OccupancyArbiter(network, self.config.retry_interval_s)
        self.queue.clear()
        self._depart_handles = {}
        self._disruptions = copy.deepcopy(scenario.disruptions)
        self._ended = False
        self.state = SimulationState(
            trains=run_trains,
            events=[SimEvent(0.0, SYSTEM_ID, "SIM_RESET", "n/a", "Simulation reset to initial state.")],
        )

        for i, d in enumerate(self._disruptions):
            self.queue.schedule(d.start_time_s, EventKind.DISRUPTION_START, None, {"index": i})
            self.queue.schedule(d.end_time_s, EventKind.DISRUPTION_END, None, {"index": i})
        for t in run_trains.values():
            self._depart_handles[t.train_id] = self.queue.schedule(t.depart_time_s, EventKind.DEPART, t.train_id)
        logger.info("Simulation reset with %d trains", len(run_trains))

    def load(self, scenario: Scenario) -> None:
        self.reset(scenario.stations, scenario.sections, scenario.trains, scenario.disruptions)

    def restart(self) -> None:
        """Reset to the beginning of the currently loaded data."""
        self.load(self._scenario)

    def start(self) -> bool:
        if self.state.is_running:
            return False
        self.state.is_running = True
        self._log(self.state.time, SYSTEM_ID, "SIM_START", "n/a")
        return True

    def pause(self) -> bool:
        if not self.state.is_running:
            return False
        self.state.is_running = False
        self._log(self.state.time, SYSTEM_ID, "SIM_PAUSE", "n/a")
        return True

    def toggle(self) -> bool:
        if self.state.is_running:
            self.pause()
        else:
            self.start()
        return self.state.is_running

    def set_speed(self, speed: float) -> None:
        lo, hi = self.config.min_speed, self.config.max_speed
        if not lo <= speed <= hi:
            raise ValueError(f"speed must be between {lo:g} and {hi:g}, got {speed:g}")
        self.state.speed = float(speed)

    def select_train(self, train_id: Optional[str]) -> None:
        if train_id is not None and train_id not in self.state.trains:
            raise KeyError(f"Train {train_id} not found")
        self.state.selected_train_id = train_id

    def update_departure(self, train_id: str, depart_time_s: float) -> None:
        """Move a waiting train's departure, cancelling and rescheduling its Depart event."""
        train = self.state.trains.get(train_id)
        if train is None:
            raise KeyError(f"Train {train_id} not found")
        if not math.isfinite(depart_time_s):
            raise DepartureEditRejected(f"Departure for {train_id} must be a finite time, got {depart_time_s!r}")
        handle = self._depart_handles.get(train_id)
        if train.status is not TrainStatus.WAITING or handle is None:
            raise DepartureEditRejected(f"Train {train_id} has already departed")
        if depart_time_s < self.state.time:
            raise DepartureEditRejected(
                f"Departure {depart_time_s:g}s for {train_id} is before the current time {self.state.time:g}s"
            )
        self.queue.cancel(handle)
        old = train.depart_time_s
        train.depart_time_s = depart_time_s
        self._depart_handles[train_id] = self.queue.schedule(depart_time_s, EventKind.DEPART, train_id)
        self._log(self.state.time, train_id, "DEPARTURE_RESCHEDULED", train.origin,
                  f"Departure moved from {old:g}s to {depart_time_s:g}s")

    # ------------------------------------------------------------------
    # Clock / stepper
    # ------------------------------------------------------------------
    def tick(self) -> List[SimEvent]:
        """Advance one tick (``tick_increment_s * speed``) and return the new log records."""
        return self.advance_to(self.state.time + self.config.tick_increment_s * self.state.speed)

    def advance_to(self, new_time: float) -> List[SimEvent]:
        start = len(self.state.events)
        if self._ended and self.queue.is_empty():
            self.state.is_running = False
            return []
        while True:
            head = self.queue.peek()
            if head is None or head.time > new_time:
                break
            self._apply(self.queue.pop())
        self.state.time = new_time
        if self.queue.is_empty():
            self._end_run()
        return self.state.events[start:]

    def run_until(self, max_time: float) -> ProgressState:
        """Tick until the queue drains or ``max_time`` is reached."""
        while self.progress_state is ProgressState.ACTIVE and self.state.time < max_time:
            self.tick()
        return self.progress_state

    @property
    def progress_state(self) -> ProgressState:
        if not self.queue.is_empty():
            return ProgressState.ACTIVE
        if all(t.status is TrainStatus.FINISHED for t in self.state.trains.values()):
            return ProgressState.FINISHED
        return ProgressState.STALLED

    def _end_run(self) -> None:
        if self._ended:
            return
        self._ended = True
        self.state.is_running = False
        self._log(self.state.time, SYSTEM_ID, "SIM_END", "n/a", "Event queue is empty.")
        if self.progress_state is ProgressState.STALLED:
            logger.warning("Simulation stalled at t=%.0fs with unfinished trains", self.state.time)

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------
    def _apply(self, event: Event) -> None:
        handler = self._handlers.get(event.kind)
        assert handler is not None, f"no handler for event kind {event.kind}"
        train: Optional[Train] = None
        if event.train_id is not None:
            train = self.state.trains.get(event.train_id)
            if train is None:
                logger.warning("Discarding %s event for unknown train %s", event.kind, event.train_id)
                return
            if train.status is TrainStatus.FINISHED:
                logger.warning("Discarding %s event for finished train %s", event.kind, event.train_id)
                return
        handler(event, train)

    def _handle_depart(self, event: Event, train: Optional[Train]) -> None:
        assert train is not None
        now = event.time
        self._depart_handles.pop(train.train_id, None)
        train.status = TrainStatus.RUNNING
        train.current_section_idx = 0
        train.last_event_time = now
        self._log(now, train.train_id, "DEPART_JOURNEY", train.origin)
        self.queue.schedule(now, EventKind.ENTER_SECTION, train.train_id, {"u": train.route[0], "v": train.route[1]})

    def _handle_enter_section(self, event: Event, train: Optional[Train]) -> None:
        assert train is not None
        now = event.time
        u, v = event.get("u"), event.get("v")
        key = section_key(u, v)

        blocker = self.arbiter.blocker(u, v)
        if blocker is not None:
            if train.held_since is None:
                train.held_since = now
                self._log(now, train.train_id, "HOLD", f"before {key}", f"Section occupied by {blocker}")
            retry_at = now + self.arbiter.retry_interval_s
            logger.debug("%s blocked on %s by %s, retry at %.0fs", train.train_id, key, blocker, retry_at)
            self.queue.reschedule(event, retry_at)
            return

        if train.held_since is not None:
            waited = now - train.held_since
            train.delay_s += waited
            train.held_since = None
            self._log(now, train.train_id, "RELEASE", key, f"Waited {waited:.0f}s")

        self.arbiter.occupy(u, v, train.train_id)
        section = self.network.section_for(u, v)
        duration = travel_time(train, section, self.config.buffer_factor)
        train.location = Location.on_section(u, v, 0.0)
        train.last_event_time = now
        self._log(now, train.train_id, "ENTER_SECTION", key, f"Travel time {duration:.0f}s")
        self.queue.schedule(now + duration, EventKind.ARRIVE_STATION, train.train_id, {"u": u, "v": v})

    def _handle_arrive_station(self, event: Event, train: Optional[Train]) -> None:
        assert train is not None
        now = event.time
        u, v = event.get("u"), event.get("v")
        self.arbiter.release(u, v, train.train_id)

        train.current_section_idx += 1
        idx = train.current_section_idx
        assert train.route[idx] == v, f"{train.train_id} arrived at {v}, route expects {train.route[idx]}"
        train.location = Location.at_station(v)
        train.last_event_time = now

        if idx == len(train.route) - 1:
            train.status = TrainStatus.FINISHED
            self._log(now, train.train_id, "ARRIVE_FINAL", v, f"Total delay={train.delay_s:.0f}s")
            return

        self._log(now, train.train_id, "ARRIVE_STATION", v)
        dwell = self.network.dwell_time(v, self.config.default_dwell_s)
        self._log(now, train.train_id, "DEPART_STATION", v, f"Dwell for {dwell:.0f}s")
        self.queue.schedule(now + dwell, EventKind.ENTER_SECTION, train.train_id, {"u": v, "v": train.route[idx + 1]})

    def _disruption_sections(self, d: Disruption) -> List[Section]:
        out = []
        for a, b in ((d.section_u, d.section_v), (d.section_v, d.section_u)):
            sec = self.network.sections.get(section_key(a, b))
            if sec is not None and sec not in out:
                out.append(sec)
        return out

    def _handle_disruption_start(self, event: Event, train: Optional[Train]) -> None:
        d = self._disruptions[event.get("index")]
        for sec in self._disruption_sections(d):
            sec.active_disruptions.append(d)
        self._log(event.time, SYSTEM_ID, "DISRUPTION_START", d.key,
                  f"Speed factor {d.speed_factor:.2f} until {d.end_time_s:g}s")

    def _handle_disruption_end(self, event: Event, train: Optional[Train]) -> None:
        d = self._disruptions[event.get("index")]
        for sec in self._disruption_sections(d):
            sec.active_disruptions = [x for x in sec.active_disruptions if x is not d]
        self._log(event.time, SYSTEM_ID, "DISRUPTION_END", d.key)

    def _log(self, time: float, train_id: str, event: str, location: str, reason: Optional[str] = None) -> None:
        self.state.events.append(SimEvent(time, train_id, event, location, reason))
        logger.debug("t=%.1f %s %s at %s%s", time, train_id, event, location, f" | {reason}" if reason else "")

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    def describe_train(self, train_id: str) -> Dict[str, Any]:
        """Textual summary of one train for advisory tools."""
        snap = self.snapshot()
        return train_summary(snap.train(train_id), self.network, snap.trains,
                             self.config.buffer_factor, self.config.default_dwell_s)

    def snapshot(self) -> SimulationSnapshot:
        now = self.state.time
        trains = tuple(copy.deepcopy(list(self.state.trains.values())))
        positions = {t.train_id: project(t, self.network, now, self.config.buffer_factor) for t in trains}
        active = self.network.active_disruptions()
        return SimulationSnapshot(
            time=now,
            is_running=self.state.is_running,
            speed=self.state.speed,
            selected_train_id=self.state.selected_train_id,
            progress=self.progress_state.value,
            trains=trains,
            events=tuple(self.state.events),
            occupancy=dict(self.arbiter.occupancy()),
            disruptions=tuple(copy.deepcopy(active)),
            positions=positions,
        )
