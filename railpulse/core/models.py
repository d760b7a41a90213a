from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

Seconds = float

SYSTEM_ID = "System"


class TrainStatus(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    FINISHED = "finished"


class LineType(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"


@dataclass
class Disruption:
    """A time-windowed speed restriction on one section."""
    section_u: str
    section_v: str
    start_time_s: Seconds
    end_time_s: Seconds
    speed_factor: float

    @property
    def key(self) -> str:
        return section_key(self.section_u, self.section_v)


@dataclass
class Station:
    code: str
    name: str
    has_loop: bool = True
    num_loops: int = 1
    num_platforms: int = 1
    max_train_len_m: int = 700
    is_junction: bool = False
    dwell_mean_s: Optional[Seconds] = 60
    # Reserved: dwell sampling always uses the mean
    dwell_std_dev_s: Seconds = 5
    occupied_platforms: List[str] = field(default_factory=list)


@dataclass
class Section:
    u: str
    v: str
    line_type: str
    length_km: float
    vmax_kmph: float
    signalling: str = "absolute"
    gradient: float = 0.0
    active_disruptions: List[Disruption] = field(default_factory=list)

    @property
    def key(self) -> str:
        return section_key(self.u, self.v)

    @property
    def is_single_line(self) -> bool:
        return self.line_type == LineType.SINGLE.value


@dataclass(frozen=True)
class Location:
    """Either "at station <code>" or "on section u->v with progress p"."""
    kind: str  # "station" | "section"
    code: Optional[str] = None
    u: Optional[str] = None
    v: Optional[str] = None
    progress: float = 0.0

    @classmethod
    def at_station(cls, code: str) -> "Location":
        return cls(kind="station", code=code)

    @classmethod
    def on_section(cls, u: str, v: str, progress: float = 0.0) -> "Location":
        return cls(kind="section", u=u, v=v, progress=progress)

    @property
    def label(self) -> str:
        if self.kind == "station":
            return str(self.code)
        return section_key(str(self.u), str(self.v))


@dataclass
class Train:
    train_id: str
    category: str
    priority: int
    vmax_kmph: float
    acceleration_ms2: float
    base_deceleration_ms2: float
    length_m: int
    route: List[str]
    depart_time_s: Seconds = 0
    delay_s: Seconds = 0
    status: TrainStatus = TrainStatus.WAITING
    # Transient simulation fields, reinitialised on reset
    current_section_idx: int = 0
    location: Optional[Location] = None
    last_event_time: Optional[Seconds] = None
    # Set while an EnterSection is being deferred (the HELD condition)
    held_since: Optional[Seconds] = None

    @property
    def origin(self) -> str:
        return self.route[0]

    @property
    def destination(self) -> str:
        return self.route[-1]

    @property
    def is_held(self) -> bool:
        return self.held_since is not None


@dataclass(frozen=True)
class SimEvent:
    time: Seconds
    train_id: str
    event: str
    location: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class Event:
    """A scheduled transition. Payload holds plain values keyed by train id, never live objects."""
    time: Seconds
    seq: int
    kind: str
    train_id: Optional[str]
    payload: Tuple[Tuple[str, Any], ...] = ()

    def get(self, name: str, default: Any = None) -> Any:
        for k, v in self.payload:
            if k == name:
                return v
        return default

    def as_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "seq": self.seq, "kind": self.kind, "train_id": self.train_id, "payload": dict(self.payload)}


def section_key(u: str, v: str) -> str:
    return f"{u}-{v}"
