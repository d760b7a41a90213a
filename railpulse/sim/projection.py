from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from railpulse.core.models import Train, section_key
from railpulse.core.network import BUFFER_FACTOR, Network, travel_time


@dataclass(frozen=True)
class Position:
    """Renderable position of a train; derived, never fed back into the simulation."""
    train_id: str
    kind: str  # "station" | "section"
    code: Optional[str] = None
    u: Optional[str] = None
    v: Optional[str] = None
    progress: float = 0.0

    @property
    def label(self) -> str:
        if self.kind == "station":
            return str(self.code)
        return section_key(str(self.u), str(self.v))


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def project(train: Train, network: Network, now: float, buffer_factor: float = BUFFER_FACTOR) -> Position:
    loc = train.location
    if loc is None or loc.kind == "station":
        code = loc.code if loc is not None else train.origin
        return Position(train_id=train.train_id, kind="station", code=code)

    section = network.section_for(str(loc.u), str(loc.v))
    duration = travel_time(train, section, buffer_factor)
    started = train.last_event_time if train.last_event_time is not None else now
    progress = clamp((now - started) / duration) if duration > 0 else 1.0
    return Position(train_id=train.train_id, kind="section", u=loc.u, v=loc.v, progress=progress)
