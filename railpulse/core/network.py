from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from railpulse.core.models import Disruption, Section, Station, Train, section_key

DEFAULT_DWELL_S = 60
# Fixed schedule padding applied on top of the pure running time
BUFFER_FACTOR = 1.2


@dataclass
class Network:
    """Static stations and directional sections for one run.

    Sections are keyed ``"u-v"``. A double-line link is two entries; a
    single-line link may be a single entry, in which case it is also used
    for travel in the reverse direction.
    """
    stations: Dict[str, Station] = field(default_factory=dict)
    sections: Dict[str, Section] = field(default_factory=dict)

    @classmethod
    def build(cls, stations: Iterable[Station], sections: Iterable[Section]) -> "Network":
        return cls(
            stations={s.code: s for s in stations},
            sections={s.key: s for s in sections},
        )

    def station(self, code: str) -> Station:
        return self.stations[code]

    def resolve(self, u: str, v: str) -> Optional[Section]:
        """Section a train uses to travel u->v, or None if the stations are not linked."""
        sec = self.sections.get(section_key(u, v))
        if sec is not None:
            return sec
        rev = self.sections.get(section_key(v, u))
        if rev is not None and rev.is_single_line:
            return rev
        return None

    def section_for(self, u: str, v: str) -> Section:
        sec = self.resolve(u, v)
        if sec is None:
            # Validated input never gets here
            raise KeyError(f"Section {section_key(u, v)} not found")
        return sec

    def route_sections(self, route: List[str]) -> List[Section]:
        return [self.section_for(a, b) for a, b in zip(route, route[1:])]

    def dwell_time(self, code: str, default: float = DEFAULT_DWELL_S) -> float:
        st = self.stations.get(code)
        if st is None or not st.dwell_mean_s:
            return default
        return float(st.dwell_mean_s)

    def active_disruptions(self) -> List[Disruption]:
        out: List[Disruption] = []
        for sec in self.sections.values():
            # Double-line restrictions sit on both directional entries
            out.extend(d for d in sec.active_disruptions if d not in out)
        return out


def travel_time(train: Train, section: Section, buffer_factor: float = BUFFER_FACTOR) -> float:
    """Seconds to traverse ``section``: (length / vmax) * 3600 * buffer.

    vmax is the lower of the train's and the section's limit. Disruption
    speed factors are not applied.
    """
    vmax = min(train.vmax_kmph, section.vmax_kmph)
    return (section.length_km / vmax) * 3600 * buffer_factor


def planned_arrival(train: Train, network: Network, buffer_factor: float = BUFFER_FACTOR,
                    default_dwell: float = DEFAULT_DWELL_S) -> float:
    """Uncontended arrival time at the destination, used as the timetable reference."""
    t = float(train.depart_time_s)
    legs = network.route_sections(train.route)
    for i, sec in enumerate(legs):
        t += travel_time(train, sec, buffer_factor)
        if i < len(legs) - 1:
            t += network.dwell_time(train.route[i + 1], default_dwell)
    return t


def disruptions_on_route(train: Train, network: Network) -> List[Disruption]:
    out: List[Disruption] = []
    for sec in network.route_sections(train.route):
        for d in sec.active_disruptions:
            if d not in out:
                out.append(d)
    return out
