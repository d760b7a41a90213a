"""External loader: turns raw station/section/train records into engine input.

Records are validated with pydantic, double-line sections are expanded into
two directional entries, and the whole data set is cross-checked before the
engine ever sees it. Any problem raises :class:`LoadValidationError`.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from railpulse.config import SimConfig
from railpulse.core.errors import LoadValidationError
from railpulse.core.models import Disruption, Section, Station, Train, section_key
from railpulse.core.network import Network

logger = logging.getLogger(__name__)


class StationIn(BaseModel):
    code: str
    name: str
    has_loop: bool = True
    num_loops: int = 1
    num_platforms: int = 1
    max_train_len_m: int = 700
    is_junction: bool = False
    dwell_mean_s: Optional[float] = Field(default=60, ge=0)
    dwell_std_dev_s: float = 5


class SectionIn(BaseModel):
    u: str
    v: str
    line_type: Literal["single", "double"] = "single"
    length_km: float = Field(gt=0)
    vmax_kmph: float = Field(gt=0)
    signalling: str = "absolute"
    gradient: float = 0.0


class TrainIn(BaseModel):
    train_id: str
    category: str = "passenger"
    priority: int = 1
    vmax_kmph: float = Field(gt=0)
    acceleration_ms2: float = 0.5
    base_deceleration_ms2: float = 0.7
    length_m: int = 500
    route: List[str]
    depart_time_s: float = Field(default=0, ge=0)

    @field_validator("route", mode="before")
    @classmethod
    def _split_route(cls, v: Any) -> Any:
        # CSV-style exports carry the route as "SBC|YPR|TK"
        if isinstance(v, str):
            return [p.strip() for p in v.split("|") if p.strip()]
        return v


class DisruptionIn(BaseModel):
    section_u: str
    section_v: str
    start_time_s: float = Field(ge=0)
    end_time_s: float
    speed_factor: float = Field(gt=0, le=1)


@dataclass
class Scenario:
    """Engine-ready data: sections already directional."""
    stations: List[Station] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)
    trains: List[Train] = field(default_factory=list)
    disruptions: List[Disruption] = field(default_factory=list)


M = TypeVar("M", bound=BaseModel)


def _parse(model: Type[M], records: Iterable[Any], label: str) -> List[M]:
    out: List[M] = []
    problems: List[str] = []
    if records is None:
        records = []
    if isinstance(records, dict):
        raise LoadValidationError(f"{label} must be a list of records")
    for i, rec in enumerate(records):
        try:
            out.append(model.model_validate(rec))
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(p) for p in err.get("loc", ()))
                problems.append(f"{label}[{i}].{loc}: {err.get('msg')}")
    if problems:
        raise LoadValidationError(f"Invalid {label}", problems)
    return out


def expand_sections(sections: Iterable[SectionIn]) -> List[Section]:
    out: List[Section] = []
    for s in sections:
        data = s.model_dump()
        out.append(Section(**data))
        if s.line_type == "double":
            out.append(Section(**{**data, "u": s.v, "v": s.u}))
    return out


def validate_network(stations: Sequence[Station], sections: Sequence[Section], trains: Sequence[Train],
                     disruptions: Sequence[Disruption] = ()) -> List[str]:
    """Cross-record consistency checks. Returns a list of problems (empty when valid)."""
    problems: List[str] = []
    codes = set()
    for st in stations:
        if st.code in codes:
            problems.append(f"duplicate station code {st.code}")
        codes.add(st.code)

    keys = set()
    for sec in sections:
        if sec.key in keys:
            problems.append(f"duplicate section {sec.key}")
        keys.add(sec.key)
        if sec.u == sec.v:
            problems.append(f"section {sec.key} starts and ends at the same station")
        for end in (sec.u, sec.v):
            if end not in codes:
                problems.append(f"section {sec.key} references unknown station {end}")
        if sec.line_type not in ("single", "double"):
            problems.append(f"section {sec.key} has unknown line_type {sec.line_type!r}")
        if sec.length_km <= 0 or sec.vmax_kmph <= 0:
            problems.append(f"section {sec.key} needs positive length and speed")

    network = Network.build(stations, sections)
    ids = set()
    for t in trains:
        if t.train_id in ids:
            problems.append(f"duplicate train id {t.train_id}")
        ids.add(t.train_id)
        if t.vmax_kmph <= 0:
            problems.append(f"train {t.train_id} needs a positive vmax_kmph")
        if len(t.route) < 2:
            problems.append(f"train {t.train_id} route must contain at least two stations")
            continue
        unknown = [c for c in t.route if c not in codes]
        if unknown:
            problems.append(f"train {t.train_id} route references unknown station(s) {', '.join(unknown)}")
            continue
        for a, b in zip(t.route, t.route[1:]):
            if network.resolve(a, b) is None:
                problems.append(f"train {t.train_id} route leg {section_key(a, b)} has no section")

    for d in disruptions:
        if network.resolve(d.section_u, d.section_v) is None:
            problems.append(f"disruption references unknown section {d.key}")
        if d.end_time_s <= d.start_time_s:
            problems.append(f"disruption on {d.key} ends before it starts")
    return problems


def build_scenario(stations: Iterable[Dict[str, Any]], sections: Iterable[Dict[str, Any]],
                   trains: Iterable[Dict[str, Any]], disruptions: Optional[Iterable[Dict[str, Any]]] = None) -> Scenario:
    st_in = _parse(StationIn, stations, "stations")
    sec_in = _parse(SectionIn, sections, "sections")
    tr_in = _parse(TrainIn, trains, "trains")
    dis_in = _parse(DisruptionIn, disruptions or [], "disruptions")

    scenario = Scenario(
        stations=[Station(**s.model_dump()) for s in st_in],
        sections=expand_sections(sec_in),
        trains=[Train(**t.model_dump()) for t in tr_in],
        disruptions=[Disruption(**d.model_dump()) for d in dis_in],
    )
    problems = validate_network(scenario.stations, scenario.sections, scenario.trains, scenario.disruptions)
    if problems:
        raise LoadValidationError("Inconsistent network data", problems)
    logger.info(
        "Loaded %d stations, %d directional sections, %d trains, %d disruptions",
        len(scenario.stations), len(scenario.sections), len(scenario.trains), len(scenario.disruptions),
    )
    return scenario


def _read_json(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise LoadValidationError(f"Data file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise LoadValidationError(f"Invalid JSON in {path}: {e}") from e


def load_json_files(stations_path: Path, sections_path: Path, trains_path: Path,
                    disruptions_path: Optional[Path] = None) -> Scenario:
    disruptions = None
    if disruptions_path is not None:
        if Path(disruptions_path).exists():
            disruptions = _read_json(disruptions_path)
        else:
            logger.info("Disruption file not found at %s. Running without scheduled disruptions.", disruptions_path)
    return build_scenario(
        _read_json(stations_path),
        _read_json(sections_path),
        _read_json(trains_path),
        disruptions,
    )


def load_default_scenario(data_dir: Optional[Path] = None) -> Scenario:
    base = Path(data_dir or SimConfig().data_dir)
    return load_json_files(
        base / "stations.json",
        base / "sections.json",
        base / "trains.json",
        base / "disruptions.json",
    )
