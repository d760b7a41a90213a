import logging
from dataclasses import asdict
from fastapi import FastAPI, Query
from fastapi.responses import RedirectResponse, Response
from pydantic import BaseModel, Field
from typing import Any, Dict, List

from railpulse.config import SimConfig
from railpulse.core.errors import DepartureEditRejected, LoadValidationError
from railpulse.sim.analytics import delay_by_train, summarize_run
from railpulse.sim.engine import SimulationEngine
from railpulse.sim.loader import build_scenario, load_default_scenario
from railpulse.sim.runner import SimulationRunner
from railpulse.sim.summary import disruption_summary

logger = logging.getLogger(__name__)

app = FastAPI(title="RailPulse Simulation API")
engine = SimulationEngine(SimConfig())
engine.load(load_default_scenario())
runner = SimulationRunner(engine)


class ResetRequest(BaseModel):
    stations: List[Dict[str, Any]]
    sections: List[Dict[str, Any]]
    trains: List[Dict[str, Any]]
    disruptions: List[Dict[str, Any]] | None = None


class SpeedIn(BaseModel):
    speed: float


class SelectIn(BaseModel):
    train_id: str | None = None


class DepartureIn(BaseModel):
    depart_time_s: float = Field(ge=0, allow_inf_nan=False)


def _error(e: Exception) -> Dict[str, Any]:
    out: Dict[str, Any] = {"error": str(e)}
    problems = getattr(e, "problems", None)
    if problems:
        out["problems"] = problems
    return out


@app.get("/")
async def root() -> RedirectResponse:
    # Redirect base URL to interactive docs to avoid 404 confusion
    return RedirectResponse(url="/docs")


@app.get("/favicon.ico")
async def favicon() -> Response:
    return Response(status_code=204)


@app.get("/snapshot")
async def snapshot(events_limit: int | None = None) -> Dict[str, Any]:
    """Read-only copy of the simulation state sampled after the last tick."""
    data = engine.snapshot().as_dict()
    if events_limit is not None and events_limit >= 0:
        data["events"] = data["events"][-events_limit:] if events_limit else []
    return data


@app.post("/simulation/reset")
async def reset(body: ResetRequest | None = None) -> Dict[str, Any]:
    """Reset with new stations/sections/trains, or with the bundled data when no body is sent.

    Invalid data is rejected and the current run keeps going unchanged.
    """
    try:
        if body is None:
            scenario = load_default_scenario()
        else:
            scenario = build_scenario(body.stations, body.sections, body.trains, body.disruptions)
    except LoadValidationError as e:
        logger.warning("Reset rejected: %s", e)
        return _error(e)
    await runner.stop()
    engine.load(scenario)
    return {"reset": True, "trains": len(scenario.trains), "time": engine.state.time}


@app.post("/simulation/restart")
async def restart() -> Dict[str, Any]:
    await runner.stop()
    engine.restart()
    return {"reset": True, "time": engine.state.time}


@app.post("/simulation/start")
async def start() -> Dict[str, Any]:
    changed = runner.start()
    return {"is_running": engine.state.is_running, "changed": changed}


@app.post("/simulation/pause")
async def pause() -> Dict[str, Any]:
    changed = await runner.pause()
    return {"is_running": engine.state.is_running, "changed": changed}


@app.post("/simulation/toggle")
async def toggle() -> Dict[str, Any]:
    running = await runner.toggle()
    return {"is_running": running}


@app.post("/simulation/tick")
async def tick(count: int = Query(1, ge=0, le=10000)) -> Dict[str, Any]:
    """Advance the clock manually by ``count`` ticks."""
    new_events = []
    for _ in range(count):
        new_events.extend(engine.tick())
    return {
        "time": engine.state.time,
        "progress": engine.progress_state.value,
        "events": [asdict(e) for e in new_events],
    }


@app.post("/simulation/speed")
async def set_speed(body: SpeedIn) -> Dict[str, Any]:
    try:
        engine.set_speed(body.speed)
    except ValueError as e:
        return _error(e)
    return {"speed": engine.state.speed}


@app.post("/simulation/select")
async def select_train(body: SelectIn) -> Dict[str, Any]:
    try:
        engine.select_train(body.train_id)
    except KeyError:
        return {"error": f"train {body.train_id} not found"}
    return {"selected_train_id": engine.state.selected_train_id}


@app.patch("/trains/{train_id}/departure")
async def update_departure(train_id: str, body: DepartureIn) -> Dict[str, Any]:
    try:
        engine.update_departure(train_id, body.depart_time_s)
    except KeyError:
        return {"error": f"train {train_id} not found"}
    except DepartureEditRejected as e:
        return _error(e)
    return {"train_id": train_id, "depart_time_s": body.depart_time_s, "rescheduled": True}


@app.get("/trains/{train_id}/summary")
async def train_summary(train_id: str) -> Dict[str, Any]:
    try:
        return engine.describe_train(train_id)
    except KeyError:
        return {"error": f"train {train_id} not found"}


@app.get("/analytics")
async def analytics() -> Dict[str, Any]:
    snap = engine.snapshot()
    return {
        "kpis": summarize_run(snap.trains, snap.time),
        "delay_by_train": delay_by_train(snap.trains),
    }


@app.get("/disruptions/summary")
async def disruptions_summary() -> Dict[str, Any]:
    snap = engine.snapshot()
    return {"count": len(snap.disruptions), "summary": disruption_summary(snap.disruptions)}
