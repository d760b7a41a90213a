import argparse
import logging
from pathlib import Path

import uvicorn

from railpulse.config import SimConfig
from railpulse.sim.analytics import delay_by_train, summarize_run
from railpulse.sim.engine import SimulationEngine
from railpulse.sim.loader import load_default_scenario, load_json_files


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run a RailPulse simulation headless until the event queue drains.")
    p.add_argument("--data-dir", type=Path, default=None, help="Directory with stations/sections/trains JSON")
    p.add_argument("--speed", type=float, default=10.0, help="Speed multiplier per tick")
    p.add_argument("--max-time", type=float, default=24 * 3600, help="Stop after this many simulated seconds")
    p.add_argument("--events", type=int, default=20, help="Print the last N log records")
    return p.parse_args(argv)


def main(argv=None) -> int:
    cfg = SimConfig()
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)

    if args.data_dir is not None:
        base = args.data_dir
        scenario = load_json_files(base / "stations.json", base / "sections.json", base / "trains.json",
                                   base / "disruptions.json")
    else:
        scenario = load_default_scenario()

    engine = SimulationEngine(cfg)
    engine.load(scenario)
    engine.set_speed(args.speed)
    outcome = engine.run_until(args.max_time)

    snap = engine.snapshot()
    print("Outcome:", outcome.value)
    print("KPIs:", summarize_run(snap.trains, snap.time))
    for row in delay_by_train(snap.trains):
        print(f"  - {row['train_id']} (priority {row['priority']}): {row['delay_s']:.0f}s delay")
    print(f"Last {args.events} events:")
    for e in snap.events[-args.events:]:
        line = f"[t={e.time:8.1f}] {e.train_id} {e.event} at {e.location}"
        if e.reason:
            line += f" | {e.reason}"
        print(line)
    return 0


def serve(argv=None) -> None:
    """Serve the HTTP API with uvicorn."""
    cfg = SimConfig()
    p = argparse.ArgumentParser(description="Serve the RailPulse simulation API.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--reload", action="store_true")
    args = p.parse_args(argv)
    uvicorn.run("railpulse.api:app", host=args.host, port=args.port, reload=args.reload,
                log_level=cfg.log_level.lower())


if __name__ == "__main__":
    raise SystemExit(main())
