from typing import Any, Dict, Iterable, List

from railpulse.core.models import Train, TrainStatus

# Aggregates over a snapshot's trains (copies; nothing here touches the engine)


def finished_trains(trains: Iterable[Train]) -> List[Train]:
    return [t for t in trains if t.status is TrainStatus.FINISHED]


def average_delay(trains: Iterable[Train]) -> float:
    """Average accumulated delay of finished trains, in seconds."""
    done = finished_trains(trains)
    if not done:
        return 0.0
    return sum(float(t.delay_s) for t in done) / len(done)


def throughput(num_trains: int, time_window_s: float) -> float:
    """Trains per hour."""
    if time_window_s <= 0:
        return 0.0
    return (num_trains * 3600) / time_window_s


def delay_by_train(trains: Iterable[Train]) -> List[Dict[str, Any]]:
    rows = [{"train_id": t.train_id, "delay_s": float(t.delay_s), "priority": t.priority} for t in finished_trains(trains)]
    return sorted(rows, key=lambda r: r["delay_s"], reverse=True)


def summarize_run(trains: Iterable[Train], time_s: float) -> Dict[str, Any]:
    trains = list(trains)
    if not trains:
        return {"total_trains": 0, "finished": 0, "running": 0, "waiting": 0, "held": 0,
                "avg_delay_s": 0.0, "throughput_per_hour": 0.0, "sim_time_s": time_s}
    done = finished_trains(trains)
    return {
        "total_trains": len(trains),
        "finished": len(done),
        "running": sum(1 for t in trains if t.status is TrainStatus.RUNNING),
        "waiting": sum(1 for t in trains if t.status is TrainStatus.WAITING),
        "held": sum(1 for t in trains if t.is_held),
        "avg_delay_s": round(average_delay(done), 1),
        "throughput_per_hour": round(throughput(len(done), time_s), 2),
        "sim_time_s": time_s,
    }
