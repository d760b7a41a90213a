"""Random corridor generator: writes stations/sections/trains/disruptions JSON for RailPulse."""
import argparse, random, json, os, sys
from typing import List, Dict

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


def build_stations(n: int) -> List[Dict]:
    out: List[Dict] = []
    for i in range(n):
        out.append({
            "code": f"ST{i+1:02d}",
            "name": f"Station {i+1}",
            "num_loops": random.randint(0, 3),
            "num_platforms": random.randint(1, 6),
            "is_junction": random.random() < 0.15,
            "dwell_mean_s": random.choice([30, 60, 90, 120, 180]),
            "dwell_std_dev_s": 10,
        })
    return out


def build_sections(codes: List[str], single_share: float) -> List[Dict]:
    out: List[Dict] = []
    for a, b in zip(codes, codes[1:]):
        out.append({
            "u": a,
            "v": b,
            "line_type": "single" if random.random() < single_share else "double",
            "length_km": round(random.uniform(4, 60), 1),
            "vmax_kmph": random.choice([60, 80, 100, 110, 130]),
            "signalling": random.choice(["absolute", "automatic"]),
            "gradient": round(random.uniform(-0.5, 0.5), 2),
        })
    return out


def build_trains(n: int, codes: List[str], stagger: int) -> List[Dict]:
    trains: List[Dict] = []
    for i in range(n):
        length = random.randint(2, len(codes))
        start = random.randint(0, len(codes) - length)
        route = codes[start:start + length]
        if random.random() < 0.5:
            route = list(reversed(route))
        category = random.choice(["express", "passenger", "goods"])
        trains.append({
            "train_id": f"T{i+1}",
            "category": category,
            "priority": {"express": 1, "passenger": 2, "goods": 3}[category],
            "vmax_kmph": {"express": 130, "passenger": 100, "goods": 75}[category],
            "acceleration_ms2": 0.4,
            "base_deceleration_ms2": 0.7,
            "length_m": random.randint(200, 700),
            "route": route,
            "depart_time_s": i * 60 + random.randint(0, stagger),
        })
    return trains


def build_disruptions(sections: List[Dict], count: int, horizon: int) -> List[Dict]:
    out: List[Dict] = []
    for _ in range(count):
        s = random.choice(sections)
        start = random.randint(0, horizon)
        out.append({
            "section_u": s["u"],
            "section_v": s["v"],
            "start_time_s": start,
            "end_time_s": start + random.randint(600, 3600),
            "speed_factor": round(random.uniform(0.2, 0.7), 2),
        })
    return out


def main():
    p = argparse.ArgumentParser()
    p.add_argument('-Trains', type=int, default=30)
    p.add_argument('-Stations', type=int, default=12)
    p.add_argument('-SingleShare', type=float, default=0.5)
    p.add_argument('-Stagger', type=int, default=600)
    p.add_argument('-Disruptions', type=int, default=2)
    p.add_argument('-Seed', type=int, default=42)
    p.add_argument('-Out', type=str, default='generated_network')
    a = p.parse_args()

    random.seed(a.Seed)
    stations = build_stations(max(2, a.Stations))
    codes = [s["code"] for s in stations]
    sections = build_sections(codes, a.SingleShare)
    trains = build_trains(a.Trains, codes, a.Stagger)
    disruptions = build_disruptions(sections, a.Disruptions, a.Trains * 60)
    os.makedirs(a.Out, exist_ok=True)
    for name, data in (("stations", stations), ("sections", sections), ("trains", trains), ("disruptions", disruptions)):
        with open(os.path.join(a.Out, f"{name}.json"), 'w') as f:
            json.dump(data, f, indent=2)
    print(f"Wrote {len(stations)} stations, {len(sections)} sections & {len(trains)} trains -> {a.Out}/")


if __name__ == '__main__':
    main()
