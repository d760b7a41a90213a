import pytest

from railpulse.core.event_queue import EventKind
from railpulse.core.models import TrainStatus
from railpulse.sim.engine import ProgressState, SimulationEngine
from railpulse.sim.loader import build_scenario, load_default_scenario


def _stations(*codes, dwell=60):
    return [{"code": c, "name": c, "dwell_mean_s": dwell} for c in codes]


def _train(tid, route, depart=0, vmax=100):
    return {"train_id": tid, "category": "passenger", "priority": 1, "vmax_kmph": vmax,
            "acceleration_ms2": 0.5, "base_deceleration_ms2": 0.7, "length_m": 400,
            "route": route, "depart_time_s": depart}


def _engine(stations, sections, trains, disruptions=None) -> SimulationEngine:
    eng = SimulationEngine()
    eng.load(build_scenario(stations, sections, trains, disruptions))
    return eng


def _records(eng, train_id=None, event=None):
    out = eng.state.events
    if train_id is not None:
        out = [e for e in out if e.train_id == train_id]
    if event is not None:
        out = [e for e in out if e.event == event]
    return out


def test_single_line_contention_defers_in_retry_steps():
    # 10 km at 50 km/h with 1.2 buffer -> 864 s on the section
    eng = _engine(
        _stations("A", "B"),
        [{"u": "A", "v": "B", "line_type": "single", "length_km": 10, "vmax_kmph": 50}],
        [_train("T1", ["A", "B"]), _train("T2", ["A", "B"])],
    )
    eng.advance_to(5)
    assert eng.arbiter.occupancy() == {"A-B": "T1"}
    holds = _records(eng, "T2", "HOLD")
    assert len(holds) == 1 and holds[0].time == 0
    assert holds[0].reason == "Section occupied by T1"
    pending = [e for e in eng.queue.pending() if e.train_id == "T2"]
    assert [(e.kind, e.time) for e in pending] == [(EventKind.ENTER_SECTION.value, 10)]
    assert eng.state.trains["T2"].is_held

    eng.advance_to(2000)
    # T1 clears at 864; the retry at 870 is the first one to find the section free
    enter = _records(eng, "T2", "ENTER_SECTION")
    assert [e.time for e in enter] == [870]
    assert _records(eng, "T1", "ARRIVE_FINAL")[0].time == pytest.approx(864)
    # Only the first deferral is logged
    assert len(_records(eng, "T2", "HOLD")) == 1
    release = _records(eng, "T2", "RELEASE")
    assert release[0].time == 870 and release[0].reason == "Waited 870s"
    assert eng.state.trains["T2"].delay_s == 870
    assert eng.state.trains["T1"].delay_s == 0


def test_travel_and_dwell_timing():
    eng = _engine(
        _stations("A", "B", "C", dwell=60),
        [{"u": "A", "v": "B", "line_type": "single", "length_km": 10, "vmax_kmph": 50},
         {"u": "B", "v": "C", "line_type": "double", "length_km": 20, "vmax_kmph": 120}],
        [_train("T1", ["A", "B", "C"], depart=100, vmax=100)],
    )
    eng.advance_to(3000)
    arrive = _records(eng, "T1", "ARRIVE_STATION")
    assert len(arrive) == 1
    assert arrive[0].time == pytest.approx(964)
    assert arrive[0].location == "B"
    dwell = _records(eng, "T1", "DEPART_STATION")[0]
    assert dwell.reason == "Dwell for 60s"
    # Train vmax 100 caps the 120 km/h section: 20/100*3600*1.2
    enter_bc = _records(eng, "T1", "ENTER_SECTION")[1]
    assert enter_bc.time == pytest.approx(1024)
    assert enter_bc.reason == "Travel time 864s"
    final = _records(eng, "T1", "ARRIVE_FINAL")[0]
    assert final.time == pytest.approx(1888)
    assert final.reason == "Total delay=0s"


def test_missing_dwell_falls_back_to_default():
    stations = _stations("A", "B", "C")
    stations[1]["dwell_mean_s"] = None
    eng = _engine(
        stations,
        [{"u": "A", "v": "B", "line_type": "double", "length_km": 5, "vmax_kmph": 100},
         {"u": "B", "v": "C", "line_type": "double", "length_km": 5, "vmax_kmph": 100}],
        [_train("T1", ["A", "B", "C"])],
    )
    eng.advance_to(1000)
    assert _records(eng, "T1", "DEPART_STATION")[0].reason == "Dwell for 60s"


def test_opposing_trains_share_single_line_but_not_double():
    sections = [{"u": "A", "v": "B", "line_type": "single", "length_km": 10, "vmax_kmph": 50}]
    trains = [_train("UP", ["A", "B"]), _train("DN", ["B", "A"])]
    eng = _engine(_stations("A", "B"), sections, trains)
    eng.advance_to(1)
    assert eng.state.trains["DN"].is_held
    assert _records(eng, "DN", "HOLD")[0].reason == "Section occupied by UP"

    sections[0]["line_type"] = "double"
    eng = _engine(_stations("A", "B"), sections, trains)
    eng.advance_to(1)
    assert eng.arbiter.occupancy() == {"A-B": "UP", "B-A": "DN"}
    assert not _records(eng, event="HOLD")


def test_train_finishes_exactly_once_and_never_moves_again():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    eng.set_speed(50)
    assert eng.run_until(48 * 3600) is ProgressState.FINISHED
    for tid, train in eng.state.trains.items():
        recs = _records(eng, tid)
        finals = [i for i, e in enumerate(recs) if e.event == "ARRIVE_FINAL"]
        assert len(finals) == 1
        assert finals[0] == len(recs) - 1
        assert train.status is TrainStatus.FINISHED
        assert train.current_section_idx == len(train.route) - 1
        assert train.location.code == train.destination
        arrivals = [e for e in recs if e.event in ("ARRIVE_STATION", "ARRIVE_FINAL")]
        assert len(arrivals) == len(train.route) - 1
    assert eng.arbiter.occupancy() == {}
    assert [e.event for e in _records(eng, event="SIM_END")] == ["SIM_END"]
    assert not eng.state.is_running


def test_invariants_hold_at_every_tick():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    eng.set_speed(10)
    last_idx = {tid: 0 for tid in eng.state.trains}
    last_status = {tid: TrainStatus.WAITING for tid in eng.state.trains}
    allowed = {
        TrainStatus.WAITING: {TrainStatus.WAITING, TrainStatus.RUNNING},
        TrainStatus.RUNNING: {TrainStatus.RUNNING, TrainStatus.FINISHED},
        TrainStatus.FINISHED: {TrainStatus.FINISHED},
    }
    while eng.progress_state is ProgressState.ACTIVE:
        eng.tick()
        occ = eng.arbiter.occupancy()
        # no train on two sections
        assert len(set(occ.values())) == len(occ)
        for key, tid in occ.items():
            u, v = key.split("-")
            sec = eng.network.section_for(u, v)
            if sec.is_single_line:
                assert f"{v}-{u}" not in occ
            train = eng.state.trains[tid]
            assert train.status is TrainStatus.RUNNING
            assert train.location.kind == "section"
            assert (train.location.u, train.location.v) == (u, v)
        for tid, train in eng.state.trains.items():
            assert train.current_section_idx >= last_idx[tid]
            assert train.current_section_idx <= len(train.route) - 1
            assert train.status in allowed[last_status[tid]]
            last_idx[tid] = train.current_section_idx
            last_status[tid] = train.status
    assert eng.progress_state is ProgressState.FINISHED


def test_replay_is_deterministic():
    def run():
        eng = SimulationEngine()
        eng.load(load_default_scenario())
        eng.set_speed(25)
        eng.run_until(48 * 3600)
        return eng.state.events, {t.train_id: t.delay_s for t in eng.state.trains.values()}

    assert run() == run()


def test_tick_granularity_does_not_change_outcome():
    # 0.5 km at 300 km/h -> 7.2 s per section; T2 departs mid-window and is held
    stations = _stations("A", "B", dwell=2)
    sections = [{"u": "A", "v": "B", "line_type": "single", "length_km": 0.5, "vmax_kmph": 300}]
    trains = [_train("T1", ["A", "B"], depart=3, vmax=300), _train("T2", ["A", "B"], depart=7, vmax=300)]

    coarse = _engine(stations, sections, trains)
    coarse.set_speed(10)
    coarse.tick()
    fine = _engine(stations, sections, trains)
    for _ in range(10):
        fine.tick()
    assert coarse.state.time == fine.state.time == 10
    assert coarse.state.events == fine.state.events
    assert coarse.arbiter.occupancy() == fine.arbiter.occupancy()

    coarse.advance_to(40)
    fine.advance_to(40)
    assert coarse.state.events == fine.state.events
    assert _records(fine, "T2", "ENTER_SECTION")[0].time == 17


def test_drain_uses_event_time_as_now():
    eng = _engine(
        _stations("A", "B"),
        [{"u": "A", "v": "B", "line_type": "double", "length_km": 10, "vmax_kmph": 50}],
        [_train("T1", ["A", "B"], depart=3)],
    )
    eng.set_speed(100)
    new = eng.tick()
    assert eng.state.time == 100
    depart = [e for e in new if e.event == "DEPART_JOURNEY"][0]
    assert depart.time == 3
    assert eng.state.trains["T1"].last_event_time == 3


def test_restart_returns_to_initial_state():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    eng.set_speed(20)
    eng.start()
    for _ in range(200):
        eng.tick()
    assert eng.arbiter.occupancy()

    eng.restart()
    assert eng.state.time == 0
    assert not eng.state.is_running
    assert eng.state.speed == 1
    assert eng.arbiter.occupancy() == {}
    assert [e.event for e in eng.state.events] == ["SIM_RESET"]
    for t in eng.state.trains.values():
        assert t.status is TrainStatus.WAITING
        assert t.current_section_idx == 0
        assert t.delay_s == 0
        assert t.location.code == t.origin
        assert t.held_since is None
    departs = [e for e in eng.queue.pending() if e.kind == EventKind.DEPART.value]
    assert sorted(e.train_id for e in departs) == sorted(eng.state.trains)


def test_reset_does_not_share_objects_with_caller():
    scenario = load_default_scenario()
    eng = SimulationEngine()
    eng.load(scenario)
    eng.advance_to(2000)
    assert all(t.status is TrainStatus.WAITING for t in scenario.trains)
    assert all(t.delay_s == 0 for t in scenario.trains)


def test_start_pause_are_idempotent_and_logged():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    assert eng.start() is True
    assert eng.start() is False
    assert eng.pause() is True
    assert eng.pause() is False
    assert [e.event for e in eng.state.events] == ["SIM_RESET", "SIM_START", "SIM_PAUSE"]
    assert eng.toggle() is True
    assert eng.toggle() is False


def test_speed_and_selection_validation():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    with pytest.raises(ValueError):
        eng.set_speed(0)
    with pytest.raises(ValueError):
        eng.set_speed(101)
    eng.set_speed(100)
    assert eng.state.speed == 100
    with pytest.raises(KeyError):
        eng.select_train("NOPE")
    eng.select_train("12725")
    assert eng.snapshot().selected_train.train_id == "12725"
    eng.select_train(None)
    assert eng.snapshot().selected_train is None


def test_events_for_unknown_or_finished_trains_are_discarded():
    eng = _engine(
        _stations("A", "B"),
        [{"u": "A", "v": "B", "line_type": "double", "length_km": 1, "vmax_kmph": 60}],
        [_train("T1", ["A", "B"])],
    )
    eng.queue.schedule(5, EventKind.ENTER_SECTION, "GHOST", {"u": "A", "v": "B"})
    eng.advance_to(500)
    assert eng.state.trains["T1"].status is TrainStatus.FINISHED
    eng.queue.schedule(600, EventKind.ENTER_SECTION, "T1", {"u": "A", "v": "B"})
    before = len(eng.state.events)
    eng.advance_to(700)
    assert not _records(eng, "GHOST")
    assert len(_records(eng, "T1", "ENTER_SECTION")) == 1
    assert eng.arbiter.occupancy() == {}
    assert len(eng.state.events) == before


def test_empty_queue_with_unfinished_train_is_stalled():
    eng = _engine(
        _stations("A", "B"),
        [{"u": "A", "v": "B", "line_type": "double", "length_km": 1, "vmax_kmph": 60}],
        [_train("T1", ["A", "B"]), _train("T2", ["A", "B"], depart=50)],
    )
    eng.queue.cancel(eng._depart_handles["T2"])
    assert eng.run_until(1000) is ProgressState.STALLED
    assert eng.state.trains["T2"].status is TrainStatus.WAITING
    assert eng.snapshot().progress == "stalled"


def test_tick_after_end_only_keeps_runner_stopped():
    eng = _engine(
        _stations("A", "B"),
        [{"u": "A", "v": "B", "line_type": "double", "length_km": 1, "vmax_kmph": 60}],
        [_train("T1", ["A", "B"])],
    )
    eng.advance_to(500)
    n = len(eng.state.events)
    eng.start()
    assert eng.tick() == []
    assert not eng.state.is_running
    assert eng.state.time == 500
    assert len(eng.state.events) == n + 1  # the SIM_START record
