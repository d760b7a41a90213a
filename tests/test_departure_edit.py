import pytest

from railpulse.core.errors import DepartureEditRejected
from railpulse.core.event_queue import EventKind
from railpulse.sim.engine import SimulationEngine
from railpulse.sim.loader import load_default_scenario


def _engine():
    eng = SimulationEngine()
    eng.load(load_default_scenario())
    return eng


def _departs(eng, tid):
    return [e.time for e in eng.queue.pending() if e.kind == EventKind.DEPART.value and e.train_id == tid]


def test_waiting_train_departure_is_moved():
    eng = _engine()
    eng.update_departure("56513", 1500)
    assert _departs(eng, "56513") == [1500]
    eng.advance_to(1499)
    assert not [e for e in eng.state.events if e.train_id == "56513" and e.event == "DEPART_JOURNEY"]
    eng.advance_to(1500)
    dep = [e for e in eng.state.events if e.train_id == "56513" and e.event == "DEPART_JOURNEY"]
    assert [e.time for e in dep] == [1500]
    assert eng.snapshot().train("56513").depart_time_s == 1500


def test_departure_can_move_earlier():
    eng = _engine()
    eng.advance_to(100)
    eng.update_departure("12726", 150)
    assert _departs(eng, "12726") == [150]
    rec = [e for e in eng.state.events if e.event == "DEPARTURE_RESCHEDULED"][0]
    assert rec.reason == "Departure moved from 900s to 150s"


def test_departed_train_or_past_time_is_rejected():
    eng = _engine()
    eng.advance_to(400)
    with pytest.raises(DepartureEditRejected):
        eng.update_departure("12725", 1000)
    with pytest.raises(DepartureEditRejected):
        eng.update_departure("12726", 200)
    with pytest.raises(KeyError):
        eng.update_departure("NOPE", 1000)
    assert _departs(eng, "12726") == [900]


def test_restart_restores_loaded_departure():
    eng = _engine()
    eng.update_departure("56513", 1500)
    eng.restart()
    assert _departs(eng, "56513") == [300]


@pytest.mark.parametrize("bad", [float("inf"), float("nan")])
def test_non_finite_departure_is_rejected(bad):
    eng = _engine()
    with pytest.raises(DepartureEditRejected):
        eng.update_departure("56513", bad)
    assert _departs(eng, "56513") == [300]
    assert not [e for e in eng.state.events if e.event == "DEPARTURE_RESCHEDULED"]
    eng.set_speed(100)
    assert eng.run_until(48 * 3600).value == "finished"
