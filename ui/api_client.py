import os, sys
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
import os
import requests
from typing import Any, Dict, List, Optional


class ApiClient:
    def __init__(self, base_url: Optional[str] = None, timeout: float = 30.0) -> None:
        self.base_url = base_url or os.environ.get("API_BASE", "http://localhost:8000")
        self.timeout = timeout

    def _post(self, path: str, json: Dict[str, Any] | None = None, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        r = requests.post(f"{self.base_url}{path}", json=json, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _get(self, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        r = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    # State
    def get_snapshot(self, events_limit: int | None = 200) -> Dict[str, Any]:
        params = {"events_limit": events_limit} if events_limit is not None else None
        return self._get("/snapshot", params=params)

    def get_analytics(self) -> Dict[str, Any]:
        return self._get("/analytics")

    # Controls
    def start(self) -> Dict[str, Any]:
        return self._post("/simulation/start")

    def pause(self) -> Dict[str, Any]:
        return self._post("/simulation/pause")

    def toggle(self) -> Dict[str, Any]:
        return self._post("/simulation/toggle")

    def tick(self, count: int = 1) -> Dict[str, Any]:
        return self._post("/simulation/tick", params={"count": int(count)})

    def set_speed(self, speed: float) -> Dict[str, Any]:
        return self._post("/simulation/speed", json={"speed": float(speed)})

    def select_train(self, train_id: Optional[str]) -> Dict[str, Any]:
        return self._post("/simulation/select", json={"train_id": train_id})

    def reset(self, stations: List[Dict[str, Any]] | None = None, sections: List[Dict[str, Any]] | None = None,
              trains: List[Dict[str, Any]] | None = None, disruptions: List[Dict[str, Any]] | None = None) -> Dict[str, Any]:
        if stations is None and sections is None and trains is None:
            return self._post("/simulation/reset")
        body = {"stations": stations or [], "sections": sections or [], "trains": trains or [], "disruptions": disruptions}
        return self._post("/simulation/reset", json=body)

    def restart(self) -> Dict[str, Any]:
        return self._post("/simulation/restart")

    # Trains
    def update_departure(self, train_id: str, depart_time_s: float) -> Dict[str, Any]:
        r = requests.patch(f"{self.base_url}/trains/{train_id}/departure", json={"depart_time_s": float(depart_time_s)}, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def train_summary(self, train_id: str) -> Dict[str, Any]:
        return self._get(f"/trains/{train_id}/summary")

    def disruption_summary(self) -> Dict[str, Any]:
        return self._get("/disruptions/summary")
