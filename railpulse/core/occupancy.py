from __future__ import annotations
import logging
from typing import Dict, Mapping, Optional

from railpulse.core.models import section_key
from railpulse.core.network import Network

logger = logging.getLogger(__name__)

RETRY_INTERVAL_S = 10


class OccupancyArbiter:
    """Exclusive owner of section occupancy.

    Occupancy is keyed by travel direction (``"u-v"``). A double-line link
    has two independent keys; for a single-line link the reverse key is
    also checked, so the two directions exclude each other. Everything
    else sees occupancy only through :meth:`occupancy`.
    """

    def __init__(self, network: Network, retry_interval_s: float = RETRY_INTERVAL_S) -> None:
        self._network = network
        self.retry_interval_s = retry_interval_s
        self._occupied: Dict[str, str] = {}

    def blocker(self, u: str, v: str) -> Optional[str]:
        """Train id currently preventing entry to u->v, or None if the section is free."""
        direct = self._occupied.get(section_key(u, v))
        if direct:
            return direct
        section = self._network.section_for(u, v)
        if section.is_single_line:
            return self._occupied.get(section_key(v, u))
        return None

    def occupy(self, u: str, v: str, train_id: str) -> None:
        holder = self.blocker(u, v)
        assert holder is None, f"{section_key(u, v)} already held by {holder}"
        self._occupied[section_key(u, v)] = train_id
        logger.debug("%s occupied by %s", section_key(u, v), train_id)

    def release(self, u: str, v: str, train_id: str) -> None:
        key = section_key(u, v)
        holder = self._occupied.get(key)
        assert holder == train_id, f"{train_id} releasing {key} held by {holder}"
        del self._occupied[key]
        logger.debug("%s released by %s", key, train_id)

    def occupant(self, u: str, v: str) -> Optional[str]:
        return self._occupied.get(section_key(u, v))

    def occupancy(self) -> Mapping[str, str]:
        return dict(self._occupied)

    def clear(self) -> None:
        self._occupied = {}
