from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Load .env early (no error if missing)
load_dotenv()

DEFAULT_DATA_DIR = Path(__file__).parent / "data"


@dataclass(frozen=True)
class SimConfig:
    # Simulated seconds per tick at speed 1
    tick_increment_s: float = float(os.getenv("RAILPULSE_TICK_INCREMENT_S", "1"))
    # Wall-clock pacing of the background runner
    tick_interval_ms: int = int(os.getenv("RAILPULSE_TICK_INTERVAL_MS", "100"))
    retry_interval_s: float = float(os.getenv("RAILPULSE_RETRY_INTERVAL_S", "10"))
    buffer_factor: float = float(os.getenv("RAILPULSE_BUFFER_FACTOR", "1.2"))
    default_dwell_s: float = float(os.getenv("RAILPULSE_DEFAULT_DWELL_S", "60"))
    min_speed: float = float(os.getenv("RAILPULSE_MIN_SPEED", "1"))
    max_speed: float = float(os.getenv("RAILPULSE_MAX_SPEED", "100"))
    data_dir: str = os.getenv("RAILPULSE_DATA_DIR", str(DEFAULT_DATA_DIR))
    log_level: str = os.getenv("RAILPULSE_LOG_LEVEL", "INFO").upper()

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0
