"""Logging for verification runs: console output plus a FlightLogger buffer dumped when a run fails."""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from src.core.config import Settings, get_config

FLIGHT_LOG_CAPACITY = 50_000

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


_flight_logger: "FlightLogger | None" = None


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)


class FlightLogger(logging.Handler):
    """
    Keeps the most recent log records of a verification run in memory (all levels).

    Nothing touches the disk until dump() is called, which the CLI does only when a run
    fails; the file starts with a header describing what was being verified.
    """

    def __init__(self, forensics_dir: str | Path, capacity: int = FLIGHT_LOG_CAPACITY) -> None:
        super().__init__(level=logging.DEBUG)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self.forensics_dir = Path(forensics_dir)

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def dump(self, run_id: str, context: Mapping[str, Any] | None = None) -> Path:
        """
        Write {run_id}_{utc timestamp}.log into forensics_dir and return its path.

        context (e.g. image, expected/actual major version, error) is written first as
        `# key: value` lines, followed by the buffered records, oldest first.
        """
        self.forensics_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc)
        path = self.forensics_dir / f"{run_id}_{stamp.strftime('%Y%m%d_%H%M%S')}.log"
        fmt = self.formatter or _formatter()
        lines = [f"# run_id: {run_id}", f"# dumped_at: {stamp.isoformat()}"]
        lines.extend(f"# {key}: {value}" for key, value in (context or {}).items())
        lines.extend(fmt.format(record) for record in self._records)
        path.write_text("\n".join(lines) + "\n")
        return path


def get_flight_logger() -> FlightLogger | None:
    """FlightLogger installed by the last setup_logging() call, if any."""
    return _flight_logger


def setup_logging(settings: Settings | None = None) -> FlightLogger:
    """
    Route all records through the root logger (DEBUG): stdout gets settings.log_level and
    above, the returned FlightLogger gets everything. Existing root handlers are replaced,
    so calling it twice does not duplicate output.

    Pass the effective Settings when they differ from get_config() (CLI overrides).
    """
    global _flight_logger
    cfg = settings or get_config()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(cfg.log_level)
    console.setFormatter(_formatter())
    root.addHandler(console)

    flight = FlightLogger(cfg.forensics_dir)
    flight.setFormatter(_formatter())
    root.addHandler(flight)
    _flight_logger = flight
    return flight
