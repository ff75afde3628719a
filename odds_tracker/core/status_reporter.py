import json
import logging
import os
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class CycleState(Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    PARTIALLY_FAILED = "PARTIALLY_FAILED"
    FAILED = "FAILED"


@dataclass
class TrackerRunStats:
    """Statistics of one revaluation cycle plus the tracker's lifecycle flags"""
    is_active: bool = False
    last_run_at: Optional[str] = None
    total_positions: int = 0
    unique_markets: int = 0
    updated_count: int = 0
    error_count: int = 0
    duration_ms: float = 0.0

    fetch_errors: int = 0
    persist_errors: int = 0
    balance_updates: int = 0
    balance_errors: int = 0
    skipped_ticks: int = 0
    run_count: int = 0
    last_run_failed: bool = False
    last_error: Optional[str] = None
    cycle_state: str = CycleState.IDLE.value
    last_outcome: Optional[str] = None

    def to_dict(self) -> dict:
        """Status payload in the shape served to the admin panel and CLI"""
        return {
            "isActive": self.is_active,
            "lastRunAt": self.last_run_at,
            "totalPositions": self.total_positions,
            "uniqueMarkets": self.unique_markets,
            "updatedCount": self.updated_count,
            "errorCount": self.error_count,
            "durationMs": round(self.duration_ms, 3),
            "fetchErrors": self.fetch_errors,
            "persistErrors": self.persist_errors,
            "balanceUpdates": self.balance_updates,
            "balanceErrors": self.balance_errors,
            "skippedTicks": self.skipped_ticks,
            "runCount": self.run_count,
            "lastRunFailed": self.last_run_failed,
            "lastError": self.last_error,
            "cycleState": self.cycle_state,
            "lastOutcome": self.last_outcome,
        }


class StatusReporter:
    """
    Producer: accumulates the counters of the cycle in flight and publishes
    them when the cycle ends.

    snapshot() only ever copies the last published stats, so a status query
    never observes a half-finished cycle and never waits for one.
    Optionally mirrors every published snapshot to a JSON file for the CLI.
    """
    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath
        self.lock = threading.Lock()
        self._current = TrackerRunStats()
        self._published = TrackerRunStats()
        self._is_active = False
        self._skipped_ticks = 0
        self._run_count = 0
        self._state = CycleState.IDLE
        self._ensure_dir()

    def _ensure_dir(self):
        if not self.filepath:
            return
        dir_path = os.path.dirname(self.filepath)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

    # --- lifecycle flags -------------------------------------------------

    def set_active(self, active: bool):
        with self.lock:
            self._is_active = active
        self._flush()

    def record_skipped_tick(self):
        with self.lock:
            self._skipped_ticks += 1
        logger.warning("⏭️ Tick skipped: previous cycle still running")
        self._flush()

    # --- per-cycle accumulation -----------------------------------------

    def begin_cycle(self):
        with self.lock:
            self._current = TrackerRunStats()
            self._state = CycleState.RUNNING

    def record_positions(self, total_positions: int, unique_markets: int):
        self._current.total_positions = total_positions
        self._current.unique_markets = unique_markets

    def record_update(self):
        self._current.updated_count += 1

    def record_fetch_error(self):
        self._current.fetch_errors += 1
        self._current.error_count += 1

    def record_persist_error(self):
        self._current.persist_errors += 1
        self._current.error_count += 1

    def record_balances(self, updated: int, failed: int):
        self._current.balance_updates += updated
        self._current.balance_errors += failed
        self._current.error_count += failed

    def finish_cycle(self, finished_at: datetime, duration_ms: float) -> TrackerRunStats:
        """Publish the cycle as COMPLETED, or PARTIALLY_FAILED if anything errored"""
        outcome = CycleState.PARTIALLY_FAILED if self._current.error_count else CycleState.COMPLETED
        return self._publish(finished_at, duration_ms, outcome)

    def fail_cycle(self, error: BaseException, finished_at: datetime, duration_ms: float) -> TrackerRunStats:
        """Publish a cycle that died before any market could be processed"""
        self._current.error_count += 1
        self._current.last_run_failed = True
        self._current.last_error = f"{type(error).__name__}: {error}"
        return self._publish(finished_at, duration_ms, CycleState.FAILED)

    def _publish(self, finished_at: datetime, duration_ms: float, outcome: CycleState) -> TrackerRunStats:
        with self.lock:
            self._run_count += 1
            self._current.last_run_at = finished_at.isoformat()
            self._current.duration_ms = duration_ms
            self._current.last_outcome = outcome.value
            self._published = self._current
            self._state = CycleState.IDLE
            published = self._view(self._published)
        self._flush()
        return published

    # --- reads ------------------------------------------------------------

    def snapshot(self) -> TrackerRunStats:
        with self.lock:
            return self._view(self._published)

    def _view(self, stats: TrackerRunStats) -> TrackerRunStats:
        return replace(
            stats,
            is_active=self._is_active,
            skipped_ticks=self._skipped_ticks,
            run_count=self._run_count,
            cycle_state=self._state.value,
        )

    def _flush(self):
        if not self.filepath:
            return
        payload = self.snapshot().to_dict()
        payload["writtenAt"] = datetime.now(timezone.utc).isoformat()
        try:
            # Atomic write pattern
            tmp = self.filepath + ".tmp"
            with open(tmp, 'w') as f:
                json.dump(payload, f)
            os.replace(tmp, self.filepath)
        except OSError as e:
            logger.warning(f"Could not write status file {self.filepath}: {e}")


def load_status_file(filepath: str) -> dict:
    """Read a status file written by StatusReporter; empty dict if absent or torn"""
    if not os.path.exists(filepath):
        return {}
    try:
        with open(filepath, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read status file {filepath}: {e}")
        return {}
