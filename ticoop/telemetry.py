"""
Periodic statistics logging and timeout enforcement.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, TextIO

from ticoop.engine import Executor
from ticoop.policy import TrackedState
from ticoop.stats import RunStatistics, user_cpu_time

logger = logging.getLogger(__name__)


def format_elapsed(seconds: float) -> str:
    return f"{seconds:.3f}"


class TelemetryController:
    """
    Append solve statistics to the stats log and stop the run on timeout.

    The log is truncated when the controller is created, so it only holds
    rows from the current run. Each tick appends
    ``elapsed,solved,unsolved,total`` and flushes it right away so the log
    survives a crash of the host. The same tick compares the
    elapsed user CPU time with the timeout budget and, once it is exceeded,
    asks the engine to terminate the tracked state. The check repeats on
    every tick; the engine ignores requests for states it no longer has.
    """

    def __init__(
        self,
        stats_path: Path,
        stats: RunStatistics,
        tracked: TrackedState,
        executor: Executor,
        timeout: float,
        clock: Callable[[], float] = user_cpu_time,
    ) -> None:
        self.stats_path = stats_path
        self.stats = stats
        self.tracked = tracked
        self.executor = executor
        self.timeout = timeout
        self.clock = clock
        self._log: TextIO | None = open(stats_path, "w", encoding="utf-8")

    @property
    def closed(self) -> bool:
        return self._log is None

    def write_row(self, row: str) -> None:
        """Append one row to the stats log and flush it."""
        if self._log is None:
            logger.warning(f"[!] Stats log {self.stats_path} is closed; dropping row {row!r}.")
            return
        self._log.write(row + "\n")
        self._log.flush()

    def on_timer(self) -> bool:
        """
        Log a statistics row and enforce the timeout.

        Returns True if a termination request was issued on this tick.
        """
        elapsed = self.clock()
        counters = self.stats.as_row()
        logger.debug(f"TICooperator: solved / unsolved / total: {counters}")
        self.write_row(f"{format_elapsed(elapsed)},{counters}")

        if elapsed < self.timeout:
            return False

        state = self.tracked.resolve(self.executor)
        if state is None:
            logger.debug("  -> Timeout reached but the tracked state is gone.")
            return False
        logger.warning(f"[!] Timeout of {self.timeout}s reached; terminating state {state.state_id}.")
        self.executor.terminate_state(state, "timeout")
        return True

    def close(self) -> None:
        if self._log is not None:
            self._log.close()
            self._log = None
