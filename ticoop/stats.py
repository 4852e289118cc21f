"""
Solve statistics shared by the branch policy, telemetry and shutdown report.
"""

from __future__ import annotations

from dataclasses import dataclass

import psutil


def user_cpu_time() -> float:
    """Return the user CPU time consumed by this process, in seconds."""
    return psutil.Process().cpu_times().user


@dataclass
class RunStatistics:
    """
    Constraint counters for one coordinator run.

    Every alternate-branch constraint handed to the solver bumps
    ``constraints_total`` and then exactly one of ``solved`` or ``unsolved``,
    so ``solved + unsolved == constraints_total`` holds whenever the hook is
    not mid-query. Counters are never decremented.
    """

    constraints_total: int = 0
    solved: int = 0
    unsolved: int = 0

    def begin_constraint(self) -> None:
        self.constraints_total += 1

    def record_solved(self) -> None:
        self.solved += 1

    def record_unsolved(self) -> None:
        self.unsolved += 1

    def is_consistent(self) -> bool:
        return self.solved + self.unsolved == self.constraints_total

    def as_row(self) -> str:
        """Format the counters as ``solved,unsolved,total``."""
        return f"{self.solved},{self.unsolved},{self.constraints_total}"
