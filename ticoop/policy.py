"""
The fork-decision policy: observe every branch, fork none.

Taint inference produces critical-byte hints that only hold for the path it
ran on. Letting the engine fork at every symbolic branch would invalidate
those hints, so this policy vetoes all forks. At branches that belong to a
target site it still negates the branch condition, solves it off the live
path, and hands the result to TestcaseHandoff, recovering the one piece of
information a forking engine would have produced there.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ticoop.engine import (
    EngineInvariantError,
    ExecutionState,
    Executor,
    ForkDecision,
    Query,
)
from ticoop.handoff import TestcaseHandoff, alternate_constraint
from ticoop.sites import TargetSiteRegistry
from ticoop.stats import RunStatistics

logger = logging.getLogger(__name__)


@dataclass
class TrackedState:
    """
    Identifier of the first state the policy observed.

    Only the identifier is kept; it is resolved through the engine when a
    timeout fires, so a state the engine has since dropped resolves to None.
    The identifier is never reassigned once adopted.
    """

    state_id: int | None = None

    def adopt(self, state: ExecutionState) -> bool:
        if self.state_id is not None:
            return False
        self.state_id = state.state_id
        return True

    def resolve(self, executor: Executor) -> ExecutionState | None:
        if self.state_id is None:
            return None
        return executor.find_state(self.state_id)


class BranchCapturePolicy:
    """Fork-decision hook implementing the capture-without-forking policy."""

    def __init__(
        self,
        registry: TargetSiteRegistry,
        stats: RunStatistics,
        handoff: TestcaseHandoff,
        executor: Executor,
        tracked: TrackedState | None = None,
    ) -> None:
        self.registry = registry
        self.stats = stats
        self.handoff = handoff
        self.executor = executor
        self.tracked = tracked if tracked is not None else TrackedState()

    def on_state_fork_decide(
        self, state: ExecutionState, condition: Any, decision: ForkDecision
    ) -> None:
        """Handle one branch observation from the engine."""
        decision.allow_forking = False

        if self.tracked.adopt(state):
            logger.info(f"[*] Tracking state {state.state_id} for timeout enforcement.")

        expr_ops = self.executor.expr_ops
        condition = state.simplify(condition)
        if expr_ops.is_constant(condition):
            return

        # The concrete assignment always decides the branch in concolic mode.
        evaluated = state.evaluate(condition)
        if not expr_ops.is_constant(evaluated):
            raise EngineInvariantError(
                f"Could not evaluate the branch condition at {state.pc:#x} to a constant."
            )
        condition_is_true = expr_ops.is_true(evaluated)

        site = self.registry.lookup(state.pc)
        if site is None:
            return
        self.registry.mark_visited(site)

        constraints = list(state.constraints)
        constraints.append(alternate_constraint(expr_ops, condition, condition_is_true))
        symbolic_objects = list(state.symbolics)
        query = Query(tuple(constraints), expr_ops.false())

        self.stats.begin_constraint()
        try:
            solved_values = state.solver().get_initial_values(query, symbolic_objects)
        except Exception as e:
            self.stats.record_unsolved()
            logger.warning(
                f"[!] Solver failed on the alternate branch at {state.pc:#x} "
                f"(site {site.address:#x}): {e}"
            )
            return
        if solved_values is None:
            self.stats.record_unsolved()
            logger.debug(
                f"  -> Alternate branch at {state.pc:#x} (site {site.address:#x}) is unsatisfiable."
            )
            return

        self.stats.record_solved()
        self.handoff.materialize(
            state, condition, condition_is_true, symbolic_objects, solved_values, site
        )
