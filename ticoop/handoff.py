"""
Hand a solved alternate branch to the test-case materializer.

The alternate branch is never scheduled: a clone of the observing state is
given the solved assignment and the alternate constraint, passed to the
materializer, and dropped. The clone is never registered with the engine.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ticoop.engine import (
    EngineInvariantError,
    ExecutionState,
    ExprOps,
    SymbolicObject,
    TestCaseKind,
    TestCaseMaterializer,
)
from ticoop.sites import TargetSite

logger = logging.getLogger(__name__)


def format_testcase_label(sequence: int, site: TargetSite) -> str:
    """Return the ``id:<6-digit sequence>-<hexAddress>-<decimalId>`` label."""
    return f"id:{sequence:06d}-{site.address:x}-{site.site_id}"


def alternate_constraint(expr_ops: ExprOps, condition: Any, condition_is_true: bool) -> Any:
    """Return the constraint that selects the branch not taken concretely."""
    if condition_is_true:
        return expr_ops.negate(condition)
    return condition


class TestcaseHandoff:
    """Build an ephemeral alternate-branch state and request a test case for it."""

    def __init__(self, materializer: TestCaseMaterializer, expr_ops: ExprOps) -> None:
        self.materializer = materializer
        self.expr_ops = expr_ops
        # Number of clones handed off so far; the next clone's label sequence.
        self.sequence = 0

    def materialize(
        self,
        state: ExecutionState,
        condition: Any,
        condition_is_true: bool,
        symbolic_objects: Sequence[SymbolicObject],
        solved_values: Sequence[bytes],
        site: TargetSite,
    ) -> Any:
        """
        Request a test case for the alternate branch at ``site``.

        Returns whatever the materializer returns. Raises EngineInvariantError
        if the clone rejects the alternate constraint, which the solver has
        just shown to be satisfiable together with the path constraints.
        """
        clone = state.clone()
        try:
            clone.set_concrete_values(symbolic_objects, solved_values)

            constraint = alternate_constraint(self.expr_ops, condition, condition_is_true)
            if not clone.add_constraint(constraint):
                raise EngineInvariantError(
                    f"Alternate-branch constraint rejected by clone of state {state.state_id} "
                    f"at site {site.address:#x}"
                )

            label = format_testcase_label(self.sequence, site)
            self.sequence += 1
            logger.debug(f"  -> Requesting test case {label}")
            return self.materializer.generate_test_case(clone, label, TestCaseKind.FILE)
        finally:
            del clone
