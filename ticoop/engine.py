"""
Capability interfaces between ticoop and the host concolic execution engine.

The coordinator never owns the engine. It only relies on the structural
contracts below: the engine hands it execution states at branch points,
answers solver queries, clones states, and terminates them on request.
Anything that satisfies these protocols can host the coordinator; the
bundled z3-based host in ``ticoop.z3_engine`` is one such implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Sequence


class EngineInvariantError(RuntimeError):
    """The host engine broke its concolic invariant; the run must stop."""


class TestCaseKind(Enum):
    """Kind of artifact a materializer produces."""

    FILE = "file"


@dataclass
class ForkDecision:
    """Mutable fork-permission flag passed through the fork-decision hook."""

    allow_forking: bool = True


@dataclass(frozen=True)
class Query:
    """A solver query: find an assignment satisfying all constraints and ``not expr``."""

    constraints: tuple[Any, ...]
    expr: Any


class SymbolicObject(Protocol):
    name: str
    size: int


class ExprOps(Protocol):
    """Expression primitives the coordinator needs from the engine."""

    def is_constant(self, expr: Any) -> bool: ...

    def is_true(self, expr: Any) -> bool: ...

    def negate(self, expr: Any) -> Any: ...

    def false(self) -> Any: ...


class Solver(Protocol):
    def get_initial_values(
        self, query: Query, objects: Sequence[SymbolicObject]
    ) -> list[bytes] | None:
        """Return one concrete value per object, or None if unsatisfiable."""
        ...


class ExecutionState(Protocol):
    """One explored path: constraints, concrete assignment and memory."""

    state_id: int
    pc: int
    constraints: Sequence[Any]
    symbolics: Sequence[SymbolicObject]

    def simplify(self, expr: Any) -> Any: ...

    def evaluate(self, expr: Any) -> Any: ...

    def solver(self) -> Solver: ...

    def clone(self) -> "ExecutionState": ...

    def set_concrete_values(
        self, objects: Sequence[SymbolicObject], values: Sequence[bytes]
    ) -> None: ...

    def add_constraint(self, expr: Any) -> bool: ...

    def concrete_values(self) -> dict[str, bytes]: ...

    def read_memory(self, address: int, size: int) -> bytes | None: ...


class TestCaseMaterializer(Protocol):
    """Turns a state's concrete assignment into a persisted test input."""

    def generate_test_case(
        self, state: ExecutionState, label: str, kind: TestCaseKind = TestCaseKind.FILE
    ) -> Any: ...


class EngineHooks(Protocol):
    """The three callbacks a coordinator registers against the engine."""

    def on_state_fork_decide(
        self, state: ExecutionState, condition: Any, decision: ForkDecision
    ) -> None: ...

    def on_timer(self) -> None: ...

    def on_engine_shutdown(self) -> None: ...


class Executor(Protocol):
    expr_ops: ExprOps

    def find_state(self, state_id: int) -> ExecutionState | None: ...

    def terminate_state(self, state: ExecutionState, reason: str) -> None: ...

    def connect(self, hooks: EngineHooks) -> None: ...
