"""
A minimal in-process concolic host built on the z3 SMT solver.

This is not an execution engine. It holds just enough state to drive the
coordinator's hooks outside a full-system emulator: symbolic input buffers
with a concrete byte assignment, a path-constraint list, sparse guest
memory, and an executor that dispatches fork-decision, timer and shutdown
events. Branches always follow the concrete assignment, as a single-path
concolic run does.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import z3

from ticoop.engine import EngineHooks, ForkDecision, Query, SymbolicObject

logger = logging.getLogger(__name__)


class SymbolicBuffer:
    """A named symbolic input region of ``size`` bytes."""

    def __init__(self, name: str, size: int) -> None:
        self.name = name
        self.size = size
        self.bytes = [z3.BitVec(f"{name}[{i}]", 8) for i in range(size)]

    def __getitem__(self, index: int) -> z3.BitVecRef:
        return self.bytes[index]

    def __len__(self) -> int:
        return self.size

    def word(self, offset: int, width: int) -> z3.BitVecRef:
        """Little-endian ``width``-byte value starting at ``offset``."""
        chunk = self.bytes[offset : offset + width]
        if len(chunk) == 1:
            return chunk[0]
        return z3.Concat(*reversed(chunk))

    def __repr__(self) -> str:
        return f"SymbolicBuffer({self.name!r}, {self.size})"


class Z3ExprOps:
    def is_constant(self, expr: Any) -> bool:
        return z3.is_true(expr) or z3.is_false(expr) or z3.is_bv_value(expr)

    def is_true(self, expr: Any) -> bool:
        return z3.is_true(expr)

    def negate(self, expr: Any) -> Any:
        return z3.Not(expr)

    def false(self) -> Any:
        return z3.BoolVal(False)


class Z3Solver:
    """Answers initial-value queries with a fresh z3 solver per query."""

    def __init__(self, timeout_ms: int | None = None) -> None:
        self.timeout_ms = timeout_ms
        self.queries = 0

    def get_initial_values(
        self, query: Query, objects: Sequence[SymbolicObject]
    ) -> list[bytes] | None:
        self.queries += 1
        solver = z3.Solver()
        if self.timeout_ms is not None:
            solver.set("timeout", self.timeout_ms)
        solver.add(*query.constraints)
        solver.add(z3.Not(query.expr))

        result = solver.check()
        if result != z3.sat:
            if result == z3.unknown:
                logger.debug(f"  -> Solver gave up: {solver.reason_unknown()}")
            return None

        model = solver.model()
        values = []
        for obj in objects:
            values.append(
                bytes(model.eval(b, model_completion=True).as_long() for b in obj.bytes)
            )
        return values


class ConcolicState:
    """One path: symbolic buffers, their concrete bytes, constraints and memory."""

    def __init__(self, state_id: int, executor: "Z3Executor", pc: int = 0) -> None:
        self.state_id = state_id
        self.executor = executor
        self.pc = pc
        self.constraints: list[z3.BoolRef] = []
        self.symbolics: list[SymbolicBuffer] = []
        self.concrete: dict[str, bytes] = {}
        self.memory: dict[int, int] = {}

    def make_symbolic(self, name: str, initial: bytes) -> SymbolicBuffer:
        """Declare a symbolic buffer whose concrete value starts as ``initial``."""
        if name in self.concrete:
            raise ValueError(f"symbolic object {name!r} already exists")
        buffer = SymbolicBuffer(name, len(initial))
        self.symbolics.append(buffer)
        self.concrete[name] = bytes(initial)
        return buffer

    def _substitutions(self) -> list[tuple[z3.BitVecRef, z3.BitVecRef]]:
        pairs = []
        for buffer in self.symbolics:
            value = self.concrete.get(buffer.name)
            if value is None:
                continue
            for var, byte in zip(buffer.bytes, value):
                pairs.append((var, z3.BitVecVal(byte, 8)))
        return pairs

    def simplify(self, expr: Any) -> Any:
        return z3.simplify(expr)

    def evaluate(self, expr: Any) -> Any:
        pairs = self._substitutions()
        if pairs:
            expr = z3.substitute(expr, *pairs)
        return z3.simplify(expr)

    def solver(self) -> Z3Solver:
        return self.executor.solver

    def clone(self) -> "ConcolicState":
        """Copy this state under a fresh id. The copy is not registered."""
        other = ConcolicState(self.executor.next_state_id(), self.executor, self.pc)
        other.constraints = list(self.constraints)
        other.symbolics = list(self.symbolics)
        other.concrete = dict(self.concrete)
        other.memory = dict(self.memory)
        return other

    def set_concrete_values(
        self, objects: Sequence[SymbolicObject], values: Sequence[bytes]
    ) -> None:
        if len(objects) != len(values):
            raise ValueError(f"{len(objects)} objects but {len(values)} values")
        self.concrete = {obj.name: bytes(value) for obj, value in zip(objects, values)}

    def concrete_values(self) -> dict[str, bytes]:
        return dict(self.concrete)

    def add_constraint(self, expr: Any) -> bool:
        """
        Add a path constraint.

        Rejects constraints that are false under the current concrete
        assignment, since the state could no longer follow its own path.
        """
        if z3.is_false(self.evaluate(expr)):
            return False
        simplified = z3.simplify(expr)
        if z3.is_true(simplified):
            return True
        if z3.is_false(simplified):
            return False
        self.constraints.append(simplified)
        return True

    def write_memory(self, address: int, data: bytes) -> None:
        for offset, byte in enumerate(data):
            self.memory[address + offset] = byte

    def read_memory(self, address: int, size: int) -> bytes | None:
        try:
            return bytes(self.memory[address + i] for i in range(size))
        except KeyError:
            return None

    def __repr__(self) -> str:
        return f"<ConcolicState id={self.state_id} pc={self.pc:#x}>"


class Z3Executor:
    """Keeps the live states and dispatches engine events to connected hooks."""

    def __init__(self, solver: Z3Solver | None = None) -> None:
        self.expr_ops = Z3ExprOps()
        self.solver = solver if solver is not None else Z3Solver()
        self.states: dict[int, ConcolicState] = {}
        self.terminated: list[tuple[int, str]] = []
        self._hooks: list[EngineHooks] = []
        self._next_state_id = 0

    def next_state_id(self) -> int:
        state_id = self._next_state_id
        self._next_state_id += 1
        return state_id

    def create_state(
        self, pc: int = 0, inputs: Mapping[str, bytes] | None = None
    ) -> ConcolicState:
        """Create and register a live state with the given symbolic inputs."""
        state = ConcolicState(self.next_state_id(), self, pc)
        for name, initial in (inputs or {}).items():
            state.make_symbolic(name, initial)
        self.states[state.state_id] = state
        return state

    def connect(self, hooks: EngineHooks) -> None:
        self._hooks.append(hooks)

    def find_state(self, state_id: int) -> ConcolicState | None:
        return self.states.get(state_id)

    def terminate_state(self, state: ConcolicState, reason: str) -> None:
        if self.states.pop(state.state_id, None) is None:
            logger.debug(f"  -> Ignoring termination of unknown state {state.state_id}.")
            return
        self.terminated.append((state.state_id, reason))
        logger.info(f"[*] Terminated state {state.state_id}: {reason}")

    def fork(self, state: ConcolicState, condition: Any, pc: int | None = None) -> bool:
        """
        Execute a conditional branch in ``state`` and return the direction taken.

        Fork-decision hooks only see non-constant conditions. The state then
        follows its concrete assignment and records the taken constraint.
        """
        if pc is not None:
            state.pc = pc

        condition = state.simplify(condition)
        if z3.is_true(condition) or z3.is_false(condition):
            return z3.is_true(condition)

        decision = ForkDecision(allow_forking=True)
        for hooks in self._hooks:
            hooks.on_state_fork_decide(state, condition, decision)
        if decision.allow_forking:
            logger.debug(f"  -> Fork allowed at {state.pc:#x}; following the concrete path only.")

        taken = z3.is_true(state.evaluate(condition))
        state.add_constraint(condition if taken else z3.Not(condition))
        return taken

    def fire_timer(self) -> None:
        for hooks in self._hooks:
            hooks.on_timer()

    def shutdown(self) -> None:
        for hooks in self._hooks:
            hooks.on_engine_shutdown()
