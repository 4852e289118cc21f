"""
This module contains the TICooperator class, which wires the coordinator's
components together and registers them against the host engine.

TICooperator cooperates with a taint-inference pass: it keeps the engine on
a single concolic path so the critical-byte hints stay valid, while still
generating test cases for the untaken side of the branches at the target
sites the taint pass selected.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ticoop.config import CoordinatorConfig, prepare_output_directories
from ticoop.control import handle_opcode_invocation
from ticoop.engine import ExecutionState, Executor, ForkDecision, TestCaseMaterializer
from ticoop.handoff import TestcaseHandoff
from ticoop.policy import BranchCapturePolicy, TrackedState
from ticoop.report import ShutdownReporter, ShutdownSummary
from ticoop.sites import TargetSiteRegistry
from ticoop.stats import RunStatistics, user_cpu_time
from ticoop.telemetry import TelemetryController
from ticoop.testcases import FileTestCaseWriter
from ticoop.utils import configure_logging

logger = logging.getLogger(__name__)


class TICooperator:
    """
    Coordinator implementing the engine's fork-decision, timer and shutdown hooks.

    Construction only records collaborators; ``initialize()`` creates the
    output directories, loads the target sites, opens the stats log and
    connects to the executor.
    """

    def __init__(
        self,
        executor: Executor,
        config: CoordinatorConfig | None = None,
        materializer: TestCaseMaterializer | None = None,
        clock: Callable[[], float] = user_cpu_time,
    ) -> None:
        self.executor = executor
        self.config = config if config is not None else CoordinatorConfig()
        self.materializer = materializer
        self.clock = clock

        self.stats = RunStatistics()
        self.tracked = TrackedState()
        self.registry = TargetSiteRegistry(tolerance=self.config.tolerance)
        self.telemetry: TelemetryController | None = None
        self.policy: BranchCapturePolicy | None = None
        self.reporter: ShutdownReporter | None = None

    def initialize(self) -> None:
        """Prepare outputs and connect to the engine. Raises OutputDirectoryError."""
        if self.policy is not None:
            logger.warning("[!] TICooperator is already initialized; ignoring second call.")
            return
        config = self.config
        prepare_output_directories(config)
        if config.log_to_file:
            configure_logging(config.log_path, verbose=config.verbose)
        self.registry = TargetSiteRegistry.load(config.target_sites, tolerance=config.tolerance)

        if self.materializer is None:
            self.materializer = FileTestCaseWriter(config.testcase_dir)

        self.telemetry = TelemetryController(
            config.stats_path,
            self.stats,
            self.tracked,
            self.executor,
            timeout=config.timeout,
            clock=self.clock,
        )
        handoff = TestcaseHandoff(self.materializer, self.executor.expr_ops)
        self.policy = BranchCapturePolicy(
            self.registry, self.stats, handoff, self.executor, tracked=self.tracked
        )
        self.reporter = ShutdownReporter(
            self.registry, self.telemetry, config.report_path, clock=self.clock
        )

        self.executor.connect(self)
        logger.info(
            f"[+] TICooperator ready: {len(self.registry)} target sites, "
            f"timeout {config.timeout}s, output in {config.output_dir}"
        )

    def _require_initialized(self) -> None:
        if self.policy is None:
            raise RuntimeError("TICooperator.initialize() has not been called")

    def on_state_fork_decide(
        self, state: ExecutionState, condition: Any, decision: ForkDecision
    ) -> None:
        self._require_initialized()
        self.policy.on_state_fork_decide(state, condition, decision)

    def on_timer(self) -> None:
        self._require_initialized()
        self.telemetry.on_timer()

    def on_engine_shutdown(self) -> ShutdownSummary:
        self._require_initialized()
        return self.reporter.on_engine_shutdown()

    def handle_opcode_invocation(self, state: ExecutionState, guest_ptr: int, size: int) -> bool:
        """Entry point for commands sent by the guest."""
        self._require_initialized()
        return handle_opcode_invocation(state, guest_ptr, size, self.telemetry)
