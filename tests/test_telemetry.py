"""Tests for the stats log and timeout enforcement."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from ticoop.policy import TrackedState
from ticoop.stats import RunStatistics, user_cpu_time
from ticoop.telemetry import TelemetryController


class TelemetryTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.stats_path = Path(self.temp_dir.name) / "Solving.stats"
        self.stats = RunStatistics(constraints_total=5, solved=3, unsolved=2)
        self.tracked = TrackedState(state_id=0)
        self.executor = MagicMock()
        self.now = 1.5
        self.telemetry = TelemetryController(
            self.stats_path,
            self.stats,
            self.tracked,
            self.executor,
            timeout=100.0,
            clock=lambda: self.now,
        )

    def tearDown(self):
        self.telemetry.close()
        self.temp_dir.cleanup()


class TestStatsRows(TelemetryTestCase):
    def test_row_is_flushed_immediately(self):
        self.telemetry.on_timer()

        # Read while the controller still holds the file open.
        self.assertEqual(self.stats_path.read_text(), "1.500,3,2,5\n")

    def test_rows_are_appended(self):
        self.telemetry.on_timer()
        self.stats.begin_constraint()
        self.stats.record_solved()
        self.now = 2.25
        self.telemetry.on_timer()

        lines = self.stats_path.read_text().splitlines()
        self.assertEqual(lines, ["1.500,3,2,5", "2.250,4,2,6"])

    def test_new_controller_truncates_previous_log(self):
        self.telemetry.on_timer()
        self.telemetry.close()

        self.telemetry = TelemetryController(
            self.stats_path, self.stats, self.tracked, self.executor, timeout=100.0,
            clock=lambda: self.now,
        )
        self.assertEqual(self.stats_path.read_text(), "")
        self.telemetry.on_timer()
        self.assertEqual(self.stats_path.read_text().splitlines(), ["1.500,3,2,5"])

    def test_write_after_close_is_dropped(self):
        self.telemetry.close()
        with self.assertLogs("ticoop.telemetry", level="WARNING"):
            self.telemetry.write_row("x")
        self.assertTrue(self.telemetry.closed)


class TestTimeout(TelemetryTestCase):
    def test_below_budget_no_termination(self):
        self.assertFalse(self.telemetry.on_timer())
        self.executor.terminate_state.assert_not_called()
        self.assertEqual(len(self.stats_path.read_text().splitlines()), 1)

    def test_at_budget_terminates_tracked_state_once(self):
        state = MagicMock()
        self.executor.find_state.return_value = state
        self.now = 100.0

        self.assertTrue(self.telemetry.on_timer())

        self.executor.find_state.assert_called_once_with(0)
        self.executor.terminate_state.assert_called_once_with(state, "timeout")

    def test_rechecked_every_tick(self):
        self.executor.find_state.return_value = MagicMock()
        self.now = 150.0

        self.telemetry.on_timer()
        self.telemetry.on_timer()

        self.assertEqual(self.executor.terminate_state.call_count, 2)

    def test_gone_state_is_a_no_op(self):
        self.executor.find_state.return_value = None
        self.now = 500.0

        self.assertFalse(self.telemetry.on_timer())
        self.executor.terminate_state.assert_not_called()

    def test_nothing_tracked_yet(self):
        self.tracked.state_id = None
        self.now = 500.0

        self.assertFalse(self.telemetry.on_timer())
        self.executor.find_state.assert_not_called()


class TestUserCpuTime(unittest.TestCase):
    def test_reads_user_time_from_psutil(self):
        with patch("ticoop.stats.psutil.Process") as mock_proc:
            mock_proc.return_value.cpu_times.return_value.user = 12.5
            self.assertEqual(user_cpu_time(), 12.5)

    def test_real_process(self):
        self.assertGreaterEqual(user_cpu_time(), 0.0)


if __name__ == "__main__":
    unittest.main()
