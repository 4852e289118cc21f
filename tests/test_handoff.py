"""Tests for the alternate-branch test case handoff."""

import unittest
from unittest.mock import MagicMock

from ticoop import engine, handoff
from ticoop.engine import EngineInvariantError
from ticoop.handoff import alternate_constraint, format_testcase_label
from ticoop.sites import TargetSite


class NotOps:
    def negate(self, expr):
        return ("not", expr)


class TestLabel(unittest.TestCase):
    def test_label_format(self):
        self.assertEqual(format_testcase_label(0, TargetSite(0x1000, 7)), "id:000000-1000-7")
        self.assertEqual(
            format_testcase_label(123, TargetSite(0x401A2F, 0)), "id:000123-401a2f-0"
        )

    def test_alternate_constraint(self):
        self.assertEqual(alternate_constraint(NotOps(), "c", True), ("not", "c"))
        self.assertEqual(alternate_constraint(NotOps(), "c", False), "c")


class TestMaterialize(unittest.TestCase):
    def setUp(self):
        self.materializer = MagicMock()
        self.handoff = handoff.TestcaseHandoff(self.materializer, NotOps())
        self.site = TargetSite(0x1000, 7)
        self.state = MagicMock()
        self.clone = self.state.clone.return_value
        self.clone.add_constraint.return_value = True
        self.objects = [MagicMock()]

    def test_clone_receives_values_and_constraint(self):
        self.handoff.materialize(self.state, "c", True, self.objects, [b"\x41"], self.site)

        self.state.clone.assert_called_once_with()
        self.clone.set_concrete_values.assert_called_once_with(self.objects, [b"\x41"])
        self.clone.add_constraint.assert_called_once_with(("not", "c"))
        self.materializer.generate_test_case.assert_called_once_with(
            self.clone, "id:000000-1000-7", engine.TestCaseKind.FILE
        )

    def test_observing_state_untouched(self):
        self.handoff.materialize(self.state, "c", False, self.objects, [b"\x00"], self.site)

        self.state.add_constraint.assert_not_called()
        self.state.set_concrete_values.assert_not_called()

    def test_sequence_increments_per_request(self):
        for _ in range(3):
            self.handoff.materialize(self.state, "c", True, self.objects, [b"a"], self.site)

        labels = [c.args[1] for c in self.materializer.generate_test_case.call_args_list]
        self.assertEqual(labels, ["id:000000-1000-7", "id:000001-1000-7", "id:000002-1000-7"])
        self.assertEqual(self.handoff.sequence, 3)

    def test_returns_materializer_result(self):
        self.materializer.generate_test_case.return_value = ["path"]
        result = self.handoff.materialize(self.state, "c", True, self.objects, [b"a"], self.site)
        self.assertEqual(result, ["path"])

    def test_rejected_constraint_is_fatal(self):
        self.clone.add_constraint.return_value = False

        with self.assertRaises(EngineInvariantError):
            self.handoff.materialize(self.state, "c", True, self.objects, [b"a"], self.site)

        self.materializer.generate_test_case.assert_not_called()


if __name__ == "__main__":
    unittest.main()
