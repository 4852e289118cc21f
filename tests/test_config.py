"""Tests for configuration and output directory setup."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from ticoop.config import (
    DEFAULT_TIMEOUT,
    CoordinatorConfig,
    OutputDirectoryError,
    prepare_output_directories,
)
from ticoop.sites import TOLERANCE


class TestCoordinatorConfig(unittest.TestCase):
    def test_defaults(self):
        config = CoordinatorConfig(output_dir=Path("/out"))

        self.assertEqual(config.target_sites, Path("ret_addr"))
        self.assertEqual(config.timeout, DEFAULT_TIMEOUT)
        self.assertEqual(config.tolerance, TOLERANCE)
        self.assertEqual(config.stats_path, Path("/out/Solving.stats"))
        self.assertEqual(config.report_path, Path("/out/failed.stats"))
        self.assertEqual(config.testcase_dir, Path("/out/testcase-"))

    def test_from_args(self):
        config = CoordinatorConfig.from_args(
            ["--output-dir", "/tmp/run", "--target-sites", "sites.txt", "--timeout", "60",
             "--tolerance", "0x20"]
        )

        self.assertEqual(config.output_dir, Path("/tmp/run"))
        self.assertEqual(config.target_sites, Path("sites.txt"))
        self.assertEqual(config.timeout, 60.0)
        self.assertEqual(config.tolerance, 0x20)
        self.assertFalse(config.log_to_file)

    def test_from_args_logging_flags(self):
        config = CoordinatorConfig.from_args(["--log-file", "--verbose"])
        self.assertTrue(config.log_to_file)
        self.assertTrue(config.verbose)

    def test_from_args_rejects_bad_tolerance(self):
        with patch("sys.stderr"):
            with self.assertRaises(SystemExit):
                CoordinatorConfig.from_args(["--tolerance", "sixteen"])


class TestPrepareOutputDirectories(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.temp_path = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_creates_testcase_directory(self):
        config = CoordinatorConfig(output_dir=self.temp_path / "run")

        prepare_output_directories(config)

        self.assertTrue(config.testcase_dir.is_dir())
        mask = os.umask(0)
        os.umask(mask)
        self.assertEqual(config.testcase_dir.stat().st_mode & 0o777, 0o775 & ~mask)

    def test_existing_directories_are_fine(self):
        config = CoordinatorConfig(output_dir=self.temp_path)
        prepare_output_directories(config)
        prepare_output_directories(config)
        self.assertTrue(config.testcase_dir.is_dir())

    def test_uncreatable_directory_is_fatal(self):
        blocker = self.temp_path / "file"
        blocker.write_text("not a directory")
        config = CoordinatorConfig(output_dir=blocker / "run")

        with self.assertRaises(OutputDirectoryError):
            prepare_output_directories(config)


if __name__ == "__main__":
    unittest.main()
