"""
Run configuration and output directory layout for the coordinator.
"""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ticoop.sites import TOLERANCE

logger = logging.getLogger(__name__)

# --- Paths for coordinator inputs and outputs ---
DEFAULT_TARGET_SITES = Path("ret_addr")
STATS_FILENAME = "Solving.stats"
REPORT_FILENAME = "failed.stats"
TESTCASE_DIRNAME = "testcase-"
LOG_FILENAME = "ticoop.log"

DEFAULT_TIMEOUT = 3600.0  # Seconds of user CPU time


class OutputDirectoryError(RuntimeError):
    """The output or test-case directory could not be created."""


@dataclass
class CoordinatorConfig:
    """Settings for one coordinator run."""

    output_dir: Path = field(default_factory=Path.cwd)
    target_sites: Path = DEFAULT_TARGET_SITES
    timeout: float = DEFAULT_TIMEOUT
    tolerance: int = TOLERANCE
    log_to_file: bool = False
    verbose: bool = False

    @property
    def stats_path(self) -> Path:
        return self.output_dir / STATS_FILENAME

    @property
    def report_path(self) -> Path:
        return self.output_dir / REPORT_FILENAME

    @property
    def testcase_dir(self) -> Path:
        return self.output_dir / TESTCASE_DIRNAME

    @property
    def log_path(self) -> Path:
        return self.output_dir / LOG_FILENAME

    @classmethod
    def from_args(cls, argv: Sequence[str] | None = None) -> "CoordinatorConfig":
        """Build a configuration from command-line style arguments."""
        parser = build_arg_parser()
        args = parser.parse_args(argv)
        return cls(
            output_dir=Path(args.output_dir),
            target_sites=Path(args.target_sites),
            timeout=args.timeout,
            tolerance=args.tolerance,
            log_to_file=args.log_file,
            verbose=args.verbose,
        )


def parse_int_auto(value: str) -> int:
    """argparse type accepting decimal or 0x-prefixed integers."""
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ticoop: branch-targeted constraint solving without forking."
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=".",
        help="Directory for statistics, the shutdown report and generated test cases.",
    )
    parser.add_argument(
        "--target-sites",
        type=str,
        default=str(DEFAULT_TARGET_SITES),
        help="Target site list, one 'hexAddress [decimalId]' per line. (Default: ret_addr)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="User CPU time budget in seconds before the tracked state is terminated.",
    )
    parser.add_argument(
        "--tolerance",
        type=parse_int_auto,
        default=TOLERANCE,
        help="Forward distance in bytes within which a branch matches a site. (Default: 0x10)",
    )
    parser.add_argument(
        "--log-file",
        action="store_true",
        help="Also write a debug log (ticoop.log) into the output directory.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show per-branch and per-tick debug messages on the console.",
    )
    return parser


def prepare_output_directories(config: CoordinatorConfig) -> None:
    """
    Create the output and test-case directories.

    The test-case directory gets mode ``0775`` minus the process umask.
    Raises OutputDirectoryError if either directory cannot be created, since
    the run has nowhere to write its logs.
    """
    try:
        config.output_dir.mkdir(parents=True, exist_ok=True)
        config.testcase_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(
            f"Could not create testcase directory {config.testcase_dir}: {e}"
        ) from e

    # os.umask() can only be read by setting it.
    mask = os.umask(0)
    os.umask(mask)
    try:
        os.chmod(config.testcase_dir, 0o775 & ~mask)
    except OSError as e:
        logger.warning(f"[!] Could not set permissions on {config.testcase_dir}: {e}")
