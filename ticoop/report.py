"""
End-of-run reporting for the coordinator.

This module provides:
- ShutdownReporter: writes the unvisited-site report when the engine shuts down
- A CLI tool (``ticoop-report``) that summarizes a finished run's output directory
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ticoop.config import REPORT_FILENAME, STATS_FILENAME, TESTCASE_DIRNAME
from ticoop.sites import TargetSiteRegistry
from ticoop.stats import user_cpu_time
from ticoop.telemetry import TelemetryController, format_elapsed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShutdownSummary:
    elapsed: float
    visited: int
    unvisited: int
    total: int

    def as_row(self) -> str:
        return f"{format_elapsed(self.elapsed)},{self.visited},{self.unvisited},{self.total}"


class ShutdownReporter:
    """Classify target sites as reached or not and close out the run's logs."""

    def __init__(
        self,
        registry: TargetSiteRegistry,
        telemetry: TelemetryController,
        report_path: Path,
        clock: Callable[[], float] = user_cpu_time,
    ) -> None:
        self.registry = registry
        self.telemetry = telemetry
        self.report_path = report_path
        self.clock = clock
        self.summary: ShutdownSummary | None = None

    def on_engine_shutdown(self) -> ShutdownSummary:
        """Write the final report. Later calls return the first summary."""
        if self.summary is not None:
            return self.summary

        unvisited = self.registry.unvisited_sites()
        total = len(self.registry)

        # Final telemetry row first so the summary row closes the stats log.
        self.telemetry.on_timer()
        summary = ShutdownSummary(
            elapsed=self.clock(),
            visited=total - len(unvisited),
            unvisited=len(unvisited),
            total=total,
        )

        try:
            with open(self.report_path, "w", encoding="utf-8") as f:
                for site in unvisited:
                    f.write(f"{site.address:x} {site.site_id}\n")
                f.write(summary.as_row() + "\n")
        except OSError as e:
            logger.warning(f"[!] Could not write shutdown report {self.report_path}: {e}")

        self.telemetry.write_row(summary.as_row())
        self.telemetry.close()
        self.summary = summary

        logger.info(
            f"[+] Target sites reached: {summary.visited}/{summary.total} "
            f"({summary.unvisited} never reached)."
        )
        return summary


# ---------------------------------------------------------------------------
# Offline report CLI
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds < 0:
        return "N/A"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


def format_number(value: int | float | None, suffix: str = "") -> str:
    """Format a number with thousands separators and optional suffix."""
    if value is None:
        return "N/A"
    if isinstance(value, float):
        return f"{value:,.2f}{suffix}"
    return f"{value:,}{suffix}"


def parse_stats_row(line: str) -> tuple[float, int, int, int] | None:
    """Parse an ``elapsed,a,b,c`` row, returning None if it is malformed."""
    fields = line.strip().split(",")
    if len(fields) != 4:
        return None
    try:
        return (float(fields[0]), int(fields[1]), int(fields[2]), int(fields[3]))
    except ValueError:
        return None


def load_stats_rows(path: Path) -> list[tuple[float, int, int, int]]:
    """Read all well-formed rows of a stats log."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    return [row for row in map(parse_stats_row, lines) if row is not None]


def load_shutdown_report(
    path: Path,
) -> tuple[list[tuple[int, int]], tuple[float, int, int, int] | None]:
    """
    Load the unvisited sites and the summary row from a shutdown report.

    Returns ``([(address, site_id), ...], summary_or_None)``.
    """
    sites: list[tuple[int, int]] = []
    summary = None
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return sites, None

    for line in lines:
        line = line.strip()
        if not line:
            continue
        if "," in line:
            summary = parse_stats_row(line) or summary
            continue
        fields = line.split()
        try:
            address = int(fields[0], 16)
            site_id = int(fields[1]) if len(fields) > 1 else 0
        except (ValueError, IndexError):
            continue
        sites.append((address, site_id))
    return sites, summary


def generate_report(output_dir: Path) -> str:
    """Generate a text report for the given coordinator output directory."""
    lines: list[str] = []

    stats_rows = load_stats_rows(output_dir / STATS_FILENAME)
    unvisited, summary = load_shutdown_report(output_dir / REPORT_FILENAME)
    # The closing summary row shares the stats log with the telemetry rows.
    if summary is not None and stats_rows and stats_rows[-1] == summary:
        stats_rows = stats_rows[:-1]

    lines.append("=" * 80)
    lines.append("TICOOP RUN REPORT")
    lines.append("=" * 80)
    lines.append(f"- Output Dir:        {output_dir}")
    lines.append("")

    lines.append("--- Constraint Solving ---")
    if stats_rows:
        elapsed, solved, unsolved, total = stats_rows[-1]
        rate = (solved / total * 100.0) if total else 0.0
        lines.append(f"- Samples:           {format_number(len(stats_rows))}")
        lines.append(f"- CPU Time:          {format_duration(elapsed)}")
        lines.append(f"- Constraints:       {format_number(total)}")
        lines.append(f"- Solved:            {format_number(solved)}")
        lines.append(f"- Unsolved:          {format_number(unsolved)}")
        lines.append(f"- Solve Rate:        {format_number(rate, '%')}")
    else:
        lines.append("- No statistics recorded.")
    lines.append("")

    lines.append("--- Target Sites ---")
    if summary is not None:
        _, visited, unvisited_count, total_sites = summary
        lines.append(f"- Total Sites:       {format_number(total_sites)}")
        lines.append(f"- Reached:           {format_number(visited)}")
        lines.append(f"- Never Reached:     {format_number(unvisited_count)}")
    else:
        lines.append("- No shutdown report found (run still in progress or aborted).")
    for address, site_id in unvisited:
        lines.append(f"    {address:#x} (id {site_id})")
    lines.append("")

    testcase_dir = output_dir / TESTCASE_DIRNAME
    if testcase_dir.is_dir():
        count = sum(1 for p in testcase_dir.iterdir() if p.is_file())
        lines.append("--- Test Cases ---")
        lines.append(f"- Files Written:     {format_number(count)}")
        lines.append("")

    lines.append("=" * 80)
    return "\n".join(lines)


def main() -> None:
    """Main entry point for the text reporter CLI."""
    parser = argparse.ArgumentParser(
        description="Summarize the output directory of a ticoop run.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                  # Report for current directory
  %(prog)s /path/to/output  # Report for a specific run
        """,
    )
    parser.add_argument(
        "output_dir",
        nargs="?",
        default=".",
        help="Path to the run's output directory (default: current directory)",
    )

    args = parser.parse_args()
    output_dir = Path(args.output_dir).resolve()

    if not output_dir.is_dir():
        print(f"Error: Output directory does not exist: {output_dir}", file=sys.stderr)
        sys.exit(1)

    if not (output_dir / STATS_FILENAME).exists():
        print(
            f"Warning: {output_dir} has no {STATS_FILENAME}; it may not be a ticoop output directory.",
            file=sys.stderr,
        )

    print(generate_report(output_dir))


if __name__ == "__main__":
    main()
