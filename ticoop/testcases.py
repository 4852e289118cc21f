"""
File-backed test-case materializer.

Writes a state's concrete assignment to disk, one file per symbolic object.
When only part of an input file was made symbolic, a template holding the
original file contents lets the writer splice the solved bytes back into
place so the test case is a complete input.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Mapping

from ticoop.engine import ExecutionState, TestCaseKind

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class FileTestCaseWriter:
    """Materialize test cases as files under a test-case directory."""

    def __init__(
        self,
        testcase_dir: Path,
        templates: Mapping[str, tuple[int, bytes]] | None = None,
    ) -> None:
        """
        Args:
            testcase_dir: Directory receiving the generated files.
            templates: Optional map from symbolic object name to
                ``(offset, original_file_bytes)``; the object's bytes are
                written over the original contents starting at ``offset``.
        """
        self.testcase_dir = testcase_dir
        self.templates = dict(templates or {})
        self.written: list[Path] = []

    def assemble(self, name: str, value: bytes) -> bytes:
        if name not in self.templates:
            return value
        offset, original = self.templates[name]
        padded = original.ljust(offset, b"\x00")
        return padded[:offset] + value + padded[offset + len(value) :]

    def generate_test_case(
        self, state: ExecutionState, label: str, kind: TestCaseKind = TestCaseKind.FILE
    ) -> list[Path] | None:
        """Write the state's concrete inputs. Returns the paths, or None on failure."""
        if kind is not TestCaseKind.FILE:
            logger.warning(f"[!] Unsupported test case kind {kind!r} for {label}.")
            return None

        values = state.concrete_values()
        paths = []
        try:
            for name, value in values.items():
                if len(values) == 1:
                    filename = label
                else:
                    filename = f"{label}-{_UNSAFE_NAME_CHARS.sub('_', name)}"
                path = self.testcase_dir / filename
                path.write_bytes(self.assemble(name, value))
                paths.append(path)
        except OSError as e:
            logger.warning(f"[!] Could not write test case {label}: {e}")
            return None

        self.written.extend(paths)
        logger.info(f"[+] Generated test case {label} ({len(paths)} file(s)).")
        return paths
