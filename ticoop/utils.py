"""
Generic helpers for ticoop: logging setup shared by the coordinator and its CLI.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

LOG_FORMAT = "%(asctime)s %(name)s: %(message)s"


def configure_logging(
    log_path: Path | None = None,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Send ``ticoop`` log records to the console and, optionally, a log file.

    The console shows INFO and above (DEBUG with ``verbose``); the log file
    always receives DEBUG records, including the per-tick statistics lines.
    Calling this again replaces the handlers from the previous call.
    """
    root = logging.getLogger("ticoop")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream if stream is not None else sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console)

    if log_path is not None:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    root.propagate = False
    return root
