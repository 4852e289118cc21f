"""
Registry of target sites: the branch locations the coordinator solves for.

A site list is a plain text file with one ``hexAddress [decimalId]`` record
per line, usually produced by the taint-inference pass. Lookups match a
program counter to a site when it lies within a short forward window after
the site's address, since the comparison and the conditional jump that
consumes it are a few bytes apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

# Forward distance (in bytes) within which a branch belongs to a site.
TOLERANCE = 0x10


@dataclass
class TargetSite:
    """A single site of interest and whether execution has reached it."""

    address: int
    site_id: int = 0
    visited: bool = False


def parse_site_record(line: str) -> TargetSite | None:
    """
    Parse one ``hexAddress [decimalId]`` record.

    Returns None for blank lines and ``#`` comments. Raises ValueError when
    the record is malformed.
    """
    fields = line.split("#", 1)[0].split()
    if not fields:
        return None
    if len(fields) > 2:
        raise ValueError(f"expected 'hexAddress [decimalId]', got {line.strip()!r}")

    address = int(fields[0], 16)
    site_id = int(fields[1], 10) if len(fields) == 2 else 0
    if address < 0 or site_id < 0:
        raise ValueError(f"negative value in record {line.strip()!r}")
    return TargetSite(address=address, site_id=site_id)


class TargetSiteRegistry:
    """
    Ordered, fixed-membership collection of target sites.

    Only the ``visited`` flag of each site changes after loading. Lookup is
    a linear scan in registration order, which is fine for the tens to low
    hundreds of sites a taint-inference pass selects.
    """

    def __init__(self, sites: Iterable[TargetSite] = (), tolerance: int = TOLERANCE) -> None:
        self.tolerance = tolerance
        self._sites: list[TargetSite] = []
        seen: set[int] = set()
        for site in sites:
            if site.address in seen:
                logger.warning(f"[!] Duplicate target site {site.address:#x} ignored.")
                continue
            seen.add(site.address)
            self._sites.append(site)

    @classmethod
    def from_lines(cls, lines: Iterable[str], tolerance: int = TOLERANCE) -> "TargetSiteRegistry":
        """Build a registry from site records, skipping malformed lines."""
        sites = []
        for lineno, line in enumerate(lines, start=1):
            try:
                site = parse_site_record(line)
            except ValueError as e:
                logger.warning(f"[!] Skipping malformed target site on line {lineno}: {e}")
                continue
            if site is not None:
                sites.append(site)
        return cls(sites, tolerance=tolerance)

    @classmethod
    def load(cls, source: str | Path, tolerance: int = TOLERANCE) -> "TargetSiteRegistry":
        """
        Load the registry from a site list file.

        An unreadable file yields an empty registry and a warning; the run
        continues without any sites of interest.
        """
        path = Path(source)
        try:
            with open(path, encoding="utf-8") as f:
                registry = cls.from_lines(f, tolerance=tolerance)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"[!] Unable to open target site list {path}: {e}")
            return cls(tolerance=tolerance)

        logger.info(f"[*] Loaded {len(registry)} target sites from {path}.")
        return registry

    def __len__(self) -> int:
        return len(self._sites)

    def __iter__(self) -> Iterator[TargetSite]:
        return iter(self._sites)

    def lookup(self, pc: int) -> TargetSite | None:
        """Return the first site with ``0 <= pc - address < tolerance``."""
        for site in self._sites:
            if pc < site.address:
                continue
            if pc - site.address < self.tolerance:
                return site
        return None

    def mark_visited(self, site: TargetSite) -> bool:
        """Flag a site as reached. Returns True only on the first call for it."""
        if site.visited:
            return False
        site.visited = True
        logger.info(f"[+] Reached target site {site.address:#x} (id {site.site_id}).")
        return True

    def visited_sites(self) -> list[TargetSite]:
        return [site for site in self._sites if site.visited]

    def unvisited_sites(self) -> list[TargetSite]:
        return [site for site in self._sites if not site.visited]
