"""Parsing of winget's human-readable table output.

winget has no stable machine-readable output for ``upgrade``, so rows are
recognized by anchoring on the trailing fixed-shape fields (id, version,
available version, source) and treating everything before them as the name.
Columns are separated by two or more spaces; the name itself may contain
single spaces. An installed version can carry a ``<`` or ``>`` bound, which is
not part of the version. Lines that do not fit the row shape are dropped: a missed
package is preferable to a spurious one built from progress-bar noise.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from .models import RunningBlocker, UpgradeCandidate, WingetPackage

logger = logging.getLogger(__name__)

AGREEMENT_FLAGS = ["--accept-source-agreements", "--accept-package-agreements"]

_VERSION = r"v?\d[\w.\-+]*"
_BOUND = r"(?:[<>]\s?)?"
ROW_PATTERN = re.compile(
    r"^(?P<name>\S.*?)\s{2,}"
    r"(?P<id>[^\s]+)\s{2,}"
    rf"{_BOUND}(?P<version>{_VERSION})\s{{2,}}"
    rf"{_BOUND}(?P<available>{_VERSION})\s{{2,}}"
    r"(?P<source>[A-Za-z][\w.\-]*)\s*$"
)
HEADER_PATTERN = re.compile(r"^Name\s+Id\s+Version\b")
SEPARATOR_PATTERN = re.compile(r"^-{3,}\s*$")
SUMMARY_PATTERN = re.compile(r"^\d+\s+upgrades?\s+available", re.IGNORECASE)
NO_PACKAGE_PATTERN = re.compile(r"^No installed package", re.IGNORECASE)
EXPLICIT_MARKER_PATTERN = re.compile(r"require explicit targeting", re.IGNORECASE)
PROGRESS_MARKER_PATTERN = re.compile(r"^\(\d+/\d+\)\s+(Found|Downloading)\b", re.IGNORECASE)
FOUND_PATTERN = re.compile(r"Found\s+(?P<name>.+?)\s+\[(?P<id>[^\]]+)\]")
RUNNING_PATTERN = re.compile(r"application is currently running", re.IGNORECASE)


def _is_structural(line: str) -> bool:
    """Header, separator, summary and notice lines that are never rows."""
    return (
        bool(HEADER_PATTERN.match(line))
        or bool(SEPARATOR_PATTERN.match(line))
        or bool(SUMMARY_PATTERN.match(line))
        or bool(NO_PACKAGE_PATTERN.match(line))
        or bool(EXPLICIT_MARKER_PATTERN.search(line))
    )


def parse_row(line: str) -> Optional[UpgradeCandidate]:
    """Match a single upgrade-table row, or return None for anything else."""
    match = ROW_PATTERN.match(line.strip())
    if not match:
        return None
    return UpgradeCandidate(
        name=match.group("name").strip(),
        id=match.group("id"),
        version=match.group("version"),
        available=match.group("available"),
        source=match.group("source"),
    )


def parse_upgrade_list(lines: Sequence[str]) -> List[UpgradeCandidate]:
    """Convert `winget upgrade` output into upgrade candidates."""
    candidates = []
    for raw in lines:
        line = raw.strip()
        if not line or _is_structural(line):
            continue
        candidate = parse_row(line)
        if candidate is None:
            logger.debug(f"Ignoring unrecognized winget line: {line!r}")
            continue
        candidates.append(candidate)
    return candidates


def get_explicit_target_ids(lines: Sequence[str]) -> List[str]:
    """Return ids listed under the "require explicit targeting" marker."""
    ids: List[str] = []
    in_block = False
    table_started = False

    for raw in lines:
        line = raw.strip()
        if EXPLICIT_MARKER_PATTERN.search(line):
            in_block = True
            table_started = False
            continue
        if not in_block:
            continue
        if PROGRESS_MARKER_PATTERN.match(line):
            in_block = False
            continue
        if not line:
            if table_started:
                in_block = False
            continue
        if HEADER_PATTERN.match(line) or SEPARATOR_PATTERN.match(line):
            table_started = True
            continue
        candidate = parse_row(line)
        if candidate is None:
            logger.debug(f"Ignoring non-row line in explicit targeting block: {line!r}")
            continue
        table_started = True
        if candidate.id not in ids:
            ids.append(candidate.id)

    return ids


def get_running_blockers(lines: Sequence[str]) -> List[RunningBlocker]:
    """Find packages whose install failed because the application was running."""
    blockers: Dict[str, RunningBlocker] = {}
    current: Optional[RunningBlocker] = None

    for raw in lines:
        line = raw.strip()
        found = FOUND_PATTERN.search(line)
        if found:
            current = RunningBlocker(name=found.group("name").strip(), id=found.group("id"))
            continue
        if current and RUNNING_PATTERN.search(line):
            blockers.setdefault(current.id, current)

    return list(blockers.values())


def parse_installed_list(lines: Sequence[str]) -> List[WingetPackage]:
    """Parse `winget list` using the header's column positions."""
    packages: List[WingetPackage] = []
    header_index = next(
        (
            i
            for i, line in enumerate(lines)
            if "Name" in line and "Id" in line and "Version" in line
        ),
        -1,
    )
    if header_index == -1:
        return packages

    header = lines[header_index]
    header_offset = header.find("Name")
    positions = {
        "id": header.find("Id") - header_offset,
        "version": header.find("Version") - header_offset,
        "available": header.find("Available") - header_offset if "Available" in header else -1,
        "source": header.find("Source") - header_offset if "Source" in header else -1,
    }

    for line in lines[header_index + 1 :]:
        if not line.strip() or SEPARATOR_PATTERN.match(line.strip()):
            continue
        if SUMMARY_PATTERN.match(line.strip()):
            continue

        name = line[: positions["id"]].strip()
        app_id = line[positions["id"] : positions["version"]].strip()
        version_end = next(
            (p for p in (positions["available"], positions["source"]) if p > positions["version"]),
            len(line),
        )
        version = line[positions["version"] : version_end].strip()

        if name and app_id and version:
            packages.append(WingetPackage(name=name, version=version, id=app_id))
        else:
            logger.debug(f"Ignoring unrecognized winget list line: {line!r}")

    return packages


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND BUILDERS
# ═══════════════════════════════════════════════════════════════════════════════


def source_update_command() -> List[str]:
    return ["winget", "source", "update"]


def list_upgrades_command() -> List[str]:
    return ["winget", "upgrade", "--include-unknown", "--accept-source-agreements"]


def list_installed_command() -> List[str]:
    return ["winget", "list", "--accept-source-agreements"]


def upgrade_all_command() -> List[str]:
    return ["winget", "upgrade", "--all", "--silent", "--include-unknown", *AGREEMENT_FLAGS]


def upgrade_id_command(package_id: str) -> List[str]:
    return ["winget", "upgrade", "--id", package_id, "--exact", "--silent", *AGREEMENT_FLAGS]
