"""Baseline snapshots and package-state diffing for delta updates."""

import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import __version__, winget
from .cache import CommandCache, cached_command
from .errors import BaselineError
from .execution import CommandRunner
from .models import (
    BaselineSnapshot,
    ChocolateyPackage,
    InstalledPackage,
    NpmPackage,
    PipPackage,
    PnpmPackage,
    ScoopPackage,
    VSCodeExtension,
)
from .utils import atomic_write_json

logger = logging.getLogger(__name__)

State = Dict[str, List[InstalledPackage]]

WINGET_LIST_TTL = 600


# ═══════════════════════════════════════════════════════════════════════════════
# STATE COLLECTION
# ═══════════════════════════════════════════════════════════════════════════════


def _load_json(lines: List[str]):
    text = "\n".join(lines).strip()
    return json.loads(text) if text else None


def collect_winget(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    result = cached_command(cache, "winget-list", WINGET_LIST_TTL, runner, winget.list_installed_command())
    if not result.ok:
        raise RuntimeError(f"winget list exited with {result.exit_code}")
    return list(winget.parse_installed_list(result.lines))


def collect_chocolatey(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    result = runner.run(["choco", "list", "--limit-output"])
    packages: List[InstalledPackage] = []
    for line in result.lines:
        parts = [p.strip() for p in line.split("|") if p.strip()]
        if len(parts) >= 2:
            packages.append(ChocolateyPackage(name=parts[0], version=parts[1], id=parts[0]))
    return packages


def collect_scoop(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    result = runner.run(["scoop", "list"])
    packages: List[InstalledPackage] = []
    for line in result.lines:
        parts = line.split()
        if len(parts) >= 2 and parts[0] not in ("Name", "Installed") and not parts[0].startswith("-"):
            packages.append(ScoopPackage(name=parts[0], version=parts[1]))
    return packages


def _collect_node_globals(runner: CommandRunner, cmd: List[str], package_type) -> List[InstalledPackage]:
    data = _load_json(runner.run(cmd).lines)
    if isinstance(data, list):
        data = data[0] if data else {}
    dependencies = (data or {}).get("dependencies") or {}
    return [
        package_type(name=name, version=str((details or {}).get("version", "")))
        for name, details in dependencies.items()
    ]


def collect_npm(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    return _collect_node_globals(runner, ["npm", "list", "-g", "--depth=0", "--json"], NpmPackage)


def collect_pnpm(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    return _collect_node_globals(runner, ["pnpm", "list", "-g", "--depth=0", "--json"], PnpmPackage)


def collect_pip(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    data = _load_json(runner.run([sys.executable, "-m", "pip", "list", "--format=json"]).lines) or []
    return [PipPackage(name=item["name"], version=item["version"]) for item in data]


def collect_vscode(runner: CommandRunner, cache: Optional[CommandCache] = None) -> List[InstalledPackage]:
    result = runner.run(["code", "--list-extensions", "--show-versions"])
    packages: List[InstalledPackage] = []
    for line in result.lines:
        ext_id, sep, version = line.strip().rpartition("@")
        if sep and ext_id:
            packages.append(VSCodeExtension(name=ext_id, version=version, id=ext_id))
    return packages


Collector = Callable[[CommandRunner, Optional[CommandCache]], List[InstalledPackage]]

COLLECTORS: Dict[str, Collector] = {
    "Winget": collect_winget,
    "Chocolatey": collect_chocolatey,
    "Scoop": collect_scoop,
    "npm": collect_npm,
    "pnpm": collect_pnpm,
    "pip": collect_pip,
    "VSCode": collect_vscode,
}


def collect_current_state(
    sources: Sequence[str],
    runner: CommandRunner,
    cache: Optional[CommandCache] = None,
    collectors: Optional[Dict[str, Collector]] = None,
) -> State:
    """Snapshot installed packages per source; a failing source yields []."""
    collectors = collectors or COLLECTORS
    state: State = {}
    for source in sources:
        collector = collectors.get(source)
        if collector is None:
            logger.warning(f"No state collector for source '{source}'")
            state[source] = []
            continue
        try:
            state[source] = list(collector(runner, cache))
        except Exception as e:
            logger.warning(f"Failed to collect {source} state: {e}")
            state[source] = []
        logger.debug(f"Collected {len(state[source])} {source} packages")
    return state


# ═══════════════════════════════════════════════════════════════════════════════
# DIFFING
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class VersionChange:
    key: str
    old: str
    new: str


@dataclass
class SourceDiff:
    """Added/removed/updated keys for one source."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    updated: List[VersionChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.updated)


StateDiff = Dict[str, SourceDiff]


def _index(packages: Sequence[InstalledPackage]) -> Dict[str, str]:
    return {pkg.key: pkg.version for pkg in packages}


def compare_state(current: State, baseline: Optional[State]) -> StateDiff:
    """Diff current state against a baseline, source by source."""
    baseline = baseline or {}
    sources = list(current) + [s for s in baseline if s not in current]
    diff: StateDiff = {}

    for source in sources:
        now = _index(current.get(source, []))
        before = _index(baseline.get(source, []))
        diff[source] = SourceDiff(
            added=[k for k in now if k not in before],
            removed=[k for k in before if k not in now],
            updated=[
                VersionChange(key=k, old=before[k], new=version)
                for k, version in now.items()
                if k in before and before[k] != version
            ],
        )

    return diff


def get_update_targets(diff: StateDiff, source: str, include_new: bool = False) -> List[str]:
    """Keys a delta run should target for one source."""
    source_diff = diff.get(source)
    if source_diff is None:
        return []
    targets = [change.key for change in source_diff.updated]
    if include_new:
        targets.extend(k for k in source_diff.added if k not in targets)
    return targets


# ═══════════════════════════════════════════════════════════════════════════════
# PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════════


class BaselineStore:
    """Timestamped baseline snapshot files with retention."""

    PREFIX = "baseline_"

    def __init__(self, directory: Path, clock: Callable[[], datetime] = datetime.now):
        self.directory = Path(directory)
        self.clock = clock

    def _files(self) -> List[Path]:
        if not self.directory.exists():
            return []
        files = self.directory.glob(f"{self.PREFIX}*.json")
        return sorted(files, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)

    def save_baseline(self, state: State, keep_last: int = 10) -> Path:
        """Write a new snapshot and prune the oldest beyond keep_last."""
        snapshot = BaselineSnapshot(timestamp=self.clock(), tool_version=__version__, state=state)
        path = self.directory / f"{self.PREFIX}{snapshot.timestamp.strftime('%Y%m%d_%H%M%S_%f')}.json"
        atomic_write_json(path, snapshot.to_dict())
        logger.info(f"Saved baseline {path.name}")

        for old in self._files()[max(keep_last, 1) :]:
            try:
                old.unlink()
                logger.debug(f"Pruned baseline {old.name}")
            except OSError as e:
                logger.warning(f"Failed to prune baseline {old}: {e}")
        return path

    def read(self, path: Path) -> BaselineSnapshot:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return BaselineSnapshot.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise BaselineError(path, str(e)) from e

    def load_latest_baseline(self, max_age_days: float) -> Optional[BaselineSnapshot]:
        """Newest readable snapshot younger than max_age_days, else None."""
        for path in self._files():
            try:
                snapshot = self.read(path)
            except BaselineError as e:
                logger.warning(str(e))
                continue
            age = self.clock() - snapshot.timestamp
            if age > timedelta(days=max_age_days):
                logger.info(f"Latest baseline {path.name} is {age.days} days old; ignoring it")
                return None
            return snapshot
        return None
