"""Core data models shared by the step engine, sections and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type


# ═══════════════════════════════════════════════════════════════════════════════
# STATUS ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════════════


class StepStatus(Enum):
    """Section outcome. PENDING never leaves the step engine."""

    PENDING = "Pending"
    OK = "Ok"
    FAIL = "Fail"
    SKIP = "Skip"

    @property
    def is_terminal(self) -> bool:
        return self is not StepStatus.PENDING


class PackageStatus(Enum):
    """Per-package outcome within a section."""

    UPDATED = "Updated"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    NO_CHANGE = "NoChange"


# ═══════════════════════════════════════════════════════════════════════════════
# STEP RESULTS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class Counts:
    """Aggregate counters tracked independently from the package list."""

    installed: int = 0
    available: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "installed": self.installed,
            "available": self.available,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Counts":
        return cls(**{k: max(0, int(data.get(k, 0) or 0)) for k in cls().to_dict()})


@dataclass(frozen=True)
class PackageRecord:
    """One observed package outcome. Retries add a new record."""

    name: str
    version_before: Optional[str] = None
    version_after: Optional[str] = None
    status: PackageStatus = PackageStatus.NO_CHANGE
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "versionBefore": self.version_before,
            "versionAfter": self.version_after,
            "status": self.status.value,
        }
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageRecord":
        return cls(
            name=data["name"],
            version_before=data.get("versionBefore"),
            version_after=data.get("versionAfter"),
            status=PackageStatus(data.get("status", PackageStatus.NO_CHANGE.value)),
            note=data.get("note"),
        )


@dataclass
class StepResult:
    """Mutable accumulator for one update section."""

    name: str
    status: StepStatus = StepStatus.PENDING
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration_seconds: float = 0.0
    exit_code: int = 0
    counts: Counts = field(default_factory=Counts)
    packages: List[PackageRecord] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    artifacts: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAIL

    def record_exit(self, code: int) -> None:
        """Keep the first non-zero exit code seen."""
        if code and not self.exit_code:
            self.exit_code = code

    def add_package(self, record: PackageRecord) -> None:
        self.packages.append(record)

    def fail(self, message: str, exit_code: int = 0) -> None:
        self.failures.append(message)
        self.record_exit(exit_code)

    def skip(self, reason: str) -> None:
        self.notes.append(reason)
        self.status = StepStatus.SKIP

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "durationSeconds": self.duration_seconds,
            "exitCode": self.exit_code,
            "counts": self.counts.to_dict(),
            "packages": [p.to_dict() for p in self.packages],
            "notes": list(self.notes),
            "actions": list(self.actions),
            "failures": list(self.failures),
            "artifacts": dict(self.artifacts),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepResult":
        return cls(
            name=data["name"],
            status=StepStatus(data.get("status", StepStatus.OK.value)),
            start=datetime.fromisoformat(data["start"]) if data.get("start") else None,
            end=datetime.fromisoformat(data["end"]) if data.get("end") else None,
            duration_seconds=float(data.get("durationSeconds", 0.0) or 0.0),
            exit_code=int(data.get("exitCode", 0) or 0),
            counts=Counts.from_dict(data.get("counts") or {}),
            packages=[PackageRecord.from_dict(p) for p in data.get("packages") or []],
            notes=list(data.get("notes") or []),
            actions=list(data.get("actions") or []),
            failures=list(data.get("failures") or []),
            artifacts=dict(data.get("artifacts") or {}),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# INSTALLED PACKAGE STATE (TAGGED PER ECOSYSTEM)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class InstalledPackage:
    """A package version observed in one ecosystem."""

    source: ClassVar[str] = ""

    name: str
    version: str
    id: Optional[str] = None

    @property
    def key(self) -> str:
        """Comparison key: the id when present, else the name."""
        return self.id or self.name

    def to_dict(self) -> Dict[str, str]:
        data = {"name": self.name, "version": self.version}
        if self.id:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class WingetPackage(InstalledPackage):
    source: ClassVar[str] = "Winget"


@dataclass(frozen=True)
class ChocolateyPackage(InstalledPackage):
    source: ClassVar[str] = "Chocolatey"


@dataclass(frozen=True)
class ScoopPackage(InstalledPackage):
    source: ClassVar[str] = "Scoop"


@dataclass(frozen=True)
class NpmPackage(InstalledPackage):
    source: ClassVar[str] = "npm"


@dataclass(frozen=True)
class PnpmPackage(InstalledPackage):
    source: ClassVar[str] = "pnpm"


@dataclass(frozen=True)
class PipPackage(InstalledPackage):
    source: ClassVar[str] = "pip"


@dataclass(frozen=True)
class VSCodeExtension(InstalledPackage):
    source: ClassVar[str] = "VSCode"


PACKAGE_TYPES: Dict[str, Type[InstalledPackage]] = {
    cls.source: cls
    for cls in (
        WingetPackage,
        ChocolateyPackage,
        ScoopPackage,
        NpmPackage,
        PnpmPackage,
        PipPackage,
        VSCodeExtension,
    )
}


def package_from_dict(source: str, data: Dict[str, Any]) -> InstalledPackage:
    """Rebuild a tagged package entry from its persisted form."""
    cls = PACKAGE_TYPES.get(source, InstalledPackage)
    name = data.get("name") or data.get("id") or ""
    return cls(name=name, version=str(data.get("version", "")), id=data.get("id"))


@dataclass
class BaselineSnapshot:
    """Persisted package state used as the delta comparison point."""

    timestamp: datetime
    tool_version: str
    state: Dict[str, List[InstalledPackage]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "toolVersion": self.tool_version,
            "state": {
                source: [pkg.to_dict() for pkg in packages]
                for source, packages in self.state.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BaselineSnapshot":
        state = {
            source: [package_from_dict(source, item) for item in items or []]
            for source, items in (data.get("state") or {}).items()
        }
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            tool_version=data.get("toolVersion", ""),
            state=state,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# CACHE AND PARSER RECORDS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class CacheEntry:
    """Memoized result of an expensive call."""

    key: str
    timestamp: float
    ttl_seconds: float
    data: Any
    duration_seconds: float = 0.0

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "timestamp": self.timestamp,
            "ttl": self.ttl_seconds,
            "data": self.data,
            "duration": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            timestamp=float(data["timestamp"]),
            ttl_seconds=float(data["ttl"]),
            data=data.get("data"),
            duration_seconds=float(data.get("duration", 0.0) or 0.0),
        )


@dataclass(frozen=True)
class UpgradeCandidate:
    """A row of the `winget upgrade` table."""

    name: str
    id: str
    version: str
    available: str
    source: str


@dataclass(frozen=True)
class RunningBlocker:
    """A package whose installer refused to run because the app is open."""

    name: str
    id: str
