"""Safe subprocess execution.

Every call returns a ``CommandResult`` whose output is a list of lines, even
when the tool printed a single line or nothing at all. Launch failures are
reported as a synthetic exit code instead of an exception so that a missing
or broken tool never aborts a section.
"""

import logging
import platform
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .utils import as_lines

logger = logging.getLogger(__name__)

LAUNCH_FAILURE_EXIT_CODE = -1


@dataclass
class CommandResult:
    """Exit code plus combined stdout/stderr lines of one command."""

    exit_code: int
    lines: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "lines": list(self.lines),
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandResult":
        return cls(
            exit_code=int(data.get("exit_code", 0)),
            lines=as_lines(data.get("lines")),
            duration_seconds=float(data.get("duration_seconds", 0.0) or 0.0),
        )


def command_exists(name: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(name) is not None


def format_command(cmd: Sequence[str]) -> str:
    return " ".join(str(part) for part in cmd)


class CommandRunner:
    """Runs external tools, honoring dry-run for mutating commands."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def exists(self, name: str) -> bool:
        return command_exists(name)

    def run(self, cmd: Sequence[str]) -> CommandResult:
        """Execute a command and capture its combined output."""
        cmd = [str(part) for part in cmd]
        if platform.system() == "Windows":
            executable = shutil.which(cmd[0])
            if executable:
                cmd[0] = executable

        logger.debug(f"Executing: {format_command(cmd)}")
        started = time.monotonic()
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Could not launch {format_command(cmd)}: {e}")
            return CommandResult(
                exit_code=LAUNCH_FAILURE_EXIT_CODE,
                lines=[f"EXCEPTION: {e}"],
                duration_seconds=round(time.monotonic() - started, 1),
            )

        duration = round(time.monotonic() - started, 1)
        if proc.returncode != 0:
            logger.debug(f"Command exited {proc.returncode}: {format_command(cmd)}")
        return CommandResult(proc.returncode, as_lines(proc.stdout), duration)

    def run_mutating(self, cmd: Sequence[str]) -> CommandResult:
        """Execute a state-changing command, or just log it under dry-run."""
        if self.dry_run:
            message = f"would execute {format_command(cmd)}"
            logger.info(message)
            return CommandResult(0, [f"DRY-RUN: {message}"])
        return self.run(cmd)

    def run_powershell(self, script: str, mutating: bool = True) -> CommandResult:
        """Run a PowerShell snippet with the first available host."""
        host = "pwsh" if self.exists("pwsh") else "powershell"
        cmd = [host, "-NoProfile", "-NonInteractive", "-Command", script]
        return self.run_mutating(cmd) if mutating else self.run(cmd)


def is_admin() -> Optional[bool]:
    """Return whether the process is elevated, or None when unknown."""
    if platform.system() != "Windows":
        return None
    try:
        import ctypes

        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return None
