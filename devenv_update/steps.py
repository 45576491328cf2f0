"""Step execution engine: timing, isolation and status classification."""

import logging
import os
import traceback
from datetime import datetime
from typing import Callable, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from .execution import CommandRunner, format_command
from .models import PackageStatus, StepResult, StepStatus

logger = logging.getLogger(__name__)

Hook = Callable[[], None]
StepBody = Callable[[StepResult], None]

STATUS_STYLES = {
    StepStatus.OK: ("green", "✅"),
    StepStatus.FAIL: ("red", "❌"),
    StepStatus.SKIP: ("yellow", "⏭️"),
    StepStatus.PENDING: ("dim", "…"),
}

PACKAGE_STYLES = {
    PackageStatus.UPDATED: "green",
    PackageStatus.FAILED: "red",
    PackageStatus.SKIPPED: "yellow",
    PackageStatus.NO_CHANGE: "dim",
}


# ═══════════════════════════════════════════════════════════════════════════════
# HOOKS
# ═══════════════════════════════════════════════════════════════════════════════


class HookRegistry:
    """Global and per-section pre/post hooks. Hooks never affect status."""

    def __init__(self):
        self.pre_update: List[Hook] = []
        self.post_update: List[Hook] = []
        self.section_pre: Dict[str, List[Hook]] = {}
        self.section_post: Dict[str, List[Hook]] = {}

    def add_global(self, pre: Optional[Hook] = None, post: Optional[Hook] = None):
        if pre:
            self.pre_update.append(pre)
        if post:
            self.post_update.append(post)

    def add_section(self, section: str, pre: Optional[Hook] = None, post: Optional[Hook] = None):
        key = section.lower()
        if pre:
            self.section_pre.setdefault(key, []).append(pre)
        if post:
            self.section_post.setdefault(key, []).append(post)

    def before(self, section: str) -> List[Hook]:
        return self.pre_update + self.section_pre.get(section.lower(), [])

    def after(self, section: str) -> List[Hook]:
        return self.section_post.get(section.lower(), []) + self.post_update

    @classmethod
    def from_settings(cls, settings: Dict, runner: CommandRunner) -> "HookRegistry":
        """Build hooks from configured shell commands."""
        registry = cls()
        registry.add_global(
            pre=command_hook(settings.get("pre_update"), runner),
            post=command_hook(settings.get("post_update"), runner),
        )
        for section, hooks in (settings.get("sections") or {}).items():
            hooks = hooks or {}
            registry.add_section(
                section,
                pre=command_hook(hooks.get("pre"), runner),
                post=command_hook(hooks.get("post"), runner),
            )
        return registry


def command_hook(command, runner: CommandRunner) -> Optional[Hook]:
    """Wrap a configured command (string or argv list) as a zero-argument hook."""
    if not command:
        return None

    def hook():
        if isinstance(command, str):
            result = runner.run_powershell(command) if os.name == "nt" else runner.run_mutating(["sh", "-c", command])
        else:
            result = runner.run_mutating(command)
        if not result.ok:
            raise RuntimeError(f"Hook '{command}' exited with {result.exit_code}")

    hook.__name__ = f"hook[{command if isinstance(command, str) else format_command(command)}]"
    return hook


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE
# ═══════════════════════════════════════════════════════════════════════════════


def _failure_location(exc: BaseException) -> Optional[str]:
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return None
    frame = frames[-1]
    return f"{os.path.basename(frame.filename)}:{frame.lineno}"


def finalize_status(result: StepResult):
    """Resolve a pending (or inconsistent) status from failures and counts."""
    has_failures = bool(result.failures) or result.counts.failed > 0
    if not result.status.is_terminal:
        result.status = StepStatus.FAIL if has_failures else StepStatus.OK
    elif result.status is StepStatus.OK and result.failures:
        result.status = StepStatus.FAIL


class StepEngine:
    """Runs a named unit of work with hooks, timing and exception isolation."""

    def __init__(
        self,
        hooks: Optional[HookRegistry] = None,
        console: Optional[Console] = None,
        show_packages: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.hooks = hooks or HookRegistry()
        self.console = console or Console()
        self.show_packages = show_packages
        self.clock = clock

    def run(self, name: str, body: StepBody, skip: bool = False) -> StepResult:
        """Execute one section and return its terminal result."""
        result = StepResult(name=name)
        result.start = self.clock()

        if skip:
            result.skip("Skipped by user")
            self._complete(result)
            return result

        self._run_hooks(self.hooks.before(name), result, "pre")
        logger.info(f"=== {name} ===")
        try:
            body(result)
        except Exception as e:
            location = _failure_location(e)
            message = f"{type(e).__name__}: {e}"
            if location:
                message = f"{message} (at {location})"
            result.failures.append(message)
            result.status = StepStatus.FAIL
            result.exit_code = 1
            logger.exception(f"{name} failed with an unexpected error")
        else:
            finalize_status(result)
        self._run_hooks(self.hooks.after(name), result, "post")

        self._complete(result)
        return result

    def _run_hooks(self, hooks: List[Hook], result: StepResult, phase: str):
        for hook in hooks:
            try:
                hook()
            except Exception as e:
                label = getattr(hook, "__name__", repr(hook))
                logger.warning(f"{phase}-hook {label} for {result.name} failed: {e}")
                result.notes.append(f"{phase}-hook {label} failed: {e}")

    def _complete(self, result: StepResult):
        result.end = self.clock()
        result.duration_seconds = round((result.end - result.start).total_seconds(), 1)
        logger.info(
            f"{result.name}: {result.status.value} in {result.duration_seconds}s "
            f"(updated={result.counts.updated}, failed={result.counts.failed}, "
            f"skipped={result.counts.skipped})"
        )
        if self.show_packages:
            self.render(result)

    def render(self, result: StepResult):
        """Print a status line and, when present, the package table."""
        color, icon = STATUS_STYLES[result.status]
        self.console.print(
            f"[{color}]{icon} {result.name}[/{color}] "
            f"[dim]{result.status.value} · {result.duration_seconds:.1f}s[/dim]"
        )
        if result.packages:
            self.console.print(package_table(result))


def package_table(result: StepResult) -> Table:
    """Compact before → after table for a section's packages."""
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold blue", pad_edge=False)
    table.add_column("📦 Package", style="cyan", no_wrap=True)
    table.add_column("📋 Version")
    table.add_column("📊 Status", justify="center")

    for record in result.packages:
        style = PACKAGE_STYLES[record.status]
        before = record.version_before or "?"
        after = record.version_after or "?"
        version = before if before == after else f"{before} → {after}"
        status = record.status.value + (f" ({record.note})" if record.note else "")
        table.add_row(record.name[:40], version, f"[{style}]{status}[/{style}]")

    return table
