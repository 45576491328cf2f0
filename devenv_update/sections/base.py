"""Section building blocks shared by every ecosystem."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Collection, Dict, List, Optional, Sequence

from ..cache import CommandCache
from ..config import PackagePolicy, UpdateConfig
from ..execution import CommandResult, CommandRunner, format_command
from ..models import PackageRecord, PackageStatus, StepResult
from ..utils import write_artifact

logger = logging.getLogger(__name__)


@dataclass
class SectionContext:
    """Everything a section needs for one run. Owned by the orchestrator."""

    runner: CommandRunner
    config: UpdateConfig
    cache: Optional[CommandCache] = None
    artifacts_dir: Optional[Path] = None
    delta_targets: Optional[Dict[str, List[str]]] = None

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def policy(self, section: str) -> PackagePolicy:
        return self.config.policy_for(section)

    def targets_for(self, source: Optional[str]) -> Optional[List[str]]:
        """Delta targets for a source, or None for a full update."""
        if source is None or self.delta_targets is None:
            return None
        return self.delta_targets.get(source)

    def artifact(self, result: StepResult, name: str, lines: Sequence[str]) -> str:
        path = write_artifact(self.artifacts_dir, name, list(lines))
        result.artifacts[name] = path
        return path


@dataclass(frozen=True)
class UpgradeItem:
    """A package a section intends to upgrade."""

    id: str
    name: str
    version_before: Optional[str] = None
    version_after: Optional[str] = None


class Section:
    """One ecosystem update unit run through the step engine."""

    name = ""
    tool: Optional[str] = None
    parallel_safe = True
    delta_source: Optional[str] = None

    def __repr__(self):
        return f"<{type(self).__name__} {self.name!r}>"

    def execute(self, ctx: SectionContext, result: StepResult):
        """Probe for the tool, then run the section body."""
        if self.tool and not ctx.runner.exists(self.tool):
            result.skip(f"{self.tool} not found on PATH")
            logger.info(f"{self.name}: {self.tool} not installed, skipping")
            return
        self.run(ctx, result)

    def run(self, ctx: SectionContext, result: StepResult):
        raise NotImplementedError

    def run_step(
        self,
        ctx: SectionContext,
        result: StepResult,
        cmd: Sequence[str],
        artifact: Optional[str] = None,
        mutating: bool = True,
    ) -> CommandResult:
        """Run one command, record it as an action and keep its output."""
        output = ctx.runner.run_mutating(cmd) if mutating else ctx.runner.run(cmd)
        if mutating:
            result.actions.append(format_command(cmd))
        if artifact:
            ctx.artifact(result, artifact, output.lines)
        return output

    # ───────────────────────────────────────────────────────────────────────────
    # Per-package policy
    # ───────────────────────────────────────────────────────────────────────────

    def record_outcome(
        self,
        ctx: SectionContext,
        result: StepResult,
        item: UpgradeItem,
        succeeded: bool,
        exit_code: int = 0,
        note: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        """Classify one package as updated, skipped (ignored) or failed."""
        if succeeded:
            result.add_package(
                PackageRecord(item.name, item.version_before, item.version_after, PackageStatus.UPDATED, note)
            )
            result.counts.updated += 1
            return

        if ctx.policy(self.name).is_ignored(item.id):
            result.add_package(
                PackageRecord(item.name, item.version_before, item.version_after, PackageStatus.SKIPPED, "ignored")
            )
            result.counts.skipped += 1
            result.notes.append(f"{item.id} failed but is on the ignore list")
            return

        result.add_package(
            PackageRecord(item.name, item.version_before, item.version_after, PackageStatus.FAILED, note)
        )
        result.counts.failed += 1
        message = f"{item.name} ({item.id}) failed to update"
        if exit_code:
            message += f" (exit code {exit_code})"
        if reason:
            message += f": {reason}"
        result.fail(message, exit_code)

    def upgrade_each(
        self,
        ctx: SectionContext,
        result: StepResult,
        items: Sequence[UpgradeItem],
        command_for: Callable[[UpgradeItem], Sequence[str]],
        outcome: Optional[Callable[[UpgradeItem, CommandResult], Optional[UpgradeItem]]] = None,
    ):
        """Upgrade items one by one, retrying those on the retry list once."""
        policy = ctx.policy(self.name)
        prefix = self.name.split()[0].lower()

        for item in items:
            output = self.run_step(ctx, result, command_for(item), f"{prefix}_{item.id}_log")
            if ctx.dry_run:
                result.add_package(
                    PackageRecord(
                        item.name, item.version_before, item.version_after, PackageStatus.NO_CHANGE, "dry-run"
                    )
                )
                continue
            note = None
            if not output.ok and policy.should_retry(item.id):
                result.add_package(
                    PackageRecord(
                        item.name, item.version_before, item.version_after, PackageStatus.FAILED, "first attempt"
                    )
                )
                output = self.run_step(ctx, result, command_for(item), f"{prefix}_retry_{item.id}_log")
                note = "retry"

            if output.ok and outcome is not None:
                refined = outcome(item, output)
                if refined is None:
                    result.add_package(
                        PackageRecord(item.name, item.version_before, item.version_before, PackageStatus.NO_CHANGE)
                    )
                    continue
                item = refined
            self.record_outcome(ctx, result, item, output.ok, output.exit_code, note)

    def classify_pending(
        self,
        ctx: SectionContext,
        result: StepResult,
        items: Sequence[UpgradeItem],
        still_pending: Collection[str],
    ):
        """Classify items after a bulk upgrade by re-checking what is still outdated."""
        pending = {p.lower() for p in still_pending}
        for item in items:
            if item.id.lower() in pending:
                self.record_outcome(ctx, result, item, False, reason=f"still at {item.version_before}")
            else:
                self.record_outcome(ctx, result, item, True)


class CommandSection(Section):
    """A section that runs a fixed list of update commands."""

    def __init__(
        self,
        name: str,
        tool: str,
        commands: Sequence[Sequence[str]],
        parallel_safe: bool = True,
    ):
        self.name = name
        self.tool = tool
        self.commands = [list(cmd) for cmd in commands]
        self.parallel_safe = parallel_safe

    def run(self, ctx: SectionContext, result: StepResult):
        prefix = self.name.split()[0].lower()
        for index, cmd in enumerate(self.commands, start=1):
            artifact = f"{prefix}_log" if len(self.commands) == 1 else f"{prefix}_{index}_log"
            output = self.run_step(ctx, result, cmd, artifact)
            if output.ok:
                result.notes.append(f"{format_command(cmd)} completed")
            else:
                result.counts.failed += 1
                result.fail(f"{format_command(cmd)} exited with {output.exit_code}", output.exit_code)
