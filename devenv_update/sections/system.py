"""System-level package managers and OS updates."""

import logging
from typing import List

from ..models import StepResult
from .base import Section, SectionContext, UpgradeItem

logger = logging.getLogger(__name__)


class ChocolateySection(Section):
    """Chocolatey packages: bulk upgrade, then re-check what is outdated."""

    name = "Chocolatey"
    tool = "choco"
    delta_source = "Chocolatey"

    def outdated(self, ctx: SectionContext, result: StepResult, artifact: str) -> List[UpgradeItem]:
        output = self.run_step(ctx, result, ["choco", "outdated", "--limit-output"], artifact, mutating=False)
        items = []
        for line in output.lines:
            parts = line.split("|")
            if len(parts) >= 3:
                pinned = len(parts) >= 4 and parts[3].strip().lower() == "true"
                if not pinned:
                    items.append(UpgradeItem(parts[0], parts[0], parts[1], parts[2]))
        return items

    def run(self, ctx: SectionContext, result: StepResult):
        items = self.outdated(ctx, result, "choco_outdated_log")
        targets = ctx.targets_for(self.delta_source)
        if targets is not None:
            wanted = {t.lower() for t in targets}
            items = [item for item in items if item.id.lower() in wanted]
        result.counts.available = len(items)
        if not items:
            result.notes.append("All Chocolatey packages are up to date")
            return

        if targets is not None:
            self.upgrade_each(ctx, result, items, lambda item: ["choco", "upgrade", item.id, "-y", "--no-progress"])
            return

        output = self.run_step(ctx, result, ["choco", "upgrade", "all", "-y", "--no-progress"], "choco_upgrade_log")
        if ctx.dry_run:
            result.notes.append(f"{len(items)} Chocolatey package(s) would be upgraded")
            return
        still = [item.id for item in self.outdated(ctx, result, "choco_recheck_log")]
        if still and not output.ok:
            result.record_exit(output.exit_code)
        self.classify_pending(ctx, result, items, still)


class PowerShellSection(Section):
    """Base for sections driven by a PowerShell snippet."""

    script = ""
    probe_script = ""

    def execute(self, ctx: SectionContext, result: StepResult):
        if not (ctx.runner.exists("pwsh") or ctx.runner.exists("powershell")):
            result.skip("PowerShell not found on PATH")
            return
        self.run(ctx, result)

    def run(self, ctx: SectionContext, result: StepResult):
        prefix = self.name.split()[0].lower()
        if self.probe_script:
            probe = ctx.runner.run_powershell(self.probe_script, mutating=False)
            if not probe.ok or not any(line.strip() for line in probe.lines):
                result.skip(f"Prerequisite missing for {self.name}")
                return
        result.actions.append(self.script)
        output = ctx.runner.run_powershell(self.script)
        ctx.artifact(result, f"{prefix}_log", output.lines)
        if output.ok:
            result.notes.append(f"{self.name} completed")
        else:
            result.counts.failed += 1
            result.fail(f"{self.name} exited with {output.exit_code}", output.exit_code)


class PowerShellModulesSection(PowerShellSection):
    name = "PowerShell modules"
    script = "Update-Module -Force -AcceptLicense -ErrorAction Continue"


class WindowsUpdateSection(PowerShellSection):
    """Windows Update through the PSWindowsUpdate module."""

    name = "Windows Update"
    parallel_safe = False
    probe_script = "Get-Module -ListAvailable -Name PSWindowsUpdate | Select-Object -First 1 -ExpandProperty Name"
    script = "Import-Module PSWindowsUpdate; Install-WindowsUpdate -MicrosoftUpdate -AcceptAll -IgnoreReboot"
