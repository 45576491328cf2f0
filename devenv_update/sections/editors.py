"""Editor extensions."""

import logging
from typing import Dict

from ..models import PackageRecord, PackageStatus, StepResult
from .base import Section, SectionContext

logger = logging.getLogger(__name__)


class VSCodeExtensionsSection(Section):
    """VS Code extensions, diffed before and after `code --update-extensions`."""

    name = "VS Code extensions"
    tool = "code"

    def extensions(self, ctx: SectionContext, result: StepResult, artifact: str) -> Dict[str, str]:
        output = self.run_step(ctx, result, ["code", "--list-extensions", "--show-versions"], artifact, mutating=False)
        found: Dict[str, str] = {}
        for line in output.lines:
            ext_id, sep, version = line.strip().rpartition("@")
            if sep and ext_id:
                found[ext_id] = version
        return found

    def run(self, ctx: SectionContext, result: StepResult):
        before = self.extensions(ctx, result, "vscode_before_log")
        result.counts.installed = len(before)
        if not before:
            result.notes.append("No VS Code extensions installed")
            return

        output = self.run_step(ctx, result, ["code", "--update-extensions"], "vscode_update_log")
        if not output.ok:
            result.counts.failed += 1
            result.fail(f"code --update-extensions exited with {output.exit_code}", output.exit_code)
            return
        if ctx.dry_run:
            return

        after = self.extensions(ctx, result, "vscode_after_log")
        result.counts.installed = len(after)
        for ext_id, old in before.items():
            new = after.get(ext_id)
            if new and new != old:
                result.add_package(PackageRecord(ext_id, old, new, PackageStatus.UPDATED))
                result.counts.updated += 1
        if not result.counts.updated:
            result.notes.append("All VS Code extensions are up to date")
