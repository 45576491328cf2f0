"""Language package managers with per-package results."""

import json
import logging
import re
import sys
from typing import Dict, List, Optional

from ..execution import CommandResult
from ..models import StepResult
from .base import Section, SectionContext, UpgradeItem

logger = logging.getLogger(__name__)


def _parse_json(lines: List[str]):
    text = "\n".join(lines).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.debug(f"Unparseable JSON output: {text[:200]!r}")
        return None


def _restrict(items: List[UpgradeItem], targets: Optional[List[str]]) -> List[UpgradeItem]:
    if targets is None:
        return items
    wanted = {t.lower() for t in targets}
    return [item for item in items if item.id.lower() in wanted]


class NpmSection(Section):
    """Global npm packages."""

    name = "npm (global)"
    tool = "npm"
    delta_source = "npm"

    def outdated(self, ctx: SectionContext, result: StepResult, artifact: str) -> List[UpgradeItem]:
        # npm outdated exits 1 whenever something is outdated
        output = self.run_step(ctx, result, ["npm", "outdated", "-g", "--json"], artifact, mutating=False)
        data = _parse_json(output.lines)
        if not isinstance(data, dict):
            return []
        return [
            UpgradeItem(name, name, details.get("current"), details.get("latest"))
            for name, details in data.items()
            if isinstance(details, dict) and details.get("latest")
        ]

    def run(self, ctx: SectionContext, result: StepResult):
        items = self.outdated(ctx, result, "npm_outdated_log")
        targets = ctx.targets_for(self.delta_source)
        items = _restrict(items, targets)
        result.counts.available = len(items)
        if not items:
            result.notes.append("All global npm packages are up to date")
            return

        if targets is not None:
            self.upgrade_each(ctx, result, items, lambda item: ["npm", "install", "-g", f"{item.id}@latest"])
            return

        output = self.run_step(ctx, result, ["npm", "update", "-g"], "npm_update_log")
        if ctx.dry_run:
            result.notes.append(f"{len(items)} npm package(s) would be updated")
            return
        if not output.ok:
            result.record_exit(output.exit_code)
        still = [item.id for item in self.outdated(ctx, result, "npm_recheck_log")]
        self.classify_pending(ctx, result, items, still)


class PipSection(Section):
    """Outdated packages of the running interpreter's pip."""

    name = "pip"
    tool = None
    delta_source = "pip"

    def __init__(self, python: str = sys.executable):
        self.python = python

    def pip(self, *args: str) -> List[str]:
        return [self.python, "-m", "pip", *args]

    def run(self, ctx: SectionContext, result: StepResult):
        output = self.run_step(
            ctx, result, self.pip("list", "--outdated", "--format=json"), "pip_outdated_log", mutating=False
        )
        if not output.ok:
            result.skip(f"pip is unavailable for {self.python}")
            return
        data = _parse_json(output.lines) or []
        items = [
            UpgradeItem(entry["name"], entry["name"], entry.get("version"), entry.get("latest_version"))
            for entry in data
            if isinstance(entry, dict) and entry.get("name")
        ]
        items = _restrict(items, ctx.targets_for(self.delta_source))
        result.counts.available = len(items)
        if not items:
            result.notes.append("All pip packages are up to date")
            return
        self.upgrade_each(ctx, result, items, lambda item: self.pip("install", "--upgrade", item.id))


class DotnetToolsSection(Section):
    """Global .NET tools."""

    name = ".NET tools"
    tool = "dotnet"

    UPDATED_PATTERN = re.compile(r"from version '(?P<old>[^']+)' to version '(?P<new>[^']+)'")
    UNCHANGED_PATTERN = re.compile(r"is already installed|reinstalled with the (?:latest )?stable version", re.IGNORECASE)

    def installed(self, ctx: SectionContext, result: StepResult) -> Dict[str, str]:
        output = self.run_step(ctx, result, ["dotnet", "tool", "list", "-g"], "dotnet_list_log", mutating=False)
        tools: Dict[str, str] = {}
        rows_started = False
        for line in output.lines:
            if line.startswith("---"):
                rows_started = True
                continue
            parts = line.split()
            if rows_started and len(parts) >= 2:
                tools[parts[0]] = parts[1]
        return tools

    def outcome(self, item: UpgradeItem, output: CommandResult) -> Optional[UpgradeItem]:
        text = "\n".join(output.lines)
        match = self.UPDATED_PATTERN.search(text)
        if match:
            return UpgradeItem(item.id, item.name, match.group("old"), match.group("new"))
        if self.UNCHANGED_PATTERN.search(text):
            return None
        return item

    def run(self, ctx: SectionContext, result: StepResult):
        tools = self.installed(ctx, result)
        result.counts.installed = len(tools)
        if not tools:
            result.notes.append("No global .NET tools installed")
            return
        items = [UpgradeItem(tool_id, tool_id, version) for tool_id, version in tools.items()]
        self.upgrade_each(
            ctx,
            result,
            items,
            lambda item: ["dotnet", "tool", "update", "-g", item.id],
            outcome=self.outcome,
        )
