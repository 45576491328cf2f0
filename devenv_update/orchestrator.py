"""Ordered section pipeline with an optional parallel group."""

import logging
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .cache import CommandCache
from .config import UpdateConfig
from .delta import BaselineStore, collect_current_state, compare_state, get_update_targets
from .errors import PreconditionError
from .execution import CommandRunner, is_admin
from .models import StepResult, StepStatus
from .sections import Section, SectionContext, default_sections
from .steps import HookRegistry, StepEngine
from .summary import build_summary, exit_code_for, write_summary

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs every registered section and collects one result per section."""

    def __init__(
        self,
        config: UpdateConfig,
        runner: Optional[CommandRunner] = None,
        cache: Optional[CommandCache] = None,
        hooks: Optional[HookRegistry] = None,
        console: Optional[Console] = None,
        sections: Optional[Sequence[Section]] = None,
        log_path: Optional[Path] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.runner = runner or CommandRunner(dry_run=config.dry_run)
        self.cache = cache
        self.console = console or Console()
        self.hooks = hooks or HookRegistry.from_settings(config.settings.get("hooks") or {}, self.runner)
        self.sections = list(sections) if sections is not None else default_sections()
        self.log_path = log_path
        self.clock = clock
        self.engine = StepEngine(self.hooks, self.console, show_packages=config.show_packages)
        self.summary_path: Optional[Path] = None

    # ───────────────────────────────────────────────────────────────────────────
    # Setup
    # ───────────────────────────────────────────────────────────────────────────

    def check_preconditions(self):
        """Abort before any section runs when a hard requirement is missing."""
        if self.config.settings["preconditions"].get("require_admin") and is_admin() is not True:
            raise PreconditionError("Administrator privileges are required (preconditions.require_admin)")

    def is_skipped(self, section: Section) -> bool:
        selection = self.config.settings.get("sections") or {}
        only = {s.lower() for s in selection.get("only") or []}
        skip = {s.lower() for s in selection.get("skip") or []}
        name = section.name.lower()
        return name in skip or bool(only and name not in only)

    def plan_delta(self) -> Optional[Dict[str, List[str]]]:
        """Per-source targets from the latest baseline, or None for a full update."""
        delta = self.config.settings["delta"]
        if not delta.get("enabled"):
            return None

        store = BaselineStore(self.config.baseline_dir, clock=self.clock)
        baseline = store.load_latest_baseline(delta["max_age_days"])
        if baseline is None:
            logger.info("No usable baseline; running a full update")
            self.console.print("[yellow]⚠️  No recent baseline found, running a full update[/yellow]")
            return None

        sources = delta["sources"]
        current = collect_current_state(sources, self.runner, self.cache)
        diff = compare_state(current, baseline.state)
        targets = {
            source: get_update_targets(diff, source, delta.get("include_new", False)) for source in sources
        }
        for source, keys in targets.items():
            logger.info(f"Delta targets for {source}: {len(keys)}")
        return targets

    def save_baseline(self):
        delta = self.config.settings["delta"]
        if self.cache is not None:
            self.cache.invalidate_prefix("winget-")
        state = collect_current_state(delta["sources"], self.runner, self.cache)
        BaselineStore(self.config.baseline_dir, clock=self.clock).save_baseline(state, delta["keep_last"])

    # ───────────────────────────────────────────────────────────────────────────
    # Execution
    # ───────────────────────────────────────────────────────────────────────────

    def run_one(self, section: Section, ctx: SectionContext, skip: bool = False) -> StepResult:
        return self.engine.run(section.name, lambda result: section.execute(ctx, result), skip=skip)

    def run_sections(self, ctx: SectionContext) -> List[StepResult]:
        """Run all sections; results keep declaration order."""
        skipped = [self.is_skipped(s) for s in self.sections]
        slots: List[Optional[StepResult]] = [None] * len(self.sections)

        if self.config.settings["performance"].get("parallel"):
            group = [i for i, s in enumerate(self.sections) if s.parallel_safe and not skipped[i]]
            if group:
                self._run_parallel(group, ctx, slots)

        for i, section in enumerate(self.sections):
            if slots[i] is None:
                slots[i] = self.run_one(section, ctx, skip=skipped[i])
        return slots

    def _run_parallel(self, group: List[int], ctx: SectionContext, slots: List[Optional[StepResult]]):
        performance = self.config.settings["performance"]
        max_workers = max(1, int(performance.get("max_parallel", 4)))
        poll_interval = float(performance.get("poll_interval", 0.5))

        with Progress(
            SpinnerColumn(spinner_name="dots12"),
            TextColumn("[bold cyan]{task.description}"),
            BarColumn(bar_width=None),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        ) as progress:
            task = progress.add_task("⚡ Parallel sections", total=len(group))
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {executor.submit(self.run_one, self.sections[i], ctx): i for i in group}
                pending = set(futures)
                while pending:
                    done, pending = wait(pending, timeout=poll_interval, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = futures[future]
                        section = self.sections[index]
                        try:
                            slots[index] = future.result()
                        except Exception as e:
                            logger.exception(f"Parallel worker for {section.name} crashed")
                            slots[index] = StepResult(name=section.name, status=StepStatus.FAIL, exit_code=1)
                            slots[index].failures.append(f"{type(e).__name__}: {e}")
                        progress.console.print(
                            f"  [green]✓[/green] {section.name}: {slots[index].status.value}"
                        )
                        progress.advance(task)

    def run(self) -> List[StepResult]:
        """Full pass: preconditions, delta planning, sections, baseline, summary."""
        self.check_preconditions()
        run_at = self.clock()

        ctx = SectionContext(
            runner=self.runner,
            config=self.config,
            cache=self.cache,
            artifacts_dir=self.config.log_dir / f"artifacts_{run_at.strftime('%Y%m%d_%H%M%S')}",
            delta_targets=self.plan_delta(),
        )
        if self.runner.dry_run:
            self.console.print("[yellow]🔍 DRY RUN: no mutating command will be executed[/yellow]")

        results = self.run_sections(ctx)

        if self.config.settings["delta"].get("enabled") and not self.runner.dry_run:
            try:
                self.save_baseline()
            except OSError as e:
                logger.error(f"Failed to save baseline: {e}")

        summary = build_summary(results, self.log_path, run_at)
        self.summary_path = write_summary(summary, self.config.history_dir)
        logger.info(f"Run finished with exit code {exit_code_for(results)}")
        return results
