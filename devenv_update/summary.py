"""Run summary documents, the final console table and run comparison."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import PackageStatus, StepResult
from .steps import STATUS_STYLES
from .utils import atomic_write_json

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# SUMMARY DOCUMENT
# ═══════════════════════════════════════════════════════════════════════════════


def build_summary(
    results: Sequence[StepResult],
    log_path: Optional[Path],
    run_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """The hand-off document consumed by reporting collaborators."""
    return {
        "runAt": (run_at or datetime.now()).isoformat(),
        "logFilePath": str(log_path) if log_path else None,
        "totalDurationSeconds": round(sum(r.duration_seconds for r in results), 1),
        "results": [r.to_dict() for r in results],
    }


def write_summary(summary: Dict[str, Any], history_dir: Path) -> Path:
    stamp = datetime.fromisoformat(summary["runAt"]).strftime("%Y%m%d_%H%M%S")
    path = history_dir / f"run_{stamp}.json"
    atomic_write_json(path, summary)
    logger.info(f"Wrote run summary {path}")
    return path


def load_summary(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def exit_code_for(results: Sequence[StepResult]) -> int:
    """1 if any section failed, else 0."""
    return 1 if any(r.failed for r in results) else 0


# ═══════════════════════════════════════════════════════════════════════════════
# CONSOLE SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════


def summary_table(results: Sequence[StepResult]) -> Table:
    table = Table(
        title="[bold cyan]📊 Update Summary[/bold cyan]",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold blue",
    )
    table.add_column("Section", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Time", justify="right", style="dim")
    for label in ("Avail", "Updated", "Skipped", "Failed"):
        table.add_column(label, justify="right")

    for r in results:
        color, icon = STATUS_STYLES[r.status]
        table.add_row(
            r.name,
            f"[{color}]{icon} {r.status.value}[/{color}]",
            f"{r.duration_seconds:.1f}s",
            str(r.counts.available),
            str(r.counts.updated),
            str(r.counts.skipped),
            f"[red]{r.counts.failed}[/red]" if r.counts.failed else "0",
        )
    return table


def render_summary(results: Sequence[StepResult], console: Console, log_path: Optional[Path] = None):
    """Final table plus failure details for failed sections."""
    console.print()
    console.print(summary_table(results))

    for r in results:
        if not r.failed:
            continue
        lines = [f"[red]• {failure}[/red]" for failure in r.failures] or ["[red]• failed packages[/red]"]
        lines += [f"[dim]{name}: {path}[/dim]" for name, path in r.artifacts.items()]
        console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold red]❌ {r.name}[/bold red]",
                border_style="red",
                box=box.ROUNDED,
            )
        )
    if log_path:
        console.print(f"[dim]📝 Log: {log_path}[/dim]")


# ═══════════════════════════════════════════════════════════════════════════════
# RUN COMPARISON
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MetricChange:
    metric: str
    before: float
    after: float
    change: float
    percent_change: Optional[float]


def _metrics(summary: Dict[str, Any]) -> Dict[str, float]:
    results = [StepResult.from_dict(r) for r in summary.get("results") or []]
    total = summary.get("totalDurationSeconds")
    if total is None:
        total = sum(r.duration_seconds for r in results)
    return {
        "TotalDuration": float(total),
        "SectionsFailed": float(sum(1 for r in results if r.failed)),
        "PackagesUpdated": float(sum(r.counts.updated for r in results)),
        "PackagesFailed": float(
            sum(max(r.counts.failed, sum(p.status is PackageStatus.FAILED for p in r.packages)) for r in results)
        ),
    }


def compare_summaries(before: Dict[str, Any], after: Dict[str, Any]) -> List[MetricChange]:
    """Metric-by-metric change between two run summaries."""
    old, new = _metrics(before), _metrics(after)
    changes = []
    for metric, old_value in old.items():
        new_value = new[metric]
        change = round(new_value - old_value, 1)
        percent = round(change / old_value * 100, 1) if old_value else None
        changes.append(MetricChange(metric, old_value, new_value, change, percent))
    return changes


def comparison_table(changes: Sequence[MetricChange]) -> Table:
    table = Table(title="[bold cyan]🔁 Run Comparison[/bold cyan]", box=box.ROUNDED, header_style="bold blue")
    table.add_column("Metric", style="cyan")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("%", justify="right")
    for c in changes:
        color = "green" if c.change <= 0 else "yellow"
        table.add_row(
            c.metric,
            f"{c.before:g}",
            f"{c.after:g}",
            f"[{color}]{c.change:+g}[/{color}]",
            "n/a" if c.percent_change is None else f"{c.percent_change:+.1f}%",
        )
    return table
