"""Tests for baseline persistence and state diffing."""

import json
import os
from datetime import datetime, timedelta
from pathlib import Path

from devenv_update.delta import (
    BaselineStore,
    VersionChange,
    collect_current_state,
    collect_npm,
    compare_state,
    get_update_targets,
)
from devenv_update.models import NpmPackage, PipPackage, WingetPackage


def winget(pkg_id: str, version: str) -> WingetPackage:
    return WingetPackage(name=pkg_id.split(".")[-1], version=version, id=pkg_id)


def test_compare_state_partitions_keys() -> None:
    baseline = {"Winget": [winget("Git.Git", "2.43.0"), winget("Zoom.Zoom", "5.0"), winget("7zip.7zip", "23.01")]}
    current = {"Winget": [winget("Git.Git", "2.44.0"), winget("7zip.7zip", "23.01"), winget("Discord.Discord", "1.0")]}

    diff = compare_state(current, baseline)["Winget"]

    assert diff.added == ["Discord.Discord"]
    assert diff.removed == ["Zoom.Zoom"]
    assert diff.updated == [VersionChange("Git.Git", "2.43.0", "2.44.0")]
    changed = set(diff.added) | set(diff.removed) | {c.key for c in diff.updated}
    assert "7zip.7zip" not in changed


def test_compare_state_uses_name_when_id_missing() -> None:
    baseline = {"npm": [NpmPackage(name="typescript", version="5.3.3")]}
    current = {"npm": [NpmPackage(name="typescript", version="5.4.2")]}

    diff = compare_state(current, baseline)

    assert diff["npm"].updated == [VersionChange("typescript", "5.3.3", "5.4.2")]


def test_version_comparison_is_exact_string_match() -> None:
    baseline = {"pip": [PipPackage(name="rich", version="13.0")]}
    current = {"pip": [PipPackage(name="rich", version="13.0.0")]}

    assert compare_state(current, baseline)["pip"].updated == [VersionChange("rich", "13.0", "13.0.0")]


def test_empty_baseline_marks_everything_added() -> None:
    current = {"Winget": [winget("Git.Git", "2.44.0")]}

    for baseline in (None, {}):
        diff = compare_state(current, baseline)["Winget"]
        assert diff.added == ["Git.Git"]
        assert diff.updated == []
        assert diff.removed == []


def test_empty_current_marks_everything_removed() -> None:
    baseline = {"Winget": [winget("Git.Git", "2.44.0")], "pip": [PipPackage(name="rich", version="13.0")]}

    diff = compare_state({}, baseline)

    assert diff["Winget"].removed == ["Git.Git"]
    assert diff["pip"].removed == ["rich"]


def test_source_missing_from_baseline_is_empty() -> None:
    baseline = {"Winget": [winget("Git.Git", "2.44.0")]}
    current = {"Winget": [winget("Git.Git", "2.44.0")], "npm": [NpmPackage(name="pnpm", version="8.0.0")]}

    diff = compare_state(current, baseline)

    assert diff["Winget"].is_empty
    assert diff["npm"].added == ["pnpm"]


def test_update_targets_exclude_new_packages_unless_requested() -> None:
    baseline = {"Winget": [winget("Git.Git", "2.43.0")]}
    current = {"Winget": [winget("Git.Git", "2.44.0"), winget("Discord.Discord", "1.0")]}
    diff = compare_state(current, baseline)

    assert get_update_targets(diff, "Winget") == ["Git.Git"]
    assert get_update_targets(diff, "Winget", include_new=True) == ["Git.Git", "Discord.Discord"]
    assert get_update_targets(diff, "pip") == []


def test_collect_current_state_tolerates_failing_source(make_runner, make_output) -> None:
    runner = make_runner(
        {"npm list -g --depth=0 --json": make_output('{"dependencies": {"typescript": {"version": "5.4.2"}}}')}
    )

    def broken(runner, cache):
        raise RuntimeError("boom")

    collectors = {"npm": collect_npm, "pip": broken}
    state = collect_current_state(["npm", "pip", "Unknown"], runner, collectors=collectors)

    assert state["npm"] == [NpmPackage(name="typescript", version="5.4.2")]
    assert state["pip"] == []
    assert state["Unknown"] == []


def test_collect_winget_failure_yields_empty_list(make_runner, make_output) -> None:
    runner = make_runner({"winget list --accept-source-agreements": make_output("EXCEPTION: not found", -1)})

    assert collect_current_state(["Winget"], runner) == {"Winget": []}


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_save_and_load_latest_baseline(tmp_path: Path) -> None:
    clock = Clock(datetime(2026, 10, 1, 12, 0, 0))
    store = BaselineStore(tmp_path, clock=clock)

    path = store.save_baseline({"Winget": [winget("Git.Git", "2.44.0")]})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) == {"timestamp", "toolVersion", "state"}
    assert data["state"]["Winget"] == [{"name": "Git", "version": "2.44.0", "id": "Git.Git"}]

    clock.now += timedelta(days=2)
    snapshot = store.load_latest_baseline(max_age_days=7)

    assert snapshot is not None
    assert snapshot.state["Winget"] == [winget("Git.Git", "2.44.0")]
    assert isinstance(snapshot.state["Winget"][0], WingetPackage)


def test_stale_baseline_is_ignored(tmp_path: Path) -> None:
    clock = Clock(datetime(2026, 10, 1, 12, 0, 0))
    store = BaselineStore(tmp_path, clock=clock)
    store.save_baseline({})

    clock.now += timedelta(days=8)

    assert store.load_latest_baseline(max_age_days=7) is None


def test_no_baseline_directory() -> None:
    assert BaselineStore(Path("/nonexistent/devenv-update-baselines")).load_latest_baseline(7) is None


def test_retention_keeps_newest_files(tmp_path: Path) -> None:
    clock = Clock(datetime(2026, 10, 1, 12, 0, 0))
    store = BaselineStore(tmp_path, clock=clock)
    paths = []
    for i in range(5):
        clock.now += timedelta(minutes=1)
        path = store.save_baseline({"pip": [PipPackage(name="rich", version=f"13.{i}")]}, keep_last=10)
        stamp = 1_700_000_000 + i * 60
        os.utime(path, (stamp, stamp))
        paths.append(path)

    clock.now += timedelta(minutes=1)
    newest = store.save_baseline({"pip": [PipPackage(name="rich", version="14.0")]}, keep_last=3)

    remaining = sorted(tmp_path.glob("baseline_*.json"))
    assert newest in remaining
    assert remaining == sorted([paths[3], paths[4], newest])
    assert store.load_latest_baseline(7).state["pip"][0].version == "14.0"


def test_corrupt_newest_baseline_falls_back_to_previous(tmp_path: Path) -> None:
    clock = Clock(datetime(2026, 10, 1, 12, 0, 0))
    store = BaselineStore(tmp_path, clock=clock)
    good = store.save_baseline({"pip": [PipPackage(name="rich", version="13.0")]})
    os.utime(good, (1_700_000_000, 1_700_000_000))
    (tmp_path / "baseline_99999999_999999_999999.json").write_text("{not json", encoding="utf-8")

    snapshot = store.load_latest_baseline(7)

    assert snapshot is not None
    assert snapshot.state["pip"][0].version == "13.0"
