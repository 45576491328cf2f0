"""Tests for the step execution engine and hooks."""

import io

from rich.console import Console

from devenv_update.models import PackageRecord, PackageStatus, StepResult, StepStatus
from devenv_update.steps import HookRegistry, StepEngine, command_hook, finalize_status


def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=120)


def test_skip_does_not_run_body() -> None:
    calls = []
    engine = StepEngine(console=quiet_console())

    result = engine.run("npm (global)", lambda r: calls.append(r), skip=True)

    assert calls == []
    assert result.status is StepStatus.SKIP
    assert result.duration_seconds == 0.0


def test_body_without_status_defaults_to_ok() -> None:
    result = StepEngine(console=quiet_console()).run("pip", lambda r: r.notes.append("done"))

    assert result.status is StepStatus.OK
    assert result.exit_code == 0
    assert result.start is not None and result.end is not None


def test_exception_is_recorded_with_location() -> None:
    def body(result):
        raise ValueError("unexpected JSON shape")

    result = StepEngine(console=quiet_console()).run("npm (global)", body)

    assert result.status is StepStatus.FAIL
    assert result.exit_code == 1
    assert len(result.failures) == 1
    assert result.failures[0].startswith("ValueError: unexpected JSON shape (at test_steps.py:")


def test_failures_or_failed_count_mark_section_failed() -> None:
    engine = StepEngine(console=quiet_console())

    failed_count = engine.run("pip", lambda r: setattr(r.counts, "failed", 1))
    failure_msg = engine.run("pip", lambda r: r.failures.append("boom"))

    assert failed_count.status is StepStatus.FAIL
    assert failure_msg.status is StepStatus.FAIL


def test_explicit_skip_from_body_is_kept() -> None:
    result = StepEngine(console=quiet_console()).run("Cargo", lambda r: r.skip("cargo not found on PATH"))

    assert result.status is StepStatus.SKIP
    assert result.notes == ["cargo not found on PATH"]


def test_ok_with_failures_is_promoted_to_fail() -> None:
    result = StepResult(name="x", status=StepStatus.OK, failures=["bad"])
    finalize_status(result)

    assert result.status is StepStatus.FAIL


def test_hooks_run_in_order_and_failures_do_not_change_status() -> None:
    order = []
    hooks = HookRegistry()
    hooks.add_global(pre=lambda: order.append("global-pre"), post=lambda: order.append("global-post"))

    def broken():
        raise RuntimeError("hook exploded")

    hooks.add_section("Winget", pre=broken, post=lambda: order.append("winget-post"))
    engine = StepEngine(hooks=hooks, console=quiet_console())

    result = engine.run("winget", lambda r: order.append("body"))

    assert order == ["global-pre", "body", "winget-post", "global-post"]
    assert result.status is StepStatus.OK
    assert any("hook exploded" in note for note in result.notes)


def test_post_hooks_run_after_failure() -> None:
    order = []
    hooks = HookRegistry()
    hooks.add_section("pip", post=lambda: order.append("post"))

    def body(result):
        raise OSError("disk full")

    result = StepEngine(hooks=hooks, console=quiet_console()).run("pip", body)

    assert order == ["post"]
    assert result.status is StepStatus.FAIL


def test_command_hook_failure_raises_for_engine(make_runner, make_output) -> None:
    runner = make_runner({"cleanup.exe": make_output("", 3)})
    hook = command_hook(["cleanup.exe"], runner)

    result = StepEngine(hooks=_registry_with(hook), console=quiet_console()).run("pip", lambda r: None)

    assert runner.calls == ["cleanup.exe"]
    assert result.status is StepStatus.OK
    assert any("exited with 3" in note for note in result.notes)


def test_command_hook_empty_is_none(make_runner) -> None:
    assert command_hook(None, make_runner()) is None
    assert command_hook("", make_runner()) is None


def test_registry_from_settings(make_runner) -> None:
    settings = {"pre_update": ["before.exe"], "sections": {"Winget": {"post": ["after.exe"]}}}

    hooks = HookRegistry.from_settings(settings, make_runner())

    assert len(hooks.before("pip")) == 1
    assert len(hooks.after("winget")) == 1
    assert hooks.after("pip") == []


def test_render_shows_package_versions() -> None:
    console = quiet_console()

    def body(result):
        result.add_package(PackageRecord("Git", "2.43.0", "2.44.0", PackageStatus.UPDATED))

    StepEngine(console=console, show_packages=True).run("Winget", body)
    text = console.file.getvalue()

    assert "Winget" in text
    assert "2.43.0 → 2.44.0" in text


def _registry_with(hook) -> HookRegistry:
    hooks = HookRegistry()
    hooks.add_global(pre=hook)
    return hooks
