"""Tests for configuration loading."""

import json
from pathlib import Path

from devenv_update.config import DEFAULT_SETTINGS, PackagePolicy, UpdateConfig


def test_defaults_without_file(tmp_path: Path) -> None:
    config = UpdateConfig(config_dir=tmp_path)

    assert config.settings == DEFAULT_SETTINGS
    assert config.settings is not DEFAULT_SETTINGS
    assert config.cache_dir == tmp_path / "cache"


def test_file_is_merged_recursively(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text(
        json.dumps({"performance": {"parallel": True}, "git": {"roots": ["~/src"]}}), encoding="utf-8"
    )

    config = UpdateConfig(config_dir=tmp_path)

    assert config.settings["performance"]["parallel"] is True
    assert config.settings["performance"]["max_parallel"] == 4
    assert config.git_roots == [Path("~/src").expanduser()]


def test_invalid_file_keeps_defaults(tmp_path: Path, caplog) -> None:
    (tmp_path / "config.json").write_text("{broken", encoding="utf-8")

    config = UpdateConfig(config_dir=tmp_path)

    assert config.settings == DEFAULT_SETTINGS
    assert "Failed to load config" in caplog.text


def test_save_round_trip(tmp_path: Path) -> None:
    config = UpdateConfig(config_dir=tmp_path / "new")
    config.update({"delta": {"enabled": True}})
    config.save()

    reloaded = UpdateConfig(config_dir=tmp_path / "new")

    assert reloaded.settings["delta"]["enabled"] is True
    assert reloaded.settings["delta"]["max_age_days"] == 7


def test_policy_lookup_is_case_insensitive(tmp_path: Path) -> None:
    config = UpdateConfig(config_dir=tmp_path)
    config.update({"policies": {"Winget": {"ignore": ["Discord.Discord"], "retry": ["Zoom.Zoom"]}}})

    policy = config.policy_for("WINGET")

    assert policy.is_ignored("discord.discord")
    assert policy.should_retry("ZOOM.ZOOM")
    assert not policy.is_ignored("Git.Git")
    assert config.policy_for("pip") == PackagePolicy()
