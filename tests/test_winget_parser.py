"""Tests for the winget text parser."""

from devenv_update.models import RunningBlocker
from devenv_update.winget import (
    get_explicit_target_ids,
    get_running_blockers,
    parse_installed_list,
    parse_upgrade_list,
)

UPGRADE_OUTPUT = """\
Name                              Id                              Version        Available      Source
---------------------------------------------------------------------------------------------------------
Microsoft Edge WebView2 Runtime   Microsoft.EdgeWebView2Runtime   120.0.2210.91  121.0.2277.83  winget
Git                               Git.Git                         2.43.0         2.44.0         winget
Node.js LTS                       OpenJS.NodeJS.LTS               20.11.0        20.11.1-rc1    winget
3 upgrades available.

The following packages have an upgrade available, but require explicit targeting for upgrade:
Name      Id                Version   Available  Source
---------------------------------------------------------
Discord   Discord.Discord   1.0.9210  1.0.9219   winget
"""


def test_parse_upgrade_list_no_installed_package() -> None:
    lines = ["No installed package found matching input criteria."]

    assert parse_upgrade_list(lines) == []


def test_parse_upgrade_list_empty_input() -> None:
    assert parse_upgrade_list([]) == []


def test_parse_upgrade_list_keeps_internal_spaces_in_name() -> None:
    candidates = parse_upgrade_list(UPGRADE_OUTPUT.splitlines())

    webview = candidates[0]
    assert webview.name == "Microsoft Edge WebView2 Runtime"
    assert webview.id == "Microsoft.EdgeWebView2Runtime"
    assert webview.version == "120.0.2210.91"
    assert webview.available == "121.0.2277.83"
    assert webview.source == "winget"


def test_parse_upgrade_list_skips_structural_lines_and_includes_explicit_rows() -> None:
    candidates = parse_upgrade_list(UPGRADE_OUTPUT.splitlines())

    assert [c.id for c in candidates] == [
        "Microsoft.EdgeWebView2Runtime",
        "Git.Git",
        "OpenJS.NodeJS.LTS",
        "Discord.Discord",
    ]
    assert candidates[2].available == "20.11.1-rc1"


def test_parse_upgrade_list_drops_progress_noise() -> None:
    lines = [
        "   -",
        "  ██████████████████▒▒▒▒▒▒▒▒  1024 KB / 152 MB",
        "42%",
        "Git   Git.Git   2.43.0   2.44.0   winget",
    ]

    assert [c.id for c in parse_upgrade_list(lines)] == ["Git.Git"]


def test_explicit_targets_exclude_progress_lines() -> None:
    lines = [
        "The following packages have an upgrade available, but require explicit targeting for upgrade:",
        "Name      Id                Version   Available  Source",
        "---------------------------------------------------------",
        "Discord   Discord.Discord   1.0.9210  1.0.9219   winget",
        "2%",
        "1024 KB / 152 MB",
    ]

    assert get_explicit_target_ids(lines) == ["Discord.Discord"]


def test_explicit_targets_ignore_rows_before_marker() -> None:
    assert get_explicit_target_ids(UPGRADE_OUTPUT.splitlines()) == ["Discord.Discord"]


def test_explicit_targets_stop_at_blank_line() -> None:
    lines = [
        "1 package(s) require explicit targeting for upgrade:",
        "Name      Id                Version   Available  Source",
        "---------------------------------------------------------",
        "Discord   Discord.Discord   1.0.9210  1.0.9219   winget",
        "",
        "Zoom      Zoom.Zoom         5.17.0    5.17.5     winget",
    ]

    assert get_explicit_target_ids(lines) == ["Discord.Discord"]


def test_explicit_targets_stop_at_progress_marker_and_deduplicate() -> None:
    lines = [
        "The following packages have an upgrade available, but require explicit targeting for upgrade:",
        "Name      Id                Version   Available  Source",
        "---------------------------------------------------------",
        "Discord   Discord.Discord   1.0.9210  1.0.9219   winget",
        "Discord   Discord.Discord   1.0.9210  1.0.9219   winget",
        "(1/1) Found Discord [Discord.Discord] Version 1.0.9219",
        "Zoom      Zoom.Zoom         5.17.0    5.17.5     winget",
    ]

    assert get_explicit_target_ids(lines) == ["Discord.Discord"]


def test_explicit_targets_without_marker() -> None:
    assert get_explicit_target_ids(["Git   Git.Git   2.43.0   2.44.0   winget"]) == []


def test_running_blockers_are_tracked_per_found_line() -> None:
    lines = [
        "(1/3) Found Discord [Discord.Discord] Version 1.0.9219",
        "This application is licensed to you by its owner.",
        "Downloading https://example.invalid/DiscordSetup.exe",
        "The application is currently running. Exit the application then try again.",
        "(2/3) Found Git [Git.Git] Version 2.44.0",
        "Successfully installed",
        "(3/3) Found Discord [Discord.Discord] Version 1.0.9219",
        "Application is currently running",
    ]

    assert get_running_blockers(lines) == [RunningBlocker(name="Discord", id="Discord.Discord")]


def test_running_blockers_ignore_message_without_found_line() -> None:
    assert get_running_blockers(["The application is currently running."]) == []


def test_parse_installed_list_uses_header_columns() -> None:
    lines = [
        "Name                              Id                              Version        Available      Source",
        "---------------------------------------------------------------------------------------------------------",
        "Microsoft Edge WebView2 Runtime   Microsoft.EdgeWebView2Runtime   120.0.2210.91  121.0.2277.83  winget",
        "7-Zip 23.01 (x64)                 7zip.7zip                       23.01                         winget",
        "",
    ]

    packages = parse_installed_list(lines)

    assert [(p.name, p.id, p.version) for p in packages] == [
        ("Microsoft Edge WebView2 Runtime", "Microsoft.EdgeWebView2Runtime", "120.0.2210.91"),
        ("7-Zip 23.01 (x64)", "7zip.7zip", "23.01"),
    ]
    assert packages[0].key == "Microsoft.EdgeWebView2Runtime"


def test_parse_installed_list_without_header() -> None:
    assert parse_installed_list(["nothing here"]) == []


def test_parse_upgrade_list_strips_version_bound() -> None:
    lines = [
        "Name      Id                Version     Available  Source",
        "----------------------------------------------------------",
        "Git       Git.Git           < 2.43.0    2.44.0     winget",
    ]

    assert [(c.name, c.id, c.version, c.available) for c in parse_upgrade_list(lines)] == [
        ("Git", "Git.Git", "2.43.0", "2.44.0")
    ]


def test_parse_upgrade_list_drops_single_spaced_row() -> None:
    assert parse_upgrade_list(["Git Git.Git 2.43.0 2.44.0 winget"]) == []


def test_parse_upgrade_list_keeps_name_starting_with_header_word() -> None:
    lines = [
        "Name            Id              Version  Available  Source",
        "-----------------------------------------------------------",
        "NameCheap VPN   Namecheap.VPN   1.0.0    1.1.0      winget",
    ]

    assert [c.id for c in parse_upgrade_list(lines)] == ["Namecheap.VPN"]


def test_explicit_targets_with_version_bound() -> None:
    lines = [
        "1 package(s) require explicit targeting for upgrade:",
        "Name      Id                Version     Available  Source",
        "----------------------------------------------------------",
        "Discord   Discord.Discord   < 1.0.9210  1.0.9219   winget",
    ]

    assert get_explicit_target_ids(lines) == ["Discord.Discord"]
