"""Section registry in execution order."""

from typing import List

from .base import CommandSection, Section, SectionContext, UpgradeItem
from .editors import VSCodeExtensionsSection
from .languages import DotnetToolsSection, NpmSection, PipSection
from .repos import DockerImagesSection, GitRepositoriesSection
from .system import ChocolateySection, PowerShellModulesSection, WindowsUpdateSection
from .winget import WingetSection


def default_sections() -> List[Section]:
    """All supported ecosystems, in the order they run."""
    return [
        WingetSection(),
        ChocolateySection(),
        CommandSection("Scoop", "scoop", [["scoop", "update"], ["scoop", "update", "*"]]),
        NpmSection(),
        CommandSection("pnpm (global)", "pnpm", [["pnpm", "update", "-g"]]),
        CommandSection("Yarn (global)", "yarn", [["yarn", "global", "upgrade"]]),
        PipSection(),
        CommandSection("pipx", "pipx", [["pipx", "upgrade-all"]]),
        CommandSection("uv tools", "uv", [["uv", "tool", "upgrade", "--all"]]),
        CommandSection("Rustup", "rustup", [["rustup", "update"]]),
        CommandSection("Cargo", "cargo-install-update", [["cargo", "install-update", "-a"]]),
        DotnetToolsSection(),
        CommandSection("RubyGems", "gem", [["gem", "update"]]),
        VSCodeExtensionsSection(),
        PowerShellModulesSection(),
        WindowsUpdateSection(),
        DockerImagesSection(),
        GitRepositoriesSection(),
        CommandSection("WSL", "wsl", [["wsl", "--update"]], parallel_safe=False),
    ]


__all__ = [
    "ChocolateySection",
    "CommandSection",
    "DockerImagesSection",
    "DotnetToolsSection",
    "GitRepositoriesSection",
    "NpmSection",
    "PipSection",
    "PowerShellModulesSection",
    "Section",
    "SectionContext",
    "UpgradeItem",
    "VSCodeExtensionsSection",
    "WindowsUpdateSection",
    "WingetSection",
    "default_sections",
]
