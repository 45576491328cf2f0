"""Configuration management for the update orchestrator."""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(os.getenv("DEVENV_UPDATE_HOME", Path.home() / ".devenv_update"))

DEFAULT_SETTINGS: Dict[str, Any] = {
    "cache": {
        "enabled": True,
        "disk": True,
        "ttl_seconds": 600,
    },
    "performance": {
        "parallel": False,
        "max_parallel": 4,
        "poll_interval": 0.5,
    },
    "delta": {
        "enabled": False,
        "max_age_days": 7,
        "keep_last": 10,
        "include_new": False,
        "sources": ["Winget", "npm", "pip"],
    },
    "sections": {
        "only": [],
        "skip": [],
    },
    "policies": {
        "Winget": {"ignore": [], "retry": []},
    },
    "hooks": {
        "pre_update": None,
        "post_update": None,
        "sections": {},
    },
    "git": {
        "roots": [],
    },
    "ui": {
        "show_packages": True,
    },
    "preconditions": {
        "require_admin": False,
    },
}


@dataclass(frozen=True)
class PackagePolicy:
    """Ignore/retry lists for one section. Ids compare case-insensitively."""

    ignore: FrozenSet[str] = field(default_factory=frozenset)
    retry: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_settings(cls, data: Optional[Dict[str, Any]]) -> "PackagePolicy":
        data = data or {}
        return cls(
            ignore=frozenset(str(i).lower() for i in data.get("ignore") or []),
            retry=frozenset(str(i).lower() for i in data.get("retry") or []),
        )

    def is_ignored(self, package_id: str) -> bool:
        return package_id.lower() in self.ignore

    def should_retry(self, package_id: str) -> bool:
        return package_id.lower() in self.retry


class UpdateConfig:
    """JSON-backed settings with defaults and recursive merge."""

    def __init__(self, config_dir: Optional[Path] = None, config_file: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_file = Path(config_file) if config_file else self.config_dir / "config.json"
        self.cache_dir = self.config_dir / "cache"
        self.log_dir = self.config_dir / "logs"
        self.baseline_dir = self.config_dir / "baselines"
        self.history_dir = self.config_dir / "history"

        self.settings: Dict[str, Any] = copy.deepcopy(DEFAULT_SETTINGS)
        self.load()

    def load(self):
        """Load configuration from file with error handling."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    loaded_settings = json.load(f)
                self._merge_settings(self.settings, loaded_settings)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load config {self.config_file}: {e}")

    def _merge_settings(self, base: dict, loaded: dict):
        """Recursively merge settings."""
        for key, value in loaded.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_settings(base[key], value)
            else:
                base[key] = value

    def save(self):
        """Save current configuration to file."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.settings, f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Failed to save config: {e}")

    def update(self, overrides: Dict[str, Any]):
        """Apply in-memory overrides (e.g. from CLI flags) on top of the file."""
        self._merge_settings(self.settings, overrides)

    def policy_for(self, section: str) -> PackagePolicy:
        """Return the ignore/retry policy configured for a section."""
        policies = self.settings.get("policies") or {}
        for name, data in policies.items():
            if name.lower() == section.lower():
                return PackagePolicy.from_settings(data)
        return PackagePolicy()

    @property
    def dry_run(self) -> bool:
        return bool(self.settings.get("dry_run", False))

    @property
    def cache_enabled(self) -> bool:
        return bool(self.settings["cache"]["enabled"])

    @property
    def cache_ttl(self) -> float:
        return float(self.settings["cache"]["ttl_seconds"])

    @property
    def show_packages(self) -> bool:
        return bool(self.settings["ui"]["show_packages"])

    @property
    def git_roots(self) -> List[Path]:
        return [Path(p).expanduser() for p in self.settings["git"]["roots"] or []]
