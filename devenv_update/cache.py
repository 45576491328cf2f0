"""In-memory and on-disk memoization of expensive CLI calls."""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from .execution import CommandResult, CommandRunner
from .models import CacheEntry
from .utils import atomic_write_json, sanitize_key

logger = logging.getLogger(__name__)


class CommandCache:
    """TTL cache for command results, optionally persisted as JSON files."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        use_disk: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory) if directory else None
        self.use_disk = bool(use_disk and self.directory)
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        if self.use_disk:
            self._preload()

    # ───────────────────────────────────────────────────────────────────────────
    # Lookup
    # ───────────────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the valid entry for a key, evicting it if expired."""
        key = sanitize_key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_valid(self.clock()):
                return entry
            del self._entries[key]
        logger.debug(f"Cache entry expired: {key}")
        self._delete_file(key)
        return None

    def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute: Callable[[], Any],
        force: bool = False,
    ) -> Any:
        """Return cached data for key, calling compute on a miss or when forced."""
        key = sanitize_key(key)
        if not force:
            entry = self.get(key)
            if entry is not None:
                logger.debug(f"Cache hit: {key}")
                return entry.data

        started = self.clock()
        data = compute()
        entry = CacheEntry(
            key=key,
            timestamp=self.clock(),
            ttl_seconds=ttl,
            data=data,
            duration_seconds=round(self.clock() - started, 1),
        )
        with self._lock:
            self._entries[key] = entry
        if self.use_disk:
            self._write_file(entry)
        return data

    def keys(self):
        with self._lock:
            return list(self._entries)

    # ───────────────────────────────────────────────────────────────────────────
    # Invalidation
    # ───────────────────────────────────────────────────────────────────────────

    def invalidate(
        self,
        key: Optional[str] = None,
        predicate: Optional[Callable[[str], bool]] = None,
        disk: bool = True,
    ) -> int:
        """Remove one key, all keys matching predicate, or everything."""
        if key is not None:
            target = sanitize_key(key)
            matches: Callable[[str], bool] = lambda k: k == target
        elif predicate is not None:
            matches = predicate
        else:
            matches = lambda k: True

        with self._lock:
            removed = [k for k in self._entries if matches(k)]
            for k in removed:
                del self._entries[k]

        if disk and self.directory and self.directory.exists():
            for path in self.directory.glob("*.json"):
                if path.stem not in removed and matches(path.stem):
                    removed.append(path.stem)
            for k in removed:
                self._delete_file(k)

        if removed:
            logger.debug(f"Invalidated {len(removed)} cache entries")
        return len(removed)

    def invalidate_prefix(self, prefix: str, disk: bool = True) -> int:
        prefix = sanitize_key(prefix)
        return self.invalidate(predicate=lambda k: k.startswith(prefix), disk=disk)

    # ───────────────────────────────────────────────────────────────────────────
    # Disk persistence
    # ───────────────────────────────────────────────────────────────────────────

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _write_file(self, entry: CacheEntry):
        try:
            atomic_write_json(self._path(entry.key), entry.to_dict())
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to persist cache entry {entry.key}: {e}")

    def _delete_file(self, key: str):
        if not self.directory:
            return
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete cache file for {key}: {e}")

    def _preload(self):
        """Load valid entries from disk and delete expired ones."""
        if not self.directory.exists():
            return
        now = self.clock()
        for path in self.directory.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    entry = CacheEntry.from_dict(json.load(f))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Discarding unreadable cache file {path}: {e}")
                path.unlink(missing_ok=True)
                continue
            if entry.is_valid(now):
                self._entries[entry.key] = entry
            else:
                path.unlink(missing_ok=True)
        logger.debug(f"Preloaded {len(self._entries)} cache entries from {self.directory}")


def cached_command(
    cache: Optional[CommandCache],
    key: str,
    ttl: float,
    runner: CommandRunner,
    cmd: Sequence[str],
    force: bool = False,
) -> CommandResult:
    """Run a read-only command through the cache, storing its dict form."""
    if cache is None:
        return runner.run(cmd)
    data = cache.get_or_compute(key, ttl, lambda: runner.run(cmd).to_dict(), force=force)
    return CommandResult.from_dict(data)
