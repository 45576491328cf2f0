"""Small helpers shared across modules."""

import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 120
RESERVED_NAMES = {
    "CON",
    "PRN",
    "AUX",
    "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_ILLEGAL_KEY_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def as_lines(value: Union[None, str, bytes, Iterable[Any]]) -> List[str]:
    """Normalize tool output into a list of lines, whatever its shape."""
    if value is None:
        return []
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value.splitlines()
    lines: List[str] = []
    for item in value:
        lines.extend(as_lines(item) if isinstance(item, (str, bytes)) else [str(item)])
    return lines


def sanitize_filename(name: str) -> str:
    """Turn an arbitrary label (package id, section name) into a safe file stem."""
    safe = _UNSAFE_FILENAME_CHARS.sub("_", name or "").strip("._ ") or "_"
    if safe.split(".")[0].upper() in RESERVED_NAMES:
        safe = f"_{safe}"
    if len(safe) > MAX_FILENAME_LENGTH:
        digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:8]
        safe = f"{safe[: MAX_FILENAME_LENGTH - len(digest) - 1]}_{digest}"
    return safe


def sanitize_key(key: str) -> str:
    """Strip characters that are illegal in Windows file names."""
    return _ILLEGAL_KEY_CHARS.sub("", key).strip()


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON through a temp file and replace the target in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_artifact(directory: Optional[Path], stem: str, lines: List[str]) -> str:
    """Write command output to a log file; return its path or a placeholder."""
    if directory is None:
        return "<unavailable: no artifact directory>"
    path = directory / f"{sanitize_filename(stem)}.log"
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not write artifact {path}: {e}")
        return f"<unavailable: {e}>"
    return str(path)
