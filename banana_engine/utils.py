"""Shared utilities for the banana engine."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
import tomllib
from typing import Any


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return default


def format_size(num_bytes: int) -> str:
    if num_bytes >= 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):.1f} MB"
    if num_bytes >= 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes} B"


def load_dotenv(path: Path | None = None, override: bool = False) -> bool:
    """Export ``KEY=value`` pairs from a .env file; existing variables win unless ``override``."""
    env_path = path or _default_env_path()
    if not env_path.exists():
        return False
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        pair = _parse_env_line(raw_line)
        if pair is None:
            continue
        key, value = pair
        if override or key not in os.environ:
            os.environ[key] = value
    return True


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, _, value = line.partition("=")
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return key, value


def _default_env_path() -> Path:
    cwd = Path.cwd()
    env_path = cwd / ".env"
    if env_path.exists():
        return env_path
    repo_root = _find_repo_root(cwd)
    if repo_root:
        return repo_root / ".env"
    return env_path


def _find_repo_root(start: Path) -> Path | None:
    for current in (start,) + tuple(start.parents):
        pyproject = current / "pyproject.toml"
        if not pyproject.exists():
            continue
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue
        if data.get("project", {}).get("name") == "banana":
            return current
    return None
