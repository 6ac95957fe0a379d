"""Env-file loading and typed environment lookups for ``config``."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict, TypeVar

T = TypeVar("T")

DEFAULT_ENV_FILE = ".env.guild.local"


def _unquote(value: str) -> str:
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    return text


def parse_env_file(path: str) -> Dict[str, str]:
    """KEY=VALUE lines; blank lines, comments and ``export`` prefixes tolerated."""
    target = Path(path)
    if not target.is_file():
        return {}
    values: Dict[str, str] = {}
    for raw in target.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if line.lower().startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        values[key] = _unquote(value)
    return values


def load_env_file(path: str, *, override: bool = False) -> Dict[str, str]:
    """Export the file's variables; already-set variables win unless ``override``."""
    parsed = parse_env_file(path)
    for key, value in parsed.items():
        if override or key not in os.environ:
            os.environ[key] = value
    return parsed


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    text = (os.environ.get(name) or "").strip()
    if not text:
        return default
    try:
        return cast(text)
    except ValueError:
        return default


def env_str(name: str, default: str) -> str:
    return _env(name, default, str)


def env_float(name: str, default: float) -> float:
    return _env(name, float(default), float)


def env_int(name: str, default: int) -> int:
    return _env(name, int(default), int)
