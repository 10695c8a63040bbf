"""Simple .env loader used by the configuration module."""

from __future__ import annotations

import os
from pathlib import Path


def load_env(path: Path | str = Path(".env")) -> None:
    """Load ``KEY=value`` pairs from ``path`` into ``os.environ``.

    Missing files are ignored. Variables already present in the environment
    are never overwritten, and surrounding quotes on values are stripped.
    """

    env_path = Path(path)
    if not env_path.is_file():
        return

    for line in env_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :]
        key, sep, value = line.partition("=")
        if not sep:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        os.environ.setdefault(key.strip(), value)


__all__ = ["load_env"]
