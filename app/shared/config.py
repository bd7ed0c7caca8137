"""
Raw settings for the supervisor, read from layered env sources.

Later layers win:
1) `env.example` (committed defaults for every key)
2) `env.local` (optional, per-host overrides, never committed)
3) the process environment

`app.app_config` turns these strings into typed settings.
"""

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger

PROJECT_ROOT = Path(__file__).parent.parent.parent
ENV_FILES = ("env.example", "env.local")


def load_layers(root: Path = PROJECT_ROOT, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    values: dict[str, str] = {}

    for name in ENV_FILES:
        path = root / name
        if not path.exists():
            continue
        # Keys declared without a value come back as None; they set nothing.
        values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
        logger.info("Loaded settings from {}", path)

    values.update(os.environ if environ is None else environ)
    return values


class EnvironConfig:
    """Read-only view over the merged layers."""

    def __init__(self, root: Path = PROJECT_ROOT, environ: Mapping[str, str] | None = None):
        self._values = load_layers(root, environ)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)


config = EnvironConfig()
