"""Typed access to MVC_* environment variables.

Tests pass a plain mapping instead of patching os.environ.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes", "on")


class EnvReader:
    """Read MVC_* variables; unset or malformed values fall back to a default."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = os.environ if env is None else env

    def get_str(self, var: str, default: str | None = None) -> str | None:
        return self._env.get(var, default)

    def get_int(self, var: str, default: int | None = None) -> int | None:
        return self._convert(var, int, default)

    def get_float(self, var: str, default: float | None = None) -> float | None:
        return self._convert(var, float, default)

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Values true, 1, yes and on (any case) are true; anything else is false."""
        value = self._env.get(var)
        if value is None:
            return default
        return value.lower() in _TRUE_VALUES

    def get_path(self, var: str, must_exist: bool = True) -> Path | None:
        """Return the path with ~ expanded, or None when unset or missing."""
        value = self._env.get(var)
        if not value:
            return None
        path = Path(value).expanduser()
        if must_exist and not path.exists():
            logger.warning("Ignoring %s: %s does not exist", var, value)
            return None
        return path

    def _convert(self, var: str, convert: Callable[[str], float], default):
        value = self._env.get(var)
        if value is None:
            return default
        try:
            return convert(value)
        except ValueError:
            logger.warning("Ignoring %s: invalid value %r", var, value)
            return default
