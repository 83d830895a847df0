"""Utility helpers for PersonalMotd."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Optional


def path_from_env(name: str, default: Optional[Path] = None) -> Optional[Path]:
    """Read a directory or file path from the environment, or return default."""
    value = os.getenv(name, "").strip()
    if not value:
        return default
    return Path(value).expanduser()


def is_safe_identity(identity: Optional[str]) -> bool:
    """Return True when the identity can be used as a cache file stem."""
    if not identity or not identity.strip():
        return False
    if identity.startswith("."):
        return False
    return "/" not in identity and "\\" not in identity and "\x00" not in identity


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = [
    "elapsed_ms",
    "is_safe_identity",
    "path_from_env",
]
