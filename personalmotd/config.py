"""Loading and validation of config.yml."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .models import HeadTransform, IconMode, Rect

logger = logging.getLogger("personalmotd.config")

SKIN_URL_PLACEHOLDER = "{PLAYERNAME}"
DEFAULT_SKIN_URL = "http://s3.amazonaws.com/MinecraftSkins/{PLAYERNAME}.png"
DEFAULT_FACE_RECT = Rect(8, 8, 8, 8)
DEFAULT_HAT_RECT = Rect(40, 8, 8, 8)
DEFAULT_BASE_ICON = "server-icon.png"

DEFAULT_CONFIG: Dict[str, object] = {
    "icon-mode": IconMode.PLAYER.value,
    "skin-url": DEFAULT_SKIN_URL,
    "skin-face-location": {"x": 8, "y": 8, "w": 8, "h": 8},
    "skin-hat-location": {"x": 40, "y": 8, "w": 8, "h": 8},
    "head-transform": {"scale": 4, "rotate": 0, "shift": {"x": 0, "y": 0}},
    "name-tag-placeholder": "{PLAYER}",
    "name-tag-default": "Guest",
    "base-icon": DEFAULT_BASE_ICON,
    "fetch-timeout": 10,
}


@dataclass(frozen=True)
class Settings:
    icon_mode: IconMode = IconMode.PLAYER
    skin_url: str = DEFAULT_SKIN_URL
    face_rect: Rect = DEFAULT_FACE_RECT
    hat_rect: Rect = DEFAULT_HAT_RECT
    head_transform: HeadTransform = HeadTransform()
    name_tag_placeholder: str = "{PLAYER}"
    name_tag_default: str = "Guest"
    base_icon: Path = Path(DEFAULT_BASE_ICON)
    fetch_timeout: float = 10.0


def _section(payload: Mapping, key: str) -> Mapping:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        logger.warning("Config section %s must be a mapping; using defaults.", key)
        return {}
    return value


def _int_option(section: Mapping, key: str, default: int, label: str) -> int:
    raw = section.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        logger.warning("Invalid integer for %s=%s. Falling back to %s.", label, raw, default)
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%s. Falling back to %s.", label, raw, default)
        return default


def _str_option(payload: Mapping, key: str, default: str) -> str:
    raw = payload.get(key)
    if raw is None:
        return default
    if isinstance(raw, (Mapping, list)):
        logger.warning("Invalid value for %s. Falling back to %r.", key, default)
        return default
    return str(raw)


def _rect_option(payload: Mapping, key: str, default: Rect) -> Rect:
    section = _section(payload, key)
    rect = Rect(
        _int_option(section, "x", default.x, f"{key}.x"),
        _int_option(section, "y", default.y, f"{key}.y"),
        _int_option(section, "w", default.w, f"{key}.w"),
        _int_option(section, "h", default.h, f"{key}.h"),
    )
    if rect.w <= 0 or rect.h <= 0 or rect.x < 0 or rect.y < 0:
        logger.warning("Invalid rectangle for %s: %s. Falling back to %s.", key, rect, default)
        return default
    return rect


def _transform_option(payload: Mapping) -> HeadTransform:
    default = HeadTransform()
    section = _section(payload, "head-transform")
    shift = _section(section, "shift")
    scale = _int_option(section, "scale", default.scale, "head-transform.scale")
    if scale < 1:
        logger.warning("head-transform.scale must be at least 1, got %s. Falling back to %s.", scale, default.scale)
        scale = default.scale
    return HeadTransform(
        scale=scale,
        rotate=_int_option(section, "rotate", default.rotate, "head-transform.rotate"),
        shift_x=_int_option(shift, "x", default.shift_x, "head-transform.shift.x"),
        shift_y=_int_option(shift, "y", default.shift_y, "head-transform.shift.y"),
    )


def _icon_mode_option(payload: Mapping) -> IconMode:
    raw = payload.get("icon-mode")
    if raw is None:
        return IconMode.PLAYER
    try:
        return IconMode.parse(raw)
    except ValueError:
        choices = ", ".join(mode.value for mode in IconMode)
        logger.warning("Unknown icon-mode %s (expected one of %s). Falling back to PLAYER.", raw, choices)
        return IconMode.PLAYER


def _timeout_option(payload: Mapping) -> float:
    raw = payload.get("fetch-timeout")
    if raw is None:
        return Settings.fetch_timeout
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = -1.0
    if value <= 0:
        logger.warning("Invalid fetch-timeout=%s. Falling back to %s.", raw, Settings.fetch_timeout)
        return Settings.fetch_timeout
    return value


def parse_settings(payload: Optional[Mapping], *, base_dir: Optional[Path] = None) -> Settings:
    """Build Settings from a parsed config mapping, falling back per option."""
    payload = payload or {}
    skin_url = _str_option(payload, "skin-url", DEFAULT_SKIN_URL)
    if SKIN_URL_PLACEHOLDER not in skin_url:
        logger.warning("skin-url %s has no %s placeholder; every identity fetches the same URL.", skin_url, SKIN_URL_PLACEHOLDER)
    base_icon = Path(_str_option(payload, "base-icon", DEFAULT_BASE_ICON)).expanduser()
    if base_dir is not None and not base_icon.is_absolute():
        base_icon = base_dir / base_icon
    return Settings(
        icon_mode=_icon_mode_option(payload),
        skin_url=skin_url,
        face_rect=_rect_option(payload, "skin-face-location", DEFAULT_FACE_RECT),
        hat_rect=_rect_option(payload, "skin-hat-location", DEFAULT_HAT_RECT),
        head_transform=_transform_option(payload),
        name_tag_placeholder=_str_option(payload, "name-tag-placeholder", "{PLAYER}"),
        name_tag_default=_str_option(payload, "name-tag-default", "Guest"),
        base_icon=base_icon,
        fetch_timeout=_timeout_option(payload),
    )


def load_settings(path: Path, *, server_root: Optional[Path] = None) -> Settings:
    """Read config.yml; a missing or unreadable file yields the defaults.

    A relative base-icon is resolved against server_root, the host server's
    working directory (the current directory when not given), where the
    server's own server-icon.png lives.
    """
    base_dir = server_root if server_root is not None else Path.cwd()
    if not path.exists():
        return parse_settings({}, base_dir=base_dir)
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        return parse_settings({}, base_dir=base_dir)
    if payload is not None and not isinstance(payload, Mapping):
        logger.error("%s must contain a mapping; using defaults.", path)
        payload = {}
    return parse_settings(payload, base_dir=base_dir)


def write_default_config(path: Path) -> bool:
    """Write the default config.yml if none exists yet."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False), encoding="utf-8")
    logger.info("Saved default %s", path.name)
    return True


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_SKIN_URL",
    "SKIN_URL_PLACEHOLDER",
    "Settings",
    "load_settings",
    "parse_settings",
    "write_default_config",
]
