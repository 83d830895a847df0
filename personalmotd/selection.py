"""Choosing whose icon and name to serve on a status request."""

from __future__ import annotations

import threading
from typing import Optional, Sequence

from PIL import Image

from .addresses import AddressIdentityStore
from .models import IconMode
from .skins import ImageCache


class DeathTracker:
    """Most recent death and death-ban identities seen since startup.

    Kept in memory only; a restart forgets both.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest_death: Optional[str] = None
        self._latest_death_ban: Optional[str] = None

    @property
    def latest_death(self) -> Optional[str]:
        with self._lock:
            return self._latest_death

    @property
    def latest_death_ban(self) -> Optional[str]:
        with self._lock:
            return self._latest_death_ban

    def record_death(self, identity: str) -> None:
        with self._lock:
            self._latest_death = identity

    def record_death_ban(self, identity: str) -> None:
        with self._lock:
            self._latest_death_ban = identity


def select_identity(
    mode: IconMode,
    address: Optional[str],
    store: AddressIdentityStore,
    online: Sequence[str],
    random_index: int,
    tracker: DeathTracker,
) -> Optional[str]:
    if mode is IconMode.PLAYER:
        return store.lookup(address)
    if mode is IconMode.RANDOM:
        if not online:
            return None
        return online[random_index % len(online)]
    if mode is IconMode.DEATH:
        return tracker.latest_death
    if mode is IconMode.DEATHBAN:
        return tracker.latest_death_ban
    raise ValueError(f"Unsupported icon mode {mode!r}")


def resolve_icon(
    identity: Optional[str],
    icon_cache: ImageCache,
    default_icon: Optional["Image.Image"],
) -> Optional["Image.Image"]:
    """Return the cached icon for identity, or exactly default_icon."""
    if identity is None:
        return default_icon
    icon = icon_cache.read(identity)
    if icon is None:
        return default_icon
    return icon


def personalize_motd(motd: str, identity: Optional[str], placeholder: str, default_name: str) -> str:
    if not placeholder:
        return motd
    return motd.replace(placeholder, identity if identity is not None else default_name)


__all__ = ["DeathTracker", "personalize_motd", "resolve_icon", "select_identity"]
