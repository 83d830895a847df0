"""The PersonalMotd context object and the event interface a host adapter calls."""

from __future__ import annotations

import concurrent.futures
import logging
import random
import time
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image

from .addresses import AddressIdentityStore
from .config import Settings, load_settings, write_default_config
from .errors import MalformedAddressError
from .models import StatusResponse
from .pipeline import GenerationPipeline, GenerationRun
from .selection import DeathTracker, personalize_motd, resolve_icon, select_identity
from .skins import ImageCache, SkinFetcher
from .utils import elapsed_ms, is_safe_identity
from .workers import BackgroundLoop

logger = logging.getLogger("personalmotd.plugin")

CONFIG_FILE_NAME = "config.yml"
ADDRESS_MAP_FILE_NAME = "addressmap.yml"
SKIN_DIR_NAME = "player-skins"
ICON_DIR_NAME = "personal-icons"


def load_base_icon(path: Path) -> Optional["Image.Image"]:
    try:
        with Image.open(path) as image:
            image.load()
            return image.convert("RGBA")
    except (OSError, ValueError) as exc:
        logger.error("Error loading base server icon %s: %s", path.resolve(), exc)
        return None


class PersonalMotd:
    """Holds the store, caches, settings and workers for one server.

    A host adapter constructs one instance, calls ``enable()`` at startup and
    ``disable()`` at shutdown, and forwards its events to the ``on_*``
    methods. Status requests only read already persisted state.
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        server_root: Optional[Path] = None,
        server_icon: Optional["Image.Image"] = None,
        fetcher: Optional[SkinFetcher] = None,
        runner: Optional[BackgroundLoop] = None,
        rng: Optional[random.Random] = None,
    ):
        self.data_dir = data_dir
        self.server_root = server_root if server_root is not None else Path.cwd()
        self.server_icon = server_icon
        self.config_path = data_dir / CONFIG_FILE_NAME
        self.address_map_path = data_dir / ADDRESS_MAP_FILE_NAME
        self.settings = Settings()
        self.addresses = AddressIdentityStore()
        self.skin_cache = ImageCache(data_dir / SKIN_DIR_NAME, "skin")
        self.icon_cache = ImageCache(data_dir / ICON_DIR_NAME, "icon")
        self.deaths = DeathTracker()
        self.default_icon: Optional["Image.Image"] = None
        self._custom_fetcher = fetcher is not None
        self.fetcher = fetcher or SkinFetcher()
        self.pipeline = GenerationPipeline(self.fetcher, self.skin_cache, self.icon_cache)
        self.runner = runner or BackgroundLoop()
        self._rng = rng or random.Random()
        self.enabled = False

    def enable(self) -> None:
        started = time.monotonic()
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.skin_cache.directory.mkdir(parents=True, exist_ok=True)
        self.icon_cache.directory.mkdir(parents=True, exist_ok=True)
        write_default_config(self.config_path)
        self.addresses = AddressIdentityStore.load_file(self.address_map_path)
        self._load_config()
        self.runner.start()
        self.enabled = True
        logger.info(
            "PersonalMotd enabled in %dms (%d address mapping(s), icon mode %s).",
            elapsed_ms(started),
            len(self.addresses),
            self.settings.icon_mode.value,
        )

    def disable(self, timeout: Optional[float] = None) -> None:
        started = time.monotonic()
        self.enabled = False
        self.runner.stop(timeout)
        try:
            self.addresses.save_file(self.address_map_path)
        except OSError as exc:
            logger.error("Failed to save address map %s: %s", self.address_map_path, exc)
        logger.info("PersonalMotd disabled in %dms.", elapsed_ms(started))

    def reload(self) -> None:
        started = time.monotonic()
        self._load_config()
        logger.info("Configuration reloaded in %dms.", elapsed_ms(started))

    def _load_config(self) -> None:
        self.settings = load_settings(self.config_path, server_root=self.server_root)
        if not self._custom_fetcher:
            self.fetcher.url_template = self.settings.skin_url
            self.fetcher.timeout = self.settings.fetch_timeout
        base = load_base_icon(self.settings.base_icon)
        if base is None and self.server_icon is not None:
            logger.warning("Falling back to the server's own icon.")
            base = self.server_icon
        self.default_icon = base

    def generate(self, identity: str) -> "concurrent.futures.Future[GenerationRun]":
        """Submit one generation run for identity to the background loop."""
        logger.debug("Scheduling icon creation task for %s", identity)
        return self.runner.submit(
            self.pipeline.run(identity, base_icon=self.default_icon, settings=self.settings)
        )

    def on_connection_event(
        self, address: str, identity: str
    ) -> Optional["concurrent.futures.Future[GenerationRun]"]:
        """Record the address binding and start regenerating identity's icon."""
        try:
            self.addresses.upsert(address, identity)
        except MalformedAddressError as exc:
            logger.debug("Not storing address for %s: %s", identity, exc)
        if not is_safe_identity(identity):
            logger.warning("Skipping icon generation for unusable identity %r", identity)
            return None
        try:
            return self.generate(identity)
        except RuntimeError as exc:
            logger.warning("Icon generation for %s not scheduled: %s", identity, exc)
            return None

    def on_status_request(
        self,
        address: Optional[str],
        motd: str,
        online: Sequence[str] = (),
    ) -> StatusResponse:
        settings = self.settings
        bound = self.addresses.lookup(address)
        text = personalize_motd(motd, bound, settings.name_tag_placeholder, settings.name_tag_default)
        random_index = self._rng.randrange(len(online)) if online else 0
        chosen = select_identity(
            settings.icon_mode,
            address,
            self.addresses,
            list(online),
            random_index,
            self.deaths,
        )
        icon = resolve_icon(chosen, self.icon_cache, self.default_icon)
        return StatusResponse(motd=text, icon=icon, identity=chosen)

    def on_death_notification(self, identity: str) -> None:
        self.deaths.record_death(identity)

    def on_death_ban_notification(self, identity: str) -> None:
        self.deaths.record_death_ban(identity)


__all__ = [
    "ADDRESS_MAP_FILE_NAME",
    "CONFIG_FILE_NAME",
    "ICON_DIR_NAME",
    "PersonalMotd",
    "SKIN_DIR_NAME",
    "load_base_icon",
]
