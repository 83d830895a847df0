"""Skin retrieval and the on-disk PNG caches for skins and icons."""

from __future__ import annotations

import asyncio
import io
import logging
import os
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlparse

import aiohttp
from PIL import Image

from .config import DEFAULT_SKIN_URL, SKIN_URL_PLACEHOLDER
from .errors import SkinDecodeError, SkinNetworkError, SkinNotFoundError
from .utils import is_safe_identity

logger = logging.getLogger("personalmotd.skins")

# S3 answers 403 rather than 404 for keys that do not exist.
NOT_FOUND_STATUSES = frozenset({403, 404})


def _rgba(image: "Image.Image") -> "Image.Image":
    if image.mode == "RGBA":
        return image
    return image.convert("RGBA")


def decode_image(data: bytes) -> "Image.Image":
    """Decode image bytes into an RGBA raster, raising ValueError/OSError on bad input."""
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        return image.convert("RGBA")


def encode_png(image: "Image.Image") -> bytes:
    buffer = io.BytesIO()
    _rgba(image).save(buffer, format="PNG")
    return buffer.getvalue()


def different(first: Optional["Image.Image"], second: Optional["Image.Image"]) -> bool:
    """Exact pixel comparison; a missing image differs from everything."""
    if first is None or second is None:
        return True
    if first.size != second.size:
        return True
    return _rgba(first).tobytes() != _rgba(second).tobytes()


class ImageCache:
    """Directory of ``<identity>.png`` files, one per identity."""

    def __init__(self, directory: Path, label: str = "image"):
        self.directory = directory
        self.label = label

    def path_for(self, identity: str) -> Path:
        if not is_safe_identity(identity):
            raise ValueError(f"Identity {identity!r} cannot be used as a {self.label} cache key")
        return self.directory / f"{identity}.png"

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, str) or not is_safe_identity(identity):
            return False
        return self.path_for(identity).is_file()

    def read(self, identity: Optional[str]) -> Optional["Image.Image"]:
        if identity is None:
            return None
        if not is_safe_identity(identity):
            logger.warning("Ignoring %s cache lookup for unusable identity %r", self.label, identity)
            return None
        path = self.path_for(identity)
        if not path.is_file():
            return None
        try:
            with Image.open(path) as image:
                image.load()
                return image.convert("RGBA")
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load cached %s %s: %s", self.label, path, exc)
            return None

    def write(self, identity: str, image: "Image.Image") -> Path:
        """Store image as PNG, replacing any previous entry. Raises OSError on failure."""
        path = self.path_for(identity)
        self.directory.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        try:
            _rgba(image).save(temp_path, format="PNG")
            os.replace(temp_path, path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Cached %s for %s at %s", self.label, identity, path)
        return path


class SkinFetcher:
    """Fetch an identity's current skin from the configured URL template.

    ``http``/``https`` templates are requested with aiohttp; anything else is
    treated as a local file path (optionally ``file://``) with the identity
    substituted in.
    """

    def __init__(
        self,
        url_template: str = DEFAULT_SKIN_URL,
        *,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self._session = session

    def url_for(self, identity: str) -> str:
        return self.url_template.replace(SKIN_URL_PLACEHOLDER, quote(identity, safe=""))

    async def fetch(self, identity: str) -> "Image.Image":
        data = await self.fetch_bytes(identity)
        try:
            return decode_image(data)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise SkinDecodeError(identity, f"Skin for {identity} is not a readable image: {exc}") from exc

    async def fetch_bytes(self, identity: str) -> bytes:
        url = self.url_for(identity)
        if not url.startswith(("http://", "https://")):
            return await self._read_local(identity, url)
        try:
            if self._session is not None:
                return await self._get(self._session, identity, url)
            async with aiohttp.ClientSession() as session:
                return await self._get(session, identity, url)
        except aiohttp.ClientError as exc:
            raise SkinNetworkError(identity, f"Skin fetch error for {url}: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise SkinNetworkError(identity, f"Skin fetch timed out for {url}") from exc

    async def _get(self, session: aiohttp.ClientSession, identity: str, url: str) -> bytes:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout)) as resp:
            if resp.status in NOT_FOUND_STATUSES:
                raise SkinNotFoundError(identity, f"No skin online for {identity} ({resp.status})")
            if resp.status != 200:
                raise SkinNetworkError(identity, f"Skin fetch failed ({resp.status}): {url}")
            return await resp.read()

    async def _read_local(self, identity: str, location: str) -> bytes:
        if location.startswith("file://"):
            location = unquote(urlparse(location).path)
        else:
            location = unquote(location)
        local_path = Path(location).expanduser()
        if not local_path.is_file():
            raise SkinNotFoundError(identity, f"No skin file for {identity} at {local_path}")
        try:
            return await asyncio.to_thread(local_path.read_bytes)
        except OSError as exc:
            raise SkinNetworkError(identity, f"Failed to read skin file {local_path}: {exc}") from exc


__all__ = [
    "ImageCache",
    "NOT_FOUND_STATUSES",
    "SkinFetcher",
    "decode_image",
    "different",
    "encode_png",
]
