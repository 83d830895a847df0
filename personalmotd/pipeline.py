"""Per-identity icon generation: fetch, diff, compose, persist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from PIL import Image

from .composer import compose_icon
from .config import Settings
from .errors import OutOfBoundsError, SkinFetchError, SkinNotFoundError
from .skins import ImageCache, SkinFetcher, different

logger = logging.getLogger("personalmotd.pipeline")


class RunState(Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    FETCH_FAILED = "fetch_failed"
    DIFF_UNCHANGED = "diff_unchanged"
    COMPOSING = "composing"
    COMPOSE_FAILED = "compose_failed"
    PERSIST_FAILED = "persist_failed"
    PERSISTED = "persisted"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self in (RunState.FETCH_FAILED, RunState.COMPOSE_FAILED, RunState.PERSIST_FAILED)


_TERMINAL_STATES = frozenset(
    {
        RunState.FETCH_FAILED,
        RunState.DIFF_UNCHANGED,
        RunState.COMPOSE_FAILED,
        RunState.PERSIST_FAILED,
        RunState.PERSISTED,
    }
)

_TRANSITIONS = {
    RunState.PENDING: {RunState.FETCHING},
    RunState.FETCHING: {RunState.FETCH_FAILED, RunState.DIFF_UNCHANGED, RunState.COMPOSING},
    RunState.COMPOSING: {RunState.COMPOSE_FAILED, RunState.PERSIST_FAILED, RunState.PERSISTED},
}


@dataclass
class GenerationRun:
    """One pipeline execution for one identity. Not persisted."""

    identity: str
    state: RunState = RunState.PENDING
    error: Optional[str] = None
    history: List[RunState] = field(default_factory=lambda: [RunState.PENDING])

    def advance(self, state: RunState, error: Optional[str] = None) -> None:
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(f"Illegal generation transition {self.state.name} -> {state.name}")
        self.state = state
        self.history.append(state)
        if error is not None:
            self.error = error


class GenerationPipeline:
    """Regenerate an identity's icon when its skin has changed.

    Runs are independent: there is no retry, no cancellation and no
    per-identity serialization, so overlapping runs for the same identity
    race on the caches and the last write wins.
    """

    def __init__(self, fetcher: SkinFetcher, skin_cache: ImageCache, icon_cache: ImageCache):
        self.fetcher = fetcher
        self.skin_cache = skin_cache
        self.icon_cache = icon_cache

    async def run(
        self,
        identity: str,
        *,
        base_icon: Optional["Image.Image"],
        settings: Settings,
    ) -> GenerationRun:
        run = GenerationRun(identity)
        run.advance(RunState.FETCHING)
        try:
            fetched = await self.fetcher.fetch(identity)
        except SkinNotFoundError as exc:
            logger.info("No skin online for %s: %s", identity, exc)
            run.advance(RunState.FETCH_FAILED, str(exc))
            return run
        except SkinFetchError as exc:
            logger.warning("Skin fetch failed for %s: %s", identity, exc)
            run.advance(RunState.FETCH_FAILED, str(exc))
            return run

        cached = await asyncio.to_thread(self.skin_cache.read, identity)
        if not different(cached, fetched):
            logger.debug("Skin for %s unchanged; keeping cached icon", identity)
            run.advance(RunState.DIFF_UNCHANGED)
            return run

        run.advance(RunState.COMPOSING)
        try:
            await asyncio.to_thread(self.skin_cache.write, identity, fetched)
        except (OSError, ValueError) as exc:
            logger.warning("Unable to cache skin for %s: %s", identity, exc)

        if base_icon is None:
            logger.error("No base icon loaded; cannot compose icon for %s", identity)
            run.advance(RunState.COMPOSE_FAILED, "base icon not loaded")
            return run
        try:
            icon = await asyncio.to_thread(
                compose_icon,
                base_icon,
                fetched,
                settings.face_rect,
                settings.hat_rect,
                settings.head_transform,
            )
        except OutOfBoundsError as exc:
            logger.error(
                "Icon composition for %s failed; check skin-face-location %s and skin-hat-location %s: %s",
                identity,
                settings.face_rect,
                settings.hat_rect,
                exc,
            )
            run.advance(RunState.COMPOSE_FAILED, str(exc))
            return run

        try:
            await asyncio.to_thread(self.icon_cache.write, identity, icon)
        except (OSError, ValueError) as exc:
            logger.error("Unable to save icon for %s: %s", identity, exc)
            run.advance(RunState.PERSIST_FAILED, str(exc))
            return run

        logger.info("Icon generated for %s", identity)
        run.advance(RunState.PERSISTED)
        return run


__all__ = ["GenerationPipeline", "GenerationRun", "RunState"]
