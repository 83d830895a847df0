"""Dataclasses and shared type definitions for PersonalMotd."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, NamedTuple, Optional

if TYPE_CHECKING:
    from PIL import Image


class IconMode(Enum):
    """Strategy used to choose whose icon is served on a status request."""

    PLAYER = "PLAYER"
    RANDOM = "RANDOM"
    DEATH = "DEATH"
    DEATHBAN = "DEATHBAN"

    @classmethod
    def parse(cls, raw: object) -> "IconMode":
        if isinstance(raw, IconMode):
            return raw
        return cls(str(raw).strip().upper())


@dataclass(frozen=True)
class Rect:
    """Pixel rectangle used to crop a region out of a skin texture."""

    x: int
    y: int
    w: int
    h: int

    @property
    def box(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.w, self.y + self.h)

    def fits(self, width: int, height: int) -> bool:
        if self.w <= 0 or self.h <= 0 or self.x < 0 or self.y < 0:
            return False
        return self.x + self.w <= width and self.y + self.h <= height


@dataclass(frozen=True)
class HeadTransform:
    """Placement of the composed head on the base icon."""

    scale: int = 4
    rotate: int = 0  # quarter turns clockwise
    shift_x: int = 0
    shift_y: int = 0

    def __post_init__(self) -> None:
        if self.scale < 1:
            raise ValueError(f"Head scale must be at least 1, got {self.scale}")
        object.__setattr__(self, "rotate", self.rotate % 4)


class AddressRecord(NamedTuple):
    address: str
    identity: str


@dataclass(frozen=True)
class StatusResponse:
    """What the status-request boundary receives back."""

    motd: str
    icon: Optional["Image.Image"]
    identity: Optional[str] = None


__all__ = [
    "AddressRecord",
    "HeadTransform",
    "IconMode",
    "Rect",
    "StatusResponse",
]
