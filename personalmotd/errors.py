"""Exception types raised by the icon pipeline and address store."""

from __future__ import annotations


class PersonalMotdError(Exception):
    """Base class for every error raised by personalmotd."""


class SkinFetchError(PersonalMotdError):
    """Raised when a skin texture cannot be obtained for an identity."""

    def __init__(self, identity: str, message: str):
        super().__init__(message)
        self.identity = identity


class SkinNotFoundError(SkinFetchError):
    """The remote skin host has nothing for this identity."""


class SkinNetworkError(SkinFetchError):
    """The request to the skin host failed in transport."""


class SkinDecodeError(SkinFetchError):
    """The bytes returned by the skin host are not a readable image."""


class OutOfBoundsError(PersonalMotdError, ValueError):
    """Raised when a crop rectangle does not fit inside the source image."""


class MalformedAddressError(PersonalMotdError, ValueError):
    """Raised when a persisted address is not a resolvable 4-segment address."""


__all__ = [
    "MalformedAddressError",
    "OutOfBoundsError",
    "PersonalMotdError",
    "SkinDecodeError",
    "SkinFetchError",
    "SkinNetworkError",
    "SkinNotFoundError",
]
