"""Address to identity bindings and their persisted YAML tree."""

from __future__ import annotations

import ipaddress
import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import MalformedAddressError
from .models import AddressRecord

logger = logging.getLogger("personalmotd.addresses")

ADDRESS_SEGMENTS = 4


def split_address(address: str) -> Tuple[str, ...]:
    """Split a dotted address into its four segments.

    Raises MalformedAddressError when the address does not have exactly four
    non-empty segments or does not parse as an IPv4 address.
    """
    segments = tuple(address.split("."))
    if len(segments) != ADDRESS_SEGMENTS or not all(segments):
        raise MalformedAddressError(f"'{address}' does not have {ADDRESS_SEGMENTS} segments")
    try:
        ipaddress.IPv4Address(address)
    except ValueError as exc:
        raise MalformedAddressError(f"'{address}' is not a valid address: {exc}") from exc
    return segments


def normalize_address(address: object) -> str:
    normalized = str(address).strip()
    split_address(normalized)
    return normalized


def _segment_sort_key(segment: str) -> Tuple[int, int, str]:
    if segment.isdigit():
        return (0, int(segment), segment)
    return (1, 0, segment)


def _address_sort_key(address: str) -> Tuple[Tuple[int, int, str], ...]:
    return tuple(_segment_sort_key(segment) for segment in address.split("."))


def _iter_tree(node: Mapping, prefix: Tuple[str, ...] = ()) -> Iterator[Tuple[str, object]]:
    for key, value in node.items():
        path = prefix + (str(key),)
        if len(path) < ADDRESS_SEGMENTS and isinstance(value, Mapping):
            yield from _iter_tree(value, path)
        else:
            yield ".".join(path), value


def _coerce_identity(value: object) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    return None


class AddressIdentityStore:
    """Thread-safe mapping of network address to the identity last seen there."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._lock = threading.Lock()
        self._entries: Dict[str, str] = {}
        for address, identity in (entries or {}).items():
            self._entries[normalize_address(address)] = identity

    def lookup(self, address: Optional[str]) -> Optional[str]:
        if address is None:
            return None
        with self._lock:
            return self._entries.get(address.strip())

    def upsert(self, address: str, identity: str) -> bool:
        """Bind identity to address, returning True when the binding changed."""
        normalized = normalize_address(address)
        with self._lock:
            if self._entries.get(normalized) == identity:
                return False
            self._entries[normalized] = identity
        logger.debug("Bound %s -> %s", normalized, identity)
        return True

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def records(self) -> List[AddressRecord]:
        entries = self.snapshot()
        return [
            AddressRecord(address, entries[address])
            for address in sorted(entries, key=_address_sort_key)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._entries

    def as_tree(self) -> Dict[str, Dict]:
        """Group the bindings into a four level tree keyed by address segment."""
        tree: Dict[str, Dict] = {}
        for address, identity in self.records():
            first, second, third, fourth = address.split(".")
            tree.setdefault(first, {}).setdefault(second, {}).setdefault(third, {})[fourth] = identity
        return tree

    def dump(self) -> bytes:
        text = yaml.safe_dump(
            self.as_tree(),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        return text.encode("utf-8")

    @classmethod
    def load(cls, data: Union[bytes, str]) -> "AddressIdentityStore":
        """Parse the persisted tree, skipping entries that are not valid addresses."""
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        store = cls()
        payload = yaml.safe_load(data) if data.strip() else None
        if payload is None:
            return store
        if not isinstance(payload, Mapping):
            logger.warning("Address map must be a mapping, found %s; ignoring it.", type(payload).__name__)
            return store
        for address, raw_identity in _iter_tree(payload):
            identity = _coerce_identity(raw_identity)
            if identity is None:
                logger.warning("Skipping address map entry %s: no identity stored at the leaf.", address)
                continue
            try:
                normalized = normalize_address(address)
            except MalformedAddressError as exc:
                logger.warning("Skipping address map entry %s (%s): %s", address, identity, exc)
                continue
            store._entries[normalized] = identity
        return store

    @classmethod
    def load_file(cls, path: Path) -> "AddressIdentityStore":
        if not path.exists():
            return cls()
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.error("Failed to read %s: %s", path, exc)
            return cls()
        try:
            store = cls.load(data)
        except (yaml.YAMLError, UnicodeDecodeError) as exc:
            logger.error("Failed to parse %s: %s", path, exc)
            return cls()
        logger.info("Loaded %d address mapping(s) from %s", len(store), path)
        return store

    def save_file(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.dump())
        logger.info("Saved %d address mapping(s) to %s", len(self), path)


__all__ = [
    "ADDRESS_SEGMENTS",
    "AddressIdentityStore",
    "normalize_address",
    "split_address",
]
