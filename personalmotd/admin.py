"""Handler for the ``/personalmotd`` admin command."""

from __future__ import annotations

from typing import List, Sequence, Tuple

from .plugin import PersonalMotd

SUBCOMMANDS: Tuple[str, ...] = ("addresses", "reload")


class AdminCommands:
    """Runs admin subcommands against a PersonalMotd context.

    ``handle`` returns whether the invocation was understood plus the lines to
    show the sender; the host adapter decides how to deliver them.
    """

    def __init__(self, plugin: PersonalMotd):
        self.plugin = plugin

    def handle(self, args: Sequence[str]) -> Tuple[bool, List[str]]:
        if not args:
            return False, [f"Usage: /personalmotd <{'|'.join(SUBCOMMANDS)}>"]
        subcommand = args[0].lower()
        if subcommand == "addresses":
            return True, self.list_addresses()
        if subcommand == "reload":
            self.plugin.reload()
            return True, ["Configuration reloaded from disk."]
        return False, [f"Unknown subcommand: {args[0]}"]

    def list_addresses(self) -> List[str]:
        records = self.plugin.addresses.records()
        lines = [f"Stored address mappings: {len(records)}"]
        lines.extend(f"  {record.address} -> {record.identity}" for record in records)
        return lines

    def complete(self, args: Sequence[str]) -> List[str]:
        prefix = args[0].lower() if args else ""
        return [name for name in SUBCOMMANDS if name.startswith(prefix)]


__all__ = ["AdminCommands", "SUBCOMMANDS"]
