"""
address_table.py — static destination overrides for the forward proxy.

The table maps a nominal destination (``host`` or ``host:port``) to the
address the proxy should actually dial.  It is built exactly once at
startup, before the listener accepts anything, and is shared read-only by
every connection task afterwards.

Two on-disk sources are understood:

* **map file** — one ``key=value`` entry per line::

      api.example.com:443=10.0.0.7:8443
      cdn.example.com=10.0.0.9

* **hosts file** — a JSON list of ``[replacement, original]`` pairs
  (note the order: the *new* address comes first)::

      [["10.0.0.9", "cdn.example.com"], ["10.0.0.7", "api.example.com"]]

Sources are merged in the order they are passed to ``AddressTable.build``;
a later source overwrites a key an earlier one already set.  Malformed
entries are skipped one by one and never abort the load.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

Pair = tuple[str, str]


class AddressTable(Mapping[str, str]):
    """Immutable ``key -> replacement`` mapping.

    Lookups never block and never raise; a missing key simply means
    "no override".
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Mapping[str, str] = MappingProxyType(dict(entries or {}))

    @classmethod
    def build(cls, *sources: Iterable[Pair]) -> AddressTable:
        """Merge *sources* in order, later sources winning on key clashes."""
        merged: dict[str, str] = {}
        for source in sources:
            for key, value in source:
                merged[key] = value
        return cls(merged)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:  # type: ignore[override]
        return self._entries.get(key, default)

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AddressTable({dict(self._entries)!r})"


# ============================================================================
# Source parsers
# ============================================================================


def parse_map_lines(lines: Iterable[str]) -> list[Pair]:
    """Turn ``key=value`` lines into ``(key, value)`` pairs.

    Lines without ``=`` are ignored.  Only the first two ``=``-separated
    fields are used, both stripped of surrounding whitespace.
    """
    pairs: list[Pair] = []
    for line in lines:
        fields = line.split("=")
        if len(fields) < 2:
            continue
        key, value = fields[0].strip(), fields[1].strip()
        if not key:
            continue
        pairs.append((key, value))
    return pairs


def parse_host_pairs(items: Any) -> list[Pair]:
    """Turn ``[[replacement, original], ...]`` into ``(original, replacement)``.

    Anything that is not a list of at least two strings is skipped.
    """
    pairs: list[Pair] = []
    if not isinstance(items, list):
        return pairs
    for item in items:
        if not isinstance(item, list) or len(item) < 2:
            continue
        replacement, original = item[0], item[1]
        if not isinstance(replacement, str) or not isinstance(original, str):
            continue
        key = original.strip()
        if not key:
            continue
        pairs.append((key, replacement.strip()))
    return pairs


# ============================================================================
# File loaders
# ============================================================================


def load_map_file(path: str) -> list[Pair]:
    """Read a ``key=value`` override file.  A missing file yields no pairs."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            pairs = parse_map_lines(f)
    except FileNotFoundError:
        logger.debug("Override map file not found: %s", path)
        return []
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Error reading override map file %s: %s", path, e)
        return []
    logger.info("Loaded %d overrides from %s", len(pairs), path)
    return pairs


def load_hosts_file(path: str) -> list[Pair]:
    """Read a JSON ``[[replacement, original], ...]`` override file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            items = json.load(f)
    except FileNotFoundError:
        logger.debug("Hosts file not found: %s", path)
        return []
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Error reading hosts file %s: %s", path, e)
        return []
    pairs = parse_host_pairs(items)
    logger.info("Loaded %d overrides from %s", len(pairs), path)
    return pairs


def load_address_table(map_file: Optional[str], hosts_file: Optional[str]) -> AddressTable:
    """Build the process-wide table: map file first, hosts file second."""
    sources: list[list[Pair]] = []
    if map_file:
        sources.append(load_map_file(map_file))
    if hosts_file:
        sources.append(load_hosts_file(hosts_file))
    table = AddressTable.build(*sources)
    for key, value in table.items():
        logger.debug("key:%s, val:%s", key, value)
    return table
