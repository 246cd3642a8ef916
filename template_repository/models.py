"""Core value types shared by the stores, the client and the loader."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any

from template_repository.errors import ParseError

# Items are opaque JSON objects; only "id" is interpreted.
Item = dict[str, Any]

JSON_SUFFIX = ".json"


class CollectionType(str, enum.Enum):
    """The two template kinds. The value doubles as the sub-path on every tier."""

    STEPS = "steps"
    WORKFLOWS = "workflows"

    def __str__(self) -> str:
        return self.value


class SourceMode(str, enum.Enum):
    """Where load() goes first."""

    GITHUB = "github"
    LOCAL = "local"

    @classmethod
    def parse(cls, value: Any) -> SourceMode:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        aliases = {"remote": cls.GITHUB, "local-only": cls.LOCAL, "local_only": cls.LOCAL}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"source must be one of 'github' or 'local', got {value!r}"
            ) from None

    def __str__(self) -> str:
        return self.value


class ItemSource(str, enum.Enum):
    """Which tier produced a cache entry."""

    GITHUB = "github"
    MIRROR = "mirror"
    BUNDLED = "bundled"


@dataclass
class CacheEntry:
    """In-memory collection for one kind. Replaced wholesale on every load."""

    items: list[Item]
    fetched_at: float
    source: ItemSource

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float, ttl_seconds: int) -> bool:
        """TTL of zero means always refetch."""
        return ttl_seconds > 0 and self.age(now) <= ttl_seconds


def parse_item(raw: bytes | str, source: str | None = None) -> Item:
    """Decode one template file. Raises ParseError for anything but an object with a string id."""
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        item = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"invalid JSON: {exc}", source=source) from exc
    if not isinstance(item, dict):
        raise ParseError(f"expected a JSON object, got {type(item).__name__}", source=source)
    item_id = item.get("id")
    if not isinstance(item_id, str) or not item_id:
        raise ParseError("template has no string 'id' field", source=source)
    return item


def find_by_id(items: list[Item], item_id: str) -> Item | None:
    """First item whose id matches, or None."""
    for item in items:
        if item.get("id") == item_id:
            return item
    return None
