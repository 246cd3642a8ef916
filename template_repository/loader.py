"""TemplateRepository — tiered loader for step and workflow templates.

Lookup order for each collection type:

  memory (TTL-gated) → GitHub contents API → on-disk mirror → bundled defaults

- A fresh in-memory entry is served with no I/O.
- At most one fetch per collection type runs at a time. A caller that
  arrives while one is in flight gets the current entry (or []) instead of
  waiting.
- A successful GitHub listing is written through to the mirror. Mirror and
  bundled reads never write to the mirror.
- A failed GitHub listing still stamps the entry, so GitHub is not retried
  until the TTL elapses.
- reconfigure() and refresh() bump a generation counter. A fetch that
  started under an older generation returns to its own caller, but its
  result is not installed in the cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import logging
import os
import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx

from template_repository.client import GitHubContentsClient, RemoteFetcher
from template_repository.config import RepositoryConfig
from template_repository.errors import ParseError, RemoteError
from template_repository.events import EventSink, LoaderEvent, LoggingEventSink, safe_emit
from template_repository.models import (
    JSON_SUFFIX,
    CacheEntry,
    CollectionType,
    Item,
    ItemSource,
    SourceMode,
    find_by_id,
    parse_item,
)
from template_repository.store import BundledDefaults, MirrorStore

logger = logging.getLogger(__name__)

# Bounded concurrency for per-file GitHub reads within one listing.
_FETCH_CONCURRENCY = 5


def _iso(ts: float) -> str:
    return (
        datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc)
        .isoformat()
        .replace("+00:00", "Z")
    )


class TemplateRepository:
    """Owns the cache entries, the configuration and the single-flight flags.

    Collaborators are injectable:
      fetcher  — a RemoteFetcher used for every load. When omitted, a
                 GitHubContentsClient is opened per load from the config
                 snapshot taken at the start of that load.
      mirror   — MirrorStore (write-through fallback tier).
      bundled  — BundledDefaults (terminal fallback tier).
      events   — EventSink for structured loader events.
      clock    — wall-clock source, seconds since the epoch.
    """

    def __init__(
        self,
        config: RepositoryConfig | None = None,
        *,
        fetcher: RemoteFetcher | None = None,
        mirror: MirrorStore | None = None,
        bundled: BundledDefaults | None = None,
        events: EventSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or RepositoryConfig()
        self._fetcher = fetcher
        self._mirror = mirror or MirrorStore()
        self._bundled = bundled or BundledDefaults()
        self._events: EventSink = events or LoggingEventSink()
        self._clock = clock
        self._entries: dict[CollectionType, CacheEntry] = {}
        # (kind, generation) pairs with a fetch in progress. Checked and set with
        # no await in between, which is atomic on a single event loop.
        self._in_flight: set[tuple[CollectionType, int]] = set()
        self._generation = 0

    @classmethod
    def from_env(cls, **kwargs: Any) -> TemplateRepository:
        """Build a repository from GITHUB_* / REPOSITORY_* environment variables."""
        mirror_dir = os.getenv("REPOSITORY_CACHE_DIR")
        bundled_dir = os.getenv("REPOSITORY_BUNDLED_DIR")
        if mirror_dir and "mirror" not in kwargs:
            kwargs["mirror"] = MirrorStore(Path(mirror_dir))
        if bundled_dir and "bundled" not in kwargs:
            kwargs["bundled"] = BundledDefaults(Path(bundled_dir))
        return cls(RepositoryConfig.from_env(), **kwargs)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> RepositoryConfig:
        return self._config

    def cached(self, kind: CollectionType) -> CacheEntry | None:
        """Current in-memory entry for kind, fresh or not. No I/O."""
        return self._entries.get(CollectionType(kind))

    def _emit(self, action: str, kind: CollectionType | None = None, **detail: Any) -> None:
        safe_emit(
            self._events,
            LoaderEvent(
                action=action,
                kind=kind.value if kind is not None else None,
                timestamp=self._clock(),
                detail=detail,
            ),
        )

    # ------------------------------------------------------------------
    # Core load
    # ------------------------------------------------------------------

    async def load(self, kind: CollectionType | str) -> list[Item]:
        """Return the items for kind. Never raises for source failures."""
        kind = CollectionType(kind)
        config = self._config
        entry = self._entries.get(kind)

        if entry is not None and entry.is_fresh(self._clock(), config.cache_ttl):
            self._emit("cache_hit", kind, count=len(entry.items))
            return entry.items

        generation = self._generation
        flight = (kind, generation)
        if flight in self._in_flight:
            self._emit("in_flight_skip", kind, has_cache=entry is not None)
            return entry.items if entry is not None else []

        self._in_flight.add(flight)
        try:
            if config.source is SourceMode.LOCAL:
                items = await self._read_bundled(kind)
                source = ItemSource.BUNDLED
                self._emit("local_loaded", kind, count=len(items))
            else:
                items, source = await self._load_from_github(kind, config, generation)

            new_entry = CacheEntry(items=items, fetched_at=self._clock(), source=source)
            if generation == self._generation:
                self._entries[kind] = new_entry
            else:
                self._emit("stale_discarded", kind, started_generation=generation)
            return items
        finally:
            self._in_flight.discard(flight)

    async def load_steps(self) -> list[Item]:
        return await self.load(CollectionType.STEPS)

    async def load_workflows(self) -> list[Item]:
        return await self.load(CollectionType.WORKFLOWS)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _remote(self, config: RepositoryConfig) -> AsyncIterator[RemoteFetcher]:
        if self._fetcher is not None:
            yield self._fetcher
            return
        async with GitHubContentsClient(config) as client:
            yield client

    async def _load_from_github(
        self, kind: CollectionType, config: RepositoryConfig, generation: int
    ) -> tuple[list[Item], ItemSource]:
        try:
            async with self._remote(config) as fetcher:
                listing = await fetcher.list_directory(config.contents_path(kind.value))
                items = await self._fetch_items(fetcher, kind, config, listing)
        except (RemoteError, httpx.HTTPError, OSError) as exc:
            self._emit("remote_failed", kind, error=str(exc))
            return await self._fallback(kind)
        except Exception as exc:
            logger.exception("[TemplateRepository] Unexpected error listing %s", kind)
            self._emit("remote_failed", kind, error=repr(exc))
            return await self._fallback(kind)

        # The mirror only holds results fetched under the current configuration
        if generation != self._generation:
            self._emit("mirror_write_skipped", kind, started_generation=generation)
        else:
            await self._write_mirror(kind, items)

        self._emit("remote_loaded", kind, count=len(items), listed=len(listing))
        return items, ItemSource.GITHUB

    async def _write_mirror(self, kind: CollectionType, items: list[Item]) -> None:
        try:
            written = await asyncio.to_thread(self._mirror.write, kind, items)
        except Exception as exc:
            logger.exception("[TemplateRepository] Mirror write raised for %s", kind)
            self._emit("mirror_write_failed", kind, error=str(exc))
            return
        if written < len(items):
            self._emit("mirror_write_failed", kind, written=written, total=len(items))

    async def _fetch_items(
        self,
        fetcher: RemoteFetcher,
        kind: CollectionType,
        config: RepositoryConfig,
        listing: list[dict[str, Any]],
    ) -> list[Item]:
        names = [
            entry["name"]
            for entry in listing
            if isinstance(entry, dict)
            and entry.get("type") == "file"
            and isinstance(entry.get("name"), str)
            and entry["name"].endswith(JSON_SUFFIX)
        ]
        semaphore = asyncio.Semaphore(_FETCH_CONCURRENCY)

        async def fetch_one(name: str) -> Item | None:
            path = config.contents_path(f"{kind.value}/{name}")
            async with semaphore:
                try:
                    raw = await fetcher.read_file(path)
                    return parse_item(raw, source=path)
                except (RemoteError, ParseError, httpx.HTTPError) as exc:
                    self._emit("remote_item_failed", kind, file=name, error=str(exc))
                    return None
                except Exception as exc:
                    logger.exception("[TemplateRepository] Unexpected error reading %s", path)
                    self._emit("remote_item_failed", kind, file=name, error=repr(exc))
                    return None

        results = await asyncio.gather(*(fetch_one(name) for name in names))
        return [item for item in results if item is not None]

    async def _fallback(self, kind: CollectionType) -> tuple[list[Item], ItemSource]:
        try:
            mirrored = await asyncio.to_thread(self._mirror.read, kind)
        except Exception:
            logger.exception("[TemplateRepository] Mirror read raised for %s", kind)
            mirrored = None
        if mirrored:
            self._emit("mirror_fallback", kind, count=len(mirrored))
            return mirrored, ItemSource.MIRROR

        items = await self._read_bundled(kind)
        self._emit("bundled_fallback", kind, count=len(items))
        return items, ItemSource.BUNDLED

    async def _read_bundled(self, kind: CollectionType) -> list[Item]:
        try:
            return await asyncio.to_thread(self._bundled.read, kind)
        except Exception:
            logger.exception("[TemplateRepository] Bundled read raised for %s", kind)
            return []

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_by_id(self, kind: CollectionType | str, item_id: str) -> Item | None:
        """First item with a matching id, or None when there is none."""
        return find_by_id(await self.load(kind), item_id)

    async def get_step_by_id(self, item_id: str) -> Item | None:
        return await self.get_by_id(CollectionType.STEPS, item_id)

    async def get_workflow_by_id(self, item_id: str) -> Item | None:
        return await self.get_by_id(CollectionType.WORKFLOWS, item_id)

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._entries.clear()
        self._generation += 1

    async def refresh(self) -> dict[str, Any]:
        """Drop both entries and reload both kinds concurrently."""
        self._invalidate()
        steps, workflows = await asyncio.gather(self.load_steps(), self.load_workflows())
        summary = {
            "steps": len(steps),
            "workflows": len(workflows),
            "source": self._config.source.value,
            "timestamp": _iso(self._clock()),
        }
        self._emit("refreshed", None, steps=summary["steps"], workflows=summary["workflows"])
        return summary

    def status(self) -> dict[str, Any]:
        """Snapshot of configuration and cache state. No I/O."""
        config = self._config
        now = self._clock()
        remote = config.source is SourceMode.GITHUB
        fetch_times = [entry.fetched_at for entry in self._entries.values()]
        is_stale = not self._entries or any(
            not entry.is_fresh(now, config.cache_ttl) for entry in self._entries.values()
        )

        def count(kind: CollectionType) -> int:
            entry = self._entries.get(kind)
            return len(entry.items) if entry is not None else 0

        return {
            "source": config.source.value,
            "repo": config.repo if remote else "local",
            "branch": config.branch if remote else None,
            "cache_ttl": config.cache_ttl,
            "last_fetch": _iso(max(fetch_times)) if fetch_times else None,
            "is_stale": is_stale,
            "steps_count": count(CollectionType.STEPS),
            "workflows_count": count(CollectionType.WORKFLOWS),
            "origins": {
                kind.value: (self._entries[kind].source.value if kind in self._entries else None)
                for kind in CollectionType
            },
        }

    def reconfigure(self, **changes: Any) -> dict[str, Any]:
        """Apply the non-None options, then drop every cache entry.

        Raises ConfigError (and changes nothing) for unknown options or
        invalid values.
        """
        self._config = self._config.merged(**changes)
        self._invalidate()
        applied = sorted(k for k, v in changes.items() if v is not None)
        self._emit("reconfigured", None, fields=applied)
        return self.status()
