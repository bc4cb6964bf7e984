"""Process-wide cache of board column sets.

Reads are served from an immutable ``MetadataStore`` snapshot. Writers build a
new store and swap the reference, so a reader never sees a half-applied sync.

Two kinds of remote work happen here:

- a cold read fetches only the requested board, shared by concurrent readers
  of the same id;
- ``sync()`` re-fetches every known board in one fetch-all call. At most one
  sync runs at a time and concurrent callers await the same result.
"""

import asyncio
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import structlog

from stephie import config as config_module
from stephie.clock import Clock, system_clock
from stephie.metadata.persistence import SnapshotFile
from stephie.metadata.sources import BoardSchema, MetadataSource, create_source
from stephie.models import ColumnDescriptor, MetadataStore, ResourceMetadata
from stephie.monday.client import get_monday_client

log = structlog.get_logger()


@dataclass
class CacheStats:
    """Metadata cache statistics."""

    hits: int = 0
    misses: int = 0
    stale: int = 0
    resource_fetches: int = 0
    full_syncs: int = 0
    failed_fetches: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.stale
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale": self.stale,
            "resource_fetches": self.resource_fetches,
            "full_syncs": self.full_syncs,
            "failed_fetches": self.failed_fetches,
            "hit_rate": round(self.hit_rate, 4),
        }


def _entry_from_schema(schema: BoardSchema, fetched_at: float) -> ResourceMetadata:
    return ResourceMetadata(
        resource_id=schema.resource_id,
        columns=tuple(schema.columns),
        last_synced_at=fetched_at,
        name=schema.name,
    )


class MetadataCache:
    """Board metadata with per-board staleness and single-flight sync."""

    def __init__(
        self,
        source: MetadataSource,
        *,
        ttl_seconds: float | None = None,
        registry_ids: list[str] | None = None,
        clock: Clock = system_clock,
        snapshot: SnapshotFile | None = None,
    ) -> None:
        cfg = config_module.settings
        self.source = source
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else cfg.metadata_ttl_seconds
        self.registry_ids = list(registry_ids if registry_ids is not None else cfg.metadata_board_ids)
        self._clock = clock
        self._snapshot = snapshot
        self._store = MetadataStore()
        self._inflight: dict[str, asyncio.Task[ResourceMetadata]] = {}
        self._sync_task: asyncio.Task[MetadataStore] | None = None
        self._stats = CacheStats()

    @property
    def store(self) -> MetadataStore:
        """Current immutable snapshot."""
        return self._store

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def initialize(self) -> bool:
        """Load the on-disk snapshot, if any. Returns True when one was loaded."""
        if self._snapshot is None:
            return False
        store = self._snapshot.load()
        if store is None:
            return False
        self._store = store
        return True

    def is_fresh(self, entry: ResourceMetadata) -> bool:
        return entry.age(self._clock.now()) <= self.ttl_seconds

    def needs_sync(self) -> bool:
        """True when no full sync happened within the staleness bound."""
        last = self._store.last_full_sync
        return last is None or self._clock.now() - last > self.ttl_seconds

    async def get_columns(self, resource_id: str) -> tuple[ColumnDescriptor, ...]:
        """Column descriptors of one board, fetching it if missing or stale.

        Raises:
            ResourceNotFoundError: If the remote reports the board does not exist.
        """
        entry = self._store.entries.get(resource_id)
        if entry is not None and self.is_fresh(entry):
            self._stats.hits += 1
            return entry.columns

        if entry is None:
            self._stats.misses += 1
            log.debug("Metadata cache miss", resource_id=resource_id)
        else:
            self._stats.stale += 1
            log.debug(
                "Metadata cache entry stale",
                resource_id=resource_id,
                age=round(entry.age(self._clock.now()), 1),
            )

        fetched = await self._fetch_one(resource_id)
        return fetched.columns

    async def _fetch_one(self, resource_id: str) -> ResourceMetadata:
        task = self._inflight.get(resource_id)
        if task is None:
            task = asyncio.ensure_future(self._load_resource(resource_id))
            self._inflight[resource_id] = task

            def _forget(done: asyncio.Task[ResourceMetadata], rid: str = resource_id) -> None:
                if self._inflight.get(rid) is done:
                    del self._inflight[rid]

            task.add_done_callback(_forget)
        # Shielded so one cancelled reader does not abort the fetch for the rest
        return await asyncio.shield(task)

    async def _load_resource(self, resource_id: str) -> ResourceMetadata:
        self._stats.resource_fetches += 1
        started = self._clock.now()
        try:
            schema = await self.source.fetch_resource(resource_id)
        except Exception as e:
            self._stats.failed_fetches += 1
            log.warning("Board metadata fetch failed", resource_id=resource_id, error=str(e))
            raise

        current = self._store.entries.get(resource_id)
        if current is not None and current.last_synced_at >= started:
            # A sync that finished while this read was out already stored newer columns
            log.debug("Discarding superseded board fetch", resource_id=resource_id)
            return current

        entry = _entry_from_schema(schema, self._clock.now())
        self._store = self._store.with_entry(entry)
        log.info(
            "Fetched board metadata",
            resource_id=resource_id,
            columns=len(entry.columns),
        )
        self._persist()
        return entry

    async def sync(self) -> MetadataStore:
        """Re-fetch every known board and replace the store in one step.

        Concurrent callers share the in-flight sync. Errors propagate to every
        caller and leave the previous store in place.
        """
        if self._sync_task is None or self._sync_task.done():
            self._sync_task = asyncio.ensure_future(self._run_sync())
        else:
            log.info("Metadata sync already in progress, joining")
        return await asyncio.shield(self._sync_task)

    async def _run_sync(self) -> MetadataStore:
        started = self._clock.now()
        requested = list(dict.fromkeys([*self.registry_ids, *self._store.entries]))
        log.info("Starting metadata sync", requested=len(requested))

        self._stats.full_syncs += 1
        try:
            fetched = await self.source.fetch_all(requested)
        except Exception as e:
            self._stats.failed_fetches += 1
            log.error("Metadata sync failed", error=str(e))  # noqa: TRY400
            raise

        finished = self._clock.now()
        entries = {rid: _entry_from_schema(schema, finished) for rid, schema in fetched.items()}
        # Keep boards first fetched by a cold read while this sync was running
        for rid, entry in self._store.entries.items():
            if rid not in entries and rid not in requested and entry.last_synced_at >= started:
                entries[rid] = entry

        store = MetadataStore(entries=MappingProxyType(entries), last_full_sync=finished)
        self._store = store
        log.info(
            "Metadata sync complete",
            resources=len(entries),
            columns=store.total_column_count,
            duration_ms=int((finished - started) * 1000),
        )
        self._persist()
        return store

    def find_by_name(self, name: str) -> ResourceMetadata | None:
        """Known board whose name matches ``name`` (exact first, then substring)."""
        needle = name.strip().lower()
        if not needle:
            return None
        entries = list(self._store.entries.values())
        for entry in entries:
            if entry.name and entry.name.lower() == needle:
                return entry
        for entry in entries:
            if entry.name and needle in entry.name.lower():
                return entry
        return None

    def get_metadata(self) -> dict[str, Any]:
        """Read-only diagnostics view of the current store."""
        store = self._store
        now = self._clock.now()
        return {
            "resources": [
                {
                    "resource_id": entry.resource_id,
                    "name": entry.name,
                    "column_count": len(entry.columns),
                    "last_synced_at": entry.last_synced_at,
                    "fresh": entry.age(now) <= self.ttl_seconds,
                }
                for entry in store.entries.values()
            ],
            "resource_count": len(store.entries),
            "total_column_count": store.total_column_count,
            "last_full_sync": store.last_full_sync,
            "ttl_seconds": self.ttl_seconds,
            "sync_in_progress": self.sync_in_progress,
            "stats": self._stats.to_dict(),
        }

    def _persist(self) -> None:
        if self._snapshot is not None:
            self._snapshot.save(self._store)


# Global cache instance
_metadata_cache: MetadataCache | None = None


def get_metadata_cache() -> MetadataCache:
    """Get or create the process-wide metadata cache."""
    global _metadata_cache  # noqa: PLW0603
    if _metadata_cache is None:
        cache_dir = config_module.settings.metadata_cache_dir
        _metadata_cache = MetadataCache(
            create_source(get_monday_client()),
            snapshot=SnapshotFile(cache_dir) if cache_dir else None,
        )
        _metadata_cache.initialize()
    return _metadata_cache


def reset_metadata_cache() -> None:
    global _metadata_cache  # noqa: PLW0603
    _metadata_cache = None
