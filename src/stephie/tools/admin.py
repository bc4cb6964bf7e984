"""Admin tools shared by the MCP server, the REST routes and the CLI.

Each tool returns a JSON-ready payload and never raises: failures come back
as ``{"success": False, "code": ..., "error": ...}``.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from stephie.clock import Clock, system_clock
from stephie.errors import StephieError
from stephie.gam.auth import get_credential_cache
from stephie.gam.queue import get_gam_queue
from stephie.metadata.cache import MetadataCache, get_metadata_cache
from stephie.metadata.resolver import ColumnResolver
from stephie.models import SyncReport
from stephie.utils.resilience import with_deadline

log = structlog.get_logger()


@dataclass
class ServerState:
    """Tracks server runtime state."""

    start_time: float | None = None


_state = ServerState()


def mark_server_started(clock: Clock = system_clock) -> None:
    """Mark the server as started for uptime tracking."""
    _state.start_time = clock.now()


def _failure(e: Exception) -> dict[str, Any]:
    if isinstance(e, StephieError):
        return e.to_payload()
    if isinstance(e, TimeoutError):
        return {"success": False, "code": "TIMEOUT", "error": str(e), "details": {}}
    return {"success": False, "code": "INTERNAL_ERROR", "error": str(e), "details": {}}


async def resync_metadata(
    cache: MetadataCache | None = None,
    *,
    clock: Clock = system_clock,
    timeout_seconds: float | None = None,
) -> dict[str, Any]:
    """Run a full metadata sync and report what it produced.

    With ``timeout_seconds`` the caller stops waiting after that long; the sync
    itself carries on and its result lands in the cache.
    """
    cache = cache or get_metadata_cache()
    started = clock.now()
    log.info("Manual metadata resync requested")
    try:
        if timeout_seconds is None:
            store = await cache.sync()
        else:
            store = await with_deadline(cache.sync(), timeout_seconds, "metadata sync")
    except Exception as e:
        log.exception("Manual metadata resync failed")
        return _failure(e)

    report = SyncReport(
        duration_ms=int((clock.now() - started) * 1000),
        resource_count=len(store.entries),
        total_column_count=store.total_column_count,
        last_sync_timestamp=store.last_full_sync,
    )
    log.info(
        "Manual metadata resync finished",
        resources=report.resource_count,
        columns=report.total_column_count,
        duration_ms=report.duration_ms,
    )
    return report.to_dict()


async def get_board_columns(
    board: str,
    resolver: ColumnResolver | None = None,
) -> dict[str, Any]:
    """Ordered column ids for a board id or board name."""
    resolver = resolver or ColumnResolver()
    try:
        board_id = resolver.resource_id_for(board)
        column_ids = await resolver.resolve(board_id)
    except Exception as e:
        log.warning("Column resolution failed", board=board, error=str(e))
        return _failure(e)

    entry = resolver.cache.store.entries.get(board_id)
    return {
        "success": True,
        "board_id": board_id,
        "board_name": entry.name if entry else None,
        "column_ids": column_ids,
        "columns": [column.to_dict() for column in entry.columns] if entry else [],
    }


def get_status(
    cache: MetadataCache | None = None,
    *,
    clock: Clock = system_clock,
) -> dict[str, Any]:
    """Snapshot of cache, queue and credential state for diagnostics."""
    cache = cache or get_metadata_cache()
    credentials = get_credential_cache()
    queue = get_gam_queue()
    uptime = clock.now() - _state.start_time if _state.start_time is not None else 0.0
    return {
        "uptime_seconds": round(uptime, 1),
        "metadata": cache.get_metadata(),
        "queue": {"state": queue.state.value, **queue.stats},
        "credentials": {
            "token_expires_at": credentials.expires_at,
            **credentials.stats,
        },
    }
