"""On-disk JSON snapshot of the metadata store.

Lets a restarted process serve column reads before its first sync. A broken
or unreadable snapshot is logged and ignored.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any

import structlog

from stephie.models import MetadataStore, ResourceMetadata

log = structlog.get_logger()

SNAPSHOT_VERSION = "1.0.0"
SNAPSHOT_FILENAME = "board-metadata.json"


class SnapshotFile:
    """Reads and writes a ``MetadataStore`` snapshot."""

    def __init__(self, directory: Path) -> None:
        self.path = Path(directory) / SNAPSHOT_FILENAME

    def load(self) -> MetadataStore | None:
        if not self.path.exists():
            return None
        try:
            payload: dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8"))
            if payload.get("version") != SNAPSHOT_VERSION:
                log.warning(
                    "Ignoring metadata snapshot with unknown version",
                    path=str(self.path),
                    version=payload.get("version"),
                )
                return None
            entries = {}
            for raw in payload.get("entries", []):
                entry = ResourceMetadata.from_dict(raw)
                entries[entry.resource_id] = entry
            last_full_sync = payload.get("last_full_sync")
            store = MetadataStore(
                entries=MappingProxyType(entries),
                last_full_sync=float(last_full_sync) if last_full_sync is not None else None,
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning("Failed to load metadata snapshot", path=str(self.path), error=str(e))
            return None

        log.info("Loaded metadata snapshot", path=str(self.path), resources=len(entries))
        return store

    def save(self, store: MetadataStore) -> bool:
        payload = {
            "version": SNAPSHOT_VERSION,
            "last_full_sync": store.last_full_sync,
            "entries": [entry.to_dict() for entry in store.entries.values()],
        }
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            log.warning("Failed to write metadata snapshot", path=str(self.path), error=str(e))
            return False
        return True
