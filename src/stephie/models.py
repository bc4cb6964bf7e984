"""Value types for board metadata and credentials."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """One field of a board."""

    id: str
    title: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "type": self.type}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColumnDescriptor":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            type=str(data.get("type") or ""),
        )


@dataclass(frozen=True, slots=True)
class ResourceMetadata:
    """Column set of one board as of its last successful fetch.

    ``columns`` is only ever replaced wholesale, never mutated.
    """

    resource_id: str
    columns: tuple[ColumnDescriptor, ...]
    last_synced_at: float
    name: str | None = None

    @property
    def column_ids(self) -> list[str]:
        """Ordered column ids."""
        return [column.id for column in self.columns]

    def age(self, now: float) -> float:
        """Seconds since this entry was fetched."""
        return now - self.last_synced_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "name": self.name,
            "last_synced_at": self.last_synced_at,
            "columns": [column.to_dict() for column in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceMetadata":
        return cls(
            resource_id=str(data["resource_id"]),
            name=data.get("name"),
            last_synced_at=float(data["last_synced_at"]),
            columns=tuple(ColumnDescriptor.from_dict(c) for c in data.get("columns", [])),
        )


@dataclass(frozen=True, slots=True)
class MetadataStore:
    """Process-wide board metadata.

    A missing key means the board was never synced; a present key with no
    columns means it was synced and has none.
    """

    entries: Mapping[str, ResourceMetadata] = field(
        default_factory=lambda: MappingProxyType({})
    )
    last_full_sync: float | None = None

    def with_entry(self, entry: ResourceMetadata) -> "MetadataStore":
        """Copy of this store with one entry installed."""
        entries = dict(self.entries)
        entries[entry.resource_id] = entry
        return MetadataStore(entries=MappingProxyType(entries), last_full_sync=self.last_full_sync)

    @property
    def total_column_count(self) -> int:
        return sum(len(entry.columns) for entry in self.entries.values())


@dataclass(frozen=True, slots=True)
class TokenGrant:
    """Token returned by the credential provider."""

    token: str | None
    expires_in: float | None = None


@dataclass(frozen=True, slots=True)
class CachedToken:
    """Bearer token plus the signing client that produced it."""

    token: str
    expires_at: float
    signing_client: Any

    def is_usable(self, now: float, safety_margin: float) -> bool:
        """True while the token stays valid for at least ``safety_margin`` more seconds."""
        return now + safety_margin <= self.expires_at


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Outcome of a manual or scheduled full sync."""

    duration_ms: int
    resource_count: int
    total_column_count: int
    last_sync_timestamp: float | None

    @property
    def last_sync_iso(self) -> str | None:
        if self.last_sync_timestamp is None:
            return None
        return datetime.fromtimestamp(self.last_sync_timestamp, UTC).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "duration_ms": self.duration_ms,
            "resource_count": self.resource_count,
            "total_column_count": self.total_column_count,
            "last_sync_timestamp": self.last_sync_iso,
        }
