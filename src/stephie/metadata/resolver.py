"""Turns a board reference into the ordered column ids tools should request."""

from typing import Any

import structlog

from stephie.errors import SchemaResolutionError
from stephie.metadata.cache import MetadataCache, get_metadata_cache
from stephie.metadata.sources import MetadataSource

log = structlog.get_logger()

ITEMS_QUERY = """
query ($boardIds: [ID!], $columnIds: [String!], $limit: Int!, $queryParams: ItemsQuery) {
  boards(ids: $boardIds) {
    id
    name
    items_page(limit: $limit, query_params: $queryParams) {
      cursor
      items {
        id
        name
        created_at
        updated_at
        column_values(ids: $columnIds) {
          id
          text
          value
          column {
            title
            type
          }
        }
      }
    }
  }
}
"""


def build_items_query(
    board_id: str,
    column_ids: list[str],
    limit: int = 10,
    rules: list[dict[str, Any]] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Items query restricted to ``column_ids``, with ids passed as variables."""
    variables: dict[str, Any] = {
        "boardIds": [board_id],
        "columnIds": column_ids,
        "limit": limit,
    }
    if rules:
        variables["queryParams"] = {"rules": rules}
    return ITEMS_QUERY, variables


class ColumnResolver:
    """Resolves column ids through the cache with one direct fallback fetch."""

    def __init__(
        self,
        cache: MetadataCache | None = None,
        source: MetadataSource | None = None,
    ) -> None:
        self._cache = cache
        self._source = source

    @property
    def cache(self) -> MetadataCache:
        return self._cache or get_metadata_cache()

    @property
    def source(self) -> MetadataSource:
        return self._source or self.cache.source

    def resource_id_for(self, board: str) -> str:
        """Board id for a board reference.

        Numeric references are ids. Otherwise a known board with a matching name
        wins, and anything else is used as an id as given.
        """
        board = board.strip()
        if board.isdigit():
            return board
        entry = self.cache.find_by_name(board)
        return entry.resource_id if entry is not None else board

    async def resolve(self, board: str) -> list[str]:
        """Ordered column ids for ``board``.

        Raises:
            SchemaResolutionError: If neither the cache nor a direct fetch yields columns.
        """
        try:
            resource_id = self.resource_id_for(board)
        except Exception as e:
            raise SchemaResolutionError(
                f"Could not look up board {board}: {e}",
                details={"resource_id": board},
            ) from e

        try:
            columns = await self.cache.get_columns(resource_id)
        except Exception as e:
            log.warning(
                "Metadata cache failed, fetching columns directly",
                resource_id=resource_id,
                error=str(e),
            )
        else:
            if columns:
                return [column.id for column in columns]
            log.warning("No cached columns, fetching directly", resource_id=resource_id)

        try:
            schema = await self.source.fetch_resource(resource_id)
        except Exception as e:
            raise SchemaResolutionError(
                f"Could not resolve columns for board {resource_id}: {e}",
                details={"resource_id": resource_id},
            ) from e

        column_ids = [column.id for column in schema.columns]
        if not column_ids:
            raise SchemaResolutionError(
                f"No columns found for board {resource_id}",
                details={"resource_id": resource_id},
            )
        return column_ids


_resolver: ColumnResolver | None = None


def get_column_resolver() -> ColumnResolver:
    global _resolver  # noqa: PLW0603
    if _resolver is None:
        _resolver = ColumnResolver()
    return _resolver


async def get_dynamic_columns(board: str) -> list[str]:
    """Column ids for ``board`` using the process-wide resolver."""
    return await get_column_resolver().resolve(board)
