"""Where board column sets come from.

Two sources are supported:

- ``SchemaSource`` reads each board's own column list (``boards { columns }``).
- ``RegistrySource`` reads the curated Columns board: each item there names a
  column id and links to an item of the Meta board, which in turn carries the
  id of the board that column belongs to. Tools then only request the columns
  someone chose to expose, in registry order.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from stephie import config as config_module
from stephie.errors import ResourceNotFoundError
from stephie.models import ColumnDescriptor
from stephie.monday.client import GraphQLTransport

log = structlog.get_logger()


@dataclass(frozen=True)
class BoardSchema:
    """Column set of one board as returned by a source."""

    resource_id: str
    columns: tuple[ColumnDescriptor, ...]
    name: str | None = None


class MetadataSource(Protocol):
    """Fetches board column sets from the remote API."""

    async def fetch_resource(self, resource_id: str) -> BoardSchema:
        """Fetch one board. Raises ``ResourceNotFoundError`` if it does not exist."""
        ...

    async def fetch_all(self, resource_ids: Sequence[str]) -> dict[str, BoardSchema]:
        """Fetch every board in ``resource_ids`` (and any fixed registry)."""
        ...


BOARD_COLUMNS_QUERY = """
query ($ids: [ID!]) {
  boards(ids: $ids) {
    id
    name
    columns {
      id
      title
      type
    }
  }
}
"""


def _parse_board(board: dict[str, Any]) -> BoardSchema:
    columns = tuple(
        ColumnDescriptor(
            id=str(column["id"]),
            title=str(column.get("title") or ""),
            type=str(column.get("type") or ""),
        )
        for column in board.get("columns") or []
    )
    return BoardSchema(resource_id=str(board["id"]), columns=columns, name=board.get("name"))


class SchemaSource:
    """Reads the live column list of each board."""

    def __init__(self, transport: GraphQLTransport, *, batch_size: int | None = None) -> None:
        self._transport = transport
        self.batch_size = batch_size or config_module.settings.metadata_batch_size

    async def fetch_resource(self, resource_id: str) -> BoardSchema:
        response = await self._transport.execute(BOARD_COLUMNS_QUERY, {"ids": [resource_id]})
        for board in response.data.get("boards") or []:
            if board and str(board.get("id")) == resource_id:
                return _parse_board(board)
        raise ResourceNotFoundError("Board", resource_id)

    async def fetch_all(self, resource_ids: Sequence[str]) -> dict[str, BoardSchema]:
        result: dict[str, BoardSchema] = {}
        ids = list(dict.fromkeys(resource_ids))
        for start in range(0, len(ids), self.batch_size):
            batch = ids[start : start + self.batch_size]
            response = await self._transport.execute(BOARD_COLUMNS_QUERY, {"ids": batch})
            for board in response.data.get("boards") or []:
                if board:
                    schema = _parse_board(board)
                    result[schema.resource_id] = schema

        missing = [rid for rid in ids if rid not in result]
        if missing:
            log.warning("Boards missing from sync response", missing=missing)
        return result


_ITEM_FIELDS = """
      items {
        id
        name
        column_values {
          id
          text
          ... on BoardRelationValue {
            linked_item_ids
          }
        }
      }
"""

REGISTRY_QUERY = (
    """
query ($ids: [ID!], $limit: Int!) {
  boards(ids: $ids) {
    id
    name
    items_page(limit: $limit) {
      cursor
"""
    + _ITEM_FIELDS
    + """
    }
  }
}
"""
)

REGISTRY_NEXT_PAGE_QUERY = (
    """
query ($cursor: String!, $limit: Int!) {
  next_items_page(cursor: $cursor, limit: $limit) {
    cursor
"""
    + _ITEM_FIELDS
    + """
  }
}
"""
)


def _column_value(item: dict[str, Any], column_id: str) -> dict[str, Any] | None:
    for value in item.get("column_values") or []:
        if value.get("id") == column_id:
            return value
    return None


class RegistrySource:
    """Reads curated column sets from the Columns and Meta boards."""

    def __init__(
        self,
        transport: GraphQLTransport,
        *,
        columns_board_id: str | None = None,
        meta_board_id: str | None = None,
        board_id_column: str | None = None,
        column_id_column: str | None = None,
        relation_column: str | None = None,
        page_limit: int | None = None,
    ) -> None:
        cfg = config_module.settings
        self._transport = transport
        self.columns_board_id = columns_board_id or cfg.columns_board_id
        self.meta_board_id = meta_board_id or cfg.meta_board_id
        self.board_id_column = board_id_column or cfg.registry_board_id_column
        self.column_id_column = column_id_column or cfg.registry_column_id_column
        self.relation_column = relation_column or cfg.registry_relation_column
        self.page_limit = page_limit or cfg.registry_page_limit

    async def _board_items(self) -> dict[str, list[dict[str, Any]]]:
        """All items of the Columns and Meta boards, following page cursors."""
        response = await self._transport.execute(
            REGISTRY_QUERY,
            {"ids": [self.columns_board_id, self.meta_board_id], "limit": self.page_limit},
        )
        items: dict[str, list[dict[str, Any]]] = {}
        for board in response.data.get("boards") or []:
            if not board:
                continue
            page = board.get("items_page") or {}
            board_items = list(page.get("items") or [])
            cursor = page.get("cursor")
            while cursor:
                next_response = await self._transport.execute(
                    REGISTRY_NEXT_PAGE_QUERY, {"cursor": cursor, "limit": self.page_limit}
                )
                next_page = next_response.data.get("next_items_page") or {}
                board_items.extend(next_page.get("items") or [])
                cursor = next_page.get("cursor")
            items[str(board["id"])] = board_items

        for required in (self.columns_board_id, self.meta_board_id):
            if required not in items:
                raise ResourceNotFoundError("Registry board", required)
        return items

    def _parse(self, items: dict[str, list[dict[str, Any]]]) -> dict[str, BoardSchema]:
        names: dict[str, str | None] = {}
        item_to_board: dict[str, str] = {}
        for item in items[self.meta_board_id]:
            value = _column_value(item, self.board_id_column)
            board_id = (value or {}).get("text")
            if board_id:
                item_to_board[str(item["id"])] = board_id
                names[board_id] = item.get("name")

        columns: dict[str, list[ColumnDescriptor]] = {board_id: [] for board_id in names}
        for item in items[self.columns_board_id]:
            column_id = (_column_value(item, self.column_id_column) or {}).get("text")
            linked = (_column_value(item, self.relation_column) or {}).get("linked_item_ids") or []
            if not column_id or not linked:
                continue
            board_id = item_to_board.get(str(linked[0]))
            if board_id is None:
                continue
            if any(existing.id == column_id for existing in columns[board_id]):
                continue
            columns[board_id].append(ColumnDescriptor(id=column_id, title=item.get("name") or ""))

        return {
            board_id: BoardSchema(resource_id=board_id, columns=tuple(cols), name=names[board_id])
            for board_id, cols in columns.items()
        }

    async def fetch_resource(self, resource_id: str) -> BoardSchema:
        boards = self._parse(await self._board_items())
        if resource_id not in boards:
            raise ResourceNotFoundError("Board", resource_id)
        return boards[resource_id]

    async def fetch_all(self, resource_ids: Sequence[str]) -> dict[str, BoardSchema]:  # noqa: ARG002
        # The registry is the fixed set of boards; every sync reads all of it
        return self._parse(await self._board_items())


def create_source(transport: GraphQLTransport, kind: str | None = None) -> MetadataSource:
    """Build the source selected by ``STEPHIE_METADATA_SOURCE``."""
    kind = kind or config_module.settings.metadata_source
    if kind == "schema":
        return SchemaSource(transport)
    if kind == "registry":
        return RegistrySource(transport)
    raise ValueError(f"Unknown metadata source: {kind}")
