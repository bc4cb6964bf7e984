"""Board metadata: sources, cache and column resolution."""

from stephie.metadata.cache import MetadataCache, get_metadata_cache, reset_metadata_cache
from stephie.metadata.resolver import (
    ColumnResolver,
    build_items_query,
    get_column_resolver,
    get_dynamic_columns,
)
from stephie.metadata.sources import BoardSchema, RegistrySource, SchemaSource, create_source

__all__ = [
    "BoardSchema",
    "ColumnResolver",
    "MetadataCache",
    "RegistrySource",
    "SchemaSource",
    "build_items_query",
    "create_source",
    "get_column_resolver",
    "get_dynamic_columns",
    "get_metadata_cache",
    "reset_metadata_cache",
]
