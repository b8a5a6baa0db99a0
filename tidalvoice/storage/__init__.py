"""Durable store adapters and the backend factory."""

from .base import DurableStore, SortCondition, TableSchema
from .memory import JsonFileStore, MemoryStore


def build_store(settings, table_name: str, schema: TableSchema) -> DurableStore:
    """Create the store selected by ``StorageSettings.backend``.

    Args:
        settings: ``StorageSettings``
        table_name: Table the store operates on
        schema: Key layout of that table

    Returns:
        DurableStore: memory, JSON-file or DynamoDB adapter
    """
    backend = settings.backend
    if backend == "memory":
        return MemoryStore(table_name, schema)
    if backend == "json":
        return JsonFileStore(table_name, schema, settings.json_path)
    if backend == "dynamodb":
        from .dynamodb import DynamoDbStore
        return DynamoDbStore(table_name, schema, region=settings.region, endpoint=settings.endpoint)
    raise ValueError(f"Unknown storage backend: {backend}")


__all__ = [
    "DurableStore",
    "JsonFileStore",
    "MemoryStore",
    "SortCondition",
    "TableSchema",
    "build_store",
]
