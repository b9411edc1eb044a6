# Storage adapters, one per SQL dialect

from typing import Dict

from gaenstore.core.exceptions import ErrorContext, UnsupportedDialectError
from gaenstore.storage.base import StoragePort
from gaenstore.storage.postgres import PostgresStorage
from gaenstore.storage.sqlite import SQLiteStorage

_REGISTRY: Dict[str, StoragePort] = {}


def register(adapter: StoragePort) -> None:
    name = getattr(adapter, "name", None)
    if not name or not isinstance(name, str):
        raise ValueError("Storage adapter must define a non-empty .name")
    _REGISTRY[name.lower()] = adapter


def get_storage_adapter(dialect_name: str) -> StoragePort:
    """Adapter for a SQLAlchemy dialect name (engine.dialect.name)"""
    k = (dialect_name or "").lower()
    if k not in _REGISTRY:
        available = ", ".join(sorted(_REGISTRY.keys()))
        raise UnsupportedDialectError(
            f"No storage adapter for dialect '{dialect_name}'. Available: {available}",
            context=ErrorContext(operation="get_storage_adapter"),
        )
    return _REGISTRY[k]


register(PostgresStorage())
register(SQLiteStorage())

__all__ = [
    "StoragePort",
    "PostgresStorage",
    "SQLiteStorage",
    "register",
    "get_storage_adapter",
]
