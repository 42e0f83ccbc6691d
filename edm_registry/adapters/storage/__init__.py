"""Storage adapters for EDM Registry.

Implementations of the StoragePort interface: an in-process dictionary
store and DuckDB.
"""

from edm_registry.adapters.storage.duckdb_adapter import DuckDBAdapter
from edm_registry.adapters.storage.memory_adapter import InMemoryStorageAdapter

__all__ = ["DuckDBAdapter", "InMemoryStorageAdapter"]
