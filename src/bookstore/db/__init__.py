"""MongoDB access: connections, query execution and indexes."""

from bookstore.db.connection import Connection, ConnectionManager
from bookstore.db.executor import CollectionClient, Executor
from bookstore.db.indexes import ExecutionStats, IndexManager, IndexSpec, PlanComparison

__all__ = [
    "CollectionClient",
    "Connection",
    "ConnectionManager",
    "ExecutionStats",
    "Executor",
    "IndexManager",
    "IndexSpec",
    "PlanComparison",
]
