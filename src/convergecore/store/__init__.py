"""
Resource store layer for convergecore.

Provides pluggable backends for the desired-state resources a scenario
submits:
- Kubernetes (custom objects through the API server)
- In-memory (smoke runs and tests)

Example:
    from convergecore.store import get_store, StoreType

    # Auto-detect backend
    store = get_store()

    # Explicit in-memory store for a smoke run
    store = get_store(StoreType.MEMORY)

    store.create(cluster_spec)
    store.get(CLUSTER_KIND, "ex-aao-broker", "default")
"""

from convergecore.contracts.types import StoreType
from convergecore.store.base import BaseStore, ResourceStore, get_store, resolve_store_type
from convergecore.store.kubernetes import KubernetesResourceStore
from convergecore.store.memory import MemoryResourceStore

__all__ = [
    "BaseStore",
    "ResourceStore",
    "StoreType",
    "get_store",
    "resolve_store_type",
    "KubernetesResourceStore",
    "MemoryResourceStore",
]
