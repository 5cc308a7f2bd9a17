"""
In-memory resource store.

Backs smoke runs that have no live cluster, and tests. Objects are stored
as deep copies of their manifests; a controller is simulated by writing
status through ``set_status``.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from convergecore.contracts.types import StoreType
from convergecore.errors import ResourceConflictError, ResourceNotFoundError
from convergecore.models import ResourceKind
from convergecore.store.base import BaseStore, register_backend

logger = logging.getLogger(__name__)

_Key = Tuple[str, str, str]


@register_backend(StoreType.MEMORY)
class MemoryResourceStore(BaseStore):
    """Thread-safe dictionary of custom objects keyed by (plural, namespace, name)."""

    def __init__(self, namespace: str = "default", **_: Any):
        super().__init__(namespace=namespace)
        self._objects: Dict[_Key, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._resource_version = 0
        # Every mutating call, in order: ("create" | "delete" | "status", key)
        self.operations: List[Tuple[str, _Key]] = []

    @staticmethod
    def _key(kind: ResourceKind, name: str, namespace: str) -> _Key:
        return (kind.plural, namespace, name)

    def _next_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    def create(self, spec: Any) -> Dict[str, Any]:
        key = self._key(spec.resource, spec.name, spec.namespace)
        with self._lock:
            if key in self._objects:
                raise ResourceConflictError(f"{spec.describe()} already exists")
            obj = copy.deepcopy(spec.to_manifest())
            obj["metadata"]["resourceVersion"] = self._next_version()
            self._objects[key] = obj
            self.operations.append(("create", key))
        logger.debug(f"Created {spec.describe()} in memory")
        return copy.deepcopy(obj)

    def get(self, kind: ResourceKind, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            obj = self._objects.get(self._key(kind, name, namespace))
            return copy.deepcopy(obj) if obj is not None else None

    def delete(self, spec: Any) -> None:
        key = self._key(spec.resource, spec.name, spec.namespace)
        with self._lock:
            if key not in self._objects:
                raise ResourceNotFoundError(f"{spec.describe()} not found")
            del self._objects[key]
            self.operations.append(("delete", key))
        logger.debug(f"Deleted {spec.describe()} from memory")

    def set_status(self, kind: ResourceKind, name: str, namespace: str, status: Dict[str, Any]) -> None:
        """Overwrite an object's status, as a reconciling controller would."""
        key = self._key(kind, name, namespace)
        with self._lock:
            if key not in self._objects:
                raise ResourceNotFoundError(f"{kind.kind} {namespace}/{name} not found")
            obj = self._objects[key]
            obj["status"] = copy.deepcopy(status)
            obj["metadata"]["resourceVersion"] = self._next_version()
            self.operations.append(("status", key))

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
