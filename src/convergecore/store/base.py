"""
Base resource store protocol and factory.

Defines the create/get/delete interface every backing store implements.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol, Type, runtime_checkable

from convergecore.contracts.types import StoreType
from convergecore.models import ResourceKind

logger = logging.getLogger(__name__)


@runtime_checkable
class ResourceStore(Protocol):
    """
    Protocol defining the resource store interface.

    ``spec`` arguments are desired-state models exposing ``name``,
    ``namespace``, ``resource`` and ``to_manifest()``.
    """

    def create(self, spec: Any) -> Dict[str, Any]:
        """Create the resource. Raises ResourceConflictError if it exists."""
        ...

    def get(self, kind: ResourceKind, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        """Return the stored object, or None if it does not exist."""
        ...

    def delete(self, spec: Any) -> None:
        """Delete the resource. Raises ResourceNotFoundError if it is gone."""
        ...


class BaseStore(ABC):
    """Abstract base class for resource store backends."""

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace

    @abstractmethod
    def create(self, spec: Any) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get(self, kind: ResourceKind, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def delete(self, spec: Any) -> None:
        pass


# Store backend registry
_BACKENDS: Dict[StoreType, Type[BaseStore]] = {}


def register_backend(store_type: StoreType):
    """Decorator to register a store backend."""
    def decorator(cls: Type[BaseStore]) -> Type[BaseStore]:
        _BACKENDS[store_type] = cls
        return cls
    return decorator


def get_store(
    store_type: Optional[StoreType] = None,
    namespace: str = "default",
    **kwargs: Any,
) -> BaseStore:
    """
    Get a resource store instance.

    Auto-detects the backend if not specified:
    - Kubernetes if running in-cluster or a kubeconfig is available
    - In-memory fake store otherwise

    Args:
        store_type: Explicit store type to use
        namespace: Default namespace for the store
        **kwargs: Backend-specific options (e.g. ``context`` for Kubernetes)
    """
    # Import backends to register them
    from convergecore.store import kubernetes, memory  # noqa: F401

    if store_type is None:
        store_type = _detect_store_type()

    if store_type not in _BACKENDS:
        raise ValueError(f"Unknown store type: {store_type}")

    backend_class = _BACKENDS[store_type]
    return backend_class(namespace=namespace, **kwargs)


def _detect_store_type() -> StoreType:
    """Auto-detect the appropriate store type."""
    if os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount"):
        logger.info("Detected in-cluster Kubernetes environment")
        return StoreType.KUBERNETES

    if os.environ.get("KUBECONFIG"):
        logger.info("Detected KUBECONFIG environment variable")
        return StoreType.KUBERNETES

    if os.path.exists(os.path.expanduser("~/.kube/config")):
        logger.info("Detected local kubeconfig file")
        return StoreType.KUBERNETES

    logger.info("No Kubernetes detected, using in-memory store")
    return StoreType.MEMORY


def resolve_store_type(name: Optional[str]) -> StoreType:
    """Map a configured store name ("auto", "kubernetes", "memory") to a StoreType."""
    if name is None or name == "auto":
        return _detect_store_type()
    return StoreType(name)
