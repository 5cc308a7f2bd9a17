"""
Kubernetes CRD-based resource store.

Creates, reads and deletes the broker operator's custom resources through
the CustomObjectsApi.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from convergecore.context import ClusterContext
from convergecore.contracts.timeouts import K8S_API_CONNECT_TIMEOUT_S, K8S_API_READ_TIMEOUT_S
from convergecore.contracts.types import StoreType
from convergecore.errors import ResourceConflictError, ResourceNotFoundError, ResourceStoreError
from convergecore.models import ResourceKind
from convergecore.store.base import BaseStore, register_backend

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = (K8S_API_CONNECT_TIMEOUT_S, K8S_API_READ_TIMEOUT_S)

# Raised by the client when the API server cannot be reached at all
_TRANSPORT_ERRORS = (HTTPError, OSError)


@register_backend(StoreType.KUBERNETES)
class KubernetesResourceStore(BaseStore):
    """
    Kubernetes CRD-based resource store.

    Requires the broker operator's CRDs to be installed. Reads are plain GETs
    and never mutate the cluster, so they are safe to use as retry probes.
    """

    def __init__(
        self,
        namespace: str = "default",
        context: Optional[ClusterContext] = None,
        kubeconfig: Optional[str] = None,
    ):
        super().__init__(namespace=namespace)
        if context is None:
            context = ClusterContext.from_kubeconfig(kubeconfig=kubeconfig, namespace=namespace)
        self.context = context
        self.custom_api = context.custom_api
        logger.debug(f"KubernetesResourceStore initialized for namespace {namespace}")

    def create(self, spec: Any) -> Dict[str, Any]:
        kind: ResourceKind = spec.resource
        try:
            created = self.custom_api.create_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=spec.namespace,
                plural=kind.plural,
                body=spec.to_manifest(),
                _request_timeout=_REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if e.status == 409:
                raise ResourceConflictError(f"{spec.describe()} already exists") from e
            raise ResourceStoreError(
                f"Failed to create {spec.describe()}: {e.reason}", status=e.status
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise ResourceStoreError(f"Failed to create {spec.describe()}: {e}") from e
        logger.info(f"Created {spec.describe()}")
        return created

    def get(self, kind: ResourceKind, name: str, namespace: str) -> Optional[Dict[str, Any]]:
        try:
            return self.custom_api.get_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.plural,
                name=name,
                _request_timeout=_REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise ResourceStoreError(
                f"Failed to get {kind.kind} {namespace}/{name}: {e.reason}", status=e.status
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise ResourceStoreError(f"Failed to get {kind.kind} {namespace}/{name}: {e}") from e

    def delete(self, spec: Any) -> None:
        kind: ResourceKind = spec.resource
        try:
            self.custom_api.delete_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=spec.namespace,
                plural=kind.plural,
                name=spec.name,
                _request_timeout=_REQUEST_TIMEOUT,
            )
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(f"{spec.describe()} not found") from e
            raise ResourceStoreError(
                f"Failed to delete {spec.describe()}: {e.reason}", status=e.status
            ) from e
        except _TRANSPORT_ERRORS as e:
            raise ResourceStoreError(f"Failed to delete {spec.describe()}: {e}") from e
        logger.info(f"Deleted {spec.describe()}")
