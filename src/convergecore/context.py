"""
Explicit Kubernetes client context.

A ClusterContext is built once at process start and handed to every
component that talks to the cluster, instead of module-level client globals.

Example:
    ctx = ClusterContext.from_kubeconfig(namespace="default")
    store = KubernetesResourceStore(context=ctx)
    exec_client = RemoteExecClient(ctx)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client, config

logger = logging.getLogger(__name__)


@dataclass
class ClusterContext:
    """Handles to the Kubernetes API shared by one verification run."""

    api_client: client.ApiClient
    core_api: client.CoreV1Api
    custom_api: client.CustomObjectsApi
    namespace: str = "default"

    @classmethod
    def from_kubeconfig(
        cls,
        kubeconfig: Optional[str] = None,
        namespace: str = "default",
        context: Optional[str] = None,
    ) -> "ClusterContext":
        """
        Load cluster credentials and build API handles.

        An explicit kubeconfig path wins; otherwise in-cluster configuration
        is tried first and the default kubeconfig is the fallback.
        """
        configuration = client.Configuration()
        if kubeconfig:
            config.load_kube_config(
                config_file=kubeconfig,
                context=context,
                client_configuration=configuration,
            )
        else:
            try:
                config.load_incluster_config(client_configuration=configuration)
            except config.ConfigException:
                config.load_kube_config(context=context, client_configuration=configuration)

        api_client = client.ApiClient(configuration)
        logger.debug(f"ClusterContext initialized against {configuration.host}")
        return cls.from_api_client(api_client, namespace=namespace)

    @classmethod
    def from_api_client(cls, api_client: client.ApiClient, namespace: str = "default") -> "ClusterContext":
        return cls(
            api_client=api_client,
            core_api=client.CoreV1Api(api_client),
            custom_api=client.CustomObjectsApi(api_client),
            namespace=namespace,
        )

    def close(self) -> None:
        self.api_client.close()
