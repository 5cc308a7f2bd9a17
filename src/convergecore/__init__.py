"""
convergecore - Verify that a broker cluster converges to its desired state.

Desired-state resources (cluster, security domain, addresses) are submitted
to Kubernetes, the cluster is polled until every worker is ready, and a
command run inside each worker confirms the brokers picked up the
configuration.

Example usage:
    from convergecore import ClusterContext, RetryEngine
    from convergecore.plans import build_address_plan
    from convergecore.remote_exec import RemoteExecClient
    from convergecore.scenario import ScenarioConfig, VerificationScenario
    from convergecore.store import KubernetesResourceStore

    ctx = ClusterContext.from_kubeconfig()
    report = VerificationScenario(
        plan=build_address_plan(),
        store=KubernetesResourceStore(context=ctx),
        exec_client=RemoteExecClient(ctx),
        config=ScenarioConfig(run_against_live_cluster=True, deploy_controller=True),
    ).run()
    report.raise_for_failure()
"""

__version__ = "0.1.0"
__all__ = [
    "ClusterContext",
    "RetryEngine",
    "RemoteExecClient",
    "ResourceStateReader",
    "VerificationScenario",
    "__version__",
]


# Lazy imports to avoid loading the kubernetes client at import time
def __getattr__(name: str):
    if name == "ClusterContext":
        from convergecore.context import ClusterContext
        return ClusterContext
    if name == "RetryEngine":
        from convergecore.retry import RetryEngine
        return RetryEngine
    if name == "RemoteExecClient":
        from convergecore.remote_exec import RemoteExecClient
        return RemoteExecClient
    if name == "ResourceStateReader":
        from convergecore.reader import ResourceStateReader
        return ResourceStateReader
    if name == "VerificationScenario":
        from convergecore.scenario import VerificationScenario
        return VerificationScenario
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
