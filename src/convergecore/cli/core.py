"""convergecore CLI - Core commands (render, run, wait-ready, exec)."""

from __future__ import annotations

from typing import Optional, Tuple

import click
import yaml
from kubernetes import config as k8s_config

from convergecore.config import ConvergeCoreConfig
from convergecore.context import ClusterContext
from convergecore.contracts.timeouts import EXEC_COMMAND_TIMEOUT_S
from convergecore.contracts.types import StoreType
from convergecore.errors import ConvergeCoreError, StreamExecutionError
from convergecore.models import ClusterSpec
from convergecore.plans import build_address_plan
from convergecore.reader import ReadyWorkersProbe, ResourceStateReader
from convergecore.remote_exec import ExecRequest, RemoteExecClient
from convergecore.retry import RetryEngine
from convergecore.scenario import ScenarioConfig, ScenarioReport, VerificationScenario
from convergecore.store import get_store, resolve_store_type

_NON_NEGATIVE = click.FloatRange(min=0)
_POSITIVE = click.FloatRange(min=0, min_open=True)


class VerificationError(click.ClickException):
    """CLI-facing error carrying the failure code of the underlying error."""

    def __init__(self, error: BaseException, context: str = ""):
        self.error = error
        code = getattr(error, "code", type(error).__name__)
        message = f"{context}: {error}" if context else str(error)
        super().__init__(f"[{code}] {message}")


def _context(cfg: ConvergeCoreConfig) -> ClusterContext:
    try:
        return ClusterContext.from_kubeconfig(
            kubeconfig=cfg.kubeconfig,
            namespace=cfg.namespace,
            context=cfg.kube_context,
        )
    except k8s_config.ConfigException as e:
        raise click.ClickException(f"Cannot load Kubernetes configuration: {e}") from e


def _echo_report(report: ScenarioReport) -> None:
    click.echo(f"Scenario: {report.scenario}")
    click.echo(f"States:   {' -> '.join(s.value for s in report.history)}")
    for name in report.submitted:
        click.echo(f"  submitted {name}")
    for worker in report.workers:
        mark = "ok" if worker.verified else "FAILED"
        click.echo(f"  worker {worker.worker}: {mark} after {worker.attempts} attempt(s)")
    for error in report.cleanup_errors:
        click.echo(f"  cleanup error: {error}", err=True)
    click.echo(f"Result:   {'PASSED' if report.passed else 'FAILED'}")


@click.command()
@click.option("--namespace", "-n", default=None, help="Target namespace")
@click.option("--replicas", default=5, show_default=True, type=click.IntRange(min=0))
@click.option("--addresses", default=5, show_default=True, type=click.IntRange(min=0))
def render(namespace: Optional[str], replicas: int, addresses: int):
    """Print the address scenario's manifests as YAML."""
    cfg: ConvergeCoreConfig = click.get_current_context().obj
    plan = build_address_plan(namespace=namespace or cfg.namespace, replicas=replicas, address_count=addresses)
    click.echo(yaml.safe_dump_all(
        [spec.to_manifest() for spec in plan.resources()],
        sort_keys=False,
    ))


@click.command()
@click.option("--namespace", "-n", default=None, help="Target namespace")
@click.option("--replicas", default=5, show_default=True, type=click.IntRange(min=0))
@click.option("--addresses", default=5, show_default=True, type=click.IntRange(min=0))
@click.option("--use-existing-cluster/--no-use-existing-cluster", default=None,
              help="Run against a live cluster (default from USE_EXISTING_CLUSTER)")
@click.option("--deploy-operator/--no-deploy-operator", default=None,
              help="The run deploys its own operator (default from DEPLOY_OPERATOR)")
@click.option("--store", "store_name", type=click.Choice(["auto", "kubernetes", "memory"]),
              default=None, help="Resource store backend")
@click.option("--timeout", type=_NON_NEGATIVE, default=None, help="Convergence timeout in seconds")
@click.option("--interval", type=_POSITIVE, default=None, help="Polling interval in seconds")
def run(
    namespace: Optional[str],
    replicas: int,
    addresses: int,
    use_existing_cluster: Optional[bool],
    deploy_operator: Optional[bool],
    store_name: Optional[str],
    timeout: Optional[float],
    interval: Optional[float],
):
    """Deploy the address scenario, verify every broker, then clean up."""
    cfg: ConvergeCoreConfig = click.get_current_context().obj
    namespace = namespace or cfg.namespace
    scenario_config = ScenarioConfig(
        run_against_live_cluster=cfg.use_existing_cluster if use_existing_cluster is None else use_existing_cluster,
        deploy_controller=cfg.deploy_operator if deploy_operator is None else deploy_operator,
    )

    plan = build_address_plan(
        namespace=namespace,
        replicas=replicas,
        address_count=addresses,
        broker_port=cfg.broker_port,
        timeout_s=cfg.convergence_timeout_s if timeout is None else timeout,
        interval_s=cfg.convergence_interval_s if interval is None else interval,
        persistence_timeout_s=cfg.persistence_timeout_s,
        persistence_interval_s=cfg.persistence_interval_s,
    )

    store_type = resolve_store_type(store_name or cfg.store_type)
    ctx = None
    if store_type == StoreType.KUBERNETES or scenario_config.live:
        ctx = _context(cfg)
    try:
        scenario = VerificationScenario(
            plan=plan,
            store=get_store(store_type, namespace=namespace, context=ctx),
            exec_client=RemoteExecClient(ctx) if ctx is not None else None,
            config=scenario_config,
        )
        report = scenario.run()
    finally:
        if ctx is not None:
            ctx.close()

    _echo_report(report)
    if not report.passed:
        raise VerificationError(report.error, context=f"failed in {report.failed_in.value}")


@click.command("wait-ready")
@click.argument("name")
@click.option("--replicas", required=True, type=click.IntRange(min=0), help="Expected ready workers")
@click.option("--namespace", "-n", default=None, help="Cluster namespace")
@click.option("--timeout", type=_NON_NEGATIVE, default=None, help="Timeout in seconds")
@click.option("--interval", type=_POSITIVE, default=None, help="Polling interval in seconds")
def wait_ready(name: str, replicas: int, namespace: Optional[str], timeout: Optional[float], interval: Optional[float]):
    """Wait until cluster NAME reports the expected number of ready workers."""
    cfg: ConvergeCoreConfig = click.get_current_context().obj
    namespace = namespace or cfg.namespace
    ctx = _context(cfg)
    try:
        store = get_store(StoreType.KUBERNETES, namespace=namespace, context=ctx)
        probe = ReadyWorkersProbe(
            ResourceStateReader(store),
            ClusterSpec(name=name, namespace=namespace, size=replicas),
            expected=replicas,
        )
        outcome = RetryEngine().run(
            probe,
            timeout=cfg.convergence_timeout_s if timeout is None else timeout,
            interval=cfg.convergence_interval_s if interval is None else interval,
        )
    finally:
        ctx.close()

    if not outcome.succeeded:
        raise VerificationError(outcome.last_error, context=f"{name} not ready after {outcome.attempts} attempts")
    click.echo(f"{name}: {outcome.value.ready_count} workers ready after {outcome.attempts} attempt(s)")


@click.command("exec", context_settings={"ignore_unknown_options": True})
@click.argument("worker")
@click.argument("argv", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--container", "-c", required=True, help="Container inside the worker pod")
@click.option("--namespace", "-n", default=None, help="Worker namespace")
@click.option(
    "--timeout", type=_POSITIVE, default=EXEC_COMMAND_TIMEOUT_S, show_default=True,
    help="Give up on the command after this many seconds",
)
def exec_command(
    worker: str, argv: Tuple[str, ...], container: str, namespace: Optional[str], timeout: float
):
    """Run ARGV inside WORKER and print its output."""
    cfg: ConvergeCoreConfig = click.get_current_context().obj
    request = ExecRequest(
        worker_name=worker,
        namespace=namespace or cfg.namespace,
        container=container,
        argv=list(argv),
    )
    ctx = _context(cfg)
    try:
        result = RemoteExecClient(ctx).exec(request, timeout=timeout)
    except StreamExecutionError as e:
        if e.result is not None:
            click.echo(e.result.stdout, nl=False)
            click.echo(e.result.stderr, nl=False, err=True)
        raise VerificationError(e)
    except ConvergeCoreError as e:
        raise VerificationError(e)
    finally:
        ctx.close()

    click.echo(result.stdout, nl=False)
    if result.stderr:
        click.echo(result.stderr, nl=False, err=True)
