"""
End-to-end verification of a broker cluster's convergence.

A scenario submits desired-state resources, waits for the cluster to report
every worker ready, then runs a command inside each worker (highest ordinal
first, one at a time) until its output shows every expected marker, and
finally deletes whatever it created.

States::

    Built -> Submitted -> Converged -> PerUnitVerifying -> Verified -> CleanedUp

Any state before CleanedUp can move to Failed. Cleanup of resources that
were already created still runs after a failure.
The live phases only run when both switches in ScenarioConfig are set. In
smoke mode the scenario only submits and cleans up, which exercises the
store and the resource models without a cluster.

Example:
    ctx = ClusterContext.from_kubeconfig()
    scenario = VerificationScenario(
        plan=build_address_plan(namespace="default"),
        store=KubernetesResourceStore(context=ctx),
        exec_client=RemoteExecClient(ctx),
        config=ScenarioConfig(run_against_live_cluster=True, deploy_controller=True),
    )
    report = scenario.run()
    report.raise_for_failure()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from opentelemetry import trace

from convergecore.contracts.timeouts import (
    BROKER_ACCEPTOR_PORT,
    CONVERGENCE_INTERVAL_S,
    CONVERGENCE_TIMEOUT_S,
    EXEC_COMMAND_TIMEOUT_S,
    PERSISTENCE_INTERVAL_S,
    PERSISTENCE_TIMEOUT_S,
)
from convergecore.contracts.types import TERMINAL_STATES, ScenarioState
from convergecore.errors import (
    CleanupError,
    ConvergeCoreError,
    ConvergenceTimeoutError,
    ScenarioFailedError,
    SubmissionError,
)
from convergecore.logger import ScenarioLogger
from convergecore.models import AddressSpec, ClusterSpec, SecuritySpec, WorkerVerification
from convergecore.reader import ReadyWorkersProbe, ResourcePersistedProbe, ResourceStateReader
from convergecore.remote_exec import ExecOutputProbe, ExecRequest, RemoteExecClient, queue_stat_command
from convergecore.retry import RetryEngine
from convergecore.store.base import ResourceStore
from convergecore.tracing import get_tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioConfig:
    """Switches that gate the live-cluster phases."""
    run_against_live_cluster: bool = False
    deploy_controller: bool = False

    @property
    def live(self) -> bool:
        return self.run_against_live_cluster and self.deploy_controller


@dataclass
class ScenarioPlan:
    """Everything a scenario submits, and what it expects to observe."""
    name: str
    cluster: ClusterSpec
    addresses: List[AddressSpec] = field(default_factory=list)
    security: Optional[SecuritySpec] = None
    markers: List[str] = field(default_factory=list)
    exec_user: str = "admin"
    exec_password: str = "admin"
    broker_port: int = BROKER_ACCEPTOR_PORT
    convergence_timeout_s: float = CONVERGENCE_TIMEOUT_S
    convergence_interval_s: float = CONVERGENCE_INTERVAL_S
    verification_timeout_s: float = CONVERGENCE_TIMEOUT_S
    verification_interval_s: float = CONVERGENCE_INTERVAL_S
    exec_timeout_s: float = EXEC_COMMAND_TIMEOUT_S
    persistence_timeout_s: float = PERSISTENCE_TIMEOUT_S
    persistence_interval_s: float = PERSISTENCE_INTERVAL_S

    def __post_init__(self):
        names = [(r.resource.plural, r.name) for r in self.resources()]
        if len(names) != len(set(names)):
            raise ValueError(f"Plan {self.name} contains duplicate resource names")

    def dependents(self) -> List[Any]:
        """Resources submitted once the cluster has converged."""
        deps: List[Any] = []
        if self.security is not None:
            deps.append(self.security)
        deps.extend(self.addresses)
        return deps

    def resources(self) -> List[Any]:
        return [self.cluster, *self.dependents()]

    def command_for(self, worker_name: str) -> List[str]:
        return queue_stat_command(worker_name, self.exec_user, self.exec_password, self.broker_port)


@dataclass
class ScenarioReport:
    """What happened during one run; enough to diagnose without re-running."""
    scenario: str
    state: ScenarioState = ScenarioState.BUILT
    history: List[ScenarioState] = field(default_factory=lambda: [ScenarioState.BUILT])
    error: Optional[BaseException] = None
    failed_in: Optional[ScenarioState] = None
    convergence_attempts: int = 0
    last_observed: Any = None
    workers: List[WorkerVerification] = field(default_factory=list)
    submitted: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    cleanup_errors: List[CleanupError] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def passed(self) -> bool:
        return self.error is None and self.state != ScenarioState.FAILED

    def transition(self, state: ScenarioState) -> None:
        logger.debug(f"{self.scenario}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.failed_in = self.state
        self.transition(ScenarioState.FAILED)

    def raise_for_failure(self) -> None:
        if not self.passed:
            failed_in = self.failed_in.value if self.failed_in else "unknown"
            raise ScenarioFailedError(
                f"Scenario {self.scenario} failed in {failed_in}: {self.error}",
                report=self,
            ) from self.error


class VerificationScenario:
    """
    Drives one plan through submission, convergence, per-worker verification
    and cleanup. Single-threaded: workers are probed strictly in sequence.
    """

    def __init__(
        self,
        plan: ScenarioPlan,
        store: ResourceStore,
        exec_client: Optional[RemoteExecClient] = None,
        config: ScenarioConfig = ScenarioConfig(),
        retry: Optional[RetryEngine] = None,
        reader: Optional[ResourceStateReader] = None,
        events: Optional[ScenarioLogger] = None,
        tracer: Optional[trace.Tracer] = None,
    ):
        if config.live and exec_client is None:
            raise ValueError("A live scenario needs a RemoteExecClient")
        self.plan = plan
        self.store = store
        self.exec_client = exec_client
        self.config = config
        self.retry = retry or RetryEngine()
        self.reader = reader or ResourceStateReader(store)
        self.events = events or ScenarioLogger(plan.name, namespace=plan.cluster.namespace)
        self.tracer = tracer or get_tracer()
        self._created: List[Any] = []

    def run(self) -> ScenarioReport:
        report = ScenarioReport(scenario=self.plan.name)
        self._created = []

        with self.tracer.start_as_current_span("scenario.run") as span:
            span.set_attribute("scenario.name", self.plan.name)
            span.set_attribute("scenario.live", self.config.live)
            try:
                if self.config.live:
                    self._run_live(report)
                else:
                    logger.info(
                        f"{self.plan.name}: live cluster switches not set, "
                        "skipping convergence and worker verification"
                    )
                    with self.tracer.start_as_current_span("scenario.submit"):
                        for spec in self.plan.resources():
                            self._submit(spec, report)
                    report.transition(ScenarioState.SUBMITTED)
            except ConvergeCoreError as e:
                logger.error(f"{self.plan.name}: failed in {report.state.value}: {e}")
                report.fail(e)
                self.events.log_failed(report.failed_in.value, str(e))
            except Exception as e:
                logger.exception(f"{self.plan.name}: unexpected error in {report.state.value}")
                report.fail(e)
                self.events.log_failed(report.failed_in.value, str(e))
                raise
            finally:
                self._cleanup(report)
            span.set_attribute("scenario.passed", report.passed)

        return report

    def _run_live(self, report: ScenarioReport) -> None:
        plan = self.plan

        with self.tracer.start_as_current_span("scenario.submit"):
            self._submit(plan.cluster, report)
        report.transition(ScenarioState.SUBMITTED)

        logger.info(f"Waiting for all {plan.cluster.size} workers of {plan.cluster.name} to be ready")
        self._converge(report)
        report.transition(ScenarioState.CONVERGED)

        with self.tracer.start_as_current_span("scenario.submit_dependents"):
            for spec in plan.dependents():
                self._submit(spec, report)
                self._confirm_persisted(spec)

        # Dependent resources may restart the workers
        logger.info(f"Waiting for workers of {plan.cluster.name} to be ready again")
        self._converge(report)

        report.transition(ScenarioState.PER_UNIT_VERIFYING)
        for worker in plan.cluster.worker_names(descending=True):
            self._verify_worker(worker, report)
        report.transition(ScenarioState.VERIFIED)

    def _submit(self, spec: Any, report: ScenarioReport) -> None:
        try:
            self.store.create(spec)
        except Exception as e:
            raise SubmissionError(
                f"Failed to submit {spec.describe()}: {e}", resource=spec.describe()
            ) from e
        self._created.append(spec)
        report.submitted.append(spec.describe())
        self.events.log_submitted(spec.name, spec.resource.kind)

    def _confirm_persisted(self, spec: Any) -> None:
        self.retry.run(
            ResourcePersistedProbe(self.reader, spec),
            timeout=self.plan.persistence_timeout_s,
            interval=self.plan.persistence_interval_s,
        ).unwrap()

    def _converge(self, report: ScenarioReport) -> None:
        cluster = self.plan.cluster
        probe = ReadyWorkersProbe(self.reader, cluster, cluster.size)
        with self.tracer.start_as_current_span("scenario.converge") as span:
            outcome = self.retry.run(
                probe,
                timeout=self.plan.convergence_timeout_s,
                interval=self.plan.convergence_interval_s,
            )
            span.set_attribute("retry.attempts", outcome.attempts)
            report.convergence_attempts += outcome.attempts
            report.last_observed = probe.last_observed
            state = outcome.unwrap(ConvergenceTimeoutError, last_observed=probe.last_observed)
        self.events.log_converged(cluster.name, state.ready_count, outcome.attempts)

    def _verify_worker(self, worker: str, report: ScenarioReport) -> None:
        request = ExecRequest(
            worker_name=worker,
            namespace=self.plan.cluster.namespace,
            container=self.plan.cluster.container_name,
            argv=self.plan.command_for(worker),
        )
        probe = ExecOutputProbe(
            self.exec_client, request, self.plan.markers, timeout=self.plan.exec_timeout_s
        )

        with self.tracer.start_as_current_span("scenario.verify_worker") as span:
            span.set_attribute("worker.name", worker)
            outcome = self.retry.run(
                probe,
                timeout=self.plan.verification_timeout_s,
                interval=self.plan.verification_interval_s,
            )
            span.set_attribute("retry.attempts", outcome.attempts)
            report.workers.append(WorkerVerification(
                worker=worker,
                attempts=outcome.attempts,
                verified=outcome.succeeded,
                result=probe.last_result,
                error=outcome.last_error if not outcome.succeeded else None,
            ))
            if not outcome.succeeded:
                self.events.log_worker_failed(worker, outcome.attempts, str(outcome.last_error))
            outcome.unwrap()
        self.events.log_worker_verified(worker, outcome.attempts)

    def _cleanup(self, report: ScenarioReport) -> None:
        with self.tracer.start_as_current_span("scenario.cleanup"):
            for spec in self._created:
                try:
                    self.store.delete(spec)
                except Exception as e:
                    error = CleanupError(
                        f"Failed to delete {spec.describe()}: {e}", resource=spec.describe()
                    )
                    logger.warning(str(error))
                    report.cleanup_errors.append(error)
                else:
                    report.deleted.append(spec.describe())
        self._created = []

        if report.state != ScenarioState.FAILED:
            report.transition(ScenarioState.CLEANED_UP)
        self.events.log_cleaned_up(len(report.deleted), len(report.cleanup_errors))
