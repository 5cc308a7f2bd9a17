"""
Tests for VerificationScenario.

The cluster operator is simulated by OperatorStore, which reports workers
ready once enough (fake) time has passed since the cluster was created.
Worker pods are simulated by FakeExecClient.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set
from unittest.mock import MagicMock, patch

import pytest
from urllib3.exceptions import MaxRetryError

from convergecore.contracts.types import ScenarioState
from convergecore.errors import (
    ConvergenceTimeoutError,
    MissingMarkersError,
    ResourceStoreError,
    RetryTimeoutError,
    ScenarioFailedError,
    SubmissionError,
)
from convergecore.models import CLUSTER_KIND, ClusterSpec, StreamResult, generate_address_spec
from convergecore.scenario import ScenarioConfig, ScenarioPlan, VerificationScenario
from convergecore.store.kubernetes import KubernetesResourceStore
from convergecore.store.memory import MemoryResourceStore

LIVE = ScenarioConfig(run_against_live_cluster=True, deploy_controller=True)


class OperatorStore(MemoryResourceStore):
    """
    Memory store that answers reads the way a reconciling operator would.

    Cluster reads report ``partial`` ready workers until ``ready_after``
    seconds have passed since creation, then all of them. Status is added to
    the returned copy only, so reads stay side-effect free.
    """

    def __init__(self, clock, ready_after: float = 0.0, partial: int = 2,
                 timeline: Optional[List] = None, hidden: Optional[Set[str]] = None,
                 undeletable: Optional[Set[str]] = None):
        super().__init__()
        self.clock = clock
        self.ready_after = ready_after
        self.partial = partial
        self.timeline = timeline if timeline is not None else []
        self.hidden = hidden or set()
        self.undeletable = undeletable or set()
        self.created_at: Dict[str, float] = {}

    def create(self, spec):
        obj = super().create(spec)
        self.timeline.append(("create", spec.name))
        if spec.resource == CLUSTER_KIND:
            self.created_at[spec.name] = self.clock()
        return obj

    def get(self, kind, name, namespace):
        if name in self.hidden:
            return None
        obj = super().get(kind, name, namespace)
        if obj is not None and kind == CLUSTER_KIND:
            size = obj["spec"]["deploymentPlan"]["size"]
            elapsed = self.clock() - self.created_at.get(name, self.clock())
            ready = size if elapsed >= self.ready_after else min(self.partial, size)
            obj["status"] = {"podStatus": {"ready": [f"{name}-ss-{i}" for i in range(ready)]}}
        return obj

    def delete(self, spec):
        if spec.name in self.undeletable:
            raise ResourceStoreError(f"{spec.describe()} is protected", status=403)
        super().delete(spec)
        self.timeline.append(("delete", spec.name))


class FakeExecClient:
    """Answers queue-stat commands with the queues each worker has."""

    def __init__(self, queues: List[str], timeline: Optional[List] = None,
                 lagging: Optional[Dict[str, List[str]]] = None):
        self.queues = queues
        self.timeline = timeline if timeline is not None else []
        self.lagging = lagging or {}
        self.requests = []
        self.timeouts = []

    def exec(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        self.timeline.append(("exec", request.worker_name))
        queues = self.lagging.get(request.worker_name, self.queues)
        rows = "".join(f"|{q:<10}|0|\n" for q in queues)
        return StreamResult(stdout=f"|NAME      |COUNT|\n{rows}", exit_code=0)


@pytest.fixture
def timeline():
    return []


@pytest.fixture
def operator_store(fake_clock, timeline):
    return OperatorStore(fake_clock, ready_after=25, timeline=timeline)


@pytest.fixture
def exec_client(address_plan, timeline):
    return FakeExecClient(list(address_plan.markers), timeline=timeline)


def make_scenario(plan, store, exec_client=None, config=LIVE, retry=None):
    return VerificationScenario(plan=plan, store=store, exec_client=exec_client, config=config, retry=retry)


class TestScenarioPlan:
    def test_resources_cluster_first(self, address_plan):
        kinds = [r.resource.kind for r in address_plan.resources()]
        assert kinds[0] == "ActiveMQArtemis"
        assert kinds[1] == "ActiveMQArtemisSecurity"
        assert kinds[2:] == ["ActiveMQArtemisAddress"] * 5

    def test_markers_are_queue_names(self, address_plan):
        assert address_plan.markers == [f"myQueue{i}" for i in range(5)]

    def test_duplicate_names_rejected(self):
        address = generate_address_spec("a", "default", "addr", "q", True, True)
        with pytest.raises(ValueError, match="duplicate"):
            ScenarioPlan(name="dup", cluster=ClusterSpec(name="c", size=1), addresses=[address, address])

    def test_command_targets_worker(self, address_plan):
        assert address_plan.command_for("ex-aao-broker-ss-2")[-1] == "tcp://ex-aao-broker-ss-2:61616"


class TestLiveScenario:
    """Full runs against the simulated operator."""

    def test_happy_path(self, address_plan, operator_store, exec_client, retry_engine):
        report = make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        assert report.passed
        assert report.history == [
            ScenarioState.BUILT,
            ScenarioState.SUBMITTED,
            ScenarioState.CONVERGED,
            ScenarioState.PER_UNIT_VERIFYING,
            ScenarioState.VERIFIED,
            ScenarioState.CLEANED_UP,
        ]
        assert all(w.verified for w in report.workers)
        assert len(report.deleted) == 7
        assert len(operator_store) == 0

    def test_convergence_returns_early(self, address_plan, operator_store, exec_client, retry_engine, fake_clock):
        """Workers ready at t=25 end the wait at the t=30 poll, not at 180s."""
        report = make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        assert report.passed
        assert fake_clock.now == 30
        # Four polls for the first convergence, one for the re-check
        assert report.convergence_attempts == 5

    def test_workers_verified_in_descending_order(self, address_plan, operator_store, exec_client, retry_engine):
        report = make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        expected = [f"ex-aao-broker-ss-{i}" for i in (4, 3, 2, 1, 0)]
        assert [w.worker for w in report.workers] == expected
        assert [r.worker_name for r in exec_client.requests] == expected
        for worker in report.workers:
            assert worker.result.contains_all(address_plan.markers)

    def test_exec_targets_broker_container(self, address_plan, operator_store, exec_client, retry_engine):
        make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        request = exec_client.requests[0]
        assert request.container == "ex-aao-broker-container"
        assert request.namespace == "default"
        assert request.argv[:3] == ["amq-broker/bin/artemis", "queue", "stat"]
        assert "morty" in request.argv

    def test_each_command_has_a_wall_clock_cap(self, address_plan, operator_store, exec_client, retry_engine):
        make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        assert exec_client.timeouts
        assert set(exec_client.timeouts) == {address_plan.exec_timeout_s}

    def test_phases_never_overlap(self, address_plan, operator_store, exec_client, retry_engine, timeline):
        make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        ops = [op for op, _ in timeline]
        last_create = max(i for i, op in enumerate(ops) if op == "create")
        execs = [i for i, op in enumerate(ops) if op == "exec"]
        first_delete = ops.index("delete")
        assert last_create < min(execs)
        assert max(execs) < first_delete

    def test_cluster_submitted_before_dependents(self, address_plan, operator_store, exec_client, retry_engine):
        report = make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()

        assert report.submitted[0] == "ActiveMQArtemis default/ex-aao-broker"
        assert report.submitted[1] == "ActiveMQArtemisSecurity default/ex-proper"

    def test_cleanup_in_submission_order(self, address_plan, operator_store, exec_client, retry_engine):
        report = make_scenario(address_plan, operator_store, exec_client, retry=retry_engine).run()
        assert report.deleted == report.submitted

    def test_requires_exec_client(self, address_plan, operator_store):
        with pytest.raises(ValueError):
            make_scenario(address_plan, operator_store, exec_client=None)


class TestLiveScenarioFailures:
    """Failures move the scenario to Failed, and cleanup still runs."""

    def test_existing_cluster_fails_submission(self, address_plan, fake_clock, exec_client, retry_engine):
        store = OperatorStore(fake_clock)
        store.create(address_plan.cluster)

        report = make_scenario(address_plan, store, exec_client, retry=retry_engine).run()

        assert report.state == ScenarioState.FAILED
        assert report.failed_in == ScenarioState.BUILT
        assert report.history == [ScenarioState.BUILT, ScenarioState.FAILED]
        assert report.finished
        assert isinstance(report.error, SubmissionError)
        assert report.deleted == []
        assert len(store) == 1
        assert exec_client.requests == []

    def test_unreachable_api_server_fails_submission(self, address_plan, mock_context, exec_client, retry_engine):
        mock_context.custom_api.create_namespaced_custom_object.side_effect = MaxRetryError(
            pool=None, url="/apis/broker.amq.io/v1beta1/namespaces/default/activemqartemises"
        )
        store = KubernetesResourceStore(context=mock_context)

        report = make_scenario(address_plan, store, exec_client, retry=retry_engine).run()

        assert not report.passed
        assert report.state == ScenarioState.FAILED
        assert report.failed_in == ScenarioState.BUILT
        assert ScenarioState.CLEANED_UP not in report.history
        assert isinstance(report.error, SubmissionError)
        assert "ActiveMQArtemis default/ex-aao-broker" in str(report.error)
        assert report.deleted == []
        mock_context.custom_api.delete_namespaced_custom_object.assert_not_called()
        assert exec_client.requests == []

    def test_unexpected_error_fails_report_and_propagates(self, address_plan, operator_store, exec_client, retry_engine):
        events = MagicMock()
        scenario = VerificationScenario(
            plan=address_plan, store=operator_store, exec_client=exec_client,
            config=LIVE, retry=retry_engine, events=events,
        )

        with patch.object(scenario, "_converge", side_effect=RuntimeError("watch broke")):
            with pytest.raises(RuntimeError, match="watch broke"):
                scenario.run()

        events.log_failed.assert_called_once_with("submitted", "watch broke")
        # The cluster was created before the error and is still removed
        assert len(operator_store) == 0
        events.log_cleaned_up.assert_called_once_with(1, 0)

    def test_convergence_timeout(self, address_plan, fake_clock, exec_client, retry_engine):
        store = OperatorStore(fake_clock, ready_after=10_000, partial=3)

        report = make_scenario(address_plan, store, exec_client, retry=retry_engine).run()

        assert report.failed_in == ScenarioState.SUBMITTED
        assert isinstance(report.error, ConvergenceTimeoutError)
        assert str(report.error) == "3 of 5 workers ready"
        assert report.error.last_observed.ready_count == 3
        assert report.convergence_attempts == 19
        assert report.deleted == ["ActiveMQArtemis default/ex-aao-broker"]
        assert exec_client.requests == []

    def test_dependent_never_persisted(self, address_plan, fake_clock, exec_client, retry_engine):
        store = OperatorStore(fake_clock, hidden={"ex-aaoaddress2"})

        report = make_scenario(address_plan, store, exec_client, retry=retry_engine).run()

        assert report.failed_in == ScenarioState.CONVERGED
        assert isinstance(report.error, RetryTimeoutError)
        assert "not persisted yet" in str(report.error)
        # Cluster, security and the first three addresses were created
        assert len(report.deleted) == 5
        assert len(store) == 0

    def test_worker_missing_queue(self, address_plan, operator_store, timeline, retry_engine):
        client = FakeExecClient(
            list(address_plan.markers),
            timeline=timeline,
            lagging={"ex-aao-broker-ss-2": ["myQueue0", "myQueue1", "myQueue2", "myQueue4"]},
        )

        report = make_scenario(address_plan, operator_store, client, retry=retry_engine).run()

        assert report.failed_in == ScenarioState.PER_UNIT_VERIFYING
        assert isinstance(report.error.__cause__, MissingMarkersError)
        assert str(report.error) == "output of ex-aao-broker-ss-2 is missing myQueue3"
        assert [(w.worker, w.verified) for w in report.workers] == [
            ("ex-aao-broker-ss-4", True),
            ("ex-aao-broker-ss-3", True),
            ("ex-aao-broker-ss-2", False),
        ]
        assert report.workers[-1].attempts == 19
        assert len(report.deleted) == 7

    def test_raise_for_failure(self, address_plan, fake_clock, exec_client, retry_engine):
        store = OperatorStore(fake_clock, ready_after=10_000)
        report = make_scenario(address_plan, store, exec_client, retry=retry_engine).run()

        with pytest.raises(ScenarioFailedError, match="failed in submitted") as exc_info:
            report.raise_for_failure()

        assert exc_info.value.report is report
        assert exc_info.value.__cause__ is report.error


class TestSmokeScenario:
    """Without both switches only submission and cleanup run."""

    @pytest.mark.parametrize("config", [
        ScenarioConfig(),
        ScenarioConfig(run_against_live_cluster=True),
        ScenarioConfig(deploy_controller=True),
    ])
    def test_submit_and_clean_up(self, address_plan, memory_store, config):
        report = make_scenario(address_plan, memory_store, config=config).run()

        assert report.passed
        assert report.history == [ScenarioState.BUILT, ScenarioState.SUBMITTED, ScenarioState.CLEANED_UP]
        assert report.finished
        assert len(report.submitted) == 7
        assert report.workers == []
        assert len(memory_store) == 0
        assert [op for op, _ in memory_store.operations].count("delete") == 7

    def test_never_reads_cluster_status(self, address_plan, memory_store):
        report = make_scenario(address_plan, memory_store, config=ScenarioConfig()).run()

        assert report.convergence_attempts == 0
        assert report.last_observed is None

    def test_cleanup_errors_do_not_fail(self, address_plan, fake_clock):
        store = OperatorStore(fake_clock, undeletable={"ex-aaoaddress0"})

        report = make_scenario(address_plan, store, config=ScenarioConfig()).run()

        assert report.passed
        assert report.state == ScenarioState.CLEANED_UP
        assert len(report.cleanup_errors) == 1
        assert report.cleanup_errors[0].resource == "ActiveMQArtemisAddress default/ex-aaoaddress0"
        assert len(report.deleted) == 6

    def test_scenario_is_rerunnable(self, address_plan, memory_store):
        scenario = make_scenario(address_plan, memory_store, config=ScenarioConfig())

        assert scenario.run().passed
        assert scenario.run().passed
