"""
Tests for the convergecore CLI.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner
from kubernetes.config import ConfigException

from convergecore.cli import main
from convergecore.contracts.types import ScenarioState
from convergecore.errors import ConvergenceTimeoutError, ProbeFailed
from convergecore.scenario import ScenarioReport


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI installs handlers on stdout; put the originals back."""
    root = logging.getLogger("convergecore")
    events = logging.getLogger("convergecore.scenario.events")
    saved = (list(root.handlers), root.level, list(events.handlers), events.propagate)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    events.handlers[:] = saved[2]
    events.propagate = saved[3]


@pytest.fixture
def runner():
    return CliRunner()


class TestRender:
    def test_renders_all_manifests(self, runner):
        result = runner.invoke(main, ["render", "--namespace", "brokers", "--replicas", "3", "--addresses", "2"])

        assert result.exit_code == 0, result.output
        docs = [d for d in yaml.safe_load_all(result.output) if d]
        assert [d["kind"] for d in docs] == [
            "ActiveMQArtemis",
            "ActiveMQArtemisSecurity",
            "ActiveMQArtemisAddress",
            "ActiveMQArtemisAddress",
        ]
        assert docs[0]["spec"]["deploymentPlan"]["size"] == 3
        assert all(d["metadata"]["namespace"] == "brokers" for d in docs)

    def test_invalid_replicas(self, runner):
        result = runner.invoke(main, ["render", "--replicas", "-1"])
        assert result.exit_code == 2


class TestRun:
    def test_smoke_run_on_memory_store(self, runner):
        result = runner.invoke(main, ["run", "--store", "memory"])

        assert result.exit_code == 0, result.output
        assert "submitted ActiveMQArtemis default/ex-aao-broker" in result.output
        assert "built -> submitted -> cleaned_up" in result.output
        assert "Result:   PASSED" in result.output

    def test_failed_run_exits_non_zero(self, runner):
        report = ScenarioReport(scenario="address-queues")
        report.transition(ScenarioState.SUBMITTED)
        report.fail(ConvergenceTimeoutError(ProbeFailed("3 of 5 workers ready"), attempts=19, elapsed=180))

        with patch("convergecore.cli.core.VerificationScenario") as scenario_cls:
            scenario_cls.return_value.run.return_value = report
            result = runner.invoke(main, ["run", "--store", "memory"])

        assert result.exit_code == 1
        assert "Result:   FAILED" in result.output
        assert "[CONVERGENCE_TIMEOUT] failed in submitted: 3 of 5 workers ready" in result.output

    def test_invalid_configuration(self, runner, monkeypatch):
        monkeypatch.setenv("CONVERGECORE_CONVERGENCE_TIMEOUT_S", "1")

        result = runner.invoke(main, ["run", "--store", "memory"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    @pytest.mark.parametrize("args", [
        ["--interval", "0"],
        ["--interval", "-5"],
        ["--timeout", "-1"],
    ])
    def test_out_of_range_timing_rejected(self, runner, args):
        result = runner.invoke(main, ["run", "--store", "memory", *args])

        assert result.exit_code == 2
        assert not isinstance(result.exception, ValueError)
        assert "Invalid value" in result.output

    def test_zero_timeout_allowed(self, runner):
        result = runner.invoke(main, ["run", "--store", "memory", "--timeout", "0"])

        assert result.exit_code == 0, result.output

    def test_missing_kubeconfig(self, runner):
        with patch(
            "convergecore.cli.core.ClusterContext.from_kubeconfig",
            side_effect=ConfigException("Invalid kube-config file. No configuration found."),
        ):
            result = runner.invoke(main, ["run", "--use-existing-cluster", "--deploy-operator"])

        assert result.exit_code == 1
        assert not isinstance(result.exception, ConfigException)
        assert "Cannot load Kubernetes configuration: Invalid kube-config file" in result.output


class TestWaitReady:
    def test_ready_cluster(self, runner):
        ctx = MagicMock()
        ctx.custom_api.get_namespaced_custom_object.return_value = {
            "metadata": {"name": "ex-aao-broker", "namespace": "default"},
            "status": {"podStatus": {"ready": ["ex-aao-broker-ss-0", "ex-aao-broker-ss-1"]}},
        }

        with patch("convergecore.cli.core._context", return_value=ctx):
            result = runner.invoke(main, ["wait-ready", "ex-aao-broker", "--replicas", "2"])

        assert result.exit_code == 0, result.output
        assert "ex-aao-broker: 2 workers ready after 1 attempt(s)" in result.output
        ctx.close.assert_called_once()

    def test_zero_interval_rejected(self, runner):
        result = runner.invoke(main, ["wait-ready", "ex-aao-broker", "--interval", "0"])

        assert result.exit_code == 2
        assert "Invalid value for '--interval'" in result.output

    def test_missing_kubeconfig(self, runner):
        with patch(
            "convergecore.cli.core.ClusterContext.from_kubeconfig",
            side_effect=ConfigException("Service host/port is not set."),
        ):
            result = runner.invoke(main, ["wait-ready", "ex-aao-broker"])

        assert result.exit_code == 1
        assert "Cannot load Kubernetes configuration" in result.output


class TestExec:
    def test_prints_remote_output(self, runner, exec_stream):
        fake = exec_stream(frames=[[(1, "|myQueue0|\n")]])

        with patch("convergecore.cli.core._context", return_value=MagicMock()), \
                patch("convergecore.remote_exec.stream", return_value=fake) as mock_stream:
            result = runner.invoke(main, ["exec", "-c", "ex-aao-broker-container", "ex-aao-broker-ss-0", "ls", "-la"])

        assert result.exit_code == 0, result.output
        assert "|myQueue0|" in result.output
        assert mock_stream.call_args.kwargs["command"] == ["ls", "-la"]

    def test_failed_command(self, runner, exec_stream):
        status = (
            '{"status":"Failure","details":{"causes":[{"reason":"ExitCode","message":"127"}]}}'
        )
        fake = exec_stream(frames=[[(2, "sh: nope: not found\n")]], status=status)

        with patch("convergecore.cli.core._context", return_value=MagicMock()), \
                patch("convergecore.remote_exec.stream", return_value=fake):
            result = runner.invoke(main, ["exec", "-c", "c", "ex-aao-broker-ss-0", "nope"])

        assert result.exit_code == 1
        assert "[STREAM_EXECUTION_ERROR]" in result.output
        assert "exit code 127" in result.output
