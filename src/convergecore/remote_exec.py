"""
Run commands inside live worker pods and capture their output.

The exec sub-resource of a pod is upgraded to a multiplexed websocket with
separate stdin/stdout/stderr channels (no TTY) plus an error channel that
carries the remote process's final status. The client drives the stream
synchronously until the remote side closes it.

Two failure points are reported separately:
- StreamSetupError: the endpoint could not be resolved or the upgrade was
  refused (pod missing, authorization denied, API unreachable)
- StreamExecutionError: the command exited non-zero or the stream broke
  mid-transfer; partial output is kept on the error's ``result``

Example:
    client = RemoteExecClient(ctx)
    request = ExecRequest(
        worker_name="ex-aao-broker-ss-0",
        namespace="default",
        container="ex-aao-broker-container",
        argv=queue_stat_command("ex-aao-broker-ss-0", "morty", "geezrick"),
    )
    result = client.exec(request)
    print(result.stdout)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

import yaml
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from kubernetes.stream.ws_client import ERROR_CHANNEL

from convergecore.context import ClusterContext
from convergecore.contracts.timeouts import BROKER_ACCEPTOR_PORT, EXEC_UPDATE_TIMEOUT_S
from convergecore.errors import MissingMarkersError, StreamExecutionError, StreamSetupError
from convergecore.models import StreamResult

logger = logging.getLogger(__name__)


@dataclass
class ExecRequest:
    """Target and I/O toggles for one exec call. TTY is always off."""
    worker_name: str
    namespace: str
    container: str
    argv: List[str] = field(default_factory=list)
    stdin: bool = False
    stdout: bool = True
    stderr: bool = True

    def __post_init__(self):
        if not self.argv:
            raise ValueError("argv must contain at least the command to run")


def queue_stat_command(
    worker_name: str,
    user: str,
    password: str,
    port: int = BROKER_ACCEPTOR_PORT,
) -> List[str]:
    """Broker CLI invocation that lists queue statistics of one broker."""
    return [
        "amq-broker/bin/artemis", "queue", "stat",
        "--user", user,
        "--password", password,
        "--url", f"tcp://{worker_name}:{port}",
    ]


def _as_text(data: Any) -> str:
    if not data:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)


def parse_exit_status(raw: str) -> Optional[int]:
    """
    Decode the error channel's Status object into an exit code.

    Returns 0 for ``Success``, the ``ExitCode`` cause for a non-zero exit and
    None when the status carries no exit code (e.g. an internal error).
    """
    status = yaml.safe_load(raw) if raw else None
    if not isinstance(status, dict):
        return None
    if status.get("status") == "Success":
        return 0
    for cause in (status.get("details") or {}).get("causes") or []:
        if cause.get("reason") == "ExitCode":
            try:
                return int(cause.get("message"))
            except (TypeError, ValueError):
                return None
    return None


class RemoteExecClient:
    """Opens exec streams to worker pods through the CoreV1 API."""

    def __init__(
        self,
        context: ClusterContext,
        update_timeout: float = EXEC_UPDATE_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.core_api = context.core_api
        self.update_timeout = update_timeout
        self._clock = clock

    def _open(self, request: ExecRequest) -> Any:
        try:
            return stream(
                self.core_api.connect_get_namespaced_pod_exec,
                request.worker_name,
                request.namespace,
                container=request.container,
                command=list(request.argv),
                stdin=request.stdin,
                stdout=request.stdout,
                stderr=request.stderr,
                tty=False,
                _preload_content=False,
            )
        except ApiException as e:
            raise StreamSetupError(
                f"Cannot open exec stream to {request.namespace}/{request.worker_name}: "
                f"{e.status} {e.reason}",
                worker=request.worker_name,
                status=e.status,
            ) from e
        except Exception as e:
            raise StreamSetupError(
                f"Cannot open exec stream to {request.namespace}/{request.worker_name}: {e}",
                worker=request.worker_name,
            ) from e

    def exec(self, request: ExecRequest, timeout: Optional[float] = None) -> StreamResult:
        """
        Run ``request.argv`` in the worker and return its captured output.

        With ``timeout`` set, a command still running after that many seconds
        is abandoned and reported as a StreamExecutionError.

        Raises:
            StreamSetupError: connection could not be established
            StreamExecutionError: remote failure; ``result`` holds partial output
        """
        logger.debug(f"exec {request.worker_name}/{request.container}: {request.argv[0]}")
        resp = self._open(request)

        stdout: List[str] = []
        stderr: List[str] = []
        result = StreamResult()
        deadline = None if timeout is None else self._clock() + timeout
        timed_out = False
        try:
            while resp.is_open():
                if deadline is not None and self._clock() >= deadline:
                    timed_out = True
                    break
                resp.update(timeout=self.update_timeout)
                if resp.peek_stdout():
                    stdout.append(_as_text(resp.read_stdout()))
                if resp.peek_stderr():
                    stderr.append(_as_text(resp.read_stderr()))
            # Frames that arrived together with the close
            stdout.append(_as_text(resp.read_stdout()))
            stderr.append(_as_text(resp.read_stderr()))
            raw_status = "" if timed_out else _as_text(resp.read_channel(ERROR_CHANNEL))
        except Exception as e:
            result.stdout = "".join(stdout)
            result.stderr = "".join(stderr)
            result.error = StreamExecutionError(
                f"Exec stream to {request.worker_name} aborted: {e}",
                worker=request.worker_name,
                result=result,
            )
            raise result.error from e
        finally:
            resp.close()

        result.stdout = "".join(stdout)
        result.stderr = "".join(stderr)

        if timed_out:
            result.error = StreamExecutionError(
                f"Command in {request.worker_name} did not finish within {timeout}s",
                worker=request.worker_name,
                result=result,
            )
            raise result.error

        result.exit_code = parse_exit_status(raw_status)

        if result.exit_code != 0:
            detail = f"exit code {result.exit_code}" if result.exit_code is not None else (
                raw_status.strip() or "stream closed without a status"
            )
            result.error = StreamExecutionError(
                f"Command in {request.worker_name} failed: {detail}",
                worker=request.worker_name,
                exit_code=result.exit_code,
                result=result,
            )
            raise result.error
        return result

    def exec_result(self, request: ExecRequest, timeout: Optional[float] = None) -> StreamResult:
        """Like ``exec`` but returns the result with ``error`` set instead of raising."""
        try:
            return self.exec(request, timeout=timeout)
        except StreamSetupError as e:
            return StreamResult(error=e)
        except StreamExecutionError as e:
            return e.result if e.result is not None else StreamResult(error=e)


class ExecOutputProbe:
    """
    Runs one command per attempt and succeeds when stdout contains every marker.

    The most recent StreamResult (including partial output from failed
    attempts) stays on ``last_result`` for diagnostics.
    """

    def __init__(
        self,
        client: RemoteExecClient,
        request: ExecRequest,
        markers: Sequence[str],
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.request = request
        self.markers = list(markers)
        self.timeout = timeout
        self.last_result: Optional[StreamResult] = None
        self.name = f"exec[{request.worker_name}]"

    def probe(self) -> StreamResult:
        logger.info(f"Checking worker {self.request.worker_name}")
        try:
            result = self.client.exec(self.request, timeout=self.timeout)
        except StreamExecutionError as e:
            self.last_result = e.result
            raise
        self.last_result = result
        logger.debug(f"{self.request.worker_name} out: {result.stdout}")

        missing = result.missing(self.markers)
        if missing:
            raise MissingMarkersError(self.request.worker_name, missing, result.stdout)
        return result
