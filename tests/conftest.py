"""
Pytest configuration and fixtures for convergecore tests.
"""

from __future__ import annotations

import os
from typing import Dict, Generator, List, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest

from convergecore.config import reset_config
from convergecore.models import CLUSTER_KIND, ClusterSpec
from convergecore.plans import build_address_plan
from convergecore.retry import RetryEngine
from convergecore.store.memory import MemoryResourceStore


# ============================================================================
# Environment Fixtures
# ============================================================================

_SWITCHES = (
    "USE_EXISTING_CLUSTER",
    "DEPLOY_OPERATOR",
    "CONVERGECORE_USE_EXISTING_CLUSTER",
    "CONVERGECORE_DEPLOY_OPERATOR",
    "CONVERGECORE_NAMESPACE",
    "CONVERGECORE_STORE_TYPE",
)


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Run every test without live-cluster switches and with fresh config."""
    original = {key: os.environ.pop(key, None) for key in _SWITCHES}
    reset_config()

    yield

    reset_config()
    for key, value in original.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


# ============================================================================
# Time Fixtures
# ============================================================================


class FakeClock:
    """Monotonic clock advanced only by sleep() or explicit advance()."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry_engine(fake_clock: FakeClock) -> RetryEngine:
    """RetryEngine driven by the fake clock; never really sleeps."""
    return RetryEngine(clock=fake_clock, sleep=fake_clock.sleep)


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> MemoryResourceStore:
    return MemoryResourceStore()


@pytest.fixture
def cluster_spec() -> ClusterSpec:
    return ClusterSpec(name="ex-aao-broker", namespace="default", size=5)


def mark_ready(store: MemoryResourceStore, cluster: ClusterSpec, count: int) -> None:
    """Write a status with ``count`` ready workers, as the operator would."""
    ready = [f"{cluster.statefulset_name}-{i}" for i in range(count)]
    store.set_status(CLUSTER_KIND, cluster.name, cluster.namespace, {"podStatus": {"ready": ready}})


@pytest.fixture
def ready_marker():
    return mark_ready


@pytest.fixture
def address_plan():
    """The five-broker, five-queue plan with short persistence polling."""
    return build_address_plan(
        namespace="default",
        replicas=5,
        address_count=5,
        timeout_s=180,
        interval_s=10,
        persistence_timeout_s=1,
        persistence_interval_s=0.25,
    )


# ============================================================================
# Kubernetes Mock Fixtures
# ============================================================================


class FakeExecStream:
    """
    Stand-in for the kubernetes WSClient returned by ``stream(...)``.

    ``frames`` is consumed one entry per ``update()``; each entry is a list of
    (channel, data) pairs delivered together. Once frames run out the stream
    closes, and ``status`` is what the error channel reports.
    """

    STDOUT = 1
    STDERR = 2
    ERROR = 3

    def __init__(
        self,
        frames: Sequence[Sequence[Tuple[int, str]]] = (),
        status: Optional[str] = '{"metadata":{},"status":"Success"}',
        fail_on_update: Optional[int] = None,
    ):
        self._frames = [list(f) for f in frames]
        self._status = status
        self._fail_on_update = fail_on_update
        self._channels: Dict[int, str] = {}
        self._open = True
        self.updates = 0
        self.closed = False

    def is_open(self) -> bool:
        return self._open

    def update(self, timeout: float = 0) -> None:
        if not self._open:
            return
        self.updates += 1
        if self._fail_on_update is not None and self.updates >= self._fail_on_update:
            raise ConnectionResetError("connection reset by peer")
        if not self._frames:
            self._open = False
            if self._status is not None:
                self._channels[self.ERROR] = self._channels.get(self.ERROR, "") + self._status
            return
        for channel, data in self._frames.pop(0):
            self._channels[channel] = self._channels.get(channel, "") + data

    def peek_channel(self, channel: int, timeout: float = 0) -> str:
        self.update(timeout=timeout)
        return self._channels.get(channel, "")

    def read_channel(self, channel: int, timeout: float = 0) -> str:
        if channel not in self._channels:
            self.peek_channel(channel, timeout)
        return self._channels.pop(channel, "")

    def peek_stdout(self, timeout: float = 0) -> str:
        return self._channels.get(self.STDOUT, "")

    def peek_stderr(self, timeout: float = 0) -> str:
        return self._channels.get(self.STDERR, "")

    def read_stdout(self, timeout=None) -> str:
        return self._channels.pop(self.STDOUT, "")

    def read_stderr(self, timeout=None) -> str:
        return self._channels.pop(self.STDERR, "")

    def close(self) -> None:
        self._open = False
        self.closed = True


@pytest.fixture
def exec_stream():
    """Factory for FakeExecStream instances."""
    return FakeExecStream


@pytest.fixture
def mock_context() -> MagicMock:
    """ClusterContext stand-in with mocked API handles."""
    ctx = MagicMock()
    ctx.namespace = "default"
    return ctx
