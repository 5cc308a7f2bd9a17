"""
Read-only access to the observed state of submitted resources.

A read that finds nothing is a valid outcome (``NotFound``), not an error:
inside a retry loop it simply means "not converged yet".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from convergecore.errors import ProbeFailed
from convergecore.models import (
    CLUSTER_KIND,
    ClusterObservedState,
    ClusterSpec,
    ResourceEcho,
    ResourceKind,
)
from convergecore.store.base import ResourceStore

logger = logging.getLogger(__name__)

Snapshot = Union[ClusterObservedState, ResourceEcho]


@dataclass(frozen=True)
class Found:
    snapshot: Snapshot


@dataclass(frozen=True)
class NotFound:
    kind: str
    name: str
    namespace: str


ReadResult = Union[Found, NotFound]


class ResourceStateReader:
    """Decodes stored objects into typed snapshots. Never writes."""

    def __init__(self, store: ResourceStore):
        self.store = store

    def read(self, name: str, namespace: str, kind: ResourceKind) -> ReadResult:
        obj = self.store.get(kind, name, namespace)
        if obj is None:
            return NotFound(kind=kind.kind, name=name, namespace=namespace)
        if kind == CLUSTER_KIND:
            return Found(ClusterObservedState.from_resource(obj))
        return Found(ResourceEcho.from_resource(obj))


class ReadyWorkersProbe:
    """Succeeds once the cluster reports exactly ``expected`` ready workers."""

    def __init__(self, reader: ResourceStateReader, cluster: ClusterSpec, expected: int):
        self.reader = reader
        self.cluster = cluster
        self.expected = expected
        self.last_observed: Any = None
        self.name = f"ready-workers[{cluster.name}]"

    def probe(self) -> ClusterObservedState:
        result = self.reader.read(self.cluster.name, self.cluster.namespace, CLUSTER_KIND)
        if isinstance(result, NotFound):
            self.last_observed = None
            raise ProbeFailed(f"{self.cluster.describe()} not found")

        state = result.snapshot
        self.last_observed = state
        if state.ready_count != self.expected:
            raise ProbeFailed(
                f"{state.ready_count} of {self.expected} workers ready",
                observed=state,
            )
        return state


class ResourcePersistedProbe:
    """Succeeds once a submitted resource can be read back under its own name."""

    def __init__(self, reader: ResourceStateReader, spec: Any):
        self.reader = reader
        self.spec = spec
        self.name = f"persisted[{spec.name}]"

    def probe(self) -> Snapshot:
        result = self.reader.read(self.spec.name, self.spec.namespace, self.spec.resource)
        if isinstance(result, NotFound):
            raise ProbeFailed(f"{self.spec.describe()} not persisted yet")
        if result.snapshot.name != self.spec.name:
            raise ProbeFailed(
                f"{self.spec.describe()} echoed unexpected name {result.snapshot.name!r}",
                observed=result.snapshot,
            )
        return result.snapshot
