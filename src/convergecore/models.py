"""
Pydantic models for the broker operator's custom resources.

These models describe the desired state submitted to the cluster
(ActiveMQArtemis, ActiveMQArtemisAddress, ActiveMQArtemisSecurity) and the
observed state read back from it. Field aliases match the camelCase names of
the operator's CRD schema so manifests round-trip through the API unchanged.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from convergecore.contracts.types import LoginFlag, RoutingType

BROKER_GROUP = "broker.amq.io"
BROKER_VERSION = "v1beta1"


@dataclass(frozen=True)
class ResourceKind:
    """API coordinates of a namespaced custom resource."""
    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


CLUSTER_KIND = ResourceKind(BROKER_GROUP, BROKER_VERSION, "activemqartemises", "ActiveMQArtemis")
ADDRESS_KIND = ResourceKind(
    BROKER_GROUP, BROKER_VERSION, "activemqartemisaddresses", "ActiveMQArtemisAddress"
)
SECURITY_KIND = ResourceKind(
    BROKER_GROUP, BROKER_VERSION, "activemqartemissecurities", "ActiveMQArtemisSecurity"
)


class _ResourceSpec(BaseModel):
    """Common identity for all submitted resources."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, description="Resource name")
    namespace: str = Field("default", min_length=1, description="Owning namespace")

    @property
    @abstractmethod
    def resource(self) -> ResourceKind:
        ...

    @abstractmethod
    def to_manifest(self) -> Dict[str, Any]:
        ...

    def _metadata(self) -> Dict[str, Any]:
        return {"name": self.name, "namespace": self.namespace}

    def _envelope(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "apiVersion": self.resource.api_version,
            "kind": self.resource.kind,
            "metadata": self._metadata(),
            "spec": spec,
        }

    def describe(self) -> str:
        return f"{self.resource.kind} {self.namespace}/{self.name}"


# =============================================================================
# Cluster
# =============================================================================


class ReadinessProbe(BaseModel):
    """Readiness probe timing for broker pods."""
    model_config = ConfigDict(populate_by_name=True)

    initial_delay_seconds: int = Field(1, ge=0, alias="initialDelaySeconds")
    period_seconds: int = Field(5, ge=1, alias="periodSeconds")


class ClusterSpec(_ResourceSpec):
    """
    Desired broker cluster.

    Worker pods are owned by a StatefulSet named ``<name>-ss``, so the
    worker with ordinal ``i`` is ``<name>-ss-<i>``.
    """

    size: int = Field(1, ge=0, description="Desired replica count")
    readiness_probe: Optional[ReadinessProbe] = Field(None, alias="readinessProbe")
    image: str = Field("placeholder", description="Broker image, 'placeholder' for operator default")
    admin_user: str = Field("admin", alias="adminUser")
    admin_password: str = Field("admin", alias="adminPassword")
    persistence_enabled: bool = Field(False, alias="persistenceEnabled")

    @property
    def resource(self) -> ResourceKind:
        return CLUSTER_KIND

    @property
    def statefulset_name(self) -> str:
        return f"{self.name}-ss"

    @property
    def container_name(self) -> str:
        return f"{self.name}-container"

    def worker_name(self, ordinal: int) -> str:
        """Deterministic worker name for an ordinal in [0, size)."""
        if not 0 <= ordinal < self.size:
            raise ValueError(
                f"Ordinal {ordinal} out of range for {self.name} with size {self.size}"
            )
        return f"{self.statefulset_name}-{ordinal}"

    def worker_names(self, descending: bool = True) -> Iterator[str]:
        ordinals = range(self.size - 1, -1, -1) if descending else range(self.size)
        for ordinal in ordinals:
            yield self.worker_name(ordinal)

    def to_manifest(self) -> Dict[str, Any]:
        plan: Dict[str, Any] = {
            "size": self.size,
            "image": self.image,
            "persistenceEnabled": self.persistence_enabled,
        }
        if self.readiness_probe is not None:
            plan["readinessProbe"] = self.readiness_probe.model_dump(by_alias=True)
        return self._envelope({
            "adminUser": self.admin_user,
            "adminPassword": self.admin_password,
            "deploymentPlan": plan,
        })


# =============================================================================
# Address
# =============================================================================


class AddressSpec(_ResourceSpec):
    """Desired address and queue on every broker the address applies to."""

    address_name: str = Field(..., alias="addressName")
    queue_name: Optional[str] = Field(None, alias="queueName")
    routing_type: RoutingType = Field(RoutingType.ANYCAST, alias="routingType")
    auto_delete: bool = Field(False, alias="autoDelete")
    remove_from_broker_on_delete: bool = Field(False, alias="removeFromBrokerOnDelete")
    apply_to_cr_names: List[str] = Field(default_factory=list, alias="applyToCrNames")

    @property
    def resource(self) -> ResourceKind:
        return ADDRESS_KIND

    def to_manifest(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "addressName": self.address_name,
            "routingType": self.routing_type.value,
        }
        if self.queue_name:
            spec["queueName"] = self.queue_name
        if self.auto_delete:
            spec["queueConfiguration"] = {"autoDelete": True}
        if self.remove_from_broker_on_delete:
            spec["removeFromBrokerOnDelete"] = True
        if self.apply_to_cr_names:
            spec["applyToCrNames"] = list(self.apply_to_cr_names)
        return self._envelope(spec)


def generate_address_spec(
    name: str,
    namespace: str,
    address: str,
    queue: str,
    is_multicast: bool,
    auto_delete: bool,
) -> AddressSpec:
    """Build an address resource with a single queue."""
    return AddressSpec(
        name=name,
        namespace=namespace,
        address_name=address,
        queue_name=queue,
        routing_type=RoutingType.MULTICAST if is_multicast else RoutingType.ANYCAST,
        auto_delete=auto_delete,
    )


# =============================================================================
# Security
# =============================================================================


class SecurityUser(BaseModel):
    name: str
    password: Optional[str] = None
    roles: List[str] = Field(default_factory=list)


class PropertiesLoginModule(BaseModel):
    """A named set of users backed by properties files on the broker."""
    name: str
    users: List[SecurityUser] = Field(default_factory=list)


class LoginModuleReference(BaseModel):
    name: str
    flag: LoginFlag = LoginFlag.SUFFICIENT


class BrokerDomain(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    login_modules: List[LoginModuleReference] = Field(default_factory=list, alias="loginModules")


class SecuritySpec(_ResourceSpec):
    """Login modules plus the broker security domain that references them."""

    login_modules: List[PropertiesLoginModule] = Field(default_factory=list, alias="loginModules")
    broker_domain: Optional[BrokerDomain] = Field(None, alias="brokerDomain")

    @model_validator(mode="after")
    def _check_domain_references(self) -> "SecuritySpec":
        if self.broker_domain is None:
            return self
        declared = {m.name for m in self.login_modules}
        unknown = [ref.name for ref in self.broker_domain.login_modules if ref.name not in declared]
        if unknown:
            raise ValueError(
                f"Security domain '{self.broker_domain.name}' references undeclared "
                f"login modules: {unknown}"
            )
        return self

    @property
    def resource(self) -> ResourceKind:
        return SECURITY_KIND

    def to_manifest(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {
            "loginModules": {
                "propertiesLoginModules": [
                    m.model_dump(exclude_none=True) for m in self.login_modules
                ],
            },
        }
        if self.broker_domain is not None:
            spec["securityDomains"] = {
                "brokerDomain": {
                    "name": self.broker_domain.name,
                    "loginModules": [
                        {"name": ref.name, "flag": ref.flag.value}
                        for ref in self.broker_domain.login_modules
                    ],
                },
            }
        return self._envelope(spec)


# =============================================================================
# Observed state
# =============================================================================


class ClusterObservedState(BaseModel):
    """Status of a broker cluster as last read from the store."""
    name: str
    namespace: str = "default"
    ready: List[str] = Field(default_factory=list)
    starting: List[str] = Field(default_factory=list)
    stopped: List[str] = Field(default_factory=list)

    @property
    def ready_count(self) -> int:
        return len(self.ready)

    @classmethod
    def from_resource(cls, obj: Dict[str, Any]) -> "ClusterObservedState":
        metadata = obj.get("metadata", {})
        pod_status = (obj.get("status") or {}).get("podStatus") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            ready=pod_status.get("ready") or [],
            starting=pod_status.get("starting") or [],
            stopped=pod_status.get("stopped") or [],
        )


class ResourceEcho(BaseModel):
    """Existence confirmation for a resource: the name the store echoed back."""
    name: str
    namespace: str = "default"
    kind: str = ""

    @classmethod
    def from_resource(cls, obj: Dict[str, Any]) -> "ResourceEcho":
        metadata = obj.get("metadata", {})
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            kind=obj.get("kind", ""),
        )


@dataclass
class StreamResult:
    """Output captured from one remote-exec invocation."""
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def missing(self, markers: Sequence[str]) -> List[str]:
        return [m for m in markers if m not in self.stdout]

    def contains_all(self, markers: Sequence[str]) -> bool:
        return not self.missing(markers)


@dataclass
class WorkerVerification:
    """Outcome of verifying one worker."""
    worker: str
    attempts: int = 0
    verified: bool = False
    result: Optional[StreamResult] = None
    error: Optional[BaseException] = None
