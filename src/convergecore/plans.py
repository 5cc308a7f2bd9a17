"""
Ready-made scenario plans.

``build_address_plan`` deploys a broker cluster, a properties-based security
domain and one address/queue pair per index, then expects every queue name
to show up in ``artemis queue stat`` on every broker.
"""

from __future__ import annotations

from typing import Optional

from convergecore.contracts.timeouts import (
    BROKER_ACCEPTOR_PORT,
    CONVERGENCE_INTERVAL_S,
    CONVERGENCE_TIMEOUT_S,
)
from convergecore.contracts.types import LoginFlag
from convergecore.models import (
    BrokerDomain,
    ClusterSpec,
    LoginModuleReference,
    PropertiesLoginModule,
    ReadinessProbe,
    SecuritySpec,
    SecurityUser,
    generate_address_spec,
)
from convergecore.scenario import ScenarioPlan

DEFAULT_CLUSTER_NAME = "ex-aao-broker"
DEFAULT_SECURITY_NAME = "ex-proper"
DEFAULT_LOGIN_MODULE = "prop-module"
DEFAULT_DOMAIN = "activemq"
DEFAULT_USER = "morty"
DEFAULT_PASSWORD = "geezrick"


def build_security_spec(
    name: str = DEFAULT_SECURITY_NAME,
    namespace: str = "default",
    user: str = DEFAULT_USER,
    password: str = DEFAULT_PASSWORD,
) -> SecuritySpec:
    """One properties login module with a single admin user, marked sufficient."""
    return SecuritySpec(
        name=name,
        namespace=namespace,
        login_modules=[
            PropertiesLoginModule(
                name=DEFAULT_LOGIN_MODULE,
                users=[SecurityUser(name=user, password=password, roles=["admin", "random"])],
            ),
        ],
        broker_domain=BrokerDomain(
            name=DEFAULT_DOMAIN,
            login_modules=[LoginModuleReference(name=DEFAULT_LOGIN_MODULE, flag=LoginFlag.SUFFICIENT)],
        ),
    )


def build_address_plan(
    namespace: str = "default",
    replicas: int = 5,
    address_count: int = 5,
    cluster_name: str = DEFAULT_CLUSTER_NAME,
    broker_port: int = BROKER_ACCEPTOR_PORT,
    timeout_s: float = CONVERGENCE_TIMEOUT_S,
    interval_s: float = CONVERGENCE_INTERVAL_S,
    persistence_timeout_s: Optional[float] = None,
    persistence_interval_s: Optional[float] = None,
) -> ScenarioPlan:
    cluster = ClusterSpec(
        name=cluster_name,
        namespace=namespace,
        size=replicas,
        readiness_probe=ReadinessProbe(initial_delay_seconds=1, period_seconds=5),
    )
    addresses = [
        generate_address_spec(
            f"ex-aaoaddress{i}",
            namespace,
            f"myAddress{i}",
            f"myQueue{i}",
            is_multicast=True,
            auto_delete=True,
        )
        for i in range(address_count)
    ]

    plan = ScenarioPlan(
        name="address-queues",
        cluster=cluster,
        addresses=addresses,
        security=build_security_spec(namespace=namespace),
        markers=[a.queue_name for a in addresses],
        exec_user=DEFAULT_USER,
        exec_password=DEFAULT_PASSWORD,
        broker_port=broker_port,
        convergence_timeout_s=timeout_s,
        convergence_interval_s=interval_s,
        verification_timeout_s=timeout_s,
        verification_interval_s=interval_s,
    )
    if persistence_timeout_s is not None:
        plan.persistence_timeout_s = persistence_timeout_s
    if persistence_interval_s is not None:
        plan.persistence_interval_s = persistence_interval_s
    return plan
