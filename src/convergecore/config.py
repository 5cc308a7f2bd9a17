"""
Centralized configuration for convergecore.

Uses Pydantic BaseSettings for environment variable integration and
validation.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (CONVERGECORE_*)
3. .env file
4. Default values

The two switches that gate the expensive live-cluster phases also accept
their historical unprefixed names, USE_EXISTING_CLUSTER and DEPLOY_OPERATOR.

Example:
    from convergecore.config import get_config

    config = get_config()
    scenario_config = config.to_scenario_config()

    # Override at runtime
    config = get_config(namespace="brokers", use_existing_cluster=True)
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from convergecore.contracts.timeouts import (
    BROKER_ACCEPTOR_PORT,
    CONVERGENCE_INTERVAL_S,
    CONVERGENCE_TIMEOUT_S,
    PERSISTENCE_INTERVAL_S,
    PERSISTENCE_TIMEOUT_S,
)


class ConvergeCoreConfig(BaseSettings):
    """
    Central configuration for convergecore.

    Example:
        export CONVERGECORE_NAMESPACE=brokers
        export CONVERGECORE_LOG_LEVEL=debug
        export USE_EXISTING_CLUSTER=true
        export DEPLOY_OPERATOR=true
    """

    model_config = SettingsConfigDict(
        env_prefix="CONVERGECORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Kubernetes
    namespace: str = Field(
        default="default",
        description="Namespace resources are submitted to",
    )
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (auto-detected if not set)",
    )
    kube_context: Optional[str] = Field(
        default=None,
        description="kubeconfig context to use",
    )

    # Store backend
    store_type: Literal["auto", "kubernetes", "memory"] = Field(
        default="auto",
        description="Resource store backend (auto-detects if not set)",
    )

    # Live-cluster switches
    use_existing_cluster: bool = Field(
        default=False,
        validation_alias=AliasChoices("CONVERGECORE_USE_EXISTING_CLUSTER", "USE_EXISTING_CLUSTER"),
        description="Run against a live cluster instead of a fake store",
    )
    deploy_operator: bool = Field(
        default=False,
        validation_alias=AliasChoices("CONVERGECORE_DEPLOY_OPERATOR", "DEPLOY_OPERATOR"),
        description="The run deploys its own operator",
    )

    # Polling
    convergence_timeout_s: float = Field(default=CONVERGENCE_TIMEOUT_S, ge=0)
    convergence_interval_s: float = Field(default=CONVERGENCE_INTERVAL_S, gt=0)
    persistence_timeout_s: float = Field(default=PERSISTENCE_TIMEOUT_S, ge=0)
    persistence_interval_s: float = Field(default=PERSISTENCE_INTERVAL_S, gt=0)

    # Broker
    broker_port: int = Field(default=BROKER_ACCEPTOR_PORT, ge=1, le=65535)

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for convergecore",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format (json for Loki, text for console)",
    )

    @field_validator("kubeconfig")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    @model_validator(mode="after")
    def check_intervals(self) -> "ConvergeCoreConfig":
        if self.convergence_timeout_s < self.convergence_interval_s:
            raise ValueError("convergence_timeout_s must be >= convergence_interval_s")
        if self.persistence_timeout_s < self.persistence_interval_s:
            raise ValueError("persistence_timeout_s must be >= persistence_interval_s")
        return self

    @property
    def live(self) -> bool:
        """Both switches set: the verification phases run."""
        return self.use_existing_cluster and self.deploy_operator

    def to_scenario_config(self):
        """Explicit switches for VerificationScenario."""
        from convergecore.scenario import ScenarioConfig

        return ScenarioConfig(
            run_against_live_cluster=self.use_existing_cluster,
            deploy_controller=self.deploy_operator,
        )


# Global singleton
_config: Optional[ConvergeCoreConfig] = None


def get_config(**overrides) -> ConvergeCoreConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return the same
    instance unless overrides are provided.
    """
    global _config

    if overrides or _config is None:
        _config = ConvergeCoreConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
