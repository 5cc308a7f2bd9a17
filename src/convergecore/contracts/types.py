"""
Canonical enum values shared across convergecore.
"""

from __future__ import annotations

from enum import Enum


class RoutingType(str, Enum):
    """Address routing modes supported by the broker."""
    ANYCAST = "anycast"
    MULTICAST = "multicast"


class LoginFlag(str, Enum):
    """JAAS control flags for login module references."""
    REQUIRED = "required"
    REQUISITE = "requisite"
    SUFFICIENT = "sufficient"
    OPTIONAL = "optional"


class ScenarioState(str, Enum):
    """Verification scenario lifecycle states."""
    BUILT = "built"
    SUBMITTED = "submitted"
    CONVERGED = "converged"
    PER_UNIT_VERIFYING = "per_unit_verifying"
    VERIFIED = "verified"
    CLEANED_UP = "cleaned_up"
    FAILED = "failed"


class StoreType(str, Enum):
    """Available resource store backends."""
    KUBERNETES = "kubernetes"
    MEMORY = "memory"


# States a finished run can end in
TERMINAL_STATES = frozenset({ScenarioState.CLEANED_UP, ScenarioState.FAILED})
