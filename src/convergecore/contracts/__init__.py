"""
Shared contracts for convergecore: enum values and timing constants.

Example:
    from convergecore.contracts import RoutingType, ScenarioState
    from convergecore.contracts.timeouts import CONVERGENCE_TIMEOUT_S
"""

from convergecore.contracts.types import (
    TERMINAL_STATES,
    LoginFlag,
    RoutingType,
    ScenarioState,
    StoreType,
)

__all__ = [
    "TERMINAL_STATES",
    "LoginFlag",
    "RoutingType",
    "ScenarioState",
    "StoreType",
]
