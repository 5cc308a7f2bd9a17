"""
Timeout, interval and port constants for convergecore.

Centralizes timing values so the scenario, the CLI and the configuration
layer agree on defaults.
"""

from __future__ import annotations

# =============================================================================
# Convergence polling
# =============================================================================

# How long to wait for a live cluster to report every worker ready
CONVERGENCE_TIMEOUT_S = 180.0

# Sampling interval while waiting for readiness
CONVERGENCE_INTERVAL_S = 10.0

# =============================================================================
# Resource persistence checks
# =============================================================================

# Upper bound for a freshly created resource to become readable
PERSISTENCE_TIMEOUT_S = 30.0

# Sampling interval for persistence checks
PERSISTENCE_INTERVAL_S = 0.25

# =============================================================================
# Remote execution
# =============================================================================

# Per-update wait on the exec websocket before re-checking for closure
EXEC_UPDATE_TIMEOUT_S = 1.0

# Wall-clock cap on a single remote command
EXEC_COMMAND_TIMEOUT_S = 60.0

# =============================================================================
# Kubernetes API
# =============================================================================

K8S_API_CONNECT_TIMEOUT_S = 3

K8S_API_READ_TIMEOUT_S = 5

# =============================================================================
# Broker
# =============================================================================

# Core protocol acceptor every broker pod listens on
BROKER_ACCEPTOR_PORT = 61616
