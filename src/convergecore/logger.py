"""
Logging setup and structured scenario events.

``configure_logging`` wires the ``convergecore`` logger hierarchy to stdout,
either as one JSON object per line (for Loki) or as plain text.

``ScenarioLogger`` emits JSON events for scenario state changes on the
``convergecore.scenario.events`` logger:
- scenario.submitted
- scenario.converged
- worker.verified
- worker.failed
- scenario.failed
- scenario.cleaned_up

Usage:
    from convergecore.logger import ScenarioLogger, configure_logging

    configure_logging(level="info", fmt="json")
    events = ScenarioLogger(scenario="address-queues", namespace="default")
    events.log_converged(cluster="ex-aao-broker", ready=5, attempts=3)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_events_logger = logging.getLogger("convergecore.scenario.events")
_events_logger.setLevel(logging.INFO)

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "text", stream=None) -> logging.Handler:
    """
    Install a single stdout handler on the ``convergecore`` logger.

    Scenario events are already JSON, so the events logger gets a
    message-only handler and does not propagate.
    """
    root = logging.getLogger("convergecore")
    root.setLevel(getattr(logging, level.upper()))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)

    events_handler = logging.StreamHandler(stream or sys.stdout)
    events_handler.setFormatter(logging.Formatter("%(message)s"))
    for existing in list(_events_logger.handlers):
        _events_logger.removeHandler(existing)
    _events_logger.addHandler(events_handler)
    _events_logger.propagate = False
    return handler


class ScenarioLogger:
    """
    Structured logger for verification scenario events.

    Each entry carries the scenario name and namespace so runs can be
    filtered and correlated.
    """

    def __init__(
        self,
        scenario: str,
        namespace: str = "default",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.scenario = scenario
        self.namespace = namespace
        self.extra_labels = extra_labels or {}
        self._logger = _events_logger

    def _emit(self, event: str, level: str = "info", **fields: Any) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "scenario": self.scenario,
            "namespace": self.namespace,
        }
        entry.update(fields)
        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)
        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_submitted(self, resource: str, kind: str) -> None:
        self._emit("scenario.submitted", resource=resource, kind=kind)

    def log_converged(self, cluster: str, ready: int, attempts: int) -> None:
        self._emit("scenario.converged", cluster=cluster, ready=ready, attempts=attempts)

    def log_worker_verified(self, worker: str, attempts: int) -> None:
        self._emit("worker.verified", worker=worker, attempts=attempts)

    def log_worker_failed(self, worker: str, attempts: int, error: str) -> None:
        self._emit("worker.failed", level="error", worker=worker, attempts=attempts, error=error)

    def log_failed(self, state: str, error: str) -> None:
        self._emit("scenario.failed", level="error", failed_in=state, error=error)

    def log_cleaned_up(self, deleted: int, errors: int) -> None:
        level = "warn" if errors else "info"
        self._emit("scenario.cleaned_up", level=level, deleted=deleted, errors=errors)
