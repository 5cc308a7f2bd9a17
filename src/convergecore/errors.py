"""
Error taxonomy for convergence verification.

Every failure raised by convergecore derives from ConvergeCoreError and
carries a short machine-readable ``code`` so callers (and the CLI) can tell
failure kinds apart without string matching.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class ConvergeCoreError(Exception):
    """Base class for all convergecore failures."""

    code = "CONVERGECORE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


# Resource store


class ResourceStoreError(ConvergeCoreError):
    """A create/get/delete call against the resource store failed."""

    code = "STORE_ERROR"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ResourceConflictError(ResourceStoreError):
    code = "STORE_CONFLICT"

    def __init__(self, message: str):
        super().__init__(message, status=409)


class ResourceNotFoundError(ResourceStoreError):
    code = "STORE_NOT_FOUND"

    def __init__(self, message: str):
        super().__init__(message, status=404)


class SubmissionError(ConvergeCoreError):
    """Creating a desired-state resource failed (conflict, validation)."""

    code = "SUBMISSION_ERROR"

    def __init__(self, message: str, resource: str = ""):
        super().__init__(message)
        self.resource = resource


# Retry


class ProbeFailed(ConvergeCoreError):
    """Raised by a probe when its condition does not hold yet."""

    code = "PROBE_FAILED"

    def __init__(self, message: str, observed: Any = None):
        super().__init__(message)
        self.observed = observed


class RetryTimeoutError(ConvergeCoreError):
    """
    Deadline expired before the probe succeeded.

    The message is the last attempt's failure, and the exception is chained
    from it, so the actual blocking condition stays visible.
    """

    code = "RETRY_TIMEOUT"

    def __init__(self, last_error: BaseException, attempts: int, elapsed: float):
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts
        self.elapsed = elapsed


class ConvergenceTimeoutError(RetryTimeoutError):
    """Ready-worker count never matched the desired replica count."""

    code = "CONVERGENCE_TIMEOUT"

    def __init__(
        self,
        last_error: BaseException,
        attempts: int,
        elapsed: float,
        last_observed: Any = None,
    ):
        super().__init__(last_error, attempts, elapsed)
        self.last_observed = last_observed


# Remote execution


class StreamSetupError(ConvergeCoreError):
    """Exec endpoint could not be resolved or the connection upgrade failed."""

    code = "STREAM_SETUP_ERROR"

    def __init__(self, message: str, worker: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.worker = worker
        self.status = status


class StreamExecutionError(ConvergeCoreError):
    """Remote command exited non-zero or the stream closed abnormally."""

    code = "STREAM_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        worker: str = "",
        exit_code: Optional[int] = None,
        result: Any = None,
    ):
        super().__init__(message)
        self.worker = worker
        self.exit_code = exit_code
        self.result = result


class MissingMarkersError(ProbeFailed):
    """Captured output lacks one or more expected marker strings."""

    code = "MISSING_MARKERS"

    def __init__(self, worker: str, missing: Sequence[str], output: str = ""):
        super().__init__(
            f"output of {worker} is missing {', '.join(missing)}",
            observed=output,
        )
        self.worker = worker
        self.missing: List[str] = list(missing)
        self.output = output


# Scenario


class CleanupError(ConvergeCoreError):
    """Deleting a submitted resource failed. Never changes pass/fail."""

    code = "CLEANUP_ERROR"

    def __init__(self, message: str, resource: str = ""):
        super().__init__(message)
        self.resource = resource


class ScenarioFailedError(ConvergeCoreError):
    """A verification scenario ended in the Failed state."""

    code = "SCENARIO_FAILED"

    def __init__(self, message: str, report: Any = None):
        super().__init__(message)
        self.report = report
