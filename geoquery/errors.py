"""
Error types raised inside the query engine.

Classification and planning errors abort a request (the orchestrator turns them
into a failed response). Phase, operation and cache errors are recorded and the
request continues with whatever data is still available.
"""
from typing import Optional


class GeoQueryError(Exception):
    """Base class for all engine errors."""


class ClassificationError(GeoQueryError):
    """The query could not be analyzed (empty or unusable input)."""


class PlanningError(GeoQueryError):
    """No valid execution plan could be built for the analysis."""


class PhaseExecutionError(GeoQueryError):
    """A single phase failed while executing."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"Phase '{phase}' failed: {message}")
        self.phase = phase
        self.message = message


class UnknownExecutorError(GeoQueryError):
    """A phase names an executor role the reasoning adapter does not know."""

    def __init__(self, executor: str):
        super().__init__(f"Unknown executor role '{executor}'")
        self.executor = executor


class OperationError(GeoQueryError):
    """An external operation returned a permanent failure."""

    def __init__(self, operation_id: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation_id}: {message}")
        self.operation_id = operation_id
        self.status_code = status_code


class TransientOperationError(OperationError):
    """An external operation timed out or hit a retryable upstream error."""


class CacheError(GeoQueryError):
    """The result cache could not serve or store an entry."""


class ConfigurationError(GeoQueryError):
    """Required settings are missing (for example the reasoning service key)."""
