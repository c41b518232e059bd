"""
Error taxonomy for the generation backend.

All domain errors derive from PipelineError and carry an optional job_id so
log records and API responses can be correlated with a generation job.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID


class PipelineError(Exception):
    """Base class for all backend errors."""

    def __init__(self, message: str, job_id: Optional[UUID] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class ConfigError(PipelineError):
    """Invalid or missing configuration."""


class ValidationError(PipelineError):
    """Invalid input supplied by a caller."""


class GenerationError(PipelineError):
    """Non-retryable generation failure."""


class BudgetExceededError(PipelineError):
    """Charging would exceed the caller's credit balance."""


class GenerationCancelledError(PipelineError):
    """The enclosing request was cancelled or ran out of time."""


class ProviderCallError(PipelineError):
    """
    One failed call to an upstream provider.

    Raised by provider clients and by the gateway work function. The failover
    executor classifies it and reports the credential back to the pool.
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        failure_class: Optional[Any] = None,
        credential: Optional[Any] = None,
        job_id: Optional[UUID] = None,
    ):
        super().__init__(message, job_id=job_id)
        self.provider = provider
        self.status_code = status_code
        self.failure_class = failure_class
        self.credential = credential


class ProvidersExhaustedError(GenerationError):
    """
    Every provider in the catalog failed.

    This is the only hard failure surfaced to callers. It carries enough detail
    to tell a configuration problem apart from a transient upstream outage.
    """

    def __init__(
        self,
        message: str,
        total_attempts: int,
        failure_counts: Dict[str, int],
        providers_tried: List[str],
        providers_skipped: Optional[List[str]] = None,
        attempts: Optional[List[Any]] = None,
        dominant_failure: Optional[str] = None,
        likely_configuration_problem: bool = False,
        job_id: Optional[UUID] = None,
    ):
        super().__init__(message, job_id=job_id)
        self.total_attempts = total_attempts
        self.failure_counts = failure_counts
        self.providers_tried = providers_tried
        self.providers_skipped = providers_skipped or []
        self.attempts = attempts or []
        self.dominant_failure = dominant_failure
        self.likely_configuration_problem = likely_configuration_problem

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "total_attempts": self.total_attempts,
            "failure_counts": self.failure_counts,
            "providers_tried": self.providers_tried,
            "providers_skipped": self.providers_skipped,
            "dominant_failure": self.dominant_failure,
            "likely_configuration_problem": self.likely_configuration_problem,
        }
