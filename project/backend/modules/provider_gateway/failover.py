"""
Failover executor.

Runs one unit of work against providers in catalog order, rotating credentials
and backing off according to the failure class of each attempt.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from shared.config import settings
from shared.errors import GenerationCancelledError, ProviderCallError, ProvidersExhaustedError
from shared.logging import get_logger
from shared.models.provider import FailureClass, ProviderSpec, WorkAttempt

from .catalog import ProviderCatalog
from .classifier import classify_failure
from .credential_pool import CredentialPool

logger = get_logger("provider_gateway.failover")

T = TypeVar("T")

# work(provider_spec) -> result; raises on failure
Work = Callable[[ProviderSpec], Awaitable[T]]


@dataclass
class RetryPolicy:
    """Attempt limits and per-class delays (seconds)."""

    max_attempts_per_provider: int = 3
    rate_limit_delay: float = 3.0
    auth_delay: float = 0.5
    server_error_delay: float = 2.0
    unknown_delay: float = 0.5
    max_backoff: float = 12.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts_per_provider=settings.failover_max_attempts_per_provider,
            rate_limit_delay=settings.failover_rate_limit_delay,
            auth_delay=settings.failover_auth_delay,
            server_error_delay=settings.failover_server_error_delay,
            unknown_delay=settings.failover_unknown_delay,
            max_backoff=settings.failover_max_backoff,
        )

    def delay_for(self, failure_class: FailureClass, attempt: int) -> float:
        """
        Wait before the next attempt on the same provider.

        Rate-limit and server errors back off exponentially (attempt is 0-based);
        auth/key and unknown failures use a short fixed pause.
        """
        if failure_class == FailureClass.RATE_LIMIT:
            delay = self.rate_limit_delay * (2 ** attempt)
        elif failure_class == FailureClass.SERVER_ERROR:
            delay = self.server_error_delay * (2 ** attempt)
        elif failure_class == FailureClass.AUTH_OR_KEY:
            delay = self.auth_delay
        else:
            delay = self.unknown_delay
        return min(delay, self.max_backoff)


@dataclass
class FailoverResult(Generic[T]):
    """Successful outcome of FailoverExecutor.run."""

    value: T
    provider: str
    attempts: List[WorkAttempt] = field(default_factory=list)


async def wait_or_cancel(delay: float, cancel_event: Optional[asyncio.Event] = None) -> None:
    """
    Sleep for `delay` seconds unless `cancel_event` fires first.

    Raises:
        GenerationCancelledError: If the event is set before or during the wait
    """
    if cancel_event is None:
        if delay > 0:
            await asyncio.sleep(delay)
        return

    if cancel_event.is_set():
        raise GenerationCancelledError("Generation cancelled")
    if delay <= 0:
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise GenerationCancelledError("Generation cancelled during backoff")


class FailoverExecutor:
    """Walks the provider catalog until one attempt succeeds."""

    def __init__(
        self,
        catalog: ProviderCatalog,
        pool: CredentialPool,
        policy: Optional[RetryPolicy] = None,
    ):
        self.catalog = catalog
        self.pool = pool
        self.policy = policy or RetryPolicy.from_settings()

    async def run(
        self,
        work: Work,
        preferred_provider: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> FailoverResult:
        """
        Execute `work` with provider failover.

        Args:
            work: Coroutine function called with the ProviderSpec to use. It is
                expected to draw its credential from the pool and raise
                ProviderCallError (with `credential` set) on failure.
            preferred_provider: Provider to try first, if known
            cancel_event: Stops the run at the next backoff wait

        Returns:
            FailoverResult with the value, provider and attempt log

        Raises:
            ProvidersExhaustedError: Every provider failed or had no credentials
            GenerationCancelledError: cancel_event fired during a backoff wait
        """
        attempts: List[WorkAttempt] = []
        providers_tried: List[str] = []
        providers_skipped: List[str] = []

        for spec in self.catalog.ordered(preferred_provider):
            total_keys = self.pool.total(spec.name)
            if total_keys == 0:
                providers_skipped.append(spec.name)
                attempts.append(WorkAttempt(
                    provider=spec.name,
                    message="no keys configured",
                    skipped=True,
                ))
                logger.debug("Skipping provider without credentials", extra={"provider": spec.name})
                continue

            providers_tried.append(spec.name)
            max_attempts = min(self.policy.max_attempts_per_provider, total_keys)

            for attempt in range(max_attempts):
                if cancel_event is not None and cancel_event.is_set():
                    raise GenerationCancelledError("Generation cancelled")

                try:
                    value = await work(spec)
                except (asyncio.CancelledError, GenerationCancelledError):
                    raise
                except Exception as e:
                    failure_class = classify_failure(e)
                    credential = e.credential if isinstance(e, ProviderCallError) else None
                    self.pool.report_failure(spec.name, credential, failure_class)
                    attempts.append(WorkAttempt(
                        provider=spec.name,
                        credential_index=credential.index if credential is not None else None,
                        failure_class=failure_class,
                        message=str(e)[:500],
                    ))
                    logger.warning(
                        "Provider attempt failed",
                        extra={
                            "provider": spec.name,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "failure_class": failure_class.value,
                            "key_preview": credential.preview if credential is not None else None,
                            "error": str(e)[:300],
                        }
                    )
                    if attempt < max_attempts - 1:
                        await wait_or_cancel(self.policy.delay_for(failure_class, attempt), cancel_event)
                    continue

                attempts.append(WorkAttempt(provider=spec.name, succeeded=True))
                logger.info(
                    "Provider attempt succeeded",
                    extra={"provider": spec.name, "attempt": attempt + 1, "total_attempts": _count_real(attempts)}
                )
                return FailoverResult(value=value, provider=spec.name, attempts=attempts)

        raise self._exhausted(attempts, providers_tried, providers_skipped)

    def _exhausted(
        self,
        attempts: List[WorkAttempt],
        providers_tried: List[str],
        providers_skipped: List[str],
    ) -> ProvidersExhaustedError:
        counts = Counter(
            attempt.failure_class.value for attempt in attempts if attempt.failure_class is not None
        )
        failure_counts = {fc.value: counts.get(fc.value, 0) for fc in FailureClass}
        total_attempts = _count_real(attempts)

        dominant: Optional[str] = None
        if total_attempts:
            # Ties resolve in FailureClass declaration order
            dominant = max(FailureClass, key=lambda fc: failure_counts[fc.value]).value

        configuration_problem = total_attempts == 0 or failure_counts[FailureClass.AUTH_OR_KEY.value] == total_attempts
        if total_attempts == 0:
            message = (
                "No provider has usable API keys configured. "
                "This is likely a configuration problem: check the provider key environment variables."
            )
        elif configuration_problem:
            message = (
                f"All providers rejected their credentials after {total_attempts} attempts. "
                "This is likely a configuration problem: check API keys and account credits."
            )
        else:
            message = (
                f"All providers failed after {total_attempts} attempts "
                f"(mostly {dominant}). This is likely transient: try again shortly."
            )

        logger.error(
            "All providers exhausted",
            extra={
                "total_attempts": total_attempts,
                "failure_counts": failure_counts,
                "providers_tried": providers_tried,
                "providers_skipped": providers_skipped,
                "dominant_failure": dominant,
            }
        )
        return ProvidersExhaustedError(
            message,
            total_attempts=total_attempts,
            failure_counts=failure_counts,
            providers_tried=providers_tried,
            providers_skipped=providers_skipped,
            attempts=attempts,
            dominant_failure=dominant,
            likely_configuration_problem=configuration_problem,
        )


def _count_real(attempts: List[WorkAttempt]) -> int:
    return sum(1 for attempt in attempts if not attempt.skipped)
