"""
Batch continuity orchestrator.

Builds a long ordered sequence of units (scenes) from several small provider
calls. Batches run one after another; each continuation batch carries a
continuity anchor built from the last accumulated unit. A batch that exhausts
every provider leaves a gap and the job continues.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.config import settings
from shared.errors import GenerationCancelledError, GenerationError, ProvidersExhaustedError, ValidationError
from shared.logging import get_logger
from shared.models.script import (
    ContinuityAnchor,
    GeneratedUnit,
    GenerationJob,
    GenerationResult,
    JobState,
    RecoveredValue,
)
from modules.provider_gateway.failover import wait_or_cancel
from modules.provider_gateway.providers import Messages

from .config import ORDINAL_KEYS, UNIT_KEY
from .continuity import build_continuity_anchor
from .json_recovery import ResilientJsonDecoder

logger = get_logger("script_generator.orchestrator")

# prompt_builder(start, end, anchor) -> chat messages for ordinals start..end
PromptBuilder = Callable[[int, int, Optional[ContinuityAnchor]], Messages]
# unit_normalizer(payload, ordinal) -> payload
UnitHook = Callable[[Dict[str, Any], int], Dict[str, Any]]


def _default_renumber(payload: Dict[str, Any], ordinal: int) -> Dict[str, Any]:
    for key in ORDINAL_KEYS:
        payload[key] = ordinal
    return payload


def batch_ranges(total_units: int, units_per_batch: int) -> List[Tuple[int, int]]:
    """Contiguous ordinal ranges: the first batch is a single unit, the rest are units_per_batch wide."""
    ranges = [(1, 1)]
    start = 2
    while start <= total_units:
        end = min(start + units_per_batch - 1, total_units)
        ranges.append((start, end))
        start = end + 1
    return ranges


class BatchContinuityOrchestrator:
    """Sequential multi-batch generation with continuity anchoring."""

    def __init__(
        self,
        gateway: Any,
        decoder: Optional[ResilientJsonDecoder] = None,
        batch_delay: Optional[float] = None,
        unit_normalizer: Optional[UnitHook] = None,
        renumberer: Optional[UnitHook] = None,
        main_subject: Optional[str] = None,
        unit_key: str = UNIT_KEY,
    ):
        """
        Args:
            gateway: Object exposing generate_text(messages, preferred_provider, cancel_event)
            decoder: Decoder for raw provider text
            batch_delay: Pacing delay before every continuation batch (seconds)
            unit_normalizer: Applied to each accepted unit with its requested ordinal
            renumberer: Applied to each unit with its final ordinal
            main_subject: Subject name carried in the continuity anchor
        """
        self.gateway = gateway
        self.decoder = decoder or ResilientJsonDecoder(unit_key=unit_key)
        self.batch_delay = settings.script_batch_delay if batch_delay is None else batch_delay
        self.unit_normalizer = unit_normalizer
        self.renumberer = renumberer or _default_renumber
        self.main_subject = main_subject
        self.unit_key = unit_key

    def _extract_units(self, value: Any) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Units and script-level metadata from a decoded batch."""
        if isinstance(value, list):
            return [u for u in value if isinstance(u, dict)], {}
        if not isinstance(value, dict):
            return [], {}

        units = value.get(self.unit_key)
        if isinstance(units, list):
            metadata = {k: v for k, v in value.items() if k != self.unit_key}
            return [u for u in units if isinstance(u, dict)], metadata

        if any(key in value for key in ORDINAL_KEYS):
            return [value], {}

        for key, candidate in value.items():
            if isinstance(candidate, list) and any(isinstance(u, dict) for u in candidate):
                metadata = {k: v for k, v in value.items() if k != key}
                return [u for u in candidate if isinstance(u, dict)], metadata
        return [], {}

    def _anchor(self, job: GenerationJob) -> Optional[ContinuityAnchor]:
        return build_continuity_anchor(job.units, job.metadata, self.main_subject)

    def _accept(self, job: GenerationJob, recovered: RecoveredValue, start: int, end: int) -> int:
        """Append the units of one decoded batch; returns how many were kept."""
        payloads, metadata = self._extract_units(recovered.value)
        if metadata and not job.metadata:
            job.metadata = metadata

        requested = end - start + 1
        if len(payloads) > requested:
            logger.info(
                "Dropping extra units from batch",
                extra={"start": start, "end": end, "returned": len(payloads)},
            )
            payloads = payloads[:requested]

        for offset, payload in enumerate(payloads):
            ordinal = start + offset
            if self.unit_normalizer is not None:
                payload = self.unit_normalizer(payload, ordinal)
            job.units.append(GeneratedUnit(ordinal=ordinal, payload=payload, mode=recovered.mode))
        return len(payloads)

    async def generate_job(
        self,
        total_units: int,
        units_per_batch: int,
        prompt_builder: PromptBuilder,
        preferred_provider: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        deadline_seconds: Optional[float] = None,
    ) -> GenerationResult:
        """
        Generate total_units units in sequential batches.

        Args:
            total_units: Units requested for the whole job
            units_per_batch: Width of every batch after the first
            prompt_builder: Builds the messages for one ordinal range
            preferred_provider: Provider tried first by the gateway
            cancel_event: Stops new batches once set
            deadline_seconds: Stops new batches once this much time has passed

        Returns:
            GenerationResult with units renumbered 1..count

        Raises:
            ProvidersExhaustedError: No unit could be produced because every batch exhausted the providers
            GenerationCancelledError: Cancelled before any unit was produced
            ValidationError: total_units or units_per_batch below 1
            GenerationError: No batch produced a usable unit
        """
        if total_units < 1 or units_per_batch < 1:
            raise ValidationError(
                f"total_units and units_per_batch must be at least 1 (got {total_units}, {units_per_batch})"
            )

        job = GenerationJob(total_units_requested=total_units, units_per_batch=units_per_batch)
        loop = asyncio.get_running_loop()
        started = loop.time()
        providers_used: List[str] = []
        last_exhaustion: Optional[ProvidersExhaustedError] = None
        cancelled = False

        for index, (start, end) in enumerate(batch_ranges(total_units, units_per_batch)):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
            elif deadline_seconds is not None and loop.time() - started >= deadline_seconds:
                logger.warning("Generation deadline reached", extra={"deadline_seconds": deadline_seconds})
                cancelled = True
            if cancelled:
                break

            if index > 0 and self.batch_delay > 0:
                try:
                    await wait_or_cancel(self.batch_delay, cancel_event)
                except GenerationCancelledError:
                    cancelled = True
                    break

            anchor = self._anchor(job)
            job.anchor = anchor
            messages = prompt_builder(start, end, anchor)

            logger.info(
                f"Requesting units {start}-{end}",
                extra={"start": start, "end": end, "accumulated": len(job.units)},
            )

            try:
                result = await self.gateway.generate_text(
                    messages,
                    preferred_provider=preferred_provider,
                    cancel_event=cancel_event,
                )
            except ProvidersExhaustedError as e:
                last_exhaustion = e
                job.degraded = True
                job.skipped_ranges.append((start, end))
                logger.error(
                    f"Batch {start}-{end} skipped: all providers failed",
                    extra={"start": start, "end": end, "dominant_failure": e.dominant_failure},
                )
                continue
            except GenerationCancelledError:
                cancelled = True
                break

            if result.provider not in providers_used:
                providers_used.append(result.provider)

            recovered = self.decoder.decode(result.value)
            if recovered.detail:
                logger.warning(
                    f"Batch {start}-{end} decoded as {recovered.mode.value}",
                    extra={"mode": recovered.mode.value, "detail": recovered.detail},
                )

            kept = self._accept(job, recovered, start, end)
            if kept == 0:
                job.degraded = True
                job.skipped_ranges.append((start, end))
                logger.error(f"Batch {start}-{end} produced no units", extra={"start": start, "end": end})
                continue

            if job.state == JobState.SEEDING:
                job.state = JobState.EXTENDING

        if not job.units:
            if last_exhaustion is not None:
                raise last_exhaustion
            if cancelled:
                raise GenerationCancelledError("Generation cancelled before any unit was produced")
            raise GenerationError("No batch produced a usable unit")

        for position, unit in enumerate(job.units, start=1):
            unit.ordinal = position
            unit.payload = self.renumberer(unit.payload, position)

        if cancelled:
            job.state = JobState.CANCELLED
        elif job.degraded:
            job.state = JobState.DEGRADED
        else:
            job.state = JobState.COMPLETE

        logger.info(
            "Generation job finished",
            extra={
                "state": job.state.value,
                "units": len(job.units),
                "requested": total_units,
                "skipped_ranges": job.skipped_ranges,
            },
        )

        return GenerationResult(
            units=job.units,
            degraded=job.degraded,
            state=job.state,
            skipped_ranges=job.skipped_ranges,
            metadata=job.metadata,
            providers_used=providers_used,
        )
