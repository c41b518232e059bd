"""
Script Generator entry point.

Turns a ScriptRequest into a finished scene script and charges credits at most
once per generation id.
"""

import asyncio
import uuid
from typing import Optional

from shared.billing import BillingLedger
from shared.config import settings
from shared.errors import (
    BudgetExceededError,
    GenerationCancelledError,
    GenerationError,
    ValidationError,
)
from shared.logging import get_logger, set_job_id
from shared.models.script import ScriptRequest, ScriptResponse

from .config import resolve_language, scenes_for_duration
from .orchestrator import BatchContinuityOrchestrator
from .prompts import (
    build_continuation_prompt,
    build_first_batch_prompt,
    build_messages,
    build_system_prompt,
)
from .scene_normalizer import ensure_scene_fields, finalize_script, renumber_scene

logger = get_logger("script_generator")


def resolve_scene_count(request: ScriptRequest) -> int:
    """Explicit total (clamped), else derived from duration, else the default."""
    if request.total_scenes is not None:
        return max(1, min(request.total_scenes, settings.script_max_scenes))
    if request.video_duration:
        return scenes_for_duration(request.video_duration, settings.script_max_scenes)
    return settings.script_default_scenes


async def generate_script(
    request: ScriptRequest,
    gateway,
    ledger: BillingLedger,
    cancel_event: Optional[asyncio.Event] = None,
    deadline_seconds: Optional[float] = None,
) -> ScriptResponse:
    """
    Generate a scene script.

    Charging happens when this is the first batch of a job (start_scene <= 1)
    or an explicit generation id is given, and that id was never charged.

    Args:
        request: Script request
        gateway: ProviderGateway (or compatible) used for every batch
        ledger: Billing collaborator
        cancel_event: Stops issuing new batches once set
        deadline_seconds: Stops issuing new batches after this long

    Returns:
        ScriptResponse with the finalized script and per-scene recovery modes

    Raises:
        ValidationError: Unknown preferred provider
        BudgetExceededError: Not enough credits
        ProvidersExhaustedError: No scene could be produced
    """
    generation_id = request.generation_id or str(uuid.uuid4())
    set_job_id(generation_id)
    try:
        if request.ai_provider and request.ai_provider not in gateway.catalog:
            raise ValidationError(f"Unknown provider: {request.ai_provider}")

        cost = settings.script_credits_per_generation
        already_charged = await ledger.has_charged(generation_id)
        should_charge = not already_charged and (request.start_scene <= 1 or bool(request.generation_id))
        if should_charge and not await ledger.check_credits(cost):
            raise BudgetExceededError(f"Insufficient credits: {cost} required")

        num_scenes = resolve_scene_count(request)
        language = resolve_language(request.language)
        system_prompt = build_system_prompt(
            request.niche,
            num_scenes,
            style=request.style,
            voice_enabled=request.voice_enabled,
            language=language,
            sub_niche=request.sub_niche,
            niche_override=request.niche_override,
        )
        lite_prompt = build_system_prompt(
            request.niche,
            num_scenes,
            style=request.style,
            voice_enabled=request.voice_enabled,
            language=language,
            sub_niche=request.sub_niche,
            niche_override=request.niche_override,
            lite=True,
        )

        def prompt_builder(start, end, anchor):
            if anchor is None:
                return build_messages(
                    system_prompt,
                    build_first_batch_prompt(request.topic, end - start + 1, request.subject_name),
                )
            return build_messages(lite_prompt, build_continuation_prompt(start, end, anchor))

        def normalize(scene, scene_number):
            return ensure_scene_fields(
                scene,
                scene_number,
                niche=request.niche,
                subject_name=request.subject_name,
                voice_enabled=request.voice_enabled,
                style=request.style,
            )

        orchestrator = BatchContinuityOrchestrator(
            gateway,
            unit_normalizer=normalize,
            renumberer=renumber_scene,
            main_subject=request.subject_name,
        )

        logger.info(
            "Starting script generation",
            extra={
                "generation_id": generation_id,
                "num_scenes": num_scenes,
                "niche": request.niche,
                "provider": request.ai_provider,
                "should_charge": should_charge,
            },
        )
        result = await orchestrator.generate_job(
            num_scenes,
            settings.script_batch_size,
            prompt_builder,
            preferred_provider=request.ai_provider,
            cancel_event=cancel_event,
            deadline_seconds=deadline_seconds,
        )

        script = finalize_script(result.metadata, result.payloads, request.topic, request.project_name)

        charged = False
        if should_charge:
            charged = await ledger.charge_once(generation_id, cost)

        logger.info(
            "Script generation completed",
            extra={
                "generation_id": generation_id,
                "scene_count": len(result.units),
                "degraded": result.degraded,
                "charged": charged,
            },
        )
        return ScriptResponse(
            generation_id=generation_id,
            script=script,
            degraded=result.degraded,
            state=result.state,
            modes=result.modes,
            skipped_ranges=result.skipped_ranges,
            providers_used=result.providers_used,
            charged=charged,
        )
    except (ValidationError, GenerationError, BudgetExceededError, GenerationCancelledError):
        raise
    except Exception as e:
        logger.error(
            "Unexpected script generation error",
            extra={"generation_id": generation_id},
            exc_info=True,
        )
        raise GenerationError(f"Script generation failed: {str(e)}") from e
    finally:
        set_job_id(None)
