"""
Script endpoints.

Generate scene scripts through the resilient provider gateway.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, status

from shared.billing import BillingLedger
from shared.config import settings
from shared.errors import (
    BudgetExceededError,
    GenerationCancelledError,
    GenerationError,
    ProvidersExhaustedError,
    ValidationError,
)
from shared.logging import get_logger
from shared.models.provider import FailureClass
from shared.models.script import ScriptRequest, ScriptResponse
from api_gateway.dependencies import get_billing_ledger, get_provider_gateway
from modules.provider_gateway import ProviderGateway
from modules.script_generator import generate_script

logger = get_logger(__name__)

router = APIRouter()

EXHAUSTED_MESSAGES = {
    FailureClass.RATE_LIMIT.value: "All AI providers are rate-limited right now. Please try again in a few minutes.",
    FailureClass.AUTH_OR_KEY.value: (
        "All AI providers rejected their API keys. Please contact the operator to check the configured keys."
    ),
    FailureClass.SERVER_ERROR.value: "AI providers are temporarily unavailable. Please try again shortly.",
}
NO_KEYS_MESSAGE = "No AI provider has an API key configured. Please contact the operator."
DEFAULT_EXHAUSTED_MESSAGE = "Script generation failed on every AI provider. Please try again."
DISCONNECT_POLL_SECONDS = 1.0


def exhausted_message(error: ProvidersExhaustedError) -> str:
    """User-facing message for a total provider failure, chosen by its dominant failure class."""
    if error.total_attempts == 0:
        return NO_KEYS_MESSAGE
    return EXHAUSTED_MESSAGES.get(error.dominant_failure, DEFAULT_EXHAUSTED_MESSAGE)


async def watch_disconnect(
    http_request: Request,
    cancel_event: asyncio.Event,
    poll_interval: float = DISCONNECT_POLL_SECONDS,
) -> None:
    """Set cancel_event once the HTTP client goes away."""
    while not cancel_event.is_set():
        if await http_request.is_disconnected():
            logger.warning("Client disconnected, cancelling script generation")
            cancel_event.set()
            return
        await asyncio.sleep(poll_interval)


@router.post("/scripts", response_model=ScriptResponse)
async def create_script(
    request: ScriptRequest,
    http_request: Request,
    gateway: ProviderGateway = Depends(get_provider_gateway),
    ledger: BillingLedger = Depends(get_billing_ledger),
):
    """
    Generate a scene script.

    Credits are charged at most once per generation_id. No new batch starts
    after the client disconnects or SCRIPT_DEADLINE_SECONDS has passed.

    Raises:
        400: Invalid request (e.g. unknown provider)
        402: Not enough credits
        408: Cancelled or timed out before any scene was produced
        503: Every provider failed (body carries the failure breakdown)
    """
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(http_request, cancel_event))
    deadline_seconds = settings.script_deadline_seconds or None
    try:
        return await generate_script(
            request,
            gateway,
            ledger,
            cancel_event=cancel_event,
            deadline_seconds=deadline_seconds,
        )
    except ProvidersExhaustedError as e:
        logger.error(
            "Script generation failed on every provider",
            extra={"dominant_failure": e.dominant_failure, "total_attempts": e.total_attempts},
        )
        detail = e.to_dict()
        detail["message"] = exhausted_message(e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    except BudgetExceededError as e:
        raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationCancelledError as e:
        raise HTTPException(status_code=status.HTTP_408_REQUEST_TIMEOUT, detail=str(e))
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    finally:
        watcher.cancel()
