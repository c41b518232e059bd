"""
Provider endpoints.

Credential health, quarantine reset and key validation for upstream providers.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, status

from shared.errors import ValidationError
from shared.logging import get_logger
from api_gateway.dependencies import get_provider_gateway
from modules.provider_gateway import ProviderGateway

logger = get_logger(__name__)

router = APIRouter()


@router.get("/providers/health")
async def get_providers_health(gateway: ProviderGateway = Depends(get_provider_gateway)):
    """
    Per-provider credential status in failover order.

    Returns:
        JSON with one entry per provider: display name, tier, total,
        quarantined and available credential counts
    """
    providers = gateway.health()
    return {
        "providers": providers,
        "total_available": sum(entry["available"] for entry in providers.values()),
    }


@router.post("/providers/reset")
async def reset_all_providers(gateway: ProviderGateway = Depends(get_provider_gateway)):
    """Clear quarantine flags for every provider."""
    gateway.reset()
    logger.info("Reset credential quarantine for all providers")
    return {"reset": "all"}


@router.post("/providers/{provider}/reset")
async def reset_provider(
    provider: str = Path(..., description="Provider name (e.g. groq)"),
    gateway: ProviderGateway = Depends(get_provider_gateway),
):
    """
    Clear quarantine flags for one provider.

    Raises:
        404: If the provider is not in the catalog
    """
    try:
        gateway.reset(provider)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    logger.info(f"Reset credential quarantine for {provider}")
    return {"reset": provider}


@router.post("/providers/{provider}/validate")
async def validate_provider_keys(
    provider: str = Path(..., description="Provider name (e.g. groq)"),
    gateway: ProviderGateway = Depends(get_provider_gateway),
):
    """
    Probe every configured key of a provider with a tiny request.

    Failing keys are quarantined like regular failures. Only key previews are
    returned.

    Raises:
        404: If the provider is not in the catalog
    """
    try:
        results = await gateway.probe_credentials(provider)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return {
        "provider": provider,
        "total": len(results),
        "working": sum(1 for entry in results if entry["ok"]),
        "keys": results,
    }
