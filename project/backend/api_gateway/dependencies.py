"""
FastAPI dependencies.

Shared provider gateway and billing ledger for request handlers.
"""

from functools import lru_cache

from shared.billing import BillingLedger, InMemoryBillingLedger
from shared.logging import get_logger
from modules.provider_gateway import ProviderGateway

logger = get_logger(__name__)

# Process-wide ledger; replaced by the external billing service in deployments
_billing_ledger = InMemoryBillingLedger()


@lru_cache(maxsize=1)
def get_provider_gateway() -> ProviderGateway:
    """
    Process-wide provider gateway.

    Credentials are read once on first use; the credential pool inside is
    shared by every request.
    """
    return ProviderGateway.from_settings()


async def close_provider_gateway() -> None:
    """Close the shared gateway's clients if it was ever built."""
    if get_provider_gateway.cache_info().currsize:
        await get_provider_gateway().aclose()
        get_provider_gateway.cache_clear()


def get_billing_ledger() -> BillingLedger:
    return _billing_ledger
