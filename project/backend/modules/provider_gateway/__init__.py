"""
Provider Gateway module public API.

Credential pooling, provider catalog and failover execution for upstream
text-generation providers.
"""

from shared.logging import get_logger

from .catalog import ProviderCatalog
from .credential_pool import CredentialPool
from .credential_source import load_credentials
from .failover import FailoverExecutor, FailoverResult, RetryPolicy
from .gateway import ProviderGateway

__all__ = [
    "ProviderCatalog",
    "CredentialPool",
    "load_credentials",
    "FailoverExecutor",
    "FailoverResult",
    "RetryPolicy",
    "ProviderGateway",
]

logger = get_logger("provider_gateway")
