"""
Provider-related data models.

Defines FailureClass, ProviderTier, ProviderFamily, ProviderSpec, Credential,
CredentialStatus and WorkAttempt models used by the provider gateway.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FailureClass(str, Enum):
    """Classification of one failed provider attempt."""

    AUTH_OR_KEY = "auth_or_key"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class ProviderTier(str, Enum):
    """Priority tier; tiers are tried in declaration order."""

    HIGH_PERFORMANCE = "high_performance"
    STABLE = "stable"
    FALLBACK = "fallback"


TIER_ORDER = [ProviderTier.HIGH_PERFORMANCE, ProviderTier.STABLE, ProviderTier.FALLBACK]


class ProviderFamily(str, Enum):
    """API family; selects the client variant used to call the provider."""

    OPENAI_COMPATIBLE = "openai_compatible"
    GEMINI = "gemini"


class ProviderSpec(BaseModel):
    """Static description of one upstream provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str
    tier: ProviderTier
    priority: int = Field(description="Order inside the tier, lower first")
    family: ProviderFamily
    base_url: str
    model: str
    key_prefix: str = Field(description="Environment variable prefix for this provider's keys")
    max_tokens: int = 1800
    supports_json_mode: bool = False
    temperature: float = 0.4


class Credential(BaseModel):
    """
    One API key owned by a provider.

    The secret is excluded from repr and serialization; use `preview` in logs.
    """

    provider: str
    index: int = Field(description="Position in the provider's key list")
    secret: str = Field(repr=False, exclude=True)
    quarantined: bool = False

    @property
    def preview(self) -> str:
        from shared.logging import mask_secret

        return mask_secret(self.secret)


class CredentialStatus(BaseModel):
    """Read-only pool introspection for one provider."""

    total: int
    quarantined: int

    @property
    def available(self) -> int:
        return self.total - self.quarantined


class WorkAttempt(BaseModel):
    """Diagnostic record of one attempt made by the failover executor."""

    provider: str
    credential_index: Optional[int] = None
    failure_class: Optional[FailureClass] = None
    message: str = ""
    succeeded: bool = False
    skipped: bool = Field(default=False, description="Synthetic entry for a provider without keys")
