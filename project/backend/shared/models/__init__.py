"""
Data models for the generation backend.

This module exports all Pydantic models used across backend modules.
"""

from .provider import (
    FailureClass,
    ProviderTier,
    ProviderFamily,
    ProviderSpec,
    Credential,
    CredentialStatus,
    WorkAttempt,
    TIER_ORDER,
)
from .script import (
    RecoveryMode,
    RecoveredValue,
    JobState,
    ContinuityAnchor,
    GeneratedUnit,
    GenerationJob,
    GenerationResult,
    ScriptRequest,
    ScriptResponse,
)

__all__ = [
    # Provider models
    "FailureClass",
    "ProviderTier",
    "ProviderFamily",
    "ProviderSpec",
    "Credential",
    "CredentialStatus",
    "WorkAttempt",
    "TIER_ORDER",
    # Script models
    "RecoveryMode",
    "RecoveredValue",
    "JobState",
    "ContinuityAnchor",
    "GeneratedUnit",
    "GenerationJob",
    "GenerationResult",
    "ScriptRequest",
    "ScriptResponse",
]
