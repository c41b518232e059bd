"""
Script generation data models.

Defines RecoveryMode, RecoveredValue, ContinuityAnchor, GeneratedUnit,
GenerationJob, GenerationResult and the script request/response models.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class RecoveryMode(str, Enum):
    """How much of a decoded provider response can be trusted."""

    CLEAN = "clean"
    REPAIRED = "repaired"
    PARTIAL_EXTRACTION = "partial_extraction"
    FALLBACK = "fallback"


class RecoveredValue(BaseModel):
    """Best-effort structured value decoded from raw provider text."""

    value: Any
    mode: RecoveryMode
    detail: Optional[str] = Field(default=None, description="Why the decoder left the clean path")


class JobState(str, Enum):
    SEEDING = "seeding"
    EXTENDING = "extending"
    COMPLETE = "complete"
    DEGRADED = "degraded"
    CANCELLED = "cancelled"


class ContinuityAnchor(BaseModel):
    """Snapshot of the last accumulated unit used to seed the next batch."""

    title: str = ""
    synopsis: str = ""
    main_subject: str = ""
    last_unit_summary: str = ""
    last_ordinal: int
    camera_style: str = "Standard Cinematic"
    environment_lock: str = "Same as previous"
    character_blueprints: List[Dict[str, Any]] = Field(default_factory=list)
    physical_lock: str = ""
    role_lock: List[Dict[str, str]] = Field(default_factory=list)


class GeneratedUnit(BaseModel):
    """One accumulated unit (scene) with the trust level of its batch."""

    ordinal: int
    payload: Dict[str, Any]
    mode: RecoveryMode


class GenerationJob(BaseModel):
    """Mutable state of one multi-batch generation job."""

    total_units_requested: int = Field(ge=1)
    units_per_batch: int = Field(ge=1)
    units: List[GeneratedUnit] = Field(default_factory=list)
    state: JobState = JobState.SEEDING
    degraded: bool = False
    skipped_ranges: List[Tuple[int, int]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Script-level fields from the first batch")
    anchor: Optional[ContinuityAnchor] = None

    @property
    def last_unit(self) -> Optional[GeneratedUnit]:
        return self.units[-1] if self.units else None


class GenerationResult(BaseModel):
    """Final outcome returned to the caller of generate_job."""

    units: List[GeneratedUnit]
    degraded: bool
    state: JobState
    skipped_ranges: List[Tuple[int, int]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    providers_used: List[str] = Field(default_factory=list)

    @property
    def modes(self) -> List[RecoveryMode]:
        return [unit.mode for unit in self.units]

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [unit.payload for unit in self.units]


class ScriptRequest(BaseModel):
    """Scene-script generation request."""

    topic: str = Field(min_length=1)
    niche: Optional[str] = None
    sub_niche: Optional[str] = None
    niche_override: Optional[str] = Field(default=None, description="Custom niche rules replacing the built-in ones")
    language: str = "en"
    voice_enabled: bool = True
    style: str = "cinematic"
    video_duration: Optional[float] = Field(default=None, gt=0, description="Target video length in minutes")
    total_scenes: Optional[int] = None
    ai_provider: Optional[str] = Field(default=None, description="Provider tried first")
    subject_name: Optional[str] = None
    project_name: Optional[str] = None
    start_scene: int = Field(default=1, ge=1)
    generation_id: Optional[str] = Field(default=None, description="Idempotency key for charging")


class ScriptResponse(BaseModel):
    """Generated script plus how trustworthy each scene is."""

    generation_id: str
    script: Dict[str, Any]
    degraded: bool
    state: JobState
    modes: List[RecoveryMode]
    skipped_ranges: List[Tuple[int, int]] = Field(default_factory=list)
    providers_used: List[str] = Field(default_factory=list)
    charged: bool = False
