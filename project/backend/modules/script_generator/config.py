"""
Script generator configuration.

Scene sizing, decoder limits and default script fields.
"""
import math

# Scene sizing
SCENE_DURATION = "8s"
SCENES_PER_MINUTE = 7.5
MIN_SCENES_FOR_DURATION = 8
MAX_SCENES = 113

# Decoder limits
UNIT_KEY = "scenes"
ORDINAL_KEYS = ("scene_number",)
MAX_NESTING_DEPTH = 512
MAX_CUT_ATTEMPTS = 64  # Cut-back points tried when closing truncated JSON

# Output defaults
RENDERING_STYLE = "Ultra-realistic CGI: High-quality video rendering with professional production values"
DEFAULT_CTA = "Follow for more cinematic stories."
DEFAULT_HASHTAGS = ["#cinematic", "#storytelling", "#aivideo", "#faceless"]
DEFAULT_CAMERA = "[Shot 1: 0-8s | CINEMATIC] Cinematic slow-motion tracking shot."
DEFAULT_NARRATION = "The story continues with cinematic grace."
AMBIENT_ONLY_AUDIO = (
    "Ambient audio only: wind/room tone, distant environment, footsteps, "
    "cloth rustle, breathing; no speech."
)
TRANSITION_LINE = (
    "Transition into next scene: Motion continues seamlessly using match-cut, "
    "motion bridge, and audio bridge."
)
FORBIDDEN_LINE = (
    "STRICTLY FORBIDDEN: cartoon exaggeration, anime, game look, human dialogue, "
    "direct eye contact, camera awareness, breaking the fourth wall."
)

# Three timed shots per scene; the variant rotates with the scene number
SHOT_VARIATIONS = [
    ("[WIDE-SHOT]", "[MEDIUM-SHOT]", "[CLOSE-UP]"),
    ("[LOW-ANGLE]", "[TRACKING-SHOT]", "[MACRO-DETAIL]"),
    ("[BIRD-EYE]", "[D-MOTION]", "[EXTREME-CLOSE-UP]"),
    ("[HOLLYWOOD-DOLLY]", "[PAN-SHOT]", "[TILT-UP]"),
]

LANGUAGE_MAP = {
    "en": "English",
    "hi": "Hindi",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ar": "Arabic",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
}


def scenes_for_duration(duration_minutes: float, max_scenes: int = MAX_SCENES) -> int:
    """Scene count for a video length: 7.5 scenes per minute, at least 8, at most max_scenes."""
    scenes = max(math.ceil(duration_minutes * SCENES_PER_MINUTE), MIN_SCENES_FOR_DURATION)
    return min(scenes, max_scenes)


def resolve_language(code: str) -> str:
    return LANGUAGE_MAP.get((code or "").lower(), "English")
