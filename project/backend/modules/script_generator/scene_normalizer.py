"""
Scene normalisation and script finalisation.

Providers return scenes in slightly different shapes. ensure_scene_fields maps
aliases, recovers narration, applies the voice setting and niche casting, and
fills every mandatory field so downstream consumers see one shape.
"""

import re
from typing import Any, Dict, List, Optional

from shared.logging import get_logger

from .config import (
    AMBIENT_ONLY_AUDIO,
    DEFAULT_CAMERA,
    DEFAULT_CTA,
    DEFAULT_HASHTAGS,
    DEFAULT_NARRATION,
    FORBIDDEN_LINE,
    RENDERING_STYLE,
    SCENE_DURATION,
    SHOT_VARIATIONS,
    TRANSITION_LINE,
    UNIT_KEY,
)

logger = get_logger("script_generator.scene_normalizer")

# camelCase -> snake_case aliases some providers emit
FIELD_ALIASES = {
    "sceneNumber": "scene_number",
    "sceneId": "scene_id",
    "renderingStyle": "rendering_style",
    "visualStyle": "visual_style",
    "cinematographyStyle": "cinematography_style",
    "audioMix": "audio_mix",
    "voiceOver": "voice_over",
    "narrationText": "narration_text",
    "charactersInScene": "characters_in_scene",
    "visualStates": "visual_states",
    "dialogueSummary": "dialogue_summary",
}

NICHE_ALIASES = {
    "monkey-village-cooking": "monkey-cooking",
    "animal-village-cooking": "animal-cooking",
    "historical-facts": "historical-mystery",
}

_NARRATION_LIKE = re.compile(r"\b(narration|voiceover|says|he says|she says|they say)\b", re.IGNORECASE)
_NO_SPEECH = re.compile(r"no speech", re.IGNORECASE)
_SCENE_PREFIX = re.compile(r"^SCENE \d+")

MONKEY_CAST = [
    {
        "name": "Lead Chef Monkey",
        "identity_anchor_prompt": (
            "A chimpanzee chef with a focused face (sharp features, deep-set eyes), body color of dark "
            "mahogany fur, and a lean, muscular body shape. Consistent fur patterns and facial structure."
        ),
        "current_action": "Managing the cooking process in the bamboo kitchen.",
        "visual_details": "Detailed fur textures, realistic simian movements.",
    },
    {
        "name": "Assistant Monkey",
        "identity_anchor_prompt": (
            "A smaller capuchin monkey with a playful face (large expressive eyes, flat nose), body color of "
            "light sandy-brown fur, and a petite, agile body shape. Wearing a green bandana."
        ),
        "current_action": "Assisting with ingredients and fire management.",
        "visual_details": "Active movements, interacting with environment.",
    },
]

ANIMAL_CAST = [
    {
        "name": "Chef Fox",
        "identity_anchor_prompt": (
            "A sophisticated fox with a sharp, elegant face (pointed muzzle, intelligent amber eyes), body "
            "color of vibrant orange and white fur, and a slender, upright body shape. Wearing a tiny baker's hat."
        ),
        "current_action": "Artfully preparing ingredients.",
        "visual_details": "Soft fur lighting, delicate paw coordination.",
    },
    {
        "name": "Baker Rabbit",
        "identity_anchor_prompt": (
            "A cute white rabbit with a soft, round face (large twitching nose, dark eyes), body color of pure "
            "snow-white fluffy fur, and a small, plump body shape. Wearing a floral vest."
        ),
        "current_action": "Handling baking tasks.",
        "visual_details": "Sub-surface scattering on ears, whimsical movement.",
    },
]

HISTORICAL_CAST = [
    {
        "name": "The Investigator",
        "identity_anchor_prompt": (
            "A middle-aged historian with sharp, observant eyes, wearing a vintage trench coat and a felt "
            "fedora. Consistent facial features and a lean, slightly hunched posture."
        ),
        "current_action": "Investigating the historical clues.",
        "visual_details": "Detailed fabric textures, expressive facial shadows.",
    },
]

HISTORICAL_SFX = [
    "Heavy rhythmic breathing",
    "Mechanical clicking of ancient mechanisms",
    "Echoing footsteps on stone",
    "Low-frequency subsonic drone",
]

DEFAULT_CHARACTER = {
    "name": "Main Character",
    "identity_anchor_prompt": (
        "A cinematic main character, consistent in appearance, clothing, and features throughout the video."
    ),
    "current_action": "Performing actions consistent with the scene description.",
    "visual_details": "Detailed high-fidelity features, consistent attire.",
}

DEFAULT_VISUALS = {
    "subject": "Main character and focal elements",
    "environment": "Consistent high-detail setting",
    "lighting_style": "Cinematic studio lighting",
    "color_palette": "Cohesive professional palette",
    "overall_aesthetic": "Ultra-realistic premium look",
}


def normalize_niche(niche: Optional[str]) -> Optional[str]:
    if not niche:
        return None
    return NICHE_ALIASES.get(niche, niche)


def _apply_aliases(scene: Dict[str, Any]) -> None:
    for alias, field in FIELD_ALIASES.items():
        if alias in scene and not scene.get(field):
            scene[field] = scene[alias]
        scene.pop(alias, None)


def _ensure_containers(scene: Dict[str, Any]) -> None:
    if not isinstance(scene.get("audio_mix"), dict):
        scene["audio_mix"] = {
            "ambience_track": {"primary_ambience": "", "volume_level": ""},
            "sfx_cues": [],
            "audio_content_in_English": "",
        }
    if not isinstance(scene.get("visuals"), dict):
        scene["visuals"] = {key: "" for key in DEFAULT_VISUALS}
    if not isinstance(scene.get("characters_in_scene"), list):
        scene["characters_in_scene"] = []
    scene["characters_in_scene"] = [c for c in scene["characters_in_scene"] if isinstance(c, dict)]
    if not isinstance(scene.get("visual_states"), list):
        scene["visual_states"] = []
    if not isinstance(scene.get("niche_optimization"), dict):
        scene["niche_optimization"] = {}


def _recover_narration(scene: Dict[str, Any]) -> None:
    if scene.get("narration_text"):
        return
    voice_over = scene.get("voice_over")
    if isinstance(voice_over, dict) and voice_over.get("text"):
        scene["narration_text"] = voice_over["text"]
    elif scene["audio_mix"].get("audio_content_in_English"):
        scene["narration_text"] = scene["audio_mix"]["audio_content_in_English"]


def _apply_voice_setting(scene: Dict[str, Any], voice_enabled: bool) -> None:
    audio_mix = scene["audio_mix"]
    if voice_enabled:
        audio_text = str(audio_mix.get("audio_content_in_English") or "").strip()
        if not scene.get("narration_text") and audio_text:
            scene["narration_text"] = audio_text
        return

    scene.pop("narration_text", None)
    scene.pop("voice_over", None)
    audio_text = str(audio_mix.get("audio_content_in_English") or "").strip()
    if not audio_text or _NARRATION_LIKE.search(audio_text):
        audio_mix["audio_content_in_English"] = AMBIENT_ONLY_AUDIO
    elif not _NO_SPEECH.search(audio_text):
        audio_mix["audio_content_in_English"] = f"{audio_text} (no speech)"

    if isinstance(scene.get("dialogue_summary"), str) and scene["dialogue_summary"].strip():
        scene["dialogue_summary"] = "Visual-only (no dialogue)."


def _cast_for(characters: List[Dict[str, Any]], cast: List[Dict[str, Any]], minimum: int) -> List[Dict[str, Any]]:
    """Fill the niche's default cast up to `minimum` members."""
    if len(characters) >= minimum:
        return characters
    if not characters:
        return [dict(member) for member in cast[:minimum]]
    present = {str(c.get("name", "")).lower() for c in characters}
    filled = list(characters)
    for member in cast:
        if len(filled) >= minimum:
            break
        if member["name"].lower() not in present:
            filled.append(dict(member))
    return filled


def _apply_niche(scene: Dict[str, Any], niche: Optional[str], subject_name: Optional[str]) -> None:
    visuals = scene["visuals"]

    if niche == "car-restoration" and subject_name:
        lower_car = subject_name.lower()
        if lower_car not in str(visuals.get("subject") or "").lower():
            detail = scene.get("visual_details") or "Restoration subject"
            visuals["subject"] = f"{subject_name} ({detail}), {visuals.get('subject') or ''}".strip().rstrip(",")
        if not any(lower_car in str(c.get("name", "")).lower() for c in scene["characters_in_scene"]):
            scene["characters_in_scene"].append({
                "name": subject_name,
                "identity_anchor_prompt": (
                    f"A classic {subject_name} in a specific state of restoration, maintained with absolute "
                    "consistency across all scenes (Visual Anchor)."
                ),
                "current_action": "Being restored in the workshop.",
                "visual_details": scene.get("visual_details") or "Original textures and metallic surfaces.",
            })

    elif niche == "monkey-cooking":
        scene["characters_in_scene"] = _cast_for(scene["characters_in_scene"], MONKEY_CAST, 2)

    elif niche == "animal-cooking":
        scene["characters_in_scene"] = _cast_for(scene["characters_in_scene"], ANIMAL_CAST, 2)

    elif niche == "historical-mystery":
        scene["characters_in_scene"] = _cast_for(scene["characters_in_scene"], HISTORICAL_CAST, 1)
        audio_mix = scene["audio_mix"]
        if not audio_mix.get("sfx_cues"):
            audio_mix["sfx_cues"] = list(HISTORICAL_SFX)
        if not audio_mix.get("music") or audio_mix.get("music") == "N/A":
            audio_mix["music"] = (
                "Haunting cello melody mixed with distant, distorted piano notes to evoke deep historical "
                "sorrow and high-stakes urgency."
            )
        lighting = str(visuals.get("lighting_style") or "")
        if "dark" not in lighting.lower() and "mysterious" not in lighting.lower():
            visuals["lighting_style"] = f"Mysterious and low-key lighting, {lighting}".strip().rstrip(",")


def _inject_identity(scene: Dict[str, Any]) -> None:
    """Put the main character's identity anchor and role into visuals.subject and the description."""
    if not scene["characters_in_scene"]:
        return
    main = scene["characters_in_scene"][0]
    name = str(main.get("name") or "Main Character")
    anchor = str(main.get("identity_anchor_prompt") or "")
    role = str(main.get("current_role") or main.get("role") or "")
    role_prefix = f"Role: {role} | " if role else ""

    visuals = scene["visuals"]
    subject = str(visuals.get("subject") or "")
    if not subject or len(subject) < 20 or name.lower() not in subject.lower():
        visuals["subject"] = f"{role_prefix}{name} (DNA: {anchor}), {subject}".strip().rstrip(",")
    elif anchor and anchor not in subject:
        visuals["subject"] = f"{role_prefix}{subject} (Visual Lock: {anchor})".strip()

    description = scene.get("description")
    if isinstance(description, str) and anchor and anchor not in description and len(description) > 50:
        scene["description"] = description.replace(
            "Ultra-realistic CGI:",
            f"Physical Lock & Role: {role_prefix}{anchor}\n\nUltra-realistic CGI:",
            1,
        )


def _fill_defaults(scene: Dict[str, Any]) -> None:
    scene.setdefault("dialogue_summary", "")
    if "Ultra-realistic CGI" not in str(scene.get("rendering_style") or ""):
        scene["rendering_style"] = RENDERING_STYLE
    if not scene.get("visual_style"):
        scene["visual_style"] = "Cinematic, high-fidelity atmosphere"
    if not scene.get("cinematography_style"):
        scene["cinematography_style"] = "Professional cinematic camera work"

    visuals = scene["visuals"]
    for key, default in DEFAULT_VISUALS.items():
        if not visuals.get(key):
            visuals[key] = default

    if not scene["characters_in_scene"]:
        scene["characters_in_scene"] = [dict(DEFAULT_CHARACTER)]
    if not scene.get("camera"):
        scene["camera"] = DEFAULT_CAMERA

    audio_mix = scene["audio_mix"]
    if not isinstance(audio_mix.get("ambience_track"), dict):
        audio_mix["ambience_track"] = {"primary_ambience": "Natural atmospheric hum", "volume_level": "0.2"}
    if not isinstance(audio_mix.get("sfx_cues"), list):
        audio_mix["sfx_cues"] = []
    if not audio_mix.get("audio_content_in_English"):
        audio_mix["audio_content_in_English"] = scene.get("narration_text") or DEFAULT_NARRATION


def format_description(scene: Dict[str, Any], scene_number: int) -> str:
    """Full description block with a camera-shot variant rotated by scene number."""
    wide, middle, close = SHOT_VARIATIONS[(scene_number - 1) % len(SHOT_VARIATIONS)]
    visuals = scene["visuals"]
    audio_mix = scene["audio_mix"]
    camera = scene.get("camera") or DEFAULT_CAMERA
    narration = scene.get("narration_text") or audio_mix.get("audio_content_in_English") or DEFAULT_NARRATION
    ambience = (audio_mix.get("ambience_track") or {}).get("primary_ambience") or "Natural atmospheric hum"
    sfx = ", ".join(str(cue) for cue in audio_mix.get("sfx_cues") or []) or "N/A"

    return "\n".join([
        f"SCENE {scene_number}",
        f"DURATION: {SCENE_DURATION}",
        f"VISUAL STYLE: {scene.get('visual_style')}",
        f"LIGHTING: {visuals.get('lighting_style')}",
        "",
        "CAMERA DIRECTION:",
        f"- (0s -> 3s) {wide}: {camera}",
        f"- (3s -> 6s) {middle}: Camera moves with deliberate speed, capturing textures and atmosphere.",
        f"- (6s -> 8s) {close}: Focus on micro-expressions and high-fidelity environmental details.",
        "",
        str(scene.get("description") or "Visual details for this scene."),
        "",
        f"{RENDERING_STYLE}.",
        "",
        FORBIDDEN_LINE,
        TRANSITION_LINE,
        "",
        "[CAMERA BEHAVIOR]",
        camera,
        "",
        "[NARRATION / VOICE OVER]",
        narration,
        "",
        "[AUDIO MIX]",
        f"Ambience: {ambience}",
        f"SFX: {sfx}",
        f"Narration (En): {narration}",
        f"Music: {audio_mix.get('music') or 'N/A'}",
    ])


def ensure_scene_fields(
    scene: Any,
    scene_number: int,
    niche: Optional[str] = None,
    subject_name: Optional[str] = None,
    voice_enabled: bool = True,
    style: str = "cinematic",
) -> Dict[str, Any]:
    """
    Normalise one scene in place and return it.

    Args:
        scene: Scene object as decoded from the provider
        scene_number: Ordinal assigned by the orchestrator
        niche: Niche slug (aliases accepted)
        subject_name: Main subject (car model for car-restoration)
        voice_enabled: False strips narration and keeps audio ambience-only
        style: Script tone recorded for traceability
    """
    if not isinstance(scene, dict):
        scene = {"description": str(scene)} if scene else {}

    niche = normalize_niche(niche)
    _apply_aliases(scene)
    _ensure_containers(scene)
    _recover_narration(scene)

    scene["scene_number"] = scene_number
    scene["scene_id"] = f"scene-{scene_number}"
    scene["duration"] = SCENE_DURATION

    _apply_voice_setting(scene, voice_enabled)
    scene["niche_optimization"]["script_tone"] = style
    scene["niche_optimization"]["voice_enabled"] = voice_enabled

    _apply_niche(scene, niche, subject_name)
    _inject_identity(scene)
    _fill_defaults(scene)

    description = str(scene.get("description") or "")
    if not _SCENE_PREFIX.match(description) and "CAMERA DIRECTION" not in description:
        scene["description"] = format_description(scene, scene_number)
    return scene


def renumber_scene(scene: Dict[str, Any], scene_number: int) -> Dict[str, Any]:
    """Apply the final ordinal to a scene, including its `SCENE n` description prefix."""
    scene["scene_number"] = scene_number
    scene["scene_id"] = f"scene-{scene_number}"
    description = scene.get("description")
    if isinstance(description, str):
        scene["description"] = _SCENE_PREFIX.sub(f"SCENE {scene_number}", description, count=1)
    return scene


def finalize_script(
    metadata: Dict[str, Any],
    scenes: List[Dict[str, Any]],
    topic: str,
    project_name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Assemble the final script with top-level defaults.

    Title falls back to project name or topic; hook, synopsis, cta and
    hashtags are derived when the provider left them empty.
    """
    script = {key: value for key, value in metadata.items() if key != UNIT_KEY}
    script[UNIT_KEY] = scenes

    first = scenes[0] if scenes else {}
    last = scenes[-1] if scenes else {}

    script["title"] = str(script.get("title") or project_name or topic or "Generated Script")

    if not str(script.get("hook") or "").strip():
        first_visuals = first.get("visuals") or {}
        hint = str(project_name or first_visuals.get("subject") or first.get("description") or topic or "")
        script["hook"] = hint[:140].strip()

    if not str(script.get("synopsis") or "").strip():
        environments = [
            str((scene.get("visuals") or {}).get("environment") or "")
            for scene in (first, last)
        ]
        environments = [env for env in environments if env]
        core = str(project_name or topic or script["title"]).strip()
        script["synopsis"] = f"{core} ({' -> '.join(environments)})" if environments else core

    if not str(script.get("cta") or "").strip():
        script["cta"] = DEFAULT_CTA

    if not isinstance(script.get("hashtags"), list) or not script["hashtags"]:
        script["hashtags"] = list(DEFAULT_HASHTAGS)

    logger.debug("Finalized script", extra={"scene_count": len(scenes), "title": script["title"]})
    return script
