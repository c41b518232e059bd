"""
Prompt construction for scene-script generation.

The first batch gets the full system prompt; continuation batches get the lite
prompt plus a continuity anchor describing where the story left off.
"""

import json
from typing import Dict, List, Optional

from shared.models.script import ContinuityAnchor

MASTER_RULES = """
You are a professional cinematic scriptwriter and director for a high-end faceless video system.
Produce ONE seamless, continuous short film broken into sequential 8-second scenes.

CORE RULES:
1. Continuous narrative: every scene follows logically from the previous one, with no skipped steps.
   Process stories (restoration, building, exploration) follow a documentary progression:
   discovery, transport, inspection, cleaning, preparation, the work itself, assembly, reveal.
2. Each scene is exactly 8 seconds and contains 3 to 4 distinct timed camera shots,
   formatted as: (0s -> 3s) [SHOT TYPE]: detail. Do not repeat the opening shot type of the previous scene.
3. Narration: human, documentary-style voiceover placed in audio_mix.audio_content_in_English.
   Never open with "In this scene" or "Now we see".
4. Continuity lock: characters keep identical face, body color and body shape in every scene.
   Each character has a 30-50 word identity_anchor_prompt that never changes, and a role that never changes.
   Repeat the same identity_anchor_prompt in characters_in_scene for every scene and reuse it in visuals.subject.
5. Environment lock: repeat the core environment details (lighting, layout, props) in visuals.environment.
6. The story always moves forward in time. Never repeat or regenerate an earlier action.
7. Every scene ends flowing into the next: match-cut, motion bridge and audio bridge.
8. rendering_style is always "Ultra-realistic CGI: High-quality video rendering with professional production values".
9. Output ONLY JSON. No subtitles or on-screen text.
"""

SCENE_SCHEMA_GUIDE = """
OUTPUT FORMAT (STRICT): Return ONE JSON object with this shape:
{
  "title": "string",
  "synopsis": "string",
  "hook": "string",
  "cta": "string",
  "hashtags": ["string"],
  "scenes": [
    {
      "scene_number": 1,
      "scene_id": "scene-1",
      "duration": "8s",
      "description": "1-2 short sentences describing what happens",
      "rendering_style": "Ultra-realistic CGI: High-quality video rendering with professional production values",
      "visual_style": "string",
      "cinematography_style": "string",
      "visuals": {
        "subject": "string",
        "environment": "string",
        "lighting_style": "string",
        "color_palette": "string",
        "overall_aesthetic": "string"
      },
      "characters_in_scene": [
        {"name": "string", "identity_anchor_prompt": "string", "current_action": "string", "visual_details": "string"}
      ],
      "visual_states": [],
      "camera": "string",
      "audio_mix": {
        "ambience_track": {"primary_ambience": "string", "volume_level": "0.2"},
        "sfx_cues": ["string"],
        "audio_content_in_English": "Short narration for this scene"
      }
    }
  ]
}
RULES:
- Output ONLY valid JSON (no markdown, no commentary)
- No trailing commas
- Keep text short to avoid truncation
- Scenes must be sequential and exactly 8 seconds each
"""

JSON_GUARD = """
CRITICAL JSON REQUIREMENTS:
- Return ONLY valid JSON, no markdown code blocks, no text before or after
- Escape quotes properly; avoid backslashes and control characters in text
- Keep descriptions to 1-2 sentences and camera notes under 20 words
- Keep narration under 30 words per scene
- Close all brackets and braces; prioritise completeness over detail
"""

NICHE_RULES: Dict[str, str] = {
    "car-restoration": """
CAR RESTORATION NICHE RULES:
- The CAR is the main character and identity anchor: same model, year, trim and body shape throughout
- Sequence: discovery, transport, inspection, cleaning/stripping, preparation, repair, assembly, reveal
- Track the car's state scene by scene (rusty, stripped, primed, painted)
- Authentic workshop atmosphere, close-ups of mechanical work
- Include the car in characters_in_scene as a persistent entity
""",
    "monkey-cooking": """
MONKEY VILLAGE COOKING NICHE RULES:
- Several monkey characters with fixed identity anchors (face, fur color, proportions, accessories)
- Jungle bamboo kitchen, natural ingredients, traditional methods
- ASMR focus: chopping, sizzling, bubbling; show teamwork between the monkeys
""",
    "animal-cooking": """
ANIMAL VILLAGE COOKING NICHE RULES:
- Several animal characters (fox, rabbit, bear...) with consistent clothing and accessories
- Cozy, wholesome, slightly magical village kitchen with warm lighting
- Focus on friendship and cooperation
""",
    "historical-mystery": """
HISTORICAL MYSTERY NICHE RULES:
- Suspense mode: dark chiaroscuro lighting, Dutch angles, macro zooms
- Ancient artifacts, documents and locations with weathered textures
- Micro-expressions of tension; ASMR breathing, clicks and echoing footsteps
- Hushed, intense narration; haunting cello or distorted piano score
""",
    "animal-rescue": """
ANIMAL RESCUE (VISUAL-ONLY) NICHE RULES:
- No dialogue, no narration, no on-screen text; the story is told visually
- Arc: vulnerability, urgency, near-loss, commitment, decisive rescue, proof-of-safety ending
- Consistent animal markings; keep the number of animals constant
- audio_mix.audio_content_in_English describes ambience and SFX only
""",
}

GENERAL_NICHE_RULES = """
GENERAL NICHE RULES:
- Professional cinematic quality with clear storytelling progression
- Varied camera angles and detailed environments
- Consistent characters and an engaging narrative flow
"""

NICHE_METADATA: Dict[str, Dict[str, object]] = {
    "car-restoration": {
        "name": "Car Restoration",
        "complexity": "Advanced",
        "key_features": ["Logical Progression", "Car Identity Anchor", "Workshop Atmosphere"],
    },
    "monkey-cooking": {
        "name": "Monkey Village Cooking",
        "complexity": "Intermediate",
        "key_features": ["Multi-Character", "ASMR Focus", "Jungle Kitchen"],
    },
    "animal-cooking": {
        "name": "Animal Village Cooking",
        "complexity": "Beginner",
        "key_features": ["Wholesome Story", "Magical Elements", "Cozy Atmosphere"],
    },
    "historical-mystery": {
        "name": "Historical Mystery",
        "complexity": "Advanced",
        "key_features": ["Suspense Mode", "Chiaroscuro Lighting", "Psychological Depth"],
    },
    "animal-rescue": {
        "name": "Animal Rescue",
        "complexity": "Advanced",
        "key_features": ["Visual-Only Storytelling", "Continuity Lock", "Proof-of-Safety Ending"],
    },
}

GENERAL_METADATA = {"name": "General", "complexity": "Beginner", "key_features": ["Standard Storytelling"]}


def get_niche_rules(niche: Optional[str], override: Optional[str] = None) -> str:
    if override:
        return override
    return NICHE_RULES.get(niche or "", GENERAL_NICHE_RULES)


def _voice_rules(voice_enabled: bool, lite: bool) -> str:
    if voice_enabled:
        if lite:
            return "Voice Over: ENABLED. Keep narration concise and consistent with the selected tone."
        return (
            "Voice Over: ENABLED.\n"
            "- Write narration consistent with the selected tone.\n"
            "- Put narration in scene.narration_text AND in scene.audio_mix.audio_content_in_English.\n"
            "- Keep narration concise (<= 30 words per scene)."
        )
    if lite:
        return "Voice Over: DISABLED. No speech; audio_mix.audio_content_in_English must be ambience/SFX only."
    return (
        "Voice Over: DISABLED.\n"
        "- NO spoken narration or dialogue, and no narration_text.\n"
        "- audio_mix.audio_content_in_English describes ambience/SFX only, e.g. "
        "\"Ambient audio only: wind, distant traffic; no speech.\""
    )


def build_system_prompt(
    niche: Optional[str],
    num_scenes: int,
    style: str = "cinematic",
    voice_enabled: bool = True,
    language: str = "English",
    sub_niche: Optional[str] = None,
    niche_override: Optional[str] = None,
    lite: bool = False,
) -> str:
    """
    System prompt for a scene-script batch.

    Args:
        lite: Shorter variant used for continuation batches
    """
    sub = f" (Sub-Category: {sub_niche})" if sub_niche else ""
    parts = [
        MASTER_RULES,
        get_niche_rules(niche, niche_override),
    ]
    if not lite:
        metadata = NICHE_METADATA.get(niche or "", GENERAL_METADATA)
        parts.append(
            "NICHE METADATA:\n"
            f"- Selected Niche: {metadata['name']}\n"
            f"- Expected Complexity: {metadata['complexity']}\n"
            f"- Key Features: {', '.join(metadata['key_features'])}"
        )
    parts.append(
        "SCRIPT TONE LOCK:\n"
        f"- Selected Script Tone: {style}\n"
        "- Keep this tone consistent across ALL scenes."
    )
    parts.append(f"Niche: {niche or 'general'}{sub}\nTotal Scenes in this video: {num_scenes}\nLanguage: {language}.")
    parts.append(_voice_rules(voice_enabled, lite))
    parts.append(SCENE_SCHEMA_GUIDE)
    parts.append(JSON_GUARD)
    return "\n".join(parts)


def build_first_batch_prompt(topic: str, count: int, subject_name: Optional[str] = None) -> str:
    return (
        f'Generate scenes 1 to {count} (exactly {count} scenes) for topic: "{topic}".\n'
        f"Subject: {subject_name or 'Main character'}.\n\n"
        "STRICT REQUIREMENTS:\n"
        "- Return ONE valid JSON object only.\n"
        f"- scenes must be an array of exactly {count} scene objects.\n"
        "- Keep description + camera + narration SHORT.\n"
        "- Scene numbering must start at 1 and increment by 1.\n"
    )


def build_continuation_prompt(start: int, end: int, anchor: Optional[ContinuityAnchor]) -> str:
    count = end - start + 1
    prompt = (
        f"Generate scenes {start} to {end} (exactly {count} scenes) continuing the same story.\n\n"
        "STRICT REQUIREMENTS:\n"
        '- Return ONE valid JSON object only with key "scenes".\n'
        f"- scenes must be an array of exactly {count} scene objects.\n"
        f"- Scene numbering must start at {start} and increment by 1.\n"
        "- Keep description + camera + narration SHORT.\n"
        "- Maintain continuity with previous scenes.\n"
    )
    if anchor is not None:
        prompt += (
            "\nPrevious Scene Context (for continuity only):\n"
            f"{json.dumps(anchor.model_dump(), indent=2, ensure_ascii=False)}\n"
        )
    return prompt


def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
