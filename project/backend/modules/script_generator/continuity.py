"""
Continuity anchor construction.

The anchor is always derived from the last accumulated scene, with identity
locks taken from the first scene of the job.
"""

from typing import Any, Dict, List, Optional

from shared.models.script import ContinuityAnchor, GeneratedUnit

DEFAULT_ROLE = "Establish persistent role"
SUMMARY_LIMIT = 1200  # Characters of the last description carried forward


def _characters(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    characters = payload.get("characters_in_scene")
    if not isinstance(characters, list):
        return []
    return [c for c in characters if isinstance(c, dict)]


def build_continuity_anchor(
    units: List[GeneratedUnit],
    metadata: Optional[Dict[str, Any]] = None,
    main_subject: Optional[str] = None,
) -> Optional[ContinuityAnchor]:
    """
    Snapshot of where the story left off.

    Args:
        units: Accumulated units in order
        metadata: Script-level fields (title, synopsis) from the first batch
        main_subject: Subject name supplied by the caller

    Returns:
        ContinuityAnchor, or None when nothing has been accumulated yet
    """
    if not units:
        return None

    metadata = metadata or {}
    last = units[-1].payload
    blueprints = _characters(units[0].payload)

    visuals = last.get("visuals") if isinstance(last.get("visuals"), dict) else {}
    camera = last.get("camera") or last.get("cinematography_style") or "Standard Cinematic"

    return ContinuityAnchor(
        title=str(metadata.get("title") or ""),
        synopsis=str(metadata.get("synopsis") or ""),
        main_subject=main_subject or "",
        last_unit_summary=str(last.get("description") or "")[:SUMMARY_LIMIT],
        last_ordinal=units[-1].ordinal,
        camera_style=str(camera),
        environment_lock=str(visuals.get("environment") or "Same as previous"),
        character_blueprints=blueprints,
        physical_lock=" | ".join(str(c.get("identity_anchor_prompt") or "") for c in blueprints),
        role_lock=[
            {
                "name": str(c.get("name") or ""),
                "role": str(c.get("current_role") or c.get("role") or DEFAULT_ROLE),
            }
            for c in blueprints
        ],
    )
