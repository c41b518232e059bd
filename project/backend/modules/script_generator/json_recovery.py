"""
Resilient JSON decoding for LLM output.

Provider responses are frequently wrapped in markdown, carry raw newlines or
unescaped quotes inside strings, or are cut off mid-object when the token
budget runs out. ResilientJsonDecoder turns such text into the best structured
value it can and always reports how much of it can be trusted
(clean / repaired / partial_extraction / fallback). It never raises.

Stages run in order; each is a standalone function:

1. strip_code_fences
2. strict_parse of the fence-stripped text (lossless fast path)
3. remove_control_chars
4. clean_string_literals
5. fix_structure (outside string literals only)
6. locate_json_start
7. strict_parse of the cleaned candidate
8. close_truncated
9. extract_partial_units
10. placeholder from the fallback factory
"""

import copy
import json
import re
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from shared.logging import get_logger
from shared.models.script import RecoveredValue, RecoveryMode

from .config import (
    AMBIENT_ONLY_AUDIO,
    DEFAULT_CAMERA,
    MAX_CUT_ATTEMPTS,
    MAX_NESTING_DEPTH,
    ORDINAL_KEYS,
    RENDERING_STYLE,
    SCENE_DURATION,
    UNIT_KEY,
)

logger = get_logger("script_generator.json_recovery")

_FENCE_START = re.compile(r"^\s*```[a-zA-Z]*\s*")
_FENCE_END = re.compile(r"\s*```\s*$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]+")
_STRING_SPECIAL = re.compile(r'["\\]')
_HEX4 = re.compile(r"[0-9a-fA-F]{4}")
_WHITESPACE_RUN = re.compile(r"\s+")
_NEXT_SIGNIFICANT = re.compile(r"\s*(.?)", re.DOTALL)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_\-]*)(\s*:)")
_STRUCTURAL = re.compile(r'[\\"{}\[\],]')

_CLOSERS = {"{": "}", "[": "]"}


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence, a trailing ``` fence and outer whitespace."""
    text = _FENCE_START.sub("", text, count=1)
    text = _FENCE_END.sub("", text, count=1)
    return text.strip()


def strict_parse(text: str, allow_trailing: bool = False) -> Optional[Any]:
    """
    Parse `text` as JSON, returning None unless the result is an object or array.

    Args:
        text: Candidate JSON text
        allow_trailing: Accept trailing non-JSON text after the first value
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        if not allow_trailing or e.msg != "Extra data":
            return None
        try:
            value, _ = json.JSONDecoder().raw_decode(text)
        except (ValueError, RecursionError):
            return None
    except (ValueError, RecursionError):
        return None
    return value if isinstance(value, (dict, list)) else None


def remove_control_chars(text: str) -> str:
    """Drop C0 control characters that JSON never allows (tab, LF and CR are kept)."""
    return _CONTROL_CHARS.sub("", text)


def _closes_string(text: str, pos: int) -> bool:
    """A quote closes a string when the next significant char can follow a string."""
    match = _NEXT_SIGNIFICANT.match(text, pos)
    following = match.group(1) if match else ""
    return following == "" or following in ",:}]"


def clean_string_literals(text: str) -> str:
    """
    Normalise the contents of every string literal.

    Newlines, tabs and CRs become spaces, backslash escapes are dropped (valid
    \\uXXXX escapes are kept), embedded double quotes become single quotes and
    whitespace runs collapse. A quote only ends a string when it is followed by
    `,` `:` `}` `]` or the end of the text; any other quote is embedded.
    """
    out: List[str] = []
    length = len(text)
    i = 0
    while i < length:
        quote = text.find('"', i)
        if quote == -1:
            out.append(text[i:])
            break
        out.append(text[i:quote])

        j = quote + 1
        buf: List[str] = []
        closed = False
        while j < length:
            match = _STRING_SPECIAL.search(text, j)
            if match is None:
                buf.append(text[j:])
                j = length
                break
            k = match.start()
            buf.append(text[j:k])
            if match.group() == "\\":
                nxt = text[k + 1:k + 2]
                if nxt == "u" and _HEX4.match(text, k + 2):
                    buf.append(text[k:k + 6])
                    j = k + 6
                    continue
                if nxt == '"':
                    buf.append("'")
                elif nxt in ("n", "t", "r", "b", "f"):
                    buf.append(" ")
                elif nxt != "\\":
                    buf.append(nxt)
                j = k + 2
                continue
            if _closes_string(text, k + 1):
                closed = True
                j = k + 1
                break
            buf.append("'")
            j = k + 1

        content = _WHITESPACE_RUN.sub(" ", "".join(buf))
        if closed:
            content = content.strip()
        out.append('"' + content + ('"' if closed else ""))
        i = j
    return "".join(out)


def fix_structure(text: str) -> str:
    """
    Drop trailing commas and quote bare object keys, outside string literals only.

    Expects output of clean_string_literals, where `"` only delimits strings.
    """
    segments = text.split('"')
    for index in range(0, len(segments), 2):
        segment = _TRAILING_COMMA.sub(r"\1", segments[index])
        segments[index] = _UNQUOTED_KEY.sub(r'\1"\2"\3', segment)
    return '"'.join(segments)


def locate_json_start(text: str) -> int:
    """Index of the earlier of the first `{` / `[`, or -1."""
    positions = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    return min(positions) if positions else -1


class _ScanState:
    """Structural scan of JSON-ish text: open containers and safe cut points."""

    def __init__(self, text: str, max_depth: int, max_cuts: int):
        self.stack: List[str] = []
        self.in_string = False
        self.balanced = True
        self.too_deep = False
        self.cut_points: Deque[Tuple[int, str]] = deque(maxlen=max_cuts)

        skip_until = -1
        for match in _STRUCTURAL.finditer(text):
            pos = match.start()
            if pos < skip_until:
                continue
            char = match.group()
            if self.in_string:
                if char == "\\":
                    skip_until = pos + 2
                elif char == '"':
                    self.in_string = False
                continue
            if char == '"':
                self.in_string = True
            elif char in "{[":
                self.stack.append(char)
                if len(self.stack) > max_depth:
                    self.too_deep = True
                    return
            elif char in "}]":
                if not self.stack or _CLOSERS[self.stack[-1]] != char:
                    self.balanced = False
                    return
                self.stack.pop()
                if self.stack:
                    self.cut_points.append((match.end(), "".join(self.stack)))
            elif char == "," and self.stack:
                self.cut_points.append((pos, "".join(self.stack)))


def _closing_suffix(stack: Sequence[str]) -> str:
    return "".join(_CLOSERS[char] for char in reversed(stack))


def _tidy_tail(text: str) -> str:
    """Remove a dangling comma, or complete a dangling `key:` with null."""
    text = text.rstrip()
    if text.endswith(","):
        return text[:-1]
    if text.endswith(":"):
        return text + " null"
    return text


def close_truncated(
    text: str,
    max_depth: int = MAX_NESTING_DEPTH,
    max_cuts: int = MAX_CUT_ATTEMPTS,
) -> Optional[Any]:
    """
    Repair text that was cut off mid-structure.

    First closes an unterminated string and appends the exact closers in stack
    order. If that does not parse, cuts back to recent complete-member
    boundaries and closes from there.

    Returns:
        Parsed object/array, or None when the text cannot be closed
    """
    state = _ScanState(text, max_depth, max_cuts)
    if state.too_deep or not state.balanced:
        return None

    if state.stack or state.in_string:
        candidate = text + ('"' if state.in_string else "")
        value = strict_parse(_tidy_tail(candidate) + _closing_suffix(state.stack))
        if value is not None:
            return value

    for cut, stack in reversed(state.cut_points):
        value = strict_parse(_tidy_tail(text[:cut]) + _closing_suffix(stack))
        if value is not None:
            return value
    return None


def _balanced_end(text: str, start: int, max_depth: int) -> int:
    """End index (exclusive) of the container opening at `start`, or -1."""
    depth = 0
    in_string = False
    skip_until = -1
    for match in _STRUCTURAL.finditer(text, start):
        pos = match.start()
        if pos < skip_until:
            continue
        char = match.group()
        if in_string:
            if char == "\\":
                skip_until = pos + 2
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
            if depth > max_depth:
                return -1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return match.end()
    return -1


def extract_partial_units(
    text: str,
    ordinal_keys: Sequence[str] = ORDINAL_KEYS,
    max_depth: int = MAX_NESTING_DEPTH,
    max_failures: int = MAX_CUT_ATTEMPTS,
) -> List[Dict[str, Any]]:
    """
    Recover complete unit objects that begin with an ordinal key.

    Each `{"<ordinal_key>": ...}` object is located, balanced and parsed on
    its own; objects that do not parse are skipped. Scanning stops after
    `max_failures` unbalanced or unparseable candidates.
    """
    keys = "|".join(re.escape(key) for key in ordinal_keys)
    pattern = re.compile(r'\{\s*"(?:' + keys + r')"\s*:')

    units: List[Dict[str, Any]] = []
    failures = 0
    pos = 0
    while failures < max_failures:
        match = pattern.search(text, pos)
        if match is None:
            break
        end = _balanced_end(text, match.start(), max_depth)
        if end == -1:
            failures += 1
            pos = match.end()
            continue
        value = strict_parse(text[match.start():end])
        if isinstance(value, dict):
            units.append(value)
            pos = end
        else:
            failures += 1
            pos = match.end()
    return units


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

def placeholder_scene(scene_number: int = 1) -> Dict[str, Any]:
    """Minimal scene used when nothing could be recovered."""
    return {
        "scene_number": scene_number,
        "scene_id": f"scene-{scene_number}",
        "dialogue_summary": "",
        "duration": SCENE_DURATION,
        "description": "Script generation encountered JSON parsing issues. Please try again with a simpler prompt.",
        "rendering_style": RENDERING_STYLE,
        "visual_style": "Cinematic atmosphere",
        "cinematography_style": "Professional camera work",
        "visuals": {
            "subject": "Main character",
            "environment": "Consistent setting",
            "lighting_style": "Cinematic lighting",
            "color_palette": "Professional palette",
            "overall_aesthetic": "Ultra-realistic look",
        },
        "niche_optimization": {},
        "characters_in_scene": [],
        "visual_states": [],
        "camera": DEFAULT_CAMERA,
        "audio_mix": {
            "ambience_track": {"primary_ambience": "Natural atmosphere", "volume_level": "0.2"},
            "sfx_cues": [],
            "audio_content_in_English": AMBIENT_ONLY_AUDIO,
        },
    }


def placeholder_script() -> Dict[str, Any]:
    return {
        UNIT_KEY: [placeholder_scene(1)],
        "title": "Generated Script",
        "synopsis": "Script generation encountered parsing issues",
        "hook": "",
        "cta": "",
        "hashtags": [],
    }


class ResilientJsonDecoder:
    """
    Staged best-effort decoder.

    Args:
        unit_key: Container key holding the list of units
        ordinal_keys: Keys that open a unit object, used for partial extraction
        fallback_factory: Builds the placeholder value for the fallback stage
        max_depth: Nesting limit for repair and extraction scans
        max_cut_attempts: Cut-back points tried when closing truncated text
    """

    def __init__(
        self,
        unit_key: str = UNIT_KEY,
        ordinal_keys: Sequence[str] = ORDINAL_KEYS,
        fallback_factory: Optional[Callable[[], Any]] = None,
        max_depth: int = MAX_NESTING_DEPTH,
        max_cut_attempts: int = MAX_CUT_ATTEMPTS,
    ):
        self.unit_key = unit_key
        self.ordinal_keys = tuple(ordinal_keys)
        self.fallback_factory = fallback_factory or (lambda: {unit_key: [{}]})
        self.max_depth = max_depth
        self.max_cut_attempts = max_cut_attempts

    def _has_units(self, value: Any) -> bool:
        if isinstance(value, list):
            return len(value) > 0
        if isinstance(value, dict):
            units = value.get(self.unit_key)
            if isinstance(units, list):
                return len(units) > 0
            return any(key in value for key in self.ordinal_keys)
        return False

    def _fallback(self, detail: str) -> RecoveredValue:
        logger.warning("JSON recovery fell back to placeholder", extra={"detail": detail})
        return RecoveredValue(value=copy.deepcopy(self.fallback_factory()), mode=RecoveryMode.FALLBACK, detail=detail)

    def decode(self, raw: Optional[str]) -> RecoveredValue:
        """
        Decode raw provider text. Never raises.

        Returns:
            RecoveredValue with the value and the recovery mode used
        """
        try:
            return self._decode(raw)
        except Exception as e:  # Decoding must never fail the caller
            logger.error("JSON recovery crashed", extra={"error": str(e)}, exc_info=True)
            return self._fallback(f"decoder error: {type(e).__name__}")

    def _decode(self, raw: Optional[str]) -> RecoveredValue:
        if not raw or not raw.strip():
            return self._fallback("empty response")

        stripped = strip_code_fences(raw)
        value = strict_parse(stripped)
        if value is not None:
            return RecoveredValue(value=value, mode=RecoveryMode.CLEAN)

        cleaned = fix_structure(clean_string_literals(remove_control_chars(stripped)))
        start = locate_json_start(cleaned)
        if start == -1:
            return self._fallback("no JSON structure found")
        candidate = cleaned[start:]

        value = strict_parse(candidate, allow_trailing=True)
        if value is not None:
            return RecoveredValue(value=value, mode=RecoveryMode.CLEAN, detail="normalised before parsing")

        repaired = close_truncated(candidate, self.max_depth, self.max_cut_attempts)
        if repaired is not None and self._has_units(repaired):
            return RecoveredValue(value=repaired, mode=RecoveryMode.REPAIRED, detail="closed truncated structure")

        # A repair that lost every unit is only used when no complete unit can be extracted
        units = extract_partial_units(candidate, self.ordinal_keys, self.max_depth, self.max_cut_attempts)
        if units:
            logger.info(
                "Recovered partial units from malformed JSON",
                extra={"unit_count": len(units), "raw_length": len(raw)}
            )
            return RecoveredValue(
                value={self.unit_key: units},
                mode=RecoveryMode.PARTIAL_EXTRACTION,
                detail=f"extracted {len(units)} complete units",
            )

        if repaired is not None:
            return RecoveredValue(value=repaired, mode=RecoveryMode.REPAIRED, detail="closed truncated structure")

        return self._fallback("unrecoverable JSON")


_default_decoder = ResilientJsonDecoder(fallback_factory=placeholder_script)


def decode(raw: Optional[str]) -> RecoveredValue:
    """Decode a scene-script response with the default decoder."""
    return _default_decoder.decode(raw)
