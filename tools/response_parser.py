"""Split and decode narrative responses: prose, delimiter, structured JSON.

The main narrative call is not schema-constrained: the backend is asked to
append ``STRATEGIC_SPLIT`` followed by a JSON payload after the prose. When
it forgets the delimiter, an ordered list of named fallback matchers tries
to locate where the JSON begins. Every function here is total: malformed
input degrades to a synthetic "Continue" choice instead of raising.
"""

import json
import logging
import re
import string
from dataclasses import dataclass, field
from typing import Any, Optional

from models.chapter import DEFAULT_PACING_SCORE, Choice, continue_choice
from models.enums import ChoiceType
from tools.json_utils import strip_code_fences

logger = logging.getLogger(__name__)

STRATEGIC_SPLIT = "|||STRATEGIC_SPLIT|||"

PACING_MIN = 1
PACING_MAX = 10


@dataclass(frozen=True)
class FallbackMatcher:
    """A named regex marking where an undelimited structured tail starts."""
    name: str
    pattern: re.Pattern

    def find(self, raw: str) -> Optional[int]:
        match = self.pattern.search(raw)
        return match.start() if match else None


# Order matters: the first matcher that hits wins.
FALLBACK_MATCHERS: tuple[FallbackMatcher, ...] = (
    FallbackMatcher("choice_array", re.compile(r'\[\s*\{\s*"id"\s*:')),
    FallbackMatcher("pacing_object", re.compile(r'\{\s*"pacingScore"')),
)


@dataclass
class SplitResult:
    prose: str
    structured_part: str
    matcher: Optional[str] = None  # "delimiter", a fallback name, or None


@dataclass
class StructuredPayload:
    choices: list[Choice] = field(default_factory=list)
    pacing_score: int = DEFAULT_PACING_SCORE
    degraded: bool = False


@dataclass
class ParsedResponse:
    prose: str
    structured_part: str
    choices: list[Choice]
    pacing_score: int = DEFAULT_PACING_SCORE
    degraded: bool = False
    matcher: Optional[str] = None


def split_response(raw: str, matchers: tuple[FallbackMatcher, ...] = FALLBACK_MATCHERS) -> SplitResult:
    """Split raw text into prose and structured tail."""
    raw = raw or ""
    index = raw.find(STRATEGIC_SPLIT)
    if index != -1:
        return SplitResult(
            prose=raw[:index],
            structured_part=raw[index + len(STRATEGIC_SPLIT):],
            matcher="delimiter",
        )

    for matcher in matchers:
        start = matcher.find(raw)
        if start is not None:
            logger.warning("Response delimiter missing, recovered with matcher '%s'", matcher.name)
            return SplitResult(prose=raw[:start], structured_part=raw[start:], matcher=matcher.name)

    return SplitResult(prose=raw, structured_part="", matcher=None)


def _clamp_pacing(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return DEFAULT_PACING_SCORE
    return max(PACING_MIN, min(PACING_MAX, score))


def decode_choice(item: Any, position: int) -> Optional[Choice]:
    """Coerce one backend choice object; non-dicts and textless items yield None."""
    if not isinstance(item, dict):
        return None
    text = str(item.get("text") or "").strip()
    if not text:
        return None
    choice_id = str(item.get("id") or "").strip()
    if not choice_id:
        choice_id = string.ascii_uppercase[position % 26]
    try:
        choice_type = ChoiceType(item.get("type"))
    except ValueError:
        choice_type = ChoiceType.OTHER
    return Choice(
        id=choice_id,
        text=text,
        rationale=str(item.get("rationale") or ""),
        type=choice_type,
    )


def _decode_choices(items: Any) -> list[Choice]:
    if not isinstance(items, list):
        return []
    choices = []
    for item in items:
        choice = decode_choice(item, len(choices))
        if choice is not None:
            choices.append(choice)
    return choices


def decode_structured(structured_part: str) -> StructuredPayload:
    """Decode the structured tail into choices and a pacing score."""
    cleaned = strip_code_fences(structured_part)
    if not cleaned:
        return StructuredPayload(choices=[continue_choice("Auto")], degraded=True)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Structured segment is not valid JSON: %s (%.120r)", e, cleaned)
        return StructuredPayload(choices=[continue_choice("Parse Error")], degraded=True)

    if isinstance(parsed, list):
        return StructuredPayload(choices=_decode_choices(parsed))
    if isinstance(parsed, dict):
        pacing = parsed.get("pacingScore")
        return StructuredPayload(
            choices=_decode_choices(parsed.get("choices", [])),
            pacing_score=_clamp_pacing(pacing) if pacing is not None else DEFAULT_PACING_SCORE,
        )

    logger.warning("Structured segment decoded to unexpected %s", type(parsed).__name__)
    return StructuredPayload(choices=[continue_choice("Parse Error")], degraded=True)


def parse_response(raw: str) -> ParsedResponse:
    """Full pipeline: split, then decode. Never raises."""
    split = split_response(raw)
    payload = decode_structured(split.structured_part)
    return ParsedResponse(
        prose=split.prose.strip(),
        structured_part=split.structured_part,
        choices=payload.choices,
        pacing_score=payload.pacing_score,
        degraded=payload.degraded,
        matcher=split.matcher,
    )


def visible_projection(raw: str) -> str:
    """What the reader may see mid-stream: text up to the first delimiter."""
    raw = raw or ""
    index = raw.find(STRATEGIC_SPLIT)
    return raw if index == -1 else raw[:index]
