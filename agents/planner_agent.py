"""Planner Agent: metadata detection, beat sheets, style DNA, and chaos twists."""

import json
import logging
from typing import Any

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from models.chapter import Choice
from models.enums import ChoiceType
from models.novel import Beat, NovelMetadata
from tools.text_utils import tail

logger = logging.getLogger(__name__)

STYLE_ANALYSIS_FAILED = "Style analysis failed."
CHAOS_CONTEXT_CHARS = 5000

_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "author": {"type": "string"},
        "genre": {"type": "string"},
        "synopsis": {"type": "string"},
        "themes": {"type": "string"},
        "characterArcs": {"type": "string"},
        "styleGoals": {"type": "string"},
    },
}

_BEATS_SCHEMA = {
    "type": "object",
    "properties": {
        "beats": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "description": {"type": "string"}},
            },
        },
    },
}

# Backend keys -> NovelMetadata fields
_METADATA_KEYS = {
    "title": "title",
    "author": "author",
    "genre": "genre",
    "synopsis": "synopsis",
    "themes": "themes",
    "characterArcs": "character_arcs",
    "styleGoals": "style_goals",
}


def placeholder_beats() -> list[Beat]:
    return [Beat(id="1", description="Start of story")]


def decode_beats(raw: Any) -> list[Beat]:
    """Accept ``{"beats": [...]}`` or a bare list; items without a description are dropped."""
    items = raw.get("beats") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []
    beats = []
    for item in items:
        if not isinstance(item, dict):
            continue
        description = str(item.get("description") or "").strip()
        if not description:
            continue
        beat_id = str(item.get("id") or len(beats) + 1)
        beats.append(Beat(id=beat_id, description=description))
    return beats


class PlannerAgent(BaseAgent):
    """Extraction-type calls run once per project, each with a safe fallback."""

    template_name = "planner"

    async def extract_metadata(self, manuscript: str) -> dict:
        """Detect metadata fields from the manuscript. Returns ``{}`` on failure.

        Keys match ``NovelMetadata`` field names; ``beat_sheet`` is included
        when the backend also proposed beats.
        """
        sample = manuscript[: self.settings.metadata_sample_chars]
        try:
            raw = await self.client.generate_json(
                self._section("Metadata Extraction", sample=sample),
                system_instruction=self._section("System Prompt"),
                model=self.settings.llm_model_analysis,
                response_schema=_METADATA_SCHEMA,
            )
        except LLMError as e:
            logger.warning("Metadata extraction failed, continuing with blanks: %s", e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Metadata extraction returned %s, ignoring", type(raw).__name__)
            return {}

        detected = {}
        for source_key, field_name in _METADATA_KEYS.items():
            value = raw.get(source_key) or raw.get(field_name)
            if isinstance(value, str) and value.strip():
                detected[field_name] = value.strip()
        beats = decode_beats(raw.get("beats"))
        if beats:
            detected["beat_sheet"] = beats
        logger.info("Metadata detected: %s", ", ".join(sorted(detected)) or "nothing")
        return detected

    async def generate_beat_sheet(self, manuscript: str, metadata: NovelMetadata) -> list[Beat]:
        """Structural beat sheet; a single placeholder beat on any failure."""
        try:
            raw = await self.client.generate_json(
                self._section(
                    "Beat Sheet",
                    title=metadata.title or "Untitled",
                    synopsis=metadata.synopsis or "(none)",
                    sample=manuscript,
                ),
                system_instruction=self._section("System Prompt"),
                model=self.settings.llm_model_analysis,
                response_schema=_BEATS_SCHEMA,
            )
        except LLMError as e:
            logger.warning("Beat sheet generation failed, using placeholder: %s", e)
            return placeholder_beats()
        beats = decode_beats(raw)
        if not beats:
            logger.warning("Beat sheet came back empty, using placeholder")
            return placeholder_beats()
        logger.info("Beat sheet generated: %d beats", len(beats))
        return beats

    async def analyze_style(self, sample: str) -> str:
        """Compute the Style DNA profile for the opening chunk."""
        try:
            text = await self.client.generate_once(
                self._section("Style Analysis Request", sample=sample[: self.settings.style_sample_chars]),
                system_instruction=self._section("Style Analysis System"),
                model=self.settings.llm_model_analysis,
                temperature=0.5,
            )
        except LLMError as e:
            logger.warning("Style analysis failed: %s", e)
            return STYLE_ANALYSIS_FAILED
        return text.strip() or STYLE_ANALYSIS_FAILED

    async def generate_chaos_twist(self, context: str, metadata: NovelMetadata) -> Choice:
        """One high-entropy twist choice, always tagged Chaos."""
        tone = metadata.config.tone if metadata.config else "Unspecified"
        try:
            raw = await self.client.generate_json(
                self._section("Chaos Twist", context=tail(context, CHAOS_CONTEXT_CHARS), tone=tone),
                model=self.settings.llm_model_analysis,
                temperature=1.5,
            )
        except LLMError as e:
            logger.warning("Chaos twist failed, using fallback: %s", e)
            return chaos_fallback()
        if not isinstance(raw, dict) or not str(raw.get("text") or "").strip():
            logger.warning("Chaos twist payload unusable: %.120s", json.dumps(raw, default=str))
            return chaos_fallback()
        return Choice(
            id=str(raw.get("id") or "CHAOS"),
            text=str(raw["text"]).strip(),
            rationale=str(raw.get("rationale") or ""),
            type=ChoiceType.CHAOS,
        )


def chaos_fallback() -> Choice:
    return Choice(
        id="CHAOS",
        text="A sudden, inexplicable event changes everything.",
        rationale="Engine fallback.",
        type=ChoiceType.CHAOS,
    )
