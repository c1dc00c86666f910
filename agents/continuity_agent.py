"""Continuity Agent: lore extraction, beat consistency guard, and story Q&A."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from models.character import CharacterStatus, LoreEntry
from models.novel import Beat
from tools.text_utils import tail

logger = logging.getLogger(__name__)

LORE_SAMPLE_CHARS = 50_000
QUESTION_CONTEXT_CHARS = 20_000
NO_ANSWER = "I couldn't find that in the archives."

_LORE_SCHEMA = {
    "type": "object",
    "properties": {
        "lore": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "key": {"type": "string"},
                    "category": {"type": "string"},
                    "description": {"type": "string"},
                },
            },
        },
        "characters": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "status": {"type": "string"},
                    "location": {"type": "string"},
                    "goal": {"type": "string"},
                    "inventory": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}

_CONSISTENCY_SCHEMA = {
    "type": "object",
    "properties": {
        "safe": {"type": "boolean"},
        "issues": {"type": "array", "items": {"type": "string"}},
    },
}


@dataclass
class ConsistencyReport:
    safe: bool = True
    issues: list[str] = field(default_factory=list)


def decode_consistency(raw: Any) -> ConsistencyReport:
    """Unsafe only when the payload reports issues or says so explicitly."""
    if not isinstance(raw, dict):
        return ConsistencyReport()
    issues_raw = raw.get("issues")
    issues = [str(i).strip() for i in issues_raw if str(i).strip()] if isinstance(issues_raw, list) else []
    safe = raw.get("safe")
    if safe is False and not issues:
        issues = ["Unspecified continuity conflict"]
    return ConsistencyReport(safe=not issues, issues=issues)


def _format_lore(lore: list[LoreEntry]) -> str:
    if not lore:
        return "(empty)"
    return "\n".join(f"- {e.key} ({e.category}): {e.description}" for e in lore)


def _format_characters(characters: list[CharacterStatus]) -> str:
    if not characters:
        return "(empty)"
    return "\n".join(
        f"- {c.name}: {c.status}, at {c.location}, goal: {c.goal}, carrying: {', '.join(c.inventory) or 'nothing'}"
        for c in characters
    )


class ContinuityAgent(BaseAgent):
    """Keeps the World Bible current and checks plans against it."""

    template_name = "continuity"

    async def extract_updates(self, text: str) -> Any:
        """Raw lore/character payload for the knowledge store.

        Raises ``LLMError`` on failure; callers run this detached and the
        store logs and drops failures.
        """
        return await self.client.generate_json(
            self._section("Lore Extraction", text=text[:LORE_SAMPLE_CHARS]),
            model=self.settings.llm_model_analysis,
            response_schema=_LORE_SCHEMA,
        )

    async def check_beat_consistency(
        self,
        beat: Beat,
        lore: list[LoreEntry],
        characters: list[CharacterStatus],
    ) -> ConsistencyReport:
        """Flag contradictions between a planned beat and the World Bible.

        A failing check is reported as safe so tooling never blocks a batch.
        """
        try:
            raw = await self.client.generate_json(
                self._section(
                    "Consistency Check",
                    beat=beat.description,
                    lore=_format_lore(lore),
                    characters=_format_characters(characters),
                ),
                model=self.settings.llm_model_analysis,
                response_schema=_CONSISTENCY_SCHEMA,
            )
        except LLMError as e:
            logger.warning("Consistency check skipped for beat %s: %s", beat.id, e)
            return ConsistencyReport()
        report = decode_consistency(raw)
        if not report.safe:
            logger.info("Beat %s flagged: %d issue(s)", beat.id, len(report.issues))
        return report

    async def ask(self, question: str, context: str, lore: Optional[list[LoreEntry]] = None) -> str:
        """Answer a question about the story from recent text and lore."""
        text = await self.client.generate_once(
            self._section(
                "Story Question",
                lore=_format_lore(lore or []),
                context=tail(context, QUESTION_CONTEXT_CHARS),
                question=question,
            ),
            model=self.settings.llm_model_drafting,
        )
        return text.strip() or NO_ANSWER
