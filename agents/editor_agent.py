"""Editor Agent: critique, directive-driven refinement, and surgical rewrites."""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from memory.context_window import bound_context
from tools.text_utils import count_words, tail

logger = logging.getLogger(__name__)

CRITIQUE_SAMPLE_CHARS = 5000
REFINE_CONTEXT_CHARS = 20_000
SELECTION_CONTEXT_CHARS = 1000


@dataclass(frozen=True)
class RefinementOption:
    id: str
    label: str
    description: str


REFINEMENT_OPTIONS: tuple[RefinementOption, ...] = (
    RefinementOption("sensory", "Sensory Immersion",
                     "Enhance sights, sounds, smells, and textures to make the scene visceral."),
    RefinementOption("psychology", "Psychological Depth",
                     "Deepen internal monologues, emotional reactions, and character subjectivity."),
    RefinementOption("dialogue", "Dialogue Expansion",
                     "Extend conversations, add subtext, and sharpen distinct character voices."),
    RefinementOption("environment", "Environmental Texture",
                     "Enrich world-building details and setting atmosphere."),
    RefinementOption("pacing", "Pacing & Tension",
                     "Adjust sentence rhythm to heighten suspense or improve narrative flow."),
    RefinementOption("show_dont_tell", "Show, Don't Tell",
                     "Convert summary exposition into active, unfolding scenes."),
)


def refinement_instructions(option_ids: list[str]) -> str:
    """Join the descriptions of the selected options, in catalogue order."""
    selected = set(option_ids)
    return " ".join(o.description for o in REFINEMENT_OPTIONS if o.id in selected)


@dataclass
class CritiquePoint:
    id: str
    quote: str
    comment: str
    type: str = "Prose"


def decode_critique(raw: Any) -> list[CritiquePoint]:
    """Accept a list of issues or ``{"issues": [...]}``; items without a comment are dropped."""
    items = raw.get("issues") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []
    points = []
    for item in items:
        if not isinstance(item, dict):
            continue
        comment = str(item.get("comment") or "").strip()
        if not comment:
            continue
        points.append(CritiquePoint(
            id=str(item.get("id") or len(points) + 1),
            quote=str(item.get("quote") or ""),
            comment=comment,
            type=str(item.get("type") or "Prose"),
        ))
    return points


def polish_instructions(points: list[CritiquePoint]) -> str:
    return "Fix these specific issues: " + " ".join(p.comment for p in points)


class EditorAgent(BaseAgent):
    """Quality passes over committed or freshly drafted chapters."""

    template_name = "editor"

    async def critique(self, text: str) -> list[CritiquePoint]:
        """Identify a handful of concrete issues. Returns ``[]`` on failure."""
        try:
            raw = await self.client.generate_json(
                self._section("Critique", text=text[:CRITIQUE_SAMPLE_CHARS]),
                model=self.settings.llm_model_analysis,
            )
        except LLMError as e:
            logger.warning("Critique failed: %s", e)
            return []
        points = decode_critique(raw)
        logger.info("Critique found %d issue(s)", len(points))
        return points

    def build_refinement_prompt(self, chapter_text: str, instructions: str,
                                style_dna: str, story_history: str) -> str:
        context = bound_context(
            story_history,
            budget=self.settings.context_max_chars,
            break_window=self.settings.context_break_window,
        )
        return self._section(
            "Refinement",
            style_dna=style_dna or "(not analyzed)",
            chapter_text=chapter_text,
            goals=instructions,
            word_count=count_words(chapter_text),
            context=tail(context, REFINE_CONTEXT_CHARS),
        )

    def refine_stream(self, chapter_text: str, instructions: str,
                      style_dna: str, story_history: str) -> AsyncIterator[str]:
        """Stream a rewritten chapter honoring ``instructions``."""
        prompt = self.build_refinement_prompt(chapter_text, instructions, style_dna, story_history)
        logger.info("Refining chapter: %d words, goals=%.80s", count_words(chapter_text), instructions)
        return self.client.stream(
            prompt,
            model=self.settings.llm_model_drafting,
            temperature=0.7,
        )

    async def refine_selection(self, selection: str, instruction: str, context: str) -> str:
        """Rewrite only ``selection``. Falls back to the selection unchanged on empty output."""
        text = await self.client.generate_once(
            self._section(
                "Selection Rewrite",
                context=tail(context, SELECTION_CONTEXT_CHARS),
                selection=selection,
                instruction=instruction,
            ),
            model=self.settings.llm_model_drafting,
        )
        return text.strip() or selection
