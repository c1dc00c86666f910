"""Writer Agent: streaming chapter generation for setup, continuation, and beats."""

import json
import logging
from typing import AsyncIterator, Optional

from agents.base_agent import BaseAgent
from memory.context_window import bound_context
from models.enums import Placement
from models.novel import Beat, GenerationConfig, NovelMetadata, format_config_for_prompt
from tools.text_utils import tail

logger = logging.getLogger(__name__)

BEAT_CONTEXT_CHARS = 20_000

_STRUCTURE_INSTRUCTIONS = {
    Placement.NEW_CHAPTER: "START A NEW CHAPTER.",
    Placement.APPEND: "CONTINUE THE CURRENT CHAPTER.",
}


def format_beats(beats: list[Beat], prefix: str = "") -> str:
    return "\n".join(f"[{prefix}{b.id}] {b.description}" for b in beats)


def _metadata_summary(metadata: NovelMetadata) -> str:
    data = metadata.to_dict()
    # Sent separately
    for key in ("beat_sheet", "config", "style_analysis"):
        data.pop(key, None)
    return json.dumps(data, ensure_ascii=False)


class WriterAgent(BaseAgent):
    """Builds narrative prompts and streams the drafting model's output."""

    template_name = "writer"

    @property
    def system_prompt(self) -> str:
        return self._section("System Prompt")

    def build_setup_prompt(
        self,
        metadata: NovelMetadata,
        chunk: str,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        return self._section(
            "Setup Instruction",
            metadata=_metadata_summary(metadata),
            config_block=format_config_for_prompt(config or metadata.config),
            beat_sheet=format_beats(metadata.beat_sheet) or "(none)",
            style_dna=metadata.style_analysis or "(not analyzed)",
            chunk=chunk,
        )

    def build_continuation_prompt(
        self,
        metadata: NovelMetadata,
        story_history: str,
        knowledge: str,
        choice: str,
        custom_instructions: str,
        chunk: str,
        placement: Placement = Placement.NEW_CHAPTER,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        context = bound_context(
            story_history,
            budget=self.settings.context_max_chars,
            break_window=self.settings.context_break_window,
        )
        return self._section(
            "Continuation Instruction",
            structure_instruction=_STRUCTURE_INSTRUCTIONS[placement],
            config_block=format_config_for_prompt(config or metadata.config),
            style_dna=metadata.style_analysis or "(not analyzed)",
            context=context,
            knowledge=knowledge,
            choice=choice,
            custom_instructions=custom_instructions,
            chunk=chunk,
        )

    def build_beat_prompt(
        self,
        metadata: NovelMetadata,
        beat: Beat,
        previous_beats: list[Beat],
        story_history: str,
    ) -> str:
        return self._section(
            "Beat Instruction",
            config_block=format_config_for_prompt(metadata.config),
            style_dna=metadata.style_analysis or "(not analyzed)",
            previous_beats=format_beats(previous_beats, prefix="Beat ") or "(none, this is the first beat)",
            context=tail(story_history, BEAT_CONTEXT_CHARS),
            beat=beat.description,
        )

    def stream(self, prompt: str, with_protocol: bool = True) -> AsyncIterator[str]:
        """Stream from the drafting model.

        ``with_protocol`` attaches the system prompt carrying the
        prose/delimiter/JSON output contract; beat chapters are prose only.
        """
        logger.info("Drafting: prompt_chars=%d, protocol=%s", len(prompt), with_protocol)
        return self.client.stream(
            prompt,
            system_instruction=self.system_prompt if with_protocol else None,
            model=self.settings.llm_model_drafting,
            temperature=0.8,
        )
