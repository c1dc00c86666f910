"""LangGraph StateGraph: one generation cycle from prompt to committed chapter."""

import logging
from typing import Any, Optional

from langgraph.graph import StateGraph, END

from agents.continuity_agent import ContinuityAgent
from agents.editor_agent import EditorAgent, polish_instructions
from agents.writer_agent import WriterAgent
from config.exceptions import LLMError
from config.settings import Settings, get_settings
from models.chapter import Chapter, breathing_room_choice
from models.enums import Placement
from tools.response_parser import parse_response, visible_projection
from tools.text_utils import count_words

from workflow.callbacks import LoggingCallback, SessionCallback
from workflow.conditions import (
    route_after_prompt,
    route_after_draft,
    route_after_critique,
    route_after_commit,
)
from workflow.state import CycleState, SessionState

logger = logging.getLogger(__name__)

# Consecutive high-energy chapters before a breathing-room choice is offered
BREATHING_ROOM_THRESHOLD = 3


class GenerationCycle:
    """Compiled cycle graph bound to one session and its agents.

    Graph shape::

        build_prompt -> draft -> [critique -> [polish]] -> commit_chapter
            -> [update_knowledge] -> offer_choices -> END

    Any node that fails with ``LLMError`` routes to ``handle_error`` and the
    session is left untouched: nothing is written until ``commit_chapter``.
    """

    def __init__(
        self,
        session: SessionState,
        writer: WriterAgent,
        editor: EditorAgent,
        continuity: ContinuityAgent,
        settings: Optional[Settings] = None,
        callback: Optional[SessionCallback] = None,
    ):
        self.session = session
        self.writer = writer
        self.editor = editor
        self.continuity = continuity
        self.settings = settings or get_settings()
        self.callback = callback or LoggingCallback()
        self.app = self._build().compile()

    async def run(self, inputs: CycleState) -> dict[str, Any]:
        return await self.app.ainvoke(inputs)

    # ---- Nodes ----

    async def build_prompt(self, state: CycleState) -> dict:
        """Assemble the setup or continuation prompt."""
        logger.info("Entering node: build_prompt")
        session = self.session
        metadata = session.metadata
        if metadata is None:
            return {"error": "No project metadata", "last_node": "build_prompt"}

        story_history = session.story_history()
        if state.get("is_first"):
            prompt = self.writer.build_setup_prompt(metadata, state["chunk"], state.get("config"))
        else:
            knowledge = session.knowledge.retrieve(f"{state['chunk']} {state.get('choice', '')}")
            prompt = self.writer.build_continuation_prompt(
                metadata,
                story_history=story_history,
                knowledge=knowledge,
                choice=state.get("choice", ""),
                custom_instructions=state.get("custom_instructions", ""),
                chunk=state["chunk"],
                placement=state.get("placement", Placement.NEW_CHAPTER),
                config=state.get("config"),
            )
        return {"prompt": prompt, "story_history": story_history, "last_node": "build_prompt"}

    async def draft(self, state: CycleState) -> dict:
        """Stream the chapter, publishing the visible projection as it grows."""
        logger.info("Entering node: draft")
        self._status("Drafting interlude..." if state.get("interlude") else "Drafting chapter...")
        raw = ""
        try:
            async for fragment in self.writer.stream(state["prompt"]):
                raw += fragment
                visible = visible_projection(raw)
                self.session.streaming_text = visible
                self.callback.on_stream(visible)
        except LLMError as e:
            return {"error": str(e), "last_node": "draft"}

        parsed = parse_response(raw)
        if not parsed.prose:
            return {"error": "Backend returned no prose", "last_node": "draft"}
        if parsed.degraded:
            self.callback.on_warning("Choices could not be read from the response; offering 'Continue'.")
        logger.info(
            "Draft parsed: %d words, pacing=%d, choices=%d, matcher=%s",
            count_words(parsed.prose), parsed.pacing_score, len(parsed.choices), parsed.matcher,
        )
        return {
            "raw_response": raw,
            "prose": parsed.prose,
            "versions": [parsed.prose],
            "choices": parsed.choices,
            "pacing_score": parsed.pacing_score,
            "degraded": parsed.degraded,
            "last_node": "draft",
        }

    async def critique(self, state: CycleState) -> dict:
        """Ask the editor for concrete issues in the fresh draft."""
        logger.info("Entering node: critique")
        self._status("Editor critiquing draft...")
        points = await self.editor.critique(state["prose"])
        return {"critique_points": points, "last_node": "critique"}

    async def polish(self, state: CycleState) -> dict:
        """Rewrite the draft against the critique; keep the draft on failure."""
        logger.info("Entering node: polish")
        self._status("Polishing draft...")
        metadata = self.session.metadata
        refined = ""
        try:
            async for fragment in self.editor.refine_stream(
                state["prose"],
                polish_instructions(state["critique_points"]),
                metadata.style_analysis if metadata else "",
                state.get("story_history", ""),
            ):
                refined += fragment
        except LLMError as e:
            logger.warning("Auto-polish failed, keeping draft: %s", e)
            return {"last_node": "polish"}

        refined = refined.strip()
        if len(refined) <= self.settings.polish_min_chars:
            logger.info("Auto-polish output too short (%d chars), keeping draft", len(refined))
            return {"last_node": "polish"}
        return {
            "prose": refined,
            "versions": list(state.get("versions", [])) + [refined],
            "last_node": "polish",
        }

    async def commit_chapter(self, state: CycleState) -> dict:
        """Append the chapter, move the cursor, and update pacing and analytics."""
        logger.info("Entering node: commit_chapter")
        session = self.session
        chapter_id = len(session.chapters) + 1
        chapter = Chapter.create(
            chapter_id=chapter_id,
            title=f"Chapter {chapter_id}",
            versions=state["versions"],
            pacing_score=state.get("pacing_score", 5),
            cursor_before=session.current_chunk_index,
        )
        session.chapters.append(chapter)
        session.current_chunk_index = state["chunk_index"]
        session.analytics.record_words(count_words(chapter.active_content))

        config = state.get("config") or session.effective_config()
        if config.is_high_energy:
            session.consecutive_high_energy += 1
        else:
            session.consecutive_high_energy = 0

        logger.info(
            "Committed %s from chunk %d (%d version(s), high-energy streak %d)",
            chapter.title, state["chunk_index"], chapter.version_count, session.consecutive_high_energy,
        )
        self.callback.on_chapter_committed(chapter)
        return {"chapter_id": chapter_id, "last_node": "commit_chapter"}

    async def update_knowledge(self, state: CycleState) -> dict:
        """Launch detached lore and character extraction for the new chapter."""
        logger.info("Entering node: update_knowledge")
        prose = state["prose"]
        self.session.knowledge.launch(
            lambda: self.continuity.extract_updates(prose),
            label=f"lore extraction (chapter {state.get('chapter_id')})",
        )
        return {"last_node": "update_knowledge"}

    async def offer_choices(self, state: CycleState) -> dict:
        """Publish the next choices, prepending breathing room after a long high-energy run."""
        logger.info("Entering node: offer_choices")
        choices = list(state.get("choices", []))
        if self.session.consecutive_high_energy >= BREATHING_ROOM_THRESHOLD:
            choices.insert(0, breathing_room_choice())
        self.session.choices = choices
        self.callback.on_choices(choices)
        return {"choices": choices, "last_node": "offer_choices"}

    async def handle_error(self, state: CycleState) -> dict:
        logger.info("Entering node: handle_error")
        logger.error("Cycle failed in %s: %s", state.get("last_node", "?"), state.get("error", "Unknown error"))
        return {}

    def _status(self, message: str) -> None:
        self.session.status = message
        self.callback.on_status(message)

    # ---- Graph construction ----

    def _build(self) -> StateGraph:
        graph = StateGraph(CycleState)

        graph.add_node("build_prompt", self.build_prompt)
        graph.add_node("draft", self.draft)
        graph.add_node("critique", self.critique)
        graph.add_node("polish", self.polish)
        graph.add_node("commit_chapter", self.commit_chapter)
        graph.add_node("update_knowledge", self.update_knowledge)
        graph.add_node("offer_choices", self.offer_choices)
        graph.add_node("handle_error", self.handle_error)

        graph.set_entry_point("build_prompt")

        graph.add_conditional_edges(
            "build_prompt",
            route_after_prompt,
            {"draft": "draft", "handle_error": "handle_error"},
        )
        graph.add_conditional_edges(
            "draft",
            route_after_draft,
            {
                "critique": "critique",
                "commit_chapter": "commit_chapter",
                "handle_error": "handle_error",
            },
        )
        graph.add_conditional_edges(
            "critique",
            route_after_critique,
            {"polish": "polish", "commit_chapter": "commit_chapter"},
        )
        graph.add_edge("polish", "commit_chapter")
        graph.add_conditional_edges(
            "commit_chapter",
            route_after_commit,
            {"update_knowledge": "update_knowledge", "offer_choices": "offer_choices"},
        )
        graph.add_edge("update_knowledge", "offer_choices")
        graph.add_edge("offer_choices", END)
        graph.add_edge("handle_error", END)

        return graph
