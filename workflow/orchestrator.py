"""Expansion orchestrator: the session state machine over the generation cycle.

Every public operation checks the phase it is allowed from and the
single-active-generation gate before touching state. Misuse raises a
``WorkflowError`` subclass and leaves the session unchanged; backend
failures during a cycle are reported through ``last_error`` and the
callback, and the session rolls back to Decision.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Optional

from agents.continuity_agent import ContinuityAgent
from agents.editor_agent import EditorAgent, refinement_instructions
from agents.planner_agent import PlannerAgent
from agents.writer_agent import WriterAgent
from config.exceptions import (
    DatabaseError,
    EmptyManuscriptError,
    GenerationInProgressError,
    InvalidConfigError,
    LLMError,
    ValidationError,
    WorkflowStateError,
)
from config.settings import Settings, get_settings
from memory.knowledge_store import KnowledgeStore
from models.chapter import Choice
from models.database import ProjectDatabase
from models.enums import Phase, Placement
from models.novel import Beat, GenerationConfig, NovelMetadata
from models.project import ProjectState
from tools.generation_client import GenerationClient
from tools.text_utils import split_into_source_chunks

from workflow.automation import (
    AUTOPILOT_INSTRUCTIONS,
    AutoPilot,
    BatchResult,
    BatchRunner,
    ConfirmCallback,
    pick_autopilot_choice,
    pick_kickoff_choice,
)
from workflow.autosave import DebouncedAutosave
from workflow.callbacks import LoggingCallback, SessionCallback
from workflow.graph import GenerationCycle
from workflow.state import CycleState, SessionState

logger = logging.getLogger(__name__)

INTERLUDE_CHOICE = "Interlude"
INTERLUDE_INSTRUCTIONS = "Write a slow-paced, atmospheric interlude. "
RECENT_CHAPTERS = 3
CHAOS_CONTEXT_CHARS = 5000

_DECISION_PHASES = (Phase.DECISION, Phase.REFINEMENT_SELECTION)
_INTERACTIVE_PHASES = (Phase.DECISION, Phase.REFINEMENT_SELECTION, Phase.FINISHED)


def is_breathing_room(choice_text: str) -> bool:
    return "Breathing Room" in choice_text


class ExpansionOrchestrator:
    """Owns one authoring session and drives it phase by phase."""

    def __init__(
        self,
        client: Optional[GenerationClient] = None,
        settings: Optional[Settings] = None,
        store: Optional[ProjectDatabase] = None,
        callback: Optional[SessionCallback] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or GenerationClient(settings=self.settings)
        self.store = store
        self.callback = callback or LoggingCallback()
        self._sleep = sleep or asyncio.sleep

        self.planner = PlannerAgent(self.client, self.settings)
        self.writer = WriterAgent(self.client, self.settings)
        self.editor = EditorAgent(self.client, self.settings)
        self.continuity = ContinuityAgent(self.client, self.settings)

        self.session = SessionState()
        self.session.knowledge.on_change = self._state_changed
        self.autopilot = AutoPilot()
        self.autosave = (
            DebouncedAutosave(store, self.settings.autosave_debounce, self._sleep) if store else None
        )
        self.cycle = self._new_cycle()

        self.saved_project: Optional[ProjectState] = None
        self._started = False

    def _new_cycle(self) -> GenerationCycle:
        return GenerationCycle(
            self.session, self.writer, self.editor, self.continuity,
            settings=self.settings, callback=self.callback,
        )

    # ---- Guards and bookkeeping ----

    @property
    def phase(self) -> Phase:
        return self.session.phase

    def _require_phase(self, operation: str, *allowed: Phase) -> None:
        if self.session.phase not in allowed:
            raise WorkflowStateError(operation, self.session.phase.value, tuple(p.value for p in allowed))

    def _require_idle(self, operation: str) -> None:
        if self.session.is_generating:
            raise GenerationInProgressError(operation)

    def _set_phase(self, phase: Phase) -> None:
        old = self.session.phase
        if old == phase:
            return
        self.session.phase = phase
        logger.info("Phase: %s -> %s", old.value, phase.value)
        self.callback.on_phase_change(old, phase)

    def _set_status(self, message: str) -> None:
        self.session.status = message
        self.callback.on_status(message)

    def _report_error(self, operation: str, error: str) -> None:
        self.session.last_error = error
        self.callback.on_error(operation, error)

    @contextmanager
    def _generating(self, status: str = ""):
        self.session.is_generating = True
        self.session.last_error = None
        if status:
            self._set_status(status)
        try:
            yield
        finally:
            self.session.is_generating = False
            self.session.streaming_text = ""
            self._set_status("")

    def _state_changed(self) -> None:
        """Schedule an autosave once there is something worth saving."""
        if self.autosave is None:
            return
        if self.session.metadata is None or not self.session.chapters:
            return
        self.autosave.schedule(self.snapshot)

    # ---- Startup and restore ----

    def startup(self) -> Optional[ProjectState]:
        """Read the saved project slot once per orchestrator."""
        if self._started:
            return self.saved_project
        self._started = True
        if self.store is None:
            return None
        try:
            self.saved_project = self.store.load()
        except DatabaseError as e:
            logger.warning("Could not read saved project: %s", e)
            self.saved_project = None
        if self.saved_project:
            logger.info(
                "Saved project found: '%s' (%d chapters)",
                self.saved_project.metadata.title, len(self.saved_project.chapters),
            )
        return self.saved_project

    def resume(self, state: Optional[ProjectState] = None) -> None:
        """Restore a saved project into this session and continue at Decision."""
        self._require_phase("resume", Phase.UPLOAD)
        state = state or self.saved_project
        if state is None:
            raise ValidationError("No saved project to resume")
        session = self.session
        session.metadata = state.metadata
        session.chapters = list(state.chapters)
        session.source_chunks = list(state.source_chunks)
        session.current_chunk_index = state.current_chunk_index
        session.analytics = state.analytics
        session.knowledge = KnowledgeStore(state.lore, state.characters, on_change=self._state_changed)
        session.beat_sheet_confirmed = bool(state.metadata.beat_sheet)
        self._set_phase(Phase.DECISION if session.chapters else Phase.SETUP)

    # ---- Setup flow ----

    async def load_manuscript(self, text: str) -> dict:
        """Chunk the manuscript and detect metadata. Returns the detected fields."""
        self._require_phase("load manuscript", Phase.UPLOAD)
        self._require_idle("load manuscript")
        chunks = split_into_source_chunks(text, self.settings.source_chunk_words)
        if not chunks:
            raise EmptyManuscriptError()

        session = self.session
        session.source_chunks = chunks
        session.current_chunk_index = 0
        logger.info("Manuscript loaded: %d chars, %d source chunks", len(text), len(chunks))

        self._set_phase(Phase.DETECTING_METADATA)
        with self._generating("Detecting metadata..."):
            detected = await self.planner.extract_metadata(text)
        session.detected_metadata = detected
        self._set_phase(Phase.SETUP)
        return detected

    def submit_metadata(self, metadata: NovelMetadata) -> None:
        self._require_phase("submit metadata", Phase.SETUP)
        if not isinstance(metadata, NovelMetadata):
            raise ValidationError(f"Expected NovelMetadata, got {type(metadata).__name__}")
        if not metadata.beat_sheet and self.session.detected_metadata.get("beat_sheet"):
            metadata.beat_sheet = list(self.session.detected_metadata["beat_sheet"])
        self.session.metadata = metadata
        self._set_phase(Phase.CONFIGURATION)

    async def submit_configuration(self, config: GenerationConfig) -> list[Beat]:
        """Store the engine configuration and produce the draft beat sheet."""
        self._require_phase("submit configuration", Phase.CONFIGURATION)
        self._require_idle("submit configuration")
        if not isinstance(config, GenerationConfig):
            raise InvalidConfigError(f"Expected GenerationConfig, got {type(config).__name__}")

        session = self.session
        session.metadata.config = config
        self._set_phase(Phase.GENERATING_BEATS)
        if session.metadata.beat_sheet:
            logger.info("Reusing %d detected beats", len(session.metadata.beat_sheet))
            beats = list(session.metadata.beat_sheet)
        else:
            manuscript = "".join(session.source_chunks)[: self.settings.metadata_sample_chars]
            with self._generating("Generating beat sheet..."):
                beats = await self.planner.generate_beat_sheet(manuscript, session.metadata)
        session.draft_beats = beats
        self._set_phase(Phase.BEAT_SHEET)
        return beats

    async def confirm_beat_sheet(self, beats: Optional[list[Beat]] = None) -> bool:
        """Lock in the beat sheet, analyze style once, and run the opening cycle."""
        self._require_phase("confirm beat sheet", Phase.BEAT_SHEET)
        self._require_idle("confirm beat sheet")
        session = self.session
        confirmed = list(beats) if beats is not None else list(session.draft_beats)
        session.metadata.beat_sheet = confirmed
        session.draft_beats = confirmed
        session.beat_sheet_confirmed = True

        self._set_phase(Phase.ANALYZING)
        if not session.metadata.style_analysis:
            with self._generating("Analyzing style..."):
                session.metadata.style_analysis = await self.planner.analyze_style(
                    "".join(session.source_chunks)
                )

        return await self._run_cycles(self._cycle_inputs(0, "", "", Placement.NEW_CHAPTER, is_first=True))

    # ---- Decision loop ----

    def _cycle_inputs(
        self,
        chunk_index: int,
        choice: str,
        custom_instructions: str,
        placement: Placement,
        is_first: bool = False,
        config: Optional[GenerationConfig] = None,
        interlude: bool = False,
    ) -> CycleState:
        return {
            "chunk": self.session.source_chunks[chunk_index],
            "chunk_index": chunk_index,
            "choice": choice,
            "custom_instructions": custom_instructions,
            "is_first": is_first,
            "placement": placement,
            "config": config or self.session.effective_config(),
            "interlude": interlude,
        }

    def _next_inputs(
        self, choice: str, custom_instructions: str, placement: Placement,
    ) -> Optional[CycleState]:
        """Inputs for the cycle after the last commit, or None when the source is exhausted."""
        session = self.session
        if not session.chapters:
            return self._cycle_inputs(0, choice, custom_instructions, placement, is_first=True)
        if session.chunks_remaining == 0:
            return None
        return self._cycle_inputs(session.current_chunk_index + 1, choice, custom_instructions, placement)

    async def decide(
        self,
        choice_text: str,
        custom_instructions: str = "",
        placement: Placement = Placement.NEW_CHAPTER,
    ) -> bool:
        """Continue the story along ``choice_text``. Returns False if the cycle failed."""
        self._require_phase("decide", *_DECISION_PHASES)
        self._require_idle("decide")
        session = self.session

        if is_breathing_room(choice_text):
            logger.info("Breathing room requested, re-using chunk %d", session.current_chunk_index)
            session.consecutive_high_energy = 0
            inputs = self._cycle_inputs(
                session.current_chunk_index,
                INTERLUDE_CHOICE,
                INTERLUDE_INSTRUCTIONS + custom_instructions,
                placement,
                config=session.effective_config().breathing_room(),
                interlude=True,
            )
        else:
            inputs = self._next_inputs(choice_text, custom_instructions, placement)
            if inputs is None:
                self._finish()
                return True
        return await self._run_cycles(inputs)

    def _finish(self) -> None:
        logger.info("Source manuscript exhausted after %d chapters", len(self.session.chapters))
        self.autopilot.cancel()
        self._set_phase(Phase.FINISHED)

    async def _run_one(self, inputs: CycleState) -> bool:
        self._set_phase(Phase.PROCESSING)
        with self._generating("Writing chapter..."):
            try:
                result = await self.cycle.run(inputs)
            except Exception as e:
                logger.exception("Generation cycle crashed")
                result = {"error": f"{type(e).__name__}: {e}"}
        if result.get("error"):
            self.autopilot.cancel()
            self._report_error("generate", result["error"])
            self._set_phase(Phase.DECISION)
            return False
        self._state_changed()
        return True

    async def _run_cycles(self, inputs: CycleState) -> bool:
        """Run one cycle, then keep going while auto-pilot has cycles left."""
        while True:
            if not await self._run_one(inputs):
                return False
            if not self.autopilot.active:
                self._set_phase(Phase.DECISION)
                return True

            remaining = self.autopilot.consume()
            choice = pick_autopilot_choice(self.session.choices)
            logger.info("Auto-pilot: '%s' (%d left after this)", choice.text, remaining)
            self._set_status(f"Auto-pilot: {remaining + 1} cycle(s) remaining")
            await self._sleep(self.settings.autopilot_delay)
            if self.autopilot.cancelled:
                self._set_phase(Phase.DECISION)
                return True

            inputs = self._next_inputs(choice.text, AUTOPILOT_INSTRUCTIONS, Placement.NEW_CHAPTER)
            if inputs is None:
                self._finish()
                return True

    # ---- Auto-pilot and chaos ----

    async def start_autopilot(self, cycles: int) -> bool:
        """Run ``cycles`` unattended cycles after an immediate kickoff cycle."""
        self._require_phase("start auto-pilot", *_DECISION_PHASES)
        self._require_idle("start auto-pilot")
        try:
            self.autopilot.arm(cycles)
        except ValueError as e:
            raise InvalidConfigError(str(e), {"cycles": cycles}) from e
        kickoff = pick_kickoff_choice(self.session.choices)
        logger.info("Auto-pilot armed for %d cycle(s), kickoff '%s'", cycles, kickoff.text)
        return await self.decide(kickoff.text)

    def stop_autopilot(self) -> None:
        self.autopilot.cancel()

    async def inject_chaos(self) -> Choice:
        """Prepend a high-entropy twist to the current choices."""
        self._require_phase("inject chaos", *_DECISION_PHASES)
        self._require_idle("inject chaos")
        session = self.session
        context = "\n".join(c.active_content for c in session.chapters[-RECENT_CHAPTERS:])
        with self._generating("Summoning chaos..."):
            choice = await self.planner.generate_chaos_twist(context[-CHAOS_CONTEXT_CHARS:], session.metadata)
        session.choices = [choice] + list(session.choices)
        self.callback.on_choices(session.choices)
        return choice

    # ---- Refinement ----

    def begin_refinement(self) -> None:
        self._require_phase("begin refinement", Phase.DECISION)
        self._require_idle("begin refinement")
        if not self.session.chapters:
            raise WorkflowStateError("begin refinement without chapters", self.session.phase.value)
        self._set_phase(Phase.REFINEMENT_SELECTION)

    async def apply_refinements(self, option_ids: list[str]) -> bool:
        """Rewrite the latest chapter per the selected options as a new version."""
        self._require_phase("apply refinements", Phase.REFINEMENT_SELECTION)
        self._require_idle("apply refinements")
        instructions = refinement_instructions(option_ids or [])
        if not instructions:
            self._set_phase(Phase.DECISION)
            return False

        session = self.session
        chapter = session.chapters[-1]
        history = "\n\n".join(c.active_content for c in session.chapters[:-1])
        self._set_phase(Phase.REFINING)
        refined = ""
        with self._generating(f"Refining {chapter.title}..."):
            try:
                async for fragment in self.editor.refine_stream(
                    chapter.active_content, instructions, session.metadata.style_analysis, history,
                ):
                    refined += fragment
                    session.streaming_text = refined
                    self.callback.on_stream(refined)
            except LLMError as e:
                self._report_error("refine", str(e))
                self._set_phase(Phase.DECISION)
                return False

        refined = refined.strip()
        if not refined:
            self._report_error("refine", "Backend returned no prose")
            self._set_phase(Phase.DECISION)
            return False
        chapter.commit_version(refined)
        self.callback.on_chapter_committed(chapter)
        self._state_changed()
        self._set_phase(Phase.DECISION)
        return True

    # ---- Undo ----

    def undo(self) -> bool:
        """Drop the latest chapter and rewind the source cursor."""
        self._require_phase("undo", *_INTERACTIVE_PHASES)
        self._require_idle("undo")
        session = self.session
        if not session.chapters:
            return False
        removed = session.chapters.pop()
        session.current_chunk_index = removed.cursor_before
        self.autopilot.cancel()
        logger.info("Undo: removed %s, cursor back to %d", removed.title, session.current_chunk_index)
        self._set_phase(Phase.DECISION if session.chapters else Phase.SETUP)
        self._state_changed()
        return True

    # ---- Batch ----

    async def run_batch(self, beats: list[Beat], confirm: Optional[ConfirmCallback] = None) -> BatchResult:
        """Generate one chapter per beat. ``confirm`` decides on flagged beats.

        Without ``confirm`` a flagged beat aborts the batch.
        """
        self._require_phase("run batch", Phase.BEAT_SHEET, Phase.DECISION)
        self._require_idle("run batch")
        if not beats:
            return BatchResult()
        if self.session.phase == Phase.BEAT_SHEET and not self.session.beat_sheet_confirmed:
            self.session.metadata.beat_sheet = list(self.session.draft_beats)

        self._set_phase(Phase.PROCESSING)
        with self._generating(f"Batch: {len(beats)} beat(s)"):
            try:
                result = await BatchRunner(self).run(beats, confirm)
            except Exception as e:
                logger.exception("Batch crashed")
                result = BatchResult(
                    completed=self.session.batch_completed,
                    total=len(beats),
                    error=f"{type(e).__name__}: {e}",
                )
        if result.error:
            self._report_error("batch", result.error)
        self._set_phase(Phase.DECISION)
        self._state_changed()
        return result

    # ---- Manuscript editing ----

    def move_chapter(self, index: int, direction: str) -> bool:
        self._require_idle("move chapter")
        if direction not in ("up", "down"):
            raise ValidationError(f"Unknown direction '{direction}'")
        chapters = self.session.chapters
        target = index - 1 if direction == "up" else index + 1
        if not (0 <= index < len(chapters) and 0 <= target < len(chapters)):
            return False
        chapters[index], chapters[target] = chapters[target], chapters[index]
        self._state_changed()
        return True

    def select_version(self, chapter_index: int, version_index: int) -> None:
        self._require_idle("select version")
        try:
            chapter = self.session.chapters[chapter_index]
            chapter.select_version(version_index)
        except IndexError as e:
            raise ValidationError(str(e), {"chapter": chapter_index, "version": version_index}) from e
        self._state_changed()

    def find_replace(self, find: str, replace: str) -> int:
        """Replace across all chapters, each change committed as a new version."""
        self._require_idle("find and replace")
        if not find:
            return 0
        count = 0
        for chapter in self.session.chapters:
            content = chapter.active_content
            hits = content.count(find)
            if hits:
                chapter.commit_version(content.replace(find, replace))
                count += hits
        if count:
            logger.info("Replaced %d occurrence(s) of '%s'", count, find)
            self._state_changed()
        return count

    async def rewrite_selection(self, chapter_index: int, selection: str, instruction: str) -> Optional[str]:
        """Surgically rewrite ``selection`` inside one chapter as a new version."""
        self._require_phase("rewrite selection", *_DECISION_PHASES)
        self._require_idle("rewrite selection")
        try:
            chapter = self.session.chapters[chapter_index]
        except IndexError as e:
            raise ValidationError(f"No chapter at index {chapter_index}") from e
        content = chapter.active_content
        position = content.find(selection) if selection else -1
        if position < 0:
            raise ValidationError("Selection not found in chapter", {"chapter": chapter.id})

        with self._generating("Rewriting selection..."):
            try:
                rewritten = await self.editor.refine_selection(selection, instruction, content[:position])
            except LLMError as e:
                self._report_error("rewrite selection", str(e))
                return None
        chapter.commit_version(content[:position] + rewritten + content[position + len(selection):])
        self.callback.on_chapter_committed(chapter)
        self._state_changed()
        return rewritten

    async def ask(self, question: str) -> str:
        """Answer a question about the story so far."""
        session = self.session
        context = "\n".join(c.active_content for c in session.chapters[-RECENT_CHAPTERS:])
        return await self.continuity.ask(question, context, session.knowledge.lore)

    def tick(self, seconds: float) -> None:
        self.session.analytics.record_editing_time(seconds)

    # ---- Persistence ----

    def snapshot(self) -> ProjectState:
        session = self.session
        return ProjectState(
            metadata=session.metadata or NovelMetadata(),
            chapters=list(session.chapters),
            lore=list(session.knowledge.lore),
            characters=list(session.knowledge.characters),
            analytics=session.analytics,
            source_chunks=list(session.source_chunks),
            current_chunk_index=session.current_chunk_index,
        )

    async def aclose(self) -> None:
        """Wait for detached extraction and write any pending autosave."""
        await self.session.knowledge.drain()
        if self.autosave is not None:
            await self.autosave.flush()
