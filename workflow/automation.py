"""Auto-pilot counter, choice pickers, and the beat-sheet batch runner."""

import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from config.exceptions import BatchAbortedError, LLMError
from models.chapter import Chapter, Choice
from models.enums import ChoiceType
from models.novel import Beat
from tools.response_parser import visible_projection
from tools.text_utils import count_words

if TYPE_CHECKING:
    from workflow.orchestrator import ExpansionOrchestrator

logger = logging.getLogger(__name__)

AUTOPILOT_INSTRUCTIONS = "Auto-pilot continuation"
BATCH_PACING_SCORE = 5

ConfirmCallback = Callable[[Beat, list[str]], Union[bool, Awaitable[bool]]]


def _synthetic_continue() -> Choice:
    return Choice(id="auto", text="Continue story naturally.", rationale="Auto-pilot", type=ChoiceType.OTHER)


def pick_autopilot_choice(choices: list[Choice]) -> Choice:
    """First non-pacing choice, else the first choice, else a synthetic continue."""
    for choice in choices:
        if choice.type != ChoiceType.PACING:
            return choice
    if choices:
        return choices[0]
    return _synthetic_continue()


def pick_kickoff_choice(choices: list[Choice]) -> Choice:
    """First choice mentioning "Continue", else the first, else a synthetic continue."""
    for choice in choices:
        if "Continue" in choice.text:
            return choice
    if choices:
        return choices[0]
    return _synthetic_continue()


class AutoPilot:
    """Remaining unattended cycles after the current one.

    ``cancel`` also raises a flag that a pending inter-cycle delay checks,
    so stopping between cycles prevents the next one from starting.
    """

    def __init__(self):
        self.remaining = 0
        self.cancelled = False

    @property
    def active(self) -> bool:
        return self.remaining > 0

    def arm(self, cycles: int) -> None:
        if cycles < 1:
            raise ValueError("Auto-pilot needs at least one cycle")
        self.remaining = cycles
        self.cancelled = False

    def consume(self) -> int:
        if self.remaining > 0:
            self.remaining -= 1
        return self.remaining

    def cancel(self) -> None:
        if self.remaining:
            logger.info("Auto-pilot cancelled with %d cycle(s) remaining", self.remaining)
        self.remaining = 0
        self.cancelled = True


@dataclass
class BatchResult:
    completed: int = 0
    total: int = 0
    aborted: bool = False
    error: Optional[str] = None
    aborted_at: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.aborted and self.error is None and self.completed == self.total


class BatchRunner:
    """Generate one chapter per beat, guarded by a consistency check.

    Chapters committed before an abort or failure stay committed. The
    interactive pacing counter is never touched.
    """

    def __init__(self, orchestrator: "ExpansionOrchestrator"):
        self.orchestrator = orchestrator
        self.session = orchestrator.session

    async def run(self, beats: list[Beat], confirm: Optional[ConfirmCallback] = None) -> BatchResult:
        result = BatchResult(total=len(beats))
        session = self.session
        session.batch_total = len(beats)
        session.batch_completed = 0

        for beat in beats:
            try:
                await self._guard(beat, confirm)
            except BatchAbortedError as e:
                logger.info("%s", e)
                result.aborted = True
                result.aborted_at = e.beat_id
                break

            try:
                chapter = await self._write_beat(beat)
            except LLMError as e:
                logger.error("Batch failed at beat %s: %s", beat.id, e)
                result.error = str(e)
                break

            result.completed += 1
            session.batch_completed = result.completed
            self.orchestrator.callback.on_batch_progress(result.completed, result.total)
            self._extract_lore(chapter)

        logger.info(
            "Batch finished: %d/%d beat(s)%s",
            result.completed, result.total, " (aborted)" if result.aborted else "",
        )
        return result

    async def _guard(self, beat: Beat, confirm: Optional[ConfirmCallback]) -> None:
        """Raise ``BatchAbortedError`` when the beat is flagged and not confirmed."""
        orch = self.orchestrator
        orch._set_status(f"Checking continuity for beat {beat.id}...")
        report = await orch.continuity.check_beat_consistency(
            beat, self.session.knowledge.lore, self.session.knowledge.characters,
        )
        if report.safe:
            return
        if confirm is None:
            raise BatchAbortedError(beat.id, report.issues)
        decision = confirm(beat, report.issues)
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            raise BatchAbortedError(beat.id, report.issues)
        logger.info("Beat %s flagged but confirmed by user", beat.id)

    def _previous_beats(self, beat: Beat) -> list[Beat]:
        metadata = self.session.metadata
        sheet = metadata.beat_sheet if metadata and metadata.beat_sheet else self.session.draft_beats
        for i, candidate in enumerate(sheet):
            if candidate.id == beat.id:
                return list(sheet[:i])
        return list(sheet)

    async def _write_beat(self, beat: Beat) -> Chapter:
        orch = self.orchestrator
        session = self.session
        prompt = orch.writer.build_beat_prompt(
            session.metadata, beat, self._previous_beats(beat), session.story_history(),
        )
        orch._set_status(f"Writing beat {beat.id}...")
        raw = ""
        async for fragment in orch.writer.stream(prompt, with_protocol=False):
            raw += fragment
            visible = visible_projection(raw)
            session.streaming_text = visible
            orch.callback.on_stream(visible)

        prose = visible_projection(raw).strip()
        if not prose:
            raise LLMError("Backend returned no prose", {"beat": beat.id})

        chapter_id = len(session.chapters) + 1
        chapter = Chapter.create(
            chapter_id=chapter_id,
            title=f"Chapter {chapter_id} (Beat {beat.id})",
            versions=[prose],
            pacing_score=BATCH_PACING_SCORE,
            cursor_before=session.current_chunk_index,
        )
        session.chapters.append(chapter)
        session.analytics.record_words(count_words(prose))
        orch.callback.on_chapter_committed(chapter)
        orch._state_changed()
        return chapter

    def _extract_lore(self, chapter: Chapter) -> None:
        config = self.session.effective_config()
        if not config.auto_lore:
            return
        text = chapter.active_content
        self.session.knowledge.launch(
            lambda: self.orchestrator.continuity.extract_updates(text),
            label=f"lore extraction ({chapter.title})",
        )
