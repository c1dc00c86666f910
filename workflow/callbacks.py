"""Session progress callbacks for monitoring and live rendering."""

import logging
from typing import Protocol, runtime_checkable

from models.chapter import Chapter, Choice
from models.enums import Phase

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionCallback(Protocol):
    """Protocol for session progress callbacks.

    Implement this protocol to hook into the orchestrator lifecycle.
    """

    def on_phase_change(self, old: Phase, new: Phase) -> None:
        """Called on every phase transition."""
        ...

    def on_status(self, message: str) -> None:
        """Called when the human-readable activity line changes."""
        ...

    def on_stream(self, visible_text: str) -> None:
        """Called per fragment with the full visible text so far."""
        ...

    def on_chapter_committed(self, chapter: Chapter) -> None:
        """Called after a chapter (or a new version of one) is committed."""
        ...

    def on_choices(self, choices: list[Choice]) -> None:
        """Called when the choice list is replaced or extended."""
        ...

    def on_batch_progress(self, completed: int, total: int) -> None:
        """Called after each beat of a batch commits."""
        ...

    def on_warning(self, message: str) -> None:
        """Called for degraded-but-recovered conditions."""
        ...

    def on_error(self, operation: str, error: str) -> None:
        """Called when an operation fails and the session rolls back."""
        ...


class LoggingCallback:
    """Lightweight callback that logs progress to the standard logger."""

    def on_phase_change(self, old: Phase, new: Phase) -> None:
        logger.debug("Phase: %s -> %s", old.value, new.value)

    def on_status(self, message: str) -> None:
        if message:
            logger.debug("Status: %s", message)

    def on_stream(self, visible_text: str) -> None:
        pass

    def on_chapter_committed(self, chapter: Chapter) -> None:
        logger.info(
            "%s committed (v%d, %d words, pacing %d)",
            chapter.title, chapter.current_version_index + 1,
            len(chapter.active_content.split()), chapter.pacing_score,
        )

    def on_choices(self, choices: list[Choice]) -> None:
        logger.debug("Choices: %s", ", ".join(c.id for c in choices))

    def on_batch_progress(self, completed: int, total: int) -> None:
        logger.info("Batch %d/%d", completed, total)

    def on_warning(self, message: str) -> None:
        logger.warning(message)

    def on_error(self, operation: str, error: str) -> None:
        logger.error("Session error in '%s': %s", operation, error)


class RichStreamCallback(LoggingCallback):
    """Renders streaming prose and progress with a Rich live display."""

    _TAIL_CHARS = 1200

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        self._console = console
        self._live = None
        self._status = ""

    @property
    def console(self):
        if self._console is None:
            from rich.console import Console
            self._console = Console()
        return self._console

    def _render(self, text: str):
        from rich.panel import Panel
        from rich.text import Text

        body = text[-self._TAIL_CHARS:] if len(text) > self._TAIL_CHARS else text
        return Panel(Text(body), title=f"[accent]{self._status or 'Writing'}[/]", border_style="dim")

    def _stop_live(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def on_phase_change(self, old: Phase, new: Phase) -> None:
        super().on_phase_change(old, new)
        if new != Phase.PROCESSING and new != Phase.REFINING:
            self._stop_live()

    def on_status(self, message: str) -> None:
        self._status = message
        if message and self._live is None:
            self.console.print(f"[muted]{message}[/]")

    def on_stream(self, visible_text: str) -> None:
        if self._live is None:
            from rich.live import Live
            self._live = Live(self._render(visible_text), console=self.console, refresh_per_second=8)
            self._live.start()
        else:
            self._live.update(self._render(visible_text))

    def on_chapter_committed(self, chapter: Chapter) -> None:
        super().on_chapter_committed(chapter)
        self._stop_live()
        self.console.print(
            f"[success]{chapter.title}[/] [muted]v{chapter.current_version_index + 1}, "
            f"{len(chapter.active_content.split()):,} words, pacing {chapter.pacing_score}[/]"
        )

    def on_batch_progress(self, completed: int, total: int) -> None:
        super().on_batch_progress(completed, total)
        self.console.print(f"[info]Batch {completed}/{total}[/]")

    def on_warning(self, message: str) -> None:
        super().on_warning(message)
        self.console.print(f"[warning]{message}[/]")

    def on_error(self, operation: str, error: str) -> None:
        super().on_error(operation, error)
        self._stop_live()
        self.console.print(f"[error]{operation} failed: {error}[/]")

    def close(self) -> None:
        self._stop_live()
