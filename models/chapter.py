"""Chapter and choice data models."""

import time
from dataclasses import dataclass, field

from models.enums import ChapterStatus, ChoiceType

DEFAULT_PACING_SCORE = 5


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Chapter:
    """A committed chapter with an append-only version history.

    ``content`` always mirrors ``history[current_version_index]``; use
    ``commit_version`` and ``select_version`` rather than assigning it.
    """
    id: int = 0
    title: str = ""
    content: str = ""
    status: ChapterStatus = ChapterStatus.COMPLETED
    history: list[str] = field(default_factory=list)
    current_version_index: int = 0
    last_modified: int = field(default_factory=_now_ms)
    pacing_score: int = DEFAULT_PACING_SCORE
    cursor_before: int = 0  # source cursor prior to this commit, for undo

    @classmethod
    def create(
        cls,
        chapter_id: int,
        title: str,
        versions: list[str],
        pacing_score: int = DEFAULT_PACING_SCORE,
        cursor_before: int = 0,
    ) -> "Chapter":
        """Create a chapter seeded with one or more versions, the last one active."""
        if not versions:
            raise ValueError("A chapter needs at least one version")
        chapter = cls(
            id=chapter_id,
            title=title,
            pacing_score=pacing_score,
            cursor_before=cursor_before,
        )
        for text in versions:
            chapter.commit_version(text)
        return chapter

    @property
    def active_content(self) -> str:
        if not self.history:
            return self.content
        return self.history[self.current_version_index]

    @property
    def version_count(self) -> int:
        return len(self.history)

    def commit_version(self, text: str) -> int:
        """Append a new version and make it active. Returns its index."""
        self.history.append(text)
        self.current_version_index = len(self.history) - 1
        self.content = text
        self.last_modified = _now_ms()
        return self.current_version_index

    def select_version(self, index: int) -> None:
        if not 0 <= index < len(self.history):
            raise IndexError(f"Chapter {self.id} has no version {index}")
        self.current_version_index = index
        self.content = self.history[index]
        self.last_modified = _now_ms()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "status": self.status.value,
            "history": list(self.history),
            "current_version_index": self.current_version_index,
            "last_modified": self.last_modified,
            "pacing_score": self.pacing_score,
            "cursor_before": self.cursor_before,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chapter":
        history = [str(h) for h in data.get("history", [])]
        content = str(data.get("content", ""))
        if not history and content:
            history = [content]
        index = int(data.get("current_version_index", max(len(history) - 1, 0)))
        if history:
            index = min(max(index, 0), len(history) - 1)
            content = history[index]
        try:
            status = ChapterStatus(data.get("status", ChapterStatus.COMPLETED.value))
        except ValueError:
            status = ChapterStatus.COMPLETED
        return cls(
            id=int(data.get("id", 0)),
            title=str(data.get("title", "")),
            content=content,
            status=status,
            history=history,
            current_version_index=index,
            last_modified=int(data.get("last_modified", 0) or _now_ms()),
            pacing_score=int(data.get("pacing_score", DEFAULT_PACING_SCORE)),
            cursor_before=int(data.get("cursor_before", 0)),
        )


@dataclass
class Choice:
    """One candidate direction offered after a generation cycle."""
    id: str
    text: str
    rationale: str = ""
    type: ChoiceType = ChoiceType.OTHER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "rationale": self.rationale,
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Choice":
        try:
            choice_type = ChoiceType(data.get("type", ChoiceType.OTHER.value))
        except ValueError:
            choice_type = ChoiceType.OTHER
        return cls(
            id=str(data.get("id", "")),
            text=str(data.get("text", "")),
            rationale=str(data.get("rationale", "")),
            type=choice_type,
        )


BREATHING_ROOM_ID = "BREATHING_ROOM"


def breathing_room_choice() -> Choice:
    return Choice(
        id=BREATHING_ROOM_ID,
        text='Insert a "Breathing Room" Chapter',
        rationale="System detects high narrative intensity. Slow down to process character emotions.",
        type=ChoiceType.PACING,
    )


def continue_choice(rationale: str = "Auto") -> Choice:
    """Synthetic unconditional continue choice used when parsing degrades."""
    return Choice(id="A", text="Continue", rationale=rationale, type=ChoiceType.OTHER)
