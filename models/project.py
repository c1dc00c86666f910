"""Session analytics and the persisted project snapshot."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from models.chapter import Chapter
from models.character import CharacterStatus, LoreEntry
from models.novel import NovelMetadata


@dataclass
class SessionAnalytics:
    """Additive counters for the writing session."""
    words_generated: int = 0
    time_spent_seconds: float = 0.0
    session_start: float = field(default_factory=time.time)

    def record_words(self, count: int) -> None:
        if count > 0:
            self.words_generated += count

    def record_editing_time(self, seconds: float) -> None:
        if seconds > 0:
            self.time_spent_seconds += seconds

    def to_dict(self) -> dict:
        return {
            "words_generated": self.words_generated,
            "time_spent_seconds": self.time_spent_seconds,
            "session_start": self.session_start,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionAnalytics":
        data = data or {}
        return cls(
            words_generated=int(data.get("words_generated", 0)),
            time_spent_seconds=float(data.get("time_spent_seconds", 0.0)),
            session_start=float(data.get("session_start") or time.time()),
        )


@dataclass
class ProjectState:
    """Complete, self-consistent snapshot handed to persistence and export."""
    metadata: NovelMetadata
    chapters: list[Chapter] = field(default_factory=list)
    lore: list[LoreEntry] = field(default_factory=list)
    characters: list[CharacterStatus] = field(default_factory=list)
    analytics: SessionAnalytics = field(default_factory=SessionAnalytics)
    source_chunks: list[str] = field(default_factory=list)
    current_chunk_index: int = 0
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def total_words(self) -> int:
        return sum(len(c.active_content.split()) for c in self.chapters)

    def to_dict(self) -> dict:
        return {
            "metadata": self.metadata.to_dict(),
            "chapters": [c.to_dict() for c in self.chapters],
            "lore": [entry.to_dict() for entry in self.lore],
            "characters": [c.to_dict() for c in self.characters],
            "analytics": self.analytics.to_dict(),
            "source_chunks": list(self.source_chunks),
            "current_chunk_index": self.current_chunk_index,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectState":
        return cls(
            metadata=NovelMetadata.from_dict(data.get("metadata", {})),
            chapters=[Chapter.from_dict(c) for c in data.get("chapters", [])],
            lore=[LoreEntry.from_dict(e) for e in data.get("lore", [])],
            characters=[CharacterStatus.from_dict(c) for c in data.get("characters", [])],
            analytics=SessionAnalytics.from_dict(data.get("analytics", {})),
            source_chunks=[str(s) for s in data.get("source_chunks", [])],
            current_chunk_index=int(data.get("current_chunk_index", 0)),
            timestamp=data.get("timestamp"),
        )
