"""Session state and the per-cycle LangGraph state."""

from dataclasses import dataclass, field
from typing import Optional, TypedDict

from memory.knowledge_store import KnowledgeStore
from models.chapter import Chapter, Choice
from models.enums import Phase, Placement
from models.novel import Beat, GenerationConfig, NovelMetadata
from models.project import SessionAnalytics


@dataclass
class SessionState:
    """Everything the orchestrator owns for one authoring session.

    Fields are grouped logically:
    - Flow: phase, is_generating, status, last_error
    - Source: source_chunks, current_chunk_index (chunk of the last commit)
    - Project: metadata, detected_metadata, draft_beats
    - Output: chapters, choices, streaming_text
    - Knowledge: knowledge (lore + characters)
    - Pacing: consecutive_high_energy
    - Batch: batch_completed, batch_total
    """

    # Flow
    phase: Phase = Phase.UPLOAD
    is_generating: bool = False
    status: str = ""
    last_error: Optional[str] = None

    # Source
    source_chunks: list[str] = field(default_factory=list)
    current_chunk_index: int = 0

    # Project
    metadata: Optional[NovelMetadata] = None
    detected_metadata: dict = field(default_factory=dict)
    draft_beats: list[Beat] = field(default_factory=list)
    beat_sheet_confirmed: bool = False

    # Output
    chapters: list[Chapter] = field(default_factory=list)
    choices: list[Choice] = field(default_factory=list)
    streaming_text: str = ""

    # Knowledge
    knowledge: KnowledgeStore = field(default_factory=KnowledgeStore)
    analytics: SessionAnalytics = field(default_factory=SessionAnalytics)

    # Pacing
    consecutive_high_energy: int = 0

    # Batch
    batch_completed: int = 0
    batch_total: int = 0

    @property
    def chunks_remaining(self) -> int:
        if not self.chapters:
            return len(self.source_chunks)
        return max(len(self.source_chunks) - self.current_chunk_index - 1, 0)

    def story_history(self, separator: str = "\n\n") -> str:
        return separator.join(c.active_content for c in self.chapters)

    def effective_config(self) -> GenerationConfig:
        if self.metadata and self.metadata.config:
            return self.metadata.config
        return GenerationConfig()


class CycleState(TypedDict, total=False):
    """State flowing through one generation cycle graph run.

    - Inputs: chunk, chunk_index, choice, custom_instructions, is_first,
      placement, config, interlude
    - Draft: prompt, story_history, raw_response, prose, degraded
    - Polish: critique_points, versions
    - Outputs: choices, pacing_score, chapter_id
    - Control: error, last_node
    """

    # Inputs
    chunk: str
    chunk_index: int
    choice: str
    custom_instructions: str
    is_first: bool
    placement: Placement
    config: GenerationConfig
    interlude: bool

    # Draft
    prompt: str
    story_history: str
    raw_response: str
    prose: str
    degraded: bool

    # Polish
    critique_points: list
    versions: list

    # Outputs
    choices: list
    pacing_score: int
    chapter_id: int

    # Control
    error: str
    last_node: str
