"""Models package: session data model, enums, and the project store."""

from models.database import ProjectDatabase
from models.novel import Beat, GenerationConfig, NovelMetadata, format_config_for_prompt
from models.chapter import Chapter, Choice, breathing_room_choice, continue_choice
from models.character import CharacterStatus, LoreEntry
from models.project import ProjectState, SessionAnalytics
from models.enums import (
    Phase,
    ChapterStatus,
    ChoiceType,
    LoreCategory,
    LifeStatus,
    Placement,
    PacingSpeed,
    ExpansionDepth,
    SensoryDensity,
    DialogueRatio,
)

__all__ = [
    "ProjectDatabase",
    "Beat",
    "GenerationConfig",
    "NovelMetadata",
    "format_config_for_prompt",
    "Chapter",
    "Choice",
    "breathing_room_choice",
    "continue_choice",
    "CharacterStatus",
    "LoreEntry",
    "ProjectState",
    "SessionAnalytics",
    "Phase",
    "ChapterStatus",
    "ChoiceType",
    "LoreCategory",
    "LifeStatus",
    "Placement",
    "PacingSpeed",
    "ExpansionDepth",
    "SensoryDensity",
    "DialogueRatio",
]
