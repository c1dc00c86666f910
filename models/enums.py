"""Enumerations for session phases and generation knobs."""

from enum import Enum


class Phase(str, Enum):
    UPLOAD = "upload"
    DETECTING_METADATA = "detecting_metadata"
    SETUP = "setup"
    CONFIGURATION = "configuration"
    GENERATING_BEATS = "generating_beats"
    BEAT_SHEET = "beat_sheet"
    ANALYZING = "analyzing"
    PROCESSING = "processing"
    REFINEMENT_SELECTION = "refinement_selection"
    REFINING = "refining"
    DECISION = "decision"
    FINISHED = "finished"


class ChapterStatus(str, Enum):
    COMPLETED = "completed"
    GENERATING = "generating"
    PENDING = "pending"


class ChoiceType(str, Enum):
    CHARACTER = "Character"
    SUBPLOT = "Subplot"
    THEME = "Theme"
    TROPE = "Trope"
    OTHER = "Other"
    PACING = "Pacing"
    CHAOS = "Chaos"


class LoreCategory(str, Enum):
    CHARACTER = "Character"
    LOCATION = "Location"
    ITEM = "Item"
    HISTORY = "History"
    GENERAL = "General"


class LifeStatus(str, Enum):
    ALIVE = "Alive"
    DEAD = "Dead"
    MISSING = "Missing"
    UNKNOWN = "Unknown"


class Placement(str, Enum):
    NEW_CHAPTER = "new"
    APPEND = "append"


# ---- Generation knobs the orchestrator reasons about ----

class PacingSpeed(str, Enum):
    SLOW_BURN = "Slow Burn"
    BALANCED = "Balanced"
    FAST = "Fast"


class ExpansionDepth(str, Enum):
    MICRO = "Micro"
    SCENE = "Scene"
    CHAPTER = "Chapter"


class SensoryDensity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class DialogueRatio(str, Enum):
    DIALOGUE_HEAVY = "Dialogue Heavy"
    BALANCED = "Balanced"
    INTERNAL_MONOLOGUE = "Internal Monologue"
