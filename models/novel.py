"""Novel metadata, beat sheet, and generation configuration models."""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Optional

from models.enums import DialogueRatio, ExpansionDepth, PacingSpeed, SensoryDensity

DEFAULT_CONFIG_PROMPT = "Use default balanced pacing and standard prose."


@dataclass
class Beat:
    """A single planned plot point in the structural outline."""
    id: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> "Beat":
        return cls(id=str(data.get("id", "")), description=str(data.get("description", "")))


@dataclass(frozen=True)
class GenerationConfig:
    """Flat record of the narrative engine knobs.

    Frozen: a confirmed config is never edited in place. Transient overrides
    (the breathing-room interlude) are produced with ``with_overrides``.
    """
    # Structure & pacing
    expansion_depth: ExpansionDepth = ExpansionDepth.SCENE
    pacing_speed: PacingSpeed = PacingSpeed.BALANCED
    narrative_flow: str = "Linear"
    time_dilation: str = "Real-time"
    chapter_structure: str = "Classic Arc"

    # Voice & prose
    tone: str = "Dark/Gritty"
    prose_complexity: str = "Standard"
    sentence_rhythm: str = "Flowing"
    vocabulary_level: str = "College"
    metaphor_frequency: str = "Moderate"

    # Narrative mechanics
    pov: str = "Third Person Limited"
    tense: str = "Past"
    narrative_distance: str = "Close"
    narrative_reliability: str = "Reliable"

    # Immersion
    sensory_density: SensoryDensity = SensoryDensity.MEDIUM
    atmospheric_filter: str = "Neutral"

    # Character & dialogue
    dialogue_ratio: DialogueRatio = DialogueRatio.BALANCED
    character_agency: str = "Active"
    relationship_dynamic: str = "Conflict-Driven"
    subtext_level: str = "Balanced"

    # World & plot
    magic_rules: str = "Soft Rules"
    world_building: str = "Integrated"
    conflict_focus: str = "Interpersonal"

    # Safety & creativity
    creativity: str = "Interpretive"
    rating: str = "PG-13"

    # Automation toggles
    auto_lore: bool = True
    auto_critique: bool = False

    def with_overrides(self, **changes) -> "GenerationConfig":
        return replace(self, **changes)

    def breathing_room(self) -> "GenerationConfig":
        """Slow, introspective, sensory-heavy override for one interlude cycle."""
        return self.with_overrides(
            pacing_speed=PacingSpeed.SLOW_BURN,
            expansion_depth=ExpansionDepth.SCENE,
            dialogue_ratio=DialogueRatio.INTERNAL_MONOLOGUE,
            sensory_density=SensoryDensity.HIGH,
        )

    @property
    def is_high_energy(self) -> bool:
        return self.pacing_speed in (PacingSpeed.FAST, PacingSpeed.BALANCED)

    def to_dict(self) -> dict:
        data = asdict(self)
        for key, value in data.items():
            if hasattr(value, "value"):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationConfig":
        """Build a config from a dict, ignoring unknown keys and bad enum values."""
        enum_fields = {
            "expansion_depth": ExpansionDepth,
            "pacing_speed": PacingSpeed,
            "sensory_density": SensoryDensity,
            "dialogue_ratio": DialogueRatio,
        }
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in (data or {}).items():
            if key not in known or value is None:
                continue
            enum_cls = enum_fields.get(key)
            if enum_cls is not None:
                try:
                    value = enum_cls(value)
                except ValueError:
                    continue
            kwargs[key] = value
        return cls(**kwargs)


def format_config_for_prompt(config: Optional[GenerationConfig]) -> str:
    """Render the full engine parameter block, or the documented default line."""
    if config is None:
        return DEFAULT_CONFIG_PROMPT
    return (
        "*** NARRATIVE ENGINE PARAMETERS ***\n"
        "[STRUCTURE]\n"
        f"Depth: {config.expansion_depth.value}, Speed: {config.pacing_speed.value}, "
        f"Flow: {config.narrative_flow}\n"
        f"Time Handling: {config.time_dilation}, Chapter Arc: {config.chapter_structure}\n"
        "\n[VOICE & PROSE]\n"
        f"Tone: {config.tone}, POV: {config.pov}, Tense: {config.tense}\n"
        f"Complexity: {config.prose_complexity}, Rhythm: {config.sentence_rhythm}\n"
        f"Vocab: {config.vocabulary_level}, Metaphor: {config.metaphor_frequency}\n"
        f"Distance: {config.narrative_distance}, Reliability: {config.narrative_reliability}\n"
        "\n[IMMERSION & ATMOSPHERE]\n"
        f"Sensory: {config.sensory_density.value}, Atmosphere: {config.atmospheric_filter}\n"
        "\n[CHARACTER & THEME]\n"
        f"Dialogue: {config.dialogue_ratio.value}, Agency: {config.character_agency}, "
        f"Dynamic: {config.relationship_dynamic}\n"
        f"Subtext: {config.subtext_level}, Conflict Focus: {config.conflict_focus}\n"
        "\n[WORLD & CONSTRAINTS]\n"
        f"Magic: {config.magic_rules}, Worldbuilding: {config.world_building}\n"
        f"Creativity: {config.creativity}, Rating: {config.rating}"
    )


@dataclass
class NovelMetadata:
    """Project-level metadata owned by the orchestrator for the session."""
    title: str = ""
    author: str = ""
    genre: str = ""
    synopsis: str = ""
    themes: str = ""
    character_arcs: str = ""
    style_goals: str = ""
    comedy: str = ""
    min_word_count: int = 0
    max_word_count: int = 0
    style_analysis: str = ""  # Style DNA, computed once
    beat_sheet: list[Beat] = field(default_factory=list)
    config: Optional[GenerationConfig] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "synopsis": self.synopsis,
            "themes": self.themes,
            "character_arcs": self.character_arcs,
            "style_goals": self.style_goals,
            "comedy": self.comedy,
            "min_word_count": self.min_word_count,
            "max_word_count": self.max_word_count,
            "style_analysis": self.style_analysis,
            "beat_sheet": [b.to_dict() for b in self.beat_sheet],
            "config": self.config.to_dict() if self.config else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NovelMetadata":
        data = data or {}
        config_data = data.get("config")
        return cls(
            title=str(data.get("title", "") or ""),
            author=str(data.get("author", "") or ""),
            genre=str(data.get("genre", "") or ""),
            synopsis=str(data.get("synopsis", "") or ""),
            themes=str(data.get("themes", "") or ""),
            character_arcs=str(data.get("character_arcs", "") or ""),
            style_goals=str(data.get("style_goals", "") or ""),
            comedy=str(data.get("comedy", "") or ""),
            min_word_count=int(data.get("min_word_count", 0) or 0),
            max_word_count=int(data.get("max_word_count", 0) or 0),
            style_analysis=str(data.get("style_analysis", "") or ""),
            beat_sheet=[Beat.from_dict(b) for b in data.get("beat_sheet", []) if isinstance(b, dict)],
            config=GenerationConfig.from_dict(config_data) if isinstance(config_data, dict) else None,
        )
