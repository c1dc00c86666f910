"""Character status and lore data models."""

from dataclasses import dataclass, field

from models.enums import LifeStatus, LoreCategory

UNKNOWN = "Unknown"


@dataclass
class LoreEntry:
    """A world-building fact, identified by its case-insensitive key."""
    id: str = ""
    key: str = ""
    category: str = LoreCategory.GENERAL.value
    description: str = ""
    tags: list[str] = field(default_factory=list)

    @property
    def identity(self) -> str:
        return self.key.strip().lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "category": self.category,
            "description": self.description,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LoreEntry":
        return cls(
            id=str(data.get("id", "")),
            key=str(data.get("key", "")),
            category=str(data.get("category") or LoreCategory.GENERAL.value),
            description=str(data.get("description", "")),
            tags=[str(t) for t in data.get("tags", []) or []],
        )


@dataclass
class CharacterStatus:
    """Tracked state of a character, identified by case-insensitive name.

    ``status`` holds a free string: the backend may report states outside
    ``LifeStatus`` and those are kept verbatim.
    """
    name: str = ""
    status: str = LifeStatus.ALIVE.value
    location: str = UNKNOWN
    goal: str = UNKNOWN
    inventory: list[str] = field(default_factory=list)

    @property
    def identity(self) -> str:
        return self.name.strip().lower()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "location": self.location,
            "goal": self.goal,
            "inventory": list(self.inventory),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CharacterStatus":
        return cls(
            name=str(data.get("name", "")),
            status=str(data.get("status") or LifeStatus.ALIVE.value),
            location=str(data.get("location") or UNKNOWN),
            goal=str(data.get("goal") or UNKNOWN),
            inventory=[str(i) for i in data.get("inventory", []) or []],
        )
