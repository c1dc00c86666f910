"""Lore and character-status knowledge store with keyword retrieval.

Extraction payloads come from the backend in loosely-typed JSON. The decode
functions below turn them into candidate records, dropping anything
malformed; the apply functions merge candidates into the current collections
without ever blanking known state.

Background extraction runs as detached asyncio tasks. Their results are
merged against the store's state at resolution time, so updates that
landed in between are never overwritten by a stale snapshot.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from models.character import UNKNOWN, CharacterStatus, LoreEntry
from models.enums import LifeStatus, LoreCategory

logger = logging.getLogger(__name__)

LORE_HEADER = "*** LORE DATABASE (RELEVANT ENTRIES) ***"
CHARACTER_HEADER = "*** CHARACTER STATUS ***"

_id_counter = itertools.count()


def _new_lore_id() -> str:
    return f"auto-{int(time.time() * 1000)}-{next(_id_counter)}"


# ---- Retrieval ----

def retrieve_context(
    query_text: str,
    lore: list[LoreEntry],
    characters: list[CharacterStatus],
) -> str:
    """Format only the lore and characters literally mentioned in ``query_text``.

    Matching is case-insensitive substring search on lore keys, lore tags,
    and character names. Returns an empty string when nothing matches.
    """
    haystack = (query_text or "").lower()
    if not haystack:
        return ""

    relevant_lore = [
        entry for entry in lore
        if (entry.key and entry.key.lower() in haystack)
        or any(tag and tag.lower() in haystack for tag in entry.tags)
    ]
    relevant_chars = [c for c in characters if c.name and c.name.lower() in haystack]

    context = ""
    if relevant_lore:
        context += f"\n{LORE_HEADER}\n"
        for entry in relevant_lore:
            context += f"- {entry.key} ({entry.category}): {entry.description}\n"
    if relevant_chars:
        context += f"\n{CHARACTER_HEADER}\n"
        for char in relevant_chars:
            context += (
                f"- {char.name}: Currently at {char.location}. "
                f"Goal: {char.goal}. Status: {char.status}.\n"
            )
    return context


# ---- Payload decoding ----

@dataclass
class CharacterUpdate:
    """A partial character update; empty fields mean 'no information'."""
    name: str
    status: str = ""
    location: str = ""
    goal: str = ""
    inventory: list[str] = field(default_factory=list)


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if _text(v)]
    return []


def _section(raw: Any, key: str) -> list:
    if isinstance(raw, dict):
        items = raw.get(key)
        return items if isinstance(items, list) else []
    if isinstance(raw, list):
        return raw
    return []


def decode_lore_candidates(raw: Any) -> list[LoreEntry]:
    """Accept ``{"lore": [...]}`` or a bare list; items without a key are dropped."""
    candidates = []
    for item in _section(raw, "lore"):
        if not isinstance(item, dict):
            continue
        key = _text(item.get("key"))
        if not key:
            continue
        candidates.append(LoreEntry(
            key=key,
            category=_text(item.get("category")) or LoreCategory.GENERAL.value,
            description=_text(item.get("description")),
            tags=_string_list(item.get("tags")),
        ))
    return candidates


def decode_character_updates(raw: Any) -> list[CharacterUpdate]:
    """Accept ``{"characters": [...]}`` or a bare list; nameless items are dropped.

    ``statusUpdate`` is read as an alias of ``status``.
    """
    updates = []
    for item in _section(raw, "characters"):
        if not isinstance(item, dict):
            continue
        name = _text(item.get("name"))
        if not name:
            continue
        updates.append(CharacterUpdate(
            name=name,
            status=_text(item.get("status")) or _text(item.get("statusUpdate")),
            location=_text(item.get("location")),
            goal=_text(item.get("goal")),
            inventory=_string_list(item.get("inventory")),
        ))
    return updates


# ---- Merge rules ----

def apply_lore_extraction(raw: Any, current_lore: list[LoreEntry]) -> list[LoreEntry]:
    """Append candidates whose case-insensitive key is new. First write wins."""
    result = list(current_lore)
    seen = {entry.identity for entry in result}
    for candidate in decode_lore_candidates(raw):
        if candidate.identity in seen:
            continue
        if not candidate.id:
            candidate.id = _new_lore_id()
        result.append(candidate)
        seen.add(candidate.identity)
    return result


def _merge_inventory(existing: list[str], incoming: list[str]) -> list[str]:
    merged = list(existing)
    for item in incoming:
        if item not in merged:
            merged.append(item)
    return merged


def apply_character_extraction(
    raw: Any,
    current_characters: list[CharacterStatus],
) -> list[CharacterStatus]:
    """Merge partial updates: non-empty fields overwrite, inventory unions."""
    result = [
        CharacterStatus(c.name, c.status, c.location, c.goal, list(c.inventory))
        for c in current_characters
    ]
    index = {c.identity: c for c in result}
    for update in decode_character_updates(raw):
        existing = index.get(update.name.lower())
        if existing is None:
            record = CharacterStatus(
                name=update.name,
                status=update.status or LifeStatus.ALIVE.value,
                location=update.location or UNKNOWN,
                goal=update.goal or UNKNOWN,
                inventory=_merge_inventory([], update.inventory),
            )
            result.append(record)
            index[record.identity] = record
            continue
        if update.status:
            existing.status = update.status
        if update.location:
            existing.location = update.location
        if update.goal:
            existing.goal = update.goal
        existing.inventory = _merge_inventory(existing.inventory, update.inventory)
    return result


# ---- Store ----

class KnowledgeStore:
    """Session-owned lore and character collections.

    ``merge_extraction`` is the single writer path. It runs synchronously
    with no suspension point, so merges never interleave on the event loop.
    """

    def __init__(
        self,
        lore: Optional[list[LoreEntry]] = None,
        characters: Optional[list[CharacterStatus]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.lore: list[LoreEntry] = list(lore or [])
        self.characters: list[CharacterStatus] = list(characters or [])
        self.on_change = on_change
        self._tasks: set[asyncio.Task] = set()

    def retrieve(self, query_text: str) -> str:
        return retrieve_context(query_text, self.lore, self.characters)

    def merge_extraction(self, payload: Any) -> None:
        if not payload:
            return
        before = (len(self.lore), len(self.characters))
        self.lore = apply_lore_extraction(payload, self.lore)
        self.characters = apply_character_extraction(payload, self.characters)
        logger.debug(
            "Knowledge merged: lore %d -> %d, characters %d -> %d",
            before[0], len(self.lore), before[1], len(self.characters),
        )
        if self.on_change:
            self.on_change()

    def add_lore(self, key: str, description: str, category: str = "General",
                 tags: Optional[list[str]] = None) -> None:
        self.merge_extraction({"lore": [
            {"key": key, "description": description, "category": category, "tags": tags or []}
        ]})

    def upsert_character(self, name: str, **fields) -> None:
        self.merge_extraction({"characters": [{"name": name, **fields}]})

    # ---- Detached extraction ----

    def launch(self, coro_factory: Callable[[], Awaitable[Any]], label: str = "extraction") -> asyncio.Task:
        """Run an extraction coroutine in the background and merge on completion."""
        task = asyncio.create_task(self._run(coro_factory, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro_factory: Callable[[], Awaitable[Any]], label: str) -> None:
        try:
            payload = await coro_factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Background %s failed, dropping result: %s", label, e)
            return
        self.merge_extraction(payload)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding background task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
