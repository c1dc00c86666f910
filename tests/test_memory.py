"""Tests for context bounding and the lore / character knowledge store."""

import asyncio

import pytest

from memory.context_window import CONDENSED_MARKER, bound_context
from memory.knowledge_store import (
    CHARACTER_HEADER,
    LORE_HEADER,
    KnowledgeStore,
    apply_character_extraction,
    apply_lore_extraction,
    retrieve_context,
)
from models.character import CharacterStatus, LoreEntry


class TestBoundContext:
    def test_short_history_unchanged(self):
        assert bound_context("short story", budget=100) == "short story"

    def test_none_is_empty(self):
        assert bound_context(None) == ""

    def test_long_history_keeps_tail_with_marker(self):
        history = "x" * 500
        bounded = bound_context(history, budget=100, break_window=10)
        assert bounded.startswith(CONDENSED_MARKER)
        assert bounded[len(CONDENSED_MARKER):] == "x" * 100

    def test_resumes_after_paragraph_break(self):
        history = "a" * 400 + "b" * 30 + "\n\n" + "c" * 68
        bounded = bound_context(history, budget=100, break_window=50)
        assert bounded == CONDENSED_MARKER + "c" * 68

    def test_break_outside_window_ignored(self):
        history = "a" * 400 + "b" * 80 + "\n\n" + "c" * 18
        bounded = bound_context(history, budget=100, break_window=50)
        assert bounded == CONDENSED_MARKER + history[-100:]

    def test_length_bound(self):
        bounded = bound_context("word " * 1000, budget=300, break_window=20)
        assert len(bounded) <= 300 + len(CONDENSED_MARKER)

    def test_idempotent(self):
        history = ("Paragraph of story text.\n\n" * 50)
        once = bound_context(history, budget=200, break_window=40)
        assert bound_context(once, budget=200, break_window=40) == once


@pytest.fixture
def lore():
    return [
        LoreEntry(id="1", key="Black River", category="Location",
                  description="A river that should not exist.", tags=["ferry", "crossing"]),
        LoreEntry(id="2", key="Coin", category="Item", description="Payment for the dead."),
    ]


@pytest.fixture
def characters():
    return [
        CharacterStatus(name="Mara", status="Alive", location="The pier", goal="Find her brother",
                        inventory=["lantern"]),
        CharacterStatus(name="Ferryman"),
    ]


class TestRetrieveContext:
    def test_matches_key_case_insensitively(self, lore, characters):
        context = retrieve_context("They reached the black river at dusk.", lore, characters)
        assert LORE_HEADER in context
        assert "- Black River (Location): A river that should not exist." in context
        assert "Coin" not in context

    def test_matches_tag(self, lore, characters):
        context = retrieve_context("The FERRY groaned.", lore, characters)
        assert "Black River" in context

    def test_character_line_format(self, lore, characters):
        context = retrieve_context("mara waited", lore, characters)
        assert CHARACTER_HEADER in context
        assert "- Mara: Currently at The pier. Goal: Find her brother. Status: Alive." in context
        assert LORE_HEADER not in context

    def test_lore_section_precedes_characters(self, lore, characters):
        context = retrieve_context("Mara held the coin", lore, characters)
        assert context.index(LORE_HEADER) < context.index(CHARACTER_HEADER)

    def test_no_match_is_empty(self, lore, characters):
        assert retrieve_context("Nothing relevant here.", lore, characters) == ""

    def test_empty_query_is_empty(self, lore, characters):
        assert retrieve_context("", lore, characters) == ""


class TestApplyLoreExtraction:
    def test_appends_new_entries_with_ids(self, lore):
        result = apply_lore_extraction(
            {"lore": [{"key": "Lamp", "category": "Item", "description": "Burns for ten years"}]}, lore,
        )
        assert [e.key for e in result] == ["Black River", "Coin", "Lamp"]
        assert result[-1].id.startswith("auto-")

    def test_existing_key_first_write_wins(self, lore):
        result = apply_lore_extraction({"lore": [{"key": "coin", "description": "Rewritten"}]}, lore)
        assert len(result) == 2
        assert result[1].description == "Payment for the dead."

    def test_duplicates_within_payload_collapse(self):
        result = apply_lore_extraction({"lore": [
            {"key": "Lamp", "description": "first"},
            {"key": "LAMP", "description": "second"},
        ]}, [])
        assert [e.description for e in result] == ["first"]

    def test_malformed_items_dropped(self, lore):
        result = apply_lore_extraction({"lore": ["junk", {"description": "no key"}, None]}, lore)
        assert result == lore

    def test_bare_list_accepted(self):
        result = apply_lore_extraction([{"key": "Pier", "tags": "wood, rot"}], [])
        assert result[0].tags == ["wood", "rot"]
        assert result[0].category == "General"

    def test_input_not_mutated(self, lore):
        apply_lore_extraction({"lore": [{"key": "Lamp"}]}, lore)
        assert len(lore) == 2


class TestApplyCharacterExtraction:
    def test_new_character_gets_defaults(self):
        result = apply_character_extraction({"characters": [{"name": "Tomas"}]}, [])
        assert result[0].to_dict() == {
            "name": "Tomas", "status": "Alive", "location": "Unknown", "goal": "Unknown", "inventory": [],
        }

    def test_partial_update_keeps_known_fields(self, characters):
        result = apply_character_extraction(
            {"characters": [{"name": "MARA", "location": "Mid-river", "goal": ""}]}, characters,
        )
        mara = result[0]
        assert mara.name == "Mara"
        assert mara.location == "Mid-river"
        assert mara.goal == "Find her brother"
        assert mara.status == "Alive"

    def test_status_update_alias(self, characters):
        result = apply_character_extraction(
            {"characters": [{"name": "Ferryman", "statusUpdate": "Missing"}]}, characters,
        )
        assert result[1].status == "Missing"

    def test_inventory_union_preserves_order(self, characters):
        result = apply_character_extraction(
            {"characters": [{"name": "Mara", "inventory": ["coin", "lantern", "knife"]}]}, characters,
        )
        assert result[0].inventory == ["lantern", "coin", "knife"]

    def test_unknown_status_kept_verbatim(self, characters):
        result = apply_character_extraction(
            {"characters": [{"name": "Mara", "status": "Transformed"}]}, characters,
        )
        assert result[0].status == "Transformed"

    def test_nameless_updates_dropped(self, characters):
        result = apply_character_extraction({"characters": [{"location": "Nowhere"}, 5]}, characters)
        assert [c.to_dict() for c in result] == [c.to_dict() for c in characters]

    def test_input_not_mutated(self, characters):
        apply_character_extraction({"characters": [{"name": "Mara", "location": "Shore"}]}, characters)
        assert characters[0].location == "The pier"


class TestKnowledgeStore:
    def test_merge_extraction_updates_both_and_notifies(self):
        changes = []
        store = KnowledgeStore(on_change=lambda: changes.append(1))
        store.merge_extraction({
            "lore": [{"key": "Lamp", "description": "Lit"}],
            "characters": [{"name": "Mara"}],
        })
        assert [e.key for e in store.lore] == ["Lamp"]
        assert [c.name for c in store.characters] == ["Mara"]
        assert changes == [1]

    def test_empty_payload_is_noop(self):
        changes = []
        store = KnowledgeStore(on_change=lambda: changes.append(1))
        store.merge_extraction({})
        assert changes == []

    def test_manual_helpers(self):
        store = KnowledgeStore()
        store.add_lore("Pier", "Rotten planks", category="Location")
        store.upsert_character("Mara", location="Pier")
        assert "Pier" in store.retrieve("mara on the pier")

    @pytest.mark.asyncio
    async def test_launch_merges_on_completion(self):
        store = KnowledgeStore()

        async def extract():
            return {"lore": [{"key": "Lamp"}]}

        store.launch(extract)
        assert store.pending == 1
        await store.drain()
        assert store.pending == 0
        assert [e.key for e in store.lore] == ["Lamp"]

    @pytest.mark.asyncio
    async def test_failed_extraction_is_dropped(self):
        store = KnowledgeStore()

        async def extract():
            raise RuntimeError("backend down")

        store.launch(extract)
        await store.drain()
        assert store.lore == []
        assert store.characters == []

    @pytest.mark.asyncio
    async def test_late_result_merges_against_current_state(self):
        store = KnowledgeStore()
        release = asyncio.Event()

        async def slow_extract():
            await release.wait()
            return {"characters": [{"name": "Mara", "inventory": ["coin"]}]}

        store.launch(slow_extract)
        await asyncio.sleep(0)
        store.upsert_character("Mara", location="Far shore", inventory=["lamp"])
        release.set()
        await store.drain()
        mara = store.characters[0]
        assert mara.location == "Far shore"
        assert mara.inventory == ["lamp", "coin"]
