"""Tests for Agent classes and BaseAgent utilities."""

import json

import pytest
from unittest.mock import patch

from tests.conftest import RateLimited


_SECTION_TEMPLATE = """\
## System Prompt
This is the system prompt body.

## Other Section
Content of another section that must not leak into the system prompt.

## Last Section
Final content with a {placeholder}.
"""


class TestBaseAgent:
    def _make_agent(self, client):
        from agents.base_agent import BaseAgent
        return BaseAgent(client=client)

    def test_settings_taken_from_client(self, client, settings):
        assert self._make_agent(client).settings is settings

    def test_extract_section_returns_correct_content(self, client):
        agent = self._make_agent(client)
        assert agent._extract_section(_SECTION_TEMPLATE, "System Prompt") == "This is the system prompt body."

    def test_extract_section_not_found_returns_empty_string(self, client):
        agent = self._make_agent(client)
        assert agent._extract_section(_SECTION_TEMPLATE, "Missing Section Name") == ""

    def test_extract_section_stops_at_next_header(self, client):
        agent = self._make_agent(client)
        result = agent._extract_section(_SECTION_TEMPLATE, "System Prompt")
        assert "another section" not in result
        assert "Final content" not in result

    def test_section_fills_placeholders(self, client):
        with patch("agents.base_agent._read_prompt_file", return_value=_SECTION_TEMPLATE):
            from agents.base_agent import BaseAgent

            class _Agent(BaseAgent):
                template_name = "writer"

            agent = _Agent(client=client)
        assert agent._section("Last Section", placeholder="twist") == "Final content with a twist."

    def test_load_prompt_raises_file_not_found_for_missing_template(self, client):
        agent = self._make_agent(client)
        with pytest.raises(FileNotFoundError):
            agent._load_prompt("nonexistent_template_xyz_123")


class TestPlannerAgent:
    @pytest.mark.asyncio
    async def test_extract_metadata_maps_keys(self, client, backend, settings):
        backend.respond("extract its metadata", json.dumps({
            "title": "The Ferryman", "characterArcs": "Grief to acceptance", "styleGoals": " ",
            "beats": [{"id": "1", "description": "Pier"}],
        }))
        from agents.planner_agent import PlannerAgent
        detected = await PlannerAgent(client=client).extract_metadata("Mara came down to the river.")
        assert detected["title"] == "The Ferryman"
        assert detected["character_arcs"] == "Grief to acceptance"
        assert "style_goals" not in detected
        assert [b.description for b in detected["beat_sheet"]] == ["Pier"]
        assert backend.calls_of("once")[0].model == settings.llm_model_analysis

    @pytest.mark.asyncio
    async def test_extract_metadata_samples_manuscript(self, client, backend, settings):
        from agents.planner_agent import PlannerAgent
        manuscript = "x" * (settings.metadata_sample_chars + 500)
        await PlannerAgent(client=client).extract_metadata(manuscript)
        prompt = backend.calls_of("once")[0].prompt
        assert "x" * settings.metadata_sample_chars in prompt
        assert "x" * (settings.metadata_sample_chars + 1) not in prompt

    @pytest.mark.asyncio
    async def test_extract_metadata_failure_returns_empty(self, client, backend):
        backend.respond("extract its metadata", "not json")
        from agents.planner_agent import PlannerAgent
        assert await PlannerAgent(client=client).extract_metadata("text") == {}

    @pytest.mark.asyncio
    async def test_generate_beat_sheet(self, client, sample_metadata):
        from agents.planner_agent import PlannerAgent
        beats = await PlannerAgent(client=client).generate_beat_sheet("text", sample_metadata)
        assert [b.id for b in beats] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_beat_sheet_rate_limited_falls_back_to_placeholder(self, client, backend, sample_metadata):
        backend.respond("structural beat sheet", RateLimited())
        from agents.planner_agent import PlannerAgent
        beats = await PlannerAgent(client=client).generate_beat_sheet("text", sample_metadata)
        assert [(b.id, b.description) for b in beats] == [("1", "Start of story")]

    @pytest.mark.asyncio
    async def test_beat_sheet_empty_falls_back_to_placeholder(self, client, backend, sample_metadata):
        backend.respond("structural beat sheet", '{"beats": [{"id": "1"}]}')
        from agents.planner_agent import PlannerAgent
        beats = await PlannerAgent(client=client).generate_beat_sheet("text", sample_metadata)
        assert len(beats) == 1
        assert beats[0].description == "Start of story"

    @pytest.mark.asyncio
    async def test_analyze_style(self, client):
        from agents.planner_agent import PlannerAgent
        dna = await PlannerAgent(client=client).analyze_style("Sample prose.")
        assert dna.startswith("Short declaratives")

    @pytest.mark.asyncio
    async def test_analyze_style_failure_sentinel(self, client, backend):
        backend.respond("Analyze style:", RuntimeError("backend down"))
        from agents.planner_agent import PlannerAgent, STYLE_ANALYSIS_FAILED
        assert await PlannerAgent(client=client).analyze_style("Sample") == STYLE_ANALYSIS_FAILED

    @pytest.mark.asyncio
    async def test_chaos_twist_forced_to_chaos_type(self, client, backend, sample_metadata):
        backend.respond("plot twist", json.dumps({"id": "X", "text": "The ferryman is Mara", "type": "Trope"}))
        from agents.planner_agent import PlannerAgent
        from models.enums import ChoiceType
        choice = await PlannerAgent(client=client).generate_chaos_twist("story", sample_metadata)
        assert choice.text == "The ferryman is Mara"
        assert choice.type == ChoiceType.CHAOS
        call = backend.calls_of("once")[0]
        assert call.temperature == 1.5
        assert "Tone: Unspecified" in call.prompt

    @pytest.mark.asyncio
    async def test_chaos_twist_fallback(self, client, backend, sample_metadata):
        backend.respond("plot twist", "[]")
        from agents.planner_agent import PlannerAgent, chaos_fallback
        choice = await PlannerAgent(client=client).generate_chaos_twist("story", sample_metadata)
        assert choice == chaos_fallback()


class TestDecodeBeats:
    def test_bare_list_and_missing_ids(self):
        from agents.planner_agent import decode_beats
        beats = decode_beats([{"description": "One"}, "junk", {"description": "Two"}])
        assert [(b.id, b.description) for b in beats] == [("1", "One"), ("2", "Two")]

    def test_unusable_payload(self):
        from agents.planner_agent import decode_beats
        assert decode_beats({"beats": "none"}) == []


class TestWriterAgent:
    def test_setup_prompt_contains_chunk_and_config(self, client, sample_metadata):
        from agents.writer_agent import WriterAgent
        from models.novel import GenerationConfig
        prompt = WriterAgent(client=client).build_setup_prompt(
            sample_metadata, "Mara came down to the river.", GenerationConfig(),
        )
        assert "PHASE 1: SETUP" in prompt
        assert '"Mara came down to the river."' in prompt
        assert "*** NARRATIVE ENGINE PARAMETERS ***" in prompt
        assert '"title": "The Ferryman"' in prompt

    def test_setup_prompt_without_config_uses_default_line(self, client, sample_metadata):
        from agents.writer_agent import WriterAgent
        prompt = WriterAgent(client=client).build_setup_prompt(sample_metadata, "chunk")
        assert "Use default balanced pacing and standard prose." in prompt

    def test_continuation_prompt_placement(self, client, sample_metadata):
        from agents.writer_agent import WriterAgent
        from models.enums import Placement
        writer = WriterAgent(client=client)
        new = writer.build_continuation_prompt(sample_metadata, "history", "", "Go north", "", "chunk")
        append = writer.build_continuation_prompt(
            sample_metadata, "history", "", "Go north", "", "chunk", placement=Placement.APPEND,
        )
        assert "START A NEW CHAPTER." in new
        assert "CONTINUE THE CURRENT CHAPTER." in append

    def test_continuation_prompt_bounds_history(self, client, settings, sample_metadata):
        from agents.writer_agent import WriterAgent
        from memory.context_window import CONDENSED_MARKER
        history = "old " * 2000
        prompt = WriterAgent(client=client).build_continuation_prompt(
            sample_metadata, history, "*** LORE ***", "Go", "Be bold.", "chunk",
        )
        assert CONDENSED_MARKER in prompt
        assert history not in prompt
        assert "*** LORE ***" in prompt
        assert "Direction chosen by the author: Go Be bold." in prompt

    def test_beat_prompt(self, client, sample_metadata):
        from agents.writer_agent import WriterAgent
        from models.novel import Beat
        prompt = WriterAgent(client=client).build_beat_prompt(
            sample_metadata, Beat("2", "The crossing"), [Beat("1", "The pier")], "story so far",
        )
        assert "Target beat: The crossing" in prompt
        assert "[Beat 1] The pier" in prompt

    @pytest.mark.asyncio
    async def test_stream_with_and_without_protocol(self, client, backend, settings):
        from agents.writer_agent import WriterAgent
        writer = WriterAgent(client=client)
        backend.queue_stream("one", "two")
        assert "".join([f async for f in writer.stream("p")]) == "one"
        assert "".join([f async for f in writer.stream("p", with_protocol=False)]) == "two"
        first, second = backend.calls_of("stream")
        assert "|||STRATEGIC_SPLIT|||" in first.system_instruction
        assert second.system_instruction is None
        assert first.model == settings.llm_model_drafting


class TestEditorAgent:
    @pytest.mark.asyncio
    async def test_critique_decodes_points(self, client, backend):
        backend.respond("ruthless literary editor", json.dumps([
            {"id": "1", "quote": "very big", "comment": "Weak intensifier."},
            {"id": "2", "quote": "x", "comment": ""},
        ]))
        from agents.editor_agent import EditorAgent
        points = await EditorAgent(client=client).critique("The very big river.")
        assert [p.comment for p in points] == ["Weak intensifier."]

    @pytest.mark.asyncio
    async def test_critique_failure_is_empty(self, client, backend):
        backend.respond("ruthless literary editor", RuntimeError("down"))
        from agents.editor_agent import EditorAgent
        assert await EditorAgent(client=client).critique("text") == []

    def test_polish_instructions(self):
        from agents.editor_agent import CritiquePoint, polish_instructions
        points = [CritiquePoint("1", "q", "Cut adverbs."), CritiquePoint("2", "q", "Vary rhythm.")]
        assert polish_instructions(points) == "Fix these specific issues: Cut adverbs. Vary rhythm."

    def test_refinement_instructions_follow_catalogue_order(self):
        from agents.editor_agent import refinement_instructions
        text = refinement_instructions(["dialogue", "sensory"])
        assert text.index("sights, sounds") < text.index("Extend conversations")

    def test_refinement_prompt(self, client):
        from agents.editor_agent import EditorAgent
        prompt = EditorAgent(client=client).build_refinement_prompt(
            "one two three", "Add smells.", "Terse.", "history",
        )
        assert "roughly 3 words" in prompt
        assert "Add smells." in prompt
        assert "Terse." in prompt

    @pytest.mark.asyncio
    async def test_refine_selection(self, client, backend):
        from agents.editor_agent import EditorAgent
        result = await EditorAgent(client=client).refine_selection("old words", "Make it vivid", "before")
        assert result == "rewritten words"
        prompt = backend.calls_of("once")[0].prompt
        assert 'TARGET TEXT TO EDIT:\n"old words"' in prompt
        assert "INSTRUCTION: Make it vivid" in prompt

    @pytest.mark.asyncio
    async def test_refine_selection_empty_keeps_original(self, client, backend):
        backend.respond("surgical literary editor", "   ")
        from agents.editor_agent import EditorAgent
        assert await EditorAgent(client=client).refine_selection("keep me", "x", "") == "keep me"


class TestContinuityAgent:
    @pytest.mark.asyncio
    async def test_extract_updates_returns_payload(self, client, backend):
        backend.respond("NEW significant facts", json.dumps({"lore": [{"key": "Coin"}]}))
        from agents.continuity_agent import ContinuityAgent
        assert await ContinuityAgent(client=client).extract_updates("text") == {"lore": [{"key": "Coin"}]}

    @pytest.mark.asyncio
    async def test_extract_updates_propagates_failure(self, client, backend):
        backend.respond("NEW significant facts", "garbage")
        from agents.continuity_agent import ContinuityAgent
        from config.exceptions import LLMError
        with pytest.raises(LLMError):
            await ContinuityAgent(client=client).extract_updates("text")

    @pytest.mark.asyncio
    async def test_consistency_flagged(self, client, backend):
        backend.respond("continuity checker", json.dumps({"safe": False, "issues": ["Tomas is dead"]}))
        from agents.continuity_agent import ContinuityAgent
        from models.character import CharacterStatus
        from models.novel import Beat
        report = await ContinuityAgent(client=client).check_beat_consistency(
            Beat("4", "Tomas rows the boat"), [], [CharacterStatus(name="Tomas", status="Dead")],
        )
        assert not report.safe
        assert report.issues == ["Tomas is dead"]
        assert "- Tomas: Dead" in backend.calls_of("once")[0].prompt

    @pytest.mark.asyncio
    async def test_consistency_failure_is_safe(self, client, backend):
        backend.respond("continuity checker", RuntimeError("down"))
        from agents.continuity_agent import ContinuityAgent
        from models.novel import Beat
        report = await ContinuityAgent(client=client).check_beat_consistency(Beat("1", "x"), [], [])
        assert report.safe

    def test_decode_consistency(self):
        from agents.continuity_agent import decode_consistency
        assert decode_consistency({"safe": True, "issues": []}).safe
        assert decode_consistency({"safe": False}).issues == ["Unspecified continuity conflict"]
        assert not decode_consistency({"issues": ["x"]}).safe
        assert decode_consistency("nonsense").safe

    @pytest.mark.asyncio
    async def test_ask(self, client, backend):
        from agents.continuity_agent import ContinuityAgent
        from models.character import LoreEntry
        answer = await ContinuityAgent(client=client).ask(
            "How much did Mara pay?", "She paid two coins.", [LoreEntry(key="Coin", description="Fare")],
        )
        assert answer == "Mara paid two coins."
        prompt = backend.calls_of("once")[0].prompt
        assert "- Coin (General): Fare" in prompt
        assert 'User question: "How much did Mara pay?"' in prompt

    @pytest.mark.asyncio
    async def test_ask_empty_answer(self, client, backend):
        backend.respond("Memory Bank", "")
        from agents.continuity_agent import ContinuityAgent, NO_ANSWER
        assert await ContinuityAgent(client=client).ask("?", "") == NO_ANSWER
