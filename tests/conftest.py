"""Shared pytest fixtures for the novel-expander test suite."""

import json
from dataclasses import dataclass
from typing import Optional

import pytest
import pytest_asyncio

from tools.response_parser import STRATEGIC_SPLIT


# ---------------------------------------------------------------------------
# Scripted responses
# ---------------------------------------------------------------------------

DEFAULT_CHOICES = [
    {"id": "A", "text": "Follow the river north", "rationale": "Raises stakes.", "type": "Character"},
    {"id": "B", "text": "Continue the night watch", "rationale": "Keeps momentum.", "type": "Subplot"},
    {"id": "C", "text": "Reveal the ferryman's secret", "rationale": "Twist.", "type": "Trope"},
    {"id": "D", "text": "Dwell on the lost brother", "rationale": "Theme.", "type": "Theme"},
]

DEFAULT_PROSE = (
    "The lantern guttered as Mara stepped onto the pier. Rain needled the black water "
    "and the ferryman did not look up.\n\n"
    "She counted the coins twice before she let them go."
)


def chapter_response(prose: str = DEFAULT_PROSE, choices: Optional[list] = None, pacing: int = 6) -> str:
    """A well-formed chapter stream: prose, delimiter, JSON object."""
    payload = {"pacingScore": pacing, "choices": DEFAULT_CHOICES if choices is None else choices}
    return f"{prose}\n\n{STRATEGIC_SPLIT}\n{json.dumps(payload)}"


# Marker substring found in a prompt -> default single-shot response
DEFAULT_RESPONSES = {
    "extract its metadata": json.dumps({
        "title": "The Ferryman",
        "author": "J. Doe",
        "genre": "Gothic",
        "synopsis": "A woman crosses a river that should not exist.",
    }),
    "structural beat sheet": json.dumps({"beats": [
        {"id": "1", "description": "Mara reaches the pier"},
        {"id": "2", "description": "The crossing"},
        {"id": "3", "description": "The far shore"},
    ]}),
    "Analyze style:": "Short declaratives, wet sensory imagery, close third person.",
    "plot twist": json.dumps({"id": "CHAOS", "text": "The river runs backwards", "rationale": "Entropy"}),
    "NEW significant facts": "{}",
    "continuity checker": json.dumps({"safe": True, "issues": []}),
    "Memory Bank": "Mara paid two coins.",
    "ruthless literary editor": "[]",
    "surgical literary editor": "rewritten words",
}


@dataclass
class BackendCall:
    kind: str
    model: str
    prompt: str
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    response_schema: Optional[dict] = None


class ScriptedBackend:
    """In-memory ``GenerationBackend`` driven by queued scripts.

    Stream scripts are consumed in order; a script is a string (split into
    small fragments), a list of fragments that may contain exceptions, or an
    exception raised before the first fragment. Single-shot calls match the
    first rule whose marker occurs in the prompt; a rule's last response
    repeats once the earlier ones are used.
    """

    FRAGMENT_SIZE = 40

    def __init__(self):
        self.streams: list = []
        self.rules: list[tuple[str, list]] = []
        self.calls: list[BackendCall] = []

    def queue_stream(self, *scripts) -> None:
        self.streams.extend(scripts)

    def respond(self, marker: str, *responses) -> None:
        self.rules.insert(0, (marker, list(responses)))

    def calls_of(self, kind: str) -> list[BackendCall]:
        return [c for c in self.calls if c.kind == kind]

    def _fragments(self, script) -> list:
        if isinstance(script, BaseException):
            raise script
        if isinstance(script, str):
            return [script[i:i + self.FRAGMENT_SIZE] for i in range(0, len(script), self.FRAGMENT_SIZE)]
        return list(script)

    async def generate_streaming(self, model, prompt, system_instruction=None,
                                 temperature=None, response_schema=None):
        self.calls.append(BackendCall("stream", model, prompt, system_instruction, temperature, response_schema))
        script = self.streams.pop(0) if self.streams else chapter_response()
        from tools.generation_client import GenerationChunk
        for fragment in self._fragments(script):
            if isinstance(fragment, BaseException):
                raise fragment
            yield GenerationChunk(fragment)

    async def generate_once(self, model, prompt, system_instruction=None,
                            temperature=None, response_schema=None):
        from tools.generation_client import GenerationChunk
        self.calls.append(BackendCall("once", model, prompt, system_instruction, temperature, response_schema))
        for marker, responses in self.rules:
            if marker in prompt:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, BaseException):
                    raise response
                return GenerationChunk(response)
        for marker, response in DEFAULT_RESPONSES.items():
            if marker in prompt:
                return GenerationChunk(response)
        return GenerationChunk("")


class SleepRecorder:
    """Injectable sleep that records delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RateLimited(Exception):
    """Backend error carrying an HTTP-style status code."""

    def __init__(self, message: str = "Too many requests", status_code: int = 429):
        super().__init__(message)
        self.status_code = status_code


class RecordingCallback:
    """SessionCallback that keeps every event for assertions."""

    def __init__(self):
        self.events: list[tuple] = []

    def _record(self, *event):
        self.events.append(event)

    def on_phase_change(self, old, new):
        self._record("phase", old, new)

    def on_status(self, message):
        self._record("status", message)

    def on_stream(self, visible_text):
        self._record("stream", visible_text)

    def on_chapter_committed(self, chapter):
        self._record("chapter", chapter.title)

    def on_choices(self, choices):
        self._record("choices", [c.id for c in choices])

    def on_batch_progress(self, completed, total):
        self._record("batch", completed, total)

    def on_warning(self, message):
        self._record("warning", message)

    def on_error(self, operation, error):
        self._record("error", operation, error)

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with paths in tmp_path and zero delays."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        project_db_path=tmp_path / "projects.db",
        log_dir=tmp_path / "logs",
        retry_initial_delay=2.0,
        autopilot_delay=0.0,
        autosave_debounce=0.0,
        source_chunk_words=20,
        context_max_chars=2_000,
        context_break_window=200,
    )


# ---------------------------------------------------------------------------
# Backend / client fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def client(backend, settings, sleeper):
    from tools.generation_client import GenerationClient
    return GenerationClient(backend=backend, settings=settings, sleep=sleeper)


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store(settings):
    from models.database import ProjectDatabase
    return ProjectDatabase(settings.project_db_path)


@pytest.fixture
def recorder():
    return RecordingCallback()


@pytest.fixture
def orchestrator(client, settings, store, recorder, sleeper):
    from workflow.orchestrator import ExpansionOrchestrator
    return ExpansionOrchestrator(
        client=client, settings=settings, store=store, callback=recorder, sleep=sleeper,
    )


@pytest.fixture
def manuscript():
    """Three paragraphs of ~25 words, one source chunk each at 20 words per chunk."""
    paragraphs = [
        "Mara came down to the river at dusk with two coins in her fist and the ferryman "
        "already waiting in his narrow boat, hood up against the rain.",
        "They crossed without speaking. Halfway over the water turned thick and slow, "
        "and she saw faces under the surface that looked like her brother's face.",
        "On the far shore a lamp burned in a window that had been dark for ten years. "
        "She climbed the bank and knocked on the door.",
    ]
    return "\n\n".join(paragraphs)


@pytest.fixture
def sample_metadata():
    from models.novel import NovelMetadata
    return NovelMetadata(title="The Ferryman", author="J. Doe", genre="Gothic")


@pytest_asyncio.fixture
async def ready_orchestrator(orchestrator, manuscript, sample_metadata):
    """Orchestrator at Decision with the opening chapter committed."""
    from models.novel import GenerationConfig
    await orchestrator.load_manuscript(manuscript)
    orchestrator.submit_metadata(sample_metadata)
    await orchestrator.submit_configuration(GenerationConfig())
    await orchestrator.confirm_beat_sheet()
    return orchestrator
