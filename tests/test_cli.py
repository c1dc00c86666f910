"""Tests for the click commands and the interactive decision loop."""

import io

import pytest
from click.testing import CliRunner
from rich.console import Console

from models.chapter import Chapter
from models.enums import Phase
from models.novel import NovelMetadata
from models.project import ProjectState


@pytest.fixture
def state():
    return ProjectState(
        metadata=NovelMetadata(title="The Ferryman", author="J. Doe"),
        chapters=[Chapter.create(1, "Chapter 1", ["Rain on the pier."])],
        source_chunks=["a", "b"],
    )


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI's settings at tmp_path and return the project database path."""
    db_path = tmp_path / "data" / "projects.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PROJECT_DB_PATH", str(db_path))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "data" / "logs"))
    return db_path


@pytest.fixture
def scripted_input(monkeypatch):
    """Replace click.prompt with a queue of answers and capture console output."""
    from cli.theme import NOVEL_THEME
    out = io.StringIO()
    monkeypatch.setattr("cli.main.console", Console(file=out, theme=NOVEL_THEME, width=100))
    answers = []

    def prompt(text, **kwargs):
        return answers.pop(0)

    monkeypatch.setattr("cli.main.click.prompt", prompt)
    return answers, out


class TestCommands:
    def test_status_without_project(self, cli_env):
        from cli.main import cli
        result = CliRunner().invoke(cli, ["status"])
        assert result.exit_code == 1
        assert "No saved project" in result.output

    def test_status_shows_saved_project(self, cli_env, state):
        from cli.main import cli
        from models.database import ProjectDatabase
        ProjectDatabase(cli_env).save(state)
        result = CliRunner().invoke(cli, ["status"])
        assert result.exit_code == 0
        assert "The Ferryman" in result.output

    def test_export_html(self, cli_env, state, tmp_path):
        from cli.main import cli
        from models.database import ProjectDatabase
        ProjectDatabase(cli_env).save(state)
        out = tmp_path / "novel.doc"
        result = CliRunner().invoke(cli, ["export", "-f", "html", "-o", str(out)])
        assert result.exit_code == 0
        assert "<h1>The Ferryman</h1>" in out.read_text(encoding="utf-8")

    def test_expand_requires_manuscript_or_resume(self, cli_env):
        from cli.main import cli
        result = CliRunner().invoke(cli, ["expand"])
        assert result.exit_code == 2


class TestDecisionLoop:
    @pytest.mark.asyncio
    async def test_failed_question_keeps_session_running(self, ready_orchestrator, backend, scripted_input):
        from cli.main import _decision_loop
        answers, out = scripted_input
        backend.respond("Memory Bank", RuntimeError("backend down"), "Mara paid two coins.")
        answers.extend(["?", "Who paid?", "?", "Who paid?", "q"])

        await _decision_loop(ready_orchestrator)

        assert answers == []
        assert ready_orchestrator.phase == Phase.DECISION
        output = out.getvalue()
        assert "backend down" in output
        assert "Mara paid two coins." in output

    @pytest.mark.asyncio
    async def test_custom_direction_after_failure(self, ready_orchestrator, backend, scripted_input):
        from cli.main import _decision_loop
        answers, out = scripted_input
        backend.respond("Memory Bank", RuntimeError("backend down"))
        answers.extend(["?", "Who paid?", "Follow the river north", "q"])

        await _decision_loop(ready_orchestrator)

        assert len(ready_orchestrator.session.chapters) == 2
        assert "source chunk(s) left" in out.getvalue()

    @pytest.mark.asyncio
    async def test_unknown_choice_number(self, ready_orchestrator, scripted_input):
        from cli.main import _decision_loop
        answers, out = scripted_input
        answers.extend(["9", "q"])
        await _decision_loop(ready_orchestrator)
        assert "No such choice" in out.getvalue()
        assert len(ready_orchestrator.session.chapters) == 1
