"""CLI entry point: novel-expander interactive expansion sessions.

Usage:
  novel-expander expand draft.txt            interactive session
  novel-expander expand draft.txt -a 5 -y    accept defaults, run 5 auto-pilot cycles
  novel-expander expand --resume             continue the saved project
  novel-expander status                      saved project summary
  novel-expander export -f html              export the saved project
"""

import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import click

from agents.editor_agent import REFINEMENT_OPTIONS
from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    project_summary_panel,
    beats_table,
    choices_table,
    chapters_table,
    world_bible_table,
)
from config.exceptions import ExpanderError
from config.logging_config import setup_logging
from config.settings import Settings
from models.database import ProjectDatabase
from models.enums import PacingSpeed, Phase
from models.novel import Beat, GenerationConfig, NovelMetadata
from models.project import ProjectState
from tools.exporter import write_export
from tools.text_utils import strip_html
from workflow.callbacks import RichStreamCallback
from workflow.orchestrator import ExpansionOrchestrator

console = get_console()
logger = logging.getLogger(__name__)

_METADATA_PROMPTS = (
    ("title", "Title"),
    ("author", "Author"),
    ("genre", "Genre"),
    ("synopsis", "Synopsis"),
    ("themes", "Themes"),
    ("character_arcs", "Character arcs"),
    ("style_goals", "Style goals"),
    ("comedy", "Comedy"),
)

_DECISION_HELP = (
    "[muted]#[/] pick choice  [muted]text[/] custom direction  "
    "[muted]r[/] refine  [muted]c[/] chaos  [muted]u[/] undo  [muted]a N[/] auto-pilot  "
    "[muted]b[/] batch  [muted]?[/] ask  [muted]f[/] find/replace  "
    "[muted]l[/] chapters  [muted]w[/] world bible  [muted]q[/] quit"
)


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """novel-expander: turn a draft manuscript into a full-length novel.

    \b
    The draft is split into source chunks; each generation cycle expands
    one chunk into a chapter and offers narrative choices for the next.
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# expand command
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("manuscript", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--autopilot", "-a", default=0, type=int, help="Auto-pilot cycles after the opening chapter")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Accept detected metadata and default settings")
@click.option("--resume", "-r", is_flag=True, help="Continue the saved project instead of a new manuscript")
def expand(manuscript, autopilot, assume_yes, resume):
    """Run an interactive expansion session.

    Examples:
      novel-expander expand draft.txt
      novel-expander expand draft.txt --autopilot 5 --yes
      novel-expander expand --resume
    """
    if manuscript is None and not resume:
        console.print("[error]Give a MANUSCRIPT path or use --resume[/]")
        sys.exit(2)

    console.print(app_header())
    console.print()

    try:
        asyncio.run(_run_session(manuscript, autopilot, assume_yes, resume))
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)
    except ExpanderError as e:
        console.print(f"\n[error]Session failed: {e}[/]")
        logger.exception("Session failed")
        sys.exit(1)


async def _run_session(manuscript: Optional[Path], autopilot: int, assume_yes: bool, resume: bool) -> None:
    settings = Settings()
    store = ProjectDatabase(settings.project_db_path)
    callback = RichStreamCallback(console)
    orch = ExpansionOrchestrator(settings=settings, store=store, callback=callback)

    saved = orch.startup()
    try:
        if resume:
            if saved is None:
                console.print("[warning]No saved project found.[/]")
                return
            orch.resume(saved)
            console.print(project_summary_panel(saved))
        else:
            if saved is not None and not assume_yes:
                console.print(project_summary_panel(saved))
                if not click.confirm("A saved project exists and will be overwritten. Continue?", default=False):
                    return
            await _setup(orch, manuscript, assume_yes)

        if autopilot > 0 and orch.phase == Phase.DECISION:
            await orch.start_autopilot(autopilot)

        if assume_yes and autopilot > 0:
            _print_summary(orch)
            return
        await _decision_loop(orch)
        _print_summary(orch)
    finally:
        callback.close()
        await orch.aclose()


async def _setup(orch: ExpansionOrchestrator, manuscript: Path, assume_yes: bool) -> None:
    text = manuscript.read_text(encoding="utf-8")
    if manuscript.suffix.lower() in (".html", ".htm"):
        text = strip_html(text)

    detected = await orch.load_manuscript(text)
    console.print(command_panel("Manuscript", {
        "File": manuscript.name,
        "Source chunks": str(len(orch.session.source_chunks)),
        "Detected": ", ".join(k for k in detected if k != "beat_sheet") or "nothing",
    }))

    values = {key: detected.get(key, "") for key, _ in _METADATA_PROMPTS}
    if not assume_yes:
        for key, label in _METADATA_PROMPTS:
            values[key] = click.prompt(label, default=values[key] or "", show_default=bool(values[key]))
    orch.submit_metadata(NovelMetadata(**values, beat_sheet=list(detected.get("beat_sheet", []))))

    config = GenerationConfig() if assume_yes else _prompt_config()
    beats = await orch.submit_configuration(config)
    console.print(beats_table(beats))
    if not assume_yes and not click.confirm("Use this beat sheet?", default=True):
        beats = _edit_beats(beats)

    await orch.confirm_beat_sheet(beats)


def _prompt_config() -> GenerationConfig:
    pacing = click.prompt(
        "Pacing",
        type=click.Choice([p.value for p in PacingSpeed]),
        default=PacingSpeed.BALANCED.value,
    )
    defaults = GenerationConfig()
    return defaults.with_overrides(
        pacing_speed=PacingSpeed(pacing),
        tone=click.prompt("Tone", default=defaults.tone),
        pov=click.prompt("Point of view", default=defaults.pov),
        tense=click.prompt("Tense", default=defaults.tense),
        rating=click.prompt("Rating", default=defaults.rating),
        auto_lore=click.confirm("Track lore and characters automatically?", default=defaults.auto_lore),
        auto_critique=click.confirm("Auto-critique each new chapter?", default=defaults.auto_critique),
    )


def _edit_beats(beats: list[Beat]) -> list[Beat]:
    """Open the beat sheet in $EDITOR, one beat per line."""
    edited = click.edit("\n".join(b.description for b in beats), extension=".txt")
    if edited is None:
        console.print("[warning]Beat sheet unchanged[/]")
        return beats
    lines = [line.strip() for line in edited.splitlines() if line.strip()]
    return [Beat(id=str(i), description=line) for i, line in enumerate(lines, 1)] or beats


# ---------------------------------------------------------------------------
# Decision loop
# ---------------------------------------------------------------------------

def _timed_prompt(orch: ExpansionOrchestrator, text: str, **kwargs) -> str:
    started = time.monotonic()
    try:
        return click.prompt(text, **kwargs)
    finally:
        orch.tick(time.monotonic() - started)


async def _decision_loop(orch: ExpansionOrchestrator) -> None:
    while orch.phase == Phase.DECISION:
        session = orch.session
        console.print()
        console.print(choices_table(session.choices))
        console.print(f"[muted]{session.chunks_remaining} source chunk(s) left[/]")
        console.print(_DECISION_HELP)
        raw = _timed_prompt(orch, "Next", default="1").strip()

        try:
            if raw == "q":
                return
            if raw.isdigit():
                index = int(raw) - 1
                if not 0 <= index < len(session.choices):
                    console.print("[warning]No such choice[/]")
                    continue
                extra = _timed_prompt(orch, "Extra instructions", default="", show_default=False)
                await orch.decide(session.choices[index].text, extra)
            elif raw == "r":
                await _refine(orch)
            elif raw == "c":
                choice = await orch.inject_chaos()
                console.print(f"[choice.chaos]Chaos:[/] {choice.text}")
            elif raw == "u":
                if orch.undo():
                    console.print("[info]Last chapter removed[/]")
                if orch.phase == Phase.SETUP:
                    console.print("[warning]No chapters left. Start again with 'expand'.[/]")
            elif raw.startswith("a "):
                await orch.start_autopilot(int(raw[2:].strip()))
            elif raw == "b":
                await _batch(orch)
            elif raw == "?":
                question = _timed_prompt(orch, "Question")
                console.print(await orch.ask(question))
            elif raw == "f":
                find = _timed_prompt(orch, "Find")
                replace = _timed_prompt(orch, "Replace with", default="", show_default=False)
                console.print(f"[info]{orch.find_replace(find, replace)} replacement(s)[/]")
            elif raw == "l":
                console.print(chapters_table(session.chapters))
            elif raw == "w":
                console.print(world_bible_table(session.knowledge.lore, session.knowledge.characters))
            else:
                await orch.decide(raw)
        except (ExpanderError, ValueError) as e:
            logger.warning("Decision command %r failed: %s", raw, e)
            console.print(f"[error]{e}[/]")

    if orch.phase == Phase.FINISHED:
        console.print(success_panel("Finished", "Every source chunk has been expanded."))


async def _refine(orch: ExpansionOrchestrator) -> None:
    orch.begin_refinement()
    for i, option in enumerate(REFINEMENT_OPTIONS, 1):
        console.print(f"  [chapter.num]{i}[/] [bold]{option.label}[/] [muted]{option.description}[/]")
    raw = _timed_prompt(orch, "Options (comma separated, empty to cancel)", default="", show_default=False)
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit() and 1 <= int(part) <= len(REFINEMENT_OPTIONS):
            ids.append(REFINEMENT_OPTIONS[int(part) - 1].id)
    await orch.apply_refinements(ids)


async def _batch(orch: ExpansionOrchestrator) -> None:
    beats = orch.session.metadata.beat_sheet
    console.print(beats_table(beats))
    raw = _timed_prompt(orch, "Beat ids (comma separated)", default=",".join(b.id for b in beats))
    wanted = [part.strip() for part in raw.split(",") if part.strip()]
    selected = [b for b in beats if b.id in wanted]
    if not selected:
        console.print("[warning]No beats selected[/]")
        return

    def confirm(beat: Beat, issues: list[str]) -> bool:
        console.print(f"[warning]Beat {beat.id} may contradict the World Bible:[/]")
        for issue in issues:
            console.print(f"  - {issue}")
        return click.confirm("Write it anyway?", default=False)

    result = await orch.run_batch(selected, confirm)
    if result.succeeded:
        console.print(success_panel("Batch", f"{result.completed} beat(s) written"))
        return
    if result.aborted:
        console.print(f"[warning]Batch stopped at beat {result.aborted_at}[/]")
    console.print(f"[info]Batch: {result.completed}/{result.total} beat(s) written[/]")


def _print_summary(orch: ExpansionOrchestrator) -> None:
    state = orch.snapshot()
    console.print()
    console.print(chapters_table(state.chapters))
    usage = orch.client.get_usage_summary()
    console.print(
        f"\n[muted]{state.analytics.words_generated:,} words generated | "
        f"{usage.get('total_calls', 0)} backend calls | {usage.get('total_retries', 0)} retries[/]"
    )


# ---------------------------------------------------------------------------
# status / export
# ---------------------------------------------------------------------------

def _load_saved() -> ProjectState:
    settings = Settings()
    state = ProjectDatabase(settings.project_db_path).load()
    if state is None:
        console.print("[warning]No saved project. Use [info]novel-expander expand[/] to start one.[/]")
        sys.exit(1)
    return state


@cli.command()
def status():
    """Show the saved project's progress."""
    state = _load_saved()
    console.print(app_header())
    console.print()
    console.print(project_summary_panel(state))
    if state.chapters:
        console.print(chapters_table(state.chapters))
    if state.lore or state.characters:
        console.print(world_bible_table(state.lore, state.characters))


@cli.command()
@click.option("--format", "-f", "fmt", default="json", type=click.Choice(["json", "html"]),
              help="json project file or Word-compatible html document")
@click.option("--output", "-o", default=None, type=click.Path(path_type=Path), help="Output path")
def export(fmt, output):
    """Export the saved project.

    Examples:
      novel-expander export
      novel-expander export -f html -o novel.doc
    """
    state = _load_saved()
    try:
        path = write_export(state, fmt, output)
    except OSError as e:
        console.print(f"[error]Export failed: {e}[/]")
        sys.exit(1)
    console.print(success_panel("Exported", f"{len(state.chapters)} chapter(s) -> {path}"))


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
