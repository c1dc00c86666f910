"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from models.chapter import Chapter, Choice
from models.character import CharacterStatus, LoreEntry
from models.enums import ChoiceType
from models.novel import Beat
from models.project import ProjectState

NOVEL_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "character.name": "bold cyan",
    "choice.pacing": "magenta",
    "choice.chaos": "bold red",
})


def get_console() -> Console:
    """Return a Console instance with the novel theme applied."""
    return Console(theme=NOVEL_THEME)


def app_header(title: str = "novel-expander") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "Expand manuscript").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def project_summary_panel(state: ProjectState) -> Panel:
    """Return a Panel with the saved project's headline stats."""
    metadata = state.metadata
    synopsis = metadata.synopsis or ""
    if len(synopsis) > 150:
        synopsis = synopsis[:150] + "..."

    chunks = len(state.source_chunks)
    position = f"{state.current_chunk_index + 1}/{chunks}" if state.chapters and chunks else f"0/{chunks}"
    body = (
        f"  [stat.label]Genre:[/] [genre]{metadata.genre or '-'}[/]  "
        f"[muted]|[/]  [stat.label]Chapters:[/] [stat.value]{len(state.chapters)}[/]  "
        f"[muted]|[/]  [stat.label]Words:[/] [stat.value]{state.total_words:,}[/]  "
        f"[muted]|[/]  [stat.label]Source:[/] [stat.value]{position}[/]\n"
        f"  [stat.label]Lore:[/] {len(state.lore)}  "
        f"[stat.label]Characters:[/] {len(state.characters)}  "
        f"[stat.label]Saved:[/] {state.timestamp}\n"
        f"  [stat.label]Synopsis:[/] {synopsis}"
    )
    author = f" [muted]by {metadata.author}[/]" if metadata.author else ""
    return Panel(
        body,
        title=f"[bold]{metadata.title or 'Untitled'}[/]{author}",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def beats_table(beats: list[Beat]) -> Table:
    table = Table(title="Beat sheet", box=box.ROUNDED, border_style="dim", padding=(0, 1))
    table.add_column("#", style="chapter.num", justify="right")
    table.add_column("Beat")
    for beat in beats:
        table.add_row(beat.id, beat.description)
    return table


_CHOICE_STYLES = {
    ChoiceType.PACING: "choice.pacing",
    ChoiceType.CHAOS: "choice.chaos",
}


def choices_table(choices: list[Choice]) -> Table:
    """Numbered choices; the number is what the decision prompt accepts."""
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("", style="chapter.num", justify="right")
    table.add_column("Type", style="muted")
    table.add_column("Choice")
    table.add_column("Why", style="muted")

    for i, choice in enumerate(choices, 1):
        style = _CHOICE_STYLES.get(choice.type)
        text = f"[{style}]{choice.text}[/]" if style else choice.text
        rationale = choice.rationale
        if len(rationale) > 60:
            rationale = rationale[:60] + "..."
        table.add_row(str(i), choice.type.value, text, rationale)
    return table


def chapters_table(chapters: list[Chapter]) -> Table:
    table = Table(title="Chapters", box=box.ROUNDED, border_style="dim", padding=(0, 1))
    table.add_column("#", style="chapter.num", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Words", justify="right")
    table.add_column("Version", justify="right")
    table.add_column("Pacing", justify="right")

    for i, chapter in enumerate(chapters, 1):
        table.add_row(
            str(i),
            chapter.title,
            f"{len(chapter.active_content.split()):,}",
            f"{chapter.current_version_index + 1}/{chapter.version_count}",
            str(chapter.pacing_score),
        )
    return table


def world_bible_table(lore: list[LoreEntry], characters: list[CharacterStatus]) -> Table:
    """Characters first, then lore entries, capped for terminal display."""
    table = Table(title="World Bible", box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("Name", style="character.name")
    table.add_column("Kind", style="muted")
    table.add_column("Details")

    for c in characters[:8]:
        table.add_row(c.name, c.status, f"{c.location} | {c.goal}")
    for entry in lore[:8]:
        desc = entry.description
        if len(desc) > 50:
            desc = desc[:50] + "..."
        table.add_row(entry.key, entry.category, desc)

    hidden = max(len(characters) - 8, 0) + max(len(lore) - 8, 0)
    if hidden:
        table.add_row(f"[muted]+{hidden} more[/]", "", "")
    return table
