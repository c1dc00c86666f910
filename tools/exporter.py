"""Project export: JSON dump and Word-compatible HTML document."""

import html
import json
import re
from datetime import date
from pathlib import Path
from typing import Optional

from models.project import ProjectState
from tools.text_utils import split_into_paragraphs

_DOC_STYLE = """
body { font-family: 'Times New Roman', serif; font-size: 12pt; line-height: 1.5; color: black; background: white; max-width: 800px; margin: 0 auto; padding: 20px;}
h1 { font-size: 24pt; font-weight: bold; text-align: center; margin-bottom: 24pt; color: black; }
h2 { font-size: 18pt; font-weight: bold; margin-top: 18pt; margin-bottom: 12pt; page-break-before: always; color: black; }
p { margin-bottom: 12pt; text-indent: 0.5in; text-align: justify; }
""".strip()


def export_json(state: ProjectState) -> str:
    """Serialize the full snapshot, active chapter versions included."""
    return json.dumps(state.to_dict(), ensure_ascii=False, indent=2)


def export_document_html(state: ProjectState) -> str:
    """Render the manuscript as an HTML document Word can open as .doc."""
    title = html.escape(state.metadata.title or "Untitled")
    author = html.escape(state.metadata.author or "")
    parts = [
        "<html xmlns:o='urn:schemas-microsoft-com:office:office' "
        "xmlns:w='urn:schemas-microsoft-com:office:word' "
        "xmlns='http://www.w3.org/TR/REC-html40'>",
        f"<head><meta charset='utf-8'><title>{title}</title>",
        f"<style>\n{_DOC_STYLE}\n</style>",
        "</head><body>",
        f"<h1>{title}</h1>",
    ]
    if author:
        parts.append(f'<p style="text-align:center">by {author}</p>')
    for chapter in state.chapters:
        parts.append(f"<h2>{html.escape(chapter.title)}</h2>")
        for paragraph in split_into_paragraphs(chapter.active_content):
            parts.append(f"<p>{html.escape(paragraph)}</p>")
    parts.append("</body></html>")
    return "\n".join(parts)


def export_filename(state: ProjectState, ext: str, today: Optional[date] = None) -> str:
    """``Project_<Title>_<YYYY-MM-DD>.json`` for JSON, ``<Title>.doc`` otherwise."""
    title = state.metadata.title or "Novel"
    if ext == "json":
        safe = re.sub(r"\s+", "_", title)
        stamp = (today or date.today()).isoformat()
        return f"Project_{safe}_{stamp}.json"
    return f"{title}.{ext}"


def write_export(state: ProjectState, fmt: str, output: Optional[Path] = None) -> Path:
    """Write an export to disk and return its path."""
    if fmt == "json":
        content, ext = export_json(state), "json"
    elif fmt == "html":
        content, ext = export_document_html(state), "doc"
    else:
        raise ValueError(f"Unknown export format: {fmt}")
    path = Path(output) if output else Path(export_filename(state, ext))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path
