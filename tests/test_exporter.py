"""Tests for project export."""

import json
from datetime import date

import pytest

from models.chapter import Chapter
from models.novel import NovelMetadata
from models.project import ProjectState


@pytest.fixture
def state():
    first = Chapter.create(1, "Chapter 1", ["Old draft.", "Rain on the pier.\n\nShe paid <two> coins."])
    return ProjectState(
        metadata=NovelMetadata(title="The Ferryman", author="J. Doe & Sons"),
        chapters=[first, Chapter.create(2, "Chapter 2 (Beat 2)", ["The crossing."])],
        source_chunks=["a", "b"],
        current_chunk_index=1,
    )


class TestExportJson:
    def test_contains_full_snapshot(self, state):
        from tools.exporter import export_json
        data = json.loads(export_json(state))
        assert data["metadata"]["title"] == "The Ferryman"
        assert len(data["chapters"]) == 2
        assert data["current_chunk_index"] == 1

    def test_loads_back_into_state(self, state):
        from tools.exporter import export_json
        restored = ProjectState.from_dict(json.loads(export_json(state)))
        assert restored.chapters[0].history == ["Old draft.", "Rain on the pier.\n\nShe paid <two> coins."]
        assert restored.chapters[0].content == state.chapters[0].content


class TestExportDocument:
    def test_title_and_author_escaped(self, state):
        from tools.exporter import export_document_html
        doc = export_document_html(state)
        assert "<h1>The Ferryman</h1>" in doc
        assert "by J. Doe &amp; Sons" in doc

    def test_one_paragraph_element_per_paragraph(self, state):
        from tools.exporter import export_document_html
        doc = export_document_html(state)
        assert "<h2>Chapter 1</h2>" in doc
        assert "<p>Rain on the pier.</p>" in doc
        assert "<p>She paid &lt;two&gt; coins.</p>" in doc
        assert "Old draft." not in doc

    def test_no_author_line_without_author(self):
        from tools.exporter import export_document_html
        doc = export_document_html(ProjectState(metadata=NovelMetadata()))
        assert "<h1>Untitled</h1>" in doc
        assert "by " not in doc

    def test_word_namespaces(self, state):
        from tools.exporter import export_document_html
        doc = export_document_html(state)
        assert doc.startswith("<html xmlns:o='urn:schemas-microsoft-com:office:office'")
        assert doc.endswith("</body></html>")


class TestExportFilename:
    def test_json_name_is_dated(self, state):
        from tools.exporter import export_filename
        name = export_filename(state, "json", today=date(2026, 3, 1))
        assert name == "Project_The_Ferryman_2026-03-01.json"

    def test_doc_name_keeps_title(self, state):
        from tools.exporter import export_filename
        assert export_filename(state, "doc") == "The Ferryman.doc"

    def test_untitled_project(self):
        from tools.exporter import export_filename
        assert export_filename(ProjectState(metadata=NovelMetadata()), "doc") == "Novel.doc"


class TestWriteExport:
    def test_json_to_explicit_path(self, state, tmp_path):
        from tools.exporter import write_export
        path = write_export(state, "json", tmp_path / "out" / "novel.json")
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8"))["metadata"]["title"] == "The Ferryman"

    def test_html_default_name(self, state, tmp_path, monkeypatch):
        from tools.exporter import write_export
        monkeypatch.chdir(tmp_path)
        path = write_export(state, "html")
        assert path.name == "The Ferryman.doc"
        assert "<h2>Chapter 2 (Beat 2)</h2>" in (tmp_path / path).read_text(encoding="utf-8")

    def test_unknown_format(self, state, tmp_path):
        from tools.exporter import write_export
        with pytest.raises(ValueError):
            write_export(state, "pdf", tmp_path / "x.pdf")

