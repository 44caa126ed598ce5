"""
Tests for template rendering and output paths.
"""

from datetime import datetime, timezone

import pytest

from config import ExportFormat
from exceptions import TemplateRenderError
from importers.record_normalizer import normalize
from importers.template_input import LibraryContext, build_template_input
from importers.template_renderer import (
    TemplateRenderer,
    format_date,
    normalize_path,
    remove_starting_slash,
    sanitize_file_path,
)

from conftest import make_item


def _input(**data):
    record = normalize(make_item(**data))
    return build_template_input("templates/note.md", record, [], None, LibraryContext("user", "1"))


class TestPathHelpers:
    """Test output path helpers."""

    def test_remove_starting_slash(self):
        assert remove_starting_slash("//notes/a.md") == "notes/a.md"

    def test_sanitize_file_path(self):
        assert sanitize_file_path('refs/What? A "Study": Part 1.') == "refs/What A Study Part 1"

    def test_sanitize_drops_dot_segments(self):
        assert sanitize_file_path("../../etc/passwd") == "etc/passwd"

    def test_normalize_path(self):
        assert normalize_path("/notes//2024\\a.md/") == "notes/2024/a.md"


class TestFormatDate:
    """Test the format_date filter."""

    def test_datetime(self):
        assert format_date(datetime(2024, 5, 1, tzinfo=timezone.utc)) == "2024-05-01"

    def test_iso_string(self):
        assert format_date("2024-05-01T10:00:00Z", "%d.%m.%Y") == "01.05.2024"

    def test_free_text_passthrough(self):
        assert format_date("Spring 2017") == "Spring 2017"
        assert format_date(None) == ""


class TestTemplateRenderer:
    """Test TemplateRenderer."""

    def test_render_file(self, renderer):
        rendered = renderer.render("/templates/note.md", _input(citationKey="vaswani2017"))

        assert rendered.startswith("# Attention Is All You Need\n")
        assert "- citekey: vaswani2017" in rendered
        assert "- link: zotero://select/library/items/ITEM1" in rendered

    def test_render_string_with_filters(self, renderer):
        rendered = renderer.render_string(
            "{{ creators | creators }} ({{ lastImportDate | format_date('%Y') }})",
            _input(),
        )
        assert rendered == "Vaswani, Ashish; Shazeer, Noam (1970)"

    def test_render_mapping(self, renderer):
        assert renderer.render_string("{{ a }}", {"a": 1}) == "1"

    def test_missing_template(self, renderer):
        with pytest.raises(TemplateRenderError) as exc_info:
            renderer.render("templates/missing.md", _input())
        assert exc_info.value.code == "TEMPLATE_RENDER_ERROR"

    def test_syntax_error(self, renderer):
        with pytest.raises(TemplateRenderError):
            renderer.render_string("{% for %}", _input())

    def test_output_path(self, renderer, export_format):
        path = renderer.render_output_path(export_format, _input(citationKey="vaswani2017"))
        assert path == "references/vaswani2017.md"

    def test_output_path_keeps_md_extension(self, renderer):
        export_format = ExportFormat(
            name="Titles",
            template_path="templates/note.md",
            output_path_template="/{{ title }}: notes.md",
        )
        path = renderer.render_output_path(export_format, _input())
        assert path == "Attention Is All You Need notes.md"

    def test_output_path_empty(self, renderer):
        export_format = ExportFormat(name="Empty", template_path="t.md", output_path_template="{{ missing }}")
        with pytest.raises(TemplateRenderError):
            renderer.render_output_path(export_format, _input())

    def test_output_path_ignores_import_history(self, renderer, export_format):
        record = normalize(make_item(citationKey="vaswani2017"))
        library = LibraryContext("user", "1")
        never = build_template_input("", record, [], None, library)
        later = build_template_input("", record, [], datetime(2024, 1, 1, tzinfo=timezone.utc), library)

        assert renderer.render_output_path(export_format, never) == renderer.render_output_path(export_format, later)

    def test_root(self, vault):
        assert TemplateRenderer(vault).root == vault
