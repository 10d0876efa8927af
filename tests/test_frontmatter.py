"""
Tests for frontmatter reading, quoting and patching.

Quoted values are checked by parsing them back with PyYAML, which is what
decides whether a header is valid.
"""

import pytest
import yaml

from beanpod.core.frontmatter import (
    extract_fields, needs_quoting, patch_frontmatter, quote_title,
    read_title, split_frontmatter, yaml_quote,
)


class TestSplit:

    def test_header_and_body(self):
        header, body = split_frontmatter("---\nid: a\ntitle: T\n---\n# Body\n")
        assert header == "id: a\ntitle: T"
        assert body == "# Body\n"

    def test_no_header(self):
        assert split_frontmatter("# Just markdown\n") == (None, "# Just markdown\n")

    def test_bom_and_crlf(self):
        header, body = split_frontmatter("\ufeff---\r\nid: a\r\n---\r\nbody")
        assert extract_fields(header, ["id"]) == {"id": "a"}
        assert body == "body"


class TestExtract:

    def test_valid_yaml(self):
        fields = extract_fields("id: bean-1\ntitle: 'Quoted: title'\nstatus: todo", ["id", "title", "type"])
        assert fields == {"id": "bean-1", "title": "Quoted: title"}

    def test_invalid_yaml_falls_back_to_lines(self):
        """An unquoted colon breaks YAML; the line reader still recovers it."""
        header = "id: bean-1\ntitle: Command palette: Reinitialize\nstatus: todo"
        with pytest.raises(yaml.YAMLError):
            yaml.safe_load(header)
        fields = extract_fields(header, ["id", "title", "status"])
        assert fields["title"] == "Command palette: Reinitialize"
        assert fields["status"] == "todo"

    def test_empty_values_dropped(self):
        assert extract_fields("id: bean-1\ntitle: ''", ["id", "title"]) == {"id": "bean-1"}

    def test_non_string_scalars_keep_written_text(self):
        fields = extract_fields("id: 0012\ntitle: yes\nstatus: todo", ["id", "title", "status"])
        assert fields == {"id": "0012", "title": "yes", "status": "todo"}

    def test_written_text_drops_trailing_comment(self):
        assert extract_fields("title: 3.10 # release\n", ["title"]) == {"title": "3.10"}

    def test_quoted_scalar_unchanged(self):
        assert extract_fields("id: '0012'", ["id"]) == {"id": "0012"}


class TestQuoting:

    @pytest.mark.parametrize("value", ["Simple title", "bean-ab12", "todo", "C++ rocks"])
    def test_plain_values_unquoted(self, value):
        assert not needs_quoting(value)
        assert yaml_quote(value) == value

    @pytest.mark.parametrize("value", [
        "",
        "Command palette: Reinitialize",
        "#hashtag",
        "- leading dash",
        "a #comment",
        "ends with colon:",
        "[bracketed]",
        "it's: complicated",
        "'already'",
        " padded ",
    ])
    def test_unsafe_values_survive_yaml(self, value):
        assert needs_quoting(value)
        assert yaml.safe_load(f"title: {yaml_quote(value)}")["title"] == value

    @pytest.mark.parametrize("value", ["line one\nline two", "tab\there"])
    def test_control_characters_are_double_quoted(self, value):
        quoted = yaml_quote(value)
        assert quoted.startswith('"')
        assert yaml.safe_load(f"title: {quoted}")["title"] == value

    def test_single_quote_escaping(self):
        assert yaml_quote("it's: here") == "'it''s: here'"


class TestPatch:

    def test_replaces_and_appends(self):
        text = "---\nid: old\nstatus: todo\n---\nBody stays\n"
        patched = patch_frontmatter(text, [("id", "bean-1"), ("type", "task")])
        header, body = split_frontmatter(patched)
        assert yaml.safe_load(header) == {"id": "bean-1", "status": "todo", "type": "task"}
        assert body == "Body stays\n"

    def test_other_lines_untouched(self):
        text = "---\n# keep me\nid: a\ntags:\n  - x\n---\n"
        patched = patch_frontmatter(text, [("id", "b")])
        assert "# keep me\nid: b\ntags:\n  - x" in patched

    def test_replaces_continuation_lines(self):
        text = "---\nid: x\ntitle: >\n  folded\n  more\nstatus: todo\n---\nBody\n"
        patched = patch_frontmatter(text, [("title", "New")])
        assert patched == "---\nid: x\ntitle: New\nstatus: todo\n---\nBody\n"

    def test_file_without_header_gets_one(self):
        patched = patch_frontmatter("Just a body\n", [("id", "bean-1")])
        assert patched == "---\nid: bean-1\n---\nJust a body\n"


class TestQuoteTitle:

    def test_quotes_unsafe_bare_title(self):
        text = "---\nid: bean-1\ntitle: Palette: Reload\nstatus: todo\n---\nBody\n"
        fixed = quote_title(text)
        header, body = split_frontmatter(fixed)
        assert yaml.safe_load(header)["title"] == "Palette: Reload"
        assert body == "Body\n"
        assert read_title(fixed) == "Palette: Reload"

    def test_idempotent(self):
        text = "---\ntitle: Palette: Reload\n---\n"
        once = quote_title(text)
        assert quote_title(once) == once

    def test_safe_title_unchanged(self):
        text = "---\ntitle: Fine title\n---\nBody\n"
        assert quote_title(text) == text

    def test_already_quoted_unchanged(self):
        text = '---\ntitle: "Palette: Reload"\n---\n'
        assert quote_title(text) == text

    def test_no_header_unchanged(self):
        assert quote_title("title: x: y\n") == "title: x: y\n"
