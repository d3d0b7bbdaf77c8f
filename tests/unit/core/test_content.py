"""Unit tests for core/content.py"""

import pytest

from tmpltr.core.content import ContentBuilder, ContentFile, build_index, multiline_ok, parse_toml
from tmpltr.core.models import BlockFormat, BlockKind
from tmpltr.errors import (
    AmbiguousTitleError, ContentError, MissingFileError, PathNotFoundError,
    TitleNotFoundError, TomlParseError,
)


def _doc(body: str) -> ContentFile:
    return ContentFile.parse("doc.toml", '[meta]\ntemplate = "t.typ"\n\n' + body)


# --- parsing ---

def test_load_missing_file(tmp_path):
    """load raises MissingFileError for a path that does not exist."""
    with pytest.raises(MissingFileError) as exc:
        ContentFile.load(tmp_path / "nope.toml")
    assert exc.value.kind == "file_not_found"


def test_load_invalid_utf8(tmp_path):
    """A file that is not UTF-8 is a content error, not an unexpected failure."""
    path = tmp_path / "bad.toml"
    path.write_bytes(b"[meta]\ntemplate = \"\xff\"\n")
    with pytest.raises(ContentError, match="not valid UTF-8") as exc:
        ContentFile.load(path)
    assert exc.value.exit_code == 1


def test_parse_invalid_toml():
    """A TOML syntax error surfaces as TomlParseError."""
    with pytest.raises(TomlParseError):
        ContentFile.parse("bad.toml", "[meta\ntemplate = ")


def test_parse_toml_keeps_comments():
    """parse_toml returns a document that round-trips byte for byte."""
    text = '# top\n[a]\nb = 1 # trailing\n'
    assert parse_toml(text).as_string() == text


def test_missing_meta_section():
    """A file without [meta] is rejected."""
    with pytest.raises(ContentError, match="missing \\[meta\\]"):
        ContentFile.parse("x.toml", '[quote]\nnumber = "1"\n')


def test_missing_meta_template():
    """A [meta] table without template is rejected."""
    with pytest.raises(ContentError, match="meta.template"):
        ContentFile.parse("x.toml", '[meta]\ntemplate_id = "q"\n')


def test_meta_fields(content):
    """meta exposes template, id, version and a parsed generated_at."""
    assert content.meta.template == "quote.typ"
    assert content.meta.template_id == "quote"
    assert content.meta.template_version == "1.0.0"
    assert content.meta.generated_at.year == 2025


def test_meta_generated_at_from_string():
    """generated_at accepts ISO strings and drops unparsable ones."""
    ok = ContentFile.parse("x.toml", '[meta]\ntemplate = "t"\ngenerated_at = "2025-03-01T12:00:00"\n')
    bad = ContentFile.parse("x.toml", '[meta]\ntemplate = "t"\ngenerated_at = "yesterday"\n')
    assert ok.meta.generated_at.month == 3
    assert bad.meta.generated_at is None


def test_template_path_relative_to_content(content, content_path):
    """template_path resolves meta.template against the content file's directory."""
    assert content.template_path == content_path.parent / "quote.typ"


# --- index ---

def test_index_contains_blocks_and_fields(content):
    """Blocks and every leaf outside meta/blocks are indexed."""
    assert set(content.index) == {
        "blocks.intro", "blocks.scope", "blocks.prices",
        "quote.number", "quote.title", "quote.date", "quote.client.name",
    }


def test_index_block_attributes(content):
    """Block entries carry title, format and type; fields carry none."""
    intro = content.get_block_info("blocks.intro")
    prices = content.get_block_info("blocks.prices")
    number = content.get_block_info("quote.number")
    assert (intro.kind, intro.title, intro.format) == (BlockKind.block, "Introduction", "markdown")
    assert prices.block_type == "table"
    assert (number.kind, number.title, number.format) == (BlockKind.field, None, None)


def test_index_is_idempotent(content):
    """Rebuilding the index twice over the same tree yields identical entries."""
    first = build_index(content.data)
    second = build_index(content.data)
    assert first == second
    assert len(second) == len(content.index)


def test_index_ignores_non_table_blocks():
    """A top-level blocks value that is not a table contributes nothing."""
    doc = ContentFile.parse("x.toml", 'blocks = "oops"\n\n[meta]\ntemplate = "t"\n\n[quote]\nnumber = "1"\n')
    assert set(doc.index) == {"quote.number"}


def test_index_copy_is_detached(content):
    """Mutating the returned index does not affect the file's index."""
    content.index.clear()
    assert content.get_block_info("quote.number") is not None


def test_list_blocks_sorted(content):
    """list_blocks returns entries sorted by path."""
    paths = [b.path for b in content.list_blocks()]
    assert paths == sorted(paths)


# --- resolution ---

def test_resolve_exact_path(content):
    """An exact index key resolves to itself."""
    assert content.resolve_path("quote.number") == "quote.number"


def test_resolve_by_title(content):
    """A unique title resolves to its block path."""
    assert content.resolve_path("Introduction") == "blocks.intro"


def test_exact_path_beats_matching_title():
    """A selector that is both a path and another block's title resolves as a path."""
    doc = _doc('[quote]\ntitle = "x"\n\n[blocks.note]\ntitle = "quote.title"\ncontent = "n"\n')
    assert doc.resolve_path("quote.title") == "quote.title"


def test_resolve_unknown_title(content):
    """An unknown selector raises TitleNotFoundError."""
    with pytest.raises(TitleNotFoundError) as exc:
        content.resolve_path("Nope")
    assert exc.value.title == "Nope"


def test_title_lookup_is_case_sensitive(content):
    """Titles must match exactly, including case."""
    with pytest.raises(TitleNotFoundError):
        content.resolve_path("introduction")


def test_resolve_ambiguous_title():
    """Two blocks sharing a title raise AmbiguousTitleError listing both paths."""
    doc = _doc(
        '[blocks.a]\ntitle = "Notes"\ncontent = "1"\n\n'
        '[blocks.b]\ntitle = "Notes"\ncontent = "2"\n'
    )
    with pytest.raises(AmbiguousTitleError) as exc:
        doc.resolve_path("Notes")
    assert set(exc.value.matches) == {"blocks.a", "blocks.b"}
    assert exc.value.payload()["matches"] == ["blocks.a", "blocks.b"]


# --- get ---

def test_get_content_field(content):
    """get_content returns scalar field text."""
    assert content.get_content("quote.number") == "2025-001"


def test_get_content_block(content):
    """get_content on a block path returns its content."""
    assert content.get_content("blocks.intro") == "Thank you for your **inquiry**."


def test_get_content_date(content):
    """Dates display in ISO form."""
    assert content.get_content("quote.date") == "2025-01-15"


def test_get_content_missing(content):
    """A missing path raises PathNotFoundError."""
    with pytest.raises(PathNotFoundError) as exc:
        content.get_content("quote.missing")
    assert exc.value.path == "quote.missing"


# --- builder ---

def test_builder_roundtrip():
    """Built content parses back with meta, fields and blocks intact."""
    text = (
        ContentBuilder("quote.typ")
        .template_id("quote")
        .template_version("2.0.0")
        .field("quote.number", "2025-001")
        .field("quote.client.name", "ACME")
        .block("intro", "Introduction", BlockFormat.markdown, "Line one\nLine two")
        .build()
    )
    doc = ContentFile.parse("new.toml", text)
    assert doc.meta.template_version == "2.0.0"
    assert doc.meta.generated_at is not None
    assert doc.get_content("quote.client.name") == "ACME"
    assert doc.get_content("blocks.intro") == "Line one\nLine two"


def test_builder_section_order():
    """meta comes first, then data sections, then blocks."""
    text = (
        ContentBuilder("t.typ")
        .block("intro", "Intro", BlockFormat.plain, "x")
        .field("document.title", "T")
        .build()
    )
    assert text.index("[meta]") < text.index("[document]") < text.index("[blocks.intro]")


def test_builder_paths():
    """field_paths and block_names report what has been added."""
    builder = ContentBuilder("t.typ").field("a.b", "1").field("c", "2").block("x", "X", BlockFormat.markdown, "")
    assert builder.field_paths == {"a.b", "c"}
    assert builder.block_names == {"x"}


def test_multiline_ok():
    """Values with newlines can be multi-line unless they start with one or hold a carriage return."""
    assert multiline_ok("a\nb")
    assert not multiline_ok("single")
    assert not multiline_ok("\nleading")
    assert not multiline_ok("a\r\nb")
