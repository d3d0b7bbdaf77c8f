"""Unit tests for core/validate.py"""

import pytest

from tmpltr.core.content import ContentFile
from tmpltr.core.validate import ensure_valid, validate_content
from tmpltr.errors import ValidationError


def _doc(body: str) -> ContentFile:
    return ContentFile.parse("doc.toml", '[meta]\ntemplate = "t.typ"\n\n' + body)


def test_sample_content_is_valid(content):
    """The shared sample file passes every rule."""
    assert validate_content(content) == []
    ensure_valid(content)


def test_file_without_blocks_is_valid():
    """Blocks are optional."""
    assert validate_content(_doc('[quote]\nnumber = "1"\n')) == []


def test_blank_template():
    """A whitespace-only template reference is rejected."""
    doc = ContentFile.parse("doc.toml", '[meta]\ntemplate = "  "\n')
    assert validate_content(doc) == ["meta.template must not be empty"]


def test_unknown_format():
    """Formats outside markdown/plain/typst are reported with the accepted list."""
    errors = validate_content(_doc('[blocks.a]\nformat = "rst"\ncontent = "x"\n'))
    assert errors == ["blocks.a: unknown format 'rst' (expected one of: markdown, plain, typst)"]


def test_unknown_type():
    """Only text and table block types are accepted."""
    errors = validate_content(_doc('[blocks.a]\ntype = "chart"\n'))
    assert errors == ["blocks.a: unknown type 'chart'"]


def test_non_table_block():
    """A block that is a bare value is reported."""
    errors = validate_content(_doc('[blocks]\nloose = "x"\n'))
    assert errors == ["blocks.loose: block must be a table"]


def test_table_requires_columns():
    """Table blocks must declare columns."""
    errors = validate_content(_doc('[blocks.t]\ntype = "table"\nrows = [["a"]]\n'))
    assert errors == ["blocks.t: table block requires a 'columns' array"]


def test_table_row_width():
    """Each row must have exactly one cell per column."""
    errors = validate_content(_doc(
        '[blocks.t]\ntype = "table"\ncolumns = ["A", "B"]\nrows = [["1", "2"], ["3"]]\n'
    ))
    assert errors == ["blocks.t: row 1 has 1 cells, expected 2"]


def test_content_must_be_string():
    """Text block content must be a string."""
    errors = validate_content(_doc('[blocks.a]\ncontent = 42\n'))
    assert errors == ["blocks.a: content must be a string"]


def test_all_errors_reported():
    """Every violation is collected, not just the first."""
    errors = validate_content(_doc(
        '[blocks.a]\nformat = "rst"\n\n[blocks.b]\ntype = "chart"\n'
    ))
    assert len(errors) == 2


def test_ensure_valid_raises():
    """ensure_valid raises a ValidationError carrying the messages."""
    with pytest.raises(ValidationError) as exc:
        ensure_valid(_doc('[blocks.a]\ncontent = 42\n'))
    assert exc.value.errors == ["blocks.a: content must be a string"]
    assert str(exc.value) == "validation error: 1 error"
