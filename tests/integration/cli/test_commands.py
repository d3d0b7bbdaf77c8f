"""Integration tests for the tmpltr CLI commands"""

import json
import subprocess
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tmpltr.cli.cli import app
from tmpltr.core import compile as compile_mod


runner = CliRunner()


@pytest.fixture(name="workdir")
def workdir_fixture(tmp_path, monkeypatch):
    """An empty working directory holding the example template and content pair."""
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["example"])
    assert result.exit_code == 0, result.output
    return tmp_path


@pytest.fixture(name="typst")
def typst_fixture(monkeypatch):
    """A fake typst binary: records calls and writes the requested output file."""
    calls = []
    monkeypatch.setenv("TMPLTR_TYPST_BINARY", "/opt/typst/typst")

    def fake_run(args, capture_output, text, env):
        calls.append(args)
        output = Path(args[-1])
        if "{p}" in output.name:
            for n in (1, 2):
                output.with_name(output.name.replace("{p}", str(n))).write_text("<svg/>")
        else:
            output.write_text("%PDF")
        return subprocess.CompletedProcess(args, 0, stdout="", stderr="")

    monkeypatch.setattr(compile_mod.subprocess, "run", fake_run)
    return calls


def invoke(*args: str, input: str = None):
    return runner.invoke(app, list(args), input=input)


# --- help ---

def test_help_lists_commands():
    """--help succeeds and lists the commands."""
    result = invoke("--help")
    assert result.exit_code == 0
    assert "compile" in result.output
    assert "recent" in result.output


# --- example / get / set ---

def test_example_writes_pair(workdir):
    """example writes a template and content file that reference each other."""
    content = (workdir / "example-content.toml").read_text()
    assert (workdir / "example-template.typ").exists()
    assert 'template = "example-template.typ"' in content


def test_example_refuses_overwrite(workdir):
    """example will not overwrite existing files without --force."""
    result = invoke("example")
    assert result.exit_code == 1
    assert "already exists" in result.output
    assert invoke("example", "--force").exit_code == 0


def test_get_by_path_and_title(workdir):
    """get prints field values and resolves block titles."""
    result = invoke("get", "quote.number", "example-content.toml")
    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == "2025-001"

    result = invoke("get", "Scope", "example-content.toml")
    assert result.stdout.strip() == "The project covers concept, design and implementation."


def test_get_json(workdir):
    """get --json returns path, title, format and content."""
    result = invoke("--json", "get", "Introduction", "example-content.toml")
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["path"] == "blocks.intro"
    assert data["title"] == "Introduction"
    assert data["format"] == "markdown"
    assert data["type"] == "block"
    assert data["content"].startswith("Thank you for your inquiry.")


def test_get_unknown_title(workdir):
    """An unknown selector exits with code 1 and an error message."""
    result = invoke("get", "Nope", "example-content.toml")
    assert result.exit_code == 1
    assert "error: block with title 'Nope' not found" in result.output


def test_get_unknown_title_json(workdir):
    """With --json, errors are JSON objects carrying their kind."""
    result = invoke("--json", "get", "Nope", "example-content.toml")
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["status"] == "error"
    assert data["kind"] == "title_not_found"


def test_get_missing_file(workdir):
    """A missing content file reports file_not_found."""
    result = invoke("--json", "get", "quote.number", "missing.toml")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "file_not_found"


def test_set_then_get(workdir):
    """set writes the value, keeps comments, and get reads it back."""
    result = invoke("set", "quote.number", "example-content.toml", "2025-002")
    assert result.exit_code == 0, result.output
    assert "Set quote.number" in result.stdout

    text = (workdir / "example-content.toml").read_text()
    assert text.startswith("# Example content for example-template.typ")
    assert invoke("get", "quote.number", "example-content.toml").stdout.strip() == "2025-002"


def test_set_block_by_title_keeps_attributes(workdir):
    """Setting a block by title only changes its content."""
    result = invoke("set", "Scope", "example-content.toml", "Only design.")
    assert result.exit_code == 0, result.output
    text = (workdir / "example-content.toml").read_text()
    assert '[blocks.scope]\ntitle = "Scope"\nformat = "markdown"\ncontent = "Only design."' in text


def test_set_from_stdin(workdir):
    """A '-' value is read from stdin."""
    result = invoke("set", "quote.title", "example-content.toml", "-", input="From stdin")
    assert result.exit_code == 0, result.output
    assert invoke("get", "quote.title", "example-content.toml").stdout.strip() == "From stdin"


def test_set_from_file_input(workdir):
    """--file-input reads the value from a file."""
    (workdir / "intro.md").write_text("# New intro\n\nBody text\n")
    result = invoke("set", "blocks.intro", "example-content.toml", "--file-input", "intro.md")
    assert result.exit_code == 0, result.output
    assert invoke("get", "blocks.intro", "example-content.toml").stdout == "# New intro\n\nBody text\n"


def test_set_dry_run(workdir):
    """--dry-run reports the change without writing it."""
    before = (workdir / "example-content.toml").read_text()
    result = invoke("--dry-run", "set", "quote.number", "example-content.toml", "9999")
    assert result.exit_code == 0, result.output
    assert "dry-run: would set quote.number" in result.stdout
    assert (workdir / "example-content.toml").read_text() == before


def test_set_batch(workdir):
    """--batch applies a JSON object of path -> value from stdin."""
    payload = json.dumps({"quote.number": "2025-010", "quote.total": 1500})
    result = invoke("set", "--batch", "example-content.toml", input=payload)
    assert result.exit_code == 0, result.output
    assert "Updated 2 paths" in result.stdout
    assert invoke("get", "quote.total", "example-content.toml").stdout.strip() == "1500"


def test_set_batch_rejects_nested(workdir):
    """Nested batch values are a validation error and nothing is written."""
    before = (workdir / "example-content.toml").read_text()
    result = invoke("--json", "set", "--batch", "example-content.toml", input='{"quote.items": [1]}')
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "validation_error"
    assert (workdir / "example-content.toml").read_text() == before


def test_set_batch_invalid_json(workdir):
    """Malformed batch input reports a JSON error."""
    result = invoke("--json", "set", "--batch", "example-content.toml", input="{oops")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "json_error"


# --- recent / --from ---

def test_from_last_uses_recent_document(workdir):
    """--from last targets the most recently used content file."""
    assert invoke("get", "quote.number", "example-content.toml").exit_code == 0
    result = invoke("set", "--from", "last", "quote.number", "2025-099")
    assert result.exit_code == 0, result.output
    assert invoke("get", "--from", "last", "quote.number").stdout.strip() == "2025-099"


def test_from_last_with_empty_cache(workdir):
    """--from last with no history is an error."""
    result = invoke("--json", "get", "--from", "last", "quote.number")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "no_recent_document"


def test_no_file_and_no_selector(workdir):
    """Commands needing a file fail clearly without one."""
    result = invoke("blocks")
    assert result.exit_code == 1
    assert "no file specified" in result.output


def test_recent_lists_documents(workdir):
    """recent lists touched documents newest first."""
    assert invoke("recent").stdout.strip() == "No recent documents"
    invoke("get", "quote.number", "example-content.toml")
    result = invoke("--json", "recent")
    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert len(rows) == 1
    assert rows[0]["meta_title"] == "Website Relaunch"
    assert rows[0]["file"] == str((workdir / "example-content.toml").resolve())


def test_dry_run_does_not_touch_cache(workdir):
    """--dry-run leaves the recent-documents cache untouched."""
    invoke("--dry-run", "get", "quote.number", "example-content.toml")
    assert invoke("recent").stdout.strip() == "No recent documents"


# --- blocks / validate ---

def test_blocks_lists_entries(workdir):
    """blocks prints one line per block and field."""
    result = invoke("blocks", "example-content.toml")
    assert result.exit_code == 0, result.output
    lines = result.stdout.splitlines()
    assert "blocks.intro (block) - Introduction" in lines
    assert "quote.number (field) - -" in lines


def test_blocks_json(workdir):
    """blocks --json lists index entries with their kind."""
    data = json.loads(invoke("--json", "blocks", "example-content.toml").stdout)
    assert {"path": "blocks.scope", "title": "Scope", "kind": "block", "format": "markdown", "type": None} in data


def test_validate_valid(workdir):
    """A well-formed file validates."""
    result = invoke("validate", "example-content.toml")
    assert result.exit_code == 0, result.output
    assert "example-content.toml: valid" in result.stdout


def test_validate_reports_errors(workdir):
    """Rule violations are listed and exit with code 1."""
    (workdir / "bad.toml").write_text('[meta]\ntemplate = "t.typ"\n\n[blocks.a]\nformat = "rst"\n')
    result = invoke("validate", "bad.toml")
    assert result.exit_code == 1
    assert "validation failed" in result.output
    assert "unknown format 'rst'" in result.output

    data = json.loads(invoke("--json", "validate", "bad.toml").stdout)
    assert data["kind"] == "validation_error"
    assert len(data["errors"]) == 1


def test_invalid_toml(workdir):
    """A TOML syntax error is reported as toml_parse_error."""
    (workdir / "broken.toml").write_text("[meta\n")
    result = invoke("--json", "validate", "broken.toml")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "toml_parse_error"


def test_invalid_utf8_is_content_error(workdir):
    """A content file that is not UTF-8 exits with code 1 as a content error."""
    (workdir / "bad.toml").write_bytes(b"[meta]\ntemplate = \"\xff\"\n")
    result = invoke("--json", "get", "meta.template", "bad.toml")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "content_error"


# --- init / new / templates ---

def test_init_generates_content(workdir):
    """init writes a content skeleton with every editable field and block."""
    result = invoke("init", "example-template.typ", "-o", "generated.toml")
    assert result.exit_code == 0, result.output
    assert "Generated generated.toml with 4 fields and 2 blocks" in result.stdout

    listing = invoke("blocks", "generated.toml").stdout
    assert "quote.client.name (field) - -" in listing
    assert "blocks.scope (block) - Scope" in listing
    assert invoke("get", "quote.number", "generated.toml").stdout.strip() == "2025-001"


def test_init_default_output_and_schema(workdir):
    """init defaults to <id>-content.toml and can also write a schema."""
    result = invoke("init", "example-template.typ", "--schema", "schema.json")
    assert result.exit_code == 0, result.output
    assert "(schema also generated)" in result.stdout
    assert (workdir / "example-template-content.toml").exists()
    schema = json.loads((workdir / "schema.json").read_text())
    assert schema["title"] == "example-template Content Schema"


def test_init_analyze_data(workdir):
    """--analyze-data adds paths read through get() with their defaults."""
    result = invoke("init", "example-template.typ", "-o", "full.toml", "--analyze-data")
    assert result.exit_code == 0, result.output
    assert invoke("get", "quote.footer", "full.toml").stdout.strip() == "Prices exclude VAT."
    assert invoke("get", "quote.number", "full.toml").stdout.strip() == "2025-001"


def test_init_dry_run_prints_content(workdir):
    """init --dry-run prints the skeleton and writes nothing."""
    result = invoke("--dry-run", "init", "example-template.typ", "-o", "dry.toml")
    assert result.exit_code == 0, result.output
    assert "[meta]" in result.stdout
    assert not (workdir / "dry.toml").exists()


def test_init_missing_template(workdir):
    """A missing template file fails with file_not_found."""
    result = invoke("--json", "init", "nope.typ")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "file_not_found"


def test_new_template_then_new(workdir):
    """new-template writes a pair; new finds the template by name."""
    result = invoke("new-template", "report", "-o", "templates", "--description", "Monthly report")
    assert result.exit_code == 0, result.output
    assert (workdir / "templates" / "report.typ").exists()
    assert (workdir / "templates" / "report-content.toml").exists()

    result = invoke("new", "report", "-o", "my-report.toml")
    assert result.exit_code == 0, result.output
    assert invoke("get", "Main Content", "my-report.toml").stdout.strip() == "Add your main content here."


def test_new_unknown_template(workdir):
    """new with an unknown name is a template error."""
    result = invoke("--json", "new", "does-not-exist")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "template_error"


def test_templates_lists_directory(workdir):
    """templates lists every template with its description."""
    result = invoke("templates", ".")
    assert result.exit_code == 0, result.output
    assert result.stdout.startswith("example-template: Example quote")

    data = json.loads(invoke("--json", "templates", ".").stdout)
    assert data[0]["id"] == "example-template"
    assert data[0]["version"] == "1.0.0"


def test_templates_empty(tmp_path):
    """An empty directory yields no templates."""
    result = invoke("templates", str(tmp_path))
    assert result.stdout.strip() == "No templates found"


# --- compile ---

def test_compile_pdf(workdir, typst):
    """compile runs typst with the content data and reports the output."""
    result = invoke("compile", "example-content.toml")
    assert result.exit_code == 0, result.output
    assert "Compiled to example-content.pdf" in result.stdout
    assert typst[0][0] == "/opt/typst/typst"
    data = json.loads(typst[0][typst[0].index("--input") + 1].removeprefix("data="))
    assert "*Design*" in data["blocks"]["intro"]["content"]


def test_compile_svg_pages(workdir, typst):
    """SVG compiles report their pages."""
    result = invoke("--json", "compile", "example-content.toml", "--format", "svg")
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["format"] == "svg"
    assert [p["page"] for p in data["pages"]] == [1, 2]


def test_compile_check(workdir, typst):
    """--check validates without writing output beside the content."""
    result = invoke("compile", "example-content.toml", "--check")
    assert result.exit_code == 0, result.output
    assert "valid (template: example-template.typ)" in result.stdout
    assert not (workdir / "example-content.pdf").exists()


def test_compile_check_rejects_invalid_content(workdir, typst):
    """--check reports rule violations as a validation error and never runs typst."""
    (workdir / "bad.toml").write_text('[meta]\ntemplate = "example-template.typ"\n\n[blocks.a]\ncontent = 42\n')
    result = invoke("--json", "compile", "bad.toml", "--check")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "validation_error"
    assert typst == []


def test_compile_html_needs_flag(workdir, typst):
    """HTML output without --experimental-html is a config error."""
    result = invoke("--json", "compile", "example-content.toml", "--format", "html")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "config_error"
    assert typst == []


def test_compile_unknown_format(workdir, typst):
    """Unknown formats are rejected before typst runs."""
    result = invoke("compile", "example-content.toml", "--format", "docx")
    assert result.exit_code == 1
    assert "unknown output format 'docx'" in result.output


def test_compile_with_brand(workdir, typst, isolated_environment):
    """A brand id loads brand.toml from the brands directory into data.brand."""
    brand_dir = isolated_environment / "data" / "tmpltr" / "brands" / "acme"
    brand_dir.mkdir(parents=True)
    (brand_dir / "brand.toml").write_text('name = "ACME"\n\n[colors]\nprimary = "#ff0000"\n')
    result = invoke("compile", "example-content.toml", "--brand", "acme")
    assert result.exit_code == 0, result.output
    args = typst[0]
    data = json.loads(args[args.index("--input") + 1].removeprefix("data="))
    assert data["brand"]["colors"]["primary"] == "#ff0000"
    assert str(brand_dir.resolve()) in args


def test_compile_typst_failure(workdir, monkeypatch):
    """A typst error exits with code 2 and includes its details."""
    monkeypatch.setenv("TMPLTR_TYPST_BINARY", "/opt/typst/typst")

    def failing(args, capture_output, text, env):
        return subprocess.CompletedProcess(args, 1, stdout="", stderr="error: unknown variable: editable")

    monkeypatch.setattr(compile_mod.subprocess, "run", failing)
    result = invoke("--json", "compile", "example-content.toml")
    assert result.exit_code == 2
    data = json.loads(result.stdout)
    assert data["kind"] == "typst_error"
    assert "HINT" in data["details"]


# --- config ---

def test_config_path_and_show(workdir, isolated_environment):
    """config path points into XDG config; show prints effective settings."""
    result = invoke("config", "path")
    assert result.stdout.strip() == str(isolated_environment / "config" / "tmpltr" / "config.yaml")

    result = invoke("--json", "config", "show")
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["output_format"] == "pdf"


def test_config_override_file(workdir):
    """--config points at a different config file."""
    (workdir / "custom.yaml").write_text("output_format: svg\n")
    result = invoke("--json", "--config", "custom.yaml", "config", "show")
    assert json.loads(result.stdout)["output_format"] == "svg"


def test_config_reset(workdir, isolated_environment):
    """config reset rewrites the default config file."""
    config = isolated_environment / "config" / "tmpltr" / "config.yaml"
    config.parent.mkdir(parents=True)
    config.write_text("output_format: svg\n")
    result = invoke("config", "reset")
    assert result.exit_code == 0, result.output
    assert "output_format: pdf" in config.read_text()


def test_invalid_config(workdir):
    """An invalid config file is reported as config_error."""
    (workdir / "bad.yaml").write_text("output_format: docx\n")
    result = invoke("--json", "--config", "bad.yaml", "config", "show")
    assert result.exit_code == 1
    assert json.loads(result.stdout)["kind"] == "config_error"
