"""CLI command implementations"""

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from loguru import logger

from tmpltr.cli.context import AppState, handle_errors, read_stdin
from tmpltr.config import write_default_config
from tmpltr.core import edit
from tmpltr.core.brand import load_brand
from tmpltr.core.compile import CompileOptions, OutputFormat, TypstCompiler
from tmpltr.core.content import ContentBuilder, ContentFile
from tmpltr.core.models import BlockFormat
from tmpltr.core.scaffold import EXAMPLE_CONTENT, EXAMPLE_TEMPLATE, new_content_source, new_template_source
from tmpltr.core.template import TemplateInfo, TemplateRegistry, TemplateSummary, extract_data_access
from tmpltr.core.validate import ensure_valid, validate_content
from tmpltr.core.watch import open_file, run_compile, watch_and_compile
from tmpltr.crud.models import RecentDocument
from tmpltr.errors import ConfigError, ContentError, ValidationError


FromOption = Annotated[Optional[str], typer.Option("--from", help="Selector instead of a file path (e.g. 'last')")]
OutputOption = Annotated[Optional[Path], typer.Option("--output", "-o", help="Output file path")]
FormatOption = Annotated[Optional[str], typer.Option("--format", help="Output format: pdf, svg or html")]
BrandOption = Annotated[Optional[str], typer.Option("--brand", "-b", help="Brand id or path")]


def _write_file(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _refuse_overwrite(force: bool, *paths: Path) -> None:
    if force:
        return
    for path in paths:
        if path.exists():
            raise ContentError(f"file {path} already exists (use --force to overwrite)")


def _template_ref(template: Path, output: Path) -> str:
    """How a new content file refers to its template: relative when it sits below the output's folder."""
    template = template.resolve()
    base = output.resolve().parent
    if template.is_relative_to(base):
        return template.relative_to(base).as_posix()
    return str(template)


# --- init / new ---

def _build_content(template: TemplateInfo, output: Path, analyze_data: bool) -> tuple[str, int, int]:
    """Content skeleton for a template; returns (toml text, field count, block count)."""
    builder = ContentBuilder(_template_ref(template.path, output)).template_id(template.id)
    if template.version:
        builder.template_version(template.version)

    for f in template.fields:
        builder.field(f.path, f.default or "")
    for b in template.blocks:
        builder.block(b.path.removeprefix("blocks."), b.title or b.path, b.format, b.default_content or "")

    if analyze_data:
        source = template.path.read_text(encoding="utf-8")
        for access in extract_data_access(source):
            if access.path.startswith("blocks."):
                name = access.path.removeprefix("blocks.")
                if "." not in name and name not in builder.block_names:
                    builder.block(name, name, BlockFormat.markdown,
                                  access.default or f"# {name}\n\nAdd content here.")
                continue
            existing = builder.field_paths
            parts = access.path.split(".")
            prefixes = {".".join(parts[:i]) for i in range(1, len(parts))}
            if access.path in existing or prefixes & existing:
                continue
            if any(p.startswith(access.path + ".") for p in existing):
                continue
            builder.field(access.path, access.default or f"<{access.path}>")

    return builder.build(), len(builder.field_paths), len(builder.block_names)


def _init(state: AppState, template: TemplateInfo, output: Optional[Path],
          schema: Optional[Path] = None, analyze_data: bool = False) -> None:
    output = output or Path(f"{template.id}-content.toml")

    if schema is not None:
        schema_text = json.dumps(template.generate_schema(), indent=2, ensure_ascii=False)
        if state.dry_run:
            logger.info(f"dry-run: would write schema to {schema}")
            typer.echo(schema_text)
        else:
            _write_file(schema, schema_text + "\n")

    text, fields, blocks = _build_content(template, output, analyze_data)
    if state.dry_run:
        logger.info(f"dry-run: would write content to {output}")
        typer.echo(text)
        return

    _write_file(output, text)
    result = {"status": "ok", "output": str(output), "fields": fields, "blocks": blocks}
    if schema is not None:
        result["schema"] = str(schema)
    if analyze_data:
        result["analyze_data"] = True
    suffix = " (schema also generated)" if schema is not None else ""
    state.output(result, f"Generated {output} with {fields} fields and {blocks} blocks{suffix}")


def init_cmd(
    ctx: typer.Context,
    template: Annotated[Path, typer.Argument(help="Typst template file to analyze")],
    output: OutputOption = None,
    schema: Annotated[Optional[Path], typer.Option("--schema", help="Also write a JSON schema here")] = None,
    analyze_data: Annotated[bool, typer.Option("--analyze-data", help="Include every data.* access in the skeleton")] = False,
    ):
    """Extract editable fields and blocks from a template and generate a content file."""
    state: AppState = ctx.obj
    with handle_errors(state):
        _init(state, TemplateInfo.parse(template), output, schema, analyze_data)


def new_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Template name or path")],
    output: OutputOption = None,
    ):
    """Create a content file from a registered template."""
    state: AppState = ctx.obj
    with handle_errors(state):
        template = TemplateRegistry(state.template_search_paths()).find(name)
        _init(state, template, output)


def example_cmd(
    ctx: typer.Context,
    template: Annotated[Path, typer.Option("--template", help="Where to write the example template")] = Path("example-template.typ"),
    content: Annotated[Path, typer.Option("--content", help="Where to write the example content")] = Path("example-content.toml"),
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite existing files")] = False,
    ):
    """Write a self-contained example template and content pair."""
    state: AppState = ctx.obj
    with handle_errors(state):
        _refuse_overwrite(force, template, content)
        if state.dry_run:
            logger.info(f"dry-run: would write example template to {template} and content to {content}")
            return
        _write_file(template, EXAMPLE_TEMPLATE)
        _write_file(content, EXAMPLE_CONTENT.replace('"example-template.typ"', f'"{_template_ref(template, content)}"'))
        state.output(
            {"status": "ok", "template": str(template), "content": str(content)},
            f"Wrote example template to {template} and content to {content}",
        )


# --- compile / watch ---

def _brand(state: AppState, brand: Optional[str]) -> tuple[Optional[dict], list[Path]]:
    brand = brand or state.settings.default_brand
    if not brand:
        return None, []
    loaded = load_brand(brand, state.paths.brands_dir)
    return loaded.data, loaded.font_paths


def _output_format(value: Optional[str]) -> Optional[OutputFormat]:
    if value is None:
        return None
    fmt = OutputFormat.from_str(value)
    if fmt is None:
        raise ConfigError(f"unknown output format '{value}' (expected pdf, svg or html)")
    return fmt


def _default_output(content: Path, fmt: OutputFormat) -> Path:
    if fmt is OutputFormat.svg:
        return content.with_name(f"{content.stem}-{{p}}.svg")
    return content.with_suffix(f".{fmt.value}")


def _compile_options(state: AppState, content: Path, output: Optional[Path], fmt: Optional[str],
                     brand: Optional[str], experimental_html: bool) -> CompileOptions:
    fmt = _output_format(fmt)
    if output is None:
        output = _default_output(content, fmt or OutputFormat(state.settings.output_format))
        fmt = fmt or OutputFormat.from_path(output)
    brand_data, brand_fonts = _brand(state, brand)
    return CompileOptions(
        output=output,
        format=fmt,
        brand_data=brand_data,
        brand_font_paths=brand_fonts,
        experimental_html=experimental_html or state.settings.experimental_html,
    )


def compile_cmd(
    ctx: typer.Context,
    content: Annotated[Path, typer.Argument(help="Content file to compile")],
    output: OutputOption = None,
    fmt: FormatOption = None,
    brand: BrandOption = None,
    check: Annotated[bool, typer.Option("--check", help="Validate template and content without writing output")] = False,
    experimental_html: Annotated[bool, typer.Option("--experimental-html", help="Enable typst's HTML export")] = False,
    ):
    """Compile a content file to PDF, SVG or HTML."""
    state: AppState = ctx.obj
    with handle_errors(state):
        doc = ContentFile.load(content)
        if check:
            ensure_valid(doc)
        state.touch(doc)
        options = _compile_options(state, content, output, fmt, brand, experimental_html)
        options.check_only = check

        if state.dry_run:
            action = "check" if check else f"compile to {options.output}"
            state.output({"status": "ok", "dry_run": True, "content": str(content)},
                         f"dry-run: would {action} {content}")
            return

        result = TypstCompiler.from_settings(state.settings).compile(doc, options)
        if check:
            state.output(
                {"status": "ok", "valid": True, "content": str(content), "template": doc.meta.template},
                f"{content}: valid (template: {doc.meta.template})",
            )
        elif result.pages is not None:
            state.output(result.to_json(), f"Compiled {len(result.pages)} pages")
        else:
            state.output(result.to_json(), f"Compiled to {result.output}")


def watch_cmd(
    ctx: typer.Context,
    content: Annotated[Path, typer.Argument(help="Content file to watch")],
    output: OutputOption = None,
    fmt: FormatOption = None,
    brand: BrandOption = None,
    debounce: Annotated[Optional[int], typer.Option("--debounce", min=0, help="Debounce in milliseconds")] = None,
    open_output: Annotated[bool, typer.Option("--open", help="Open the output after the first compile")] = False,
    experimental_html: Annotated[bool, typer.Option("--experimental-html", help="Enable typst's HTML export")] = False,
    ):
    """Recompile whenever the content file changes."""
    state: AppState = ctx.obj
    with handle_errors(state):
        options = _compile_options(state, content, output, fmt, brand, experimental_html)
        compiler = TypstCompiler.from_settings(state.settings)

        def compile_once():
            doc = ContentFile.load(content)
            state.touch(doc)
            result = compiler.compile(doc, options)
            typer.echo(f"Compiled to {result.output or options.output}")

        if run_compile(compile_once) and open_output:
            open_file(options.output)

        typer.echo(f"Watching {content} for changes... (Ctrl+C to stop)")
        try:
            watch_and_compile(content, compile_once, debounce if debounce is not None
                              else state.settings.watch_debounce_ms, initial=False)
        except KeyboardInterrupt:
            typer.echo("Stopped watching")


# --- get / set / blocks ---

def get_cmd(
    ctx: typer.Context,
    path_or_title: Annotated[str, typer.Argument(help="Path or title of the block or field")],
    file: Annotated[Optional[Path], typer.Argument(help="Content file")] = None,
    from_: FromOption = None,
    ):
    """Print a block or field value by path or title."""
    state: AppState = ctx.obj
    with handle_errors(state):
        doc = ContentFile.load(state.resolve_file(file, from_))
        state.touch(doc)
        path = doc.resolve_path(path_or_title)
        value = doc.get_content(path)
        if state.json:
            info = doc.get_block_info(path)
            state.output_json({
                "id": path,
                "path": path,
                "title": info.title if info else None,
                "format": info.format if info else None,
                "type": info.kind.value if info else None,
                "content": value,
            })
        else:
            typer.echo(value, nl=not value.endswith("\n"))


def _read_value(value: Optional[str], file_input: Optional[Path]) -> str:
    if file_input is not None:
        try:
            return file_input.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentError(f"{file_input} is not valid UTF-8: {e}") from e
    if value == "-":
        return read_stdin()
    if value is None:
        raise ContentError("no value provided")
    return value


def _set_batch(state: AppState, file: Path) -> None:
    updates = json.loads(read_stdin())
    if not isinstance(updates, dict):
        raise ValidationError(["batch input must be a JSON object of path -> value"])
    doc, paths = edit.set_batch(file, updates, dry_run=state.dry_run)
    if state.dry_run:
        state.output({"status": "ok", "dry_run": True, "paths": paths},
                     f"dry-run: would update {len(paths)} paths")
        return
    state.touch(doc)
    state.output({"status": "ok", "updated": len(paths), "file": str(file)}, f"Updated {len(paths)} paths")


def set_cmd(
    ctx: typer.Context,
    path_or_title: Annotated[Optional[str], typer.Argument(help="Path or title of the block or field")] = None,
    file: Annotated[Optional[str], typer.Argument(help="Content file")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value, or '-' for stdin")] = None,
    from_: FromOption = None,
    file_input: Annotated[Optional[Path], typer.Option("--file-input", help="Read the value from a file")] = None,
    batch: Annotated[bool, typer.Option("--batch", help="Read a JSON object of path -> value from stdin")] = False,
    ):
    """Set a block or field value, preserving the file's formatting."""
    state: AppState = ctx.obj
    with handle_errors(state):
        if batch:
            # the single positional is the file in batch mode
            target = file or path_or_title
            _set_batch(state, state.resolve_file(Path(target) if target else None, from_))
            return

        if path_or_title is None:
            raise ContentError("missing PATH_OR_TITLE")
        if from_ and file is not None and value is None:
            file, value = None, file
        target = state.resolve_file(Path(file) if file else None, from_)
        new_value = _read_value(value, file_input)

        doc, path = edit.set_value(target, path_or_title, new_value, dry_run=state.dry_run)
        if state.dry_run:
            state.output({"status": "ok", "dry_run": True, "path": path}, f"dry-run: would set {path}")
            return
        state.touch(doc)
        state.output({"status": "ok", "path": path, "file": str(target)}, f"Set {path}")


def blocks_cmd(
    ctx: typer.Context,
    file: Annotated[Optional[Path], typer.Argument(help="Content file")] = None,
    from_: FromOption = None,
    ):
    """List the addressable blocks and fields of a content file."""
    state: AppState = ctx.obj
    with handle_errors(state):
        doc = ContentFile.load(state.resolve_file(file, from_))
        state.touch(doc)
        blocks = doc.list_blocks()
        if state.json:
            state.output_json([b.model_dump(mode="json", by_alias=True) for b in blocks])
            return
        for b in blocks:
            typer.echo(f"{b.path} ({b.kind.value}) - {b.title or '-'}")


def validate_cmd(
    ctx: typer.Context,
    content: Annotated[Path, typer.Argument(help="Content file to validate")],
    ):
    """Check a content file's structure."""
    state: AppState = ctx.obj
    with handle_errors(state):
        doc = ContentFile.load(content)
        errors = validate_content(doc)
        if errors:
            if not state.json:
                typer.echo(f"{content}: validation failed", err=True)
                for error in errors:
                    typer.echo(f"  - {error}", err=True)
            raise ValidationError(errors)
        state.touch(doc)
        state.output({"status": "ok", "file": str(content)}, f"{content}: valid")


# --- listings ---

def templates_cmd(
    ctx: typer.Context,
    path: Annotated[Optional[Path], typer.Argument(help="Directory to search")] = None,
    ):
    """List available templates."""
    state: AppState = ctx.obj
    with handle_errors(state):
        search_paths = [path] if path is not None else state.template_search_paths()
        templates = TemplateRegistry(search_paths).list()
        if state.json:
            state.output_json([TemplateSummary.from_info(t).model_dump(mode="json") for t in templates])
            return
        if not templates:
            typer.echo("No templates found")
        for t in templates:
            typer.echo(f"{t.id}: {t.description or '-'}")


def recent_cmd(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-l", min=0, help="Maximum number of entries")] = 10,
    ):
    """List recently used documents, newest first."""
    state: AppState = ctx.obj
    with handle_errors(state):
        entries = state.cache.list_entries()[:limit]
        if state.json:
            state.output_json([RecentDocument.from_entry(e).model_dump(mode="json") for e in entries])
            return
        if not entries:
            typer.echo("No recent documents")
        for e in entries:
            typer.echo(f"{e.file}: {e.meta.title or '-'}")


# --- config ---

def config_show_cmd(ctx: typer.Context):
    """Show the effective configuration."""
    state: AppState = ctx.obj
    with handle_errors(state):
        data = state.settings.model_dump(mode="json")
        if state.json:
            state.output_json(data)
        else:
            typer.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False).rstrip())


def config_path_cmd(ctx: typer.Context):
    """Print the resolved config file path."""
    state: AppState = ctx.obj
    with handle_errors(state):
        typer.echo(str(state.base_paths.config_file))


def config_reset_cmd(ctx: typer.Context):
    """Regenerate the default configuration file."""
    state: AppState = ctx.obj
    with handle_errors(state):
        config_file = state.base_paths.config_file
        if state.dry_run:
            logger.info(f"dry-run: would reset config at {config_file}")
            return
        write_default_config(config_file)
        state.output({"status": "ok", "file": str(config_file)}, f"Reset config at {config_file}")


# --- new-template ---

def new_template_cmd(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Template name (file stem)")],
    output: Annotated[Path, typer.Option("--output", "-o", help="Output directory")] = Path("."),
    description: Annotated[Optional[str], typer.Option("--description", help="Template description")] = None,
    version: Annotated[str, typer.Option("--version", help="Template version")] = "1.0.0",
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite existing files")] = False,
    ):
    """Create a new template with a matching content file."""
    state: AppState = ctx.obj
    with handle_errors(state):
        template_path = output / f"{name}.typ"
        content_path = output / f"{name}-content.toml"
        _refuse_overwrite(force, template_path, content_path)

        template_text = new_template_source(name, description, version)
        content_text = new_content_source(name, version)
        if state.dry_run:
            logger.info(f"dry-run: would create {template_path} and {content_path}")
            typer.echo(f"=== {template_path} ===\n{template_text}")
            typer.echo(f"=== {content_path} ===\n{content_text}")
            return

        _write_file(template_path, template_text)
        _write_file(content_path, content_text)
        state.output(
            {"status": "ok", "template": str(template_path), "content": str(content_path)},
            f"Created template {template_path} and content {content_path}",
        )
