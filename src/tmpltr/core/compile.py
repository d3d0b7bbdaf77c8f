"""Typst compiler adapter: prepares the data input, invokes ``typst compile``, and interprets its output"""

import json
import os
import re
import shutil
import subprocess
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel

from tmpltr.config import Settings, expand_path
from tmpltr.core import tree
from tmpltr.core.content import ContentFile
from tmpltr.core.markdown import markdown_to_typst
from tmpltr.core.models import BlockFormat
from tmpltr.core.scaffold import prepare_package
from tmpltr.errors import CompilerError, ConfigError


PACKAGE_PATH_ENV = "TYPST_PACKAGE_PATH"
PAGE_PLACEHOLDERS = ("{p}", "{0p}", "{t}")


class OutputFormat(str, Enum):
    pdf = "pdf"
    svg = "svg"
    html = "html"

    @classmethod
    def from_str(cls, value: Optional[str]) -> Optional["OutputFormat"]:
        try:
            return cls(value.lower()) if value else None
        except ValueError:
            return None

    @classmethod
    def from_path(cls, path: Path) -> Optional["OutputFormat"]:
        return cls.from_str(Path(path).suffix.lstrip("."))


class CompileOptions(BaseModel):
    output: Optional[Path] = None
    format: Optional[OutputFormat] = None
    brand_data: Optional[dict[str, Any]] = None
    brand_font_paths: list[Path] = []
    check_only: bool = False
    experimental_html: bool = False


class PageInfo(BaseModel):
    page: int
    file: Path


class CompileResult(BaseModel):
    status: str = "ok"
    format: str
    output: Optional[Path] = None
    pages: Optional[list[PageInfo]] = None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def prepare_data(content: ContentFile, brand_data: Optional[dict] = None) -> dict:
    """The JSON object handed to the template as ``sys.inputs.data``.

    Blocks declared (or defaulting) as markdown get their content converted
    to Typst markup; the content file itself is left untouched.
    """
    data = tree.to_json(content.data)
    if brand_data is not None:
        data["brand"] = tree.to_json(brand_data)

    blocks = data.get("blocks")
    if isinstance(blocks, dict):
        for block in blocks.values():
            if not isinstance(block, dict):
                continue
            fmt = block.get("format", BlockFormat.markdown.value)
            if fmt == BlockFormat.markdown.value and isinstance(block.get("content"), str):
                block["content"] = markdown_to_typst(block["content"])
    return data


def extract_page_number(filename: str, stem: str) -> Optional[int]:
    """Page number of an SVG named like ``<stem>-3.svg`` or ``<stem>_03.svg``."""
    m = re.fullmatch(rf"{re.escape(stem)}[-_](\d+)\.svg", filename)
    return int(m.group(1)) if m else None


def collect_svg_pages(output: Path) -> list[PageInfo]:
    """Pages written for an SVG output path, sorted by page number."""
    name = output.name
    if not any(p in name for p in PAGE_PLACEHOLDERS):
        return [PageInfo(page=1, file=output)] if output.exists() else []

    stem = name.split("{", 1)[0].rstrip("-_") or "output"
    parent = output.parent
    pages = []
    if parent.is_dir():
        for path in parent.iterdir():
            number = extract_page_number(path.name, stem)
            if number is not None:
                pages.append(PageInfo(page=number, file=path))
    return sorted(pages, key=lambda p: p.page)


HINT_JSON_DECODE = """\
HINT: If your template uses `json(sys.inputs.at("data"))`, change it to:

#let data = json.decode(sys.inputs.at("data", default: "{}"))

The `json()` function expects a file path, but tmpltr passes data as a string.
Use `json.decode()` to parse the JSON string directly."""

HINT_JSON_PATH = """\
HINT: This error often occurs when using `json(path)` where `path` is not a file.
If you're parsing data from sys.inputs, use `json.decode()` instead of `json()`."""

HINT_SYNTAX = "HINT: This is a Typst syntax error. Check your template for typos or incorrect syntax."

HINT_IMPORT = """\
HINT: Make sure your template imports the tmpltr library:

#import "@local/tmpltr-lib:1.0.0": editable, editable-block, tmpltr-data, md, get"""

HINT_MISSING_KEY = """\
HINT: A required field is missing from your content file.
Check that all fields referenced in the template exist in your .toml content file."""


def enhance_error_message(stderr: str) -> str:
    """Append hints for common template mistakes to typst's stderr."""
    lower = stderr.lower()
    hints = []

    if "file name too long" in lower or "no such file or directory" in lower:
        hints.append(HINT_JSON_DECODE if "json" in lower or "sys.inputs" in lower else HINT_JSON_PATH)
    if "expected" in lower and "found" in lower:
        hints.append(HINT_SYNTAX)
    if ("unknown variable" in lower or "cannot find" in lower) and any(
        name in lower for name in ("tmpltr-data", "editable", "tmpltr-lib")
    ):
        hints.append(HINT_IMPORT)
    if "missing key" in lower or "key not found" in lower:
        hints.append(HINT_MISSING_KEY)

    if not hints:
        return stderr
    return f"{stderr}\n\n" + "\n\n".join(hints)


def _warnings_only(stderr: str) -> bool:
    return all(
        not line.strip() or line.strip().lower().startswith("warning")
        for line in stderr.splitlines()
    )


class TypstCompiler:
    """Runs the external typst binary against a content file's template."""

    def __init__(self, binary: Path, font_paths: list[Path] = None, package_path: Optional[Path] = None):
        self.binary = Path(binary)
        self.font_paths = list(font_paths or [])
        self.package_path = package_path

    @classmethod
    def from_settings(cls, settings: Settings, package_base: Optional[Path] = None) -> "TypstCompiler":
        if settings.typst_binary:
            binary = expand_path(settings.typst_binary)
        else:
            found = shutil.which("typst")
            if found is None:
                raise ConfigError(
                    "typst binary not found in PATH. Install typst or set typst_binary in config"
                )
            binary = Path(found)

        font_paths = [p for p in map(expand_path, settings.font_paths) if p.exists()]
        return cls(binary, font_paths, prepare_package(package_base))

    def build_args(self, template: Path, output: Path, fmt: OutputFormat, data: dict,
                   extra_font_paths: list[Path] = ()) -> list[str]:
        args = [str(self.binary), "compile", "--format", fmt.value]
        args += ["--input", f"data={json.dumps(data, ensure_ascii=False)}"]
        for font_path in [*self.font_paths, *extra_font_paths]:
            args += ["--font-path", str(font_path)]
        if self.package_path:
            args += ["--package-path", str(self.package_path)]
        args += ["--root", "/"]
        if fmt is OutputFormat.html:
            args += ["--features", "html"]
        args += [str(template), str(output)]
        return args

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.package_path:
            existing = env.get(PACKAGE_PATH_ENV)
            paths = [str(self.package_path)] + (existing.split(os.pathsep) if existing else [])
            env[PACKAGE_PATH_ENV] = os.pathsep.join(paths)
        return env

    def _run(self, args: list[str]) -> None:
        logger.debug(f"typst: {' '.join(args[:4])} ... {' '.join(args[-2:])}")
        try:
            proc = subprocess.run(args, capture_output=True, text=True, env=self._env())
        except OSError as e:
            raise CompilerError(f"failed to execute typst: {e}") from e

        stderr = proc.stderr or ""
        if proc.returncode == 0 or _warnings_only(stderr):
            if stderr.strip():
                logger.warning(stderr.strip())
            if proc.returncode != 0:
                raise CompilerError(f"typst exited with status {proc.returncode}")
            return

        summary = next((line for line in stderr.splitlines() if line.strip()), "Typst compilation failed")
        raise CompilerError(summary.strip(), enhance_error_message(stderr))

    def compile(self, content: ContentFile, options: CompileOptions) -> CompileResult:
        if options.check_only:
            return self._check(content, options)

        output = options.output or content.path.with_suffix(".pdf")
        fmt = options.format or OutputFormat.from_path(output) or OutputFormat.pdf
        if fmt is OutputFormat.html and not options.experimental_html:
            raise ConfigError("HTML output requires --experimental-html flag")

        data = prepare_data(content, options.brand_data)
        self._run(self.build_args(content.template_path, output, fmt, data, options.brand_font_paths))
        logger.info(f"compiled {content.path} -> {output}")

        if fmt is OutputFormat.svg:
            return CompileResult(format=fmt.value, pages=collect_svg_pages(output))
        return CompileResult(format=fmt.value, output=output)

    def _check(self, content: ContentFile, options: CompileOptions) -> CompileResult:
        """Compile to a throwaway PDF to validate the template against the content."""
        data = prepare_data(content, options.brand_data)
        with tempfile.TemporaryDirectory(prefix="tmpltr-check-") as tmp:
            output = Path(tmp) / "check.pdf"
            self._run(self.build_args(content.template_path, output, OutputFormat.pdf, data,
                                      options.brand_font_paths))
        return CompileResult(format="check")
