"""Content files: parsing, the flat block/field index, selector resolution, and building new files"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomlkit
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from tomlkit.exceptions import ParseError
from tomlkit.toml_document import TOMLDocument

from tmpltr.core import tree
from tmpltr.core.models import BlockFormat, BlockInfo, BlockKind, ContentMeta
from tmpltr.errors import (
    AmbiguousTitleError, ContentError, MissingFileError, PathNotFoundError,
    TitleNotFoundError, TomlParseError,
)


RESERVED_KEYS = ("meta", "blocks")


def parse_toml(text: str) -> TOMLDocument:
    """Parse TOML text into a format-preserving document."""
    try:
        return tomlkit.parse(text)
    except ParseError as e:
        raise TomlParseError(str(e)) from e


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _extract_meta(data: dict) -> ContentMeta:
    """Read the [meta] table; a missing table or template is a hard error."""
    meta = data.get("meta")
    if not isinstance(meta, dict):
        raise ContentError("missing [meta] section in content file")
    template = meta.get("template")
    if not isinstance(template, str) or not template:
        raise ContentError("missing meta.template field")
    try:
        return ContentMeta(
            template=template,
            template_id=_str_or_none(meta.get("template_id")),
            template_version=_str_or_none(meta.get("template_version")),
            generated_at=meta.get("generated_at"),
        )
    except PydanticValidationError as e:
        raise ContentError(f"invalid [meta] section: {e}") from e


def build_index(data: dict) -> dict[str, BlockInfo]:
    """Build the path -> BlockInfo index for a content tree.

    Entries under [blocks] are registered first and always win; the field walk
    covers every other top-level key except meta and blocks.
    """
    index: dict[str, BlockInfo] = {}

    blocks = data.get("blocks")
    if isinstance(blocks, dict):
        for name, value in blocks.items():
            path = f"blocks.{name}"
            attrs = value if isinstance(value, dict) else {}
            index[path] = BlockInfo(
                path=path,
                title=_str_or_none(attrs.get("title")),
                kind=BlockKind.block,
                format=_str_or_none(attrs.get("format")),
                block_type=_str_or_none(attrs.get("type")),
            )

    def _walk(prefix: str, node: dict) -> None:
        for key, value in node.items():
            path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                _walk(path, value)
            elif path in index:
                logger.debug(f"index: field {path} shadowed by existing entry")
            else:
                index[path] = BlockInfo(path=path, kind=BlockKind.field)

    _walk("", {k: v for k, v in data.items() if k not in RESERVED_KEYS})
    return index


class ContentFile:
    """A parsed content file: raw text, semantic tree, metadata, and its index.

    The tree and index are rebuilt from scratch on every parse and never
    patched; edits go through a separate format-preserving document (see
    ``document()``) followed by a reload.
    """

    def __init__(self, path: Path, raw: str, data: dict, meta: ContentMeta):
        self.path = path
        self.raw = raw
        self.data = data
        self.meta = meta
        self._index = build_index(data)

    @classmethod
    def load(cls, path: Path | str) -> "ContentFile":
        path = Path(path)
        try:
            raw = path.read_bytes().decode("utf-8")
        except FileNotFoundError as e:
            raise MissingFileError(path) from e
        except UnicodeDecodeError as e:
            raise ContentError(f"{path} is not valid UTF-8: {e}") from e
        return cls.parse(path, raw)

    @classmethod
    def parse(cls, path: Path | str, raw: str) -> "ContentFile":
        data = parse_toml(raw).unwrap()
        return cls(Path(path), raw, data, _extract_meta(data))

    @property
    def index(self) -> dict[str, BlockInfo]:
        return dict(self._index)

    @property
    def template_path(self) -> Path:
        """Template location resolved relative to this file's directory."""
        template = Path(self.meta.template)
        if template.is_absolute():
            return template
        resolved = self.path.parent / template
        return resolved.resolve() if resolved.exists() else resolved

    def document(self) -> TOMLDocument:
        """A fresh layout-preserving document of the raw text, for editing."""
        return parse_toml(self.raw)

    def get(self, path: str) -> Any | None:
        return tree.get(self.data, path)

    def get_content(self, path: str) -> str:
        """Display value at a concrete path; block tables yield their content."""
        value = self.get(path)
        if value is None:
            raise PathNotFoundError(path)
        return tree.display(value)

    def get_block_info(self, path: str) -> Optional[BlockInfo]:
        return self._index.get(path)

    def list_blocks(self) -> list[BlockInfo]:
        return [self._index[k] for k in sorted(self._index)]

    def find_by_title(self, title: str) -> BlockInfo:
        """Exact, case-sensitive title lookup; refuses to choose among several matches."""
        matches = [info for info in self._index.values() if info.title == title]
        if not matches:
            raise TitleNotFoundError(title)
        if len(matches) > 1:
            raise AmbiguousTitleError(title, [m.path for m in matches])
        return matches[0]

    def resolve_path(self, path_or_title: str) -> str:
        """Resolve a selector to a canonical path: exact index key first, then title."""
        if path_or_title in self._index:
            return path_or_title
        return self.find_by_title(path_or_title).path


def multiline_ok(value: str) -> bool:
    """Whether a value can be written as a multi-line string without changing it.

    TOML drops a newline directly after the opening quotes, so values that
    start with one stay single-line. Carriage returns are only kept exactly
    as escapes, so values holding one stay single-line too.
    """
    return "\n" in value and "\r" not in value and not value.startswith("\n")


def _text(value: str):
    return tomlkit.string(value, multiline=multiline_ok(value))


class ContentBuilder:
    """Fluent builder that synthesizes a new content file."""

    def __init__(self, template: str):
        self._template = template
        self._template_id: Optional[str] = None
        self._template_version: Optional[str] = None
        self._data: dict[str, Any] = {}
        self._blocks: dict[str, dict[str, Any]] = {}

    def template_id(self, template_id: str) -> "ContentBuilder":
        self._template_id = template_id
        return self

    def template_version(self, version: str) -> "ContentBuilder":
        self._template_version = version
        return self

    def field(self, path: str, value: Any) -> "ContentBuilder":
        """Insert a value at a dotted path, creating intermediate tables."""
        parts = tree.split_path(path)
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[parts[-1]] = value
        return self

    def block(self, name: str, title: str, fmt: BlockFormat, content: str) -> "ContentBuilder":
        self._blocks[name] = {"title": title, "format": fmt.value, "content": content}
        return self

    @property
    def field_paths(self) -> set[str]:
        paths: set[str] = set()

        def _collect(prefix: str, node: dict) -> None:
            for key, value in node.items():
                path = f"{prefix}.{key}" if prefix else key
                if isinstance(value, dict):
                    _collect(path, value)
                else:
                    paths.add(path)

        _collect("", self._data)
        return paths

    @property
    def block_names(self) -> set[str]:
        return set(self._blocks)

    def build(self) -> str:
        doc = tomlkit.document()

        meta = tomlkit.table()
        meta.add("template", self._template)
        if self._template_id:
            meta.add("template_id", self._template_id)
        if self._template_version:
            meta.add("template_version", self._template_version)
        meta.add("generated_at", datetime.now(timezone.utc).replace(microsecond=0))
        doc.add("meta", meta)

        for key, value in self._data.items():
            doc.add(key, _to_item(value))

        if self._blocks:
            blocks = tomlkit.table(is_super_table=True)
            for name, attrs in self._blocks.items():
                blocks.add(name, _to_item(attrs))
            doc.add("blocks", blocks)

        return tomlkit.dumps(doc)


def _to_item(value: Any):
    """Convert builder data to tomlkit items, turning dicts into tables."""
    if isinstance(value, dict):
        table = tomlkit.table()
        for key, child in value.items():
            table.add(key, _to_item(child))
        return table
    if isinstance(value, str):
        return _text(value)
    return tomlkit.item(value)
