"""Template static analysis: editable markers, data accesses, comment metadata, and content schemas"""

import re
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from tmpltr.core import tree
from tmpltr.core.models import BlockFormat
from tmpltr.errors import MissingFileError, TemplateError


SCHEMA_DIALECT = "https://json-schema.org/draft/2020-12/schema"

FIELD_RE = re.compile(
    r'#editable\(\s*"([^"]+)"(?:\s*,\s*type:\s*"([^"]+)")?'
    r'(?:\s*,\s*default:\s*(?:"([^"]+)"|([^\s,)]+)))?\s*\)'
)
BLOCK_RE = re.compile(
    r'#editable-block\(\s*"([^"]+)"(?:\s*,\s*title:\s*"([^"]+)")?'
    r'(?:\s*,\s*format:\s*"([^"]+)")?\s*\)\s*\[([^\]]*)\]'
)
DATA_RE = re.compile(r'data\.([a-zA-Z_][a-zA-Z0-9_.]*)')
GET_RE = re.compile(
    r'get\s*\(\s*data\s*,\s*"([^"]+)"(?:\s*,\s*default:\s*(?:"([^"]+)"|([^\s,)]+)))?\s*\)'
)
BLOCKS_RE = re.compile(r'blocks\.([a-zA-Z_][a-zA-Z0-9_]*)')


class EditableField(BaseModel):
    path: str
    field_type: str = "text"
    default: Optional[str] = None


class EditableBlock(BaseModel):
    path: str
    title: Optional[str] = None
    format: BlockFormat = BlockFormat.markdown
    default_content: Optional[str] = None


class DataAccess(BaseModel):
    """A path the template reads from its data input, with the default it falls back to."""
    path: str
    default: Optional[str] = None


def extract_fields(source: str) -> list[EditableField]:
    return [
        EditableField(
            path=m.group(1),
            field_type=m.group(2) or "text",
            default=m.group(3) if m.group(3) is not None else m.group(4),
        )
        for m in FIELD_RE.finditer(source)
    ]


def extract_blocks(source: str) -> list[EditableBlock]:
    return [
        EditableBlock(
            path=m.group(1),
            title=m.group(2),
            format=BlockFormat.parse(m.group(3)),
            default_content=m.group(4).strip(),
        )
        for m in BLOCK_RE.finditer(source)
    ]


def extract_comment_value(source: str, key: str) -> Optional[str]:
    """First ``// @key: value`` comment in the source, trimmed."""
    m = re.search(rf'//\s*@{re.escape(key)}:\s*(.+)', source)
    return m.group(1).strip() if m else None


def extract_data_access(source: str) -> list[DataAccess]:
    """Every data path a template reads, deduplicated and sorted by path.

    Covers ``data.x.y`` references, ``get(data, "x.y", default: ...)`` calls,
    and ``blocks.name`` references. When a path is seen both ways, the default
    declared in a ``get()`` call is kept.
    """
    defaults: dict[str, Optional[str]] = {}

    for m in DATA_RE.finditer(source):
        defaults.setdefault(m.group(1).rstrip('.'), None)

    for m in GET_RE.finditer(source):
        default = m.group(2) if m.group(2) is not None else m.group(3)
        if default is not None or m.group(1) not in defaults:
            defaults[m.group(1)] = default

    for m in BLOCKS_RE.finditer(source):
        defaults.setdefault(f"blocks.{m.group(1)}", None)

    return [DataAccess(path=p, default=defaults[p]) for p in sorted(defaults)]


def _insert_field_schema(props: dict, parts: list[str], field: EditableField) -> None:
    key = parts[0]
    if len(parts) == 1:
        schema = {"type": "string", "description": f"Field: {field.path}"}
        if field.default is not None:
            schema["default"] = field.default
        props[key] = schema
        return
    entry = props.get(key)
    if not isinstance(entry, dict) or "properties" not in entry:
        entry = props[key] = {"type": "object", "properties": {}}
    _insert_field_schema(entry["properties"], parts[1:], field)


def _block_schema(block: EditableBlock) -> dict:
    name = block.path.removeprefix("blocks.")
    return {
        "type": "object",
        "description": block.title or name,
        "properties": {
            "title": {"type": "string", "description": "Block title"},
            "format": {
                "type": "string",
                "enum": [f.value for f in BlockFormat],
                "default": BlockFormat.markdown.value,
            },
            "content": {"type": "string", "description": "Block content"},
        },
    }


class TemplateInfo(BaseModel):
    """Everything statically known about one Typst template."""
    path: Path
    id: str
    description: Optional[str] = None
    version: Optional[str] = None
    fields: list[EditableField] = []
    blocks: list[EditableBlock] = []

    @classmethod
    def parse(cls, path: Path | str) -> "TemplateInfo":
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise MissingFileError(path) from e
        except UnicodeDecodeError as e:
            raise TemplateError(f"{path} is not valid UTF-8: {e}") from e
        return cls.parse_content(path, source)

    @classmethod
    def parse_content(cls, path: Path | str, source: str) -> "TemplateInfo":
        path = Path(path)
        return cls(
            path=path,
            id=path.stem or "unknown",
            description=extract_comment_value(source, "description"),
            version=extract_comment_value(source, "version"),
            fields=extract_fields(source),
            blocks=extract_blocks(source),
        )

    def generate_schema(self) -> dict:
        """JSON Schema describing content files for this template."""
        properties: dict = {
            "meta": {
                "type": "object",
                "description": "Content file metadata",
                "properties": {
                    "template": {"type": "string", "description": "Template file path"},
                    "template_id": {"type": "string", "description": "Template identifier"},
                    "template_version": {"type": "string", "description": "Template version"},
                },
                "required": ["template"],
            }
        }

        groups: dict[str, dict] = {}
        for field in self.fields:
            group, *rest = tree.split_path(field.path)
            if group == "blocks":
                continue
            if not rest:
                _insert_field_schema(properties, [group], field)
                continue
            _insert_field_schema(groups.setdefault(group, {}), rest, field)
        for group in sorted(groups):
            properties[group] = {"type": "object", "properties": groups[group]}

        if self.blocks:
            properties["blocks"] = {
                "type": "object",
                "description": "Content blocks",
                "properties": {
                    b.path.removeprefix("blocks."): _block_schema(b) for b in self.blocks
                },
            }

        return {
            "$schema": SCHEMA_DIALECT,
            "$id": f"https://tmpltr.dev/schemas/{self.id}.schema.json",
            "title": f"{self.id} Content Schema",
            "description": self.description or f"Schema for {self.id} content files",
            "type": "object",
            "properties": properties,
            "required": ["meta"],
            "additionalProperties": True,
        }


class TemplateSummary(BaseModel):
    id: str
    file: Path
    description: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_info(cls, info: TemplateInfo) -> "TemplateSummary":
        return cls(id=info.id, file=info.path, description=info.description, version=info.version)


class TemplateRegistry:
    """Looks templates up by path or name across an ordered list of directories."""

    def __init__(self, search_paths: list[Path]):
        self.search_paths = [Path(p) for p in search_paths]

    def find(self, name: str) -> TemplateInfo:
        direct = Path(name).expanduser()
        if direct.exists():
            return TemplateInfo.parse(direct)
        for directory in self.search_paths:
            for candidate in (directory / name, directory / f"{name}.typ"):
                if candidate.exists():
                    return TemplateInfo.parse(candidate)
        raise TemplateError(f"template '{name}' not found")

    def list(self) -> list[TemplateInfo]:
        """Every parsable ``*.typ`` file in the search paths; unreadable files are skipped."""
        templates = []
        for directory in self.search_paths:
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.typ")):
                try:
                    templates.append(TemplateInfo.parse(path))
                except (OSError, MissingFileError, TemplateError) as e:
                    logger.debug(f"templates: skipping {path}: {e}")
        return templates
