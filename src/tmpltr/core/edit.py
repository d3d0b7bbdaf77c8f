"""Format-preserving edits of content files.

Edits never touch the parsed content tree. They mutate a tomlkit document that
keeps comments, key order, and whitespace, write it atomically, and the caller
reloads the file so the tree, index, and cache are rebuilt from disk.
"""

import json
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any

import tomlkit
from loguru import logger
from tomlkit.toml_document import TOMLDocument

from tmpltr.core import tree
from tmpltr.core.content import ContentFile, multiline_ok
from tmpltr.errors import PathNotFoundError, ValidationError


def set_value_at_path(document: TOMLDocument, path: str, value: str) -> None:
    """Set one leaf, creating missing intermediate tables.

    If the terminal key holds a block table that already has ``content``, only
    that nested key is replaced so title/format/type keep their exact text.
    """
    parts = tree.split_path(path)
    current: Any = document

    for part in parts[:-1]:
        if not isinstance(current, MutableMapping):
            raise PathNotFoundError(path)
        if part not in current:
            current[part] = tomlkit.table()
        current = current[part]

    if not isinstance(current, MutableMapping):
        raise PathNotFoundError(path)

    key = parts[-1]
    item = tomlkit.string(value, multiline=multiline_ok(value))
    existing = current.get(key)
    if isinstance(existing, MutableMapping) and "content" in existing:
        existing["content"] = item
    else:
        current[key] = item


def encode_batch_value(path: str, value: Any) -> str:
    """Text to store for one batch input: strings as-is, JSON scalars as their JSON text."""
    if isinstance(value, str):
        return value
    if isinstance(value, (Mapping, list)):
        raise ValidationError([f"{path}: nested objects and arrays cannot be set"])
    return json.dumps(value)


def set_values(document: TOMLDocument, updates: Mapping[str, Any]) -> list[str]:
    """Apply several path -> value sets to one document. Returns the paths set.

    Every value is encoded before the first mutation, so a rejected value
    leaves the document untouched.
    """
    encoded = {path: encode_batch_value(path, value) for path, value in updates.items()}
    for path, value in encoded.items():
        set_value_at_path(document, path, value)
    return list(encoded)


def write_document(path: Path, document: TOMLDocument) -> None:
    """Serialize to a sibling temp file, then atomically replace the original."""
    temp_path = path.with_name(path.name + ".tmp")
    try:
        temp_path.write_bytes(tomlkit.dumps(document).encode("utf-8"))
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    logger.debug(f"wrote {path}")


def set_value(file: Path | str, selector: str, value: str, dry_run: bool = False) -> tuple[ContentFile, str]:
    """Resolve a path-or-title in a content file, set it, and reload.

    Returns (reloaded content file, resolved path). With dry_run the document
    is mutated in memory only and the unchanged file is returned.
    """
    content = ContentFile.load(file)
    path = content.resolve_path(selector)
    document = content.document()
    set_value_at_path(document, path, value)
    if dry_run:
        logger.info(f"dry-run: would set {path} = {value!r}")
        return content, path
    write_document(content.path, document)
    return ContentFile.load(content.path), path


def set_batch(file: Path | str, updates: Mapping[str, Any], dry_run: bool = False) -> tuple[ContentFile, list[str]]:
    """Apply a batch of concrete-path updates with a single atomic write, then reload."""
    content = ContentFile.load(file)
    document = content.document()
    paths = set_values(document, updates)
    if dry_run:
        logger.info(f"dry-run: would update {len(paths)} paths")
        return content, paths
    write_document(content.path, document)
    return ContentFile.load(content.path), paths
