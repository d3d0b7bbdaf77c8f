"""Dotted-path navigation and display over parsed content trees.

A content tree is the plain Python value produced by unwrapping a parsed TOML
document: dicts, lists, str, int, float, bool and datetime/date/time values.
"""

import json
from datetime import date, datetime, time
from typing import Any


def split_path(path: str) -> list[str]:
    """Split a dotted path into its key segments."""
    return path.split('.')


def get(tree: Any, path: str) -> Any | None:
    """Descend one key per segment through dicts only; None if any step is missing."""
    current = tree
    for part in split_path(path):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def display(value: Any) -> str:
    """Stringify a node for display.

    Tables carrying a string ``content`` key read as that string, so block
    tables look like flat scalars from the outside. Arrays and other tables
    fall back to a JSON dump that callers must not parse back.
    """
    if isinstance(value, dict) and isinstance(value.get('content'), str):
        return value['content']
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return json.dumps(to_json(value), ensure_ascii=False)


def to_json(value: Any) -> Any:
    """Convert a content tree into JSON-compatible data (temporal values become ISO strings)."""
    if isinstance(value, dict):
        return {str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value
