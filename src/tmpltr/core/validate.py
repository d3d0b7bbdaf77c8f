"""Rule-based structural validation of content files"""

from tmpltr.core.content import ContentFile
from tmpltr.core.models import BlockFormat, BlockType
from tmpltr.errors import ValidationError


FORMATS = {f.value for f in BlockFormat}
TYPES = {t.value for t in BlockType}


def _validate_table(name: str, block: dict) -> list[str]:
    errors = []
    columns = block.get("columns")
    if not isinstance(columns, list):
        errors.append(f"blocks.{name}: table block requires a 'columns' array")
        return errors
    rows = block.get("rows", [])
    if not isinstance(rows, list):
        errors.append(f"blocks.{name}: 'rows' must be an array")
        return errors
    for i, row in enumerate(rows):
        if not isinstance(row, list):
            errors.append(f"blocks.{name}: row {i} must be an array")
        elif len(row) != len(columns):
            errors.append(
                f"blocks.{name}: row {i} has {len(row)} cells, expected {len(columns)}"
            )
    return errors


def validate_content(content: ContentFile) -> list[str]:
    """Return every rule violation in a content file; an empty list means valid."""
    errors: list[str] = []

    if not content.meta.template.strip():
        errors.append("meta.template must not be empty")

    if "blocks" not in content.data:
        return errors
    blocks = content.data["blocks"]
    if not isinstance(blocks, dict):
        errors.append("blocks must be a table")
        return errors

    for name, block in blocks.items():
        if not isinstance(block, dict):
            errors.append(f"blocks.{name}: block must be a table")
            continue
        fmt = block.get("format")
        if fmt is not None and fmt not in FORMATS:
            errors.append(
                f"blocks.{name}: unknown format '{fmt}' (expected one of: {', '.join(sorted(FORMATS))})"
            )
        block_type = block.get("type", BlockType.text.value)
        if block_type not in TYPES:
            errors.append(f"blocks.{name}: unknown type '{block_type}'")
        elif block_type == BlockType.table.value:
            errors.extend(_validate_table(name, block))
        elif "content" in block and not isinstance(block["content"], str):
            errors.append(f"blocks.{name}: content must be a string")

    return errors


def ensure_valid(content: ContentFile) -> None:
    errors = validate_content(content)
    if errors:
        raise ValidationError(errors)
