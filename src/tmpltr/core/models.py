"""Content data models: metadata, block formats, and index entries"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BlockFormat(str, Enum):
    """How a block's text content is interpreted at compile time"""
    markdown = "markdown"
    typst = "typst"
    plain = "plain"

    @classmethod
    def parse(cls, value: Optional[str]) -> "BlockFormat":
        """Map a declared format string to a BlockFormat; unknown or missing means markdown."""
        try:
            return cls(value)
        except ValueError:
            return cls.markdown


class BlockType(str, Enum):
    text = "text"
    table = "table"


class BlockKind(str, Enum):
    """Whether an index entry is a named block under [blocks] or a plain field"""
    block = "block"
    field = "field"


class BlockInfo(BaseModel):
    """One addressable entry in a content file's index."""
    model_config = ConfigDict(populate_by_name=True)

    path: str
    title: Optional[str] = None
    kind: BlockKind
    format: Optional[str] = None
    block_type: Optional[str] = Field(default=None, alias="type")


class ContentMeta(BaseModel):
    """The [meta] table of a content file."""
    template: str = Field(..., min_length=1)
    template_id: Optional[str] = None
    template_version: Optional[str] = None
    generated_at: Optional[datetime] = None

    @field_validator("generated_at", mode="before")
    @classmethod
    def _lenient_timestamp(cls, value):
        """Accept native TOML datetimes or ISO-8601 strings; anything unparsable is dropped."""
        if value is None or isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                return None
        return None
