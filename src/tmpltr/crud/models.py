"""Recent-documents cache records"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from tmpltr.core.models import BlockInfo


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CachedMeta(BaseModel):
    """Display metadata pulled from a content file when it was last touched"""
    template_id: Optional[str] = None
    template_version: Optional[str] = None
    title: Optional[str] = None
    quote_number: Optional[str] = None


class CacheEntry(BaseModel):
    """One remembered content file; ``file`` is always a canonical absolute path"""
    file: Path
    meta: CachedMeta = Field(default_factory=CachedMeta)
    blocks: list[BlockInfo] = []
    last_used_at: datetime = Field(default_factory=utcnow)


class RecentDocument(BaseModel):
    """Listing row for the ``recent`` command"""
    file: Path
    template_id: Optional[str] = None
    template_version: Optional[str] = None
    meta_title: Optional[str] = None
    last_used_at: datetime

    @classmethod
    def from_entry(cls, entry: CacheEntry) -> "RecentDocument":
        return cls(
            file=entry.file,
            template_id=entry.meta.template_id,
            template_version=entry.meta.template_version,
            meta_title=entry.meta.title,
            last_used_at=entry.last_used_at,
        )
