"""Recent-documents cache persisted as a JSON list in the cache directory"""

from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from tmpltr.core.content import ContentFile
from tmpltr.crud.models import CacheEntry, CachedMeta, utcnow
from tmpltr.errors import CacheError, MissingFileError, NoRecentDocumentError


CACHE_FILENAME = "documents.json"
MAX_ENTRIES = 100
LAST_SELECTOR = "last"

_entries_adapter = TypeAdapter(list[CacheEntry])


def _first_str(content: ContentFile, *paths: str) -> Optional[str]:
    """First of the given paths holding a string value."""
    for path in paths:
        value = content.get(path)
        if value is not None:
            return value if isinstance(value, str) else None
    return None


def cached_meta(content: ContentFile) -> CachedMeta:
    return CachedMeta(
        template_id=content.meta.template_id,
        template_version=content.meta.template_version,
        title=_first_str(content, "quote.title", "meta.title"),
        quote_number=_first_str(content, "quote.number", "quote.angebot_nr"),
    )


class DocumentCache:
    """Bounded list of recently touched content files, newest wins on eviction.

    Entries stay in insertion order; an update removes the file's old entry
    and appends a fresh one, so among equal timestamps the later insert is
    treated as newer.
    """

    def __init__(self, cache_dir: Path, entries: list[CacheEntry] = None):
        self.cache_dir = Path(cache_dir)
        self.entries: list[CacheEntry] = list(entries or [])

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILENAME

    @classmethod
    def load(cls, cache_dir: Path | str) -> "DocumentCache":
        """Read the cache; a missing, unreadable or corrupt file yields an empty cache."""
        cache = cls(Path(cache_dir))
        try:
            raw = cache.cache_file.read_bytes()
        except FileNotFoundError:
            return cache
        except OSError as e:
            logger.debug(f"cache: unreadable {cache.cache_file}: {e}")
            return cache
        try:
            cache.entries = _entries_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.debug(f"cache: discarding corrupt {cache.cache_file}: {e.error_count()} error(s)")
        return cache

    def save(self) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_bytes(_entries_adapter.dump_json(self.entries, indent=2, by_alias=True))
        except OSError as e:
            raise CacheError(f"writing cache file: {e}") from e

    def update(self, content: ContentFile) -> CacheEntry:
        """Record a touch of a content file, evict down to the bound, and persist."""
        try:
            file = content.path.resolve(strict=True)
        except OSError as e:
            raise CacheError(f"canonicalizing path {content.path}: {e}") from e

        entry = CacheEntry(
            file=file,
            meta=cached_meta(content),
            blocks=content.list_blocks(),
            last_used_at=utcnow(),
        )
        self.entries = [e for e in self.entries if e.file != file]
        self.entries.append(entry)

        if len(self.entries) > MAX_ENTRIES:
            kept = self._newest_first()[:MAX_ENTRIES]
            keep_ids = {id(e) for e in kept}
            evicted = len(self.entries) - len(kept)
            self.entries = [e for e in self.entries if id(e) in keep_ids]
            logger.debug(f"cache: evicted {evicted} entries")

        self.save()
        return entry

    def _newest_first(self) -> list[CacheEntry]:
        # reversed() so the stable sort ranks later inserts first on equal timestamps
        return sorted(reversed(self.entries), key=lambda e: e.last_used_at, reverse=True)

    def get_last(self) -> CacheEntry:
        if not self.entries:
            raise NoRecentDocumentError()
        return self._newest_first()[0]

    def list_entries(self) -> list[CacheEntry]:
        return self._newest_first()

    def resolve_selector(self, selector: str) -> Path:
        """``last`` means the most recent file; anything else must be an existing path."""
        if selector == LAST_SELECTOR:
            return self.get_last().file
        path = Path(selector)
        if not path.exists():
            raise MissingFileError(path)
        return path
