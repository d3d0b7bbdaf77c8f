"""Error taxonomy: one exception class per failure kind, each with a stable tag"""

import json
from pathlib import Path


class TmpltrError(Exception):
    """Base class for all expected tmpltr failures."""
    kind = "internal_error"
    exit_code = 1

    def payload(self) -> dict:
        """Machine-readable description used by --json output."""
        return {"status": "error", "kind": self.kind, "message": str(self)}


class ConfigError(TmpltrError):
    kind = "config_error"

    def __init__(self, message: str):
        super().__init__(f"configuration error: {message}")


class ContentError(TmpltrError):
    kind = "content_error"

    def __init__(self, message: str):
        super().__init__(f"content error: {message}")


class BrandError(TmpltrError):
    kind = "brand_error"

    def __init__(self, message: str):
        super().__init__(f"brand error: {message}")


class TemplateError(TmpltrError):
    kind = "template_error"

    def __init__(self, message: str):
        super().__init__(f"template error: {message}")


class TomlParseError(TmpltrError):
    kind = "toml_parse_error"

    def __init__(self, message: str):
        super().__init__(f"TOML parse error: {message}")


class PathNotFoundError(TmpltrError):
    kind = "path_not_found"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"path not found: {path}")


class TitleNotFoundError(TmpltrError):
    kind = "title_not_found"

    def __init__(self, title: str):
        self.title = title
        super().__init__(f"block with title '{title}' not found")


class AmbiguousTitleError(TmpltrError):
    """More than one index entry carries the requested title; never guess."""
    kind = "ambiguous_title"

    def __init__(self, title: str, matches: list[str]):
        self.title = title
        self.matches = sorted(matches)
        super().__init__(f"ambiguous title '{title}': matches {self.matches}")

    def payload(self) -> dict:
        return {**super().payload(), "matches": self.matches}


class CompilerError(TmpltrError):
    kind = "typst_error"
    exit_code = 2

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(f"typst compilation failed: {message}")

    def payload(self) -> dict:
        data = super().payload()
        if self.details:
            data["details"] = self.details
        return data


class MissingFileError(TmpltrError):
    kind = "file_not_found"

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"file not found: {self.path}")


class CacheError(TmpltrError):
    kind = "cache_error"

    def __init__(self, message: str):
        super().__init__(f"cache error: {message}")


class NoRecentDocumentError(TmpltrError):
    kind = "no_recent_document"

    def __init__(self):
        super().__init__("no recent document found in cache")


class ValidationError(TmpltrError):
    """Aggregated list of rule violations."""
    kind = "validation_error"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        noun = "error" if len(self.errors) == 1 else "errors"
        super().__init__(f"validation error: {len(self.errors)} {noun}")

    def payload(self) -> dict:
        return {**super().payload(), "errors": self.errors}


class WatchError(TmpltrError):
    kind = "watch_error"

    def __init__(self, message: str):
        super().__init__(f"watch error: {message}")


def error_kind(exc: BaseException) -> str:
    """Return the stable tag for any exception, including passthrough I/O and JSON errors."""
    if isinstance(exc, TmpltrError):
        return exc.kind
    if isinstance(exc, json.JSONDecodeError):
        return "json_error"
    if isinstance(exc, OSError):
        return "io_error"
    return "internal_error"


def exit_code(exc: BaseException) -> int:
    """Process exit code for an exception; unexpected failures exit with 10."""
    if isinstance(exc, TmpltrError):
        return exc.exit_code
    if isinstance(exc, (OSError, json.JSONDecodeError)):
        return 1
    return 10


def error_payload(exc: BaseException) -> dict:
    """JSON error object for any exception."""
    if isinstance(exc, TmpltrError):
        return exc.payload()
    return {"status": "error", "kind": error_kind(exc), "message": str(exc)}
