"""Per-invocation CLI state: global flags, resolved paths, settings, and the recent-documents cache"""

import json
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from loguru import logger

from tmpltr.config import ResolvedPaths, Settings, discover_paths, load_or_create_config
from tmpltr.core.content import ContentFile
from tmpltr.crud.cache import DocumentCache
from tmpltr.errors import ContentError, TmpltrError, error_payload, exit_code


@dataclass
class AppState:
    """Built once by the app callback and handed to every command through ``ctx.obj``."""
    config: Optional[Path] = None
    json: bool = False
    dry_run: bool = False
    overrides: dict[str, Any] = field(default_factory=dict)

    @cached_property
    def base_paths(self) -> ResolvedPaths:
        return discover_paths(self.config)

    @cached_property
    def settings(self) -> Settings:
        return load_or_create_config(self.base_paths, self.overrides)

    @cached_property
    def paths(self) -> ResolvedPaths:
        paths = self.base_paths.apply_settings(self.settings)
        if not self.dry_run:
            paths.ensure_directories()
        return paths

    @cached_property
    def cache(self) -> DocumentCache:
        return DocumentCache.load(self.paths.cache_dir)

    def template_search_paths(self) -> list[Path]:
        return [self.paths.templates_dir, Path("."), Path("templates")]

    # --- output ---

    def output(self, value: Any, human: str) -> None:
        """JSON value with --json, otherwise the human-readable line."""
        if self.json:
            self.output_json(value)
        else:
            typer.echo(human)

    def output_json(self, value: Any) -> None:
        typer.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))

    # --- documents ---

    def resolve_file(self, file: Optional[Path], selector: Optional[str]) -> Path:
        """A content file given directly, or chosen by a --from selector such as ``last``."""
        if file is not None:
            return file
        if selector:
            return self.cache.resolve_selector(selector)
        raise ContentError("no file specified. Use a file path or --from <selector>")

    def touch(self, content: ContentFile) -> None:
        """Record a document in the recent-documents cache (skipped on --dry-run)."""
        if self.dry_run:
            logger.debug(f"dry-run: not caching {content.path}")
            return
        self.cache.update(content)


def fail(state: Optional[AppState], exc: BaseException) -> None:
    """Report an error on stderr (or as a JSON object on stdout) and exit with its code."""
    if state is not None and state.json:
        typer.echo(json.dumps(error_payload(exc), indent=2, ensure_ascii=False, default=str))
    else:
        typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(exit_code(exc))


@contextmanager
def handle_errors(state: Optional[AppState]) -> Iterator[None]:
    """Turn any failure inside a command into a reported error and exit code."""
    try:
        yield
    except typer.Exit:
        raise
    except (TmpltrError, OSError, json.JSONDecodeError) as e:
        fail(state, e)
    except Exception as e:
        logger.opt(exception=e).debug("unexpected error")
        fail(state, e)


def read_stdin() -> str:
    return sys.stdin.read()
