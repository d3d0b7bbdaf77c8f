"""Application configuration: settings schema, config.yaml loader, and XDG path discovery"""

import os
import sys
from pathlib import Path
from string import Template
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from tmpltr.errors import ConfigError


APP_NAME = "tmpltr"
CONFIG_FILE = "config.yaml"
ENV_PREFIX = "TMPLTR_"


def default_font_paths() -> list[str]:
    if sys.platform == "darwin":
        return ["~/Library/Fonts", "/Library/Fonts"]
    if sys.platform.startswith("win"):
        return ["C:/Windows/Fonts"]
    return ["~/.local/share/fonts", "~/.fonts", "/usr/share/fonts"]


class Settings(BaseModel):
    templates_dir:  Optional[str] = Field(default=None, description="Template search directory")
    schemas_dir:    Optional[str] = Field(default=None, description="Directory for generated JSON schemas")
    brands_dir:     Optional[str] = Field(default=None, description="Directory holding brand folders")
    cache_dir:      Optional[str] = Field(default=None, description="Directory for the recent-documents cache")
    default_brand:  Optional[str] = Field(default=None, description="Brand applied when none is given")
    typst_binary:   Optional[str] = Field(default=None, description="typst executable; empty means look it up on PATH")
    font_paths:     list[str]     = Field(default_factory=default_font_paths, description="Extra font directories")
    output_format:  str = Field(default="pdf", pattern="^(pdf|svg|html)$", description="pdf, svg or html")
    watch_debounce_ms: int = Field(default=300, ge=0, description="Debounce for watch mode in milliseconds")
    experimental_html: bool = Field(default=False, description="Allow typst's experimental HTML export")


class ResolvedPaths(BaseModel):
    """Concrete directories for one invocation; passed around explicitly, never global."""
    model_config = ConfigDict(frozen=True)

    config_file:   Path
    data_dir:      Path
    templates_dir: Path
    schemas_dir:   Path
    brands_dir:    Path
    cache_dir:     Path

    def apply_settings(self, settings: Settings) -> "ResolvedPaths":
        """Return a copy with any directories configured in settings substituted in."""
        updates = {
            name: expand_path(value)
            for name in ("templates_dir", "schemas_dir", "brands_dir", "cache_dir")
            if (value := getattr(settings, name))
        }
        return self.model_copy(update=updates)

    def ensure_directories(self) -> None:
        for directory in (self.templates_dir, self.schemas_dir, self.brands_dir, self.cache_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"creating directory {directory}: {e}") from e


def _xdg_dir(var: str, fallback: str) -> Path:
    value = os.environ.get(var)
    if value:
        return Path(value)
    return Path.home() / fallback


def xdg_config_home() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def xdg_data_home() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share")


def xdg_cache_home() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache")


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and ``$VAR``/``${VAR}``; unset XDG variables fall back to their defaults."""
    env = {
        "XDG_CONFIG_HOME": str(xdg_config_home()),
        "XDG_DATA_HOME": str(xdg_data_home()),
        "XDG_CACHE_HOME": str(xdg_cache_home()),
        **os.environ,
    }
    return Path(Template(str(value)).safe_substitute(env)).expanduser()


def discover_paths(config_override: Optional[Path | str] = None) -> ResolvedPaths:
    """XDG defaults; a --config directory means the config.yaml inside it."""
    if config_override:
        config_file = expand_path(config_override)
        if config_file.is_dir():
            config_file = config_file / CONFIG_FILE
    else:
        config_file = xdg_config_home() / APP_NAME / CONFIG_FILE

    data_dir = xdg_data_home() / APP_NAME
    return ResolvedPaths(
        config_file=config_file,
        data_dir=data_dir,
        templates_dir=data_dir / "templates",
        schemas_dir=data_dir / "schemas",
        brands_dir=data_dir / "brands",
        cache_dir=xdg_cache_home() / APP_NAME,
    )


def _env_value(name: str, value: str) -> Any:
    if name == "font_paths":
        return [p for p in value.split(os.pathsep) if p]
    return value


def load_config(config_file: Optional[Path] = None, overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then TMPLTR_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    path = Path(config_file) if config_file else Path(CONFIG_FILE)
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"invalid {path}: expected a mapping at the top level")

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = _env_value(name, val)

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Settings(**data)
    except ValueError as e:
        raise ConfigError(f"invalid settings: {e}") from e


DEFAULT_CONFIG = """\
# tmpltr configuration
#
# Paths may use ~ and environment variables such as $XDG_DATA_HOME.
# Every key can also be set as a TMPLTR_<KEY> environment variable.

templates_dir: $XDG_DATA_HOME/tmpltr/templates
schemas_dir: $XDG_DATA_HOME/tmpltr/schemas
brands_dir: $XDG_DATA_HOME/tmpltr/brands
cache_dir: $XDG_CACHE_HOME/tmpltr

# Brand applied to compiles when --brand is not given
# default_brand: acme

# typst executable; leave unset to look it up on PATH
# typst_binary: /usr/local/bin/typst

# Extra font directories handed to typst
{font_paths}

# Output format: pdf, svg or html
output_format: pdf

# Debounce for watch mode in milliseconds
watch_debounce_ms: 300

# typst's HTML export is experimental and must be enabled explicitly
experimental_html: false
"""


def default_config_text() -> str:
    font_paths = yaml.safe_dump({"font_paths": default_font_paths()}, default_flow_style=False).rstrip()
    return DEFAULT_CONFIG.format(font_paths=font_paths)


def write_default_config(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_config_text(), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"writing config file {path}: {e}") from e


def load_or_create_config(paths: ResolvedPaths, overrides: dict[str, Any] = None) -> Settings:
    """Load settings, writing the commented default config.yaml on first run."""
    if not paths.config_file.exists():
        write_default_config(paths.config_file)
    return load_config(paths.config_file, overrides)
