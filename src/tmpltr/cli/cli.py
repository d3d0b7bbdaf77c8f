"""CLI entrypoint: Typer app definition, global options, and command registration"""

from pathlib import Path
from typing import Annotated, Optional

import typer

from tmpltr.cli.commands import (
    blocks_cmd, compile_cmd, config_path_cmd, config_reset_cmd, config_show_cmd, example_cmd,
    get_cmd, init_cmd, new_cmd, new_template_cmd, recent_cmd, set_cmd, templates_cmd,
    validate_cmd, watch_cmd,
)
from tmpltr.cli.context import AppState
from tmpltr.logging import setup_logging


app = typer.Typer(
    name="tmpltr",
    no_args_is_help=True,
    help="Generate documents from structured TOML content using Typst templates",
)
config_app = typer.Typer(no_args_is_help=True, help="Manage configuration")


def global_options(
    ctx: typer.Context,
    config: Annotated[Optional[Path], typer.Option("--config", help="Override the config file path")] = None,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only report errors")] = False,
    verbose: Annotated[int, typer.Option("--verbose", "-v", count=True, help="More logging (stackable)")] = 0,
    debug: Annotated[bool, typer.Option("--debug", help="Debug logging")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Machine-readable JSON output")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Do not change anything on disk")] = False,
    ):
    """Generate documents from structured TOML content using Typst templates."""
    setup_logging(quiet=quiet, verbose=verbose, debug=debug)
    ctx.obj = AppState(config=config, json=json_output, dry_run=dry_run)


app.callback()(global_options)

app.command(name="init")(init_cmd)
app.command(name="new")(new_cmd)
app.command(name="example")(example_cmd)
app.command(name="compile")(compile_cmd)
app.command(name="get")(get_cmd)
app.command(name="set")(set_cmd)
app.command(name="blocks")(blocks_cmd)
app.command(name="validate")(validate_cmd)
app.command(name="watch")(watch_cmd)
app.command(name="templates")(templates_cmd)
app.command(name="recent")(recent_cmd)
app.command(name="new-template")(new_template_cmd)

config_app.command(name="show")(config_show_cmd)
config_app.command(name="path")(config_path_cmd)
config_app.command(name="reset")(config_reset_cmd)
app.add_typer(config_app, name="config")


def main() -> None:
    app()
