"""Main CLI application module.

This module provides the main entry point for the stagesync CLI.

Commands:
- sync: Staged sync of the operator stack
- sync-one: Sync a single app
- sync-configs: Sync the cluster configuration apps
- status: Application and ApplicationSet status
- autosync: Enable/disable automated sync
- teardown: Remove all managed apps
- clean: Remove conflicting pre-installed operators
"""

from pathlib import Path
from typing import Annotated

import typer

from stagesync.config import load_settings
from stagesync.logging_config import configure_logging

from .commands import (
    autosync_app,
    clean,
    status,
    sync,
    sync_configs,
    sync_one,
    teardown,
)
from .context import CLIContext, build_cli_context
from .shared.console import with_error_handling

# Create the main CLI application
app = typer.Typer(
    help="🚀 stagesync - Dependency-ordered GitOps staged sync",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
@with_error_handling
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
    env_file: Annotated[
        Path | None,
        typer.Option("--env-file", help="Environment file to load (default: .env)"),
    ] = None,
    registry: Annotated[
        Path | None,
        typer.Option("--registry", help="YAML unit registry to use"),
    ] = None,
) -> None:
    configure_logging(verbose)
    if isinstance(ctx.obj, CLIContext):
        return
    ctx.obj = build_cli_context(load_settings(env_file), registry)


# Register sync commands
app.command("sync")(sync)
app.command("sync-one")(sync_one)
app.command("sync-configs")(sync_configs)
app.command("status")(status)
app.add_typer(autosync_app, name="autosync")

# Register destructive commands
app.command("teardown")(teardown)
app.command("clean")(clean)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
