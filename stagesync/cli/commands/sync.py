"""Staged sync commands.

This module provides the commands that drive Applications to Synced +
Healthy, report their status, and toggle automated sync.
"""

from typing import Annotated

import typer

from stagesync.cli.context import CLIContext, get_cli_context
from stagesync.cli.shared.console import with_error_handling
from stagesync.cli.shared.rendering import (
    SyncEventRenderer,
    applicationset_table,
    render_run_summary,
    status_table,
)
from stagesync.infra.k8s.controller import ClusterAPIError
from stagesync.orchestrator.applications import ApplicationClient
from stagesync.orchestrator.executor import LiveExecutor
from stagesync.orchestrator.models import Outcome
from stagesync.orchestrator.registry import UnitRegistry
from stagesync.orchestrator.sync import SyncOptions, SyncOrchestrator

from .shared import check_cluster_connection

TimeoutOption = Annotated[
    int | None,
    typer.Option(
        "--timeout",
        "-t",
        min=1,
        help="Seconds each app may take to become healthy (default: SYNC_TIMEOUT)",
    ),
]


def _orchestrator(
    context: CLIContext,
    registry: UnitRegistry,
    options: SyncOptions,
    renderer: SyncEventRenderer,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        registry,
        context.k8s_controller,
        constants=context.constants,
        sink=renderer,
        options=options,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@with_error_handling
def sync(
    ctx: typer.Context,
    timeout: TimeoutOption = None,
    fail_fast: Annotated[
        bool,
        typer.Option(
            "--fail-fast",
            help="Stop at the first app that does not become healthy",
        ),
    ] = False,
) -> None:
    """Sync every operator and instance app in dependency order.

    Verifies all apps exist first (fatal if any is missing), then for each
    app waits for its readiness signal, enables auto-sync, and waits for
    Synced + Healthy. Health timeouts are reported and the run continues.

    Examples:
        stagesync sync
        stagesync sync --timeout 600
        stagesync sync --fail-fast
    """
    context = get_cli_context(ctx)
    settings = context.settings
    context.console.print_header("Staged Sync")

    renderer = SyncEventRenderer(context.console)
    check_cluster_connection(context, renderer)

    options = SyncOptions.for_operators(
        context.constants,
        health_timeout=timeout or settings.sync_timeout,
        fail_fast=fail_fast or settings.fail_fast,
    )
    orchestrator = _orchestrator(context, context.registry, options, renderer)
    try:
        summary = orchestrator.run()
    finally:
        renderer.close()

    render_run_summary(context.console, summary)


@with_error_handling
def sync_one(
    ctx: typer.Context,
    unit: Annotated[
        str,
        typer.Option("--unit", "-u", help="Name of the app to sync"),
    ],
    timeout: TimeoutOption = None,
) -> None:
    """Sync a single app, skipping the pre-flight check.

    Exits 1 if the name is unknown or the app does not exist.

    Examples:
        stagesync sync-one --unit instance-nfd
    """
    context = get_cli_context(ctx)
    renderer = SyncEventRenderer(context.console)

    options = SyncOptions.for_operators(
        context.constants, health_timeout=timeout or context.settings.sync_timeout
    )
    orchestrator = _orchestrator(context, context.registry, options, renderer)
    try:
        attempt = orchestrator.sync_one(unit)
    finally:
        renderer.close()

    if attempt.outcome is Outcome.SKIPPED:
        context.console.error(f"App '{unit}' does not exist")
        raise typer.Exit(1)


@with_error_handling
def sync_configs(ctx: typer.Context, timeout: TimeoutOption = None) -> None:
    """Sync the cluster configuration apps (RBAC, gateway, MaaS).

    Examples:
        stagesync sync-configs
    """
    context = get_cli_context(ctx)
    context.console.print_header("Cluster Config Sync")

    renderer = SyncEventRenderer(context.console)
    check_cluster_connection(context, renderer)

    options = SyncOptions.for_configs(
        context.constants,
        health_timeout=timeout or context.settings.sync_timeout,
        fail_fast=context.settings.fail_fast,
    )
    orchestrator = _orchestrator(context, context.config_registry, options, renderer)
    try:
        summary = orchestrator.run()
    finally:
        renderer.close()

    render_run_summary(context.console, summary)


@with_error_handling
def status(ctx: typer.Context) -> None:
    """Show sync and health of every Application and ApplicationSet.

    Examples:
        stagesync status
    """
    context = get_cli_context(ctx)
    context.console.print_header("GitOps Application Status")

    client = context.k8s_controller
    applications = ApplicationClient(
        client, LiveExecutor(client), context.constants
    )
    try:
        statuses = applications.statuses()
        appsets = applications.applicationset_statuses()
    except ClusterAPIError as e:
        context.console.warn(f"Could not read application status: {e.message}")
        return

    if not statuses:
        context.console.info(
            f"No applications found in {context.constants.GITOPS_NAMESPACE}"
        )
    else:
        context.console.print(status_table(statuses))

    if appsets:
        context.console.print(applicationset_table(appsets))


# ---------------------------------------------------------------------------
# Auto-sync Sub-app
# ---------------------------------------------------------------------------

autosync_app = typer.Typer(
    name="autosync",
    help="Enable or disable automated sync on all Applications.",
    no_args_is_help=True,
)


def _set_auto_sync(ctx: typer.Context, enabled: bool) -> None:
    context = get_cli_context(ctx)
    orchestrator = SyncOrchestrator(
        context.registry, context.k8s_controller, constants=context.constants
    )
    patched = orchestrator.set_auto_sync(enabled)

    verb = "Enabled" if enabled else "Disabled"
    if not patched:
        context.console.warn("No applications were updated")
        return
    context.console.ok(f"{verb} auto-sync on {len(patched)} applications")
    for name in patched:
        context.console.print(f"  [dim]•[/dim] {name}")


@autosync_app.command()
@with_error_handling
def enable(ctx: typer.Context) -> None:
    """Turn on automated sync (prune + self-heal) with the retry policy."""
    _set_auto_sync(ctx, True)


@autosync_app.command()
@with_error_handling
def disable(ctx: typer.Context) -> None:
    """Turn off automated sync so apps only change when synced manually."""
    _set_auto_sync(ctx, False)
