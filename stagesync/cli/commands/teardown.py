"""Destructive commands: teardown of managed apps and cleanup of conflicts."""

from typing import Annotated

import typer

from stagesync.cli.context import get_cli_context
from stagesync.cli.shared.console import with_error_handling
from stagesync.cli.shared.rendering import SyncEventRenderer, render_teardown_summary
from stagesync.orchestrator.cleanup import ConflictCleaner
from stagesync.orchestrator.teardown import TeardownOrchestrator

from .shared import build_executor, check_cluster_connection, confirm_or_cancel

DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Show what would be deleted without changing anything",
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip confirmation prompt",
    ),
]


@with_error_handling
def teardown(
    ctx: typer.Context, dry_run: DryRunOption = False, yes: YesOption = False
) -> None:
    """Delete every managed Application in reverse dependency order.

    ApplicationSets are disabled first so nothing is recreated. Each app is
    cascade-deleted and awaited; apps stuck on finalizers are force-removed.
    Leftover apps, ApplicationSets and managed namespaces are removed last.

    Examples:
        stagesync teardown --dry-run
        stagesync teardown -y
    """
    context = get_cli_context(ctx)
    dry_run = dry_run or context.settings.dry_run
    context.console.print_header(
        "Teardown (dry run)" if dry_run else "Teardown", style="red"
    )

    renderer = SyncEventRenderer(context.console)
    check_cluster_connection(context, renderer)

    if not confirm_or_cancel(
        context,
        "Delete all GitOps-managed applications",
        f"This will:\n"
        f"  • Disable and delete all ApplicationSets\n"
        f"  • Delete {len(context.registry.cleanup_order())} applications "
        f"and their resources\n"
        f"  • Delete the managed namespaces",
        force=yes or dry_run,
    ):
        context.console.print("[dim]Operation cancelled[/dim]")
        raise typer.Exit(0)

    orchestrator = TeardownOrchestrator(
        context.registry,
        context.k8s_controller,
        build_executor(context, dry_run, renderer),
        constants=context.constants,
        sink=renderer,
    )
    try:
        summary = orchestrator.run()
    finally:
        renderer.close()

    render_teardown_summary(context.console, summary, "Teardown Summary")


@with_error_handling
def clean(
    ctx: typer.Context, dry_run: DryRunOption = False, yes: YesOption = False
) -> None:
    """Remove pre-installed operators that conflict with the GitOps stack.

    Deletes operator instances, subscriptions, CSVs and OperatorGroups from
    the operator namespaces, Service Mesh operators, and RHOAI catalog
    sources. Run after teardown.

    Examples:
        stagesync clean --dry-run
        stagesync clean -y
    """
    context = get_cli_context(ctx)
    dry_run = dry_run or context.settings.dry_run
    context.console.print_header(
        "Clean Conflicting Operators (dry run)" if dry_run else "Clean Conflicting Operators",
        style="red",
    )

    renderer = SyncEventRenderer(context.console)
    check_cluster_connection(context, renderer)

    if not confirm_or_cancel(
        context,
        "Remove pre-installed operators",
        "This will:\n"
        "  • Delete operator instances (NFD, GPU, RHOAI, ...)\n"
        "  • Delete subscriptions, CSVs and OperatorGroups\n"
        "  • Delete RHOAI catalog sources",
        force=yes or dry_run,
    ):
        context.console.print("[dim]Operation cancelled[/dim]")
        raise typer.Exit(0)

    cleaner = ConflictCleaner(
        context.k8s_controller,
        build_executor(context, dry_run, renderer),
        constants=context.constants,
        sink=renderer,
    )
    try:
        summary = cleaner.run()
    finally:
        renderer.close()

    render_teardown_summary(context.console, summary, "Cleanup Summary")
