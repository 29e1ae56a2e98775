"""Rich rendering of orchestrator events and results."""

from __future__ import annotations

from rich.markup import escape
from rich.status import Status
from rich.table import Table

from stagesync.orchestrator.events import EventKind, EventLevel, SyncEvent
from stagesync.orchestrator.models import (
    ApplicationSetStatus,
    Deletion,
    DeletionOutcome,
    HealthState,
    RunSummary,
    SyncState,
    TeardownSummary,
    UnitStatus,
)

from .console import CLIConsole

_SYNC_STYLES = {
    SyncState.SYNCED.value: "green",
    SyncState.OUT_OF_SYNC.value: "yellow",
}

_HEALTH_STYLES = {
    HealthState.HEALTHY.value: "green",
    HealthState.PROGRESSING.value: "cyan",
    HealthState.DEGRADED.value: "red",
    HealthState.MISSING.value: "yellow",
}

_OUTCOME_STYLES = {
    DeletionOutcome.DELETED.value: "green",
    DeletionOutcome.FORCED.value: "yellow",
    DeletionOutcome.PLANNED.value: "magenta",
    DeletionOutcome.FAILED.value: "red",
    DeletionOutcome.ABSENT.value: "dim",
}

_OK_KINDS = {
    EventKind.CLUSTER_CONNECTED,
    EventKind.PREFLIGHT_PASSED,
    EventKind.SIGNAL_READY,
    EventKind.UNIT_SUCCEEDED,
    EventKind.APPLICATION_DELETED,
    EventKind.APPLICATIONSET_DELETED,
    EventKind.RESOURCE_DELETED,
    EventKind.NAMESPACE_DELETED,
}


def _styled(value: str, styles: dict[str, str]) -> str:
    style = styles.get(value)
    return f"[{style}]{value}[/{style}]" if style else value


class SyncEventRenderer:
    """Event sink that renders orchestrator events on the CLI console.

    Waiting events update a single transient status line on terminals and are
    printed dimmed otherwise. Every other event is printed as one line.
    """

    def __init__(self, console: CLIConsole) -> None:
        self.console = console
        self._status: Status | None = None

    def __call__(self, event: SyncEvent) -> None:
        if event.is_progress:
            self._progress(event.message)
            return

        self.close()
        if event.kind == EventKind.ACTION_PLANNED:
            action = escape(event.message.removeprefix("[DRY-RUN] "))
            self.console.print(f"  [magenta]\\[DRY-RUN][/magenta] {action}")
        elif event.level == EventLevel.STEP:
            self.console.step(event.message)
        elif event.level == EventLevel.WARN:
            self.console.warn(event.message)
        elif event.level == EventLevel.ERROR:
            self.console.error(event.message)
        elif event.kind in _OK_KINDS:
            self.console.ok(event.message)
        else:
            self.console.info(event.message)

    def _progress(self, message: str) -> None:
        if not self.console.console.is_terminal:
            self.console.print(f"  [dim]{message}[/dim]")
            return
        if self._status is None:
            self._status = self.console.status(message)
            self._status.start()
        else:
            self._status.update(message)

    def close(self) -> None:
        """Clear the transient status line, if any."""
        if self._status is not None:
            self._status.stop()
            self._status = None


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def status_table(statuses: list[UnitStatus]) -> Table:
    table = Table(title="Applications", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("Sync")
    table.add_column("Health")
    for row in statuses:
        table.add_row(
            row.name,
            _styled(row.sync_state, _SYNC_STYLES),
            _styled(row.health_state, _HEALTH_STYLES),
        )
    return table


def applicationset_table(appsets: list[ApplicationSetStatus]) -> Table:
    table = Table(title="ApplicationSets", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("Generators", justify="right")
    for row in appsets:
        generators = str(row.generators) if row.generators else "[dim]0 (disabled)[/dim]"
        table.add_row(row.name, generators)
    return table


def deletion_table(deletions: list[Deletion]) -> Table:
    table = Table(title="Deletions", show_header=True, header_style="bold")
    table.add_column("Kind")
    table.add_column("Name", style="bold")
    table.add_column("Namespace")
    table.add_column("Outcome")
    for row in deletions:
        name = f"{row.name} [dim](unmanaged)[/dim]" if row.drift else row.name
        table.add_row(
            row.kind,
            name,
            row.namespace or "-",
            _styled(row.outcome.value, _OUTCOME_STYLES),
        )
    return table


def render_run_summary(console: CLIConsole, summary: RunSummary) -> None:
    """Print the end-of-run counts and the final Application table."""
    console.print_subheader("Sync Summary")
    console.info(
        f"{summary.processed} processed, {len(summary.succeeded)} healthy, "
        f"{len(summary.timed_out)} timed out, {len(summary.skipped)} skipped"
    )
    if summary.timed_out:
        console.warn(f"Timed out: {', '.join(summary.timed_out)}")
    if summary.skipped:
        console.warn(f"Skipped: {', '.join(summary.skipped)}")
    if summary.statuses:
        console.print(status_table(summary.statuses))


def render_teardown_summary(
    console: CLIConsole, summary: TeardownSummary, title: str
) -> None:
    """Print deletion counts and the per-resource outcome table."""
    console.print_subheader(title)
    if summary.deletions:
        console.print(deletion_table(summary.deletions))
    if summary.dry_run:
        console.info(
            f"Dry run: {summary.planned} deletions planned, nothing was changed"
        )
        return

    console.ok(f"{summary.deleted} resources deleted")
    if summary.forced:
        console.warn(f"{summary.forced} applications required finalizer removal")
    if summary.drift:
        console.info(f"Removed unmanaged applications: {', '.join(summary.drift)}")
    if summary.failed:
        console.warn(f"{summary.failed} deletions failed (see --verbose output)")
