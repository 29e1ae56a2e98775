"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
import typer

from stagesync.cli.shared.console import CLIConsole, console
from stagesync.config import Settings, load_settings
from stagesync.infra.k8s import get_k8s_controller_sync
from stagesync.infra.k8s.controller import KubernetesControllerSync
from stagesync.orchestrator.constants import SyncConstants
from stagesync.orchestrator.registry import (
    UnitRegistry,
    default_config_registry,
    default_registry,
)


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    settings: Settings
    k8s_controller: KubernetesControllerSync
    constants: SyncConstants
    registry: UnitRegistry
    config_registry: UnitRegistry


def build_cli_context(
    settings: Settings | None = None,
    registry_file: Path | None = None,
) -> CLIContext:
    """Build a fresh CLIContext.

    Args:
        settings: Pre-loaded settings (loaded from the environment if omitted)
        registry_file: YAML registry overriding ``settings.registry_file``
    """
    settings = settings or load_settings()
    constants = SyncConstants(GITOPS_NAMESPACE=settings.gitops_namespace)

    source = registry_file or settings.registry_file
    registry = UnitRegistry.from_yaml(source) if source else default_registry()

    return CLIContext(
        console=console,
        settings=settings,
        k8s_controller=get_k8s_controller_sync(settings.backend, settings.cli_binary),
        constants=constants,
        registry=registry,
        config_registry=default_config_registry(),
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
