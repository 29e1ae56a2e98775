"""Runtime settings loaded from the environment.

Values come from the process environment after an optional ``.env`` file has
been read with python-dotenv (existing variables always win).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from dotenv import find_dotenv, load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from stagesync.orchestrator.errors import ConfigurationError

# Environment variable -> Settings field
ENV_VARS: dict[str, str] = {
    "SYNC_TIMEOUT": "sync_timeout",
    "DRY_RUN": "dry_run",
    "SKIP_CONFIRM": "skip_confirm",
    "GITOPS_NAMESPACE": "gitops_namespace",
    "STAGESYNC_BACKEND": "backend",
    "STAGESYNC_CLI": "cli_binary",
    "STAGESYNC_REGISTRY": "registry_file",
    "STAGESYNC_FAIL_FAST": "fail_fast",
}


class Settings(BaseModel):
    """Validated runtime settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sync_timeout: int | None = Field(
        default=None,
        gt=0,
        description="Per-unit health timeout in seconds (None uses the group default)",
    )
    dry_run: bool = Field(
        default=False,
        description="Log mutations instead of applying them (teardown and clean)",
    )
    skip_confirm: bool = Field(
        default=False,
        description="Skip confirmation prompts for destructive commands",
    )
    gitops_namespace: str = Field(
        default="openshift-gitops",
        min_length=1,
        description="Namespace holding Applications and ApplicationSets",
    )
    backend: Literal["kr8s", "cli"] = Field(
        default="kr8s",
        description="Cluster client backend",
    )
    cli_binary: str = Field(
        default="oc",
        min_length=1,
        description="Cluster CLI used by the cli backend and for manifest apply",
    )
    registry_file: Path | None = Field(
        default=None,
        description="YAML unit registry replacing the embedded table",
    )
    fail_fast: bool = Field(
        default=False,
        description="Abort the run on the first unit health timeout",
    )


def load_settings(
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from the environment.

    Args:
        env_file: ``.env`` file to read first (defaults to ``./.env`` if present)
        environ: Mapping to read instead of ``os.environ``

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If a variable has an invalid value
    """
    if environ is None:
        if env_file is not None:
            if not env_file.exists():
                raise ConfigurationError(f"Env file not found: {env_file}")
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(find_dotenv(usecwd=True), override=False)
        environ = os.environ

    values: dict[str, str] = {}
    for var, field in ENV_VARS.items():
        raw = environ.get(var)
        if raw is None or raw.strip() == "":
            continue
        values[field] = raw.strip()

    if values:
        logger.debug(f"Settings from environment: {sorted(values)}")

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration", details=str(e)) from e
