"""Utility functions for the Kubernetes infrastructure layer.

Provides helper functions for running async code in sync contexts
and other common utilities.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a blocking sync context.

    This is useful for calling async KubernetesController methods
    from the synchronous orchestrators and CLI commands.

    Args:
        coro: The coroutine to execute

    Returns:
        The result of the coroutine

    Example:
        from stagesync.infra.k8s import KubectlController, run_sync

        controller = KubectlController()
        crds = run_sync(controller.list_resources("crd"))
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop, create a new one
        return asyncio.run(coro)

    # Inside a running loop: run on a fresh loop in a worker thread
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(asyncio.run, coro)
        return future.result()


def parse_timeout(timeout: str | int | float) -> float:
    """Convert a kubectl-style duration ("120s", "5m", "1h") to seconds."""
    if isinstance(timeout, (int, float)):
        return float(timeout)
    value = timeout.strip().lower()
    units = {"s": 1, "m": 60, "h": 3600}
    if value and value[-1] in units:
        return float(value[:-1]) * units[value[-1]]
    return float(value)
